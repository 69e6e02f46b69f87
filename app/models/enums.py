"""
Enumerations shared by models, schemas and services
"""

import enum


class TableType(str, enum.Enum):
    PREPAID = "PREPAID"
    CAPTAIN_PAYG = "CAPTAIN_PAYG"


class TableStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"
    ARCHIVED = "ARCHIVED"


class TableRole(str, enum.Enum):
    OWNER = "OWNER"
    CO_OWNER = "CO_OWNER"
    CAPTAIN = "CAPTAIN"
    MANAGER = "MANAGER"
    STAFF = "STAFF"


class ProductKind(str, enum.Enum):
    INDIVIDUAL_TICKET = "INDIVIDUAL_TICKET"
    FULL_TABLE = "FULL_TABLE"
    CAPTAIN_COMMITMENT = "CAPTAIN_COMMITMENT"


class ProductTier(str, enum.Enum):
    STANDARD = "STANDARD"
    VIP = "VIP"
    VVIP = "VVIP"


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    AWAITING_PAYMENT = "AWAITING_PAYMENT"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"
    REFUNDED = "REFUNDED"


# Orders in these states hold seats against table capacity
SEAT_HOLDING_STATUSES = (OrderStatus.PENDING, OrderStatus.COMPLETED)


class WaitlistStatus(str, enum.Enum):
    WAITING = "WAITING"
    CONVERTED = "CONVERTED"
    CANCELLED = "CANCELLED"


class DiscountType(str, enum.Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"


class ActivityAction(str, enum.Enum):
    GUEST_ADDED = "GUEST_ADDED"
    GUEST_REMOVED = "GUEST_REMOVED"
    GUEST_UPDATED = "GUEST_UPDATED"
    GUEST_REASSIGNED = "GUEST_REASSIGNED"
    GUEST_CHECKED_IN = "GUEST_CHECKED_IN"
    TICKET_TRANSFERRED = "TICKET_TRANSFERRED"
    TABLE_CREATED = "TABLE_CREATED"
    TABLE_UPDATED = "TABLE_UPDATED"
    TABLE_DELETED = "TABLE_DELETED"
    TABLE_ROLE_ADDED = "TABLE_ROLE_ADDED"
    TABLE_ROLE_REMOVED = "TABLE_ROLE_REMOVED"
    ORDER_CREATED = "ORDER_CREATED"
    ORDER_COMPLETED = "ORDER_COMPLETED"
    ORDER_REFUNDED = "ORDER_REFUNDED"
    ORDER_CANCELLED = "ORDER_CANCELLED"
    ORDER_INVITED = "ORDER_INVITED"
    ORDER_EXPIRED = "ORDER_EXPIRED"
    EVENT_CREATED = "EVENT_CREATED"
    EVENT_UPDATED = "EVENT_UPDATED"
    EVENT_DELETED = "EVENT_DELETED"
    ADMIN_OVERRIDE = "ADMIN_OVERRIDE"
    SHEETS_SYNC = "SHEETS_SYNC"
    WAITLIST_CONVERTED = "WAITLIST_CONVERTED"


class EntityType(str, enum.Enum):
    USER = "USER"
    TABLE = "TABLE"
    GUEST_ASSIGNMENT = "GUEST_ASSIGNMENT"
    ORDER = "ORDER"
    EVENT = "EVENT"
    ORGANIZATION = "ORGANIZATION"
    WAITLIST_ENTRY = "WAITLIST_ENTRY"
