"""
Database models package
"""

from .organization import Organization
from .user import User
from .event import Event, Product
from .table import Table, TableUserRole
from .order import Order
from .guest import GuestAssignment
from .promo_code import PromoCode
from .activity_log import ActivityLog
from .payment_event import PaymentEventLog
from .sequence import ReferenceSequence
from .waitlist import WaitlistEntry

__all__ = [
    "Organization",
    "User",
    "Event",
    "Product",
    "Table",
    "TableUserRole",
    "Order",
    "GuestAssignment",
    "PromoCode",
    "ActivityLog",
    "PaymentEventLog",
    "ReferenceSequence",
    "WaitlistEntry",
]
