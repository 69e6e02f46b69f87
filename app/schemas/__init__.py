"""
Pydantic schemas package
"""

from .common import *
from .event import *
from .guest import *
from .order import *
from .table import *
from .waitlist import *
__all__ = [
    "StandardResponse",
    "ErrorResponse",
    "PersonRef",
    "OrganizationCreate",
    "OrganizationResponse",
    "EventCreate",
    "EventUpdate",
    "EventResponse",
    "ProductCreate",
    "ProductResponse",
    "PromoCodeCreate",
    "PromoCodeResponse",
    "TableCreate",
    "TableUpdate",
    "TableResponse",
    "RoleGrant",
    "RoleResponse",
    "BuyerInfo",
    "TableInfo",
    "CheckoutRequest",
    "InvitationCreate",
    "QuantityChange",
    "StatusNote",
    "OrderResponse",
    "PaymentLinkView",
    "AddGuestRequest",
    "GuestUpdate",
    "ReassignRequest",
    "BulkAssignRequest",
    "TransferRequest",
    "ClaimSeatRequest",
    "GuestResponse",
    "WaitlistJoin",
    "WaitlistResponse",
]
