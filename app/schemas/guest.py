"""
Guest assignment schemas
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, EmailStr, Field

from app.models.enums import ProductTier
from app.schemas.common import PersonRef

class AddGuestRequest(BaseModel):
    """Name a placeholder seat on an order"""
    order_id: int
    person: PersonRef
    table_id: Optional[int] = None
    display_name: Optional[str] = Field(default=None, max_length=255)
    dietary: Optional[List[str]] = None

    class Config:
        extra = "forbid"

class GuestUpdate(BaseModel):
    """Editable guest fields. Unknown fields are rejected."""
    display_name: Optional[str] = Field(default=None, max_length=255)
    dietary: Optional[List[str]] = None
    auction_registered: Optional[bool] = None
    bidder_number: Optional[str] = Field(default=None, max_length=50)

    class Config:
        extra = "forbid"

class ReassignRequest(BaseModel):
    """Move a guest to another table, or off any table with ``None``"""
    table_id: Optional[int] = None

    class Config:
        extra = "forbid"

class BulkAssignRequest(BaseModel):
    """Move several guests of one event to a table, or off any table with ``None``"""
    guest_ids: List[int] = Field(min_length=1)
    table_id: Optional[int] = None

    class Config:
        extra = "forbid"

class TransferRequest(BaseModel):
    person: PersonRef
    transfer_details: bool = False

    class Config:
        extra = "forbid"

class ClaimSeatRequest(BaseModel):
    """Self-service naming of a placeholder seat on a prepaid table"""
    email: EmailStr
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    display_name: Optional[str] = None
    dietary: Optional[List[str]] = None

    class Config:
        extra = "forbid"

class GuestResponse(BaseModel):
    """Guest response schema"""
    id: int
    event_id: int
    table_id: Optional[int] = None
    order_id: int
    user_id: int
    reference_code: str
    display_name: Optional[str] = None
    dietary: Optional[List[str]] = None
    bidder_number: Optional[str] = None
    auction_registered: bool
    tier: ProductTier
    checked_in_at: Optional[datetime] = None

    class Config:
        from_attributes = True
