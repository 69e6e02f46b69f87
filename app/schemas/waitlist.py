"""
Waitlist schemas
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, EmailStr, Field

from app.models.enums import WaitlistStatus

class WaitlistJoin(BaseModel):
    """Ask to be offered seats once some free up"""
    event_id: int
    email: EmailStr
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    quantity: int = Field(default=1, ge=1)
    table_id: Optional[int] = None
    notes: Optional[str] = Field(default=None, max_length=1000)

    class Config:
        extra = "forbid"

class WaitlistResponse(BaseModel):
    id: int
    event_id: int
    table_id: Optional[int] = None
    email: str
    quantity: int
    status: WaitlistStatus
    notes: Optional[str] = None
    converted_order_id: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True
