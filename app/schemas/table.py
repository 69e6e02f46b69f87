"""
Table and role schemas
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from app.models.enums import TableRole, TableStatus, TableType
from app.schemas.common import PersonRef

class TableCreate(BaseModel):
    """Admin-created table"""
    event_id: int
    owner: PersonRef
    name: str = Field(min_length=1, max_length=255)
    type: TableType
    capacity: Optional[int] = Field(default=None, ge=1)
    seat_price_cents: Optional[int] = Field(default=None, ge=0)
    custom_total_price_cents: Optional[int] = Field(default=None, ge=0)
    welcome_message: Optional[str] = None
    internal_name: Optional[str] = None

    class Config:
        extra = "forbid"

class TableUpdate(BaseModel):
    """Host-editable fields; capacity, prices and status need an admin"""
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    welcome_message: Optional[str] = None
    internal_name: Optional[str] = None
    capacity: Optional[int] = Field(default=None, ge=1)
    seat_price_cents: Optional[int] = Field(default=None, ge=0)
    custom_total_price_cents: Optional[int] = Field(default=None, ge=0)
    status: Optional[TableStatus] = None
    table_number: Optional[str] = None

    class Config:
        extra = "forbid"

class RoleGrant(BaseModel):
    person: PersonRef
    role: TableRole

    class Config:
        extra = "forbid"

class TableResponse(BaseModel):
    id: int
    event_id: int
    primary_owner_id: int
    name: str
    slug: str
    type: TableType
    status: TableStatus
    capacity: int
    seat_price_cents: Optional[int] = None
    custom_total_price_cents: Optional[int] = None
    reference_code: str
    table_number: Optional[str] = None
    welcome_message: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

class RoleResponse(BaseModel):
    table_id: int
    user_id: int
    role: TableRole

    class Config:
        from_attributes = True
