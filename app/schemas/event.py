"""
Organization, event, product and promo code schemas
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from app.models.enums import DiscountType, ProductKind, ProductTier

class OrganizationCreate(BaseModel):
    """Schema for creating an organization"""
    name: str = Field(min_length=1, max_length=255)
    slug: str = Field(min_length=1, max_length=100, pattern=r"^[a-z0-9-]+$")

class OrganizationResponse(BaseModel):
    id: int
    name: str
    slug: str

    class Config:
        from_attributes = True

class EventCreate(BaseModel):
    """Schema for creating an event"""
    organization_id: int
    name: str = Field(min_length=1, max_length=255)
    slug: str = Field(min_length=1, max_length=100, pattern=r"^[a-z0-9-]+$")
    event_date: datetime
    venue_name: Optional[str] = None
    tickets_on_sale: bool = False

    class Config:
        extra = "forbid"

class EventUpdate(BaseModel):
    """Administrative fields; date changes are refused once guests exist"""
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    venue_name: Optional[str] = None
    event_date: Optional[datetime] = None
    is_active: Optional[bool] = None
    tickets_on_sale: Optional[bool] = None

    class Config:
        extra = "forbid"

class EventResponse(BaseModel):
    """Basic event response"""
    id: int
    organization_id: int
    name: str
    slug: str
    event_date: datetime
    venue_name: Optional[str] = None
    is_active: bool
    tickets_on_sale: bool
    created_at: datetime

    class Config:
        from_attributes = True

class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    kind: ProductKind
    tier: ProductTier = ProductTier.STANDARD
    price_cents: int = Field(ge=0)

    class Config:
        extra = "forbid"

class ProductResponse(BaseModel):
    id: int
    event_id: int
    name: str
    kind: ProductKind
    tier: ProductTier
    price_cents: int
    is_active: bool

    class Config:
        from_attributes = True

class PromoCodeCreate(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    discount_type: DiscountType
    discount_value: int = Field(ge=0)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    max_uses: Optional[int] = Field(default=None, ge=1)

    class Config:
        extra = "forbid"

class PromoCodeResponse(BaseModel):
    id: int
    event_id: int
    code: str
    discount_type: DiscountType
    discount_value: int
    valid_from: datetime
    valid_until: Optional[datetime] = None
    max_uses: Optional[int] = None
    current_uses: int
    is_active: bool

    class Config:
        from_attributes = True
