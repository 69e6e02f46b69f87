"""
Checkout, invitation and order schemas
"""

from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, EmailStr, Field, model_validator

from app.models.enums import OrderStatus, TableType

class BuyerInfo(BaseModel):
    email: EmailStr
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None

class TableInfo(BaseModel):
    """Details for a table created by the checkout itself"""
    name: str = Field(min_length=1, max_length=255)
    welcome_message: Optional[str] = None

class CheckoutRequest(BaseModel):
    """Public checkout"""
    event_id: int
    product_id: int
    quantity: int = Field(default=1, ge=1)
    order_flow: Literal["individual", "full_table", "captain_commitment"] = "individual"
    buyer: BuyerInfo
    table_id: Optional[int] = None
    table_info: Optional[TableInfo] = None
    promo_code: Optional[str] = None

    class Config:
        extra = "forbid"

    @model_validator(mode="after")
    def check_flow(self):
        if self.order_flow != "individual":
            if self.table_id is not None:
                raise ValueError(f"{self.order_flow} checkout creates its own table")
            if self.table_info is None:
                raise ValueError(f"table_info is required for {self.order_flow} checkout")
        return self

class InvitationCreate(BaseModel):
    """Admin invitation: an order waiting for the invitee to pay"""
    event_id: int
    product_id: int
    email: EmailStr
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    quantity: int = Field(default=1, ge=1)
    table_id: Optional[int] = None
    notes: Optional[str] = None

    class Config:
        extra = "forbid"

class QuantityChange(BaseModel):
    quantity: int = Field(ge=1)

    class Config:
        extra = "forbid"

class StatusNote(BaseModel):
    reason: Optional[str] = None

    class Config:
        extra = "forbid"

class OrderResponse(BaseModel):
    id: int
    event_id: int
    product_id: int
    table_id: Optional[int] = None
    user_id: int
    quantity: int
    amount_cents: int
    discount_cents: int
    status: OrderStatus
    promo_code_id: Optional[int] = None
    gateway_charge_ref: Optional[str] = None
    is_admin_created: bool
    invited_email: Optional[str] = None
    payment_link_expires_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

class PaymentLinkView(BaseModel):
    """What the invitee sees on the payment link page"""
    order_id: int
    status: OrderStatus
    event_name: str
    product_name: str
    quantity: int
    amount_cents: int
    table_name: Optional[str] = None
    table_type: Optional[TableType] = None
    expires_at: Optional[datetime] = None
