"""
Order model
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship

from app.core.db import Base
from app.models.enums import OrderStatus

class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    table_id = Column(Integer, ForeignKey("tables.id"), index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    amount_cents = Column(Integer, nullable=False)
    discount_cents = Column(Integer, default=0, nullable=False)
    status = Column(Enum(OrderStatus), default=OrderStatus.PENDING, nullable=False, index=True)
    promo_code_id = Column(Integer, ForeignKey("promo_codes.id"))
    gateway_charge_ref = Column(String(255), unique=True)
    is_admin_created = Column(Boolean, default=False, nullable=False)
    invited_email = Column(String(255))
    payment_link_token = Column(String(64), unique=True, index=True)
    payment_link_expires_at = Column(DateTime)
    notes = Column(Text)
    lock_version = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    event = relationship("Event")
    product = relationship("Product")
    table = relationship("Table")
    user = relationship("User")
    promo_code = relationship("PromoCode")
    assignments = relationship("GuestAssignment", back_populates="order")
