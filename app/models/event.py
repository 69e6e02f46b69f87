"""
Event and Product models
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from app.core.db import Base
from app.models.enums import ProductKind, ProductTier

class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(100), nullable=False)
    event_date = Column(DateTime, nullable=False)
    venue_name = Column(String(255))
    is_active = Column(Boolean, default=True, nullable=False)
    tickets_on_sale = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    organization = relationship("Organization", back_populates="events")
    tables = relationship("Table", back_populates="event")
    products = relationship("Product", back_populates="event")

    __table_args__ = (UniqueConstraint("organization_id", "slug", name="uq_event_org_slug"),)


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    kind = Column(Enum(ProductKind), nullable=False)
    tier = Column(Enum(ProductTier), default=ProductTier.STANDARD, nullable=False)
    price_cents = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    event = relationship("Event", back_populates="products")

    __table_args__ = (UniqueConstraint("event_id", "name", name="uq_product_event_name"),)
