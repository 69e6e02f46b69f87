"""
Guest assignment model
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import relationship

from app.core.db import Base
from app.models.enums import ProductTier

class GuestAssignment(Base):
    __tablename__ = "guest_assignments"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False)
    table_id = Column(Integer, ForeignKey("tables.id"), index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    display_name = Column(String(255))
    dietary = Column(JSON, default=list)  # e.g. ["vegetarian", "nut allergy"]
    bidder_number = Column(String(50))
    auction_registered = Column(Boolean, default=False, nullable=False)
    tier = Column(Enum(ProductTier), default=ProductTier.STANDARD, nullable=False)
    reference_code = Column(String(20), nullable=False)
    checked_in_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    event = relationship("Event")
    table = relationship("Table")
    order = relationship("Order", back_populates="assignments")
    user = relationship("User")

    __table_args__ = (
        UniqueConstraint("event_id", "table_id", "user_id", name="uq_assignment_event_table_user"),
        UniqueConstraint("organization_id", "reference_code", name="uq_assignment_org_reference"),
    )
