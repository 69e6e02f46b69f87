"""
Waitlist model
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship

from app.core.db import Base
from app.models.enums import WaitlistStatus

class WaitlistEntry(Base):
    __tablename__ = "waitlist_entries"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    table_id = Column(Integer, ForeignKey("tables.id"), index=True)  # preferred table, if any
    user_id = Column(Integer, ForeignKey("users.id"), index=True)
    email = Column(String(255), nullable=False)
    quantity = Column(Integer, default=1, nullable=False)
    status = Column(Enum(WaitlistStatus), default=WaitlistStatus.WAITING, nullable=False, index=True)
    notes = Column(Text)
    converted_order_id = Column(Integer, ForeignKey("orders.id"))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    event = relationship("Event")
    table = relationship("Table")
    user = relationship("User")
    converted_order = relationship("Order")
