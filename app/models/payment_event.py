"""
Gateway event log, used to make webhook processing idempotent
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, JSON

from app.core.db import Base

class PaymentEventLog(Base):
    __tablename__ = "payment_event_logs"

    id = Column(Integer, primary_key=True, index=True)
    gateway_event_id = Column(String(255), unique=True, nullable=False, index=True)
    event_type = Column(String(100), nullable=False)
    charge_ref = Column(String(255))
    payload = Column(JSON)
    processed = Column(Boolean, default=False, nullable=False)
    processed_at = Column(DateTime)
    error_message = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
