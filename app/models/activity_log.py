"""
Activity log model (append-only)
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Enum, ForeignKey, JSON

from app.core.db import Base
from app.models.enums import ActivityAction, EntityType

class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    event_id = Column(Integer, index=True)  # survives event deletion
    actor_id = Column(String(100))  # None for system actions
    action = Column(Enum(ActivityAction), nullable=False)
    entity_type = Column(Enum(EntityType), nullable=False)
    entity_id = Column(Integer)
    details = Column("metadata", JSON, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
