"""
Append-only activity log
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.models import ActivityLog
from app.models.enums import ActivityAction, EntityType

logger = logging.getLogger(__name__)


class AuditService:
    """Records every mutation in the caller's transaction"""

    @staticmethod
    def record(
        organization_id: int,
        action: ActivityAction,
        entity_type: EntityType,
        entity_id: Optional[int],
        actor,
        db: Session,
        event_id: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> ActivityLog:
        """Add a log row; it commits or rolls back with the surrounding work"""
        entry = ActivityLog(
            organization_id=organization_id,
            event_id=event_id,
            actor_id=actor.id if actor is not None else None,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details or {},
        )
        db.add(entry)
        logger.info(
            "%s %s:%s by %s",
            action.value,
            entity_type.value,
            entity_id,
            entry.actor_id or "system",
        )
        return entry

    @staticmethod
    def list_activity(
        organization_id: int,
        db: Session,
        event_id: Optional[int] = None,
        entity_type: Optional[EntityType] = None,
        entity_id: Optional[int] = None,
        limit: int = 100,
    ) -> List[ActivityLog]:
        query = db.query(ActivityLog).filter(ActivityLog.organization_id == organization_id)
        if event_id is not None:
            query = query.filter(ActivityLog.event_id == event_id)
        if entity_type is not None:
            query = query.filter(ActivityLog.entity_type == entity_type)
        if entity_id is not None:
            query = query.filter(ActivityLog.entity_id == entity_id)
        return query.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc()).limit(limit).all()
