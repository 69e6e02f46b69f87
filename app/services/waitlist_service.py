"""
Waitlist for sold-out events.

People join with an email and a seat count. An admin later either cancels
the entry or converts it into an invitation: an AWAITING_PAYMENT order for
the event's individual ticket, paid through the usual payment link.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import InvalidStateTransitionError, ValidationError
from app.models import WaitlistEntry
from app.models.enums import ActivityAction, EntityType, ProductKind, WaitlistStatus
from app.schemas.order import InvitationCreate
from app.services.audit_service import AuditService
from app.services.order_service import OrderService
from app.services.permission_service import Actor, PermissionService
from app.services.repositories import EventRepo, ProductRepo, TableRepo, UserRepo, WaitlistRepo

logger = logging.getLogger(__name__)


class WaitlistService:
    """Service for waitlist entries"""

    @staticmethod
    def join(data, actor: Optional[Actor], db: Session) -> WaitlistEntry:
        event = EventRepo.get(db, data.event_id)
        if data.quantity > settings.MAX_TICKETS_PER_ORDER:
            raise ValidationError(f"At most {settings.MAX_TICKETS_PER_ORDER} seats per waitlist entry")
        if data.table_id is not None and TableRepo.get(db, data.table_id).event_id != event.id:
            raise ValidationError("Table belongs to a different event")

        user = UserRepo.find_or_create(db, str(data.email), first_name=data.first_name, last_name=data.last_name)
        entry = WaitlistEntry(
            event_id=event.id,
            table_id=data.table_id,
            user_id=user.id,
            email=user.email,
            quantity=data.quantity,
            notes=data.notes,
        )
        db.add(entry)
        db.flush()
        logger.info("Waitlist entry %s for event %s (%s seats)", entry.id, event.id, entry.quantity)
        return entry

    @staticmethod
    def list_entries(
        actor: Actor,
        db: Session,
        event_id: Optional[int] = None,
        status: Optional[WaitlistStatus] = None,
    ) -> List[WaitlistEntry]:
        PermissionService.require_admin(actor, "view the waitlist")
        query = db.query(WaitlistEntry)
        if event_id is not None:
            query = query.filter(WaitlistEntry.event_id == event_id)
        if status is not None:
            query = query.filter(WaitlistEntry.status == status)
        return query.order_by(WaitlistEntry.created_at.desc(), WaitlistEntry.id.desc()).all()

    @staticmethod
    def _leave_waiting(entry: WaitlistEntry, target: WaitlistStatus, db: Session, **values) -> None:
        """Conditional status change so an entry is settled only once"""
        updated = (
            db.query(WaitlistEntry)
            .filter(WaitlistEntry.id == entry.id, WaitlistEntry.status == WaitlistStatus.WAITING)
            .update({WaitlistEntry.status: target, **values}, synchronize_session=False)
        )
        db.refresh(entry)
        if not updated:
            raise InvalidStateTransitionError(
                entry.status, target, message=f"Waitlist entry is already {entry.status.value.lower()}",
            )

    @staticmethod
    def cancel(entry_id: int, actor: Actor, db: Session) -> WaitlistEntry:
        PermissionService.require_admin(actor, "cancel waitlist entries")
        entry = WaitlistRepo.get(db, entry_id)
        WaitlistService._leave_waiting(entry, WaitlistStatus.CANCELLED, db)
        AuditService.record(
            entry.event.organization_id,
            ActivityAction.ADMIN_OVERRIDE,
            EntityType.WAITLIST_ENTRY,
            entry.id,
            actor,
            db,
            event_id=entry.event_id,
            details={"operation": "cancel_waitlist_entry", "email": entry.email},
        )
        return entry

    @staticmethod
    def convert(entry_id: int, actor: Actor, db: Session):
        """Turn a waiting entry into an invitation and return the new order"""
        PermissionService.require_admin(actor, "convert waitlist entries")
        entry = WaitlistRepo.get(db, entry_id)
        if entry.status != WaitlistStatus.WAITING:
            raise InvalidStateTransitionError(
                entry.status, WaitlistStatus.CONVERTED, message="Only waiting entries can be converted",
            )

        product = ProductRepo.first_active(db, entry.event_id, ProductKind.INDIVIDUAL_TICKET)
        if product is None:
            raise ValidationError("No individual ticket product is on sale for this event")

        order = OrderService.create_invitation(
            InvitationCreate(
                event_id=entry.event_id,
                product_id=product.id,
                email=entry.email,
                quantity=entry.quantity,
                table_id=entry.table_id,
                notes=f"Converted from waitlist entry {entry.id}",
            ),
            actor,
            db,
        )
        WaitlistService._leave_waiting(entry, WaitlistStatus.CONVERTED, db, converted_order_id=order.id)
        AuditService.record(
            entry.event.organization_id,
            ActivityAction.WAITLIST_CONVERTED,
            EntityType.WAITLIST_ENTRY,
            entry.id,
            actor,
            db,
            event_id=entry.event_id,
            details={"email": entry.email, "quantity": entry.quantity, "order_id": order.id},
        )
        return order
