"""
Guest assignment manager.

A guest assignment names one paid seat of a COMPLETED order. Orders may
have fewer assignments than seats; the difference are placeholder seats that
hosts, captains and the guests themselves fill in later.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.db import utcnow
from app.core.errors import (
    CapacityExceededError,
    DuplicateAssignmentError,
    NoAvailableSeatError,
    NotFoundError,
    OrderNotCompletedError,
    PaymentNotRefundedError,
    PermissionDeniedError,
    ValidationError,
)
from app.models import GuestAssignment, Order, Table, User
from app.models.enums import (
    ActivityAction,
    EntityType,
    OrderStatus,
    SEAT_HOLDING_STATUSES,
    TableStatus,
    TableType,
)
from app.services.audit_service import AuditService
from app.services.capacity_service import CapacityService
from app.services.permission_service import Actor, Capability, PermissionService
from app.services.reference_codes import ReferenceCodeService
from app.services.repositories import GuestRepo, OrderRepo, TableRepo, UserRepo

logger = logging.getLogger(__name__)


class GuestService:
    """Service for naming, moving and removing seat occupants"""

    @staticmethod
    def create_assignment(
        order: Order,
        table_id: Optional[int],
        user: User,
        actor: Optional[Actor],
        db: Session,
        display_name: Optional[str] = None,
        dietary: Optional[List[str]] = None,
        via: Optional[str] = None,
    ) -> GuestAssignment:
        """Insert an assignment for a placeholder seat.

        The caller holds the order's lock and has checked permissions,
        order status and placeholder count.
        """
        if GuestRepo.find_seat(db, order.event_id, table_id, user.id):
            raise DuplicateAssignmentError(user.id, table_id)

        organization_id = order.event.organization_id
        assignment = GuestAssignment(
            event_id=order.event_id,
            organization_id=organization_id,
            table_id=table_id,
            order_id=order.id,
            user_id=user.id,
            display_name=display_name or user.full_name,
            dietary=dietary or [],
            tier=order.product.tier,
            reference_code=ReferenceCodeService.next_guest_code(organization_id, db),
        )
        db.add(assignment)
        db.flush()

        details: Dict[str, Any] = {
            "order_id": order.id,
            "table_id": table_id,
            "user_id": user.id,
            "reference_code": assignment.reference_code,
        }
        if via:
            details["via"] = via
        AuditService.record(
            organization_id,
            ActivityAction.GUEST_ADDED,
            EntityType.GUEST_ASSIGNMENT,
            assignment.id,
            actor,
            db,
            event_id=order.event_id,
            details=details,
        )
        return assignment

    @staticmethod
    def add_guest(
        order_id: int,
        person,
        actor: Actor,
        db: Session,
        table_id: Optional[int] = None,
        display_name: Optional[str] = None,
        dietary: Optional[List[str]] = None,
    ) -> GuestAssignment:
        """Name a placeholder seat on an order.

        ``table_id`` defaults to the order's own table. Seating a guest at a
        different table is an admin move and takes a free seat there.
        """
        order = CapacityService.lock_order(order_id, db)
        target_table_id = table_id if table_id is not None else order.table_id

        if target_table_id is not None:
            table = TableRepo.get(db, target_table_id)
            if table.event_id != order.event_id:
                raise ValidationError("Table belongs to a different event")
            PermissionService.require(table, actor, Capability.ADD_GUEST, db)
        elif not (actor.is_admin or actor.self_id == order.user_id):
            raise PermissionDeniedError(Capability.ADD_GUEST.value)

        if order.status != OrderStatus.COMPLETED:
            raise OrderNotCompletedError(order.status)
        if CapacityService.placeholder_seats(order, db) <= 0:
            raise NoAvailableSeatError(order.id)

        if target_table_id != order.table_id:
            PermissionService.require_admin(actor, "seat a guest away from the order's table")
            if target_table_id is not None:
                CapacityService.reserve_seats(target_table_id, 1, db)

        user = UserRepo.resolve_person(db, person)
        return GuestService.create_assignment(
            order, target_table_id, user, actor, db,
            display_name=display_name, dietary=dietary,
        )

    @staticmethod
    def update_guest(assignment_id: int, update, actor: Actor, db: Session) -> GuestAssignment:
        """Apply a ``GuestUpdate``; only fields that were sent are touched"""
        assignment = GuestRepo.get(db, assignment_id)
        fields = update.model_dump(exclude_unset=True)
        if not fields:
            return assignment

        PermissionService.require_edit_guest(assignment, fields.keys(), actor, db)

        if "dietary" in fields and fields["dietary"] is None:
            fields["dietary"] = []
        if "auction_registered" in fields and fields["auction_registered"] is None:
            raise ValidationError("auction_registered cannot be null")
        for field, value in fields.items():
            setattr(assignment, field, value)

        AuditService.record(
            assignment.organization_id,
            ActivityAction.GUEST_UPDATED,
            EntityType.GUEST_ASSIGNMENT,
            assignment.id,
            actor,
            db,
            event_id=assignment.event_id,
            details={"fields": sorted(fields)},
        )
        return assignment

    @staticmethod
    def remove_guest(assignment_id: int, actor: Actor, db: Session) -> None:
        """Delete an assignment. The order keeps its quantity and amount."""
        assignment = GuestRepo.get(db, assignment_id)
        PermissionService.require_remove_guest(assignment, actor, db)

        order = assignment.order
        paid_seat = order.status == OrderStatus.COMPLETED and order.amount_cents > 0
        if paid_seat and not actor.is_admin:
            logger.warning("Refusing to remove paid guest %s without refund", assignment.reference_code)
            raise PaymentNotRefundedError(order.id)

        details = {
            "order_id": order.id,
            "table_id": assignment.table_id,
            "user_id": assignment.user_id,
            "reference_code": assignment.reference_code,
        }
        organization_id, event_id, entity_id = assignment.organization_id, assignment.event_id, assignment.id
        db.delete(assignment)
        db.flush()

        if paid_seat:
            AuditService.record(
                organization_id, ActivityAction.ADMIN_OVERRIDE, EntityType.GUEST_ASSIGNMENT,
                entity_id, actor, db, event_id=event_id,
                details={"operation": "remove_paid_guest", **details},
            )
        AuditService.record(
            organization_id, ActivityAction.GUEST_REMOVED, EntityType.GUEST_ASSIGNMENT,
            entity_id, actor, db, event_id=event_id, details=details,
        )

    @staticmethod
    def reassign_guest(assignment_id: int, new_table_id: Optional[int], actor: Actor, db: Session) -> GuestAssignment:
        """Move a guest to another table of the same event (admin only)"""
        PermissionService.require_admin(actor, "move guests between tables")

        assignment = GuestRepo.get(db, assignment_id)
        if new_table_id == assignment.table_id:
            return assignment

        if new_table_id is not None:
            order = assignment.order
            returning_home = order.table_id == new_table_id and order.status in SEAT_HOLDING_STATUSES
            if returning_home:
                # The order already holds a seat for this guest there
                table = CapacityService.lock_table(new_table_id, db)
                if table.status != TableStatus.ACTIVE:
                    raise ValidationError("Target table is not active")
            else:
                table = CapacityService.reserve_seats(new_table_id, 1, db)
            if table.event_id != assignment.event_id:
                raise ValidationError("Target table belongs to a different event")

        if GuestRepo.find_seat(db, assignment.event_id, new_table_id, assignment.user_id):
            raise DuplicateAssignmentError(assignment.user_id, new_table_id)

        previous_table_id = assignment.table_id
        assignment.table_id = new_table_id
        db.flush()

        AuditService.record(
            assignment.organization_id,
            ActivityAction.GUEST_REASSIGNED,
            EntityType.GUEST_ASSIGNMENT,
            assignment.id,
            actor,
            db,
            event_id=assignment.event_id,
            details={"from_table_id": previous_table_id, "to_table_id": new_table_id},
        )
        return assignment

    @staticmethod
    def bulk_reassign(
        guest_ids: List[int], new_table_id: Optional[int], actor: Actor, db: Session,
    ) -> List[GuestAssignment]:
        """Move several guests of one event to a table, or off any table (admin only).

        The target table must have a free seat for every incoming guest;
        otherwise nothing moves.
        """
        PermissionService.require_admin(actor, "move guests between tables")
        ids = list(dict.fromkeys(guest_ids))
        if not ids:
            raise ValidationError("No guests given")

        assignments = db.query(GuestAssignment).filter(GuestAssignment.id.in_(ids)).all()
        if len(assignments) != len(ids):
            found = {assignment.id for assignment in assignments}
            raise NotFoundError("Guest", [guest_id for guest_id in ids if guest_id not in found])

        event_ids = {assignment.event_id for assignment in assignments}
        if len(event_ids) > 1:
            raise ValidationError("All guests must belong to the same event", details={"event_ids": sorted(event_ids)})

        if new_table_id is not None:
            table = CapacityService.lock_table(new_table_id, db)
            if table.event_id not in event_ids:
                raise ValidationError("Target table belongs to a different event")
            if table.status != TableStatus.ACTIVE:
                raise ValidationError("Target table is not active")
            incoming = [
                assignment for assignment in assignments
                if assignment.table_id != new_table_id
                and not (assignment.order.table_id == new_table_id and assignment.order.status in SEAT_HOLDING_STATUSES)
            ]
            available = CapacityService.available_seats(table, db)
            if len(incoming) > available:
                raise CapacityExceededError(len(incoming), available)

        moved = [GuestService.reassign_guest(guest_id, new_table_id, actor, db) for guest_id in ids]
        logger.info("Moved %s guests to table %s", len(moved), new_table_id)
        return moved

    @staticmethod
    def transfer_ticket(
        assignment_id: int,
        person,
        actor: Actor,
        db: Session,
        transfer_details: bool = False,
    ) -> GuestAssignment:
        """Hand a seat to someone else, keeping the order and reference code"""
        assignment = GuestRepo.get(db, assignment_id)
        if not PermissionService.can_transfer(assignment, actor, db):
            logger.warning("Transfer of %s denied for %s", assignment.reference_code, actor.id)
            raise PermissionDeniedError("transfer_ticket")

        new_user = UserRepo.resolve_person(db, person)
        if new_user.id == assignment.user_id:
            raise ValidationError("Ticket already belongs to this person")
        if GuestRepo.find_seat(db, assignment.event_id, assignment.table_id, new_user.id):
            raise DuplicateAssignmentError(new_user.id, assignment.table_id)

        previous_user_id = assignment.user_id
        assignment.user_id = new_user.id
        if not transfer_details:
            assignment.display_name = new_user.full_name
            assignment.dietary = []
            assignment.bidder_number = None
            assignment.auction_registered = False
            assignment.checked_in_at = None
        db.flush()

        AuditService.record(
            assignment.organization_id,
            ActivityAction.TICKET_TRANSFERRED,
            EntityType.GUEST_ASSIGNMENT,
            assignment.id,
            actor,
            db,
            event_id=assignment.event_id,
            details={
                "from_user_id": previous_user_id,
                "to_user_id": new_user.id,
                "reference_code": assignment.reference_code,
                "transfer_details": transfer_details,
            },
        )
        return assignment

    @staticmethod
    def claim_seat(table_id: int, request, actor: Optional[Actor], db: Session) -> GuestAssignment:
        """Let anyone holding a prepaid table's link name themselves into a free seat"""
        table = TableRepo.get(db, table_id)
        if table.type != TableType.PREPAID:
            raise ValidationError("Seats can only be claimed on prepaid tables")
        if table.status != TableStatus.ACTIVE:
            raise ValidationError("Table is not accepting guests")

        candidates = db.query(Order.id).filter(
            Order.table_id == table.id,
            Order.status == OrderStatus.COMPLETED,
        ).order_by(Order.id).all()

        order = None
        for (candidate_id,) in candidates:
            locked = CapacityService.lock_order(candidate_id, db)
            if locked.status == OrderStatus.COMPLETED and CapacityService.placeholder_seats(locked, db) > 0:
                order = locked
                break
        if order is None:
            raise NoAvailableSeatError(candidates[0][0] if candidates else 0)

        user = UserRepo.find_or_create(
            db, str(request.email), first_name=request.first_name, last_name=request.last_name,
        )
        return GuestService.create_assignment(
            order, table.id, user, actor, db,
            display_name=request.display_name, dietary=request.dietary, via="claim_seat",
        )

    @staticmethod
    def check_in(assignment_id: int, actor: Actor, db: Session) -> Dict[str, Any]:
        """Mark a guest as arrived; checking in twice is harmless"""
        assignment = GuestRepo.get(db, assignment_id)
        if assignment.table is not None:
            PermissionService.require(assignment.table, actor, Capability.EDIT_GUEST, db)
        else:
            PermissionService.require_admin(actor, "check in unseated guests")

        was_checked_in = assignment.checked_in_at is not None
        if not was_checked_in:
            assignment.checked_in_at = utcnow()
            db.flush()
            AuditService.record(
                assignment.organization_id,
                ActivityAction.GUEST_CHECKED_IN,
                EntityType.GUEST_ASSIGNMENT,
                assignment.id,
                actor,
                db,
                event_id=assignment.event_id,
                details={"reference_code": assignment.reference_code},
            )
        return {"guest": assignment, "was_already_checked_in": was_checked_in}

    @staticmethod
    def check_in_by_reference(organization_id: int, reference_code: str, actor: Actor, db: Session) -> Dict[str, Any]:
        assignment = GuestRepo.get_by_reference(db, organization_id, reference_code)
        return GuestService.check_in(assignment.id, actor, db)

    @staticmethod
    def get_guest(assignment_id: int, actor: Actor, db: Session) -> GuestAssignment:
        assignment = GuestRepo.get(db, assignment_id)
        if not PermissionService.can_view_guest(assignment, actor, db):
            raise PermissionDeniedError(Capability.VIEW.value)
        return assignment

    @staticmethod
    def list_order_guests(order_id: int, actor: Actor, db: Session) -> List[GuestAssignment]:
        order = OrderRepo.get(db, order_id)
        allowed = actor.is_admin or actor.self_id == order.user_id
        if not allowed and order.table is not None:
            allowed = PermissionService.can(order.table, actor, Capability.VIEW, db)
        if not allowed:
            raise PermissionDeniedError(Capability.VIEW.value)
        return GuestRepo.list_for_order(db, order.id)

    @staticmethod
    def list_table_guests(table: Table, actor: Actor, db: Session) -> List[GuestAssignment]:
        PermissionService.require(table, actor, Capability.VIEW, db)
        return db.query(GuestAssignment).filter(
            GuestAssignment.table_id == table.id
        ).order_by(GuestAssignment.reference_code).all()
