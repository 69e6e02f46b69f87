"""
Seat capacity allocation.

A table's capacity is consumed by the quantity of every PENDING or COMPLETED
order on it. Guests seated at a table without an active order there (moved
in by an admin, or left behind by a refunded order) occupy a seat as well
and are counted as "borrowed". Every reservation re-reads these figures under
the table's row lock, in the same transaction that writes the consuming order.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.core.errors import CapacityExceededError, NotFoundError, ValidationError
from app.models import GuestAssignment, Order, Table
from app.models.enums import SEAT_HOLDING_STATUSES, TableStatus

logger = logging.getLogger(__name__)


def lock_row(model, row_id: int, resource: str, db: Session):
    """Take the write lock on one row and return it freshly loaded.

    The UPDATE of ``lock_version`` acquires the lock on every backend; on
    databases that support it ``FOR UPDATE`` is requested as well. Concurrent
    callers queue on the lock and then see the committed state of the winner.
    """
    updated = (
        db.query(model)
        .filter(model.id == row_id)
        .update({model.lock_version: model.lock_version + 1}, synchronize_session=False)
    )
    if not updated:
        raise NotFoundError(resource, row_id)
    return db.query(model).filter(model.id == row_id).with_for_update().populate_existing().one()


class CapacityService:
    """Service for seat availability and reservations"""

    @staticmethod
    def reserved_seats(table_id: int, db: Session, exclude_order_id: Optional[int] = None) -> int:
        """Seats held by PENDING and COMPLETED orders on a table"""
        query = db.query(func.coalesce(func.sum(Order.quantity), 0)).filter(
            Order.table_id == table_id,
            Order.status.in_(SEAT_HOLDING_STATUSES),
        )
        if exclude_order_id is not None:
            query = query.filter(Order.id != exclude_order_id)
        return int(query.scalar() or 0)

    @staticmethod
    def borrowed_seats(table_id: int, db: Session) -> int:
        """Guests seated at a table whose order does not hold a seat there"""
        uncovered = or_(
            Order.table_id.is_(None),
            Order.table_id != table_id,
            Order.status.notin_(SEAT_HOLDING_STATUSES),
        )
        return (
            db.query(func.count(GuestAssignment.id))
            .join(Order, GuestAssignment.order_id == Order.id)
            .filter(GuestAssignment.table_id == table_id, uncovered)
            .scalar()
        ) or 0

    @staticmethod
    def available_seats(table: Table, db: Session) -> int:
        taken = CapacityService.reserved_seats(table.id, db) + CapacityService.borrowed_seats(table.id, db)
        return max(0, table.capacity - taken)

    @staticmethod
    def assigned_count(order_id: int, db: Session) -> int:
        return db.query(func.count(GuestAssignment.id)).filter(GuestAssignment.order_id == order_id).scalar() or 0

    @staticmethod
    def placeholder_seats(order: Order, db: Session) -> int:
        """Seats paid for on an order but not yet named"""
        return order.quantity - CapacityService.assigned_count(order.id, db)

    @staticmethod
    def lock_table(table_id: int, db: Session) -> Table:
        return lock_row(Table, table_id, "Table", db)

    @staticmethod
    def lock_order(order_id: int, db: Session) -> Order:
        return lock_row(Order, order_id, "Order", db)

    @staticmethod
    def reserve_seats(table_id: int, seats: int, db: Session) -> Table:
        """Lock a table and make sure ``seats`` more can be taken.

        The caller must write the consuming order (or assignment) before its
        transaction commits; the lock is held until then.
        """
        if seats < 1:
            raise ValidationError("Seat count must be at least 1")

        table = CapacityService.lock_table(table_id, db)
        if table.status != TableStatus.ACTIVE:
            raise ValidationError(f"Table is {table.status.value.lower()} and cannot take reservations")

        available = CapacityService.available_seats(table, db)
        if seats > available:
            logger.warning(
                "Capacity exceeded on table %s: requested %s, available %s",
                table.id, seats, available,
            )
            raise CapacityExceededError(seats, available)
        return table

    @staticmethod
    def table_summary(table: Table, db: Session, include_guests: bool = True) -> Dict[str, Any]:
        """Seat accounting for one table"""
        reserved = CapacityService.reserved_seats(table.id, db)
        borrowed = CapacityService.borrowed_seats(table.id, db)

        orders = db.query(Order).filter(
            Order.table_id == table.id,
            Order.status.in_(SEAT_HOLDING_STATUSES),
        ).all()
        placeholders = sum(max(0, CapacityService.placeholder_seats(order, db)) for order in orders)

        guests = db.query(GuestAssignment).filter(
            GuestAssignment.table_id == table.id
        ).order_by(GuestAssignment.reference_code).all()

        summary = {
            "table_id": table.id,
            "name": table.name,
            "reference_code": table.reference_code,
            "table_number": table.table_number,
            "type": table.type.value,
            "status": table.status.value,
            "capacity": table.capacity,
            "reserved": reserved,
            "borrowed": borrowed,
            "available": max(0, table.capacity - reserved - borrowed),
            "assigned": len(guests),
            "placeholders": placeholders,
            "checked_in": sum(1 for guest in guests if guest.checked_in_at),
        }

        if include_guests:
            summary["guests"] = [
                {
                    "id": guest.id,
                    "reference_code": guest.reference_code,
                    "display_name": guest.display_name,
                    "dietary": guest.dietary or [],
                    "tier": guest.tier.value,
                    "checked_in": guest.checked_in_at is not None,
                }
                for guest in guests
            ]
        return summary

    @staticmethod
    def event_summary(event_id: int, db: Session) -> List[Dict[str, Any]]:
        tables = db.query(Table).filter(
            Table.event_id == event_id,
            Table.status != TableStatus.ARCHIVED,
        ).order_by(Table.reference_code).all()
        return [CapacityService.table_summary(table, db, include_guests=False) for table in tables]
