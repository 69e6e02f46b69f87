"""
Table administration: creation, edits, archival and role grants
"""

import logging
import re
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import CapacityExceededError, NotFoundError, ValidationError
from app.models import Event, Order, Table, TableUserRole, User
from app.models.enums import ActivityAction, EntityType, OrderStatus, TableRole, TableStatus, TableType
from app.services.audit_service import AuditService
from app.services.capacity_service import CapacityService
from app.services.permission_service import Actor, Capability, PermissionService
from app.services.reference_codes import ReferenceCodeService
from app.services.repositories import EventRepo, TableRepo, UserRepo

logger = logging.getLogger(__name__)

# Orders in these states keep a table from being deleted
OPEN_ORDER_STATUSES = (OrderStatus.PENDING, OrderStatus.AWAITING_PAYMENT, OrderStatus.COMPLETED)

# Only admins may change these
ADMIN_TABLE_FIELDS = frozenset({
    "capacity", "seat_price_cents", "custom_total_price_cents", "status", "table_number",
})


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug or "table"


class TableService:
    """Service for table lifecycle and role management"""

    @staticmethod
    def unique_slug(event_id: int, name: str, db: Session) -> str:
        base = slugify(name)[:100]
        slug, suffix = base, 2
        while TableRepo.slug_taken(db, event_id, slug):
            slug = f"{base}-{suffix}"
            suffix += 1
        return slug

    @staticmethod
    def create_table(
        event: Event,
        owner: User,
        name: str,
        table_type: TableType,
        actor: Optional[Actor],
        db: Session,
        capacity: Optional[int] = None,
        seat_price_cents: Optional[int] = None,
        custom_total_price_cents: Optional[int] = None,
        welcome_message: Optional[str] = None,
        internal_name: Optional[str] = None,
    ) -> Table:
        """Create a table owned by ``owner``.

        Pay-as-you-go tables also get an explicit CAPTAIN grant for the owner.
        """
        capacity = capacity or settings.DEFAULT_TABLE_CAPACITY
        if capacity < 1:
            raise ValidationError("Capacity must be at least 1")

        table = Table(
            event_id=event.id,
            primary_owner_id=owner.id,
            name=name.strip(),
            slug=TableService.unique_slug(event.id, name, db),
            type=table_type,
            status=TableStatus.ACTIVE,
            capacity=capacity,
            seat_price_cents=seat_price_cents,
            custom_total_price_cents=custom_total_price_cents,
            reference_code=ReferenceCodeService.next_table_code(event.id, event.event_date, db),
            welcome_message=welcome_message,
            internal_name=internal_name,
        )
        db.add(table)
        db.flush()

        if table_type == TableType.CAPTAIN_PAYG:
            db.add(TableUserRole(table_id=table.id, user_id=owner.id, role=TableRole.CAPTAIN))
            db.flush()

        AuditService.record(
            event.organization_id,
            ActivityAction.TABLE_CREATED,
            EntityType.TABLE,
            table.id,
            actor,
            db,
            event_id=event.id,
            details={"reference_code": table.reference_code, "type": table_type.value, "capacity": capacity},
        )
        return table

    @staticmethod
    def admin_create_table(data, actor: Actor, db: Session) -> Table:
        PermissionService.require_admin(actor, "create tables")
        event = EventRepo.get(db, data.event_id)
        owner = UserRepo.resolve_person(db, data.owner)
        return TableService.create_table(
            event,
            owner,
            data.name,
            data.type,
            actor,
            db,
            capacity=data.capacity,
            seat_price_cents=data.seat_price_cents,
            custom_total_price_cents=data.custom_total_price_cents,
            welcome_message=data.welcome_message,
            internal_name=data.internal_name,
        )

    @staticmethod
    def get_summary(table_id: int, actor: Actor, db: Session) -> Dict[str, Any]:
        table = TableRepo.get(db, table_id)
        PermissionService.require(table, actor, Capability.VIEW, db)
        return CapacityService.table_summary(table, db)

    @staticmethod
    def update_table(table_id: int, update, actor: Actor, db: Session) -> Table:
        """Apply a ``TableUpdate``; capacity never drops below seats in use"""
        fields = update.model_dump(exclude_unset=True)
        table = TableRepo.get(db, table_id)
        if not fields:
            return table

        if ADMIN_TABLE_FIELDS & fields.keys():
            PermissionService.require_admin(actor, "change table capacity, pricing or status")
        else:
            PermissionService.require(table, actor, Capability.EDIT, db)

        if fields.get("capacity") is not None:
            table = CapacityService.lock_table(table_id, db)
            in_use = CapacityService.reserved_seats(table.id, db) + CapacityService.borrowed_seats(table.id, db)
            if fields["capacity"] < in_use:
                raise CapacityExceededError(
                    in_use, fields["capacity"],
                    message=f"{in_use} seats are already taken; capacity cannot drop to {fields['capacity']}",
                )
        if "name" in fields and fields["name"] is None:
            raise ValidationError("Table name cannot be empty")
        if "status" in fields and fields["status"] is None:
            raise ValidationError("Table status cannot be null")

        for field, value in fields.items():
            setattr(table, field, value)
        db.flush()

        AuditService.record(
            table.event.organization_id,
            ActivityAction.TABLE_UPDATED,
            EntityType.TABLE,
            table.id,
            actor,
            db,
            event_id=table.event_id,
            details={"fields": sorted(fields)},
        )
        return table

    @staticmethod
    def delete_table(table_id: int, actor: Actor, db: Session) -> Table:
        """Archive a table and drop its role grants. Orders are never touched."""
        table = TableRepo.get(db, table_id)
        PermissionService.require(table, actor, Capability.DELETE, db)

        open_orders = db.query(Order.id).filter(
            Order.table_id == table.id,
            Order.status.in_(OPEN_ORDER_STATUSES),
        ).count()
        if open_orders:
            raise ValidationError(
                "Table still has open orders; cancel or refund them first",
                details={"open_orders": open_orders},
            )

        removed_roles = db.query(TableUserRole).filter(TableUserRole.table_id == table.id).delete(
            synchronize_session=False
        )
        table.status = TableStatus.ARCHIVED
        db.flush()

        AuditService.record(
            table.event.organization_id,
            ActivityAction.TABLE_DELETED,
            EntityType.TABLE,
            table.id,
            actor,
            db,
            event_id=table.event_id,
            details={"reference_code": table.reference_code, "roles_removed": removed_roles},
        )
        return table

    @staticmethod
    def grant_role(table_id: int, person, role: TableRole, actor: Actor, db: Session) -> TableUserRole:
        """Give a user a role on a table; re-granting replaces the old role"""
        table = TableRepo.get(db, table_id)
        PermissionService.require(table, actor, Capability.MANAGE_ROLES, db)
        if role == TableRole.CAPTAIN and table.type != TableType.CAPTAIN_PAYG:
            raise ValidationError("Captains can only be assigned to pay-as-you-go tables")

        user = UserRepo.resolve_person(db, person)
        if user.id == table.primary_owner_id and role not in (TableRole.OWNER, TableRole.CAPTAIN):
            raise ValidationError("The primary owner's role cannot be downgraded")

        grant = db.query(TableUserRole).filter(
            TableUserRole.table_id == table.id,
            TableUserRole.user_id == user.id,
        ).first()
        previous = grant.role.value if grant else None
        if grant:
            grant.role = role
        else:
            grant = TableUserRole(table_id=table.id, user_id=user.id, role=role)
            db.add(grant)
        db.flush()

        AuditService.record(
            table.event.organization_id,
            ActivityAction.TABLE_ROLE_ADDED,
            EntityType.TABLE,
            table.id,
            actor,
            db,
            event_id=table.event_id,
            details={"user_id": user.id, "role": role.value, "previous_role": previous},
        )
        return grant

    @staticmethod
    def revoke_role(table_id: int, user_id: int, actor: Actor, db: Session) -> None:
        table = TableRepo.get(db, table_id)
        PermissionService.require(table, actor, Capability.MANAGE_ROLES, db)

        grant = db.query(TableUserRole).filter(
            TableUserRole.table_id == table.id,
            TableUserRole.user_id == user_id,
        ).first()
        if not grant:
            raise NotFoundError("Table role", user_id)
        role = grant.role
        db.delete(grant)
        db.flush()

        AuditService.record(
            table.event.organization_id,
            ActivityAction.TABLE_ROLE_REMOVED,
            EntityType.TABLE,
            table.id,
            actor,
            db,
            event_id=table.event_id,
            details={"user_id": user_id, "role": role.value},
        )

    @staticmethod
    def list_roles(table_id: int, actor: Actor, db: Session) -> List[TableUserRole]:
        table = TableRepo.get(db, table_id)
        PermissionService.require(table, actor, Capability.VIEW, db)
        return db.query(TableUserRole).filter(TableUserRole.table_id == table.id).order_by(TableUserRole.id).all()
