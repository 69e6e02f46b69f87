"""
Table permission engine.

Every mutation path asks this module whether an actor may perform a
capability on a table or guest. The role matrix lives in one lookup table;
call sites never inspect roles or ownership directly.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Iterable, Optional

from sqlalchemy.orm import Session

from app.core.errors import PermissionDeniedError
from app.models import GuestAssignment, Table, TableUserRole
from app.models.enums import TableRole, TableType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    """Identity of the caller as resolved by the identity gateway"""
    id: str
    is_admin: bool = False
    self_id: Optional[int] = None  # local User row, when the actor has one


class Capability(str, Enum):
    VIEW = "view"
    EDIT = "edit"
    ADD_GUEST = "add_guest"
    REMOVE_GUEST = "remove_guest"
    EDIT_GUEST = "edit_guest"
    MANAGE_ROLES = "manage_roles"
    DELETE = "delete"


ALL_CAPABILITIES: FrozenSet[Capability] = frozenset(Capability)

_HOST_CAPABILITIES = frozenset({
    Capability.VIEW,
    Capability.EDIT,
    Capability.ADD_GUEST,
    Capability.REMOVE_GUEST,
    Capability.EDIT_GUEST,
})

ROLE_CAPABILITIES = {
    TableRole.OWNER: ALL_CAPABILITIES,
    TableRole.CO_OWNER: _HOST_CAPABILITIES,
    TableRole.MANAGER: _HOST_CAPABILITIES,
    TableRole.CAPTAIN: _HOST_CAPABILITIES,
    TableRole.STAFF: frozenset({Capability.VIEW, Capability.EDIT_GUEST}),
}

# Fields a seated guest may change on their own record without a table role
SELF_EDITABLE_FIELDS = frozenset({"display_name", "dietary", "auction_registered"})


class PermissionService:
    """Service for role resolution and capability checks"""

    @staticmethod
    def effective_role(table: Table, actor: Optional[Actor], db: Session) -> Optional[TableRole]:
        """Explicit role row, else implicit OWNER for the primary owner, else none"""
        if actor is None or actor.self_id is None:
            return None
        grant = db.query(TableUserRole).filter(
            TableUserRole.table_id == table.id,
            TableUserRole.user_id == actor.self_id,
        ).first()
        if grant:
            role = grant.role
        elif table.primary_owner_id == actor.self_id:
            role = TableRole.OWNER
        else:
            return None
        # Captains only exist on pay-as-you-go tables
        if role == TableRole.CAPTAIN and table.type != TableType.CAPTAIN_PAYG:
            return None
        return role

    @staticmethod
    def is_seated(table_id: int, actor: Optional[Actor], db: Session) -> bool:
        if actor is None or actor.self_id is None:
            return False
        return db.query(GuestAssignment.id).filter(
            GuestAssignment.table_id == table_id,
            GuestAssignment.user_id == actor.self_id,
        ).first() is not None

    @staticmethod
    def capabilities(table: Table, actor: Optional[Actor], db: Session) -> FrozenSet[Capability]:
        if actor is not None and actor.is_admin:
            return ALL_CAPABILITIES
        role = PermissionService.effective_role(table, actor, db)
        if role is not None:
            return ROLE_CAPABILITIES[role]
        if PermissionService.is_seated(table.id, actor, db):
            return frozenset({Capability.VIEW})
        return frozenset()

    @staticmethod
    def can(table: Table, actor: Optional[Actor], capability: Capability, db: Session) -> bool:
        return capability in PermissionService.capabilities(table, actor, db)

    @staticmethod
    def require(table: Table, actor: Optional[Actor], capability: Capability, db: Session) -> None:
        if not PermissionService.can(table, actor, capability, db):
            PermissionService._deny(actor, capability, f"table {table.id}")

    @staticmethod
    def can_edit_guest(
        assignment: GuestAssignment,
        fields: Iterable[str],
        actor: Optional[Actor],
        db: Session,
    ) -> bool:
        """Self-edit subset on one's own record, otherwise the table role decides"""
        if actor is None:
            return False
        if actor.is_admin:
            return True
        fields = set(fields)
        if actor.self_id is not None and actor.self_id == assignment.user_id and fields <= SELF_EDITABLE_FIELDS:
            return True
        if assignment.table is None:
            return actor.self_id is not None and actor.self_id == assignment.order.user_id
        return PermissionService.can(assignment.table, actor, Capability.EDIT_GUEST, db)

    @staticmethod
    def require_edit_guest(assignment: GuestAssignment, fields: Iterable[str], actor: Optional[Actor], db: Session) -> None:
        if not PermissionService.can_edit_guest(assignment, fields, actor, db):
            PermissionService._deny(actor, Capability.EDIT_GUEST, f"guest {assignment.id}")

    @staticmethod
    def can_remove_guest(assignment: GuestAssignment, actor: Optional[Actor], db: Session) -> bool:
        if actor is None:
            return False
        if actor.is_admin:
            return True

        table = assignment.table
        if table is None:
            return actor.self_id is not None and actor.self_id == assignment.order.user_id

        self_paid = assignment.order.user_id == assignment.user_id
        if table.type == TableType.CAPTAIN_PAYG and self_paid:
            # A guest who paid for their own seat can only be removed by
            # themselves or the table owner
            if actor.self_id is not None and actor.self_id == assignment.user_id:
                return True
            return PermissionService.effective_role(table, actor, db) == TableRole.OWNER

        return PermissionService.can(table, actor, Capability.REMOVE_GUEST, db)

    @staticmethod
    def require_remove_guest(assignment: GuestAssignment, actor: Optional[Actor], db: Session) -> None:
        if not PermissionService.can_remove_guest(assignment, actor, db):
            PermissionService._deny(actor, Capability.REMOVE_GUEST, f"guest {assignment.id}")

    @staticmethod
    def can_view_guest(assignment: GuestAssignment, actor: Optional[Actor], db: Session) -> bool:
        if actor is None:
            return False
        if actor.is_admin:
            return True
        if actor.self_id is not None and actor.self_id in (assignment.user_id, assignment.order.user_id):
            return True
        if assignment.table is None:
            return False
        return PermissionService.can(assignment.table, actor, Capability.VIEW, db)

    @staticmethod
    def can_transfer(assignment: GuestAssignment, actor: Optional[Actor], db: Session) -> bool:
        if actor is None:
            return False
        if actor.is_admin:
            return True
        if actor.self_id is not None and actor.self_id in (assignment.user_id, assignment.order.user_id):
            return True
        table = assignment.table
        if table is None or table.type != TableType.PREPAID:
            return False
        return PermissionService.effective_role(table, actor, db) in (TableRole.OWNER, TableRole.CO_OWNER)

    @staticmethod
    def require_admin(actor: Optional[Actor], capability: str = "perform admin action") -> None:
        if actor is None or not actor.is_admin:
            logger.warning("Admin action denied for %s: %s", actor.id if actor else "anonymous", capability)
            raise PermissionDeniedError(capability, "Admin access required")

    @staticmethod
    def _deny(actor: Optional[Actor], capability, target: str) -> None:
        name = getattr(capability, "value", capability)
        logger.warning("Denied %s on %s for %s", name, target, actor.id if actor else "anonymous")
        raise PermissionDeniedError(name)
