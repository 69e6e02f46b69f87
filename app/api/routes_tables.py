"""
Table routes for hosts, captains and staff
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.db import get_db, transaction
from app.schemas.guest import GuestResponse
from app.schemas.table import RoleGrant, RoleResponse, TableResponse, TableUpdate
from app.services.guest_service import GuestService
from app.services.permission_service import Actor, PermissionService
from app.services.repositories import TableRepo
from app.services.table_service import TableService
from app.utils.responses import dump, success_response
from app.utils.security import get_current_actor

router = APIRouter()

@router.get("/{table_id}")
def get_table(
    table_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Seat accounting and guest list for a table"""
    summary = TableService.get_summary(table_id, actor, db)
    table = TableRepo.get(db, table_id)
    summary["capabilities"] = sorted(c.value for c in PermissionService.capabilities(table, actor, db))
    return success_response(message="Table retrieved successfully", data=summary)

@router.patch("/{table_id}")
def update_table(
    table_id: int,
    table_update: TableUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Edit table details"""
    with transaction(db):
        table = TableService.update_table(table_id, table_update, actor, db)
    return success_response(message="Table updated successfully", data=dump(TableResponse, table))

@router.delete("/{table_id}")
def delete_table(
    table_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Archive a table with no open orders"""
    with transaction(db):
        table = TableService.delete_table(table_id, actor, db)
    return success_response(message="Table deleted", data=dump(TableResponse, table))

@router.get("/{table_id}/guests")
def list_table_guests(
    table_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    table = TableRepo.get(db, table_id)
    guests = GuestService.list_table_guests(table, actor, db)
    return success_response(
        message="Guests retrieved successfully",
        data=[dump(GuestResponse, guest) for guest in guests]
    )

@router.get("/{table_id}/roles")
def list_roles(
    table_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    roles = TableService.list_roles(table_id, actor, db)
    return success_response(
        message="Roles retrieved successfully",
        data=[dump(RoleResponse, role) for role in roles]
    )

@router.put("/{table_id}/roles")
def grant_role(
    table_id: int,
    grant: RoleGrant,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Grant or replace a user's role on a table"""
    with transaction(db):
        role = TableService.grant_role(table_id, grant.person, grant.role, actor, db)
    return success_response(message="Role granted", data=dump(RoleResponse, role))

@router.delete("/{table_id}/roles/{user_id}")
def revoke_role(
    table_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    with transaction(db):
        TableService.revoke_role(table_id, user_id, actor, db)
    return success_response(message="Role removed", data={"table_id": table_id, "user_id": user_id})
