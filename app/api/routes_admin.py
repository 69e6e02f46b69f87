"""
Admin API routes - requires the admin token
"""

from typing import Optional
from fastapi import APIRouter, Depends, UploadFile, File, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.db import get_db, transaction
from app.core.errors import ValidationError
from app.models.enums import EntityType, OrderStatus, WaitlistStatus
from app.schemas.event import (
    EventCreate,
    EventResponse,
    EventUpdate,
    OrganizationCreate,
    OrganizationResponse,
    ProductCreate,
    ProductResponse,
    PromoCodeCreate,
    PromoCodeResponse,
)
from app.schemas.guest import BulkAssignRequest, GuestResponse, ReassignRequest
from app.schemas.order import InvitationCreate, OrderResponse, QuantityChange, StatusNote
from app.schemas.table import TableCreate, TableResponse
from app.schemas.waitlist import WaitlistResponse
from app.services.audit_service import AuditService
from app.services.capacity_service import CapacityService
from app.services.event_service import EventService
from app.services.guest_service import GuestService
from app.services.order_service import OrderService
from app.services.permission_service import Actor
from app.services.repositories import EventRepo
from app.services.sheets_service import SheetsService
from app.services.table_service import TableService
from app.services.waitlist_service import WaitlistService
from app.utils.responses import dump, success_response
from app.utils.security import verify_admin_token

router = APIRouter()

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# -------- Organizations and events --------

@router.post("/organizations")
def create_organization(
    organization_data: OrganizationCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    with transaction(db):
        organization = EventService.create_organization(organization_data, actor, db)
    return success_response(
        message="Organization created successfully",
        data=dump(OrganizationResponse, organization),
        status_code=201
    )

@router.post("/events")
def create_event(
    event_data: EventCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    """Create a new event"""
    with transaction(db):
        event = EventService.create_event(event_data, actor, db)
    return success_response(message="Event created successfully", data=dump(EventResponse, event), status_code=201)

@router.get("/events/{event_id}")
def get_event_details(
    event_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    """Get event information with per-table seat counts"""
    event = EventRepo.get(db, event_id)
    tables = CapacityService.event_summary(event.id, db)

    data = dump(EventResponse, event)
    data["tables"] = tables
    data["total_capacity"] = sum(t["capacity"] for t in tables)
    data["total_assigned"] = sum(t["assigned"] for t in tables)
    data["checked_in_count"] = sum(t["checked_in"] for t in tables)
    return success_response(message="Event details retrieved", data=data)

@router.patch("/events/{event_id}")
def update_event(
    event_id: int,
    event_update: EventUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    with transaction(db):
        event = EventService.update_event(event_id, event_update, actor, db)
    return success_response(message="Event updated successfully", data=dump(EventResponse, event))

@router.delete("/events/{event_id}")
def delete_event(
    event_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    with transaction(db):
        EventService.delete_event(event_id, actor, db)
    return success_response(message="Event deleted", data={"id": event_id})

@router.post("/events/{event_id}/products")
def add_product(
    event_id: int,
    product_data: ProductCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    with transaction(db):
        product = EventService.add_product(event_id, product_data, actor, db)
    return success_response(message="Product created", data=dump(ProductResponse, product), status_code=201)

@router.post("/events/{event_id}/promo-codes")
def add_promo_code(
    event_id: int,
    promo_data: PromoCodeCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    with transaction(db):
        promo = EventService.add_promo_code(event_id, promo_data, actor, db)
    return success_response(message="Promo code created", data=dump(PromoCodeResponse, promo), status_code=201)

@router.patch("/promo-codes/{promo_id}")
def set_promo_active(
    promo_id: int,
    is_active: bool = Query(...),
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    with transaction(db):
        promo = EventService.set_promo_active(promo_id, is_active, actor, db)
    return success_response(message="Promo code updated", data=dump(PromoCodeResponse, promo))

# -------- Tables and guests --------

@router.post("/tables")
def create_table(
    table_data: TableCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    with transaction(db):
        table = TableService.admin_create_table(table_data, actor, db)
    return success_response(message="Table created", data=dump(TableResponse, table), status_code=201)

@router.post("/guests/{guest_id}/reassign")
def reassign_guest(
    guest_id: int,
    reassign: ReassignRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    """Move a guest to another table"""
    with transaction(db):
        assignment = GuestService.reassign_guest(guest_id, reassign.table_id, actor, db)
    return success_response(message="Guest reassigned", data=dump(GuestResponse, assignment))

@router.post("/guests/bulk-assign")
def bulk_assign_guests(
    request: BulkAssignRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    """Move several guests to one table; all or none are moved"""
    with transaction(db):
        moved = GuestService.bulk_reassign(request.guest_ids, request.table_id, actor, db)
    return success_response(
        message=f"{len(moved)} guests reassigned",
        data={
            "updated_count": len(moved),
            "table_id": request.table_id,
            "guests": [dump(GuestResponse, assignment) for assignment in moved],
        }
    )

# -------- Orders and invitations --------

def _invitation_data(order):
    data = dump(OrderResponse, order)
    data["payment_url"] = f"{settings.BASE_URL}/pay/{order.payment_link_token}"
    return data

@router.post("/invitations")
def create_invitation(
    invitation: InvitationCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    """Create an order the invitee pays through a payment link"""
    with transaction(db):
        order = OrderService.create_invitation(invitation, actor, db)
    return success_response(message="Invitation created", data=_invitation_data(order), status_code=201)

@router.post("/invitations/{order_id}/cancel")
def cancel_invitation(
    order_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    with transaction(db):
        order = OrderService.cancel_invitation(order_id, actor, db)
    return success_response(message="Invitation cancelled", data=dump(OrderResponse, order))

@router.post("/invitations/{order_id}/resend")
def resend_invitation(
    order_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    """Extend an unpaid invitation's payment link"""
    with transaction(db):
        order = OrderService.resend_invitation(order_id, actor, db)
    return success_response(message="Invitation resent", data=_invitation_data(order))

@router.get("/events/{event_id}/orders")
def list_orders(
    event_id: int,
    status: Optional[OrderStatus] = Query(None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    orders = OrderService.list_orders(event_id, actor, db, status=status)
    return success_response(
        message="Orders retrieved successfully",
        data=[dump(OrderResponse, order) for order in orders]
    )

@router.post("/orders/{order_id}/refund")
def refund_order(
    order_id: int,
    note: Optional[StatusNote] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    """Mark an order refunded; its guests are left in place"""
    with transaction(db):
        order = OrderService.refund_order(order_id, actor, db, reason=note.reason if note else None)
    return success_response(message="Order refunded", data=dump(OrderResponse, order))

@router.post("/orders/{order_id}/cancel")
def cancel_order(
    order_id: int,
    note: Optional[StatusNote] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    with transaction(db):
        order = OrderService.cancel_order(order_id, actor, db, reason=note.reason if note else None)
    return success_response(message="Order cancelled", data=dump(OrderResponse, order))

@router.patch("/orders/{order_id}/quantity")
def change_quantity(
    order_id: int,
    change: QuantityChange,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    with transaction(db):
        order = OrderService.change_quantity(order_id, change.quantity, actor, db)
    return success_response(message="Order quantity updated", data=dump(OrderResponse, order))

# -------- Waitlist --------

@router.get("/waitlist")
def list_waitlist(
    event_id: Optional[int] = Query(None),
    status: Optional[WaitlistStatus] = Query(None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    entries = WaitlistService.list_entries(actor, db, event_id=event_id, status=status)
    return success_response(
        message="Waitlist retrieved successfully",
        data=[dump(WaitlistResponse, entry) for entry in entries]
    )

@router.post("/waitlist/{entry_id}/cancel")
def cancel_waitlist_entry(
    entry_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    with transaction(db):
        entry = WaitlistService.cancel(entry_id, actor, db)
    return success_response(message="Waitlist entry cancelled", data=dump(WaitlistResponse, entry))

@router.post("/waitlist/{entry_id}/convert")
def convert_waitlist_entry(
    entry_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    """Send the waiting person an invitation to pay"""
    with transaction(db):
        order = WaitlistService.convert(entry_id, actor, db)
    return success_response(message="Waitlist entry converted", data=_invitation_data(order), status_code=201)

# -------- Spreadsheet sync and activity --------

@router.get("/events/{event_id}/export.xlsx")
def export_event(
    event_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    """Export tables and guests to Excel"""
    content = SheetsService.export_event(event_id, db)
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename=seating_event_{event_id}.xlsx"}
    )

@router.post("/events/{event_id}/import")
def import_overrides(
    event_id: int,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    """Apply table numbers and auction flags from an edited export"""
    if not file.filename.endswith(".xlsx"):
        raise ValidationError("Invalid file format. Please upload an Excel file (.xlsx)")

    file_content = file.file.read()
    if len(file_content) > settings.MAX_UPLOAD_SIZE:
        raise ValidationError("File is too large")

    with transaction(db):
        counts = SheetsService.import_overrides(file_content, event_id, actor, db)
    return success_response(message="Overrides applied", data=counts)

@router.get("/organizations/{organization_id}/activity")
def list_activity(
    organization_id: int,
    event_id: Optional[int] = Query(None),
    entity_type: Optional[EntityType] = Query(None),
    entity_id: Optional[int] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    entries = AuditService.list_activity(
        organization_id, db, event_id=event_id, entity_type=entity_type, entity_id=entity_id, limit=limit,
    )
    return success_response(
        message="Activity retrieved successfully",
        data=[
            {
                "id": entry.id,
                "event_id": entry.event_id,
                "actor_id": entry.actor_id,
                "action": entry.action.value,
                "entity_type": entry.entity_type.value,
                "entity_id": entry.entity_id,
                "metadata": entry.details,
                "created_at": entry.created_at.isoformat(),
            }
            for entry in entries
        ]
    )
