"""
Guest and order routes for buyers, hosts and guests themselves
"""

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.orm import Session

from app.core.db import get_db, transaction
from app.schemas.guest import AddGuestRequest, GuestResponse, GuestUpdate, TransferRequest
from app.schemas.order import OrderResponse
from app.services.capacity_service import CapacityService
from app.services.guest_service import GuestService
from app.services.order_service import OrderService
from app.services.permission_service import Actor
from app.services.qr_service import QRService
from app.utils.responses import dump, success_response
from app.utils.security import get_current_actor

router = APIRouter()

@router.post("/guests")
def add_guest(
    guest_data: AddGuestRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Name a placeholder seat on an order"""
    with transaction(db):
        assignment = GuestService.add_guest(
            guest_data.order_id,
            guest_data.person,
            actor,
            db,
            table_id=guest_data.table_id,
            display_name=guest_data.display_name,
            dietary=guest_data.dietary,
        )
    return success_response(message="Guest added", data=dump(GuestResponse, assignment), status_code=201)

@router.get("/guests/{guest_id}")
def get_guest(
    guest_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    assignment = GuestService.get_guest(guest_id, actor, db)
    return success_response(message="Guest retrieved", data=dump(GuestResponse, assignment))

@router.patch("/guests/{guest_id}")
def update_guest(
    guest_id: int,
    guest_update: GuestUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Update guest details; guests may edit their own name, dietary needs and auction flag"""
    with transaction(db):
        assignment = GuestService.update_guest(guest_id, guest_update, actor, db)
    return success_response(message="Guest updated successfully", data=dump(GuestResponse, assignment))

@router.delete("/guests/{guest_id}")
def remove_guest(
    guest_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Remove a guest; the seat goes back to the order as a placeholder"""
    with transaction(db):
        GuestService.remove_guest(guest_id, actor, db)
    return success_response(message="Guest removed", data={"id": guest_id})

@router.post("/guests/{guest_id}/transfer")
def transfer_ticket(
    guest_id: int,
    transfer: TransferRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    with transaction(db):
        assignment = GuestService.transfer_ticket(
            guest_id, transfer.person, actor, db, transfer_details=transfer.transfer_details,
        )
    return success_response(message="Ticket transferred", data=dump(GuestResponse, assignment))

@router.post("/guests/{guest_id}/check-in")
def check_in_guest(
    guest_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    with transaction(db):
        result = GuestService.check_in(guest_id, actor, db)
    return _check_in_response(result)

@router.post("/checkin/{organization_id}/{reference_code}")
def check_in_by_reference(
    organization_id: int,
    reference_code: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Check-in target of the ticket QR code"""
    with transaction(db):
        result = GuestService.check_in_by_reference(organization_id, reference_code, actor, db)
    return _check_in_response(result)

def _check_in_response(result):
    was_already_checked_in = result["was_already_checked_in"]
    message = "Successfully checked in!" if not was_already_checked_in else "Guest was already checked in"
    return success_response(
        message=message,
        data={
            "guest": dump(GuestResponse, result["guest"]),
            "was_already_checked_in": was_already_checked_in,
        }
    )

@router.get("/guests/{guest_id}/qr.png")
def guest_ticket_qr(
    guest_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Ticket QR code for the door"""
    assignment = GuestService.get_guest(guest_id, actor, db)
    return Response(
        content=QRService.generate_ticket_qr(assignment.organization_id, assignment.reference_code),
        media_type="image/png",
        headers={"Content-Disposition": f"inline; filename=ticket_{assignment.reference_code}.png"}
    )

@router.get("/orders/{order_id}")
def get_order(
    order_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    order = OrderService.get_order(order_id, actor, db)
    data = dump(OrderResponse, order)
    data["placeholder_seats"] = CapacityService.placeholder_seats(order, db)
    return success_response(message="Order retrieved", data=data)

@router.get("/orders/{order_id}/guests")
def list_order_guests(
    order_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    guests = GuestService.list_order_guests(order_id, actor, db)
    return success_response(
        message="Guests retrieved successfully",
        data=[dump(GuestResponse, guest) for guest in guests]
    )
