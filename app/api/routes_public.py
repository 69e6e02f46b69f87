"""
Public API routes: checkout, payment links, gateway webhook and table links
"""

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response
from sqlalchemy.orm import Session

from app.core.db import get_db, transaction
from app.core.errors import ValidationError
from app.schemas.event import ProductResponse
from app.schemas.guest import ClaimSeatRequest, GuestResponse
from app.schemas.order import CheckoutRequest, OrderResponse, PaymentLinkView
from app.schemas.waitlist import WaitlistJoin, WaitlistResponse
from app.services.capacity_service import CapacityService
from app.services.event_service import EventService
from app.services.guest_service import GuestService
from app.services.order_service import OrderService
from app.services.payment_gateway import PaymentGateway, get_payment_gateway, parse_webhook
from app.services.permission_service import Actor
from app.services.qr_service import QRService
from app.services.repositories import TableRepo
from app.services.waitlist_service import WaitlistService
from app.utils.responses import dump, success_response
from app.utils.security import enforce_rate_limit, get_optional_actor

logger = logging.getLogger(__name__)

router = APIRouter()

@router.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "ok"}

@router.get("/events/{event_id}/products")
def list_products(event_id: int, db: Session = Depends(get_db)):
    """Products currently on sale for an event"""
    products = EventService.list_products(event_id, db)
    return success_response(
        message="Products retrieved successfully",
        data=[dump(ProductResponse, product) for product in products]
    )

@router.get("/tables/{table_id}/availability")
def table_availability(table_id: int, db: Session = Depends(get_db)):
    """Public seat count for a table"""
    table = TableRepo.get(db, table_id)
    return success_response(
        message="Availability retrieved successfully",
        data={
            "table_id": table.id,
            "name": table.name,
            "type": table.type.value,
            "status": table.status.value,
            "capacity": table.capacity,
            "available": CapacityService.available_seats(table, db),
        }
    )

@router.post("/checkout", dependencies=[Depends(enforce_rate_limit)])
def checkout(
    checkout_data: CheckoutRequest,
    db: Session = Depends(get_db),
    actor: Optional[Actor] = Depends(get_optional_actor),
    gateway: Optional[PaymentGateway] = Depends(get_payment_gateway),
):
    """Buy tickets, a whole table, or commit as a table captain"""
    with transaction(db):
        result = OrderService.checkout(checkout_data, actor, gateway, db)

    data = {
        "order": dump(OrderResponse, result.order),
        "table_id": result.table.id if result.table else None,
        "reference_code": result.assignment.reference_code if result.assignment else None,
        "client_secret": result.client_secret,
        "quote": asdict(result.quote) if result.quote else None,
    }
    message = "Order completed" if result.client_secret is None else "Order created, awaiting payment"
    return success_response(message=message, data=data, status_code=201)

@router.post("/waitlist", dependencies=[Depends(enforce_rate_limit)])
def join_waitlist(
    entry_data: WaitlistJoin,
    db: Session = Depends(get_db),
    actor: Optional[Actor] = Depends(get_optional_actor),
):
    """Ask for seats at a sold-out event"""
    with transaction(db):
        entry = WaitlistService.join(entry_data, actor, db)
    return success_response(message="Added to the waitlist", data=dump(WaitlistResponse, entry), status_code=201)

@router.get("/pay/{token}")
def view_payment_link(token: str, db: Session = Depends(get_db)):
    """Show an invitation; expired links are marked expired on access"""
    with transaction(db):
        order = OrderService.resolve_payment_link(token, db)

    view = PaymentLinkView(
        order_id=order.id,
        status=order.status,
        event_name=order.event.name,
        product_name=order.product.name,
        quantity=order.quantity,
        amount_cents=order.amount_cents,
        table_name=order.table.name if order.table else None,
        table_type=order.table.type if order.table else None,
        expires_at=order.payment_link_expires_at,
    )
    return success_response(message="Payment link retrieved", data=view.model_dump(mode="json"))

@router.post("/pay/{token}", dependencies=[Depends(enforce_rate_limit)])
def start_payment(
    token: str,
    db: Session = Depends(get_db),
    gateway: Optional[PaymentGateway] = Depends(get_payment_gateway),
):
    """Start paying an invitation"""
    with transaction(db):
        order = OrderService.resolve_payment_link(token, db)
    with transaction(db):
        result = OrderService.start_invitation_payment(order.id, gateway, db)

    return success_response(
        message="Payment started",
        data={
            "order": dump(OrderResponse, result.order),
            "client_secret": result.client_secret,
            "reference_code": result.assignment.reference_code if result.assignment else None,
        }
    )

@router.post("/webhooks/payments")
async def payment_webhook(
    request: Request,
    db: Session = Depends(get_db),
    gateway: Optional[PaymentGateway] = Depends(get_payment_gateway),
):
    """Gateway confirmation events; safe to redeliver"""
    if gateway is None:
        raise ValidationError("Payments are not configured")
    body = await request.body()
    gateway.verify_webhook(body, request.headers.get("X-Razorpay-Signature", ""))

    event_id = request.headers.get("X-Razorpay-Event-Id")
    if not event_id:
        raise ValidationError("Missing event id header")

    event = parse_webhook(body, event_id)
    if event is None:
        return success_response(message="Event ignored", data={"event_id": event_id, "status": "ignored"})

    result = await run_in_threadpool(OrderService.handle_payment_event, event, db)
    return success_response(message="Payment event handled", data=asdict(result))

@router.post("/tables/{table_id}/claim", dependencies=[Depends(enforce_rate_limit)])
def claim_seat(
    table_id: int,
    claim: ClaimSeatRequest,
    db: Session = Depends(get_db),
    actor: Optional[Actor] = Depends(get_optional_actor),
):
    """Name yourself into a free seat of a prepaid table"""
    with transaction(db):
        assignment = GuestService.claim_seat(table_id, claim, actor, db)
    return success_response(
        message="Seat claimed",
        data=dump(GuestResponse, assignment),
        status_code=201
    )

@router.get("/tables/{table_id}/claim-qr.png")
def claim_qr(table_id: int, db: Session = Depends(get_db)):
    """QR code for a prepaid table's claim link"""
    table = TableRepo.get(db, table_id)
    return Response(
        content=QRService.generate_claim_qr(table.id),
        media_type="image/png",
        headers={"Content-Disposition": f"inline; filename=claim_{table.reference_code}.png"}
    )
