"""
Order lifecycle state machine.

Orders move only along ``ALLOWED_TRANSITIONS``. Every transition is a
conditional UPDATE on the current status, so a transition raced by another
request applies once and the loser gets ``InvalidStateTransitionError``.
Seats are held by PENDING and COMPLETED orders; the buyer's own guest
assignment is created in the same transaction that completes the order.
"""

import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.db import transaction, utcnow
from app.core.errors import (
    DomainError,
    InvalidStateTransitionError,
    NotFoundError,
    PaymentGatewayError,
    PaymentLinkExpiredError,
    PermissionDeniedError,
    ValidationError,
)
from app.models import GuestAssignment, Order, PaymentEventLog, Table
from app.models.enums import (
    ActivityAction,
    EntityType,
    OrderStatus,
    ProductKind,
    SEAT_HOLDING_STATUSES,
    TableType,
)
from app.services.audit_service import AuditService
from app.services.capacity_service import CapacityService
from app.services.guest_service import GuestService
from app.services.payment_gateway import GatewayEvent, PaymentGateway
from app.services.permission_service import Actor, PermissionService
from app.services.pricing_service import PriceQuote, PricingService
from app.services.repositories import EventRepo, GuestRepo, OrderRepo, ProductRepo, TableRepo, UserRepo
from app.services.table_service import TableService

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.AWAITING_PAYMENT: frozenset({OrderStatus.PENDING, OrderStatus.CANCELLED, OrderStatus.EXPIRED}),
    OrderStatus.COMPLETED: frozenset({OrderStatus.REFUNDED, OrderStatus.CANCELLED}),
}

FLOW_PRODUCT_KINDS = {
    "individual": ProductKind.INDIVIDUAL_TICKET,
    "full_table": ProductKind.FULL_TABLE,
    "captain_commitment": ProductKind.CAPTAIN_COMMITMENT,
}


@dataclass
class CheckoutResult:
    order: Order
    quote: Optional[PriceQuote] = None
    table: Optional[Table] = None
    assignment: Optional[GuestAssignment] = None
    client_secret: Optional[str] = None


@dataclass
class PaymentEventResult:
    """Outcome of one gateway confirmation event"""
    event_id: str
    status: str  # completed, failed, duplicate, skipped, error
    order_id: Optional[int] = None
    message: Optional[str] = None


class OrderService:
    """Service for checkout, invitations and order transitions"""

    # ---- transitions ----

    @staticmethod
    def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
        return target in ALLOWED_TRANSITIONS.get(current, frozenset())

    @staticmethod
    def transition(order: Order, target: OrderStatus, db: Session) -> Order:
        current = order.status
        if not OrderService.can_transition(current, target):
            raise InvalidStateTransitionError(current, target)

        updated = (
            db.query(Order)
            .filter(Order.id == order.id, Order.status == current)
            .update({Order.status: target, Order.updated_at: utcnow()}, synchronize_session=False)
        )
        db.refresh(order)
        if not updated:
            logger.warning("Order %s changed concurrently; now %s", order.id, order.status.value)
            raise InvalidStateTransitionError(order.status, target)

        logger.info("Order %s: %s -> %s", order.id, current.value, target.value)
        return order

    @staticmethod
    def _audit(order: Order, action: ActivityAction, actor: Optional[Actor], db: Session, **details) -> None:
        AuditService.record(
            order.event.organization_id,
            action,
            EntityType.ORDER,
            order.id,
            actor,
            db,
            event_id=order.event_id,
            details={"status": order.status.value, **details},
        )

    @staticmethod
    def _on_completed(order: Order, actor: Optional[Actor], db: Session) -> Optional[GuestAssignment]:
        """Seat the buyer once an order is COMPLETED"""
        assignment = None
        if GuestRepo.find_seat(db, order.event_id, order.table_id, order.user_id):
            logger.info("Buyer of order %s already seated; seat left as placeholder", order.id)
        else:
            assignment = GuestService.create_assignment(order, order.table_id, order.user, actor, db)
        OrderService._audit(order, ActivityAction.ORDER_COMPLETED, actor, db, amount_cents=order.amount_cents)
        return assignment

    @staticmethod
    def _charge(order: Order, gateway: Optional[PaymentGateway], db: Session) -> str:
        """Create the gateway charge for a PENDING order; failures abort the transaction"""
        if gateway is None:
            correlation_id = uuid.uuid4().hex
            logger.error("No payment gateway configured for order %s [correlation_id=%s]", order.id, correlation_id)
            raise PaymentGatewayError("Payments are not configured", correlation_id)
        try:
            charge = gateway.create_charge(order.amount_cents, {
                "order_id": order.id,
                "event_id": order.event_id,
                "email": order.user.email,
            })
        except PaymentGatewayError as exc:
            logger.error(
                "Charge for order %s failed [correlation_id=%s]; rolling back",
                order.id, exc.correlation_id,
            )
            raise
        order.gateway_charge_ref = charge.charge_ref
        db.flush()
        return charge.client_secret

    # ---- checkout ----

    @staticmethod
    def _checkout_quantity(flow: str, requested: int) -> int:
        if flow == "full_table":
            return settings.DEFAULT_TABLE_CAPACITY
        if flow == "captain_commitment":
            return 1
        if requested > settings.MAX_TICKETS_PER_ORDER:
            raise ValidationError(f"At most {settings.MAX_TICKETS_PER_ORDER} tickets per order")
        return requested

    @staticmethod
    def checkout(request, actor: Optional[Actor], gateway: PaymentGateway, db: Session) -> CheckoutResult:
        """Create an order from a ``CheckoutRequest``.

        Free orders complete immediately and seat the buyer. Paid orders stay
        PENDING until the gateway confirms payment.
        """
        event = EventRepo.get(db, request.event_id)
        if not event.is_active or not event.tickets_on_sale:
            raise ValidationError("Tickets are not on sale for this event")

        product = ProductRepo.get(db, request.product_id)
        if product.event_id != event.id or not product.is_active:
            raise ValidationError("Product is not available for this event")
        if product.kind != FLOW_PRODUCT_KINDS[request.order_flow]:
            raise ValidationError(f"Product cannot be bought with the {request.order_flow} flow")

        quantity = OrderService._checkout_quantity(request.order_flow, request.quantity)
        promo = PricingService.validate_promo(request.promo_code, event.id, db) if request.promo_code else None

        table = None
        if request.table_id is not None:
            table = CapacityService.reserve_seats(request.table_id, quantity, db)
            if table.event_id != event.id:
                raise ValidationError("Table belongs to a different event")

        quote = PricingService.quote_for_product(product, quantity, table, promo)
        if promo is not None:
            PricingService.redeem_promo(promo, db)

        buyer = UserRepo.find_or_create(
            db,
            str(request.buyer.email),
            first_name=request.buyer.first_name,
            last_name=request.buyer.last_name,
            phone=request.buyer.phone,
        )

        if request.order_flow != "individual":
            table_type = TableType.PREPAID if request.order_flow == "full_table" else TableType.CAPTAIN_PAYG
            table = TableService.create_table(
                event,
                buyer,
                request.table_info.name,
                table_type,
                actor,
                db,
                capacity=settings.DEFAULT_TABLE_CAPACITY,
                welcome_message=request.table_info.welcome_message,
            )
            CapacityService.reserve_seats(table.id, quantity, db)

        free = quote.total_cents == 0
        order = Order(
            event_id=event.id,
            product_id=product.id,
            table_id=table.id if table else None,
            user_id=buyer.id,
            quantity=quantity,
            amount_cents=quote.total_cents,
            discount_cents=quote.discount_cents,
            promo_code_id=quote.promo_id,
            status=OrderStatus.COMPLETED if free else OrderStatus.PENDING,
        )
        db.add(order)
        db.flush()
        OrderService._audit(
            order, ActivityAction.ORDER_CREATED, actor, db,
            flow=request.order_flow, quantity=quantity, amount_cents=quote.total_cents,
        )

        result = CheckoutResult(order=order, quote=quote, table=table)
        if free:
            result.assignment = OrderService._on_completed(order, actor, db)
        else:
            result.client_secret = OrderService._charge(order, gateway, db)
        return result

    # ---- gateway confirmations ----

    @staticmethod
    def handle_payment_event(event: GatewayEvent, db: Session) -> PaymentEventResult:
        """Apply a gateway confirmation exactly once.

        The event log row is committed before any processing so a redelivery
        can always be recognized, even if applying the event fails.
        """
        log_row = db.query(PaymentEventLog).filter(PaymentEventLog.gateway_event_id == event.event_id).first()
        if log_row and log_row.processed:
            logger.info("Payment event %s already processed", event.event_id)
            return PaymentEventResult(event.event_id, "duplicate")

        if log_row is None:
            log_row = PaymentEventLog(
                gateway_event_id=event.event_id,
                event_type=event.event_type,
                charge_ref=event.charge_ref,
                payload=event.payload,
            )
            db.add(log_row)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                logger.info("Payment event %s is being handled by another delivery", event.event_id)
                return PaymentEventResult(event.event_id, "duplicate")

        log_id = log_row.id
        try:
            with transaction(db):
                result = OrderService._apply_payment_event(event, db)
                log_row = db.get(PaymentEventLog, log_id)
                log_row.processed = True
                log_row.processed_at = utcnow()
                log_row.error_message = None
        except DomainError as exc:
            logger.error("Payment event %s failed: %s", event.event_id, exc)
            with transaction(db):
                log_row = db.get(PaymentEventLog, log_id)
                log_row.error_message = str(exc)
            return PaymentEventResult(event.event_id, "error", message=exc.message)
        return result

    @staticmethod
    def _apply_payment_event(event: GatewayEvent, db: Session) -> PaymentEventResult:
        order = OrderRepo.get_by_charge_ref(db, event.charge_ref)
        if order is None:
            raise NotFoundError("Order", event.charge_ref)

        if event.outcome == "failed":
            note = f"Payment failed: {event.failure_reason or event.event_type}"
            order.notes = f"{order.notes}\n{note}" if order.notes else note
            logger.warning("Order %s: %s", order.id, note)
            return PaymentEventResult(event.event_id, "failed", order.id, note)

        order = CapacityService.lock_order(order.id, db)
        if order.status == OrderStatus.COMPLETED:
            return PaymentEventResult(event.event_id, "skipped", order.id, "Order already completed")

        OrderService.transition(order, OrderStatus.COMPLETED, db)
        OrderService._on_completed(order, None, db)
        return PaymentEventResult(event.event_id, "completed", order.id)

    # ---- admin invitations ----

    @staticmethod
    def create_invitation(data, actor: Actor, db: Session) -> Order:
        """Create an order the invitee pays for through a payment link"""
        PermissionService.require_admin(actor, "create invitations")
        event = EventRepo.get(db, data.event_id)
        product = ProductRepo.get(db, data.product_id)
        if product.event_id != event.id:
            raise ValidationError("Product belongs to a different event")

        # Whole tables and captain commitments create their table at checkout
        if product.kind != ProductKind.INDIVIDUAL_TICKET:
            raise ValidationError("Invitations can only be sent for individual tickets")
        quantity = data.quantity
        if quantity > settings.MAX_TICKETS_PER_ORDER:
            raise ValidationError(f"At most {settings.MAX_TICKETS_PER_ORDER} tickets per order")

        table = None
        if data.table_id is not None:
            table = TableRepo.get(db, data.table_id)
            if table.event_id != event.id:
                raise ValidationError("Table belongs to a different event")

        quote = PricingService.quote_for_product(product, quantity, table)
        invitee = UserRepo.find_or_create(db, str(data.email), first_name=data.first_name, last_name=data.last_name)

        order = Order(
            event_id=event.id,
            product_id=product.id,
            table_id=table.id if table else None,
            user_id=invitee.id,
            quantity=quantity,
            amount_cents=quote.total_cents,
            discount_cents=quote.discount_cents,
            status=OrderStatus.AWAITING_PAYMENT,
            is_admin_created=True,
            invited_email=invitee.email,
            payment_link_token=secrets.token_hex(32),
            payment_link_expires_at=utcnow() + timedelta(days=settings.PAYMENT_LINK_EXPIRY_DAYS),
            notes=data.notes,
        )
        db.add(order)
        db.flush()
        OrderService._audit(
            order, ActivityAction.ORDER_INVITED, actor, db,
            invited_email=invitee.email, amount_cents=order.amount_cents,
        )
        return order

    @staticmethod
    def expire_if_due(order: Order, db: Session) -> bool:
        """Lazily expire an invitation whose link has run out"""
        if order.status != OrderStatus.AWAITING_PAYMENT:
            return False
        if order.payment_link_expires_at is None or order.payment_link_expires_at > utcnow():
            return False
        OrderService.transition(order, OrderStatus.EXPIRED, db)
        PricingService.release_promo(order.promo_code_id, db)
        OrderService._audit(order, ActivityAction.ORDER_EXPIRED, None, db)
        return True

    @staticmethod
    def resolve_payment_link(token: str, db: Session) -> Order:
        order = OrderRepo.get_by_token(db, token)
        OrderService.expire_if_due(order, db)
        return order

    @staticmethod
    def ensure_payable(order: Order) -> None:
        if order.status == OrderStatus.EXPIRED:
            raise PaymentLinkExpiredError(order.status)
        if order.status != OrderStatus.AWAITING_PAYMENT:
            raise InvalidStateTransitionError(
                order.status, OrderStatus.PENDING, message="This payment link is no longer payable",
            )
        if order.payment_link_expires_at is not None and order.payment_link_expires_at <= utcnow():
            raise PaymentLinkExpiredError(order.status)

    @staticmethod
    def start_invitation_payment(order_id: int, gateway: PaymentGateway, db: Session) -> CheckoutResult:
        """Move an invitation to PENDING and open a charge for it"""
        order = CapacityService.lock_order(order_id, db)
        OrderService.ensure_payable(order)
        if order.table_id is not None:
            CapacityService.reserve_seats(order.table_id, order.quantity, db)

        OrderService.transition(order, OrderStatus.PENDING, db)
        result = CheckoutResult(order=order, table=order.table)
        if order.amount_cents == 0:
            OrderService.transition(order, OrderStatus.COMPLETED, db)
            result.assignment = OrderService._on_completed(order, None, db)
        else:
            result.client_secret = OrderService._charge(order, gateway, db)
        return result

    @staticmethod
    def cancel_invitation(order_id: int, actor: Actor, db: Session) -> Order:
        PermissionService.require_admin(actor, "cancel invitations")
        order = OrderRepo.get(db, order_id)
        if order.status != OrderStatus.AWAITING_PAYMENT:
            raise InvalidStateTransitionError(
                order.status, OrderStatus.CANCELLED,
                message="Only invitations awaiting payment can be cancelled",
            )
        OrderService.transition(order, OrderStatus.CANCELLED, db)
        PricingService.release_promo(order.promo_code_id, db)
        OrderService._audit(order, ActivityAction.ORDER_CANCELLED, actor, db, invitation=True)
        return order

    @staticmethod
    def resend_invitation(order_id: int, actor: Actor, db: Session) -> Order:
        """Give an unpaid invitation a fresh payment window"""
        PermissionService.require_admin(actor, "resend invitations")
        order = CapacityService.lock_order(order_id, db)
        if not order.is_admin_created:
            raise ValidationError("This order is not an invitation")
        if order.status != OrderStatus.AWAITING_PAYMENT:
            raise InvalidStateTransitionError(
                order.status, OrderStatus.AWAITING_PAYMENT,
                message="Only invitations awaiting payment can be resent",
            )

        order.payment_link_expires_at = utcnow() + timedelta(days=settings.PAYMENT_LINK_EXPIRY_DAYS)
        db.flush()
        logger.info("Invitation %s resent; link valid until %s", order.id, order.payment_link_expires_at)
        OrderService._audit(
            order, ActivityAction.ORDER_INVITED, actor, db,
            resent=True, expires_at=order.payment_link_expires_at.isoformat(),
        )
        return order

    # ---- admin order management ----

    @staticmethod
    def refund_order(order_id: int, actor: Actor, db: Session, reason: Optional[str] = None) -> Order:
        """Mark a completed order refunded. Its guests keep their seats until removed."""
        PermissionService.require_admin(actor, "refund orders")
        order = OrderRepo.get(db, order_id)
        OrderService.transition(order, OrderStatus.REFUNDED, db)
        OrderService._audit(
            order, ActivityAction.ORDER_REFUNDED, actor, db,
            amount_cents=order.amount_cents, reason=reason,
        )
        return order

    @staticmethod
    def cancel_order(order_id: int, actor: Actor, db: Session, reason: Optional[str] = None) -> Order:
        PermissionService.require_admin(actor, "cancel orders")
        order = CapacityService.lock_order(order_id, db)
        previous = order.status
        if previous == OrderStatus.COMPLETED and CapacityService.assigned_count(order.id, db) > 0:
            raise InvalidStateTransitionError(
                previous, OrderStatus.CANCELLED,
                message="Remove the order's guests before cancelling it",
            )
        OrderService.transition(order, OrderStatus.CANCELLED, db)
        if previous != OrderStatus.COMPLETED:
            PricingService.release_promo(order.promo_code_id, db)
        OrderService._audit(order, ActivityAction.ORDER_CANCELLED, actor, db, previous=previous.value, reason=reason)
        return order

    @staticmethod
    def change_quantity(order_id: int, quantity: int, actor: Actor, db: Session) -> Order:
        """Admin seat count change.

        Invitations still awaiting payment are re-priced for the new quantity.
        PENDING orders are refused since their charge is already open.
        COMPLETED orders keep the amount they were charged.
        """
        PermissionService.require_admin(actor, "change order quantity")
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")

        order = CapacityService.lock_order(order_id, db)
        if order.status == OrderStatus.PENDING:
            raise ValidationError(
                "A payment is already open for this order; cancel it and invite again instead",
                details={"status": order.status.value},
            )
        if order.status not in (OrderStatus.COMPLETED, OrderStatus.AWAITING_PAYMENT):
            raise ValidationError(f"Cannot change quantity of a {order.status.value.lower()} order")

        assigned = CapacityService.assigned_count(order.id, db)
        if quantity < assigned:
            raise ValidationError(
                f"Order has {assigned} named guests; remove guests before reducing to {quantity}",
                details={"assigned": assigned},
            )

        previous = order.quantity
        increase = quantity - previous
        if increase > 0 and order.table_id is not None and order.status in SEAT_HOLDING_STATUSES:
            CapacityService.reserve_seats(order.table_id, increase, db)

        details = {"operation": "change_quantity", "from": previous, "to": quantity}
        if order.status == OrderStatus.AWAITING_PAYMENT:
            quote = PricingService.quote_for_product(order.product, quantity, order.table)
            details["amount_cents"] = {"from": order.amount_cents, "to": quote.total_cents}
            order.amount_cents = quote.total_cents
            order.discount_cents = quote.discount_cents

        order.quantity = quantity
        db.flush()
        AuditService.record(
            order.event.organization_id,
            ActivityAction.ADMIN_OVERRIDE,
            EntityType.ORDER,
            order.id,
            actor,
            db,
            event_id=order.event_id,
            details=details,
        )
        return order

    @staticmethod
    def get_order(order_id: int, actor: Actor, db: Session) -> Order:
        order = OrderRepo.get(db, order_id)
        if not (actor.is_admin or actor.self_id == order.user_id):
            raise PermissionDeniedError("view", "Only the buyer or an admin can view this order")
        return order

    @staticmethod
    def list_orders(event_id: int, actor: Actor, db: Session, status: Optional[OrderStatus] = None) -> List[Order]:
        PermissionService.require_admin(actor, "list orders")
        query = db.query(Order).filter(Order.event_id == event_id)
        if status is not None:
            query = query.filter(Order.status == status)
        return query.order_by(Order.id).all()
