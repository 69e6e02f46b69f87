"""
Payment gateway adapter (Razorpay)
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Optional

import razorpay
import requests

from app.core.config import settings
from app.core.errors import PaymentGatewayError, ValidationError

logger = logging.getLogger(__name__)

SUCCEEDED_EVENTS = {"order.paid", "payment.captured"}
FAILED_EVENTS = {"payment.failed"}


@dataclass
class ChargeResult:
    charge_ref: str
    client_secret: Optional[str] = None


@dataclass
class GatewayEvent:
    """Confirmation event normalized from the gateway's webhook payload"""
    event_id: str
    event_type: str
    charge_ref: str
    outcome: str  # "succeeded" or "failed"
    failure_reason: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None


class PaymentGateway:
    """Contract the order service relies on"""

    def create_charge(self, amount_cents: int, metadata: Dict[str, Any]) -> ChargeResult:
        raise NotImplementedError

    def verify_webhook(self, body: bytes, signature: str) -> None:
        raise NotImplementedError


class RazorpayGateway(PaymentGateway):
    """Charges are Razorpay orders; the checkout widget only needs the order id,
    so it doubles as the client secret."""

    def __init__(self, key_id: str, key_secret: str, webhook_secret: Optional[str] = None,
                 timeout: float = settings.GATEWAY_TIMEOUT_SECONDS, currency: str = settings.CURRENCY):
        self.client = razorpay.Client(auth=(key_id, key_secret))
        self.webhook_secret = webhook_secret
        self.timeout = timeout
        self.currency = currency

    def create_charge(self, amount_cents: int, metadata: Dict[str, Any]) -> ChargeResult:
        correlation_id = uuid.uuid4().hex
        data = {
            "amount": amount_cents,
            "currency": self.currency,
            "receipt": str(metadata.get("order_id", correlation_id)),
            "notes": {key: str(value) for key, value in metadata.items()},
        }
        try:
            order = self.client.order.create(data=data, timeout=self.timeout)
        except (razorpay.errors.BadRequestError,
                razorpay.errors.GatewayError,
                razorpay.errors.ServerError,
                requests.RequestException) as exc:
            logger.error("Razorpay order creation failed [correlation_id=%s]: %s", correlation_id, exc)
            raise PaymentGatewayError("Payment provider is unavailable, please try again", correlation_id) from exc

        logger.info("Razorpay order %s created [correlation_id=%s]", order["id"], correlation_id)
        return ChargeResult(charge_ref=order["id"], client_secret=order["id"])

    def verify_webhook(self, body: bytes, signature: str) -> None:
        if not self.webhook_secret:
            raise ValidationError("Webhook secret is not configured")
        try:
            self.client.utility.verify_webhook_signature(body.decode("utf-8"), signature, self.webhook_secret)
        except razorpay.errors.SignatureVerificationError as exc:
            logger.warning("Rejected webhook with bad signature")
            raise ValidationError("Invalid webhook signature") from exc


def parse_webhook(body: bytes, event_id: str) -> Optional[GatewayEvent]:
    """Map a Razorpay webhook body to a ``GatewayEvent``; ``None`` for events we ignore"""
    try:
        payload = json.loads(body)
    except ValueError as exc:
        raise ValidationError("Webhook body is not valid JSON") from exc

    event_type = payload.get("event", "")
    if event_type in SUCCEEDED_EVENTS:
        outcome = "succeeded"
    elif event_type in FAILED_EVENTS:
        outcome = "failed"
    else:
        return None

    entities = payload.get("payload", {})
    payment = entities.get("payment", {}).get("entity", {})
    order = entities.get("order", {}).get("entity", {})
    charge_ref = order.get("id") or payment.get("order_id")
    if not charge_ref:
        raise ValidationError("Webhook does not reference an order")

    return GatewayEvent(
        event_id=event_id,
        event_type=event_type,
        charge_ref=charge_ref,
        outcome=outcome,
        failure_reason=payment.get("error_description"),
        payload=payload,
    )


@lru_cache(maxsize=1)
def get_payment_gateway() -> Optional[PaymentGateway]:
    """Return the cached gateway client, or None when Razorpay keys are not set.

    Free orders never touch the gateway, so the service runs without keys.
    """
    if not settings.RAZORPAY_KEY_ID or not settings.RAZORPAY_KEY_SECRET:
        return None
    return RazorpayGateway(
        settings.RAZORPAY_KEY_ID,
        settings.RAZORPAY_KEY_SECRET,
        webhook_secret=settings.RAZORPAY_WEBHOOK_SECRET,
    )
