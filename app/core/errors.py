"""
Domain error taxonomy.

Every error carries a stable ``ErrorCode`` so callers can branch on the cause
(sold out vs. code expired vs. not allowed) and an HTTP status used by the
exception handler in ``main.py``.
"""

from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    """Domain error codes."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    NO_AVAILABLE_SEAT = "NO_AVAILABLE_SEAT"
    PROMO_NOT_FOUND = "PROMO_NOT_FOUND"
    PROMO_INACTIVE = "PROMO_INACTIVE"
    PROMO_NOT_YET_VALID = "PROMO_NOT_YET_VALID"
    PROMO_EXPIRED = "PROMO_EXPIRED"
    PROMO_EXHAUSTED = "PROMO_EXHAUSTED"
    DUPLICATE_ASSIGNMENT = "DUPLICATE_ASSIGNMENT"
    INVALID_STATE_TRANSITION = "INVALID_STATE_TRANSITION"
    ORDER_NOT_COMPLETED = "ORDER_NOT_COMPLETED"
    PAYMENT_LINK_EXPIRED = "PAYMENT_LINK_EXPIRED"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    PAYMENT_NOT_REFUNDED = "PAYMENT_NOT_REFUNDED"
    PAYMENT_GATEWAY_ERROR = "PAYMENT_GATEWAY_ERROR"


class DomainError(Exception):
    """Base domain error with code and user-safe message."""

    code: ErrorCode = ErrorCode.VALIDATION_ERROR
    status_code: int = 400

    def __init__(self, message: str, details: Optional[Any] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class ValidationError(DomainError):
    """Malformed or rule-breaking input. Never retried."""


class NotFoundError(DomainError):
    code = ErrorCode.NOT_FOUND
    status_code = 404

    def __init__(self, resource: str, identifier: Any = None) -> None:
        super().__init__(f"{resource} not found", details={"resource": resource, "id": identifier})
        self.resource = resource


class CapacityExceededError(DomainError):
    """Seat reservation would exceed table capacity."""

    code = ErrorCode.CAPACITY_EXCEEDED
    status_code = 409

    def __init__(self, requested: int, available: int, message: Optional[str] = None) -> None:
        super().__init__(
            message or f"Only {available} seat(s) available, {requested} requested",
            details={"requested": requested, "available": available},
        )
        self.requested = requested
        self.available = available


class NoAvailableSeatError(CapacityExceededError):
    """The order has no placeholder seat left to name."""

    code = ErrorCode.NO_AVAILABLE_SEAT

    def __init__(self, order_id: int) -> None:
        super().__init__(1, 0, message="No available seats on this order")
        self.details = {"order_id": order_id}


class PromoFailureReason(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    INACTIVE = "INACTIVE"
    NOT_YET_VALID = "NOT_YET_VALID"
    EXPIRED = "EXPIRED"
    EXHAUSTED = "EXHAUSTED"


_PROMO_MESSAGES = {
    PromoFailureReason.NOT_FOUND: (ErrorCode.PROMO_NOT_FOUND, "Invalid promo code"),
    PromoFailureReason.INACTIVE: (ErrorCode.PROMO_INACTIVE, "Promo code is no longer active"),
    PromoFailureReason.NOT_YET_VALID: (ErrorCode.PROMO_NOT_YET_VALID, "Promo code is not yet valid"),
    PromoFailureReason.EXPIRED: (ErrorCode.PROMO_EXPIRED, "Promo code has expired"),
    PromoFailureReason.EXHAUSTED: (ErrorCode.PROMO_EXHAUSTED, "Promo code usage limit reached"),
}


class PromoCodeError(DomainError):
    """Promo code rejected; ``reason`` says why."""

    def __init__(self, reason: PromoFailureReason, code_text: Optional[str] = None) -> None:
        error_code, message = _PROMO_MESSAGES[reason]
        super().__init__(message, details={"reason": reason.value, "code": code_text})
        self.code = error_code
        self.reason = reason


class DuplicateAssignmentError(DomainError):
    code = ErrorCode.DUPLICATE_ASSIGNMENT
    status_code = 409

    def __init__(self, user_id: int, table_id: Optional[int]) -> None:
        super().__init__(
            "This guest already has a seat at this table",
            details={"user_id": user_id, "table_id": table_id},
        )


class InvalidStateTransitionError(DomainError):
    code = ErrorCode.INVALID_STATE_TRANSITION
    status_code = 409

    def __init__(self, current: Any, target: Any, message: Optional[str] = None) -> None:
        current_value = getattr(current, "value", current)
        target_value = getattr(target, "value", target)
        super().__init__(
            message or f"Cannot move order from {current_value} to {target_value}",
            details={"from": current_value, "to": target_value},
        )
        self.current = current
        self.target = target


class OrderNotCompletedError(InvalidStateTransitionError):
    code = ErrorCode.ORDER_NOT_COMPLETED

    def __init__(self, current: Any) -> None:
        super().__init__(current, "COMPLETED", message="Cannot assign guest to incomplete order")


class PaymentLinkExpiredError(InvalidStateTransitionError):
    code = ErrorCode.PAYMENT_LINK_EXPIRED
    status_code = 410

    def __init__(self, current: Any) -> None:
        super().__init__(current, "PENDING", message="Payment link has expired")


class PermissionDeniedError(DomainError):
    """Actor lacks ``capability``."""

    code = ErrorCode.PERMISSION_DENIED
    status_code = 403

    def __init__(self, capability: str, reason: Optional[str] = None) -> None:
        super().__init__(
            reason or f"Not allowed to {capability.replace('_', ' ')}",
            details={"capability": capability},
        )
        self.capability = capability


class PaymentNotRefundedError(DomainError):
    code = ErrorCode.PAYMENT_NOT_REFUNDED
    status_code = 409

    def __init__(self, order_id: int) -> None:
        super().__init__(
            "Guest holds a paid seat; refund the order or ask an admin to remove them",
            details={"order_id": order_id},
        )


class PaymentGatewayError(DomainError):
    """Upstream gateway failure; ``correlation_id`` ties logs to the attempt."""

    code = ErrorCode.PAYMENT_GATEWAY_ERROR
    status_code = 502

    def __init__(self, message: str, correlation_id: str) -> None:
        super().__init__(message, details={"correlation_id": correlation_id})
        self.correlation_id = correlation_id
