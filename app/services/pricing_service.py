"""
Pricing and promo code engine
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.db import utcnow
from app.core.errors import PromoCodeError, PromoFailureReason, ValidationError
from app.models import Product, PromoCode, Table
from app.models.enums import DiscountType, ProductKind

logger = logging.getLogger(__name__)


@dataclass
class TableOverride:
    """Table-level price overrides"""
    capacity: int
    seat_price_cents: Optional[int] = None
    custom_total_price_cents: Optional[int] = None

    @classmethod
    def from_table(cls, table: Table) -> "TableOverride":
        return cls(
            capacity=table.capacity,
            seat_price_cents=table.seat_price_cents,
            custom_total_price_cents=table.custom_total_price_cents,
        )


@dataclass
class PriceQuote:
    unit_cents: int
    subtotal_cents: int
    discount_cents: int
    total_cents: int
    promo_id: Optional[int] = None


def _round_div(numerator: int, denominator: int) -> int:
    """Integer division rounding half up"""
    return (2 * numerator + denominator) // (2 * denominator)


class PricingService:
    """Service for price computation and promo redemption"""

    @staticmethod
    def compute_price(
        base_price_cents: int,
        quantity: int,
        table_override: Optional[TableOverride] = None,
        promo: Optional[PromoCode] = None,
    ) -> PriceQuote:
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")

        unit_cents = base_price_cents
        subtotal_cents = None
        if table_override is not None:
            if table_override.seat_price_cents is not None:
                unit_cents = table_override.seat_price_cents
            elif table_override.custom_total_price_cents is not None:
                unit_cents = _round_div(table_override.custom_total_price_cents, table_override.capacity)
                if quantity == table_override.capacity:
                    # Whole table: charge the agreed total, not the rounded unit times seats
                    subtotal_cents = table_override.custom_total_price_cents
        if subtotal_cents is None:
            subtotal_cents = unit_cents * quantity

        discount_cents = PricingService.compute_discount(subtotal_cents, promo) if promo else 0
        return PriceQuote(
            unit_cents=unit_cents,
            subtotal_cents=subtotal_cents,
            discount_cents=discount_cents,
            total_cents=max(0, subtotal_cents - discount_cents),
            promo_id=promo.id if promo else None,
        )

    @staticmethod
    def compute_discount(subtotal_cents: int, promo: PromoCode) -> int:
        if promo.discount_type == DiscountType.PERCENTAGE:
            percent = min(max(promo.discount_value, 0), 100)
            return _round_div(subtotal_cents * percent, 100)
        return min(max(promo.discount_value, 0), subtotal_cents)

    @staticmethod
    def quote_for_product(
        product: Product,
        quantity: int,
        table: Optional[Table] = None,
        promo: Optional[PromoCode] = None,
    ) -> PriceQuote:
        """Price a checkout for a product, honouring its kind"""
        if product.kind == ProductKind.FULL_TABLE:
            # Product price is the whole-table total
            override = TableOverride(capacity=quantity, custom_total_price_cents=product.price_cents)
            if table is not None and table.custom_total_price_cents is not None:
                override.custom_total_price_cents = table.custom_total_price_cents
            return PricingService.compute_price(product.price_cents, quantity, override, promo)

        override = TableOverride.from_table(table) if table is not None else None
        return PricingService.compute_price(product.price_cents, quantity, override, promo)

    @staticmethod
    def validate_promo(code: str, event_id: int, db: Session, now: Optional[datetime] = None) -> PromoCode:
        """Look up a promo code and check it can be redeemed right now"""
        now = now or utcnow()
        normalized = (code or "").strip().upper()
        promo = db.query(PromoCode).filter(
            PromoCode.event_id == event_id,
            PromoCode.code == normalized,
        ).first()

        if not promo:
            raise PromoCodeError(PromoFailureReason.NOT_FOUND, normalized)
        if not promo.is_active:
            raise PromoCodeError(PromoFailureReason.INACTIVE, normalized)
        if promo.valid_from and now < promo.valid_from:
            raise PromoCodeError(PromoFailureReason.NOT_YET_VALID, normalized)
        if promo.valid_until and now > promo.valid_until:
            raise PromoCodeError(PromoFailureReason.EXPIRED, normalized)
        if promo.max_uses is not None and promo.current_uses >= promo.max_uses:
            raise PromoCodeError(PromoFailureReason.EXHAUSTED, normalized)
        return promo

    @staticmethod
    def redeem_promo(promo: PromoCode, db: Session) -> None:
        """Atomically consume one use of a promo code"""
        updated = (
            db.query(PromoCode)
            .filter(
                PromoCode.id == promo.id,
                or_(PromoCode.max_uses.is_(None), PromoCode.current_uses < PromoCode.max_uses),
            )
            .update({PromoCode.current_uses: PromoCode.current_uses + 1}, synchronize_session=False)
        )
        if not updated:
            logger.warning("Promo %s exhausted at redemption", promo.code)
            raise PromoCodeError(PromoFailureReason.EXHAUSTED, promo.code)
        db.refresh(promo)

    @staticmethod
    def release_promo(promo_id: Optional[int], db: Session) -> None:
        """Give back a use when an order that never completed is cancelled or expires"""
        if promo_id is None:
            return
        db.query(PromoCode).filter(
            PromoCode.id == promo_id,
            PromoCode.current_uses > 0,
        ).update({PromoCode.current_uses: PromoCode.current_uses - 1}, synchronize_session=False)
