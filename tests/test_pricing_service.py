"""
Tests for pricing and promo codes
"""

import pytest
from datetime import datetime, timedelta

from app.core.errors import PromoCodeError, PromoFailureReason, ValidationError
from app.models.enums import DiscountType
from app.schemas.event import PromoCodeCreate
from app.services.event_service import EventService
from app.services.pricing_service import PricingService, TableOverride


@pytest.fixture
def add_promo(db_session, event, admin):
    def _add(code, discount_type=DiscountType.PERCENTAGE, value=20, **kwargs):
        promo = EventService.add_promo_code(
            event.id,
            PromoCodeCreate(code=code, discount_type=discount_type, discount_value=value, **kwargs),
            admin,
            db_session,
        )
        db_session.commit()
        return promo
    return _add


def test_single_use_percentage_promo(db_session, event, add_promo):
    """SAVE20 takes 20% off once and is then used up"""
    add_promo("SAVE20", max_uses=1)

    promo = PricingService.validate_promo("SAVE20", event.id, db_session)
    quote = PricingService.compute_price(10000, 1, promo=promo)
    assert quote.discount_cents == 2000
    assert quote.total_cents == 8000
    PricingService.redeem_promo(promo, db_session)
    db_session.commit()
    assert promo.current_uses == 1

    with pytest.raises(PromoCodeError) as exc_info:
        PricingService.validate_promo("SAVE20", event.id, db_session)
    assert exc_info.value.reason == PromoFailureReason.EXHAUSTED
    assert "usage limit reached" in exc_info.value.message

    # A stale copy that passed validation still cannot redeem
    with pytest.raises(PromoCodeError):
        PricingService.redeem_promo(promo, db_session)


def test_promo_lookup_is_case_insensitive(db_session, event, add_promo):
    add_promo("welcome10", value=10)
    promo = PricingService.validate_promo("  Welcome10 ", event.id, db_session)
    assert promo.code == "WELCOME10"


@pytest.mark.parametrize("setup,lookup,reason", [
    ({"code": "OTHER"}, "MISSING", PromoFailureReason.NOT_FOUND),
    ({"code": "LATE", "valid_until": datetime(2020, 1, 1)}, "LATE", PromoFailureReason.EXPIRED),
    ({"code": "EARLY", "valid_from": datetime(2099, 1, 1)}, "EARLY", PromoFailureReason.NOT_YET_VALID),
])
def test_promo_failure_reasons(db_session, event, add_promo, setup, lookup, reason):
    add_promo(**setup)
    with pytest.raises(PromoCodeError) as exc_info:
        PricingService.validate_promo(lookup, event.id, db_session)
    assert exc_info.value.reason == reason


def test_inactive_promo_is_rejected(db_session, event, add_promo, admin):
    promo = add_promo("PAUSED")
    EventService.set_promo_active(promo.id, False, admin, db_session)
    db_session.commit()
    with pytest.raises(PromoCodeError) as exc_info:
        PricingService.validate_promo("PAUSED", event.id, db_session)
    assert exc_info.value.reason == PromoFailureReason.INACTIVE


def test_promo_validity_window_uses_given_time(db_session, event, add_promo):
    start = datetime(2025, 1, 1)
    add_promo("WINDOW", valid_from=start, valid_until=start + timedelta(days=10))
    assert PricingService.validate_promo("WINDOW", event.id, db_session, now=start + timedelta(days=5))
    with pytest.raises(PromoCodeError):
        PricingService.validate_promo("WINDOW", event.id, db_session, now=start + timedelta(days=11))


def test_release_promo_gives_back_a_use(db_session, event, add_promo):
    promo = add_promo("ONCE", max_uses=1)
    PricingService.redeem_promo(promo, db_session)
    PricingService.release_promo(promo.id, db_session)
    db_session.commit()
    db_session.refresh(promo)
    assert promo.current_uses == 0
    assert PricingService.validate_promo("ONCE", event.id, db_session)


def test_fixed_amount_discount_is_capped_at_subtotal(db_session, add_promo):
    promo = add_promo("BIGFIX", discount_type=DiscountType.FIXED_AMOUNT, value=50000)
    quote = PricingService.compute_price(10000, 2, promo=promo)
    assert quote.subtotal_cents == 20000
    assert quote.discount_cents == 20000
    assert quote.total_cents == 0


def test_percentage_discount_rounds_half_up(db_session, add_promo):
    promo = add_promo("ODD", value=15)
    # 15% of 3333 = 499.95
    assert PricingService.compute_discount(3333, promo) == 500


def test_seat_price_override_wins():
    quote = PricingService.compute_price(10000, 3, TableOverride(capacity=10, seat_price_cents=7500))
    assert quote.unit_cents == 7500
    assert quote.total_cents == 22500


def test_custom_total_for_whole_table_is_exact():
    override = TableOverride(capacity=3, custom_total_price_cents=10000)
    whole = PricingService.compute_price(5000, 3, override)
    assert whole.total_cents == 10000

    partial = PricingService.compute_price(5000, 2, override)
    assert partial.unit_cents == 3333
    assert partial.total_cents == 6666


def test_full_table_product_price_is_the_table_total(products):
    quote = PricingService.quote_for_product(products["full_table"], 10)
    assert quote.total_cents == 100000
    assert quote.unit_cents == 10000


def test_quantity_must_be_positive():
    with pytest.raises(ValidationError):
        PricingService.compute_price(10000, 0)


def test_percentage_over_100_is_refused(event, add_promo):
    with pytest.raises(ValidationError):
        add_promo("TOOMUCH", value=150)
