"""
Tests for joining, listing, cancelling and converting waitlist entries
"""

import pytest

from app.core.db import transaction
from app.core.errors import InvalidStateTransitionError, PermissionDeniedError, ValidationError
from app.models import ActivityLog, Order, Product
from app.models.enums import ActivityAction, OrderStatus, WaitlistStatus
from app.schemas.waitlist import WaitlistJoin
from app.services.waitlist_service import WaitlistService


@pytest.fixture
def host(make_user):
    return make_user("host@example.com", "Hana", "Host")


def join(db, event, email="hopeful@example.com", **kwargs):
    with transaction(db):
        return WaitlistService.join(WaitlistJoin(event_id=event.id, email=email, **kwargs), None, db)


def test_join_creates_waiting_entry(db_session, event, make_table, host):
    table = make_table(host, name="Wishful")
    entry = join(db_session, event, quantity=2, table_id=table.id, first_name="Wren")
    assert entry.status == WaitlistStatus.WAITING
    assert entry.quantity == 2
    assert entry.user.first_name == "Wren"
    assert entry.email == "hopeful@example.com"


def test_join_checks_quantity(db_session, event):
    with pytest.raises(ValidationError):
        join(db_session, event, quantity=500)


def test_list_entries_filters(db_session, event, admin, host, actor_for):
    first = join(db_session, event, email="a@example.com")
    join(db_session, event, email="b@example.com")
    with transaction(db_session):
        WaitlistService.cancel(first.id, admin, db_session)

    assert len(WaitlistService.list_entries(admin, db_session, event_id=event.id)) == 2
    waiting = WaitlistService.list_entries(admin, db_session, status=WaitlistStatus.WAITING)
    assert [entry.email for entry in waiting] == ["b@example.com"]

    with pytest.raises(PermissionDeniedError):
        WaitlistService.list_entries(actor_for(host), db_session)


def test_cancel_is_logged_and_final(db_session, event, admin):
    entry = join(db_session, event)
    with transaction(db_session):
        WaitlistService.cancel(entry.id, admin, db_session)
    assert entry.status == WaitlistStatus.CANCELLED

    log = db_session.query(ActivityLog).filter(ActivityLog.action == ActivityAction.ADMIN_OVERRIDE).one()
    assert log.details == {"operation": "cancel_waitlist_entry", "email": "hopeful@example.com"}

    with pytest.raises(InvalidStateTransitionError):
        with transaction(db_session):
            WaitlistService.cancel(entry.id, admin, db_session)
    with pytest.raises(InvalidStateTransitionError):
        with transaction(db_session):
            WaitlistService.convert(entry.id, admin, db_session)


def test_convert_creates_invitation(db_session, event, products, admin):
    entry = join(db_session, event, quantity=3)
    with transaction(db_session):
        order = WaitlistService.convert(entry.id, admin, db_session)

    assert order.status == OrderStatus.AWAITING_PAYMENT
    assert order.is_admin_created is True
    assert order.quantity == 3
    assert order.amount_cents == 30000
    assert order.product_id == products["ticket"].id
    assert entry.status == WaitlistStatus.CONVERTED
    assert entry.converted_order_id == order.id

    log = db_session.query(ActivityLog).filter(ActivityLog.action == ActivityAction.WAITLIST_CONVERTED).one()
    assert log.details == {"email": "hopeful@example.com", "quantity": 3, "order_id": order.id}

    with pytest.raises(InvalidStateTransitionError):
        with transaction(db_session):
            WaitlistService.convert(entry.id, admin, db_session)
    assert db_session.query(Order).count() == 1


def test_convert_needs_ticket_on_sale(db_session, event, products, admin):
    entry = join(db_session, event)
    with transaction(db_session):
        db_session.query(Product).update({Product.is_active: False}, synchronize_session=False)

    with pytest.raises(ValidationError):
        with transaction(db_session):
            WaitlistService.convert(entry.id, admin, db_session)
    db_session.refresh(entry)
    assert entry.status == WaitlistStatus.WAITING


def test_convert_is_admin_only(db_session, event, products, host, actor_for):
    entry = join(db_session, event)
    with pytest.raises(PermissionDeniedError):
        WaitlistService.convert(entry.id, actor_for(host), db_session)
