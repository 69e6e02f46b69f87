"""
Tests for seat capacity accounting and reservations
"""

import threading

import pytest

from app.core.db import transaction
from app.core.errors import CapacityExceededError, ValidationError
from app.models import Order
from app.models.enums import OrderStatus, TableStatus
from app.schemas.common import PersonRef
from app.services.capacity_service import CapacityService
from app.services.guest_service import GuestService


@pytest.fixture
def host(make_user):
    return make_user("host@example.com", "Hana", "Host")


@pytest.fixture
def table(make_table, host):
    return make_table(host, name="Table One", capacity=10)


def _reserve_order(db, table_id, event_id, product_id, buyer_id, quantity):
    """Reserve seats and write the consuming order in one transaction"""
    with transaction(db):
        CapacityService.reserve_seats(table_id, quantity, db)
        order = Order(
            event_id=event_id,
            product_id=product_id,
            table_id=table_id,
            user_id=buyer_id,
            quantity=quantity,
            amount_cents=0,
            status=OrderStatus.PENDING,
        )
        db.add(order)
    return order


def test_capacity_round_trip(db_session, table, event, products, host):
    """Fill a table of 10, fail the 11th seat, free one and take it again"""
    orders = [_reserve_order(db_session, table.id, event.id, products["ticket"].id, host.id, 1) for _ in range(10)]
    assert CapacityService.available_seats(table, db_session) == 0

    with pytest.raises(CapacityExceededError) as exc_info:
        _reserve_order(db_session, table.id, event.id, products["ticket"].id, host.id, 1)
    assert exc_info.value.available == 0
    assert db_session.query(Order).count() == 10

    with transaction(db_session):
        orders[0].status = OrderStatus.CANCELLED
    assert CapacityService.available_seats(table, db_session) == 1

    _reserve_order(db_session, table.id, event.id, products["ticket"].id, host.id, 1)
    assert CapacityService.available_seats(table, db_session) == 0


def test_only_holding_statuses_consume_capacity(db_session, table, make_order, host):
    make_order(host, table, quantity=3, status=OrderStatus.COMPLETED)
    make_order(host, table, quantity=2, status=OrderStatus.PENDING)
    make_order(host, table, quantity=4, status=OrderStatus.AWAITING_PAYMENT)
    make_order(host, table, quantity=4, status=OrderStatus.CANCELLED)
    make_order(host, table, quantity=4, status=OrderStatus.EXPIRED)

    assert CapacityService.reserved_seats(table.id, db_session) == 5
    assert CapacityService.available_seats(table, db_session) == 5


def test_refunded_order_frees_capacity_but_named_guests_stay(db_session, table, make_order, make_user, host):
    order = make_order(host, table, quantity=4)
    guest = make_user("guest@example.com")
    with transaction(db_session):
        GuestService.create_assignment(order, table.id, guest, None, db_session)

    with transaction(db_session):
        order.status = OrderStatus.REFUNDED

    # The refunded order's 4 seats are released; its named guest still sits there
    assert CapacityService.reserved_seats(table.id, db_session) == 0
    assert CapacityService.borrowed_seats(table.id, db_session) == 1
    assert CapacityService.available_seats(table, db_session) == 9


def test_reserve_more_than_available_is_rejected(db_session, table, make_order, host):
    make_order(host, table, quantity=7)
    with pytest.raises(CapacityExceededError) as exc_info:
        CapacityService.reserve_seats(table.id, 4, db_session)
    assert exc_info.value.requested == 4
    assert exc_info.value.available == 3
    db_session.rollback()


def test_reserve_on_closed_table_is_rejected(db_session, table):
    with transaction(db_session):
        table.status = TableStatus.CLOSED
    with pytest.raises(ValidationError):
        CapacityService.reserve_seats(table.id, 1, db_session)
    db_session.rollback()


def test_reserve_zero_seats_is_rejected(db_session, table):
    with pytest.raises(ValidationError):
        CapacityService.reserve_seats(table.id, 0, db_session)


def test_placeholder_seats(db_session, table, make_order, make_user, host, admin):
    order = make_order(host, table, quantity=4)
    assert CapacityService.placeholder_seats(order, db_session) == 4

    for email in ("a@example.com", "b@example.com"):
        with transaction(db_session):
            GuestService.add_guest(order.id, PersonRef(email=email), admin, db_session)
    assert CapacityService.placeholder_seats(order, db_session) == 2


def test_guest_reassigned_in_borrows_a_seat(db_session, make_table, make_order, make_user, host, admin):
    home = make_table(host, name="Home", capacity=4)
    other = make_table(host, name="Other", capacity=4)
    order = make_order(host, home, quantity=2)
    with transaction(db_session):
        assignment = GuestService.add_guest(order.id, PersonRef(email="mover@example.com"), admin, db_session)

    with transaction(db_session):
        GuestService.reassign_guest(assignment.id, other.id, admin, db_session)

    assert CapacityService.borrowed_seats(other.id, db_session) == 1
    assert CapacityService.available_seats(other, db_session) == 3
    # The home table keeps the order's seats
    assert CapacityService.available_seats(home, db_session) == 2


def test_table_summary_counts(db_session, table, make_order, make_user, host, admin):
    order = make_order(host, table, quantity=3)
    with transaction(db_session):
        assignment = GuestService.add_guest(order.id, PersonRef(email="seated@example.com"), admin, db_session)
    with transaction(db_session):
        GuestService.check_in(assignment.id, admin, db_session)

    summary = CapacityService.table_summary(table, db_session)
    assert summary["capacity"] == 10
    assert summary["reserved"] == 3
    assert summary["available"] == 7
    assert summary["assigned"] == 1
    assert summary["placeholders"] == 2
    assert summary["checked_in"] == 1
    assert summary["guests"][0]["reference_code"] == "G0001"


def test_concurrent_reservations_never_oversell(db_session, session_factory, table, event, products, host):
    """Eight buyers race for the last three seats"""
    table_id = table.id
    ids = (event.id, products["ticket"].id, host.id)
    db_session.close()

    results = []
    lock = threading.Lock()
    start = threading.Barrier(8)

    def buy():
        db = session_factory()
        try:
            start.wait()
            _reserve_order(db, table_id, *ids, 1)
            outcome = "ok"
        except CapacityExceededError:
            outcome = "full"
        finally:
            db.close()
        with lock:
            results.append(outcome)

    # Seven seats already taken
    seed = session_factory()
    try:
        _reserve_order(seed, table_id, *ids, 7)
    finally:
        seed.close()

    threads = [threading.Thread(target=buy) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results.count("ok") == 3
    assert results.count("full") == 5

    check = session_factory()
    try:
        assert CapacityService.reserved_seats(table_id, check) == 10
    finally:
        check.close()
