"""
Tests for naming, moving, transferring and removing guests
"""

import threading
from datetime import datetime

import pytest

from app.core.db import transaction
from app.core.errors import (
    CapacityExceededError,
    DuplicateAssignmentError,
    NoAvailableSeatError,
    NotFoundError,
    OrderNotCompletedError,
    PaymentNotRefundedError,
    PermissionDeniedError,
    ValidationError,
)
from app.models import ActivityLog, GuestAssignment, Order
from app.models.enums import ActivityAction, OrderStatus, ProductTier, TableType
from app.schemas.common import PersonRef
from app.schemas.event import EventCreate
from app.schemas.guest import ClaimSeatRequest, GuestUpdate
from app.services.capacity_service import CapacityService
from app.services.event_service import EventService
from app.services.guest_service import GuestService


@pytest.fixture
def host(make_user):
    return make_user("host@example.com", "Hana", "Host")


@pytest.fixture
def table(make_table, host):
    return make_table(host, name="Harbour Table", capacity=10)


def add(db, order, email, actor, **kwargs):
    with transaction(db):
        return GuestService.add_guest(order.id, PersonRef(email=email), actor, db, **kwargs)


def test_captain_removal_rules_on_payg_table(db_session, make_table, make_order, make_user, host, actor_for):
    """Captain may remove a guest someone else paid for, but not a self-paid guest"""
    table = make_table(host, name="Captain Table", table_type=TableType.CAPTAIN_PAYG, capacity=10)
    friend, invited, self_payer = (
        make_user("friend@example.com"),
        make_user("invited@example.com"),
        make_user("selfpay@example.com"),
    )
    bought_for_other = make_order(friend, table, quantity=2)
    bought_for_self = make_order(self_payer, table, quantity=1)
    with transaction(db_session):
        named = GuestService.create_assignment(bought_for_other, table.id, invited, None, db_session)
        self_paid = GuestService.create_assignment(bought_for_self, table.id, self_payer, None, db_session)

    captain = actor_for(host)
    named_id = named.id
    with transaction(db_session):
        GuestService.remove_guest(named_id, captain, db_session)
    assert db_session.get(GuestAssignment, named_id) is None

    with pytest.raises(PermissionDeniedError):
        with transaction(db_session):
            GuestService.remove_guest(self_paid.id, captain, db_session)
    assert db_session.get(GuestAssignment, self_paid.id) is not None


def test_captain_cannot_remove_guest_paid_for_by_friend(db_session, make_table, make_order, make_user, host, actor_for):
    """A friend's paid order keeps its guest until the friend is refunded"""
    table = make_table(host, name="Captain Table", table_type=TableType.CAPTAIN_PAYG, capacity=10)
    friend, invited = make_user("friend@example.com"), make_user("invited@example.com")
    paid_by_friend = make_order(friend, table, quantity=2, amount_cents=20000)
    with transaction(db_session):
        named = GuestService.create_assignment(paid_by_friend, table.id, invited, None, db_session)
    named_id = named.id

    with pytest.raises(PaymentNotRefundedError):
        with transaction(db_session):
            GuestService.remove_guest(named_id, actor_for(host), db_session)
    assert db_session.get(GuestAssignment, named_id) is not None


def test_removing_guest_keeps_order_quantity_and_amount(db_session, table, make_order, host, admin):
    order = make_order(host, table, quantity=4, amount_cents=40000)
    first = add(db_session, order, "one@example.com", admin)
    first_id = first.id
    add(db_session, order, "two@example.com", admin)
    assert CapacityService.placeholder_seats(order, db_session) == 2

    with transaction(db_session):
        GuestService.remove_guest(first_id, admin, db_session)

    db_session.refresh(order)
    assert order.quantity == 4
    assert order.amount_cents == 40000
    assert CapacityService.placeholder_seats(order, db_session) == 3

    # Removing a paid guest as admin is logged as an override
    actions = [row.action for row in db_session.query(ActivityLog).filter(ActivityLog.entity_id == first_id)]
    assert ActivityAction.ADMIN_OVERRIDE in actions
    assert ActivityAction.GUEST_REMOVED in actions


def test_host_cannot_remove_paid_guest_until_refunded(db_session, table, make_order, host, admin, actor_for):
    order = make_order(host, table, quantity=2, amount_cents=20000)
    guest = add(db_session, order, "paid@example.com", actor_for(host))
    guest_id = guest.id

    with pytest.raises(PaymentNotRefundedError):
        with transaction(db_session):
            GuestService.remove_guest(guest.id, actor_for(host), db_session)

    with transaction(db_session):
        order.status = OrderStatus.REFUNDED
    with transaction(db_session):
        GuestService.remove_guest(guest_id, actor_for(host), db_session)
    assert db_session.get(GuestAssignment, guest_id) is None


def test_reference_codes_are_sequential_per_organization(db_session, make_table, make_order, host, admin):
    first_table = make_table(host, name="First")
    second_table = make_table(host, name="Second")
    first_order = make_order(host, first_table, quantity=2)
    second_order = make_order(host, second_table, quantity=1)

    codes = [
        add(db_session, first_order, "a@example.com", admin).reference_code,
        add(db_session, second_order, "b@example.com", admin).reference_code,
        add(db_session, first_order, "c@example.com", admin).reference_code,
    ]
    assert codes == ["G0001", "G0002", "G0003"]
    assert first_table.reference_code == "25-T001"
    assert second_table.reference_code == "25-T002"


def test_reference_codes_are_not_reused(db_session, table, make_order, host, admin):
    order = make_order(host, table, quantity=2)
    first = add(db_session, order, "a@example.com", admin)
    with transaction(db_session):
        GuestService.remove_guest(first.id, admin, db_session)
    second = add(db_session, order, "b@example.com", admin)
    assert second.reference_code == "G0002"


def test_duplicate_seat_is_rejected(db_session, table, make_order, host, admin):
    order = make_order(host, table, quantity=3)
    add(db_session, order, "twice@example.com", admin)
    with pytest.raises(DuplicateAssignmentError):
        add(db_session, order, "TWICE@example.com", admin)


def test_guest_needs_completed_order(db_session, table, make_order, host, admin):
    order = make_order(host, table, quantity=2, status=OrderStatus.PENDING)
    with pytest.raises(OrderNotCompletedError):
        add(db_session, order, "early@example.com", admin)


def test_no_placeholder_left(db_session, table, make_order, host, admin):
    order = make_order(host, table, quantity=1)
    add(db_session, order, "only@example.com", admin)
    with pytest.raises(NoAvailableSeatError):
        add(db_session, order, "extra@example.com", admin)
    assert db_session.query(GuestAssignment).filter(GuestAssignment.order_id == order.id).count() == 1


def test_tier_is_snapshotted_from_product(db_session, table, make_order, products, host, admin):
    order = make_order(host, table, quantity=1, product=products["vip_ticket"])
    guest = add(db_session, order, "vip@example.com", admin)
    assert guest.tier == ProductTier.VIP


def test_stranger_cannot_add_guest(db_session, table, make_order, make_user, host, actor_for):
    order = make_order(host, table, quantity=2)
    stranger = make_user("stranger@example.com")
    with pytest.raises(PermissionDeniedError):
        add(db_session, order, "friend@example.com", actor_for(stranger))


def test_seating_away_from_order_table_needs_admin(db_session, make_table, make_order, host, admin, actor_for):
    home = make_table(host, name="Home")
    away = make_table(host, name="Away", capacity=1)
    order = make_order(host, home, quantity=2)

    with pytest.raises(PermissionDeniedError):
        add(db_session, order, "roamer@example.com", actor_for(host), table_id=away.id)

    guest = add(db_session, order, "roamer@example.com", admin, table_id=away.id)
    assert guest.table_id == away.id
    assert CapacityService.available_seats(away, db_session) == 0

    with pytest.raises(CapacityExceededError):
        add(db_session, order, "second@example.com", admin, table_id=away.id)


def test_guest_can_edit_own_details_only(db_session, table, make_order, make_user, host, actor_for):
    order = make_order(host, table, quantity=2)
    guest_user = make_user("self@example.com")
    with transaction(db_session):
        guest = GuestService.create_assignment(order, table.id, guest_user, None, db_session)

    with transaction(db_session):
        GuestService.update_guest(
            guest.id, GuestUpdate(display_name="Sam", dietary=["vegan"]), actor_for(guest_user), db_session,
        )
    assert guest.display_name == "Sam"
    assert guest.dietary == ["vegan"]

    with pytest.raises(PermissionDeniedError):
        with transaction(db_session):
            GuestService.update_guest(guest.id, GuestUpdate(bidder_number="42"), actor_for(guest_user), db_session)

    with transaction(db_session):
        GuestService.update_guest(guest.id, GuestUpdate(bidder_number="42"), actor_for(host), db_session)
    assert guest.bidder_number == "42"


def test_transfer_resets_personal_details(db_session, table, make_order, make_user, host, actor_for):
    order = make_order(host, table, quantity=2)
    original = make_user("original@example.com", "Orla")
    with transaction(db_session):
        guest = GuestService.create_assignment(order, table.id, original, None, db_session, dietary=["halal"])
    code = guest.reference_code

    with transaction(db_session):
        GuestService.transfer_ticket(
            guest.id, PersonRef(email="new@example.com", first_name="Nia"), actor_for(original), db_session,
        )
    assert guest.reference_code == code
    assert guest.order_id == order.id
    assert guest.user.email == "new@example.com"
    assert guest.display_name == "Nia"
    assert guest.dietary == []

    log = db_session.query(ActivityLog).filter(ActivityLog.action == ActivityAction.TICKET_TRANSFERRED).one()
    assert log.details["from_user_id"] == original.id


def test_transfer_can_keep_details(db_session, table, make_order, make_user, host, actor_for):
    order = make_order(host, table, quantity=2)
    original = make_user("keep@example.com")
    with transaction(db_session):
        guest = GuestService.create_assignment(order, table.id, original, None, db_session, dietary=["kosher"])

    with transaction(db_session):
        GuestService.transfer_ticket(
            guest.id, PersonRef(email="heir@example.com"), actor_for(host), db_session, transfer_details=True,
        )
    assert guest.dietary == ["kosher"]


def test_unrelated_user_cannot_transfer(db_session, table, make_order, make_user, host, admin, actor_for):
    order = make_order(host, table, quantity=2)
    guest = add(db_session, order, "holder@example.com", admin)
    outsider = make_user("outsider@example.com")
    with pytest.raises(PermissionDeniedError):
        with transaction(db_session):
            GuestService.transfer_ticket(guest.id, PersonRef(email="x@example.com"), actor_for(outsider), db_session)


def test_reassign_is_admin_only_and_capacity_checked(db_session, make_table, make_order, host, admin, actor_for):
    home = make_table(host, name="Home")
    full = make_table(host, name="Full", capacity=1)
    make_order(host, full, quantity=1)
    order = make_order(host, home, quantity=2)
    guest = add(db_session, order, "moving@example.com", admin)

    with pytest.raises(PermissionDeniedError):
        with transaction(db_session):
            GuestService.reassign_guest(guest.id, full.id, actor_for(host), db_session)

    with pytest.raises(CapacityExceededError):
        with transaction(db_session):
            GuestService.reassign_guest(guest.id, full.id, admin, db_session)

    db_session.refresh(guest)
    assert guest.table_id == home.id


def test_reassign_back_home_does_not_need_a_free_seat(db_session, make_table, make_order, host, admin):
    home = make_table(host, name="Home", capacity=2)
    away = make_table(host, name="Away")
    order = make_order(host, home, quantity=2)
    guest = add(db_session, order, "commuter@example.com", admin)
    with transaction(db_session):
        GuestService.reassign_guest(guest.id, away.id, admin, db_session)
    with transaction(db_session):
        GuestService.reassign_guest(guest.id, home.id, admin, db_session)
    assert guest.table_id == home.id


def test_check_in_is_idempotent(db_session, table, make_order, make_user, host, admin, actor_for):
    order = make_order(host, table, quantity=1)
    guest = add(db_session, order, "arrival@example.com", admin)

    with transaction(db_session):
        first = GuestService.check_in(guest.id, actor_for(host), db_session)
    with transaction(db_session):
        second = GuestService.check_in_by_reference(guest.organization_id, guest.reference_code, actor_for(host), db_session)

    assert first["was_already_checked_in"] is False
    assert second["was_already_checked_in"] is True
    assert db_session.query(ActivityLog).filter(ActivityLog.action == ActivityAction.GUEST_CHECKED_IN).count() == 1


def test_claim_seat_on_prepaid_table(db_session, table, make_order, host, admin):
    order = make_order(host, table, quantity=2)
    add(db_session, order, "host-guest@example.com", admin)

    with transaction(db_session):
        claimed = GuestService.claim_seat(
            table.id, ClaimSeatRequest(email="walkin@example.com", first_name="Wren"), None, db_session,
        )
    assert claimed.order_id == order.id
    assert claimed.display_name == "Wren"

    with pytest.raises(NoAvailableSeatError):
        with transaction(db_session):
            GuestService.claim_seat(table.id, ClaimSeatRequest(email="late@example.com"), None, db_session)


def test_claim_seat_only_on_prepaid_tables(db_session, make_table, make_order, host):
    payg = make_table(host, name="PAYG", table_type=TableType.CAPTAIN_PAYG)
    make_order(host, payg, quantity=2)
    with pytest.raises(ValidationError):
        GuestService.claim_seat(payg.id, ClaimSeatRequest(email="nope@example.com"), None, db_session)


def test_concurrent_claims_fill_only_free_seats(db_session, session_factory, table, make_order, host):
    """Five people race for the last placeholder seat"""
    order = make_order(host, table, quantity=1)
    table_id, order_id = table.id, order.id
    db_session.close()

    results = []
    lock = threading.Lock()
    start = threading.Barrier(5)

    def claim(index):
        db = session_factory()
        try:
            start.wait()
            with transaction(db):
                GuestService.claim_seat(table_id, ClaimSeatRequest(email=f"racer{index}@example.com"), None, db)
            outcome = "ok"
        except NoAvailableSeatError:
            outcome = "full"
        finally:
            db.close()
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=claim, args=(i,)) for i in range(5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(results) == ["full", "full", "full", "full", "ok"]
    check = session_factory()
    try:
        assert check.query(GuestAssignment).filter(GuestAssignment.order_id == order_id).count() == 1
        assert check.get(Order, order_id).quantity == 1
    finally:
        check.close()


def test_bulk_reassign_moves_guests_together(db_session, make_table, make_order, host, admin):
    home = make_table(host, name="Home")
    window = make_table(host, name="Window", capacity=4)
    order = make_order(host, home, quantity=3)
    first = add(db_session, order, "one@example.com", admin)
    second = add(db_session, order, "two@example.com", admin)

    with transaction(db_session):
        moved = GuestService.bulk_reassign([first.id, second.id, first.id], window.id, admin, db_session)

    assert [guest.id for guest in moved] == [first.id, second.id]
    assert {guest.table_id for guest in moved} == {window.id}
    assert CapacityService.available_seats(window, db_session) == 2
    logs = db_session.query(ActivityLog).filter(ActivityLog.action == ActivityAction.GUEST_REASSIGNED).count()
    assert logs == 2


def test_bulk_reassign_is_all_or_nothing(db_session, make_table, make_order, host, admin):
    home = make_table(host, name="Home")
    tiny = make_table(host, name="Tiny", capacity=1)
    order = make_order(host, home, quantity=2)
    guest_ids = [add(db_session, order, f"guest{n}@example.com", admin).id for n in range(2)]

    with pytest.raises(CapacityExceededError):
        with transaction(db_session):
            GuestService.bulk_reassign(guest_ids, tiny.id, admin, db_session)

    tables = {row.table_id for row in db_session.query(GuestAssignment).filter(GuestAssignment.id.in_(guest_ids))}
    assert tables == {home.id}


def test_bulk_reassign_counts_guests_returning_home(db_session, make_table, make_order, host, admin):
    home = make_table(host, name="Home", capacity=2)
    away = make_table(host, name="Away")
    order = make_order(host, home, quantity=2)
    guest_ids = [add(db_session, order, f"guest{n}@example.com", admin).id for n in range(2)]
    with transaction(db_session):
        GuestService.bulk_reassign(guest_ids, away.id, admin, db_session)

    # Home has no free seat, but the order already holds both seats there
    with transaction(db_session):
        moved = GuestService.bulk_reassign(guest_ids, home.id, admin, db_session)
    assert {guest.table_id for guest in moved} == {home.id}


def test_bulk_reassign_can_unassign(db_session, table, make_order, host, admin):
    order = make_order(host, table, quantity=2)
    guest = add(db_session, order, "standing@example.com", admin)
    with transaction(db_session):
        GuestService.bulk_reassign([guest.id], None, admin, db_session)
    assert guest.table_id is None


def test_bulk_reassign_validation(db_session, table, make_order, make_user, host, admin, actor_for):
    order = make_order(host, table, quantity=2)
    guest = add(db_session, order, "local@example.com", admin)

    with pytest.raises(PermissionDeniedError):
        GuestService.bulk_reassign([guest.id], table.id, actor_for(host), db_session)
    with pytest.raises(ValidationError):
        GuestService.bulk_reassign([], table.id, admin, db_session)
    with pytest.raises(NotFoundError):
        GuestService.bulk_reassign([guest.id, 9999], table.id, admin, db_session)

    other_event = EventService.create_event(
        EventCreate(
            organization_id=table.event.organization_id,
            name="Autumn Ball",
            slug="autumn-ball",
            event_date=datetime(2025, 10, 4, 19, 0),
            tickets_on_sale=True,
        ),
        admin,
        db_session,
    )
    db_session.flush()
    elsewhere = Order(
        event_id=other_event.id,
        product_id=order.product_id,
        user_id=host.id,
        quantity=1,
        amount_cents=0,
        status=OrderStatus.COMPLETED,
    )
    db_session.add(elsewhere)
    db_session.flush()
    visitor_user = make_user("visitor@example.com")
    with transaction(db_session):
        visitor = GuestService.create_assignment(elsewhere, None, visitor_user, None, db_session)

    with pytest.raises(ValidationError):
        GuestService.bulk_reassign([guest.id, visitor.id], table.id, admin, db_session)
