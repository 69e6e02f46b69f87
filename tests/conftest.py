"""
Shared fixtures: a throwaway SQLite database, an event with products, and
factories for users, tables and orders
"""

import pytest
from datetime import datetime
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.db import Base
from app.core.errors import PaymentGatewayError, ValidationError
from app.models import Order
from app.models.enums import OrderStatus, ProductKind, ProductTier, TableType
from app.schemas.event import EventCreate, OrganizationCreate, ProductCreate
from app.services.event_service import EventService
from app.services.payment_gateway import ChargeResult, PaymentGateway
from app.services.permission_service import Actor
from app.services.repositories import UserRepo
from app.services.table_service import TableService

# Test database setup
SQLALCHEMY_DATABASE_URL = "sqlite:///./test_table_seating.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

ADMIN = Actor(id="admin", is_admin=True)


class FakeGateway(PaymentGateway):
    """Records charges instead of calling the provider"""

    def __init__(self, fail=False):
        self.fail = fail
        self.charges = []

    def create_charge(self, amount_cents, metadata):
        if self.fail:
            raise PaymentGatewayError("Payment provider is unavailable, please try again", "test-correlation")
        charge_ref = f"order_test_{len(self.charges) + 1}"
        self.charges.append({"charge_ref": charge_ref, "amount_cents": amount_cents, "metadata": metadata})
        return ChargeResult(charge_ref=charge_ref, client_secret=charge_ref)

    def verify_webhook(self, body, signature):
        if signature != "valid-signature":
            raise ValidationError("Invalid webhook signature")


@pytest.fixture
def db_session():
    """Create test database session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db_session):
    """Independent sessions for concurrency tests"""
    return TestingSessionLocal


@pytest.fixture
def admin():
    return ADMIN


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def failing_gateway():
    return FakeGateway(fail=True)


@pytest.fixture
def organization(db_session):
    org = EventService.create_organization(OrganizationCreate(name="Harbour Foundation", slug="harbour"), ADMIN, db_session)
    db_session.commit()
    return org


@pytest.fixture
def event(db_session, organization):
    """An event with tickets on sale"""
    event = EventService.create_event(
        EventCreate(
            organization_id=organization.id,
            name="Spring Gala",
            slug="spring-gala",
            event_date=datetime(2025, 5, 17, 19, 0),
            venue_name="Harbour Hall",
            tickets_on_sale=True,
        ),
        ADMIN,
        db_session,
    )
    db_session.commit()
    return event


@pytest.fixture
def products(db_session, event):
    created = {
        "ticket": EventService.add_product(
            event.id, ProductCreate(name="Ticket", kind=ProductKind.INDIVIDUAL_TICKET, price_cents=10000),
            ADMIN, db_session,
        ),
        "vip_ticket": EventService.add_product(
            event.id,
            ProductCreate(name="VIP Ticket", kind=ProductKind.INDIVIDUAL_TICKET, tier=ProductTier.VIP, price_cents=25000),
            ADMIN, db_session,
        ),
        "full_table": EventService.add_product(
            event.id, ProductCreate(name="Full Table", kind=ProductKind.FULL_TABLE, price_cents=100000),
            ADMIN, db_session,
        ),
        "captain": EventService.add_product(
            event.id, ProductCreate(name="Table Captain", kind=ProductKind.CAPTAIN_COMMITMENT, price_cents=0),
            ADMIN, db_session,
        ),
    }
    db_session.commit()
    return created


@pytest.fixture
def make_user(db_session):
    def _make(email, first_name=None, last_name=None):
        user = UserRepo.find_or_create(db_session, email, first_name=first_name, last_name=last_name)
        db_session.commit()
        return user
    return _make


@pytest.fixture
def actor_for():
    def _actor(user):
        return Actor(id=f"user:{user.id}", self_id=user.id)
    return _actor


@pytest.fixture
def make_table(db_session, event):
    def _make(owner, name="Table", table_type=TableType.PREPAID, capacity=10, **kwargs):
        table = TableService.create_table(event, owner, name, table_type, ADMIN, db_session, capacity=capacity, **kwargs)
        db_session.commit()
        return table
    return _make


@pytest.fixture
def make_order(db_session, event, products):
    """Insert an order directly, bypassing checkout"""
    def _make(buyer, table=None, quantity=1, status=OrderStatus.COMPLETED, amount_cents=0, product=None):
        order = Order(
            event_id=event.id,
            product_id=(product or products["ticket"]).id,
            table_id=table.id if table else None,
            user_id=buyer.id,
            quantity=quantity,
            amount_cents=amount_cents,
            status=status,
        )
        db_session.add(order)
        db_session.commit()
        return order
    return _make
