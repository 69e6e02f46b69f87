"""
Repository layer: lookups shared by the services.

``get`` helpers raise ``NotFoundError`` instead of returning ``None`` so the
services can stay linear.
"""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.errors import NotFoundError, ValidationError
from app.models import Event, GuestAssignment, Order, Organization, Product, Table, User, WaitlistEntry
from app.models.enums import ProductKind


# -------- Organization / event repositories --------

class OrganizationRepo:
    @staticmethod
    def get(db: Session, organization_id: int) -> Organization:
        organization = db.get(Organization, organization_id)
        if not organization:
            raise NotFoundError("Organization", organization_id)
        return organization


class EventRepo:
    @staticmethod
    def get(db: Session, event_id: int) -> Event:
        event = db.get(Event, event_id)
        if not event:
            raise NotFoundError("Event", event_id)
        return event

    @staticmethod
    def get_by_slug(db: Session, organization_id: int, slug: str) -> Optional[Event]:
        return db.query(Event).filter(
            Event.organization_id == organization_id,
            Event.slug == slug,
        ).first()


class ProductRepo:
    @staticmethod
    def get(db: Session, product_id: int) -> Product:
        product = db.get(Product, product_id)
        if not product:
            raise NotFoundError("Product", product_id)
        return product

    @staticmethod
    def first_active(db: Session, event_id: int, kind: ProductKind) -> Optional[Product]:
        return (
            db.query(Product)
            .filter(Product.event_id == event_id, Product.kind == kind, Product.is_active.is_(True))
            .order_by(Product.id)
            .first()
        )


# -------- Table repository --------

class TableRepo:
    @staticmethod
    def get(db: Session, table_id: int) -> Table:
        table = db.get(Table, table_id)
        if not table:
            raise NotFoundError("Table", table_id)
        return table

    @staticmethod
    def get_by_slug(db: Session, event_id: int, slug: str) -> Table:
        table = db.query(Table).filter(Table.event_id == event_id, Table.slug == slug).first()
        if not table:
            raise NotFoundError("Table", slug)
        return table

    @staticmethod
    def slug_taken(db: Session, event_id: int, slug: str) -> bool:
        return db.query(Table.id).filter(Table.event_id == event_id, Table.slug == slug).first() is not None


# -------- Order repository --------

class OrderRepo:
    @staticmethod
    def get(db: Session, order_id: int) -> Order:
        order = db.get(Order, order_id)
        if not order:
            raise NotFoundError("Order", order_id)
        return order

    @staticmethod
    def get_by_charge_ref(db: Session, charge_ref: str) -> Optional[Order]:
        return db.query(Order).filter(Order.gateway_charge_ref == charge_ref).first()

    @staticmethod
    def get_by_token(db: Session, token: str) -> Order:
        order = db.query(Order).filter(Order.payment_link_token == token).first()
        if not order:
            raise NotFoundError("Payment link", None)
        return order


# -------- Waitlist repository --------

class WaitlistRepo:
    @staticmethod
    def get(db: Session, entry_id: int) -> WaitlistEntry:
        entry = db.get(WaitlistEntry, entry_id)
        if not entry:
            raise NotFoundError("Waitlist entry", entry_id)
        return entry


# -------- Guest repository --------

class GuestRepo:
    @staticmethod
    def get(db: Session, assignment_id: int) -> GuestAssignment:
        assignment = db.get(GuestAssignment, assignment_id)
        if not assignment:
            raise NotFoundError("Guest", assignment_id)
        return assignment

    @staticmethod
    def get_by_reference(db: Session, organization_id: int, reference_code: str) -> GuestAssignment:
        assignment = db.query(GuestAssignment).filter(
            GuestAssignment.organization_id == organization_id,
            GuestAssignment.reference_code == reference_code,
        ).first()
        if not assignment:
            raise NotFoundError("Guest", reference_code)
        return assignment

    @staticmethod
    def find_seat(db: Session, event_id: int, table_id: Optional[int], user_id: int) -> Optional[GuestAssignment]:
        query = db.query(GuestAssignment).filter(
            GuestAssignment.event_id == event_id,
            GuestAssignment.user_id == user_id,
        )
        if table_id is None:
            query = query.filter(GuestAssignment.table_id.is_(None))
        else:
            query = query.filter(GuestAssignment.table_id == table_id)
        return query.first()

    @staticmethod
    def list_for_order(db: Session, order_id: int) -> List[GuestAssignment]:
        return db.query(GuestAssignment).filter(
            GuestAssignment.order_id == order_id
        ).order_by(GuestAssignment.id).all()

    @staticmethod
    def list_for_event(db: Session, event_id: int) -> List[GuestAssignment]:
        return db.query(GuestAssignment).filter(
            GuestAssignment.event_id == event_id
        ).order_by(GuestAssignment.reference_code).all()


# -------- User repository --------

class UserRepo:
    @staticmethod
    def get(db: Session, user_id: int) -> User:
        user = db.get(User, user_id)
        if not user:
            raise NotFoundError("User", user_id)
        return user

    @staticmethod
    def get_by_email(db: Session, email: str) -> Optional[User]:
        return db.query(User).filter(User.email == email.strip().lower()).first()

    @staticmethod
    def find_or_create(
        db: Session,
        email: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> User:
        user = UserRepo.get_by_email(db, email)
        if user:
            # Fill gaps, never overwrite what the person entered themselves
            user.first_name = user.first_name or first_name
            user.last_name = user.last_name or last_name
            user.phone = user.phone or phone
            return user
        user = User(email=email.strip().lower(), first_name=first_name, last_name=last_name, phone=phone)
        db.add(user)
        db.flush()
        return user

    @staticmethod
    def resolve_person(db: Session, person) -> User:
        """Resolve a ``PersonRef`` to a user row"""
        if person.user_id is not None:
            return UserRepo.get(db, person.user_id)
        if not person.email:
            raise ValidationError("Either user_id or email is required")
        return UserRepo.find_or_create(
            db,
            str(person.email),
            first_name=person.first_name,
            last_name=person.last_name,
            phone=person.phone,
        )
