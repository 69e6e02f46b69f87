"""
Organization, event, product and promo code setup (admin only)
"""

import logging
from typing import List

from sqlalchemy.orm import Session

from app.core.errors import NotFoundError, ValidationError
from app.models import Event, GuestAssignment, Order, Organization, Product, PromoCode, Table, TableUserRole
from app.models.enums import ActivityAction, DiscountType, EntityType
from app.services.audit_service import AuditService
from app.services.permission_service import Actor, PermissionService
from app.services.reference_codes import ReferenceCodeService, guest_scope, table_scope
from app.services.repositories import EventRepo, OrganizationRepo

logger = logging.getLogger(__name__)


class EventService:
    """Service for event setup"""

    @staticmethod
    def create_organization(data, actor: Actor, db: Session) -> Organization:
        PermissionService.require_admin(actor, "create organizations")
        if db.query(Organization.id).filter(Organization.slug == data.slug).first():
            raise ValidationError(f"Organization slug '{data.slug}' is already in use")

        organization = Organization(name=data.name, slug=data.slug)
        db.add(organization)
        db.flush()
        ReferenceCodeService.ensure_scope(guest_scope(organization.id), db)
        logger.info("Organization %s created", organization.slug)
        return organization

    @staticmethod
    def create_event(data, actor: Actor, db: Session) -> Event:
        PermissionService.require_admin(actor, "create events")
        organization = OrganizationRepo.get(db, data.organization_id)
        if EventRepo.get_by_slug(db, organization.id, data.slug):
            raise ValidationError(f"Event slug '{data.slug}' is already in use")

        event = Event(
            organization_id=organization.id,
            name=data.name,
            slug=data.slug,
            event_date=data.event_date,
            venue_name=data.venue_name,
            tickets_on_sale=data.tickets_on_sale,
        )
        db.add(event)
        db.flush()
        ReferenceCodeService.ensure_scope(table_scope(event.id), db)

        AuditService.record(
            organization.id, ActivityAction.EVENT_CREATED, EntityType.EVENT, event.id, actor, db,
            event_id=event.id, details={"slug": event.slug},
        )
        return event

    @staticmethod
    def update_event(event_id: int, update, actor: Actor, db: Session) -> Event:
        """Administrative fields only; the date is frozen once guests are seated"""
        PermissionService.require_admin(actor, "update events")
        event = EventRepo.get(db, event_id)
        fields = update.model_dump(exclude_unset=True)

        for field in ("name", "event_date", "is_active", "tickets_on_sale"):
            if field in fields and fields[field] is None:
                raise ValidationError(f"{field} cannot be null")
        if "event_date" in fields and fields["event_date"] != event.event_date:
            has_guests = db.query(GuestAssignment.id).filter(GuestAssignment.event_id == event.id).first()
            if has_guests:
                raise ValidationError("Event date cannot change once guests are assigned")

        for field, value in fields.items():
            setattr(event, field, value)
        db.flush()

        AuditService.record(
            event.organization_id, ActivityAction.EVENT_UPDATED, EntityType.EVENT, event.id, actor, db,
            event_id=event.id, details={"fields": sorted(fields)},
        )
        return event

    @staticmethod
    def delete_event(event_id: int, actor: Actor, db: Session) -> None:
        """Delete an event that never took an order"""
        PermissionService.require_admin(actor, "delete events")
        event = EventRepo.get(db, event_id)

        order_count = db.query(Order).filter(Order.event_id == event.id).count()
        if order_count:
            raise ValidationError(
                "Event has orders and cannot be deleted",
                details={"orders": order_count},
            )

        table_ids = [row.id for row in db.query(Table.id).filter(Table.event_id == event.id)]
        if table_ids:
            db.query(TableUserRole).filter(TableUserRole.table_id.in_(table_ids)).delete(synchronize_session=False)
        db.query(Table).filter(Table.event_id == event.id).delete(synchronize_session=False)
        db.query(PromoCode).filter(PromoCode.event_id == event.id).delete(synchronize_session=False)
        db.query(Product).filter(Product.event_id == event.id).delete(synchronize_session=False)

        organization_id, slug = event.organization_id, event.slug
        db.delete(event)
        db.flush()

        AuditService.record(
            organization_id, ActivityAction.EVENT_DELETED, EntityType.EVENT, event_id, actor, db,
            event_id=event_id, details={"slug": slug, "tables_removed": len(table_ids)},
        )

    @staticmethod
    def add_product(event_id: int, data, actor: Actor, db: Session) -> Product:
        PermissionService.require_admin(actor, "add products")
        event = EventRepo.get(db, event_id)
        if db.query(Product.id).filter(Product.event_id == event.id, Product.name == data.name).first():
            raise ValidationError(f"Product '{data.name}' already exists for this event")

        product = Product(
            event_id=event.id,
            name=data.name,
            kind=data.kind,
            tier=data.tier,
            price_cents=data.price_cents,
        )
        db.add(product)
        db.flush()
        return product

    @staticmethod
    def list_products(event_id: int, db: Session, include_inactive: bool = False) -> List[Product]:
        EventRepo.get(db, event_id)
        query = db.query(Product).filter(Product.event_id == event_id)
        if not include_inactive:
            query = query.filter(Product.is_active.is_(True))
        return query.order_by(Product.id).all()

    @staticmethod
    def add_promo_code(event_id: int, data, actor: Actor, db: Session) -> PromoCode:
        PermissionService.require_admin(actor, "add promo codes")
        event = EventRepo.get(db, event_id)
        code = data.code.strip().upper()
        if db.query(PromoCode.id).filter(PromoCode.event_id == event.id, PromoCode.code == code).first():
            raise ValidationError(f"Promo code '{code}' already exists for this event")
        if data.discount_type == DiscountType.PERCENTAGE and data.discount_value > 100:
            raise ValidationError("Percentage discount cannot exceed 100")
        if data.valid_from and data.valid_until and data.valid_until <= data.valid_from:
            raise ValidationError("valid_until must be after valid_from")

        promo = PromoCode(
            event_id=event.id,
            code=code,
            discount_type=data.discount_type,
            discount_value=data.discount_value,
            valid_until=data.valid_until,
            max_uses=data.max_uses,
        )
        if data.valid_from is not None:
            promo.valid_from = data.valid_from
        db.add(promo)
        db.flush()
        return promo

    @staticmethod
    def set_promo_active(promo_id: int, is_active: bool, actor: Actor, db: Session) -> PromoCode:
        PermissionService.require_admin(actor, "update promo codes")
        promo = db.get(PromoCode, promo_id)
        if promo is None:
            raise NotFoundError("Promo code", promo_id)
        promo.is_active = is_active
        db.flush()
        return promo
