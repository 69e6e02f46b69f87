"""
Table and table role models
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, Enum, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from app.core.db import Base
from app.models.enums import TableRole, TableStatus, TableType

class Table(Base):
    __tablename__ = "tables"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    primary_owner_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    name = Column(String(255), nullable=False)
    slug = Column(String(120), nullable=False)
    type = Column(Enum(TableType), nullable=False)
    status = Column(Enum(TableStatus), default=TableStatus.ACTIVE, nullable=False)
    capacity = Column(Integer, nullable=False)
    seat_price_cents = Column(Integer)
    custom_total_price_cents = Column(Integer)
    reference_code = Column(String(20), nullable=False)
    table_number = Column(String(50))  # set from the seating sheet
    welcome_message = Column(Text)
    internal_name = Column(String(255))
    # Bumped on every seat reservation; the UPDATE takes the row lock
    lock_version = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    event = relationship("Event", back_populates="tables")
    primary_owner = relationship("User")
    roles = relationship("TableUserRole", back_populates="table", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("event_id", "slug", name="uq_table_event_slug"),
        UniqueConstraint("event_id", "reference_code", name="uq_table_event_reference"),
    )


class TableUserRole(Base):
    __tablename__ = "table_user_roles"

    id = Column(Integer, primary_key=True, index=True)
    table_id = Column(Integer, ForeignKey("tables.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    role = Column(Enum(TableRole), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    table = relationship("Table", back_populates="roles")
    user = relationship("User")

    __table_args__ = (UniqueConstraint("table_id", "user_id", name="uq_table_user_role"),)
