"""
Human-readable reference codes backed by per-scope counters.

Guest codes look like ``G0001`` and are unique per organization; table codes
look like ``25-T001`` (two-digit event year, then a per-event sequence).
Numbers come from ``ReferenceSequence`` rows incremented with a single
UPDATE, so two concurrent requests can never mint the same value.
Values are never reused.
"""

import re
from datetime import datetime
from typing import Tuple

from sqlalchemy.orm import Session

from app.core.errors import ValidationError
from app.models import ReferenceSequence

GUEST_CODE_RE = re.compile(r"^G(\d{4,})$")
TABLE_CODE_RE = re.compile(r"^(\d{2})-T(\d{3,})$")


def guest_scope(organization_id: int) -> str:
    return f"guest:org:{organization_id}"


def table_scope(event_id: int) -> str:
    return f"table:event:{event_id}"


def format_guest_code(value: int) -> str:
    return f"G{value:04d}"


def parse_guest_code(code: str) -> int:
    match = GUEST_CODE_RE.match(code or "")
    if not match:
        raise ValidationError(f"Invalid guest reference code: {code!r}")
    return int(match.group(1))


def format_table_code(event_date: datetime, value: int) -> str:
    return f"{event_date.year % 100:02d}-T{value:03d}"


def parse_table_code(code: str) -> Tuple[int, int]:
    """Return ``(two_digit_year, sequence)`` for a table code."""
    match = TABLE_CODE_RE.match(code or "")
    if not match:
        raise ValidationError(f"Invalid table reference code: {code!r}")
    return int(match.group(1)), int(match.group(2))


class ReferenceCodeService:
    """Atomic counters for reference codes"""

    @staticmethod
    def ensure_scope(scope: str, db: Session) -> None:
        """Create the counter row for a scope if it does not exist yet"""
        if db.get(ReferenceSequence, scope) is None:
            db.add(ReferenceSequence(scope=scope, last_value=0))
            db.flush()

    @staticmethod
    def next_value(scope: str, db: Session) -> int:
        updated = (
            db.query(ReferenceSequence)
            .filter(ReferenceSequence.scope == scope)
            .update(
                {ReferenceSequence.last_value: ReferenceSequence.last_value + 1},
                synchronize_session=False,
            )
        )
        if not updated:
            db.add(ReferenceSequence(scope=scope, last_value=1))
            db.flush()
            return 1
        return (
            db.query(ReferenceSequence.last_value)
            .filter(ReferenceSequence.scope == scope)
            .scalar()
        )

    @staticmethod
    def next_guest_code(organization_id: int, db: Session) -> str:
        return format_guest_code(ReferenceCodeService.next_value(guest_scope(organization_id), db))

    @staticmethod
    def next_table_code(event_id: int, event_date: datetime, db: Session) -> str:
        return format_table_code(event_date, ReferenceCodeService.next_value(table_scope(event_id), db))
