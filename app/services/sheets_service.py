"""
Spreadsheet export and override import.

The workbook is a read-only view of tables and guests. On import only two
columns are ever written back: a table's display number and a guest's
auction registration flag.
"""

import io
import logging
from typing import Any, Dict, List, Tuple

import pandas as pd
from sqlalchemy.orm import Session

from app.core.errors import ValidationError
from app.models import GuestAssignment, Table, User
from app.models.enums import ActivityAction, EntityType
from app.services.audit_service import AuditService
from app.services.capacity_service import CapacityService
from app.services.permission_service import Actor, PermissionService
from app.services.repositories import EventRepo

logger = logging.getLogger(__name__)

TABLES_SHEET = "Tables"
GUESTS_SHEET = "Guests"

TRUE_VALUES = {"yes", "y", "true", "1", "x"}
FALSE_VALUES = {"no", "n", "false", "0", ""}


def _normalize_columns(df: pd.DataFrame) -> Dict[str, str]:
    """Map lower-cased, stripped header names to the sheet's own headers"""
    return {str(col).lower().strip(): col for col in df.columns}


def _cell(value: Any) -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


class SheetsService:
    """Service for the seating workbook"""

    REQUIRED_COLUMNS = {
        TABLES_SHEET: ["reference code", "table number"],
        GUESTS_SHEET: ["reference code", "auction registered"],
    }

    @staticmethod
    def export_event(event_id: int, db: Session) -> bytes:
        """Export tables and guests of an event to an xlsx workbook"""
        EventRepo.get(db, event_id)

        tables = db.query(Table).filter(Table.event_id == event_id).order_by(Table.reference_code).all()
        table_rows = []
        for table in tables:
            summary = CapacityService.table_summary(table, db, include_guests=False)
            table_rows.append({
                "Reference Code": table.reference_code,
                "Table Number": table.table_number or "",
                "Name": table.name,
                "Type": table.type.value,
                "Status": table.status.value,
                "Capacity": table.capacity,
                "Reserved": summary["reserved"],
                "Assigned": summary["assigned"],
                "Available": summary["available"],
                "Owner Email": table.primary_owner.email,
            })

        table_codes = {table.id: table for table in tables}
        guests = (
            db.query(GuestAssignment, User)
            .join(User, GuestAssignment.user_id == User.id)
            .filter(GuestAssignment.event_id == event_id)
            .order_by(GuestAssignment.reference_code)
            .all()
        )
        guest_rows = []
        for assignment, user in guests:
            table = table_codes.get(assignment.table_id)
            guest_rows.append({
                "Reference Code": assignment.reference_code,
                "Table Reference": table.reference_code if table else "",
                "Table Number": (table.table_number or "") if table else "",
                "Display Name": assignment.display_name or "",
                "Email": user.email,
                "Tier": assignment.tier.value,
                "Dietary": ", ".join(assignment.dietary or []),
                "Bidder Number": assignment.bidder_number or "",
                "Auction Registered": "Yes" if assignment.auction_registered else "No",
                "Checked In": "Yes" if assignment.checked_in_at else "No",
            })

        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            pd.DataFrame(table_rows, columns=[
                "Reference Code", "Table Number", "Name", "Type", "Status",
                "Capacity", "Reserved", "Assigned", "Available", "Owner Email",
            ]).to_excel(writer, index=False, sheet_name=TABLES_SHEET)
            pd.DataFrame(guest_rows, columns=[
                "Reference Code", "Table Reference", "Table Number", "Display Name", "Email",
                "Tier", "Dietary", "Bidder Number", "Auction Registered", "Checked In",
            ]).to_excel(writer, index=False, sheet_name=GUESTS_SHEET)

        return buffer.getvalue()

    @staticmethod
    def validate_structure(sheets: Dict[str, pd.DataFrame]) -> Tuple[bool, List[str]]:
        """Both sheets present, each with its required columns"""
        errors = []
        for sheet_name, required in SheetsService.REQUIRED_COLUMNS.items():
            if sheet_name not in sheets:
                errors.append(f"Missing sheet: {sheet_name}")
                continue
            columns = _normalize_columns(sheets[sheet_name])
            missing = [col for col in required if col not in columns]
            if missing:
                errors.append(f"{sheet_name}: missing required columns: {', '.join(missing)}")
        return len(errors) == 0, errors

    @staticmethod
    def parse_flag(value: Any) -> bool:
        text = _cell(value).lower()
        if text in TRUE_VALUES:
            return True
        if text in FALSE_VALUES:
            return False
        raise ValueError(f"'{text}' is not a yes/no value")

    @staticmethod
    def import_overrides(file_content: bytes, event_id: int, actor: Actor, db: Session) -> Dict[str, int]:
        """Apply table numbers and auction flags from an edited workbook.

        All other columns are ignored. Rows are matched on reference code;
        unknown codes are reported and nothing is written.
        """
        PermissionService.require_admin(actor, "import seating overrides")
        event = EventRepo.get(db, event_id)

        try:
            sheets = pd.read_excel(io.BytesIO(file_content), sheet_name=None, dtype=object)
        except (ValueError, KeyError, OSError) as exc:
            raise ValidationError(f"Could not read workbook: {exc}") from exc

        valid, errors = SheetsService.validate_structure(sheets)
        if not valid:
            raise ValidationError("Workbook validation failed", details=errors)

        tables = {t.reference_code: t for t in db.query(Table).filter(Table.event_id == event.id)}
        guests = {g.reference_code: g for g in db.query(GuestAssignment).filter(GuestAssignment.event_id == event.id)}

        table_updates = []
        columns = _normalize_columns(sheets[TABLES_SHEET])
        for index, row in sheets[TABLES_SHEET].iterrows():
            code = _cell(row[columns["reference code"]])
            if not code:
                continue
            if code not in tables:
                errors.append(f"{TABLES_SHEET} row {index + 2}: unknown table {code}")
                continue
            table_updates.append((tables[code], _cell(row[columns["table number"]]) or None))

        guest_updates = []
        columns = _normalize_columns(sheets[GUESTS_SHEET])
        for index, row in sheets[GUESTS_SHEET].iterrows():
            code = _cell(row[columns["reference code"]])
            if not code:
                continue
            if code not in guests:
                errors.append(f"{GUESTS_SHEET} row {index + 2}: unknown guest {code}")
                continue
            try:
                flag = SheetsService.parse_flag(row[columns["auction registered"]])
            except ValueError as exc:
                errors.append(f"{GUESTS_SHEET} row {index + 2}: {exc}")
                continue
            guest_updates.append((guests[code], flag))

        if errors:
            raise ValidationError("Workbook validation failed", details=errors)

        tables_changed = 0
        for table, number in table_updates:
            if table.table_number != number:
                table.table_number = number
                tables_changed += 1
        guests_changed = 0
        for assignment, flag in guest_updates:
            if assignment.auction_registered != flag:
                assignment.auction_registered = flag
                guests_changed += 1
        db.flush()

        counts = {"tables_updated": tables_changed, "guests_updated": guests_changed}
        AuditService.record(
            event.organization_id,
            ActivityAction.SHEETS_SYNC,
            EntityType.EVENT,
            event.id,
            actor,
            db,
            event_id=event.id,
            details=counts,
        )
        return counts
