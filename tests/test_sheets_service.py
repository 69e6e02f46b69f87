"""
Tests for the seating workbook export and override import
"""

import io

import pandas as pd
import pytest

from app.core.db import transaction
from app.core.errors import PermissionDeniedError, ValidationError
from app.models import ActivityLog, GuestAssignment, Table
from app.models.enums import ActivityAction
from app.schemas.common import PersonRef
from app.services.guest_service import GuestService
from app.services.sheets_service import GUESTS_SHEET, TABLES_SHEET, SheetsService


@pytest.fixture
def seated(db_session, make_user, make_table, make_order, admin):
    """One table with one named guest and one placeholder"""
    host = make_user("host@example.com", "Hana", "Host")
    table = make_table(host, name="Harbour View", capacity=8)
    order = make_order(host, table, quantity=2)
    with transaction(db_session):
        GuestService.add_guest(order.id, PersonRef(email="guest@example.com"), admin, db_session, display_name="Gus")
    return table


def workbook(tables, guests=None):
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        pd.DataFrame(tables).to_excel(writer, index=False, sheet_name=TABLES_SHEET)
        if guests is not None:
            pd.DataFrame(guests).to_excel(writer, index=False, sheet_name=GUESTS_SHEET)
    return buffer.getvalue()


def test_export_has_tables_and_guests(db_session, event, seated):
    content = SheetsService.export_event(event.id, db_session)
    sheets = pd.read_excel(io.BytesIO(content), sheet_name=None)

    assert set(sheets) == {TABLES_SHEET, GUESTS_SHEET}
    tables = sheets[TABLES_SHEET]
    assert tables.loc[0, "Reference Code"] == "25-T001"
    assert tables.loc[0, "Reserved"] == 2
    assert tables.loc[0, "Assigned"] == 1
    assert tables.loc[0, "Available"] == 6

    guests = sheets[GUESTS_SHEET]
    assert len(guests) == 1
    assert guests.loc[0, "Reference Code"] == "G0001"
    assert guests.loc[0, "Table Reference"] == "25-T001"
    assert guests.loc[0, "Auction Registered"] == "No"


def test_unchanged_export_imports_cleanly(db_session, event, seated, admin):
    content = SheetsService.export_event(event.id, db_session)
    counts = SheetsService.import_overrides(content, event.id, admin, db_session)
    assert counts == {"tables_updated": 0, "guests_updated": 0}


def test_import_writes_only_override_columns(db_session, event, seated, admin):
    content = workbook(
        {"Reference Code": ["25-T001"], "Table Number": ["7"], "Name": ["Renamed"]},
        {"Reference Code": ["G0001"], "Auction Registered": ["Yes"], "Display Name": ["Someone Else"]},
    )
    with transaction(db_session):
        counts = SheetsService.import_overrides(content, event.id, admin, db_session)

    assert counts == {"tables_updated": 1, "guests_updated": 1}
    table = db_session.query(Table).one()
    assert table.table_number == "7"
    assert table.name == "Harbour View"
    guest = db_session.query(GuestAssignment).one()
    assert guest.auction_registered is True
    assert guest.display_name == "Gus"

    entry = db_session.query(ActivityLog).filter(ActivityLog.action == ActivityAction.SHEETS_SYNC).one()
    assert entry.details == counts


def test_unknown_codes_reject_the_whole_import(db_session, event, seated, admin):
    content = workbook(
        {"Reference Code": ["25-T001", "25-T999"], "Table Number": ["1", "2"]},
        {"Reference Code": ["G0001"], "Auction Registered": ["maybe"]},
    )
    with pytest.raises(ValidationError) as exc_info:
        SheetsService.import_overrides(content, event.id, admin, db_session)

    details = exc_info.value.details
    assert any("unknown table 25-T999" in line for line in details)
    assert any("'maybe' is not a yes/no value" in line for line in details)
    db_session.rollback()
    assert db_session.query(Table).one().table_number is None


def test_missing_sheet_is_reported(db_session, event, seated, admin):
    content = workbook({"Reference Code": ["25-T001"], "Table Number": ["1"]})
    with pytest.raises(ValidationError) as exc_info:
        SheetsService.import_overrides(content, event.id, admin, db_session)
    assert f"Missing sheet: {GUESTS_SHEET}" in exc_info.value.details


def test_missing_column_is_reported(db_session, event, seated, admin):
    content = workbook(
        {"Reference Code": ["25-T001"]},
        {"Reference Code": ["G0001"], "Auction Registered": ["no"]},
    )
    with pytest.raises(ValidationError) as exc_info:
        SheetsService.import_overrides(content, event.id, admin, db_session)
    assert exc_info.value.details == [f"{TABLES_SHEET}: missing required columns: table number"]


def test_unreadable_file_is_rejected(db_session, event, admin):
    with pytest.raises(ValidationError):
        SheetsService.import_overrides(b"not a workbook", event.id, admin, db_session)


def test_import_requires_admin(db_session, event, seated, make_user, actor_for):
    host = make_user("host@example.com")
    with pytest.raises(PermissionDeniedError):
        SheetsService.import_overrides(b"", event.id, actor_for(host), db_session)


@pytest.mark.parametrize("value,expected", [
    ("Yes", True), ("x", True), (1, True), (1.0, True),
    ("No", False), ("", False), (None, False), (0, False),
])
def test_parse_flag(value, expected):
    assert SheetsService.parse_flag(value) is expected
