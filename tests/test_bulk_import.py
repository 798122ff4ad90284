"""Tests for pms/bulk_import.py — reservation export import."""

from datetime import date
from decimal import Decimal

import pytest

from pms.bulk_import import (
    PropertyRule,
    assign_properties,
    import_bookings,
    mark_existing,
    parse_dmy,
    parse_export,
    resolve_rules,
    save_rows,
)
from pms.errors import ValidationError
from pms.filters import DateRange
from pms.ingest import read_records
from pms.models import BookingStatus, PaymentMethod, Platform
from tests.conftest import _new_booking


def _record(**overrides):
    data = {
        "Voucher": "5551001",
        "Guest Name": "Ana Diaz",
        "Arrival": "01/03/2025",
        "Dept": '="04/03/2025"',
        "Room": "Deluxe Double Room",
        "Source": "Booking.com",
        "Deposit": "300.00",
        "Commission": "45.00",
        "channel": "5",
        "Status": "Active",
    }
    data.update(overrides)
    return data


class TestParse:
    def test_parse_dmy(self):
        assert parse_dmy("05/03/2025") == date(2025, 3, 5)
        assert parse_dmy('="31/12/2024"') == date(2024, 12, 31)
        assert parse_dmy("2025-03-05 00:00:00") == date(2025, 3, 5)
        assert parse_dmy("") is None

    def test_parse_dmy_invalid(self):
        with pytest.raises(ValidationError):
            parse_dmy("31/02/2025")

    def test_active_rows_only(self):
        rows = parse_export([_record(), _record(Voucher="X", Status="Cancelled")])
        assert [r.reservation_id for r in rows] == ["5551001"]

    def test_row_numbers_survive_blank_rows(self):
        data = (
            b"Voucher,Guest Name,Arrival,Dept,Room,Source,Deposit,Commission,channel,Status\n"
            b"5551001,Ana Diaz,01/03/2025,04/03/2025,Deluxe,Booking.com,300,45,5,Active\n"
            b",,,,,,,,,\n"
            b"5551002,Li Wei,02/03/2025,05/03/2025,Deluxe,Booking.com,200,30,0,Active\n"
        )
        rows = parse_export(read_records(data, "csv"))
        assert [(r.reservation_id, r.row) for r in rows] == [("5551001", 2), ("5551002", 4)]

    def test_fields(self):
        (row,) = parse_export([_record()])
        assert row.row == 2
        assert row.check_in_date == date(2025, 3, 1)
        assert row.check_out_date == date(2025, 3, 4)
        assert row.expected_payment == Decimal("250.00")
        assert row.status == "pending"

    def test_defaults(self):
        (row,) = parse_export([_record(**{"Guest Name": "", "Source": "", "channel": None})])
        assert row.guest_name == "Unknown"
        assert row.platform == "Booking.com"
        assert row.expected_payment == Decimal("255.00")

    def test_bad_date_is_row_error(self):
        (row,) = parse_export([_record(Arrival="99/99/2025")])
        assert row.status == "error"
        assert "DD/MM/YYYY" in row.error_message


class TestAssign:
    def test_rules_then_default(self):
        rows = parse_export(
            [_record(Room="Deluxe Suite"), _record(Voucher="2", Room="Standard Twin")]
        )
        assign_properties(rows, default_property_id=302, rules=[PropertyRule("deluxe", 401)])
        assert [r.property_id for r in rows] == [401, 302]

    def test_no_default_leaves_unassigned(self):
        rows = parse_export([_record(Room="Standard")])
        assign_properties(rows, rules=[PropertyRule("deluxe", 401)])
        assert rows[0].property_id is None

    def test_resolve_rules_by_name_and_id(self, store):
        p302 = store.add_property("Apartment 302")
        p401 = store.add_property("Apartment 401")
        rules = resolve_rules(store, ["deluxe=401", f"standard={p302.id}"])
        assert rules == [PropertyRule("deluxe", p401.id), PropertyRule("standard", p302.id)]

    def test_resolve_rules_invalid(self, store):
        with pytest.raises(ValidationError, match="keyword=property"):
            resolve_rules(store, ["deluxe"])


class TestSave:
    def test_mark_existing_and_save(self, store, beach):
        existing = store.create_booking(
            _new_booking(beach.id, reservation_id="5551001", check_out_date=date(2025, 3, 4))
        )
        rows = parse_export([_record(), _record(Voucher="5551002")])
        assign_properties(rows, default_property_id=beach.id)

        assert mark_existing(store, rows, DateRange.month("2025-03")) == 1
        assert rows[0].status == "exists"
        assert rows[0].existing_booking_id == existing.id

        save_rows(store, rows)
        assert rows[1].status == "saved"
        saved = store.get_booking(rows[1].booking_id)
        assert saved.amount == Decimal("0.00")
        assert saved.expected_payment == Decimal("250.00")
        assert saved.payment_method is PaymentMethod.ONLINE
        assert saved.platform is Platform.BOOKING_COM
        assert saved.status is BookingStatus.BOOKED
        assert saved.unit_type == "Deluxe Double Room"

    def test_conflict_at_save_is_exists(self, store, beach):
        # Checks out outside the window, so only the save-time constraint sees it.
        existing = store.create_booking(
            _new_booking(
                beach.id,
                reservation_id="5551001",
                check_in_date=date(2025, 6, 1),
                check_out_date=date(2025, 6, 2),
            )
        )
        rows = parse_export([_record()])
        assign_properties(rows, default_property_id=beach.id)
        mark_existing(store, rows, DateRange.month("2025-03"))
        save_rows(store, rows)
        assert rows[0].status == "exists"
        assert rows[0].existing_booking_id == existing.id

    def test_errors_recorded_per_row(self, store, beach):
        rows = parse_export([_record(), _record(Voucher="2", Source="Hostelworld")])
        rows[0].property_id = None
        rows[1].property_id = beach.id
        save_rows(store, rows)
        assert rows[0].status == "error"
        assert rows[0].error_message == "No property assigned"
        assert rows[1].status == "error"
        assert "Unknown platform" in rows[1].error_message


class TestImportBookings:
    def test_dry_run_then_save(self, store, beach):
        records = [_record(), _record(Voucher="X", Status="Inactive")]
        dry = import_bookings(store, records, default_property_id=beach.id)
        assert dry.counts == {"pending": 1, "exists": 0, "saved": 0, "error": 0}
        assert store.list_bookings() == []

        done = import_bookings(store, records, default_property_id=beach.id, save=True)
        assert done.counts["saved"] == 1
        assert done.to_dict()["rows"][0]["bookingId"] is not None

        again = import_bookings(
            store,
            records,
            default_property_id=beach.id,
            window=DateRange.month("2025-03"),
            save=True,
        )
        assert again.counts["exists"] == 1
