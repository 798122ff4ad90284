"""Tests for scripts/cli.py — Click commands against a temporary database."""

import pytest
from click.testing import CliRunner

from scripts.cli import main


@pytest.fixture
def db(tmp_path):
    return str(tmp_path / "pms.db")


@pytest.fixture
def invoke(db):
    runner = CliRunner()

    def _invoke(*args, input=None):
        return runner.invoke(main, ["--db", db, "--quiet", *args], input=input)

    return _invoke


@pytest.fixture
def seeded(invoke):
    assert invoke("property", "add", "Beach House").exit_code == 0
    assert invoke("property", "add", "Garden Villa").exit_code == 0
    assert invoke("room", "add", "Beach", "Room 1").exit_code == 0
    return invoke


def _add_booking(invoke, *extra):
    return invoke(
        "booking",
        "add",
        "--guest",
        "Ana Diaz",
        "--property",
        "Beach House",
        "--platform",
        "Booking.com",
        "--check-in",
        "2025-03-01",
        "--check-out",
        "2025-03-04",
        *extra,
    )


class TestSetup:
    def test_init_and_status(self, invoke):
        result = invoke("init")
        assert result.exit_code == 0, result.output
        assert "ok       bookings" in result.output

        result = invoke("status")
        assert result.exit_code == 0, result.output
        assert "active_references" in result.output

    def test_property_and_room_listing(self, seeded):
        result = seeded("property", "list")
        assert "Beach House" in result.output
        assert "Garden Villa" in result.output
        result = seeded("room", "list", "--property", "beach")
        assert "Room 1" in result.output

    def test_duplicate_property_is_click_error(self, seeded):
        result = seeded("property", "add", "Beach House")
        assert result.exit_code == 1
        assert "already exists" in result.output


class TestBookings:
    def test_add_and_day_view(self, seeded):
        result = _add_booking(seeded, "--reference", "BDC-1001-A", "--expected", "150")
        assert result.exit_code == 0, result.output
        assert "Created booking 1 (BDC-1001-A)" in result.output

        result = seeded("booking", "list", "--date", "2025-03-01")
        assert result.exit_code == 0, result.output
        assert "checkin" in result.output
        assert "BDC-1001-A" in result.output

    def test_duplicate_reference(self, seeded):
        _add_booking(seeded, "--reference", "R-1")
        result = _add_booking(seeded, "--reference", "R-1")
        assert result.exit_code == 1
        assert "Reservation ID already exists: R-1" in result.output

    def test_lifecycle(self, seeded):
        _add_booking(seeded, "--reference", "R-1")
        result = seeded("booking", "list", "--date", "2025-03-01", "--unassigned")
        assert "R-1" in result.output

        assert "assigned to room Room 1" in seeded("booking", "assign", "1", "1").output
        assert "checked_in" in seeded("booking", "checkin", "1").output
        assert "checked_out" in seeded("booking", "checkout", "1").output
        assert "cancelled" in seeded("booking", "cancel", "1").output

        result = seeded("booking", "delete", "1", input="n\n")
        assert result.exit_code == 1
        result = seeded("booking", "delete", "1", "--yes")
        assert result.exit_code == 0, result.output
        assert seeded("booking", "checkin", "1").exit_code == 1

    def test_range_requires_both_ends(self, seeded):
        result = seeded("booking", "list", "--start", "2025-03-01")
        assert result.exit_code == 1
        assert "--start and --end are required" in result.output

    def test_checkout_range(self, seeded):
        _add_booking(seeded, "--reference", "R-1")
        result = seeded(
            "booking", "list", "--start", "2025-03-04", "--end", "2025-03-04", "--by", "checkout"
        )
        assert "R-1" in result.output


class TestWorkflows:
    def test_reconcile_with_report(self, seeded, tmp_path):
        _add_booking(seeded, "--reference", "BDC-1001-A", "--expected", "150")
        _add_booking(seeded, "--reference", "BDC-2002", "--expected", "80")
        ledger = tmp_path / "payouts.csv"
        ledger.write_text(
            "Reference number,Guest name,Net\n1001,Ana Diaz,150.00\n,Fee,-1\n9999,Nobody,5\n"
        )
        report = tmp_path / "report.xlsx"
        result = seeded(
            "reconcile",
            str(ledger),
            "--start",
            "2025-03-01",
            "--end",
            "2025-03-31",
            "-o",
            str(report),
        )
        assert result.exit_code == 0, result.output
        assert "OK" in result.output
        assert "MISSING_IN_CSV" in result.output
        assert "MISSING_IN_DB" in result.output
        assert "safe 150.00" in result.output
        assert "1 without reference" in result.output
        assert report.exists()

    def test_import_dry_run_and_save(self, seeded, tmp_path):
        export = tmp_path / "export.csv"
        export.write_text(
            "Voucher,Guest Name,Arrival,Dept,Room,Source,Deposit,Commission,channel,Status\n"
            "5551001,Ana Diaz,01/03/2025,04/03/2025,Deluxe Room,Booking.com,300,45,5,Active\n"
            "5551002,Li Wei,02/03/2025,05/03/2025,Standard,Booking.com,200,30,0,Cancelled\n"
        )
        result = seeded("import", str(export), "--rule", "deluxe=Beach")
        assert result.exit_code == 0, result.output
        assert "pending" in result.output
        assert "dry run" in result.output

        result = seeded("import", str(export), "--rule", "deluxe=Beach", "--save")
        assert result.exit_code == 0, result.output
        assert "saved: 1" in result.output

    def test_import_missing_file(self, seeded, tmp_path):
        result = seeded("import", str(tmp_path / "missing.csv"))
        assert result.exit_code == 1
        assert "File not found" in result.output

    def test_income(self, seeded):
        _add_booking(
            seeded, "--platform", "Direct", "--payment", "cash", "--amount", "90",
            "--payment-date", "2025-03-02",
        )
        result = seeded("income", "--type", "monthly", "--month", "2025-03")
        assert result.exit_code == 0, result.output
        assert "directCash" in result.output
        assert "90.00" in result.output

        result = seeded("income", "--by-platform", "--from", "2025-03-01", "--to", "2025-03-31")
        assert result.exit_code == 0, result.output
        assert "Direct" in result.output
        assert "cash 90.00" in result.output
