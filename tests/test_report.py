"""Tests for pms/report.py — reconciliation report tables and files."""

from decimal import Decimal

import openpyxl
import polars as pl
import pytest

from pms.errors import ValidationError
from pms.models import LedgerRow
from pms.reconcile import index_by_reference, reconcile
from pms.report import rows_frame, totals_frame, write_report
from tests.conftest import _make_booking


@pytest.fixture
def result():
    bookings = [
        _make_booking(id=1, reservation_id="BDC-1001-A", expected_payment=Decimal("150")),
        _make_booking(id=2, reservation_id="BDC-2002", expected_payment=Decimal("80")),
    ]
    ledger = [
        LedgerRow(reference="1001", guest="Ana Diaz", net=Decimal("150")),
        LedgerRow(reference="9999", guest="Nobody", net=Decimal("12")),
    ]
    return reconcile(index_by_reference(bookings), ledger)


class TestFrames:
    def test_rows_frame(self, result):
        df = rows_frame(result)
        assert df["status"].to_list() == ["OK", "MISSING_IN_DB", "MISSING_IN_CSV"]
        assert df["csv_net"].to_list() == [150.0, 12.0, None]
        assert df["db_guests"].to_list() == ["Ana Diaz", "", "Ana Diaz"]

    def test_totals_frame(self, result):
        df = totals_frame(result).sort("property")
        assert df.to_dicts() == [
            {"property": "Beach House", "rows": 2, "csv_total": 150.0, "db_total": 230.0, "safe_total": 150.0},
            {"property": "Unmatched", "rows": 1, "csv_total": 12.0, "db_total": 0.0, "safe_total": 0.0},
        ]


class TestWriteReport:
    def test_csv(self, result, tmp_path):
        path = write_report(result, tmp_path / "out" / "report.csv")
        df = pl.read_csv(path)
        assert len(df) == 3
        assert df.columns[:3] == ["property", "reference", "status"]

    def test_xlsx(self, result, tmp_path):
        path = write_report(result, tmp_path / "report.xlsx")
        wb = openpyxl.load_workbook(path)
        assert wb.sheetnames == ["Rows", "Totals"]
        rows = list(wb["Rows"].iter_rows(values_only=True))
        assert rows[0][:3] == ("property", "reference", "status")
        assert len(rows) == 4
        totals = list(wb["Totals"].iter_rows(values_only=True))
        assert totals[1][0] == "Beach House"

    def test_unsupported(self, result, tmp_path):
        with pytest.raises(ValidationError):
            write_report(result, tmp_path / "report.pdf")
