"""Tests for pms/income.py — bucketed totals and the per-platform view."""

from datetime import date
from decimal import Decimal

import pytest

from pms.errors import ValidationError
from pms.filters import DateRange
from pms.income import (
    income_summary,
    income_window,
    platform_filter,
    platform_income,
    summarize_income,
)
from pms.models import PaymentMethod, Platform
from tests.conftest import _make_booking, _new_booking


class TestSummarizeIncome:
    def test_buckets(self):
        bookings = [
            _make_booking(platform=Platform.BOOKING_COM, amount=Decimal("100")),
            _make_booking(platform=Platform.AGODA, amount=Decimal("80")),
            _make_booking(platform=Platform.AIRBNB, amount=Decimal("70")),
            _make_booking(platform=Platform.EXPEDIA, amount=Decimal("60")),
            _make_booking(
                platform=Platform.DIRECT, payment_method=PaymentMethod.BANK, amount=Decimal("50")
            ),
            _make_booking(
                platform=Platform.DIRECT, payment_method=PaymentMethod.CASH, amount=Decimal("40")
            ),
            _make_booking(
                platform=Platform.DIRECT, payment_method=PaymentMethod.CARD, amount=Decimal("30")
            ),
        ]
        totals = summarize_income(bookings).to_dict()
        assert totals == {
            "booking": 100.0,
            "agoda": 80.0,
            "airbnb": 70.0,
            "expedia": 60.0,
            "directBank": 50.0,
            "directCash": 40.0,
            "netTotal": 430.0,
        }

    def test_empty(self):
        assert summarize_income([]).to_dict()["netTotal"] == 0.0


class TestWindow:
    def test_daily(self):
        assert income_window("daily", day="2025-03-02") == DateRange.day(date(2025, 3, 2))

    def test_monthly(self):
        rng = income_window("monthly", month="2025-02")
        assert (rng.start, rng.end) == (date(2025, 2, 1), date(2025, 2, 28))

    def test_range(self):
        rng = income_window("range", start="2025-03-01", end="2025-03-10")
        assert rng == DateRange(date(2025, 3, 1), date(2025, 3, 10))

    def test_missing_arguments_means_no_window(self):
        assert income_window("daily") is None
        assert income_window("range", start="2025-03-01") is None

    def test_unknown_kind(self):
        with pytest.raises(ValidationError):
            income_window("weekly")

    def test_platform_filter_pseudo_values(self):
        assert platform_filter("directBank") == ((Platform.DIRECT,), PaymentMethod.BANK)
        assert platform_filter("directCash") == ((Platform.DIRECT,), PaymentMethod.CASH)
        assert platform_filter("Agoda") == ((Platform.AGODA,), None)
        assert platform_filter("") == (None, None)


class TestIncomeSummary:
    def test_payment_date_window(self, store, beach):
        paid = store.create_booking(
            _new_booking(
                beach.id,
                platform=Platform.DIRECT,
                payment_method=PaymentMethod.CASH,
                amount=Decimal("90"),
                payment_date=date(2025, 3, 2),
            )
        )
        store.create_booking(
            _new_booking(beach.id, amount=Decimal("50"), payment_date=date(2025, 4, 2))
        )
        cancelled = store.create_booking(
            _new_booking(beach.id, amount=Decimal("10"), payment_date=date(2025, 3, 3))
        )
        store.cancel(cancelled.id)

        summary = income_summary(store, DateRange.month("2025-03"))
        assert [b.id for b in summary.records] == [paid.id]
        assert summary.totals.direct_cash == Decimal("90.00")
        assert summary.totals.net_total == Decimal("90.00")

    def test_direct_bank_filter(self, store, beach):
        store.create_booking(
            _new_booking(
                beach.id,
                platform=Platform.DIRECT,
                payment_method=PaymentMethod.BANK,
                amount=Decimal("20"),
                payment_date=date(2025, 3, 2),
            )
        )
        store.create_booking(
            _new_booking(
                beach.id,
                platform=Platform.DIRECT,
                payment_method=PaymentMethod.CASH,
                amount=Decimal("30"),
                payment_date=date(2025, 3, 2),
            )
        )
        out = income_summary(store, None, platform="directBank").to_dict()
        assert out["totals"]["directBank"] == 20.0
        assert out["totals"]["netTotal"] == 20.0
        assert len(out["records"]) == 1


class TestPlatformIncome:
    def test_direct_by_payment_ota_by_checkout(self, store, beach):
        rng = DateRange.month("2025-03")
        direct = store.create_booking(
            _new_booking(
                beach.id,
                platform=Platform.DIRECT,
                payment_method=PaymentMethod.CARD,
                amount=Decimal("120"),
                payment_date=date(2025, 3, 10),
                check_in_date=date(2025, 4, 1),
                check_out_date=date(2025, 4, 3),
            )
        )
        ota = store.create_booking(
            _new_booking(beach.id, amount=Decimal("200"), check_out_date=date(2025, 3, 4))
        )
        # OTA checking out next month does not count, whatever its payment date.
        store.create_booking(
            _new_booking(
                beach.id,
                amount=Decimal("999"),
                payment_date=date(2025, 3, 1),
                check_in_date=date(2025, 3, 30),
                check_out_date=date(2025, 4, 2),
            )
        )

        groups = platform_income(store, rng)
        assert list(groups) == ["Direct", "Booking.com"]
        assert [b.id for b in groups["Direct"].bookings] == [direct.id]
        assert groups["Direct"].by_method["card"] == Decimal("120.00")
        assert [b.id for b in groups["Booking.com"].bookings] == [ota.id]
        assert groups["Booking.com"].total == Decimal("200.00")
        assert groups["Booking.com"].to_dict()["byMethod"]["online"] == 200.0

    def test_property_filter(self, store, beach, garden):
        store.create_booking(_new_booking(beach.id, amount=Decimal("10")))
        store.create_booking(_new_booking(garden.id, amount=Decimal("20")))
        groups = platform_income(store, DateRange.month("2025-03"), property_id=garden.id)
        assert groups["Booking.com"].total == Decimal("20.00")
