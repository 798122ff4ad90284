"""Income aggregation by platform.

Two views:

- :func:`income_summary` — bookings paid inside a window, reduced into fixed
  buckets (one per OTA, Direct split into bank and cash) plus a net total.
- :func:`platform_income` — the per-platform breakdown used for month-end
  checks: Direct bookings selected by payment date, OTA bookings by
  check-out date (OTAs pay out after departure), merged and grouped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable

from .errors import ValidationError
from .filters import BookingFilter, DateRange
from .models import Booking, PaymentMethod, Platform, to_date
from .queries import bookings_checking_out
from .store import BookingStore

log = logging.getLogger(__name__)

ZERO = Decimal("0.00")

# Pseudo-platforms accepted by the platform filter.
DIRECT_BANK = "directBank"
DIRECT_CASH = "directCash"

# Display order of the platform view.
PLATFORM_ORDER = (
    Platform.DIRECT,
    Platform.BOOKING_COM,
    Platform.EXPEDIA,
    Platform.AGODA,
    Platform.AIRBNB,
)

_OTA_BUCKETS = {
    Platform.BOOKING_COM: "booking",
    Platform.AGODA: "agoda",
    Platform.AIRBNB: "airbnb",
    Platform.EXPEDIA: "expedia",
}


@dataclass
class IncomeTotals:
    booking: Decimal = ZERO
    agoda: Decimal = ZERO
    airbnb: Decimal = ZERO
    expedia: Decimal = ZERO
    direct_bank: Decimal = ZERO
    direct_cash: Decimal = ZERO
    net_total: Decimal = ZERO

    def add(self, booking: Booking) -> None:
        amount = booking.amount or ZERO
        self.net_total += amount
        bucket = _OTA_BUCKETS.get(booking.platform)
        if bucket is not None:
            setattr(self, bucket, getattr(self, bucket) + amount)
        elif booking.payment_method is PaymentMethod.BANK:
            self.direct_bank += amount
        elif booking.payment_method is PaymentMethod.CASH:
            self.direct_cash += amount
        # Direct card/online payments only count towards net_total.

    def to_dict(self) -> dict[str, float]:
        return {
            "booking": float(self.booking),
            "agoda": float(self.agoda),
            "airbnb": float(self.airbnb),
            "expedia": float(self.expedia),
            "directBank": float(self.direct_bank),
            "directCash": float(self.direct_cash),
            "netTotal": float(self.net_total),
        }


def summarize_income(bookings: Iterable[Booking]) -> IncomeTotals:
    """Sum collected amounts into platform buckets (single pass)."""
    totals = IncomeTotals()
    for b in bookings:
        totals.add(b)
    return totals


def income_window(
    kind: str = "daily",
    *,
    day: Any = None,
    month: str | None = None,
    start: Any = None,
    end: Any = None,
) -> DateRange | None:
    """Resolve the income window.

    ``daily`` needs *day*, ``monthly`` needs *month* (``YYYY-MM``), ``range``
    needs *start* and *end*. When the arguments for the chosen kind are
    missing there is no window and every payment date qualifies.
    """
    kind = (kind or "daily").strip().lower()
    if kind == "daily":
        return DateRange.day(to_date(day)) if day else None
    if kind == "monthly":
        return DateRange.month(month) if month else None
    if kind == "range":
        return DateRange.parse(start, end) if start and end else None
    raise ValidationError(f"Unknown income window type: {kind!r}")


def platform_filter(
    value: str | None,
) -> tuple[tuple[Platform, ...] | None, PaymentMethod | None]:
    """Map a platform filter value to (platforms, payment_method)."""
    value = (value or "").strip()
    if not value:
        return None, None
    if value == DIRECT_BANK:
        return (Platform.DIRECT,), PaymentMethod.BANK
    if value == DIRECT_CASH:
        return (Platform.DIRECT,), PaymentMethod.CASH
    return (Platform.parse(value),), None


@dataclass
class IncomeSummary:
    totals: IncomeTotals
    records: list[Booking]

    def to_dict(self) -> dict[str, Any]:
        return {
            "totals": self.totals.to_dict(),
            "records": [b.to_dict() for b in self.records],
        }


def income_summary(
    store: BookingStore,
    window: DateRange | None,
    platform: str | None = None,
    property_id: int | None = None,
) -> IncomeSummary:
    """Bookings paid inside *window* (non-cancelled) with bucketed totals."""
    platforms, payment_method = platform_filter(platform)
    f = BookingFilter(
        payment_date=window,
        platforms=platforms,
        payment_method=payment_method,
        property_id=property_id,
    )
    records = store.list_bookings(f, order="payment_date")
    totals = summarize_income(records)
    log.info("Income: %d record(s), net total %s", len(records), totals.net_total)
    return IncomeSummary(totals=totals, records=records)


# ---------------------------------------------------------------------------
# Platform view
# ---------------------------------------------------------------------------


@dataclass
class PlatformIncome:
    platform: Platform
    bookings: list[Booking] = field(default_factory=list)
    total: Decimal = ZERO
    by_method: dict[str, Decimal] = field(
        default_factory=lambda: {m.value: ZERO for m in PaymentMethod}
    )

    def add(self, booking: Booking) -> None:
        self.bookings.append(booking)
        self.total += booking.amount
        self.by_method[booking.payment_method.value] += booking.amount

    def to_dict(self) -> dict[str, Any]:
        return {
            "platform": self.platform.value,
            "total": float(self.total),
            "byMethod": {k: float(v) for k, v in self.by_method.items()},
            "bookings": [b.to_dict() for b in self.bookings],
        }


def platform_income(
    store: BookingStore, rng: DateRange, property_id: int | None = None
) -> dict[str, PlatformIncome]:
    """Per-platform income for *rng*, keyed by platform name.

    Only platforms with at least one booking appear, in display order.
    """
    direct = store.list_bookings(
        BookingFilter(
            payment_date=rng, platforms=(Platform.DIRECT,), property_id=property_id
        ),
        order="payment_date",
    )
    ota = bookings_checking_out(
        store,
        rng,
        platforms=[p for p in Platform if p.is_ota],
        property_id=property_id,
    )

    merged: dict[int, Booking] = {}
    for b in [*direct, *ota]:
        merged[b.id] = b

    groups: dict[Platform, PlatformIncome] = {}
    for b in merged.values():
        groups.setdefault(b.platform, PlatformIncome(platform=b.platform)).add(b)

    return {p.value: groups[p] for p in PLATFORM_ORDER if p in groups}
