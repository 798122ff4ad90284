"""Typed booking filters and their translation to SQL.

A :class:`BookingFilter` is a plain value; :func:`build_where` turns it into
a ``WHERE`` clause plus positional parameters without touching a database,
so the filter logic can be tested on its own.

Example::

    f = BookingFilter(check_out=DateRange(date(2025, 3, 1), date(2025, 3, 31)),
                      platforms=(Platform.BOOKING_COM,))
    where, params = build_where(f)
    # where  == "WHERE b.status <> ? AND b.check_out_date BETWEEN ? AND ? AND b.platform IN (?)"
    # params == ["cancelled", date(2025, 3, 1), date(2025, 3, 31), "Booking.com"]
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from typing import Any

from .errors import ValidationError
from .models import BookingStatus, PaymentMethod, Platform, to_date


@dataclass(frozen=True)
class DateRange:
    """Inclusive range of calendar days."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValidationError(
                f"Range end {self.end.isoformat()} is before start {self.start.isoformat()}"
            )

    @classmethod
    def day(cls, d: date) -> DateRange:
        return cls(d, d)

    @classmethod
    def month(cls, value: str) -> DateRange:
        """Parse ``YYYY-MM`` into the first..last day of that month."""
        try:
            year_s, month_s = value.strip().split("-", 1)
            year, month = int(year_s), int(month_s)
            last = calendar.monthrange(year, month)[1]
        except (AttributeError, ValueError) as e:
            raise ValidationError(f"Invalid month (expected YYYY-MM): {value!r}") from e
        return cls(date(year, month, 1), date(year, month, last))

    @classmethod
    def parse(cls, start: Any, end: Any) -> DateRange:
        return cls(to_date(start), to_date(end))

    def __contains__(self, d: date) -> bool:
        return self.start <= d <= self.end


@dataclass(frozen=True)
class BookingFilter:
    """Optional criteria, all ANDed together.

    ``stay_overlaps`` uses the inclusive occupancy rule
    ``check_in_date <= end AND check_out_date >= start``. For a single day
    that also covers arrivals and departures on that day.

    Cancelled bookings are excluded unless ``include_cancelled`` is set or
    ``statuses`` names them explicitly.
    """

    check_in: DateRange | None = None
    check_out: DateRange | None = None
    payment_date: DateRange | None = None
    stay_overlaps: DateRange | None = None
    property_id: int | None = None
    platforms: tuple[Platform, ...] | None = None
    payment_method: PaymentMethod | None = None
    statuses: tuple[BookingStatus, ...] | None = None
    include_cancelled: bool = False
    room_assigned: bool | None = None
    reservation_id: str | None = None


def build_where(f: BookingFilter, alias: str = "b") -> tuple[str, list[Any]]:
    """Translate a filter to ``(where_clause, params)``.

    The clause is empty when nothing constrains the query. Column names are
    qualified with *alias*.
    """
    col = (lambda name: f"{alias}.{name}") if alias else (lambda name: name)
    clauses: list[str] = []
    params: list[Any] = []

    if f.statuses:
        clauses.append(f"{col('status')} IN ({_placeholders(f.statuses)})")
        params.extend(s.value for s in f.statuses)
    elif not f.include_cancelled:
        clauses.append(f"{col('status')} <> ?")
        params.append(BookingStatus.CANCELLED.value)

    for column, rng in (
        ("check_in_date", f.check_in),
        ("check_out_date", f.check_out),
        ("payment_date", f.payment_date),
    ):
        if rng is not None:
            clauses.append(f"{col(column)} BETWEEN ? AND ?")
            params.extend([rng.start, rng.end])

    if f.stay_overlaps is not None:
        clauses.append(f"{col('check_in_date')} <= ? AND {col('check_out_date')} >= ?")
        params.extend([f.stay_overlaps.end, f.stay_overlaps.start])

    if f.property_id is not None:
        clauses.append(f"{col('property_id')} = ?")
        params.append(f.property_id)

    if f.platforms:
        clauses.append(f"{col('platform')} IN ({_placeholders(f.platforms)})")
        params.extend(p.value for p in f.platforms)

    if f.payment_method is not None:
        clauses.append(f"{col('payment_method')} = ?")
        params.append(f.payment_method.value)

    if f.room_assigned is True:
        clauses.append(f"{col('room_id')} IS NOT NULL")
    elif f.room_assigned is False:
        clauses.append(f"{col('room_id')} IS NULL")

    if f.reservation_id is not None:
        clauses.append(f"{col('reservation_id')} = ?")
        params.append(f.reservation_id)

    if not clauses:
        return "", []
    return "WHERE " + " AND ".join(clauses), params


def _placeholders(values: tuple[Any, ...]) -> str:
    return ", ".join("?" for _ in values)
