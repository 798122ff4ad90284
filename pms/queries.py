"""Occupancy and range queries behind the booking views.

Each function is a thin composition of a :class:`BookingFilter` and
:meth:`BookingStore.list_bookings`; day views additionally tag every booking
as an arrival, a departure or an in-house stay.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable

from .filters import BookingFilter, DateRange
from .models import Booking, Platform
from .store import BookingStore


@dataclass(frozen=True)
class DayEntry:
    booking: Booking
    type: str  # checkin | checkout | stay

    def to_dict(self) -> dict[str, Any]:
        return {**self.booking.to_dict(), "type": self.type}


def stay_type(booking: Booking, day: date) -> str:
    """Tag *booking* relative to *day*.

    Arrival wins over departure for a same-day stay.
    """
    if booking.check_in_date == day:
        return "checkin"
    if booking.check_out_date == day:
        return "checkout"
    return "stay"


def tag_for_day(bookings: Iterable[Booking], day: date) -> list[DayEntry]:
    return [DayEntry(booking=b, type=stay_type(b, day)) for b in bookings]


def bookings_for_day(
    store: BookingStore, day: date, property_id: int | None = None
) -> list[DayEntry]:
    """Bookings arriving, departing or staying on *day*."""
    f = BookingFilter(stay_overlaps=DateRange.day(day), property_id=property_id)
    return tag_for_day(store.list_bookings(f), day)


def bookings_checking_in(
    store: BookingStore, rng: DateRange, property_id: int | None = None
) -> list[Booking]:
    """Bookings whose check-in falls in *rng*."""
    return store.list_bookings(BookingFilter(check_in=rng, property_id=property_id))


def occupancy_for_property(
    store: BookingStore, property_id: int, day: date
) -> list[DayEntry]:
    """Room-assigned bookings of one property whose stay overlaps *day*."""
    f = BookingFilter(
        stay_overlaps=DateRange.day(day),
        property_id=property_id,
        room_assigned=True,
    )
    return tag_for_day(store.list_bookings(f), day)


def bookings_checking_out(
    store: BookingStore,
    rng: DateRange,
    platforms: Iterable[Platform] | None = None,
    property_id: int | None = None,
) -> list[Booking]:
    """Bookings whose check-out falls in *rng* (OTA income, reconciliation)."""
    f = BookingFilter(
        check_out=rng,
        platforms=tuple(platforms) if platforms else None,
        property_id=property_id,
    )
    return store.list_bookings(f, order="check_out")


def unassigned_for_day(store: BookingStore, day: date) -> list[Booking]:
    """Guests arriving on *day* who have no room yet."""
    f = BookingFilter(check_in=DateRange.day(day), room_assigned=False)
    return store.list_bookings(f)
