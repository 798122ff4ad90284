"""Tests for pms/queries.py — day, occupancy, range and unassigned views."""

from datetime import date

from pms.filters import DateRange
from pms.models import Platform
from pms.queries import (
    bookings_checking_in,
    bookings_checking_out,
    bookings_for_day,
    occupancy_for_property,
    stay_type,
    unassigned_for_day,
)
from tests.conftest import _make_booking, _new_booking


class TestStayType:
    def test_checkin_day(self):
        assert stay_type(_make_booking(), date(2025, 3, 1)) == "checkin"

    def test_checkout_day(self):
        assert stay_type(_make_booking(), date(2025, 3, 4)) == "checkout"

    def test_middle_of_stay(self):
        assert stay_type(_make_booking(), date(2025, 3, 2)) == "stay"

    def test_same_day_stay_is_checkin(self):
        b = _make_booking(check_in_date=date(2025, 3, 1), check_out_date=date(2025, 3, 1))
        assert stay_type(b, date(2025, 3, 1)) == "checkin"


class TestDayViews:
    def test_bookings_for_day_tags(self, store, beach):
        arriving = store.create_booking(
            _new_booking(beach.id, check_in_date=date(2025, 3, 4), check_out_date=date(2025, 3, 6))
        )
        leaving = store.create_booking(_new_booking(beach.id))  # 1st..4th
        staying = store.create_booking(
            _new_booking(beach.id, check_in_date=date(2025, 3, 2), check_out_date=date(2025, 3, 8))
        )
        store.create_booking(
            _new_booking(beach.id, check_in_date=date(2025, 3, 5), check_out_date=date(2025, 3, 7))
        )
        entries = bookings_for_day(store, date(2025, 3, 4))
        tags = {e.booking.id: e.type for e in entries}
        assert tags == {arriving.id: "checkin", leaving.id: "checkout", staying.id: "stay"}
        assert entries[0].to_dict()["type"] in ("checkin", "checkout", "stay")

    def test_cancelled_excluded(self, store, beach):
        b = store.create_booking(_new_booking(beach.id))
        store.cancel(b.id)
        assert bookings_for_day(store, date(2025, 3, 2)) == []

    def test_property_filter(self, store, beach, garden):
        store.create_booking(_new_booking(beach.id))
        other = store.create_booking(_new_booking(garden.id))
        entries = bookings_for_day(store, date(2025, 3, 2), property_id=garden.id)
        assert [e.booking.id for e in entries] == [other.id]

    def test_occupancy_only_assigned(self, store, beach, garden):
        room = store.add_room(beach.id, "Room 1")
        assigned = store.create_booking(_new_booking(beach.id, room_id=room.id))
        store.create_booking(_new_booking(beach.id))
        store.create_booking(_new_booking(garden.id))
        entries = occupancy_for_property(store, beach.id, date(2025, 3, 3))
        assert [e.booking.id for e in entries] == [assigned.id]
        assert entries[0].type == "stay"

    def test_occupancy_inclusive_boundaries(self, store, beach):
        room = store.add_room(beach.id, "Room 1")
        b = store.create_booking(_new_booking(beach.id, room_id=room.id))
        assert occupancy_for_property(store, beach.id, date(2025, 3, 4))[0].booking.id == b.id
        assert occupancy_for_property(store, beach.id, date(2025, 3, 5)) == []

    def test_unassigned_for_day(self, store, beach):
        room = store.add_room(beach.id, "Room 1")
        waiting = store.create_booking(_new_booking(beach.id))
        store.create_booking(_new_booking(beach.id, room_id=room.id))
        store.create_booking(
            _new_booking(beach.id, check_in_date=date(2025, 3, 2), check_out_date=date(2025, 3, 3))
        )
        assert [b.id for b in unassigned_for_day(store, date(2025, 3, 1))] == [waiting.id]


class TestRangeViews:
    def test_checking_in(self, store, beach):
        inside = store.create_booking(_new_booking(beach.id))
        store.create_booking(
            _new_booking(beach.id, check_in_date=date(2025, 4, 1), check_out_date=date(2025, 4, 2))
        )
        rng = DateRange(date(2025, 3, 1), date(2025, 3, 31))
        assert [b.id for b in bookings_checking_in(store, rng)] == [inside.id]

    def test_checking_out_with_platform(self, store, beach):
        bdc = store.create_booking(_new_booking(beach.id))
        store.create_booking(_new_booking(beach.id, platform=Platform.AIRBNB))
        rng = DateRange(date(2025, 3, 4), date(2025, 3, 4))
        assert len(bookings_checking_out(store, rng)) == 2
        found = bookings_checking_out(store, rng, platforms=[Platform.BOOKING_COM])
        assert [b.id for b in found] == [bdc.id]
