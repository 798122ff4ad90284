"""Shared fixtures and helpers for the stay ledger test suite."""

import itertools
from datetime import date
from decimal import Decimal

import duckdb
import pytest

from pms.infra import init_infra
from pms.models import (
    Booking,
    BookingStatus,
    NewBooking,
    PaymentMethod,
    Platform,
)
from pms.store import BookingStore

_refs = itertools.count(5000)


@pytest.fixture
def conn():
    """In-memory DuckDB connection with the schema, one per test."""
    c = duckdb.connect(":memory:")
    init_infra(c)
    yield c
    c.close()


@pytest.fixture
def store(conn):
    return BookingStore(conn)


@pytest.fixture
def beach(store):
    return store.add_property("Beach House")


@pytest.fixture
def garden(store):
    return store.add_property("Garden Villa")


def _new_booking(property_id: int, **kwargs) -> NewBooking:
    """Helper to create a NewBooking with defaults (a 3-night March stay)."""
    defaults = {
        "reservation_id": f"BDC-{next(_refs)}",
        "guest_name": "Ana Diaz",
        "property_id": property_id,
        "platform": Platform.BOOKING_COM,
        "payment_method": PaymentMethod.ONLINE,
        "amount": Decimal("0.00"),
        "check_in_date": date(2025, 3, 1),
        "check_out_date": date(2025, 3, 4),
    }
    defaults.update(kwargs)
    return NewBooking(**defaults)


def _make_booking(**kwargs) -> Booking:
    """Helper to build an in-memory Booking (no database)."""
    defaults = {
        "id": 1,
        "guest_name": "Ana Diaz",
        "reservation_id": "BDC-1001-A",
        "property_id": 1,
        "property_name": "Beach House",
        "platform": Platform.BOOKING_COM,
        "payment_method": PaymentMethod.ONLINE,
        "amount": Decimal("0.00"),
        "check_in_date": date(2025, 3, 1),
        "check_out_date": date(2025, 3, 4),
        "status": BookingStatus.BOOKED,
    }
    defaults.update(kwargs)
    return Booking(**defaults)


def _tables(conn: duckdb.DuckDBPyConnection) -> set[str]:
    """Return the set of user-defined table names."""
    rows = conn.execute(
        "SELECT table_name FROM duckdb_tables() WHERE internal = false"
    ).fetchall()
    return {r[0] for r in rows}
