"""Database schema.

Centralizes creation of the tables the store reads and writes:
- properties (+ properties_seq)
- rooms (+ rooms_seq)
- bookings (+ bookings_seq)
- active_references

``active_references`` holds one row per non-cancelled booking keyed by its
reservation reference. Booking creation inserts into it in the same
transaction as the booking row, so a second active booking with the same
reference fails on the primary key instead of racing a pre-check.
"""

from __future__ import annotations

import logging
from pathlib import Path

import duckdb

log = logging.getLogger(__name__)

SCHEMA_TABLES = ("properties", "rooms", "bookings", "active_references")


def connect(db_path: str | Path) -> duckdb.DuckDBPyConnection:
    """Open (creating if needed) a database and ensure the schema exists."""
    db_path = str(db_path)
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = duckdb.connect(db_path)
    init_infra(conn)
    return conn


def init_infra(conn: duckdb.DuckDBPyConnection) -> None:
    """Ensure all tables exist."""
    ensure_properties(conn)
    ensure_rooms(conn)
    ensure_bookings(conn)
    ensure_active_references(conn)


# ---------------------------------------------------------------------------
# Properties and rooms
# ---------------------------------------------------------------------------


def ensure_properties(conn: duckdb.DuckDBPyConnection) -> None:
    conn.execute("CREATE SEQUENCE IF NOT EXISTS properties_seq")
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS properties (
            id INTEGER PRIMARY KEY DEFAULT nextval('properties_seq'),
            name VARCHAR NOT NULL UNIQUE
        )
        """
    )


def ensure_rooms(conn: duckdb.DuckDBPyConnection) -> None:
    conn.execute("CREATE SEQUENCE IF NOT EXISTS rooms_seq")
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS rooms (
            id INTEGER PRIMARY KEY DEFAULT nextval('rooms_seq'),
            property_id INTEGER NOT NULL,
            name VARCHAR NOT NULL
        )
        """
    )


# ---------------------------------------------------------------------------
# Bookings
# ---------------------------------------------------------------------------


def ensure_bookings(conn: duckdb.DuckDBPyConnection) -> None:
    conn.execute("CREATE SEQUENCE IF NOT EXISTS bookings_seq")
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS bookings (
            id INTEGER PRIMARY KEY,
            guest_name VARCHAR NOT NULL,
            email VARCHAR,
            phone VARCHAR,
            id_number VARCHAR,
            reservation_id VARCHAR NOT NULL,
            unit_type VARCHAR,
            property_id INTEGER NOT NULL,
            room_id INTEGER,
            platform VARCHAR NOT NULL,
            payment_method VARCHAR NOT NULL,
            amount DECIMAL(12, 2) NOT NULL,
            expected_payment DECIMAL(12, 2),
            payment_date DATE,
            check_in_date DATE NOT NULL,
            check_out_date DATE NOT NULL,
            status VARCHAR NOT NULL DEFAULT 'booked',
            created_at TIMESTAMP DEFAULT current_timestamp,
            updated_at TIMESTAMP DEFAULT current_timestamp
        )
        """
    )


def ensure_active_references(conn: duckdb.DuckDBPyConnection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS active_references (
            reservation_id VARCHAR PRIMARY KEY,
            booking_id INTEGER NOT NULL
        )
        """
    )
