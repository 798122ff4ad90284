"""Booking store — properties, rooms and booking lifecycle on DuckDB.

All reads of bookings go through one joined SELECT so every returned
:class:`Booking` carries its property and room display names.

Lifecycle actions:
- ``create_booking`` — insert, claiming the reservation reference
- ``assign_room`` / ``check_in`` / ``check_out`` — in-place updates
- ``cancel`` — soft delete, frees the reference
- ``delete_permanently`` — removes the row

Usage:

    store = BookingStore(connect("pms.db"))
    beach = store.add_property("Beach House")
    booking = store.create_booking(NewBooking(...))
"""

from __future__ import annotations

import logging
import random
import time
from decimal import Decimal
from typing import Any

import duckdb

from .errors import DuplicateReferenceError, NotFoundError, ValidationError
from .filters import BookingFilter, build_where
from .models import (
    Booking,
    BookingStatus,
    NewBooking,
    PaymentMethod,
    Platform,
    Property,
    Room,
)

log = logging.getLogger(__name__)

_BOOKING_COLUMNS = [
    "id",
    "guest_name",
    "email",
    "phone",
    "id_number",
    "reservation_id",
    "unit_type",
    "property_id",
    "room_id",
    "platform",
    "payment_method",
    "amount",
    "expected_payment",
    "payment_date",
    "check_in_date",
    "check_out_date",
    "status",
    "created_at",
    "updated_at",
]

_BOOKING_SELECT = (
    "SELECT "
    + ", ".join(f"b.{c}" for c in _BOOKING_COLUMNS)
    + ", p.name AS property_name, r.name AS room_name "
    "FROM bookings b "
    "LEFT JOIN properties p ON p.id = b.property_id "
    "LEFT JOIN rooms r ON r.id = b.room_id"
)

ORDERINGS = {
    "check_in": "b.check_in_date, b.id",
    "check_out": "b.check_out_date, b.id",
    "payment_date": "b.payment_date DESC NULLS LAST, b.created_at DESC, b.id DESC",
}


def generate_reference() -> str:
    """Reference for bookings entered without one: ``AUTO-<ms>-<0..999>``."""
    return f"AUTO-{int(time.time() * 1000)}-{random.randint(0, 999)}"


def _is_constraint_violation(exc: duckdb.Error) -> bool:
    return "constraint violation" in str(exc).lower()


def _row_to_booking(row: tuple[Any, ...]) -> Booking:
    data = dict(zip(_BOOKING_COLUMNS + ["property_name", "room_name"], row))
    data["platform"] = Platform.parse(data["platform"])
    data["payment_method"] = PaymentMethod.parse(data["payment_method"])
    data["status"] = BookingStatus.parse(data["status"])
    for key in ("amount", "expected_payment"):
        if data[key] is not None and not isinstance(data[key], Decimal):
            data[key] = Decimal(str(data[key]))
    return Booking(**data)


class BookingStore:
    """Repository over a DuckDB connection (or cursor).

    The connection must already carry the schema (see ``infra.init_infra``).
    """

    def __init__(self, conn: duckdb.DuckDBPyConnection):
        self.conn = conn

    # --- Properties & rooms ---

    def add_property(self, name: str) -> Property:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Property name is required")
        try:
            row = self.conn.execute(
                "INSERT INTO properties (name) VALUES (?) RETURNING id, name", [name]
            ).fetchone()
        except duckdb.ConstraintException as e:
            raise ValidationError(f"Property already exists: {name}") from e
        log.info("Added property %s (id=%d)", row[1], row[0])
        return Property(id=row[0], name=row[1])

    def list_properties(self) -> list[Property]:
        rows = self.conn.execute("SELECT id, name FROM properties ORDER BY name").fetchall()
        return [Property(id=r[0], name=r[1]) for r in rows]

    def get_property(self, property_id: int) -> Property:
        row = self.conn.execute(
            "SELECT id, name FROM properties WHERE id = ?", [property_id]
        ).fetchone()
        if row is None:
            raise NotFoundError(f"Property not found: {property_id}")
        return Property(id=row[0], name=row[1])

    def find_property(self, keyword: str) -> Property | None:
        """First property (by name) whose name contains *keyword*, case-insensitive."""
        row = self.conn.execute(
            "SELECT id, name FROM properties WHERE contains(lower(name), lower(?)) "
            "ORDER BY name LIMIT 1",
            [keyword],
        ).fetchone()
        return Property(id=row[0], name=row[1]) if row else None

    def add_room(self, property_id: int, name: str) -> Room:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Room name is required")
        self.get_property(property_id)
        row = self.conn.execute(
            "INSERT INTO rooms (property_id, name) VALUES (?, ?) "
            "RETURNING id, property_id, name",
            [property_id, name],
        ).fetchone()
        log.info("Added room %s to property %d (id=%d)", row[2], row[1], row[0])
        return Room(id=row[0], property_id=row[1], name=row[2])

    def list_rooms(self, property_id: int | None = None) -> list[Room]:
        if property_id is None:
            rows = self.conn.execute(
                "SELECT id, property_id, name FROM rooms ORDER BY property_id, name"
            ).fetchall()
        else:
            rows = self.conn.execute(
                "SELECT id, property_id, name FROM rooms WHERE property_id = ? "
                "ORDER BY name",
                [property_id],
            ).fetchall()
        return [Room(id=r[0], property_id=r[1], name=r[2]) for r in rows]

    def get_room(self, room_id: int) -> Room:
        row = self.conn.execute(
            "SELECT id, property_id, name FROM rooms WHERE id = ?", [room_id]
        ).fetchone()
        if row is None:
            raise NotFoundError(f"Room not found: {room_id}")
        return Room(id=row[0], property_id=row[1], name=row[2])

    # --- Bookings: reads ---

    def get_booking(self, booking_id: int) -> Booking:
        row = self.conn.execute(
            f"{_BOOKING_SELECT} WHERE b.id = ?", [booking_id]
        ).fetchone()
        if row is None:
            raise NotFoundError(f"Booking not found: {booking_id}")
        return _row_to_booking(row)

    def list_bookings(
        self,
        f: BookingFilter | None = None,
        order: str = "check_in",
    ) -> list[Booking]:
        """Return bookings matching *f*, ordered by one of :data:`ORDERINGS`."""
        if order not in ORDERINGS:
            raise ValueError(f"Unknown ordering: {order}")
        where, params = build_where(f or BookingFilter())
        sql = f"{_BOOKING_SELECT} {where} ORDER BY {ORDERINGS[order]}"
        return [_row_to_booking(r) for r in self.conn.execute(sql, params).fetchall()]

    def find_active_by_reference(self, reference: str) -> Booking | None:
        row = self.conn.execute(
            "SELECT booking_id FROM active_references WHERE reservation_id = ?",
            [reference],
        ).fetchone()
        return self.get_booking(row[0]) if row else None

    # --- Bookings: writes ---

    def create_booking(self, new: NewBooking) -> Booking:
        """Insert a booking.

        Raises DuplicateReferenceError if an active booking already uses the
        reservation reference, ValidationError / NotFoundError for a bad
        property or room.
        """
        self.get_property(new.property_id)
        if new.room_id is not None:
            self.get_room(new.room_id)

        reference = new.reservation_id or generate_reference()
        self.conn.begin()
        try:
            booking_id = self.conn.execute("SELECT nextval('bookings_seq')").fetchone()[0]
            if new.status is not BookingStatus.CANCELLED:
                self.conn.execute(
                    "INSERT INTO active_references (reservation_id, booking_id) VALUES (?, ?)",
                    [reference, booking_id],
                )
            self.conn.execute(
                """
                INSERT INTO bookings (
                    id, guest_name, email, phone, id_number, reservation_id,
                    unit_type, property_id, room_id, platform, payment_method,
                    amount, expected_payment, payment_date, check_in_date,
                    check_out_date, status
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    booking_id,
                    new.guest_name.strip(),
                    new.email,
                    new.phone,
                    new.id_number,
                    reference,
                    new.unit_type,
                    new.property_id,
                    new.room_id,
                    new.platform.value,
                    new.payment_method.value,
                    new.amount,
                    new.expected_payment,
                    new.payment_date,
                    new.check_in_date,
                    new.check_out_date,
                    new.status.value,
                ],
            )
        except duckdb.ConstraintException as e:
            self.conn.rollback()
            raise DuplicateReferenceError(reference) from e
        except Exception:
            self.conn.rollback()
            raise
        try:
            self.conn.commit()
        except duckdb.TransactionException as e:
            # A concurrent writer committed the same reference first; DuckDB
            # reports it here and has already aborted this transaction.
            if _is_constraint_violation(e):
                raise DuplicateReferenceError(reference) from e
            raise

        log.info("Created booking %d (%s) for %s", booking_id, reference, new.guest_name)
        return self.get_booking(booking_id)

    def assign_room(self, booking_id: int, room_id: int) -> Booking:
        self.get_room(room_id)
        self._update(booking_id, "room_id = ?", [room_id])
        return self.get_booking(booking_id)

    def check_in(self, booking_id: int) -> Booking:
        return self._set_status(booking_id, BookingStatus.CHECKED_IN)

    def check_out(self, booking_id: int) -> Booking:
        return self._set_status(booking_id, BookingStatus.CHECKED_OUT)

    def cancel(self, booking_id: int) -> Booking:
        """Soft delete: mark cancelled and release the reservation reference."""
        booking = self.get_booking(booking_id)
        if booking.status is BookingStatus.CANCELLED:
            return booking
        self.conn.begin()
        try:
            self.conn.execute(
                "DELETE FROM active_references WHERE booking_id = ?", [booking_id]
            )
            self.conn.execute(
                "UPDATE bookings SET status = ?, updated_at = current_timestamp "
                "WHERE id = ?",
                [BookingStatus.CANCELLED.value, booking_id],
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        log.info("Cancelled booking %d (%s)", booking_id, booking.reservation_id)
        return self.get_booking(booking_id)

    def delete_permanently(self, booking_id: int) -> None:
        booking = self.get_booking(booking_id)
        self.conn.begin()
        try:
            self.conn.execute(
                "DELETE FROM active_references WHERE booking_id = ?", [booking_id]
            )
            self.conn.execute("DELETE FROM bookings WHERE id = ?", [booking_id])
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        log.info("Deleted booking %d (%s)", booking_id, booking.reservation_id)

    def _set_status(self, booking_id: int, status: BookingStatus) -> Booking:
        booking = self.get_booking(booking_id)
        if booking.status is BookingStatus.CANCELLED:
            raise ValidationError(f"Booking {booking_id} is cancelled")
        self._update(booking_id, "status = ?", [status.value])
        return self.get_booking(booking_id)

    def _update(self, booking_id: int, assignment: str, params: list[Any]) -> None:
        row = self.conn.execute(
            f"UPDATE bookings SET {assignment}, updated_at = current_timestamp "
            "WHERE id = ? RETURNING id",
            params + [booking_id],
        ).fetchone()
        if row is None:
            raise NotFoundError(f"Booking not found: {booking_id}")
