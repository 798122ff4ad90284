"""Domain models for bookings, properties and payout ledgers.

Enumerations are the single canonical vocabulary used by every read and
write path. Older spellings found in exports and earlier data
(``checkin``, ``cancel``, ...) are accepted by the ``parse`` helpers and
never written back.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from .errors import ValidationError

CENT = Decimal("0.01")


class Platform(str, Enum):
    BOOKING_COM = "Booking.com"
    AGODA = "Agoda"
    AIRBNB = "Airbnb"
    EXPEDIA = "Expedia"
    DIRECT = "Direct"

    @classmethod
    def parse(cls, value: str | Platform) -> Platform:
        if isinstance(value, Platform):
            return value
        key = _squash(value)
        for member in cls:
            if key in (_squash(member.value), _squash(member.name)):
                return member
        raise ValidationError(f"Unknown platform: {value!r}")

    @property
    def is_ota(self) -> bool:
        return self is not Platform.DIRECT


class PaymentMethod(str, Enum):
    ONLINE = "online"
    BANK = "bank"
    CASH = "cash"
    CARD = "card"

    @classmethod
    def parse(cls, value: str | PaymentMethod) -> PaymentMethod:
        if isinstance(value, PaymentMethod):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            raise ValidationError(f"Unknown payment method: {value!r}") from None


class BookingStatus(str, Enum):
    BOOKED = "booked"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    CANCELLED = "cancelled"

    @classmethod
    def parse(cls, value: str | BookingStatus) -> BookingStatus:
        if isinstance(value, BookingStatus):
            return value
        key = _squash(value)
        status = _STATUS_ALIASES.get(key)
        if status is None:
            raise ValidationError(f"Unknown booking status: {value!r}")
        return status


_STATUS_ALIASES = {
    "booked": BookingStatus.BOOKED,
    "checkin": BookingStatus.CHECKED_IN,
    "checkedin": BookingStatus.CHECKED_IN,
    "checkout": BookingStatus.CHECKED_OUT,
    "checkedout": BookingStatus.CHECKED_OUT,
    "cancel": BookingStatus.CANCELLED,
    "cancelled": BookingStatus.CANCELLED,
    "canceled": BookingStatus.CANCELLED,
}


def _squash(value: Any) -> str:
    """Lowercase and drop everything but letters and digits."""
    return re.sub(r"[^a-z0-9]", "", str(value or "").lower())


# ---------------------------------------------------------------------------
# Value parsing
# ---------------------------------------------------------------------------


def to_money(value: Any) -> Decimal:
    """Parse an amount into a 2-place Decimal.

    Tolerates currency symbols, thousands separators and spreadsheet
    quoting (``="1,250.00"``). Raises ValidationError when nothing numeric
    is left.
    """
    if isinstance(value, Decimal):
        return value.quantize(CENT)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return Decimal(str(value)).quantize(CENT)
    cleaned = re.sub(r"[^0-9.\-]+", "", str(value or ""))
    if cleaned in ("", "-", ".", "-."):
        raise ValidationError(f"Not an amount: {value!r}")
    try:
        return Decimal(cleaned).quantize(CENT)
    except InvalidOperation as e:
        raise ValidationError(f"Not an amount: {value!r}") from e


def to_money_or_zero(value: Any) -> Decimal:
    """Like :func:`to_money` but blank or garbage input counts as 0."""
    try:
        return to_money(value)
    except ValidationError:
        return Decimal("0.00")


def to_date(value: Any) -> date:
    """Parse an ISO ``YYYY-MM-DD`` string (or pass a date through)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value or "").strip()
    if not text:
        raise ValidationError("Date is required")
    try:
        return date.fromisoformat(text[:10])
    except ValueError as e:
        raise ValidationError(f"Invalid date (expected YYYY-MM-DD): {value!r}") from e


def _json_amount(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


def _json_date(value: date | None) -> str | None:
    return value.isoformat() if value is not None else None


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Property:
    id: int
    name: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name}


@dataclass(frozen=True)
class Room:
    id: int
    property_id: int
    name: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "propertyId": self.property_id, "name": self.name}


@dataclass(frozen=True)
class Booking:
    """A stored reservation, with property/room display names joined in."""

    id: int
    guest_name: str
    reservation_id: str
    property_id: int
    platform: Platform
    payment_method: PaymentMethod
    amount: Decimal
    check_in_date: date
    check_out_date: date
    status: BookingStatus = BookingStatus.BOOKED
    email: str | None = None
    phone: str | None = None
    id_number: str | None = None
    unit_type: str | None = None
    room_id: int | None = None
    expected_payment: Decimal | None = None
    payment_date: date | None = None
    property_name: str | None = None
    room_name: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def reconcile_amount(self) -> Decimal:
        """Amount a payout should equal: expected payment, else collected."""
        if self.expected_payment is not None:
            return self.expected_payment
        return self.amount

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "guestName": self.guest_name,
            "email": self.email,
            "phone": self.phone,
            "idNumber": self.id_number,
            "reservationId": self.reservation_id,
            "unitType": self.unit_type,
            "propertyId": self.property_id,
            "propertyName": self.property_name,
            "roomId": self.room_id,
            "roomName": self.room_name,
            "platform": self.platform.value,
            "paymentMethod": self.payment_method.value,
            "amount": _json_amount(self.amount),
            "expectedPayment": _json_amount(self.expected_payment),
            "paymentDate": _json_date(self.payment_date),
            "checkInDate": _json_date(self.check_in_date),
            "checkOutDate": _json_date(self.check_out_date),
            "status": self.status.value,
        }


@dataclass(frozen=True)
class NewBooking:
    """Validated input for creating a booking (no id yet).

    ``reservation_id`` may be empty; the store generates one.
    """

    guest_name: str
    property_id: int
    platform: Platform
    payment_method: PaymentMethod
    amount: Decimal
    check_in_date: date
    check_out_date: date
    reservation_id: str = ""
    status: BookingStatus = BookingStatus.BOOKED
    email: str | None = None
    phone: str | None = None
    id_number: str | None = None
    unit_type: str | None = None
    room_id: int | None = None
    expected_payment: Decimal | None = None
    payment_date: date | None = None

    def __post_init__(self) -> None:
        if not (self.guest_name or "").strip():
            raise ValidationError("guestName is required")
        if self.check_out_date < self.check_in_date:
            raise ValidationError("Check-out must not be before check-in")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NewBooking:
        """Build from a camelCase payload (HTTP body or import row)."""

        def opt(key: str) -> Any:
            value = data.get(key)
            return None if value in (None, "") else value

        if opt("propertyId") is None:
            raise ValidationError("propertyId is required")
        try:
            property_id = int(data["propertyId"])
            room_id = int(data["roomId"]) if opt("roomId") is not None else None
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid id: {e}") from e

        return cls(
            guest_name=str(data.get("guestName") or ""),
            property_id=property_id,
            platform=Platform.parse(data.get("platform") or ""),
            payment_method=PaymentMethod.parse(data.get("paymentMethod") or ""),
            amount=to_money(data.get("amount", 0)),
            check_in_date=to_date(data.get("checkInDate")),
            check_out_date=to_date(data.get("checkOutDate")),
            reservation_id=str(data.get("reservationId") or "").strip(),
            status=BookingStatus.parse(data.get("status") or "booked"),
            email=opt("email"),
            phone=opt("phone"),
            id_number=opt("idNumber"),
            unit_type=opt("unitType"),
            room_id=room_id,
            expected_payment=(
                to_money(data["expectedPayment"])
                if opt("expectedPayment") is not None
                else None
            ),
            payment_date=(
                to_date(data["paymentDate"]) if opt("paymentDate") is not None else None
            ),
        )


@dataclass(frozen=True)
class LedgerRow:
    """One payout line from a platform settlement export."""

    reference: str
    guest: str
    net: Decimal
    line: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "reference": self.reference,
            "guest": self.guest,
            "net": _json_amount(self.net),
            "line": self.line,
        }


@dataclass
class ImportedBooking:
    """A row of a bulk reservation import, before and after saving."""

    row: int
    reservation_id: str
    guest_name: str
    unit_type: str
    platform: str
    check_in_date: date | None
    check_out_date: date | None
    expected_payment: Decimal
    property_id: int | None = None
    status: str = "pending"  # pending | exists | saved | error
    error_message: str | None = None
    existing_booking_id: int | None = None
    booking_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "row": self.row,
            "reservationId": self.reservation_id,
            "guestName": self.guest_name,
            "unitType": self.unit_type,
            "platform": self.platform,
            "checkInDate": _json_date(self.check_in_date),
            "checkOutDate": _json_date(self.check_out_date),
            "expectedPayment": _json_amount(self.expected_payment),
            "propertyId": self.property_id,
            "status": self.status,
            "errorMessage": self.error_message,
            "existingBookingId": self.existing_booking_id,
            "bookingId": self.booking_id,
        }
