"""Bulk import of a channel-manager reservation export.

Expected columns::

    Voucher | Guest Name | Arrival | Dept | Room | Source | Deposit |
    Commission | channel | Status

Only ``Status == Active`` rows are imported. Dates are ``DD/MM/YYYY`` and
may carry spreadsheet quoting (``="05/03/2025"``). The amount the platform
will remit is ``Deposit - Commission - channel``; nothing is collected at
import time, so ``amount`` is 0.

Steps, each usable on its own:

1. :func:`parse_export` — rows → :class:`ImportedBooking` (``pending``)
2. :func:`assign_properties` — default property and unit-type keyword rules
3. :func:`mark_existing` — references already booked in a window → ``exists``
4. :func:`save_rows` — create bookings → ``saved`` / ``exists`` / ``error``
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Mapping

from .errors import DuplicateReferenceError, NotFoundError, PmsError, ValidationError
from .filters import DateRange
from .models import (
    BookingStatus,
    ImportedBooking,
    NewBooking,
    PaymentMethod,
    Platform,
    to_date,
    to_money_or_zero,
)
from .queries import bookings_checking_out
from .store import BookingStore

log = logging.getLogger(__name__)

DEFAULT_SOURCE = Platform.BOOKING_COM.value
ACTIVE_STATUS = "Active"


def _cell(record: Mapping[str, Any], column: str) -> str:
    value = record.get(column)
    return "" if value is None else str(value).strip()


def parse_dmy(value: Any) -> date | None:
    """Parse ``DD/MM/YYYY`` (spreadsheet quoting stripped).

    ISO dates are accepted too, since XLSX cells arrive as ISO datetimes.
    Blank input gives None.
    """
    text = str(value or "").replace("=", "").replace('"', "").strip()
    if not text:
        return None
    if "/" not in text:
        return to_date(text)
    try:
        day, month, year = (int(p) for p in text.split("/"))
        return date(year, month, day)
    except ValueError as e:
        raise ValidationError(f"Invalid date (expected DD/MM/YYYY): {value!r}") from e


def parse_export(records: Iterable[Mapping[str, Any]]) -> list[ImportedBooking]:
    """Convert export records to pending imports, skipping non-active rows.

    A row whose dates cannot be parsed is kept with status ``error``.
    """
    rows: list[ImportedBooking] = []
    for line, record in enumerate(records, start=2):
        if _cell(record, "Status") != ACTIVE_STATUS:
            continue
        expected = (
            to_money_or_zero(record.get("Deposit"))
            - to_money_or_zero(record.get("Commission"))
            - to_money_or_zero(record.get("channel"))
        )
        row = ImportedBooking(
            row=line,
            reservation_id=_cell(record, "Voucher"),
            guest_name=_cell(record, "Guest Name") or "Unknown",
            unit_type=_cell(record, "Room"),
            platform=_cell(record, "Source") or DEFAULT_SOURCE,
            check_in_date=None,
            check_out_date=None,
            expected_payment=expected,
        )
        try:
            row.check_in_date = parse_dmy(record.get("Arrival"))
            row.check_out_date = parse_dmy(record.get("Dept"))
        except ValidationError as e:
            row.status = "error"
            row.error_message = str(e)
        rows.append(row)
    log.info("Parsed %d active reservation(s)", len(rows))
    return rows


# ---------------------------------------------------------------------------
# Property assignment
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PropertyRule:
    """Assign *property_id* when the unit type contains *keyword*."""

    keyword: str
    property_id: int

    def matches(self, unit_type: str) -> bool:
        return self.keyword.lower() in (unit_type or "").lower()


def resolve_rules(store: BookingStore, specs: Iterable[str]) -> list[PropertyRule]:
    """Parse ``keyword=property`` specs; *property* is an id or a name keyword."""
    rules: list[PropertyRule] = []
    for spec in specs:
        keyword, sep, target = spec.partition("=")
        keyword, target = keyword.strip(), target.strip()
        if not sep or not keyword or not target:
            raise ValidationError(f"Invalid rule (expected keyword=property): {spec!r}")
        rules.append(PropertyRule(keyword, resolve_property_id(store, target)))
    return rules


def resolve_property_id(store: BookingStore, target: str | int) -> int:
    """Property id from an id or a (case-insensitive) name keyword.

    A numeric *target* is tried as an id first, then as a name keyword
    ("401" finds "Apartment 401").
    """
    if isinstance(target, int) or str(target).isdigit():
        try:
            return store.get_property(int(target)).id
        except NotFoundError:
            pass
    prop = store.find_property(str(target))
    if prop is None:
        raise ValidationError(f"No property name contains {target!r}")
    return prop.id


def assign_properties(
    rows: Iterable[ImportedBooking],
    default_property_id: int | None = None,
    rules: Iterable[PropertyRule] = (),
) -> None:
    """Set ``property_id`` on pending rows: first matching rule, else default."""
    rules = list(rules)
    for row in rows:
        if row.status != "pending":
            continue
        for rule in rules:
            if rule.matches(row.unit_type):
                row.property_id = rule.property_id
                break
        else:
            if default_property_id is not None:
                row.property_id = default_property_id


# ---------------------------------------------------------------------------
# Existing check and save
# ---------------------------------------------------------------------------


def mark_existing(
    store: BookingStore, rows: Iterable[ImportedBooking], rng: DateRange
) -> int:
    """Mark pending rows whose reference is booked with check-out in *rng*."""
    existing = {b.reservation_id.strip(): b for b in bookings_checking_out(store, rng)}
    marked = 0
    for row in rows:
        if row.status != "pending":
            continue
        match = existing.get(row.reservation_id)
        if match is not None:
            row.status = "exists"
            row.existing_booking_id = match.id
            marked += 1
    return marked


def _to_new_booking(row: ImportedBooking) -> NewBooking:
    if row.property_id is None:
        raise ValidationError("No property assigned")
    if row.check_in_date is None or row.check_out_date is None:
        raise ValidationError("Arrival and departure dates are required")
    return NewBooking(
        guest_name=row.guest_name,
        property_id=row.property_id,
        platform=Platform.parse(row.platform),
        payment_method=PaymentMethod.ONLINE,
        amount=Decimal("0.00"),
        check_in_date=row.check_in_date,
        check_out_date=row.check_out_date,
        reservation_id=row.reservation_id,
        status=BookingStatus.BOOKED,
        unit_type=row.unit_type or None,
        expected_payment=row.expected_payment,
    )


def save_rows(store: BookingStore, rows: Iterable[ImportedBooking]) -> None:
    """Create a booking per pending row, recording the outcome on the row."""
    for row in rows:
        if row.status != "pending":
            continue
        try:
            booking = store.create_booking(_to_new_booking(row))
        except DuplicateReferenceError:
            row.status = "exists"
            existing = store.find_active_by_reference(row.reservation_id)
            row.existing_booking_id = existing.id if existing else None
        except PmsError as e:
            row.status = "error"
            row.error_message = str(e)
        else:
            row.status = "saved"
            row.booking_id = booking.id


@dataclass
class ImportReport:
    rows: list[ImportedBooking]

    @property
    def counts(self) -> dict[str, int]:
        tally = Counter(r.status for r in self.rows)
        return {s: tally.get(s, 0) for s in ("pending", "exists", "saved", "error")}

    def to_dict(self) -> dict[str, Any]:
        return {"rows": [r.to_dict() for r in self.rows], "counts": self.counts}


def import_bookings(
    store: BookingStore,
    records: Iterable[Mapping[str, Any]],
    *,
    default_property_id: int | None = None,
    rules: Iterable[PropertyRule] = (),
    window: DateRange | None = None,
    save: bool = False,
) -> ImportReport:
    """Run the whole import: parse, assign, check existing, optionally save."""
    rows = parse_export(records)
    assign_properties(rows, default_property_id, rules)
    if window is not None:
        mark_existing(store, rows, window)
    if save:
        save_rows(store, rows)
    report = ImportReport(rows)
    log.info(
        "Import: %s",
        ", ".join(f"{k}={v}" for k, v in report.counts.items() if v) or "no rows",
    )
    return report
