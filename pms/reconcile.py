"""Ledger reconciliation — pair payout lines with stored bookings.

Single pass, in memory, no I/O in the matcher itself:

1. every ledger row is matched against every stored booking with a
   reference predicate (``substring`` by default, ``prefix`` or ``exact``);
2. each ledger row is classified (first rule that applies wins):

   =========================  ==========================================
   ``MISSING_IN_DB``          no booking matched
   ``MULTI_PROPERTY_REFERENCE`` matches span more than one property
   ``DUPLICATE_DB_REFERENCE`` several matches inside one property
   ``AMOUNT_MISMATCH``        one match, amounts differ by > tolerance
   ``OK``                     one match, amounts agree
   =========================  ==========================================

3. bookings no ledger row touched become ``MISSING_IN_CSV`` rows;
4. rows are grouped by property label with csv / db / safe totals.

:func:`reconcile` is pure: the same bookings and ledger rows always give
the same result. :func:`run_reconciliation` loads the bookings first.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Iterable, Sequence

from .errors import ValidationError
from .filters import DateRange
from .models import Booking, LedgerRow, Platform
from .queries import bookings_checking_out
from .store import BookingStore

log = logging.getLogger(__name__)

ZERO = Decimal("0.00")
DEFAULT_TOLERANCE = Decimal("0.01")

UNMATCHED_LABEL = "Unmatched"
CROSS_PROPERTY_LABEL = "Cross-Property Issue"
UNKNOWN_PROPERTY_LABEL = "Unknown Property"


class MatchStatus(str, Enum):
    OK = "OK"
    AMOUNT_MISMATCH = "AMOUNT_MISMATCH"
    DUPLICATE_DB_REFERENCE = "DUPLICATE_DB_REFERENCE"
    MULTI_PROPERTY_REFERENCE = "MULTI_PROPERTY_REFERENCE"
    MISSING_IN_DB = "MISSING_IN_DB"
    MISSING_IN_CSV = "MISSING_IN_CSV"


# ---------------------------------------------------------------------------
# Match predicates: (stored_reference, ledger_reference) -> bool
# ---------------------------------------------------------------------------

MatchPredicate = Callable[[str, str], bool]


def match_exact(stored: str, reference: str) -> bool:
    return stored == reference


def match_prefix(stored: str, reference: str) -> bool:
    return stored.startswith(reference)


def match_substring(stored: str, reference: str) -> bool:
    return reference in stored


PREDICATES: dict[str, MatchPredicate] = {
    "exact": match_exact,
    "prefix": match_prefix,
    "substring": match_substring,
}


def get_predicate(mode: str) -> MatchPredicate:
    try:
        return PREDICATES[(mode or "").strip().lower()]
    except KeyError:
        raise ValidationError(
            f"Unknown match mode: {mode!r} (expected one of: {', '.join(PREDICATES)})"
        ) from None


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


def property_label(booking: Booking) -> str:
    return booking.property_name or UNKNOWN_PROPERTY_LABEL


@dataclass(frozen=True)
class ReconciliationRow:
    property: str
    reference: str
    status: MatchStatus
    ledger: LedgerRow | None = None
    matches: tuple[Booking, ...] = ()
    csv_net: Decimal | None = None
    db_total: Decimal | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "property": self.property,
            "reference": self.reference,
            "status": self.status.value,
            "csvGuest": self.ledger.guest if self.ledger else None,
            "csvNet": float(self.csv_net) if self.csv_net is not None else None,
            "line": self.ledger.line if self.ledger else None,
            "dbGuests": [b.guest_name for b in self.matches],
            "dbCount": len(self.matches),
            "dbTotal": float(self.db_total) if self.db_total is not None else None,
            "bookings": [b.to_dict() for b in self.matches],
        }


@dataclass
class PropertyGroup:
    property: str
    rows: list[ReconciliationRow] = field(default_factory=list)
    csv_total: Decimal = ZERO
    db_total: Decimal = ZERO
    safe_total: Decimal = ZERO

    def add(self, row: ReconciliationRow) -> None:
        self.rows.append(row)
        self.csv_total += row.csv_net or ZERO
        self.db_total += row.db_total or ZERO
        if row.status is MatchStatus.OK:
            self.safe_total += row.csv_net or ZERO

    def to_dict(self) -> dict[str, Any]:
        return {
            "property": self.property,
            "csvTotal": float(self.csv_total),
            "dbTotal": float(self.db_total),
            "safeTotal": float(self.safe_total),
            "rows": [r.to_dict() for r in self.rows],
        }


@dataclass
class ReconciliationResult:
    rows: list[ReconciliationRow]
    groups: dict[str, PropertyGroup]
    dropped: int = 0
    rejected: int = 0

    @property
    def counts(self) -> dict[str, int]:
        """Rows per status, every status present (zero when absent)."""
        tally = Counter(r.status for r in self.rows)
        return {s.value: tally.get(s, 0) for s in MatchStatus}

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows": [r.to_dict() for r in self.rows],
            "groups": [g.to_dict() for g in self.groups.values()],
            "counts": self.counts,
            "dropped": self.dropped,
            "rejected": self.rejected,
        }


# ---------------------------------------------------------------------------
# Matcher
# ---------------------------------------------------------------------------


def index_by_reference(bookings: Iterable[Booking]) -> dict[str, list[Booking]]:
    """Group bookings by reservation reference, keeping input order."""
    index: dict[str, list[Booking]] = {}
    for b in bookings:
        index.setdefault(b.reservation_id or "", []).append(b)
    return index


def classify(
    matches: Sequence[Booking], net: Decimal, tolerance: Decimal = DEFAULT_TOLERANCE
) -> MatchStatus:
    if not matches:
        return MatchStatus.MISSING_IN_DB
    if len({property_label(b) for b in matches}) > 1:
        return MatchStatus.MULTI_PROPERTY_REFERENCE
    if len(matches) > 1:
        return MatchStatus.DUPLICATE_DB_REFERENCE
    if abs(matches[0].reconcile_amount - net) > tolerance:
        return MatchStatus.AMOUNT_MISMATCH
    return MatchStatus.OK


def group_by_property(rows: Iterable[ReconciliationRow]) -> dict[str, PropertyGroup]:
    """Aggregate rows per property label, in first-seen order."""
    groups: dict[str, PropertyGroup] = {}
    for row in rows:
        groups.setdefault(row.property, PropertyGroup(property=row.property)).add(row)
    return groups


def reconcile(
    index: dict[str, list[Booking]],
    ledger_rows: Iterable[LedgerRow],
    predicate: MatchPredicate = match_substring,
    tolerance: Decimal = DEFAULT_TOLERANCE,
    dropped: int = 0,
    rejected: int = 0,
) -> ReconciliationResult:
    """Match *ledger_rows* against the bookings in *index*.

    Ledger rows with an empty reference are counted as dropped and produce
    no row. Never raises on data.
    """
    rows: list[ReconciliationRow] = []
    touched: set[int] = set()
    references = list(index.items())

    for ledger in ledger_rows:
        if not ledger.reference:
            dropped += 1
            continue

        matches = [
            b
            for stored_ref, bookings in references
            if predicate(stored_ref, ledger.reference)
            for b in bookings
        ]
        status = classify(matches, ledger.net, tolerance)

        if status is MatchStatus.MISSING_IN_DB:
            rows.append(
                ReconciliationRow(
                    property=UNMATCHED_LABEL,
                    reference=ledger.reference,
                    status=status,
                    ledger=ledger,
                    csv_net=ledger.net,
                )
            )
            continue

        touched.update(b.id for b in matches)
        label = (
            CROSS_PROPERTY_LABEL
            if status is MatchStatus.MULTI_PROPERTY_REFERENCE
            else property_label(matches[0])
        )
        rows.append(
            ReconciliationRow(
                property=label,
                reference=ledger.reference,
                status=status,
                ledger=ledger,
                matches=tuple(matches),
                csv_net=ledger.net,
                db_total=sum((b.reconcile_amount for b in matches), ZERO),
            )
        )

    for _, bookings in references:
        for b in bookings:
            if b.id in touched:
                continue
            touched.add(b.id)
            rows.append(
                ReconciliationRow(
                    property=property_label(b),
                    reference=b.reservation_id,
                    status=MatchStatus.MISSING_IN_CSV,
                    matches=(b,),
                    db_total=b.reconcile_amount,
                )
            )

    return ReconciliationResult(
        rows=rows,
        groups=group_by_property(rows),
        dropped=dropped,
        rejected=rejected,
    )


def run_reconciliation(
    store: BookingStore,
    ledger_rows: Iterable[LedgerRow],
    rng: DateRange,
    platform: str | Platform = Platform.BOOKING_COM,
    mode: str = "substring",
    tolerance: Decimal = DEFAULT_TOLERANCE,
    dropped: int = 0,
    rejected: int = 0,
) -> ReconciliationResult:
    """Reconcile a ledger against one platform's bookings checking out in *rng*."""
    predicate = get_predicate(mode)
    bookings = bookings_checking_out(store, rng, platforms=[Platform.parse(platform)])
    result = reconcile(
        index_by_reference(bookings),
        ledger_rows,
        predicate=predicate,
        tolerance=tolerance,
        dropped=dropped,
        rejected=rejected,
    )
    counts = {k: v for k, v in result.counts.items() if v}
    log.info(
        "Reconciled %d booking(s) against ledger: %s",
        len(bookings),
        ", ".join(f"{k}={v}" for k, v in counts.items()) or "no rows",
    )
    return result
