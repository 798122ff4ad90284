"""Payout ledger parsing.

A ledger is a platform settlement export: one line per reservation paid
out, with at least a reference, a guest name and a net amount. Header
names vary between platforms and export versions, so each field is found
through a list of accepted aliases (compared case- and space-insensitively).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping

from .errors import ValidationError
from .ingest import is_blank, read_records
from .models import LedgerRow, to_money_or_zero

log = logging.getLogger(__name__)

REFERENCE_COLUMNS = ("Reference number", "Reference", "Reservation number")
GUEST_COLUMNS = ("Guest name", "Guest(s) name", "Guest")
NET_COLUMNS = ("Net", "Net amount", "Payout")


@dataclass
class LedgerParseResult:
    rows: list[LedgerRow] = field(default_factory=list)
    dropped: int = 0  # no reference
    rejected: int = 0  # reference shorter than the minimum length


def _key(name: str) -> str:
    return " ".join(name.lower().split())


def resolve_column(columns: Iterable[str], aliases: Iterable[str]) -> str | None:
    """Return the first header in *columns* matching one of *aliases*."""
    by_key = {_key(c): c for c in columns}
    for alias in aliases:
        found = by_key.get(_key(alias))
        if found is not None:
            return found
    return None


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def parse_ledger_records(
    records: list[Mapping[str, Any]], min_reference_length: int = 3
) -> LedgerParseResult:
    """Turn header-keyed records into :class:`LedgerRow`s.

    The reference column is mandatory (ValidationError when absent); guest
    and net columns are optional and default to blank / 0. Line numbers
    count the header as line 1; blank rows are skipped without being counted.
    """
    result = LedgerParseResult()
    if not records:
        return result

    columns = list(records[0].keys())
    ref_col = resolve_column(columns, REFERENCE_COLUMNS)
    if ref_col is None:
        raise ValidationError(
            "Ledger has no reference column (expected one of: "
            + ", ".join(REFERENCE_COLUMNS)
            + ")"
        )
    guest_col = resolve_column(columns, GUEST_COLUMNS)
    net_col = resolve_column(columns, NET_COLUMNS)

    for line, record in enumerate(records, start=2):
        if is_blank(record):
            continue
        reference = _text(record.get(ref_col))
        if not reference:
            result.dropped += 1
            continue
        if len(reference) < min_reference_length:
            log.warning("Line %d: reference %r is too short, skipped", line, reference)
            result.rejected += 1
            continue
        result.rows.append(
            LedgerRow(
                reference=reference,
                guest=_text(record.get(guest_col)) if guest_col else "",
                net=to_money_or_zero(record.get(net_col) if net_col else None),
                line=line,
            )
        )

    log.info(
        "Ledger: %d row(s), %d dropped, %d rejected",
        len(result.rows),
        result.dropped,
        result.rejected,
    )
    return result


def parse_ledger(
    source: Path | bytes, fmt: str, min_reference_length: int = 3, sheet: str | None = None
) -> LedgerParseResult:
    """Read a ledger file (path or upload bytes) and parse it."""
    return parse_ledger_records(
        read_records(source, fmt, sheet=sheet), min_reference_length=min_reference_length
    )
