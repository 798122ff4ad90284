"""Reconciliation reports.

Flattens a :class:`ReconciliationResult` into tables and writes them out:

- ``.csv``  — the row table, via Polars ``write_csv``
- ``.xlsx`` — a ``Rows`` sheet and a ``Totals`` sheet (one line per
  property group), via openpyxl
"""

from __future__ import annotations

import logging
from pathlib import Path

import polars as pl
from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from .errors import ValidationError
from .reconcile import ReconciliationResult

log = logging.getLogger(__name__)

ROW_COLUMNS = [
    "property",
    "reference",
    "status",
    "csv_guest",
    "csv_net",
    "db_guests",
    "db_count",
    "db_total",
]

TOTAL_COLUMNS = ["property", "rows", "csv_total", "db_total", "safe_total"]


def rows_frame(result: ReconciliationResult) -> pl.DataFrame:
    data = [
        {
            "property": r.property,
            "reference": r.reference,
            "status": r.status.value,
            "csv_guest": r.ledger.guest if r.ledger else None,
            "csv_net": float(r.csv_net) if r.csv_net is not None else None,
            "db_guests": "; ".join(b.guest_name for b in r.matches),
            "db_count": len(r.matches),
            "db_total": float(r.db_total) if r.db_total is not None else None,
        }
        for r in result.rows
    ]
    schema = {
        "property": pl.Utf8,
        "reference": pl.Utf8,
        "status": pl.Utf8,
        "csv_guest": pl.Utf8,
        "csv_net": pl.Float64,
        "db_guests": pl.Utf8,
        "db_count": pl.Int64,
        "db_total": pl.Float64,
    }
    return pl.DataFrame(data, schema=schema)


def totals_frame(result: ReconciliationResult) -> pl.DataFrame:
    data = [
        {
            "property": g.property,
            "rows": len(g.rows),
            "csv_total": float(g.csv_total),
            "db_total": float(g.db_total),
            "safe_total": float(g.safe_total),
        }
        for g in result.groups.values()
    ]
    schema = {
        "property": pl.Utf8,
        "rows": pl.Int64,
        "csv_total": pl.Float64,
        "db_total": pl.Float64,
        "safe_total": pl.Float64,
    }
    return pl.DataFrame(data, schema=schema)


def _write_sheet(ws, df: pl.DataFrame) -> None:
    ws.append(df.columns)
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for row in df.iter_rows():
        ws.append(list(row))
    for idx, name in enumerate(df.columns, start=1):
        width = max([len(name)] + [len(str(v)) for v in df[name].to_list() if v is not None])
        ws.column_dimensions[get_column_letter(idx)].width = min(width + 2, 60)


def write_report(result: ReconciliationResult, path: Path) -> Path:
    """Write *result* to *path*; the format follows the extension."""
    suffix = path.suffix.lower()
    path.parent.mkdir(parents=True, exist_ok=True)
    if suffix == ".csv":
        rows_frame(result).write_csv(path)
    elif suffix == ".xlsx":
        wb = Workbook()
        ws = wb.active
        ws.title = "Rows"
        _write_sheet(ws, rows_frame(result))
        _write_sheet(wb.create_sheet("Totals"), totals_frame(result))
        wb.save(path)
    else:
        raise ValidationError(f"Unsupported report format: {suffix or '(none)'}")
    log.info("Wrote reconciliation report to %s", path)
    return path
