"""DuckDB catalog helpers behind ``pms status``.

Lists the application tables and counts their rows without failing the
whole report when one relation is unreadable.
"""

from __future__ import annotations

from typing import Iterable

import duckdb

from .infra import SCHEMA_TABLES


def quote_ident(name: str) -> str:
    """Quote an identifier for DuckDB SQL."""
    return '"' + name.replace('"', '""') + '"'


def list_tables(
    conn: duckdb.DuckDBPyConnection, *, include_internal: bool = False
) -> list[str]:
    """Return table names from the catalog."""
    where = "" if include_internal else "WHERE internal = false"
    rows = conn.execute(
        f"SELECT table_name FROM duckdb_tables() {where} ORDER BY table_name"
    ).fetchall()
    return [r[0] for r in rows]


def missing_tables(
    conn: duckdb.DuckDBPyConnection, expected: Iterable[str] = SCHEMA_TABLES
) -> list[str]:
    """Schema tables not present in the database (empty when initialized)."""
    present = set(list_tables(conn))
    return [t for t in expected if t not in present]


def count_rows(conn: duckdb.DuckDBPyConnection, relation_name: str) -> int | None:
    """Return COUNT(*) for a table, or None on error."""
    try:
        row = conn.execute(
            f"SELECT COUNT(*) FROM {quote_ident(relation_name)}"
        ).fetchone()
    except duckdb.Error:
        return None
    return int(row[0]) if row else 0


def count_rows_display(conn: duckdb.DuckDBPyConnection, relation_name: str) -> str:
    """Return a display-friendly row count (or 'error')."""
    n = count_rows(conn, relation_name)
    return str(n) if n is not None else "error"


def booking_status_counts(conn: duckdb.DuckDBPyConnection) -> dict[str, int]:
    """Bookings per lifecycle status."""
    rows = conn.execute(
        "SELECT status, COUNT(*) FROM bookings GROUP BY status ORDER BY status"
    ).fetchall()
    return {r[0]: int(r[1]) for r in rows}
