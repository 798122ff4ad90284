"""Ingestion module — load uploaded spreadsheets into Polars.

Accepts a file path or the raw bytes of an upload. CSV/TSV are read with
Polars' CSV reader, XLSX with ``read_excel`` on the openpyxl engine. Every
column comes back as a string: the ledger parser and the bulk importer do
their own value parsing, so the reader must never guess types.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import polars as pl

from .errors import ValidationError

log = logging.getLogger(__name__)

SUPPORTED_FILE_EXTENSIONS = {
    ".csv": "csv",
    ".txt": "csv",
    ".tsv": "tsv",
    ".xlsx": "excel",
}


@dataclass(frozen=True)
class FileInput:
    path: Path
    format: str
    sheet: str | None = None


def detect_format(filename: str) -> str:
    """Map a file name to its reader format by suffix."""
    suffix = Path(filename).suffix.lower()
    if suffix not in SUPPORTED_FILE_EXTENSIONS:
        raise ValidationError(f"Unsupported file extension: {suffix or filename!r}")
    return SUPPORTED_FILE_EXTENSIONS[suffix]


def _normalize_path(path: Path, base_dir: Path | None = None) -> Path:
    """Resolve path against base_dir (or cwd) and expand user/symlinks."""
    if not path.is_absolute():
        if base_dir is None:
            base_dir = Path.cwd()
        path = base_dir / path
    return path.expanduser().resolve()


def parse_file_string(value: str, base_dir: Path | None = None) -> FileInput:
    """Parse a CLI file argument into a FileInput.

    Excel files take a sheet fragment: "payouts.xlsx#March".
    """
    if not value or not value.strip():
        raise ValidationError("File path must be a non-empty string")

    raw = value.strip()
    sheet: str | None = None
    if "#" in raw:
        path_part, sheet_part = raw.rsplit("#", 1)
        if not path_part:
            raise ValidationError("File path must precede '#'")
        if not sheet_part:
            raise ValidationError("Excel sheet name must follow '#' fragment")
        raw, sheet = path_part, sheet_part

    path = _normalize_path(Path(raw), base_dir=base_dir)
    fmt = detect_format(path.name)
    if sheet and fmt != "excel":
        raise ValidationError("Sheet fragments are only supported for Excel files")
    return FileInput(path=path, format=fmt, sheet=sheet)


def _normalize(df: pl.DataFrame) -> pl.DataFrame:
    """Stringify every column and strip header whitespace / BOM."""
    df = df.rename({c: c.replace("\ufeff", "").strip() for c in df.columns})
    return df.with_columns(pl.all().cast(pl.Utf8))


def read_table(
    source: Path | bytes,
    fmt: str,
    sheet: str | None = None,
) -> pl.DataFrame:
    """Read a CSV/TSV/XLSX file (path or bytes) into an all-string DataFrame.

    An empty file gives an empty DataFrame. Unreadable content raises
    ValidationError.
    """
    if isinstance(source, Path) and not source.exists():
        raise FileNotFoundError(f"File not found: {source}")
    data = io.BytesIO(source) if isinstance(source, bytes) else source

    try:
        if fmt in ("csv", "tsv"):
            df = pl.read_csv(
                data,
                separator="\t" if fmt == "tsv" else ",",
                infer_schema_length=0,
                truncate_ragged_lines=True,
                encoding="utf8-lossy",
            )
        elif fmt == "excel":
            df = pl.read_excel(data, sheet_name=sheet, engine="openpyxl")
        else:
            raise ValidationError(f"Unsupported file format: {fmt}")
    except pl.exceptions.NoDataError:
        return pl.DataFrame()
    except pl.exceptions.PolarsError as e:
        raise ValidationError(f"Could not read {fmt} file: {e}") from e

    return _normalize(df)


def is_blank(record: Mapping[str, Any]) -> bool:
    """True when every cell of *record* is empty or whitespace."""
    return all(v is None or not str(v).strip() for v in record.values())


def read_records(
    source: Path | bytes, fmt: str, sheet: str | None = None
) -> list[dict[str, str]]:
    """Rows of a table as dicts, blank rows included.

    Record ``i`` is source line ``i + 2`` (the header is line 1); callers
    skip blanks with :func:`is_blank` so their line numbers stay true.
    """
    records = list(read_table(source, fmt, sheet=sheet).iter_rows(named=True))
    log.info(
        "Read %d row(s) from %s input",
        sum(1 for r in records if not is_blank(r)),
        fmt,
    )
    return records


def read_file_input(file_input: FileInput) -> list[dict[str, str]]:
    return read_records(file_input.path, file_input.format, sheet=file_input.sheet)
