"""Runtime settings.

Precedence, highest first:

1. ``PMS_*`` environment variables (a ``.env`` found by walking upward from
   the CWD is loaded first, so it counts as environment)
2. the ``[tool.pms]`` table of ``pyproject.toml`` in the CWD
3. built-in defaults

Example ``pyproject.toml``::

    [tool.pms]
    db_path = "data/hotel.db"
    min_reference_length = 4
    match_mode = "prefix"
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, fields, replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

from dotenv import find_dotenv, load_dotenv

from .errors import ValidationError

log = logging.getLogger(__name__)

ENV_PREFIX = "PMS_"
MATCH_MODES = ("exact", "prefix", "substring")


@dataclass(frozen=True)
class Settings:
    db_path: str = "pms.db"
    log_level: str = "INFO"
    min_reference_length: int = 3
    match_mode: str = "substring"
    amount_tolerance: Decimal = Decimal("0.01")
    host: str = "127.0.0.1"
    port: int = 8000

    def __post_init__(self) -> None:
        if self.match_mode not in MATCH_MODES:
            raise ValidationError(
                f"match_mode must be one of {', '.join(MATCH_MODES)}, "
                f"got {self.match_mode!r}"
            )
        if self.min_reference_length < 1:
            raise ValidationError("min_reference_length must be at least 1")


def _coerce(name: str, raw: Any) -> Any:
    """Convert a raw config value to the type of the Settings field."""
    default = getattr(Settings, name)
    try:
        if isinstance(default, bool):
            return str(raw).strip().lower() in ("1", "true", "yes", "on")
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, Decimal):
            return Decimal(str(raw))
    except (TypeError, ValueError, InvalidOperation) as e:
        raise ValidationError(f"Invalid value for {name}: {raw!r}") from e
    return str(raw)


def _pyproject_table(root: Path) -> dict[str, Any]:
    pyproject_path = root / "pyproject.toml"
    if not pyproject_path.exists():
        return {}
    try:
        data = tomllib.loads(pyproject_path.read_text())
    except (OSError, tomllib.TOMLDecodeError) as e:
        log.warning("Ignoring unreadable %s: %s", pyproject_path, e)
        return {}
    table = data.get("tool", {}).get("pms", {})
    return table if isinstance(table, dict) else {}


def load_settings(root: Path | None = None, *, dotenv: bool = True) -> Settings:
    """Build Settings from defaults, ``[tool.pms]`` and the environment."""
    if dotenv:
        dotenv_path = find_dotenv(usecwd=True)
        if dotenv_path:
            load_dotenv(dotenv_path)

    root = root or Path.cwd()
    known = {f.name for f in fields(Settings)}
    values: dict[str, Any] = {}

    for key, raw in _pyproject_table(root).items():
        if key not in known:
            log.warning("Unknown [tool.pms] key ignored: %s", key)
            continue
        values[key] = _coerce(key, raw)

    for name in known:
        raw = os.environ.get(ENV_PREFIX + name.upper())
        if raw not in (None, ""):
            values[name] = _coerce(name, raw)

    return replace(Settings(), **values)
