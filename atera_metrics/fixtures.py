"""Static JSON fixtures used for offline demos and as a monthly fallback."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

from .config import resolve_path

LOGGER = logging.getLogger(__name__)


class FixtureError(RuntimeError):
    """Raised when a fixture file is missing or is not valid JSON."""


def load_json_fixture(path: str | Path, *, base: Path | None = None) -> Any:
    """Read a JSON fixture; relative paths resolve against ``base`` or the CWD."""
    resolved = resolve_path(str(path), base=base)
    try:
        raw = resolved.read_text(encoding="utf-8")
    except OSError as exc:
        raise FixtureError(f"Unable to read fixture {resolved}: {exc}") from exc
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise FixtureError(f"Fixture {resolved} is not valid JSON: {exc}") from exc


def try_load_fixture(path: Optional[str | Path], *, base: Path | None = None) -> Optional[Any]:
    """Like :func:`load_json_fixture` but logs failures and returns ``None``."""
    if not path:
        return None
    try:
        return load_json_fixture(path, base=base)
    except FixtureError as exc:
        LOGGER.warning("Unable to load fixture %s: %s", path, exc)
        return None
