"""Logging configuration for the Atera metrics tools."""
from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, List, Mapping, Optional

from rich.logging import RichHandler

from .config import resolve_path

DEFAULT_LOG_PATH = "logs/atera_metrics.log"

# Work-hour fetches run on pool threads, so the file sink records the thread
FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s | %(message)s"
PLAIN_CONSOLE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Per-request chatter from the HTTP stack
NOISY_LOGGERS = ("urllib3", "requests")


def configure_logging(config: Mapping[str, Any], *, base_dir: Path | None = None) -> List[logging.Handler]:
    """Replace the root handlers with the sinks described by ``config["logging"]``.

    Returns the installed handlers.
    """
    logging.captureWarnings(True)
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.DEBUG)

    logging_config = config.get("logging") or {}
    handlers = [
        handler
        for handler in (
            _console_handler(logging_config.get("console") or {}),
            _file_handler(logging_config.get("file") or {}, base_dir),
        )
        if handler is not None
    ]
    for handler in handlers:
        root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return handlers


def _console_handler(console_cfg: Mapping[str, Any]) -> Optional[logging.Handler]:
    if not console_cfg.get("enabled", True):
        return None
    handler: logging.Handler
    if console_cfg.get("rich_format", True):
        handler = RichHandler(rich_tracebacks=True, show_path=False, markup=False)
        handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(PLAIN_CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    handler.setLevel(str(console_cfg.get("level", "INFO")).upper())
    return handler


def _file_handler(file_cfg: Mapping[str, Any], base_dir: Path | None) -> Optional[logging.Handler]:
    if not file_cfg.get("enabled", True):
        return None
    file_path = resolve_path(file_cfg.get("path") or DEFAULT_LOG_PATH, base=base_dir)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(file_path, mode="a", encoding="utf-8")
    handler.setLevel(str(file_cfg.get("level", "DEBUG")).upper())
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
    return handler
