from __future__ import annotations

import logging
from pathlib import Path
import sys

import pytest
from rich.logging import RichHandler

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from atera_metrics.logging_setup import configure_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    # pytest attaches and detaches its capture handlers per test phase
    handlers = [handler for handler in root.handlers if not type(handler).__module__.startswith("_pytest")]
    level = root.level
    yield
    for handler in root.handlers:
        if not type(handler).__module__.startswith("_pytest"):
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_file_sink_records_worker_thread(tmp_path):
    config = {"logging": {"console": {"enabled": False}, "file": {"path": "logs/run.log", "level": "info"}}}

    handlers = configure_logging(config, base_dir=tmp_path)
    logging.getLogger("atera_metrics.workflow").info("Loaded 3 tickets")
    logging.getLogger("atera_metrics.workflow").debug("not written")
    for handler in handlers:
        handler.flush()

    lines = (tmp_path / "logs" / "run.log").read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    assert "| INFO     | MainThread | atera_metrics.workflow | Loaded 3 tickets" in lines[0]


def test_console_sink_choice():
    rich_handlers = configure_logging({"logging": {"file": {"enabled": False}}})
    plain_handlers = configure_logging(
        {"logging": {"console": {"rich_format": False, "level": "warning"}, "file": {"enabled": False}}}
    )

    assert isinstance(rich_handlers[0], RichHandler)
    assert type(plain_handlers[0]) is logging.StreamHandler
    assert plain_handlers[0].level == logging.WARNING
    assert logging.getLogger().handlers == plain_handlers


def test_http_stack_is_quietened():
    configure_logging({"logging": {"console": {"enabled": False}, "file": {"enabled": False}}})

    assert logging.getLogger("urllib3").level == logging.WARNING
    assert logging.getLogger("requests").level == logging.WARNING
