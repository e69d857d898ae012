from __future__ import annotations

import threading
from pathlib import Path
import sys

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from atera_metrics.concurrency import bounded_map, join_all


def test_join_all_returns_results_by_name():
    results = join_all({"tickets": lambda: [1, 2], "alerts": lambda: []})

    assert results == {"tickets": [1, 2], "alerts": []}


def test_join_all_raises_first_failure():
    def _boom():
        raise ValueError("alerts unavailable")

    with pytest.raises(ValueError, match="alerts unavailable"):
        join_all({"tickets": lambda: [1], "alerts": _boom})


def test_join_all_raises_earliest_completed_failure():
    def _slow():
        threading.Event().wait(0.3)
        raise ValueError("tickets timed out")

    def _fast():
        raise KeyError("alerts")

    with pytest.raises(KeyError):
        join_all({"tickets": _slow, "alerts": _fast})


def test_join_all_with_no_tasks():
    assert join_all({}) == {}


def test_bounded_map_keeps_input_order():
    assert bounded_map(lambda value: value * 2, [3, 1, 2], max_workers=2, default=lambda _: 0) == [6, 2, 4]


def test_bounded_map_replaces_failures_with_default():
    def _load(value):
        if value == 2:
            raise RuntimeError("upstream down")
        return [value]

    results = bounded_map(_load, [1, 2, 3], max_workers=3, default=lambda _: [])

    assert results == [[1], [], [3]]


def test_bounded_map_limits_concurrency_and_reports_progress():
    lock = threading.Lock()
    state = {"active": 0, "peak": 0}
    updates = []

    def _work(value):
        with lock:
            state["active"] += 1
            state["peak"] = max(state["peak"], state["active"])
        threading.Event().wait(0.01)
        with lock:
            state["active"] -= 1
        return value

    bounded_map(
        _work,
        list(range(10)),
        max_workers=2,
        default=lambda _: None,
        progress_callback=lambda count, total: updates.append((count, total)),
    )

    assert state["peak"] <= 2
    assert updates[-1] == (10, 10)
    assert len(updates) == 10


def test_bounded_map_with_no_items():
    assert bounded_map(lambda value: value, [], max_workers=4, default=lambda _: None) == []
