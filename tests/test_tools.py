"""Tests for the console rendering in the command line tools."""

from __future__ import annotations

from importlib import util
from pathlib import Path
import sys

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from atera_metrics.fixtures import load_json_fixture
from atera_metrics.records import DashboardMetrics, MonthlyReviewMetrics
from atera_metrics.workflow import DashboardLoadResult, MonthlyReviewPage


def _load_tool(name: str):
    spec = util.spec_from_file_location(f"tools_{name}", PROJECT_ROOT / "tools" / f"{name}.py")
    assert spec and spec.loader
    module = util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


dashboard_tool = _load_tool("dashboard_snapshot")
monthly_tool = _load_tool("monthly_review")


def _sample_dashboard() -> DashboardMetrics:
    return DashboardMetrics.from_dict(load_json_fixture("fixtures/dashboard.sample.json", base=PROJECT_ROOT))


def test_render_dashboard_lists_counters_and_tables():
    lines = dashboard_tool.render_dashboard(_sample_dashboard())

    assert lines[0] == "Generated at 2025-01-15T09:30:00.000Z"
    assert any(line.startswith("Open tickets") and line.endswith("12") for line in lines)
    assert "Technician workload" in lines
    assert any("Dana Whitfield" in line for line in lines)


def test_dashboard_main_exits_on_failure(monkeypatch, capsys):
    monkeypatch.setattr(
        dashboard_tool,
        "dashboard_snapshot",
        lambda options, base_dir: DashboardLoadResult(ok=False, error="Atera API error (500): boom"),
    )

    with pytest.raises(SystemExit) as excinfo:
        dashboard_tool.main([])

    assert excinfo.value.code == 1
    assert "Atera API error (500)" in capsys.readouterr().err


@pytest.mark.parametrize(
    "minutes, expected",
    [(0, "0m"), (45, "45m"), (90, "1.5h"), (2880, "2.0d")],
)
def test_minutes_to_friendly(minutes, expected):
    assert monthly_tool._minutes_to_friendly(minutes) == expected


def test_render_review_shows_page_of_rows():
    metrics = MonthlyReviewMetrics.from_dict(
        load_json_fixture("fixtures/monthly-review.sample.json", base=PROJECT_ROOT)
    )
    page = MonthlyReviewPage(
        metrics=metrics,
        selected_month="2025-01",
        page=1,
        total_pages=1,
        rows=metrics.tickets,
    )

    lines = monthly_tool.render_review(page)

    assert lines[0] == "Monthly review for January 2025 (2025-01)"
    assert "Tickets for January 2025 - page 1/1" in lines
    assert any("Printer offline in reception" in line for line in lines)
    assert any(line.startswith("Keywords: printer (2)") for line in lines)
