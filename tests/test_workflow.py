"""Tests for MetricsService caching, fallbacks and paging."""

from __future__ import annotations

import io
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from unittest.mock import Mock
import sys

import pytest
from rich.console import Console

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from atera_metrics.atera_client import UpstreamError
from atera_metrics.collections_service import modified_since_key
from atera_metrics.config import MetricsSettings
from atera_metrics.records import Collection
from atera_metrics.workflow import (
    DEFAULT_MONTHLY_METRICS,
    DashboardOptions,
    MetricsService,
    MonthlyReviewOptions,
    WorkHoursProgress,
    dashboard_snapshot,
    monthly_cache_key,
    monthly_review,
)

TODAY = datetime(2025, 1, 20, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _raw_ticket(ticket_id: int, created: str, **extra: Any) -> Dict[str, Any]:
    payload = {
        "TicketID": ticket_id,
        "TicketNumber": str(ticket_id),
        "TicketTitle": f"Printer fault {ticket_id}",
        "TicketStatus": "Open",
        "TicketCreatedDate": created,
    }
    payload.update(extra)
    return payload


class FakeAteraClient:
    """Stands in for AteraClient, recording each upstream call."""

    def __init__(self, tickets: Optional[List[Dict[str, Any]]] = None, fail: bool = False) -> None:
        self.tickets = tickets or []
        self.fail = fail
        self.modified_calls: List[Any] = []
        self.work_hour_calls: List[int] = []
        self.failing_work_hours: set = set()

    def _collection(self, items):
        return Collection(items=tuple(items), total_count=len(items))

    def fetch_tickets(self, *, max_pages=None):
        if self.fail:
            raise UpstreamError(500, "boom")
        return self._collection(self.tickets)

    def fetch_tickets_modified_since(self, since, *, max_pages=None):
        self.modified_calls.append((since, max_pages))
        if self.fail:
            raise UpstreamError(500, "boom")
        return self._collection(self.tickets)

    def fetch_open_alerts(self, *, max_pages=None):
        if self.fail:
            raise UpstreamError(500, "boom")
        return self._collection([])

    def fetch_work_hours(self, ticket_id):
        self.work_hour_calls.append(ticket_id)
        if ticket_id in self.failing_work_hours:
            raise UpstreamError(502, "bad gateway")
        return [{"WorkHoursID": ticket_id, "TechnicianFullName": "Dana", "BillableDuration": 60}]


def _write_fixture(path: Path, rows: int = 3, label: str = "January 2025") -> Path:
    document = {
        "monthLabel": label,
        "totalTickets": rows,
        "tickets": [{"id": index, "title": f"Ticket {index}"} for index in range(1, rows + 1)],
    }
    path.write_text(json.dumps(document), encoding="utf-8")
    return path


def _service(client=None, clock=None, **settings: Any) -> MetricsService:
    return MetricsService(MetricsSettings(**settings), client=client, clock=clock or FakeClock())


def test_monthly_review_is_cached_per_month():
    client = FakeAteraClient([_raw_ticket(1, "2025-01-05T10:00:00Z")])
    service = _service(client)

    first = service.fetch_monthly_review_metrics("2025-01")
    second = service.fetch_monthly_review_metrics("2025-01")

    assert first is second
    assert first.total_tickets == 1
    assert len(client.modified_calls) == 1
    assert client.modified_calls[0][0] == datetime(2025, 1, 1, tzinfo=timezone.utc)


def test_monthly_review_refetches_after_expiry():
    clock = FakeClock()
    client = FakeAteraClient([_raw_ticket(1, "2025-01-05T10:00:00Z")])
    service = _service(client, clock, monthly_ttl_ms=1000, collection_ttl_seconds=0.5)

    service.fetch_monthly_review_metrics("2025-01")
    clock.now = 2.0
    service.fetch_monthly_review_metrics("2025-01")

    assert len(client.modified_calls) == 2


def test_force_refresh_bypasses_both_caches():
    client = FakeAteraClient([_raw_ticket(1, "2025-01-05T10:00:00Z")])
    service = _service(client)

    service.fetch_monthly_review_metrics("2025-01")
    service.fetch_monthly_review_metrics("2025-01", force_refresh=True)

    assert len(client.modified_calls) == 2


def test_work_hours_failure_is_isolated_to_one_ticket():
    client = FakeAteraClient(
        [_raw_ticket(1, "2025-01-05T10:00:00Z"), _raw_ticket(2, "2025-01-06T10:00:00Z")]
    )
    client.failing_work_hours.add(2)
    service = _service(client)

    review = service.fetch_monthly_review_metrics("2025-01")

    assert sorted(client.work_hour_calls) == [1, 2]
    assert review.billable_hours.total_hours == 1.0


def test_upstream_failure_serves_and_caches_fixture(tmp_path):
    fixture = _write_fixture(tmp_path / "monthly.json")
    client = FakeAteraClient(fail=True)
    service = _service(client)

    first = service.fetch_monthly_review_metrics("2025-01", fixture_path=str(fixture))
    second = service.fetch_monthly_review_metrics("2025-01", fixture_path=str(fixture))

    assert first.month_label == "January 2025"
    assert second is first
    assert len(client.modified_calls) == 1


def test_upstream_failure_without_fixture_invalidates_month(tmp_path):
    service = _service(FakeAteraClient(fail=True))
    service.cache.set(monthly_cache_key("2025-01"), DEFAULT_MONTHLY_METRICS, 3600)

    result = service.fetch_monthly_review_metrics(
        "2025-01", fixture_path=str(tmp_path / "missing.json"), force_refresh=True
    )

    assert result is None
    assert service.cache.get(monthly_cache_key("2025-01")) is None


def test_missing_api_key_falls_back_to_fixture(tmp_path):
    fixture = _write_fixture(tmp_path / "monthly.json")
    service = _service(monthly_fixture=str(fixture))

    page = service.load_monthly_review("2025-01", today=TODAY)

    assert page.metrics.month_label == "January 2025"
    assert page.selected_month == "2025-01"


def test_load_monthly_review_pages_rows(tmp_path):
    fixture = _write_fixture(tmp_path / "monthly.json", rows=40)
    service = _service(FakeAteraClient(fail=True), monthly_fixture=str(fixture))

    page = service.load_monthly_review("2025-01", 2, today=TODAY)

    assert page.total_pages == 2
    assert page.page == 2
    assert len(page.rows) == 15
    assert page.rows[0].id == 26


@pytest.mark.parametrize("requested, expected", [(99, 2), ("abc", 1), (0, 1), (-3, 1), ("2.7", 2)])
def test_load_monthly_review_clamps_page(tmp_path, requested, expected):
    fixture = _write_fixture(tmp_path / "monthly.json", rows=40)
    service = _service(FakeAteraClient(fail=True), monthly_fixture=str(fixture))

    assert service.load_monthly_review("2025-01", requested, today=TODAY).page == expected


def test_load_monthly_review_defaults_when_nothing_available():
    service = _service(FakeAteraClient(fail=True))

    page = service.load_monthly_review(today=TODAY)

    assert page.metrics is DEFAULT_MONTHLY_METRICS
    assert page.selected_month == "2025-01"
    assert page.total_pages == 1
    assert page.rows == ()


def test_load_monthly_review_replaces_invalid_month():
    client = FakeAteraClient([])
    service = _service(client)

    page = service.load_monthly_review("2025-13", today=TODAY)

    assert page.selected_month == "2025-01"
    assert page.metrics.month_label == "January 2025"


def test_dashboard_fixture_overrides_live_data(tmp_path):
    fixture = tmp_path / "dashboard.json"
    fixture.write_text(json.dumps({"generatedAt": "2025-01-15T09:30:00.000Z", "openTotal": 12}), encoding="utf-8")
    client = Mock()
    service = _service(client, dashboard_fixture=str(fixture))

    result = service.load_dashboard()

    assert result.ok
    assert result.metrics.open_total == 12
    assert client.method_calls == []


def test_unreadable_dashboard_fixture_uses_live_data(tmp_path):
    client = FakeAteraClient([_raw_ticket(1, "2025-01-15T08:00:00Z")])
    service = _service(client, dashboard_fixture=str(tmp_path / "missing.json"))

    result = service.load_dashboard(now=datetime(2025, 1, 15, 12, tzinfo=timezone.utc))

    assert result.ok
    assert result.metrics.open_total == 1


def test_load_dashboard_reports_upstream_failure():
    result = _service(FakeAteraClient(fail=True)).load_dashboard()

    assert not result.ok
    assert result.metrics is None
    assert "Atera API error (500)" in result.error


def test_load_dashboard_without_api_key_reports_error():
    result = _service().load_dashboard()

    assert not result.ok
    assert "API key" in result.error


def _cli_config(tmp_path: Path, **fixtures: str) -> Path:
    config_path = tmp_path / "config.yaml"
    lines = ["logging:", "  console:", "    enabled: false", "  file:", "    enabled: false", "fixtures:"]
    lines.extend(f"  {name}: {value}" for name, value in fixtures.items())
    config_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return config_path


def test_dashboard_snapshot_writes_json(tmp_path, monkeypatch):
    monkeypatch.delenv("DASHBOARD_FIXTURE", raising=False)
    source = tmp_path / "dashboard.json"
    source.write_text(json.dumps({"generatedAt": "2025-01-15T09:30:00.000Z", "openTotal": 4}), encoding="utf-8")
    options = DashboardOptions(
        config_path=str(_cli_config(tmp_path, dashboard=str(source))),
        output_path="out/snapshot.json",
        disable_console=True,
    )

    result = dashboard_snapshot(options, base_dir=tmp_path)

    written = json.loads((tmp_path / "out" / "snapshot.json").read_text(encoding="utf-8"))
    assert result.ok
    assert written["openTotal"] == 4


def test_monthly_review_exports_json_and_csv(tmp_path, monkeypatch):
    monkeypatch.delenv("ATERA_API_KEY", raising=False)
    monkeypatch.delenv("MONTHLY_REVIEW_FIXTURE", raising=False)
    fixture = _write_fixture(tmp_path / "monthly.json", rows=2)
    options = MonthlyReviewOptions(
        config_path=str(_cli_config(tmp_path, monthly=str(fixture))),
        month="2025-01",
        output_directory="exports",
        disable_console=True,
        show_console_log=True,
    )

    page = monthly_review(options, base_dir=tmp_path)

    assert page.metrics.total_tickets == 2
    assert (tmp_path / "exports" / "monthly_review_2025-01.json").exists()
    csv_lines = (tmp_path / "exports" / "monthly_tickets_2025-01.csv").read_text(encoding="utf-8").splitlines()
    assert len(csv_lines) == 3


class PageCappedClient(FakeAteraClient):
    """Returns a shorter modified-since drain whenever a page cap of 20 is requested."""

    def fetch_tickets_modified_since(self, since, *, max_pages=None):
        self.modified_calls.append((since, max_pages))
        count = 20 if max_pages == 20 else 40
        return self._collection(
            [_raw_ticket(index, f"2025-01-{(index % 14) + 1:02d}T10:00:00Z") for index in range(1, count + 1)]
        )


def test_dashboard_drain_does_not_truncate_monthly_review():
    client = PageCappedClient()
    service = _service(client)

    service.get_dashboard_metrics(now=datetime(2025, 1, 15, 12, tzinfo=timezone.utc))
    review = service.fetch_monthly_review_metrics("2025-01")

    assert review.total_tickets == 40
    assert sorted(str(limit) for _, limit in client.modified_calls) == ["10", "20", "None"]


def test_modified_since_key_tracks_page_limit():
    since = datetime(2025, 1, 1, tzinfo=timezone.utc)

    assert modified_since_key(since) == "tickets:lastmodified:2025-01-01T00:00:00.000Z:default"
    assert modified_since_key(since, 20) != modified_since_key(since)
    assert modified_since_key(since, 20) != modified_since_key(since, 10)


def test_work_hours_progress_tracks_batch_total():
    console = Console(file=io.StringIO(), force_terminal=False)

    with WorkHoursProgress(True, console=console) as progress:
        progress.update(1, 3)
        progress.update(3, 3)

    task = progress.progress.tasks[0]
    assert task.completed == 3
    assert task.total == 3


def test_disabled_work_hours_progress_ignores_updates():
    with WorkHoursProgress(False) as progress:
        progress.update(2, 5)

    assert progress.progress is None
