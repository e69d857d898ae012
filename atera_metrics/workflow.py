"""Service wiring and higher level workflows used by the command line tools."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, List, Optional

import requests
from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TaskID, TextColumn, TimeElapsedColumn

from .atera_client import AteraClient, UpstreamError
from .cache import Clock, TTLCache
from .classifier import StatusClassifier
from .collections_service import CollectionFetcher
from .concurrency import bounded_map
from .config import ConfigurationError, MetricsSettings, load_config, resolve_path
from .dashboard import fetch_dashboard_metrics
from .fixtures import try_load_fixture
from .logging_setup import configure_logging
from .monthly import build_monthly_review, month_key_for, parse_month
from .records import (
    DashboardMetrics,
    MonthlyReviewMetrics,
    TicketRecord,
    TicketRow,
    WorkHoursRecord,
)
from .reporting import MetricsReportWriter

LOGGER = logging.getLogger(__name__)

MONTHLY_PAGE_SIZE = 25

# Failures that send the monthly review to its fixture and fail the dashboard
UPSTREAM_FAILURES = (UpstreamError, ConfigurationError, requests.RequestException)

DEFAULT_MONTHLY_METRICS = MonthlyReviewMetrics(month_label="Current Month")


def monthly_cache_key(month_key: str) -> str:
    return f"monthly:{month_key}"


@dataclass(frozen=True)
class DashboardLoadResult:
    ok: bool
    metrics: Optional[DashboardMetrics] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class MonthlyReviewPage:
    metrics: MonthlyReviewMetrics
    selected_month: str
    page: int
    total_pages: int
    page_size: int = MONTHLY_PAGE_SIZE
    rows: tuple[TicketRow, ...] = field(default_factory=tuple)


class MetricsService:
    """Dashboard and monthly review entry points sharing one cache and client.

    The Atera client is created on first use so fixture-only deployments run
    without an API key.
    """

    def __init__(
        self,
        settings: MetricsSettings,
        *,
        client: Optional[AteraClient] = None,
        cache: Optional[TTLCache] = None,
        clock: Optional[Clock] = None,
        base_dir: Optional[Path] = None,
    ) -> None:
        self.settings = settings
        self.cache = cache or TTLCache(default_ttl=settings.collection_ttl_seconds, clock=clock)
        self.classifier = StatusClassifier.from_settings(
            settings.closed_keywords, settings.pending_keywords
        )
        self.base_dir = base_dir
        self.progress_callback: Optional[Callable[[int, Optional[int]], None]] = None
        self._client = client
        self._fetcher: Optional[CollectionFetcher] = None
        self._dashboard_fixture_loaded = False
        self._dashboard_fixture: Optional[DashboardMetrics] = None

    # -- Upstream access -------------------------------------------------------------
    @property
    def client(self) -> AteraClient:
        if self._client is None:
            self._client = AteraClient(
                api_key=self.settings.require_api_key(),
                base_url=self.settings.base_url,
                timeout=self.settings.timeout,
                page_size=self.settings.page_size,
                max_pages=self.settings.max_pages,
            )
        return self._client

    @property
    def fetcher(self) -> CollectionFetcher:
        if self._fetcher is None:
            self._fetcher = CollectionFetcher(
                self.client, self.cache, ttl_seconds=self.settings.collection_ttl_seconds
            )
        return self._fetcher

    # -- Dashboard -------------------------------------------------------------------
    def get_dashboard_metrics(self, now: Optional[datetime] = None) -> DashboardMetrics:
        """Return the live snapshot, or the configured dashboard fixture verbatim."""
        fixture = self._dashboard_override()
        if fixture is not None:
            return fixture
        return fetch_dashboard_metrics(self.fetcher, self.classifier, now)

    def _dashboard_override(self) -> Optional[DashboardMetrics]:
        if not self.settings.dashboard_fixture:
            return None
        if not self._dashboard_fixture_loaded:
            self._dashboard_fixture_loaded = True
            document = try_load_fixture(self.settings.dashboard_fixture, base=self.base_dir)
            if isinstance(document, dict):
                self._dashboard_fixture = DashboardMetrics.from_dict(document)
                LOGGER.info("Serving dashboard from fixture %s", self.settings.dashboard_fixture)
            elif document is not None:
                LOGGER.warning(
                    "Dashboard fixture %s is not a JSON object; using live data",
                    self.settings.dashboard_fixture,
                )
        return self._dashboard_fixture

    def load_dashboard(self, now: Optional[datetime] = None) -> DashboardLoadResult:
        try:
            metrics = self.get_dashboard_metrics(now)
        except UPSTREAM_FAILURES as exc:
            LOGGER.exception("Unable to build dashboard metrics")
            return DashboardLoadResult(ok=False, error=str(exc))
        return DashboardLoadResult(ok=True, metrics=metrics)

    # -- Monthly review --------------------------------------------------------------
    def fetch_monthly_review_metrics(
        self,
        month: str,
        *,
        fixture_path: Optional[str] = None,
        force_refresh: bool = False,
    ) -> Optional[MonthlyReviewMetrics]:
        """Return the month's review, cached for the monthly TTL.

        When the upstream fails the fixture at ``fixture_path`` is served (and
        cached) instead; without a usable fixture the month's entry is dropped
        and ``None`` is returned.
        """
        window = parse_month(month)
        key = monthly_cache_key(window.key)
        ttl = self.settings.monthly_ttl_seconds

        if not force_refresh:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        try:
            collection = self.fetcher.tickets_modified_since(window.start, use_cache=not force_refresh)
            review = build_monthly_review(
                collection.items, window, load_work_hours=self._load_work_hours
            )
        except UPSTREAM_FAILURES:
            LOGGER.exception("Failed to build monthly review for %s", window.key)
            fallback = self._monthly_fixture(fixture_path)
            if fallback is None:
                self.cache.delete(key)
                return None
            LOGGER.warning("Using monthly review fixture %s for %s", fixture_path, window.key)
            self.cache.set(key, fallback, ttl)
            return fallback

        self.cache.set(key, review, ttl)
        return review

    def _monthly_fixture(self, fixture_path: Optional[str]) -> Optional[MonthlyReviewMetrics]:
        document = try_load_fixture(fixture_path, base=self.base_dir)
        if isinstance(document, dict):
            return MonthlyReviewMetrics.from_dict(document)
        if document is not None:
            LOGGER.warning("Monthly fixture %s is not a JSON object", fixture_path)
        return None

    def _load_work_hours(self, tickets: List[TicketRecord]) -> List[List[WorkHoursRecord]]:
        client = self.client

        def _work_hours_for(ticket: TicketRecord) -> List[WorkHoursRecord]:
            try:
                payloads = client.fetch_work_hours(ticket.id)
            except (UpstreamError, requests.RequestException) as exc:
                LOGGER.warning("Unable to load work hours for ticket %s: %s", ticket.id, exc)
                return []
            return [WorkHoursRecord.from_api(payload) for payload in payloads]

        return bounded_map(
            _work_hours_for,
            tickets,
            max_workers=self.settings.billable_max_workers,
            default=lambda _ticket: [],
            progress_callback=self.progress_callback,
        )

    def load_monthly_review(
        self,
        month: Optional[str] = None,
        page: Any = 1,
        *,
        force_refresh: bool = False,
        today: Optional[datetime] = None,
    ) -> MonthlyReviewPage:
        """Resolve one page of the monthly review's ticket rows."""
        today = today or datetime.now(timezone.utc)
        selected_month = month or month_key_for(today)
        try:
            parse_month(selected_month)
        except ValueError:
            LOGGER.warning("Ignoring invalid month %r", selected_month)
            selected_month = month_key_for(today)

        metrics = (
            self.fetch_monthly_review_metrics(
                selected_month,
                fixture_path=self.settings.monthly_fixture,
                force_refresh=force_refresh,
            )
            or DEFAULT_MONTHLY_METRICS
        )

        total_pages = max(1, math.ceil(len(metrics.tickets) / MONTHLY_PAGE_SIZE))
        safe_page = min(_coerce_page(page), total_pages)
        start = (safe_page - 1) * MONTHLY_PAGE_SIZE
        return MonthlyReviewPage(
            metrics=metrics,
            selected_month=selected_month,
            page=safe_page,
            total_pages=total_pages,
            page_size=MONTHLY_PAGE_SIZE,
            rows=metrics.tickets[start:start + MONTHLY_PAGE_SIZE],
        )


def _coerce_page(value: Any) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 1
    if not math.isfinite(number) or number <= 0:
        return 1
    return max(1, math.floor(number))


# -- Command line workflows ------------------------------------------------------------


@dataclass
class DashboardOptions:
    config_path: Optional[str]
    output_path: Optional[str] = None
    disable_console: bool = False
    simple_console: bool = False
    console_level: Optional[str] = None


@dataclass
class MonthlyReviewOptions:
    config_path: Optional[str]
    month: Optional[str] = None
    page: int = 1
    refresh: bool = False
    output_directory: Optional[str] = None
    formats: Optional[List[str]] = None
    disable_console: bool = False
    simple_console: bool = False
    console_level: Optional[str] = None
    show_console_log: bool = False


class WorkHoursProgress:
    """Rich progress bar fed by the work-hours batch callback.

    The bar is created on the first update, once the batch size is known,
    and is cleared from the terminal when the context exits.
    """

    def __init__(self, enabled: bool, *, console: Optional[Console] = None) -> None:
        self.progress: Optional[Progress] = None
        if enabled:
            self.progress = Progress(
                TextColumn("Fetching work hours"),
                BarColumn(),
                MofNCompleteColumn(),
                TimeElapsedColumn(),
                console=console or Console(stderr=True),
                transient=True,
            )
        self._task_id: Optional[TaskID] = None

    def __enter__(self) -> "WorkHoursProgress":
        if self.progress is not None:
            self.progress.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        if self.progress is not None:
            self.progress.stop()

    def update(self, completed: int, total: Optional[int] = None) -> None:
        if self.progress is None:
            return
        if self._task_id is None:
            self._task_id = self.progress.add_task("work-hours", total=total)
        self.progress.update(self._task_id, completed=completed, total=total)


def _prepare_logging(
    config: dict,
    options: DashboardOptions | MonthlyReviewOptions,
    *,
    base_dir: Path,
) -> None:
    logging_config = config.setdefault("logging", {})
    console_cfg = logging_config.setdefault("console", {})
    if options.disable_console:
        console_cfg["enabled"] = False
    if options.simple_console:
        console_cfg["rich_format"] = False
    if options.console_level:
        console_cfg["level"] = options.console_level
    configure_logging(config, base_dir=base_dir)


def create_service(config: dict, *, base_dir: Optional[Path] = None) -> MetricsService:
    settings = MetricsSettings.from_config(config)
    return MetricsService(settings, base_dir=base_dir)


def dashboard_snapshot(options: DashboardOptions, *, base_dir: Optional[Path] = None) -> DashboardLoadResult:
    base_dir = base_dir or Path.cwd()
    config = load_config(options.config_path)
    _prepare_logging(config, options, base_dir=base_dir)
    service = create_service(config, base_dir=base_dir)

    result = service.load_dashboard()
    if result.ok and result.metrics is not None and options.output_path:
        output_path = resolve_path(options.output_path, base=base_dir)
        writer = MetricsReportWriter(output_directory=output_path.parent)
        writer.write_dashboard_json(result.metrics, output_path.name)
    return result


def monthly_review(options: MonthlyReviewOptions, *, base_dir: Optional[Path] = None) -> MonthlyReviewPage:
    base_dir = base_dir or Path.cwd()
    config = load_config(options.config_path)
    _prepare_logging(config, options, base_dir=base_dir)
    service = create_service(config, base_dir=base_dir)

    with WorkHoursProgress(not options.show_console_log) as progress:
        service.progress_callback = progress.update
        page = service.load_monthly_review(options.month, options.page, force_refresh=options.refresh)
    service.progress_callback = None

    if options.output_directory:
        output_directory = resolve_path(options.output_directory, base=base_dir)
        writer = MetricsReportWriter(output_directory=output_directory)
        formats = [fmt.lower() for fmt in options.formats or ["json", "csv"]]
        if "json" in formats:
            writer.write_monthly_json(page.metrics, f"monthly_review_{page.selected_month}.json")
        if "csv" in formats:
            writer.write_ticket_rows_csv(page.metrics.tickets, f"monthly_tickets_{page.selected_month}.csv")
    return page
