"""Live operations snapshot built from open tickets, recent changes and alerts."""
from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Sequence, Tuple

from .classifier import StatusClassifier
from .collections_service import CollectionFetcher
from .concurrency import join_all
from .records import (
    AlertRecord,
    AlertSummary,
    Collection,
    CountEntry,
    DashboardMetrics,
    TicketRecord,
    TicketSummary,
    TrendPoint,
    format_iso,
    round1,
)

LOGGER = logging.getLogger(__name__)

SLA_THRESHOLD = timedelta(hours=4)
RECENT_WINDOW_DAYS = 30
TREND_DAYS = 7
CUSTOMER_WINDOW_DAYS = 7
TOP_TECHNICIANS = 6
TOP_CUSTOMERS = 6
CRITICAL_ALERT_SAMPLE = 5
OPEN_TICKET_SAMPLE = 8
TODAY_MAX_PAGES = 10
MONTH_MAX_PAGES = 20


def start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_month(now: datetime) -> datetime:
    return start_of_day(now).replace(day=1)


def fetch_dashboard_metrics(
    fetcher: CollectionFetcher,
    classifier: StatusClassifier,
    now: Optional[datetime] = None,
) -> DashboardMetrics:
    """Fetch the four dashboard collections in parallel and aggregate them.

    Any failed fetch fails the whole snapshot.
    """
    now = _aware(now or datetime.now(timezone.utc))
    today_start = start_of_day(now)
    month_start = start_of_month(now)

    results = join_all(
        {
            "all_tickets": fetcher.open_tickets,
            "modified_today": lambda: fetcher.tickets_modified_since(
                today_start, max_pages=TODAY_MAX_PAGES
            ),
            "modified_this_month": lambda: fetcher.tickets_modified_since(
                month_start, max_pages=MONTH_MAX_PAGES
            ),
            "open_alerts": fetcher.open_alerts,
        }
    )
    return build_dashboard_metrics(
        all_tickets=results["all_tickets"],
        modified_today=results["modified_today"],
        modified_this_month=results["modified_this_month"],
        open_alerts=results["open_alerts"],
        classifier=classifier,
        now=now,
    )


def build_dashboard_metrics(
    *,
    all_tickets: Collection[TicketRecord],
    modified_today: Collection[TicketRecord],
    modified_this_month: Collection[TicketRecord],
    open_alerts: Collection[AlertRecord],
    classifier: StatusClassifier,
    now: datetime,
) -> DashboardMetrics:
    now = _aware(now)
    today_start = start_of_day(now)
    month_start = start_of_month(now)
    seven_days_ago = today_start - timedelta(days=CUSTOMER_WINDOW_DAYS)
    thirty_days_ago = today_start - timedelta(days=RECENT_WINDOW_DAYS)

    open_tickets = [ticket for ticket in all_tickets.items if not classifier.is_closed(ticket.status)]

    new_today = sum(
        1 for ticket in modified_today.items if ticket.created_at and ticket.created_at >= today_start
    )
    closed_this_month = sum(
        1
        for ticket in modified_this_month.items
        if ticket.resolved_at
        and ticket.resolved_at >= month_start
        and _looks_closed(ticket.status)
    )
    open_this_month = sum(
        1 for ticket in open_tickets if ticket.created_at and ticket.created_at >= month_start
    )

    critical_alerts = sorted(
        (alert for alert in open_alerts.items if (alert.severity or "").lower() == "critical"),
        key=lambda alert: alert.created_at.timestamp() if alert.created_at else 0.0,
        reverse=True,
    )

    metrics = DashboardMetrics(
        generated_at=format_iso(now) or "",
        open_total=len(open_tickets),
        open_this_month=open_this_month,
        new_today=new_today,
        closed_this_month=closed_this_month,
        pending_tickets=count_pending_tickets(open_tickets, classifier),
        average_open_age_hours=average_open_age_hours(open_tickets, since=thirty_days_ago, now=now),
        sla_risk_count=count_sla_risk(open_tickets, now=now),
        technician_load=build_technician_load(open_tickets),
        trend_seven_day=build_trend(
            modified_this_month.items, today_start - timedelta(days=TREND_DAYS - 1), TREND_DAYS
        ),
        new_tickets_by_customer=build_customer_loads(modified_this_month.items, seven_days_ago),
        status_breakdown=build_status_breakdown(open_tickets, classifier),
        critical_alerts_open=len(critical_alerts),
        critical_alerts_sample=tuple(
            AlertSummary.from_alert(alert) for alert in critical_alerts[:CRITICAL_ALERT_SAMPLE]
        ),
        sample_open_tickets=tuple(
            TicketSummary.from_ticket(ticket) for ticket in oldest_first(open_tickets)[:OPEN_TICKET_SAMPLE]
        ),
    )
    LOGGER.info(
        "Dashboard snapshot: %s open, %s new today, %s closed this month, %s critical alerts",
        metrics.open_total,
        metrics.new_today,
        metrics.closed_this_month,
        metrics.critical_alerts_open,
    )
    return metrics


def count_pending_tickets(tickets: Iterable[TicketRecord], classifier: StatusClassifier) -> int:
    return sum(1 for ticket in tickets if classifier.is_pending(ticket.status))


def average_open_age_hours(
    tickets: Iterable[TicketRecord],
    *,
    since: datetime,
    now: datetime,
) -> float:
    ages = [
        (now - ticket.created_at).total_seconds() / 3600.0
        for ticket in tickets
        if ticket.created_at and ticket.created_at >= since
    ]
    if not ages:
        return 0.0
    return round1(sum(ages) / len(ages))


def count_sla_risk(tickets: Iterable[TicketRecord], *, now: datetime) -> int:
    """Tickets whose response or closure due date is within four hours of now."""
    count = 0
    for ticket in tickets:
        due = ticket.sla_due
        if due is None:
            continue
        if -SLA_THRESHOLD <= due - now <= SLA_THRESHOLD:
            count += 1
    return count


def build_technician_load(tickets: Iterable[TicketRecord]) -> Tuple[CountEntry, ...]:
    load = Counter(_label(ticket.technician, "Unassigned") for ticket in tickets)
    return _top(load, TOP_TECHNICIANS)


def build_trend(
    tickets: Sequence[TicketRecord],
    window_start: datetime,
    total_days: int,
) -> Tuple[TrendPoint, ...]:
    points: List[TrendPoint] = []
    for offset in range(total_days):
        day_start = window_start + timedelta(days=offset)
        day_end = day_start + timedelta(days=1)
        opened = sum(
            1 for ticket in tickets if ticket.created_at and day_start <= ticket.created_at < day_end
        )
        closed = sum(
            1 for ticket in tickets if ticket.resolved_at and day_start <= ticket.resolved_at < day_end
        )
        points.append(TrendPoint(date=format_iso(day_start) or "", opened=opened, closed=closed))
    return tuple(points)


def build_customer_loads(tickets: Iterable[TicketRecord], since: datetime) -> Tuple[CountEntry, ...]:
    load: Counter[str] = Counter()
    for ticket in tickets:
        if not ticket.created_at or ticket.created_at < since:
            continue
        load[_label(ticket.customer, "Unassigned")] += 1
    return _top(load, TOP_CUSTOMERS)


def build_status_breakdown(
    tickets: Iterable[TicketRecord],
    classifier: StatusClassifier,
) -> Tuple[CountEntry, ...]:
    breakdown: Counter[str] = Counter()
    for ticket in tickets:
        status = _label(ticket.status, "Unknown")
        if classifier.is_closed(status):
            continue
        breakdown[status] += 1
    return _top(breakdown, None)


def oldest_first(tickets: Sequence[TicketRecord]) -> List[TicketRecord]:
    """Sort by creation time; tickets without one go last."""
    return sorted(
        tickets,
        key=lambda ticket: (ticket.created_at is None, ticket.created_at.timestamp() if ticket.created_at else 0.0),
    )


def _top(counter: Counter, limit: Optional[int]) -> Tuple[CountEntry, ...]:
    # Counter keeps first-seen order, and sorted() is stable, so ties stay in input order
    ranked = sorted(counter.items(), key=lambda item: item[1], reverse=True)
    if limit is not None:
        ranked = ranked[:limit]
    return tuple(CountEntry(label=label, count=count) for label, count in ranked)


def _label(value: Optional[str], fallback: str) -> str:
    text = (value or "").strip()
    return text or fallback


def _looks_closed(status: Optional[str]) -> bool:
    normalised = (status or "").lower()
    return "closed" in normalised or "resolved" in normalised


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
