"""Monthly cohort review: SLA, satisfaction, billable hours and keyword trends."""
from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from dateutil.relativedelta import relativedelta

from .records import (
    BillableEntry,
    BillableHours,
    CountEntry,
    MonthlyReviewMetrics,
    SlaStat,
    TicketRecord,
    TicketRow,
    WorkHoursRecord,
    format_iso,
    round1,
)

LOGGER = logging.getLogger(__name__)

RESPONSE_SLA_MINUTES = 120
CLOSURE_SLA_MINUTES = 2 * 24 * 60
KEYWORD_CLOUD_SIZE = 15
MONTH_KEY_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")
NON_ALPHANUMERIC = re.compile(r"[^a-z0-9\s]")

STOPWORDS = frozenset(
    {
        "a", "about", "after", "all", "am", "an", "and", "any", "are", "as", "at",
        "be", "been", "but", "by", "can", "cannot", "cant", "could", "did", "do",
        "does", "dont", "for", "from", "fw", "fwd", "get", "had", "has", "have",
        "he", "her", "his", "how", "i", "if", "in", "into", "is", "it", "its",
        "me", "my", "need", "new", "no", "not", "of", "on", "or", "our", "out",
        "please", "re", "she", "so", "that", "the", "their", "them", "there",
        "they", "this", "to", "up", "us", "was", "we", "were", "what", "when",
        "which", "will", "with", "would", "you", "your",
    }
)

WorkHoursLoader = Callable[[Sequence[TicketRecord]], List[List[WorkHoursRecord]]]


@dataclass(frozen=True)
class MonthWindow:
    """Half-open UTC interval covering one calendar month."""

    key: str
    start: datetime
    end: datetime

    @property
    def label(self) -> str:
        return self.start.strftime("%B %Y")

    def contains(self, value: Optional[datetime]) -> bool:
        return value is not None and self.start <= value < self.end


def parse_month(month_key: str) -> MonthWindow:
    """Turn ``YYYY-MM`` into its month window; raise ``ValueError`` otherwise."""
    match = MONTH_KEY_PATTERN.match(month_key.strip())
    if not match:
        raise ValueError(f"Month must be formatted YYYY-MM, got {month_key!r}")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValueError(f"Month out of range in {month_key!r}")
    start = datetime(year, month, 1, tzinfo=timezone.utc)
    return MonthWindow(key=f"{year:04d}-{month:02d}", start=start, end=start + relativedelta(months=1))


def month_key_for(moment: datetime) -> str:
    return f"{moment.year:04d}-{moment.month:02d}"


def minutes_between(start: Optional[datetime], end: Optional[datetime]) -> Optional[float]:
    """Elapsed minutes, or ``None`` when a timestamp is missing or out of order."""
    if start is None or end is None:
        return None
    delta = (end - start).total_seconds() / 60.0
    if delta < 0:
        return None
    return delta


def first_response_minutes(ticket: TicketRecord) -> Optional[float]:
    return minutes_between(ticket.created_at, ticket.first_response_at)


def resolution_minutes(ticket: TicketRecord) -> Optional[float]:
    return minutes_between(ticket.created_at, ticket.resolved_at)


def _mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return round1(sum(values) / len(values))


def sla_stat(minutes: Iterable[float], threshold: float, total_tickets: int) -> SlaStat:
    count = sum(1 for value in minutes if value <= threshold)
    percentage = round1(count / total_tickets * 100) if total_tickets else 0.0
    return SlaStat(count=count, percentage=percentage)


def build_keyword_cloud(titles: Iterable[Optional[str]], *, limit: int = KEYWORD_CLOUD_SIZE) -> Tuple[CountEntry, ...]:
    counts: Counter[str] = Counter()
    for title in titles:
        if not title:
            continue
        cleaned = NON_ALPHANUMERIC.sub("", title.lower())
        for token in cleaned.split():
            if token and token not in STOPWORDS:
                counts[token] += 1
    return tuple(CountEntry(label=label, count=count) for label, count in counts.most_common(limit))


def summarise_billable_hours(records_by_ticket: Iterable[Iterable[WorkHoursRecord]]) -> BillableHours:
    """Fold work-hour entries into per-technician billable hours."""
    per_technician: Dict[str, float] = {}
    total_minutes = 0.0
    for records in records_by_ticket:
        for record in records:
            minutes = record.billable_contribution()
            technician = (record.technician or "").strip() or "Unassigned"
            per_technician[technician] = per_technician.get(technician, 0.0) + minutes
            total_minutes += minutes
    entries = sorted(
        (BillableEntry(technician=name, hours=round1(minutes / 60.0)) for name, minutes in per_technician.items()),
        key=lambda entry: entry.hours,
        reverse=True,
    )
    return BillableHours(total_hours=round1(total_minutes / 60.0), entries=tuple(entries))


def build_ticket_row(ticket: TicketRecord) -> TicketRow:
    return TicketRow(
        id=ticket.id,
        number=ticket.number,
        title=ticket.title,
        customer=ticket.customer,
        status=ticket.status,
        opened=format_iso(ticket.created_at),
        first_response_minutes=first_response_minutes(ticket),
        resolution_minutes=resolution_minutes(ticket),
        satisfaction=ticket.satisfaction,
    )


def build_monthly_review(
    tickets: Iterable[TicketRecord],
    window: MonthWindow,
    *,
    load_work_hours: WorkHoursLoader,
) -> MonthlyReviewMetrics:
    """Reduce the month's cohort of tickets to the monthly review.

    ``tickets`` may include anything modified during the month; only tickets
    created inside ``window`` are reviewed. ``load_work_hours`` returns one
    list of work-hour entries per reviewed ticket, in order.
    """
    cohort = [ticket for ticket in tickets if window.contains(ticket.created_at)]
    total = len(cohort)

    response_minutes = [value for value in map(first_response_minutes, cohort) if value is not None]
    closure_minutes = [value for value in map(resolution_minutes, cohort) if value is not None]
    ratings = [ticket.survey_rating for ticket in cohort if ticket.survey_rating is not None]

    billable = summarise_billable_hours(load_work_hours(cohort)) if cohort else BillableHours()

    review = MonthlyReviewMetrics(
        month_label=window.label,
        total_tickets=total,
        avg_first_response_minutes=_mean(response_minutes),
        avg_resolution_minutes=_mean(closure_minutes),
        satisfaction_score=_mean(ratings),
        response_within_2_hours=sla_stat(response_minutes, RESPONSE_SLA_MINUTES, total),
        closure_within_two_days=sla_stat(closure_minutes, CLOSURE_SLA_MINUTES, total),
        billable_hours=billable,
        keyword_cloud=build_keyword_cloud(ticket.title for ticket in cohort),
        tickets=tuple(build_ticket_row(ticket) for ticket in cohort),
    )
    LOGGER.info(
        "Monthly review %s: %s tickets, %.1f billable hours",
        window.key,
        total,
        billable.total_hours,
    )
    return review
