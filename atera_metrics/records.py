"""Typed views of Atera ticket, alert and work-hour payloads plus metric shapes."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Generic, Mapping, Optional, Tuple, TypeVar

from dateutil import parser as date_parser

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an upstream timestamp into an aware UTC datetime, or ``None``."""
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = date_parser.isoparse(str(value))
        except (ValueError, TypeError, OverflowError):
            LOGGER.debug("Unable to parse datetime value %r", value)
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_iso(value: Optional[datetime]) -> Optional[str]:
    """Render a datetime as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    utc = value.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _first_present(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = payload.get(key)
        if value not in (None, ""):
            return value
    return None


@dataclass(frozen=True)
class TicketRecord:
    """Immutable snapshot of an upstream ticket."""

    id: int
    number: Optional[str] = None
    title: Optional[str] = None
    status: Optional[str] = None
    customer: Optional[str] = None
    technician: Optional[str] = None
    created_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    first_response_at: Optional[datetime] = None
    first_response_due: Optional[datetime] = None
    closed_due: Optional[datetime] = None
    satisfaction_score: Optional[float] = None
    survey_rating: Optional[float] = None

    @classmethod
    def from_api(cls, payload: Mapping[str, Any]) -> "TicketRecord":
        return cls(
            id=int(payload.get("TicketID") or 0),
            number=_optional_text(payload.get("TicketNumber")),
            title=_optional_text(payload.get("TicketTitle")),
            status=_optional_text(payload.get("TicketStatus")),
            customer=_optional_text(payload.get("CustomerName")),
            technician=_optional_text(payload.get("TechnicianFullName")),
            created_at=parse_datetime(payload.get("TicketCreatedDate")),
            resolved_at=parse_datetime(payload.get("TicketResolvedDate")),
            first_response_at=parse_datetime(
                _first_present(payload, "FirstResponseDate", "TicketFirstResponseDate")
            ),
            first_response_due=parse_datetime(payload.get("FirstResponseDueDate")),
            closed_due=parse_datetime(payload.get("ClosedTicketDueDate")),
            satisfaction_score=_optional_float(payload.get("SatisfactionScore")),
            survey_rating=_optional_float(payload.get("SurveyRating")),
        )

    @property
    def satisfaction(self) -> Optional[float]:
        """Survey rating when the customer answered one, else the platform score."""
        if self.survey_rating is not None:
            return self.survey_rating
        return self.satisfaction_score

    @property
    def sla_due(self) -> Optional[datetime]:
        return self.first_response_due or self.closed_due


@dataclass(frozen=True)
class AlertRecord:
    id: int
    title: Optional[str] = None
    severity: Optional[str] = None
    created_at: Optional[datetime] = None
    customer: Optional[str] = None
    device: Optional[str] = None

    @classmethod
    def from_api(cls, payload: Mapping[str, Any]) -> "AlertRecord":
        return cls(
            id=int(payload.get("AlertID") or 0),
            title=_optional_text(payload.get("Title")),
            severity=_optional_text(payload.get("Severity")),
            created_at=parse_datetime(payload.get("Created")),
            customer=_optional_text(payload.get("CustomerName")),
            device=_optional_text(payload.get("DeviceName")),
        )


@dataclass(frozen=True)
class WorkHoursRecord:
    id: Optional[int]
    technician: Optional[str] = None
    billable_minutes: Optional[float] = None
    total_minutes: Optional[float] = None
    billable: bool = False

    @classmethod
    def from_api(cls, payload: Mapping[str, Any]) -> "WorkHoursRecord":
        raw_id = _first_present(payload, "WorkHoursID", "WorkHoursRecordID", "ID")
        billable_flag = payload.get("Billable")
        if isinstance(billable_flag, str):
            billable_flag = billable_flag.strip().lower() in {"true", "1", "yes"}
        return cls(
            id=int(raw_id) if raw_id is not None else None,
            technician=_optional_text(payload.get("TechnicianFullName")),
            billable_minutes=_optional_float(payload.get("BillableDuration")),
            total_minutes=_optional_float(payload.get("TotalDuration")),
            billable=bool(billable_flag),
        )

    def billable_contribution(self) -> float:
        """Minutes this entry adds to the billable totals."""
        if self.billable_minutes is not None:
            return self.billable_minutes
        if self.billable and self.total_minutes is not None:
            return self.total_minutes
        return 0.0


@dataclass(frozen=True)
class Collection(Generic[T]):
    """A fetched sequence of records plus its declared or inferred total."""

    items: Tuple[T, ...]
    total_count: int

    def __len__(self) -> int:
        return len(self.items)


# -- Dashboard shapes ---------------------------------------------------------------


@dataclass(frozen=True)
class TicketSummary:
    id: int
    number: Optional[str] = None
    title: Optional[str] = None
    customer: Optional[str] = None
    status: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_ticket(cls, ticket: TicketRecord) -> "TicketSummary":
        return cls(
            id=ticket.id,
            number=ticket.number,
            title=ticket.title,
            customer=ticket.customer,
            status=ticket.status,
            created_at=format_iso(ticket.created_at),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "id": self.id,
                "number": self.number,
                "title": self.title,
                "customer": self.customer,
                "status": self.status,
                "createdAt": self.created_at,
            }
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TicketSummary":
        return cls(
            id=int(data.get("id") or 0),
            number=_optional_text(data.get("number")),
            title=data.get("title"),
            customer=data.get("customer"),
            status=data.get("status"),
            created_at=data.get("createdAt"),
        )


@dataclass(frozen=True)
class AlertSummary:
    id: int
    title: Optional[str] = None
    customer: Optional[str] = None
    device: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_alert(cls, alert: AlertRecord) -> "AlertSummary":
        return cls(
            id=alert.id,
            title=alert.title,
            customer=alert.customer,
            device=alert.device,
            created_at=format_iso(alert.created_at),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "id": self.id,
                "title": self.title,
                "customer": self.customer,
                "device": self.device,
                "createdAt": self.created_at,
            }
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AlertSummary":
        return cls(
            id=int(data.get("id") or 0),
            title=data.get("title"),
            customer=data.get("customer"),
            device=data.get("device"),
            created_at=data.get("createdAt"),
        )


@dataclass(frozen=True)
class CountEntry:
    """A ``(label, count)`` bucket; ``key`` names the label in JSON output."""

    label: str
    count: int

    def to_dict(self, key: str) -> Dict[str, Any]:
        return {key: self.label, "count": self.count}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], key: str) -> "CountEntry":
        return cls(label=str(data.get(key) or ""), count=int(data.get("count") or 0))


@dataclass(frozen=True)
class TrendPoint:
    date: str
    opened: int
    closed: int

    def to_dict(self) -> Dict[str, Any]:
        return {"date": self.date, "opened": self.opened, "closed": self.closed}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TrendPoint":
        return cls(
            date=str(data.get("date") or ""),
            opened=int(data.get("opened") or 0),
            closed=int(data.get("closed") or 0),
        )


@dataclass(frozen=True)
class DashboardMetrics:
    generated_at: str
    open_total: int
    open_this_month: int
    new_today: int
    closed_this_month: int
    pending_tickets: int
    average_open_age_hours: float
    sla_risk_count: int
    technician_load: Tuple[CountEntry, ...] = ()
    trend_seven_day: Tuple[TrendPoint, ...] = ()
    new_tickets_by_customer: Tuple[CountEntry, ...] = ()
    status_breakdown: Tuple[CountEntry, ...] = ()
    critical_alerts_open: int = 0
    critical_alerts_sample: Tuple[AlertSummary, ...] = ()
    sample_open_tickets: Tuple[TicketSummary, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generatedAt": self.generated_at,
            "openTotal": self.open_total,
            "openThisMonth": self.open_this_month,
            "newToday": self.new_today,
            "closedThisMonth": self.closed_this_month,
            "pendingTickets": self.pending_tickets,
            "averageOpenAgeHours": self.average_open_age_hours,
            "slaRiskCount": self.sla_risk_count,
            "technicianLoad": [entry.to_dict("technician") for entry in self.technician_load],
            "trendSevenDay": [point.to_dict() for point in self.trend_seven_day],
            "newTicketsByCustomer": [
                entry.to_dict("customer") for entry in self.new_tickets_by_customer
            ],
            "statusBreakdown": [entry.to_dict("status") for entry in self.status_breakdown],
            "criticalAlertsOpen": self.critical_alerts_open,
            "criticalAlertsSample": [alert.to_dict() for alert in self.critical_alerts_sample],
            "sampleOpenTickets": [ticket.to_dict() for ticket in self.sample_open_tickets],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DashboardMetrics":
        return cls(
            generated_at=str(data.get("generatedAt") or ""),
            open_total=int(data.get("openTotal") or 0),
            open_this_month=int(data.get("openThisMonth") or 0),
            new_today=int(data.get("newToday") or 0),
            closed_this_month=int(data.get("closedThisMonth") or 0),
            pending_tickets=int(data.get("pendingTickets") or 0),
            average_open_age_hours=float(data.get("averageOpenAgeHours") or 0),
            sla_risk_count=int(data.get("slaRiskCount") or 0),
            technician_load=tuple(
                CountEntry.from_dict(item, "technician") for item in data.get("technicianLoad") or []
            ),
            trend_seven_day=tuple(TrendPoint.from_dict(item) for item in data.get("trendSevenDay") or []),
            new_tickets_by_customer=tuple(
                CountEntry.from_dict(item, "customer") for item in data.get("newTicketsByCustomer") or []
            ),
            status_breakdown=tuple(
                CountEntry.from_dict(item, "status") for item in data.get("statusBreakdown") or []
            ),
            critical_alerts_open=int(data.get("criticalAlertsOpen") or 0),
            critical_alerts_sample=tuple(
                AlertSummary.from_dict(item) for item in data.get("criticalAlertsSample") or []
            ),
            sample_open_tickets=tuple(
                TicketSummary.from_dict(item) for item in data.get("sampleOpenTickets") or []
            ),
        )


# -- Monthly review shapes ----------------------------------------------------------


@dataclass(frozen=True)
class SlaStat:
    count: int = 0
    percentage: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {"count": self.count, "percentage": self.percentage}

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "SlaStat":
        data = data or {}
        return cls(count=int(data.get("count") or 0), percentage=float(data.get("percentage") or 0))


@dataclass(frozen=True)
class BillableEntry:
    technician: str
    hours: float

    def to_dict(self) -> Dict[str, Any]:
        return {"technician": self.technician, "hours": self.hours}


@dataclass(frozen=True)
class BillableHours:
    total_hours: float = 0.0
    entries: Tuple[BillableEntry, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {"totalHours": self.total_hours, "entries": [entry.to_dict() for entry in self.entries]}

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "BillableHours":
        data = data or {}
        return cls(
            total_hours=float(data.get("totalHours") or 0),
            entries=tuple(
                BillableEntry(technician=str(item.get("technician") or ""), hours=float(item.get("hours") or 0))
                for item in data.get("entries") or []
            ),
        )


@dataclass(frozen=True)
class TicketRow:
    id: int
    number: Optional[str] = None
    title: Optional[str] = None
    customer: Optional[str] = None
    status: Optional[str] = None
    opened: Optional[str] = None
    first_response_minutes: Optional[float] = None
    resolution_minutes: Optional[float] = None
    satisfaction: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "id": self.id,
                "number": self.number,
                "title": self.title,
                "customer": self.customer,
                "status": self.status,
                "opened": self.opened,
                "firstResponseMinutes": self.first_response_minutes,
                "resolutionMinutes": self.resolution_minutes,
                "satisfaction": self.satisfaction,
            }
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TicketRow":
        return cls(
            id=int(data.get("id") or 0),
            number=_optional_text(data.get("number")),
            title=data.get("title"),
            customer=data.get("customer"),
            status=data.get("status"),
            opened=data.get("opened"),
            first_response_minutes=_optional_float(data.get("firstResponseMinutes")),
            resolution_minutes=_optional_float(data.get("resolutionMinutes")),
            satisfaction=_optional_float(data.get("satisfaction")),
        )


@dataclass(frozen=True)
class MonthlyReviewMetrics:
    month_label: str
    total_tickets: int = 0
    avg_first_response_minutes: float = 0.0
    avg_resolution_minutes: float = 0.0
    satisfaction_score: float = 0.0
    response_within_2_hours: SlaStat = field(default_factory=SlaStat)
    closure_within_two_days: SlaStat = field(default_factory=SlaStat)
    billable_hours: BillableHours = field(default_factory=BillableHours)
    keyword_cloud: Tuple[CountEntry, ...] = ()
    tickets: Tuple[TicketRow, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "monthLabel": self.month_label,
            "totalTickets": self.total_tickets,
            "avgFirstResponseMinutes": self.avg_first_response_minutes,
            "avgResolutionMinutes": self.avg_resolution_minutes,
            "satisfactionScore": self.satisfaction_score,
            "responseWithin2Hours": self.response_within_2_hours.to_dict(),
            "closureWithinTwoDays": self.closure_within_two_days.to_dict(),
            "billableHours": self.billable_hours.to_dict(),
            "keywordCloud": [entry.to_dict("label") for entry in self.keyword_cloud],
            "tickets": [row.to_dict() for row in self.tickets],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MonthlyReviewMetrics":
        return cls(
            month_label=str(data.get("monthLabel") or ""),
            total_tickets=int(data.get("totalTickets") or 0),
            avg_first_response_minutes=float(data.get("avgFirstResponseMinutes") or 0),
            avg_resolution_minutes=float(data.get("avgResolutionMinutes") or 0),
            satisfaction_score=float(data.get("satisfactionScore") or 0),
            response_within_2_hours=SlaStat.from_dict(data.get("responseWithin2Hours")),
            closure_within_two_days=SlaStat.from_dict(data.get("closureWithinTwoDays")),
            billable_hours=BillableHours.from_dict(data.get("billableHours")),
            keyword_cloud=tuple(
                CountEntry.from_dict(item, "label") for item in data.get("keywordCloud") or []
            ),
            tickets=tuple(TicketRow.from_dict(item) for item in data.get("tickets") or []),
        )


def _drop_none(values: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


def round1(value: float) -> float:
    """Round to one decimal place, halves away from zero like ``toFixed(1)``."""
    return float(Decimal(value).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))
