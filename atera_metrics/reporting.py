"""Write dashboard and monthly review snapshots to JSON and CSV."""
from __future__ import annotations

import csv
import json
import logging
from pathlib import Path
from typing import Iterable, Sequence

from .records import DashboardMetrics, MonthlyReviewMetrics, TicketRow

LOGGER = logging.getLogger(__name__)


class MetricsReportWriter:
    """Persist metric snapshots in the fixture-compatible JSON shape."""

    TICKET_HEADERS: Sequence[str] = (
        "id",
        "number",
        "title",
        "customer",
        "status",
        "opened",
        "first_response_minutes",
        "resolution_minutes",
        "satisfaction",
    )

    def __init__(self, *, output_directory: Path) -> None:
        self.output_directory = output_directory
        self.output_directory.mkdir(parents=True, exist_ok=True)

    def write_dashboard_json(self, metrics: DashboardMetrics, name: str) -> Path:
        return self._write_json(metrics.to_dict(), name)

    def write_monthly_json(self, metrics: MonthlyReviewMetrics, name: str) -> Path:
        return self._write_json(metrics.to_dict(), name)

    def write_ticket_rows_csv(self, rows: Iterable[TicketRow], name: str) -> Path:
        report_path = self.output_directory / name
        LOGGER.info("Writing monthly ticket rows to %s", report_path)
        with report_path.open("w", encoding="utf-8", newline="") as handle:
            writer = csv.writer(handle)
            writer.writerow(self.TICKET_HEADERS)
            for row in rows:
                writer.writerow(
                    [
                        row.id,
                        row.number or "",
                        row.title or "",
                        row.customer or "",
                        row.status or "",
                        row.opened or "",
                        _blank_if_none(row.first_response_minutes),
                        _blank_if_none(row.resolution_minutes),
                        _blank_if_none(row.satisfaction),
                    ]
                )
        return report_path

    def _write_json(self, document: dict, name: str) -> Path:
        output_path = self.output_directory / name
        output_path.write_text(json.dumps(document, indent=2), encoding="utf-8")
        LOGGER.info("Metrics JSON written to %s", output_path)
        return output_path


def _blank_if_none(value: object) -> object:
    return "" if value is None else value
