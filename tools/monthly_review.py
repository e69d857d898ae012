#!/usr/bin/env python3
"""Summarise one month of Atera tickets and optionally export the review."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Iterable, List

BASE_DIR = Path(__file__).resolve().parents[1]
DEFAULT_CONFIG_PATH = BASE_DIR / "config" / "config.yaml"
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

from atera_metrics.workflow import (  # type: ignore  # pylint: disable=import-error
    MonthlyReviewOptions,
    MonthlyReviewPage,
    monthly_review,
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Build the monthly review (SLAs, satisfaction, billable hours) for one month.",
    )
    parser.add_argument(
        "--config",
        help=(
            "Path to configuration YAML file. Defaults to "
            f"{DEFAULT_CONFIG_PATH} or config/config.yaml if present."
        ),
    )
    parser.add_argument("--month", help="Month to review as YYYY-MM. Defaults to the current month.")
    parser.add_argument("--page", type=int, default=1, help="Page of ticket rows to print (25 per page).")
    parser.add_argument(
        "--refresh",
        action="store_true",
        help="Ignore the cached review and query Atera again.",
    )
    parser.add_argument(
        "--output-directory",
        help="Directory where the review JSON and ticket CSV should be written.",
    )
    parser.add_argument(
        "--format",
        dest="formats",
        action="append",
        choices=["json", "csv"],
        help="Export format; repeat for several. Defaults to both when --output-directory is set.",
    )
    parser.add_argument(
        "--show-console-log",
        action="store_true",
        help="Show detailed log output instead of the progress display.",
    )
    parser.add_argument(
        "--simple-console",
        action="store_true",
        help="Use a simple console log format instead of Rich formatting.",
    )
    parser.add_argument(
        "--console-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override the console logging level.",
    )
    return parser


def _minutes_to_friendly(minutes: float) -> str:
    if minutes <= 0:
        return "0m"
    if minutes < 60:
        return f"{round(minutes)}m"
    hours = minutes / 60
    if hours < 24:
        return f"{hours:.1f}h"
    return f"{hours / 24:.1f}d"


def render_review(page: MonthlyReviewPage) -> List[str]:
    metrics = page.metrics
    lines = [
        f"Monthly review for {metrics.month_label} ({page.selected_month})",
        "",
        f"Total tickets            {metrics.total_tickets:>8}",
        f"Avg first response       {_minutes_to_friendly(metrics.avg_first_response_minutes):>8}",
        f"Avg resolution           {_minutes_to_friendly(metrics.avg_resolution_minutes):>8}",
        f"Satisfaction             {metrics.satisfaction_score:>8.1f}",
        f"Responded within 2h      {metrics.response_within_2_hours.count:>8} "
        f"({metrics.response_within_2_hours.percentage:.1f}%)",
        f"Closed within 2 days     {metrics.closure_within_two_days.count:>8} "
        f"({metrics.closure_within_two_days.percentage:.1f}%)",
        f"Billable hours           {metrics.billable_hours.total_hours:>8.1f}",
    ]
    for entry in metrics.billable_hours.entries:
        lines.append(f"  {entry.technician:<30} {entry.hours:>6.1f}")
    if metrics.keyword_cloud:
        lines.append("")
        lines.append("Keywords: " + ", ".join(f"{entry.label} ({entry.count})" for entry in metrics.keyword_cloud))

    lines.extend(["", f"Tickets for {metrics.month_label} - page {page.page}/{page.total_pages}"])
    for row in page.rows:
        lines.append(f"  {row.number or row.id:<10} {(row.status or ''):<16} {row.title or ''}")
    return lines


def main(argv: Iterable[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    options = MonthlyReviewOptions(
        config_path=args.config,
        month=args.month,
        page=args.page,
        refresh=args.refresh,
        output_directory=args.output_directory,
        formats=args.formats,
        disable_console=not args.show_console_log,
        simple_console=args.simple_console,
        console_level=args.console_level,
        show_console_log=args.show_console_log,
    )
    page = monthly_review(options, base_dir=Path.cwd())
    for line in render_review(page):
        print(line)


if __name__ == "__main__":
    main()
