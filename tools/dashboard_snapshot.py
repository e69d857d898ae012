#!/usr/bin/env python3
"""Print the live Atera operations snapshot as a console table."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Iterable, List

BASE_DIR = Path(__file__).resolve().parents[1]
DEFAULT_CONFIG_PATH = BASE_DIR / "config" / "config.yaml"
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

from atera_metrics.records import DashboardMetrics  # type: ignore  # pylint: disable=import-error
from atera_metrics.workflow import DashboardOptions, dashboard_snapshot  # type: ignore  # pylint: disable=import-error


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Fetch open tickets, recent changes and alerts and print the dashboard counters.",
    )
    parser.add_argument(
        "--config",
        help=(
            "Path to configuration YAML file. Defaults to "
            f"{DEFAULT_CONFIG_PATH} or config/config.yaml if present."
        ),
    )
    parser.add_argument(
        "--output",
        help="Optional path where the dashboard JSON snapshot should be written.",
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


def render_dashboard(metrics: DashboardMetrics) -> List[str]:
    """Format the headline counters and workload tables."""

    rows = [
        ("Open tickets", metrics.open_total),
        ("Opened this month", metrics.open_this_month),
        ("New today", metrics.new_today),
        ("Closed this month", metrics.closed_this_month),
        ("Pending tickets", metrics.pending_tickets),
        ("Average open age (hrs)", metrics.average_open_age_hours),
        ("SLA at risk", metrics.sla_risk_count),
        ("Critical alerts", metrics.critical_alerts_open),
    ]
    label_width = max(len(label) for label, _ in rows)
    lines = [f"Generated at {metrics.generated_at}", ""]
    lines.extend(f"{label.ljust(label_width)}  {value:>8}" for label, value in rows)

    if metrics.technician_load:
        lines.extend(["", "Technician workload"])
        lines.extend(f"  {entry.label:<30} {entry.count:>5}" for entry in metrics.technician_load)
    if metrics.status_breakdown:
        lines.extend(["", "Status breakdown"])
        lines.extend(f"  {entry.label:<30} {entry.count:>5}" for entry in metrics.status_breakdown)
    return lines


def main(argv: Iterable[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    options = DashboardOptions(
        config_path=args.config,
        output_path=args.output,
        simple_console=args.simple_console,
        console_level=args.console_level,
    )
    result = dashboard_snapshot(options, base_dir=Path.cwd())
    if not result.ok or result.metrics is None:
        print(f"Could not load data from the Atera API: {result.error}", file=sys.stderr)
        raise SystemExit(1)
    for line in render_dashboard(result.metrics):
        print(line)


if __name__ == "__main__":
    main()
