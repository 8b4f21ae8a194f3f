"""Export functions for various formats."""

import csv
import io
import json
from datetime import datetime
from typing import Any

from .store import CountStore


def _selected(store: CountStore, package: str | None) -> list[str]:
    if package is None:
        return store.packages()
    return [package] if package in store else []


def _range_rows(store: CountStore, package: str | None) -> list[dict[str, Any]]:
    """One row per (package, range), packages by name, ranges by major DESC."""
    rows = []
    for name in _selected(store, package):
        data = store[name]
        newest = data.newest_date.isoformat() if data.newest_date else ""
        for summary in data.summary():
            rows.append({"package_name": name, "newest_date": newest, **summary})
    return rows


def export_csv(
    store: CountStore, package: str | None = None, output: io.StringIO | None = None
) -> str:
    """Export per-range totals to CSV format."""
    if output is None:
        output = io.StringIO()

    writer = csv.writer(output)
    writer.writerow(
        [
            "package_name",
            "version_range",
            "last_day",
            "last_week",
            "last_month",
            "total",
            "newest_date",
        ]
    )

    for row in _range_rows(store, package):
        writer.writerow(
            [
                row["package_name"],
                row["version_range"],
                row["last_day"],
                row["last_week"],
                row["last_month"],
                row["total"],
                row["newest_date"],
            ]
        )

    return output.getvalue()


def export_json(store: CountStore, package: str | None = None) -> str:
    """Export full daily counts per range to JSON format."""
    packages = []
    for name in _selected(store, package):
        data = store[name]
        packages.append(
            {
                "name": name,
                "newest_date": data.newest_date.isoformat() if data.newest_date else None,
                "ranges": data.ranges_output(),
            }
        )

    export_data = {
        "generated": datetime.now().isoformat(),
        "packages": packages,
    }
    return json.dumps(export_data)


def export_markdown(store: CountStore, package: str | None = None) -> str:
    """Export per-range totals to Markdown table format."""
    lines = [
        "| Package | Versions | Day | Week | Month | Total |",
        "|---------|----------|----:|-----:|------:|------:|",
    ]

    for row in _range_rows(store, package):
        lines.append(
            f"| {row['package_name']} | `{row['version_range']}` | "
            f"{row['last_day']:,} | {row['last_week']:,} | "
            f"{row['last_month']:,} | {row['total']:,} |"
        )

    return "\n".join(lines)
