"""CLI argument parsing and command implementations."""

import argparse
import json
import sys
from datetime import date
from pathlib import Path
from typing import Any

import yaml
from tabulate import tabulate

from .counts import LAST_MONTH_DAYS, CountData
from .errors import InvalidCountsFileError, PkgCountsError
from .export import export_csv, export_json, export_markdown
from .logging import setup_logging
from .store import DEFAULT_STATE_FILE, load_store, open_store
from .utils import format_count, make_sparkline, parse_day, validate_package_name


def _entry_date(value: Any) -> date:
    # YAML already turns unquoted YYYY-MM-DD scalars into dates
    if isinstance(value, date):
        return value
    try:
        return parse_day(str(value))
    except ValueError as e:
        raise InvalidCountsFileError(f"Invalid date: {value!r}") from e


def _parse_entry(entry: Any, default_date: date | None) -> tuple[date, dict[str, int]]:
    if not isinstance(entry, dict):
        raise InvalidCountsFileError(f"Expected a mapping, got {type(entry).__name__}")

    if "counts" in entry:
        counts = entry["counts"]
        if not isinstance(counts, dict):
            raise InvalidCountsFileError("'counts' must map versions to downloads")
        if "date" in entry:
            return _entry_date(entry["date"]), counts
        if default_date is None:
            raise InvalidCountsFileError("Entry has no 'date' and no --date given")
        return default_date, counts

    # A bare version -> downloads mapping
    if default_date is None:
        raise InvalidCountsFileError("Bare version mapping requires --date")
    return default_date, entry


def load_daily_counts(
    file_path: str, default_date: date | None = None
) -> list[tuple[date, dict[str, int]]]:
    """Load daily per-version download counts from a YAML or JSON file.

    Supports:
    - a single entry: {date: YYYY-MM-DD, counts: {version: downloads}}
    - a list of entries, or an object with a 'days' list of entries
    - a bare {version: downloads} mapping, dated with ``default_date``

    Version keys should be quoted in YAML so they stay strings.
    """
    path = Path(file_path)
    suffix = path.suffix.lower()

    with open(file_path) as f:
        content = f.read()

    try:
        if suffix in (".yml", ".yaml"):
            data = yaml.safe_load(content)
        elif suffix == ".json":
            data = json.loads(content)
        else:
            raise InvalidCountsFileError(f"Unsupported file type: {suffix or file_path}")
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise InvalidCountsFileError(f"Could not parse {file_path}: {e}") from e

    if isinstance(data, dict) and isinstance(data.get("days"), list):
        data = data["days"]
    if isinstance(data, list):
        return [_parse_entry(entry, default_date) for entry in data]
    return [_parse_entry(data, default_date)]


def _report_drops(data: CountData) -> None:
    drops = data.drops
    if drops.malformed_versions or drops.stale_calls or drops.floor_drops:
        print(
            f"  Skipped: {drops.malformed_versions} malformed versions, "
            f"{drops.stale_calls} days outside the window, "
            f"{drops.floor_drops} buckets below tracked ranges"
        )


def cmd_add(args: argparse.Namespace) -> None:
    """Add command: apply daily counts from a file to a package."""
    is_valid, error = validate_package_name(args.name)
    if not is_valid:
        print(f"Invalid package name '{args.name}': {error}")
        return

    default_date = None
    if args.date:
        try:
            default_date = parse_day(args.date)
        except ValueError:
            print(f"Invalid date: {args.date} (expected YYYY-MM-DD)")
            return

    try:
        days = load_daily_counts(args.file, default_date)
    except FileNotFoundError:
        print(f"File not found: {args.file}")
        return
    except InvalidCountsFileError as e:
        print(f"Invalid counts file: {e}")
        return

    with open_store(args.state) as store:
        data = None
        for day, counts in days:
            data = store.add_download_counts(args.name, counts, day)

    if data is None:
        print(f"No counts found in {args.file}.")
        return

    print(f"Added {len(days)} day(s) of counts for '{args.name}'.")
    print(
        f"  Newest day: {data.newest_date} | Ranges: {len(data.ranges)} | "
        f"Month: {data.total(LAST_MONTH_DAYS):,}"
    )
    _report_drops(data)


def cmd_list(args: argparse.Namespace) -> None:
    """List command: show tracked packages with recent totals."""
    store = load_store(args.state)
    summaries = store.summaries()

    if not summaries:
        print("No packages are being tracked.")
        print("Add counts with 'pkgcounts add <name> <file>'.")
        return

    rows = [
        [
            i,
            s["package_name"],
            s["newest_date"] or "",
            s["range_count"],
            f"{s['last_day']:,}",
            f"{s['last_week']:,}",
            f"{s['last_month']:,}",
            format_count(s["total"]),
        ]
        for i, s in enumerate(summaries, 1)
    ]
    headers = ["#", "Package", "Newest", "Ranges", "Day", "Week", "Month", "2 Years"]
    print(tabulate(rows, headers=headers, tablefmt="simple"))


def cmd_show(args: argparse.Namespace) -> None:
    """Show command: per-range totals for one package."""
    store = load_store(args.state)
    data = store.get(args.name)

    if data is None:
        print(f"No data found for package '{args.name}'.")
        return

    print(f"Downloads for {args.name} (newest day: {data.newest_date})\n")

    rows = []
    for major_range, s in zip(data.major_counts, data.summary()):
        rows.append(
            [
                s["version_range"],
                f"{s['last_day']:,}",
                f"{s['last_week']:,}",
                f"{s['last_month']:,}",
                f"{s['total']:,}",
                make_sparkline(major_range.counts.to_list()),
            ]
        )

    headers = ["Versions", "Day", "Week", "Month", "2 Years", "Trend"]
    print(tabulate(rows, headers=headers, tablefmt="simple"))


def cmd_history(args: argparse.Namespace) -> None:
    """History command: daily downloads per range for one package."""
    store = load_store(args.state)
    data = store.get(args.name)

    if data is None or data.newest_date is None:
        print(f"No data found for package '{args.name}'.")
        return

    limit = max(1, min(args.limit, CountData.max_age))
    ranges = data.major_counts
    totals = data.daily_totals(limit)

    print(f"Daily downloads for {args.name}\n")

    rows = []
    for age in reversed(range(limit)):
        rows.append(
            [data.date_for_age(age)]
            + [f"{r.counts[age]:,}" for r in ranges]
            + [f"{totals[age]:,}"]
        )

    headers = ["Date"] + [f"{r.major_version}.x" for r in ranges] + ["Total"]
    print(tabulate(rows, headers=headers, tablefmt="simple"))


def cmd_remove(args: argparse.Namespace) -> None:
    """Remove command: stop tracking a package."""
    with open_store(args.state) as store:
        removed = store.remove(args.name)

    if removed:
        print(f"Removed '{args.name}' from tracking.")
    else:
        print(f"Package '{args.name}' was not being tracked.")


def cmd_export(args: argparse.Namespace) -> None:
    """Export command: export range counts in various formats."""
    store = load_store(args.state)

    if args.name is not None and args.name not in store:
        print(f"No data found for package '{args.name}'.")
        return
    if len(store) == 0:
        print("No packages are being tracked.")
        return

    if args.format == "csv":
        output = export_csv(store, args.name)
    elif args.format == "json":
        output = export_json(store, args.name)
    else:
        output = export_markdown(store, args.name)

    if args.output:
        with open(args.output, "w") as f:
            f.write(output)
        print(f"Exported to {args.output}")
    else:
        print(output)


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(
        description="Aggregate package download counts by major version.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-s",
        "--state",
        default=DEFAULT_STATE_FILE,
        help=f"JSON state file (default: {DEFAULT_STATE_FILE})",
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log every dropped version, bucket and eviction",
    )
    verbosity.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Only log warnings and errors",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # add command
    add_parser = subparsers.add_parser(
        "add",
        help="Add daily download counts for a package from a YAML or JSON file",
    )
    add_parser.add_argument(
        "name",
        help="Package name",
    )
    add_parser.add_argument(
        "file",
        help="Counts file (.yml, .yaml or .json)",
    )
    add_parser.add_argument(
        "--date",
        help="Date (YYYY-MM-DD) for entries that do not carry one",
    )
    add_parser.set_defaults(func=cmd_add)

    # list command
    list_parser = subparsers.add_parser(
        "list",
        help="List tracked packages with recent totals",
    )
    list_parser.set_defaults(func=cmd_list)

    # show command
    show_parser = subparsers.add_parser(
        "show",
        help="Show per-version-range totals for a package",
    )
    show_parser.add_argument(
        "name",
        help="Package name",
    )
    show_parser.set_defaults(func=cmd_show)

    # history command
    history_parser = subparsers.add_parser(
        "history",
        help="Show daily downloads per version range for a package",
    )
    history_parser.add_argument(
        "name",
        help="Package name",
    )
    history_parser.add_argument(
        "-n",
        "--limit",
        type=int,
        default=30,
        help="Number of days to show (default: 30)",
    )
    history_parser.set_defaults(func=cmd_history)

    # remove command
    remove_parser = subparsers.add_parser(
        "remove",
        help="Stop tracking a package",
    )
    remove_parser.add_argument(
        "name",
        help="Package name to remove",
    )
    remove_parser.set_defaults(func=cmd_remove)

    # export command
    export_parser = subparsers.add_parser(
        "export",
        help="Export range counts in various formats (csv, json, markdown)",
    )
    export_parser.add_argument(
        "name",
        nargs="?",
        help="Only export this package (default: all packages)",
    )
    export_parser.add_argument(
        "-f",
        "--format",
        choices=["csv", "json", "markdown", "md"],
        default="csv",
        help="Export format (default: csv)",
    )
    export_parser.add_argument(
        "-o",
        "--output",
        help="Output file (default: stdout)",
    )
    export_parser.set_defaults(func=cmd_export)

    return parser


def main() -> None:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return

    setup_logging(verbose=args.verbose, quiet=args.quiet)

    try:
        args.func(args)
    except PkgCountsError as e:
        print(f"Error: {e}")
        sys.exit(1)
