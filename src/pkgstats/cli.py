"""CLI argument parsing and command implementations."""

import argparse
import json
import logging
import sqlite3
import sys
from pathlib import Path
from typing import Any
import webbrowser

import yaml
from tabulate import tabulate

from .config import DEFAULT_DB_FILE, DEFAULT_REPORT_FILE
from .db import (
    add_package,
    add_version,
    get_db,
    get_package,
    get_package_records,
    merge_download_data,
    merge_php_stat_data,
    remove_package,
)
from .errors import BadRequestError, NotFoundError, StatsError
from .export import export_csv, export_json, export_markdown
from .logging import setup_logging
from .reports import generate_stats_html_report
from .service import (
    compute_php_version_stats,
    compute_stats,
    package_downloads,
    php_stats_overview,
    stats_overview,
)
from .types import DownloadType, Granularity, StatsPayload, StatType
from .utils import make_sparkline, validate_package_name

logger = logging.getLogger("pkgstats")

OUTPUT_FORMATS = ["table", "json", "csv", "markdown", "md"]


# -----------------------------------------------------------------------------
# Import Files
# -----------------------------------------------------------------------------


def load_import_file(file_path: str) -> list[dict[str, Any]]:
    """Load package definitions with raw counters from a YAML or JSON file.

    Expects a top-level 'packages' list (or a bare list). Each package has a
    'name' and optionally 'created', 'downloads' (day key -> count),
    'versions' (list with 'version', 'normalized', 'released', 'development',
    'default_branch', 'downloads') and 'php_stats' ('php'/'platform' ->
    stat version -> PHP version -> day key -> count).
    """
    path = Path(file_path)
    with open(file_path) as f:
        content = f.read()

    if path.suffix.lower() == ".json":
        data = json.loads(content)
    else:
        data = yaml.safe_load(content)

    if isinstance(data, dict):
        data = data.get("packages", [])
    if not isinstance(data, list):
        return []
    return [p for p in data if isinstance(p, dict) and p.get("name")]


def _counts(points: dict[Any, Any] | None) -> dict[str, int]:
    # YAML reads unquoted day keys as ints
    return {str(day): int(count) for day, count in (points or {}).items()}


def _optional_str(value: Any) -> str | None:
    return str(value) if value else None


def import_from_file(conn: sqlite3.Connection, file_path: str) -> tuple[int, int]:
    """Import packages, versions and raw counters from a file.

    Counters are added to any already stored for the same day.
    Returns tuple of (package_count, version_count).
    """
    packages = load_import_file(file_path)
    version_count = 0
    for entry in packages:
        name = entry["name"]
        valid, error = validate_package_name(name)
        if not valid:
            raise BadRequestError(f"{name}: {error}")

        add_package(conn, name, _optional_str(entry.get("created")))
        package = get_package(conn, name)
        if package is None:
            raise NotFoundError(f"Package {name} could not be stored")

        if entry.get("downloads"):
            merge_download_data(
                conn,
                DownloadType.PACKAGE,
                package["id"],
                package["id"],
                _counts(entry["downloads"]),
            )

        for v in entry.get("versions") or []:
            version_id = add_version(
                conn,
                package["id"],
                str(v["version"]),
                normalized_version=_optional_str(v.get("normalized")),
                released_at=_optional_str(v.get("released")) or package["created_at"],
                development=bool(v.get("development", False)),
                default_branch=bool(v.get("default_branch", False)),
            )
            version_count += 1
            if v.get("downloads"):
                merge_download_data(
                    conn,
                    DownloadType.VERSION,
                    version_id,
                    package["id"],
                    _counts(v["downloads"]),
                )

        for type_name, stats in (entry.get("php_stats") or {}).items():
            stat_type = StatType.parse(type_name)
            for stat_version, php_versions in (stats or {}).items():
                merge_php_stat_data(
                    conn,
                    package["id"],
                    stat_type,
                    "" if stat_version in (None, "all") else str(stat_version),
                    {
                        str(php): _counts(points)
                        for php, points in (php_versions or {}).items()
                    },
                )

        logger.debug("Imported %s", name)

    return len(packages), version_count


# -----------------------------------------------------------------------------
# Output Helpers
# -----------------------------------------------------------------------------


def format_payload(payload: StatsPayload, fmt: str, package: str) -> str:
    """Render a stats payload in the requested output format."""
    if fmt == "json":
        return export_json(payload, package)
    if fmt == "csv":
        return export_csv(payload)
    if fmt in ("markdown", "md"):
        return export_markdown(payload)

    values = payload["values"] if isinstance(payload["values"], dict) else {}
    if not values:
        return f"No downloads recorded for {package} ({payload['average']})."

    rows = [
        [label, *(f"{data[i]:,}" for data in values.values())]
        for i, label in enumerate(payload["labels"])
    ]
    table = tabulate(rows, headers=["Date", *values], tablefmt="simple")

    trend_rows = [[name, make_sparkline(data)] for name, data in values.items()]
    trend = tabulate(trend_rows, headers=["Series", "Trend"], tablefmt="simple")
    return f"{package} ({payload['average']} average)\n\n{table}\n\n{trend}"


def _write_output(output: str, output_file: str | None) -> None:
    if output_file:
        with open(output_file, "w") as f:
            f.write(output)
        print(f"Exported to {output_file}")
    else:
        print(output)


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------


def cmd_add(args: argparse.Namespace) -> None:
    """Add command: add a package."""
    valid, error = validate_package_name(args.name)
    if not valid:
        raise BadRequestError(error)

    with get_db(args.database) as conn:
        if add_package(conn, args.name, args.created):
            print(f"Added '{args.name}'.")
        else:
            print(f"Package '{args.name}' already exists.")


def cmd_remove(args: argparse.Namespace) -> None:
    """Remove command: remove a package and all of its counters."""
    with get_db(args.database) as conn:
        if remove_package(conn, args.name):
            print(f"Removed '{args.name}'.")
        else:
            print(f"Package '{args.name}' does not exist.")


def cmd_list(args: argparse.Namespace) -> None:
    """List command: show stored packages."""
    with get_db(args.database) as conn:
        packages = get_package_records(conn)

    if not packages:
        print("No packages stored.")
        print("Add packages with 'pkgstats add <name>' or 'pkgstats import <file>'.")
        return

    rows = [[p["name"], p["created_at"], p["added_date"]] for p in packages]
    print(f"{len(packages)} packages:\n")
    print(tabulate(rows, headers=["Package", "Created", "Added"], tablefmt="simple"))


def cmd_add_version(args: argparse.Namespace) -> None:
    """Add-version command: add a version to a package."""
    with get_db(args.database) as conn:
        package = get_package(conn, args.package)
        if package is None:
            raise NotFoundError(f"Package {args.package} not found")
        add_version(
            conn,
            package["id"],
            args.version,
            normalized_version=args.normalized,
            released_at=args.released or package["created_at"],
            development=args.dev,
            default_branch=args.default_branch,
        )
        print(f"Added version {args.version} to '{args.package}'.")


def cmd_import(args: argparse.Namespace) -> None:
    """Import command: import packages and counters from YAML or JSON."""
    with get_db(args.database) as conn:
        try:
            packages, versions = import_from_file(conn, args.file)
        except FileNotFoundError:
            print(f"File not found: {args.file}")
            return
        print(f"Imported {packages} packages ({versions} versions).")


def cmd_stats(args: argparse.Namespace) -> None:
    """Stats command: download time series of a package, version or majors."""
    with get_db(args.database) as conn:
        payload = compute_stats(
            conn,
            args.package,
            version=args.version,
            major_version=args.major,
            from_=args.from_date,
            to=args.to_date,
            average=args.average,
        )
    _write_output(format_payload(payload, args.format, args.package), args.output)


def cmd_php_stats(args: argparse.Namespace) -> None:
    """PHP stats command: PHP/platform version usage time series."""
    with get_db(args.database) as conn:
        payload = compute_php_version_stats(
            conn,
            args.package,
            stat_type=args.type,
            version=args.version,
            from_=args.from_date,
            to=args.to_date,
            average=args.average,
        )
    _write_output(format_payload(payload, args.format, args.package), args.output)


def cmd_versions(args: argparse.Namespace) -> None:
    """Versions command: show what stats are available for a package."""
    with get_db(args.database) as conn:
        if args.php:
            overview = php_stats_overview(conn, args.package)
            if not overview["versions"]:
                print(f"No PHP usage stats for {args.package}.")
                return
            print(
                f"PHP usage stats for {args.package} since {overview['date']} "
                f"({overview['average']} average)\n"
            )
            rows = [[v["label"], v["version"], v["depth"]] for v in overview["versions"]]
            print(tabulate(rows, headers=["Label", "Version", "Depth"], tablefmt="simple"))
            return

        stats = stats_overview(conn, args.package)
        print(
            f"Download stats for {args.package} since {stats['date']} "
            f"({stats['average']} average)\n"
        )
        if stats["major_versions"]:
            print(f"Major versions: {', '.join(stats['major_versions'])}")
        if stats["expanded"]:
            print(f"Expanded: {stats['expanded']}")
        print()
        print(tabulate([[v] for v in stats["versions"]], headers=["Version"], tablefmt="simple"))


def cmd_downloads(args: argparse.Namespace) -> None:
    """Downloads command: download totals of a package and its versions."""
    with get_db(args.database) as conn:
        summary = package_downloads(conn, args.package)

    if args.format == "json":
        print(json.dumps({"package": summary}, indent=2))
        return

    rows = []
    for name, stats in [(summary["name"], summary["total"]), *summary["versions"].items()]:
        if stats is None:
            rows.append([name, "n/a", "n/a", "n/a", "n/a"])
            continue
        rows.append(
            [
                name,
                f"{stats['total']:,}",
                f"{stats['last_month']:,}",
                f"{stats['last_week']:,}",
                f"{stats['last_day']:,}",
            ]
        )
    headers = ["Package/Version", "Total", "Month", "Week", "Day"]
    print(tabulate(rows, headers=headers, tablefmt="simple"))


def cmd_report(args: argparse.Namespace) -> None:
    """Report command: generate an HTML chart of a stats time series."""
    with get_db(args.database) as conn:
        if args.php is not None:
            payload = compute_php_version_stats(
                conn,
                args.package,
                stat_type=args.type,
                version=args.php,
                from_=args.from_date,
                to=args.to_date,
                average=args.average,
            )
            title = f"{args.type.upper()} versions ({args.php})"
            totals = None
        else:
            payload = compute_stats(
                conn,
                args.package,
                version=args.version,
                major_version=args.major,
                from_=args.from_date,
                to=args.to_date,
                average=args.average,
            )
            title = "Downloads"
            totals = package_downloads(conn, args.package)["total"]

    generate_stats_html_report(args.package, payload, args.output, title=title, stats=totals)

    if not args.no_browser:
        print("Opening report in browser...")
        webbrowser.open_new_tab(Path(args.output).resolve().as_uri())


# -----------------------------------------------------------------------------
# Parser
# -----------------------------------------------------------------------------


def _add_range_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--from",
        dest="from_date",
        help="Range start date (default: package creation date)",
    )
    parser.add_argument(
        "--to",
        dest="to_date",
        help="Range end date, inclusive",
    )
    parser.add_argument(
        "-a",
        "--average",
        choices=[g.value for g in Granularity],
        help="Bucket granularity (default: guessed from the range)",
    )


def _add_output_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-f",
        "--format",
        choices=OUTPUT_FORMATS,
        default="table",
        help="Output format (default: table)",
    )
    parser.add_argument(
        "-o",
        "--output",
        help="Output file (default: stdout)",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(
        description="Package download and PHP version usage statistics.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-d",
        "--database",
        default=DEFAULT_DB_FILE,
        help=f"SQLite database file (default: {DEFAULT_DB_FILE})",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show debug output",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Only show warnings and errors",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # add command
    add_parser = subparsers.add_parser("add", help="Add a package")
    add_parser.add_argument("name", help="Package name (vendor/package)")
    add_parser.add_argument("--created", help="Package creation date (default: today)")
    add_parser.set_defaults(func=cmd_add)

    # remove command
    remove_parser = subparsers.add_parser(
        "remove", help="Remove a package and all of its counters"
    )
    remove_parser.add_argument("name", help="Package name to remove")
    remove_parser.set_defaults(func=cmd_remove)

    # list command
    list_parser = subparsers.add_parser("list", help="List stored packages")
    list_parser.set_defaults(func=cmd_list)

    # add-version command
    version_parser = subparsers.add_parser("add-version", help="Add a package version")
    version_parser.add_argument("package", help="Package name")
    version_parser.add_argument("version", help="Version string, e.g. 1.2.0")
    version_parser.add_argument(
        "--normalized", help="Normalized version (default: same as version)"
    )
    version_parser.add_argument(
        "--released", help="Release date (default: package creation date)"
    )
    version_parser.add_argument(
        "--dev", action="store_true", help="Mark as a development version"
    )
    version_parser.add_argument(
        "--default-branch", action="store_true", help="Mark as the default branch"
    )
    version_parser.set_defaults(func=cmd_add_version)

    # import command
    import_parser = subparsers.add_parser(
        "import", help="Import packages and raw counters from YAML or JSON"
    )
    import_parser.add_argument("file", help="File to import (.yml, .yaml or .json)")
    import_parser.set_defaults(func=cmd_import)

    # stats command
    stats_parser = subparsers.add_parser(
        "stats", help="Show download time series of a package"
    )
    stats_parser.add_argument("package", help="Package name")
    group = stats_parser.add_mutually_exclusive_group()
    group.add_argument("--version", help="Single version to show")
    group.add_argument(
        "--major",
        help='Group by major version ("all") or by minor within a major version',
    )
    _add_range_arguments(stats_parser)
    _add_output_arguments(stats_parser)
    stats_parser.set_defaults(func=cmd_stats)

    # php-stats command
    php_parser = subparsers.add_parser(
        "php-stats", help="Show PHP version usage time series of a package"
    )
    php_parser.add_argument("package", help="Package name")
    php_parser.add_argument(
        "version",
        nargs="?",
        default="all",
        help='Stat version: "all", a major ("3"), minor ("3.1") or exact version',
    )
    php_parser.add_argument(
        "-t",
        "--type",
        choices=["php", "platform"],
        default="php",
        help="Effective PHP version or required platform (default: php)",
    )
    _add_range_arguments(php_parser)
    _add_output_arguments(php_parser)
    php_parser.set_defaults(func=cmd_php_stats)

    # versions command
    versions_parser = subparsers.add_parser(
        "versions", help="Show versions with stats for a package"
    )
    versions_parser.add_argument("package", help="Package name")
    versions_parser.add_argument(
        "--php", action="store_true", help="List PHP usage stat versions instead"
    )
    versions_parser.set_defaults(func=cmd_versions)

    # downloads command
    downloads_parser = subparsers.add_parser(
        "downloads", help="Show download totals of a package and its versions"
    )
    downloads_parser.add_argument("package", help="Package name")
    downloads_parser.add_argument(
        "-f",
        "--format",
        choices=["table", "json"],
        default="table",
        help="Output format (default: table)",
    )
    downloads_parser.set_defaults(func=cmd_downloads)

    # report command
    report_parser = subparsers.add_parser(
        "report", help="Generate HTML report with a time series chart"
    )
    report_parser.add_argument("package", help="Package name")
    report_group = report_parser.add_mutually_exclusive_group()
    report_group.add_argument("--version", help="Single version to chart")
    report_group.add_argument("--major", help='Major version ("all") to chart')
    report_group.add_argument(
        "--php", metavar="VERSION", help='Chart PHP usage of a stat version ("all", ...)'
    )
    report_parser.add_argument(
        "-t",
        "--type",
        choices=["php", "platform"],
        default="php",
        help="PHP usage stat type when --php is given (default: php)",
    )
    _add_range_arguments(report_parser)
    report_parser.add_argument(
        "-o",
        "--output",
        default=DEFAULT_REPORT_FILE,
        help=f"Output HTML file (default: {DEFAULT_REPORT_FILE})",
    )
    report_parser.add_argument(
        "--no-browser",
        action="store_true",
        help="Don't open report in browser (useful for automation)",
    )
    report_parser.set_defaults(func=cmd_report)

    return parser


def main() -> None:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args()
    setup_logging(verbose=args.verbose, quiet=args.quiet)

    if args.command is None:
        parser.print_help()
        return

    try:
        args.func(args)
    except BadRequestError as e:
        logger.error("Error: %s", e)
        sys.exit(1)
    except NotFoundError as e:
        logger.error("Error: %s", e)
        sys.exit(2)
    except StatsError as e:
        logger.error("Error: %s", e)
        sys.exit(1)
