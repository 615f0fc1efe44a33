"""Stats requests: resolve ranges, fetch raw counters and build payloads."""

import logging
import sqlite3
from collections.abc import Callable
from datetime import date
from json import JSONDecodeError
from typing import Any, TypeVar

from .aggregate import aggregate, build_payload, summarize_downloads
from .dates import (
    default_stats_end,
    guess_php_stats_start_date,
    guess_stats_start_date,
    parse_date,
    partition_dates,
    select_granularity,
)
from .db import (
    find_version,
    get_default_branch_version,
    get_download_data,
    get_package,
    get_php_stat,
    get_php_stat_versions,
    get_version_series_rows,
    get_versions,
)
from .errors import BadRequestError, NotFoundError
from .php import rank_and_label_php_stats, version_sort_key
from .types import (
    DownloadsSummary,
    DownloadType,
    Granularity,
    PackageRecord,
    PackageStats,
    PhpStatsOverview,
    RawCounterSeries,
    StatsOverview,
    StatsPayload,
    StatType,
    VersionRecord,
)
from .versions import (
    ALL_MAJORS,
    group_by_major,
    group_by_minor,
    major_version_of,
    parse_major_filter,
)

logger = logging.getLogger("pkgstats")

T = TypeVar("T")

# Exceptions that indicate storage errors (not programming bugs)
_STORAGE_ERRORS = (
    sqlite3.OperationalError,  # Locked or unreachable database
    sqlite3.DatabaseError,  # Corrupt database file
    JSONDecodeError,  # Malformed stored series
)


def _fetch(what: str, default: T, func: Callable[..., T], *args: Any) -> T:
    """Call a storage function, degrading storage errors to default."""
    try:
        return func(*args)
    except _STORAGE_ERRORS as e:
        logger.warning("Error fetching %s: %s", what, e)
        return default


def _get_package(conn: sqlite3.Connection, name: str) -> PackageRecord:
    package = get_package(conn, name)
    if package is None:
        raise NotFoundError(f"Package {name} not found")
    return package


def _resolve_range(
    from_: str | date | None,
    to: str | date | None,
    average: str | Granularity | None,
    default_from: Callable[[], date],
    default_to: date,
) -> tuple[date, date, Granularity]:
    start = parse_date(from_) if from_ else default_from()
    end = parse_date(to) if to else default_to
    # A package newer than the settle window has an empty default range
    if start > end and (from_ or to):
        raise BadRequestError(f"Start date {start} is after end date {end}")

    if average:
        granularity = Granularity.parse(average)
    else:
        granularity = select_granularity(start, end)

    logger.debug("Stats range %s..%s (%s)", start, end, granularity.value)
    return start, end, granularity


def _payload(
    series: dict[str, list[RawCounterSeries]],
    start: date,
    end: date,
    granularity: Granularity,
    today: date,
    php_order: bool = False,
) -> StatsPayload:
    buckets = partition_dates(start, end, granularity)
    return build_payload(
        aggregate(buckets, series), granularity, today=today, php_order=php_order
    )


def compute_stats(
    conn: sqlite3.Connection,
    package_name: str,
    version: str | None = None,
    major_version: str | int | None = None,
    from_: str | date | None = None,
    to: str | date | None = None,
    average: str | Granularity | None = None,
    today: date | None = None,
) -> StatsPayload:
    """Download stats time series of a package.

    Args:
        conn: Database connection.
        package_name: Package to report on.
        version: Report on this single version instead of the whole package.
        major_version: "all" for one series per major version, or a major
            version number for one series per minor version within it.
        from_: Range start, defaults to the package creation (or version
            release) date, clamped to when stats recording started.
        to: Range end (inclusive), defaults to today minus SETTLE_DAYS.
        average: Force a granularity instead of guessing it from the range.
        today: Reference date (defaults to today).

    Raises:
        BadRequestError: For an invalid major version, date or average.
        NotFoundError: For an unknown package or version.
    """
    if today is None:
        today = date.today()

    major = None
    if major_version is not None:
        major = parse_major_filter(major_version)

    package = _get_package(conn, package_name)
    version_record: VersionRecord | None = None
    if version is not None:
        version_record = find_version(conn, package["id"], version)
        if version_record is None:
            raise NotFoundError(f"Version {version} not found")

    def default_from() -> date:
        if version_record is not None:
            released = version_record["released_at"]
            return guess_stats_start_date(parse_date(released) if released else None)
        return guess_stats_start_date(parse_date(package["created_at"]))

    start, end, granularity = _resolve_range(
        from_, to, average, default_from, default_stats_end(today)
    )

    series: dict[str, list[RawCounterSeries]]
    if major_version is not None:
        rows = _fetch(
            f"version downloads of {package_name}", [], get_version_series_rows, conn, package["id"]
        )
        if major is None:
            series = group_by_major(rows)
        else:
            series = group_by_minor(rows, major)
    elif version_record is not None:
        data = _fetch(
            f"downloads of {package_name} {version_record['version']}",
            {},
            get_download_data,
            conn,
            DownloadType.VERSION,
            version_record["id"],
        )
        series = {version_record["version"]: [data]}
    else:
        data = _fetch(
            f"downloads of {package_name}",
            {},
            get_download_data,
            conn,
            DownloadType.PACKAGE,
            package["id"],
        )
        series = {package["name"]: [data]}

    return _payload(series, start, end, granularity, today)


def compute_php_version_stats(
    conn: sqlite3.Connection,
    package_name: str,
    stat_type: str | StatType = StatType.PHP,
    version: str = ALL_MAJORS,
    from_: str | date | None = None,
    to: str | date | None = None,
    average: str | Granularity | None = None,
    today: date | None = None,
) -> StatsPayload:
    """PHP (or platform) version usage time series of a package version.

    Args:
        version: Stat version key ("all" for the whole package, "3" for a
            major, "3.1" for a minor, anything else for an exact version).
        to: Range end (inclusive), defaults to today.

    Raises:
        NotFoundError: For an unknown package or missing stat row.
    """
    if today is None:
        today = date.today()
    stat_type = StatType.parse(stat_type)
    package = _get_package(conn, package_name)

    start, end, granularity = _resolve_range(
        from_,
        to,
        average,
        lambda: guess_php_stats_start_date(parse_date(package["created_at"])),
        today,
    )

    key = "" if version == ALL_MAJORS else version
    try:
        row = get_php_stat(conn, package["id"], stat_type, key)
    except _STORAGE_ERRORS as e:
        logger.warning("Error fetching %s stats of %s: %s", stat_type.name.lower(), package_name, e)
        data = {}
    else:
        if row is None:
            raise NotFoundError("No stats found for the requested version")
        data = row["data"]

    series = {name: [raw] for name, raw in data.items()}
    return _payload(series, start, end, granularity, today, php_order=True)


def php_stats_overview(
    conn: sqlite3.Connection, package_name: str, today: date | None = None
) -> PhpStatsOverview:
    """Ranked PHP stat versions of a package with the suggested range."""
    package = _get_package(conn, package_name)
    versions = _fetch(
        f"php stat versions of {package_name}", [], get_php_stat_versions, conn, package["id"]
    )
    default_version = _fetch(
        f"default branch of {package_name}",
        None,
        get_default_branch_version,
        conn,
        package["id"],
    )

    start = guess_php_stats_start_date(parse_date(package["created_at"]))
    return {
        "versions": rank_and_label_php_stats(versions, default_version),
        "average": select_granularity(start, default_stats_end(today)).value,
        "date": start.isoformat(),
    }


def sort_versions(versions: list[VersionRecord]) -> list[VersionRecord]:
    """Default branch first, then newest versions first."""
    ordered = sorted(
        versions, key=lambda v: version_sort_key(v["normalized_version"]), reverse=True
    )
    ordered.sort(key=lambda v: not v["default_branch"])
    return ordered


def _download_stats(
    conn: sqlite3.Connection,
    what: str,
    download_type: DownloadType,
    owner_id: int,
    today: date | None,
) -> PackageStats | None:
    try:
        data = get_download_data(conn, download_type, owner_id)
    except _STORAGE_ERRORS as e:
        logger.warning("Error fetching downloads of %s: %s", what, e)
        return None
    return summarize_downloads(data, today)


def stats_overview(
    conn: sqlite3.Connection, package_name: str, today: date | None = None
) -> StatsOverview:
    """Download totals, versions and suggested range of a package."""
    package = _get_package(conn, package_name)
    versions = sort_versions(get_versions(conn, package["id"]))
    start = guess_stats_start_date(parse_date(package["created_at"]))

    major_versions: list[str] = []
    expanded: str | None = versions[0]["version"] if versions else None
    found_stable = False
    for v in versions:
        if v["development"]:
            continue
        if not found_stable:
            expanded = v["version"]
            found_stable = True
        major = major_version_of(v["normalized_version"])
        if major is not None and major not in major_versions:
            major_versions.append(major)

    if major_versions:
        major_versions.insert(0, ALL_MAJORS)
        expanded = "major/all"

    return {
        "downloads": _download_stats(
            conn, package_name, DownloadType.PACKAGE, package["id"], today
        ),
        "versions": [v["version"] for v in versions],
        "average": select_granularity(start, default_stats_end(today)).value,
        "date": start.isoformat(),
        "major_versions": major_versions,
        "expanded": expanded,
    }


def package_downloads(
    conn: sqlite3.Connection, package_name: str, today: date | None = None
) -> DownloadsSummary:
    """Download totals of a package and of each of its versions.

    A total that cannot be read from storage is reported as None.
    """
    package = _get_package(conn, package_name)
    summary: DownloadsSummary = {
        "name": package["name"],
        "total": _download_stats(
            conn, package_name, DownloadType.PACKAGE, package["id"], today
        ),
        "versions": {},
    }
    for v in sort_versions(get_versions(conn, package["id"])):
        summary["versions"][v["version"]] = _download_stats(
            conn,
            f"{package_name} {v['version']}",
            DownloadType.VERSION,
            v["id"],
            today,
        )
    return summary
