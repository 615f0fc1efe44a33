"""Grouping of per-version download series by major or minor version."""

import re
from collections.abc import Iterable

from .errors import BadRequestError
from .types import RawCounterSeries, VersionSeriesRow

ALL_MAJORS = "all"

_MAJOR_PATTERN = re.compile(r"^(\d+)(?:\.|$)")
_MINOR_PATTERN = re.compile(r"^(\d+\.\d+)(?:\.|$)")


def parse_major_filter(major_version: str | int) -> int | None:
    """Validate a major version filter.

    Returns:
        The major version as int, or None for "all".

    Raises:
        BadRequestError: If the filter is neither an integer nor "all".
    """
    if isinstance(major_version, int):
        return major_version
    if major_version == ALL_MAJORS:
        return None
    if not major_version.isascii() or not major_version.isdigit():
        raise BadRequestError('Major version should be an int or "all"')
    return int(major_version)


def major_version_of(normalized_version: str) -> str | None:
    """Leading digits of a normalized version, or None for non-numeric versions."""
    match = _MAJOR_PATTERN.match(normalized_version)
    return match.group(1) if match else None


def group_by_major(
    rows: Iterable[VersionSeriesRow],
) -> dict[str, list[RawCounterSeries]]:
    """Collect raw series per major version.

    Versions not starting with digits (dev branches) are skipped. Series are
    collected, not summed; aggregate() sums them per bucket.
    """
    series: dict[str, list[RawCounterSeries]] = {}
    for row in rows:
        if not row["normalized_version"][:1].isdigit():
            continue
        # digits not followed by "." (e.g. "2020-beta") keep the full version
        name = major_version_of(row["normalized_version"]) or row["normalized_version"]
        series.setdefault(name, []).append(row["data"] or {})
    return series


def group_by_minor(
    rows: Iterable[VersionSeriesRow], major_version: int
) -> dict[str, list[RawCounterSeries]]:
    """Collect raw series per minor version within one major version."""
    prefix = f"{major_version}."
    series: dict[str, list[RawCounterSeries]] = {}
    for row in rows:
        normalized = row["normalized_version"]
        if not normalized.startswith(prefix):
            continue
        match = _MINOR_PATTERN.match(normalized)
        name = match.group(1) if match else normalized
        series.setdefault(name, []).append(row["data"] or {})
    return series
