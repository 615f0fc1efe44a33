"""Ranking and labeling of PHP/platform usage stat versions."""

import re
from collections.abc import Iterable

from .types import Depth, PhpStatEntry, PhpStatVersion

# Suffix of normalized dev branch versions (e.g. "2.9999999" is "2.x-dev")
DEV_BRANCH_SUFFIX = ".9999999"

_MAJOR_RE = re.compile(r"^\d+$")
_MINOR_RE = re.compile(r"^\d+\.\d+$")

# Ordering of special version parts, numbers rank as "#"
_SPECIAL_FORMS = {
    "dev": 1,
    "alpha": 2,
    "a": 2,
    "beta": 3,
    "b": 3,
    "rc": 4,
    "#": 5,
    "pl": 6,
    "p": 6,
}
_NUMBER_RANK = _SPECIAL_FORMS["#"]
# Marks the end of a version: above any pre-release part, below any number
_END_OF_VERSION = (_NUMBER_RANK, -1)


def classify_depth(version: str) -> Depth:
    """Derive how specific a stat version string is from its shape."""
    if version == "":
        return Depth.PACKAGE
    if _MAJOR_RE.match(version):
        return Depth.MAJOR
    if _MINOR_RE.match(version):
        return Depth.MINOR
    return Depth.EXACT


def version_sort_key(version: str) -> tuple[tuple[int, int], ...]:
    """Sort key comparing versions the way PHP's version_compare() does.

    Numeric parts compare numerically; alphabetic parts rank
    dev < alpha < beta < RC < number < pl, unknown words lowest.
    "1.0" sorts below "1.0.0" and above "1.0-RC1".
    """
    key = []
    for part in re.findall(r"\d+|[^\d.\-_+]+", version):
        if part.isdigit():
            key.append((_NUMBER_RANK, int(part)))
        else:
            key.append((_SPECIAL_FORMS.get(part.lower(), 0), 0))
    key.append(_END_OF_VERSION)
    return tuple(key)


def rank_php_stats(
    rows: Iterable[PhpStatVersion], default_version: str | None = None
) -> list[PhpStatVersion]:
    """Order stat versions for display.

    Sort keys, most significant first:

    1. the package-wide row ("") stays ahead of everything;
    2. the default branch row comes next;
    3. depth ascending (package, major, minor, exact);
    4. exact versions by plain string ascending, other depths newest first.
    """
    # Stable sorts, least significant key first
    ranked = sorted(rows, key=lambda row: version_sort_key(row["version"]), reverse=True)
    ranked.sort(key=lambda row: row["version"] if row["depth"] == Depth.EXACT else "")
    ranked.sort(
        key=lambda row: (
            row["depth"] != Depth.PACKAGE,
            row["version"] != default_version,
            row["depth"],
        )
    )
    return ranked


def format_php_label(version: str, depth: Depth) -> str:
    """Human readable label of a stat version."""
    if version == "":
        return "All"
    if version.endswith(DEV_BRANCH_SUFFIX):
        return version[: -len(DEV_BRANCH_SUFFIX)] + ".x-dev"
    if depth in (Depth.MAJOR, Depth.MINOR):
        return version + ".*"
    return version


def rank_and_label_php_stats(
    rows: Iterable[PhpStatVersion], default_version: str | None = None
) -> list[PhpStatEntry]:
    """Rank stat versions and attach display labels.

    The package-wide row is exposed with version "all".
    """
    return [
        {
            "label": format_php_label(row["version"], row["depth"]),
            "version": row["version"] or "all",
            "depth": Depth(row["depth"]).label,
        }
        for row in rank_php_stats(rows, default_version)
    ]
