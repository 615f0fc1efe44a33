"""Type definitions for pkgstats.

Closed enumerations use Enum; record and payload shapes use TypedDict.
"""

from enum import Enum, IntEnum
from typing import TypedDict

from .errors import BadRequestError

# Sparse mapping of "YYYYMMDD" day keys to counts
RawCounterSeries = dict[str, int]

# Ordered mapping of bucket labels to the day keys they cover
DateBuckets = dict[str, list[str]]


class Granularity(str, Enum):
    """Bucket width policy for a stats payload."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @classmethod
    def parse(cls, token: "str | Granularity") -> "Granularity":
        """Return the granularity named by token, rejecting unknown names."""
        if isinstance(token, cls):
            return token
        try:
            return cls(token)
        except ValueError:
            raise BadRequestError(
                f"Unknown average '{token}', expected one of: "
                + ", ".join(g.value for g in cls)
            ) from None


class Depth(IntEnum):
    """How specific a PHP stat version string is."""

    PACKAGE = 0
    MAJOR = 1
    MINOR = 2
    EXACT = 3

    @property
    def label(self) -> str:
        return self.name.lower()


class StatType(IntEnum):
    """Kind of PHP usage stat row."""

    PHP = 1
    PLATFORM = 2

    @classmethod
    def parse(cls, token: "str | StatType") -> "StatType":
        """Return the stat type named by token ("php" or "platform")."""
        if isinstance(token, cls):
            return token
        try:
            return cls[token.upper()]
        except KeyError:
            raise BadRequestError(
                f"Unknown stat type '{token}', expected 'php' or 'platform'"
            ) from None


class DownloadType(IntEnum):
    """Owner kind of a raw download series."""

    PACKAGE = 1
    VERSION = 2


class PackageStats(TypedDict):
    """Download totals for a package or version."""

    last_day: int
    last_week: int
    last_month: int
    total: int


class PackageRecord(TypedDict):
    """Package row from the database."""

    id: int
    name: str
    created_at: str
    added_date: str


class VersionRecord(TypedDict):
    """Version row from the database."""

    id: int
    package_id: int
    version: str
    normalized_version: str
    development: bool
    default_branch: bool
    released_at: str | None


class VersionSeriesRow(TypedDict):
    """Normalized version string with its raw daily download series."""

    normalized_version: str
    data: RawCounterSeries


class PhpStatVersion(TypedDict):
    """Version key and depth of a stored PHP stat row."""

    version: str
    depth: Depth


class PhpStatRecord(TypedDict):
    """Stored PHP stat row: per PHP version raw daily series."""

    package_id: int
    type: StatType
    version: str
    depth: Depth
    data: dict[str, RawCounterSeries]
    last_updated: str


class PhpStatEntry(TypedDict):
    """Ranked and labeled PHP stat version."""

    label: str
    version: str
    depth: str


class AggregatedSeries(TypedDict):
    """Bucketed series before post-processing."""

    labels: list[str]
    values: dict[str, list[int]]
    totals: list[int]


class StatsPayload(TypedDict):
    """JSON payload of a stats time series."""

    labels: list[str]
    values: dict[str, list[int]] | list[int]
    average: str


class PhpStatsOverview(TypedDict):
    """Available PHP usage stat versions of a package."""

    versions: list[PhpStatEntry]
    average: str
    date: str


class StatsOverview(TypedDict):
    """Download stats landing data of a package."""

    downloads: PackageStats | None
    versions: list[str]
    average: str
    date: str
    major_versions: list[str]
    expanded: str | None


class DownloadsSummary(TypedDict):
    """Download totals of a package and each of its versions."""

    name: str
    total: PackageStats | None
    versions: dict[str, PackageStats | None]
