"""Date range handling: granularity selection and bucket partitioning."""

import logging
from datetime import date, datetime, timedelta

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

from .config import (
    MONTHLY_THRESHOLD_MONTHS,
    PHP_STATS_RECORD_START,
    SETTLE_DAYS,
    STATS_RECORD_START,
    WEEKLY_THRESHOLD_MONTHS,
)
from .errors import BadRequestError
from .types import DateBuckets, Granularity

logger = logging.getLogger("pkgstats")

DAY_KEY_FORMAT = "%Y%m%d"

_LABEL_FORMATS = {
    Granularity.DAILY: "%Y-%m-%d",
    Granularity.WEEKLY: "%Y-%m-%d",
    Granularity.MONTHLY: "%Y-%m",
}

_INTERVALS = {
    Granularity.DAILY: relativedelta(days=1),
    Granularity.WEEKLY: relativedelta(days=7),
    Granularity.MONTHLY: relativedelta(months=1),
}


def day_key(day: date) -> str:
    """Format a date as a raw counter key ("YYYYMMDD")."""
    return day.strftime(DAY_KEY_FORMAT)


def parse_date(value: str | date) -> date:
    """Parse a user supplied date.

    Accepts anything dateutil understands ("2020-01-31", "Jan 31 2020", ...).

    Raises:
        BadRequestError: If the value is not a date.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date_parser.parse(value).date()
    except (ValueError, OverflowError) as e:
        raise BadRequestError(f"Invalid date '{value}': {e}") from None


def default_stats_end(today: date | None = None) -> date:
    """Return the default end of a download stats range (today minus SETTLE_DAYS)."""
    if today is None:
        today = date.today()
    return today - timedelta(days=SETTLE_DAYS)


def _clamp(start: date, floor: date) -> date:
    return floor if start < floor else start


def guess_stats_start_date(
    created_at: date | datetime | None,
    floor: date = STATS_RECORD_START,
) -> date:
    """Start date for download stats of a package or version.

    Args:
        created_at: Package creation date or version release date.
        floor: Earliest date download counters were recorded.

    Raises:
        ValueError: If no date is given (a version without release date).
    """
    if created_at is None:
        raise ValueError("Version with release date expected")
    if isinstance(created_at, datetime):
        created_at = created_at.date()
    return _clamp(created_at, floor)


def guess_php_stats_start_date(
    created_at: date | datetime,
    floor: date = PHP_STATS_RECORD_START,
) -> date:
    """Start date for PHP usage stats of a package."""
    if isinstance(created_at, datetime):
        created_at = created_at.date()
    return _clamp(created_at, floor)


def select_granularity(start: date, end: date | None = None) -> Granularity:
    """Pick a bucket granularity from the span of a date range.

    Ranges reaching back more than MONTHLY_THRESHOLD_MONTHS are monthly,
    more than WEEKLY_THRESHOLD_MONTHS weekly, anything shorter daily.
    """
    if end is None:
        end = default_stats_end()

    if start < end - relativedelta(months=MONTHLY_THRESHOLD_MONTHS):
        return Granularity.MONTHLY
    if start < end - relativedelta(months=WEEKLY_THRESHOLD_MONTHS):
        return Granularity.WEEKLY
    return Granularity.DAILY


def partition_dates(
    start: date, end: date, granularity: Granularity | str
) -> DateBuckets:
    """Split [start, end] into ordered, labeled buckets of day keys.

    Daily and weekly buckets are fixed windows anchored at start. Monthly
    buckets follow calendar months, so the first one only covers the days of
    start's month.

    Returns:
        Dict mapping bucket labels to the day keys they cover, in order.
    """
    granularity = Granularity.parse(granularity)
    interval = _INTERVALS[granularity]
    label_format = _LABEL_FORMATS[granularity]

    if granularity is Granularity.MONTHLY:
        boundary = start.replace(day=1) + interval
    else:
        boundary = start + interval

    buckets: DateBuckets = {}
    label = start.strftime(label_format)
    day = start
    while day <= end:
        buckets.setdefault(label, []).append(day_key(day))

        day += timedelta(days=1)
        if day >= boundary:
            label = day.strftime(label_format)
            boundary = day + interval

    logger.debug(
        "Partitioned %s..%s into %d %s buckets", start, end, len(buckets), granularity.value
    )
    return buckets
