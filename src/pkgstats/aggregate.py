"""Aggregation of raw daily counters into bucketed series, and payload cleanup."""

import logging
from collections.abc import Mapping, Sequence
from datetime import date, timedelta

from .config import MAX_TRAILING_TRIM
from .dates import day_key
from .types import (
    AggregatedSeries,
    DateBuckets,
    Granularity,
    PackageStats,
    RawCounterSeries,
    StatsPayload,
)

logger = logging.getLogger("pkgstats")

# Platform series always listed after the PHP versions
HHVM_SERIES = "hhvm"


def aggregate(
    buckets: DateBuckets,
    series: Mapping[str, Sequence[RawCounterSeries]],
) -> AggregatedSeries:
    """Bucket raw daily counters.

    Each named series may be backed by several raw series (e.g. every release
    of a major version); their counts are summed. A bucket value is the
    per-day average over the bucket, rounded up.

    Args:
        buckets: Output of partition_dates.
        series: Series name mapped to the raw day-key counters backing it.

    Returns:
        Labels, one value list per series, and the raw (undivided) sum of
        every bucket across all series.
    """
    values: dict[str, list[int]] = {name: [] for name in series}
    totals: list[int] = []

    for day_keys in buckets.values():
        bucket_total = 0
        for name, raw_series in series.items():
            bucket_sum = 0
            for day in day_keys:
                for raw in raw_series:
                    bucket_sum += raw.get(day, 0)
            # Integer ceiling of the daily average
            values[name].append(-(-bucket_sum // len(day_keys)))
            bucket_total += bucket_sum
        totals.append(bucket_total)

    return {"labels": list(buckets), "values": values, "totals": totals}


def drop_zero_series(values: dict[str, list[int]]) -> dict[str, list[int]]:
    """Remove series whose every bucket value is zero."""
    return {name: data for name, data in values.items() if any(data)}


def trim_trailing_buckets(
    result: AggregatedSeries, max_trim: int = MAX_TRAILING_TRIM
) -> AggregatedSeries:
    """Remove up to max_trim trailing buckets whose raw total is zero.

    The most recent days may not have been synced into the raw counters yet,
    so empty buckets at the end are dropped rather than shown as a dip.
    """
    labels = list(result["labels"])
    totals = list(result["totals"])
    values = {name: list(data) for name, data in result["values"].items()}

    for _ in range(max_trim):
        if not totals or totals[-1] != 0:
            break
        totals.pop()
        labels.pop()
        for data in values.values():
            data.pop()

    trimmed = len(result["labels"]) - len(labels)
    if trimmed:
        logger.debug("Trimmed %d trailing empty bucket(s)", trimmed)

    return {"labels": labels, "values": values, "totals": totals}


def sort_php_series(values: dict[str, list[int]]) -> dict[str, list[int]]:
    """Order series names descending, with "hhvm" always last."""
    names = sorted(values, reverse=True)
    names.sort(key=lambda name: name == HHVM_SERIES)
    return {name: values[name] for name in names}


def empty_payload(granularity: Granularity, today: date | None = None) -> StatsPayload:
    """Placeholder payload with a single zero point labeled today."""
    if today is None:
        today = date.today()
    return {
        "labels": [today.strftime("%Y-%m-%d")],
        "values": [0],
        "average": granularity.value,
    }


def build_payload(
    result: AggregatedSeries,
    granularity: Granularity,
    today: date | None = None,
    php_order: bool = False,
    max_trim: int = MAX_TRAILING_TRIM,
) -> StatsPayload:
    """Clean up an aggregation result into a response payload.

    Drops all-zero series, trims trailing empty buckets and, for PHP usage
    stats, reorders the series. Never returns an empty payload.
    """
    result = {
        "labels": result["labels"],
        "values": drop_zero_series(result["values"]),
        "totals": result["totals"],
    }
    result = trim_trailing_buckets(result, max_trim=max_trim)

    if not result["labels"] or not result["values"]:
        return empty_payload(granularity, today)

    values = result["values"]
    if php_order:
        values = sort_php_series(values)

    return {
        "labels": result["labels"],
        "values": values,
        "average": granularity.value,
    }


def summarize_downloads(
    series: RawCounterSeries, today: date | None = None
) -> PackageStats:
    """Download totals of a raw series, relative to the day before today.

    last_week and last_month cover the 7 and 30 days ending yesterday.
    """
    if today is None:
        today = date.today()
    yesterday = today - timedelta(days=1)

    def window(days: int) -> int:
        return sum(
            series.get(day_key(yesterday - timedelta(days=offset)), 0)
            for offset in range(days)
        )

    return {
        "last_day": window(1),
        "last_week": window(7),
        "last_month": window(30),
        "total": sum(series.values()),
    }
