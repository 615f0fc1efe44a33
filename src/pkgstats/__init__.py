"""
pkgstats - Package download and PHP version usage statistics.

Buckets raw per-day counters of packages and their releases into daily,
weekly or monthly time series, stored in SQLite and served as JSON
payloads, tables, exports and HTML reports.
"""

from .aggregate import aggregate, build_payload
from .dates import partition_dates, select_granularity
from .php import rank_and_label_php_stats
from .service import (
    compute_php_version_stats,
    compute_stats,
    package_downloads,
    php_stats_overview,
    stats_overview,
)

__version__ = "0.1.0"
