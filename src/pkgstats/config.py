"""Configuration constants for pkgstats."""

from datetime import date
from pathlib import Path

# -----------------------------------------------------------------------------
# Stats Recording Constants
# -----------------------------------------------------------------------------

# Daily download counters exist from this date on
STATS_RECORD_START = date(2012, 4, 13)

# PHP/platform usage counters exist from this date on
PHP_STATS_RECORD_START = date(2021, 5, 18)

# Raw counters for the most recent days may not be synced yet
SETTLE_DAYS = 2

# Maximum number of trailing all-zero buckets removed from a payload
MAX_TRAILING_TRIM = 2

# Range spans (in months) above which coarser granularities are picked
MONTHLY_THRESHOLD_MONTHS = 48
WEEKLY_THRESHOLD_MONTHS = 7


def get_config_dir() -> Path:
    """Get the pkgstats config directory (~/.pkgstats), creating it if needed."""
    config_dir = Path.home() / ".pkgstats"
    config_dir.mkdir(exist_ok=True)
    return config_dir


DEFAULT_DB_FILE = str(get_config_dir() / "stats.db")
DEFAULT_REPORT_FILE = str(get_config_dir() / "report.html")
