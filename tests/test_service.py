"""Tests for stats requests against a populated database."""

import logging
import sqlite3
from datetime import date
from unittest.mock import patch

import pytest

from pkgstats.db import add_package, add_version, get_package
from pkgstats.errors import BadRequestError, NotFoundError
from pkgstats.service import (
    compute_php_version_stats,
    compute_stats,
    package_downloads,
    php_stats_overview,
    stats_overview,
)

TODAY = date(2020, 1, 10)
RANGE = {"from_": "2020-01-01", "to": "2020-01-03", "average": "daily", "today": TODAY}
LABELS = ["2020-01-01", "2020-01-02", "2020-01-03"]
PHP_TODAY = date(2021, 6, 1)


class TestComputeStats:
    """Tests for download stats time series."""

    def test_package_series(self, populated_conn):
        """Package stats should chart the package's own counter."""
        payload = compute_stats(populated_conn, "acme/foo", **RANGE)
        assert payload == {
            "labels": LABELS,
            "values": {"acme/foo": [5, 0, 3]},
            "average": "daily",
        }

    def test_all_majors(self, populated_conn):
        """'all' should produce one series per major version, dev excluded."""
        payload = compute_stats(populated_conn, "acme/foo", major_version="all", **RANGE)
        assert payload["labels"] == LABELS
        assert payload["values"] == {"1": [1, 3, 3], "2": [0, 0, 4]}

    def test_minors_of_major(self, populated_conn):
        """A major version should produce one series per minor."""
        payload = compute_stats(populated_conn, "acme/foo", major_version="1", **RANGE)
        assert payload["values"] == {"1.0": [1, 1, 1], "1.1": [0, 2, 2]}

    def test_single_version(self, populated_conn):
        """A version should be found by pretty or normalized string."""
        pretty = compute_stats(populated_conn, "acme/foo", version="1.1.0", **RANGE)
        normalized = compute_stats(populated_conn, "acme/foo", version="1.1.0.0", **RANGE)
        assert pretty["values"] == {"1.1.0": [0, 2, 2]}
        assert normalized == pretty

    def test_default_range(self, populated_conn):
        """The default range should run from creation to two days ago, trimmed."""
        payload = compute_stats(populated_conn, "acme/foo", today=TODAY)
        assert payload["average"] == "daily"
        assert payload["labels"] == [
            "2020-01-01",
            "2020-01-02",
            "2020-01-03",
            "2020-01-04",
            "2020-01-05",
            "2020-01-06",
        ]
        assert payload["values"] == {"acme/foo": [5, 0, 3, 0, 0, 0]}

    def test_forced_weekly(self, populated_conn):
        """A forced average should override the guessed granularity."""
        payload = compute_stats(
            populated_conn, "acme/foo", from_="2020-01-01", to="2020-01-07",
            average="weekly", today=TODAY,
        )
        assert payload == {
            "labels": ["2020-01-01"],
            "values": {"acme/foo": [2]},
            "average": "weekly",
        }

    def test_invalid_major_rejected_before_lookup(self, populated_conn):
        """An invalid major filter should fail even for an unknown package."""
        with pytest.raises(BadRequestError):
            compute_stats(populated_conn, "acme/missing", major_version="abc")

    def test_unknown_package(self, populated_conn):
        """An unknown package should not be found."""
        with pytest.raises(NotFoundError):
            compute_stats(populated_conn, "acme/missing", today=TODAY)

    def test_unknown_version(self, populated_conn):
        """An unknown version should not be found."""
        with pytest.raises(NotFoundError):
            compute_stats(populated_conn, "acme/foo", version="9.9.9", today=TODAY)

    def test_invalid_average(self, populated_conn):
        """An unknown average token should be rejected."""
        with pytest.raises(BadRequestError):
            compute_stats(populated_conn, "acme/foo", average="hourly", today=TODAY)

    def test_reversed_range(self, populated_conn):
        """A start after the end should be rejected."""
        with pytest.raises(BadRequestError):
            compute_stats(
                populated_conn, "acme/foo", from_="2020-02-01", to="2020-01-01", today=TODAY
            )

    def test_new_package_default_range(self, db_conn):
        """A package created yesterday should get the placeholder, not an error."""
        add_package(db_conn, "acme/new", "2026-10-17")
        payload = compute_stats(db_conn, "acme/new", today=date(2026, 10, 18))
        assert payload == {"labels": ["2026-10-18"], "values": [0], "average": "daily"}

    def test_new_version_default_range(self, populated_conn):
        """A version released after the settled end date should get the placeholder."""
        package_id = get_package(populated_conn, "acme/foo")["id"]
        add_version(populated_conn, package_id, "3.0.0", "3.0.0.0", released_at="2020-01-09")
        payload = compute_stats(populated_conn, "acme/foo", version="3.0.0", today=TODAY)
        assert payload == {"labels": ["2020-01-10"], "values": [0], "average": "daily"}

    def test_reversed_explicit_end(self, db_conn):
        """An explicit end before the default start should still be rejected."""
        add_package(db_conn, "acme/new", "2026-10-17")
        with pytest.raises(BadRequestError):
            compute_stats(db_conn, "acme/new", to="2026-10-01", today=date(2026, 10, 18))

    def test_unknown_major_falls_back(self, populated_conn):
        """A major without versions should give the placeholder payload."""
        payload = compute_stats(populated_conn, "acme/foo", major_version="7", **RANGE)
        assert payload == {"labels": ["2020-01-10"], "values": [0], "average": "daily"}

    def test_storage_error_degrades(self, populated_conn, caplog):
        """A storage failure should log a warning and return the placeholder."""
        with patch(
            "pkgstats.service.get_download_data",
            side_effect=sqlite3.OperationalError("database is locked"),
        ):
            with caplog.at_level(logging.WARNING, logger="pkgstats"):
                payload = compute_stats(populated_conn, "acme/foo", **RANGE)

        assert payload == {"labels": ["2020-01-10"], "values": [0], "average": "daily"}
        assert "database is locked" in caplog.text


class TestComputePhpVersionStats:
    """Tests for PHP usage time series."""

    def test_package_wide(self, populated_conn):
        """The package row should chart PHP versions, newest first, hhvm last."""
        payload = compute_php_version_stats(
            populated_conn, "acme/foo", "php", "all",
            from_="2020-01-01", to="2020-01-04", average="daily", today=TODAY,
        )
        assert payload["labels"] == ["2020-01-01", "2020-01-02"]
        assert list(payload["values"]) == ["8.1", "7.4", "hhvm"]
        assert payload["values"] == {"8.1": [2, 2], "7.4": [1, 0], "hhvm": [0, 1]}

    def test_platform_type(self, populated_conn):
        """Platform rows should be read separately."""
        payload = compute_php_version_stats(
            populated_conn, "acme/foo", "platform", "dev-main",
            from_="2020-01-01", to="2020-01-01", today=TODAY,
        )
        assert payload["values"] == {"8.2": [3]}

    def test_missing_row(self, populated_conn):
        """A version without a stat row should not be found."""
        with pytest.raises(NotFoundError, match="No stats found"):
            compute_php_version_stats(populated_conn, "acme/foo", "php", "5", today=PHP_TODAY)

    def test_missing_type(self, populated_conn):
        """The package row only exists for the php type."""
        with pytest.raises(NotFoundError):
            compute_php_version_stats(populated_conn, "acme/foo", "platform", "all", today=PHP_TODAY)

    def test_unknown_type(self, populated_conn):
        """An unknown stat type should be rejected."""
        with pytest.raises(BadRequestError):
            compute_php_version_stats(populated_conn, "acme/foo", "python", today=TODAY)

    def test_default_range_starts_at_floor(self, populated_conn):
        """Without dates the range should start at the PHP stats floor and end today."""
        payload = compute_php_version_stats(
            populated_conn, "acme/foo", today=date(2021, 6, 1)
        )
        assert payload == {"labels": ["2021-06-01"], "values": [0], "average": "daily"}

    def test_storage_error_degrades(self, populated_conn, caplog):
        """A storage failure should log a warning and return the placeholder."""
        with patch(
            "pkgstats.service.get_php_stat",
            side_effect=sqlite3.DatabaseError("file is not a database"),
        ):
            with caplog.at_level(logging.WARNING, logger="pkgstats"):
                payload = compute_php_version_stats(populated_conn, "acme/foo", **RANGE)

        assert payload["values"] == [0]
        assert "file is not a database" in caplog.text


class TestOverviews:
    """Tests for overview data."""

    def test_php_stats_overview(self, populated_conn):
        """Stat versions should be ranked and labeled."""
        overview = php_stats_overview(populated_conn, "acme/foo", today=date(2021, 6, 1))
        assert overview["versions"] == [
            {"label": "All", "version": "all", "depth": "package"},
            {"label": "dev-main", "version": "dev-main", "depth": "exact"},
            {"label": "1.*", "version": "1", "depth": "major"},
            {"label": "1.1.*", "version": "1.1", "depth": "minor"},
        ]
        assert overview["date"] == "2021-05-18"
        assert overview["average"] == "daily"

    def test_stats_overview(self, populated_conn):
        """Versions should list the default branch first, then newest first."""
        overview = stats_overview(populated_conn, "acme/foo", today=TODAY)
        assert overview["versions"] == ["dev-main", "2.0.0", "1.1.0", "1.0.0"]
        assert overview["major_versions"] == ["all", "2", "1"]
        assert overview["expanded"] == "major/all"
        assert overview["date"] == "2020-01-01"
        assert overview["average"] == "daily"
        assert overview["downloads"] == {
            "last_day": 0,
            "last_week": 3,
            "last_month": 8,
            "total": 8,
        }

    def test_stats_overview_dev_only(self, db_conn):
        """A package with only dev versions should expand its first version."""
        add_package(db_conn, "acme/bar", "2020-01-01")
        package_id = get_package(db_conn, "acme/bar")["id"]
        add_version(db_conn, package_id, "dev-main", development=True, default_branch=True)

        overview = stats_overview(db_conn, "acme/bar", today=TODAY)
        assert overview["major_versions"] == []
        assert overview["expanded"] == "dev-main"

    def test_package_downloads(self, populated_conn):
        """Totals should be reported for the package and each version."""
        summary = package_downloads(populated_conn, "acme/foo", today=TODAY)
        assert summary["name"] == "acme/foo"
        assert summary["total"]["total"] == 8
        assert list(summary["versions"]) == ["dev-main", "2.0.0", "1.1.0", "1.0.0"]
        assert summary["versions"]["1.1.0"] == {
            "last_day": 0,
            "last_week": 2,
            "last_month": 4,
            "total": 4,
        }
        assert summary["versions"]["dev-main"]["last_week"] == 0
        assert summary["versions"]["dev-main"]["last_month"] == 100

    def test_package_downloads_storage_error(self, populated_conn):
        """Totals that cannot be read should be None."""
        with patch(
            "pkgstats.service.get_download_data",
            side_effect=sqlite3.OperationalError("database is locked"),
        ):
            summary = package_downloads(populated_conn, "acme/foo", today=TODAY)
        assert summary["total"] is None
        assert all(stats is None for stats in summary["versions"].values())

    def test_unknown_package(self, populated_conn):
        """Overviews of unknown packages should not be found."""
        with pytest.raises(NotFoundError):
            stats_overview(populated_conn, "acme/missing")
        with pytest.raises(NotFoundError):
            php_stats_overview(populated_conn, "acme/missing")
