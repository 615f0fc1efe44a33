"""Tests for database operations."""

from pkgstats.db import (
    add_package,
    add_version,
    find_version,
    get_db,
    get_default_branch_version,
    get_download_data,
    get_package,
    get_package_records,
    get_php_stat,
    get_php_stat_versions,
    get_version_series_rows,
    get_versions,
    merge_download_data,
    merge_php_stat_data,
    remove_package,
    remove_version,
)
from pkgstats.types import Depth, DownloadType, StatType


class TestDatabase:
    """Tests for schema creation and package rows."""

    def test_init_creates_tables(self, db_conn):
        """init_db should create every table."""
        cursor = db_conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        tables = {row["name"] for row in cursor.fetchall()}
        assert {"packages", "versions", "downloads", "php_stats"} <= tables

    def test_get_db_context_manager(self, temp_db):
        """get_db should yield an initialized connection."""
        with get_db(temp_db) as conn:
            assert add_package(conn, "acme/foo", "2020-01-01")
        with get_db(temp_db) as conn:
            assert [p["name"] for p in get_package_records(conn)] == ["acme/foo"]

    def test_add_package(self, db_conn):
        """add_package should store the creation date."""
        assert add_package(db_conn, "acme/foo", "2020-01-01") is True
        package = get_package(db_conn, "acme/foo")
        assert package["name"] == "acme/foo"
        assert package["created_at"] == "2020-01-01"

    def test_add_package_defaults_created_to_today(self, db_conn):
        """Without a creation date the added date should be used."""
        add_package(db_conn, "acme/foo")
        package = get_package(db_conn, "acme/foo")
        assert package["created_at"] == package["added_date"]

    def test_add_duplicate_package(self, db_conn):
        """Adding an existing package should return False."""
        add_package(db_conn, "acme/foo")
        assert add_package(db_conn, "acme/foo") is False

    def test_get_package_records_sorted(self, db_conn):
        """Package rows should be returned sorted by name with their dates."""
        add_package(db_conn, "zeta/pkg", "2021-03-04")
        add_package(db_conn, "acme/foo", "2020-01-01")
        records = get_package_records(db_conn)
        assert [p["name"] for p in records] == ["acme/foo", "zeta/pkg"]
        assert [p["created_at"] for p in records] == ["2020-01-01", "2021-03-04"]
        assert records[0] == get_package(db_conn, "acme/foo")

    def test_get_missing_package(self, db_conn):
        """An unknown package should be None."""
        assert get_package(db_conn, "acme/missing") is None

    def test_remove_package_clears_everything(self, populated_conn):
        """Removing a package should delete its versions and counters."""
        package_id = get_package(populated_conn, "acme/foo")["id"]
        assert remove_package(populated_conn, "acme/foo") is True
        assert get_package(populated_conn, "acme/foo") is None
        assert get_versions(populated_conn, package_id) == []
        assert get_download_data(populated_conn, DownloadType.PACKAGE, package_id) == {}
        assert get_php_stat_versions(populated_conn, package_id) == []

    def test_remove_missing_package(self, db_conn):
        """Removing an unknown package should return False."""
        assert remove_package(db_conn, "acme/missing") is False


class TestVersions:
    """Tests for version rows."""

    def test_add_and_find(self, db_conn):
        """Versions should be found by pretty or normalized version."""
        add_package(db_conn, "acme/foo", "2020-01-01")
        package_id = get_package(db_conn, "acme/foo")["id"]
        version_id = add_version(db_conn, package_id, "1.2.0", "1.2.0.0", "2020-02-01")

        assert find_version(db_conn, package_id, "1.2.0")["id"] == version_id
        assert find_version(db_conn, package_id, "1.2.0.0")["id"] == version_id
        assert find_version(db_conn, package_id, "9.9.9") is None

    def test_normalized_defaults_to_version(self, db_conn):
        """Without a normalized version the version string should be used."""
        add_package(db_conn, "acme/foo")
        package_id = get_package(db_conn, "acme/foo")["id"]
        add_version(db_conn, package_id, "dev-main", development=True)
        version = get_versions(db_conn, package_id)[0]
        assert version["normalized_version"] == "dev-main"
        assert version["development"] is True
        assert version["released_at"] is None

    def test_add_version_upserts(self, db_conn):
        """Adding the same normalized version should update the row."""
        add_package(db_conn, "acme/foo")
        package_id = get_package(db_conn, "acme/foo")["id"]
        first = add_version(db_conn, package_id, "1.0", "1.0.0.0")
        second = add_version(db_conn, package_id, "1.0.0", "1.0.0.0", "2020-03-03")
        assert first == second
        versions = get_versions(db_conn, package_id)
        assert len(versions) == 1
        assert versions[0]["version"] == "1.0.0"
        assert versions[0]["released_at"] == "2020-03-03"

    def test_single_default_branch(self, db_conn):
        """Only the latest default branch should be kept."""
        add_package(db_conn, "acme/foo")
        package_id = get_package(db_conn, "acme/foo")["id"]
        add_version(db_conn, package_id, "dev-master", default_branch=True)
        add_version(db_conn, package_id, "dev-main", default_branch=True)
        assert get_default_branch_version(db_conn, package_id) == "dev-main"
        flags = [v["default_branch"] for v in get_versions(db_conn, package_id)]
        assert flags == [False, True]

    def test_no_default_branch(self, db_conn):
        """A package without default branch should return None."""
        add_package(db_conn, "acme/foo")
        package_id = get_package(db_conn, "acme/foo")["id"]
        assert get_default_branch_version(db_conn, package_id) is None

    def test_remove_version(self, populated_conn):
        """Removing a version should delete its counters."""
        package_id = get_package(populated_conn, "acme/foo")["id"]
        version = find_version(populated_conn, package_id, "2.0.0")
        assert remove_version(populated_conn, version["id"]) is True
        assert find_version(populated_conn, package_id, "2.0.0") is None
        assert get_download_data(populated_conn, DownloadType.VERSION, version["id"]) == {}
        assert remove_version(populated_conn, version["id"]) is False


class TestDownloadCounters:
    """Tests for raw download series."""

    def test_missing_series_is_empty(self, db_conn):
        """A series that was never recorded should be empty."""
        assert get_download_data(db_conn, DownloadType.PACKAGE, 42) == {}

    def test_merge_adds_counts(self, db_conn):
        """Merging should add to existing day counts."""
        merge_download_data(db_conn, DownloadType.PACKAGE, 1, 1, {"20200101": 2})
        merge_download_data(
            db_conn, DownloadType.PACKAGE, 1, 1, {"20200101": 3, "20200102": 1}
        )
        assert get_download_data(db_conn, DownloadType.PACKAGE, 1) == {
            "20200101": 5,
            "20200102": 1,
        }

    def test_types_are_separate(self, db_conn):
        """Package and version series with the same id should not mix."""
        merge_download_data(db_conn, DownloadType.PACKAGE, 1, 1, {"20200101": 2})
        merge_download_data(db_conn, DownloadType.VERSION, 1, 1, {"20200101": 7})
        assert get_download_data(db_conn, DownloadType.PACKAGE, 1) == {"20200101": 2}
        assert get_download_data(db_conn, DownloadType.VERSION, 1) == {"20200101": 7}

    def test_version_series_rows_skip_development(self, populated_conn):
        """Development versions should be excluded from version series."""
        package_id = get_package(populated_conn, "acme/foo")["id"]
        rows = get_version_series_rows(populated_conn, package_id)
        assert [row["normalized_version"] for row in rows] == [
            "1.0.0.0",
            "1.1.0.0",
            "2.0.0.0",
        ]
        assert rows[2]["data"] == {"20200103": 4}


class TestPhpStats:
    """Tests for PHP usage stat rows."""

    def test_merge_and_get(self, db_conn):
        """Stat rows should store depth and merged counts."""
        merge_php_stat_data(db_conn, 1, StatType.PHP, "3.1", {"8.1": {"20220101": 2}})
        merge_php_stat_data(
            db_conn, 1, StatType.PHP, "3.1", {"8.1": {"20220101": 1}, "8.2": {"20220101": 4}}
        )
        row = get_php_stat(db_conn, 1, StatType.PHP, "3.1")
        assert row["depth"] is Depth.MINOR
        assert row["type"] is StatType.PHP
        assert row["data"] == {"8.1": {"20220101": 3}, "8.2": {"20220101": 4}}

    def test_types_are_separate(self, db_conn):
        """PHP and platform rows should be stored apart."""
        merge_php_stat_data(db_conn, 1, StatType.PLATFORM, "", {"8.1": {"20220101": 2}})
        assert get_php_stat(db_conn, 1, StatType.PHP, "") is None
        assert get_php_stat(db_conn, 1, StatType.PLATFORM, "")["depth"] is Depth.PACKAGE

    def test_versions_are_distinct(self, populated_conn):
        """Stat versions should be listed once across both types."""
        package_id = get_package(populated_conn, "acme/foo")["id"]
        merge_php_stat_data(
            populated_conn, package_id, StatType.PLATFORM, "", {"8.1": {"20200101": 1}}
        )
        versions = get_php_stat_versions(populated_conn, package_id)
        assert sorted(v["version"] for v in versions) == ["", "1", "1.1", "dev-main"]
        depths = {v["version"]: v["depth"] for v in versions}
        assert depths["dev-main"] is Depth.EXACT
