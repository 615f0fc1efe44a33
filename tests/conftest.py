"""Shared fixtures for pkgstats tests."""

import pytest

from pkgstats.db import (
    add_package,
    add_version,
    get_db_connection,
    get_package,
    init_db,
    merge_download_data,
    merge_php_stat_data,
)
from pkgstats.types import DownloadType, StatType


@pytest.fixture
def temp_db(tmp_path):
    """Path of a temporary database file."""
    return str(tmp_path / "stats.db")


@pytest.fixture
def db_conn(temp_db):
    """Create an initialized database connection."""
    conn = get_db_connection(temp_db)
    init_db(conn)
    yield conn
    conn.close()


@pytest.fixture
def populated_conn(db_conn):
    """Database with one package, four versions and PHP usage stats.

    acme/foo was created 2020-01-01. Versions: 1.0.0, 1.1.0, 2.0.0 and the
    development default branch dev-main.
    """
    add_package(db_conn, "acme/foo", "2020-01-01")
    package = get_package(db_conn, "acme/foo")
    package_id = package["id"]

    merge_download_data(
        db_conn,
        DownloadType.PACKAGE,
        package_id,
        package_id,
        {"20200101": 5, "20200102": 0, "20200103": 3},
    )

    versions = [
        ("1.0.0", "1.0.0.0", False, False, {"20200101": 1, "20200102": 1, "20200103": 1}),
        ("1.1.0", "1.1.0.0", False, False, {"20200102": 2, "20200103": 2}),
        ("2.0.0", "2.0.0.0", False, False, {"20200103": 4}),
        ("dev-main", "dev-main", True, True, {"20200101": 100}),
    ]
    for version, normalized, development, default_branch, data in versions:
        version_id = add_version(
            db_conn,
            package_id,
            version,
            normalized_version=normalized,
            released_at="2020-01-01",
            development=development,
            default_branch=default_branch,
        )
        merge_download_data(db_conn, DownloadType.VERSION, version_id, package_id, data)

    merge_php_stat_data(
        db_conn,
        package_id,
        StatType.PHP,
        "",
        {
            "8.1": {"20200101": 2, "20200102": 2},
            "7.4": {"20200101": 1},
            "hhvm": {"20200102": 1},
            "5.6": {},
        },
    )
    merge_php_stat_data(db_conn, package_id, StatType.PHP, "1", {"8.1": {"20200101": 1}})
    merge_php_stat_data(db_conn, package_id, StatType.PHP, "1.1", {"8.1": {"20200101": 1}})
    merge_php_stat_data(
        db_conn, package_id, StatType.PLATFORM, "dev-main", {"8.2": {"20200101": 3}}
    )

    return db_conn
