"""SQLite storage for packages, versions and raw daily counters."""

import json
import sqlite3
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime

from .config import DEFAULT_DB_FILE
from .php import classify_depth
from .types import (
    Depth,
    DownloadType,
    PackageRecord,
    PhpStatRecord,
    PhpStatVersion,
    RawCounterSeries,
    StatType,
    VersionRecord,
    VersionSeriesRow,
)


def get_db_connection(db_path: str) -> sqlite3.Connection:
    """Create and return a database connection."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db(conn: sqlite3.Connection) -> None:
    """Initialize the database schema."""
    conn.execute("""
        CREATE TABLE IF NOT EXISTS packages (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE,
            created_at TEXT NOT NULL,
            added_date TEXT NOT NULL
        )
    """)
    conn.execute("""
        CREATE TABLE IF NOT EXISTS versions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            package_id INTEGER NOT NULL REFERENCES packages(id) ON DELETE CASCADE,
            version TEXT NOT NULL,
            normalized_version TEXT NOT NULL,
            development INTEGER NOT NULL DEFAULT 0,
            default_branch INTEGER NOT NULL DEFAULT 0,
            released_at TEXT,
            UNIQUE(package_id, normalized_version)
        )
    """)
    conn.execute("""
        CREATE TABLE IF NOT EXISTS downloads (
            id INTEGER NOT NULL,
            type INTEGER NOT NULL,
            package_id INTEGER NOT NULL,
            data TEXT NOT NULL,
            last_updated TEXT NOT NULL,
            PRIMARY KEY(id, type)
        )
    """)
    conn.execute("""
        CREATE TABLE IF NOT EXISTS php_stats (
            package_id INTEGER NOT NULL,
            type INTEGER NOT NULL,
            version TEXT NOT NULL,
            depth INTEGER NOT NULL,
            data TEXT NOT NULL,
            last_updated TEXT NOT NULL,
            PRIMARY KEY(package_id, type, version)
        )
    """)
    conn.execute("""
        CREATE INDEX IF NOT EXISTS idx_downloads_package
        ON downloads(package_id)
    """)
    conn.execute("""
        CREATE INDEX IF NOT EXISTS idx_php_stats_depth
        ON php_stats(depth)
    """)
    conn.commit()


@contextmanager
def get_db(db_path: str = DEFAULT_DB_FILE) -> Iterator[sqlite3.Connection]:
    """Open an initialized database connection, closing it afterwards."""
    conn = get_db_connection(db_path)
    try:
        init_db(conn)
        yield conn
    finally:
        conn.close()


def _now() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


# -----------------------------------------------------------------------------
# Packages and Versions
# -----------------------------------------------------------------------------


def add_package(
    conn: sqlite3.Connection, name: str, created_at: str | None = None
) -> bool:
    """Add a package to the database.

    Returns True if package was added, False if it already exists.
    """
    added_date = datetime.now().strftime("%Y-%m-%d")
    try:
        conn.execute(
            "INSERT INTO packages (name, created_at, added_date) VALUES (?, ?, ?)",
            (name, created_at or added_date, added_date),
        )
        conn.commit()
        return True
    except sqlite3.IntegrityError:
        return False


def remove_package(conn: sqlite3.Connection, name: str) -> bool:
    """Remove a package with its versions and every stored counter.

    Returns True if package was removed, False if it didn't exist.
    """
    package = get_package(conn, name)
    if package is None:
        return False

    conn.execute("DELETE FROM downloads WHERE package_id = ?", (package["id"],))
    conn.execute("DELETE FROM php_stats WHERE package_id = ?", (package["id"],))
    conn.execute("DELETE FROM versions WHERE package_id = ?", (package["id"],))
    conn.execute("DELETE FROM packages WHERE id = ?", (package["id"],))
    conn.commit()
    return True


def _package_record(row: sqlite3.Row) -> PackageRecord:
    return {
        "id": row["id"],
        "name": row["name"],
        "created_at": row["created_at"],
        "added_date": row["added_date"],
    }


def get_package(conn: sqlite3.Connection, name: str) -> PackageRecord | None:
    """Get a package row by name."""
    row = conn.execute(
        "SELECT id, name, created_at, added_date FROM packages WHERE name = ?",
        (name,),
    ).fetchone()
    if row is None:
        return None
    return _package_record(row)


def get_package_records(conn: sqlite3.Connection) -> list[PackageRecord]:
    """Get all package rows, sorted by name."""
    cursor = conn.execute(
        "SELECT id, name, created_at, added_date FROM packages ORDER BY name"
    )
    return [_package_record(row) for row in cursor.fetchall()]


def _version_record(row: sqlite3.Row) -> VersionRecord:
    return {
        "id": row["id"],
        "package_id": row["package_id"],
        "version": row["version"],
        "normalized_version": row["normalized_version"],
        "development": bool(row["development"]),
        "default_branch": bool(row["default_branch"]),
        "released_at": row["released_at"],
    }


def add_version(
    conn: sqlite3.Connection,
    package_id: int,
    version: str,
    normalized_version: str | None = None,
    released_at: str | None = None,
    development: bool = False,
    default_branch: bool = False,
) -> int:
    """Add (or update) a version of a package.

    Only one version per package can be the default branch.

    Returns:
        The version id.
    """
    normalized_version = normalized_version or version
    if default_branch:
        conn.execute(
            "UPDATE versions SET default_branch = 0 WHERE package_id = ?",
            (package_id,),
        )
    conn.execute(
        """
        INSERT INTO versions
        (package_id, version, normalized_version, development, default_branch, released_at)
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT(package_id, normalized_version) DO UPDATE SET
            version = excluded.version,
            development = excluded.development,
            default_branch = excluded.default_branch,
            released_at = excluded.released_at
        """,
        (
            package_id,
            version,
            normalized_version,
            int(development),
            int(default_branch),
            released_at,
        ),
    )
    conn.commit()
    row = conn.execute(
        "SELECT id FROM versions WHERE package_id = ? AND normalized_version = ?",
        (package_id, normalized_version),
    ).fetchone()
    return int(row["id"])


def remove_version(conn: sqlite3.Connection, version_id: int) -> bool:
    """Remove a version and its download counters."""
    conn.execute(
        "DELETE FROM downloads WHERE id = ? AND type = ?",
        (version_id, int(DownloadType.VERSION)),
    )
    cursor = conn.execute("DELETE FROM versions WHERE id = ?", (version_id,))
    conn.commit()
    return cursor.rowcount > 0


def get_versions(conn: sqlite3.Connection, package_id: int) -> list[VersionRecord]:
    """Get all versions of a package."""
    cursor = conn.execute(
        "SELECT * FROM versions WHERE package_id = ? ORDER BY id",
        (package_id,),
    )
    return [_version_record(row) for row in cursor.fetchall()]


def find_version(
    conn: sqlite3.Connection, package_id: int, version: str
) -> VersionRecord | None:
    """Find a version by its pretty or normalized version string."""
    row = conn.execute(
        """
        SELECT * FROM versions
        WHERE package_id = ? AND (normalized_version = ? OR version = ?)
        ORDER BY normalized_version = ? DESC
        LIMIT 1
        """,
        (package_id, version, version, version),
    ).fetchone()
    return _version_record(row) if row else None


def get_default_branch_version(
    conn: sqlite3.Connection, package_id: int
) -> str | None:
    """Normalized version of the package's default branch."""
    row = conn.execute(
        "SELECT normalized_version FROM versions WHERE package_id = ? AND default_branch = 1",
        (package_id,),
    ).fetchone()
    return row["normalized_version"] if row else None


# -----------------------------------------------------------------------------
# Download Counters
# -----------------------------------------------------------------------------


def _load_json(raw: str | None) -> dict:
    return json.loads(raw) if raw else {}


def get_download_data(
    conn: sqlite3.Connection, download_type: DownloadType, owner_id: int
) -> RawCounterSeries:
    """Get the raw daily download series of a package or version.

    Returns an empty dict if nothing was recorded.
    """
    row = conn.execute(
        "SELECT data FROM downloads WHERE id = ? AND type = ?",
        (owner_id, int(download_type)),
    ).fetchone()
    return _load_json(row["data"]) if row else {}


def merge_download_data(
    conn: sqlite3.Connection,
    download_type: DownloadType,
    owner_id: int,
    package_id: int,
    points: Mapping[str, int],
) -> None:
    """Add daily counts to a raw download series."""
    data = get_download_data(conn, download_type, owner_id)
    for day, count in points.items():
        data[day] = data.get(day, 0) + int(count)

    conn.execute(
        """
        INSERT OR REPLACE INTO downloads (id, type, package_id, data, last_updated)
        VALUES (?, ?, ?, ?, ?)
        """,
        (owner_id, int(download_type), package_id, json.dumps(data), _now()),
    )
    conn.commit()


def get_version_series_rows(
    conn: sqlite3.Connection, package_id: int
) -> list[VersionSeriesRow]:
    """Raw download series of all non-development versions of a package."""
    cursor = conn.execute(
        """
        SELECT v.normalized_version, d.data
        FROM versions v
        INNER JOIN downloads d ON d.id = v.id AND d.type = ?
        WHERE v.package_id = ? AND v.development = 0
        ORDER BY v.id
        """,
        (int(DownloadType.VERSION), package_id),
    )
    return [
        {"normalized_version": row["normalized_version"], "data": _load_json(row["data"])}
        for row in cursor.fetchall()
    ]


# -----------------------------------------------------------------------------
# PHP Usage Counters
# -----------------------------------------------------------------------------


def merge_php_stat_data(
    conn: sqlite3.Connection,
    package_id: int,
    stat_type: StatType,
    version: str,
    points: Mapping[str, Mapping[str, int]],
) -> None:
    """Add daily counts to a PHP usage stat row.

    Args:
        points: PHP (or platform) version mapped to day-key counts.
    """
    existing = get_php_stat(conn, package_id, stat_type, version)
    data = existing["data"] if existing else {}
    for php_version, days in points.items():
        series = data.setdefault(php_version, {})
        for day, count in days.items():
            series[day] = series.get(day, 0) + int(count)

    conn.execute(
        """
        INSERT OR REPLACE INTO php_stats
        (package_id, type, version, depth, data, last_updated)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (
            package_id,
            int(stat_type),
            version,
            int(classify_depth(version)),
            json.dumps(data),
            _now(),
        ),
    )
    conn.commit()


def get_php_stat(
    conn: sqlite3.Connection, package_id: int, stat_type: StatType, version: str
) -> PhpStatRecord | None:
    """Get a PHP usage stat row."""
    row = conn.execute(
        "SELECT * FROM php_stats WHERE package_id = ? AND type = ? AND version = ?",
        (package_id, int(stat_type), version),
    ).fetchone()
    if row is None:
        return None
    record: PhpStatRecord = {
        "package_id": row["package_id"],
        "type": StatType(row["type"]),
        "version": row["version"],
        "depth": Depth(row["depth"]),
        "data": _load_json(row["data"]),
        "last_updated": row["last_updated"],
    }
    return record


def get_php_stat_versions(
    conn: sqlite3.Connection, package_id: int
) -> list[PhpStatVersion]:
    """Distinct version keys (with depth) having PHP usage stats."""
    cursor = conn.execute(
        "SELECT DISTINCT version, depth FROM php_stats WHERE package_id = ?",
        (package_id,),
    )
    return [
        {"version": row["version"], "depth": Depth(row["depth"])}
        for row in cursor.fetchall()
    ]
