"""Quarantine version tracking stored in SQLite."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone
from functools import cmp_to_key

import semver

from .models import GemVersionRow
from .quarantine import GemVersion, QuarantineStats, VersionStatus

_COLUMNS = (
    "id",
    "name",
    "version",
    "platform",
    "sha256",
    "published_at",
    "available_after",
    "status",
    "status_reason",
    "upstream_yanked",
    "created_at",
    "updated_at",
)

_SELECT = "SELECT " + ", ".join(_COLUMNS) + " FROM gem_versions"


def _timestamp(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _to_version(row: tuple) -> GemVersion:
    return GemVersionRow(**dict(zip(_COLUMNS, row))).to_gem_version()


def compare_versions(a: str, b: str) -> int:
    """Compare two version strings: semantic versions when both parse, text otherwise.

    Returns a negative number, zero or a positive number like a classic comparator.
    """
    try:
        return semver.Version.parse(a).compare(semver.Version.parse(b))
    except ValueError:
        return (a > b) - (a < b)


class SqliteVersionStore:
    """Reads and writes the gem_versions quarantine table of a SQLite database."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._connection = connection

    @property
    def connection(self) -> sqlite3.Connection:
        return self._connection

    def _fetch_all(self, sql: str, params: tuple = ()) -> list[GemVersion]:
        rows = self._connection.execute(sql, params).fetchall()
        return [_to_version(tuple(row)) for row in rows]

    def get_gem_version(
        self, name: str, version: str, platform: str | None
    ) -> GemVersion | None:
        """Return the tracked version, or None if it is unknown."""
        row = self._connection.execute(
            _SELECT
            + """
            WHERE name = ?1
              AND version = ?2
              AND ((platform IS NULL AND ?3 IS NULL) OR platform = ?3)
            """,
            (name, version, platform),
        ).fetchone()
        return None if row is None else _to_version(tuple(row))

    def upsert_gem_version(self, gem_version: GemVersion) -> None:
        """Insert a version or update the existing one with the same key."""
        with self._connection:
            self._connection.execute(
                """
                INSERT INTO gem_versions (
                    name, version, platform, sha256, published_at, available_after,
                    status, status_reason, upstream_yanked, created_at, updated_at
                ) VALUES (?1, ?2, ?3, ?4, ?5, ?6, ?7, ?8, ?9, ?10, ?11)
                ON CONFLICT (name, version, platform)
                DO UPDATE SET
                    sha256 = excluded.sha256,
                    published_at = excluded.published_at,
                    available_after = excluded.available_after,
                    status = excluded.status,
                    status_reason = excluded.status_reason,
                    upstream_yanked = excluded.upstream_yanked,
                    updated_at = excluded.updated_at
                """,
                (
                    gem_version.name,
                    gem_version.version,
                    gem_version.platform,
                    gem_version.sha256,
                    _timestamp(gem_version.published_at),
                    _timestamp(gem_version.available_after),
                    str(gem_version.status),
                    gem_version.status_reason,
                    bool(gem_version.upstream_yanked),
                    _timestamp(gem_version.created_at),
                    _timestamp(_now()),
                ),
            )

    def get_latest_available_version(
        self, name: str, platform: str | None, now: datetime
    ) -> GemVersion | None:
        """Return the highest version of ``name`` visible in the index at ``now``."""
        versions = self._fetch_all(
            _SELECT
            + """
            WHERE name = ?1
              AND ((platform IS NULL AND ?2 IS NULL) OR platform = ?2)
              AND upstream_yanked = 0
              AND (status = 'available' OR status = 'pinned'
                   OR (status = 'quarantine' AND available_after <= ?3))
            """,
            (name, platform, _timestamp(now)),
        )
        if not versions:
            return None
        key = cmp_to_key(compare_versions)
        return max(versions, key=lambda item: key(item.version))

    def get_quarantined_versions(self, name: str, now: datetime) -> list[GemVersion]:
        """Return versions of ``name`` still inside their quarantine at ``now``."""
        return self._fetch_all(
            _SELECT
            + """
            WHERE name = ?1
              AND status = 'quarantine'
              AND available_after > ?2
            ORDER BY version DESC
            """,
            (name, _timestamp(now)),
        )

    def update_version_status(
        self,
        name: str,
        version: str,
        platform: str | None,
        status: VersionStatus,
        reason: str | None,
    ) -> None:
        """Set the status and reason of one version."""
        with self._connection:
            self._connection.execute(
                """
                UPDATE gem_versions
                SET status = ?1, status_reason = ?2, updated_at = ?3
                WHERE name = ?4
                  AND version = ?5
                  AND ((platform IS NULL AND ?6 IS NULL) OR platform = ?6)
                """,
                (str(status), reason, _timestamp(_now()), name, version, platform),
            )

    def promote_expired_quarantines(self, now: datetime) -> int:
        """Mark every expired quarantine available; return how many were promoted."""
        now_str = _timestamp(now)
        with self._connection:
            cursor = self._connection.execute(
                """
                UPDATE gem_versions
                SET status = 'available', status_reason = 'auto-promoted', updated_at = ?1
                WHERE status = 'quarantine'
                  AND available_after <= ?2
                """,
                (now_str, now_str),
            )
        return max(cursor.rowcount, 0)

    def mark_yanked(self, name: str, version: str) -> None:
        """Mark every platform of a version as yanked upstream."""
        with self._connection:
            self._connection.execute(
                """
                UPDATE gem_versions
                SET status = 'yanked', upstream_yanked = 1, updated_at = ?1
                WHERE name = ?2 AND version = ?3
                """,
                (_timestamp(_now()), name, version),
            )

    def get_all_quarantined(self, limit: int, offset: int) -> list[GemVersion]:
        """Return a page of quarantined versions, soonest release first."""
        return self._fetch_all(
            _SELECT
            + """
            WHERE status = 'quarantine'
            ORDER BY available_after ASC
            LIMIT ?1 OFFSET ?2
            """,
            (limit, offset),
        )

    def quarantine_stats(self) -> QuarantineStats:
        """Count versions by status and those releasing within a day and a week."""
        now = _now()
        now_str = _timestamp(now)
        quarantined, available, yanked, pinned = self._connection.execute(
            """
            SELECT
                COALESCE(SUM(CASE WHEN status = 'quarantine' THEN 1 ELSE 0 END), 0),
                COALESCE(SUM(CASE WHEN status = 'available' THEN 1 ELSE 0 END), 0),
                COALESCE(SUM(CASE WHEN status = 'yanked' THEN 1 ELSE 0 END), 0),
                COALESCE(SUM(CASE WHEN status = 'pinned' THEN 1 ELSE 0 END), 0)
            FROM gem_versions
            """
        ).fetchone()

        def releasing_until(end: datetime) -> int:
            (count,) = self._connection.execute(
                """
                SELECT COUNT(*)
                FROM gem_versions
                WHERE status = 'quarantine'
                  AND available_after > ?1
                  AND available_after <= ?2
                """,
                (now_str, _timestamp(end)),
            ).fetchone()
            return max(count, 0)

        return QuarantineStats(
            total_quarantined=max(quarantined, 0),
            total_available=max(available, 0),
            total_yanked=max(yanked, 0),
            total_pinned=max(pinned, 0),
            versions_releasing_today=releasing_until(now + timedelta(days=1)),
            versions_releasing_this_week=releasing_until(now + timedelta(days=7)),
        )

    def get_gem_versions_for_index(self, name: str) -> list[GemVersion]:
        """Return every tracked version of ``name``."""
        return self._fetch_all(
            _SELECT + " WHERE name = ?1 ORDER BY version DESC",
            (name,),
        )

    def quarantine_table_exists(self) -> bool:
        """Whether the gem_versions table has been created."""
        (count,) = self._connection.execute(
            """
            SELECT COUNT(*)
            FROM sqlite_master
            WHERE type = 'table' AND name = 'gem_versions'
            """
        ).fetchone()
        return count > 0

    def run_quarantine_migrations(self) -> None:
        """Create the gem_versions table and its indexes if missing."""
        with self._connection:
            self._connection.execute(
                """
                CREATE TABLE IF NOT EXISTS gem_versions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    version TEXT NOT NULL,
                    platform TEXT,
                    sha256 TEXT,
                    published_at TEXT NOT NULL,
                    available_after TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'quarantine',
                    status_reason TEXT,
                    upstream_yanked INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE(name, version, platform)
                )
                """
            )
            self._connection.execute(
                "CREATE INDEX IF NOT EXISTS idx_gem_versions_name ON gem_versions(name)"
            )
            self._connection.execute(
                "CREATE INDEX IF NOT EXISTS idx_gem_versions_status ON gem_versions(status)"
            )
            self._connection.execute(
                "CREATE INDEX IF NOT EXISTS idx_gv_available ON gem_versions(available_after)"
            )