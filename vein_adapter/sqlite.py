"""SQLite-backed cache index: cached assets, gem catalog and gem metadata."""

from __future__ import annotations

import os
import sqlite3
from collections.abc import Iterable
from pathlib import Path

from .models import CachedAssetRow, DbGemMetadataRow
from .serialization import hydrate_metadata_row, parse_language_rows, prepare_metadata_strings
from .sqlite_versions import SqliteVersionStore
from .types import AssetKey, CachedAsset, GemMetadata, IndexStats, SbomCoverage

_NOW_SQL = "strftime('%Y-%m-%dT%H:%M:%fZ','now')"

_SCHEMA = (
    f"""
    CREATE TABLE IF NOT EXISTS cached_assets (
        kind TEXT NOT NULL,
        name TEXT NOT NULL,
        version TEXT NOT NULL,
        platform TEXT,
        path TEXT NOT NULL,
        sha256 TEXT NOT NULL,
        size_bytes INTEGER NOT NULL,
        last_accessed TIMESTAMP DEFAULT ({_NOW_SQL}),
        PRIMARY KEY (kind, name, version, platform)
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS catalog_gems (
        name TEXT PRIMARY KEY,
        latest_version TEXT,
        synced_at TIMESTAMP DEFAULT ({_NOW_SQL})
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS catalog_meta (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS gem_metadata (
        name TEXT NOT NULL,
        version TEXT NOT NULL,
        platform TEXT,
        summary TEXT,
        description TEXT,
        licenses TEXT,
        authors TEXT,
        emails TEXT,
        homepage TEXT,
        documentation_url TEXT,
        changelog_url TEXT,
        source_code_url TEXT,
        bug_tracker_url TEXT,
        wiki_url TEXT,
        funding_url TEXT,
        metadata_json TEXT,
        dependencies_json TEXT NOT NULL,
        executables_json TEXT,
        extensions_json TEXT,
        native_languages_json TEXT,
        has_native_extensions INTEGER NOT NULL,
        has_embedded_binaries INTEGER NOT NULL,
        required_ruby_version TEXT,
        required_rubygems_version TEXT,
        rubygems_version TEXT,
        specification_version INTEGER,
        built_at TEXT,
        size_bytes INTEGER,
        sha256 TEXT,
        sbom_json TEXT,
        PRIMARY KEY (name, version, platform)
    )
    """,
)

_METADATA_COLUMNS = (
    "name",
    "version",
    "platform",
    "summary",
    "description",
    "licenses",
    "authors",
    "emails",
    "homepage",
    "documentation_url",
    "changelog_url",
    "source_code_url",
    "bug_tracker_url",
    "wiki_url",
    "funding_url",
    "metadata_json",
    "dependencies_json",
    "executables_json",
    "extensions_json",
    "native_languages_json",
    "has_native_extensions",
    "has_embedded_binaries",
    "required_ruby_version",
    "required_rubygems_version",
    "rubygems_version",
    "specification_version",
    "built_at",
    "size_bytes",
    "sha256",
    "sbom_json",
)
_METADATA_KEY = ("name", "version", "platform")
_METADATA_VALUES = tuple(c for c in _METADATA_COLUMNS if c not in _METADATA_KEY)

_METADATA_UPDATE = (
    "UPDATE gem_metadata SET "
    + ", ".join(f"{column} = :{column}" for column in _METADATA_VALUES)
    + " WHERE name = :name AND version = :version AND platform IS :platform"
)
_METADATA_INSERT = (
    "INSERT INTO gem_metadata("
    + ", ".join(_METADATA_COLUMNS)
    + ") VALUES ("
    + ", ".join(f":{column}" for column in _METADATA_COLUMNS)
    + ")"
)
_METADATA_SELECT = (
    "SELECT "
    + ", ".join(_METADATA_COLUMNS)
    + " FROM gem_metadata"
    + " WHERE name = ?1 AND version = ?2"
    + " AND ((platform IS NULL AND ?3 IS NULL) OR platform = ?3)"
)

_SBOM_COVERAGE = """
    SELECT
        COUNT(*) AS total,
        COALESCE(
            SUM(CASE WHEN sbom_json IS NOT NULL AND sbom_json <> ''
                THEN 1 ELSE 0 END),
            0
        ) AS with_sbom
    FROM gem_metadata
"""


def _language_pattern(language: str) -> str:
    return f'%"{language}"%'


class SqliteCacheBackend:
    """Cache index stored in a SQLite database.

    Usable as a context manager; the connection is closed on exit.
    """

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._connection = connection
        self._versions = SqliteVersionStore(connection)
        self._init_schema()

    @classmethod
    def connect(cls, path: str | os.PathLike[str]) -> SqliteCacheBackend:
        """Open (creating if needed) the database file at ``path``."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        return cls(sqlite3.connect(path, check_same_thread=False))

    @classmethod
    def connect_memory(cls) -> SqliteCacheBackend:
        """Open a fresh in-memory database."""
        return cls(sqlite3.connect(":memory:", check_same_thread=False))

    @property
    def connection(self) -> sqlite3.Connection:
        return self._connection

    @property
    def versions(self) -> SqliteVersionStore:
        """The quarantine version store sharing this connection."""
        return self._versions

    def close(self) -> None:
        """Close the database connection."""
        self._connection.close()

    def __enter__(self) -> SqliteCacheBackend:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _init_schema(self) -> None:
        with self._connection:
            for statement in _SCHEMA:
                self._connection.execute(statement)

    def _touch(self, key: AssetKey) -> None:
        with self._connection:
            self._connection.execute(
                f"""
                UPDATE cached_assets
                SET last_accessed = {_NOW_SQL}
                WHERE kind = ?1 AND name = ?2 AND version = ?3 AND
                      ((platform IS NULL AND ?4 IS NULL) OR platform = ?4)
                """,
                (key.kind.value, key.name, key.version, key.platform),
            )

    # ---- cached assets -------------------------------------------------

    def get(self, key: AssetKey) -> CachedAsset | None:
        """Look up a cached asset, refreshing its access time when found."""
        row = self._connection.execute(
            """
            SELECT path, sha256, size_bytes, last_accessed
            FROM cached_assets
            WHERE kind = ?1 AND name = ?2 AND version = ?3 AND
                  ((platform IS NULL AND ?4 IS NULL) OR platform = ?4)
            """,
            (key.kind.value, key.name, key.version, key.platform),
        ).fetchone()
        if row is None:
            return None
        self._touch(key)
        path, sha256, size_bytes, last_accessed = row
        return CachedAssetRow(
            path=path, sha256=sha256, size_bytes=size_bytes, last_accessed=last_accessed
        ).to_asset()

    def insert_or_replace(self, key: AssetKey, path: str, sha256: str, size_bytes: int) -> None:
        """Record a cached asset, replacing any entry with the same key."""
        with self._connection:
            cursor = self._connection.execute(
                f"""
                UPDATE cached_assets
                SET path = ?1, sha256 = ?2, size_bytes = ?3, last_accessed = {_NOW_SQL}
                WHERE kind = ?4 AND name = ?5 AND version = ?6 AND platform IS ?7
                """,
                (path, sha256, size_bytes, key.kind.value, key.name, key.version, key.platform),
            )
            if cursor.rowcount == 0:
                self._connection.execute(
                    f"""
                    INSERT INTO cached_assets(
                        kind, name, version, platform, path, sha256, size_bytes, last_accessed
                    )
                    VALUES (?1, ?2, ?3, ?4, ?5, ?6, ?7, {_NOW_SQL})
                    """,
                    (key.kind.value, key.name, key.version, key.platform, path, sha256, size_bytes),
                )

    def get_all_gems(self) -> list[tuple[str, str]]:
        """Return every distinct cached gem as (name, version), sorted."""
        rows = self._connection.execute(
            """
            SELECT DISTINCT name, version
            FROM cached_assets
            WHERE kind = 'gem'
            ORDER BY name, version
            """
        ).fetchall()
        return [(name, version) for name, version in rows]

    def _scalar(self, sql: str, params: tuple = ()) -> object:
        (value,) = self._connection.execute(sql, params).fetchone()
        return value

    def stats(self) -> IndexStats:
        """Aggregate counters over the cached asset index."""
        return IndexStats(
            total_assets=max(self._scalar("SELECT COUNT(*) FROM cached_assets"), 0),
            gem_assets=max(
                self._scalar("SELECT COUNT(*) FROM cached_assets WHERE kind = 'gem'"), 0
            ),
            spec_assets=max(
                self._scalar("SELECT COUNT(*) FROM cached_assets WHERE kind = 'gemspec'"), 0
            ),
            unique_gems=max(
                self._scalar("SELECT COUNT(DISTINCT name) FROM cached_assets WHERE kind = 'gem'"),
                0,
            ),
            total_size_bytes=max(
                self._scalar("SELECT COALESCE(SUM(size_bytes), 0) FROM cached_assets"), 0
            ),
            last_accessed=self._scalar("SELECT MAX(last_accessed) FROM cached_assets"),
        )

    # ---- catalog -------------------------------------------------------

    def catalog_upsert_names(self, names: Iterable[str]) -> None:
        """Insert catalog names, refreshing the sync time of existing ones."""
        names = list(names)
        if not names:
            return
        with self._connection:
            self._connection.executemany(
                f"""
                INSERT INTO catalog_gems(name, synced_at)
                VALUES(?1, {_NOW_SQL})
                ON CONFLICT(name) DO UPDATE SET synced_at = excluded.synced_at
                """,
                [(name,) for name in names],
            )

    def catalog_total(self) -> int:
        """Number of names in the catalog."""
        return max(self._scalar("SELECT COUNT(*) FROM catalog_gems"), 0)

    def catalog_page(self, offset: int, limit: int) -> list[str]:
        """A page of catalog names in alphabetical order."""
        rows = self._connection.execute(
            "SELECT name FROM catalog_gems ORDER BY name LIMIT ?1 OFFSET ?2",
            (limit, offset),
        ).fetchall()
        return [name for (name,) in rows]

    def catalog_meta_get(self, key: str) -> str | None:
        """Return a catalog metadata value, or None if unset."""
        row = self._connection.execute(
            "SELECT value FROM catalog_meta WHERE key = ?1", (key,)
        ).fetchone()
        return None if row is None else row[0]

    def catalog_meta_set(self, key: str, value: str) -> None:
        """Set a catalog metadata value."""
        with self._connection:
            self._connection.execute(
                """
                INSERT INTO catalog_meta(key, value)
                VALUES(?1, ?2)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (key, value),
            )

    # ---- gem metadata --------------------------------------------------

    def upsert_gem_metadata_record(self, metadata: GemMetadata) -> None:
        """Store gem metadata, replacing any record for the same gem version."""
        prepared = prepare_metadata_strings(metadata)
        values = {
            "name": metadata.name,
            "version": metadata.version,
            "platform": metadata.platform,
            "summary": metadata.summary,
            "description": metadata.description,
            "licenses": prepared.licenses_json,
            "authors": prepared.authors_json,
            "emails": prepared.emails_json,
            "homepage": metadata.homepage,
            "documentation_url": metadata.documentation_url,
            "changelog_url": metadata.changelog_url,
            "source_code_url": metadata.source_code_url,
            "bug_tracker_url": metadata.bug_tracker_url,
            "wiki_url": metadata.wiki_url,
            "funding_url": metadata.funding_url,
            "metadata_json": prepared.metadata_json,
            "dependencies_json": prepared.dependencies_json,
            "executables_json": prepared.executables_json,
            "extensions_json": prepared.extensions_json,
            "native_languages_json": prepared.native_languages_json,
            "has_native_extensions": bool(metadata.has_native_extensions),
            "has_embedded_binaries": bool(metadata.has_embedded_binaries),
            "required_ruby_version": metadata.required_ruby_version,
            "required_rubygems_version": metadata.required_rubygems_version,
            "rubygems_version": metadata.rubygems_version,
            "specification_version": metadata.specification_version,
            "built_at": metadata.built_at,
            "size_bytes": prepared.size_bytes,
            "sha256": metadata.sha256,
            "sbom_json": prepared.sbom_json,
        }
        with self._connection:
            cursor = self._connection.execute(_METADATA_UPDATE, values)
            if cursor.rowcount == 0:
                self._connection.execute(_METADATA_INSERT, values)

    def fetch_gem_metadata(
        self, name: str, version: str, platform: str | None
    ) -> GemMetadata | None:
        """Return stored metadata for a gem version, or None."""
        row = self._connection.execute(_METADATA_SELECT, (name, version, platform)).fetchone()
        if row is None:
            return None
        fields = dict(zip(_METADATA_COLUMNS, row))
        fields["has_native_extensions"] = bool(fields["has_native_extensions"])
        fields["has_embedded_binaries"] = bool(fields["has_embedded_binaries"])
        return hydrate_metadata_row(DbGemMetadataRow(**fields))

    def upsert_metadata(self, metadata: GemMetadata) -> None:
        """Store gem metadata."""
        self.upsert_gem_metadata_record(metadata)

    def gem_metadata(self, name: str, version: str, platform: str | None) -> GemMetadata | None:
        """Return stored metadata for a gem version, or None."""
        return self.fetch_gem_metadata(name, version, platform)

    def sbom_coverage_stats(self) -> SbomCoverage:
        """Count metadata rows and those carrying an SBOM."""
        total, with_sbom = self._connection.execute(_SBOM_COVERAGE).fetchone()
        return SbomCoverage(metadata_rows=max(total, 0), with_sbom=max(with_sbom, 0))

    def sbom_coverage(self) -> SbomCoverage:
        """Count metadata rows and those carrying an SBOM."""
        return self.sbom_coverage_stats()

    def catalog_languages(self) -> list[str]:
        """All native languages recorded in metadata, sorted and deduplicated."""
        rows = self._connection.execute(
            """
            SELECT native_languages_json
            FROM gem_metadata
            WHERE native_languages_json IS NOT NULL AND native_languages_json <> ''
            """
        ).fetchall()
        return parse_language_rows(value for (value,) in rows)

    def catalog_page_by_language(self, language: str, offset: int, limit: int) -> list[str]:
        """A page of gem names whose native languages include ``language``."""
        rows = self._connection.execute(
            """
            SELECT DISTINCT name
            FROM gem_metadata
            WHERE native_languages_json LIKE ?1
            ORDER BY name
            LIMIT ?2 OFFSET ?3
            """,
            (_language_pattern(language), limit, offset),
        ).fetchall()
        return [name for (name,) in rows]

    def catalog_total_by_language(self, language: str) -> int:
        """Number of gem names whose native languages include ``language``."""
        total = self._scalar(
            """
            SELECT COUNT(DISTINCT name)
            FROM gem_metadata
            WHERE native_languages_json LIKE ?1
            """,
            (_language_pattern(language),),
        )
        return max(total, 0)