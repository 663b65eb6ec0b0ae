"""A single entry point over the available cache backends.

The SQLite backend keeps cached assets, the gem catalog and gem metadata on
its own connection and quarantine tracking in a version store that shares
that connection. ``CacheBackend`` presents both as one interface.
"""

from __future__ import annotations

from typing import Any

from .sqlite import SqliteCacheBackend

_INDEX_OPERATIONS = frozenset(
    {
        "get",
        "insert_or_replace",
        "get_all_gems",
        "stats",
        "catalog_upsert_names",
        "catalog_total",
        "catalog_page",
        "catalog_meta_get",
        "catalog_meta_set",
        "upsert_metadata",
        "gem_metadata",
        "sbom_coverage",
        "catalog_languages",
        "catalog_page_by_language",
        "catalog_total_by_language",
    }
)

_QUARANTINE_OPERATIONS = frozenset(
    {
        "get_gem_version",
        "upsert_gem_version",
        "get_latest_available_version",
        "get_quarantined_versions",
        "update_version_status",
        "promote_expired_quarantines",
        "mark_yanked",
        "get_all_quarantined",
        "quarantine_stats",
        "get_gem_versions_for_index",
        "quarantine_table_exists",
        "run_quarantine_migrations",
    }
)


class CacheBackend:
    """The cache operations of a concrete backend behind one interface.

    Index and catalog operations go to the backend itself; quarantine
    operations go to its version store. Only the shared operations are
    exposed. Used as a context manager, the backend is closed on exit.
    """

    __slots__ = ("_backend",)

    def __init__(self, backend: SqliteCacheBackend) -> None:
        if not isinstance(backend, SqliteCacheBackend):
            raise TypeError(f"unsupported cache backend {type(backend).__name__}")
        self._backend = backend

    def __getattr__(self, name: str) -> Any:
        if name in _INDEX_OPERATIONS:
            return getattr(self._backend, name)
        if name in _QUARANTINE_OPERATIONS:
            return getattr(self._backend.versions, name)
        raise AttributeError(f"{type(self).__name__!s} has no operation {name!r}")

    def __dir__(self) -> list[str]:
        return sorted(set(super().__dir__()) | _INDEX_OPERATIONS | _QUARANTINE_OPERATIONS)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._backend!r})"

    def __enter__(self) -> CacheBackend:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self._backend.close()