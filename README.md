# vein_adapter

Storage building blocks for a caching RubyGems mirror:

- an SQLite-backed index of cached gem and gemspec files, with catalog
  paging, per-gem metadata and SBOM coverage statistics;
- a quarantine model that holds newly published gem versions back from the
  index for a configurable delay, while still allowing direct downloads;
- filesystem storage that writes files atomically through a temporary file
  and a rename.

## Installation

```
pip install .
```

For the test suite:

```
pip install ".[test]"
pytest
```

## Cache index

```python
from vein_adapter.sqlite import SqliteCacheBackend
from vein_adapter.types import AssetKey, AssetKind

backend = SqliteCacheBackend.connect_memory()
key = AssetKey(kind=AssetKind.GEM, name="rails", version="7.0.0", platform=None)
backend.insert_or_replace(key, "/cache/rails-7.0.0.gem", "abc123def456", 1_024_000)

asset = backend.get(key)          # CachedAsset or None; refreshes last_accessed
print(asset.path, asset.size_bytes)

stats = backend.stats()           # IndexStats
print(stats.total_assets, stats.unique_gems, stats.total_size_bytes)
backend.close()
```

`SqliteCacheBackend.connect(path)` opens a database file instead, creating
its parent directory if needed; the tables are created on connection. The
backend is also a context manager that closes its connection on exit.

Catalog helpers: `catalog_upsert_names`, `catalog_page(offset, limit)`,
`catalog_total`, `catalog_meta_get` / `catalog_meta_set`, and, for gems
whose metadata lists native languages, `catalog_languages`,
`catalog_page_by_language` and `catalog_total_by_language`.

Gem metadata (`GemMetadata` in `vein_adapter.types`) is stored with
`upsert_metadata` and read back with `gem_metadata(name, version, platform)`;
`sbom_coverage()` counts metadata rows and how many carry an SBOM. The JSON
column encoding lives in `vein_adapter.serialization`; a stored column that
does not decode raises `MetadataDecodeError`.

## Quarantine

```python
from datetime import datetime, timezone
from vein_adapter.quarantine import DelayPolicy, calculate_availability

published = datetime(2025, 1, 9, 14, tzinfo=timezone.utc)   # a Thursday
policy = DelayPolicy()   # 3 days, skip weekends, release at 09:00 UTC
print(calculate_availability(published, policy))            # Monday 09:00 UTC
```

`is_version_available(gem_version, now)` says whether a version belongs in
the index; `is_version_downloadable(gem_version)` blocks only yanked
versions. `VersionStatus` has the members `QUARANTINE`, `AVAILABLE`,
`YANKED` and `PINNED`.

`SqliteVersionStore` in `vein_adapter.sqlite_versions` keeps `GemVersion`
records in a `gem_versions` table. Create it with
`run_quarantine_migrations()` before use. The store can then find the latest
available version (compared as semantic versions when both parse, as text
otherwise), promote expired quarantines, mark versions yanked and report
`QuarantineStats`. A `SqliteCacheBackend` exposes a store on its own
connection as `backend.versions`.

## One interface

`vein_adapter.backend.CacheBackend` wraps a `SqliteCacheBackend` and offers
the index, catalog, metadata and quarantine operations on a single object:

```python
from vein_adapter.backend import CacheBackend
from vein_adapter.sqlite import SqliteCacheBackend

with CacheBackend(SqliteCacheBackend.connect_memory()) as cache:
    cache.run_quarantine_migrations()
    print(cache.quarantine_table_exists())   # True
    print(cache.catalog_total())             # 0
```

## File storage

```python
from pathlib import Path
from vein_adapter.storage import FilesystemStorage

storage = FilesystemStorage(Path("/var/cache/gems"))
storage.prepare()

with storage.create_temp_writer("gems/rack-3.0.0.gem") as tmp:
    tmp.write(b"...")             # committed on exit, rolled back on error

handle = storage.open_read("gems/rack-3.0.0.gem")   # FileHandle or None
if handle is not None:
    with handle:
        print(handle.size)
```

`TempFile.commit()` and `TempFile.rollback()` may also be called directly.
Transient I/O errors (busy or would-block) are retried up to three times,
100 ms apart, before a `StorageError` is raised.

## What this package does not do

It is a library only: it has no command-line program and does not serve or
fetch gems over the network. SQLite is the only database it supports; there
is no client/server database backend.