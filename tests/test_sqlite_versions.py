import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from vein_adapter.quarantine import GemVersion, VersionStatus
from vein_adapter.sqlite_versions import SqliteVersionStore, compare_versions

NOW = datetime(2025, 1, 6, 14, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def store():
    connection = sqlite3.connect(":memory:")
    version_store = SqliteVersionStore(connection)
    version_store.run_quarantine_migrations()
    yield version_store
    connection.close()


def make_version(
    version="1.0.0",
    *,
    name="rack",
    platform="ruby",
    status=VersionStatus.QUARANTINE,
    available_after=None,
    upstream_yanked=False,
):
    return GemVersion(
        id=0,
        name=name,
        version=version,
        platform=platform,
        sha256="abc123",
        published_at=NOW - timedelta(days=1),
        available_after=available_after if available_after is not None else NOW + timedelta(days=2),
        status=status,
        status_reason="auto",
        upstream_yanked=upstream_yanked,
        created_at=NOW,
        updated_at=NOW,
    )


def test_table_exists_only_after_migrations():
    connection = sqlite3.connect(":memory:")
    version_store = SqliteVersionStore(connection)
    assert version_store.quarantine_table_exists() is False
    version_store.run_quarantine_migrations()
    version_store.run_quarantine_migrations()
    assert version_store.quarantine_table_exists() is True


def test_get_without_table_raises():
    version_store = SqliteVersionStore(sqlite3.connect(":memory:"))
    with pytest.raises(sqlite3.OperationalError):
        version_store.get_gem_version("rack", "1.0.0", None)


def test_upsert_and_get_round_trip(store):
    original = make_version()
    store.upsert_gem_version(original)
    fetched = store.get_gem_version("rack", "1.0.0", "ruby")
    assert fetched.name == original.name
    assert fetched.version == original.version
    assert fetched.platform == original.platform
    assert fetched.sha256 == original.sha256
    assert fetched.published_at == original.published_at
    assert fetched.available_after == original.available_after
    assert fetched.created_at == original.created_at
    assert fetched.status is VersionStatus.QUARANTINE
    assert fetched.status_reason == "auto"
    assert fetched.upstream_yanked is False
    assert fetched.id >= 1


def test_get_missing_returns_none(store):
    assert store.get_gem_version("missing", "0.0.1", None) is None


def test_null_platform_lookup(store):
    store.upsert_gem_version(make_version(platform=None))
    assert store.get_gem_version("rack", "1.0.0", None).platform is None
    assert store.get_gem_version("rack", "1.0.0", "ruby") is None


def test_upsert_updates_existing_row(store):
    store.upsert_gem_version(make_version())
    first_id = store.get_gem_version("rack", "1.0.0", "ruby").id
    store.upsert_gem_version(make_version(status=VersionStatus.PINNED))
    fetched = store.get_gem_version("rack", "1.0.0", "ruby")
    assert fetched.status is VersionStatus.PINNED
    assert fetched.id == first_id
    assert len(store.get_gem_versions_for_index("rack")) == 1


def test_latest_available_uses_semver_ordering(store):
    store.upsert_gem_version(make_version("1.9.0", status=VersionStatus.AVAILABLE))
    store.upsert_gem_version(make_version("1.10.0", status=VersionStatus.AVAILABLE))
    store.upsert_gem_version(make_version("2.0.0"))
    latest = store.get_latest_available_version("rack", "ruby", NOW)
    assert latest.version == "1.10.0"


def test_latest_available_includes_expired_quarantine(store):
    store.upsert_gem_version(make_version("1.0.0", status=VersionStatus.AVAILABLE))
    store.upsert_gem_version(make_version("1.1.0", available_after=NOW - timedelta(hours=1)))
    latest = store.get_latest_available_version("rack", "ruby", NOW)
    assert latest.version == "1.1.0"


def test_latest_available_excludes_yanked(store):
    store.upsert_gem_version(make_version("1.0.0", status=VersionStatus.AVAILABLE))
    store.upsert_gem_version(
        make_version("3.0.0", status=VersionStatus.AVAILABLE, upstream_yanked=True)
    )
    latest = store.get_latest_available_version("rack", "ruby", NOW)
    assert latest.version == "1.0.0"
    assert store.get_latest_available_version("other", "ruby", NOW) is None


def test_get_quarantined_versions(store):
    store.upsert_gem_version(make_version("1.0.0", status=VersionStatus.AVAILABLE))
    store.upsert_gem_version(make_version("1.1.0"))
    store.upsert_gem_version(make_version("1.2.0", available_after=NOW - timedelta(hours=1)))
    versions = [item.version for item in store.get_quarantined_versions("rack", NOW)]
    assert versions == ["1.1.0"]


def test_update_version_status(store):
    store.upsert_gem_version(make_version())
    store.update_version_status("rack", "1.0.0", "ruby", VersionStatus.PINNED, "CVE fix")
    fetched = store.get_gem_version("rack", "1.0.0", "ruby")
    assert fetched.status is VersionStatus.PINNED
    assert fetched.status_reason == "CVE fix"


def test_promote_expired_quarantines(store):
    store.upsert_gem_version(make_version("1.0.0", available_after=NOW - timedelta(hours=1)))
    store.upsert_gem_version(make_version("1.1.0", available_after=NOW - timedelta(days=1)))
    store.upsert_gem_version(make_version("1.2.0"))
    promoted = store.promote_expired_quarantines(NOW)
    assert promoted == 2
    fetched = store.get_gem_version("rack", "1.0.0", "ruby")
    assert fetched.status is VersionStatus.AVAILABLE
    assert fetched.status_reason == "auto-promoted"
    assert store.get_gem_version("rack", "1.2.0", "ruby").status is VersionStatus.QUARANTINE
    assert store.promote_expired_quarantines(NOW) == 0


def test_mark_yanked_covers_all_platforms(store):
    store.upsert_gem_version(make_version(platform="ruby"))
    store.upsert_gem_version(make_version(platform="x86_64-linux"))
    store.mark_yanked("rack", "1.0.0")
    for platform in ("ruby", "x86_64-linux"):
        fetched = store.get_gem_version("rack", "1.0.0", platform)
        assert fetched.status is VersionStatus.YANKED
        assert fetched.upstream_yanked is True


def test_get_all_quarantined_orders_and_pages(store):
    store.upsert_gem_version(make_version("1.0.0", available_after=NOW + timedelta(days=3)))
    store.upsert_gem_version(make_version("1.1.0", available_after=NOW + timedelta(days=1)))
    store.upsert_gem_version(make_version("1.2.0", available_after=NOW + timedelta(days=2)))
    store.upsert_gem_version(make_version("0.9.0", status=VersionStatus.AVAILABLE))
    everything = store.get_all_quarantined(10, 0)
    assert [item.version for item in everything] == ["1.1.0", "1.2.0", "1.0.0"]
    page = store.get_all_quarantined(1, 1)
    assert [item.version for item in page] == ["1.2.0"]


def test_quarantine_stats(store):
    now = datetime.now(timezone.utc)
    store.upsert_gem_version(make_version("1.0.0", available_after=now + timedelta(hours=2)))
    store.upsert_gem_version(make_version("1.1.0", available_after=now + timedelta(days=3)))
    store.upsert_gem_version(make_version("1.2.0", status=VersionStatus.AVAILABLE))
    store.upsert_gem_version(make_version("1.3.0", status=VersionStatus.PINNED))
    store.upsert_gem_version(make_version("1.4.0", status=VersionStatus.YANKED))
    stats = store.quarantine_stats()
    assert stats.total_quarantined == 2
    assert stats.total_available == 1
    assert stats.total_pinned == 1
    assert stats.total_yanked == 1
    assert stats.versions_releasing_today == 1
    assert stats.versions_releasing_this_week == 2


def test_empty_stats(store):
    stats = store.quarantine_stats()
    assert stats.total_quarantined == 0
    assert stats.versions_releasing_this_week == 0


def test_versions_for_index_filters_by_name(store):
    store.upsert_gem_version(make_version("1.0.0"))
    store.upsert_gem_version(make_version("2.0.0", status=VersionStatus.AVAILABLE))
    store.upsert_gem_version(make_version("1.0.0", name="rails"))
    versions = store.get_gem_versions_for_index("rack")
    assert sorted(item.version for item in versions) == ["1.0.0", "2.0.0"]
    assert all(item.name == "rack" for item in versions)


def test_compare_versions_semver():
    assert compare_versions("1.10.0", "1.9.0") > 0
    assert compare_versions("1.9.0", "1.10.0") < 0
    assert compare_versions("1.0.0", "1.0.0") == 0
    assert compare_versions("1.0.0-alpha", "1.0.0") < 0


def test_compare_versions_falls_back_to_text():
    assert compare_versions("1.0.0.pre", "1.0.0") > 0
    assert compare_versions("1.9", "1.10") > 0
    assert compare_versions("2024.10.27", "2024.10.27") == 0