import pytest

from vein_adapter.types import (
    AssetKey,
    AssetKind,
    CachedAsset,
    DependencyKind,
    GemDependency,
    GemMetadata,
    IndexStats,
    SbomCoverage,
)


def test_asset_kind_as_str():
    assert AssetKind("gem") is AssetKind.GEM
    assert AssetKind("gemspec") is AssetKind.SPEC
    assert AssetKind.GEM.value == "gem"
    assert str(AssetKind("gemspec")) == "gemspec"


def test_asset_kind_equality():
    assert AssetKind("gem") == AssetKind.GEM
    assert AssetKind("gemspec") == AssetKind.SPEC
    assert AssetKind("gem") != AssetKind("gemspec")


def test_asset_key_defaults_to_no_platform():
    key = AssetKey(AssetKind.GEM, "rails", "7.0.0")
    assert key.platform is None
    assert key == AssetKey(AssetKind.GEM, "rails", "7.0.0", None)
    assert key != AssetKey(AssetKind.GEM, "rails", "7.0.0", "x86_64-linux")


def test_cached_asset_fields():
    asset = CachedAsset("/cache/rails-7.0.0.gem", "abc123def456", 1_024_000, "2024-01-01T12:00:00Z")
    assert asset.path == "/cache/rails-7.0.0.gem"
    assert asset.size_bytes == 1_024_000


@pytest.mark.parametrize(
    "text,expected",
    [
        ("runtime", DependencyKind.RUNTIME),
        ("development", DependencyKind.DEVELOPMENT),
        ("optional", DependencyKind.OPTIONAL),
        ("something", DependencyKind.UNKNOWN),
        ("", DependencyKind.UNKNOWN),
    ],
)
def test_dependency_kind_parse(text, expected):
    assert DependencyKind.parse(text) is expected


def test_gem_dependency_round_trip():
    dep = GemDependency("rack-proxy", ">= 0.7", DependencyKind.RUNTIME)
    data = dep.to_dict()
    assert data == {"name": "rack-proxy", "requirement": ">= 0.7", "kind": "runtime"}
    assert GemDependency.from_dict(data) == dep


def test_gem_dependency_from_dict_rejects_unknown_kind():
    with pytest.raises(ValueError):
        GemDependency.from_dict({"name": "a", "requirement": ">= 0", "kind": "weird"})


def test_gem_dependency_from_dict_rejects_missing_field():
    with pytest.raises(ValueError):
        GemDependency.from_dict({"name": "a", "kind": "runtime"})


def test_gem_metadata_defaults():
    meta = GemMetadata(name="rack", version="2.2.8", sha256="deadbeef")
    assert meta.metadata is None
    assert meta.sbom is None
    assert meta.native_languages == []
    assert meta.dependencies == []
    assert meta.size_bytes == 0
    assert meta.has_native_extensions is False


def test_gem_metadata_lists_are_independent():
    first = GemMetadata(name="a", version="1", sha256="x")
    second = GemMetadata(name="b", version="1", sha256="y")
    first.licenses.append("MIT")
    assert second.licenses == []


def test_gem_metadata_equality():
    one = GemMetadata(name="rack", version="2.2.8", sha256="x", metadata={"k": 1})
    two = GemMetadata(name="rack", version="2.2.8", sha256="x", metadata={"k": 1})
    assert one == two
    two.metadata = {"k": 2}
    assert one != two


def test_index_stats_and_coverage():
    stats = IndexStats(3, 2, 1, 1, 3_000, None)
    assert stats.total_assets == 3
    assert stats.last_accessed is None
    assert SbomCoverage(10, 4) == SbomCoverage(metadata_rows=10, with_sbom=4)