"""Core value types shared by the cache backends."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


class AssetKind(Enum):
    """Kind of cached artefact; the value is the name stored in the index."""

    GEM = "gem"
    SPEC = "gemspec"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class AssetKey:
    """Identifies one cached artefact."""

    kind: AssetKind
    name: str
    version: str
    platform: str | None = None


@dataclass
class CachedAsset:
    """A cached artefact as recorded in the index."""

    path: str
    sha256: str
    size_bytes: int
    last_accessed: str


class DependencyKind(Enum):
    """Kind of a gem dependency."""

    RUNTIME = "runtime"
    DEVELOPMENT = "development"
    OPTIONAL = "optional"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, text: str) -> DependencyKind:
        """Map a dependency type name to a kind; unrecognised names give UNKNOWN."""
        try:
            return cls(text)
        except ValueError:
            return cls.UNKNOWN

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class GemDependency:
    """A single dependency declared by a gem."""

    name: str
    requirement: str
    kind: DependencyKind

    def to_dict(self) -> dict[str, str]:
        """Return the JSON-ready form of this dependency."""
        return {"name": self.name, "requirement": self.requirement, "kind": self.kind.value}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> GemDependency:
        """Build a dependency from its JSON form, raising ValueError if malformed."""
        if not isinstance(data, Mapping):
            raise ValueError(f"dependency must be an object, got {type(data).__name__}")
        try:
            name = data["name"]
            requirement = data["requirement"]
            kind_text = data["kind"]
        except KeyError as exc:
            raise ValueError(f"dependency is missing field {exc.args[0]!r}") from None
        if not isinstance(name, str) or not isinstance(requirement, str):
            raise ValueError("dependency name and requirement must be strings")
        try:
            kind = DependencyKind(kind_text)
        except ValueError:
            raise ValueError(f"unknown dependency kind {kind_text!r}") from None
        return cls(name=name, requirement=requirement, kind=kind)


@dataclass(kw_only=True)
class GemMetadata:
    """Descriptive metadata extracted from a gem's specification."""

    name: str
    version: str
    platform: str | None = None
    summary: str | None = None
    description: str | None = None
    licenses: list[str] = field(default_factory=list)
    authors: list[str] = field(default_factory=list)
    emails: list[str] = field(default_factory=list)
    homepage: str | None = None
    documentation_url: str | None = None
    changelog_url: str | None = None
    source_code_url: str | None = None
    bug_tracker_url: str | None = None
    wiki_url: str | None = None
    funding_url: str | None = None
    metadata: Any = None
    dependencies: list[GemDependency] = field(default_factory=list)
    executables: list[str] = field(default_factory=list)
    extensions: list[str] = field(default_factory=list)
    native_languages: list[str] = field(default_factory=list)
    has_native_extensions: bool = False
    has_embedded_binaries: bool = False
    required_ruby_version: str | None = None
    required_rubygems_version: str | None = None
    rubygems_version: str | None = None
    specification_version: int | None = None
    built_at: str | None = None
    size_bytes: int = 0
    sha256: str
    sbom: Any = None


@dataclass
class IndexStats:
    """Aggregate counters over the cached asset index."""

    total_assets: int
    gem_assets: int
    spec_assets: int
    unique_gems: int
    total_size_bytes: int
    last_accessed: str | None


@dataclass(frozen=True)
class SbomCoverage:
    """How many metadata rows carry an SBOM document."""

    metadata_rows: int
    with_sbom: int