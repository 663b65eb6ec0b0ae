"""Database row types and their conversion to domain values."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from .quarantine import GemVersion, VersionStatus
from .types import CachedAsset

_RFC3339 = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})[Tt ](\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?"
    r"([Zz]|[+-]\d{2}:\d{2})$"
)


def format_timestamp(ts: datetime) -> str:
    """Format as RFC 3339 in UTC with millisecond precision and a ``Z`` suffix."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    ts = ts.astimezone(timezone.utc)
    return ts.strftime("%Y-%m-%dT%H:%M:%S") + f".{ts.microsecond // 1000:03d}Z"


def parse_timestamp(text: str) -> datetime:
    """Parse an RFC 3339 timestamp into an aware UTC datetime; ValueError if invalid."""
    match = _RFC3339.match(text.strip())
    if match is None:
        raise ValueError(f"invalid RFC 3339 timestamp {text!r}")
    year, month, day, hour, minute, second, fraction, offset = match.groups()
    micros = int((fraction or "0")[:6].ljust(6, "0"))
    if offset in ("Z", "z"):
        tz = timezone.utc
    else:
        sign = -1 if offset[0] == "-" else 1
        hours, minutes = int(offset[1:3]), int(offset[4:6])
        if hours > 23 or minutes > 59:
            raise ValueError(f"invalid offset in timestamp {text!r}")
        tz = timezone(sign * timedelta(hours=hours, minutes=minutes))
    moment = datetime(
        int(year), int(month), int(day), int(hour), int(minute), int(second), micros, tzinfo=tz
    )
    return moment.astimezone(timezone.utc)


def _timestamp_or_now(text: str) -> datetime:
    try:
        return parse_timestamp(text)
    except ValueError:
        return datetime.now(timezone.utc)


@dataclass
class CachedAssetRow:
    """A row of the cached_assets table."""

    path: str
    sha256: str
    size_bytes: int
    last_accessed: str

    def to_asset(self) -> CachedAsset:
        """Convert to a CachedAsset, clamping negative sizes to zero."""
        return CachedAsset(
            path=self.path,
            sha256=self.sha256,
            size_bytes=max(self.size_bytes, 0),
            last_accessed=self.last_accessed,
        )


@dataclass(kw_only=True)
class GemVersionRow:
    """A row of the gem_versions table, with timestamps stored as text."""

    id: int
    name: str
    version: str
    platform: str | None = None
    sha256: str | None = None
    published_at: str
    available_after: str
    status: str
    status_reason: str | None = None
    upstream_yanked: bool = False
    created_at: str
    updated_at: str

    def to_gem_version(self) -> GemVersion:
        """Convert to a GemVersion.

        Unparseable timestamps become the current time and an unknown
        status becomes quarantine.
        """
        try:
            status = VersionStatus.parse(self.status)
        except ValueError:
            status = VersionStatus.QUARANTINE
        return GemVersion(
            id=self.id,
            name=self.name,
            version=self.version,
            platform=self.platform,
            sha256=self.sha256,
            published_at=_timestamp_or_now(self.published_at),
            available_after=_timestamp_or_now(self.available_after),
            status=status,
            status_reason=self.status_reason,
            upstream_yanked=bool(self.upstream_yanked),
            created_at=_timestamp_or_now(self.created_at),
            updated_at=_timestamp_or_now(self.updated_at),
        )


@dataclass(kw_only=True)
class DbGemMetadataRow:
    """A row of the gem_metadata table, with list fields stored as JSON text."""

    name: str
    version: str
    platform: str | None = None
    summary: str | None = None
    description: str | None = None
    licenses: str
    authors: str
    emails: str
    homepage: str | None = None
    documentation_url: str | None = None
    changelog_url: str | None = None
    source_code_url: str | None = None
    bug_tracker_url: str | None = None
    wiki_url: str | None = None
    funding_url: str | None = None
    metadata_json: str | None = None
    dependencies_json: str
    executables_json: str | None = None
    extensions_json: str | None = None
    native_languages_json: str | None = None
    has_native_extensions: bool = False
    has_embedded_binaries: bool = False
    required_ruby_version: str | None = None
    required_rubygems_version: str | None = None
    rubygems_version: str | None = None
    specification_version: int | None = None
    built_at: str | None = None
    size_bytes: int = 0
    sha256: str
    sbom_json: str | None = None