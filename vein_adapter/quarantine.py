"""Quarantine types and delay logic.

New gem versions are held back from the index for a configurable period,
guarding against malicious releases that are yanked shortly after publishing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum


class VersionStatus(Enum):
    """Status of a gem version in the quarantine system."""

    QUARANTINE = "quarantine"
    """In the delay period: hidden from the index but downloadable."""
    AVAILABLE = "available"
    """Delay expired: visible and downloadable."""
    YANKED = "yanked"
    """Removed upstream: hidden and blocked."""
    PINNED = "pinned"
    """Manual override: available immediately."""

    @classmethod
    def parse(cls, text: str) -> VersionStatus:
        """Parse a status name, raising ValueError for an unknown one."""
        try:
            return cls(text)
        except ValueError:
            raise ValueError(f"unknown version status {text!r}") from None

    def __str__(self) -> str:
        return self.value


@dataclass(kw_only=True)
class GemVersion:
    """A gem version with quarantine tracking information."""

    id: int
    name: str
    version: str
    platform: str | None = None
    sha256: str | None = None
    published_at: datetime
    available_after: datetime
    status: VersionStatus = VersionStatus.QUARANTINE
    status_reason: str | None = None
    upstream_yanked: bool = False
    created_at: datetime
    updated_at: datetime


@dataclass
class QuarantineInfo:
    """Details about a quarantined version, reported in HTTP headers."""

    served_version: str
    requested_version: str
    available_after: datetime
    reason: str
    quarantined_versions: list[str] = field(default_factory=list)


@dataclass
class QuarantineStats:
    """Counters describing the quarantine system."""

    total_quarantined: int = 0
    total_available: int = 0
    total_yanked: int = 0
    total_pinned: int = 0
    versions_releasing_today: int = 0
    versions_releasing_this_week: int = 0


@dataclass
class DelayPolicy:
    """Policy controlling when a quarantined version becomes available."""

    default_delay_days: int = 3
    skip_weekends: bool = True
    business_hours_only: bool = True
    release_hour_utc: int = 9


_SATURDAY = 5
_SUNDAY = 6


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def calculate_availability(published: datetime, policy: DelayPolicy) -> datetime:
    """Return the moment a version published at ``published`` becomes visible."""
    available = _as_utc(published) + timedelta(days=policy.default_delay_days)

    if policy.skip_weekends:
        weekday = available.weekday()
        if weekday == _SATURDAY:
            available += timedelta(days=2)
        elif weekday == _SUNDAY:
            available += timedelta(days=1)

    if policy.business_hours_only and 0 <= policy.release_hour_utc <= 23:
        available = available.replace(
            hour=policy.release_hour_utc, minute=0, second=0, microsecond=0
        )

    return available


def is_version_available(gem_version: GemVersion, now: datetime) -> bool:
    """Whether the version should be visible in index responses at ``now``."""
    status = gem_version.status
    if status in (VersionStatus.AVAILABLE, VersionStatus.PINNED):
        return True
    if status is VersionStatus.YANKED:
        return False
    return now >= gem_version.available_after


def is_version_downloadable(gem_version: GemVersion) -> bool:
    """Whether the version may be downloaded directly; only yanked ones are blocked."""
    return gem_version.status is not VersionStatus.YANKED