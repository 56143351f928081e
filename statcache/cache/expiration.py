"""
Expiration policies and kind-to-policy mapping.

Each policy is a pure function of "now": given the same instant it always
returns the same expiration. Policies are evaluated in a fixed reference zone,
never the host's local zone.
"""
from datetime import datetime, time, timedelta, timezone
from typing import Dict, Optional, Protocol
from zoneinfo import ZoneInfo

from .core import DataKind
from config.settings import settings


class ExpirationStrategy(Protocol):
    """Computes when data cached at `now` stops being fresh."""

    def expiration_for(self, now: datetime) -> datetime:
        ...


def _reference_zone(tz: Optional[str]) -> ZoneInfo:
    return ZoneInfo(tz or settings.reference_timezone)


def _local_instant(day, at: time, zone: ZoneInfo) -> datetime:
    """Wall-clock time on a given date in `zone`, as a UTC instant."""
    return datetime.combine(day, at, tzinfo=zone).astimezone(timezone.utc)


class DailyRolloverExpiration:
    """Expires at the next local midnight strictly after now."""

    def __init__(self, tz: Optional[str] = None):
        self.zone = _reference_zone(tz)

    def expiration_for(self, now: datetime) -> datetime:
        local_now = now.astimezone(self.zone)
        tomorrow = local_now.date() + timedelta(days=1)
        return _local_instant(tomorrow, time(0, 0), self.zone)

    def __repr__(self) -> str:
        return f"DailyRolloverExpiration(tz='{self.zone.key}')"


class DailyCutoffExpiration:
    """
    Expires at a fixed local time of day.

    Before the cutoff: today's cutoff. At or after it: tomorrow's cutoff.
    """

    def __init__(self, hour: int, minute: int = 0, tz: Optional[str] = None):
        if not (0 <= hour < 24 and 0 <= minute < 60):
            raise ValueError(f"Invalid cutoff {hour}:{minute:02d}")
        self.cutoff = time(hour, minute)
        self.zone = _reference_zone(tz)

    def expiration_for(self, now: datetime) -> datetime:
        local_now = now.astimezone(self.zone)
        day = local_now.date()
        if local_now.time() >= self.cutoff:
            day = day + timedelta(days=1)
        return _local_instant(day, self.cutoff, self.zone)

    def __repr__(self) -> str:
        return (
            f"DailyCutoffExpiration({self.cutoff.hour}:{self.cutoff.minute:02d}, "
            f"tz='{self.zone.key}')"
        )


# Schedules roll over at midnight; stats are recomputed overnight and land by 05:30
SCHEDULE_EXPIRATION = DailyRolloverExpiration()
STATS_EXPIRATION = DailyCutoffExpiration(5, 30)

EXPIRATION_POLICIES: Dict[DataKind, ExpirationStrategy] = {
    DataKind.SCHEDULE: SCHEDULE_EXPIRATION,
    DataKind.STATS: STATS_EXPIRATION,
}


def expiration_for(kind: DataKind) -> ExpirationStrategy:
    """Expiration policy for a kind of TTL-governed resource."""
    return EXPIRATION_POLICIES[kind]
