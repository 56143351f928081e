"""
Tests for expiration policies.

All instants are UTC; the policies work in America/New_York.
"""
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from statcache.cache import (
    DailyCutoffExpiration,
    DailyRolloverExpiration,
    DataKind,
    STATS_EXPIRATION,
    SCHEDULE_EXPIRATION,
    expiration_for,
)

NY = ZoneInfo("America/New_York")


def ny(year, month, day, hour=0, minute=0):
    return datetime(year, month, day, hour, minute, tzinfo=NY).astimezone(timezone.utc)


def test_rollover_is_next_local_midnight():
    now = ny(2024, 6, 15, 12, 0)
    assert DailyRolloverExpiration().expiration_for(now) == ny(2024, 6, 16)


def test_rollover_at_exact_midnight_is_following_midnight():
    now = ny(2024, 6, 15)
    assert DailyRolloverExpiration().expiration_for(now) == ny(2024, 6, 16)


def test_rollover_just_before_midnight():
    now = ny(2024, 6, 15, 23, 59)
    assert DailyRolloverExpiration().expiration_for(now) == ny(2024, 6, 16)


def test_rollover_uses_reference_zone_not_utc_date():
    """02:00 UTC on the 16th is still the 15th in New York"""
    now = datetime(2024, 6, 16, 2, 0, tzinfo=timezone.utc)
    assert DailyRolloverExpiration().expiration_for(now) == ny(2024, 6, 16)


def test_rollover_across_dst_start_is_23_hours_away():
    now = ny(2024, 3, 10)
    expires = DailyRolloverExpiration().expiration_for(now)
    assert expires == ny(2024, 3, 11)
    assert expires - now == timedelta(hours=23)


def test_cutoff_before_time_is_today():
    now = ny(2024, 6, 15, 5, 29)
    assert DailyCutoffExpiration(5, 30).expiration_for(now) == ny(2024, 6, 15, 5, 30)


def test_cutoff_at_or_after_time_is_tomorrow():
    assert DailyCutoffExpiration(5, 30).expiration_for(ny(2024, 6, 15, 5, 30)) == ny(2024, 6, 16, 5, 30)
    assert DailyCutoffExpiration(5, 30).expiration_for(ny(2024, 6, 15, 18, 0)) == ny(2024, 6, 16, 5, 30)


@pytest.mark.parametrize("strategy", [SCHEDULE_EXPIRATION, STATS_EXPIRATION])
def test_expiration_is_always_after_now_and_within_a_day(strategy):
    start = ny(2024, 1, 1)
    for hours in range(0, 24 * 7, 5):
        now = start + timedelta(hours=hours, minutes=7)
        expires = strategy.expiration_for(now)
        assert expires > now
        assert expires - now <= timedelta(hours=25)


def test_policies_are_pure():
    now = ny(2024, 6, 15, 12, 0)
    assert STATS_EXPIRATION.expiration_for(now) == STATS_EXPIRATION.expiration_for(now)


def test_invalid_cutoff_rejected():
    with pytest.raises(ValueError):
        DailyCutoffExpiration(24, 0)


def test_kind_mapping():
    assert expiration_for(DataKind.SCHEDULE) is SCHEDULE_EXPIRATION
    assert expiration_for(DataKind.STATS) is STATS_EXPIRATION
