"""
Daily schedule and per-user stats, served through the stale-while-revalidate
client with their own rollover policies.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Generic, Optional, TypeVar, Union
from zoneinfo import ZoneInfo

from statcache.cache import (
    SCHEDULE_EXPIRATION,
    STATS_EXPIRATION,
    StaleWhileRevalidateClient,
    TTLCachedResponse,
)
from statcache.errors import CacheError
from .schemas import ScheduleResponse, SelectionState, StatsResponse
from config.settings import settings

logger = logging.getLogger("daily.cache")

T = TypeVar("T")


def current_date_code(now: datetime, tz: Optional[str] = None) -> str:
    """YYYYMMDD for `now` in the reference zone."""
    return now.astimezone(ZoneInfo(tz or settings.reference_timezone)).strftime("%Y%m%d")


@dataclass
class DailySuccess(Generic[T]):
    response: T
    is_from_cache: bool
    is_expired: bool
    is_refreshing: bool
    expires_at: Optional[datetime] = None
    raw_payload: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": self.response.model_dump(mode="json", by_alias=True),
            "isFromCache": self.is_from_cache,
            "isExpired": self.is_expired,
            "isRefreshing": self.is_refreshing,
            "expiresAt": self.expires_at.isoformat() if self.expires_at else None,
        }


@dataclass
class DailyError:
    error: CacheError

    @property
    def message(self) -> str:
        return str(self.error)


DailyResult = Union[DailySuccess, DailyError]


class DailyDataCache:
    """
    Schedule (rolls over at local midnight) and stats (roll over at the
    05:30 cutoff) for a given day.
    """

    def __init__(self, client: StaleWhileRevalidateClient, api_base_url: Optional[str] = None):
        self._client = client
        self._base_url = (api_base_url or settings.api_base_url).rstrip("/")

    # ===== URLs =====

    def schedule_url(self, date_code: str) -> str:
        return f"{self._base_url}/day/{date_code}/schedule"

    def stats_url(self, date_code: str, user_id: str) -> str:
        return f"{self._base_url}/day/{date_code}/stats/{user_id}"

    # ===== Reads =====

    def get_schedule(self, date_code: str) -> DailyResult:
        response = self._client.get(self.schedule_url(date_code), ScheduleResponse, SCHEDULE_EXPIRATION)
        return self._to_result(response)

    def get_stats(self, date_code: str, user_id: str) -> DailyResult:
        response = self._client.get(self.stats_url(date_code, user_id), StatsResponse, STATS_EXPIRATION)
        return self._to_result(response)

    # ===== Writes =====

    def set_schedule(self, date_code: str, schedule: ScheduleResponse) -> None:
        self._client.set(self.schedule_url(date_code), schedule, ScheduleResponse, SCHEDULE_EXPIRATION)

    def set_stats(self, date_code: str, user_id: str, stats: StatsResponse) -> None:
        self._client.set(self.stats_url(date_code, user_id), stats, StatsResponse, STATS_EXPIRATION)

    def mark_pick(self, date_code: str, user_id: str, card_id: str, answer: str) -> bool:
        """
        Record a pick in the cached stats' locked card.

        Nothing is written when no stats are cached for the day.

        Returns:
            True if the cached stats were updated
        """
        def apply(current: Optional[StatsResponse]) -> Optional[StatsResponse]:
            if current is None:
                return None
            locked = current.locked_card_for_date or SelectionState()
            return current.model_copy(
                update={"locked_card_for_date": locked.with_selection(card_id, answer)}
            )

        updated = self._client.update_property(
            self.stats_url(date_code, user_id),
            StatsResponse,
            STATS_EXPIRATION,
            apply,
        )
        if updated:
            logger.debug(f"Pick recorded for {user_id} on {date_code}: {card_id}={answer}")
        return updated

    @staticmethod
    def _to_result(response: TTLCachedResponse) -> DailyResult:
        if not response.is_success:
            return DailyError(error=response.error or CacheError(message="Unknown error"))
        return DailySuccess(
            response=response.data,
            is_from_cache=response.is_from_cache,
            is_expired=response.is_expired,
            is_refreshing=response.is_refreshing,
            expires_at=response.expires_at,
            raw_payload=response.raw_payload,
        )
