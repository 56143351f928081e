"""
Daily schedule/stats cache.
"""
from .cache import DailyDataCache, DailyError, DailyResult, DailySuccess, current_date_code
from .schemas import CardItem, ScheduleResponse, Selection, SelectionState, StatsResponse

__all__ = [
    "DailyDataCache",
    "DailyError",
    "DailyResult",
    "DailySuccess",
    "current_date_code",
    "CardItem",
    "ScheduleResponse",
    "Selection",
    "SelectionState",
    "StatsResponse",
]
