"""
Pydantic schemas for the daily schedule and per-user stats endpoints.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class DailyModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class CardItem(DailyModel):
    """One pick on the daily card"""
    id: str
    type: str
    points: int
    home_team: Optional[str] = None
    home_team_subtitle: Optional[str] = None
    away_team: Optional[str] = None
    away_team_subtitle: Optional[str] = None
    date_line1: Optional[str] = None
    date_line2: Optional[str] = None
    date_line3: Optional[str] = None
    question: Optional[str] = None
    answer1: Optional[str] = None
    answer2: Optional[str] = None
    answer3: Optional[str] = None
    answer4: Optional[str] = None
    correct_answer: Optional[str] = None


class ScheduleResponse(DailyModel):
    fastbreak_card: List[CardItem] = Field(default_factory=list)


class Selection(DailyModel):
    id: str
    user_answer: str


class SelectionState(DailyModel):
    selections: List[Selection] = Field(default_factory=list)

    def with_selection(self, card_id: str, answer: str) -> "SelectionState":
        """Copy with the answer for `card_id` added or replaced."""
        selections = [s for s in self.selections if s.id != card_id]
        selections.append(Selection(id=card_id, user_answer=answer))
        return SelectionState(selections=selections)


class LeaderboardEntry(DailyModel):
    user_id: str
    points: int


class DailyLeaderboard(DailyModel):
    date_code: str
    entries: List[LeaderboardEntry] = Field(default_factory=list)


class LeaderboardResult(DailyModel):
    daily_leaderboards: List[DailyLeaderboard] = Field(default_factory=list)
    weekly_totals: List[LeaderboardEntry] = Field(default_factory=list)


class StatsResponse(DailyModel):
    week_start_date: str
    requested_date: str
    previous_day: str
    locked_card_for_date: Optional[SelectionState] = None
    weekly_leaderboard: Optional[LeaderboardResult] = None
    stat_sheet_for_user: Optional[Dict[str, Any]] = None
