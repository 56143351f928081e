"""
Pydantic schemas for chart payloads downloaded from the manifest.

Each visualization kind has its own payload shape; decode_visualization()
picks the schema from the manifest entry's kind.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class VisualizationKind(str, Enum):
    """Entry types the manifest can reference."""
    SCATTER_PLOT = "SCATTER_PLOT"
    BAR_GRAPH = "BAR_GRAPH"
    LINE_CHART = "LINE_CHART"
    TABLE = "TABLE"
    MATCHUP = "MATCHUP"
    MATCHUP_V2 = "MATCHUP_V2"
    NBA_MATCHUP = "NBA_MATCHUP"
    CBB_MATCHUP = "CBB_MATCHUP"
    HELLO_WORLD = "HELLO_WORLD"

    @property
    def is_chart(self) -> bool:
        """False for screens rendered without a downloaded payload."""
        return self in VISUALIZATION_MODELS

    @classmethod
    def known(cls, value: Any) -> bool:
        return isinstance(value, str) and value in cls._value2member_map_


class ChartModel(BaseModel):
    """Base for wire models: camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class Tag(ChartModel):
    label: str
    layout: str = "left"
    color: Optional[str] = None


class VisualizationBase(ChartModel):
    """Fields shared by every chart payload"""
    sport: str
    visualization_type: VisualizationKind
    title: str
    subtitle: str = ""
    description: str = ""
    last_updated: datetime
    source: Optional[str] = None
    tags: Optional[List[Tag]] = None
    sort_order: Optional[int] = None


# ===== BAR GRAPH =====

class BarGraphDataPoint(ChartModel):
    label: str
    value: float
    division: Optional[str] = None
    conference: Optional[str] = None
    wins: Optional[int] = None
    losses: Optional[int] = None


class ReferenceLine(ChartModel):
    value: float
    label: str
    color: str


class BarGraphVisualization(VisualizationBase):
    data_points: List[BarGraphDataPoint]
    top_reference_line: Optional[ReferenceLine] = None
    bottom_reference_line: Optional[ReferenceLine] = None


# ===== SCATTER PLOT =====

class ScatterPlotDataPoint(ChartModel):
    label: str
    x: float
    y: float
    sum: Optional[float] = None
    team_code: Optional[str] = None
    color: Optional[str] = None


class ScatterPlotVisualization(VisualizationBase):
    x_axis_label: str
    y_axis_label: str
    invert_y_axis: bool = False
    data_points: List[ScatterPlotDataPoint]


# ===== LINE CHART =====

class LineChartDataPoint(ChartModel):
    x: float
    y: float


class LineChartSeries(ChartModel):
    label: str
    data_points: List[LineChartDataPoint]
    color: Optional[str] = None


class LineChartVisualization(VisualizationBase):
    series: List[LineChartSeries]


# ===== TABLE =====

class TableColumn(ChartModel):
    label: str
    value: str


class TableRow(ChartModel):
    label: str
    columns: List[TableColumn]


class TableVisualization(VisualizationBase):
    data_points: List[TableRow]


# ===== MATCHUP =====

class MatchupComparison(ChartModel):
    title: str
    home_team_value: Union[float, str]
    away_team_value: Union[float, str]
    inverted: bool = False


class Matchup(ChartModel):
    home_team: str
    away_team: str
    week: int
    game_time: Optional[str] = None
    comparisons: List[MatchupComparison]


class MatchupVisualization(VisualizationBase):
    week: int
    data_points: List[Matchup]


# ===== MATCHUP V2 =====
# Per-game detail keyed by matchup ("car-tb"). The feed keeps snake_case keys
# inside each matchup, so those fields carry explicit aliases.

class StatValue(ChartModel):
    value: Optional[float] = None
    rank: Optional[int] = None
    rank_display: Optional[str] = None


class TeamStatEntry(ChartModel):
    team: str
    value: Optional[float] = None
    rank: Optional[int] = None
    rank_display: Optional[str] = None


class SideBySideStatComparison(ChartModel):
    label: str
    home: StatValue
    away: StatValue


class SideBySideComparison(ChartModel):
    offense: Dict[str, SideBySideStatComparison] = Field(default_factory=dict)
    defense: Dict[str, SideBySideStatComparison] = Field(default_factory=dict)


class MatchupStatComparison(ChartModel):
    stat_key: str
    off_label: str
    def_label: str
    offense: TeamStatEntry
    defense: TeamStatEntry
    advantage: Optional[int] = None


class MatchupComparisons(ChartModel):
    side_by_side: Optional[SideBySideComparison] = None
    home_off_vs_away_def: Dict[str, MatchupStatComparison] = Field(default_factory=dict)
    away_off_vs_home_def: Dict[str, MatchupStatComparison] = Field(default_factory=dict)


class OddsData(ChartModel):
    home_spread: Optional[str] = Field(None, alias="home_spread")
    home_moneyline: Optional[str] = Field(None, alias="home_moneyline")
    away_moneyline: Optional[str] = Field(None, alias="away_moneyline")
    over_under: Optional[str] = Field(None, alias="over_under")


class TeamGameResult(ChartModel):
    week: int
    result: str
    score: str


class TeamData(ChartModel):
    """Team stats and player groups; nested stat tables are kept as raw mappings."""
    team_stats: Dict[str, Any] = Field(alias="team_stats")
    players: Dict[str, Any] = Field(default_factory=dict)


class MatchupV2(ChartModel):
    game_datetime: Optional[str] = Field(None, alias="game_datetime")
    odds: Optional[OddsData] = None
    h2h_record: List[Dict[str, Any]] = Field(default_factory=list, alias="h2h_record")
    common_opponents: Optional[Dict[str, Dict[str, List[TeamGameResult]]]] = Field(
        None, alias="common_opponents"
    )
    comparisons: Optional[MatchupComparisons] = None
    teams: Dict[str, TeamData]


class MatchupV2Visualization(VisualizationBase):
    week: int
    data_points: Dict[str, MatchupV2]


# ===== NBA / CBB MATCHUP =====

class TeamInfo(ChartModel):
    id: str
    name: str
    abbreviation: str
    logo: str
    stats: Dict[str, Union[float, str, bool, None]] = Field(default_factory=dict)
    wins: Optional[int] = None
    losses: Optional[int] = None
    conference_rank: Optional[int] = None
    conference: Optional[str] = None


class PlayerInfo(ChartModel):
    """Player line; per-stat values stay keyed by their feed names."""
    model_config = ConfigDict(extra="allow")

    name: str
    position: str


class GameOdds(ChartModel):
    spread: Optional[float] = None
    over_under: Optional[float] = None
    home_moneyline: Optional[str] = None
    away_moneyline: Optional[str] = None


class GameMatchup(ChartModel):
    game_id: str
    game_date: str
    game_name: str
    home_team: TeamInfo
    away_team: TeamInfo
    home_players: List[PlayerInfo] = Field(default_factory=list)
    away_players: List[PlayerInfo] = Field(default_factory=list)
    odds: Optional[GameOdds] = None
    comparisons: Optional[MatchupComparisons] = None


class GameMatchupVisualization(VisualizationBase):
    data_points: List[GameMatchup]


Visualization = Union[
    BarGraphVisualization,
    ScatterPlotVisualization,
    LineChartVisualization,
    TableVisualization,
    MatchupVisualization,
    MatchupV2Visualization,
    GameMatchupVisualization,
]

# HELLO_WORLD has no payload and is not synced.
VISUALIZATION_MODELS: Dict[VisualizationKind, Type[VisualizationBase]] = {
    VisualizationKind.BAR_GRAPH: BarGraphVisualization,
    VisualizationKind.SCATTER_PLOT: ScatterPlotVisualization,
    VisualizationKind.LINE_CHART: LineChartVisualization,
    VisualizationKind.TABLE: TableVisualization,
    VisualizationKind.MATCHUP: MatchupVisualization,
    VisualizationKind.MATCHUP_V2: MatchupV2Visualization,
    VisualizationKind.NBA_MATCHUP: GameMatchupVisualization,
    VisualizationKind.CBB_MATCHUP: GameMatchupVisualization,
}


def decode_visualization(kind: VisualizationKind, payload: str) -> Visualization:
    """
    Decode a chart payload according to its kind.

    Raises:
        ValueError: If the kind has no payload (not a chart)
        pydantic.ValidationError: If the payload does not match the kind's shape
    """
    model = VISUALIZATION_MODELS.get(kind)
    if model is None:
        raise ValueError(f"{kind.value} has no chart payload")
    return model.model_validate_json(payload)


def visualization_to_dict(visualization: Any) -> Dict[str, Any]:
    """Wire-format (camelCase) dict for API responses."""
    return visualization.model_dump(mode="json", by_alias=True)
