"""
Anomaly scoring schemas.

ScoringContext bundles everything the scorer needs besides the update itself:
location risk, group context, historical pattern summary, time-of-day.
"""

from datetime import datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, Field

from riskwatch.schemas.common import RiskLevel
from riskwatch.schemas.risk import RiskSnapshot


class ScoreSource(StrEnum):
    MODEL = "model"
    LOCAL_FALLBACK = "local-fallback"


def is_night_hour(hour: int) -> bool:
    return hour < 6 or hour > 22


def season_for_month(month: int) -> str:
    if 3 <= month <= 5:
        return "spring"
    if 6 <= month <= 8:
        return "summer"
    if 9 <= month <= 11:
        return "autumn"
    return "winter"


class GroupContext(BaseModel):
    """Area-group context for one subject."""
    size: int = 1
    separation: float = 0.0         # normalised max pairwise distance, [0, 1]
    anomalies: int = 0              # members currently flagged anomalous
    members: list[str] = Field(default_factory=list)


class HistoricalPattern(BaseModel):
    """Per-subject history summary, sourced externally."""
    visit_count: int = 0
    avg_stay_hours: float = 0.0
    anomaly_count: int = 0


class TimeContext(BaseModel):
    hour: int = Field(ge=0, le=23)
    day_of_week: int = Field(ge=0, le=6)    # Monday = 0
    is_weekend: bool
    is_night: bool
    season: str

    @classmethod
    def at(cls, moment: datetime) -> "TimeContext":
        weekday = moment.weekday()
        return cls(
            hour=moment.hour,
            day_of_week=weekday,
            is_weekend=weekday >= 5,
            is_night=is_night_hour(moment.hour),
            season=season_for_month(moment.month),
        )


class ScoringContext(BaseModel):
    risk: Optional[RiskSnapshot] = None
    group: GroupContext = Field(default_factory=GroupContext)
    history: HistoricalPattern = Field(default_factory=HistoricalPattern)
    time: TimeContext


class AnomalyResult(BaseModel):
    """Scorer output. Produced fresh per update, never persisted on its own."""
    score: float = Field(ge=0.0, le=1.0)
    risk_level: RiskLevel
    factors: list[str] = Field(default_factory=list)
    timestamp: datetime
    source: ScoreSource
