"""
Location risk schemas.

`overall` is a fixed convex combination of the three components
(weather 0.2, crime 0.4, political 0.4) and is always within [0, 1].
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from riskwatch.clock import utc_now
from riskwatch.schemas.common import RiskLevel

WEATHER_WEIGHT: float = 0.2
CRIME_WEIGHT: float = 0.4
POLITICAL_WEIGHT: float = 0.4

RED_THRESHOLD: float = 0.7
YELLOW_THRESHOLD: float = 0.4


def combine_risk(weather: float, crime: float, political: float) -> float:
    overall = WEATHER_WEIGHT * weather + CRIME_WEIGHT * crime + POLITICAL_WEIGHT * political
    return min(max(overall, 0.0), 1.0)


def classify_location_risk(overall: float) -> RiskLevel:
    """Location-risk level (0.4 / 0.7 boundaries)."""
    if overall >= RED_THRESHOLD:
        return RiskLevel.RED
    if overall >= YELLOW_THRESHOLD:
        return RiskLevel.YELLOW
    return RiskLevel.GREEN


class RiskSnapshot(BaseModel):
    """Environmental risk estimate for a coordinate at a point in time."""

    model_config = ConfigDict(frozen=True)

    weather: float = Field(ge=0.0, le=1.0)
    crime: float = Field(ge=0.0, le=1.0)
    political: float = Field(ge=0.0, le=1.0)
    overall: float = Field(ge=0.0, le=1.0)
    level: RiskLevel
    timestamp: datetime
    degraded: bool = False          # True when built from the conservative default

    @classmethod
    def from_components(
        cls,
        weather: float,
        crime: float,
        political: float,
        timestamp: Optional[datetime] = None,
    ) -> "RiskSnapshot":
        overall = combine_risk(weather, crime, political)
        return cls(
            weather=weather,
            crime=crime,
            political=political,
            overall=overall,
            level=classify_location_risk(overall),
            timestamp=timestamp or utc_now(),
        )

    @classmethod
    def default(cls, timestamp: Optional[datetime] = None) -> "RiskSnapshot":
        """Conservative snapshot used when a provider fails."""
        snapshot = cls.from_components(0.2, 0.3, 0.1, timestamp)
        return snapshot.model_copy(update={"degraded": True})

    @property
    def environmental_average(self) -> float:
        return (self.weather + self.crime + self.political) / 3


class ForecastPoint(RiskSnapshot):
    """A forecast step: snapshot fields plus the step's time."""

    time: datetime
    hour: int = Field(ge=0, le=23)
