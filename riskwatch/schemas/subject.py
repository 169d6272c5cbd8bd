"""
Subject update schemas.

A SubjectUpdate is one immutable position/telemetry sample. The next update
with the same subject_id supersedes it.
"""

from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from riskwatch.errors import InvalidCoordinate
from riskwatch.geo import validate_coordinate
from riskwatch.schemas.common import RiskLevel

UpdateMarker = Union[int, float, str]


class Waypoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float


class SubjectUpdate(BaseModel):
    """One position/telemetry sample for a tracked subject."""

    model_config = ConfigDict(frozen=True)

    subject_id: str = Field(min_length=1)
    name: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    # Movement telemetry
    speed: Optional[float] = None
    acceleration: Optional[float] = None
    direction_change: Optional[float] = None

    # Itinerary
    itinerary_deviation: Optional[float] = None
    planned_waypoint: Optional[Waypoint] = None

    # Grouping
    group_id: Optional[str] = None
    family_id: Optional[str] = None

    emergency_contact: Optional[str] = None

    # Timestamp or monotonic counter from upstream; None = not deduplicable
    update_marker: Optional[UpdateMarker] = None

    @property
    def reports_location(self) -> bool:
        """Either coordinate component was sent, valid or not."""
        return self.latitude is not None or self.longitude is not None

    @property
    def has_location(self) -> bool:
        """Both components present, finite and in range."""
        try:
            validate_coordinate(self.latitude, self.longitude)
        except InvalidCoordinate:
            return False
        return True

    @property
    def group_key(self) -> Optional[str]:
        return self.group_id or self.family_id

    @property
    def display_name(self) -> str:
        return self.name or f"Subject {self.subject_id}"


class SubjectProjection(BaseModel):
    """
    In-memory presentation state for a subject.

    Holds the latest update plus the risk fields written after scoring.
    This is NOT the incident record.
    """

    update: SubjectUpdate
    risk_level: RiskLevel = RiskLevel.GREEN
    anomaly_score: float = 0.0
    risk_factors: list[str] = Field(default_factory=list)
    last_risk_update: Optional[datetime] = None

    @property
    def subject_id(self) -> str:
        return self.update.subject_id
