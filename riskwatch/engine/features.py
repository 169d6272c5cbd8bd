"""
Feature extraction for anomaly scoring.

Total by construction: every feature has a default when its source field is
absent, so extraction never fails on a sparse update.
"""

from dataclasses import astuple, dataclass

from riskwatch.errors import InvalidCoordinate
from riskwatch.geo import haversine_km, validate_coordinate
from riskwatch.schemas.anomaly import ScoringContext
from riskwatch.schemas.subject import SubjectUpdate

MODEL_INPUT_PREFIX = "Subject behavior analysis: "

# Planned-vs-actual distance is normalised against this many km
PLAN_DEVIATION_SCALE_KM: float = 1000.0


@dataclass(frozen=True)
class FeatureVector:
    # Movement
    speed: float = 0.0
    acceleration: float = 0.0
    direction_change: float = 0.0

    # Itinerary
    route_deviation: float = 0.0
    plan_deviation: float = 0.0

    # Time
    hour: int = 0
    day_of_week: int = 0
    is_night: bool = False

    # Environment
    weather_risk: float = 0.0
    crime_risk: float = 0.0
    political_risk: float = 0.0

    # Group
    group_size: int = 1
    group_separation: float = 0.0
    group_anomalies: int = 0

    # History
    visit_frequency: int = 0
    avg_stay_hours: float = 0.0
    previous_anomalies: int = 0

    @property
    def environmental_average(self) -> float:
        return (self.weather_risk + self.crime_risk + self.political_risk) / 3

    def to_text(self) -> str:
        """Serialise for the text-classification model."""
        values = [str(int(v)) if isinstance(v, bool) else str(v) for v in astuple(self)]
        return MODEL_INPUT_PREFIX + ",".join(values)


def plan_deviation(update: SubjectUpdate) -> float:
    """Great-circle distance to the planned waypoint, normalised to [0, 1]."""
    waypoint = update.planned_waypoint
    if waypoint is None or not update.has_location:
        return 0.0
    try:
        target_lat, target_lon = validate_coordinate(waypoint.latitude, waypoint.longitude)
    except InvalidCoordinate:
        return 0.0
    distance = haversine_km(update.latitude, update.longitude, target_lat, target_lon)
    return min(distance / PLAN_DEVIATION_SCALE_KM, 1.0)


def extract_features(update: SubjectUpdate, context: ScoringContext) -> FeatureVector:
    risk = context.risk
    return FeatureVector(
        speed=update.speed or 0.0,
        acceleration=update.acceleration or 0.0,
        direction_change=update.direction_change or 0.0,
        route_deviation=update.itinerary_deviation or 0.0,
        plan_deviation=plan_deviation(update),
        hour=context.time.hour,
        day_of_week=context.time.day_of_week,
        is_night=context.time.is_night,
        weather_risk=risk.weather if risk else 0.0,
        crime_risk=risk.crime if risk else 0.0,
        political_risk=risk.political if risk else 0.0,
        group_size=context.group.size or 1,
        group_separation=context.group.separation,
        group_anomalies=context.group.anomalies,
        visit_frequency=context.history.visit_count,
        avg_stay_hours=context.history.avg_stay_hours,
        previous_anomalies=context.history.anomaly_count,
    )
