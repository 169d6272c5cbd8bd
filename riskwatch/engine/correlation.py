"""
Area Correlator.

Buckets concurrently-present subjects into coarse spatial cells and looks
for group-level patterns inside each cell.

1. group_by_cell: cell key = floor(lat/r)_floor(lon/r), r ≈ 0.01° (~1 km)
2. separation: max pairwise great-circle distance, /2, clamped to 1
3. detect_group_anomaly: fast-moving group, majority Red, or widespread
   elevated risk

Group state lives for one batch only and is never persisted.
"""

import math
from dataclasses import dataclass, field
from itertools import combinations
from typing import Iterable, Optional, Sequence

import structlog

from riskwatch.geo import centroid, haversine_km
from riskwatch.schemas.anomaly import GroupContext
from riskwatch.schemas.common import RiskLevel
from riskwatch.schemas.subject import SubjectProjection, SubjectUpdate

logger = structlog.get_logger(__name__)

# ── Configuration ─────────────────────────────────────────────────────────

CELL_SIZE_DEGREES: float = 0.01
MIN_GROUP_MEMBERS: int = 3            # Statistical-noise guard for group anomalies
SEPARATION_SCALE_KM: float = 2.0
GROUP_SPEED_LIMIT: float = 60.0
RED_SHARE_LIMIT: float = 0.5
ELEVATED_SHARE_LIMIT: float = 0.8
GROUP_SEPARATION_LIMIT: float = 0.7
MEMBER_ANOMALY_SCORE: float = 0.5


@dataclass(frozen=True)
class AreaGroup:
    """Per-batch aggregate for one spatial cell."""
    cell_key: str
    member_ids: list[str]
    separation: float              # [0, 1]
    anomalous_members: int


@dataclass(frozen=True)
class GroupPattern:
    """Result of group-level anomaly detection for one cell."""
    anomalous: bool
    avg_speed: float
    risk_distribution: dict[str, int]
    separation: float
    factors: list[str] = field(default_factory=list)


def separation(members: Sequence[SubjectUpdate]) -> float:
    """Normalised max pairwise distance among members with coordinates."""
    located = [m for m in members if m.has_location]
    if len(located) < 2:
        return 0.0

    max_distance = 0.0
    for a, b in combinations(located, 2):
        distance = haversine_km(a.latitude, a.longitude, b.latitude, b.longitude)
        max_distance = max(max_distance, distance)

    return min(max_distance / SEPARATION_SCALE_KM, 1.0)


class AreaCorrelator:
    """Spatial grouping and group-anomaly detection over one batch."""

    def __init__(
        self,
        cell_size: float = CELL_SIZE_DEGREES,
        min_members: int = MIN_GROUP_MEMBERS,
    ):
        if cell_size <= 0:
            raise ValueError("cell_size must be positive")
        self.cell_size = cell_size
        self.min_members = min_members

    def cell_key(self, latitude: float, longitude: float) -> str:
        return (
            f"{math.floor(latitude / self.cell_size)}_"
            f"{math.floor(longitude / self.cell_size)}"
        )

    def group_by_cell(self, updates: Iterable[SubjectUpdate]) -> dict[str, list[SubjectUpdate]]:
        """Bucket updates by cell. Updates without coordinates are left out."""
        cells: dict[str, list[SubjectUpdate]] = {}
        for update in updates:
            if not update.has_location:
                continue
            key = self.cell_key(update.latitude, update.longitude)
            cells.setdefault(key, []).append(update)
        return cells

    def area_group(
        self,
        cell_key: str,
        members: Sequence[SubjectUpdate],
        projections: dict[str, SubjectProjection],
    ) -> AreaGroup:
        return AreaGroup(
            cell_key=cell_key,
            member_ids=[m.subject_id for m in members],
            separation=separation(members),
            anomalous_members=sum(
                1 for m in members
                if (p := projections.get(m.subject_id)) and p.anomaly_score > MEMBER_ANOMALY_SCORE
            ),
        )

    def group_context(self, group: Optional[AreaGroup]) -> GroupContext:
        """Scoring context for a subject in `group` (lone subject when None)."""
        if group is None:
            return GroupContext()
        return GroupContext(
            size=len(group.member_ids),
            separation=group.separation,
            anomalies=group.anomalous_members,
            members=list(group.member_ids),
        )

    def eligible(self, cells: dict[str, list[SubjectUpdate]]) -> dict[str, list[SubjectUpdate]]:
        """Cells large enough for group-anomaly evaluation."""
        return {key: members for key, members in cells.items() if len(members) >= self.min_members}

    def detect_group_anomaly(self, members: Sequence[SubjectProjection]) -> GroupPattern:
        """
        Group-level pattern for one cell's members.

        Anomalous when avg speed > 60, > 50% of members are Red, or > 80%
        are Red or Yellow. Wide separation is reported only as an extra
        factor on an already-anomalous group.
        """
        distribution = {level.value: 0 for level in RiskLevel}
        if not members:
            return GroupPattern(
                anomalous=False,
                avg_speed=0.0,
                risk_distribution=distribution,
                separation=0.0,
            )

        for member in members:
            distribution[member.risk_level.value] += 1

        total = len(members)
        avg_speed = sum(m.update.speed or 0.0 for m in members) / total
        spread = separation([m.update for m in members])
        red_share = distribution[RiskLevel.RED.value] / total
        elevated_share = (
            distribution[RiskLevel.RED.value] + distribution[RiskLevel.YELLOW.value]
        ) / total

        factors: list[str] = []
        if avg_speed > GROUP_SPEED_LIMIT:
            factors.append("High group movement speed")
        if red_share > RED_SHARE_LIMIT:
            factors.append("Multiple high-risk individuals")
        if elevated_share > ELEVATED_SHARE_LIMIT:
            factors.append("Widespread elevated risk")

        anomalous = bool(factors)
        if anomalous and spread > GROUP_SEPARATION_LIMIT:
            factors.append("Group members widely separated")

        if anomalous:
            logger.info(
                "group_anomaly_detected",
                members=total,
                avg_speed=round(avg_speed, 2),
                red=distribution[RiskLevel.RED.value],
                factors=factors,
            )

        return GroupPattern(
            anomalous=anomalous,
            avg_speed=avg_speed,
            risk_distribution=distribution,
            separation=spread,
            factors=factors,
        )

    @staticmethod
    def group_centroid(members: Sequence[SubjectUpdate]) -> Optional[tuple[float, float]]:
        """Arithmetic mean of member coordinates with known locations."""
        return centroid(
            (m.latitude, m.longitude) for m in members if m.has_location
        )
