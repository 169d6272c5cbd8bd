"""
Subject projection.

Presentation state only: the latest update per subject plus the risk
fields written after scoring, and per-group networks of member results.
This is NOT the incident record.
"""

from datetime import datetime
from typing import Optional

from cachetools import LRUCache

from riskwatch.engine.anomaly import classify_score_level
from riskwatch.schemas.anomaly import AnomalyResult
from riskwatch.schemas.risk import RiskSnapshot
from riskwatch.schemas.subject import SubjectProjection, SubjectUpdate


class SubjectRegistry:
    """Bounded in-memory projection of every known subject."""

    def __init__(self, max_subjects: int = 100_000, max_groups: int = 10_000):
        self._subjects: LRUCache = LRUCache(maxsize=max_subjects)
        self._groups: LRUCache = LRUCache(maxsize=max_groups)

    def observe(self, update: SubjectUpdate) -> SubjectProjection:
        """Supersede the subject's update, keeping its last risk fields."""
        current: Optional[SubjectProjection] = self._subjects.get(update.subject_id)
        if current is None:
            projection = SubjectProjection(update=update)
        else:
            projection = current.model_copy(update={"update": update})
        self._subjects[update.subject_id] = projection
        return projection

    def record_risk(
        self,
        update: SubjectUpdate,
        result: AnomalyResult,
        risk: Optional[RiskSnapshot],
    ) -> SubjectProjection:
        """
        Write scoring output onto the projection.

        The projected level comes from the worse of the anomaly score and
        the location's overall risk.
        """
        combined = max(result.score, risk.overall if risk else 0.0)
        projection = self.observe(update).model_copy(update={
            "risk_level": classify_score_level(combined),
            "anomaly_score": result.score,
            "risk_factors": list(result.factors),
            "last_risk_update": result.timestamp,
        })
        self._subjects[update.subject_id] = projection

        if update.group_key:
            self._record_group_member(update.group_key, projection, result.timestamp)
        return projection

    def get(self, subject_id: str) -> Optional[SubjectProjection]:
        return self._subjects.get(subject_id)

    def projections(self) -> dict[str, SubjectProjection]:
        return dict(self._subjects.items())

    def group_network(self, group_id: str) -> dict[str, dict]:
        """Latest result per member of one group (read-only copy)."""
        return {k: dict(v) for k, v in self._groups.get(group_id, {}).items()}

    def group_ids(self) -> list[str]:
        return list(self._groups.keys())

    def clear(self) -> None:
        self._subjects.clear()
        self._groups.clear()

    def __len__(self) -> int:
        return len(self._subjects)

    def _record_group_member(
        self,
        group_id: str,
        projection: SubjectProjection,
        at: datetime,
    ) -> None:
        network = self._groups.get(group_id)
        if network is None:
            network = {}
            self._groups[group_id] = network
        network[projection.subject_id] = {
            "score": projection.anomaly_score,
            "risk_level": projection.risk_level.value,
            "factors": list(projection.risk_factors),
            "last_update": at,
        }
