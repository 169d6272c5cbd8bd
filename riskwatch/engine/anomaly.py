"""
Anomaly Scorer.

Two scoring paths:
1. Model path: the feature vector goes to a pluggable classifier; its
   confidence is scaled by an environmental multiplier and clamped
2. Local fallback: additive rules over movement, itinerary, environment,
   time and group features

The local path is used when no model is configured and whenever the model
call fails or times out. `score()` never raises.
"""

import asyncio
import math
from typing import Optional

import structlog

from riskwatch.clock import Clock, utc_now
from riskwatch.engine.features import FeatureVector, extract_features
from riskwatch.schemas.anomaly import AnomalyResult, ScoreSource, ScoringContext
from riskwatch.schemas.common import RiskLevel
from riskwatch.schemas.subject import SubjectUpdate
from riskwatch.services.model_client import AnomalyModel

logger = structlog.get_logger(__name__)

# ── Configuration ─────────────────────────────────────────────────────────

ANOMALY_RED_THRESHOLD: float = 0.8
ANOMALY_YELLOW_THRESHOLD: float = 0.5

SPEED_MIN: float = 0.5
SPEED_MAX: float = 80.0
ROUTE_DEVIATION_LIMIT: float = 0.5
ENV_RISK_LIMIT: float = 0.6
SEPARATION_LIMIT: float = 0.7

# Local rule weights
SPEED_WEIGHT: float = 0.3
ROUTE_WEIGHT: float = 0.25
ENVIRONMENT_WEIGHT: float = 0.2
NIGHT_WEIGHT: float = 0.15
SEPARATION_WEIGHT: float = 0.1


def classify_score_level(score: float) -> RiskLevel:
    """Scorer level from the score alone (0.5 / 0.8 boundaries)."""
    if score >= ANOMALY_RED_THRESHOLD:
        return RiskLevel.RED
    if score >= ANOMALY_YELLOW_THRESHOLD:
        return RiskLevel.YELLOW
    return RiskLevel.GREEN


def classify_anomaly_level(score: float, features: FeatureVector) -> RiskLevel:
    """Score level, escalated by extreme environmental components."""
    if (
        score >= ANOMALY_RED_THRESHOLD
        or features.crime_risk >= 0.9
        or features.political_risk >= 0.9
    ):
        return RiskLevel.RED
    if (
        score >= ANOMALY_YELLOW_THRESHOLD
        or features.weather_risk >= 0.7
        or features.crime_risk >= 0.6
    ):
        return RiskLevel.YELLOW
    return RiskLevel.GREEN


def local_anomaly_score(features: FeatureVector) -> float:
    score = 0.0

    if features.speed > SPEED_MAX or features.speed < SPEED_MIN:
        score += SPEED_WEIGHT

    if features.route_deviation > ROUTE_DEVIATION_LIMIT:
        score += ROUTE_WEIGHT

    score += features.environmental_average * ENVIRONMENT_WEIGHT

    if features.is_night and (
        features.crime_risk > ENV_RISK_LIMIT or features.political_risk > ENV_RISK_LIMIT
    ):
        score += NIGHT_WEIGHT

    if features.group_separation > SEPARATION_LIMIT and features.group_size > 1:
        score += SEPARATION_WEIGHT

    return min(score, 1.0)


def normalize_model_score(confidence: float, features: FeatureVector) -> float:
    if not math.isfinite(confidence):
        raise ValueError(f"model confidence is not finite: {confidence}")
    multiplier = 1 + features.environmental_average
    return min(max(confidence * multiplier, 0.0), 1.0)


def identify_factors(features: FeatureVector, score: float) -> list[str]:
    """Human-readable contributing factors, in check order."""
    factors: list[str] = []
    if features.speed > SPEED_MAX:
        factors.append("High speed detected")
    if features.route_deviation > ROUTE_DEVIATION_LIMIT:
        factors.append("Significant route deviation")
    if features.weather_risk > 0.7:
        factors.append("Severe weather conditions")
    if features.crime_risk > ENV_RISK_LIMIT:
        factors.append("High crime area")
    if features.political_risk > ENV_RISK_LIMIT:
        factors.append("Political instability")
    if features.group_separation > SEPARATION_LIMIT:
        factors.append("Group members separated")
    if features.is_night and score > 0.6:
        factors.append("High-risk nighttime activity")
    return factors


class AnomalyScorer:
    """Scores one subject update in its context."""

    def __init__(
        self,
        model: Optional[AnomalyModel] = None,
        timeout: float = 5.0,
        clock: Clock = utc_now,
    ):
        self.model = model
        self.timeout = timeout
        self._clock = clock

    @property
    def model_configured(self) -> bool:
        return self.model is not None

    async def score(self, update: SubjectUpdate, context: ScoringContext) -> AnomalyResult:
        try:
            features = extract_features(update, context)
        except Exception as e:
            logger.warning(
                "feature_extraction_failed",
                subject_id=update.subject_id,
                error=str(e),
            )
            features = FeatureVector(
                hour=context.time.hour,
                day_of_week=context.time.day_of_week,
                is_night=context.time.is_night,
            )

        score: Optional[float] = None
        source = ScoreSource.LOCAL_FALLBACK
        if self.model is not None:
            score = await self._model_score(update.subject_id, features)
            if score is not None:
                source = ScoreSource.MODEL
        if score is None:
            score = local_anomaly_score(features)

        return AnomalyResult(
            score=score,
            risk_level=classify_anomaly_level(score, features),
            factors=identify_factors(features, score),
            timestamp=self._clock(),
            source=source,
        )

    async def _model_score(self, subject_id: str, features: FeatureVector) -> Optional[float]:
        try:
            confidence = await asyncio.wait_for(
                self.model.classify(features.to_text()),
                timeout=self.timeout,
            )
            return normalize_model_score(float(confidence), features)
        except asyncio.TimeoutError:
            logger.warning(
                "anomaly_model_fallback",
                subject_id=subject_id,
                reason="timeout",
                timeout_seconds=self.timeout,
            )
        except Exception as e:
            logger.warning(
                "anomaly_model_fallback",
                subject_id=subject_id,
                reason="error",
                error=str(e),
                error_type=type(e).__name__,
            )
        return None
