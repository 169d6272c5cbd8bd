"""
Tests for the Anomaly Scorer.

Covers:
- Score → level boundaries (0.5 / 0.8) and environmental escalation
- Local fallback rules
- Model path normalisation and fallback on failure / timeout / bad output
- Factor tags and their order
- Feature extraction defaults
"""

import math

import pytest
from hypothesis import given
from hypothesis import strategies as st

from riskwatch.engine.anomaly import (
    AnomalyScorer,
    classify_anomaly_level,
    classify_score_level,
    identify_factors,
    local_anomaly_score,
    normalize_model_score,
)
from riskwatch.engine.features import MODEL_INPUT_PREFIX, FeatureVector, extract_features, plan_deviation
from riskwatch.errors import ProviderUnavailable
from riskwatch.schemas.anomaly import GroupContext, HistoricalPattern, ScoreSource, ScoringContext, TimeContext
from riskwatch.schemas.common import RiskLevel
from riskwatch.schemas.risk import RiskSnapshot
from riskwatch.schemas.subject import Waypoint


def _context(moment, weather=0.0, crime=0.0, political=0.0, group=None, risk=True) -> ScoringContext:
    return ScoringContext(
        risk=RiskSnapshot.from_components(weather, crime, political, moment) if risk else None,
        group=group or GroupContext(),
        history=HistoricalPattern(),
        time=TimeContext.at(moment),
    )


# ── Levels ────────────────────────────────────────────────────────────────


class TestLevels:
    @pytest.mark.parametrize("score,level", [
        (0.0, RiskLevel.GREEN),
        (0.49, RiskLevel.GREEN),
        (0.5, RiskLevel.YELLOW),
        (0.79, RiskLevel.YELLOW),
        (0.8, RiskLevel.RED),
        (1.0, RiskLevel.RED),
    ])
    def test_score_boundaries(self, score, level):
        assert classify_score_level(score) == level

    @given(
        st.floats(min_value=0.0, max_value=1.0, allow_nan=False),
        st.floats(min_value=0.0, max_value=1.0, allow_nan=False),
    )
    def test_score_level_monotonic(self, a, b):
        low, high = sorted((a, b))
        assert classify_score_level(low).rank <= classify_score_level(high).rank

    def test_extreme_crime_escalates_to_red(self):
        assert classify_anomaly_level(0.1, FeatureVector(crime_risk=0.95)) == RiskLevel.RED

    def test_extreme_political_escalates_to_red(self):
        assert classify_anomaly_level(0.1, FeatureVector(political_risk=0.9)) == RiskLevel.RED

    def test_elevated_weather_escalates_to_yellow(self):
        assert classify_anomaly_level(0.1, FeatureVector(weather_risk=0.7)) == RiskLevel.YELLOW

    def test_elevated_crime_escalates_to_yellow(self):
        assert classify_anomaly_level(0.1, FeatureVector(crime_risk=0.6)) == RiskLevel.YELLOW

    def test_calm_low_score_is_green(self):
        assert classify_anomaly_level(0.2, FeatureVector(weather_risk=0.3)) == RiskLevel.GREEN


# ── Local rules ───────────────────────────────────────────────────────────


class TestLocalRules:
    def test_normal_movement_scores_environment_only(self):
        features = FeatureVector(speed=5.0, weather_risk=0.3, crime_risk=0.3, political_risk=0.3)
        assert local_anomaly_score(features) == pytest.approx(0.3 * 0.2)

    @pytest.mark.parametrize("speed", [95.0, 0.0, 0.4])
    def test_abnormal_speed(self, speed):
        assert local_anomaly_score(FeatureVector(speed=speed)) == pytest.approx(0.3)

    def test_route_deviation(self):
        assert local_anomaly_score(FeatureVector(speed=5.0, route_deviation=0.6)) == pytest.approx(0.25)

    def test_night_needs_dangerous_area(self):
        calm_night = FeatureVector(speed=5.0, is_night=True, crime_risk=0.5)
        risky_night = FeatureVector(speed=5.0, is_night=True, crime_risk=0.65)
        assert local_anomaly_score(calm_night) == pytest.approx(0.5 / 3 * 0.2)
        assert local_anomaly_score(risky_night) == pytest.approx(0.65 / 3 * 0.2 + 0.15)

    def test_separation_needs_a_group(self):
        alone = FeatureVector(speed=5.0, group_separation=0.9, group_size=1)
        grouped = FeatureVector(speed=5.0, group_separation=0.9, group_size=3)
        assert local_anomaly_score(alone) == 0.0
        assert local_anomaly_score(grouped) == pytest.approx(0.1)

    def test_capped_at_one(self):
        features = FeatureVector(
            speed=120.0, route_deviation=0.9, is_night=True,
            weather_risk=1.0, crime_risk=1.0, political_risk=1.0,
            group_size=4, group_separation=1.0,
        )
        assert local_anomaly_score(features) == 1.0


class TestModelNormalisation:
    def test_scaled_by_environment(self):
        features = FeatureVector(weather_risk=0.3, crime_risk=0.3, political_risk=0.3)
        assert normalize_model_score(0.5, features) == pytest.approx(0.65)

    def test_clamped(self):
        features = FeatureVector(weather_risk=1.0, crime_risk=1.0, political_risk=1.0)
        assert normalize_model_score(0.9, features) == 1.0
        assert normalize_model_score(-0.2, features) == 0.0

    def test_rejects_nan(self):
        with pytest.raises(ValueError):
            normalize_model_score(math.nan, FeatureVector())


# ── Factors ───────────────────────────────────────────────────────────────


class TestFactors:
    def test_all_factors_in_order(self):
        features = FeatureVector(
            speed=90.0, route_deviation=0.8, weather_risk=0.75, crime_risk=0.7,
            political_risk=0.7, group_separation=0.8, is_night=True,
        )
        assert identify_factors(features, 0.9) == [
            "High speed detected",
            "Significant route deviation",
            "Severe weather conditions",
            "High crime area",
            "Political instability",
            "Group members separated",
            "High-risk nighttime activity",
        ]

    def test_nighttime_factor_needs_high_score(self):
        assert identify_factors(FeatureVector(is_night=True), 0.6) == []
        assert identify_factors(FeatureVector(is_night=True), 0.61) == ["High-risk nighttime activity"]

    def test_low_speed_is_not_a_factor(self):
        assert identify_factors(FeatureVector(speed=0.0), 0.3) == []


# ── Features ──────────────────────────────────────────────────────────────


class TestFeatures:
    def test_sparse_update_defaults(self, make_update, night_clock):
        update = make_update(latitude=None, longitude=None, speed=None)
        features = extract_features(update, _context(night_clock(), risk=False))
        assert features.speed == 0.0
        assert features.weather_risk == 0.0
        assert features.group_size == 1
        assert features.is_night is True
        assert features.hour == 23
        assert features.day_of_week == 2

    def test_plan_deviation(self, make_update):
        same = make_update(planned_waypoint=Waypoint(latitude=28.6139, longitude=77.2090))
        near = make_update(planned_waypoint=Waypoint(latitude=28.7139, longitude=77.2090))
        far = make_update(planned_waypoint=Waypoint(latitude=19.0760, longitude=72.8777))
        assert plan_deviation(same) == 0.0
        assert plan_deviation(near) == pytest.approx(0.01112, abs=1e-4)     # ~11.1 km
        assert plan_deviation(far) == 1.0

    def test_plan_deviation_needs_location(self, make_update):
        update = make_update(latitude=None, longitude=None, planned_waypoint=Waypoint(latitude=0, longitude=0))
        assert plan_deviation(update) == 0.0

    def test_to_text(self):
        text = FeatureVector(speed=95.0, is_night=True).to_text()
        assert text.startswith(MODEL_INPUT_PREFIX)
        values = text[len(MODEL_INPUT_PREFIX):].split(",")
        assert len(values) == 17
        assert values[0] == "95.0"
        assert values[7] == "1"


# ── Scorer ────────────────────────────────────────────────────────────────


class TestAnomalyScorer:
    @pytest.mark.asyncio
    async def test_local_fallback_without_model(self, make_update, night_clock):
        scorer = AnomalyScorer(clock=night_clock)
        result = await scorer.score(make_update(speed=95.0), _context(night_clock(), 0.3, 0.3, 0.3))
        assert result.source == ScoreSource.LOCAL_FALLBACK
        assert result.score == pytest.approx(0.3 + 0.3 * 0.2)
        assert result.factors == ["High speed detected"]
        assert result.timestamp == night_clock()
        assert scorer.model_configured is False

    @pytest.mark.asyncio
    async def test_model_path(self, make_update, night_clock, fake_model):
        model = fake_model(confidence=0.7)
        scorer = AnomalyScorer(model=model, clock=night_clock)
        result = await scorer.score(make_update(), _context(night_clock(), 0.3, 0.3, 0.3))
        assert result.source == ScoreSource.MODEL
        assert result.score == pytest.approx(0.7 * 1.3)
        assert result.risk_level == RiskLevel.RED
        assert model.inputs[0].startswith(MODEL_INPUT_PREFIX)

    @pytest.mark.asyncio
    async def test_model_error_falls_back(self, make_update, night_clock, fake_model):
        scorer = AnomalyScorer(model=fake_model(error=ProviderUnavailable("anomaly_model")), clock=night_clock)
        result = await scorer.score(make_update(speed=95.0), _context(night_clock()))
        assert result.source == ScoreSource.LOCAL_FALLBACK
        assert result.score == pytest.approx(0.3)

    @pytest.mark.asyncio
    async def test_model_timeout_falls_back(self, make_update, night_clock, fake_model):
        scorer = AnomalyScorer(model=fake_model(confidence=0.99, delay=1.0), timeout=0.05, clock=night_clock)
        result = await scorer.score(make_update(), _context(night_clock()))
        assert result.source == ScoreSource.LOCAL_FALLBACK

    @pytest.mark.asyncio
    async def test_model_nan_falls_back(self, make_update, night_clock, fake_model):
        scorer = AnomalyScorer(model=fake_model(confidence=math.nan), clock=night_clock)
        result = await scorer.score(make_update(), _context(night_clock()))
        assert result.source == ScoreSource.LOCAL_FALLBACK
        assert 0.0 <= result.score <= 1.0

    @pytest.mark.asyncio
    async def test_group_separation_feeds_score(self, make_update, night_clock):
        group = GroupContext(size=3, separation=0.9, anomalies=0, members=["T1", "T2", "T3"])
        result = await AnomalyScorer(clock=night_clock).score(make_update(), _context(night_clock(), group=group))
        assert result.score == pytest.approx(0.1)
        assert "Group members separated" in result.factors
