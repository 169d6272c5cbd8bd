"""
Risk Oracle: environmental risk for a coordinate.

For each dimension (weather, crime, political):
1. Look up a dimension-specific cache keyed by the 2-dp coordinate
2. On miss, query the provider (bounded by a timeout) and cache with that
   dimension's TTL
Then combine with fixed weights into `overall` and derive the level.

The oracle never blocks the pipeline: any provider failure downgrades the
whole snapshot to the conservative default.
"""

import asyncio
import time
from datetime import timedelta
from typing import Callable

import structlog

from riskwatch.clock import Clock, utc_now
from riskwatch.errors import ProviderUnavailable
from riskwatch.geo import validate_coordinate
from riskwatch.schemas.risk import ForecastPoint, RiskSnapshot
from riskwatch.services.cache import (
    CRIME_TTL,
    POLITICAL_TTL,
    WEATHER_TTL,
    TTLStore,
    crime_key,
    political_key,
    weather_key,
)
from riskwatch.services.providers import RiskProvider

logger = structlog.get_logger(__name__)

# ── Forecast configuration ────────────────────────────────────────────────

FORECAST_STEP_HOURS: int = 6
NIGHT_MULTIPLIER: float = 1.3
AFTERNOON_MULTIPLIER: float = 1.2


def time_of_day_multiplier(hour: int) -> float:
    """Night (22h–6h) ×1.3, afternoon (14h–18h) ×1.2, otherwise ×1.0."""
    if hour >= 22 or hour <= 6:
        return NIGHT_MULTIPLIER
    if 14 <= hour <= 18:
        return AFTERNOON_MULTIPLIER
    return 1.0


class RiskOracle:
    """Per-location risk with independent TTL caches per dimension."""

    def __init__(
        self,
        weather: RiskProvider,
        crime: RiskProvider,
        political: RiskProvider,
        timeout: float = 5.0,
        clock: Clock = utc_now,
        weather_ttl: float = WEATHER_TTL,
        crime_ttl: float = CRIME_TTL,
        political_ttl: float = POLITICAL_TTL,
        max_entries: int = 50_000,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.timeout = timeout
        self._clock = clock
        self._dimensions: list[tuple[RiskProvider, TTLStore, Callable[[float, float], str]]] = [
            (weather, TTLStore("weather", weather_ttl, max_entries, timer), weather_key),
            (crime, TTLStore("crime", crime_ttl, max_entries, timer), crime_key),
            (political, TTLStore("political", political_ttl, max_entries, timer), political_key),
        ]

    @property
    def caches(self) -> list[TTLStore]:
        return [cache for _, cache, _ in self._dimensions]

    async def assess(self, latitude: float, longitude: float) -> RiskSnapshot:
        """
        Current risk snapshot for a coordinate.

        Raises InvalidCoordinate for malformed input; every other failure
        yields the default snapshot.
        """
        lat, lon = validate_coordinate(latitude, longitude)

        try:
            weather, crime, political = await asyncio.gather(*[
                self._dimension(provider, cache, key_fn(lat, lon), lat, lon)
                for provider, cache, key_fn in self._dimensions
            ])
        except Exception as e:
            logger.warning(
                "risk_assessment_degraded",
                lat=lat,
                lon=lon,
                error=str(e),
                error_type=type(e).__name__,
            )
            return RiskSnapshot.default(self._clock())

        return RiskSnapshot.from_components(weather, crime, political, self._clock())

    async def forecast(
        self,
        latitude: float,
        longitude: float,
        horizon_hours: int = 24,
    ) -> list[ForecastPoint]:
        """
        Risk at 6-hour steps from now up to (excluding) `horizon_hours`.

        Weather and crime are scaled by the time-of-day multiplier; political
        risk is time-invariant. Recomputed on every call.
        """
        base = await self.assess(latitude, longitude)
        now = self._clock()

        points: list[ForecastPoint] = []
        for offset in range(0, max(horizon_hours, 0), FORECAST_STEP_HOURS):
            moment = now + timedelta(hours=offset)
            multiplier = time_of_day_multiplier(moment.hour)
            step = RiskSnapshot.from_components(
                weather=min(base.weather * multiplier, 1.0),
                crime=min(base.crime * multiplier, 1.0),
                political=base.political,
                timestamp=moment,
            )
            points.append(ForecastPoint(
                **step.model_dump(exclude={"degraded"}),
                degraded=base.degraded,
                time=moment,
                hour=moment.hour,
            ))
        return points

    def purge_expired(self) -> int:
        return sum(cache.purge_expired() for cache in self.caches)

    def clear(self) -> None:
        for cache in self.caches:
            cache.clear()

    async def _dimension(
        self,
        provider: RiskProvider,
        cache: TTLStore,
        key: str,
        lat: float,
        lon: float,
    ) -> float:
        async def load() -> float:
            try:
                value = await asyncio.wait_for(provider.risk(lat, lon), timeout=self.timeout)
            except asyncio.TimeoutError:
                raise ProviderUnavailable(provider.name, f"timed out after {self.timeout}s") from None
            return min(max(float(value), 0.0), 1.0)

        return await cache.get_or_load(key, load)
