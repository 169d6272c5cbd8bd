"""
Weather Client: HTTP client for the weather-by-coordinate provider.

The provider is external (OpenWeatherMap-compatible). RiskWatch does NOT
depend on its availability: without an API key, or when the API fails,
the client degrades to a simulated weather-risk curve.
"""

import math
from typing import Optional

import httpx
import structlog

from riskwatch.clock import Clock, utc_now
from riskwatch.errors import ProviderUnavailable
from riskwatch.services.resilience import CircuitBreaker, retry_with_backoff

logger = structlog.get_logger(__name__)

SEVERE_CONDITIONS = {"thunderstorm", "tornado"}
MODERATE_CONDITIONS = {"rain", "snow", "fog"}


def weather_risk_from_payload(payload: dict) -> float:
    """
    Score a weather payload.

    Condition + wind (m/s) + visibility (m) + temperature extremes (Kelvin
    input), clamped to 1.0.
    """
    risk = 0.0

    conditions = payload.get("weather") or []
    if conditions:
        condition = str(conditions[0].get("main", "")).lower()
        if condition in SEVERE_CONDITIONS:
            risk += 0.8
        elif condition in MODERATE_CONDITIONS:
            risk += 0.4
        elif condition == "clouds":
            risk += 0.1

    wind_speed = (payload.get("wind") or {}).get("speed") or 0
    if wind_speed > 15:
        risk += 0.3
    elif wind_speed > 10:
        risk += 0.1

    visibility = payload.get("visibility") or 10000
    if visibility < 1000:
        risk += 0.4
    elif visibility < 5000:
        risk += 0.2

    kelvin = (payload.get("main") or {}).get("temp") or 273
    celsius = kelvin - 273.15
    if celsius > 40 or celsius < -10:
        risk += 0.3
    elif celsius > 35 or celsius < 0:
        risk += 0.1

    return min(risk, 1.0)


def simulated_weather_risk(latitude: float, hour: int) -> float:
    """Latitude wave with an afternoon-storm multiplier (14–18h)."""
    base = math.sin(latitude * 0.1) * 0.3 + 0.2
    multiplier = 1.5 if 14 <= hour <= 18 else 1.0
    return min(max(base * multiplier, 0.0), 1.0)


class WeatherClient:
    """Weather risk provider backed by an HTTP weather API."""

    name = "weather"

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 5.0,
        retry_attempts: int = 1,
        clock: Clock = utc_now,
        breaker: Optional[CircuitBreaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.api_key = api_key
        self.timeout = timeout
        self.retry_attempts = retry_attempts
        self._clock = clock
        self._breaker = breaker or CircuitBreaker(name="weather", failure_threshold=5)
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def risk(self, latitude: float, longitude: float) -> float:
        if not self.is_configured:
            return simulated_weather_risk(latitude, self._clock().hour)

        try:
            payload = await self._breaker.call(self.fetch, latitude, longitude)
        except Exception as e:
            logger.warning(
                "weather_provider_unavailable",
                lat=latitude,
                lon=longitude,
                error=str(e),
            )
            return simulated_weather_risk(latitude, self._clock().hour)
        return weather_risk_from_payload(payload)

    async def fetch(self, latitude: float, longitude: float) -> dict:
        """Fetch the raw weather payload. Raises ProviderUnavailable."""
        params = {"lat": latitude, "lon": longitude, "appid": self.api_key}

        async def _get() -> dict:
            async with self._client() as client:
                resp = await client.get(self.base_url, params=params)
                resp.raise_for_status()
                return resp.json()

        try:
            return await retry_with_backoff(
                _get,
                max_retries=self.retry_attempts,
                base_delay=0.2,
                max_delay=1.0,
                jitter=0.1,
                retry_on=(httpx.TransportError,),
                provider="weather",
            )
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderUnavailable("weather", str(e)) from e
