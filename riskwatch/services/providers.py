"""
Location-risk providers.

Every provider answers `(lat, lon) -> risk in [0, 1]`. Crime and political
risk are synthetic placeholders until a real data source is wired in; they
sit behind the same narrow interface so a real source can replace them
without touching the oracle or the scorer.
"""

import hashlib
import math
from typing import Protocol

from riskwatch.clock import Clock, utc_now
from riskwatch.schemas.anomaly import is_night_hour


class RiskProvider(Protocol):
    """One risk dimension for a coordinate."""

    name: str

    async def risk(self, latitude: float, longitude: float) -> float:
        ...


def _clamp(value: float) -> float:
    return min(max(value, 0.0), 1.0)


class SimulatedCrimeRisk:
    """
    Deterministic crime model: an urban-density wave plus a night bump.

    urban = |sin(2·lat)·cos(2·lon)|·0.4, time = 0.3 at night else 0.1.
    """

    name = "crime"

    def __init__(self, clock: Clock = utc_now):
        self._clock = clock

    async def risk(self, latitude: float, longitude: float) -> float:
        urban_factor = abs(math.sin(latitude * 2) * math.cos(longitude * 2)) * 0.4
        time_factor = 0.3 if is_night_hour(self._clock().hour) else 0.1
        return _clamp(urban_factor + time_factor)


class SimulatedPoliticalRisk:
    """
    Deterministic political model: a regional wave plus coordinate noise.

    The noise term ∈ [0, 0.2) is derived from a hash of the 2-dp coordinate,
    so the same place always scores the same.
    """

    name = "political"

    async def risk(self, latitude: float, longitude: float) -> float:
        region_risk = abs(math.sin(latitude * 0.5)) * 0.3
        return _clamp(region_risk + self._event_noise(latitude, longitude))

    @staticmethod
    def _event_noise(latitude: float, longitude: float) -> float:
        digest = hashlib.sha256(f"{latitude:.2f},{longitude:.2f}".encode()).digest()
        return int.from_bytes(digest[:4], "big") / 2**32 * 0.2
