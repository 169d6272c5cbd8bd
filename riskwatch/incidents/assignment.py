"""Nearest-responder assignment over a known roster."""

from typing import Optional, Sequence

from riskwatch.geo import haversine_km
from riskwatch.schemas.incident import Responder

DEFAULT_ROSTER: tuple[Responder, ...] = (
    Responder(responder_id="OFF001", name="Officer Smith", latitude=28.6139, longitude=77.209),
    Responder(responder_id="OFF002", name="Officer Johnson", latitude=28.6289, longitude=77.2065),
    Responder(responder_id="OFF003", name="Officer Brown", latitude=28.6169, longitude=77.2090),
)


def nearest_responder(
    latitude: float,
    longitude: float,
    roster: Sequence[Responder],
) -> Optional[Responder]:
    """Closest responder by great-circle distance; ties go to roster order."""
    nearest: Optional[Responder] = None
    best = float("inf")
    for responder in roster:
        distance = haversine_km(latitude, longitude, responder.latitude, responder.longitude)
        if distance < best:
            best = distance
            nearest = responder
    return nearest
