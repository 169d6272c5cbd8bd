"""Reverse geocoding client: `(lat, lon) -> address string`."""

from typing import Optional, Protocol

import httpx

from riskwatch.errors import ProviderUnavailable
from riskwatch.services.resilience import CircuitBreaker

ADDRESS_PARTS = ("locality", "city", "principalSubdivision", "countryName")


class Geocoder(Protocol):
    async def reverse(self, latitude: float, longitude: float) -> str:
        ...


def coordinate_address(latitude: float, longitude: float) -> str:
    """Degraded address: the raw coordinates."""
    return f"{latitude}, {longitude}"


def _address_from_payload(data: dict) -> Optional[str]:
    if data.get("display_name"):
        return str(data["display_name"])
    parts: list[str] = []
    for key in ADDRESS_PARTS:
        value = data.get(key)
        if value and value not in parts:
            parts.append(str(value))
    return ", ".join(parts) or None


class HttpGeocoder:
    """BigDataCloud-style reverse geocoder."""

    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        breaker: Optional[CircuitBreaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout
        self._breaker = breaker or CircuitBreaker(name="geocoder", failure_threshold=5)
        self._transport = transport

    async def reverse(self, latitude: float, longitude: float) -> str:
        try:
            address = await self._breaker.call(self._lookup, latitude, longitude)
        except Exception as e:
            raise ProviderUnavailable("geocoder", str(e)) from e
        if not address:
            raise ProviderUnavailable("geocoder", "empty address")
        return address

    async def _lookup(self, latitude: float, longitude: float) -> Optional[str]:
        params = {
            "latitude": latitude,
            "longitude": longitude,
            "localityLanguage": "en",
        }
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            resp = await client.get(self.url, params=params)
            resp.raise_for_status()
            return _address_from_payload(resp.json())
