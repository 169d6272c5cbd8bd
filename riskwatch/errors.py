"""
Error taxonomy.

- InvalidCoordinate: caller error, raised immediately
- ProviderUnavailable: external risk/model/geocode/storage failure, always
  recovered locally with a degraded value
- PersistenceUnavailable: incident write failure, recovered by local buffering
- IncidentNotFound / InvalidStatusTransition: lifecycle caller errors
"""

from typing import Optional


class RiskWatchError(Exception):
    """Base class for all RiskWatch errors."""


class InvalidCoordinate(RiskWatchError, ValueError):
    """Latitude/longitude missing, non-numeric, or out of range."""

    def __init__(self, latitude, longitude, reason: str = "out of range"):
        self.latitude = latitude
        self.longitude = longitude
        self.reason = reason
        super().__init__(f"Invalid coordinate ({latitude}, {longitude}): {reason}")


class ProviderUnavailable(RiskWatchError):
    """An external provider failed, timed out, or is not configured."""

    def __init__(self, provider: str, detail: Optional[str] = None):
        self.provider = provider
        self.detail = detail or "unavailable"
        super().__init__(f"Provider '{provider}' unavailable: {self.detail}")


class PersistenceUnavailable(RiskWatchError):
    """The durable incident sink rejected or could not accept a write."""


class IncidentNotFound(RiskWatchError, KeyError):
    def __init__(self, incident_id: str):
        self.incident_id = incident_id
        super().__init__(f"Incident '{incident_id}' not found")

    def __str__(self) -> str:
        return self.args[0]


class InvalidStatusTransition(RiskWatchError):
    def __init__(self, incident_id: str, current: str, requested: str):
        self.incident_id = incident_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Incident '{incident_id}' cannot move from {current} to {requested}"
        )
