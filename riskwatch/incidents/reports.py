"""
Incident report synthesis.

Builds the auto-generated first information report attached to every
incident: report number, resolved address, jurisdiction, category,
templated description, victim block and the raw evidence bundle.

Report numbers are `FIR-<station>-<year>-<4 random digits>`: random, not
unique. The incident id is the durable key.
"""

import random
from datetime import datetime
from typing import Optional

from riskwatch.schemas.incident import (
    EvidenceBundle,
    IncidentCreate,
    IncidentReport,
    IncidentType,
    Priority,
    ReportLocation,
    ReportVictim,
)
from riskwatch.services.geocoder import Geocoder, coordinate_address
from riskwatch.services.resilience import call_with_fallback

CATEGORIES: dict[IncidentType, str] = {
    IncidentType.SOS: "Emergency Assistance",
    IncidentType.ANOMALY: "Suspicious Activity",
    IncidentType.ZONE_BREACH: "Restricted Area Entry",
    IncidentType.GROUP_SEPARATION: "Missing Person Alert",
    IncidentType.ROUTE_DEVIATION: "Lost Subject",
    IncidentType.GROUP_ANOMALY: "Group Safety Alert",
}
DEFAULT_CATEGORY = "General Incident"
DEFAULT_JURISDICTION = "Central Police Station"
UNKNOWN_ADDRESS = "Unknown location"


def categorize(incident_type: IncidentType) -> str:
    return CATEGORIES.get(incident_type, DEFAULT_CATEGORY)


def jurisdiction_for(latitude: Optional[float], longitude: Optional[float]) -> str:
    """Coordinate-range lookup; Central when nothing matches."""
    if latitude is None or longitude is None:
        return DEFAULT_JURISDICTION
    if 28.6 < latitude < 28.7 and 77.2 < longitude < 77.3:
        return "New Delhi Police Station"
    if 28.5 < latitude < 28.6:
        return "South Delhi Police Station"
    return DEFAULT_JURISDICTION


def describe(data: IncidentCreate, subject_name: str) -> str:
    score = f"{data.score:.2f}" if data.score is not None else "N/A"
    factors = ", ".join(data.factors) if data.factors else "None"
    return (
        f"System detected {data.type.value.lower()} for subject {subject_name} "
        f"at coordinates {data.latitude}, {data.longitude}. "
        f"Anomaly score: {score}. "
        f"Risk factors: {factors}. "
        f"Immediate attention required."
    )


class ReportBuilder:
    """Synthesises an IncidentReport; address lookup degrades to raw coordinates."""

    def __init__(
        self,
        geocoder: Optional[Geocoder] = None,
        station_code: str = "001",
        timeout: float = 5.0,
        rng: Optional[random.Random] = None,
    ):
        self.geocoder = geocoder
        self.timeout = timeout
        self.station_code = station_code
        self._rng = rng or random.Random()

    def report_number(self, year: int) -> str:
        serial = self._rng.randint(1, 9999)
        return f"FIR-{self.station_code}-{year}-{serial:04d}"

    async def resolve_address(self, latitude: Optional[float], longitude: Optional[float]) -> str:
        if latitude is None or longitude is None:
            return UNKNOWN_ADDRESS
        fallback = coordinate_address(latitude, longitude)
        if self.geocoder is None:
            return fallback
        return await call_with_fallback(
            lambda: self.geocoder.reverse(latitude, longitude),
            timeout=self.timeout,
            fallback=fallback,
            provider="geocoder",
            lat=latitude,
            lon=longitude,
        )

    async def build(
        self,
        data: IncidentCreate,
        subject_name: str,
        priority: Priority,
        created_at: datetime,
    ) -> IncidentReport:
        address = await self.resolve_address(data.latitude, data.longitude)
        return IncidentReport(
            report_number=self.report_number(created_at.year),
            created_at=created_at,
            location=ReportLocation(
                latitude=data.latitude,
                longitude=data.longitude,
                address=address,
                jurisdiction=jurisdiction_for(data.latitude, data.longitude),
            ),
            category=categorize(data.type),
            description=describe(data, subject_name),
            severity=priority,
            victim=ReportVictim(
                name=subject_name,
                subject_id=data.subject_id,
                group_id=data.group_id,
                contact=data.emergency_contact,
            ),
            evidence=EvidenceBundle(
                latitude=data.latitude,
                longitude=data.longitude,
                score=data.score,
                factors=list(data.factors),
                timestamp=data.timestamp or created_at,
            ),
        )
