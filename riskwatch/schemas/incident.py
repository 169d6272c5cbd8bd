"""
Incident schemas.

An Incident is created by the lifecycle manager on a threshold breach and is
mutated only through its status / assignment / evidence operations. Incidents
are never deleted; they end in CLOSED.
"""

from datetime import datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, Field

from riskwatch.schemas.common import RiskLevel
from riskwatch.schemas.risk import RiskSnapshot


class IncidentType(StrEnum):
    SOS = "SOS"
    ANOMALY = "Anomaly"
    GROUP_ANOMALY = "Group Anomaly"
    ZONE_BREACH = "Zone Breach"
    GROUP_SEPARATION = "Group Separation"
    ROUTE_DEVIATION = "Route Deviation"
    OTHER = "Other"


class Priority(StrEnum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class IncidentStatus(StrEnum):
    OPEN = "Open"
    ASSIGNED = "Assigned"
    RESOLVED = "Resolved"
    CLOSED = "Closed"


# ── Inputs ─────────────────────────────────────────────────────────────


class IncidentCreate(BaseModel):
    """Everything the caller knows when an incident is raised."""
    type: IncidentType
    score: Optional[float] = None
    risk_level: RiskLevel = RiskLevel.GREEN
    subject_id: str
    subject_name: Optional[str] = None
    affected_subjects: list[str] = Field(default_factory=list)
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    factors: list[str] = Field(default_factory=list)
    location_risk: Optional[RiskSnapshot] = None
    group_id: Optional[str] = None
    group_size: Optional[int] = None
    emergency_contact: Optional[str] = None
    timestamp: Optional[datetime] = None
    extra: dict = Field(default_factory=dict)

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class EvidenceInput(BaseModel):
    type: str
    description: str = ""
    filename: Optional[str] = None
    content: Optional[bytes] = None
    content_type: str = "application/octet-stream"
    added_by: str = "System"


# ── Report ─────────────────────────────────────────────────────────────


class ReportLocation(BaseModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: str
    jurisdiction: str


class ReportVictim(BaseModel):
    name: str
    subject_id: str
    group_id: Optional[str] = None
    contact: Optional[str] = None


class EvidenceBundle(BaseModel):
    """Raw evidence captured when the report is synthesised."""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    score: Optional[float] = None
    factors: list[str] = Field(default_factory=list)
    timestamp: Optional[datetime] = None


class IncidentReport(BaseModel):
    """Auto-generated first information report."""
    report_number: str
    created_at: datetime
    location: ReportLocation
    complainant: str = "System Generated"
    category: str
    description: str
    severity: Priority
    victim: ReportVictim
    evidence: EvidenceBundle
    status: str = "Registered"
    investigating_officer: Optional[str] = None
    remarks: str = "Auto-generated based on anomaly detection"


# ── Lifecycle records ──────────────────────────────────────────────────


class Responder(BaseModel):
    responder_id: str
    name: str
    latitude: float
    longitude: float


class StatusUpdate(BaseModel):
    """One entry of the incident's audit log."""
    status: IncidentStatus
    previous_status: Optional[IncidentStatus] = None
    remarks: str = ""
    updated_at: datetime
    updated_by: str = "System"


class Evidence(BaseModel):
    evidence_id: str
    type: str
    description: str = ""
    url: Optional[str] = None
    timestamp: datetime
    added_by: str = "System"


class Incident(BaseModel):
    """Durable incident record."""
    incident_id: str
    persistence_id: Optional[str] = None
    type: IncidentType
    score: Optional[float] = None
    risk_level: RiskLevel
    priority: Priority
    subject_id: str
    subject_name: str
    affected_subjects: list[str] = Field(default_factory=list)
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    factors: list[str] = Field(default_factory=list)
    report: IncidentReport
    status: IncidentStatus = IncidentStatus.OPEN
    assigned_responder: Optional[Responder] = None
    updates: list[StatusUpdate] = Field(default_factory=list)
    evidence: list[Evidence] = Field(default_factory=list)
    created_at: datetime
    extra: dict = Field(default_factory=dict)


class StatusChangeRequest(BaseModel):
    status: IncidentStatus
    remarks: str = ""
    updated_by: str = "System"
