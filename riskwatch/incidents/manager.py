"""
Incident Lifecycle Manager.

Sole owner of incident state. Creation steps, in order:
1. Mint the incident id (INC-YYYYMMDD-NNNN, in-process counter)
2. Compute priority
3. Synthesise the auto-report
4. Auto-assign the nearest responder (incidents with coordinates only)
5. Persist, or buffer locally when the sink is absent or failing
6. Push dashboard notifications

`create()` never fails the caller. Incidents are never deleted; they end
in CLOSED. Ids are unique within one process lifetime only.
"""

import itertools
import uuid
from typing import Optional, Sequence

import structlog

from riskwatch.alerting.channels import NotificationRouter
from riskwatch.alerting.schemas import NotificationKind, NotificationSeverity
from riskwatch.clock import Clock, utc_now
from riskwatch.errors import IncidentNotFound, InvalidStatusTransition, PersistenceUnavailable
from riskwatch.incidents.assignment import DEFAULT_ROSTER, nearest_responder
from riskwatch.incidents.reports import ReportBuilder
from riskwatch.incidents.store import IncidentStore
from riskwatch.schemas.common import RiskLevel
from riskwatch.schemas.incident import (
    Evidence,
    EvidenceInput,
    Incident,
    IncidentCreate,
    IncidentStatus,
    IncidentType,
    Priority,
    Responder,
    StatusUpdate,
)
from riskwatch.services.blob_storage import BlobStorage

logger = structlog.get_logger(__name__)

COUNTER_START = 1000

CRITICAL_SCORE: float = 0.9
HIGH_ANOMALY_SCORE: float = 0.7

# Allowed moves when strict transitions are enabled. A same-status request
# is always accepted as a remarks-only update.
ALLOWED_TRANSITIONS: dict[IncidentStatus, frozenset[IncidentStatus]] = {
    IncidentStatus.OPEN: frozenset({IncidentStatus.ASSIGNED, IncidentStatus.RESOLVED}),
    IncidentStatus.ASSIGNED: frozenset({IncidentStatus.RESOLVED, IncidentStatus.OPEN}),
    IncidentStatus.RESOLVED: frozenset({IncidentStatus.CLOSED, IncidentStatus.OPEN}),
    IncidentStatus.CLOSED: frozenset(),
}

_LEVEL_PRIORITY = {
    RiskLevel.RED: Priority.HIGH,
    RiskLevel.YELLOW: Priority.MEDIUM,
    RiskLevel.GREEN: Priority.LOW,
}


def compute_priority(
    incident_type: IncidentType,
    score: Optional[float],
    risk_level: RiskLevel,
) -> Priority:
    """
    SOS or score ≥ 0.9 → Critical; Anomaly with score ≥ 0.7 → High;
    otherwise by risk level (Red → High, Yellow → Medium, Green → Low).
    """
    value = score if score is not None else 0.0
    if incident_type == IncidentType.SOS or value >= CRITICAL_SCORE:
        return Priority.CRITICAL
    if incident_type == IncidentType.ANOMALY and value >= HIGH_ANOMALY_SCORE:
        return Priority.HIGH
    return _LEVEL_PRIORITY[risk_level]


def is_transition_allowed(current: IncidentStatus, requested: IncidentStatus) -> bool:
    return requested == current or requested in ALLOWED_TRANSITIONS[current]


def _incident_severity(priority: Priority) -> NotificationSeverity:
    if priority == Priority.CRITICAL:
        return NotificationSeverity.ERROR
    if priority == Priority.HIGH:
        return NotificationSeverity.WARNING
    return NotificationSeverity.INFO


class IncidentLifecycleManager:

    def __init__(
        self,
        store: Optional[IncidentStore] = None,
        reports: Optional[ReportBuilder] = None,
        notifier: Optional[NotificationRouter] = None,
        blob_storage: Optional[BlobStorage] = None,
        roster: Sequence[Responder] = DEFAULT_ROSTER,
        strict_transitions: bool = False,
        clock: Clock = utc_now,
    ):
        self.store = store
        self.reports = reports or ReportBuilder()
        self.notifier = notifier
        self.blob_storage = blob_storage
        self.roster = tuple(roster)
        self.strict_transitions = strict_transitions
        self._clock = clock
        self._counter = itertools.count(COUNTER_START)
        self._incidents: dict[str, Incident] = {}
        self._pending: dict[str, Incident] = {}

    # ── Identity ───────────────────────────────────────────────────────

    def mint_incident_id(self) -> str:
        moment = self._clock()
        return f"INC-{moment:%Y%m%d}-{next(self._counter):04d}"

    # ── Creation ───────────────────────────────────────────────────────

    async def create(self, data: IncidentCreate) -> Incident:
        incident_id = self.mint_incident_id()
        created_at = self._clock()
        subject_name = data.subject_name or f"Subject {data.subject_id}"
        priority = compute_priority(data.type, data.score, data.risk_level)
        report = await self.reports.build(data, subject_name, priority, created_at)

        incident = Incident(
            incident_id=incident_id,
            type=data.type,
            score=data.score,
            risk_level=data.risk_level,
            priority=priority,
            subject_id=data.subject_id,
            subject_name=subject_name,
            affected_subjects=list(data.affected_subjects),
            latitude=data.latitude,
            longitude=data.longitude,
            factors=list(data.factors),
            report=report,
            status=IncidentStatus.OPEN,
            updates=[StatusUpdate(
                status=IncidentStatus.OPEN,
                remarks="Incident created",
                updated_at=created_at,
            )],
            created_at=created_at,
            extra=dict(data.extra),
        )
        self._incidents[incident_id] = incident

        if data.has_location:
            responder = nearest_responder(data.latitude, data.longitude, self.roster)
            if responder is not None:
                self._apply_assignment(incident, responder, "Auto-assigned to nearest responder")

        await self._persist(incident)

        logger.info(
            "incident_created",
            incident_id=incident_id,
            type=data.type.value,
            priority=priority.value,
            subject_id=data.subject_id,
            responder=incident.assigned_responder.responder_id if incident.assigned_responder else None,
        )
        await self._announce(incident)
        return incident

    # ── Mutations ──────────────────────────────────────────────────────

    async def update_status(
        self,
        incident_id: str,
        status: IncidentStatus,
        remarks: str = "",
        updated_by: str = "System",
    ) -> StatusUpdate:
        incident = self.get(incident_id)
        current = incident.status
        if self.strict_transitions and not is_transition_allowed(current, status):
            raise InvalidStatusTransition(incident_id, current.value, status.value)

        update = StatusUpdate(
            status=status,
            previous_status=current,
            remarks=remarks,
            updated_at=self._clock(),
            updated_by=updated_by,
        )
        incident.status = status
        incident.updates.append(update)
        await self._persist(incident)

        logger.info(
            "incident_status_updated",
            incident_id=incident_id,
            previous=current.value,
            status=status.value,
        )
        return update

    async def assign(self, incident_id: str, responder: Responder, updated_by: str = "System") -> Incident:
        incident = self.get(incident_id)
        self._apply_assignment(incident, responder, f"Assigned to {responder.name}", updated_by)
        await self._persist(incident)
        return incident

    async def add_evidence(self, incident_id: str, evidence: EvidenceInput) -> Evidence:
        """Attach evidence; content is uploaded when storage is configured."""
        incident = self.get(incident_id)
        now = self._clock()

        url: Optional[str] = None
        if evidence.content is not None and self.blob_storage is not None:
            filename = evidence.filename or "evidence.bin"
            path = f"evidence/{incident_id}/{int(now.timestamp() * 1000)}_{filename}"
            try:
                url = await self.blob_storage.upload(path, evidence.content, evidence.content_type)
            except Exception as e:
                logger.warning(
                    "evidence_upload_failed",
                    incident_id=incident_id,
                    path=path,
                    error=str(e),
                )

        record = Evidence(
            evidence_id=uuid.uuid4().hex[:12],
            type=evidence.type,
            description=evidence.description,
            url=url,
            timestamp=now,
            added_by=evidence.added_by,
        )
        incident.evidence.append(record)
        await self._persist(incident)
        return record

    # ── Queries ────────────────────────────────────────────────────────

    def get(self, incident_id: str) -> Incident:
        try:
            return self._incidents[incident_id]
        except KeyError:
            raise IncidentNotFound(incident_id) from None

    def list_incidents(
        self,
        status: Optional[IncidentStatus] = None,
        limit: Optional[int] = None,
    ) -> list[Incident]:
        """Incidents newest first, optionally filtered by status."""
        items = [i for i in reversed(self._incidents.values()) if status is None or i.status == status]
        return items[:limit] if limit is not None else items

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def flush_pending(self) -> int:
        """Retry buffered writes. Returns how many reached the sink."""
        if self.store is None or not self._pending:
            return 0
        flushed = 0
        for incident_id in list(self._pending):
            incident = self._pending[incident_id]
            if await self._persist(incident):
                flushed += 1
        if flushed:
            logger.info("pending_incidents_flushed", flushed=flushed, remaining=len(self._pending))
        return flushed

    def __len__(self) -> int:
        return len(self._incidents)

    # ── Internals ──────────────────────────────────────────────────────

    def _apply_assignment(
        self,
        incident: Incident,
        responder: Responder,
        remarks: str,
        updated_by: str = "System",
    ) -> None:
        previous = incident.status
        incident.assigned_responder = responder
        if previous == IncidentStatus.OPEN:
            incident.status = IncidentStatus.ASSIGNED
        incident.report.investigating_officer = responder.name
        incident.updates.append(StatusUpdate(
            status=incident.status,
            previous_status=previous,
            remarks=f"{remarks}: {responder.name} ({responder.responder_id})",
            updated_at=self._clock(),
            updated_by=updated_by,
        ))

    async def _persist(self, incident: Incident) -> bool:
        """Write to the sink; buffer locally on failure. Never raises."""
        if self.store is None:
            return False
        try:
            incident.persistence_id = await self.store.save(incident)
        except PersistenceUnavailable as e:
            self._pending[incident.incident_id] = incident
            logger.warning(
                "incident_buffered_locally",
                incident_id=incident.incident_id,
                pending=len(self._pending),
                error=str(e),
            )
            return False
        except Exception as e:
            self._pending[incident.incident_id] = incident
            logger.error(
                "incident_persist_error",
                incident_id=incident.incident_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False
        self._pending.pop(incident.incident_id, None)
        return True

    async def _announce(self, incident: Incident) -> None:
        if self.notifier is None:
            return
        await self.notifier.notify(
            NotificationSeverity.ERROR if incident.priority == Priority.CRITICAL else NotificationSeverity.WARNING,
            f"{incident.priority.value} priority {incident.type.value} detected for {incident.subject_name}",
            kind=NotificationKind.INCIDENT,
            subject_id=incident.subject_id,
            incident_id=incident.incident_id,
        )
        await self.notifier.notify(
            _incident_severity(incident.priority),
            f"New {incident.type.value} incident: {incident.incident_id} - {incident.subject_name}",
            kind=NotificationKind.INCIDENT,
            subject_id=incident.subject_id,
            incident_id=incident.incident_id,
        )
