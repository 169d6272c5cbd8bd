"""
Pipeline Orchestrator.

Per batch:
0. Screen updates: redeliveries and unlocated subjects are skipped, an
   invalid coordinate counts the subject as failed
1. Refresh the subject projection and run the zone watcher on fresh updates
2. Build the area-cell grouping once
3. For every fresh subject the ledger accepts: assess location risk,
   build the scoring context, score, record the result on the projection,
   and raise an Anomaly incident when the score crosses the threshold
4. Run group-anomaly detection for cells with enough members and raise
   group-scoped incidents

Batches never overlap. Subjects within a batch run concurrently under a
bounded semaphore; a failure in one subject never stops the others.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

import structlog

from riskwatch.alerting.channels import NotificationRouter
from riskwatch.alerting.schemas import NotificationKind, NotificationSeverity
from riskwatch.clock import Clock, utc_now
from riskwatch.engine.anomaly import AnomalyScorer
from riskwatch.engine.correlation import AreaCorrelator, AreaGroup
from riskwatch.engine.geofence import ZoneTransition, ZoneWatcher
from riskwatch.engine.risk_oracle import RiskOracle
from riskwatch.geo import validate_coordinate
from riskwatch.incidents.manager import IncidentLifecycleManager
from riskwatch.pipeline.dedup import UpdateLedger
from riskwatch.pipeline.source import Teardown, UpdateSource
from riskwatch.pipeline.subjects import SubjectRegistry
from riskwatch.schemas.anomaly import HistoricalPattern, ScoringContext, TimeContext
from riskwatch.schemas.common import RiskLevel
from riskwatch.schemas.incident import IncidentCreate, IncidentType
from riskwatch.schemas.risk import RiskSnapshot
from riskwatch.schemas.subject import SubjectUpdate
from riskwatch.services.cache import DERIVED_RISK_TTL, TTLStore, derived_risk_key
from riskwatch.services.resilience import call_with_fallback

logger = structlog.get_logger(__name__)


class HistoryProvider(Protocol):
    async def pattern(self, subject_id: str) -> HistoricalPattern:
        ...


class EmptyHistory:
    """History source for deployments without a visit store: no history."""

    async def pattern(self, subject_id: str) -> HistoricalPattern:
        return HistoricalPattern()


@dataclass
class BatchSummary:
    batch_id: str
    received: int = 0
    processed: int = 0
    skipped_duplicates: int = 0
    skipped_unlocated: int = 0
    failed: int = 0
    incidents: list[str] = field(default_factory=list)
    group_incidents: list[str] = field(default_factory=list)
    zone_notifications: int = 0
    duration_ms: float = 0.0


@dataclass(frozen=True)
class _SubjectOutcome:
    status: str                     # processed / duplicate / failed
    incident_id: Optional[str] = None


class PipelineOrchestrator:

    def __init__(
        self,
        oracle: RiskOracle,
        scorer: AnomalyScorer,
        correlator: AreaCorrelator,
        zones: ZoneWatcher,
        incidents: IncidentLifecycleManager,
        notifier: NotificationRouter,
        ledger: Optional[UpdateLedger] = None,
        registry: Optional[SubjectRegistry] = None,
        history: Optional[HistoryProvider] = None,
        anomaly_threshold: float = 0.7,
        group_incident_score: float = 0.8,
        max_concurrency: int = 16,
        provider_timeout: float = 5.0,
        derived_risk_ttl: float = DERIVED_RISK_TTL,
        cache_max_entries: int = 50_000,
        clock: Clock = utc_now,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.oracle = oracle
        self.scorer = scorer
        self.correlator = correlator
        self.zones = zones
        self.incidents = incidents
        self.notifier = notifier
        self.ledger = ledger or UpdateLedger()
        self.registry = registry or SubjectRegistry()
        self.history = history or EmptyHistory()
        self.anomaly_threshold = anomaly_threshold
        self.group_incident_score = group_incident_score
        self.provider_timeout = provider_timeout
        self._clock = clock
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._batch_lock = asyncio.Lock()
        self._derived = TTLStore("derived_risk", derived_risk_ttl, cache_max_entries, timer)
        self._teardown: Optional[Teardown] = None

    # ── Lifecycle ──────────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._teardown is not None

    async def start(self, source: UpdateSource) -> None:
        if self._teardown is not None:
            raise RuntimeError("orchestrator already started")
        self._teardown = await source.subscribe(self.process_batch)
        logger.info("pipeline_started")

    async def stop(self) -> None:
        """Stop listening and drop all per-run state."""
        teardown, self._teardown = self._teardown, None
        if teardown is not None:
            await teardown()
        async with self._batch_lock:
            self.ledger.reset()
            self.registry.clear()
            self.zones.reset()
            self._derived.clear()
            self.oracle.clear()
        logger.info("pipeline_stopped")

    def purge_expired(self) -> dict[str, int]:
        """Maintenance: drop expired ledger and cache entries."""
        return {
            "ledger": self.ledger.purge_expired(),
            "derived_risk": self._derived.purge_expired(),
            "provider_risk": self.oracle.purge_expired(),
        }

    # ── Batch processing ───────────────────────────────────────────────

    async def process_batch(self, updates: list[SubjectUpdate]) -> BatchSummary:
        async with self._batch_lock:
            batch_id = uuid.uuid4().hex[:12]
            structlog.contextvars.bind_contextvars(batch_id=batch_id)
            started = time.perf_counter()
            try:
                summary = await self._run_batch(batch_id, updates)
            finally:
                structlog.contextvars.unbind_contextvars("batch_id")
            summary.duration_ms = round((time.perf_counter() - started) * 1000, 2)

        logger.info(
            "batch_processed",
            batch_id=batch_id,
            received=summary.received,
            processed=summary.processed,
            duplicates=summary.skipped_duplicates,
            unlocated=summary.skipped_unlocated,
            failed=summary.failed,
            incidents=len(summary.incidents),
            group_incidents=len(summary.group_incidents),
            duration_ms=summary.duration_ms,
        )
        return summary

    async def _run_batch(self, batch_id: str, updates: list[SubjectUpdate]) -> BatchSummary:
        summary = BatchSummary(batch_id=batch_id, received=len(updates))

        fresh: list[SubjectUpdate] = []
        for update in updates:
            status = self._screen(update)
            if status == "duplicate":
                summary.skipped_duplicates += 1
            elif status == "unlocated":
                summary.skipped_unlocated += 1
            elif status == "failed":
                summary.failed += 1
            else:
                fresh.append(update)

        for update in fresh:
            self.registry.observe(update)
            transition = self.zones.observe(update)
            if transition is not None:
                await self._notify_zone_entry(transition)
                summary.zone_notifications += 1

        cells = self.correlator.group_by_cell(fresh)
        projections = self.registry.projections()
        groups: dict[str, AreaGroup] = {}
        subject_cell: dict[str, str] = {}
        for key, members in cells.items():
            groups[key] = self.correlator.area_group(key, members, projections)
            for member in members:
                subject_cell[member.subject_id] = key

        outcomes = await asyncio.gather(*[
            self._process_subject(update, groups.get(subject_cell.get(update.subject_id, "")))
            for update in fresh
        ])

        processed_ids: set[str] = set()
        for update, outcome in zip(fresh, outcomes):
            if outcome.status == "duplicate":
                summary.skipped_duplicates += 1
            elif outcome.status == "failed":
                summary.failed += 1
            else:
                summary.processed += 1
                processed_ids.add(update.subject_id)
                if outcome.incident_id:
                    summary.incidents.append(outcome.incident_id)

        for key, members in self.correlator.eligible(cells).items():
            # Cells with no freshly processed member were already evaluated
            if not any(m.subject_id in processed_ids for m in members):
                continue
            incident_id = await self._evaluate_group(key, members)
            if incident_id:
                summary.group_incidents.append(incident_id)

        return summary

    def _screen(self, update: SubjectUpdate) -> str:
        """
        Classify an update before any state is touched.

        Redeliveries must not refresh the projection or the zone state, and
        a bad coordinate must never reach the cell grouping.
        """
        if self.ledger.seen(update):
            logger.debug(
                "update_suppressed_duplicate",
                subject_id=update.subject_id,
                marker=update.update_marker,
            )
            return "duplicate"
        if not update.reports_location:
            logger.info("subject_skipped_unlocated", subject_id=update.subject_id)
            return "unlocated"
        if not update.has_location:
            logger.warning(
                "subject_coordinate_rejected",
                subject_id=update.subject_id,
                lat=update.latitude,
                lon=update.longitude,
            )
            return "failed"
        return "fresh"

    async def _process_subject(
        self,
        update: SubjectUpdate,
        group: Optional[AreaGroup],
    ) -> _SubjectOutcome:
        if not self.ledger.claim(update):
            return _SubjectOutcome("duplicate")

        async with self._semaphore:
            try:
                return await self._score_subject(update, group)
            except Exception as e:
                self.ledger.release(update)
                logger.error(
                    "subject_processing_failed",
                    subject_id=update.subject_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return _SubjectOutcome("failed")

    async def _score_subject(
        self,
        update: SubjectUpdate,
        group: Optional[AreaGroup],
    ) -> _SubjectOutcome:
        risk = await self.location_risk(update.latitude, update.longitude)
        context = ScoringContext(
            risk=risk,
            group=self.correlator.group_context(group),
            history=await call_with_fallback(
                lambda: self.history.pattern(update.subject_id),
                timeout=self.provider_timeout,
                fallback=HistoricalPattern(),
                provider="history",
                subject_id=update.subject_id,
            ),
            time=TimeContext.at(self._clock()),
        )
        result = await self.scorer.score(update, context)
        self.registry.record_risk(update, result, risk)

        if result.score < self.anomaly_threshold:
            return _SubjectOutcome("processed")

        incident = await self.incidents.create(IncidentCreate(
            type=IncidentType.ANOMALY,
            score=result.score,
            risk_level=result.risk_level,
            subject_id=update.subject_id,
            subject_name=update.display_name,
            latitude=update.latitude,
            longitude=update.longitude,
            factors=result.factors,
            location_risk=risk,
            group_id=update.group_key,
            group_size=len(group.member_ids) if group else None,
            emergency_contact=update.emergency_contact,
            timestamp=result.timestamp,
            extra={"source": result.source.value},
        ))
        await self.notifier.notify(
            NotificationSeverity.ERROR if result.risk_level == RiskLevel.RED else NotificationSeverity.WARNING,
            f"Detected {result.risk_level.value.lower()} risk anomaly for {update.display_name}",
            kind=NotificationKind.ANOMALY,
            subject_id=update.subject_id,
            incident_id=incident.incident_id,
        )
        return _SubjectOutcome("processed", incident.incident_id)

    async def location_risk(self, latitude: float, longitude: float) -> RiskSnapshot:
        """Risk snapshot through the short-lived derived cache. Degraded values are not cached."""
        lat, lon = validate_coordinate(latitude, longitude)
        key = derived_risk_key(lat, lon)
        cached = self._derived.get(key)
        if cached is not None:
            return cached
        snapshot = await self.oracle.assess(lat, lon)
        if not snapshot.degraded:
            await self._derived.set(key, snapshot)
        return snapshot

    async def _evaluate_group(self, cell_key: str, members: list[SubjectUpdate]) -> Optional[str]:
        projections = [p for m in members if (p := self.registry.get(m.subject_id)) is not None]
        pattern = self.correlator.detect_group_anomaly(projections)
        if not pattern.anomalous:
            return None

        center = self.correlator.group_centroid(members)
        member_ids = [m.subject_id for m in members]
        try:
            incident = await self.incidents.create(IncidentCreate(
                type=IncidentType.GROUP_ANOMALY,
                score=self.group_incident_score,
                risk_level=RiskLevel.RED,
                subject_id=f"group-{cell_key}",
                subject_name=f"Group in area {cell_key}",
                affected_subjects=member_ids,
                latitude=center[0] if center else None,
                longitude=center[1] if center else None,
                factors=pattern.factors,
                group_size=len(member_ids),
                timestamp=self._clock(),
                extra={
                    "cell_key": cell_key,
                    "avg_speed": round(pattern.avg_speed, 2),
                    "risk_distribution": pattern.risk_distribution,
                },
            ))
        except Exception as e:
            logger.error("group_incident_failed", cell_key=cell_key, error=str(e))
            return None

        await self.notifier.notify(
            NotificationSeverity.ERROR,
            f"Group anomaly detected: {len(member_ids)} subjects in area {cell_key}",
            kind=NotificationKind.GROUP_ANOMALY,
            incident_id=incident.incident_id,
        )
        return incident.incident_id

    async def _notify_zone_entry(self, transition: ZoneTransition) -> None:
        await self.notifier.notify(
            NotificationSeverity.ERROR if transition.level == RiskLevel.RED else NotificationSeverity.WARNING,
            f"{transition.subject_name} entered {transition.level.value} zone",
            kind=NotificationKind.ZONE_ENTRY,
            subject_id=transition.subject_id,
        )
