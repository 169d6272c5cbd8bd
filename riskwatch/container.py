"""
Service container.

Every service object is built exactly once at process start and passed by
reference to the orchestrator and the API. Absent provider configuration
selects the documented degraded mode for that provider.
"""

from dataclasses import dataclass
from typing import Optional

import structlog

from riskwatch.alerting.channels import InAppFeed, NotificationChannel, NotificationRouter, WebhookDispatcher
from riskwatch.clock import Clock, system_clock
from riskwatch.config import Settings
from riskwatch.db.engine import Database
from riskwatch.engine.anomaly import AnomalyScorer
from riskwatch.engine.correlation import AreaCorrelator
from riskwatch.engine.geofence import GeofenceSet, ZoneWatcher
from riskwatch.engine.risk_oracle import RiskOracle
from riskwatch.incidents.manager import IncidentLifecycleManager
from riskwatch.incidents.reports import ReportBuilder
from riskwatch.incidents.store import SqlIncidentStore
from riskwatch.pipeline.dedup import UpdateLedger
from riskwatch.pipeline.orchestrator import PipelineOrchestrator
from riskwatch.pipeline.subjects import SubjectRegistry
from riskwatch.services.blob_storage import HttpBlobStorage
from riskwatch.services.geocoder import HttpGeocoder
from riskwatch.services.model_client import HttpAnomalyModel
from riskwatch.services.providers import SimulatedCrimeRisk, SimulatedPoliticalRisk
from riskwatch.services.weather_client import WeatherClient

logger = structlog.get_logger(__name__)


@dataclass
class Services:
    settings: Settings
    clock: Clock
    oracle: RiskOracle
    scorer: AnomalyScorer
    correlator: AreaCorrelator
    geofences: GeofenceSet
    feed: InAppFeed
    notifier: NotificationRouter
    incidents: IncidentLifecycleManager
    registry: SubjectRegistry
    orchestrator: PipelineOrchestrator
    database: Optional[Database] = None

    def providers(self) -> dict[str, str]:
        """Which external providers are live vs. degraded, for health checks."""
        s = self.settings
        return {
            "weather": "live" if s.weather_api_key else "simulated",
            "crime": "simulated",
            "political": "simulated",
            "model": "live" if s.model_url else "local-fallback",
            "geocoder": "live" if s.geocode_url else "coordinates",
            "blob_storage": "live" if s.blob_storage_url else "disabled",
            "persistence": "sql" if self.database else "local-buffer",
            "webhook": "live" if s.notification_webhook_url else "disabled",
        }

    async def startup(self) -> None:
        if self.database is not None:
            await self.database.create_all()

    async def shutdown(self) -> None:
        await self.orchestrator.stop()
        if self.database is not None:
            await self.database.dispose()


def build_services(settings: Settings, clock: Optional[Clock] = None) -> Services:
    clock = clock or system_clock(settings.local_timezone)
    timeout = settings.provider_timeout_seconds

    oracle = RiskOracle(
        weather=WeatherClient(
            base_url=settings.weather_url,
            api_key=settings.weather_api_key,
            timeout=timeout,
            retry_attempts=settings.provider_retry_attempts,
            clock=clock,
        ),
        crime=SimulatedCrimeRisk(clock=clock),
        political=SimulatedPoliticalRisk(),
        timeout=timeout,
        clock=clock,
        weather_ttl=settings.weather_ttl_seconds,
        crime_ttl=settings.crime_ttl_seconds,
        political_ttl=settings.political_ttl_seconds,
        max_entries=settings.cache_max_entries,
    )

    model = None
    if settings.model_url:
        model = HttpAnomalyModel(settings.model_url, api_token=settings.model_api_token, timeout=timeout)
    scorer = AnomalyScorer(model=model, timeout=timeout, clock=clock)

    geofences = (
        GeofenceSet.load(settings.geofence_path) if settings.geofence_path else GeofenceSet.default()
    )

    feed = InAppFeed(max_size=settings.notification_feed_size)
    channels: list[NotificationChannel] = [feed]
    if settings.notification_webhook_url:
        channels.append(WebhookDispatcher(settings.notification_webhook_url, timeout=timeout))
    notifier = NotificationRouter(channels, clock=clock)

    database = Database(settings.database_url, echo=settings.debug) if settings.persistence_enabled else None
    incidents = IncidentLifecycleManager(
        store=SqlIncidentStore(database) if database else None,
        reports=ReportBuilder(
            geocoder=HttpGeocoder(settings.geocode_url, timeout=timeout) if settings.geocode_url else None,
            station_code=settings.report_station_code,
            timeout=timeout,
        ),
        notifier=notifier,
        blob_storage=HttpBlobStorage(settings.blob_storage_url) if settings.blob_storage_url else None,
        strict_transitions=settings.strict_status_transitions,
        clock=clock,
    )

    correlator = AreaCorrelator(
        cell_size=settings.area_cell_size,
        min_members=settings.group_min_members,
    )
    registry = SubjectRegistry()
    orchestrator = PipelineOrchestrator(
        oracle=oracle,
        scorer=scorer,
        correlator=correlator,
        zones=ZoneWatcher(geofences),
        incidents=incidents,
        notifier=notifier,
        ledger=UpdateLedger(
            max_entries=settings.dedup_max_entries,
            window_minutes=settings.dedup_window_minutes,
        ),
        registry=registry,
        anomaly_threshold=settings.anomaly_threshold,
        group_incident_score=settings.group_incident_score,
        max_concurrency=settings.max_concurrency,
        provider_timeout=timeout,
        derived_risk_ttl=settings.derived_risk_ttl_seconds,
        cache_max_entries=settings.cache_max_entries,
        clock=clock,
    )

    services = Services(
        settings=settings,
        clock=clock,
        oracle=oracle,
        scorer=scorer,
        correlator=correlator,
        geofences=geofences,
        feed=feed,
        notifier=notifier,
        incidents=incidents,
        registry=registry,
        orchestrator=orchestrator,
        database=database,
    )
    logger.info("services_built", providers=services.providers(), geofences=len(geofences))
    return services
