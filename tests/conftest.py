"""
Test fixtures for RiskWatch.

Provides:
- Frozen clocks (night / afternoon) and a manual monotonic timer
- Fake risk providers, anomaly model, geocoder, blob storage and sinks
- SubjectUpdate / IncidentCreate factories
- Pre-wired oracle, scorer, incident manager and orchestrator
- FastAPI test client over ASGITransport (no lifespan, no network)
"""

import asyncio
import uuid
from datetime import datetime, timezone
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from riskwatch.alerting.channels import InAppFeed, NotificationRouter
from riskwatch.api.app import create_app
from riskwatch.clock import fixed_clock
from riskwatch.config import Settings
from riskwatch.container import build_services
from riskwatch.engine.anomaly import AnomalyScorer
from riskwatch.engine.correlation import AreaCorrelator
from riskwatch.engine.geofence import GeofenceSet, ZoneWatcher
from riskwatch.engine.risk_oracle import RiskOracle
from riskwatch.errors import PersistenceUnavailable, ProviderUnavailable
from riskwatch.incidents.manager import IncidentLifecycleManager
from riskwatch.incidents.reports import ReportBuilder
from riskwatch.pipeline.dedup import UpdateLedger
from riskwatch.pipeline.orchestrator import PipelineOrchestrator
from riskwatch.pipeline.subjects import SubjectRegistry
from riskwatch.schemas.incident import Incident, IncidentCreate, IncidentType
from riskwatch.schemas.subject import SubjectUpdate

NIGHT = datetime(2025, 1, 15, 23, 30, tzinfo=timezone.utc)       # Wednesday
AFTERNOON = datetime(2025, 1, 15, 15, 0, tzinfo=timezone.utc)

CONNAUGHT_PLACE = (28.6139, 77.2090)


# ── Fakes ────────────────────────────────────────────────────────────────


class ManualTimer:
    """Monotonic timer the test advances by hand."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StaticRisk:
    """Risk provider returning a constant, counting its calls."""

    def __init__(self, name: str, value: float = 0.2, delay: float = 0.0, error: Optional[Exception] = None):
        self.name = name
        self.value = value
        self.delay = delay
        self.error = error
        self.calls = 0

    async def risk(self, latitude: float, longitude: float) -> float:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.value


class FakeModel:
    def __init__(self, confidence: float = 0.5, error: Optional[Exception] = None, delay: float = 0.0):
        self.confidence = confidence
        self.error = error
        self.delay = delay
        self.inputs: list[str] = []

    async def classify(self, text: str) -> float:
        self.inputs.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.confidence


class FakeGeocoder:
    def __init__(self, address: str = "Connaught Place, New Delhi", error: Optional[Exception] = None):
        self.address = address
        self.error = error

    async def reverse(self, latitude: float, longitude: float) -> str:
        if self.error is not None:
            raise self.error
        return self.address


class FakeBlobStorage:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.uploads: list[tuple[str, bytes, str]] = []

    async def upload(self, path: str, content: bytes, content_type: str) -> str:
        if self.fail:
            raise ProviderUnavailable("blob_storage", "bucket offline")
        self.uploads.append((path, content, content_type))
        return f"https://blobs.test/{path}"


class InMemoryIncidentStore:
    """Dict-backed sink; reissues the same persistence id on re-save."""

    def __init__(self):
        self._items: dict[str, Incident] = {}
        self._ids: dict[str, str] = {}

    async def save(self, incident: Incident) -> str:
        persistence_id = self._ids.setdefault(incident.incident_id, str(uuid.uuid4()))
        self._items[incident.incident_id] = incident.model_copy(
            update={"persistence_id": persistence_id},
            deep=True,
        )
        return persistence_id

    async def get(self, incident_id: str) -> Optional[Incident]:
        return self._items.get(incident_id)

    def __len__(self) -> int:
        return len(self._items)


class FlakyStore(InMemoryIncidentStore):
    """In-memory sink that rejects writes while `down` is set."""

    def __init__(self, down: bool = True):
        super().__init__()
        self.down = down
        self.attempts = 0

    async def save(self, incident):
        self.attempts += 1
        if self.down:
            raise PersistenceUnavailable("sink offline")
        return await super().save(incident)


# ── Clock / timer fixtures ───────────────────────────────────────────────


@pytest.fixture
def night_clock():
    return fixed_clock(NIGHT)


@pytest.fixture
def afternoon_clock():
    return fixed_clock(AFTERNOON)


@pytest.fixture
def timer():
    return ManualTimer()


# ── Fake factories ───────────────────────────────────────────────────────


@pytest.fixture
def static_risk():
    return StaticRisk


@pytest.fixture
def fake_model():
    return FakeModel


@pytest.fixture
def fake_geocoder():
    return FakeGeocoder


@pytest.fixture
def fake_blob_storage():
    return FakeBlobStorage


@pytest.fixture
def flaky_store():
    return FlakyStore


@pytest.fixture
def make_update():
    """Factory for SubjectUpdate with central-Delhi defaults."""

    def _make_update(subject_id: str = "T1", **fields) -> SubjectUpdate:
        defaults = {
            "subject_id": subject_id,
            "name": f"Tourist {subject_id}",
            "latitude": CONNAUGHT_PLACE[0],
            "longitude": CONNAUGHT_PLACE[1],
            "speed": 5.0,
            "update_marker": 1,
        }
        defaults.update(fields)
        return SubjectUpdate(**defaults)

    return _make_update


@pytest.fixture
def make_incident_data():
    """Factory for IncidentCreate."""

    def _make_incident_data(**fields) -> IncidentCreate:
        defaults = {
            "type": IncidentType.ANOMALY,
            "score": 0.75,
            "subject_id": "T1",
            "subject_name": "Tourist T1",
            "latitude": CONNAUGHT_PLACE[0],
            "longitude": CONNAUGHT_PLACE[1],
            "factors": ["High speed detected"],
        }
        defaults.update(fields)
        return IncidentCreate(**defaults)

    return _make_incident_data


# ── Component fixtures ───────────────────────────────────────────────────


@pytest.fixture
def make_oracle(night_clock, timer):
    """Factory for a RiskOracle over constant providers."""

    def _make_oracle(weather=0.2, crime=0.3, political=0.1, **kwargs) -> RiskOracle:
        providers = {
            "weather": weather if isinstance(weather, StaticRisk) else StaticRisk("weather", weather),
            "crime": crime if isinstance(crime, StaticRisk) else StaticRisk("crime", crime),
            "political": political if isinstance(political, StaticRisk) else StaticRisk("political", political),
        }
        kwargs.setdefault("clock", night_clock)
        kwargs.setdefault("timer", timer)
        kwargs.setdefault("timeout", 0.5)
        return RiskOracle(**providers, **kwargs)

    return _make_oracle


@pytest.fixture
def feed():
    return InAppFeed(max_size=100)


@pytest.fixture
def notifier(feed, night_clock):
    return NotificationRouter([feed], clock=night_clock)


@pytest.fixture
def incident_store():
    return InMemoryIncidentStore()


@pytest.fixture
def incident_manager(incident_store, notifier, night_clock):
    return IncidentLifecycleManager(
        store=incident_store,
        reports=ReportBuilder(),
        notifier=notifier,
        clock=night_clock,
    )


@pytest.fixture
def make_orchestrator(make_oracle, incident_manager, notifier, night_clock, timer):
    """Factory for a fully wired orchestrator; risk components are overridable."""

    def _make_orchestrator(weather=0.2, crime=0.3, political=0.1, model=None, **kwargs) -> PipelineOrchestrator:
        kwargs.setdefault("clock", night_clock)
        kwargs.setdefault("timer", timer)
        kwargs.setdefault("provider_timeout", 0.5)
        return PipelineOrchestrator(
            oracle=make_oracle(weather, crime, political),
            scorer=AnomalyScorer(model=model, timeout=0.5, clock=night_clock),
            correlator=AreaCorrelator(),
            zones=ZoneWatcher(GeofenceSet.default()),
            incidents=incident_manager,
            notifier=notifier,
            ledger=UpdateLedger(timer=timer),
            registry=SubjectRegistry(),
            **kwargs,
        )

    return _make_orchestrator


# ── API fixtures ─────────────────────────────────────────────────────────


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        ENVIRONMENT="test",
        PERSISTENCE_ENABLED=False,
        WEATHER_API_KEY="",
        MODEL_URL="",
        GEOCODE_URL="",
        BLOB_STORAGE_URL="",
        NOTIFICATION_WEBHOOK_URL="",
        STRICT_STATUS_TRANSITIONS=True,
    )


@pytest.fixture
def services(test_settings, night_clock):
    return build_services(test_settings, clock=night_clock)


@pytest_asyncio.fixture
async def client(services) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with pre-built services."""
    app = create_app(services)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    await services.shutdown()
