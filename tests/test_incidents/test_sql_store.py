"""
Tests for the SQLAlchemy incident sink.

Covers:
- Insert returns a stable persistence id
- Upsert by incident id keeps one row
- Round trip of the stored document
- Manager integration (persistence id flows back onto the incident)
"""

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from riskwatch.db.engine import Database
from riskwatch.db.models import IncidentRecord
from riskwatch.incidents.manager import IncidentLifecycleManager
from riskwatch.incidents.store import SqlIncidentStore
from riskwatch.schemas.incident import IncidentStatus


@pytest_asyncio.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'incidents.db'}")
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def sql_manager(database, night_clock):
    return IncidentLifecycleManager(store=SqlIncidentStore(database), clock=night_clock)


class TestSqlIncidentStore:
    @pytest.mark.asyncio
    async def test_create_persists_row(self, sql_manager, database, make_incident_data):
        incident = await sql_manager.create(make_incident_data())
        assert incident.persistence_id is not None

        async with database.session() as session:
            record = (await session.execute(
                select(IncidentRecord).where(IncidentRecord.incident_id == incident.incident_id)
            )).scalar_one()
        assert str(record.id) == incident.persistence_id
        assert record.status == "Assigned"
        assert record.priority == "High"
        assert record.document["report"]["category"] == "Suspicious Activity"

    @pytest.mark.asyncio
    async def test_status_update_upserts(self, sql_manager, database, make_incident_data):
        incident = await sql_manager.create(make_incident_data())
        first_id = incident.persistence_id
        await sql_manager.update_status(incident.incident_id, IncidentStatus.RESOLVED, "handled")

        async with database.session() as session:
            count = (await session.execute(select(func.count()).select_from(IncidentRecord))).scalar_one()
        assert count == 1
        assert incident.persistence_id == first_id

        stored = await sql_manager.store.get(incident.incident_id)
        assert stored.status == IncidentStatus.RESOLVED
        assert stored.persistence_id == first_id
        assert stored.updates[-1].remarks == "handled"

    @pytest.mark.asyncio
    async def test_get_missing(self, database):
        assert await SqlIncidentStore(database).get("INC-19990101-0001") is None

    @pytest.mark.asyncio
    async def test_nothing_pending_when_healthy(self, sql_manager, make_incident_data):
        await sql_manager.create(make_incident_data())
        assert sql_manager.pending_count == 0
