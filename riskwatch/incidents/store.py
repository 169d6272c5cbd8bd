"""
Incident persistence sinks.

A sink is a durable append keyed by the generated incident id. Running
without one is a supported mode: the lifecycle manager then keeps incidents
in its local buffer only.
"""

import uuid
from typing import Optional, Protocol

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from riskwatch.db.engine import Database
from riskwatch.db.models import IncidentRecord
from riskwatch.errors import PersistenceUnavailable
from riskwatch.schemas.incident import Incident

logger = structlog.get_logger(__name__)


class IncidentStore(Protocol):
    async def save(self, incident: Incident) -> str:
        """Insert or update. Returns the persistence id; raises PersistenceUnavailable."""
        ...

    async def get(self, incident_id: str) -> Optional[Incident]:
        ...


class SqlIncidentStore:
    """SQLAlchemy sink: one `incidents` row per incident, upserted by id."""

    def __init__(self, database: Database):
        self.database = database

    async def save(self, incident: Incident) -> str:
        document = incident.model_dump(mode="json")
        try:
            async with self.database.session() as session:
                result = await session.execute(
                    select(IncidentRecord).where(IncidentRecord.incident_id == incident.incident_id)
                )
                record = result.scalar_one_or_none()
                if record is None:
                    record = IncidentRecord(
                        id=uuid.UUID(incident.persistence_id) if incident.persistence_id else uuid.uuid4(),
                        incident_id=incident.incident_id,
                        subject_id=incident.subject_id,
                        created_at=incident.created_at,
                    )
                    session.add(record)

                persistence_id = str(record.id)
                document["persistence_id"] = persistence_id
                record.type = incident.type.value
                record.priority = incident.priority.value
                record.status = incident.status.value
                record.risk_level = incident.risk_level.value
                record.score = incident.score
                record.document = document
        except (SQLAlchemyError, OSError) as e:
            raise PersistenceUnavailable(str(e)) from e

        logger.debug("incident_persisted", incident_id=incident.incident_id)
        return persistence_id

    async def get(self, incident_id: str) -> Optional[Incident]:
        try:
            async with self.database.session() as session:
                result = await session.execute(
                    select(IncidentRecord).where(IncidentRecord.incident_id == incident_id)
                )
                record = result.scalar_one_or_none()
        except (SQLAlchemyError, OSError) as e:
            raise PersistenceUnavailable(str(e)) from e
        if record is None:
            return None
        return Incident.model_validate(record.document)
