"""Incident lifecycle endpoints. Incidents are created by the pipeline, never here."""

import base64
import binascii
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from riskwatch.api.deps import get_services
from riskwatch.container import Services
from riskwatch.schemas.incident import (
    Evidence,
    EvidenceInput,
    Incident,
    IncidentStatus,
    StatusChangeRequest,
    StatusUpdate,
)

router = APIRouter(prefix="/api/v1/incidents", tags=["incidents"])


class EvidenceRequest(BaseModel):
    type: str
    description: str = ""
    filename: Optional[str] = None
    content_base64: Optional[str] = None
    content_type: str = "application/octet-stream"
    added_by: str = "System"


@router.get("", response_model=list[Incident])
async def list_incidents(
    status: Optional[IncidentStatus] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    services: Services = Depends(get_services),
):
    return services.incidents.list_incidents(status=status, limit=limit)


@router.get("/{incident_id}", response_model=Incident)
async def get_incident(
    incident_id: str,
    services: Services = Depends(get_services),
):
    return services.incidents.get(incident_id)


@router.patch("/{incident_id}/status", response_model=StatusUpdate)
async def update_incident_status(
    incident_id: str,
    body: StatusChangeRequest,
    services: Services = Depends(get_services),
):
    return await services.incidents.update_status(
        incident_id,
        body.status,
        remarks=body.remarks,
        updated_by=body.updated_by,
    )


@router.post("/{incident_id}/evidence", response_model=Evidence, status_code=201)
async def add_incident_evidence(
    incident_id: str,
    body: EvidenceRequest,
    services: Services = Depends(get_services),
):
    content = None
    if body.content_base64 is not None:
        try:
            content = base64.b64decode(body.content_base64, validate=True)
        except (binascii.Error, ValueError):
            raise HTTPException(status_code=422, detail="content_base64 is not valid base64")

    return await services.incidents.add_evidence(incident_id, EvidenceInput(
        type=body.type,
        description=body.description,
        filename=body.filename,
        content=content,
        content_type=body.content_type,
        added_by=body.added_by,
    ))
