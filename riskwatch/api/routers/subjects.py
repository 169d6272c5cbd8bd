"""Read-only subject projection and group networks."""

from fastapi import APIRouter, Depends, HTTPException

from riskwatch.api.deps import get_services
from riskwatch.container import Services
from riskwatch.schemas.subject import SubjectProjection

router = APIRouter(prefix="/api/v1", tags=["subjects"])


@router.get("/subjects", response_model=list[SubjectProjection])
async def list_subjects(services: Services = Depends(get_services)):
    return list(services.registry.projections().values())


@router.get("/subjects/{subject_id}", response_model=SubjectProjection)
async def get_subject(subject_id: str, services: Services = Depends(get_services)):
    projection = services.registry.get(subject_id)
    if projection is None:
        raise HTTPException(status_code=404, detail="Subject not found")
    return projection


@router.get("/groups/{group_id}")
async def get_group_network(group_id: str, services: Services = Depends(get_services)):
    network = services.registry.group_network(group_id)
    if not network:
        raise HTTPException(status_code=404, detail="Group not found")
    return {"group_id": group_id, "members": network}
