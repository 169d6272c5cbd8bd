"""Push endpoint for subject update batches."""

from dataclasses import asdict

from fastapi import APIRouter, Depends

from riskwatch.api.deps import get_services
from riskwatch.container import Services
from riskwatch.schemas.subject import SubjectUpdate

router = APIRouter(prefix="/api/v1/updates", tags=["pipeline"])


@router.post("")
async def push_updates(
    body: list[SubjectUpdate],
    services: Services = Depends(get_services),
):
    """Process one batch synchronously and return its summary."""
    summary = await services.orchestrator.process_batch(body)
    return asdict(summary)
