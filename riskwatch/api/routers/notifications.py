"""In-app notification feed for dashboard polling."""

from fastapi import APIRouter, Depends, Query

from riskwatch.alerting.schemas import Notification
from riskwatch.api.deps import get_services
from riskwatch.container import Services

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


@router.get("", response_model=list[Notification])
async def list_notifications(
    limit: int = Query(default=50, ge=1, le=500),
    services: Services = Depends(get_services),
):
    """Most recent notifications, newest last."""
    return services.feed.recent(limit)
