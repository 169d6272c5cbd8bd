"""Location risk endpoints."""

from fastapi import APIRouter, Depends, Query

from riskwatch.api.deps import get_services
from riskwatch.container import Services
from riskwatch.schemas.risk import ForecastPoint, RiskSnapshot

router = APIRouter(prefix="/api/v1/risk", tags=["risk"])


@router.get("", response_model=RiskSnapshot)
async def assess_location(
    lat: float = Query(...),
    lon: float = Query(...),
    services: Services = Depends(get_services),
):
    return await services.oracle.assess(lat, lon)


@router.get("/forecast", response_model=list[ForecastPoint])
async def forecast_location(
    lat: float = Query(...),
    lon: float = Query(...),
    hours: int = Query(default=24, ge=1, le=168),
    services: Services = Depends(get_services),
):
    return await services.oracle.forecast(lat, lon, hours)
