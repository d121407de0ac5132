"""Health endpoints."""
from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import get_health_service
from ..schemas import HealthSnapshot, InstanceHealth, PingStatus
from ..services.health import HealthService

router = APIRouter(tags=["health"])


@router.get("/ping", response_model=PingStatus)
def ping() -> PingStatus:
    """Return service heartbeat information."""

    return PingStatus()


@router.get("/health", response_model=list[InstanceHealth])
async def health_all(health: HealthService = Depends(get_health_service)) -> list[InstanceHealth]:
    """Check every instance now; disabled instances are not contacted."""

    return await health.check_all()


@router.get("/health/snapshot", response_model=HealthSnapshot)
def health_snapshot(health: HealthService = Depends(get_health_service)) -> HealthSnapshot:
    """Return the last result recorded by the background health poller."""

    return health.snapshot


@router.get("/health/{instance_id}", response_model=InstanceHealth)
async def health_one(
    instance_id: str,
    health: HealthService = Depends(get_health_service),
) -> InstanceHealth:
    result = await health.check_one(instance_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Instance not found")
    return result
