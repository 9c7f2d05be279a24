"""
Health check endpoint.

Provides system health status for monitoring and load balancers.
"""

from fastapi import APIRouter, Request

from rhombick import __version__
from rhombick.api.dependencies import SettingsDep
from rhombick.api.schemas import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request, settings: SettingsDep) -> HealthResponse:
    """
    Check system health.

    Returns status of core components for monitoring dashboards
    and load balancer health checks.
    """
    database = request.app.state.database
    if database is None:
        database_status = "not used"
    elif await database.ping():
        database_status = "connected"
    else:
        database_status = "unavailable"

    return HealthResponse(
        status="healthy" if database_status != "unavailable" else "degraded",
        version=__version__,
        database=database_status,
        storage_backend=settings.storage_backend,
    )
