"""
SafeVenue - Health Check API Routes
"""

from typing import Any, Dict

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from safevenue.services.monitoring import get_monitoring_service
from safevenue.services.scheduling import get_scheduler_service

router = APIRouter(tags=["health"])


@router.get("")
async def health_check(detailed: bool = Query(False)):
    """
    Health check for load balancers and monitoring.

    Responds 503 when a required component is unhealthy.
    """
    result: Dict[str, Any] = await get_monitoring_service().check_health(detailed=detailed)
    if detailed:
        result["scheduler"] = get_scheduler_service().get_status()

    status_code = 503 if result["status"] in ("unhealthy", "critical") else 200
    return JSONResponse(status_code=status_code, content=result)
