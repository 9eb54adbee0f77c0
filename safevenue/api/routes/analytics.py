"""
SafeVenue - Analytics API Routes
Predictive insights for a single event
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Query

from safevenue.api.dependencies import get_current_user_id, get_insights_service
from safevenue.api.schemas import InsightsRequest
from safevenue.services.analytics import PredictiveInsightsService

router = APIRouter()


@router.get("/predictive-insights")
async def get_predictive_insights(
    event_id: str = Query(..., min_length=1),
    force_refresh: bool = Query(False),
    user_id: str = Depends(get_current_user_id),
    service: PredictiveInsightsService = Depends(get_insights_service),
) -> Dict[str, Any]:
    """
    Combined risk, crowd and alert outlook for an event.

    Served from cache for up to INSIGHTS_CACHE_TTL seconds per (event, user);
    force_refresh bypasses and replaces the cached entry.
    """
    return await service.get_predictive_insights(event_id, user_id, force_refresh=force_refresh)


@router.post("/predictive-insights")
async def refresh_predictive_insights(
    request: InsightsRequest,
    user_id: str = Depends(get_current_user_id),
    service: PredictiveInsightsService = Depends(get_insights_service),
) -> Dict[str, Any]:
    return await service.get_predictive_insights(
        request.event_id, user_id, force_refresh=request.force_refresh
    )
