"""
SafeVenue - API Dependencies
FastAPI dependency injection for repositories, providers and services
"""

import logging

from fastapi import Depends, Header

from safevenue.core.cache import ResponseCache, get_response_cache
from safevenue.core.exceptions import EventNotFoundError
from safevenue.models.domain import EventSnapshot
from safevenue.services.alerting import AlertDispatcher, get_alert_dispatcher
from safevenue.services.analytics import PredictiveInsightsService
from safevenue.services.data import EventDataRepository, get_event_repository
from safevenue.services.weather import WeatherProvider, get_weather_provider

logger = logging.getLogger(__name__)

ANONYMOUS_USER = "anonymous"


async def get_current_user_id(x_user_id: str = Header(default=ANONYMOUS_USER)) -> str:
    """
    Requesting user identity.

    Authentication happens upstream; the gateway forwards the verified
    user id in the X-User-Id header.
    """
    return x_user_id.strip() or ANONYMOUS_USER


def get_repository() -> EventDataRepository:
    return get_event_repository()


def get_weather() -> WeatherProvider:
    return get_weather_provider()


def get_cache() -> ResponseCache:
    return get_response_cache()


def get_dispatcher() -> AlertDispatcher:
    return get_alert_dispatcher()


def get_insights_service(
    repository: EventDataRepository = Depends(get_repository),
    cache: ResponseCache = Depends(get_cache),
    weather: WeatherProvider = Depends(get_weather),
    dispatcher: AlertDispatcher = Depends(get_dispatcher),
) -> PredictiveInsightsService:
    return PredictiveInsightsService(
        repository,
        cache,
        weather_provider=weather,
        dispatcher=dispatcher,
    )


async def require_event(
    event_id: str,
    repository: EventDataRepository = Depends(get_repository),
) -> EventSnapshot:
    """Resolve the path event or fail with 404"""
    event = await repository.get_event(event_id)
    if event is None:
        raise EventNotFoundError(event_id)
    return event
