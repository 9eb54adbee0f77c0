"""
SafeVenue - API Routes Package

Route modules:
- Analytics (analytics): predictive insights facade
- Events (events): risk scoring, patterns, crowd flow and alerts per event
- Alerts (alerts): acknowledgement
- Health Checks (health)
"""

from fastapi import APIRouter

from safevenue.api.routes import analytics
from safevenue.api.routes import events
from safevenue.api.routes import alerts
from safevenue.api.routes import health

# Create main API router
api_router = APIRouter()

api_router.include_router(
    analytics.router,
    prefix="/analytics",
    tags=["Analytics"]
)

api_router.include_router(
    events.router,
    prefix="/events",
    tags=["Events"]
)

api_router.include_router(
    alerts.router,
    prefix="/alerts",
    tags=["Alerts"]
)

api_router.include_router(
    health.router,
    prefix="/health",
    tags=["Health & Monitoring"]
)

__all__ = [
    "api_router",
    "analytics",
    "events",
    "alerts",
    "health",
]
