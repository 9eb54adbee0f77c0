"""
SafeVenue - API Module
FastAPI routes and schemas for the venue risk analytics service.
"""

from safevenue.api.routes import api_router

__all__ = ["api_router"]
