"""
SafeVenue - API Schemas
Pydantic request/response models
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# =============================================================================
# BASE SCHEMAS
# =============================================================================

class MessageResponse(BaseModel):
    """Simple message response."""
    message: str
    success: bool = True


class ErrorResponse(BaseModel):
    """Error body returned by the exception handlers."""
    error: str
    detail: Optional[str] = None
    request_id: Optional[str] = None


# =============================================================================
# INSIGHTS SCHEMAS
# =============================================================================

class InsightsRequest(BaseModel):
    """Predictive insights request."""
    event_id: str = Field(..., min_length=1)
    force_refresh: bool = False


# =============================================================================
# ALERT SCHEMAS
# =============================================================================

class AlertListResponse(BaseModel):
    """Alerts for an event, highest priority first."""
    event_id: str
    count: int
    alerts: List[Dict[str, Any]]


# =============================================================================
# PATTERN SCHEMAS
# =============================================================================

class PatternListResponse(BaseModel):
    """Stored or freshly detected incident patterns."""
    event_id: str
    count: int
    patterns: List[Dict[str, Any]]


# =============================================================================
# CROWD SCHEMAS
# =============================================================================

class CrowdFlowResponse(BaseModel):
    """Crowd flow predictions with the derived flow rates."""
    event_id: str
    predictions: List[Dict[str, Any]]
    peak_times: List[datetime]
    entry_rate_per_hour: float
    exit_rate_per_hour: float
