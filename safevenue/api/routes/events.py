"""
SafeVenue - Event API Routes
Risk scoring, incident patterns, crowd flow and alerts for a single event
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from safevenue.api.dependencies import (
    get_dispatcher,
    get_repository,
    get_weather,
    require_event,
)
from safevenue.api.schemas import AlertListResponse, CrowdFlowResponse, PatternListResponse
from safevenue.models.domain import EventSnapshot, PatternType
from safevenue.services.alerting import AlertDispatcher
from safevenue.services.analytics import (
    CrowdFlowPredictionEngine,
    PatternRecognitionEngine,
    PredictiveAlertSystem,
    RiskScoringEngine,
)
from safevenue.services.data import EventDataRepository
from safevenue.services.weather import WeatherProvider

router = APIRouter()


# ============================================================================
# RISK SCORING
# ============================================================================

@router.get("/{event_id}/risk-score")
async def get_risk_score(
    event: EventSnapshot = Depends(require_event),
    repository: EventDataRepository = Depends(get_repository),
) -> Dict[str, Any]:
    """Last stored risk score for the event"""
    engine = RiskScoringEngine(event.id, repository)
    score = await engine.get_stored_risk_score()
    if score is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No risk score calculated for event {event.id}",
        )
    return score.to_dict()


@router.post("/{event_id}/risk-score/calculate")
async def calculate_risk_score(
    event: EventSnapshot = Depends(require_event),
    repository: EventDataRepository = Depends(get_repository),
    weather: WeatherProvider = Depends(get_weather),
) -> Dict[str, Any]:
    """Recalculate and store the overall risk score"""
    engine = RiskScoringEngine(event.id, repository, weather_provider=weather)
    score = await engine.calculate_overall_risk_score()
    return score.to_dict()


@router.get("/{event_id}/risk-score/locations")
async def get_location_risk_scores(
    event: EventSnapshot = Depends(require_event),
    repository: EventDataRepository = Depends(get_repository),
) -> List[Dict[str, Any]]:
    engine = RiskScoringEngine(event.id, repository)
    return [location.to_dict() for location in await engine.get_location_specific_risk_scores()]


@router.get("/{event_id}/risk-score/incident-types")
async def get_incident_type_risk_scores(
    event: EventSnapshot = Depends(require_event),
    repository: EventDataRepository = Depends(get_repository),
) -> List[Dict[str, Any]]:
    engine = RiskScoringEngine(event.id, repository)
    return [risk.to_dict() for risk in await engine.get_incident_type_risk_scores()]


# ============================================================================
# INCIDENT PATTERNS
# ============================================================================

@router.post("/{event_id}/patterns/analyze", response_model=PatternListResponse)
async def analyze_patterns(
    event: EventSnapshot = Depends(require_event),
    repository: EventDataRepository = Depends(get_repository),
    weather: WeatherProvider = Depends(get_weather),
):
    """Run pattern recognition over the incident history and store the results"""
    engine = PatternRecognitionEngine(event.id, repository, weather_provider=weather)
    patterns = await engine.analyze_incident_patterns()
    return PatternListResponse(
        event_id=event.id,
        count=len(patterns),
        patterns=[p.to_dict() for p in patterns],
    )


@router.get("/{event_id}/patterns", response_model=PatternListResponse)
async def get_patterns(
    pattern_type: Optional[PatternType] = Query(None),
    min_confidence: Optional[float] = Query(None, ge=0, le=1),
    event: EventSnapshot = Depends(require_event),
    repository: EventDataRepository = Depends(get_repository),
):
    """Stored patterns, optionally filtered by type and minimum confidence"""
    patterns = await repository.list_patterns(
        event.id, pattern_type=pattern_type, min_confidence=min_confidence
    )
    return PatternListResponse(
        event_id=event.id,
        count=len(patterns),
        patterns=[p.to_dict() for p in patterns],
    )


# ============================================================================
# CROWD FLOW
# ============================================================================

@router.get("/{event_id}/crowd-flow", response_model=CrowdFlowResponse)
async def get_crowd_flow(
    event: EventSnapshot = Depends(require_event),
    repository: EventDataRepository = Depends(get_repository),
):
    """Predict the next four hours of attendance and store the batch"""
    engine = CrowdFlowPredictionEngine(event.id, repository)
    predictions = await engine.predict_crowd_flow()
    rates = await engine.calculate_flow_rates()
    return CrowdFlowResponse(
        event_id=event.id,
        predictions=[p.to_dict() for p in predictions],
        peak_times=await engine.identify_peak_times(predictions),
        entry_rate_per_hour=round(rates.entry_per_hour, 2),
        exit_rate_per_hour=round(rates.exit_per_hour, 2),
    )


@router.get("/{event_id}/crowd-flow/forecast")
async def get_occupancy_forecast(
    event: EventSnapshot = Depends(require_event),
    repository: EventDataRepository = Depends(get_repository),
) -> Dict[str, Any]:
    engine = CrowdFlowPredictionEngine(event.id, repository)
    forecast = await engine.calculate_occupancy_forecast()
    if forecast is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No occupancy forecast available for event {event.id}",
        )
    return forecast.to_dict()


@router.get("/{event_id}/density-zones")
async def get_density_zones(
    event: EventSnapshot = Depends(require_event),
    repository: EventDataRepository = Depends(get_repository),
) -> List[Dict[str, Any]]:
    engine = CrowdFlowPredictionEngine(event.id, repository)
    return [zone.to_dict() for zone in await engine.monitor_density_zones()]


# ============================================================================
# ALERTS
# ============================================================================

@router.post("/{event_id}/alerts/generate", response_model=AlertListResponse)
async def generate_alerts(
    event: EventSnapshot = Depends(require_event),
    repository: EventDataRepository = Depends(get_repository),
    weather: WeatherProvider = Depends(get_weather),
    dispatcher: AlertDispatcher = Depends(get_dispatcher),
):
    """Run weather, crowd and risk checks and store the resulting alerts"""
    system = PredictiveAlertSystem(
        event.id, repository, weather_provider=weather, dispatcher=dispatcher
    )
    alerts = await system.generate_proactive_alerts()
    return AlertListResponse(
        event_id=event.id,
        count=len(alerts),
        alerts=[a.to_dict() for a in alerts],
    )


@router.get("/{event_id}/alerts/active", response_model=AlertListResponse)
async def get_active_alerts(
    event: EventSnapshot = Depends(require_event),
    repository: EventDataRepository = Depends(get_repository),
):
    """Unacknowledged, unexpired alerts, newest first"""
    system = PredictiveAlertSystem(event.id, repository)
    alerts = await system.get_active_alerts()
    return AlertListResponse(
        event_id=event.id,
        count=len(alerts),
        alerts=[a.to_dict() for a in alerts],
    )
