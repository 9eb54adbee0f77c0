"""
SafeVenue - Predictive Insights Service
Composes the output of every analytics engine into one per-event payload.

The event lookup is the only fatal step. Every other branch runs in
parallel and is isolated: a failing branch contributes a default section
and is listed under "degraded_sections".
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from safevenue.core.cache import ResponseCache, make_insights_key
from safevenue.core.config import settings
from safevenue.core.exceptions import EventNotFoundError
from safevenue.models.domain import (
    AlertSeverity,
    CrowdAlert,
    CrowdFlowPrediction,
    IncidentTypeRisk,
    LocationRiskScore,
    OccupancyForecast,
    RiskAlert,
    RiskScore,
    WeatherAlert,
)
from safevenue.services.alerting import AlertDispatcher
from safevenue.services.analytics.crowd_flow import (
    CrowdFlowPredictionEngine,
    DensityZoneSource,
    summarize_forecast,
)
from safevenue.services.analytics.predictive_alerts import (
    PredictiveAlertSystem,
    describe_factor,
    evaluate_risk,
)
from safevenue.services.analytics.risk_scoring import RiskScoringEngine
from safevenue.services.data.repository import EventDataRepository
from safevenue.services.monitoring import get_monitoring_service
from safevenue.services.weather.weather_service import WeatherProvider

logger = logging.getLogger(__name__)

MAX_RECOMMENDATIONS = 10
PRIORITY_RANK = {"high": 0, "medium": 1, "low": 2}

LOCATION_RECOMMENDATION_THRESHOLD = 70
INCIDENT_TYPE_RECOMMENDATION_THRESHOLD = 60


def build_proactive_recommendations(
    risk_score: Optional[RiskScore],
    location_risks: List[LocationRiskScore],
    incident_type_risks: List[IncidentTypeRisk],
    forecast: Optional[OccupancyForecast],
    weather_alerts: List[WeatherAlert],
    crowd_alerts: List[CrowdAlert],
) -> List[Dict[str, str]]:
    """Operator recommendations ranked high > medium > low, at most ten"""
    recommendations: List[Dict[str, str]] = []

    def add(priority: str, category: str, recommendation: str, reasoning: str):
        recommendations.append({
            "priority": priority,
            "category": category,
            "recommendation": recommendation,
            "reasoning": reasoning,
        })

    overall = risk_score.overall_score if risk_score else None

    if overall is not None and overall >= 80:
        add(
            "high", "Emergency Response",
            "Activate emergency response protocols and deploy maximum security and medical staff",
            f"Overall risk score is critical ({overall}%)",
        )

    for alert in weather_alerts:
        if alert.severity == AlertSeverity.CRITICAL:
            add(
                "high", "Weather Management",
                alert.recommendations[0] if alert.recommendations else "Take immediate weather-related precautions",
                f"Critical weather alert: {alert.condition} - {alert.change}",
            )

    for alert in crowd_alerts:
        if alert.severity == AlertSeverity.CRITICAL:
            add(
                "high", "Crowd Control",
                alert.recommendations[0] if alert.recommendations else "Implement immediate crowd control measures",
                f"Critical crowd density alert: {alert.current_density:.1f}% occupancy",
            )

    for location in location_risks:
        if location.risk_score >= LOCATION_RECOMMENDATION_THRESHOLD:
            add(
                "medium", "Location Security",
                f"Increase security presence at {location.location}",
                f"High risk location: {location.risk_score}% risk score with "
                f"{', '.join(location.incident_types)} incidents",
            )

    if forecast is not None and forecast.capacity_warnings:
        add(
            "medium", "Capacity Management",
            "Prepare for capacity issues and implement crowd flow management",
            f"Capacity warnings: {len(forecast.capacity_warnings)} high occupancy periods predicted",
        )

    for incident_type in incident_type_risks:
        if incident_type.risk_score >= INCIDENT_TYPE_RECOMMENDATION_THRESHOLD:
            add(
                "medium", "Incident Prevention",
                f"Prepare for {incident_type.incident_type} incidents",
                f"High {incident_type.incident_type} risk: {incident_type.risk_score:.1f}% risk score",
            )

    if overall is not None and 60 <= overall < 80:
        add(
            "medium", "General Security",
            "Increase security presence and monitor high-risk areas",
            f"Elevated overall risk: {overall}%",
        )

    ranked = sorted(recommendations, key=lambda r: PRIORITY_RANK[r["priority"]])
    return ranked[:MAX_RECOMMENDATIONS]


def overall_confidence(
    risk_score: Optional[RiskScore],
    predictions: List[CrowdFlowPrediction],
    forecast: Optional[OccupancyForecast],
) -> float:
    """Mean of risk, prediction and forecast confidence; a missing part counts as 0"""
    risk = risk_score.confidence if risk_score else 0.0
    crowd = sum(p.confidence for p in predictions) / len(predictions) if predictions else 0.0
    outlook = forecast.confidence if forecast else 0.0
    return round((risk + crowd + outlook) / 3, 4)


class PredictiveInsightsService:
    """Per-request facade over the analytics engines"""

    def __init__(
        self,
        repository: EventDataRepository,
        cache: ResponseCache,
        weather_provider: Optional[WeatherProvider] = None,
        dispatcher: Optional[AlertDispatcher] = None,
        zone_source: Optional[DensityZoneSource] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.repository = repository
        self.cache = cache
        self.weather_provider = weather_provider
        self.dispatcher = dispatcher
        self.zone_source = zone_source
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def _guarded(
        self,
        section: str,
        operation: Awaitable[Any],
        default: Any,
        degraded: List[str],
    ) -> Any:
        try:
            return await operation
        except Exception as e:
            logger.error(f"Insights section '{section}' failed: {e}")
            get_monitoring_service().record_engine_failure(section)
            degraded.append(section)
            return default

    async def get_predictive_insights(
        self,
        event_id: str,
        user_id: str,
        force_refresh: bool = False,
    ) -> Dict[str, Any]:
        event = await self.repository.get_event(event_id)
        if event is None:
            raise EventNotFoundError(event_id)

        monitoring = get_monitoring_service()
        key = make_insights_key(event_id, user_id)

        if force_refresh:
            await self.cache.invalidate(key)
            monitoring.record_insights_cache("bypass")
        else:
            cached = await self.cache.get(key)
            if cached is not None:
                monitoring.record_insights_cache("hit")
                return cached
            monitoring.record_insights_cache("miss")

        started = time.perf_counter()

        risk_engine = RiskScoringEngine(
            event_id, self.repository, weather_provider=self.weather_provider, clock=self._clock
        )
        crowd_engine = CrowdFlowPredictionEngine(
            event_id, self.repository, zone_source=self.zone_source, clock=self._clock
        )
        alert_system = PredictiveAlertSystem(
            event_id,
            self.repository,
            weather_provider=self.weather_provider,
            risk_engine=risk_engine,
            dispatcher=self.dispatcher,
            clock=self._clock,
        )

        degraded: List[str] = []
        (
            risk_score,
            location_risks,
            incident_type_risks,
            predictions,
            weather_alerts,
            crowd_alerts,
        ) = await asyncio.gather(
            self._guarded("overall_risk", risk_engine.calculate_overall_risk_score(persist=False), None, degraded),
            self._guarded("location_risks", risk_engine.get_location_specific_risk_scores(), [], degraded),
            self._guarded("incident_type_risks", risk_engine.get_incident_type_risk_scores(), [], degraded),
            self._guarded("crowd_flow", crowd_engine.predict_crowd_flow(persist=False), [], degraded),
            self._guarded("weather_alerts", alert_system.monitor_weather_alerts(raise_errors=True), [], degraded),
            self._guarded("crowd_alerts", alert_system.monitor_crowd_density_alerts(raise_errors=True), [], degraded),
        )

        risk_alerts: List[RiskAlert] = []
        if risk_score is not None:
            risk_alerts = evaluate_risk(risk_score, alert_system.thresholds)
        else:
            degraded.append("risk_alerts")

        forecast = summarize_forecast(predictions, event.capacity, settings.get_venue_zone(event.timezone))

        response = self._compose(
            risk_score,
            location_risks,
            incident_type_risks,
            predictions,
            forecast,
            weather_alerts,
            crowd_alerts,
            risk_alerts,
            degraded,
        )

        await self.cache.set(key, response)
        await self._store_back(risk_engine, crowd_engine, risk_score, predictions)

        monitoring.record_insights_duration(time.perf_counter() - started)
        logger.info(
            f"Predictive insights for {event_id}: risk {response['overall_risk']['score']}, "
            f"{len(predictions)} predictions, degraded={degraded}"
        )
        return response

    async def _store_back(
        self,
        risk_engine: RiskScoringEngine,
        crowd_engine: CrowdFlowPredictionEngine,
        risk_score: Optional[RiskScore],
        predictions: List[CrowdFlowPrediction],
    ) -> None:
        writes: List[Tuple[str, Awaitable[None]]] = []
        if risk_score is not None:
            writes.append(("risk score", risk_engine.store_risk_score(risk_score)))
        if predictions:
            writes.append(("crowd predictions", crowd_engine.store_crowd_predictions(predictions)))

        results = await asyncio.gather(*(w for _, w in writes), return_exceptions=True)
        for (name, _), result in zip(writes, results):
            if isinstance(result, Exception):
                logger.error(f"Storing {name} for {risk_engine.event_id} failed: {result}")

    def _compose(
        self,
        risk_score: Optional[RiskScore],
        location_risks: List[LocationRiskScore],
        incident_type_risks: List[IncidentTypeRisk],
        predictions: List[CrowdFlowPrediction],
        forecast: Optional[OccupancyForecast],
        weather_alerts: List[WeatherAlert],
        crowd_alerts: List[CrowdAlert],
        risk_alerts: List[RiskAlert],
        degraded: List[str],
    ) -> Dict[str, Any]:
        if risk_score is not None:
            overall_risk = {
                "score": risk_score.overall_score,
                "level": risk_score.risk_level.value,
                "contributing_factors": [describe_factor(f) for f in risk_score.contributing_factors],
                "confidence": risk_score.confidence,
            }
        else:
            overall_risk = {"score": None, "level": None, "contributing_factors": [], "confidence": 0.0}

        return {
            "overall_risk": overall_risk,
            "location_risks": [location.to_dict() for location in location_risks],
            "incident_type_risks": [t.to_dict() for t in incident_type_risks],
            "crowd_flow": {
                "predictions": [p.to_dict() for p in predictions],
                "peak_time": forecast.peak_time.isoformat() if forecast else None,
                "peak_occupancy": forecast.peak_occupancy if forecast else 0,
                "capacity_utilization": round(forecast.capacity_utilization, 2) if forecast else 0.0,
                "risk_periods": [p.to_dict() for p in forecast.risk_periods] if forecast else [],
                "capacity_warnings": forecast.capacity_warnings if forecast else [],
            },
            "weather_alerts": [a.to_dict() for a in weather_alerts],
            "crowd_alerts": [a.to_dict() for a in crowd_alerts],
            "risk_alerts": [a.to_dict() for a in risk_alerts],
            "proactive_recommendations": build_proactive_recommendations(
                risk_score, location_risks, incident_type_risks, forecast, weather_alerts, crowd_alerts
            ),
            "degraded_sections": sorted(degraded),
            "last_updated": self._clock().isoformat(),
            "confidence": overall_confidence(risk_score, predictions, forecast),
        }
