"""
SafeVenue - Analytics Engines
Risk scoring, incident pattern recognition, crowd flow prediction,
predictive alerting and the per-event insights facade.
"""

from .risk_scoring import (
    RiskScoringEngine,
    risk_level_for_score,
    location_risk_scores,
    incident_type_risk_scores,
)
from .pattern_recognition import PatternRecognitionEngine
from .crowd_flow import (
    CrowdFlowPredictionEngine,
    DensityZoneSource,
    SimulatedDensityZoneSource,
    FlowRates,
    summarize_forecast,
)
from .predictive_alerts import (
    AlertThresholds,
    PredictiveAlertSystem,
    prioritize_alerts,
)
from .insights_service import PredictiveInsightsService

__all__ = [
    # Risk
    "RiskScoringEngine",
    "risk_level_for_score",
    "location_risk_scores",
    "incident_type_risk_scores",

    # Patterns
    "PatternRecognitionEngine",

    # Crowd flow
    "CrowdFlowPredictionEngine",
    "DensityZoneSource",
    "SimulatedDensityZoneSource",
    "FlowRates",
    "summarize_forecast",

    # Alerts
    "AlertThresholds",
    "PredictiveAlertSystem",
    "prioritize_alerts",

    # Facade
    "PredictiveInsightsService",
]
