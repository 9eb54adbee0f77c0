"""SafeVenue models: database tables and domain types."""

from safevenue.core.database import Base
from safevenue.models.models import (
    Event,
    IncidentLog,
    AttendanceRecord,
    RiskScoreRecord,
    IncidentPatternRecord,
    CrowdPredictionRecord,
    PredictiveAlertRecord,
)
from safevenue.models.domain import (
    RiskLevel,
    FactorType,
    FactorImpact,
    PatternType,
    AlertType,
    AlertSeverity,
    EventStatus,
    EventSnapshot,
    IncidentRecord,
    AttendanceSample,
    WeatherReading,
    RiskFactor,
    RiskScore,
    LocationRiskScore,
    IncidentTypeRisk,
    PatternFactor,
    IncidentPattern,
    CrowdFactor,
    CrowdFlowPrediction,
    RiskPeriod,
    OccupancyForecast,
    DensityZone,
    WeatherAlert,
    CrowdAlert,
    RiskAlert,
    PredictiveAlert,
)

__all__ = [
    "Base",
    "Event",
    "IncidentLog",
    "AttendanceRecord",
    "RiskScoreRecord",
    "IncidentPatternRecord",
    "CrowdPredictionRecord",
    "PredictiveAlertRecord",
    "RiskLevel",
    "FactorType",
    "FactorImpact",
    "PatternType",
    "AlertType",
    "AlertSeverity",
    "EventStatus",
    "EventSnapshot",
    "IncidentRecord",
    "AttendanceSample",
    "WeatherReading",
    "RiskFactor",
    "RiskScore",
    "LocationRiskScore",
    "IncidentTypeRisk",
    "PatternFactor",
    "IncidentPattern",
    "CrowdFactor",
    "CrowdFlowPrediction",
    "RiskPeriod",
    "OccupancyForecast",
    "DensityZone",
    "WeatherAlert",
    "CrowdAlert",
    "RiskAlert",
    "PredictiveAlert",
]
