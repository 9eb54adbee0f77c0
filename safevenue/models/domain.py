"""
SafeVenue - Domain Types
Dataclasses exchanged between the data boundary, the analytics engines and the API.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def new_id() -> str:
    return str(uuid4())


def local_hour(moment: datetime, zone: tzinfo) -> int:
    """Hour of day at the venue; naive datetimes are taken as UTC"""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(zone).hour


# =============================================================================
# ENUMS
# =============================================================================

class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class FactorType(str, Enum):
    CROWD_DENSITY = "crowd_density"
    WEATHER = "weather"
    INCIDENT_FREQUENCY = "incident_frequency"
    STAFF_LEVELS = "staff_levels"
    TIME_OF_DAY = "time_of_day"
    EVENT_TYPE = "event_type"


class FactorImpact(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class PatternType(str, Enum):
    TEMPORAL = "temporal"
    SPATIAL = "spatial"
    BEHAVIORAL = "behavioral"
    CORRELATION = "correlation"
    SEASONAL = "seasonal"
    ANOMALY = "anomaly"


class AlertType(str, Enum):
    WEATHER = "weather"
    CROWD = "crowd"
    RISK = "risk"
    INCIDENT = "incident"


class AlertSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class EventStatus(str, Enum):
    SCHEDULED = "scheduled"
    LIVE = "live"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# =============================================================================
# READ MODELS (data access boundary)
# =============================================================================

@dataclass
class EventSnapshot:
    """Event record as seen by the engines"""
    id: str
    name: str
    capacity: int
    current_attendance: int = 0
    event_type: Optional[str] = None
    staff_on_duty: Optional[int] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    status: EventStatus = EventStatus.SCHEDULED
    timezone: Optional[str] = None

    @property
    def occupancy_percent(self) -> float:
        if not self.capacity:
            return 0.0
        return self.current_attendance / self.capacity * 100


@dataclass
class IncidentRecord:
    """A reported incident"""
    id: str
    event_id: str
    incident_type: str
    location: str
    priority: str
    created_at: datetime
    resolved_at: Optional[datetime] = None
    is_escalated: bool = False
    weather_condition: Optional[str] = None


@dataclass
class AttendanceSample:
    """Head count at a point in time"""
    timestamp: datetime
    count: int


@dataclass
class WeatherReading:
    """Current or forecast weather at a location"""
    temperature_c: float
    humidity: float
    wind_speed_kmh: float
    precipitation_mm: float
    condition: str
    description: str = ""
    observed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "temperature_c": self.temperature_c,
            "humidity": self.humidity,
            "wind_speed_kmh": self.wind_speed_kmh,
            "precipitation_mm": self.precipitation_mm,
            "condition": self.condition,
            "description": self.description,
            "observed_at": _iso(self.observed_at),
        }


# =============================================================================
# RISK SCORING
# =============================================================================

@dataclass
class RiskFactor:
    """One weighted signal contributing to an overall score"""
    factor_type: FactorType
    factor_value: Dict[str, Any]
    score: float
    weight: float
    impact: FactorImpact
    risk_level: RiskLevel
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "factor_type": self.factor_type.value,
            "factor_value": self.factor_value,
            "score": round(self.score, 2),
            "weight": self.weight,
            "impact": self.impact.value,
            "risk_level": self.risk_level.value,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RiskFactor":
        return cls(
            factor_type=FactorType(data["factor_type"]),
            factor_value=data.get("factor_value", {}),
            score=float(data["score"]),
            weight=float(data["weight"]),
            impact=FactorImpact(data["impact"]),
            risk_level=RiskLevel(data["risk_level"]),
            description=data.get("description", ""),
        )


@dataclass
class RiskScore:
    """Overall risk for an event"""
    event_id: str
    overall_score: float
    risk_level: RiskLevel
    contributing_factors: List[RiskFactor]
    last_updated: datetime
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "overall_score": self.overall_score,
            "risk_level": self.risk_level.value,
            "contributing_factors": [f.to_dict() for f in self.contributing_factors],
            "last_updated": _iso(self.last_updated),
            "confidence": self.confidence,
        }


@dataclass
class LocationRiskScore:
    location: str
    risk_score: float
    incident_count: int
    average_severity: float
    incident_types: List[str]
    contributing_factors: List[str]
    last_incident: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "location": self.location,
            "risk_score": self.risk_score,
            "incident_count": self.incident_count,
            "average_severity": round(self.average_severity, 2),
            "incident_types": self.incident_types,
            "contributing_factors": self.contributing_factors,
            "last_incident": _iso(self.last_incident),
        }


@dataclass
class IncidentTypeRisk:
    incident_type: str
    risk_score: float
    incident_count: int
    average_severity: float
    probability: float
    contributing_factors: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "incident_type": self.incident_type,
            "risk_score": self.risk_score,
            "incident_count": self.incident_count,
            "average_severity": round(self.average_severity, 2),
            "probability": round(self.probability, 4),
            "contributing_factors": self.contributing_factors,
        }


# =============================================================================
# PATTERNS
# =============================================================================

@dataclass
class PatternFactor:
    name: str
    value: Any
    significance: str

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "value": self.value, "significance": self.significance}


@dataclass
class IncidentPattern:
    """A synthesized observation over the incident history"""
    event_id: str
    pattern_type: PatternType
    confidence: float
    description: str
    factors: List[PatternFactor]
    impact: str
    recommendations: List[str]
    detected_at: datetime
    last_updated: datetime
    id: str = field(default_factory=new_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "pattern_type": self.pattern_type.value,
            "confidence": round(self.confidence, 4),
            "description": self.description,
            "factors": [f.to_dict() for f in self.factors],
            "impact": self.impact,
            "recommendations": self.recommendations,
            "detected_at": _iso(self.detected_at),
            "last_updated": _iso(self.last_updated),
        }


# =============================================================================
# CROWD FLOW
# =============================================================================

@dataclass
class CrowdFactor:
    name: str
    value: float
    impact: str
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "value": self.value,
            "impact": self.impact,
            "description": self.description,
        }


@dataclass
class CrowdFlowPrediction:
    """Predicted occupancy for one future time slot"""
    event_id: str
    timestamp: datetime
    location: str
    current_density: float
    predicted_density: float
    predicted_count: int
    confidence: float
    factors: List[CrowdFactor]
    risk_level: RiskLevel
    recommendations: List[str]
    id: str = field(default_factory=new_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "timestamp": _iso(self.timestamp),
            "location": self.location,
            "current_density": round(self.current_density, 2),
            "predicted_density": round(self.predicted_density, 2),
            "predicted_count": self.predicted_count,
            "confidence": round(self.confidence, 2),
            "factors": [f.to_dict() for f in self.factors],
            "risk_level": self.risk_level.value,
            "recommendations": self.recommendations,
        }


@dataclass
class RiskPeriod:
    start: datetime
    end: datetime
    risk_level: RiskLevel
    peak_density: float
    recommendations: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start": _iso(self.start),
            "end": _iso(self.end),
            "risk_level": self.risk_level.value,
            "peak_density": round(self.peak_density, 2),
            "recommendations": self.recommendations,
        }


@dataclass
class OccupancyForecast:
    """Summary of a batch of crowd flow predictions"""
    peak_time: datetime
    peak_occupancy: int
    peak_density: float
    average_occupancy: float
    capacity_utilization: float
    risk_periods: List[RiskPeriod]
    capacity_warnings: List[str]
    confidence: float
    max_capacity: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "peak_time": _iso(self.peak_time),
            "peak_occupancy": self.peak_occupancy,
            "peak_density": round(self.peak_density, 2),
            "average_occupancy": round(self.average_occupancy, 2),
            "capacity_utilization": round(self.capacity_utilization, 2),
            "risk_periods": [p.to_dict() for p in self.risk_periods],
            "capacity_warnings": self.capacity_warnings,
            "confidence": round(self.confidence, 2),
            "max_capacity": self.max_capacity,
        }


@dataclass
class DensityZone:
    zone_id: str
    name: str
    occupancy: int
    capacity: int
    occupancy_rate: float
    risk_level: RiskLevel
    predicted_peak: int
    recommendations: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "zone_id": self.zone_id,
            "name": self.name,
            "occupancy": self.occupancy,
            "capacity": self.capacity,
            "occupancy_rate": round(self.occupancy_rate, 4),
            "risk_level": self.risk_level.value,
            "predicted_peak": self.predicted_peak,
            "recommendations": self.recommendations,
        }


# =============================================================================
# ALERTS
# =============================================================================

@dataclass
class WeatherAlert:
    condition: str
    change: str
    impact: str
    recommendations: List[str]
    severity: AlertSeverity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "condition": self.condition,
            "change": self.change,
            "impact": self.impact,
            "recommendations": self.recommendations,
            "severity": self.severity.value,
        }


@dataclass
class CrowdAlert:
    current_density: float
    predicted_density: float
    threshold: float
    time_to_threshold: int
    recommendations: List[str]
    severity: AlertSeverity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current_density": round(self.current_density, 2),
            "predicted_density": round(self.predicted_density, 2),
            "threshold": self.threshold,
            "time_to_threshold": self.time_to_threshold,
            "recommendations": self.recommendations,
            "severity": self.severity.value,
        }


@dataclass
class RiskAlert:
    risk_score: float
    threshold: float
    contributing_factors: List[str]
    recommendations: List[str]
    severity: AlertSeverity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "risk_score": self.risk_score,
            "threshold": self.threshold,
            "contributing_factors": self.contributing_factors,
            "recommendations": self.recommendations,
            "severity": self.severity.value,
        }


@dataclass
class PredictiveAlert:
    """A stored, time-boxed alert; acknowledgement is one-way"""
    event_id: str
    alert_type: AlertType
    severity: AlertSeverity
    message: str
    recommendations: List[str]
    timestamp: datetime
    expires_at: datetime
    confidence: float
    acknowledged: bool = False
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    id: str = field(default_factory=new_id)

    def is_active(self, now: datetime) -> bool:
        return not self.acknowledged and self.expires_at > now

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "alert_type": self.alert_type.value,
            "severity": self.severity.value,
            "message": self.message,
            "recommendations": self.recommendations,
            "timestamp": _iso(self.timestamp),
            "expires_at": _iso(self.expires_at),
            "acknowledged": self.acknowledged,
            "acknowledged_by": self.acknowledged_by,
            "acknowledged_at": _iso(self.acknowledged_at),
            "confidence": self.confidence,
        }
