"""
SafeVenue - Risk Scoring Engine
Weighted multi-factor risk score for an event, plus per-location and
per-incident-type breakdowns of its incident history.

Each factor's weight depends on how far its own measured value has climbed
through a ladder of low/medium/high/critical thresholds (see step_weight).
The overall score is the weight-normalised mean of the factor scores.
"""

import asyncio
import logging
import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from safevenue.core.config import settings
from safevenue.core.exceptions import PersistenceError
from safevenue.models.domain import (
    EventSnapshot,
    FactorImpact,
    FactorType,
    IncidentRecord,
    IncidentTypeRisk,
    LocationRiskScore,
    RiskFactor,
    RiskLevel,
    RiskScore,
    WeatherReading,
    local_hour,
)
from safevenue.services.analytics.pattern_recognition import (
    analyze_spatial_patterns,
    incident_severity,
)
from safevenue.services.data.repository import EventDataRepository
from safevenue.services.monitoring import get_monitoring_service
from safevenue.services.weather.weather_service import WeatherProvider

logger = logging.getLogger(__name__)

DEFAULT_FACTOR_SCORE = 30.0
DEFAULT_FACTOR_WEIGHT = 0.1
BASE_CONFIDENCE = 0.8
MIN_CONFIDENCE = 0.3
MISSING_FACTOR_PENALTY = 0.1

LOCATION_SEVERITY_MULTIPLIER = 10
INCIDENT_TYPE_SEVERITY_MULTIPLIER = 8

FACTOR_LABELS = {
    FactorType.CROWD_DENSITY: "Crowd density",
    FactorType.WEATHER: "Weather",
    FactorType.INCIDENT_FREQUENCY: "Incident frequency",
    FactorType.STAFF_LEVELS: "Staffing",
    FactorType.TIME_OF_DAY: "Time of day",
    FactorType.EVENT_TYPE: "Event type",
}


# =============================================================================
# STEP WEIGHTING
# =============================================================================

@dataclass(frozen=True)
class WeightLadder:
    """Thresholds (low, medium, high, critical) and weights (below low, low, medium, high, critical)"""
    thresholds: Tuple[float, float, float, float]
    weights: Tuple[float, float, float, float, float]

    @classmethod
    def of(cls, thresholds: Sequence[float], weights: Sequence[float]) -> "WeightLadder":
        return cls(tuple(float(t) for t in thresholds), tuple(float(w) for w in weights))


def step_weight(value: float, ladder: WeightLadder) -> Tuple[float, RiskLevel]:
    """
    Weight and bucket for a measured value.

    Crossing the low threshold raises the weight but the bucket stays low;
    the bucket only moves at the medium, high and critical thresholds.
    """
    low, medium, high, critical = ladder.thresholds
    w_base, w_low, w_medium, w_high, w_critical = ladder.weights

    if value >= critical:
        return w_critical, RiskLevel.CRITICAL
    if value >= high:
        return w_high, RiskLevel.HIGH
    if value >= medium:
        return w_medium, RiskLevel.MEDIUM
    if value >= low:
        return w_low, RiskLevel.LOW
    return w_base, RiskLevel.LOW


def factor_impact(value: float, ladder: WeightLadder, bucket: RiskLevel) -> FactorImpact:
    if bucket in (RiskLevel.HIGH, RiskLevel.CRITICAL):
        return FactorImpact.NEGATIVE
    if value < ladder.thresholds[0]:
        return FactorImpact.POSITIVE
    return FactorImpact.NEUTRAL


def risk_level_for_score(score: float) -> RiskLevel:
    """<40 low, [40,60) medium, [60,80) high, >=80 critical"""
    if score >= 80:
        return RiskLevel.CRITICAL
    if score >= 60:
        return RiskLevel.HIGH
    if score >= 40:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def default_ladders() -> Dict[FactorType, WeightLadder]:
    """Ladders from settings"""
    return {
        FactorType.CROWD_DENSITY: WeightLadder.of(settings.CROWD_DENSITY_THRESHOLDS, settings.CROWD_DENSITY_WEIGHTS),
        FactorType.WEATHER: WeightLadder.of(settings.WEATHER_THRESHOLDS, settings.WEATHER_WEIGHTS),
        FactorType.INCIDENT_FREQUENCY: WeightLadder.of(settings.INCIDENT_FREQUENCY_THRESHOLDS, settings.INCIDENT_FREQUENCY_WEIGHTS),
        FactorType.STAFF_LEVELS: WeightLadder.of(settings.STAFF_SHORTFALL_THRESHOLDS, settings.STAFF_SHORTFALL_WEIGHTS),
        FactorType.TIME_OF_DAY: WeightLadder.of(settings.TIME_OF_DAY_THRESHOLDS, settings.TIME_OF_DAY_WEIGHTS),
        FactorType.EVENT_TYPE: WeightLadder.of(settings.EVENT_TYPE_THRESHOLDS, settings.EVENT_TYPE_WEIGHTS),
    }


# =============================================================================
# FACTOR BUILDERS
# =============================================================================

def default_factor(factor_type: FactorType, reason: str = "data unavailable") -> RiskFactor:
    """Neutral stand-in used when a factor's input is missing or its source fails"""
    return RiskFactor(
        factor_type=factor_type,
        factor_value={"value": None, "missing": True},
        score=DEFAULT_FACTOR_SCORE,
        weight=DEFAULT_FACTOR_WEIGHT,
        impact=FactorImpact.NEUTRAL,
        risk_level=RiskLevel.LOW,
        description=f"{FACTOR_LABELS[factor_type]} {reason}",
    )


def _density_range(percent: float, ladder: WeightLadder) -> str:
    low, medium, high, critical = ladder.thresholds
    if percent >= critical:
        return f">={critical:g}%"
    if percent >= high:
        return f"{high:g}-{critical:g}%"
    if percent >= medium:
        return f"{medium:g}-{high:g}%"
    if percent >= low:
        return f"{low:g}-{medium:g}%"
    return f"<{low:g}%"


def crowd_density_factor(attendance: int, capacity: int, ladder: WeightLadder) -> RiskFactor:
    percent = max(0.0, min(100.0, attendance / capacity * 100))
    weight, bucket = step_weight(percent, ladder)
    return RiskFactor(
        factor_type=FactorType.CROWD_DENSITY,
        factor_value={
            "value": round(percent, 2),
            "density_range": _density_range(percent, ladder),
            "threshold": ladder.thresholds[3],
            "attendance": attendance,
            "capacity": capacity,
        },
        score=percent,
        weight=weight,
        impact=factor_impact(percent, ladder, bucket),
        risk_level=bucket,
        description=f"Venue at {percent:.1f}% of capacity ({attendance}/{capacity})",
    )


def weather_severity(reading: WeatherReading) -> float:
    """Placeholder heuristic: additive penalties for heat, cold, rain, wind and humidity"""
    severity = 0.0
    if reading.temperature_c > 30:
        severity += 40
    elif reading.temperature_c < 5:
        severity += 30
    if reading.precipitation_mm > 0:
        severity += 50
    if reading.wind_speed_kmh > 30:
        severity += 30
    if reading.humidity > 80:
        severity += 20
    return min(100.0, severity)


def weather_factor(reading: WeatherReading, ladder: WeightLadder) -> RiskFactor:
    severity = weather_severity(reading)
    weight, bucket = step_weight(severity, ladder)
    return RiskFactor(
        factor_type=FactorType.WEATHER,
        factor_value={
            "value": severity,
            "condition": reading.condition,
            "temperature_c": reading.temperature_c,
            "precipitation_mm": reading.precipitation_mm,
            "wind_speed_kmh": reading.wind_speed_kmh,
            "humidity": reading.humidity,
            "threshold": ladder.thresholds[3],
        },
        score=severity,
        weight=weight,
        impact=factor_impact(severity, ladder, bucket),
        risk_level=bucket,
        description=f"{reading.condition} conditions, {reading.temperature_c:.0f}°C",
    )


def incident_frequency_factor(incident_count: int, window_hours: float, ladder: WeightLadder) -> RiskFactor:
    rate = incident_count / window_hours if window_hours else 0.0
    critical = ladder.thresholds[3]
    score = min(100.0, rate / critical * 100) if critical else 0.0
    weight, bucket = step_weight(rate, ladder)
    return RiskFactor(
        factor_type=FactorType.INCIDENT_FREQUENCY,
        factor_value={
            "value": round(rate, 2),
            "incident_count": incident_count,
            "window_hours": window_hours,
            "threshold": critical,
        },
        score=score,
        weight=weight,
        impact=factor_impact(rate, ladder, bucket),
        risk_level=bucket,
        description=f"{incident_count} incidents in the last {window_hours:g}h ({rate:.1f}/h)",
    )


def staffing_factor(
    staff_on_duty: int,
    attendance: int,
    attendees_per_staff: int,
    ladder: WeightLadder,
) -> RiskFactor:
    required = math.ceil(attendance / attendees_per_staff) if attendance > 0 else 0
    ratio = 1.0 if required == 0 else min(1.0, staff_on_duty / required)
    shortfall = (1 - ratio) * 100
    weight, bucket = step_weight(shortfall, ladder)
    return RiskFactor(
        factor_type=FactorType.STAFF_LEVELS,
        factor_value={
            "value": round(ratio, 4),
            "staff_on_duty": staff_on_duty,
            "required_staff": required,
            "threshold": ladder.thresholds[3],
        },
        score=shortfall,
        weight=weight,
        impact=factor_impact(shortfall, ladder, bucket),
        risk_level=bucket,
        description=f"{staff_on_duty} of {required} required staff on duty",
    )


def time_of_day_score(hour: int) -> Tuple[float, str]:
    """80 for 22:00-02:59, 50 for 20:00-04:59, 20 otherwise"""
    if hour >= 22 or hour <= 2:
        return 80.0, "late_night"
    if hour >= 20 or hour <= 4:
        return 50.0, "evening"
    return 20.0, "daytime"


def time_of_day_factor(hour: int, ladder: WeightLadder) -> RiskFactor:
    score, time_slot = time_of_day_score(hour)
    weight, bucket = step_weight(score, ladder)
    return RiskFactor(
        factor_type=FactorType.TIME_OF_DAY,
        factor_value={"value": hour, "time_slot": time_slot},
        score=score,
        weight=weight,
        impact=factor_impact(score, ladder, bucket),
        risk_level=bucket,
        description=f"{time_slot.replace('_', ' ').capitalize()} ({hour:02d}:00)",
    )


def event_type_factor(event_type: str, baseline: float, ladder: WeightLadder) -> RiskFactor:
    weight, bucket = step_weight(baseline, ladder)
    return RiskFactor(
        factor_type=FactorType.EVENT_TYPE,
        factor_value={"value": baseline, "event_type": event_type},
        score=baseline,
        weight=weight,
        impact=factor_impact(baseline, ladder, bucket),
        risk_level=bucket,
        description=f"{event_type.capitalize()} event baseline risk {baseline:g}",
    )


def aggregate_score(factors: List[RiskFactor]) -> float:
    """sum(score * weight) / sum(weight), clamped to [0, 100]"""
    total_weight = sum(f.weight for f in factors)
    if total_weight <= 0:
        return DEFAULT_FACTOR_SCORE
    score = sum(f.score * f.weight for f in factors) / total_weight
    return round(max(0.0, min(100.0, score)), 2)


def confidence_for_missing(missing_count: int) -> float:
    return round(max(MIN_CONFIDENCE, BASE_CONFIDENCE - MISSING_FACTOR_PENALTY * missing_count), 2)


# =============================================================================
# ENGINE
# =============================================================================

class RiskScoringEngine:
    """Risk scoring for a single event"""

    def __init__(
        self,
        event_id: str,
        repository: EventDataRepository,
        weather_provider: Optional[WeatherProvider] = None,
        ladders: Optional[Dict[FactorType, WeightLadder]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.event_id = event_id
        self.repository = repository
        self.weather_provider = weather_provider
        self.ladders = ladders or default_ladders()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _now(self) -> datetime:
        return self._clock()

    async def calculate_overall_risk_score(self, persist: bool = True, strict: bool = True) -> RiskScore:
        """
        Compute all six factors and upsert the result keyed by event id.

        With strict=False a failed write is logged and the computed score
        is still returned.
        """
        try:
            event = await self.repository.get_event(self.event_id)
        except Exception as e:
            logger.error(f"Event lookup failed for {self.event_id}, scoring on defaults: {e}")
            event = None

        if event is None:
            logger.warning(f"No event record for {self.event_id}, all factors use defaults")
            results = [(default_factor(t, "event record missing"), True) for t in FactorType]
        else:
            results = await asyncio.gather(
                self._crowd_density(event),
                self._weather(event),
                self._incident_frequency(),
                self._staffing(event),
                self._time_of_day(event),
                self._event_type(event),
            )

        factors = [factor for factor, _ in results]
        missing = sum(1 for _, is_missing in results if is_missing)

        overall = aggregate_score(factors)
        score = RiskScore(
            event_id=self.event_id,
            overall_score=overall,
            risk_level=risk_level_for_score(overall),
            contributing_factors=factors,
            last_updated=self._now(),
            confidence=confidence_for_missing(missing),
        )

        logger.info(
            f"Risk score for {self.event_id}: {score.overall_score} "
            f"({score.risk_level.value}, confidence {score.confidence})"
        )
        get_monitoring_service().record_risk_score(score.risk_level.value)

        if persist:
            if event is None:
                logger.warning(f"Not storing risk score for unknown event {self.event_id}")
            else:
                try:
                    await self.store_risk_score(score)
                except PersistenceError:
                    if strict:
                        raise
                    logger.warning(f"Returning unsaved risk score for {self.event_id}")

        return score

    async def store_risk_score(self, score: RiskScore) -> None:
        try:
            await self.repository.upsert_risk_score(score)
        except Exception as e:
            logger.error(f"Failed to store risk score for {self.event_id}: {e}")
            raise PersistenceError(f"Risk score write failed: {e}") from e

    async def get_stored_risk_score(self) -> Optional[RiskScore]:
        return await self.repository.get_risk_score(self.event_id)

    # Factors ---------------------------------------------------------------
    # Each returns (factor, missing) and never raises.

    async def _crowd_density(self, event: EventSnapshot) -> Tuple[RiskFactor, bool]:
        if not event.capacity or event.capacity <= 0:
            return default_factor(FactorType.CROWD_DENSITY, "capacity unknown"), True
        return crowd_density_factor(
            event.current_attendance, event.capacity, self.ladders[FactorType.CROWD_DENSITY]
        ), False

    async def _weather(self, event: EventSnapshot) -> Tuple[RiskFactor, bool]:
        if self.weather_provider is None:
            return default_factor(FactorType.WEATHER, "provider not configured"), True

        latitude = event.latitude if event.latitude is not None else settings.DEFAULT_LATITUDE
        longitude = event.longitude if event.longitude is not None else settings.DEFAULT_LONGITUDE
        try:
            reading = await self.weather_provider.get_current(latitude, longitude)
        except Exception as e:
            logger.warning(f"Weather unavailable for {self.event_id}: {e}")
            return default_factor(FactorType.WEATHER, "data unavailable"), True
        return weather_factor(reading, self.ladders[FactorType.WEATHER]), False

    async def _incident_frequency(self) -> Tuple[RiskFactor, bool]:
        window_hours = settings.INCIDENT_WINDOW_HOURS
        since = self._now() - timedelta(hours=window_hours)
        try:
            incidents = await self.repository.list_incidents(self.event_id, since=since)
        except Exception as e:
            logger.warning(f"Incident history unavailable for {self.event_id}: {e}")
            return default_factor(FactorType.INCIDENT_FREQUENCY, "data unavailable"), True
        return incident_frequency_factor(
            len(incidents), window_hours, self.ladders[FactorType.INCIDENT_FREQUENCY]
        ), False

    async def _staffing(self, event: EventSnapshot) -> Tuple[RiskFactor, bool]:
        if event.staff_on_duty is None:
            return default_factor(FactorType.STAFF_LEVELS, "roster unavailable"), True
        return staffing_factor(
            event.staff_on_duty,
            event.current_attendance,
            settings.ATTENDEES_PER_STAFF,
            self.ladders[FactorType.STAFF_LEVELS],
        ), False

    async def _time_of_day(self, event: EventSnapshot) -> Tuple[RiskFactor, bool]:
        hour = local_hour(self._now(), settings.get_venue_zone(event.timezone))
        return time_of_day_factor(hour, self.ladders[FactorType.TIME_OF_DAY]), False

    async def _event_type(self, event: EventSnapshot) -> Tuple[RiskFactor, bool]:
        if not event.event_type:
            return default_factor(FactorType.EVENT_TYPE, "not specified"), True
        return event_type_factor(
            event.event_type,
            settings.get_event_type_risk(event.event_type),
            self.ladders[FactorType.EVENT_TYPE],
        ), False

    # Breakdowns ------------------------------------------------------------

    async def get_location_specific_risk_scores(self) -> List[LocationRiskScore]:
        incidents = await self.repository.list_incidents(self.event_id)
        return location_risk_scores(incidents)

    async def get_incident_type_risk_scores(self) -> List[IncidentTypeRisk]:
        incidents = await self.repository.list_incidents(self.event_id)
        return incident_type_risk_scores(incidents)


def location_risk_scores(incidents: List[IncidentRecord]) -> List[LocationRiskScore]:
    """Group by location; risk = min(100, count * mean severity * 10)"""
    groups: Dict[str, List[IncidentRecord]] = defaultdict(list)
    for incident in incidents:
        groups[incident.location or "Unknown"].append(incident)

    hotspots = {
        s["location"] for s in analyze_spatial_patterns(incidents)
        if s["risk_level"] in (RiskLevel.HIGH, RiskLevel.CRITICAL)
    }

    scores = []
    for location, group in groups.items():
        count = len(group)
        avg_severity = sum(incident_severity(i.priority) for i in group) / count
        risk = min(100.0, count * avg_severity * LOCATION_SEVERITY_MULTIPLIER)
        types = sorted({i.incident_type for i in group})

        factors = []
        if count > 5:
            factors.append("High incident frequency")
        if "medical" in types:
            factors.append("Medical incident hotspot")
        if "security" in types:
            factors.append("Security incident hotspot")
        if risk > 70:
            factors.append("Critical risk level")
        if location in hotspots:
            factors.append("Recurring spatial hotspot")

        scores.append(LocationRiskScore(
            location=location,
            risk_score=round(risk, 2),
            incident_count=count,
            average_severity=avg_severity,
            incident_types=types,
            contributing_factors=factors,
            last_incident=max(i.created_at for i in group),
        ))

    return sorted(scores, key=lambda s: s.risk_score, reverse=True)


def incident_type_risk_scores(incidents: List[IncidentRecord]) -> List[IncidentTypeRisk]:
    """Group by type; risk = min(100, count * mean severity * 8), probability = share of all incidents"""
    total = len(incidents)
    groups: Dict[str, List[IncidentRecord]] = defaultdict(list)
    for incident in incidents:
        groups[incident.incident_type].append(incident)

    scores = []
    for incident_type, group in groups.items():
        count = len(group)
        avg_severity = sum(incident_severity(i.priority) for i in group) / count
        risk = min(100.0, count * avg_severity * INCIDENT_TYPE_SEVERITY_MULTIPLIER)
        probability = count / total

        factors = []
        if count > 5:
            factors.append("Frequent incident type")
        if avg_severity >= 2.5:
            factors.append("Predominantly high priority")
        if probability > 0.5:
            factors.append("Majority of reported incidents")
        if any(i.is_escalated for i in group):
            factors.append("Escalations recorded")

        scores.append(IncidentTypeRisk(
            incident_type=incident_type,
            risk_score=round(risk, 2),
            incident_count=count,
            average_severity=avg_severity,
            probability=probability,
            contributing_factors=factors,
        ))

    return sorted(scores, key=lambda s: s.risk_score, reverse=True)
