"""
SafeVenue - Pattern Recognition Engine
Mines an event's incident and attendance history for temporal, spatial,
behavioral and correlation patterns.

The four sub-analyses are pure functions of the incident list. Synthesis
promotes the interesting sub-patterns to IncidentPattern records; storage
upserts by (event, pattern type), so only the last synthesized pattern of
each type survives a run.
"""

import logging
from collections import defaultdict
from datetime import datetime, timezone, tzinfo
from typing import Any, Callable, Dict, List, Optional

from safevenue.core.config import settings
from safevenue.core.exceptions import PersistenceError
from safevenue.models.domain import (
    AttendanceSample,
    IncidentPattern,
    IncidentRecord,
    PatternFactor,
    PatternType,
    RiskLevel,
    local_hour,
)
from safevenue.services.data.repository import EventDataRepository
from safevenue.services.weather.weather_service import WeatherProvider

logger = logging.getLogger(__name__)

WEATHER_SENSITIVE_TYPES = {"medical", "slip_fall", "heat_exhaustion", "hypothermia", "weather"}
CROWD_RELATED_TYPES = {"crowd_control", "crowd_surge", "overcrowding", "fight", "security", "lost_child"}

TEMPORAL_MIN_FREQUENCY = 2
TEMPORAL_MIN_CONFIDENCE = 0.7
EVENING_START_HOUR = 18
EVENING_SHARE_THRESHOLD = 0.6
FAST_RESPONSE_MINUTES = 5

SEVERITY_BY_PRIORITY = {"high": 3, "medium": 2, "low": 1}


def incident_severity(priority: Optional[str]) -> int:
    """high -> 3, medium -> 2, low and anything else -> 1"""
    return SEVERITY_BY_PRIORITY.get((priority or "").lower(), 1)


def _mean_severity(incidents: List[IncidentRecord]) -> float:
    return sum(incident_severity(i.priority) for i in incidents) / len(incidents)


# =============================================================================
# SUB-ANALYSES
# =============================================================================

def analyze_temporal_patterns(
    incidents: List[IncidentRecord],
    zone: tzinfo = timezone.utc,
) -> List[Dict[str, Any]]:
    """Venue-local hour-of-day buckets with frequency, types, mean severity and confidence"""
    total = len(incidents)
    buckets: Dict[int, List[IncidentRecord]] = defaultdict(list)
    for incident in incidents:
        buckets[local_hour(incident.created_at, zone)].append(incident)

    results = []
    for hour in sorted(buckets):
        group = buckets[hour]
        frequency = len(group)
        confidence = min(frequency / 10, 1) * min(frequency / total * 100, 100)
        results.append({
            "hour": hour,
            "frequency": frequency,
            "incident_types": sorted({i.incident_type for i in group}),
            "average_severity": round(_mean_severity(group), 2),
            "confidence": confidence,
        })
    return results


def spatial_risk_level(score: float) -> RiskLevel:
    """count * mean severity: >=15 critical, >=10 high, >=5 medium"""
    if score >= 15:
        return RiskLevel.CRITICAL
    if score >= 10:
        return RiskLevel.HIGH
    if score >= 5:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def analyze_spatial_patterns(incidents: List[IncidentRecord]) -> List[Dict[str, Any]]:
    """Location buckets with a risk level and a density-correlation heuristic"""
    buckets: Dict[str, List[IncidentRecord]] = defaultdict(list)
    for incident in incidents:
        buckets[incident.location or "Unknown"].append(incident)

    results = []
    for location, group in buckets.items():
        count = len(group)
        avg_severity = _mean_severity(group)
        score = count * avg_severity
        results.append({
            "location": location,
            "incident_count": count,
            "average_severity": round(avg_severity, 2),
            "risk_score": round(score, 2),
            "risk_level": spatial_risk_level(score),
            "density_correlation": round(0.6 + min(count / 20, 1) * 0.4, 4),
            "incident_types": sorted({i.incident_type for i in group}),
        })
    return sorted(results, key=lambda r: r["risk_score"], reverse=True)


def analyze_behavioral_patterns(incidents: List[IncidentRecord]) -> Dict[str, Optional[Dict[str, Any]]]:
    """Response-time and escalation patterns, each None when nothing qualifies"""
    result: Dict[str, Optional[Dict[str, Any]]] = {"response_time": None, "escalation": None}

    resolved = [i for i in incidents if i.resolved_at is not None]
    if resolved:
        minutes = [(i.resolved_at - i.created_at).total_seconds() / 60 for i in resolved]
        mean_minutes = sum(minutes) / len(minutes)
        result["response_time"] = {
            "resolved_count": len(resolved),
            "average_response_minutes": round(mean_minutes, 2),
            "effectiveness": 0.8 if mean_minutes < FAST_RESPONSE_MINUTES else 0.4,
        }

    escalated = [
        i for i in incidents
        if i.is_escalated or (i.priority or "").lower() in ("high", "critical")
    ]
    if escalated:
        result["escalation"] = {
            "escalated_count": len(escalated),
            "frequency": round(len(escalated) / len(incidents), 4),
            "incident_types": sorted({i.incident_type for i in escalated}),
        }

    return result


def analyze_correlation_patterns(
    incidents: List[IncidentRecord],
    zone: tzinfo = timezone.utc,
) -> List[Dict[str, Any]]:
    """Three fixed checks: weather-sensitive types, crowd-related types, evening concentration"""
    if not incidents:
        return []

    results = []

    weather_hits = [i for i in incidents if i.incident_type in WEATHER_SENSITIVE_TYPES]
    if weather_hits:
        results.append({
            "name": "weather_sensitivity",
            "strength": 0.7,
            "significance": "medium",
            "incident_count": len(weather_hits),
            "description": "Weather-sensitive incident types present",
        })

    crowd_hits = [i for i in incidents if i.incident_type in CROWD_RELATED_TYPES]
    if crowd_hits:
        results.append({
            "name": "crowd_density",
            "strength": 0.8,
            "significance": "high",
            "incident_count": len(crowd_hits),
            "description": "Crowd-related incident types present",
        })

    evening = [i for i in incidents if local_hour(i.created_at, zone) >= EVENING_START_HOUR]
    share = len(evening) / len(incidents)
    if share > EVENING_SHARE_THRESHOLD:
        results.append({
            "name": "evening_concentration",
            "strength": 0.75,
            "significance": "medium",
            "incident_count": len(evening),
            "description": f"{share:.0%} of incidents between 18:00 and 23:59",
        })

    return results


# =============================================================================
# SYNTHESIS
# =============================================================================

def synthesize_patterns(
    event_id: str,
    incidents: List[IncidentRecord],
    now: datetime,
    zone: tzinfo = timezone.utc,
) -> List[IncidentPattern]:
    """Promote interesting sub-patterns, in temporal, spatial, behavioral, correlation order"""
    patterns: List[IncidentPattern] = []

    def make(pattern_type, confidence, description, factors, impact, recommendations):
        patterns.append(IncidentPattern(
            event_id=event_id,
            pattern_type=pattern_type,
            confidence=round(min(1.0, confidence), 4),
            description=description,
            factors=factors,
            impact=impact,
            recommendations=recommendations,
            detected_at=now,
            last_updated=now,
        ))

    for bucket in analyze_temporal_patterns(incidents, zone):
        if bucket["frequency"] > TEMPORAL_MIN_FREQUENCY and bucket["confidence"] > TEMPORAL_MIN_CONFIDENCE:
            hour = bucket["hour"]
            make(
                PatternType.TEMPORAL,
                bucket["confidence"],
                f"Incident peak at {hour:02d}:00 ({bucket['frequency']} incidents)",
                [
                    PatternFactor("hour", hour, "high"),
                    PatternFactor("frequency", bucket["frequency"], "high"),
                    PatternFactor("incident_types", bucket["incident_types"], "medium"),
                    PatternFactor("average_severity", bucket["average_severity"], "medium"),
                ],
                f"Elevated incident volume around {hour:02d}:00",
                [
                    f"Increase staff presence between {hour:02d}:00 and {(hour + 1) % 24:02d}:00",
                    "Pre-position response teams ahead of the peak hour",
                ],
            )

    for bucket in analyze_spatial_patterns(incidents):
        if bucket["risk_level"] in (RiskLevel.HIGH, RiskLevel.CRITICAL):
            location = bucket["location"]
            make(
                PatternType.SPATIAL,
                bucket["density_correlation"],
                f"Incident hotspot at {location} ({bucket['incident_count']} incidents)",
                [
                    PatternFactor("location", location, "high"),
                    PatternFactor("incident_count", bucket["incident_count"], "high"),
                    PatternFactor("average_severity", bucket["average_severity"], "medium"),
                    PatternFactor("risk_level", bucket["risk_level"].value, "high"),
                ],
                f"{bucket['risk_level'].value.capitalize()} risk concentration at {location}",
                [
                    f"Deploy additional security at {location}",
                    f"Review crowd flow and sight lines around {location}",
                ],
            )

    behavioral = analyze_behavioral_patterns(incidents)
    response = behavioral["response_time"]
    if response:
        fast = response["effectiveness"] >= 0.8
        make(
            PatternType.BEHAVIORAL,
            response["effectiveness"],
            f"Average response time {response['average_response_minutes']:.1f} minutes",
            [
                PatternFactor("average_response_minutes", response["average_response_minutes"], "high"),
                PatternFactor("resolved_count", response["resolved_count"], "medium"),
                PatternFactor("effectiveness", response["effectiveness"], "high"),
            ],
            "Response times within target" if fast else "Slow incident response",
            ["Maintain current response procedures"] if fast else [
                "Review dispatch procedures to cut response time",
                "Station responders closer to recurring hotspots",
            ],
        )

    escalation = behavioral["escalation"]
    if escalation:
        make(
            PatternType.BEHAVIORAL,
            0.6 + escalation["frequency"] * 0.4,
            f"{escalation['escalated_count']} high-priority or escalated incidents "
            f"({escalation['frequency']:.0%} of total)",
            [
                PatternFactor("escalated_count", escalation["escalated_count"], "high"),
                PatternFactor("frequency", escalation["frequency"], "high"),
                PatternFactor("incident_types", escalation["incident_types"], "medium"),
            ],
            "Incidents frequently require escalation",
            [
                "Brief supervisors on escalation criteria",
                "Ensure senior staff are reachable during peak periods",
            ],
        )

    for correlation in analyze_correlation_patterns(incidents, zone):
        make(
            PatternType.CORRELATION,
            correlation["strength"],
            correlation["description"],
            [
                PatternFactor(correlation["name"], correlation["strength"], correlation["significance"]),
                PatternFactor("incident_count", correlation["incident_count"], "medium"),
            ],
            f"Incidents correlate with {correlation['name'].replace('_', ' ')}",
            ["Factor this correlation into staffing and briefing plans"],
        )

    return patterns


# =============================================================================
# ENGINE
# =============================================================================

class PatternRecognitionEngine:
    """Pattern recognition for a single event"""

    def __init__(
        self,
        event_id: str,
        repository: EventDataRepository,
        weather_provider: Optional[WeatherProvider] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.event_id = event_id
        self.repository = repository
        self.weather_provider = weather_provider
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def _venue_zone(self) -> tzinfo:
        event = await self.repository.get_event(self.event_id)
        return settings.get_venue_zone(event.timezone if event else None)

    async def analyze_incident_patterns(self, persist: bool = True) -> List[IncidentPattern]:
        """
        Run all sub-analyses and return every synthesized pattern.

        Several patterns of one type may be returned; storage keeps the last.
        """
        incidents = await self.repository.list_incidents(self.event_id)
        zone = await self._venue_zone()
        patterns = synthesize_patterns(self.event_id, incidents, self._clock(), zone)

        logger.info(
            f"Detected {len(patterns)} patterns from {len(incidents)} incidents for {self.event_id}"
        )

        if persist:
            await self.store_patterns(patterns)
        return patterns

    async def store_patterns(self, patterns: List[IncidentPattern]) -> None:
        for pattern in patterns:
            try:
                await self.repository.upsert_pattern(pattern)
            except Exception as e:
                logger.error(
                    f"Failed to store {pattern.pattern_type.value} pattern for {self.event_id}: {e}"
                )
                raise PersistenceError(f"Pattern write failed: {e}") from e

    async def get_patterns_by_type(self, pattern_type: PatternType) -> List[IncidentPattern]:
        return await self.repository.list_patterns(self.event_id, pattern_type=pattern_type)

    async def get_high_confidence_patterns(self, min_confidence: float = 0.7) -> List[IncidentPattern]:
        return await self.repository.list_patterns(self.event_id, min_confidence=min_confidence)

    # Raw sub-analyses over the stored history

    async def analyze_temporal_patterns(self) -> List[Dict[str, Any]]:
        incidents = await self.repository.list_incidents(self.event_id)
        return analyze_temporal_patterns(incidents, await self._venue_zone())

    async def analyze_spatial_patterns(self) -> List[Dict[str, Any]]:
        return analyze_spatial_patterns(await self.repository.list_incidents(self.event_id))

    async def analyze_behavioral_patterns(self) -> Dict[str, Optional[Dict[str, Any]]]:
        return analyze_behavioral_patterns(await self.repository.list_incidents(self.event_id))

    async def analyze_correlation_patterns(self) -> List[Dict[str, Any]]:
        incidents = await self.repository.list_incidents(self.event_id)
        return analyze_correlation_patterns(incidents, await self._venue_zone())

    # Weather helpers -------------------------------------------------------

    async def get_historical_weather_incidents(self) -> List[IncidentRecord]:
        incidents = await self.repository.list_incidents(self.event_id)
        return [i for i in incidents if i.weather_condition]

    async def analyze_weather_patterns(self) -> List[Dict[str, Any]]:
        """Incidents grouped by the weather recorded when they were reported"""
        incidents = await self.get_historical_weather_incidents()
        if not incidents:
            return []

        groups: Dict[str, List[IncidentRecord]] = defaultdict(list)
        for incident in incidents:
            groups[incident.weather_condition.lower()].append(incident)

        results = [
            {
                "condition": condition,
                "incident_count": len(group),
                "share": round(len(group) / len(incidents), 4),
                "incident_types": sorted({i.incident_type for i in group}),
                "average_severity": round(_mean_severity(group), 2),
            }
            for condition, group in groups.items()
        ]
        return sorted(results, key=lambda r: r["incident_count"], reverse=True)

    async def get_current_weather_conditions(self) -> Dict[str, Any]:
        unavailable = {"condition": "unknown", "available": False}
        if self.weather_provider is None:
            return unavailable

        event = await self.repository.get_event(self.event_id)
        latitude = settings.DEFAULT_LATITUDE
        longitude = settings.DEFAULT_LONGITUDE
        if event is not None and event.latitude is not None and event.longitude is not None:
            latitude, longitude = event.latitude, event.longitude

        try:
            reading = await self.weather_provider.get_current(latitude, longitude)
        except Exception as e:
            logger.warning(f"Current weather unavailable for {self.event_id}: {e}")
            return unavailable
        return {**reading.to_dict(), "available": True}

    # Crowd flow helpers ----------------------------------------------------

    async def get_historical_crowd_flow(self) -> List[Dict[str, Any]]:
        samples = await self.repository.list_attendance(self.event_id)
        return historical_crowd_flow(samples)

    async def analyze_crowd_flow_patterns(self) -> List[Dict[str, Any]]:
        """Contiguous inflow / outflow / stable periods"""
        return classify_flow_periods(await self.get_historical_crowd_flow())


def historical_crowd_flow(samples: List[AttendanceSample]) -> List[Dict[str, Any]]:
    """Per-sample entry and exit rates (people per minute) relative to the previous sample"""
    flow = []
    previous = None
    for sample in samples:
        entry_rate = exit_rate = 0.0
        if previous is not None:
            minutes = (sample.timestamp - previous.timestamp).total_seconds() / 60
            if minutes > 0:
                delta = sample.count - previous.count
                if delta > 0:
                    entry_rate = delta / minutes
                elif delta < 0:
                    exit_rate = -delta / minutes
        flow.append({
            "timestamp": sample.timestamp,
            "entry_rate": round(entry_rate, 4),
            "exit_rate": round(exit_rate, 4),
            "occupancy": sample.count,
        })
        previous = sample
    return flow


def classify_flow_periods(flow: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    periods: List[Dict[str, Any]] = []
    for point in flow[1:]:
        if point["entry_rate"] > point["exit_rate"]:
            direction = "inflow"
        elif point["exit_rate"] > point["entry_rate"]:
            direction = "outflow"
        else:
            direction = "stable"

        net_rate = point["entry_rate"] - point["exit_rate"]
        if periods and periods[-1]["direction"] == direction:
            period = periods[-1]
            period["end"] = point["timestamp"]
            period["samples"] += 1
            period["peak_rate"] = max(period["peak_rate"], abs(net_rate))
        else:
            periods.append({
                "direction": direction,
                "start": point["timestamp"],
                "end": point["timestamp"],
                "samples": 1,
                "peak_rate": abs(net_rate),
            })
    return periods
