"""
SafeVenue - Pattern Recognition Unit Tests
"""

from datetime import timedelta
from unittest.mock import AsyncMock
from zoneinfo import ZoneInfo

import pytest

from safevenue.core.exceptions import PersistenceError
from safevenue.models.domain import AttendanceSample, PatternType, RiskLevel
from safevenue.services.analytics.pattern_recognition import (
    PatternRecognitionEngine,
    analyze_behavioral_patterns,
    analyze_correlation_patterns,
    analyze_spatial_patterns,
    analyze_temporal_patterns,
    classify_flow_periods,
    historical_crowd_flow,
    incident_severity,
    synthesize_patterns,
)

# Test configuration
pytestmark = pytest.mark.unit


class TestSubAnalyses:
    """Pure analyses over an incident list."""

    def test_severity_mapping(self):
        assert incident_severity("high") == 3
        assert incident_severity("MEDIUM") == 2
        assert incident_severity("low") == 1
        assert incident_severity(None) == 1
        assert incident_severity("unknown") == 1

    def test_temporal_buckets_by_hour(self, make_incident):
        incidents = [make_incident("evt-1", m) for m in (10, 20, 30)]
        incidents.append(make_incident("evt-1", 90, incident_type="security"))

        buckets = analyze_temporal_patterns(incidents)

        assert [b["hour"] for b in buckets] == [10, 11]
        assert buckets[1]["frequency"] == 3
        assert buckets[1]["incident_types"] == ["medical"]

    def test_spatial_risk_levels(self, make_incident):
        incidents = [make_incident("evt-1", m, location="Gate A", priority="high") for m in range(4)]
        incidents.append(make_incident("evt-1", 5, location="Bar", priority="low"))

        buckets = analyze_spatial_patterns(incidents)

        assert buckets[0]["location"] == "Gate A"
        assert buckets[0]["risk_level"] == RiskLevel.HIGH
        assert buckets[1]["risk_level"] == RiskLevel.LOW

    def test_behavioral_response_time(self, make_incident, now):
        incidents = [
            make_incident("evt-1", m, resolved_at=now - timedelta(minutes=m - 3))
            for m in (10, 20)
        ]

        result = analyze_behavioral_patterns(incidents)

        assert result["response_time"]["average_response_minutes"] == 3.0
        assert result["response_time"]["effectiveness"] == 0.8
        assert result["escalation"] is None

    def test_behavioral_escalation(self, make_incident):
        incidents = [
            make_incident("evt-1", 1, priority="high"),
            make_incident("evt-1", 2, is_escalated=True),
            make_incident("evt-1", 3),
            make_incident("evt-1", 4),
        ]

        result = analyze_behavioral_patterns(incidents)

        assert result["escalation"]["escalated_count"] == 2
        assert result["escalation"]["frequency"] == 0.5

    def test_correlation_checks(self, make_incident):
        incidents = [
            make_incident("evt-1", 1, incident_type="medical"),
            make_incident("evt-1", 2, incident_type="crowd_surge"),
        ]

        names = {c["name"] for c in analyze_correlation_patterns(incidents)}

        assert names == {"weather_sensitivity", "crowd_density"}

    def test_no_incidents_no_correlations(self):
        assert analyze_correlation_patterns([]) == []


class TestVenueLocalHours:
    """Hour buckets and the evening check use the venue's zone."""

    def test_temporal_buckets_in_venue_zone(self, make_incident):
        incidents = [make_incident("evt-1", m) for m in (10, 20, 30, 90)]

        buckets = analyze_temporal_patterns(incidents, ZoneInfo("America/New_York"))

        assert [b["hour"] for b in buckets] == [6, 7]

    def test_evening_concentration_in_venue_zone(self, make_incident):
        incidents = [make_incident("evt-1", m, incident_type="noise") for m in (10, 20, 30)]

        local = {c["name"] for c in analyze_correlation_patterns(incidents, ZoneInfo("Asia/Tokyo"))}
        utc = {c["name"] for c in analyze_correlation_patterns(incidents)}

        assert local == {"evening_concentration"}
        assert utc == set()

    @pytest.mark.asyncio
    async def test_engine_uses_event_timezone(self, repository, make_event, make_incident, clock):
        make_event(timezone="Asia/Tokyo")
        for minutes_ago in (10, 20, 30):
            repository.add_incident(make_incident("evt-1", minutes_ago))
        engine = PatternRecognitionEngine("evt-1", repository, clock=clock)

        buckets = await engine.analyze_temporal_patterns()

        assert [b["hour"] for b in buckets] == [20]


class TestSynthesis:
    """Promotion of sub-patterns to stored patterns."""

    def test_temporal_and_correlation_patterns(self, make_incident, now):
        incidents = [make_incident("evt-1", m) for m in (10, 20, 30)]

        patterns = synthesize_patterns("evt-1", incidents, now)

        assert [p.pattern_type for p in patterns] == [PatternType.TEMPORAL, PatternType.CORRELATION]
        assert all(0 <= p.confidence <= 1 for p in patterns)
        assert patterns[0].detected_at == now

    def test_low_spatial_risk_not_promoted(self, make_incident, now):
        incidents = [make_incident("evt-1", 10, incident_type="noise", priority="low")]

        assert synthesize_patterns("evt-1", incidents, now) == []


class TestPatternRecognitionEngine:
    """Engine storage semantics."""

    @pytest.mark.asyncio
    async def test_storage_keeps_one_pattern_per_type(self, repository, make_event, make_incident, clock):
        make_event()
        for location in ("Gate A", "Gate B"):
            for m in range(4):
                repository.add_incident(make_incident("evt-1", 200 + m * 60, location=location, priority="high"))
        engine = PatternRecognitionEngine("evt-1", repository, clock=clock)

        patterns = await engine.analyze_incident_patterns()

        spatial = [p for p in patterns if p.pattern_type == PatternType.SPATIAL]
        stored = await engine.get_patterns_by_type(PatternType.SPATIAL)
        assert len(spatial) == 2
        assert len(stored) == 1
        assert stored[0].description == spatial[-1].description

    @pytest.mark.asyncio
    async def test_reanalysis_keeps_detected_at(self, repository, make_event, make_incident, now):
        make_event()
        for m in (10, 20, 30):
            repository.add_incident(make_incident("evt-1", m))

        first = PatternRecognitionEngine("evt-1", repository, clock=lambda: now)
        await first.analyze_incident_patterns()
        later = now + timedelta(hours=1)
        second = PatternRecognitionEngine("evt-1", repository, clock=lambda: later)
        await second.analyze_incident_patterns()

        stored = await second.get_patterns_by_type(PatternType.TEMPORAL)
        assert len(stored) == 1
        assert stored[0].detected_at == now
        assert stored[0].last_updated == later

    @pytest.mark.asyncio
    async def test_high_confidence_filter(self, repository, make_event, make_incident, clock):
        make_event()
        for m in (10, 20, 30):
            repository.add_incident(make_incident("evt-1", m))
        engine = PatternRecognitionEngine("evt-1", repository, clock=clock)
        await engine.analyze_incident_patterns()

        high = await engine.get_high_confidence_patterns(0.9)

        assert [p.pattern_type for p in high] == [PatternType.TEMPORAL]

    @pytest.mark.asyncio
    async def test_store_failure_raises(self, repository, make_event, make_incident, clock):
        make_event()
        repository.add_incident(make_incident("evt-1", 10))
        repository.upsert_pattern = AsyncMock(side_effect=RuntimeError("db down"))
        engine = PatternRecognitionEngine("evt-1", repository, clock=clock)

        with pytest.raises(PersistenceError):
            await engine.analyze_incident_patterns()

    @pytest.mark.asyncio
    async def test_weather_patterns_group_by_condition(self, repository, make_event, make_incident, clock):
        make_event()
        repository.add_incident(make_incident("evt-1", 10, weather_condition="Rain"))
        repository.add_incident(make_incident("evt-1", 20, weather_condition="rain"))
        repository.add_incident(make_incident("evt-1", 30))
        engine = PatternRecognitionEngine("evt-1", repository, clock=clock)

        groups = await engine.analyze_weather_patterns()

        assert groups == [{
            "condition": "rain",
            "incident_count": 2,
            "share": 1.0,
            "incident_types": ["medical"],
            "average_severity": 2.0,
        }]

    @pytest.mark.asyncio
    async def test_current_weather_without_provider(self, repository, make_event, clock):
        make_event()
        engine = PatternRecognitionEngine("evt-1", repository, clock=clock)

        assert await engine.get_current_weather_conditions() == {"condition": "unknown", "available": False}


class TestCrowdFlowHistory:
    """Attendance-derived flow rates."""

    def test_rates_between_samples(self, now):
        samples = [
            AttendanceSample(now - timedelta(minutes=20), 0),
            AttendanceSample(now - timedelta(minutes=10), 100),
            AttendanceSample(now, 80),
        ]

        flow = historical_crowd_flow(samples)

        assert flow[0]["entry_rate"] == 0.0
        assert flow[1]["entry_rate"] == 10.0
        assert flow[2]["exit_rate"] == 2.0
        assert [p["direction"] for p in classify_flow_periods(flow)] == ["inflow", "outflow"]
