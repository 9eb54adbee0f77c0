"""
SafeVenue - Event Repository Unit Tests
In-memory semantics and the PostgreSQL upsert statements.
"""

from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy.dialects import postgresql

from safevenue.models.domain import (
    AlertSeverity,
    AlertType,
    EventStatus,
    IncidentPattern,
    PatternType,
    PredictiveAlert,
    RiskLevel,
    RiskScore,
)
from safevenue.services.data import (
    InMemoryEventRepository,
    build_event_repository,
)
from safevenue.services.data.sql_repository import (
    SQLAlchemyEventRepository,
    build_pattern_upsert,
    build_risk_score_upsert,
)

# Test configuration
pytestmark = pytest.mark.unit


def _alert(event_id, now, minutes_ago=0, ttl=30, severity=AlertSeverity.WARNING):
    created = now - timedelta(minutes=minutes_ago)
    return PredictiveAlert(
        event_id=event_id,
        alert_type=AlertType.CROWD,
        severity=severity,
        message="Crowd Alert",
        recommendations=["Monitor entry rates"],
        timestamp=created,
        expires_at=created + timedelta(minutes=ttl),
        confidence=0.9,
    )


def _pattern(event_id, now, description, confidence=0.8):
    return IncidentPattern(
        event_id=event_id,
        pattern_type=PatternType.SPATIAL,
        confidence=confidence,
        description=description,
        factors=[],
        impact="",
        recommendations=[],
        detected_at=now,
        last_updated=now,
    )


class TestInMemoryEventRepository:
    """Read and write semantics."""

    @pytest.mark.asyncio
    async def test_incidents_since(self, repository, make_event, make_incident, now):
        make_event()
        repository.add_incident(make_incident("evt-1", 180))
        repository.add_incident(make_incident("evt-1", 30))

        recent = await repository.list_incidents("evt-1", since=now - timedelta(hours=2))

        assert len(recent) == 1
        assert len(await repository.list_incidents("evt-1")) == 2
        assert await repository.list_incidents("other") == []

    @pytest.mark.asyncio
    async def test_live_events(self, repository, make_event):
        make_event("live")
        make_event("done", status=EventStatus.COMPLETED)

        assert await repository.list_live_event_ids() == ["live"]

    @pytest.mark.asyncio
    async def test_risk_score_upsert_is_last_write_wins(self, repository, now):
        for value in (20.0, 70.0):
            await repository.upsert_risk_score(RiskScore(
                event_id="evt-1",
                overall_score=value,
                risk_level=RiskLevel.LOW,
                contributing_factors=[],
                last_updated=now,
                confidence=0.8,
            ))

        stored = await repository.get_risk_score("evt-1")
        assert stored.overall_score == 70.0

    @pytest.mark.asyncio
    async def test_pattern_upsert_keeps_identity(self, repository, now):
        first = _pattern("evt-1", now, "first")
        await repository.upsert_pattern(first)
        await repository.upsert_pattern(_pattern("evt-1", now + timedelta(hours=1), "second", 0.9))

        stored = await repository.list_patterns("evt-1")

        assert len(stored) == 1
        assert stored[0].id == first.id
        assert stored[0].detected_at == now
        assert stored[0].description == "second"
        assert await repository.list_patterns("evt-1", min_confidence=0.95) == []

    @pytest.mark.asyncio
    async def test_active_alerts_newest_first(self, repository, now):
        older = _alert("evt-1", now, minutes_ago=10)
        newer = _alert("evt-1", now, minutes_ago=1)
        expired = _alert("evt-1", now, minutes_ago=40)
        await repository.insert_alerts([older, newer, expired])

        active = await repository.list_active_alerts("evt-1", now)

        assert [a.id for a in active] == [newer.id, older.id]

    @pytest.mark.asyncio
    async def test_acknowledge_is_one_way(self, repository, now):
        alert = _alert("evt-1", now)
        await repository.insert_alerts([alert])

        first = await repository.acknowledge_alert(alert.id, "op-1", now)
        second = await repository.acknowledge_alert(alert.id, "op-2", now + timedelta(minutes=1))

        assert first.acknowledged_by == "op-1"
        assert second.acknowledged_by == "op-1"
        assert second.acknowledged_at == now
        assert await repository.acknowledge_alert("missing", "op-1", now) is None

    @pytest.mark.asyncio
    async def test_find_active_alert(self, repository, now):
        alert = _alert("evt-1", now, severity=AlertSeverity.CRITICAL)
        await repository.insert_alerts([alert])

        found = await repository.find_active_alert("evt-1", AlertType.CROWD, AlertSeverity.CRITICAL, now)
        missing = await repository.find_active_alert("evt-1", AlertType.CROWD, AlertSeverity.WARNING, now)

        assert found.id == alert.id
        assert missing is None

    @pytest.mark.asyncio
    async def test_returned_alerts_are_copies(self, repository, now):
        alert = _alert("evt-1", now)
        await repository.insert_alerts([alert])

        fetched = await repository.get_alert(alert.id)
        fetched.acknowledged = True

        assert (await repository.get_alert(alert.id)).acknowledged is False


class TestRepositoryFactory:
    """Backend selection."""

    def test_memory_backend(self):
        assert isinstance(build_event_repository("memory"), InMemoryEventRepository)

    def test_database_backend(self):
        assert isinstance(build_event_repository("database"), SQLAlchemyEventRepository)


class TestUpsertStatements:
    """Conflict handling compiled for PostgreSQL."""

    def _sql(self, stmt) -> str:
        return str(stmt.compile(dialect=postgresql.dialect()))

    def test_risk_score_upsert_keys_on_event(self, now):
        score = RiskScore(
            event_id=str(uuid4()),
            overall_score=42.0,
            risk_level=RiskLevel.MEDIUM,
            contributing_factors=[],
            last_updated=now,
            confidence=0.8,
        )

        sql = self._sql(build_risk_score_upsert(score))

        assert "ON CONFLICT (event_id) DO UPDATE" in sql
        assert "overall_score = excluded.overall_score" in sql

    def test_pattern_upsert_preserves_detection_time(self, now):
        sql = self._sql(build_pattern_upsert(_pattern(str(uuid4()), now, "hotspot")))

        assert "ON CONFLICT ON CONSTRAINT uq_incident_patterns_event_type DO UPDATE" in sql
        assert "detected_at = excluded.detected_at" not in sql
        assert "last_updated = excluded.last_updated" in sql
