"""
SafeVenue - SQLAlchemy Event Data Repository
PostgreSQL implementation of the data access boundary
"""

import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert

from safevenue.core.database import DatabaseManager, get_database_manager
from safevenue.models.domain import (
    AlertSeverity,
    AlertType,
    AttendanceSample,
    CrowdFactor,
    CrowdFlowPrediction,
    EventSnapshot,
    EventStatus,
    IncidentPattern,
    IncidentRecord,
    PatternFactor,
    PatternType,
    PredictiveAlert,
    RiskFactor,
    RiskLevel,
    RiskScore,
)
from safevenue.models.models import (
    AttendanceRecord,
    CrowdPredictionRecord,
    Event,
    IncidentLog,
    IncidentPatternRecord,
    PredictiveAlertRecord,
    RiskScoreRecord,
)
from safevenue.services.data.repository import EventDataRepository

logger = logging.getLogger(__name__)


def _as_uuid(value: str) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except (ValueError, TypeError):
        return None


# =============================================================================
# UPSERT STATEMENTS
# =============================================================================

def build_risk_score_upsert(score: RiskScore):
    """INSERT ... ON CONFLICT (event_id) DO UPDATE, last write wins"""
    values = {
        "event_id": UUID(score.event_id),
        "overall_score": score.overall_score,
        "risk_level": score.risk_level.value,
        "contributing_factors": [f.to_dict() for f in score.contributing_factors],
        "confidence": score.confidence,
        "last_updated": score.last_updated,
    }
    stmt = insert(RiskScoreRecord).values(**values)
    return stmt.on_conflict_do_update(
        index_elements=[RiskScoreRecord.event_id],
        set_={k: stmt.excluded[k] for k in values if k != "event_id"},
    )


def build_pattern_upsert(pattern: IncidentPattern):
    """INSERT ... ON CONFLICT (event_id, pattern_type) DO UPDATE"""
    values = {
        "id": UUID(pattern.id),
        "event_id": UUID(pattern.event_id),
        "pattern_type": pattern.pattern_type.value,
        "confidence": pattern.confidence,
        "description": pattern.description,
        "factors": [f.to_dict() for f in pattern.factors],
        "impact": pattern.impact,
        "recommendations": pattern.recommendations,
        "detected_at": pattern.detected_at,
        "last_updated": pattern.last_updated,
    }
    stmt = insert(IncidentPatternRecord).values(**values)
    return stmt.on_conflict_do_update(
        constraint="uq_incident_patterns_event_type",
        set_={
            k: stmt.excluded[k] for k in values
            if k not in ("id", "event_id", "pattern_type", "detected_at")
        },
    )


# =============================================================================
# ROW CONVERSION
# =============================================================================

def _event_from_row(row: Event) -> EventSnapshot:
    try:
        status = EventStatus(row.status)
    except ValueError:
        status = EventStatus.SCHEDULED
    return EventSnapshot(
        id=str(row.id),
        name=row.name,
        capacity=row.capacity,
        current_attendance=row.current_attendance or 0,
        event_type=row.event_type,
        staff_on_duty=row.staff_on_duty,
        latitude=row.latitude,
        longitude=row.longitude,
        start_time=row.start_time,
        end_time=row.end_time,
        status=status,
        timezone=row.timezone,
    )


def _incident_from_row(row: IncidentLog) -> IncidentRecord:
    return IncidentRecord(
        id=str(row.id),
        event_id=str(row.event_id),
        incident_type=row.incident_type,
        location=row.location,
        priority=row.priority,
        created_at=row.created_at,
        resolved_at=row.resolved_at,
        is_escalated=bool(row.is_escalated),
        weather_condition=row.weather_condition,
    )


def _risk_score_from_row(row: RiskScoreRecord) -> RiskScore:
    return RiskScore(
        event_id=str(row.event_id),
        overall_score=row.overall_score,
        risk_level=RiskLevel(row.risk_level),
        contributing_factors=[RiskFactor.from_dict(f) for f in row.contributing_factors or []],
        last_updated=row.last_updated,
        confidence=row.confidence,
    )


def _pattern_from_row(row: IncidentPatternRecord) -> IncidentPattern:
    return IncidentPattern(
        id=str(row.id),
        event_id=str(row.event_id),
        pattern_type=PatternType(row.pattern_type),
        confidence=row.confidence,
        description=row.description,
        factors=[PatternFactor(**f) for f in row.factors or []],
        impact=row.impact,
        recommendations=list(row.recommendations or []),
        detected_at=row.detected_at,
        last_updated=row.last_updated,
    )


def _prediction_from_row(row: CrowdPredictionRecord) -> CrowdFlowPrediction:
    return CrowdFlowPrediction(
        id=str(row.id),
        event_id=str(row.event_id),
        timestamp=row.timestamp,
        location=row.location,
        current_density=row.current_density,
        predicted_density=row.predicted_density,
        predicted_count=row.predicted_count,
        confidence=row.confidence,
        factors=[CrowdFactor(**f) for f in row.factors or []],
        risk_level=RiskLevel(row.risk_level),
        recommendations=list(row.recommendations or []),
    )


def _prediction_to_row(prediction: CrowdFlowPrediction) -> CrowdPredictionRecord:
    return CrowdPredictionRecord(
        id=UUID(prediction.id),
        event_id=UUID(prediction.event_id),
        timestamp=prediction.timestamp,
        location=prediction.location,
        current_density=prediction.current_density,
        predicted_density=prediction.predicted_density,
        predicted_count=prediction.predicted_count,
        confidence=prediction.confidence,
        factors=[f.to_dict() for f in prediction.factors],
        risk_level=prediction.risk_level.value,
        recommendations=prediction.recommendations,
    )


def _alert_from_row(row: PredictiveAlertRecord) -> PredictiveAlert:
    return PredictiveAlert(
        id=str(row.id),
        event_id=str(row.event_id),
        alert_type=AlertType(row.alert_type),
        severity=AlertSeverity(row.severity),
        message=row.message,
        recommendations=list(row.recommendations or []),
        timestamp=row.created_at,
        expires_at=row.expires_at,
        confidence=row.confidence,
        acknowledged=bool(row.acknowledged),
        acknowledged_by=row.acknowledged_by,
        acknowledged_at=row.acknowledged_at,
    )


def _alert_to_row(alert: PredictiveAlert) -> PredictiveAlertRecord:
    return PredictiveAlertRecord(
        id=UUID(alert.id),
        event_id=UUID(alert.event_id),
        alert_type=alert.alert_type.value,
        severity=alert.severity.value,
        message=alert.message,
        recommendations=alert.recommendations,
        confidence=alert.confidence,
        created_at=alert.timestamp,
        expires_at=alert.expires_at,
        acknowledged=alert.acknowledged,
        acknowledged_by=alert.acknowledged_by,
        acknowledged_at=alert.acknowledged_at,
    )


# =============================================================================
# REPOSITORY
# =============================================================================

class SQLAlchemyEventRepository(EventDataRepository):
    """Repository backed by async SQLAlchemy sessions"""

    def __init__(self, db: Optional[DatabaseManager] = None):
        self.db = db or get_database_manager()

    async def get_event(self, event_id: str) -> Optional[EventSnapshot]:
        key = _as_uuid(event_id)
        if key is None:
            return None
        async with self.db.session() as session:
            row = await session.get(Event, key)
            return _event_from_row(row) if row else None

    async def list_incidents(
        self, event_id: str, since: Optional[datetime] = None
    ) -> List[IncidentRecord]:
        key = _as_uuid(event_id)
        if key is None:
            return []
        stmt = select(IncidentLog).where(IncidentLog.event_id == key)
        if since is not None:
            stmt = stmt.where(IncidentLog.created_at >= since)
        stmt = stmt.order_by(IncidentLog.created_at)
        async with self.db.session() as session:
            result = await session.execute(stmt)
            return [_incident_from_row(r) for r in result.scalars().all()]

    async def list_attendance(
        self, event_id: str, since: Optional[datetime] = None
    ) -> List[AttendanceSample]:
        key = _as_uuid(event_id)
        if key is None:
            return []
        stmt = select(AttendanceRecord).where(AttendanceRecord.event_id == key)
        if since is not None:
            stmt = stmt.where(AttendanceRecord.recorded_at >= since)
        stmt = stmt.order_by(AttendanceRecord.recorded_at)
        async with self.db.session() as session:
            result = await session.execute(stmt)
            return [
                AttendanceSample(timestamp=r.recorded_at, count=r.count)
                for r in result.scalars().all()
            ]

    async def list_live_event_ids(self) -> List[str]:
        stmt = select(Event.id).where(Event.status == EventStatus.LIVE.value)
        async with self.db.session() as session:
            result = await session.execute(stmt)
            return [str(r) for r in result.scalars().all()]

    async def upsert_risk_score(self, score: RiskScore) -> None:
        async with self.db.session() as session:
            await session.execute(build_risk_score_upsert(score))

    async def get_risk_score(self, event_id: str) -> Optional[RiskScore]:
        key = _as_uuid(event_id)
        if key is None:
            return None
        stmt = select(RiskScoreRecord).where(RiskScoreRecord.event_id == key)
        async with self.db.session() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _risk_score_from_row(row) if row else None

    async def upsert_pattern(self, pattern: IncidentPattern) -> None:
        async with self.db.session() as session:
            await session.execute(build_pattern_upsert(pattern))

    async def list_patterns(
        self,
        event_id: str,
        pattern_type: Optional[PatternType] = None,
        min_confidence: Optional[float] = None,
    ) -> List[IncidentPattern]:
        key = _as_uuid(event_id)
        if key is None:
            return []
        stmt = select(IncidentPatternRecord).where(IncidentPatternRecord.event_id == key)
        if pattern_type is not None:
            stmt = stmt.where(IncidentPatternRecord.pattern_type == pattern_type.value)
        if min_confidence is not None:
            stmt = stmt.where(IncidentPatternRecord.confidence >= min_confidence)
        stmt = stmt.order_by(IncidentPatternRecord.confidence.desc())
        async with self.db.session() as session:
            result = await session.execute(stmt)
            return [_pattern_from_row(r) for r in result.scalars().all()]

    async def replace_crowd_predictions(
        self, event_id: str, predictions: List[CrowdFlowPrediction]
    ) -> None:
        key = UUID(event_id)
        async with self.db.session() as session:
            await session.execute(
                delete(CrowdPredictionRecord).where(CrowdPredictionRecord.event_id == key)
            )
            session.add_all([_prediction_to_row(p) for p in predictions])

    async def list_crowd_predictions(self, event_id: str) -> List[CrowdFlowPrediction]:
        key = _as_uuid(event_id)
        if key is None:
            return []
        stmt = (
            select(CrowdPredictionRecord)
            .where(CrowdPredictionRecord.event_id == key)
            .order_by(CrowdPredictionRecord.timestamp)
        )
        async with self.db.session() as session:
            result = await session.execute(stmt)
            return [_prediction_from_row(r) for r in result.scalars().all()]

    async def insert_alerts(self, alerts: List[PredictiveAlert]) -> None:
        if not alerts:
            return
        async with self.db.session() as session:
            session.add_all([_alert_to_row(a) for a in alerts])

    async def get_alert(self, alert_id: str) -> Optional[PredictiveAlert]:
        key = _as_uuid(alert_id)
        if key is None:
            return None
        async with self.db.session() as session:
            row = await session.get(PredictiveAlertRecord, key)
            return _alert_from_row(row) if row else None

    async def find_active_alert(
        self,
        event_id: str,
        alert_type: AlertType,
        severity: AlertSeverity,
        now: datetime,
    ) -> Optional[PredictiveAlert]:
        stmt = (
            select(PredictiveAlertRecord)
            .where(
                PredictiveAlertRecord.event_id == UUID(event_id),
                PredictiveAlertRecord.alert_type == alert_type.value,
                PredictiveAlertRecord.severity == severity.value,
                PredictiveAlertRecord.acknowledged.is_(False),
                PredictiveAlertRecord.expires_at > now,
            )
            .limit(1)
        )
        async with self.db.session() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _alert_from_row(row) if row else None

    async def acknowledge_alert(
        self, alert_id: str, user_id: str, acknowledged_at: datetime
    ) -> Optional[PredictiveAlert]:
        key = _as_uuid(alert_id)
        if key is None:
            return None
        async with self.db.session() as session:
            await session.execute(
                update(PredictiveAlertRecord)
                .where(
                    PredictiveAlertRecord.id == key,
                    PredictiveAlertRecord.acknowledged.is_(False),
                )
                .values(
                    acknowledged=True,
                    acknowledged_by=user_id,
                    acknowledged_at=acknowledged_at,
                )
            )
            row = await session.get(PredictiveAlertRecord, key, populate_existing=True)
            return _alert_from_row(row) if row else None

    async def list_active_alerts(self, event_id: str, now: datetime) -> List[PredictiveAlert]:
        key = _as_uuid(event_id)
        if key is None:
            return []
        stmt = (
            select(PredictiveAlertRecord)
            .where(
                PredictiveAlertRecord.event_id == key,
                PredictiveAlertRecord.acknowledged.is_(False),
                PredictiveAlertRecord.expires_at > now,
            )
            .order_by(PredictiveAlertRecord.created_at.desc())
        )
        async with self.db.session() as session:
            result = await session.execute(stmt)
            return [_alert_from_row(r) for r in result.scalars().all()]
