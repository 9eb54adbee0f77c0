"""
SafeVenue - Event Data Repository
Read/write boundary between the analytics engines and the data store.

All reads are scoped to one event. Writes are independent last-write-wins
operations: risk scores upsert by event, patterns upsert by (event, type),
prediction batches replace the previous batch and alerts are plain inserts.
"""

import copy
import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from safevenue.models.domain import (
    AlertSeverity,
    AlertType,
    AttendanceSample,
    CrowdFlowPrediction,
    EventSnapshot,
    EventStatus,
    IncidentPattern,
    IncidentRecord,
    PatternType,
    PredictiveAlert,
    RiskScore,
)

logger = logging.getLogger(__name__)


class EventDataRepository(ABC):
    """Abstract data access boundary"""

    # Reads -----------------------------------------------------------------

    @abstractmethod
    async def get_event(self, event_id: str) -> Optional[EventSnapshot]:
        pass

    @abstractmethod
    async def list_incidents(
        self, event_id: str, since: Optional[datetime] = None
    ) -> List[IncidentRecord]:
        """Incidents oldest first, optionally only those created at or after `since`"""

    @abstractmethod
    async def list_attendance(
        self, event_id: str, since: Optional[datetime] = None
    ) -> List[AttendanceSample]:
        """Attendance samples oldest first"""

    @abstractmethod
    async def list_live_event_ids(self) -> List[str]:
        pass

    # Risk scores -----------------------------------------------------------

    @abstractmethod
    async def upsert_risk_score(self, score: RiskScore) -> None:
        pass

    @abstractmethod
    async def get_risk_score(self, event_id: str) -> Optional[RiskScore]:
        pass

    # Patterns --------------------------------------------------------------

    @abstractmethod
    async def upsert_pattern(self, pattern: IncidentPattern) -> None:
        pass

    @abstractmethod
    async def list_patterns(
        self,
        event_id: str,
        pattern_type: Optional[PatternType] = None,
        min_confidence: Optional[float] = None,
    ) -> List[IncidentPattern]:
        """Stored patterns, highest confidence first"""

    # Crowd predictions -----------------------------------------------------

    @abstractmethod
    async def replace_crowd_predictions(
        self, event_id: str, predictions: List[CrowdFlowPrediction]
    ) -> None:
        pass

    @abstractmethod
    async def list_crowd_predictions(self, event_id: str) -> List[CrowdFlowPrediction]:
        pass

    # Alerts ----------------------------------------------------------------

    @abstractmethod
    async def insert_alerts(self, alerts: List[PredictiveAlert]) -> None:
        pass

    @abstractmethod
    async def get_alert(self, alert_id: str) -> Optional[PredictiveAlert]:
        pass

    @abstractmethod
    async def find_active_alert(
        self,
        event_id: str,
        alert_type: AlertType,
        severity: AlertSeverity,
        now: datetime,
    ) -> Optional[PredictiveAlert]:
        pass

    @abstractmethod
    async def acknowledge_alert(
        self, alert_id: str, user_id: str, acknowledged_at: datetime
    ) -> Optional[PredictiveAlert]:
        """Mark an alert acknowledged unless it already is; None if unknown"""

    @abstractmethod
    async def list_active_alerts(self, event_id: str, now: datetime) -> List[PredictiveAlert]:
        """Unacknowledged, unexpired alerts, newest first"""


class InMemoryEventRepository(EventDataRepository):
    """Process-local repository for development and tests"""

    def __init__(self):
        self._events: Dict[str, EventSnapshot] = {}
        self._incidents: Dict[str, List[IncidentRecord]] = {}
        self._attendance: Dict[str, List[AttendanceSample]] = {}
        self._risk_scores: Dict[str, RiskScore] = {}
        self._patterns: Dict[Tuple[str, PatternType], IncidentPattern] = {}
        self._predictions: Dict[str, List[CrowdFlowPrediction]] = {}
        self._alerts: Dict[str, PredictiveAlert] = {}

    # Seeding ---------------------------------------------------------------

    def add_event(self, event: EventSnapshot) -> EventSnapshot:
        self._events[event.id] = event
        self._incidents.setdefault(event.id, [])
        self._attendance.setdefault(event.id, [])
        return event

    def add_incident(self, incident: IncidentRecord) -> IncidentRecord:
        self._incidents.setdefault(incident.event_id, []).append(incident)
        return incident

    def add_attendance(self, event_id: str, sample: AttendanceSample) -> AttendanceSample:
        self._attendance.setdefault(event_id, []).append(sample)
        return sample

    # Reads -----------------------------------------------------------------

    async def get_event(self, event_id: str) -> Optional[EventSnapshot]:
        return self._events.get(event_id)

    async def list_incidents(
        self, event_id: str, since: Optional[datetime] = None
    ) -> List[IncidentRecord]:
        incidents = sorted(self._incidents.get(event_id, []), key=lambda i: i.created_at)
        if since is not None:
            incidents = [i for i in incidents if i.created_at >= since]
        return incidents

    async def list_attendance(
        self, event_id: str, since: Optional[datetime] = None
    ) -> List[AttendanceSample]:
        samples = sorted(self._attendance.get(event_id, []), key=lambda s: s.timestamp)
        if since is not None:
            samples = [s for s in samples if s.timestamp >= since]
        return samples

    async def list_live_event_ids(self) -> List[str]:
        return [e.id for e in self._events.values() if e.status == EventStatus.LIVE]

    # Risk scores -----------------------------------------------------------

    async def upsert_risk_score(self, score: RiskScore) -> None:
        self._risk_scores[score.event_id] = copy.deepcopy(score)

    async def get_risk_score(self, event_id: str) -> Optional[RiskScore]:
        score = self._risk_scores.get(event_id)
        return copy.deepcopy(score) if score else None

    # Patterns --------------------------------------------------------------

    async def upsert_pattern(self, pattern: IncidentPattern) -> None:
        key = (pattern.event_id, pattern.pattern_type)
        stored = copy.deepcopy(pattern)
        existing = self._patterns.get(key)
        if existing is not None:
            stored.id = existing.id
            stored.detected_at = existing.detected_at
        self._patterns[key] = stored

    async def list_patterns(
        self,
        event_id: str,
        pattern_type: Optional[PatternType] = None,
        min_confidence: Optional[float] = None,
    ) -> List[IncidentPattern]:
        patterns = [
            copy.deepcopy(p) for (eid, ptype), p in self._patterns.items()
            if eid == event_id
            and (pattern_type is None or ptype == pattern_type)
            and (min_confidence is None or p.confidence >= min_confidence)
        ]
        return sorted(patterns, key=lambda p: p.confidence, reverse=True)

    # Crowd predictions -----------------------------------------------------

    async def replace_crowd_predictions(
        self, event_id: str, predictions: List[CrowdFlowPrediction]
    ) -> None:
        self._predictions[event_id] = copy.deepcopy(predictions)

    async def list_crowd_predictions(self, event_id: str) -> List[CrowdFlowPrediction]:
        return copy.deepcopy(self._predictions.get(event_id, []))

    # Alerts ----------------------------------------------------------------

    async def insert_alerts(self, alerts: List[PredictiveAlert]) -> None:
        for alert in alerts:
            self._alerts[alert.id] = replace(alert, recommendations=list(alert.recommendations))

    async def get_alert(self, alert_id: str) -> Optional[PredictiveAlert]:
        alert = self._alerts.get(alert_id)
        return replace(alert) if alert else None

    async def find_active_alert(
        self,
        event_id: str,
        alert_type: AlertType,
        severity: AlertSeverity,
        now: datetime,
    ) -> Optional[PredictiveAlert]:
        for alert in self._alerts.values():
            if (
                alert.event_id == event_id
                and alert.alert_type == alert_type
                and alert.severity == severity
                and alert.is_active(now)
            ):
                return replace(alert)
        return None

    async def acknowledge_alert(
        self, alert_id: str, user_id: str, acknowledged_at: datetime
    ) -> Optional[PredictiveAlert]:
        alert = self._alerts.get(alert_id)
        if alert is None:
            return None
        if not alert.acknowledged:
            alert.acknowledged = True
            alert.acknowledged_by = user_id
            alert.acknowledged_at = acknowledged_at
        return replace(alert)

    async def list_active_alerts(self, event_id: str, now: datetime) -> List[PredictiveAlert]:
        active = [
            replace(a) for a in self._alerts.values()
            if a.event_id == event_id and a.is_active(now)
        ]
        return sorted(active, key=lambda a: a.timestamp, reverse=True)
