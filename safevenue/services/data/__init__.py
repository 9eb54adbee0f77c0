"""Data access boundary for events, telemetry and analytics outputs."""

from .repository import EventDataRepository, InMemoryEventRepository
from .sql_repository import (
    SQLAlchemyEventRepository,
    build_risk_score_upsert,
    build_pattern_upsert,
)
from .factory import build_event_repository, get_event_repository, set_event_repository

__all__ = [
    "EventDataRepository",
    "InMemoryEventRepository",
    "SQLAlchemyEventRepository",
    "build_risk_score_upsert",
    "build_pattern_upsert",
    "build_event_repository",
    "get_event_repository",
    "set_event_repository",
]
