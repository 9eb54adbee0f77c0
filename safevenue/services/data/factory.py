"""
SafeVenue - Repository Factory
Selects the event data backend from configuration
"""

import logging
from typing import Optional

from safevenue.core.config import settings
from safevenue.services.data.repository import EventDataRepository, InMemoryEventRepository
from safevenue.services.data.sql_repository import SQLAlchemyEventRepository

logger = logging.getLogger(__name__)

_repository: Optional[EventDataRepository] = None


def build_event_repository(backend: Optional[str] = None) -> EventDataRepository:
    """Construct a repository for the given backend ("memory" or "database")"""
    backend = backend or settings.DATA_BACKEND
    if backend == "memory":
        logger.info("Using in-memory event repository")
        return InMemoryEventRepository()
    logger.info("Using PostgreSQL event repository")
    return SQLAlchemyEventRepository()


def get_event_repository() -> EventDataRepository:
    """Get the process-wide repository, created on first use"""
    global _repository
    if _repository is None:
        _repository = build_event_repository()
    return _repository


def set_event_repository(repository: Optional[EventDataRepository]) -> None:
    """Replace the process-wide repository (None resets to configuration)"""
    global _repository
    _repository = repository
