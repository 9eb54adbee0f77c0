"""
SafeVenue - Core Module
Configuration, persistence, caching and error types shared by every service.
"""

from safevenue.core.config import Settings, get_settings, settings
from safevenue.core.database import (
    Base,
    DatabaseManager,
    db_manager,
    init_db,
    close_db,
    get_database_manager,
)
from safevenue.core.cache import (
    ResponseCache,
    InMemoryResponseCache,
    RedisResponseCache,
    CircuitBreaker,
    build_response_cache,
    get_response_cache,
    make_insights_key,
)
from safevenue.core.exceptions import (
    SafeVenueError,
    EventNotFoundError,
    AlertNotFoundError,
    PersistenceError,
    WeatherProviderError,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    "settings",

    # Database
    "Base",
    "DatabaseManager",
    "db_manager",
    "init_db",
    "close_db",
    "get_database_manager",

    # Cache
    "ResponseCache",
    "InMemoryResponseCache",
    "RedisResponseCache",
    "CircuitBreaker",
    "build_response_cache",
    "get_response_cache",
    "make_insights_key",

    # Errors
    "SafeVenueError",
    "EventNotFoundError",
    "AlertNotFoundError",
    "PersistenceError",
    "WeatherProviderError",
]
