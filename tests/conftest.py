"""
SafeVenue - Test Configuration
Pytest fixtures and configuration for the test suite.
"""

import os

# Settings are read at import time; pin the in-process backends first.
os.environ.setdefault("DATA_BACKEND", "memory")
os.environ.setdefault("CACHE_BACKEND", "memory")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("WEATHER_API_KEY", "")
os.environ.setdefault("PUSH_WEBHOOK_URL", "")

from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List

import pytest

from safevenue.models.domain import (
    AttendanceSample,
    EventSnapshot,
    EventStatus,
    IncidentRecord,
    PredictiveAlert,
    WeatherReading,
)
from safevenue.services.data.repository import InMemoryEventRepository
from safevenue.services.weather import StaticWeatherProvider, WeatherProvider

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


class ScriptedWeatherProvider(WeatherProvider):
    """Returns fixed current and forecast readings"""

    def __init__(self, current: WeatherReading, forecast: List[WeatherReading]):
        self.current = current
        self.forecast = forecast

    def is_configured(self) -> bool:
        return True

    async def get_current(self, latitude: float, longitude: float) -> WeatherReading:
        return self.current

    async def get_forecast(self, latitude: float, longitude: float, hours: int = 6) -> List[WeatherReading]:
        return list(self.forecast)


class RecordingDispatcher:
    """Collects dispatched alerts instead of delivering them"""

    def __init__(self):
        self.sent: List[PredictiveAlert] = []

    async def dispatch(self, alert: PredictiveAlert) -> Dict[str, bool]:
        self.sent.append(alert)
        return {"log": True}

    async def dispatch_all(self, alerts: List[PredictiveAlert]) -> List[Dict[str, bool]]:
        return [await self.dispatch(alert) for alert in alerts]


def reading(
    temperature_c: float = 18.0,
    humidity: float = 60.0,
    wind_speed_kmh: float = 10.0,
    precipitation_mm: float = 0.0,
    condition: str = "Clear",
) -> WeatherReading:
    return WeatherReading(
        temperature_c=temperature_c,
        humidity=humidity,
        wind_speed_kmh=wind_speed_kmh,
        precipitation_mm=precipitation_mm,
        condition=condition,
    )


def incident(
    event_id: str,
    minutes_ago: float,
    incident_type: str = "medical",
    location: str = "Main Stage",
    priority: str = "medium",
    **kwargs,
) -> IncidentRecord:
    return IncidentRecord(
        id=f"inc-{incident_type}-{location}-{minutes_ago}",
        event_id=event_id,
        incident_type=incident_type,
        location=location,
        priority=priority,
        created_at=NOW - timedelta(minutes=minutes_ago),
        **kwargs,
    )


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: NOW


@pytest.fixture
def repository() -> InMemoryEventRepository:
    return InMemoryEventRepository()


@pytest.fixture
def make_event(repository: InMemoryEventRepository):
    """Factory that registers an event with the in-memory repository"""

    def _make(
        event_id: str = "evt-1",
        capacity: int = 1000,
        current_attendance: int = 0,
        event_type: str = "conference",
        staff_on_duty: int = 10,
        status: EventStatus = EventStatus.LIVE,
        **kwargs,
    ) -> EventSnapshot:
        return repository.add_event(EventSnapshot(
            id=event_id,
            name=f"Event {event_id}",
            capacity=capacity,
            current_attendance=current_attendance,
            event_type=event_type,
            staff_on_duty=staff_on_duty,
            status=status,
            **kwargs,
        ))

    return _make


@pytest.fixture
def add_samples(repository: InMemoryEventRepository):
    """Register (minutes_ago, count) attendance samples for an event"""

    def _add(event_id: str, points: List[tuple]) -> List[AttendanceSample]:
        return [
            repository.add_attendance(event_id, AttendanceSample(NOW - timedelta(minutes=m), count))
            for m, count in points
        ]

    return _add


@pytest.fixture
def static_weather() -> StaticWeatherProvider:
    return StaticWeatherProvider()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def make_reading():
    return reading


@pytest.fixture
def make_incident():
    return incident


@pytest.fixture
def scripted_weather():
    """Factory for a provider with fixed current and forecast readings"""
    return ScriptedWeatherProvider
