"""
SafeVenue - Scheduler Service Unit Tests
"""

from types import SimpleNamespace

import pytest

from safevenue.core.config import settings
from safevenue.models.domain import EventStatus
from safevenue.services.scheduling import SchedulerService

# Test configuration
pytestmark = pytest.mark.unit


class TestSchedulerService:
    """Live event alert poll and job registration."""

    @pytest.mark.asyncio
    async def test_poll_isolates_failing_events(self, repository, make_event, static_weather, dispatcher):
        make_event("evt-ok", current_attendance=950)
        make_event("evt-bad", current_attendance=950)
        original_insert = repository.insert_alerts

        async def flaky_insert(alerts):
            if alerts and alerts[0].event_id == "evt-bad":
                raise RuntimeError("write timeout")
            await original_insert(alerts)

        repository.insert_alerts = flaky_insert
        service = SchedulerService(repository=repository, weather_provider=static_weather, dispatcher=dispatcher)

        generated = await service.poll_live_event_alerts()

        assert generated == {"evt-ok": 1}
        assert [a.event_id for a in dispatcher.sent] == ["evt-ok"]

    @pytest.mark.asyncio
    async def test_poll_without_live_events(self, repository, make_event, static_weather, dispatcher):
        make_event(status=EventStatus.SCHEDULED)
        service = SchedulerService(repository=repository, weather_provider=static_weather, dispatcher=dispatcher)

        assert await service.poll_live_event_alerts() == {}

    @pytest.mark.asyncio
    async def test_disabled_scheduler_registers_nothing(self, repository):
        service = SchedulerService(repository=repository)
        service.enabled = False

        await service.initialize()
        await service.start()

        assert service.get_status() == {
            "enabled": False,
            "running": False,
            "total_jobs": 0,
            "enabled_jobs": 0,
            "jobs": [],
        }

    @pytest.mark.asyncio
    async def test_enabled_scheduler_registers_poll_job(self, repository):
        service = SchedulerService(repository=repository)
        service.enabled = True

        await service.initialize()

        status = service.get_status()
        assert status["total_jobs"] == 1
        assert status["running"] is False
        assert status["jobs"][0]["job_id"] == "poll_live_event_alerts"
        assert status["jobs"][0]["interval_seconds"] == settings.ALERT_POLL_INTERVAL_SECONDS
        await service.stop()

    @pytest.mark.asyncio
    async def test_job_failures_are_counted(self, repository):
        service = SchedulerService(repository=repository)
        service.enabled = True
        await service.initialize()

        service._on_job_error(SimpleNamespace(job_id="poll_live_event_alerts", exception=RuntimeError("db down")))

        job = service.get_status()["jobs"][0]
        assert job["error_count"] == 1
        assert job["last_status"] == "failed"
        assert job["last_error"] == "db down"
        await service.stop()
