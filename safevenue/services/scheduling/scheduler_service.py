"""
SafeVenue - Scheduling Service
Background alert polling for live events with APScheduler
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.events import (
    EVENT_JOB_EXECUTED,
    EVENT_JOB_ERROR,
    EVENT_JOB_MISSED,
    JobExecutionEvent,
)

from safevenue.core.config import settings
from safevenue.services.alerting import AlertDispatcher, get_alert_dispatcher
from safevenue.services.analytics.predictive_alerts import PredictiveAlertSystem
from safevenue.services.data import EventDataRepository, get_event_repository
from safevenue.services.monitoring import get_monitoring_service
from safevenue.services.weather import WeatherProvider, get_weather_provider

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    """Job execution status"""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    MISSED = "missed"


class JobCategory(str, Enum):
    """Job categories"""
    ALERTING = "alerting"


class ScheduledJob:
    """Scheduled job definition"""

    def __init__(
        self,
        job_id: str,
        name: str,
        category: JobCategory,
        func: Callable,
        interval_seconds: int,
        enabled: bool = True,
        max_instances: int = 1,
        coalesce: bool = True,
        misfire_grace_time: int = 60
    ):
        self.job_id = job_id
        self.name = name
        self.category = category
        self.func = func
        self.interval_seconds = interval_seconds
        self.enabled = enabled
        self.max_instances = max_instances
        self.coalesce = coalesce
        self.misfire_grace_time = misfire_grace_time

        # Execution tracking
        self.last_run: Optional[datetime] = None
        self.last_status: JobStatus = JobStatus.PENDING
        self.run_count: int = 0
        self.error_count: int = 0
        self.last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "name": self.name,
            "category": self.category.value,
            "enabled": self.enabled,
            "interval_seconds": self.interval_seconds,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "last_status": self.last_status.value,
            "run_count": self.run_count,
            "error_count": self.error_count,
            "last_error": self.last_error,
        }


class SchedulerService:
    """Runs the periodic alert poll over every live event"""

    def __init__(
        self,
        repository: Optional[EventDataRepository] = None,
        weather_provider: Optional[WeatherProvider] = None,
        dispatcher: Optional[AlertDispatcher] = None,
    ):
        self.enabled = settings.SCHEDULER_ENABLED
        self._repository = repository
        self._weather_provider = weather_provider
        self._dispatcher = dispatcher
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._jobs: Dict[str, ScheduledJob] = {}
        self._running = False

    @property
    def repository(self) -> EventDataRepository:
        return self._repository or get_event_repository()

    async def initialize(self):
        """Initialize the scheduler"""
        if not self.enabled:
            logger.info("Scheduler is disabled")
            return

        jobstores = {
            'default': MemoryJobStore()
        }

        executors = {
            'default': AsyncIOExecutor()
        }

        job_defaults = {
            'coalesce': True,
            'max_instances': 1,
            'misfire_grace_time': 60
        }

        self._scheduler = AsyncIOScheduler(
            jobstores=jobstores,
            executors=executors,
            job_defaults=job_defaults,
            timezone='UTC'
        )

        self._scheduler.add_listener(self._on_job_executed, EVENT_JOB_EXECUTED)
        self._scheduler.add_listener(self._on_job_error, EVENT_JOB_ERROR)
        self._scheduler.add_listener(self._on_job_missed, EVENT_JOB_MISSED)

        self._register_default_jobs()

        logger.info("Scheduler initialized")

    async def start(self):
        """Start the scheduler"""
        if not self.enabled or not self._scheduler:
            return

        if self._running:
            return

        self._scheduler.start()
        self._running = True
        logger.info("Scheduler started")

    async def stop(self):
        """Stop the scheduler"""
        if self._scheduler and self._running:
            self._scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    def _register_default_jobs(self):
        self.register_job(
            ScheduledJob(
                job_id="poll_live_event_alerts",
                name="Poll Live Event Alerts",
                category=JobCategory.ALERTING,
                func=self.poll_live_event_alerts,
                interval_seconds=settings.ALERT_POLL_INTERVAL_SECONDS,
            )
        )

    def register_job(self, job: ScheduledJob):
        """Register a scheduled job"""
        if not self._scheduler:
            logger.warning("Scheduler not initialized, cannot register job")
            return

        self._jobs[job.job_id] = job

        if not job.enabled:
            return

        self._scheduler.add_job(
            job.func,
            trigger=IntervalTrigger(seconds=job.interval_seconds),
            id=job.job_id,
            name=job.name,
            max_instances=job.max_instances,
            coalesce=job.coalesce,
            misfire_grace_time=job.misfire_grace_time,
            replace_existing=True
        )

        logger.info(f"Registered job: {job.job_id} ({job.name})")

    async def poll_live_event_alerts(self) -> Dict[str, int]:
        """
        Generate proactive alerts for every live event.

        One event failing does not stop the poll; the failure is logged and
        counted. Returns event_id -> number of alerts generated.
        """
        event_ids = await self.repository.list_live_event_ids()
        if not event_ids:
            logger.debug("[Scheduler] No live events to poll")
            return {}

        weather_provider = self._weather_provider or get_weather_provider()
        dispatcher = self._dispatcher or get_alert_dispatcher()
        monitoring = get_monitoring_service()

        generated: Dict[str, int] = {}
        for event_id in event_ids:
            system = PredictiveAlertSystem(
                event_id,
                self.repository,
                weather_provider=weather_provider,
                dispatcher=dispatcher,
            )
            try:
                alerts = await system.generate_proactive_alerts()
            except Exception as e:
                logger.error(f"[Scheduler] Alert poll failed for event {event_id}: {e}", exc_info=True)
                monitoring.record_engine_failure("scheduler.alert_poll")
                continue
            generated[event_id] = len(alerts)

        logger.info(
            f"[Scheduler] Polled {len(event_ids)} live events, "
            f"{sum(generated.values())} alerts generated"
        )
        return generated

    def _on_job_executed(self, event: JobExecutionEvent):
        """Handler for successful job execution"""
        job_id = event.job_id

        if job_id in self._jobs:
            job = self._jobs[job_id]
            job.last_run = datetime.now(timezone.utc)
            job.last_status = JobStatus.COMPLETED
            job.run_count += 1

        get_monitoring_service().record_job_run(job_id, "success")
        logger.debug(f"Job executed: {job_id}")

    def _on_job_error(self, event: JobExecutionEvent):
        """Handler for job execution error"""
        job_id = event.job_id

        if job_id in self._jobs:
            job = self._jobs[job_id]
            job.last_run = datetime.now(timezone.utc)
            job.last_status = JobStatus.FAILED
            job.error_count += 1
            job.last_error = str(event.exception) if event.exception else "Unknown error"

        get_monitoring_service().record_job_run(job_id, "error")
        logger.error(f"Job failed: {job_id} - {event.exception}")

    def _on_job_missed(self, event: JobExecutionEvent):
        """Handler for missed job execution"""
        job_id = event.job_id

        if job_id in self._jobs:
            self._jobs[job_id].last_status = JobStatus.MISSED

        get_monitoring_service().record_job_run(job_id, "missed")
        logger.warning(f"Job missed: {job_id}")

    def _job_info(self, job: ScheduledJob) -> Dict[str, Any]:
        info = job.to_dict()
        next_run = None
        if self._scheduler:
            scheduler_job = self._scheduler.get_job(job.job_id)
            if scheduler_job:
                next_run = getattr(scheduler_job, "next_run_time", None)
        info["next_run"] = next_run.isoformat() if next_run else None
        return info

    def get_status(self) -> Dict[str, Any]:
        """Get scheduler status"""
        return {
            "enabled": self.enabled,
            "running": self._running,
            "total_jobs": len(self._jobs),
            "enabled_jobs": sum(1 for j in self._jobs.values() if j.enabled),
            "jobs": [self._job_info(job) for job in self._jobs.values()],
        }


# Global scheduler service instance
scheduler_service = SchedulerService()


def get_scheduler_service() -> SchedulerService:
    """
    Dependency-style accessor for scheduler service.
    Keeps imports stable and avoids circular imports.
    """
    return scheduler_service
