"""
SafeVenue - Monitoring Service
Prometheus metrics for the analytics engines and API, plus component health checks
"""

import asyncio
import logging
import platform
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from prometheus_client import (
    Counter,
    Histogram,
    Info,
    CollectorRegistry,
    generate_latest,
    CONTENT_TYPE_LATEST,
)

from safevenue.core.cache import get_response_cache
from safevenue.core.config import settings
from safevenue.core.database import db_manager

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    """Health status levels"""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    CRITICAL = "critical"


class ComponentHealth:
    """Health status for a single component"""

    def __init__(
        self,
        name: str,
        status: HealthStatus,
        message: str = "",
        latency_ms: float = 0,
        metadata: Optional[Dict[str, Any]] = None
    ):
        self.name = name
        self.status = status
        self.message = message
        self.latency_ms = latency_ms
        self.metadata = metadata or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "message": self.message,
            "latency_ms": round(self.latency_ms, 2),
            "metadata": self.metadata,
            "timestamp": self.timestamp.isoformat()
        }


class MetricsRegistry:
    """Prometheus metrics registry for SafeVenue"""

    def __init__(self):
        self.registry = CollectorRegistry()

        # Application Info
        self.app_info = Info(
            'safevenue_app',
            'Application information',
            registry=self.registry
        )
        self.app_info.info({
            'version': settings.APP_VERSION,
            'environment': settings.ENVIRONMENT,
            'python_version': platform.python_version()
        })

        # HTTP Request Metrics
        self.http_requests_total = Counter(
            'safevenue_http_requests_total',
            'Total HTTP requests',
            ['method', 'endpoint', 'status'],
            registry=self.registry
        )

        self.http_request_duration = Histogram(
            'safevenue_http_request_duration_seconds',
            'HTTP request duration in seconds',
            ['method', 'endpoint'],
            buckets=[.005, .01, .025, .05, .075, .1, .25, .5, .75, 1.0, 2.5, 5.0, 7.5, 10.0],
            registry=self.registry
        )

        # Engine Metrics
        self.risk_scores = Counter(
            'safevenue_risk_scores_total',
            'Risk scores calculated',
            ['level'],
            registry=self.registry
        )

        self.alerts_generated = Counter(
            'safevenue_alerts_generated_total',
            'Predictive alerts generated',
            ['alert_type', 'severity'],
            registry=self.registry
        )

        self.engine_failures = Counter(
            'safevenue_engine_failures_total',
            'Engine branches that failed and fell back to defaults',
            ['engine'],
            registry=self.registry
        )

        # Insights Metrics
        self.insights_cache = Counter(
            'safevenue_insights_cache_total',
            'Predictive insights cache lookups',
            ['result'],
            registry=self.registry
        )

        self.insights_duration = Histogram(
            'safevenue_insights_duration_seconds',
            'Time to compose predictive insights',
            buckets=[.01, .025, .05, .1, .25, .5, 1.0, 2.5, 5.0, 10.0],
            registry=self.registry
        )

        # Scheduler Metrics
        self.job_runs = Counter(
            'safevenue_scheduler_job_runs_total',
            'Scheduled job executions',
            ['job_id', 'status'],
            registry=self.registry
        )

        # Notification Metrics
        self.notifications_sent = Counter(
            'safevenue_notifications_sent_total',
            'Alert notifications sent',
            ['provider', 'status'],
            registry=self.registry
        )

    def get_metrics(self) -> bytes:
        """Get Prometheus metrics output"""
        return generate_latest(self.registry)

    def get_content_type(self) -> str:
        """Get Prometheus content type"""
        return CONTENT_TYPE_LATEST


class MonitoringService:
    """Metrics recording and health checks"""

    def __init__(self):
        self.metrics = MetricsRegistry()
        self._health_checks: Dict[str, Callable] = {}
        self._last_health_check: Optional[Dict[str, Any]] = None
        self._start_time = time.time()

    def register_health_check(self, name: str, check_func: Callable):
        """Register a health check function"""
        self._health_checks[name] = check_func

    async def check_health(self, detailed: bool = False) -> Dict[str, Any]:
        """
        Perform health check on all components
        Returns overall health status and component details
        """
        components: List[ComponentHealth] = []

        if settings.DATA_BACKEND == "database":
            components.append(await self._check_database_health())

        components.append(await self._check_cache_health())

        # Run custom health checks
        for name, check_func in self._health_checks.items():
            try:
                start = time.time()
                result = await check_func() if asyncio.iscoroutinefunction(check_func) else check_func()
                latency = (time.time() - start) * 1000

                status = HealthStatus.HEALTHY if result.get("healthy", False) else HealthStatus.UNHEALTHY
                components.append(ComponentHealth(
                    name=name,
                    status=status,
                    message=result.get("message", ""),
                    latency_ms=latency,
                    metadata=result.get("metadata", {})
                ))
            except Exception as e:
                components.append(ComponentHealth(
                    name=name,
                    status=HealthStatus.UNHEALTHY,
                    message=str(e)
                ))

        overall_status = self._calculate_overall_status(components)

        result = {
            "status": overall_status.value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "uptime_seconds": int(time.time() - self._start_time)
        }

        if detailed:
            result["components"] = [c.to_dict() for c in components]

        self._last_health_check = result
        return result

    async def _check_database_health(self) -> ComponentHealth:
        """Check database health"""
        try:
            start = time.time()
            health = await db_manager.health_check()
            latency = (time.time() - start) * 1000

            status = HealthStatus.HEALTHY if health["status"] == "healthy" else HealthStatus.UNHEALTHY

            return ComponentHealth(
                name="database",
                status=status,
                message="Database connection healthy" if status == HealthStatus.HEALTHY else health.get("error", ""),
                latency_ms=latency,
                metadata=health
            )
        except Exception as e:
            return ComponentHealth(
                name="database",
                status=HealthStatus.CRITICAL,
                message=str(e)
            )

    async def _check_cache_health(self) -> ComponentHealth:
        """Check response cache health; an unhealthy cache only degrades the service"""
        cache = get_response_cache()
        try:
            start = time.time()
            health = await cache.health_check()
            latency = (time.time() - start) * 1000

            status = HealthStatus.HEALTHY if health["status"] == "healthy" else HealthStatus.DEGRADED

            return ComponentHealth(
                name=f"cache:{cache.backend}",
                status=status,
                message="Cache healthy" if status == HealthStatus.HEALTHY else health.get("error", ""),
                latency_ms=latency,
                metadata=health
            )
        except Exception as e:
            return ComponentHealth(
                name=f"cache:{cache.backend}",
                status=HealthStatus.DEGRADED,
                message=str(e)
            )

    def _calculate_overall_status(self, components: List[ComponentHealth]) -> HealthStatus:
        """Calculate overall health status from components"""
        statuses = [c.status for c in components]

        if HealthStatus.CRITICAL in statuses:
            return HealthStatus.CRITICAL
        if HealthStatus.UNHEALTHY in statuses:
            return HealthStatus.UNHEALTHY
        if HealthStatus.DEGRADED in statuses:
            return HealthStatus.DEGRADED
        return HealthStatus.HEALTHY

    def record_http_request(
        self,
        method: str,
        endpoint: str,
        status_code: int,
        duration: float
    ):
        """Record HTTP request metrics"""
        self.metrics.http_requests_total.labels(
            method=method,
            endpoint=endpoint,
            status=str(status_code)
        ).inc()

        self.metrics.http_request_duration.labels(
            method=method,
            endpoint=endpoint
        ).observe(duration)

    def record_risk_score(self, level: str):
        self.metrics.risk_scores.labels(level=level).inc()

    def record_alert_generated(self, alert_type: str, severity: str):
        self.metrics.alerts_generated.labels(
            alert_type=alert_type,
            severity=severity
        ).inc()

    def record_engine_failure(self, engine: str):
        self.metrics.engine_failures.labels(engine=engine).inc()

    def record_insights_cache(self, result: str):
        """result is one of hit, miss, bypass"""
        self.metrics.insights_cache.labels(result=result).inc()

    def record_insights_duration(self, duration_seconds: float):
        self.metrics.insights_duration.observe(duration_seconds)

    def record_job_run(self, job_id: str, status: str):
        self.metrics.job_runs.labels(job_id=job_id, status=status).inc()

    def record_notification(self, provider: str, success: bool):
        self.metrics.notifications_sent.labels(
            provider=provider,
            status="sent" if success else "failed"
        ).inc()

    def get_prometheus_metrics(self) -> bytes:
        """Get Prometheus metrics for scraping"""
        return self.metrics.get_metrics()

    def get_prometheus_content_type(self) -> str:
        """Get Prometheus content type"""
        return self.metrics.get_content_type()


# Global monitoring service instance
monitoring_service = MonitoringService()


def get_monitoring_service() -> MonitoringService:
    """
    Dependency-style accessor for monitoring service.
    Keeps imports stable and avoids circular imports.
    """
    return monitoring_service
