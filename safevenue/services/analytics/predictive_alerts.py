"""
SafeVenue - Predictive Alert System
Threshold checks over weather, crowd density and risk score that emit
severity-ranked, time-boxed alerts.

Alerts are created unacknowledged and change state exactly once, when an
operator acknowledges them. An alert stops being active when it is
acknowledged or when its TTL runs out.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple

from safevenue.core.config import settings
from safevenue.core.exceptions import AlertNotFoundError, PersistenceError
from safevenue.models.domain import (
    AlertSeverity,
    AlertType,
    AttendanceSample,
    CrowdAlert,
    PredictiveAlert,
    RiskAlert,
    RiskFactor,
    RiskScore,
    WeatherAlert,
    WeatherReading,
)
from safevenue.services.alerting import AlertDispatcher, get_alert_dispatcher
from safevenue.services.analytics.risk_scoring import RiskScoringEngine
from safevenue.services.data.repository import EventDataRepository
from safevenue.services.monitoring import get_monitoring_service
from safevenue.services.weather.weather_service import WeatherProvider

logger = logging.getLogger(__name__)

WEATHER_CONFIDENCE = 0.8
CROWD_CONFIDENCE = 0.9
RISK_CONFIDENCE = 0.85

CROWD_TREND_SAMPLES = 3
CROWD_LOOKAHEAD_MINUTES = 60
MAX_TIME_TO_THRESHOLD = 240
CROWD_TREND_WINDOW_HOURS = 2

SEVERITY_RANK = {
    AlertSeverity.CRITICAL: 3,
    AlertSeverity.WARNING: 2,
    AlertSeverity.INFO: 1,
}


@dataclass
class AlertThresholds:
    """Weather deltas, crowd density percentages and risk scores that trigger alerts"""
    temperature_drop: float = 5.0
    temperature_rise: float = 8.0
    precipitation_start: float = 0.1
    wind_increase: float = 10.0
    humidity_rise: float = 20.0
    crowd_warning: float = 75.0
    crowd_critical: float = 90.0
    risk_warning: float = 60.0
    risk_critical: float = 80.0

    @classmethod
    def from_settings(cls) -> "AlertThresholds":
        return cls(
            temperature_drop=settings.ALERT_TEMPERATURE_DROP,
            temperature_rise=settings.ALERT_TEMPERATURE_RISE,
            precipitation_start=settings.ALERT_PRECIPITATION_START,
            wind_increase=settings.ALERT_WIND_INCREASE,
            humidity_rise=settings.ALERT_HUMIDITY_RISE,
            crowd_warning=settings.ALERT_CROWD_WARNING,
            crowd_critical=settings.ALERT_CROWD_CRITICAL,
            risk_warning=settings.ALERT_RISK_WARNING,
            risk_critical=settings.ALERT_RISK_CRITICAL,
        )


# =============================================================================
# WEATHER CHECKS
# =============================================================================

def check_temperature(
    current: WeatherReading, forecast: List[WeatherReading], thresholds: AlertThresholds
) -> List[WeatherAlert]:
    for sample in forecast:
        change = sample.temperature_c - current.temperature_c
        is_drop = change <= -thresholds.temperature_drop
        is_rise = change >= thresholds.temperature_rise
        if not (is_drop or is_rise):
            continue

        if is_drop:
            impact = "May affect crowd comfort and increase medical incidents"
            recommendations = [
                "Prepare for increased medical incidents",
                "Ensure warm areas are available",
                "Monitor crowd comfort levels",
            ]
        else:
            impact = "May cause heat-related incidents"
            recommendations = [
                "Deploy additional medical staff",
                "Ensure adequate hydration stations",
                "Monitor for heat-related incidents",
            ]

        return [WeatherAlert(
            condition="Temperature",
            change=f"{'Drop' if is_drop else 'Rise'} of {abs(change):.1f}°C",
            impact=impact,
            recommendations=recommendations,
            severity=AlertSeverity.CRITICAL if abs(change) > 10 else AlertSeverity.WARNING,
        )]
    return []


def check_precipitation(
    current: WeatherReading, forecast: List[WeatherReading], thresholds: AlertThresholds
) -> List[WeatherAlert]:
    for sample in forecast:
        change = sample.precipitation_mm - current.precipitation_mm
        if change > thresholds.precipitation_start:
            return [WeatherAlert(
                condition="Precipitation",
                change=f"Rain starting with {change:.1f}mm",
                impact="May cause slip/fall incidents and affect crowd movement",
                recommendations=[
                    "Deploy additional medical staff",
                    "Ensure slip-resistant surfaces",
                    "Monitor high-traffic areas",
                    "Prepare for weather-related incidents",
                ],
                severity=AlertSeverity.CRITICAL if change > 5 else AlertSeverity.WARNING,
            )]
    return []


def check_wind(
    current: WeatherReading, forecast: List[WeatherReading], thresholds: AlertThresholds
) -> List[WeatherAlert]:
    for sample in forecast:
        change = sample.wind_speed_kmh - current.wind_speed_kmh
        if change > thresholds.wind_increase:
            return [WeatherAlert(
                condition="Wind",
                change=f"Wind speed increasing by {change:.1f} km/h",
                impact="May cause technical issues and affect outdoor activities",
                recommendations=[
                    "Secure loose equipment and structures",
                    "Monitor technical systems",
                    "Prepare for wind-related incidents",
                    "Consider indoor alternatives for outdoor activities",
                ],
                severity=AlertSeverity.CRITICAL if change > 20 else AlertSeverity.WARNING,
            )]
    return []


def check_humidity(
    current: WeatherReading, forecast: List[WeatherReading], thresholds: AlertThresholds
) -> List[WeatherAlert]:
    for sample in forecast:
        change = sample.humidity - current.humidity
        if change > thresholds.humidity_rise:
            return [WeatherAlert(
                condition="Humidity",
                change=f"Humidity increasing by {change:.1f}%",
                impact="May affect crowd comfort and increase medical incidents",
                recommendations=[
                    "Ensure adequate ventilation",
                    "Monitor crowd comfort levels",
                    "Prepare for humidity-related incidents",
                ],
                severity=AlertSeverity.CRITICAL if change > 30 else AlertSeverity.WARNING,
            )]
    return []


def evaluate_weather(
    current: WeatherReading, forecast: List[WeatherReading], thresholds: AlertThresholds
) -> List[WeatherAlert]:
    """At most one alert per metric: the first forecast sample over its threshold"""
    alerts: List[WeatherAlert] = []
    for check in (check_temperature, check_precipitation, check_wind, check_humidity):
        alerts.extend(check(current, forecast, thresholds))
    return alerts


# =============================================================================
# CROWD CHECKS
# =============================================================================

def density_trend(samples: List[AttendanceSample], capacity: int) -> Optional[float]:
    """Density change in percentage points per minute over the last three samples"""
    recent = sorted(samples, key=lambda s: s.timestamp)[-CROWD_TREND_SAMPLES:]
    if len(recent) < 2 or capacity <= 0:
        return None
    minutes = (recent[-1].timestamp - recent[0].timestamp).total_seconds() / 60
    if minutes <= 0:
        return None
    return (recent[-1].count - recent[0].count) / minutes / capacity * 100


def evaluate_crowd(
    current_density: float,
    trend_per_minute: Optional[float],
    thresholds: AlertThresholds,
) -> List[CrowdAlert]:
    alerts: List[CrowdAlert] = []

    if current_density >= thresholds.crowd_critical:
        alerts.append(CrowdAlert(
            current_density=current_density,
            predicted_density=current_density,
            threshold=thresholds.crowd_critical,
            time_to_threshold=0,
            recommendations=[
                "Immediately activate crowd control measures",
                "Deploy additional security staff",
                "Consider temporary venue closure",
                "Monitor for potential incidents",
            ],
            severity=AlertSeverity.CRITICAL,
        ))
    elif current_density >= thresholds.crowd_warning:
        alerts.append(CrowdAlert(
            current_density=current_density,
            predicted_density=current_density,
            threshold=thresholds.crowd_warning,
            time_to_threshold=0,
            recommendations=[
                "Prepare crowd control measures",
                "Increase security presence",
                "Monitor entry rates",
                "Prepare for potential capacity issues",
            ],
            severity=AlertSeverity.WARNING,
        ))

    if not trend_per_minute or trend_per_minute <= 0:
        return alerts

    upcoming = [t for t in (thresholds.crowd_warning, thresholds.crowd_critical) if current_density < t]
    if not upcoming:
        return alerts

    threshold = upcoming[0]
    predicted_density = current_density + trend_per_minute * CROWD_LOOKAHEAD_MINUTES
    if predicted_density < threshold:
        return alerts

    minutes = math.ceil((threshold - current_density) / trend_per_minute)
    alerts.append(CrowdAlert(
        current_density=current_density,
        predicted_density=predicted_density,
        threshold=threshold,
        time_to_threshold=max(1, min(MAX_TIME_TO_THRESHOLD, minutes)),
        recommendations=[
            "Prepare for increased crowd density",
            "Deploy additional staff in advance",
            "Monitor entry patterns",
            "Consider crowd flow management",
        ],
        severity=(
            AlertSeverity.CRITICAL if threshold >= thresholds.crowd_critical else AlertSeverity.WARNING
        ),
    ))
    return alerts


# =============================================================================
# RISK CHECKS
# =============================================================================

def describe_factor(factor: RiskFactor) -> str:
    value = factor.factor_value
    for key in ("condition", "density_range", "time_slot", "location", "event_type"):
        if value.get(key):
            return f"{factor.factor_type.value}: {value[key]}"
    return f"{factor.factor_type.value}: {value.get('value')}"


def evaluate_risk(score: RiskScore, thresholds: AlertThresholds) -> List[RiskAlert]:
    factors = [describe_factor(f) for f in score.contributing_factors]

    if score.overall_score >= thresholds.risk_critical:
        return [RiskAlert(
            risk_score=score.overall_score,
            threshold=thresholds.risk_critical,
            contributing_factors=factors,
            recommendations=[
                "Activate emergency response protocols",
                "Deploy maximum security and medical staff",
                "Consider event modification or early closure",
                "Monitor all high-risk areas closely",
            ],
            severity=AlertSeverity.CRITICAL,
        )]
    if score.overall_score >= thresholds.risk_warning:
        return [RiskAlert(
            risk_score=score.overall_score,
            threshold=thresholds.risk_warning,
            contributing_factors=factors,
            recommendations=[
                "Increase security presence",
                "Deploy additional medical staff",
                "Monitor high-risk areas",
                "Prepare for potential incidents",
            ],
            severity=AlertSeverity.WARNING,
        )]
    return []


def prioritize_alerts(alerts: List[PredictiveAlert]) -> List[PredictiveAlert]:
    """Severity (critical first), then confidence descending, then oldest first"""
    return sorted(
        alerts,
        key=lambda a: (-SEVERITY_RANK[a.severity], -a.confidence, a.timestamp),
    )


# =============================================================================
# ALERT SYSTEM
# =============================================================================

class PredictiveAlertSystem:
    """Alert generation and lifecycle for a single event"""

    def __init__(
        self,
        event_id: str,
        repository: EventDataRepository,
        weather_provider: Optional[WeatherProvider] = None,
        risk_engine: Optional[RiskScoringEngine] = None,
        dispatcher: Optional[AlertDispatcher] = None,
        thresholds: Optional[AlertThresholds] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.event_id = event_id
        self.repository = repository
        self.weather_provider = weather_provider
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.risk_engine = risk_engine or RiskScoringEngine(
            event_id, repository, weather_provider=weather_provider, clock=self._clock
        )
        self.dispatcher = dispatcher or get_alert_dispatcher()
        self.thresholds = thresholds or AlertThresholds.from_settings()

    def _now(self) -> datetime:
        return self._clock()

    async def monitor_weather_alerts(self, raise_errors: bool = False) -> List[WeatherAlert]:
        """Weather change alerts; errors yield no alerts unless raise_errors is set"""
        if self.weather_provider is None:
            return []
        try:
            event = await self.repository.get_event(self.event_id)
            latitude = settings.DEFAULT_LATITUDE
            longitude = settings.DEFAULT_LONGITUDE
            if event is not None and event.latitude is not None and event.longitude is not None:
                latitude, longitude = event.latitude, event.longitude

            current, forecast = await asyncio.gather(
                self.weather_provider.get_current(latitude, longitude),
                self.weather_provider.get_forecast(
                    latitude, longitude, hours=settings.WEATHER_FORECAST_HOURS
                ),
            )
            return evaluate_weather(current, forecast, self.thresholds)
        except Exception as e:
            if raise_errors:
                raise
            logger.error(f"Error monitoring weather alerts for {self.event_id}: {e}")
            get_monitoring_service().record_engine_failure("alerts.weather")
            return []

    async def monitor_crowd_density_alerts(self, raise_errors: bool = False) -> List[CrowdAlert]:
        try:
            event = await self.repository.get_event(self.event_id)
            if event is None or not event.capacity:
                return []

            since = self._now() - timedelta(hours=CROWD_TREND_WINDOW_HOURS)
            samples = await self.repository.list_attendance(self.event_id, since=since)
            trend = density_trend(samples, event.capacity)
            return evaluate_crowd(event.occupancy_percent, trend, self.thresholds)
        except Exception as e:
            if raise_errors:
                raise
            logger.error(f"Error monitoring crowd density alerts for {self.event_id}: {e}")
            get_monitoring_service().record_engine_failure("alerts.crowd")
            return []

    async def check_risk_thresholds(self, risk_score: Optional[RiskScore] = None) -> List[RiskAlert]:
        try:
            if risk_score is None:
                risk_score = await self.risk_engine.calculate_overall_risk_score(strict=False)
            return evaluate_risk(risk_score, self.thresholds)
        except Exception as e:
            logger.error(f"Error checking risk thresholds for {self.event_id}: {e}")
            get_monitoring_service().record_engine_failure("alerts.risk")
            return []

    def build_alerts(
        self,
        weather_alerts: List[WeatherAlert],
        crowd_alerts: List[CrowdAlert],
        risk_alerts: List[RiskAlert],
    ) -> List[PredictiveAlert]:
        """Wrap raw check results as stored alerts with type-specific TTLs"""
        now = self._now()
        alerts: List[PredictiveAlert] = []

        for alert in weather_alerts:
            alerts.append(PredictiveAlert(
                event_id=self.event_id,
                alert_type=AlertType.WEATHER,
                severity=alert.severity,
                message=f"Weather Alert: {alert.condition} - {alert.change}",
                recommendations=list(alert.recommendations),
                timestamp=now,
                expires_at=now + timedelta(minutes=settings.ALERT_TTL_WEATHER),
                confidence=WEATHER_CONFIDENCE,
            ))

        for alert in crowd_alerts:
            message = f"Crowd Alert: Current density {alert.current_density:.1f}%"
            if alert.time_to_threshold > 0:
                message += (
                    f", predicted {alert.predicted_density:.1f}% in {alert.time_to_threshold} minutes"
                )
            alerts.append(PredictiveAlert(
                event_id=self.event_id,
                alert_type=AlertType.CROWD,
                severity=alert.severity,
                message=message,
                recommendations=list(alert.recommendations),
                timestamp=now,
                expires_at=now + timedelta(minutes=settings.ALERT_TTL_CROWD),
                confidence=CROWD_CONFIDENCE,
            ))

        for alert in risk_alerts:
            alerts.append(PredictiveAlert(
                event_id=self.event_id,
                alert_type=AlertType.RISK,
                severity=alert.severity,
                message=f"Risk Alert: Overall risk score {alert.risk_score:.1f}%",
                recommendations=list(alert.recommendations),
                timestamp=now,
                expires_at=now + timedelta(minutes=settings.ALERT_TTL_RISK),
                confidence=RISK_CONFIDENCE,
            ))

        return alerts

    async def generate_proactive_alerts(self) -> List[PredictiveAlert]:
        """Run all checks, store the resulting alerts and notify on critical ones"""
        weather_alerts, crowd_alerts, risk_alerts = await asyncio.gather(
            self.monitor_weather_alerts(),
            self.monitor_crowd_density_alerts(),
            self.check_risk_thresholds(),
        )

        alerts = self.build_alerts(weather_alerts, crowd_alerts, risk_alerts)
        if settings.ALERT_DEDUP_ENABLED:
            alerts = await self._drop_duplicates(alerts)

        if alerts:
            await self.store_alerts(alerts)

        monitoring = get_monitoring_service()
        for alert in alerts:
            monitoring.record_alert_generated(alert.alert_type.value, alert.severity.value)

        logger.info(f"Generated {len(alerts)} alerts for {self.event_id}")

        await self.send_predictive_notifications(alerts)
        return prioritize_alerts(alerts)

    async def _drop_duplicates(self, alerts: List[PredictiveAlert]) -> List[PredictiveAlert]:
        """Skip alerts whose (type, severity) is already active for this event"""
        now = self._now()
        kept: List[PredictiveAlert] = []
        seen: List[Tuple[AlertType, AlertSeverity]] = []
        for alert in alerts:
            key = (alert.alert_type, alert.severity)
            if key in seen:
                continue
            existing = await self.repository.find_active_alert(
                self.event_id, alert.alert_type, alert.severity, now
            )
            if existing is not None:
                logger.debug(f"Suppressing duplicate {key[0].value}/{key[1].value} alert for {self.event_id}")
                continue
            seen.append(key)
            kept.append(alert)
        return kept

    async def store_alerts(self, alerts: List[PredictiveAlert]) -> None:
        try:
            await self.repository.insert_alerts(alerts)
        except Exception as e:
            logger.error(f"Failed to store alerts for {self.event_id}: {e}")
            raise PersistenceError(f"Alert write failed: {e}") from e

    def prioritize_alerts(self, alerts: List[PredictiveAlert]) -> List[PredictiveAlert]:
        return prioritize_alerts(alerts)

    async def send_predictive_notifications(self, alerts: List[PredictiveAlert]) -> None:
        """Hand critical, unacknowledged alerts to the dispatcher; delivery results are not tracked"""
        critical = [
            a for a in alerts
            if a.severity == AlertSeverity.CRITICAL and not a.acknowledged
        ]
        if not critical:
            return
        try:
            await self.dispatcher.dispatch_all(critical)
        except Exception as e:
            logger.error(f"Error sending predictive notifications for {self.event_id}: {e}")

    async def acknowledge_alert(self, alert_id: str, user_id: str) -> PredictiveAlert:
        """
        Acknowledge an alert on behalf of a user.

        Acknowledging an already acknowledged alert keeps the original
        attribution and returns the alert unchanged.
        """
        try:
            alert = await self.repository.acknowledge_alert(alert_id, user_id, self._now())
        except Exception as e:
            logger.error(f"Failed to acknowledge alert {alert_id}: {e}")
            raise PersistenceError(f"Alert acknowledgement failed: {e}") from e

        if alert is None:
            raise AlertNotFoundError(alert_id)

        logger.info(f"Alert {alert_id} acknowledged by {alert.acknowledged_by}")
        return alert

    async def get_active_alerts(self) -> List[PredictiveAlert]:
        """Unacknowledged, unexpired alerts, newest first"""
        return await self.repository.list_active_alerts(self.event_id, self._now())
