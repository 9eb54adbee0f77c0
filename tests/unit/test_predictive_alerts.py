"""
SafeVenue - Predictive Alert Unit Tests
Threshold checks, prioritisation and the alert lifecycle.
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from safevenue.core.config import settings
from safevenue.core.exceptions import AlertNotFoundError, PersistenceError
from safevenue.models.domain import (
    AlertSeverity,
    AlertType,
    AttendanceSample,
    PredictiveAlert,
    RiskLevel,
    RiskScore,
)
from safevenue.services.analytics.predictive_alerts import (
    AlertThresholds,
    PredictiveAlertSystem,
    density_trend,
    evaluate_crowd,
    evaluate_risk,
    evaluate_weather,
    prioritize_alerts,
)

# Test configuration
pytestmark = pytest.mark.unit

THRESHOLDS = AlertThresholds()


class TestWeatherChecks:
    """Forecast deltas against the current reading."""

    def test_large_temperature_rise_is_critical(self, make_reading):
        alerts = evaluate_weather(make_reading(), [make_reading(temperature_c=30)], THRESHOLDS)

        assert len(alerts) == 1
        assert alerts[0].condition == "Temperature"
        assert alerts[0].severity == AlertSeverity.CRITICAL
        assert alerts[0].change == "Rise of 12.0°C"

    def test_temperature_rise_at_threshold_warns(self, make_reading):
        alerts = evaluate_weather(make_reading(), [make_reading(temperature_c=26)], THRESHOLDS)

        assert [a.severity for a in alerts] == [AlertSeverity.WARNING]

    def test_temperature_drop(self, make_reading):
        alerts = evaluate_weather(make_reading(), [make_reading(temperature_c=12)], THRESHOLDS)

        assert alerts[0].change == "Drop of 6.0°C"
        assert "Ensure warm areas are available" in alerts[0].recommendations

    def test_one_alert_per_metric(self, make_reading):
        forecast = [make_reading(temperature_c=30), make_reading(temperature_c=35)]

        alerts = evaluate_weather(make_reading(), forecast, THRESHOLDS)

        assert len(alerts) == 1
        assert alerts[0].change == "Rise of 12.0°C"

    def test_deltas_at_threshold_do_not_alert(self, make_reading):
        forecast = [make_reading(precipitation_mm=0.1, wind_speed_kmh=20, humidity=80)]

        assert evaluate_weather(make_reading(), forecast, THRESHOLDS) == []

    def test_every_metric_can_alert(self, make_reading):
        forecast = [make_reading(temperature_c=27, precipitation_mm=0.5, wind_speed_kmh=35, humidity=85)]

        alerts = evaluate_weather(make_reading(), forecast, THRESHOLDS)

        assert [(a.condition, a.severity) for a in alerts] == [
            ("Temperature", AlertSeverity.WARNING),
            ("Precipitation", AlertSeverity.WARNING),
            ("Wind", AlertSeverity.CRITICAL),
            ("Humidity", AlertSeverity.WARNING),
        ]

    def test_steady_weather_is_quiet(self, make_reading):
        assert evaluate_weather(make_reading(), [make_reading()], THRESHOLDS) == []


class TestCrowdChecks:
    """Current density and trend-based pre-warnings."""

    def test_density_trend(self, now):
        samples = [
            AttendanceSample(now - timedelta(minutes=30), 100),
            AttendanceSample(now - timedelta(minutes=20), 700),
            AttendanceSample(now - timedelta(minutes=10), 750),
            AttendanceSample(now, 800),
        ]

        assert density_trend(samples, 1000) == pytest.approx(0.5)
        assert density_trend(samples[:1], 1000) is None

    def test_over_critical_density(self):
        alerts = evaluate_crowd(92.0, None, THRESHOLDS)

        assert len(alerts) == 1
        assert alerts[0].severity == AlertSeverity.CRITICAL
        assert alerts[0].current_density == 92.0
        assert alerts[0].time_to_threshold == 0

    def test_pre_warning_for_next_threshold(self):
        alerts = evaluate_crowd(60.0, 0.5, THRESHOLDS)

        assert len(alerts) == 1
        assert alerts[0].threshold == 75.0
        assert alerts[0].time_to_threshold == 30
        assert alerts[0].severity == AlertSeverity.WARNING

    def test_warning_and_critical_pre_warning(self):
        alerts = evaluate_crowd(80.0, 0.5, THRESHOLDS)

        assert [(a.threshold, a.severity) for a in alerts] == [
            (75.0, AlertSeverity.WARNING),
            (90.0, AlertSeverity.CRITICAL),
        ]
        assert alerts[1].time_to_threshold == 20

    def test_slow_trend_is_quiet(self):
        assert evaluate_crowd(60.0, 0.1, THRESHOLDS) == []

    def test_falling_density_is_quiet(self):
        assert evaluate_crowd(60.0, -1.0, THRESHOLDS) == []


class TestRiskChecksAndPriority:
    """Risk score thresholds and alert ordering."""

    def _score(self, value, now):
        return RiskScore(
            event_id="evt-1",
            overall_score=value,
            risk_level=RiskLevel.HIGH,
            contributing_factors=[],
            last_updated=now,
            confidence=0.8,
        )

    def test_risk_levels(self, now):
        assert evaluate_risk(self._score(85, now), THRESHOLDS)[0].severity == AlertSeverity.CRITICAL
        assert evaluate_risk(self._score(60, now), THRESHOLDS)[0].severity == AlertSeverity.WARNING
        assert evaluate_risk(self._score(59.9, now), THRESHOLDS) == []

    def test_prioritize(self, now):
        def alert(severity, confidence, minutes_ago):
            return PredictiveAlert(
                event_id="evt-1",
                alert_type=AlertType.CROWD,
                severity=severity,
                message=f"{severity.value}-{confidence}-{minutes_ago}",
                recommendations=[],
                timestamp=now - timedelta(minutes=minutes_ago),
                expires_at=now + timedelta(minutes=30),
                confidence=confidence,
            )

        alerts = [
            alert(AlertSeverity.WARNING, 0.9, 1),
            alert(AlertSeverity.CRITICAL, 0.8, 1),
            alert(AlertSeverity.CRITICAL, 0.9, 1),
            alert(AlertSeverity.CRITICAL, 0.9, 5),
            alert(AlertSeverity.INFO, 1.0, 1),
        ]

        ordered = [a.message for a in prioritize_alerts(alerts)]

        assert ordered == [
            "critical-0.9-5",
            "critical-0.9-1",
            "critical-0.8-1",
            "warning-0.9-1",
            "info-1.0-1",
        ]


class TestPredictiveAlertSystem:
    """Generation, storage, notification and acknowledgement."""

    @pytest.mark.asyncio
    async def test_overcrowded_event_raises_critical_alert(
        self, repository, make_event, static_weather, dispatcher, clock
    ):
        make_event(capacity=1000, current_attendance=920)
        system = PredictiveAlertSystem(
            "evt-1", repository, weather_provider=static_weather, dispatcher=dispatcher, clock=clock
        )

        alerts = await system.generate_proactive_alerts()

        assert len(alerts) == 1
        assert alerts[0].alert_type == AlertType.CROWD
        assert alerts[0].severity == AlertSeverity.CRITICAL
        assert alerts[0].message == "Crowd Alert: Current density 92.0%"
        assert alerts[0].expires_at - alerts[0].timestamp == timedelta(minutes=30)
        assert [a.id for a in dispatcher.sent] == [alerts[0].id]
        assert [a.id for a in await system.get_active_alerts()] == [alerts[0].id]

    @pytest.mark.asyncio
    async def test_rising_crowd_pre_warning(self, repository, make_event, add_samples, dispatcher, clock):
        make_event(capacity=1000, current_attendance=700)
        add_samples("evt-1", [(150, 0), (20, 600), (10, 650), (0, 700)])
        system = PredictiveAlertSystem("evt-1", repository, dispatcher=dispatcher, clock=clock)

        alerts = await system.monitor_crowd_density_alerts()

        assert len(alerts) == 1
        assert alerts[0].threshold == 75.0
        assert alerts[0].time_to_threshold == 10

    @pytest.mark.asyncio
    async def test_weather_alerts_from_provider(
        self, repository, make_event, make_reading, scripted_weather, dispatcher, clock
    ):
        make_event()
        provider = scripted_weather(make_reading(), [make_reading(precipitation_mm=6)])
        system = PredictiveAlertSystem(
            "evt-1", repository, weather_provider=provider, dispatcher=dispatcher, clock=clock
        )

        alerts = await system.generate_proactive_alerts()

        assert [(a.alert_type, a.severity) for a in alerts] == [(AlertType.WEATHER, AlertSeverity.CRITICAL)]
        assert alerts[0].expires_at - alerts[0].timestamp == timedelta(minutes=120)
        assert len(dispatcher.sent) == 1

    @pytest.mark.asyncio
    async def test_no_provider_no_weather_alerts(self, repository, make_event, dispatcher, clock):
        make_event()
        system = PredictiveAlertSystem("evt-1", repository, dispatcher=dispatcher, clock=clock)

        assert await system.monitor_weather_alerts() == []

    @pytest.mark.asyncio
    async def test_failing_provider_is_isolated(self, repository, make_event, dispatcher, clock):
        make_event()
        provider = AsyncMock()
        provider.get_current.side_effect = RuntimeError("timeout")
        system = PredictiveAlertSystem(
            "evt-1", repository, weather_provider=provider, dispatcher=dispatcher, clock=clock
        )

        assert await system.monitor_weather_alerts() == []

    @pytest.mark.asyncio
    async def test_acknowledge_removes_from_active(
        self, repository, make_event, static_weather, dispatcher, clock
    ):
        make_event(current_attendance=950)
        system = PredictiveAlertSystem(
            "evt-1", repository, weather_provider=static_weather, dispatcher=dispatcher, clock=clock
        )
        alert = (await system.generate_proactive_alerts())[0]

        acknowledged = await system.acknowledge_alert(alert.id, "op-1")
        again = await system.acknowledge_alert(alert.id, "op-2")

        assert acknowledged.acknowledged is True
        assert acknowledged.acknowledged_by == "op-1"
        assert again.acknowledged_by == "op-1"
        assert await system.get_active_alerts() == []

    @pytest.mark.asyncio
    async def test_acknowledge_unknown_alert(self, repository, dispatcher, clock):
        system = PredictiveAlertSystem("evt-1", repository, dispatcher=dispatcher, clock=clock)

        with pytest.raises(AlertNotFoundError):
            await system.acknowledge_alert("missing", "op-1")

    @pytest.mark.asyncio
    async def test_expired_alerts_are_not_active(
        self, repository, make_event, static_weather, dispatcher, now
    ):
        make_event(current_attendance=950)
        current = [now]
        system = PredictiveAlertSystem(
            "evt-1", repository, weather_provider=static_weather, dispatcher=dispatcher,
            clock=lambda: current[0],
        )
        await system.generate_proactive_alerts()

        current[0] = now + timedelta(minutes=30)

        assert await system.get_active_alerts() == []

    @pytest.mark.asyncio
    async def test_duplicate_suppression(
        self, repository, make_event, static_weather, dispatcher, clock, monkeypatch
    ):
        monkeypatch.setattr(settings, "ALERT_DEDUP_ENABLED", True)
        make_event(current_attendance=950)
        system = PredictiveAlertSystem(
            "evt-1", repository, weather_provider=static_weather, dispatcher=dispatcher, clock=clock
        )

        first = await system.generate_proactive_alerts()
        second = await system.generate_proactive_alerts()

        assert len(first) == 1
        assert second == []
        assert len(dispatcher.sent) == 1

    @pytest.mark.asyncio
    async def test_storage_failure_raises(self, repository, make_event, static_weather, dispatcher, clock):
        make_event(current_attendance=950)
        repository.insert_alerts = AsyncMock(side_effect=RuntimeError("db down"))
        system = PredictiveAlertSystem(
            "evt-1", repository, weather_provider=static_weather, dispatcher=dispatcher, clock=clock
        )

        with pytest.raises(PersistenceError):
            await system.generate_proactive_alerts()
        assert dispatcher.sent == []

    @pytest.mark.asyncio
    async def test_alert_pass_stores_risk_score(self, repository, make_event, static_weather, dispatcher, clock, now):
        make_event(capacity=1000, current_attendance=950)
        system = PredictiveAlertSystem(
            "evt-1", repository, weather_provider=static_weather, dispatcher=dispatcher, clock=clock
        )

        await system.generate_proactive_alerts()
        stored = await repository.get_risk_score("evt-1")

        assert stored is not None
        assert stored.last_updated == now
        assert len(stored.contributing_factors) == 6

    @pytest.mark.asyncio
    async def test_risk_score_write_failure_keeps_alerts(
        self, repository, make_event, static_weather, dispatcher, clock
    ):
        make_event(capacity=1000, current_attendance=950)
        repository.upsert_risk_score = AsyncMock(side_effect=RuntimeError("db down"))
        system = PredictiveAlertSystem(
            "evt-1", repository, weather_provider=static_weather, dispatcher=dispatcher, clock=clock
        )

        alerts = await system.generate_proactive_alerts()

        repository.upsert_risk_score.assert_awaited_once()
        assert [(a.alert_type, a.severity) for a in alerts] == [(AlertType.CROWD, AlertSeverity.CRITICAL)]

    @pytest.mark.asyncio
    async def test_monitor_errors_can_be_raised(self, repository, make_event, dispatcher, clock):
        make_event()
        provider = AsyncMock()
        provider.get_current.side_effect = RuntimeError("timeout")
        repository.list_attendance = AsyncMock(side_effect=RuntimeError("feed down"))
        system = PredictiveAlertSystem(
            "evt-1", repository, weather_provider=provider, dispatcher=dispatcher, clock=clock
        )

        with pytest.raises(RuntimeError):
            await system.monitor_weather_alerts(raise_errors=True)
        with pytest.raises(RuntimeError):
            await system.monitor_crowd_density_alerts(raise_errors=True)
        assert await system.monitor_crowd_density_alerts() == []

    @pytest.mark.asyncio
    async def test_dispatch_failure_does_not_raise(self, repository, make_event, static_weather, clock):
        make_event(current_attendance=950)
        failing = AsyncMock()
        failing.dispatch_all.side_effect = RuntimeError("push gateway down")
        system = PredictiveAlertSystem(
            "evt-1", repository, weather_provider=static_weather, dispatcher=failing, clock=clock
        )

        alerts = await system.generate_proactive_alerts()

        assert len(alerts) == 1
        failing.dispatch_all.assert_awaited_once()
