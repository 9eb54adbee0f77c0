"""
SafeVenue - Integration Tests
API endpoint tests over the in-memory repository and cache
"""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient

from safevenue.api.dependencies import get_cache, get_dispatcher, get_repository, get_weather
from safevenue.core.cache import InMemoryResponseCache
from safevenue.main import app
from safevenue.models.domain import AlertSeverity, AlertType, PredictiveAlert

# Test configuration
pytestmark = pytest.mark.integration


class TestPredictiveInsightsEndpoints:
    """Test the predictive insights API."""

    @pytest.mark.asyncio
    async def test_get_insights(self, async_client: AsyncClient, make_event):
        """Test the combined insights payload for a live event."""
        make_event(current_attendance=920)

        response = await async_client.get(
            "/api/v1/analytics/predictive-insights",
            params={"event_id": "evt-1"},
            headers={"X-User-Id": "op-1"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["overall_risk"]["score"] is not None
        assert len(data["crowd_flow"]["predictions"]) == 8
        assert [a["severity"] for a in data["crowd_alerts"]] == ["critical"]
        assert data["degraded_sections"] == []

    @pytest.mark.asyncio
    async def test_post_insights_refresh(self, async_client: AsyncClient, make_event):
        """Test that POST with force_refresh recomputes the payload."""
        make_event(current_attendance=920)
        await async_client.get("/api/v1/analytics/predictive-insights", params={"event_id": "evt-1"})

        make_event(current_attendance=100)
        response = await async_client.post(
            "/api/v1/analytics/predictive-insights",
            json={"event_id": "evt-1", "force_refresh": True},
        )

        assert response.status_code == 200
        assert response.json()["crowd_alerts"] == []

    @pytest.mark.asyncio
    async def test_unknown_event(self, async_client: AsyncClient):
        """Test insights for an event that does not exist."""
        response = await async_client.get(
            "/api/v1/analytics/predictive-insights",
            params={"event_id": "ghost"},
        )

        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "EventNotFoundError"
        assert body["request_id"]

    @pytest.mark.asyncio
    async def test_missing_event_id(self, async_client: AsyncClient):
        """Test validation of the required event_id parameter."""
        response = await async_client.get("/api/v1/analytics/predictive-insights")

        assert response.status_code == 422
        assert response.json()["error"] == "Validation Error"


class TestRiskScoreEndpoints:
    """Test risk score API endpoints."""

    @pytest.mark.asyncio
    async def test_calculate_then_read(self, async_client: AsyncClient, make_event):
        """Test that a calculated score is stored and readable."""
        make_event(current_attendance=500)

        missing = await async_client.get("/api/v1/events/evt-1/risk-score")
        calculated = await async_client.post("/api/v1/events/evt-1/risk-score/calculate")
        stored = await async_client.get("/api/v1/events/evt-1/risk-score")

        assert missing.status_code == 404
        assert calculated.status_code == 200
        assert stored.status_code == 200
        assert stored.json()["overall_score"] == calculated.json()["overall_score"]
        assert len(stored.json()["contributing_factors"]) == 6

    @pytest.mark.asyncio
    async def test_breakdowns(self, async_client: AsyncClient, make_event, make_incident, repository):
        """Test per-location and per-type breakdowns."""
        make_event()
        repository.add_incident(make_incident("evt-1", 10, location="Gate A", priority="high"))
        repository.add_incident(make_incident("evt-1", 20, incident_type="security", location="Bar"))

        locations = await async_client.get("/api/v1/events/evt-1/risk-score/locations")
        types = await async_client.get("/api/v1/events/evt-1/risk-score/incident-types")

        assert [row["location"] for row in locations.json()] == ["Gate A", "Bar"]
        assert {t["incident_type"] for t in types.json()} == {"medical", "security"}

    @pytest.mark.asyncio
    async def test_unknown_event(self, async_client: AsyncClient):
        """Test event routes reject unknown events."""
        response = await async_client.post("/api/v1/events/ghost/risk-score/calculate")

        assert response.status_code == 404


class TestPatternEndpoints:
    """Test pattern recognition API endpoints."""

    @pytest.mark.asyncio
    async def test_analyze_and_filter(self, async_client: AsyncClient, make_event, make_incident, repository):
        """Test analysis storage and filtered reads."""
        make_event()
        for minutes_ago in (10, 20, 30):
            repository.add_incident(make_incident("evt-1", minutes_ago))

        analyzed = await async_client.post("/api/v1/events/evt-1/patterns/analyze")
        temporal = await async_client.get(
            "/api/v1/events/evt-1/patterns", params={"pattern_type": "temporal"}
        )

        assert analyzed.status_code == 200
        assert analyzed.json()["count"] == 2
        assert temporal.json()["count"] == 1
        assert temporal.json()["patterns"][0]["pattern_type"] == "temporal"

    @pytest.mark.asyncio
    async def test_invalid_filter(self, async_client: AsyncClient, make_event):
        """Test that an unknown pattern type is rejected."""
        make_event()

        response = await async_client.get(
            "/api/v1/events/evt-1/patterns", params={"pattern_type": "astrological"}
        )

        assert response.status_code == 422


class TestCrowdEndpoints:
    """Test crowd flow API endpoints."""

    @pytest.mark.asyncio
    async def test_crowd_flow(self, async_client: AsyncClient, make_event, add_samples, repository):
        """Test predictions are returned and stored."""
        make_event(capacity=800, current_attendance=500)
        add_samples("evt-1", [(30, 0), (0, 500)])

        response = await async_client.get("/api/v1/events/evt-1/crowd-flow")

        assert response.status_code == 200
        data = response.json()
        assert len(data["predictions"]) == 8
        assert all(p["predicted_count"] == 800 for p in data["predictions"])
        assert data["entry_rate_per_hour"] == pytest.approx(1000.0)
        assert len(await repository.list_crowd_predictions("evt-1")) == 8

    @pytest.mark.asyncio
    async def test_forecast_and_zones(self, async_client: AsyncClient, make_event):
        """Test occupancy forecast and density zones."""
        make_event(capacity=1000, current_attendance=400)

        forecast = await async_client.get("/api/v1/events/evt-1/crowd-flow/forecast")
        zones = await async_client.get("/api/v1/events/evt-1/density-zones")

        assert forecast.status_code == 200
        assert forecast.json()["peak_occupancy"] == 400
        assert len(zones.json()) == 4

    @pytest.mark.asyncio
    async def test_forecast_without_capacity(self, async_client: AsyncClient, make_event):
        """Test forecast is unavailable when capacity is unknown."""
        make_event(capacity=0)

        response = await async_client.get("/api/v1/events/evt-1/crowd-flow/forecast")

        assert response.status_code == 404


class TestAlertEndpoints:
    """Test alert API endpoints."""

    @pytest.mark.asyncio
    async def test_generate_acknowledge_lifecycle(self, async_client: AsyncClient, make_event, dispatcher):
        """Test generated alerts leave the active list once acknowledged."""
        make_event(current_attendance=950)

        generated = await async_client.post("/api/v1/events/evt-1/alerts/generate")
        alert_id = generated.json()["alerts"][0]["id"]
        active = await async_client.get("/api/v1/events/evt-1/alerts/active")
        acknowledged = await async_client.post(
            f"/api/v1/alerts/{alert_id}/acknowledge", headers={"X-User-Id": "op-7"}
        )
        after = await async_client.get("/api/v1/events/evt-1/alerts/active")

        assert generated.json()["count"] == 1
        assert len(dispatcher.sent) == 1
        assert active.json()["count"] == 1
        assert acknowledged.json()["acknowledged_by"] == "op-7"
        assert after.json()["count"] == 0

    @pytest.mark.asyncio
    async def test_active_alerts_newest_first(self, async_client: AsyncClient, make_event, repository):
        """Test active alerts keep storage order rather than severity order."""
        make_event()
        issued = datetime.now(timezone.utc)
        older_critical = PredictiveAlert(
            event_id="evt-1",
            alert_type=AlertType.CROWD,
            severity=AlertSeverity.CRITICAL,
            message="Crowd Alert: Current density 93.0%",
            recommendations=[],
            timestamp=issued - timedelta(minutes=5),
            expires_at=issued + timedelta(minutes=25),
            confidence=0.9,
        )
        newer_warning = PredictiveAlert(
            event_id="evt-1",
            alert_type=AlertType.WEATHER,
            severity=AlertSeverity.WARNING,
            message="Weather Alert: Wind - increasing",
            recommendations=[],
            timestamp=issued,
            expires_at=issued + timedelta(minutes=120),
            confidence=0.8,
        )
        await repository.insert_alerts([older_critical, newer_warning])

        response = await async_client.get("/api/v1/events/evt-1/alerts/active")

        assert [a["id"] for a in response.json()["alerts"]] == [newer_warning.id, older_critical.id]

    @pytest.mark.asyncio
    async def test_acknowledge_unknown_alert(self, async_client: AsyncClient):
        """Test acknowledging an alert that does not exist."""
        response = await async_client.post("/api/v1/alerts/missing/acknowledge")

        assert response.status_code == 404
        assert response.json()["error"] == "AlertNotFoundError"


class TestOperationalEndpoints:
    """Test health, metrics and request tracking."""

    @pytest.mark.asyncio
    async def test_health(self, async_client: AsyncClient):
        """Test the detailed health check."""
        response = await async_client.get("/api/v1/health", params={"detailed": True})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["scheduler"]["enabled"] is False

    @pytest.mark.asyncio
    async def test_metrics(self, async_client: AsyncClient):
        """Test the Prometheus endpoint."""
        await async_client.get("/health")

        response = await async_client.get("/metrics")

        assert response.status_code == 200
        assert "safevenue_http_requests_total" in response.text

    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, async_client: AsyncClient):
        """Test an incoming request id is propagated."""
        response = await async_client.get("/", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"
        assert "X-Response-Time" in response.headers


# Test fixtures
@pytest.fixture
async def async_client(repository, static_weather, dispatcher):
    """Create async HTTP client with the in-memory backends wired in."""
    app.dependency_overrides[get_repository] = lambda: repository
    cache = InMemoryResponseCache(300)
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_weather] = lambda: static_weather
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
