"""
SafeVenue - Weather Provider Unit Tests
"""

import httpx
import pytest

from safevenue.core.exceptions import WeatherProviderError
from safevenue.services.weather import OpenWeatherMapProvider, StaticWeatherProvider

# Test configuration
pytestmark = pytest.mark.unit

CURRENT_PAYLOAD = {
    "dt": 1780315200,
    "main": {"temp": 24.5, "humidity": 55},
    "wind": {"speed": 5.0},
    "weather": [{"main": "Rain", "description": "light rain"}],
    "rain": {"1h": 0.4},
}

FORECAST_PAYLOAD = {
    "list": [
        {"main": {"temp": 20.0, "humidity": 70}, "wind": {"speed": 2.0}, "weather": [{"main": "Clouds"}]},
        {"main": {"temp": 18.0, "humidity": 80}, "wind": {"speed": 3.0}, "rain": {"3h": 2.5}},
        {"main": {"temp": 16.0, "humidity": 85}, "wind": {"speed": 4.0}},
    ]
}


def _provider(handler) -> OpenWeatherMapProvider:
    return OpenWeatherMapProvider(
        api_key="test-key",
        base_url="https://weather.test/data/2.5",
        transport=httpx.MockTransport(handler),
    )


class TestOpenWeatherMapProvider:
    """Parsing and error mapping over a mocked transport."""

    @pytest.mark.asyncio
    async def test_current_reading(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json=CURRENT_PAYLOAD)

        reading = await _provider(handler).get_current(51.5, -0.12)

        assert seen["path"] == "/data/2.5/weather"
        assert seen["params"]["units"] == "metric"
        assert seen["params"]["appid"] == "test-key"
        assert reading.temperature_c == 24.5
        assert reading.wind_speed_kmh == 18.0
        assert reading.precipitation_mm == 0.4
        assert reading.condition == "Rain"
        assert reading.observed_at is not None

    @pytest.mark.asyncio
    async def test_forecast_uses_three_hour_steps(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=FORECAST_PAYLOAD)

        forecast = await _provider(handler).get_forecast(51.5, -0.12, hours=6)

        assert [r.temperature_c for r in forecast] == [20.0, 18.0]
        assert forecast[1].precipitation_mm == 2.5
        assert forecast[1].condition == "Clear"

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"message": "Invalid API key"})

        with pytest.raises(WeatherProviderError):
            await _provider(handler).get_current(51.5, -0.12)

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(WeatherProviderError):
            await _provider(handler).get_current(51.5, -0.12)

    @pytest.mark.asyncio
    async def test_missing_key_raises(self):
        provider = OpenWeatherMapProvider(api_key="")

        assert provider.is_configured() is False
        with pytest.raises(WeatherProviderError):
            await provider.get_current(51.5, -0.12)


class TestStaticWeatherProvider:
    """Placeholder readings."""

    @pytest.mark.asyncio
    async def test_forecast_matches_current(self):
        provider = StaticWeatherProvider()

        current = await provider.get_current(0, 0)
        forecast = await provider.get_forecast(0, 0, hours=6)

        assert len(forecast) == 2
        assert all(r.temperature_c == current.temperature_c for r in forecast)
        assert all(r.precipitation_mm == 0.0 for r in forecast)
