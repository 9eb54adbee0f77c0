"""
SafeVenue - Weather Service
Current conditions and short-range forecasts for an event's coordinates.

OpenWeatherMapProvider talks to the OpenWeatherMap REST API.
StaticWeatherProvider returns fixed illustrative readings and is used
whenever no API key is configured.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx

from safevenue.core.config import settings
from safevenue.core.exceptions import WeatherProviderError
from safevenue.models.domain import WeatherReading

logger = logging.getLogger(__name__)

# OpenWeatherMap reports metric wind speed in m/s
MS_TO_KMH = 3.6


class WeatherProvider(ABC):
    """Abstract weather source"""

    @abstractmethod
    async def get_current(self, latitude: float, longitude: float) -> WeatherReading:
        pass

    @abstractmethod
    async def get_forecast(
        self, latitude: float, longitude: float, hours: int = 6
    ) -> List[WeatherReading]:
        """Forecast samples ordered by time, covering the next `hours`"""

    @abstractmethod
    def is_configured(self) -> bool:
        pass


class OpenWeatherMapProvider(WeatherProvider):
    """OpenWeatherMap current weather and 3-hourly forecast"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.WEATHER_API_KEY
        self.base_url = (base_url or settings.WEATHER_API_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.WEATHER_REQUEST_TIMEOUT
        self._transport = transport

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _request(self, path: str, latitude: float, longitude: float) -> Dict[str, Any]:
        if not self.is_configured():
            raise WeatherProviderError("Weather API key not configured")

        params = {
            "lat": latitude,
            "lon": longitude,
            "appid": self.api_key,
            "units": "metric",
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(f"{self.base_url}/{path}", params=params)
        except httpx.HTTPError as e:
            logger.error(f"OpenWeatherMap request failed: {e}")
            raise WeatherProviderError(f"Weather request failed: {e}") from e

        if response.status_code != 200:
            logger.warning(f"Weather API error {response.status_code}: {response.text}")
            raise WeatherProviderError(f"Weather API returned {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise WeatherProviderError("Weather API returned invalid JSON") from e

    @staticmethod
    def _parse_reading(data: Dict[str, Any], precipitation_key: str) -> WeatherReading:
        main = data.get("main", {})
        wind = data.get("wind", {})
        weather = (data.get("weather") or [{}])[0]
        rain = data.get("rain", {})
        snow = data.get("snow", {})

        observed_at = None
        if data.get("dt") is not None:
            observed_at = datetime.fromtimestamp(data["dt"], tz=timezone.utc)

        return WeatherReading(
            temperature_c=float(main.get("temp", 0.0)),
            humidity=float(main.get("humidity", 0.0)),
            wind_speed_kmh=round(float(wind.get("speed", 0.0)) * MS_TO_KMH, 2),
            precipitation_mm=float(rain.get(precipitation_key, 0.0)) + float(snow.get(precipitation_key, 0.0)),
            condition=weather.get("main", "Clear"),
            description=weather.get("description", ""),
            observed_at=observed_at,
        )

    async def get_current(self, latitude: float, longitude: float) -> WeatherReading:
        data = await self._request("weather", latitude, longitude)
        return self._parse_reading(data, "1h")

    async def get_forecast(
        self, latitude: float, longitude: float, hours: int = 6
    ) -> List[WeatherReading]:
        data = await self._request("forecast", latitude, longitude)
        # 3-hourly steps
        steps = max(1, -(-hours // 3))
        return [self._parse_reading(item, "3h") for item in data.get("list", [])[:steps]]


class StaticWeatherProvider(WeatherProvider):
    """Fixed illustrative readings; placeholder until a live feed is wired in"""

    def __init__(self, reading: Optional[WeatherReading] = None):
        self.reading = reading or WeatherReading(
            temperature_c=18.0,
            humidity=65.0,
            wind_speed_kmh=12.0,
            precipitation_mm=0.0,
            condition="Clear",
            description="clear sky",
        )

    def is_configured(self) -> bool:
        return True

    async def get_current(self, latitude: float, longitude: float) -> WeatherReading:
        return WeatherReading(**{**self.reading.__dict__, "observed_at": datetime.now(timezone.utc)})

    async def get_forecast(
        self, latitude: float, longitude: float, hours: int = 6
    ) -> List[WeatherReading]:
        now = datetime.now(timezone.utc)
        return [
            WeatherReading(**{**self.reading.__dict__, "observed_at": now + timedelta(hours=h)})
            for h in range(3, hours + 1, 3)
        ]


def build_weather_provider() -> WeatherProvider:
    """OpenWeatherMap when an API key is configured, otherwise the static placeholder"""
    if settings.weather_configured:
        return OpenWeatherMapProvider()
    logger.info("WEATHER_API_KEY not set, using static weather readings")
    return StaticWeatherProvider()


# Global weather provider instance
weather_provider = build_weather_provider()


def get_weather_provider() -> WeatherProvider:
    return weather_provider
