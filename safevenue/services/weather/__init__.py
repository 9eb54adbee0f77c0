"""Weather provider module."""

from .weather_service import (
    WeatherProvider,
    OpenWeatherMapProvider,
    StaticWeatherProvider,
    build_weather_provider,
    get_weather_provider,
)

__all__ = [
    "WeatherProvider",
    "OpenWeatherMapProvider",
    "StaticWeatherProvider",
    "build_weather_provider",
    "get_weather_provider",
]
