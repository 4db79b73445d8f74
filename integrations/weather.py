"""Current-weather lookups for mine coordinates."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Optional, Protocol

import httpx

from settings import get_settings

DEFAULT_TEMPERATURE = 25.0
DEFAULT_RAINFALL = 0.0


class WeatherUnavailable(Exception):
    """The weather provider could not produce an observation."""


@dataclass(frozen=True)
class WeatherObservation:
    temperature: float
    rainfall: float


FALLBACK_OBSERVATION = WeatherObservation(temperature=DEFAULT_TEMPERATURE, rainfall=DEFAULT_RAINFALL)


class WeatherSource(Protocol):
    def fetch_current(self, latitude: float, longitude: float) -> WeatherObservation:
        ...


class OpenWeatherClient:
    """OpenWeatherMap current-weather client (metric units)."""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.openweathermap.org/data/2.5/weather",
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def fetch_current(self, latitude: float, longitude: float) -> WeatherObservation:
        if not self._api_key:
            raise WeatherUnavailable("Weather API key not configured.")
        try:
            response = self._client.get(
                self._base_url,
                params={
                    "lat": latitude,
                    "lon": longitude,
                    "appid": self._api_key,
                    "units": "metric",
                },
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise WeatherUnavailable(
                f"Weather API returned status {exc.response.status_code}."
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise WeatherUnavailable(f"Weather API request failed: {exc}") from exc
        return self._parse(payload)

    @staticmethod
    def _parse(payload: Dict[str, Any]) -> WeatherObservation:
        main = payload.get("main") or {}
        rain = payload.get("rain") or {}
        temperature = main.get("temp")
        rain_depth = rain.get("1h") or rain.get("3h") or 0.0
        return WeatherObservation(
            temperature=float(temperature) if temperature is not None else DEFAULT_TEMPERATURE,
            # Scaled x10 to match the rainfall range the risk bands were tuned on.
            rainfall=float(rain_depth) * 10,
        )


@lru_cache
def build_default_weather_client() -> OpenWeatherClient:
    settings = get_settings()
    return OpenWeatherClient(api_key=settings.weather_api_key, base_url=settings.weather_api_url)
