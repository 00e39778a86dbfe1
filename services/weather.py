"""Weather-by-coordinates lookup against the upstream HTTP API."""

from __future__ import annotations

import logging
import math
import time
from typing import Any, Dict, Mapping, Optional

import httpx

from models.records import WeatherReading
from services.errors import ErrorKind, WeatherFetchError
from settings import Settings

logger = logging.getLogger(__name__)

KELVIN_OFFSET = 273.15


def kelvin_to_celsius(kelvin: float) -> int:
    # half-up, so 16.5 becomes 17 rather than 16
    return int(math.floor(kelvin - KELVIN_OFFSET + 0.5))


def _is_finite_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    # the json module accepts NaN and Infinity literals
    return math.isfinite(value)


def _require_epoch(section: Mapping[str, Any], key: str) -> int:
    value = section.get(key)
    if not _is_finite_number(value):
        raise WeatherFetchError(
            ErrorKind.json_shape_mismatch, f"sys.{key} is missing or not numeric."
        )
    return int(value)


def _optional_number(section: Any, key: str) -> Optional[float]:
    if not isinstance(section, Mapping):
        return None
    value = section.get(key)
    if not _is_finite_number(value):
        return None
    return float(value)


def parse_weather_payload(payload: Any) -> WeatherReading:
    """Extract sunrise, sunset, temperature and coordinates from a response body."""
    if not isinstance(payload, Mapping):
        raise WeatherFetchError(
            ErrorKind.json_shape_mismatch, "Response body is not a JSON object."
        )
    sys_section = payload.get("sys")
    if not isinstance(sys_section, Mapping):
        raise WeatherFetchError(
            ErrorKind.json_shape_mismatch, "Response body has no sys section."
        )

    reading = WeatherReading(
        sunrise=_require_epoch(sys_section, "sunrise"),
        sunset=_require_epoch(sys_section, "sunset"),
    )

    kelvin = _optional_number(payload.get("main"), "temp")
    if kelvin is not None:
        reading.temperature = kelvin_to_celsius(kelvin)

    coord = payload.get("coord")
    latitude = _optional_number(coord, "lat")
    longitude = _optional_number(coord, "lon")
    if latitude is not None and longitude is not None:
        reading.latitude = latitude
        reading.longitude = longitude

    name = payload.get("name")
    if isinstance(name, str) and name:
        reading.location_name = name
    return reading


class WeatherFetcher:
    """Single-attempt weather lookups; every failure surfaces as ``WeatherFetchError``."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str,
        api_key: Optional[str] = None,
        city: Optional[str] = None,
        timeout: float = 10.0,
    ) -> None:
        self.client = client
        self.url = url
        self.api_key = api_key
        self.city = city
        self.timeout = timeout

    @property
    def needs_location(self) -> bool:
        return self.city is None

    def build_params(
        self, latitude: Optional[float], longitude: Optional[float]
    ) -> Dict[str, str]:
        if self.city is not None:
            params = {"q": self.city}
        else:
            if latitude is None or longitude is None:
                raise ValueError("Coordinates are required when no city is configured.")
            params = {"lat": f"{latitude}", "lon": f"{longitude}", "cnt": "1"}
        if self.api_key:
            params["appid"] = self.api_key
        return params

    async def fetch(
        self,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> WeatherReading:
        params = self.build_params(latitude, longitude)
        start = time.perf_counter()
        try:
            response = await self.client.get(self.url, params=params, timeout=self.timeout)
        except httpx.HTTPError as exc:
            raise WeatherFetchError(
                ErrorKind.http_transport_error,
                f"Weather request failed: {exc.__class__.__name__}: {exc}",
            ) from exc

        elapsed_ms = int((time.perf_counter() - start) * 1000)
        if response.status_code != httpx.codes.OK:
            raise WeatherFetchError(
                ErrorKind.http_non_200,
                f"Weather API answered with status {response.status_code}.",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise WeatherFetchError(
                ErrorKind.json_parse_error,
                "Weather API response is not valid JSON.",
                status_code=response.status_code,
            ) from exc

        reading = parse_weather_payload(payload)
        logger.info(
            "Sunrise is %s and sunset is %s in %s",
            reading.sunrise,
            reading.sunset,
            reading.location_name or "unknown location",
            extra={"http_status": response.status_code, "elapsed_ms": elapsed_ms},
        )
        return reading


def build_weather_fetcher(settings: Settings, client: httpx.AsyncClient) -> WeatherFetcher:
    return WeatherFetcher(
        client=client,
        url=settings.weather_api_url,
        api_key=settings.weather_api_key,
        city=settings.weather_city,
        timeout=settings.weather_timeout,
    )
