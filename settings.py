from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_WEATHER_URL_ENV = "WEATHER_API_URL"
_WEATHER_KEY_ENV = "WEATHER_API_KEY"
_WEATHER_CITY_ENV = "WEATHER_CITY"
_WEATHER_TIMEOUT_ENV = "WEATHER_TIMEOUT_SECONDS"
_LOCATION_MODE_ENV = "LOCATION_MODE"
_FIXED_LAT_ENV = "FIXED_LATITUDE"
_FIXED_LON_ENV = "FIXED_LONGITUDE"
_LOCATION_TIMEOUT_ENV = "LOCATION_TIMEOUT_SECONDS"
_LOCATION_MAX_AGE_ENV = "LOCATION_MAX_AGE_SECONDS"
_TIMEZONE_ENV = "COMPANION_TIMEZONE"
_TEMPERATURE_FORMAT_ENV = "TEMPERATURE_FORMAT"
_REFRESH_ON_READY_ENV = "REFRESH_ON_READY"
_OUTBOX_MAX_ENV = "OUTBOX_MAX_PENDING"
_MAX_SESSIONS_ENV = "MAX_SESSIONS"
_LOG_LEVEL_ENV = "LOG_LEVEL"

LOCATION_MODES = ("reported", "fixed")
TEMPERATURE_FORMATS = ("int", "text")


@dataclass(frozen=True)
class Settings:
    weather_api_url: str
    weather_api_key: Optional[str]
    weather_city: Optional[str]
    weather_timeout: float
    location_mode: str
    fixed_latitude: float
    fixed_longitude: float
    location_timeout: float
    location_max_age: float
    timezone: Optional[str]
    temperature_format: str
    refresh_on_ready: bool
    outbox_max_pending: int
    max_sessions: int
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_choice_env(name: str, choices: tuple[str, ...], default: str) -> str:
    candidate = _read_str_env(name, default).lower()
    return candidate if candidate in choices else default


def _read_float_env(name: str, default: float, positive: bool = True) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    if positive and parsed <= 0:
        return default
    return parsed


def _read_int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_bool_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if not candidate:
        return default
    return candidate in {"1", "true", "yes", "on"}


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        weather_api_url=_read_str_env(
            _WEATHER_URL_ENV, "http://api.openweathermap.org/data/2.5/weather"
        ),
        weather_api_key=_read_optional_env(_WEATHER_KEY_ENV, None),
        weather_city=_read_optional_env(_WEATHER_CITY_ENV, None),
        weather_timeout=_read_float_env(_WEATHER_TIMEOUT_ENV, 10.0),
        location_mode=_read_choice_env(_LOCATION_MODE_ENV, LOCATION_MODES, "reported"),
        # Lansing, MI
        fixed_latitude=_read_float_env(_FIXED_LAT_ENV, 42.7325, positive=False),
        fixed_longitude=_read_float_env(_FIXED_LON_ENV, -84.5555, positive=False),
        location_timeout=_read_float_env(_LOCATION_TIMEOUT_ENV, 15.0),
        location_max_age=_read_float_env(_LOCATION_MAX_AGE_ENV, 60.0),
        timezone=_read_optional_env(_TIMEZONE_ENV, None),
        temperature_format=_read_choice_env(
            _TEMPERATURE_FORMAT_ENV, TEMPERATURE_FORMATS, "int"
        ),
        refresh_on_ready=_read_bool_env(_REFRESH_ON_READY_ENV, False),
        outbox_max_pending=_read_int_env(_OUTBOX_MAX_ENV, 16),
        max_sessions=_read_int_env(_MAX_SESSIONS_ENV, 256),
        log_level=_read_log_level("INFO"),
    )
