from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_STORE_PATH_ENV = "SENSOR_STORE_PATH"
_UPDATE_INTERVAL_ENV = "MONITOR_UPDATE_INTERVAL"
_WINDOW_SIZE_ENV = "MONITOR_WINDOW_SIZE"
_CRITICAL_THRESHOLD_ENV = "CRITICAL_RISK_THRESHOLD"
_WEATHER_API_KEY_ENV = "WEATHER_API_KEY"
_WEATHER_API_URL_ENV = "WEATHER_API_URL"
_TWILIO_SID_ENV = "TWILIO_ACCOUNT_SID"
_TWILIO_TOKEN_ENV = "TWILIO_AUTH_TOKEN"
_TWILIO_FROM_ENV = "TWILIO_FROM_NUMBER"
_ALERT_RECIPIENT_ENV = "ALERT_RECIPIENT_NUMBER"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    store_path: Optional[str]
    update_interval: float
    window_size: int
    critical_threshold: float
    weather_api_key: Optional[str]
    weather_api_url: str
    twilio_account_sid: Optional[str]
    twilio_auth_token: Optional[str]
    twilio_from_number: str
    alert_recipient_number: str
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


def _read_positive_int(name: str, default: int) -> int:
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


def _read_positive_float(name: str, default: float) -> float:
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
    return parsed if parsed > 0 else default


def _read_probability(name: str, default: float) -> float:
    parsed = _read_positive_float(name, default)
    return parsed if parsed <= 1 else default


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
        store_path=_read_optional_env(_STORE_PATH_ENV, "./tmp/sensor_store.json"),
        update_interval=_read_positive_float(_UPDATE_INTERVAL_ENV, 5.0),
        window_size=_read_positive_int(_WINDOW_SIZE_ENV, 50),
        critical_threshold=_read_probability(_CRITICAL_THRESHOLD_ENV, 0.8),
        weather_api_key=_read_optional_env(_WEATHER_API_KEY_ENV, None),
        weather_api_url=_read_str_env(
            _WEATHER_API_URL_ENV, "https://api.openweathermap.org/data/2.5/weather"
        ),
        twilio_account_sid=_read_optional_env(_TWILIO_SID_ENV, None),
        twilio_auth_token=_read_optional_env(_TWILIO_TOKEN_ENV, None),
        twilio_from_number=_read_str_env(_TWILIO_FROM_ENV, "+1234567890"),
        alert_recipient_number=_read_str_env(_ALERT_RECIPIENT_ENV, "+919876543210"),
        log_level=_read_log_level("INFO"),
    )
