"""Tests for the weather and alert clients against mocked HTTP transports."""

from __future__ import annotations

import base64
import logging
from typing import List
from urllib.parse import parse_qs

import httpx
import pytest

from integrations.alerts import (
    DispatchFailure,
    TwilioAlertDispatcher,
    format_alert_message,
    notify_safely,
)
from integrations.weather import OpenWeatherClient, WeatherUnavailable


def _weather_client(handler, api_key: str = "key") -> OpenWeatherClient:
    return OpenWeatherClient(
        api_key=api_key,
        base_url="https://weather.test/data/2.5/weather",
        transport=httpx.MockTransport(handler),
    )


def test_weather_client_parses_temperature_and_scales_rain() -> None:
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"main": {"temp": 29.4}, "rain": {"1h": 1.2}})

    observation = _weather_client(handler).fetch_current(15.14, 76.92)

    assert observation.temperature == 29.4
    assert observation.rainfall == pytest.approx(12.0)
    params = requests[0].url.params
    assert params["lat"] == "15.14"
    assert params["lon"] == "76.92"
    assert params["units"] == "metric"
    assert params["appid"] == "key"


def test_weather_client_uses_three_hour_rain_and_defaults() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"rain": {"3h": 0.5}})

    observation = _weather_client(handler).fetch_current(1.0, 2.0)

    assert observation.temperature == 25.0
    assert observation.rainfall == pytest.approx(5.0)


def test_weather_client_without_key_is_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - never called
        raise AssertionError("No request expected without an API key")

    with pytest.raises(WeatherUnavailable, match="not configured"):
        _weather_client(handler, api_key="").fetch_current(1.0, 2.0)


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(401, json={"message": "Invalid API key"}),
        httpx.Response(200, content=b"<html>"),
    ],
)
def test_weather_client_maps_failures(response: httpx.Response) -> None:
    with pytest.raises(WeatherUnavailable):
        _weather_client(lambda request: response).fetch_current(1.0, 2.0)


def test_weather_client_maps_transport_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("boom", request=request)

    with pytest.raises(WeatherUnavailable, match="request failed"):
        _weather_client(handler).fetch_current(1.0, 2.0)


def test_alert_message_format() -> None:
    message = format_alert_message("Jharia Coalfield", "Dhanbad", 0.856)

    assert message.startswith("HIGH ROCKFALL RISK ALERT")
    assert "Mine: Jharia Coalfield" in message
    assert "Location: Dhanbad" in message
    assert "Risk Level: 86%" in message


def test_twilio_dispatcher_posts_form_encoded_sms() -> None:
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(201, json={"sid": "SM123"})

    dispatcher = TwilioAlertDispatcher(
        account_sid="AC123",
        auth_token="secret",
        from_number="+1234567890",
        to_number="+919876543210",
        transport=httpx.MockTransport(handler),
    )

    dispatcher.notify("mine-1", "Korba Coalfield", "Korba", 0.91)

    (request,) = requests
    assert request.method == "POST"
    assert request.url.path == "/2010-04-01/Accounts/AC123/Messages.json"
    assert request.headers["authorization"] == "Basic " + base64.b64encode(b"AC123:secret").decode()
    form = parse_qs(request.content.decode())
    assert form["From"] == ["+1234567890"]
    assert form["To"] == ["+919876543210"]
    assert "Risk Level: 91%" in form["Body"][0]


def test_dispatcher_without_credentials_only_logs(caplog) -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - never called
        raise AssertionError("SMS must be skipped without credentials")

    dispatcher = TwilioAlertDispatcher(
        account_sid=None,
        auth_token=None,
        from_number="+1",
        to_number="+2",
        transport=httpx.MockTransport(handler),
    )

    with caplog.at_level(logging.INFO):
        dispatcher.notify("mine-1", "Goa Iron Ore", "Panaji", 0.9)

    assert not dispatcher.sms_enabled
    assert any("HIGH ROCKFALL RISK ALERT" in record.getMessage() for record in caplog.records)


def test_failed_sms_raises_and_notify_safely_reports_false() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, text="Invalid 'To' number")

    dispatcher = TwilioAlertDispatcher(
        account_sid="AC123",
        auth_token="secret",
        from_number="+1",
        to_number="bad",
        transport=httpx.MockTransport(handler),
    )

    with pytest.raises(DispatchFailure, match="status 400"):
        dispatcher.notify("mine-1", "Goa Iron Ore", "Panaji", 0.9)

    assert notify_safely(dispatcher, "mine-1", "Goa Iron Ore", "Panaji", 0.9) is False
