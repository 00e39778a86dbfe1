from __future__ import annotations

import asyncio
from typing import Callable

import httpx
import pytest

from models.records import WeatherReading
from services.errors import ErrorKind, WeatherFetchError
from services.weather import WeatherFetcher, kelvin_to_celsius, parse_weather_payload

WEATHER_URL = "http://weather.test/data/2.5/weather"

LANSING_BODY = {
    "coord": {"lon": -84.56, "lat": 42.73},
    "sys": {"sunrise": 1718187000, "sunset": 1718242200},
    "main": {"temp": 295.4},
    "name": "Lansing",
}


def _fetch(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> WeatherReading:
    async def scenario() -> WeatherReading:
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            fetcher = WeatherFetcher(client=client, url=WEATHER_URL, **kwargs)
            return await fetcher.fetch(42.73, -84.56)

    return asyncio.run(scenario())


def test_kelvin_conversion_rounds_to_nearest_degree() -> None:
    assert kelvin_to_celsius(300.0) == 27
    assert kelvin_to_celsius(290) == 17
    assert kelvin_to_celsius(273.15) == 0
    assert kelvin_to_celsius(260.0) == -13


def test_parse_canned_fixture() -> None:
    reading = parse_weather_payload(
        {"sys": {"sunrise": 1000, "sunset": 2000}, "main": {"temp": 290}}
    )

    assert reading.sunrise == 1000
    assert reading.sunset == 2000
    assert reading.temperature == 17
    assert reading.latitude is None
    assert reading.location_name is None


def test_parse_without_temperature_keeps_sun_times() -> None:
    reading = parse_weather_payload({"sys": {"sunrise": 1000, "sunset": 2000}})

    assert reading.temperature is None
    assert (reading.sunrise, reading.sunset) == (1000, 2000)


@pytest.mark.parametrize(
    "payload",
    [
        [],
        {"main": {"temp": 290}},
        {"sys": {"sunrise": 1000}},
        {"sys": {"sunrise": "dawn", "sunset": 2000}},
        {"sys": {"sunrise": True, "sunset": 2000}},
        {"sys": {"sunrise": float("nan"), "sunset": 2000}},
        {"sys": {"sunrise": 1000, "sunset": float("inf")}},
        {"sys": {"sunrise": float("-inf"), "sunset": 2000}},
    ],
)
def test_parse_rejects_unexpected_shapes(payload) -> None:
    with pytest.raises(WeatherFetchError) as excinfo:
        parse_weather_payload(payload)

    assert excinfo.value.kind is ErrorKind.json_shape_mismatch


def test_fetch_success_queries_by_coordinates() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=LANSING_BODY)

    reading = _fetch(handler, api_key="secret")

    params = seen[0].url.params
    assert params["lat"] == "42.73"
    assert params["lon"] == "-84.56"
    assert params["cnt"] == "1"
    assert params["appid"] == "secret"
    assert "q" not in params

    assert 0 < reading.sunrise < reading.sunset
    assert reading.temperature == 22
    assert reading.location_name == "Lansing"
    assert (reading.latitude, reading.longitude) == (42.73, -84.56)


def test_fetch_with_city_query_skips_coordinates() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=LANSING_BODY)

    async def scenario() -> WeatherReading:
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            fetcher = WeatherFetcher(client=client, url=WEATHER_URL, city="Lansing,MI")
            assert fetcher.needs_location is False
            return await fetcher.fetch()

    reading = asyncio.run(scenario())

    params = seen[0].url.params
    assert params["q"] == "Lansing,MI"
    assert "lat" not in params and "appid" not in params
    assert reading.latitude == 42.73


def test_fetch_non_200_is_reported() -> None:
    with pytest.raises(WeatherFetchError) as excinfo:
        _fetch(lambda request: httpx.Response(500, text="upstream broke"))

    assert excinfo.value.kind is ErrorKind.http_non_200
    assert excinfo.value.status_code == 500


def test_fetch_invalid_json_is_reported() -> None:
    with pytest.raises(WeatherFetchError) as excinfo:
        _fetch(lambda request: httpx.Response(200, text="<html>not json</html>"))

    assert excinfo.value.kind is ErrorKind.json_parse_error


def test_fetch_transport_timeout_is_reported() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(WeatherFetchError) as excinfo:
        _fetch(handler)

    assert excinfo.value.kind is ErrorKind.http_transport_error
    assert "ReadTimeout" in str(excinfo.value)


def test_fetch_logs_sun_times(caplog) -> None:
    with caplog.at_level("INFO", logger="services.weather"):
        _fetch(lambda request: httpx.Response(200, json=LANSING_BODY))

    records = [record for record in caplog.records if record.name == "services.weather"]
    assert any("in Lansing" in record.getMessage() for record in records)
    assert any(getattr(record, "http_status", None) == 200 for record in records)


def test_parse_treats_non_finite_temperature_as_absent() -> None:
    reading = parse_weather_payload(
        {"sys": {"sunrise": 1000, "sunset": 2000}, "main": {"temp": float("nan")}}
    )

    assert reading.temperature is None
    assert (reading.sunrise, reading.sunset) == (1000, 2000)


@pytest.mark.parametrize(
    "body",
    [
        b'{"sys": {"sunrise": NaN, "sunset": 2000}}',
        b'{"sys": {"sunrise": Infinity, "sunset": 2000}}',
        b'{"sys": {"sunrise": 1000, "sunset": -Infinity}}',
    ],
)
def test_fetch_non_finite_sun_times_are_shape_mismatches(body: bytes) -> None:
    with pytest.raises(WeatherFetchError) as excinfo:
        _fetch(lambda request: httpx.Response(200, content=body))

    assert excinfo.value.kind is ErrorKind.json_shape_mismatch


def test_fetch_nan_temperature_still_reports_sun_times() -> None:
    body = b'{"sys": {"sunrise": 1000, "sunset": 2000}, "main": {"temp": NaN}}'

    reading = _fetch(lambda request: httpx.Response(200, content=body))

    assert reading.temperature is None
    assert reading.sunrise == 1000
