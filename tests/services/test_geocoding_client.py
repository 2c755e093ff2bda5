"""Tests for the geocoding client. No request leaves the process."""

from unittest.mock import patch

import httpx
import pytest

from app.core.config import Settings
from app.services.geocoding import GeocodingClient

REAL_ASYNC_CLIENT = httpx.AsyncClient

OK_PAYLOAD = {
    "status": "OK",
    "results": [
        {
            "formatted_address": "12 Market St, Springfield",
            "geometry": {"location": {"lat": 39.78, "lng": -89.65}},
        }
    ],
}


def _client_with(handler, api_key: str | None = "test-key") -> GeocodingClient:
    settings = Settings(GOOGLE_MAPS_API_KEY=api_key) if api_key else Settings()
    with patch("app.services.geocoding.get_settings", return_value=settings):
        return GeocodingClient()


def _transport(handler):
    def factory(**kwargs):
        return REAL_ASYNC_CLIENT(transport=httpx.MockTransport(handler), **kwargs)

    return patch("app.services.geocoding.httpx.AsyncClient", side_effect=factory)


@pytest.mark.asyncio
async def test_geocode_success():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json=OK_PAYLOAD)

    client = _client_with(handler)
    with _transport(handler):
        result = await client.geocode("  12 Market Street ")

    assert result is not None
    assert result.latitude == 39.78
    assert result.longitude == -89.65
    assert result.formatted_address == "12 Market St, Springfield"
    assert seen["params"] == {"address": "12 Market Street", "key": "test-key"}


@pytest.mark.asyncio
async def test_reverse_geocode_sends_latlng():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["latlng"] = request.url.params["latlng"]
        return httpx.Response(200, json=OK_PAYLOAD)

    client = _client_with(handler)
    with _transport(handler):
        result = await client.reverse_geocode(39.78, -89.65)

    assert result is not None
    assert seen["latlng"] == "39.78,-89.65"


@pytest.mark.asyncio
async def test_missing_api_key_skips_lookup():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    client = _client_with(handler, api_key=None)
    with _transport(handler):
        assert await client.geocode("12 Market Street") is None


@pytest.mark.asyncio
async def test_blank_address_is_unknown():
    client = _client_with(None)

    assert await client.geocode("   ") is None


@pytest.mark.asyncio
async def test_zero_results_is_unknown():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": "ZERO_RESULTS", "results": []})

    client = _client_with(handler)
    with _transport(handler):
        assert await client.geocode("Nowhere") is None


@pytest.mark.asyncio
async def test_http_error_is_unknown():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="unavailable")

    client = _client_with(handler)
    with _transport(handler):
        assert await client.geocode("12 Market Street") is None


@pytest.mark.asyncio
async def test_network_failure_is_unknown():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    client = _client_with(handler)
    with _transport(handler):
        assert await client.geocode("12 Market Street") is None
