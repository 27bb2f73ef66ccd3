import asyncio

import httpx
import pytest

from country_api.services.clients import (
    FetchError,
    FetchTimeout,
    HttpStatusError,
    fetch_countries,
    fetch_exchange_rates,
    fetch_json,
)

URL = "http://api.test/data"


def client_for(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_fetch_json_returns_decoded_body():
    async with client_for(lambda request: httpx.Response(200, json={"ok": True})) as client:
        assert await fetch_json(client, URL, 1000) == {"ok": True}


@pytest.mark.asyncio
async def test_non_2xx_is_http_error():
    async with client_for(lambda request: httpx.Response(502, json={})) as client:
        with pytest.raises(HttpStatusError) as exc:
            await fetch_json(client, URL, 1000)
    assert exc.value.status_code == 502


@pytest.mark.asyncio
async def test_slow_response_times_out_and_is_cancelled():
    cancelled = asyncio.Event()

    async def slow(request):
        try:
            await asyncio.sleep(5)
        except asyncio.CancelledError:
            cancelled.set()
            raise
        return httpx.Response(200, json=[])

    async with client_for(slow) as client:
        with pytest.raises(FetchTimeout):
            await fetch_json(client, URL, 50)
    assert cancelled.is_set()


@pytest.mark.asyncio
async def test_transport_error_is_fetch_error():
    def boom(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with client_for(boom) as client:
        with pytest.raises(FetchError) as exc:
            await fetch_json(client, URL, 1000)
    assert not isinstance(exc.value, FetchTimeout)


@pytest.mark.asyncio
async def test_invalid_json_is_fetch_error():
    async with client_for(lambda request: httpx.Response(200, content=b"<html>")) as client:
        with pytest.raises(FetchError):
            await fetch_json(client, URL, 1000)


@pytest.mark.asyncio
async def test_countries_must_be_a_list():
    async with client_for(lambda request: httpx.Response(200, json={"message": "nope"})) as client:
        with pytest.raises(FetchError):
            await fetch_countries(client, URL, 1000)


@pytest.mark.asyncio
async def test_exchange_rates_are_normalized():
    payload = {"result": "success", "conversion_rates": {"usd": 1, "ngn": 1530.2}}
    async with client_for(lambda request: httpx.Response(200, json=payload)) as client:
        rates = await fetch_exchange_rates(client, URL, 1000)
    assert rates == {"USD": 1.0, "NGN": 1530.2}


@pytest.mark.asyncio
async def test_exchange_rates_unknown_shape_is_empty_mapping():
    async with client_for(lambda request: httpx.Response(200, json={"result": "error"})) as client:
        assert await fetch_exchange_rates(client, URL, 1000) == {}
