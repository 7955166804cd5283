import asyncio

import httpx
import pytest

from clipforge.services.errors import NetworkError
from clipforge.services.http_retry import RetryClient


def _client(handler, sleeper):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RetryClient(http, sleep=sleeper)


def test_retries_server_errors_with_exponential_backoff(sleeper):
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) <= 3:
            return httpx.Response(500, json={"error": "boom"})
        return httpx.Response(200, json={"ok": True})

    async def scenario():
        client = _client(handler, sleeper)
        return await client.request("GET", "https://provider.test/tasks/1")

    response = asyncio.run(scenario())

    assert response.status_code == 200
    assert len(calls) == 4
    assert sleeper.delays == [2.0, 4.0, 8.0]


def test_gives_up_on_429_after_five_retries(sleeper):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(429, json={"error": "slow down"})

    async def scenario():
        client = _client(handler, sleeper)
        return await client.request("POST", "https://provider.test/gen4/create", json={"a": 1})

    response = asyncio.run(scenario())

    assert response.status_code == 429
    assert len(calls) == 6  # initial attempt + 5 retries
    assert sleeper.delays == [2.0, 4.0, 8.0, 16.0, 32.0]


def test_client_errors_are_not_retried(sleeper):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(400, json={"error": "bad request"})

    async def scenario():
        return await _client(handler, sleeper).request("GET", "https://provider.test/x")

    response = asyncio.run(scenario())

    assert response.status_code == 400
    assert len(calls) == 1
    assert sleeper.delays == []


def test_transport_errors_raise_network_error_when_exhausted(sleeper):
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    async def scenario():
        return await _client(handler, sleeper).request("GET", "https://provider.test/x")

    with pytest.raises(NetworkError) as excinfo:
        asyncio.run(scenario())

    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)
    assert len(calls) == 6
    assert sleeper.delays == [2.0, 4.0, 8.0, 16.0, 32.0]


def test_timeout_then_success(sleeper):
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            raise httpx.ReadTimeout("timed out", request=request)
        return httpx.Response(201, json={"assetId": "a1"})

    async def scenario():
        return await _client(handler, sleeper).request("POST", "https://provider.test/assets", content=b"png")

    response = asyncio.run(scenario())

    assert response.status_code == 201
    assert sleeper.delays == [2.0]
    assert calls[1].content == b"png"


def test_backoff_delay_is_uncapped():
    client = RetryClient(httpx.AsyncClient(), base_delay=2.0)
    assert client.backoff_delay(0) == 2.0
    assert client.backoff_delay(6) == 128.0
