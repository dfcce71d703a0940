"""Tests for request retries, error mapping and the per-provider delay."""

import asyncio

import httpx
import pytest

from pricetracker.ingest.http_client import (
    AuthenticationError,
    PermanentURLError,
    ProviderPolicy,
    RateLimitedError,
    TransientFetchError,
    request_with_policy,
)
from pricetracker.ingest.rate_limiter import ProviderRateLimiter

URL = "https://api.example.com/v1/plans"


@pytest.fixture
def sleeps(monkeypatch):
    """Record requested sleeps instead of waiting."""
    recorded = []

    async def fake_sleep(seconds, *args, **kwargs):
        recorded.append(seconds)

    monkeypatch.setattr(asyncio, "sleep", fake_sleep)
    return recorded


def _scripted(*responses):
    """Handler replaying ``responses`` in order; exceptions are raised."""
    calls = []

    def handler(request):
        calls.append(request)
        outcome = responses[min(len(calls), len(responses)) - 1]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    return handler, calls


async def _send(handler, policy=None, **kwargs):
    policy = policy or ProviderPolicy(name="TEST", max_attempts=3, backoff_base_seconds=0.5)
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        return await request_with_policy(client, "GET", URL, policy, **kwargs)


def test_backoff_doubles_with_jitter():
    policy = ProviderPolicy(name="TEST", backoff_base_seconds=0.5)
    assert 0.5 <= policy.delay_for(1) <= 1.0
    assert 1.0 <= policy.delay_for(2) <= 1.5
    assert 2.0 <= policy.delay_for(3) <= 2.5

    assert ProviderPolicy(name="TEST", backoff_base_seconds=0).delay_for(3) == 0.0


@pytest.mark.asyncio
async def test_success_merges_headers(sleeps):
    handler, calls = _scripted(httpx.Response(200, json={"plans": []}))

    response = await _send(handler, headers={"Authorization": "Bearer k"})

    assert response.json() == {"plans": []}
    assert calls[0].headers["Authorization"] == "Bearer k"
    assert calls[0].headers["Accept"] == "application/json"
    assert calls[0].headers["User-Agent"].startswith("metal-price-tracker")
    assert sleeps == []


@pytest.mark.asyncio
async def test_raw_content_is_sent_verbatim(sleeps):
    handler, calls = _scripted(httpx.Response(200))

    await _send(handler, content='{"b":1,"a":2}')

    assert calls[0].content == b'{"b":1,"a":2}'


@pytest.mark.asyncio
async def test_rate_limit_honours_retry_after(sleeps):
    handler, calls = _scripted(
        httpx.Response(429, headers={"Retry-After": "7"}),
        httpx.Response(200, json={"ok": True}),
    )

    response = await _send(handler)

    assert response.status_code == 200
    assert len(calls) == 2
    assert sleeps == [7.0]


@pytest.mark.asyncio
async def test_rate_limit_without_header_uses_backoff(sleeps):
    handler, calls = _scripted(httpx.Response(429), httpx.Response(200))

    await _send(handler)

    assert len(sleeps) == 1
    assert 0.5 <= sleeps[0] <= 1.0


@pytest.mark.asyncio
async def test_rate_limit_on_last_attempt_raises(sleeps):
    handler, calls = _scripted(httpx.Response(429, headers={"Retry-After": "2"}))
    policy = ProviderPolicy(name="TEST", max_attempts=2, backoff_base_seconds=0)

    with pytest.raises(RateLimitedError) as excinfo:
        await _send(handler, policy)

    assert excinfo.value.retry_after == 2
    assert len(calls) == 2
    assert sleeps == [2.0]


@pytest.mark.asyncio
async def test_server_errors_retry_then_succeed(sleeps):
    handler, calls = _scripted(httpx.Response(502), httpx.Response(503), httpx.Response(200))

    response = await _send(handler)

    assert response.status_code == 200
    assert len(calls) == 3
    assert len(sleeps) == 2
    assert 0.5 <= sleeps[0] <= 1.0
    assert 1.0 <= sleeps[1] <= 1.5


@pytest.mark.asyncio
async def test_server_errors_exhaust_attempts(sleeps):
    handler, calls = _scripted(httpx.Response(500))

    with pytest.raises(TransientFetchError, match="after 3 attempts"):
        await _send(handler)

    assert len(calls) == 3
    assert len(sleeps) == 2


@pytest.mark.asyncio
async def test_transport_errors_exhaust_attempts(sleeps):
    handler, calls = _scripted(httpx.ConnectError("connection refused"))

    with pytest.raises(TransientFetchError) as excinfo:
        await _send(handler)

    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_transport_error_then_success(sleeps):
    handler, calls = _scripted(httpx.ReadTimeout("slow"), httpx.Response(200))

    response = await _send(handler)

    assert response.status_code == 200
    assert len(sleeps) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [401, 403])
async def test_rejected_credentials_are_not_retried(sleeps, status):
    handler, calls = _scripted(httpx.Response(status))

    with pytest.raises(AuthenticationError):
        await _send(handler)

    assert len(calls) == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_not_found_is_not_retried(sleeps):
    handler, calls = _scripted(httpx.Response(404))

    with pytest.raises(PermanentURLError):
        await _send(handler)

    assert len(calls) == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_rate_limiter_spaces_calls_per_provider(sleeps):
    limiter = ProviderRateLimiter()

    await limiter.wait("OVHCLOUD", 10.0)
    assert sleeps == []

    await limiter.wait("OVHCLOUD", 10.0)
    assert len(sleeps) == 1
    assert 9.0 < sleeps[0] <= 10.0

    # Other providers have their own clock
    await limiter.wait("VULTR", 10.0)
    assert len(sleeps) == 1


@pytest.mark.asyncio
async def test_rate_limiter_zero_interval_and_reset(sleeps):
    limiter = ProviderRateLimiter()

    await limiter.wait("TERASWITCH", 0)
    await limiter.wait("TERASWITCH", 0)
    assert sleeps == []

    limiter.reset("TERASWITCH")
    await limiter.wait("TERASWITCH", 5.0)
    assert sleeps == []


@pytest.mark.asyncio
async def test_adapter_requests_wait_for_the_provider_delay(sleeps, test_settings, make_adapter):
    config = test_settings.model_copy(update={"provider_request_delays": {"TERASWITCH": 3.0}})
    handler, calls = _scripted(httpx.Response(200))
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    adapter = make_adapter([], config=config, client=client)

    await adapter.request("GET", URL)
    await adapter.request("GET", URL)
    await client.aclose()

    assert len(calls) == 2
    assert len(sleeps) == 1
    assert 2.0 < sleeps[0] <= 3.0
