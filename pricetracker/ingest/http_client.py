"""HTTP requests with per-provider policies and status-aware error handling."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

USER_AGENT = "metal-price-tracker/0.1"

# Connection-level failures worth another attempt
TRANSPORT_ERRORS = (
    httpx.TimeoutException,
    httpx.ConnectError,
    httpx.RemoteProtocolError,
)


def _default_timeout() -> httpx.Timeout:
    return httpx.Timeout(connect=10.0, read=30.0, write=10.0, pool=10.0)


@dataclass(frozen=True)
class ProviderPolicy:
    """How hard to try against one provider's API."""

    name: str
    max_attempts: int = 3
    timeout: httpx.Timeout = field(default_factory=_default_timeout)
    backoff_base_seconds: float = 1.0

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed ``attempt`` (1-based), doubling with jitter."""
        base = self.backoff_base_seconds
        if base <= 0:
            return 0.0
        return base * 2 ** (attempt - 1) + random.uniform(0, base)


class AuthenticationError(RuntimeError):
    """Credentials were rejected (401/403). Aborts the whole run."""


class PermanentURLError(RuntimeError):
    """The resource does not exist (404). Never retried."""


class TransientFetchError(RuntimeError):
    """5xx, unexpected status or transport failure that outlived its retries."""


class RateLimitedError(RuntimeError):
    """The provider answered 429."""

    def __init__(self, retry_after: Optional[int] = None):
        super().__init__("Rate limited")
        self.retry_after = retry_after


def _check_status(resp: httpx.Response, policy: ProviderPolicy) -> None:
    """Map a non-2xx response onto the error hierarchy."""
    status = resp.status_code
    if 200 <= status < 300:
        return

    where = f"{resp.request.method} {resp.request.url}"
    if status in (401, 403):
        raise AuthenticationError(f"{policy.name}: {status} for {where}")
    if status == 404:
        raise PermanentURLError(f"{policy.name}: 404 for {where}")
    if status == 429:
        header = resp.headers.get("Retry-After", "")
        raise RateLimitedError(int(header) if header.isdigit() else None)
    raise TransientFetchError(f"{policy.name}: status {status} for {where}")


async def request_with_policy(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    policy: ProviderPolicy,
    headers: Optional[dict[str, str]] = None,
    params: Optional[dict[str, Any]] = None,
    json: Any = None,
    content: Optional[str] = None,
) -> httpx.Response:
    """
    Send a request, retrying rate limits and transient failures.

    ``content`` is sent verbatim for APIs that sign the exact request body.
    A 429 waits for ``Retry-After`` when the provider sends one, everything
    else retryable waits ``policy.delay_for(attempt)``.

    Raises:
        AuthenticationError: On 401/403
        PermanentURLError: On 404
        RateLimitedError: If still rate limited on the last attempt
        TransientFetchError: On 5xx or transport errors after the last attempt
    """
    request_headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}
    request_headers.update(headers or {})

    attempt = 0
    while True:
        attempt += 1
        final = attempt >= policy.max_attempts
        try:
            resp = await client.request(
                method,
                url,
                headers=request_headers,
                params=params,
                json=json,
                content=content,
                timeout=policy.timeout,
                follow_redirects=True,
            )
            _check_status(resp, policy)
            return resp
        except RateLimitedError as exc:
            if final:
                raise
            delay = float(exc.retry_after) if exc.retry_after is not None else policy.delay_for(attempt)
            reason = "rate limited"
        except TransientFetchError as exc:
            if final:
                raise TransientFetchError(f"{exc} after {attempt} attempts") from exc
            delay = policy.delay_for(attempt)
            reason = str(exc)
        except TRANSPORT_ERRORS as exc:
            if final:
                raise TransientFetchError(
                    f"{policy.name}: {type(exc).__name__} after {attempt} attempts: {url}"
                ) from exc
            delay = policy.delay_for(attempt)
            reason = type(exc).__name__

        logger.warning(
            "%s: %s, retry %d/%d in %.1fs",
            policy.name,
            reason,
            attempt,
            policy.max_attempts - 1,
            delay,
        )
        await asyncio.sleep(delay)
