"""Fixed inter-call delay per provider."""

import asyncio
import logging
import time
from collections import defaultdict

logger = logging.getLogger(__name__)


class ProviderRateLimiter:
    """Enforces a minimum interval between successive calls to one provider."""

    def __init__(self):
        self.locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self.last_request: dict[str, float] = {}

    async def wait(self, provider: str, interval: float) -> None:
        """
        Sleep until ``interval`` seconds have passed since the previous call.

        Args:
            provider: Provider identifier
            interval: Minimum seconds between requests
        """
        async with self.locks[provider]:
            last_time = self.last_request.get(provider)
            if last_time is not None and interval > 0:
                wait_needed = interval - (time.monotonic() - last_time)
                if wait_needed > 0:
                    await asyncio.sleep(wait_needed)
            self.last_request[provider] = time.monotonic()

    def reset(self, provider: str | None = None) -> None:
        """Forget request timestamps (all providers when none is given)."""
        if provider is None:
            self.last_request.clear()
        else:
            self.last_request.pop(provider, None)
