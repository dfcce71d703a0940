"""Base adapter interface for competitor catalog sources."""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx

from pricetracker import metrics
from pricetracker.config import Settings, settings
from pricetracker.db.models import Competitor
from pricetracker.ingest.http_client import (
    AuthenticationError,
    PermanentURLError,
    ProviderPolicy,
    RateLimitedError,
    TransientFetchError,
    request_with_policy,
)
from pricetracker.ingest.locations import load_provider_regions
from pricetracker.ingest.rate_limiter import ProviderRateLimiter
from pricetracker.logging_config import get_logger

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Failures that cost one unit of work (a region, a page) but not the run
UNIT_FAILURES = (
    TransientFetchError,
    PermanentURLError,
    RateLimitedError,
    httpx.HTTPError,
    ValueError,
    KeyError,
    TypeError,
)


@dataclass
class RawCatalogEntry:
    """One raw catalog item as returned by a provider."""

    provider: str
    unit: str  # Region, page or datacenter that produced the entry
    payload: dict[str, Any]
    fetched_at: datetime = None

    def __post_init__(self):
        if self.fetched_at is None:
            self.fetched_at = datetime.utcnow()


@dataclass(frozen=True)
class CityRef:
    """Provider-namespaced city reference (code, display name, country)."""

    code: str
    name: str
    country: str


@dataclass
class ProductSpecs:
    """Canonical hardware specs and USD price of one catalog entry."""

    cpu: str
    cpu_cores: int
    ram_gb: int
    storage_description: str
    storage_total_tb: float
    network_gbps: int
    price_usd: float


@dataclass(frozen=True)
class StockInfo:
    in_stock: bool
    quantity: Optional[int] = None


class AdapterConfigurationError(RuntimeError):
    """Raised when an adapter is missing credentials or input files."""

    pass


class ProviderAdapter(ABC):
    """
    Abstract base class for competitor catalog adapters.

    Subclasses fetch raw entries and expose per-entry accessors for the
    city, the canonical specs and the stock state. Everything that talks
    to the network goes through ``request()`` so that the per-provider
    delay and the retry policy are applied uniformly.
    """

    competitor: Competitor
    source_url: str = ""
    # "replace": delete all rows for the competitor, then insert
    # "upsert": update by (competitor, name, city)
    persist_strategy: str = "replace"
    # Settings attributes that must be non-empty before fetching
    required_settings: tuple[str, ...] = ()

    def __init__(
        self,
        config: Settings = settings,
        regions: Optional[dict[str, Any]] = None,
        client: Optional[httpx.AsyncClient] = None,
        rate_limiter: Optional[ProviderRateLimiter] = None,
    ):
        self.config = config
        self.regions = regions if regions is not None else load_provider_regions()
        self._client = client
        self._owns_client = client is None
        self.rate_limiter = rate_limiter or ProviderRateLimiter()
        self.failed_units: list[str] = []
        self.log = get_logger(__name__, provider=self.name)

    @property
    def name(self) -> str:
        return self.competitor.value

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    def validate_config(self) -> None:
        """
        Refuse to run without the required credentials.

        Raises:
            AdapterConfigurationError: If a required setting is empty
        """
        missing = [attr for attr in self.required_settings if not getattr(self.config, attr, None)]
        if missing:
            raise AdapterConfigurationError(
                f"{self.name}: missing configuration {', '.join(missing)}"
            )

    @abstractmethod
    async def fetch_catalog(self) -> list[RawCatalogEntry]:
        """
        Fetch the provider catalog.

        A failed region or page contributes zero entries instead of raising.

        Returns:
            Raw catalog entries

        Raises:
            AuthenticationError: If the provider rejects the credentials
        """
        pass

    @abstractmethod
    def city_of(self, entry: RawCatalogEntry) -> Optional[CityRef]:
        """City of an entry, or None when its region has no city mapping."""
        pass

    @abstractmethod
    def name_of(self, entry: RawCatalogEntry) -> str:
        """Product name as stored on the CompetitorProduct row."""
        pass

    @abstractmethod
    def specs_of(self, entry: RawCatalogEntry) -> ProductSpecs:
        """Canonical specs of an entry."""
        pass

    def stock_of(self, entry: RawCatalogEntry) -> StockInfo:
        return StockInfo(in_stock=True)

    def source_url_of(self, entry: RawCatalogEntry) -> str:
        return self.source_url

    def inventory_url_of(self, entry: RawCatalogEntry) -> Optional[str]:
        return None

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def get_policy(self) -> ProviderPolicy:
        return ProviderPolicy(
            name=self.name,
            max_attempts=self.config.http_max_attempts,
            timeout=httpx.Timeout(self.config.http_timeout_seconds, connect=10.0),
            backoff_base_seconds=self.config.http_backoff_base_seconds,
        )

    @property
    def request_delay(self) -> float:
        delays = self.config.provider_request_delays
        return delays.get(self.name, delays.get("default", 0.0))

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send one request after the provider's fixed delay."""
        await self.rate_limiter.wait(self.name, self.request_delay)
        return await request_with_policy(
            self._get_client(), method, url, self.get_policy(), **kwargs
        )

    async def fetch_unit(
        self,
        label: str,
        fetch: Callable[[], Awaitable[T]],
        default: T,
    ) -> T:
        """
        Run one unit of work, turning transient failures into ``default``.

        Args:
            label: Unit name used in logs (region code, page number...)
            fetch: Zero-argument coroutine factory doing the work
            default: Value returned when the unit fails

        Returns:
            The unit's result, or ``default`` on a non-fatal failure

        Raises:
            AuthenticationError: Always propagated, it aborts the run
        """
        start = time.perf_counter()
        try:
            result = await fetch()
        except AuthenticationError:
            metrics.provider_fetches_total.labels(provider=self.name, status="auth_error").inc()
            raise
        except UNIT_FAILURES as e:
            self.failed_units.append(label)
            metrics.provider_fetches_total.labels(provider=self.name, status="failed").inc()
            metrics.provider_fetch_errors_total.labels(
                provider=self.name, error_type=type(e).__name__
            ).inc()
            self.log.warning(f"{self.name}: skipping {label} after {type(e).__name__}: {e}")
            return default

        metrics.provider_fetches_total.labels(provider=self.name, status="ok").inc()
        self.log.debug(f"{self.name}: fetched {label} in {time.perf_counter() - start:.2f}s")
        return result

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
