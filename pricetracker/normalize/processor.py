"""Normalize raw catalog entries into canonical competitor products."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from pricetracker.ingest.base import CityRef, ProviderAdapter, RawCatalogEntry

logger = logging.getLogger(__name__)


@dataclass
class NormalizedProduct:
    """Canonical competitor product, not yet attached to a City row."""

    competitor: str
    name: str
    cpu: str
    cpu_cores: int
    ram_gb: int
    storage_description: str
    storage_total_tb: float
    network_gbps: int
    price_usd: float
    city: CityRef
    source_url: str
    inventory_url: Optional[str]
    in_stock: bool
    quantity: Optional[int]
    verified_at: datetime

    @property
    def identity(self) -> tuple[str, str, str]:
        return (self.competitor, self.name, self.city.code)


class NormalizationError(Exception):
    """Raised when an entry cannot be normalized."""

    pass


class ZeroPriceError(NormalizationError):
    """Raised for entries without a positive price (no renewal pricing)."""

    pass


class UnmappedRegionError(NormalizationError):
    """Raised when an entry's region has no city mapping."""

    pass


class ProductNormalizer:
    """Apply an adapter's accessors to a raw entry and validate the result."""

    def normalize(self, adapter: ProviderAdapter, entry: RawCatalogEntry) -> NormalizedProduct:
        """
        Normalize one raw entry.

        Args:
            adapter: Adapter that produced the entry
            entry: Raw catalog entry

        Returns:
            NormalizedProduct

        Raises:
            ZeroPriceError: If the price is zero or negative
            UnmappedRegionError: If the entry's region has no city mapping
            NormalizationError: If the payload is malformed
        """
        try:
            specs = adapter.specs_of(entry)
            city = adapter.city_of(entry)
            name = adapter.name_of(entry)
            stock = adapter.stock_of(entry)
        except (KeyError, ValueError, TypeError, IndexError) as e:
            raise NormalizationError(
                f"{adapter.name}: malformed entry from {entry.unit}: {type(e).__name__}: {e}"
            ) from e

        if specs.price_usd is None or specs.price_usd <= 0:
            raise ZeroPriceError(f"{adapter.name}: {name} has no price")

        if city is None:
            raise UnmappedRegionError(f"{adapter.name}: no city mapping for {entry.unit}")

        return NormalizedProduct(
            competitor=adapter.name,
            name=name,
            cpu=specs.cpu,
            cpu_cores=int(specs.cpu_cores),
            ram_gb=int(specs.ram_gb),
            storage_description=specs.storage_description,
            storage_total_tb=float(specs.storage_total_tb),
            network_gbps=int(specs.network_gbps),
            price_usd=float(specs.price_usd),
            city=city,
            source_url=adapter.source_url_of(entry),
            inventory_url=adapter.inventory_url_of(entry),
            in_stock=stock.in_stock,
            quantity=stock.quantity,
            verified_at=entry.fetched_at,
        )
