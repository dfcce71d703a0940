"""Ingestion pipeline: fetch, normalize, filter, resolve cities, persist."""

import logging
import time
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from pricetracker import metrics
from pricetracker.config import settings
from pricetracker.db import repository
from pricetracker.db.models import CompetitorProduct
from pricetracker.detect.rules import RuleBook
from pricetracker.ingest.base import ProviderAdapter
from pricetracker.ingest.locations import LocationResolver
from pricetracker.normalize.processor import (
    NormalizationError,
    NormalizedProduct,
    ProductNormalizer,
    UnmappedRegionError,
    ZeroPriceError,
)

logger = logging.getLogger(__name__)


@dataclass
class IngestionResult:
    """Outcome of ingesting one provider."""

    provider: str
    fetched: int = 0
    persisted: int = 0
    deleted: int = 0
    created: int = 0
    updated: int = 0
    skipped: dict[str, int] = field(default_factory=dict)
    failed_units: list[str] = field(default_factory=list)
    kept_previous: bool = False
    duration_seconds: float = 0.0

    @property
    def skipped_total(self) -> int:
        return sum(self.skipped.values())

    def skip(self, reason: str) -> None:
        self.skipped[reason] = self.skipped.get(reason, 0) + 1
        metrics.entries_skipped_total.labels(provider=self.provider, reason=reason).inc()


class IngestionPipeline:
    """
    Ingest one provider at a time into the caller's session.

    Nothing is committed here: the caller commits once per provider, so
    the delete and the insert of a full replace land together or not at
    all.
    """

    def __init__(
        self,
        db: AsyncSession,
        rules: RuleBook,
        normalizer: Optional[ProductNormalizer] = None,
        only_eligible: Optional[bool] = None,
    ):
        self.db = db
        self.rules = rules
        self.normalizer = normalizer or ProductNormalizer()
        self.only_eligible = settings.ingest_only_eligible if only_eligible is None else only_eligible
        self.locations = LocationResolver(db, rules.home_regions)

    def normalize_entries(
        self, adapter: ProviderAdapter, entries: list, result: IngestionResult
    ) -> list[NormalizedProduct]:
        """Normalize, filter by CPU eligibility and dedupe on (competitor, name, city)."""
        products: list[NormalizedProduct] = []
        seen: set[tuple[str, str, str]] = set()

        for entry in entries:
            try:
                product = self.normalizer.normalize(adapter, entry)
            except ZeroPriceError as e:
                logger.info(f"Skipping entry without price: {e}")
                result.skip("zero_price")
                continue
            except UnmappedRegionError as e:
                logger.warning(str(e))
                result.skip("unmapped_region")
                continue
            except NormalizationError as e:
                logger.warning(str(e))
                result.skip("malformed")
                continue

            if self.only_eligible and not self.rules.eligibility.is_eligible(product.cpu):
                logger.debug(f"{adapter.name}: {product.name} ({product.cpu}) not eligible")
                result.skip("ineligible_cpu")
                continue

            if product.identity in seen:
                result.skip("duplicate")
                continue
            seen.add(product.identity)
            products.append(product)

        return products

    async def _to_rows(self, products: list[NormalizedProduct]) -> list[CompetitorProduct]:
        rows = []
        for product in products:
            city = await self.locations.resolve_city(
                product.city.code, product.city.name, product.city.country
            )
            rows.append(
                CompetitorProduct(
                    competitor=product.competitor,
                    name=product.name,
                    cpu=product.cpu,
                    cpu_cores=product.cpu_cores,
                    ram_gb=product.ram_gb,
                    storage_description=product.storage_description,
                    storage_total_tb=product.storage_total_tb,
                    network_gbps=product.network_gbps,
                    price_usd=product.price_usd,
                    city_id=city.id,
                    source_url=product.source_url,
                    inventory_url=product.inventory_url,
                    in_stock=product.in_stock,
                    quantity=product.quantity,
                    last_verified=product.verified_at,
                    last_inventory_check=product.verified_at,
                )
            )
        return rows

    async def ingest(self, adapter: ProviderAdapter) -> IngestionResult:
        """
        Fetch and persist one provider's catalog.

        Raises:
            AdapterConfigurationError: If the adapter is not configured
            AuthenticationError: If the provider rejects the credentials
        """
        result = IngestionResult(provider=adapter.name)
        adapter.validate_config()

        start = time.perf_counter()
        try:
            entries = await adapter.fetch_catalog()
        finally:
            elapsed = time.perf_counter() - start
            metrics.provider_fetch_duration_seconds.labels(provider=adapter.name).observe(elapsed)

        result.fetched = len(entries)
        result.failed_units = list(adapter.failed_units)
        products = self.normalize_entries(adapter, entries, result)

        if not products and result.failed_units:
            # Every unit failed: replacing would wipe the provider's rows
            result.kept_previous = True
            logger.warning(
                f"{adapter.name}: no products and {len(result.failed_units)} failed units, "
                f"keeping previously stored rows"
            )
            result.duration_seconds = time.perf_counter() - start
            return result

        rows = await self._to_rows(products)

        if adapter.persist_strategy == "upsert":
            for row in rows:
                _, created = await repository.upsert_competitor_product(self.db, row)
                if created:
                    result.created += 1
                else:
                    result.updated += 1
            result.persisted = len(rows)
        else:
            result.deleted, result.persisted = await repository.replace_competitor_products(
                self.db, adapter.name, rows
            )

        result.duration_seconds = time.perf_counter() - start
        metrics.products_ingested.labels(provider=adapter.name).set(result.persisted)
        logger.info(
            f"{adapter.name}: fetched {result.fetched}, persisted {result.persisted}, "
            f"skipped {result.skipped_total} {result.skipped or ''}, "
            f"failed units {len(result.failed_units)} in {result.duration_seconds:.1f}s"
        )
        return result
