"""Import the reference vendor's plans and regional prices."""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from pricetracker.config import Settings, settings
from pricetracker.db import repository
from pricetracker.db.models import ReferenceProduct, RegionalPrice
from pricetracker.ingest.base import AdapterConfigurationError
from pricetracker.ingest.http_client import ProviderPolicy, request_with_policy
from pricetracker.ingest.locations import load_provider_regions
from pricetracker.normalize.units import (
    DriveDescriptor,
    StorageSummary,
    parse_capacity_gb,
    parse_network_speed,
    round_half_up,
    summarize_storage,
)

logger = logging.getLogger(__name__)


@dataclass
class ReferenceImportResult:
    plans: int = 0
    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    regional_prices: int = 0
    unknown_regions: set[str] = field(default_factory=set)


def parse_drives(drives: list[dict]) -> StorageSummary:
    """Drives such as {'count': 2, 'size': '960GB', 'type': 'NVMe'}."""
    parsed: list[Optional[DriveDescriptor]] = []
    for drive in drives or []:
        capacity_gb = parse_capacity_gb(str(drive.get("size", "")))
        if capacity_gb is None:
            logger.warning(f"Unparseable drive size {drive.get('size')!r}, skipping drive")
            parsed.append(None)
            continue
        parsed.append(
            DriveDescriptor(
                count=int(drive.get("count", 1)),
                capacity=capacity_gb,
                unit="GB",
                type=drive.get("type", ""),
            )
        )
    return summarize_storage(parsed)


def parse_nics(nics: list[dict]) -> int:
    if not nics:
        return 1
    speed = parse_network_speed(nics[0].get("type", ""))
    return int(round_half_up(speed)) if speed else 1


def monthly_price(region: dict) -> Optional[float]:
    return ((region.get("pricing") or {}).get("USD") or {}).get("month")


class ReferenceCatalogImporter:
    """
    Reference vendor plan importer.

    Keeps plans of the configured generation, creates missing reference
    products from the default-region price, refreshes the list price of
    existing ones and full-replaces the regional price table.
    """

    def __init__(
        self,
        config: Settings = settings,
        regions: Optional[dict[str, Any]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config
        regions = regions if regions is not None else load_provider_regions()
        self.region_codes: dict[str, str] = regions.get("reference_region_codes", {})
        self._client = client
        self._owns_client = client is None

    def validate_config(self) -> None:
        if not self.config.reference_api_key:
            raise AdapterConfigurationError("Reference catalog: REFERENCE_API_KEY is not set")

    def get_policy(self) -> ProviderPolicy:
        return ProviderPolicy(
            name="REFERENCE",
            max_attempts=self.config.http_max_attempts,
            timeout=httpx.Timeout(self.config.http_timeout_seconds, connect=10.0),
            backoff_base_seconds=self.config.http_backoff_base_seconds,
        )

    async def fetch_plans(self) -> list[dict]:
        if self._client is None:
            self._client = httpx.AsyncClient()
        response = await request_with_policy(
            self._client,
            "GET",
            f"{self.config.reference_api_url}/plans",
            self.get_policy(),
            headers={"Authorization": f"Bearer {self.config.reference_api_key}"},
        )
        return response.json().get("data") or []

    def is_current_generation(self, plan: dict) -> bool:
        name = plan["attributes"]["name"]
        return any(name.startswith(prefix) for prefix in self.config.reference_generation_prefixes)

    def build_product(self, attrs: dict, price_usd: float) -> ReferenceProduct:
        specs = attrs["specs"]
        cpu = specs["cpu"]
        storage = parse_drives(specs.get("drives"))
        return ReferenceProduct(
            name=attrs["name"],
            cpu=f"{cpu['type']} @ {cpu['clock']} GHz",
            cpu_cores=int(cpu["cores"]) * int(cpu.get("count", 1)),
            ram_gb=int(specs["memory"]["total"]),
            storage_description=storage.description,
            storage_total_tb=storage.total_tb,
            network_gbps=parse_nics(specs.get("nics")),
            price_usd=price_usd,
            generation=self.config.reference_generation,
        )

    async def import_catalog(self, db: AsyncSession) -> ReferenceImportResult:
        """
        Import plans into the caller's session (the caller commits).

        Raises:
            AdapterConfigurationError: If no API key is configured
            AuthenticationError: If the API rejects the key
        """
        self.validate_config()
        plans = [p for p in await self.fetch_plans() if self.is_current_generation(p)]
        result = ReferenceImportResult(plans=len(plans))
        regional_rows: dict[tuple[int, str], RegionalPrice] = {}

        for plan in plans:
            attrs = plan["attributes"]
            name = attrs["name"]
            regions = attrs.get("regions") or []
            default_region = next(
                (r for r in regions if r.get("name") == self.config.reference_default_region),
                None,
            )
            default_price = (monthly_price(default_region) if default_region else None) or 0

            product = await repository.get_reference_product_by_name(db, name)
            if product is None:
                if default_price <= 0:
                    logger.warning(f"{name}: no default price, not creating")
                    continue
                product = self.build_product(attrs, default_price)
                db.add(product)
                await db.flush()
                result.created.append(name)
                logger.info(f"Created reference product {name} at ${default_price}/mo")
            else:
                if default_price > 0:
                    product.price_usd = default_price
                result.updated.append(name)

            for region in regions:
                code = self.region_codes.get(region.get("name", ""))
                if code is None:
                    result.unknown_regions.add(region.get("name", ""))
                    continue
                price = monthly_price(region)
                if not price:
                    continue
                regional_rows[(product.id, code)] = RegionalPrice(
                    reference_product_id=product.id, region=code, price_usd=price
                )

        result.regional_prices = await repository.replace_regional_prices(db, regional_rows.values())
        if result.unknown_regions:
            logger.warning(f"Skipped unknown reference regions: {sorted(result.unknown_regions)}")
        logger.info(
            f"Reference catalog: {result.plans} plans, {len(result.created)} created, "
            f"{len(result.updated)} updated, {result.regional_prices} regional prices"
        )
        return result

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
