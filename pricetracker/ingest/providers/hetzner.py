"""Hetzner adapter (reads a captured catalog snapshot; no public API)."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from pricetracker.db.models import Competitor
from pricetracker.ingest.base import (
    AdapterConfigurationError,
    CityRef,
    ProductSpecs,
    ProviderAdapter,
    RawCatalogEntry,
    StockInfo,
)
from pricetracker.normalize.cpu import parse_cpu_cores
from pricetracker.normalize.units import DriveDescriptor, summarize_storage, to_usd


def parse_captured_at(value: str) -> datetime:
    """ISO timestamp ('Z' allowed) as naive UTC."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


class HetznerSnapshotAdapter(ProviderAdapter):
    """
    Static snapshot adapter.

    The snapshot lists products and the cities they are offered in; every
    product is emitted once per city.
    """

    competitor = Competitor.HETZNER
    source_url = "https://www.hetzner.com/dedicated-rootserver/"

    def __init__(self, *args, snapshot_path: Optional[str] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.snapshot_path = Path(snapshot_path or self.config.hetzner_snapshot_path)
        self.snapshot: dict[str, Any] = {}

    def validate_config(self) -> None:
        super().validate_config()
        if not self.snapshot_path.is_file():
            raise AdapterConfigurationError(
                f"{self.name}: snapshot file not found at {self.snapshot_path}"
            )

    def load_snapshot(self) -> dict[str, Any]:
        with self.snapshot_path.open(encoding="utf-8") as fh:
            return json.load(fh)

    async def fetch_catalog(self) -> list[RawCatalogEntry]:
        self.snapshot = self.load_snapshot()
        captured_at = parse_captured_at(self.snapshot["captured_at"])
        age_days = (datetime.utcnow() - captured_at).days
        self.log.info(
            f"{self.name}: using snapshot captured {captured_at.date()} ({age_days} days old)"
        )

        entries: list[RawCatalogEntry] = []
        for city in self.snapshot.get("cities", []):
            for product in self.snapshot.get("products", []):
                entries.append(
                    RawCatalogEntry(
                        provider=self.name,
                        unit=city["code"],
                        payload={"product": product, "city": city},
                        fetched_at=captured_at,
                    )
                )
        return entries

    def city_of(self, entry: RawCatalogEntry) -> Optional[CityRef]:
        city = entry.payload["city"]
        return CityRef(code=f"hetzner-{city['code']}", name=city["name"], country=city["country"])

    def name_of(self, entry: RawCatalogEntry) -> str:
        return entry.payload["product"]["name"]

    def specs_of(self, entry: RawCatalogEntry) -> ProductSpecs:
        product = entry.payload["product"]
        storage = summarize_storage(
            DriveDescriptor(
                count=d["count"],
                capacity=d["capacity"],
                unit=d.get("unit", "GB"),
                type=d.get("type", ""),
            )
            for d in product.get("drives") or []
        )
        currency = product.get("currency") or self.snapshot.get("currency", "USD")

        return ProductSpecs(
            cpu=product["cpu"],
            cpu_cores=parse_cpu_cores(product["cpu"], explicit=product.get("cpu_cores")),
            ram_gb=int(product["ram_gb"]),
            storage_description=storage.description,
            storage_total_tb=storage.total_tb,
            network_gbps=int(product.get("network_gbps") or self.snapshot.get("network_gbps", 1)),
            price_usd=to_usd(product["price"], currency, self.config.currency_rates),
        )

    def stock_of(self, entry: RawCatalogEntry) -> StockInfo:
        return StockInfo(in_stock=bool(entry.payload["product"].get("in_stock", True)))

    def source_url_of(self, entry: RawCatalogEntry) -> str:
        return self.snapshot.get("source_url") or self.source_url
