"""Vultr adapter (public REST plan listing)."""

import re
from typing import Optional

from pricetracker.db.models import Competitor
from pricetracker.ingest.base import (
    CityRef,
    ProductSpecs,
    ProviderAdapter,
    RawCatalogEntry,
    StockInfo,
)
from pricetracker.normalize.cpu import parse_cpu_cores, with_vendor
from pricetracker.normalize.units import DriveDescriptor, mb_to_gb, summarize_storage

NETWORK_GBPS = 10


class VultrAdapter(ProviderAdapter):
    """Bare-metal plans, one entry per (plan, location)."""

    competitor = Competitor.VULTR
    source_url = "https://www.vultr.com/products/bare-metal/"

    def _headers(self) -> dict[str, str]:
        if self.config.vultr_api_key:
            return {"Authorization": f"Bearer {self.config.vultr_api_key}"}
        return {}

    async def _get(self, path: str) -> dict:
        response = await self.request(
            "GET", f"{self.config.vultr_api_base}{path}", headers=self._headers()
        )
        return response.json()

    async def _plans(self) -> list[dict]:
        data = await self._get("/plans-metal")
        return data.get("plans_metal") or []

    async def _regions(self) -> dict[str, dict]:
        data = await self._get("/regions")
        return {region["id"]: region for region in data.get("regions") or []}

    async def fetch_catalog(self) -> list[RawCatalogEntry]:
        plans = await self.fetch_unit("plans-metal", self._plans, [])
        regions = await self.fetch_unit("regions", self._regions, {})

        entries: list[RawCatalogEntry] = []
        for plan in plans:
            if plan.get("cpu_manufacturer") != "AMD":
                continue
            locations = plan.get("locations") or []
            if not locations:
                self.log.debug(f"{self.name}: {plan.get('id')} has no locations")
                continue
            for location in locations:
                entries.append(
                    RawCatalogEntry(
                        provider=self.name,
                        unit=location,
                        payload={"plan": plan, "location": location, "region": regions.get(location)},
                    )
                )
        return entries

    def city_of(self, entry: RawCatalogEntry) -> Optional[CityRef]:
        region = entry.payload.get("region")
        if region is None:
            return None
        country_code = region["country"]
        country = self.regions.get("vultr_country_names", {}).get(country_code, country_code)
        return CityRef(
            code=f"vultr-{entry.payload['location']}",
            name=region["city"],
            country=country,
        )

    def name_of(self, entry: RawCatalogEntry) -> str:
        plan = entry.payload["plan"]
        model = re.sub(r"\s+", "-", plan["cpu_model"])
        return f"Vultr-{model}-{mb_to_gb(plan['ram'])}GB"

    def specs_of(self, entry: RawCatalogEntry) -> ProductSpecs:
        plan = entry.payload["plan"]
        cpu = (
            f"{with_vendor(plan['cpu_model'])} ({plan['cpu_cores']}c/{plan['cpu_threads']}t "
            f"@ {plan['cpu_mhz'] / 1000:.1f}GHz)"
        )
        storage = summarize_storage(
            [DriveDescriptor(count=plan["disk_count"], capacity=plan["disk"], unit="GB", type=plan.get("type", ""))]
        )
        return ProductSpecs(
            cpu=cpu,
            cpu_cores=parse_cpu_cores(cpu, explicit=plan.get("cpu_cores")),
            ram_gb=mb_to_gb(plan["ram"]),
            storage_description=storage.description,
            storage_total_tb=storage.total_tb,
            network_gbps=NETWORK_GBPS,
            price_usd=float(plan["monthly_cost"]),
        )

    def stock_of(self, entry: RawCatalogEntry) -> StockInfo:
        return StockInfo(in_stock=bool(entry.payload["plan"].get("deploy_ondemand")))
