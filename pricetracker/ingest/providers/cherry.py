"""Cherry Servers adapter (public REST plan listing, EUR pricing)."""

from typing import Optional

from pricetracker.db.models import Competitor
from pricetracker.ingest.base import (
    CityRef,
    ProductSpecs,
    ProviderAdapter,
    RawCatalogEntry,
    StockInfo,
)
from pricetracker.normalize.cpu import parse_cpu_cores
from pricetracker.normalize.units import (
    DriveDescriptor,
    mb_to_gb,
    parse_network_speed,
    round_half_up,
    summarize_storage,
    to_usd,
)

DEFAULT_NETWORK_GBPS = 1


class CherryServersAdapter(ProviderAdapter):
    """Dedicated plans, one entry per (plan, region)."""

    competitor = Competitor.CHERRYSERVERS
    source_url = "https://www.cherryservers.com/pricing/dedicated-servers"

    async def _plans(self) -> list[dict]:
        response = await self.request("GET", f"{self.config.cherry_api_base}/plans")
        return response.json() or []

    async def fetch_catalog(self) -> list[RawCatalogEntry]:
        plans = await self.fetch_unit("plans", self._plans, [])
        entries: list[RawCatalogEntry] = []
        for plan in plans:
            for region in plan.get("available_regions") or []:
                entries.append(
                    RawCatalogEntry(
                        provider=self.name,
                        unit=region.get("slug", ""),
                        payload={"plan": plan, "region": region},
                    )
                )
        return entries

    def city_of(self, entry: RawCatalogEntry) -> Optional[CityRef]:
        slug = entry.payload["region"]["slug"]
        info = self.regions.get("cherry_regions", {}).get(slug)
        if info is None:
            return None
        return CityRef(code=f"cherry-{slug}", name=info["name"], country=info["country"])

    def name_of(self, entry: RawCatalogEntry) -> str:
        return entry.payload["plan"]["name"].replace("AMD ", "")

    def specs_of(self, entry: RawCatalogEntry) -> ProductSpecs:
        plan = entry.payload["plan"]
        specs = plan["specs"]
        cpus = specs["cpus"]
        cpu = f"{cpus['name']} ({cpus['cores']}c @ {cpus['frequency']}{cpus['unit']})"

        memory = specs["memory"]
        ram_gb = memory["total"]
        if str(memory.get("unit", "GB")).upper() == "MB":
            ram_gb = mb_to_gb(ram_gb)

        storage = summarize_storage(
            DriveDescriptor(count=d["count"], capacity=d["size"], unit=d["unit"], type=d.get("type", ""))
            for d in specs.get("storage") or []
        )

        nic = (specs.get("nics") or {}).get("name") or ""
        speed = parse_network_speed(nic)
        network_gbps = int(round_half_up(speed)) if speed else DEFAULT_NETWORK_GBPS

        price_usd = 0.0
        monthly = next((p for p in plan.get("pricing", []) if p.get("unit") == "Monthly"), None)
        if monthly is not None:
            price_usd = to_usd(monthly["price"], monthly.get("currency", "EUR"), self.config.currency_rates)

        return ProductSpecs(
            cpu=cpu,
            cpu_cores=parse_cpu_cores(cpu, explicit=cpus.get("cores")),
            ram_gb=int(ram_gb),
            storage_description=storage.description,
            storage_total_tb=storage.total_tb,
            network_gbps=network_gbps,
            price_usd=price_usd,
        )

    def stock_of(self, entry: RawCatalogEntry) -> StockInfo:
        quantity = int(entry.payload["region"].get("stock_qty") or 0)
        return StockInfo(in_stock=quantity > 0, quantity=quantity)

    def source_url_of(self, entry: RawCatalogEntry) -> str:
        return f"{self.source_url}/{entry.payload['plan']['slug']}"
