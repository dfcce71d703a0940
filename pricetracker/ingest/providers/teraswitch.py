"""Teraswitch adapter (bearer REST, queried region by region)."""

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
from pricetracker.normalize.cpu import parse_cpu_cores
from pricetracker.normalize.units import DriveDescriptor, round_half_up, summarize_storage

NETWORK_GBPS = 25
_CORES_RE = re.compile(r"(\d+)c")


def product_name(item: dict) -> str:
    """'AMD EPYC 9354P' with 384 GB -> 'TS-9354P-384GB'."""
    cpu = item["tier"]["cpu"].replace("AMD EPYC ", "", 1).replace(" ", "-")
    return f"TS-{cpu}-{item['memoryGb']}GB"


def selected_drives(tier: dict, disks: dict[str, str]) -> list[Optional[DriveDescriptor]]:
    """
    One drive per slot: the selected option, else the slot default, else the
    option flagged default. Slots with no matching option yield None.
    """
    drives: list[Optional[DriveDescriptor]] = []
    for slot in tier.get("driveSlots") or []:
        selected = disks.get(slot["id"]) or slot.get("default")
        options = slot.get("options") or []
        option = next((o for o in options if o["name"] == selected), None)
        if option is None:
            option = next((o for o in options if o.get("default")), None)
        if option is None:
            drives.append(None)
            continue
        drives.append(
            DriveDescriptor(count=1, capacity=option["capacityGb"], unit="GB", type=option.get("type", ""))
        )
    return drives


class TeraswitchAdapter(ProviderAdapter):
    """
    Metal availability per region, consolidated per city.

    Several regions can belong to one city; the first region that offers a
    product name wins.
    """

    competitor = Competitor.TERASWITCH
    source_url = "https://teraswitch.com/bare-metal/"
    required_settings = ("teraswitch_api_key", "teraswitch_api_secret")

    async def _availability(self, region: str) -> list[tuple[str, dict]]:
        response = await self.request(
            "GET",
            f"{self.config.teraswitch_api_url}/v2/Metal/Availability",
            headers={
                "Authorization": (
                    f"Bearer {self.config.teraswitch_api_key}:{self.config.teraswitch_api_secret}"
                )
            },
            params={"Region": region},
        )
        body = response.json()
        if not body.get("success"):
            raise ValueError(body.get("message") or "Unknown error")
        return [(product_name(item), item) for item in body.get("result") or []]

    async def fetch_catalog(self) -> list[RawCatalogEntry]:
        entries: list[RawCatalogEntry] = []

        for city in self.regions.get("teraswitch_cities", []):
            seen: set[str] = set()
            for region in city["regions"]:
                products = await self.fetch_unit(
                    region, lambda r=region: self._availability(r), []
                )
                for name, item in products:
                    if name in seen:
                        continue
                    seen.add(name)
                    entries.append(
                        RawCatalogEntry(
                            provider=self.name,
                            unit=region,
                            payload={"item": item, "city": city},
                        )
                    )

        return entries

    def city_of(self, entry: RawCatalogEntry) -> Optional[CityRef]:
        city = entry.payload.get("city")
        if not city:
            return None
        return CityRef(
            code=f"teraswitch-{city['city_code']}",
            name=city["name"],
            country=city["country"],
        )

    def name_of(self, entry: RawCatalogEntry) -> str:
        return product_name(entry.payload["item"])

    def specs_of(self, entry: RawCatalogEntry) -> ProductSpecs:
        item = entry.payload["item"]
        tier = item["tier"]
        description = tier.get("cpuDescription") or ""
        cpu = f"{tier['cpu']} ({description})"

        match = _CORES_RE.search(description)
        cores = parse_cpu_cores(
            f"{tier['cpu']} {description}",
            explicit=int(match.group(1)) if match else None,
        )

        ram_option = next(
            (m for m in tier.get("memoryOptions") or [] if m["gb"] == item["memoryGb"]),
            None,
        )
        ram_addon = ram_option["monthlyPrice"] if ram_option else 0
        storage = summarize_storage(selected_drives(tier, item.get("disks") or {}))

        return ProductSpecs(
            cpu=cpu,
            cpu_cores=cores,
            ram_gb=int(item["memoryGb"]),
            storage_description=storage.description,
            storage_total_tb=storage.total_tb,
            network_gbps=NETWORK_GBPS,
            price_usd=float(round_half_up(tier["monthlyPrice"] + ram_addon)),
        )

    def stock_of(self, entry: RawCatalogEntry) -> StockInfo:
        quantity = int(entry.payload["item"].get("quantity") or 0)
        return StockInfo(in_stock=quantity > 0, quantity=quantity)
