"""OVHcloud adapter (signed-request REST API, CAD pricing)."""

import hashlib
import re
import time
from collections import defaultdict
from decimal import Decimal
from typing import Any, Optional

from pricetracker.db.models import Competitor
from pricetracker.ingest.base import (
    CityRef,
    ProductSpecs,
    ProviderAdapter,
    RawCatalogEntry,
    StockInfo,
)
from pricetracker.normalize.cpu import parse_cpu_cores, with_vendor
from pricetracker.normalize.units import DriveDescriptor, StorageSummary, summarize_storage, to_usd

# Lower is better
AVAILABILITY_PRIORITY = {
    "1H-high": 1,
    "1H-low": 2,
    "1H": 2,
    "24H": 3,
    "72H": 4,
    "480H": 5,
    "unavailable": 6,
}

# Stock estimate from delivery delay, checked in order
AVAILABILITY_QUANTITY = (
    ("1H-high", 10),
    ("1H-low", 3),
    ("24H", 5),
    ("72H", 2),
    ("480H", 1),
)

IN_STOCK_CODES = ("1h-low", "1h-high", "24h", "72h", "480h", "1h")

# Plans suffixed with these are regional duplicates of the base plan
REGIONAL_PLAN_SUFFIXES = ("-sgp", "-syd", "-mum")

_RAM_RE = re.compile(r"ram-(\d+)g")
_STORAGE_RE = re.compile(r"(\d+)x(\d+)(nvme|ssd|sa)")
_DRIVE_TYPES = {"nvme": "NVMe SSD", "ssd": "SSD", "sa": "SAS"}

DEFAULT_RAM_GB = 128
NETWORK_GBPS = 25  # Scale and Advance ranges ship 25 Gbps


def better_availability(a: str, b: str) -> str:
    """Return the faster of two availability codes (ties keep ``a``)."""
    priority_a = AVAILABILITY_PRIORITY.get(a, 6)
    priority_b = AVAILABILITY_PRIORITY.get(b, 6)
    return a if priority_a <= priority_b else b


def availability_to_stock(availability: str) -> StockInfo:
    if availability in ("unavailable", "unknown"):
        return StockInfo(in_stock=False, quantity=0)

    lowered = availability.lower()
    in_stock = any(code in lowered for code in IN_STOCK_CODES)

    quantity: Optional[int] = None
    for code, estimate in AVAILABILITY_QUANTITY:
        if code in availability:
            quantity = estimate
            break
    return StockInfo(in_stock=in_stock, quantity=quantity)


def parse_invoice_name(invoice_name: str) -> tuple[str, str]:
    """'SCALE-a1 | AMD EPYC 9135' -> ('SCALE-a1', 'AMD EPYC 9135')."""
    parts = invoice_name.split(" | ")
    series = parts[0].strip()
    cpu = parts[1].strip() if len(parts) > 1 and parts[1].strip() else "Unknown CPU"
    return series, cpu


def parse_memory_addon(addon: str) -> int:
    """'ram-128g-ecc-4800-26scaleamd01-v2' -> 128."""
    match = _RAM_RE.search(addon or "")
    return int(match.group(1)) if match else 0


def parse_storage_addon(addon: str) -> StorageSummary:
    """'softraid-2x1920nvme-pcie-gen5' -> 2x 1.92TB NVMe SSD."""
    if "noraid-0" in addon:
        return StorageSummary("System drives only", 0.0)

    match = _STORAGE_RE.search(addon)
    if not match:
        return StorageSummary("Not specified", 0.0)

    drive = DriveDescriptor(
        count=int(match.group(1)),
        capacity=int(match.group(2)),
        unit="GB",
        type=_DRIVE_TYPES[match.group(3)],
    )
    return summarize_storage([drive])


def _addon_default(plan: dict, family_name: str) -> Optional[str]:
    for family in plan.get("addonFamilies", []):
        if family.get("name") == family_name:
            addons = family.get("addons") or []
            return family.get("default") or (addons[0] if addons else None)
    return None


def monthly_renewal_price(plan: dict) -> Optional[int]:
    """Monthly renewal price without commitment, in the catalog's micro-units."""
    for pricing in plan.get("pricings", []):
        if (
            pricing.get("intervalUnit") == "month"
            and "renew" in pricing.get("capacities", [])
            and pricing.get("commitment") == 0
            and pricing.get("mode") == "default"
        ):
            return pricing["price"]
    return None


class OVHAdapter(ProviderAdapter):
    """
    OVHcloud bare-metal catalog.

    The public catalog lists one plan per server model; availability is
    queried per model and yields one entry per datacenter, keeping the
    best availability code seen for that datacenter.
    """

    competitor = Competitor.OVHCLOUD
    source_url = "https://www.ovhcloud.com/en/bare-metal/scale/"
    required_settings = ("ovh_app_key", "ovh_app_secret", "ovh_consumer_key")

    def sign(self, method: str, url: str, body: str, timestamp: int) -> str:
        """Request signature: '$1$' + SHA1(secret+consumer+method+url+body+timestamp)."""
        payload = "+".join(
            [
                self.config.ovh_app_secret,
                self.config.ovh_consumer_key,
                method,
                url,
                body,
                str(timestamp),
            ]
        )
        return "$1$" + hashlib.sha1(payload.encode("utf-8")).hexdigest()

    def signed_headers(self, method: str, url: str, body: str = "") -> dict[str, str]:
        timestamp = int(time.time())
        return {
            "X-Ovh-Application": self.config.ovh_app_key,
            "X-Ovh-Timestamp": str(timestamp),
            "X-Ovh-Signature": self.sign(method, url, body, timestamp),
            "X-Ovh-Consumer": self.config.ovh_consumer_key,
            "Content-Type": "application/json",
        }

    async def _get(self, path: str) -> Any:
        # The signature covers the full URL, query string included
        url = f"{self.config.ovh_api_base}{path}"
        response = await self.request("GET", url, headers=self.signed_headers("GET", url))
        return response.json()

    async def _best_availability(self, server: str) -> dict[str, str]:
        """Best availability per datacenter across all configurations of a server."""
        availabilities = await self._get(
            f"/dedicated/server/datacenter/availabilities?server={server}"
        )
        best: dict[str, str] = {}
        for config in availabilities or []:
            for dc in config.get("datacenters", []):
                code, availability = dc["datacenter"], dc["availability"]
                current = best.get(code)
                if current is None or better_availability(availability, current) == availability:
                    best[code] = availability
        return best

    async def fetch_catalog(self) -> list[RawCatalogEntry]:
        catalog = await self.fetch_unit(
            "catalog",
            lambda: self._get(
                f"/order/catalog/public/baremetalServers?ovhSubsidiary={self.config.ovh_subsidiary}"
            ),
            {},
        )
        plans = catalog.get("plans") or []

        by_product: dict[str, list[dict]] = defaultdict(list)
        for plan in plans:
            product = plan.get("product") or ""
            if any(product.startswith(family) for family in self.config.ovh_server_families):
                by_product[product].append(plan)

        self.log.info(f"{self.name}: {len(plans)} catalog plans, {len(by_product)} server models")

        entries: list[RawCatalogEntry] = []
        for product, product_plans in by_product.items():
            base_plan = next(
                (
                    p for p in product_plans
                    if not any(s in p.get("planCode", "") for s in REGIONAL_PLAN_SUFFIXES)
                ),
                product_plans[0],
            )

            best = await self.fetch_unit(
                f"availability:{product}",
                lambda server=product: self._best_availability(server),
                {},
            )

            for datacenter, availability in best.items():
                entries.append(
                    RawCatalogEntry(
                        provider=self.name,
                        unit=datacenter,
                        payload={
                            "plan": base_plan,
                            "product": product,
                            "datacenter": datacenter,
                            "availability": availability,
                        },
                    )
                )

        return entries

    def city_of(self, entry: RawCatalogEntry) -> Optional[CityRef]:
        datacenter = entry.payload["datacenter"]
        info = self.regions.get("ovh_datacenters", {}).get(datacenter)
        if info is None:
            return None
        return CityRef(code=f"ovh-{datacenter}", name=info["name"], country=info["country"])

    def name_of(self, entry: RawCatalogEntry) -> str:
        series, _ = parse_invoice_name(entry.payload["plan"]["invoiceName"])
        return f"{series.upper()} ({entry.payload['product']})"

    def specs_of(self, entry: RawCatalogEntry) -> ProductSpecs:
        plan = entry.payload["plan"]
        _, cpu = parse_invoice_name(plan["invoiceName"])
        cpu = with_vendor(cpu)

        memory_addon = _addon_default(plan, "memory")
        ram_gb = parse_memory_addon(memory_addon or "") or DEFAULT_RAM_GB
        storage = parse_storage_addon(_addon_default(plan, "storage") or "")

        raw_price = monthly_renewal_price(plan)
        price_usd = 0.0
        if raw_price:
            price_cad = Decimal(raw_price) / Decimal(100_000_000)
            price_usd = to_usd(price_cad, "CAD", self.config.currency_rates, places=0)

        return ProductSpecs(
            cpu=cpu,
            cpu_cores=parse_cpu_cores(cpu),
            ram_gb=ram_gb,
            storage_description=storage.description,
            storage_total_tb=storage.total_tb,
            network_gbps=NETWORK_GBPS,
            price_usd=price_usd,
        )

    def stock_of(self, entry: RawCatalogEntry) -> StockInfo:
        return availability_to_stock(entry.payload["availability"])
