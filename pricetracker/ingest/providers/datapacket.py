"""DataPacket adapter (GraphQL API, bearer token)."""

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
from pricetracker.normalize.units import DriveDescriptor, sum_port_capacities, summarize_storage, to_usd

CONFIGURATIONS_QUERY = """{
  provisioningConfigurations {
    configurationId
    memory
    stockCount
    monthlyHwPrice { amount currency }
    cpus { name cores threads }
    location { name short region }
    uplink { ports { capacity } }
    storage { type size }
  }
}"""


def group_drives(storage: list[dict]) -> list[DriveDescriptor]:
    """Group identical disks by (type, size), keeping first-seen order."""
    counts: dict[tuple[str, float], int] = {}
    for disk in storage:
        key = (disk["type"], disk["size"])
        counts[key] = counts.get(key, 0) + 1
    return [
        DriveDescriptor(count=count, capacity=size, unit="GB", type=disk_type.replace("_", " "))
        for (disk_type, size), count in counts.items()
    ]


class DataPacketAdapter(ProviderAdapter):
    """
    Provisioning configurations, one entry per configuration.

    Configurations carry their own location, so rows are upserted by
    (competitor, name, city) rather than fully replaced.
    """

    competitor = Competitor.DATAPACKET
    source_url = "https://www.datapacket.com/pricing"
    persist_strategy = "upsert"
    required_settings = ("datapacket_api_key",)

    async def _configurations(self) -> list[dict]:
        response = await self.request(
            "POST",
            self.config.datapacket_graphql_url,
            headers={
                "Authorization": f"Bearer {self.config.datapacket_api_key}",
                "Content-Type": "application/json",
            },
            json={"query": CONFIGURATIONS_QUERY},
        )
        body = response.json()
        if body.get("errors"):
            raise ValueError(f"GraphQL errors: {body['errors']}")
        return body["data"]["provisioningConfigurations"] or []

    async def fetch_catalog(self) -> list[RawCatalogEntry]:
        configurations = await self.fetch_unit("provisioningConfigurations", self._configurations, [])
        return [
            RawCatalogEntry(
                provider=self.name,
                unit=(config.get("location") or {}).get("short", ""),
                payload=config,
            )
            for config in configurations
        ]

    def city_of(self, entry: RawCatalogEntry) -> Optional[CityRef]:
        location = entry.payload["location"]
        country = self.regions.get("datapacket_location_countries", {}).get(location["name"])
        if country is None:
            return None
        return CityRef(
            code=f"datapacket-{location['short'].lower()}",
            name=location["name"],
            country=country,
        )

    def name_of(self, entry: RawCatalogEntry) -> str:
        config = entry.payload
        cpu = config["cpus"][0]
        return f"{cpu['name']}-{config['memory']}GB-{config['configurationId']}"

    def specs_of(self, entry: RawCatalogEntry) -> ProductSpecs:
        config = entry.payload
        cpu = config["cpus"][0]
        description = f"{with_vendor(cpu['name'])} ({cpu['cores']}c/{cpu['threads']}t)"
        storage = summarize_storage(group_drives(config.get("storage") or []), empty_description="No storage")
        price = config["monthlyHwPrice"]

        return ProductSpecs(
            cpu=description,
            cpu_cores=parse_cpu_cores(description, explicit=cpu.get("cores")),
            ram_gb=int(config["memory"]),
            storage_description=storage.description,
            storage_total_tb=storage.total_tb,
            network_gbps=sum_port_capacities(p["capacity"] for p in config["uplink"]["ports"]),
            price_usd=to_usd(price["amount"], price.get("currency", "USD"), self.config.currency_rates),
        )

    def stock_of(self, entry: RawCatalogEntry) -> StockInfo:
        quantity = int(entry.payload.get("stockCount") or 0)
        return StockInfo(in_stock=quantity > 0, quantity=quantity)
