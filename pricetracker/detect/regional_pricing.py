"""Resolve the reference SKU price that applies in a competitor's country."""

import logging
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from pricetracker.db import repository
from pricetracker.db.models import ReferenceProduct
from pricetracker.ingest.locations import load_provider_regions

logger = logging.getLogger(__name__)


class RegionalPricingResolver:
    """
    Country to pricing-region mapping plus the regional price lookup.

    Resolution order for a country: the explicit country table, then the
    EU fallback region for EU members. A region code with no price row is
    retried under its alias (e.g. EU -> DE) before falling back to the
    product's list price.
    """

    def __init__(
        self,
        regions: Optional[dict[str, Any]] = None,
        prices: Optional[dict[tuple[int, str], float]] = None,
    ):
        regions = regions if regions is not None else load_provider_regions()
        self.country_regions: dict[str, str] = {
            k.casefold(): v for k, v in regions.get("country_regions", {}).items()
        }
        self.eu_countries = {c.casefold() for c in regions.get("eu_countries", [])}
        self.eu_fallback_region: str = regions.get("eu_fallback_region", "DE")
        self.region_aliases: dict[str, str] = regions.get("region_aliases", {})
        self.prices: dict[tuple[int, str], float] = prices or {}

    async def load_prices(self, db: AsyncSession) -> "RegionalPricingResolver":
        """Load the RegionalPrice table into memory."""
        self.prices = await repository.load_regional_price_table(db)
        return self

    def region_for_country(self, country: str) -> Optional[str]:
        key = (country or "").strip().casefold()
        if key in self.country_regions:
            return self.country_regions[key]
        if key in self.eu_countries:
            return self.eu_fallback_region
        return None

    def resolve_price(self, reference: ReferenceProduct, competitor_country: str) -> float:
        """
        Price of ``reference`` in the competitor's pricing region.

        Always returns a number: the list price when no regional override
        exists.
        """
        region = self.region_for_country(competitor_country)
        if region is None:
            return reference.price_usd

        price = self.prices.get((reference.id, region))
        if price is None and region in self.region_aliases:
            price = self.prices.get((reference.id, self.region_aliases[region]))
        if price is None:
            return reference.price_usd
        return price


async def resolve_price(
    db: AsyncSession, reference_product_id: int, competitor_country: str
) -> Optional[float]:
    """
    One-off lookup by id; None only when the reference product does not exist.
    """
    reference = await db.get(ReferenceProduct, reference_product_id)
    if reference is None:
        return None
    resolver = await RegionalPricingResolver().load_prices(db)
    return resolver.resolve_price(reference, competitor_country)
