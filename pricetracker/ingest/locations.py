"""Provider region tables, city resolution and the home-region allow-list."""

import logging
from typing import Any, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from pricetracker.config import load_json_table, settings
from pricetracker.db import repository
from pricetracker.db.models import City

logger = logging.getLogger(__name__)


def load_provider_regions(path: Optional[str] = None) -> dict[str, Any]:
    """Load the provider region tables (bundled JSON unless overridden)."""
    override = path if path is not None else settings.provider_regions_path
    return load_json_table(override, "provider_regions.json")


def region_key(name: str, country: str) -> str:
    """Case-insensitive (city, country) key."""
    return f"{name.strip().casefold()}|{country.strip().casefold()}"


class HomeRegions:
    """Allow-list of (city, country) pairs where the reference vendor operates."""

    def __init__(self, pairs: Iterable[tuple[str, str]]):
        self._keys = {region_key(name, country) for name, country in pairs}

    @classmethod
    def from_config(cls, entries: Iterable[dict[str, str]]) -> "HomeRegions":
        return cls((entry["city"], entry["country"]) for entry in entries)

    def is_home_region(self, name: str, country: str) -> bool:
        if not name or not country:
            return False
        return region_key(name, country) in self._keys

    def __len__(self) -> int:
        return len(self._keys)


class LocationResolver:
    """
    Resolve provider region codes to City rows.

    Cities are looked up by their provider-namespaced code and created on
    first sight. Resolutions are cached for the lifetime of the resolver,
    which is one ingestion transaction.
    """

    def __init__(self, db: AsyncSession, home_regions: Optional[HomeRegions] = None):
        self.db = db
        self.home_regions = home_regions
        self._cache: dict[str, City] = {}
        self.created: list[str] = []

    async def resolve_city(self, provider_code: str, name: str, country: str) -> City:
        """
        Find or create the City for a provider region code.

        Args:
            provider_code: Namespaced code, e.g. 'ovh-bhs'
            name: Display name used when the city is created
            country: Country name used when the city is created

        Returns:
            Persisted City
        """
        city = self._cache.get(provider_code)
        if city is not None:
            return city

        city, created = await repository.get_or_create_city(self.db, provider_code, name, country)
        if created:
            self.created.append(provider_code)
            logger.info(f"Created city {provider_code} ({name}, {country})")
        self._cache[provider_code] = city
        return city

    def is_home_region(self, name: str, country: str) -> bool:
        if self.home_regions is None:
            return False
        return self.home_regions.is_home_region(name, country)
