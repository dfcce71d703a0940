"""Tests for city resolution, home regions and regional pricing."""

import pytest

from pricetracker.db.models import ReferenceProduct, RegionalPrice
from pricetracker.detect.regional_pricing import RegionalPricingResolver, resolve_price
from pricetracker.ingest.locations import HomeRegions, LocationResolver


@pytest.fixture
def home_regions():
    return HomeRegions([("Ashburn", "USA"), ("São Paulo", "Brazil"), ("London", "UK")])


def test_home_region_is_case_insensitive(home_regions):
    assert home_regions.is_home_region("ashburn", "usa")
    assert home_regions.is_home_region("SÃO PAULO", "Brazil")
    assert len(home_regions) == 3


def test_home_region_is_exact(home_regions):
    assert not home_regions.is_home_region("Ashburn", "Canada")
    assert not home_regions.is_home_region("Sao Paulo", "Brazil")
    assert not home_regions.is_home_region("", "USA")


def test_home_regions_from_config():
    regions = HomeRegions.from_config([{"city": "Tokyo", "country": "Japan"}])
    assert regions.is_home_region("Tokyo", "Japan")


@pytest.mark.asyncio
async def test_resolve_city_creates_once(db_session, home_regions):
    resolver = LocationResolver(db_session, home_regions)

    first = await resolver.resolve_city("ovh-bhs", "Beauharnois", "Canada")
    second = await resolver.resolve_city("ovh-bhs", "Beauharnois", "Canada")

    assert first.id == second.id
    assert resolver.created == ["ovh-bhs"]


@pytest.mark.asyncio
async def test_resolve_city_reuses_existing_rows(db_session, make_city):
    existing = await make_city(code="vultr-ewr", name="New York", country="USA")

    resolver = LocationResolver(db_session)
    city = await resolver.resolve_city("vultr-ewr", "Piscataway", "USA")

    assert city.id == existing.id
    assert city.name == "New York"
    assert resolver.created == []


@pytest.mark.asyncio
async def test_same_place_different_providers(db_session):
    """City codes are provider-namespaced, so each provider gets its own row."""
    resolver = LocationResolver(db_session)
    a = await resolver.resolve_city("teraswitch-FRA", "Frankfurt", "Germany")
    b = await resolver.resolve_city("cherry-DE-Frankfurt", "Frankfurt", "Germany")
    assert a.id != b.id


@pytest.fixture
def pricing(regions):
    reference = ReferenceProduct(id=1, name="m4.metal.large", price_usd=715.0)
    resolver = RegionalPricingResolver(
        regions=regions,
        prices={(1, "US"): 700.0, (1, "DE"): 760.0, (1, "BR"): 900.0},
    )
    return reference, resolver


@pytest.mark.parametrize(
    "country,expected",
    [
        ("USA", 700.0),
        ("Canada", 700.0),  # Canada is priced as US
        ("Germany", 760.0),
        ("France", 760.0),  # EU member without its own region
        ("brazil", 900.0),
        ("Japan", 715.0),  # Region without a price row
        ("Atlantis", 715.0),  # Unknown country
        ("", 715.0),
    ],
)
def test_regional_price_resolution(pricing, country, expected):
    reference, resolver = pricing
    assert resolver.resolve_price(reference, country) == expected


def test_region_alias(regions):
    """A region without rows is retried under its alias."""
    regions = dict(regions, country_regions={"Europe": "EU"})
    reference = ReferenceProduct(id=1, name="m4.metal.large", price_usd=715.0)
    resolver = RegionalPricingResolver(regions=regions, prices={(1, "DE"): 760.0})
    assert resolver.resolve_price(reference, "Europe") == 760.0


@pytest.mark.asyncio
async def test_resolve_price_from_database(db_session, make_reference):
    reference = await make_reference()
    db_session.add(RegionalPrice(reference_product_id=reference.id, region="UK", price_usd=800.0))
    await db_session.flush()

    assert await resolve_price(db_session, reference.id, "UK") == 800.0
    assert await resolve_price(db_session, reference.id, "Chile") == 715.0
    assert await resolve_price(db_session, 9999, "UK") is None
