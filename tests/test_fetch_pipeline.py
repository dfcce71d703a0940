"""Tests for the ingestion pipeline."""

import pytest
from sqlalchemy import select

from pricetracker.db.models import City, CompetitorProduct
from pricetracker.ingest.base import AdapterConfigurationError
from pricetracker.ingest.fetch_pipeline import IngestionPipeline
from pricetracker.ingest.http_client import AuthenticationError


async def _rows(db_session):
    result = await db_session.execute(select(CompetitorProduct).order_by(CompetitorProduct.name))
    return result.scalars().all()


@pytest.mark.asyncio
async def test_full_replace(db_session, rules, make_adapter, make_city, make_competitor):
    city = await make_city()
    await make_competitor(city, name="OLD")

    adapter = make_adapter([
        {"name": "A", "price": 700, "city": "IAD"},
        {"name": "B", "price": 800, "city": "IAD", "qty": 0},
    ])
    result = await IngestionPipeline(db_session, rules).ingest(adapter)

    assert result.deleted == 1
    assert result.persisted == 2
    rows = await _rows(db_session)
    assert [r.name for r in rows] == ["A", "B"]
    # Out-of-stock products are stored
    assert rows[1].in_stock is False
    # The existing city is reused
    assert {r.city_id for r in rows} == {city.id}


@pytest.mark.asyncio
async def test_skip_reasons(db_session, rules, make_adapter):
    adapter = make_adapter([
        {"name": "A", "price": 700, "city": "IAD"},
        {"name": "A", "price": 710, "city": "IAD"},
        {"name": "FREE", "price": 0, "city": "IAD"},
        {"name": "NOWHERE", "price": 700, "city": None},
        {"price": 700, "city": "IAD"},
        {"name": "XEON", "price": 300, "city": "IAD", "cpu": "Intel Xeon E-2388G"},
        {"name": "NAPLES", "price": 300, "city": "IAD", "cpu": "AMD EPYC 7401P"},
    ])
    result = await IngestionPipeline(db_session, rules).ingest(adapter)

    assert result.fetched == 7
    assert result.persisted == 1
    assert result.skipped == {
        "duplicate": 1,
        "zero_price": 1,
        "unmapped_region": 1,
        "malformed": 1,
        "ineligible_cpu": 2,
    }
    # First occurrence wins
    rows = await _rows(db_session)
    assert rows[0].price_usd == 700


@pytest.mark.asyncio
async def test_eligibility_filter_can_be_disabled(db_session, rules, make_adapter):
    adapter = make_adapter([
        {"name": "XEON", "price": 300, "city": "IAD", "cpu": "Intel Xeon E-2388G"},
    ])
    result = await IngestionPipeline(db_session, rules, only_eligible=False).ingest(adapter)
    assert result.persisted == 1


@pytest.mark.asyncio
async def test_new_cities_are_created(db_session, rules, make_adapter):
    adapter = make_adapter([{"name": "A", "price": 700, "city": "DAL"}])
    await IngestionPipeline(db_session, rules).ingest(adapter)

    city = (await db_session.execute(select(City))).scalar_one()
    assert city.code == "teraswitch-DAL"


@pytest.mark.asyncio
async def test_keeps_previous_rows_when_every_unit_failed(
    db_session, rules, make_city, make_competitor, make_adapter
):
    city = await make_city()
    await make_competitor(city, name="OLD")

    adapter = make_adapter([], failed=["IAD2", "EWR1"])
    result = await IngestionPipeline(db_session, rules).ingest(adapter)

    assert result.kept_previous is True
    assert result.failed_units == ["IAD2", "EWR1"]
    assert [r.name for r in await _rows(db_session)] == ["OLD"]


@pytest.mark.asyncio
async def test_empty_catalog_without_failures_clears_rows(
    db_session, rules, make_city, make_competitor, make_adapter
):
    city = await make_city()
    await make_competitor(city, name="OLD")

    result = await IngestionPipeline(db_session, rules).ingest(make_adapter([]))

    assert result.kept_previous is False
    assert result.deleted == 1
    assert await _rows(db_session) == []


@pytest.mark.asyncio
async def test_upsert_strategy(db_session, rules, make_adapter, make_city, make_competitor):
    city = await make_city()
    await make_competitor(city, name="A", price=650.0)
    await make_competitor(city, name="KEEP", price=500.0)

    adapter = make_adapter([
        {"name": "A", "price": 700, "city": "IAD"},
        {"name": "B", "price": 800, "city": "IAD"},
    ])
    adapter.persist_strategy = "upsert"
    result = await IngestionPipeline(db_session, rules).ingest(adapter)

    assert (result.created, result.updated) == (1, 1)
    rows = {r.name: r for r in await _rows(db_session)}
    assert rows["A"].price_usd == 700
    # Upsert never deletes
    assert "KEEP" in rows


@pytest.mark.asyncio
async def test_authentication_error_propagates(
    db_session, rules, make_adapter, make_city, make_competitor
):
    city = await make_city()
    await make_competitor(city, name="OLD")

    adapter = make_adapter([], error=AuthenticationError("TERASWITCH: HTTP 401"))
    with pytest.raises(AuthenticationError):
        await IngestionPipeline(db_session, rules).ingest(adapter)

    assert [r.name for r in await _rows(db_session)] == ["OLD"]


@pytest.mark.asyncio
async def test_unconfigured_adapter_is_refused(db_session, rules, make_adapter):
    adapter = make_adapter([{"name": "A", "price": 700, "city": "IAD"}])
    adapter.required_settings = ("teraswitch_api_key",)

    with pytest.raises(AdapterConfigurationError):
        await IngestionPipeline(db_session, rules).ingest(adapter)
