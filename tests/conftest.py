"""Shared fixtures: in-memory database, test settings and factories."""

import os

# Must be set before pricetracker.config is imported
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["RESEND_API_KEY"] = ""

from typing import Optional

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from pricetracker.config import Settings
from pricetracker.db.models import Base, City, Competitor, CompetitorProduct, ReferenceProduct
from pricetracker.detect.rules import load_rules
from pricetracker.ingest.base import (
    CityRef,
    ProductSpecs,
    ProviderAdapter,
    RawCatalogEntry,
    StockInfo,
)
from pricetracker.ingest.locations import load_provider_regions


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def test_settings():
    """Settings with no delays or backoff and dummy credentials."""
    return Settings(
        http_backoff_base_seconds=0,
        http_max_attempts=2,
        provider_request_delays={"default": 0},
        ovh_app_key="app-key",
        ovh_app_secret="app-secret",
        ovh_consumer_key="consumer-key",
        teraswitch_api_key="tsw-key",
        teraswitch_api_secret="tsw-secret",
        datapacket_api_key="dp-key",
        vultr_api_key="vultr-key",
        reference_api_key="ref-key",
        resend_api_key="re_test",
        alert_recipients=["pricing@example.com"],
    )


@pytest.fixture
def regions():
    return load_provider_regions()


@pytest.fixture
def make_city(db_session):
    async def _make(code="teraswitch-IAD", name="Ashburn", country="USA"):
        city = City(code=code, name=name, country=country)
        db_session.add(city)
        await db_session.flush()
        return city

    return _make


@pytest.fixture
def make_reference(db_session):
    async def _make(name="m4.metal.large", cores=24, ram=384, price=715.0, **kwargs):
        product = ReferenceProduct(
            name=name,
            cpu=kwargs.pop("cpu", "AMD EPYC 9254"),
            cpu_cores=cores,
            ram_gb=ram,
            storage_description=kwargs.pop("storage_description", "2 x 3.8TB NVMe"),
            storage_total_tb=kwargs.pop("storage_total_tb", 7.6),
            network_gbps=kwargs.pop("network_gbps", 10),
            price_usd=price,
            **kwargs,
        )
        db_session.add(product)
        await db_session.flush()
        return product

    return _make


@pytest.fixture
def make_competitor(db_session):
    async def _make(city, name="EPYC-9354-384GB", cores=24, ram=384, price=775.0, **kwargs):
        product = CompetitorProduct(
            competitor=kwargs.pop("competitor", "TERASWITCH"),
            name=name,
            cpu=kwargs.pop("cpu", "AMD EPYC 9354"),
            cpu_cores=cores,
            ram_gb=ram,
            storage_description=kwargs.pop("storage_description", "2 x 960GB NVMe"),
            storage_total_tb=kwargs.pop("storage_total_tb", 1.92),
            network_gbps=kwargs.pop("network_gbps", 10),
            price_usd=price,
            city=city,
            source_url=kwargs.pop("source_url", "https://example.com"),
            **kwargs,
        )
        db_session.add(product)
        await db_session.flush()
        return product

    return _make


class FakeAdapter(ProviderAdapter):
    """Adapter serving canned items: {'name', 'price', 'city', 'cpu', 'qty'}."""

    competitor = Competitor.TERASWITCH

    def __init__(self, items, failed=(), error=None, config=None, **kwargs):
        super().__init__(config=config or Settings(), regions={}, **kwargs)
        self.items = items
        self.failed = list(failed)
        self.error = error
        self.closed = False

    async def fetch_catalog(self) -> list[RawCatalogEntry]:
        if self.error is not None:
            raise self.error
        self.failed_units = list(self.failed)
        return [
            RawCatalogEntry(provider=self.name, unit=item.get("city") or "?", payload=item)
            for item in self.items
        ]

    def city_of(self, entry: RawCatalogEntry) -> Optional[CityRef]:
        city = entry.payload.get("city")
        if city is None:
            return None
        return CityRef(code=f"teraswitch-{city}", name="Ashburn", country="USA")

    def name_of(self, entry: RawCatalogEntry) -> str:
        return entry.payload["name"]

    def specs_of(self, entry: RawCatalogEntry) -> ProductSpecs:
        return ProductSpecs(
            cpu=entry.payload.get("cpu", "AMD EPYC 9354"),
            cpu_cores=24,
            ram_gb=384,
            storage_description="2x 960GB NVMe",
            storage_total_tb=1.92,
            network_gbps=10,
            price_usd=entry.payload["price"],
        )

    def stock_of(self, entry: RawCatalogEntry) -> StockInfo:
        qty = entry.payload.get("qty", 1)
        return StockInfo(in_stock=qty > 0, quantity=qty)

    async def close(self) -> None:
        self.closed = True
        await super().close()


@pytest.fixture
def make_adapter():
    return FakeAdapter


@pytest.fixture
def rules():
    return load_rules()
