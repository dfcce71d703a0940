"""Persistence operations shared by the pipeline and the read API.

Functions take an open ``AsyncSession`` and never commit: the caller owns
the transaction, so a delete-then-insert pair commits or rolls back as one
unit.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from pricetracker.db.models import (
    City,
    Comparison,
    CompetitorProduct,
    PriceHistory,
    ReferenceProduct,
    RegionalPrice,
)
from pricetracker.detect.pricing import PRICE_POSITION_THRESHOLD, PricePosition, classify_price_position

logger = logging.getLogger(__name__)


# =============================================================================
# Cities
# =============================================================================

async def get_city_by_code(db: AsyncSession, code: str) -> Optional[City]:
    result = await db.execute(select(City).where(City.code == code))
    return result.scalar_one_or_none()


async def get_or_create_city(
    db: AsyncSession, code: str, name: str, country: str
) -> tuple[City, bool]:
    """
    Find a city by its provider-namespaced code, creating it on first sight.

    Returns:
        Tuple of (city, created)
    """
    city = await get_city_by_code(db, code)
    if city is not None:
        return city, False

    city = City(code=code, name=name, country=country)
    db.add(city)
    await db.flush()
    return city, True


async def list_cities(db: AsyncSession) -> Sequence[City]:
    result = await db.execute(select(City).order_by(City.country, City.name))
    return result.scalars().all()


async def delete_orphan_cities(db: AsyncSession) -> int:
    """Delete cities that no competitor product references."""
    referenced = select(CompetitorProduct.city_id).distinct()
    result = await db.execute(delete(City).where(City.id.not_in(referenced)))
    return result.rowcount or 0


# =============================================================================
# Reference products and regional prices
# =============================================================================

async def list_reference_products(db: AsyncSession) -> Sequence[ReferenceProduct]:
    result = await db.execute(select(ReferenceProduct).order_by(ReferenceProduct.name))
    return result.scalars().all()


async def get_reference_product_by_name(db: AsyncSession, name: str) -> Optional[ReferenceProduct]:
    result = await db.execute(select(ReferenceProduct).where(ReferenceProduct.name == name))
    return result.scalar_one_or_none()


async def get_regional_price(
    db: AsyncSession, reference_product_id: int, region: str
) -> Optional[RegionalPrice]:
    result = await db.execute(
        select(RegionalPrice).where(
            RegionalPrice.reference_product_id == reference_product_id,
            RegionalPrice.region == region,
        )
    )
    return result.scalar_one_or_none()


async def upsert_regional_price(
    db: AsyncSession, reference_product_id: int, region: str, price_usd: float
) -> RegionalPrice:
    """Insert or update the (product, region) price."""
    row = await get_regional_price(db, reference_product_id, region)
    if row is None:
        row = RegionalPrice(
            reference_product_id=reference_product_id,
            region=region,
            price_usd=price_usd,
        )
        db.add(row)
    else:
        row.price_usd = price_usd
    await db.flush()
    return row


async def replace_regional_prices(db: AsyncSession, rows: Iterable[RegionalPrice]) -> int:
    """Delete every regional price and insert ``rows``."""
    await db.execute(delete(RegionalPrice))
    rows = list(rows)
    db.add_all(rows)
    await db.flush()
    return len(rows)


async def load_regional_price_table(db: AsyncSession) -> dict[tuple[int, str], float]:
    """All regional prices keyed by (reference_product_id, region)."""
    result = await db.execute(
        select(RegionalPrice.reference_product_id, RegionalPrice.region, RegionalPrice.price_usd)
    )
    return {(pid, region): price for pid, region, price in result.all()}


# =============================================================================
# Competitor products
# =============================================================================

async def list_competitor_products(
    db: AsyncSession,
    competitor: Optional[str] = None,
    city_id: Optional[int] = None,
    in_stock: Optional[bool] = None,
) -> Sequence[CompetitorProduct]:
    """Competitor products with their city loaded."""
    query = select(CompetitorProduct).options(selectinload(CompetitorProduct.city))
    if competitor:
        query = query.where(CompetitorProduct.competitor == competitor)
    if city_id is not None:
        query = query.where(CompetitorProduct.city_id == city_id)
    if in_stock is not None:
        query = query.where(CompetitorProduct.in_stock == in_stock)
    query = query.order_by(CompetitorProduct.competitor, CompetitorProduct.name)
    result = await db.execute(query)
    return result.scalars().all()


async def replace_competitor_products(
    db: AsyncSession, competitor: str, products: Iterable[CompetitorProduct]
) -> tuple[int, int]:
    """
    Full replace of one competitor's rows.

    Returns:
        Tuple of (deleted, inserted)
    """
    result = await db.execute(
        delete(CompetitorProduct).where(CompetitorProduct.competitor == competitor)
    )
    products = list(products)
    db.add_all(products)
    await db.flush()
    return result.rowcount or 0, len(products)


async def upsert_competitor_product(
    db: AsyncSession, product: CompetitorProduct
) -> tuple[CompetitorProduct, bool]:
    """
    Insert or update by (competitor, name, city_id).

    Returns:
        Tuple of (persisted row, created)
    """
    result = await db.execute(
        select(CompetitorProduct).where(
            CompetitorProduct.competitor == product.competitor,
            CompetitorProduct.name == product.name,
            CompetitorProduct.city_id == product.city_id,
        )
    )
    existing = result.scalars().first()
    if existing is None:
        db.add(product)
        await db.flush()
        return product, True

    for attr in (
        "cpu",
        "cpu_cores",
        "ram_gb",
        "storage_description",
        "storage_total_tb",
        "network_gbps",
        "price_usd",
        "source_url",
        "inventory_url",
        "in_stock",
        "quantity",
        "last_verified",
        "last_inventory_check",
    ):
        setattr(existing, attr, getattr(product, attr))
    await db.flush()
    return existing, False


async def update_inventory(
    db: AsyncSession, product_id: int, in_stock: bool, quantity: Optional[int] = None
) -> Optional[CompetitorProduct]:
    product = await db.get(CompetitorProduct, product_id)
    if product is None:
        return None
    product.in_stock = in_stock
    if quantity is not None:
        product.quantity = quantity
    product.last_inventory_check = datetime.utcnow()
    await db.flush()
    return product


# =============================================================================
# Comparisons
# =============================================================================

async def replace_comparisons(db: AsyncSession, comparisons: Iterable[Comparison]) -> int:
    """Delete every comparison and insert the new set."""
    await db.execute(delete(Comparison))
    comparisons = list(comparisons)
    db.add_all(comparisons)
    await db.flush()
    return len(comparisons)


async def list_comparisons(
    db: AsyncSession,
    competitor: Optional[str] = None,
    city_id: Optional[int] = None,
    position: Optional[PricePosition] = None,
) -> Sequence[Comparison]:
    """Comparisons joined with both products and the competitor city."""
    query = (
        select(Comparison)
        .join(CompetitorProduct, Comparison.competitor_product_id == CompetitorProduct.id)
        .options(
            selectinload(Comparison.reference_product),
            selectinload(Comparison.competitor_product).selectinload(CompetitorProduct.city),
        )
    )
    if competitor:
        query = query.where(CompetitorProduct.competitor == competitor)
    if city_id is not None:
        query = query.where(CompetitorProduct.city_id == city_id)

    diff = Comparison.price_difference_percent
    if position == PricePosition.CHEAPER:
        query = query.where(diff > PRICE_POSITION_THRESHOLD)
    elif position == PricePosition.MORE_EXPENSIVE:
        query = query.where(diff < -PRICE_POSITION_THRESHOLD)
    elif position == PricePosition.COMPETITIVE:
        query = query.where(diff >= -PRICE_POSITION_THRESHOLD, diff <= PRICE_POSITION_THRESHOLD)

    query = query.order_by(diff.desc())
    result = await db.execute(query)
    return result.scalars().all()


@dataclass
class PositionStats:
    count: int = 0
    total_diff: float = 0.0
    cheaper: int = 0
    competitive: int = 0
    more_expensive: int = 0

    @property
    def avg_diff(self) -> float:
        return self.total_diff / self.count if self.count else 0.0

    def add(self, diff: float) -> None:
        self.count += 1
        self.total_diff += diff
        position = classify_price_position(diff)
        if position == PricePosition.CHEAPER:
            self.cheaper += 1
        elif position == PricePosition.MORE_EXPENSIVE:
            self.more_expensive += 1
        else:
            self.competitive += 1


@dataclass
class ComparisonStats:
    reference_products: int = 0
    competitor_products: int = 0
    comparisons: int = 0
    overall: PositionStats = field(default_factory=PositionStats)
    by_competitor: dict[str, PositionStats] = field(default_factory=dict)


async def competitor_stats(db: AsyncSession) -> ComparisonStats:
    """Price-position counts overall and per competitor."""
    stats = ComparisonStats()
    stats.reference_products = await db.scalar(select(func.count(ReferenceProduct.id))) or 0
    stats.competitor_products = await db.scalar(select(func.count(CompetitorProduct.id))) or 0

    result = await db.execute(
        select(CompetitorProduct.competitor, Comparison.price_difference_percent)
        .join(CompetitorProduct, Comparison.competitor_product_id == CompetitorProduct.id)
    )
    for competitor, diff in result.all():
        stats.comparisons += 1
        stats.overall.add(diff)
        stats.by_competitor.setdefault(competitor, PositionStats()).add(diff)
    return stats


# =============================================================================
# Price history
# =============================================================================

async def list_price_history(
    db: AsyncSession, competitor: Optional[str] = None, limit: int = 100
) -> Sequence[PriceHistory]:
    query = select(PriceHistory)
    if competitor:
        query = query.where(PriceHistory.competitor == competitor)
    query = query.order_by(PriceHistory.recorded_at.desc(), PriceHistory.id.desc()).limit(limit)
    result = await db.execute(query)
    return result.scalars().all()
