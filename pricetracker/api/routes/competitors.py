"""Competitor product routes."""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from pricetracker.api.deps import get_database, parse_competitor
from pricetracker.db import repository
from pricetracker.db.models import City, Competitor, CompetitorProduct
from pricetracker.detect.matcher import regenerate_comparisons

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/competitors", tags=["competitors"])

# Changes to these fields can change which comparisons exist: specs and price
# feed the windows, the city picks the home region and regional price, the cpu
# decides eligibility and the stock flag can exclude the product
MATCH_FIELDS = ("cpu", "cpu_cores", "ram_gb", "price_usd", "city_id", "in_stock")


class CityResponse(BaseModel):
    id: int
    code: str
    name: str
    country: str

    class Config:
        from_attributes = True


class CompetitorProductCreate(BaseModel):
    competitor: str
    name: str
    cpu: str
    cpu_cores: int = Field(gt=0)
    ram_gb: int = Field(gt=0)
    storage_description: str
    storage_total_tb: float = Field(ge=0)
    network_gbps: int = Field(gt=0)
    price_usd: float = Field(gt=0)
    city_id: int
    source_url: str
    inventory_url: str | None = None
    in_stock: bool = True
    quantity: int | None = None

    @field_validator("competitor")
    @classmethod
    def validate_competitor(cls, v: str) -> str:
        """Validate competitor against the known providers."""
        try:
            return Competitor(v.upper()).value
        except ValueError:
            raise ValueError(
                f"Invalid competitor '{v}'. Available: {', '.join(c.value for c in Competitor)}"
            )


class CompetitorProductUpdate(BaseModel):
    name: str | None = None
    cpu: str | None = None
    cpu_cores: int | None = Field(default=None, gt=0)
    ram_gb: int | None = Field(default=None, gt=0)
    storage_description: str | None = None
    storage_total_tb: float | None = Field(default=None, ge=0)
    network_gbps: int | None = Field(default=None, gt=0)
    price_usd: float | None = Field(default=None, gt=0)
    city_id: int | None = None
    source_url: str | None = None
    inventory_url: str | None = None
    in_stock: bool | None = None
    quantity: int | None = None


class InventoryUpdate(BaseModel):
    in_stock: bool
    quantity: int | None = None


class CompetitorProductResponse(BaseModel):
    id: int
    competitor: str
    name: str
    cpu: str
    cpu_cores: int
    ram_gb: int
    storage_description: str
    storage_total_tb: float
    network_gbps: int
    price_usd: float
    city: CityResponse
    source_url: str
    inventory_url: str | None
    in_stock: bool
    quantity: int | None
    last_verified: datetime
    last_inventory_check: datetime | None

    class Config:
        from_attributes = True


async def _get_product(db: AsyncSession, product_id: int) -> CompetitorProduct:
    result = await db.execute(
        select(CompetitorProduct)
        .options(selectinload(CompetitorProduct.city))
        .where(CompetitorProduct.id == product_id)
        .execution_options(populate_existing=True)
    )
    product = result.scalar_one_or_none()
    if not product:
        raise HTTPException(status_code=404, detail="Competitor product not found")
    return product


async def _require_city(db: AsyncSession, city_id: int) -> None:
    if await db.get(City, city_id) is None:
        raise HTTPException(status_code=400, detail=f"City {city_id} does not exist")


@router.get("", response_model=List[CompetitorProductResponse])
async def list_competitor_products(
    competitor: Optional[str] = Query(None),
    city_id: Optional[int] = Query(None),
    in_stock: Optional[bool] = Query(None),
    db: AsyncSession = Depends(get_database),
):
    """List competitor products."""
    return await repository.list_competitor_products(
        db, competitor=parse_competitor(competitor), city_id=city_id, in_stock=in_stock
    )


@router.get("/{product_id}", response_model=CompetitorProductResponse)
async def get_competitor_product(product_id: int, db: AsyncSession = Depends(get_database)):
    """Get a competitor product by ID."""
    return await _get_product(db, product_id)


@router.post("", response_model=CompetitorProductResponse, status_code=201)
async def create_competitor_product(
    data: CompetitorProductCreate, db: AsyncSession = Depends(get_database)
):
    """Create a competitor product and regenerate comparisons."""
    await _require_city(db, data.city_id)

    product = CompetitorProduct(**data.model_dump())
    product.last_verified = datetime.utcnow()
    db.add(product)
    await db.commit()
    logger.info(f"Created competitor product {product.competitor} {product.name}")

    await regenerate_comparisons(db)
    await db.commit()
    return await _get_product(db, product.id)


@router.put("/{product_id}", response_model=CompetitorProductResponse)
async def update_competitor_product(
    product_id: int,
    data: CompetitorProductUpdate,
    db: AsyncSession = Depends(get_database),
):
    """Update a competitor product; comparisons regenerate when a matching field changes."""
    product = await _get_product(db, product_id)
    changes = data.model_dump(exclude_unset=True)
    if "city_id" in changes:
        await _require_city(db, changes["city_id"])

    needs_regenerate = any(
        field in changes and changes[field] != getattr(product, field) for field in MATCH_FIELDS
    )
    for field, value in changes.items():
        setattr(product, field, value)
    await db.commit()

    if needs_regenerate:
        logger.info(f"Competitor product {product_id} matching fields changed, regenerating")
        await regenerate_comparisons(db)
        await db.commit()
    return await _get_product(db, product_id)


@router.put("/{product_id}/inventory", response_model=CompetitorProductResponse)
async def update_inventory(
    product_id: int, data: InventoryUpdate, db: AsyncSession = Depends(get_database)
):
    """Set the stock flag and stamp the inventory check time.

    Comparisons regenerate when the stock flag flips.
    """
    product = await db.get(CompetitorProduct, product_id)
    if product is None:
        raise HTTPException(status_code=404, detail="Competitor product not found")
    stock_flipped = product.in_stock != data.in_stock
    await repository.update_inventory(db, product_id, data.in_stock, data.quantity)
    await db.commit()

    if stock_flipped:
        await regenerate_comparisons(db)
        await db.commit()
    return await _get_product(db, product_id)


@router.delete("/{product_id}", status_code=204)
async def delete_competitor_product(product_id: int, db: AsyncSession = Depends(get_database)):
    """Delete a competitor product and regenerate comparisons."""
    product = await _get_product(db, product_id)
    await db.delete(product)
    await db.commit()

    await regenerate_comparisons(db)
    await db.commit()
    return None
