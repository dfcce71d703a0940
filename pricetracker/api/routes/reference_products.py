"""Reference product routes."""

import logging
from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from pricetracker.api.deps import get_database
from pricetracker.db import repository
from pricetracker.db.models import ReferenceProduct
from pricetracker.detect.matcher import regenerate_comparisons

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reference-products", tags=["reference-products"])

# Tolerance windows are keyed by name
MATCH_FIELDS = ("name", "cpu_cores", "ram_gb", "price_usd")


class RegionalPriceResponse(BaseModel):
    region: str
    price_usd: float

    class Config:
        from_attributes = True


class ReferenceProductCreate(BaseModel):
    name: str
    cpu: str
    cpu_cores: int = Field(gt=0)
    ram_gb: int = Field(gt=0)
    storage_description: str
    storage_total_tb: float = Field(ge=0)
    network_gbps: int = Field(gt=0)
    price_usd: float = Field(gt=0)
    generation: int = 4


class ReferenceProductUpdate(BaseModel):
    name: str | None = None
    cpu: str | None = None
    cpu_cores: int | None = Field(default=None, gt=0)
    ram_gb: int | None = Field(default=None, gt=0)
    storage_description: str | None = None
    storage_total_tb: float | None = Field(default=None, ge=0)
    network_gbps: int | None = Field(default=None, gt=0)
    price_usd: float | None = Field(default=None, gt=0)
    generation: int | None = None


class RegionalPriceUpdate(BaseModel):
    price_usd: float = Field(gt=0)


class ReferenceProductResponse(BaseModel):
    id: int
    name: str
    cpu: str
    cpu_cores: int
    ram_gb: int
    storage_description: str
    storage_total_tb: float
    network_gbps: int
    price_usd: float
    generation: int
    regional_prices: List[RegionalPriceResponse]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


async def _get_product(db: AsyncSession, product_id: int) -> ReferenceProduct:
    result = await db.execute(
        select(ReferenceProduct)
        .options(selectinload(ReferenceProduct.regional_prices))
        .where(ReferenceProduct.id == product_id)
        .execution_options(populate_existing=True)
    )
    product = result.scalar_one_or_none()
    if not product:
        raise HTTPException(status_code=404, detail="Reference product not found")
    return product


async def _ensure_unique_name(db: AsyncSession, name: str, product_id: int | None = None) -> None:
    existing = await repository.get_reference_product_by_name(db, name)
    if existing is not None and existing.id != product_id:
        raise HTTPException(status_code=400, detail=f"Reference product {name} already exists")


@router.get("", response_model=List[ReferenceProductResponse])
async def list_reference_products(db: AsyncSession = Depends(get_database)):
    """List reference products with their regional prices."""
    result = await db.execute(
        select(ReferenceProduct)
        .options(selectinload(ReferenceProduct.regional_prices))
        .order_by(ReferenceProduct.name)
    )
    return result.scalars().all()


@router.get("/{product_id}", response_model=ReferenceProductResponse)
async def get_reference_product(product_id: int, db: AsyncSession = Depends(get_database)):
    """Get a reference product by ID."""
    return await _get_product(db, product_id)


@router.post("", response_model=ReferenceProductResponse, status_code=201)
async def create_reference_product(
    data: ReferenceProductCreate, db: AsyncSession = Depends(get_database)
):
    """Create a reference product and regenerate comparisons."""
    await _ensure_unique_name(db, data.name)

    product = ReferenceProduct(**data.model_dump())
    db.add(product)
    await db.commit()
    logger.info(f"Created reference product {product.name}")

    await regenerate_comparisons(db)
    await db.commit()
    return await _get_product(db, product.id)


@router.put("/{product_id}", response_model=ReferenceProductResponse)
async def update_reference_product(
    product_id: int,
    data: ReferenceProductUpdate,
    db: AsyncSession = Depends(get_database),
):
    """Update a reference product; comparisons regenerate when name, cores, RAM or price change."""
    product = await _get_product(db, product_id)
    changes = data.model_dump(exclude_unset=True)
    if "name" in changes:
        await _ensure_unique_name(db, changes["name"], product_id)

    needs_regenerate = any(
        field in changes and changes[field] != getattr(product, field) for field in MATCH_FIELDS
    )
    for field, value in changes.items():
        setattr(product, field, value)
    await db.commit()

    if needs_regenerate:
        logger.info(f"Reference product {product_id} matching fields changed, regenerating")
        await regenerate_comparisons(db)
        await db.commit()
    return await _get_product(db, product_id)


@router.put("/{product_id}/regional-prices/{region}", response_model=ReferenceProductResponse)
async def set_regional_price(
    product_id: int,
    region: str,
    data: RegionalPriceUpdate,
    db: AsyncSession = Depends(get_database),
):
    """Set the price of a reference product in one pricing region (US, DE, BR...)."""
    await _get_product(db, product_id)
    region = region.strip().upper()
    if not region.isalpha() or len(region) > 8:
        raise HTTPException(status_code=400, detail=f"Invalid pricing region '{region}'")

    existing = await repository.get_regional_price(db, product_id, region)
    if existing is not None and existing.price_usd == data.price_usd:
        return await _get_product(db, product_id)

    await repository.upsert_regional_price(db, product_id, region, data.price_usd)
    await db.commit()
    logger.info(f"Reference product {product_id} priced at {data.price_usd} in {region}, regenerating")

    await regenerate_comparisons(db)
    await db.commit()
    return await _get_product(db, product_id)


@router.delete("/{product_id}", status_code=204)
async def delete_reference_product(product_id: int, db: AsyncSession = Depends(get_database)):
    """Delete a reference product with its regional prices and comparisons."""
    product = await _get_product(db, product_id)
    await db.delete(product)
    await db.commit()

    await regenerate_comparisons(db)
    await db.commit()
    return None
