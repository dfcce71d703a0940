"""Comparison routes."""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from pricetracker.api.deps import get_database, parse_competitor
from pricetracker.db import repository
from pricetracker.db.models import Comparison
from pricetracker.detect.matcher import recalculate_comparisons, regenerate_comparisons
from pricetracker.detect.pricing import (
    PricePosition,
    calculate_spec_similarity,
    classify_price_position,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/comparisons", tags=["comparisons"])


class ProductSummary(BaseModel):
    id: int
    name: str
    cpu: str
    cpu_cores: int
    ram_gb: int
    storage_description: str
    storage_total_tb: float
    network_gbps: int
    price_usd: float

    class Config:
        from_attributes = True


class CompetitorSummary(ProductSummary):
    competitor: str
    city_id: int
    city_name: str
    country: str
    in_stock: bool
    source_url: str


class ComparisonResponse(BaseModel):
    id: int
    reference_product: ProductSummary
    competitor_product: CompetitorSummary
    regional_reference_price_usd: Optional[float]
    price_difference_percent: float
    price_position: PricePosition
    spec_similarity: int
    notes: Optional[str]
    created_at: datetime


class RegenerateResponse(BaseModel):
    comparisons: int


def to_response(comparison: Comparison) -> ComparisonResponse:
    reference = comparison.reference_product
    competitor = comparison.competitor_product
    return ComparisonResponse(
        id=comparison.id,
        reference_product=ProductSummary.model_validate(reference),
        competitor_product=CompetitorSummary(
            **ProductSummary.model_validate(competitor).model_dump(),
            competitor=competitor.competitor,
            city_id=competitor.city_id,
            city_name=competitor.city.name,
            country=competitor.city.country,
            in_stock=competitor.in_stock,
            source_url=competitor.source_url,
        ),
        regional_reference_price_usd=comparison.regional_reference_price_usd,
        price_difference_percent=comparison.price_difference_percent,
        price_position=classify_price_position(comparison.price_difference_percent),
        spec_similarity=calculate_spec_similarity(
            reference.cpu_cores,
            reference.ram_gb,
            reference.storage_total_tb,
            competitor.cpu_cores,
            competitor.ram_gb,
            competitor.storage_total_tb,
        ),
        notes=comparison.notes,
        created_at=comparison.created_at,
    )


@router.get("", response_model=List[ComparisonResponse])
async def list_comparisons(
    competitor: Optional[str] = Query(None, description="Competitor identifier, e.g. OVHCLOUD"),
    city_id: Optional[int] = Query(None),
    position: Optional[PricePosition] = Query(None),
    db: AsyncSession = Depends(get_database),
):
    """List comparisons, largest reference advantage first."""
    comparisons = await repository.list_comparisons(
        db, competitor=parse_competitor(competitor), city_id=city_id, position=position
    )
    return [to_response(c) for c in comparisons]


@router.post("/regenerate", response_model=RegenerateResponse)
async def regenerate(db: AsyncSession = Depends(get_database)):
    """Rebuild every comparison from the current products."""
    created = await regenerate_comparisons(db)
    await db.commit()
    return RegenerateResponse(comparisons=created)


@router.post("/recalculate", response_model=RegenerateResponse)
async def recalculate(db: AsyncSession = Depends(get_database)):
    """Recompute price differences of the existing comparisons."""
    updated = await recalculate_comparisons(db)
    await db.commit()
    return RegenerateResponse(comparisons=updated)
