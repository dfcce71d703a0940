"""Competitive position statistics."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from pricetracker.api.deps import get_database
from pricetracker.db import repository
from pricetracker.db.repository import PositionStats

router = APIRouter(prefix="/api/stats", tags=["stats"])


class PositionStatsResponse(BaseModel):
    count: int
    avg_price_difference_percent: float
    cheaper: int
    competitive: int
    more_expensive: int


class StatsResponse(BaseModel):
    reference_products: int
    competitor_products: int
    comparisons: int
    overall: PositionStatsResponse
    by_competitor: dict[str, PositionStatsResponse]


def _position(stats: PositionStats) -> PositionStatsResponse:
    return PositionStatsResponse(
        count=stats.count,
        avg_price_difference_percent=round(stats.avg_diff, 2),
        cheaper=stats.cheaper,
        competitive=stats.competitive,
        more_expensive=stats.more_expensive,
    )


@router.get("", response_model=StatsResponse)
async def get_stats(db: AsyncSession = Depends(get_database)):
    """Counts and average price difference overall and per competitor."""
    stats = await repository.competitor_stats(db)
    return StatsResponse(
        reference_products=stats.reference_products,
        competitor_products=stats.competitor_products,
        comparisons=stats.comparisons,
        overall=_position(stats.overall),
        by_competitor={name: _position(s) for name, s in sorted(stats.by_competitor.items())},
    )
