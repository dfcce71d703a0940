"""Price history routes."""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from pricetracker.api.deps import get_database, parse_competitor
from pricetracker.db import repository

router = APIRouter(prefix="/api/price-history", tags=["price-history"])


class PriceHistoryResponse(BaseModel):
    id: int
    competitor_product_id: int | None
    competitor: str
    product_name: str
    city_name: str
    old_price: float
    new_price: float
    change_percent: float
    recorded_at: datetime

    class Config:
        from_attributes = True


@router.get("", response_model=List[PriceHistoryResponse])
async def list_price_history(
    competitor: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_database),
):
    """Recorded significant price changes, newest first."""
    return await repository.list_price_history(
        db, competitor=parse_competitor(competitor), limit=limit
    )
