"""City routes."""

import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from pricetracker.api.deps import get_database
from pricetracker.api.routes.competitors import CityResponse
from pricetracker.db import repository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cities", tags=["cities"])


@router.get("", response_model=List[CityResponse])
async def list_cities(db: AsyncSession = Depends(get_database)):
    """List all cities."""
    return await repository.list_cities(db)


@router.post("/cleanup")
async def cleanup_cities(db: AsyncSession = Depends(get_database)):
    """Delete cities no competitor product references."""
    deleted = await repository.delete_orphan_cities(db)
    await db.commit()
    logger.info(f"Deleted {deleted} orphan cities")
    return {"deleted": deleted}
