"""FastAPI dependencies."""

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from pricetracker.db.models import Competitor
from pricetracker.db.session import get_db


async def get_database() -> AsyncSession:
    """Dependency for database session."""
    async for session in get_db():
        yield session
        break  # Only yield once, as FastAPI handles the session lifecycle


def parse_competitor(value: str | None) -> str | None:
    """
    Validate a competitor query parameter.

    Raises:
        HTTPException: 400 if the competitor is unknown
    """
    if value is None:
        return None
    try:
        return Competitor(value.upper()).value
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid competitor '{value}'. Available: {', '.join(c.value for c in Competitor)}",
        )
