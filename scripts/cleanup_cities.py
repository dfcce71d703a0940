#!/usr/bin/env python3
"""
Delete cities that no competitor product references.

Cities left behind when a provider drops a location otherwise stay in
the city filter forever.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from pricetracker.db import repository
from pricetracker.db.session import AsyncSessionLocal


async def cleanup_cities():
    """Delete orphan cities."""
    async with AsyncSessionLocal() as db:
        before = len(await repository.list_cities(db))
        print(f"Cities before cleanup: {before}")

        deleted = await repository.delete_orphan_cities(db)
        await db.commit()

        print(f"Deleted {deleted} orphan cities, {before - deleted} remain")


if __name__ == "__main__":
    asyncio.run(cleanup_cities())
