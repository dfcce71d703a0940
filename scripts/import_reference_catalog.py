#!/usr/bin/env python3
"""
Import the reference vendor's current-generation plans and regional prices,
then regenerate comparisons.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from pricetracker.db.session import AsyncSessionLocal
from pricetracker.detect.matcher import regenerate_comparisons
from pricetracker.ingest.reference_catalog import ReferenceCatalogImporter
from pricetracker.logging_config import setup_logging


async def import_reference_catalog() -> int:
    importer = ReferenceCatalogImporter()
    try:
        async with AsyncSessionLocal() as db:
            result = await importer.import_catalog(db)
            await db.commit()

            comparisons = await regenerate_comparisons(db)
            await db.commit()
    finally:
        await importer.close()

    print(f"Plans imported: {result.plans}")
    print(f"  - Created: {', '.join(result.created) or 'none'}")
    print(f"  - Updated: {len(result.updated)}")
    print(f"  - Regional prices: {result.regional_prices}")
    if result.unknown_regions:
        print(f"  - Unknown regions skipped: {', '.join(sorted(result.unknown_regions))}")
    print(f"Comparisons regenerated: {comparisons}")
    return 0


if __name__ == "__main__":
    setup_logging()
    sys.exit(asyncio.run(import_reference_catalog()))
