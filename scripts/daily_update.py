#!/usr/bin/env python3
"""
Run the daily competitive pricing update once.

Captures a price snapshot, ingests every enabled provider, records and
emails significant price changes, then regenerates all comparisons.
Exits with status 1 if the run fails.
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from pricetracker.logging_config import setup_logging
from pricetracker.worker.tasks import TaskRunner

logger = logging.getLogger("daily_update")


async def main() -> int:
    runner = TaskRunner()
    try:
        result = await runner.daily_update(trigger="manual")
    except Exception as e:
        logger.error(f"Daily update failed: {e}")
        return 1
    finally:
        await runner.close()

    print("\nDaily update complete:")
    for ingestion in result.ingestion:
        status = " (kept previous rows)" if ingestion.kept_previous else ""
        print(
            f"  - {ingestion.provider}: {ingestion.persisted} products, "
            f"{ingestion.skipped_total} skipped, {len(ingestion.failed_units)} failed units{status}"
        )
    print(f"  - Price changes: {len(result.changes)} (alert sent: {result.alert_sent})")
    print(f"  - Comparisons: {result.comparisons_created}")
    return 0


if __name__ == "__main__":
    setup_logging()
    sys.exit(asyncio.run(main()))
