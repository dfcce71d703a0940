"""Background tasks: the daily competitive pricing update."""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pricetracker import metrics
from pricetracker.config import settings
from pricetracker.db import repository
from pricetracker.db.models import PipelineRun
from pricetracker.db.session import AsyncSessionLocal
from pricetracker.detect.matcher import regenerate_comparisons
from pricetracker.detect.price_change import (
    PriceChange,
    capture_snapshot,
    detect_changes,
    record_changes,
)
from pricetracker.detect.rules import RuleBook, load_rules
from pricetracker.ingest.base import ProviderAdapter
from pricetracker.ingest.fetch_pipeline import IngestionPipeline, IngestionResult
from pricetracker.ingest.locations import load_provider_regions
from pricetracker.ingest.registry import AdapterRegistry
from pricetracker.notify.email import EmailNotifier

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[], list[ProviderAdapter]]


def enabled_adapters() -> list[ProviderAdapter]:
    """Fresh adapters for the enabled providers with freshly loaded region tables."""
    return AdapterRegistry.enabled(settings, regions=load_provider_regions())


@dataclass
class DailyUpdateResult:
    run_id: str
    rules_version: str = ""
    ingestion: list[IngestionResult] = field(default_factory=list)
    changes: list[PriceChange] = field(default_factory=list)
    alert_sent: bool = False
    comparisons_created: int = 0
    duration_seconds: float = 0.0

    @property
    def products_ingested(self) -> int:
        return sum(r.persisted for r in self.ingestion)

    @property
    def entries_skipped(self) -> int:
        return sum(r.skipped_total for r in self.ingestion)

    @property
    def failed_units(self) -> int:
        return sum(len(r.failed_units) for r in self.ingestion)


class TaskRunner:
    """
    Runner for background tasks.

    The daily update runs strictly in order: snapshot, ingestion per
    provider, change detection and alerting, comparison regeneration.
    Each provider is ingested in its own transaction.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
        adapter_factory: Optional[AdapterFactory] = None,
        notifier: Optional[EmailNotifier] = None,
    ):
        self.session_factory = session_factory
        self.adapter_factory = adapter_factory or enabled_adapters
        self.notifier = notifier or EmailNotifier()

    async def close(self):
        """Clean up resources."""
        await self.notifier.close()

    async def _start_run(self, run_id: str, trigger: str) -> int:
        async with self.session_factory() as db:
            run = PipelineRun(run_id=run_id, trigger=trigger, status="running")
            db.add(run)
            await db.commit()
            await db.refresh(run)
            return run.id

    async def _finish_run(
        self,
        run_pk: int,
        result: DailyUpdateResult,
        status: str,
        error_message: Optional[str] = None,
    ) -> None:
        async with self.session_factory() as db:
            run = await db.get(PipelineRun, run_pk)
            if run is None:
                logger.error(f"Pipeline run {result.run_id} disappeared before completion")
                return
            run.status = status
            run.completed_at = datetime.utcnow()
            run.rules_version = result.rules_version or None
            run.products_ingested = result.products_ingested
            run.entries_skipped = result.entries_skipped
            run.failed_units = result.failed_units
            run.price_changes = len(result.changes)
            run.comparisons_created = result.comparisons_created
            run.error_message = error_message
            await db.commit()

        metrics.pipeline_runs_total.labels(status=status).inc()
        if status == "completed":
            metrics.pipeline_last_run_timestamp.set(time.time())

    async def ingest_provider(self, adapter: ProviderAdapter, rules: RuleBook) -> IngestionResult:
        """Ingest one provider in its own transaction."""
        try:
            async with self.session_factory() as db:
                pipeline = IngestionPipeline(db, rules)
                result = await pipeline.ingest(adapter)
                await db.commit()
                return result
        finally:
            await adapter.close()

    async def daily_update(self, trigger: str = "scheduled") -> DailyUpdateResult:
        """
        Run the daily update.

        Raises:
            AdapterConfigurationError: If an enabled provider is misconfigured
            AuthenticationError: If a provider rejects its credentials
            SnapshotOrderError: If the snapshot was taken after ingestion began
            SQLAlchemyError: If persistence fails
        """
        run_id = uuid4().hex
        result = DailyUpdateResult(run_id=run_id)
        start = time.perf_counter()
        run_pk = await self._start_run(run_id, trigger)
        logger.info(f"Daily update {run_id} started (trigger={trigger})")

        try:
            rules = load_rules()
            result.rules_version = rules.version

            async with self.session_factory() as db:
                snapshot = await capture_snapshot(db)

            ingestion_started_at = datetime.utcnow()
            snapshot.ensure_captured_before(ingestion_started_at)

            adapters = self.adapter_factory()
            for index, adapter in enumerate(adapters):
                try:
                    result.ingestion.append(await self.ingest_provider(adapter, rules))
                except Exception:
                    for remaining in adapters[index + 1:]:
                        await remaining.close()
                    raise

            async with self.session_factory() as db:
                current = await repository.list_competitor_products(db)
                result.changes = detect_changes(snapshot, current)
                await record_changes(db, result.changes)
                await db.commit()

            if result.changes:
                logger.info(f"{len(result.changes)} significant price changes, sending alert")
                result.alert_sent = await self.notifier.send_price_changes(result.changes)
            else:
                logger.info("No significant price changes")

            async with self.session_factory() as db:
                result.comparisons_created = await regenerate_comparisons(db, rules)
                await db.commit()

        except Exception as e:
            result.duration_seconds = time.perf_counter() - start
            logger.error(f"Daily update {run_id} failed: {e}", exc_info=True)
            await self._finish_run(run_pk, result, "failed", error_message=str(e))
            raise

        result.duration_seconds = time.perf_counter() - start
        await self._finish_run(run_pk, result, "completed")
        logger.info(
            f"Daily update {run_id} completed in {result.duration_seconds:.1f}s: "
            f"{result.products_ingested} products, {result.entries_skipped} skipped, "
            f"{result.failed_units} failed units, {len(result.changes)} price changes, "
            f"{result.comparisons_created} comparisons"
        )
        return result

    async def scheduled_daily_update(self):
        """
        Entry point for APScheduler.

        Failures are already recorded on the PipelineRun row; the scheduler
        keeps running.
        """
        try:
            await self.daily_update(trigger="scheduled")
        except Exception as e:
            logger.error(f"Scheduled daily update failed: {e}")


# Global task runner instance
task_runner = TaskRunner()
