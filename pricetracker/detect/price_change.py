"""Competitor price-change detection against a pre-ingestion snapshot."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, NamedTuple, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from pricetracker import metrics
from pricetracker.config import settings
from pricetracker.db import repository
from pricetracker.db.models import CompetitorProduct, PriceHistory

logger = logging.getLogger(__name__)


class PriceKey(NamedTuple):
    competitor: str
    product_name: str
    city_name: str


class SnapshotOrderError(RuntimeError):
    """Raised when a snapshot was not captured before ingestion started."""

    pass


@dataclass
class PriceSnapshot:
    """Competitor prices as they were before an ingestion run."""

    prices: dict[PriceKey, float]
    captured_at: datetime

    def get(self, key: PriceKey) -> Optional[float]:
        return self.prices.get(key)

    def __len__(self) -> int:
        return len(self.prices)

    def ensure_captured_before(self, ingestion_started_at: datetime) -> None:
        """
        Raises:
            SnapshotOrderError: If the snapshot was taken after ingestion started
        """
        if self.captured_at > ingestion_started_at:
            raise SnapshotOrderError(
                f"Snapshot captured at {self.captured_at.isoformat()} is after "
                f"ingestion start {ingestion_started_at.isoformat()}"
            )


@dataclass
class PriceChange:
    """A competitor price move above the significance threshold."""

    competitor: str
    product_name: str
    city_name: str
    old_price: float
    new_price: float
    change_percent: float
    competitor_product_id: Optional[int] = None

    @property
    def direction(self) -> str:
        return "increase" if self.change_percent > 0 else "decrease"


def key_for(product: CompetitorProduct) -> PriceKey:
    return PriceKey(product.competitor, product.name, product.city.name)


async def capture_snapshot(db: AsyncSession) -> PriceSnapshot:
    """Read the current competitor prices keyed by (competitor, name, city)."""
    captured_at = datetime.utcnow()
    products = await repository.list_competitor_products(db)
    prices = {key_for(p): p.price_usd for p in products}
    logger.info(f"Captured price snapshot of {len(prices)} competitor products")
    return PriceSnapshot(prices=prices, captured_at=captured_at)


def detect_changes(
    snapshot: PriceSnapshot,
    current_products: Iterable[CompetitorProduct],
    threshold_percent: Optional[float] = None,
) -> list[PriceChange]:
    """
    Compare current prices with the snapshot.

    Products absent from the snapshot are new and never produce a change.
    A change is significant when its absolute percentage exceeds the
    threshold (strictly greater).

    Args:
        snapshot: Prices captured before ingestion
        current_products: Competitor products after ingestion, city loaded
        threshold_percent: Significance threshold (defaults to settings)

    Returns:
        Significant changes
    """
    threshold = (
        threshold_percent
        if threshold_percent is not None
        else settings.price_change_threshold_percent
    )
    changes: list[PriceChange] = []

    for product in current_products:
        key = key_for(product)
        old_price = snapshot.get(key)
        if old_price is None or old_price == 0:
            continue

        change_percent = (product.price_usd - old_price) / old_price * 100
        if abs(change_percent) > threshold:
            changes.append(
                PriceChange(
                    competitor=key.competitor,
                    product_name=key.product_name,
                    city_name=key.city_name,
                    old_price=old_price,
                    new_price=product.price_usd,
                    change_percent=change_percent,
                    competitor_product_id=product.id,
                )
            )

    return changes


async def record_changes(db: AsyncSession, changes: Iterable[PriceChange]) -> list[PriceHistory]:
    """Append one PriceHistory row per change (caller commits)."""
    rows = []
    for change in changes:
        rows.append(
            PriceHistory(
                competitor_product_id=change.competitor_product_id,
                competitor=change.competitor,
                product_name=change.product_name,
                city_name=change.city_name,
                old_price=change.old_price,
                new_price=change.new_price,
                change_percent=change.change_percent,
            )
        )
        metrics.price_changes_total.labels(
            provider=change.competitor, direction=change.direction
        ).inc()
        logger.info(
            f"Price change {change.competitor} {change.product_name} in {change.city_name}: "
            f"${change.old_price:.2f} -> ${change.new_price:.2f} ({change.change_percent:+.1f}%)"
        )

    db.add_all(rows)
    await db.flush()
    return rows
