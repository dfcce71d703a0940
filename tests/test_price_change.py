"""Tests for price-change detection."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from pricetracker.db.models import PriceHistory
from pricetracker.detect.price_change import (
    PriceKey,
    PriceSnapshot,
    SnapshotOrderError,
    capture_snapshot,
    detect_changes,
    record_changes,
)


@pytest.mark.asyncio
async def test_snapshot_keys(db_session, make_city, make_competitor):
    city = await make_city()
    await make_competitor(city, price=100.0)

    snapshot = await capture_snapshot(db_session)

    assert len(snapshot) == 1
    assert snapshot.get(PriceKey("TERASWITCH", "EPYC-9354-384GB", "Ashburn")) == 100.0


@pytest.mark.asyncio
async def test_increase_above_threshold_is_recorded(db_session, make_city, make_competitor):
    """100 -> 115 is a 15% change: one change and one history row."""
    city = await make_city()
    product = await make_competitor(city, price=100.0)
    snapshot = await capture_snapshot(db_session)

    product.price_usd = 115.0
    changes = detect_changes(snapshot, [product], threshold_percent=10)
    assert len(changes) == 1
    assert changes[0].change_percent == pytest.approx(15.0)
    assert changes[0].direction == "increase"

    await record_changes(db_session, changes)
    rows = (await db_session.execute(select(PriceHistory))).scalars().all()
    assert len(rows) == 1
    assert rows[0].old_price == 100.0
    assert rows[0].new_price == 115.0
    assert rows[0].competitor_product_id == product.id
    assert rows[0].city_name == "Ashburn"


@pytest.mark.asyncio
async def test_small_change_is_ignored(db_session, make_city, make_competitor):
    """100 -> 105 stays under the threshold."""
    city = await make_city()
    product = await make_competitor(city, price=100.0)
    snapshot = await capture_snapshot(db_session)

    product.price_usd = 105.0
    assert detect_changes(snapshot, [product], threshold_percent=10) == []


@pytest.mark.asyncio
async def test_threshold_is_strict(db_session, make_city, make_competitor):
    city = await make_city()
    product = await make_competitor(city, price=100.0)
    snapshot = await capture_snapshot(db_session)

    product.price_usd = 110.0
    assert detect_changes(snapshot, [product], threshold_percent=10) == []

    product.price_usd = 80.0
    changes = detect_changes(snapshot, [product], threshold_percent=10)
    assert changes[0].direction == "decrease"


@pytest.mark.asyncio
async def test_new_products_never_change(db_session, make_city, make_competitor):
    city = await make_city()
    snapshot = await capture_snapshot(db_session)
    product = await make_competitor(city, price=100.0)

    assert detect_changes(snapshot, [product], threshold_percent=10) == []


@pytest.mark.asyncio
async def test_zero_old_price_is_skipped(db_session, make_city, make_competitor):
    city = await make_city()
    product = await make_competitor(city, price=0.0)
    snapshot = await capture_snapshot(db_session)

    product.price_usd = 50.0
    assert detect_changes(snapshot, [product], threshold_percent=10) == []


def test_snapshot_must_precede_ingestion():
    now = datetime.utcnow()
    snapshot = PriceSnapshot(prices={}, captured_at=now)

    snapshot.ensure_captured_before(now)
    snapshot.ensure_captured_before(now + timedelta(seconds=1))
    with pytest.raises(SnapshotOrderError):
        snapshot.ensure_captured_before(now - timedelta(seconds=1))
