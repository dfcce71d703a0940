"""Spec-range matcher: pairs competitor SKUs with reference SKUs."""

import logging
from typing import Iterable, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from pricetracker import metrics
from pricetracker.db import repository
from pricetracker.db.models import Comparison, CompetitorProduct, ReferenceProduct
from pricetracker.detect.pricing import calculate_price_difference
from pricetracker.detect.regional_pricing import RegionalPricingResolver
from pricetracker.detect.rules import RuleBook, load_rules

logger = logging.getLogger(__name__)


def is_candidate(competitor: CompetitorProduct, rules: RuleBook) -> bool:
    """Eligible CPU, home-region city and (optionally) in stock."""
    if not rules.eligibility.is_eligible(competitor.cpu):
        return False
    city = competitor.city
    if city is None or not rules.home_regions.is_home_region(city.name, city.country):
        return False
    if not rules.include_out_of_stock and not competitor.in_stock:
        return False
    return True


def generate_comparisons(
    reference_products: Iterable[ReferenceProduct],
    competitor_products: Sequence[CompetitorProduct],
    rules: RuleBook,
    resolver: RegionalPricingResolver,
) -> list[Comparison]:
    """
    Build one Comparison per (reference, competitor) pair inside the window.

    Competitor products must have their city loaded. A competitor product
    that falls into several windows yields several comparisons.

    Args:
        reference_products: Reference SKUs
        competitor_products: Persisted competitor SKUs
        rules: Tolerance windows, eligibility and home regions
        resolver: Regional price lookup keyed by competitor country

    Returns:
        Unsaved Comparison rows
    """
    candidates = [cp for cp in competitor_products if is_candidate(cp, rules)]
    comparisons: list[Comparison] = []

    for reference in reference_products:
        window = rules.window_for(reference.name)
        if window is None:
            logger.warning(f"No tolerance window for {reference.name}, skipping")
            continue

        matched = 0
        for cp in candidates:
            if not window.contains(cp.cpu_cores, cp.ram_gb):
                continue
            reference_price = resolver.resolve_price(reference, cp.city.country)
            comparisons.append(
                Comparison(
                    reference_product_id=reference.id,
                    competitor_product_id=cp.id,
                    price_difference_percent=calculate_price_difference(
                        reference_price, cp.price_usd
                    ),
                    regional_reference_price_usd=reference_price,
                    notes=(
                        f"Auto-matched: {cp.cpu_cores} cores, {cp.ram_gb}GB RAM vs "
                        f"{reference.cpu_cores} cores, {reference.ram_gb}GB RAM"
                    ),
                )
            )
            matched += 1

        logger.debug(f"{reference.name}: {matched} matches")

    return comparisons


async def regenerate_comparisons(db: AsyncSession, rules: Optional[RuleBook] = None) -> int:
    """
    Delete every comparison and rebuild the set from current products.

    Runs inside the caller's transaction; the caller commits.

    Returns:
        Number of comparisons created
    """
    rules = rules or load_rules()
    references = await repository.list_reference_products(db)
    competitors = await repository.list_competitor_products(db)
    resolver = await RegionalPricingResolver().load_prices(db)

    comparisons = generate_comparisons(references, competitors, rules, resolver)
    created = await repository.replace_comparisons(db, comparisons)

    metrics.comparisons_generated.set(created)
    logger.info(
        f"Generated {created} comparisons from {len(references)} reference and "
        f"{len(competitors)} competitor products (rules {rules.version})"
    )
    return created


async def recalculate_comparisons(db: AsyncSession) -> int:
    """
    Recompute price differences of existing comparisons without re-matching.

    Returns:
        Number of comparisons updated
    """
    result = await db.execute(
        select(Comparison).options(
            selectinload(Comparison.reference_product),
            selectinload(Comparison.competitor_product).selectinload(CompetitorProduct.city),
        )
    )
    comparisons = result.scalars().all()
    resolver = await RegionalPricingResolver().load_prices(db)

    for comparison in comparisons:
        competitor = comparison.competitor_product
        reference_price = resolver.resolve_price(
            comparison.reference_product, competitor.city.country
        )
        comparison.regional_reference_price_usd = reference_price
        comparison.price_difference_percent = calculate_price_difference(
            reference_price, competitor.price_usd
        )

    await db.flush()
    logger.info(f"Recalculated {len(comparisons)} comparisons")
    return len(comparisons)
