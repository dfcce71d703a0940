"""Price difference, price position and spec similarity."""

from enum import Enum

# Tie band half-width in percent, shared by every price-position consumer
PRICE_POSITION_THRESHOLD = 10.0


class PricePosition(str, Enum):
    """Where the reference SKU stands against a competitor."""

    CHEAPER = "cheaper"  # Reference wins
    COMPETITIVE = "competitive"
    MORE_EXPENSIVE = "more_expensive"  # Reference loses


def calculate_price_difference(reference_price: float, competitor_price: float) -> float:
    """
    Percent difference of the competitor price over the reference price.

    Positive means the reference SKU is cheaper. A zero reference price
    yields 0.
    """
    if reference_price == 0:
        return 0.0
    return (competitor_price - reference_price) / reference_price * 100


def classify_price_position(price_difference_percent: float) -> PricePosition:
    """Bucket a price difference; exactly +/-10 stays competitive."""
    if price_difference_percent > PRICE_POSITION_THRESHOLD:
        return PricePosition.CHEAPER
    if price_difference_percent < -PRICE_POSITION_THRESHOLD:
        return PricePosition.MORE_EXPENSIVE
    return PricePosition.COMPETITIVE


def _component_similarity(a: float, b: float) -> float:
    largest = max(a, b)
    if largest <= 0:
        return 100.0
    return 100 - abs(a - b) / largest * 100


def calculate_spec_similarity(
    cores_a: int,
    ram_a: int,
    storage_tb_a: float,
    cores_b: int,
    ram_b: int,
    storage_tb_b: float,
) -> int:
    """
    Similarity score between two products (0-100).

    Weighted: CPU cores 40%, RAM 35%, storage 25%.
    """
    score = (
        _component_similarity(cores_a, cores_b) * 0.40
        + _component_similarity(ram_a, ram_b) * 0.35
        + _component_similarity(storage_tb_a, storage_tb_b) * 0.25
    )
    return int(score + 0.5)
