"""Unit conversions from vendor encodings into the canonical product schema.

Canonical units:
- RAM: whole gigabytes
- Storage: human-readable description plus total capacity in TB (1 TB = 1000 GB)
- Network: whole Gbps
- Price: USD, two decimals
"""

import logging
import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, NamedTuple, Optional

logger = logging.getLogger(__name__)

_CAPACITY_RE = re.compile(r"([\d.]+)\s*(TB|GB|MB)", re.IGNORECASE)
_SPEED_RE = re.compile(r"([\d.]+)\s*(Gbps|Mbps|G|M)\b", re.IGNORECASE)

_GB_PER_UNIT = {
    "MB": Decimal("0.001"),
    "GB": Decimal("1"),
    "TB": Decimal("1000"),
}


def round_half_up(value: float | Decimal, places: int = 0) -> Decimal:
    """Round half away from zero (vendor prices are rounded this way)."""
    quantum = Decimal(1).scaleb(-places)
    return Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)


def mb_to_gb(value_mb: float) -> int:
    """Convert a RAM amount in MB to whole GB (value / 1024, rounded)."""
    return int(round_half_up(Decimal(str(value_mb)) / Decimal(1024)))


def capacity_to_gb(capacity: float | str, unit: str) -> Decimal:
    """
    Convert a drive capacity to gigabytes.

    Args:
        capacity: Numeric capacity in ``unit``
        unit: MB, GB or TB (case-insensitive)

    Returns:
        Capacity in GB as an exact Decimal

    Raises:
        ValueError: If the unit is unknown
    """
    try:
        factor = _GB_PER_UNIT[unit.strip().upper()]
    except KeyError:
        raise ValueError(f"Unknown capacity unit: {unit!r}") from None
    return Decimal(str(capacity)) * factor


def parse_capacity_gb(text: str) -> Optional[Decimal]:
    """Parse capacities such as '500 GB', '1 TB' or '960GB'."""
    match = _CAPACITY_RE.search(text or "")
    if not match:
        return None
    return capacity_to_gb(match.group(1), match.group(2))


def format_capacity(capacity_gb: Decimal | float) -> str:
    """Format a GB amount as '480GB' or '1.92TB'."""
    gb = Decimal(str(capacity_gb))
    if gb >= 1000:
        return f"{_plain(gb / 1000)}TB"
    return f"{_plain(gb)}GB"


def _plain(value: Decimal) -> str:
    return format(value.normalize(), "f")


@dataclass(frozen=True)
class DriveDescriptor:
    """A group of identical drives."""

    count: int
    capacity: float
    unit: str = "GB"
    type: str = ""

    @property
    def capacity_gb(self) -> Decimal:
        return capacity_to_gb(self.capacity, self.unit)


class StorageSummary(NamedTuple):
    description: str
    total_tb: float


def summarize_storage(
    drives: Iterable[Optional[DriveDescriptor]],
    empty_description: str = "Not specified",
) -> StorageSummary:
    """
    Build a storage description and total capacity.

    ``total_tb`` is sum(count * capacity_gb) / 1000 whatever unit each
    drive was given in. ``None`` entries (slots without a matching drive
    option) are skipped.
    """
    parts: list[str] = []
    total_gb = Decimal(0)

    for drive in drives:
        if drive is None or drive.count <= 0:
            continue
        capacity_gb = drive.capacity_gb
        total_gb += drive.count * capacity_gb
        label = f"{drive.count}x {format_capacity(capacity_gb)}"
        if drive.type:
            label = f"{label} {drive.type}"
        parts.append(label)

    return StorageSummary(
        description=" + ".join(parts) or empty_description,
        total_tb=float(total_gb / 1000),
    )


def mbps_to_gbps(value_mbps: float) -> float:
    """Convert Mbps to Gbps."""
    return value_mbps / 1000


def parse_network_speed(text: str) -> Optional[float]:
    """Parse '10 Gbps', '25G' or '100 Mbps' into Gbps."""
    match = _SPEED_RE.search(text or "")
    if not match:
        return None
    speed = float(match.group(1))
    if match.group(2).lower().startswith("m"):
        return mbps_to_gbps(speed)
    return speed


def sum_port_capacities(capacities: Iterable[float], unit: str = "Gbps") -> int:
    """Total NIC capacity in whole Gbps for a multi-port uplink."""
    total = sum(capacities)
    if unit.lower().startswith("m"):
        total = mbps_to_gbps(total)
    return int(round_half_up(total))


def to_usd(
    amount: float | str, currency: str, rates: dict[str, float], places: int = 2
) -> float:
    """
    Convert an amount to USD using a static per-currency multiplier.

    The result is rounded half-up to ``places`` decimals (0 for providers
    that publish whole-dollar prices).

    Raises:
        ValueError: If no rate is configured for the currency
    """
    code = (currency or "USD").upper()
    if code not in rates:
        raise ValueError(f"No static USD rate configured for {code}")
    usd = Decimal(str(amount)) * Decimal(str(rates[code]))
    return float(round_half_up(usd, places))
