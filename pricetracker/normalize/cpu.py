"""CPU descriptor parsing (core counts)."""

import logging
import re
from typing import Optional

from pricetracker import metrics
from pricetracker.config import settings

logger = logging.getLogger(__name__)

# Physical cores per AMD EPYC model
EPYC_CORE_COUNTS: dict[str, int] = {
    # EPYC 9xxx (Genoa/Turin)
    "9124": 16,
    "9135": 16,
    "9175F": 16,
    "9224": 24,
    "9254": 24,
    "9255": 24,
    "9274F": 24,
    "9354": 32,
    "9354P": 32,
    "9355": 32,
    "9374F": 32,
    "9375F": 32,
    "9454": 48,
    "9454P": 48,
    "9455": 48,
    "9455P": 48,
    "9474F": 48,
    "9554": 64,
    "9554P": 64,
    "9555": 64,
    "9575F": 64,
    "9634": 84,
    "9654": 96,
    "9654P": 96,
    "9655": 96,
    "9684X": 96,
    "9754": 128,
    "9754S": 128,
    "9755": 128,
    "9965": 192,
    # EPYC 4xxx (Raphael)
    "4244P": 6,
    "4344P": 8,
    "4345P": 8,
    "4364P": 8,
    "4464P": 12,
    "4465P": 12,
    "4545P": 16,
    "4564P": 16,
    "4584PX": 16,
    # EPYC 7xxx (Rome/Milan)
    "7313": 16,
    "7313P": 16,
    "7402": 24,
    "7413": 24,
    "7443P": 24,
    "7451": 24,
    "7532": 32,
    "7542": 32,
    "7642": 48,
    "7702": 64,
    "7742": 64,
    "7763": 64,
}

# "(32c/64t", "24c @", "128-Core", "16 cores"
_EXPLICIT_CORES_RE = re.compile(r"(\d+)\s*(?:c(?=[/\s)@,]|$)|-?\s*cores?\b)", re.IGNORECASE)
_MODEL_RE = re.compile(r"\b(\d{4}[A-Z]*)\b", re.IGNORECASE)


def model_number(cpu_description: str) -> Optional[str]:
    """Extract a 4-digit CPU model number with its suffix (e.g. '9354P')."""
    match = _MODEL_RE.search(cpu_description or "")
    return match.group(1).upper() if match else None


def cores_for_model(model: str) -> Optional[int]:
    """Look up the core count of a known model, ignoring unknown suffixes."""
    if model in EPYC_CORE_COUNTS:
        return EPYC_CORE_COUNTS[model]
    base = model[:4]
    return EPYC_CORE_COUNTS.get(base)


def parse_cpu_cores(
    cpu_description: str,
    explicit: Optional[int] = None,
    default: Optional[int] = None,
) -> int:
    """
    Determine the physical core count for a CPU.

    Resolution order: an explicit numeric field, a core count written in
    the descriptor, the model-number table, then the configured default.
    Every fallback to the default is logged.

    Args:
        cpu_description: Free-text CPU descriptor
        explicit: Core count supplied by the provider, if any
        default: Fallback (defaults to settings.default_cpu_cores)

    Returns:
        Core count
    """
    if explicit:
        return int(explicit)

    match = _EXPLICIT_CORES_RE.search(cpu_description or "")
    if match:
        return int(match.group(1))

    model = model_number(cpu_description)
    if model:
        cores = cores_for_model(model)
        if cores:
            return cores

    fallback = default if default is not None else settings.default_cpu_cores
    metrics.cpu_core_fallbacks_total.inc()
    logger.warning(
        f"Unknown CPU core count for {cpu_description!r}, using default of {fallback}"
    )
    return fallback


def with_vendor(cpu_description: str) -> str:
    """Prefix a bare 'EPYC ...' model with its vendor name."""
    upper = cpu_description.upper()
    if "EPYC" in upper and "AMD" not in upper:
        return f"AMD {cpu_description}"
    return cpu_description
