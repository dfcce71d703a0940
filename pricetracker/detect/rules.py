"""Versioned matching rules (tolerance windows, eligibility, home regions)."""

import logging
from dataclasses import dataclass
from typing import Optional

from pricetracker.config import load_json_table, settings
from pricetracker.detect.eligibility import EligibilityPolicy
from pricetracker.ingest.locations import HomeRegions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToleranceWindow:
    """Inclusive (cores, RAM) range a competitor SKU must fall into."""

    min_cores: int
    max_cores: int
    min_ram: int
    max_ram: int

    def contains(self, cores: int, ram_gb: int) -> bool:
        return (
            self.min_cores <= cores <= self.max_cores
            and self.min_ram <= ram_gb <= self.max_ram
        )


@dataclass
class RuleBook:
    """One version of the matching rules."""

    version: str
    eligibility: EligibilityPolicy
    home_regions: HomeRegions
    tolerance_windows: dict[str, ToleranceWindow]
    include_out_of_stock: bool = True

    def window_for(self, reference_name: str) -> Optional[ToleranceWindow]:
        return self.tolerance_windows.get(reference_name)

    @classmethod
    def from_config(cls, data: dict) -> "RuleBook":
        windows = {
            name: ToleranceWindow(
                min_cores=int(w["min_cores"]),
                max_cores=int(w["max_cores"]),
                min_ram=int(w["min_ram"]),
                max_ram=int(w["max_ram"]),
            )
            for name, w in data.get("tolerance_windows", {}).items()
        }
        return cls(
            version=str(data.get("version", "unversioned")),
            eligibility=EligibilityPolicy.from_config(data.get("eligibility", {})),
            home_regions=HomeRegions.from_config(data.get("home_regions", [])),
            tolerance_windows=windows,
            include_out_of_stock=bool(data.get("include_out_of_stock", True)),
        )


def load_rules(path: Optional[str] = None) -> RuleBook:
    """
    Load the rule book from disk.

    Called at the start of every pipeline run so that an edited rules file
    takes effect on the next run.

    Args:
        path: Override file (defaults to settings.matching_rules_path, then
              the bundled ``matching_rules.json``)

    Returns:
        RuleBook
    """
    override = path if path is not None else settings.matching_rules_path
    rules = RuleBook.from_config(load_json_table(override, "matching_rules.json"))
    logger.info(
        f"Loaded matching rules {rules.version}: "
        f"{len(rules.tolerance_windows)} windows, {len(rules.home_regions)} home regions"
    )
    return rules
