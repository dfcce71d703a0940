"""CPU generation eligibility classifier."""

import re
from dataclasses import dataclass, field


@dataclass(frozen=True)
class EligibilityPolicy:
    """
    Which CPU generations are candidates for comparison.

    A descriptor is eligible when it contains the family marker followed by
    a 4-digit model whose leading digit is a modern series (or a legacy
    series when legacy is included), or when it names a modern codename
    next to the family marker.
    """

    family: str = "epyc"
    modern_series: tuple[str, ...] = ("9", "4")
    legacy_series: tuple[str, ...] = ("7",)
    codenames: tuple[str, ...] = ("genoa", "turin", "raphael", "bergamo")
    include_legacy: bool = False
    _pattern: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(
            self,
            "_pattern",
            re.compile(rf"{re.escape(self.family.lower())}[- _]?(\d)\d{{3}}"),
        )

    @classmethod
    def from_config(cls, data: dict) -> "EligibilityPolicy":
        return cls(
            family=data.get("family", "epyc"),
            modern_series=tuple(data.get("modern_series", ("9", "4"))),
            legacy_series=tuple(data.get("legacy_series", ("7",))),
            codenames=tuple(c.lower() for c in data.get("codenames", ())),
            include_legacy=bool(data.get("include_legacy", False)),
        )

    @property
    def allowed_series(self) -> frozenset[str]:
        series = set(self.modern_series)
        if self.include_legacy:
            series.update(self.legacy_series)
        return frozenset(series)

    def is_eligible(self, cpu_description: str) -> bool:
        """Case-insensitive eligibility check of a free-text CPU descriptor."""
        text = (cpu_description or "").lower()
        if self.family.lower() not in text:
            return False

        allowed = self.allowed_series
        for match in self._pattern.finditer(text):
            if match.group(1) in allowed:
                return True

        return any(codename in text for codename in self.codenames)


DEFAULT_POLICY = EligibilityPolicy()


def is_eligible(cpu_description: str, policy: EligibilityPolicy = DEFAULT_POLICY) -> bool:
    return policy.is_eligible(cpu_description)
