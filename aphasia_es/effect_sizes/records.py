"""Per-sub-unit and per-group effect-size records."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Tuple

GroupKey = Tuple[str, ...]


@dataclass(frozen=True)
class SubunitEstimate:
    """
    SMD for one (group, sub-unit) series.

    ``estimate`` is (treatment_mean - baseline_mean) / baseline_sd and is
    non-finite when the baseline SD is zero. When a phase has no sessions the
    means it depends on are NaN and so is the estimate.
    """

    group: GroupKey
    subunit: str
    baseline_mean: float
    treatment_mean: float
    baseline_sd: float
    estimate: float
    n_baseline: int
    n_treatment: int
    imputed: bool = False

    @property
    def mean_diff(self) -> float:
        return self.treatment_mean - self.baseline_mean

    @property
    def is_finite(self) -> bool:
        return math.isfinite(self.estimate)

    @property
    def is_defined(self) -> bool:
        """Both phases observed, so a mean difference exists."""
        return math.isfinite(self.baseline_mean) and math.isfinite(self.treatment_mean)

    @property
    def is_degenerate(self) -> bool:
        """Zero baseline SD with a defined mean difference (repairable)."""
        return self.is_defined and self.baseline_sd == 0


@dataclass(frozen=True)
class GroupEstimate:
    """One d_BR per group; ``estimate``/``baseline_sd`` are None when no sub-unit is finite after repair."""

    group: GroupKey
    estimate: Optional[float]
    baseline_sd: Optional[float]
    imputed: bool
    n_subunits: int
    n_imputed: int = 0

    @property
    def missing(self) -> bool:
        return self.estimate is None
