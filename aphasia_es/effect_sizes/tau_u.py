"""
Tau-U non-overlap effect size for single-case phase comparisons.

References:
- Parker, R. I., Vannest, K. J., Davis, J. L., & Sauber, S. B. (2011).
  Combining nonoverlap and trend for single-case research: Tau-U.
  Behavior Therapy, 42(2), 284-299.
"""

from __future__ import annotations

import warnings
from dataclasses import asdict, dataclass
from typing import Sequence

import numpy as np
import pandas as pd
from scipy import stats

from ..errors import ComputationUndefined
from ..preprocessing.constants import GROUP_COLUMNS, SESSION_COL
from .pmg import group_session_totals
from .smd import resolve_variant


@dataclass(frozen=True)
class TauUResult:
    tau: float
    s: float
    se: float
    z: float
    p: float
    n_baseline: int
    n_treatment: int
    trend_corrected: bool


def kendall_s(values: Sequence[float]) -> float:
    """Kendall's S within one phase: concordant minus discordant time pairs."""
    x = np.asarray(values, dtype=float)
    if x.size < 2:
        return 0.0
    diffs = np.sign(x[None, :] - x[:, None])
    return float(np.triu(diffs, k=1).sum())


def phase_comparison_s(baseline: Sequence[float], treatment: Sequence[float]) -> float:
    """S over all (baseline, treatment) pairs: +1 if treatment is higher, -1 if lower."""
    a = np.asarray(baseline, dtype=float)
    b = np.asarray(treatment, dtype=float)
    if a.size == 0 or b.size == 0:
        return 0.0
    return float(np.sign(b[None, :] - a[:, None]).sum())


def tau_u(
    baseline: Sequence[float],
    treatment: Sequence[float],
    correct_baseline_trend: bool = False,
) -> TauUResult:
    """
    Tau-U = (S_AB - S_A) / (n_A * n_B), S_A only when correcting baseline trend.

    The variance adds the Mann-Whitney S variance and, for the corrected
    statistic, the Kendall S variance of the baseline.
    """
    n_a = len(baseline)
    n_b = len(treatment)
    if n_a == 0 or n_b == 0:
        warnings.warn(
            f"Tau-U needs sessions in both phases (got {n_a} and {n_b})",
            ComputationUndefined,
            stacklevel=2,
        )
        nan = float("nan")
        return TauUResult(nan, nan, nan, nan, nan, n_a, n_b, correct_baseline_trend)

    s = phase_comparison_s(baseline, treatment)
    var_s = n_a * n_b * (n_a + n_b + 1) / 3.0
    if correct_baseline_trend:
        s -= kendall_s(baseline)
        var_s += n_a * (n_a - 1) * (2 * n_a + 5) / 18.0

    denom = n_a * n_b
    tau = s / denom
    se = float(np.sqrt(var_s)) / denom
    z = tau / se if se > 0 else float("nan")
    p = float(2 * stats.norm.sf(abs(z))) if np.isfinite(z) else float("nan")
    return TauUResult(float(tau), float(s), se, float(z), p, n_a, n_b, correct_baseline_trend)


def tau_u_by_group(
    sessions: pd.DataFrame,
    variant: str = "phase",
    correct_baseline_trend: bool = False,
    group_columns: Sequence[str] = GROUP_COLUMNS,
) -> pd.DataFrame:
    """Tau-U per group on session totals summed over sub-units, in session order."""
    group_columns = list(group_columns)
    phase_column, baseline_label, treatment_label = resolve_variant(variant)
    totals = group_session_totals(sessions, phase_column, (baseline_label, treatment_label), group_columns)

    rows = []
    for keys, grp in totals.groupby(group_columns, sort=True):
        keys = keys if isinstance(keys, tuple) else (keys,)
        grp = grp.sort_values(SESSION_COL)
        result = tau_u(
            grp.loc[grp["label"] == baseline_label, "correct"].to_numpy(dtype=float),
            grp.loc[grp["label"] == treatment_label, "correct"].to_numpy(dtype=float),
            correct_baseline_trend=correct_baseline_trend,
        )
        row = dict(zip(group_columns, keys))
        row.update(asdict(result))
        rows.append(row)
    columns = group_columns + list(TauUResult.__dataclass_fields__)
    return pd.DataFrame(rows, columns=columns)
