"""
Baseline-referenced standardized mean difference (d_BR), batch calculator.

Each (group, sub-unit) series is a session-ordered list of
``(phase_label, correct_count)`` pairs. Zero baseline variance is kept as a
non-finite estimate so the repair pass can find it.
"""

from __future__ import annotations

import math
import warnings
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple

import numpy as np
import pandas as pd

from ..errors import ComputationUndefined
from ..preprocessing.constants import (
    GROUP_COLUMNS,
    SESSION_COL,
    SMD_VARIANTS,
    SUBUNIT_COL,
    BASELINE_PHASE,
    TREATMENT_PHASE,
)
from ..preprocessing.core import require_columns
from .records import GroupKey, SubunitEstimate

SeriesKey = Tuple[GroupKey, str]
PhaseSeries = Sequence[Tuple[str, float]]


def baseline_sd(values: Sequence[float]) -> float:
    """Sample SD (ddof=1); a single observation gives 0 by convention."""
    if len(values) == 0:
        return float("nan")
    if len(values) < 2:
        return 0.0
    return float(np.std(np.asarray(values, dtype=float), ddof=1))


def standardized_difference(mean_diff: float, sd: float) -> float:
    """mean_diff / sd, with the signed-infinity convention for sd == 0."""
    if not math.isfinite(mean_diff) or not math.isfinite(sd):
        return float("nan")
    if sd > 0:
        return mean_diff / sd
    if mean_diff > 0:
        return float("inf")
    if mean_diff < 0:
        return float("-inf")
    return float("nan")


def compute_subunit_estimate(
    group: GroupKey,
    subunit: str,
    observations: Iterable[Tuple[str, float]],
    baseline_label: str = BASELINE_PHASE,
    treatment_label: str = TREATMENT_PHASE,
) -> SubunitEstimate:
    baseline: List[float] = []
    treatment: List[float] = []
    for label, count in observations:
        if label == baseline_label:
            baseline.append(float(count))
        elif label == treatment_label:
            treatment.append(float(count))

    bl_mean = float(np.mean(baseline)) if baseline else float("nan")
    tx_mean = float(np.mean(treatment)) if treatment else float("nan")
    sd = baseline_sd(baseline)

    if not baseline or not treatment:
        warnings.warn(
            f"{'/'.join(map(str, group))}/{subunit}: needs at least one '{baseline_label}' and one "
            f"'{treatment_label}' session (got {len(baseline)} and {len(treatment)})",
            ComputationUndefined,
            stacklevel=2,
        )
        estimate = float("nan")
    else:
        estimate = standardized_difference(tx_mean - bl_mean, sd)

    return SubunitEstimate(
        group=tuple(group),
        subunit=subunit,
        baseline_mean=bl_mean,
        treatment_mean=tx_mean,
        baseline_sd=sd,
        estimate=estimate,
        n_baseline=len(baseline),
        n_treatment=len(treatment),
    )


def compute_subunit_estimates(
    series: Mapping[SeriesKey, PhaseSeries],
    baseline_label: str = BASELINE_PHASE,
    treatment_label: str = TREATMENT_PHASE,
) -> List[SubunitEstimate]:
    """One SubunitEstimate per (group, sub-unit) key, in mapping order."""
    return [
        compute_subunit_estimate(group, subunit, observations, baseline_label, treatment_label)
        for (group, subunit), observations in series.items()
    ]


def resolve_variant(variant: str) -> Tuple[str, str, str]:
    if variant not in SMD_VARIANTS:
        raise ValueError(f"Unknown SMD variant: {variant}. Valid variants: {sorted(SMD_VARIANTS)}")
    return SMD_VARIANTS[variant]


def build_subunit_series(
    sessions: pd.DataFrame,
    phase_column: str,
    labels: Sequence[str],
    group_columns: Sequence[str] = GROUP_COLUMNS,
    subunit_column: str = SUBUNIT_COL,
    value_column: str = "correct",
) -> Dict[SeriesKey, List[Tuple[str, float]]]:
    """
    Turn a session-count table into the mapping the batch calculator reads.

    Only sessions whose ``phase_column`` value is one of ``labels`` are kept;
    each series is ordered by session.
    """
    group_columns = list(group_columns)
    require_columns(
        sessions,
        group_columns + [subunit_column, SESSION_COL, phase_column, value_column],
        where="session table",
    )
    subset = sessions[sessions[phase_column].isin(list(labels))]
    subset = subset.sort_values(group_columns + [subunit_column, SESSION_COL])

    series: Dict[SeriesKey, List[Tuple[str, float]]] = {}
    for keys, grp in subset.groupby(group_columns + [subunit_column], sort=False):
        *group_values, subunit = keys
        key = (tuple(str(v) for v in group_values), str(subunit))
        series[key] = list(zip(grp[phase_column].astype(str), grp[value_column].astype(float)))
    return series


def smd_by_subunit(
    sessions: pd.DataFrame,
    variant: str = "phase",
    group_columns: Sequence[str] = GROUP_COLUMNS,
) -> List[SubunitEstimate]:
    """
    Compute d_BR for every (group, sub-unit) in a session-count table.

    variant="phase" compares baseline vs treatment sessions; "prepost" compares
    sessions tagged pre vs post.
    """
    phase_column, baseline_label, treatment_label = resolve_variant(variant)
    series = build_subunit_series(
        sessions,
        phase_column=phase_column,
        labels=(baseline_label, treatment_label),
        group_columns=group_columns,
    )
    return compute_subunit_estimates(series, baseline_label, treatment_label)
