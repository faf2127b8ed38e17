"""
Proportion of potential maximal gain (PMG).

PMG = (treatment mean - baseline mean) / (max possible score - baseline mean),
computed per group on session totals summed over sub-units.
"""

from __future__ import annotations

import warnings
from typing import Sequence

import numpy as np
import pandas as pd

from ..errors import ComputationUndefined
from ..preprocessing.constants import GROUP_COLUMNS, SESSION_COL
from ..preprocessing.core import require_columns
from .smd import resolve_variant

PMG_COLUMNS = ["baseline_mean", "treatment_mean", "max_score", "pmg", "n_baseline", "n_treatment"]


def proportion_of_maximal_gain(baseline_mean: float, treatment_mean: float, max_score: float) -> float:
    headroom = max_score - baseline_mean
    if not np.isfinite(headroom) or headroom <= 0 or not np.isfinite(treatment_mean):
        return float("nan")
    return float((treatment_mean - baseline_mean) / headroom)


def group_session_totals(
    sessions: pd.DataFrame,
    phase_column: str,
    labels: Sequence[str],
    group_columns: Sequence[str] = GROUP_COLUMNS,
) -> pd.DataFrame:
    """Sum correct counts and trial counts over sub-units, one row per group session."""
    group_columns = list(group_columns)
    require_columns(
        sessions,
        group_columns + [SESSION_COL, phase_column, "correct", "n_trials"],
        where="session table",
    )
    subset = sessions[sessions[phase_column].isin(list(labels))]
    totals = (
        subset.groupby(group_columns + [SESSION_COL, phase_column], sort=True)
        .agg(correct=("correct", "sum"), n_trials=("n_trials", "sum"))
        .reset_index()
    )
    return totals.rename(columns={phase_column: "label"})


def pmg_by_group(
    sessions: pd.DataFrame,
    variant: str = "phase",
    group_columns: Sequence[str] = GROUP_COLUMNS,
) -> pd.DataFrame:
    """
    PMG for each (participant, condition, item_type) group.

    The maximum possible score is the mean number of trials per baseline
    session. Groups with an empty phase or a baseline at ceiling get NaN.
    """
    group_columns = list(group_columns)
    phase_column, baseline_label, treatment_label = resolve_variant(variant)
    totals = group_session_totals(sessions, phase_column, (baseline_label, treatment_label), group_columns)

    rows = []
    for keys, grp in totals.groupby(group_columns, sort=True):
        keys = keys if isinstance(keys, tuple) else (keys,)
        baseline = grp[grp["label"] == baseline_label]
        treatment = grp[grp["label"] == treatment_label]
        bl_mean = float(baseline["correct"].mean()) if not baseline.empty else np.nan
        tx_mean = float(treatment["correct"].mean()) if not treatment.empty else np.nan
        max_score = float(baseline["n_trials"].mean()) if not baseline.empty else np.nan

        value = proportion_of_maximal_gain(bl_mean, tx_mean, max_score)
        if np.isnan(value):
            warnings.warn(
                f"{'/'.join(map(str, keys))}: PMG undefined (baseline sessions={len(baseline)}, "
                f"treatment sessions={len(treatment)}, baseline mean={bl_mean}, max={max_score})",
                ComputationUndefined,
                stacklevel=2,
            )
        row = dict(zip(group_columns, keys))
        row.update(
            {
                "baseline_mean": bl_mean,
                "treatment_mean": tx_mean,
                "max_score": max_score,
                "pmg": value,
                "n_baseline": int(len(baseline)),
                "n_treatment": int(len(treatment)),
            }
        )
        rows.append(row)
    return pd.DataFrame(rows, columns=group_columns + PMG_COLUMNS)
