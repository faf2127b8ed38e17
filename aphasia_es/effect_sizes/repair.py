"""
Degenerate-variance repair and aggregation to one estimate per group.

A sub-unit whose baseline is constant has SD 0 and a non-finite d_BR. Within
the same group, the largest baseline SD among sub-units with a finite estimate
is borrowed and the estimate recomputed. Groups never share donors.
"""

from __future__ import annotations

import math
import warnings
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

from ..errors import DegenerateVariance
from ..preprocessing.constants import GROUP_COLUMNS, SUBUNIT_COL
from .records import GroupEstimate, GroupKey, SubunitEstimate


def _by_group(estimates: Iterable[SubunitEstimate]) -> Dict[GroupKey, List[SubunitEstimate]]:
    grouped: Dict[GroupKey, List[SubunitEstimate]] = {}
    for est in estimates:
        grouped.setdefault(est.group, []).append(est)
    return grouped


def select_donor_sd(estimates: Sequence[SubunitEstimate]) -> Optional[float]:
    """Largest baseline SD among sub-units whose own estimate is finite."""
    donors = [
        est.baseline_sd
        for est in estimates
        if est.is_finite and math.isfinite(est.baseline_sd) and est.baseline_sd > 0
    ]
    if not donors:
        return None
    return max(donors)


def repair_group(estimates: Sequence[SubunitEstimate]) -> List[SubunitEstimate]:
    """
    Repair the degenerate sub-units of a single group.

    The donor is chosen from the group's estimates as computed, before any
    substitution, so the pass is single and repeated calls are a no-op.
    Sub-units with an undefined mean difference are left missing.
    """
    estimates = list(estimates)
    if len({est.group for est in estimates}) > 1:
        raise ValueError("repair_group expects estimates from a single group")
    if all(est.is_finite for est in estimates):
        return estimates

    donor = select_donor_sd(estimates)
    repaired: List[SubunitEstimate] = []
    for est in estimates:
        if est.is_finite or not est.is_degenerate:
            repaired.append(est)
            continue
        if donor is None:
            warnings.warn(
                f"{'/'.join(map(str, est.group))}/{est.subunit}: zero baseline SD and no "
                "finite sibling to borrow from",
                DegenerateVariance,
                stacklevel=2,
            )
            repaired.append(est)
            continue
        repaired.append(
            replace(
                est,
                baseline_sd=donor,
                estimate=est.mean_diff / donor,
                imputed=True,
            )
        )
    return repaired


def repair_estimates(estimates: Iterable[SubunitEstimate]) -> List[SubunitEstimate]:
    """Run ``repair_group`` on every group; output keeps group order."""
    repaired: List[SubunitEstimate] = []
    for group_estimates in _by_group(estimates).values():
        repaired.extend(repair_group(group_estimates))
    return repaired


def aggregate_group(estimates: Sequence[SubunitEstimate]) -> GroupEstimate:
    """Mean of the finite sub-unit estimates and their baseline SDs."""
    estimates = list(estimates)
    if not estimates:
        raise ValueError("aggregate_group needs at least one sub-unit estimate")
    group = estimates[0].group
    finite = [est for est in estimates if est.is_finite]
    if not finite:
        return GroupEstimate(group=group, estimate=None, baseline_sd=None, imputed=False, n_subunits=0)

    n_imputed = sum(1 for est in finite if est.imputed)
    return GroupEstimate(
        group=group,
        estimate=float(np.mean([est.estimate for est in finite])),
        baseline_sd=float(np.mean([est.baseline_sd for est in finite])),
        imputed=n_imputed > 0,
        n_subunits=len(finite),
        n_imputed=n_imputed,
    )


def aggregate_groups(estimates: Iterable[SubunitEstimate]) -> List[GroupEstimate]:
    return [aggregate_group(group_estimates) for group_estimates in _by_group(estimates).values()]


def estimates_to_frame(
    estimates: Iterable[SubunitEstimate],
    group_columns: Sequence[str] = GROUP_COLUMNS,
) -> pd.DataFrame:
    columns = list(group_columns) + [
        SUBUNIT_COL,
        "baseline_mean",
        "treatment_mean",
        "baseline_sd",
        "estimate",
        "n_baseline",
        "n_treatment",
        "imputed",
    ]
    rows = []
    for est in estimates:
        row = dict(zip(group_columns, est.group))
        row.update(
            {
                SUBUNIT_COL: est.subunit,
                "baseline_mean": est.baseline_mean,
                "treatment_mean": est.treatment_mean,
                "baseline_sd": est.baseline_sd,
                "estimate": est.estimate,
                "n_baseline": est.n_baseline,
                "n_treatment": est.n_treatment,
                "imputed": est.imputed,
            }
        )
        rows.append(row)
    return pd.DataFrame(rows, columns=columns)


def groups_to_frame(
    groups: Iterable[GroupEstimate],
    group_columns: Sequence[str] = GROUP_COLUMNS,
) -> pd.DataFrame:
    """Output table; missing estimates are NaN, never 0."""
    columns = list(group_columns) + ["estimate", "baseline_sd", "imputed", "n_subunits", "n_imputed"]
    rows = []
    for grp in groups:
        row = dict(zip(group_columns, grp.group))
        row.update(
            {
                "estimate": np.nan if grp.estimate is None else grp.estimate,
                "baseline_sd": np.nan if grp.baseline_sd is None else grp.baseline_sd,
                "imputed": grp.imputed,
                "n_subunits": grp.n_subunits,
                "n_imputed": grp.n_imputed,
            }
        )
        rows.append(row)
    out = pd.DataFrame(rows, columns=columns)
    out["estimate"] = out["estimate"].astype(float)
    out["baseline_sd"] = out["baseline_sd"].astype(float)
    out["imputed"] = out["imputed"].astype(bool)
    return out
