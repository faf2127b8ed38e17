"""
Validation utilities for the de-identified trial table.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import pandas as pd

from .constants import (
    CONDITION_COL,
    ITEM_COL,
    ITEM_TYPE_COL,
    N_BASELINES_COL,
    PARTICIPANT_COL,
    PHASE_COL,
    PREPOST_COL,
    REQUIRED_TRIAL_COLUMNS,
    RESPONSE_COL,
    SESSION_COL,
    VALID_CONDITIONS,
    VALID_ITEM_TYPES,
    VALID_PREPOST,
    BASELINE_PHASE,
    TREATMENT_PHASE,
)
from .core import require_columns


@dataclass
class TrialValidationResult:
    ok: bool
    n_rows: int
    n_participants: int
    issues: list[str] = field(default_factory=list)


def _unexpected_values(series: pd.Series, valid: set[str]) -> list[str]:
    observed = set(series.dropna().astype(str))
    return sorted(observed - valid)


def validate_trials(trials: pd.DataFrame, raise_on_error: bool = False) -> TrialValidationResult:
    """
    Check a prepared trial table for content problems.

    Missing required columns are a shape error and always raise
    ``DataShapeError``. Content issues are collected; with ``raise_on_error``
    they raise ``ValueError``.
    """
    require_columns(trials, REQUIRED_TRIAL_COLUMNS, where="trial table")
    issues: list[str] = []

    bad = _unexpected_values(trials[CONDITION_COL], VALID_CONDITIONS)
    if bad:
        issues.append(f"unexpected condition values: {bad}")
    bad = _unexpected_values(trials[ITEM_TYPE_COL], VALID_ITEM_TYPES)
    if bad:
        issues.append(f"unexpected item_type values: {bad}")
    if PREPOST_COL in trials.columns:
        bad = _unexpected_values(trials[PREPOST_COL], VALID_PREPOST)
        if bad:
            issues.append(f"unexpected prepost values: {bad}")

    responses = pd.to_numeric(trials[RESPONSE_COL], errors="coerce")
    invalid_resp = int((~responses.isin([0, 1])).sum())
    if invalid_resp:
        issues.append(f"non-binary response values: {invalid_resp} rows")

    phases = set(trials[PHASE_COL].dropna().astype(str))
    for needed in (BASELINE_PHASE, TREATMENT_PHASE):
        if needed not in phases:
            issues.append(f"no '{needed}' phase rows found")

    if ITEM_COL in trials.columns and trials[ITEM_COL].notna().any():
        key = [PARTICIPANT_COL, CONDITION_COL, ITEM_TYPE_COL, SESSION_COL, ITEM_COL]
        dup_n = int(trials.dropna(subset=[ITEM_COL]).duplicated(subset=key).sum())
        if dup_n:
            issues.append(f"duplicated item responses within a session: {dup_n} rows")

    if N_BASELINES_COL in trials.columns:
        per_participant = trials.dropna(subset=[N_BASELINES_COL]).groupby(PARTICIPANT_COL)[N_BASELINES_COL].nunique()
        inconsistent = sorted(per_participant[per_participant > 1].index.astype(str))
        if inconsistent:
            issues.append(f"n_baselines varies within participant: {inconsistent}")

    result = TrialValidationResult(
        ok=not issues,
        n_rows=int(len(trials)),
        n_participants=int(trials[PARTICIPANT_COL].nunique()),
        issues=issues,
    )
    if raise_on_error and issues:
        raise ValueError("Trial validation failed:\n- " + "\n- ".join(issues))
    return result
