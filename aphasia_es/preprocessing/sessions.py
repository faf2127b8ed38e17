"""
Session aggregation: per-trial responses -> per-session correct counts.
"""

from __future__ import annotations

import pandas as pd

from .constants import (
    LIST_SIZE_COL,
    N_BASELINES_COL,
    PREPOST_COL,
    RESPONSE_COL,
    SESSION_KEY_COLUMNS,
)
from .core import require_columns

SESSION_COUNT_COLUMNS = SESSION_KEY_COLUMNS + [
    "correct",
    "n_trials",
    PREPOST_COL,
    LIST_SIZE_COL,
    N_BASELINES_COL,
]


def aggregate_session_counts(trials: pd.DataFrame) -> pd.DataFrame:
    """
    Sum correct responses and count trials for each session key.

    One row per (participant, session, phase, condition, item_type, phoneme).
    Aggregation is order independent, so rebuilding from the same trials
    returns the same table.
    """
    require_columns(trials, SESSION_KEY_COLUMNS + [RESPONSE_COL], where="trial table")
    if trials.empty:
        return pd.DataFrame(columns=SESSION_COUNT_COLUMNS)

    df = trials.copy()
    for col in (PREPOST_COL, LIST_SIZE_COL, N_BASELINES_COL):
        if col not in df.columns:
            df[col] = pd.NA

    grouped = df.groupby(SESSION_KEY_COLUMNS, sort=True, observed=True)
    counts = grouped.agg(
        correct=(RESPONSE_COL, "sum"),
        n_trials=(RESPONSE_COL, "size"),
        prepost=(PREPOST_COL, "first"),
        list_size=(LIST_SIZE_COL, "max"),
        n_baselines=(N_BASELINES_COL, "max"),
    ).reset_index()
    counts["correct"] = counts["correct"].astype(float)
    counts["n_trials"] = counts["n_trials"].astype(int)
    return counts[SESSION_COUNT_COLUMNS]
