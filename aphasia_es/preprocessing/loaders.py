"""Trial loaders (de-identified probe data)."""

from __future__ import annotations

from pathlib import Path

import pandas as pd

from .constants import (
    CONDITION_COL,
    ITEM_COL,
    ITEM_TYPE_COL,
    LIST_SIZE_COL,
    N_BASELINES_COL,
    PHASE_COL,
    PREPOST_COL,
    REQUIRED_TRIAL_COLUMNS,
    RESPONSE_COL,
    SESSION_COL,
    SUBUNIT_COL,
    TRIAL_COLUMNS,
    get_trials_path,
)
from .core import coerce_response, ensure_participant, normalize_label_series, require_columns


def _read_csv(path: Path) -> pd.DataFrame:
    if not path.exists():
        raise FileNotFoundError(f"Trial file not found: {path}")
    return pd.read_csv(path, encoding="utf-8-sig")


def prepare_trials(trials: pd.DataFrame, verbose: bool = False) -> pd.DataFrame:
    """
    Normalise a raw trial table to canonical columns and dtypes.

    Missing required columns raise ``DataShapeError``. Rows without a key value
    or a usable 0/1 response are dropped.
    """
    df = ensure_participant(trials)
    require_columns(df, REQUIRED_TRIAL_COLUMNS, where="trial table")

    for col in (CONDITION_COL, ITEM_TYPE_COL, PHASE_COL):
        df[col] = normalize_label_series(df[col])
    df[SUBUNIT_COL] = df[SUBUNIT_COL].astype("string").str.strip()

    if PREPOST_COL in df.columns:
        df[PREPOST_COL] = normalize_label_series(df[PREPOST_COL])
    else:
        df[PREPOST_COL] = pd.Series(pd.NA, index=df.index, dtype="string")

    df[SESSION_COL] = pd.to_numeric(df[SESSION_COL], errors="coerce").astype("Int64")
    df[RESPONSE_COL] = coerce_response(df[RESPONSE_COL])
    for col in (LIST_SIZE_COL, N_BASELINES_COL):
        if col in df.columns:
            df[col] = pd.to_numeric(df[col], errors="coerce").astype("Int64")
        else:
            df[col] = pd.Series(pd.NA, index=df.index, dtype="Int64")
    if ITEM_COL in df.columns:
        df[ITEM_COL] = df[ITEM_COL].astype("string")
    else:
        df[ITEM_COL] = pd.Series(pd.NA, index=df.index, dtype="string")

    before = len(df)
    df = df.dropna(subset=REQUIRED_TRIAL_COLUMNS)
    dropped = before - len(df)
    if verbose and dropped:
        print(f"  [WARN] dropped {dropped} trial rows with missing keys or responses")

    extra = [col for col in df.columns if col not in TRIAL_COLUMNS]
    return df[TRIAL_COLUMNS + extra].reset_index(drop=True)


def load_trials(path: Path | None = None, verbose: bool = True) -> pd.DataFrame:
    """Read and normalise the de-identified trial CSV."""
    if path is None:
        path = get_trials_path()
    raw = _read_csv(Path(path))
    trials = prepare_trials(raw, verbose=verbose)
    if verbose:
        n_participants = trials["participant"].nunique()
        print(f"  [INFO] trials: {len(trials)} rows, {n_participants} participants ({path})")
    return trials
