"""
Core helpers for preprocessing.
"""

from __future__ import annotations

from typing import Iterable
import warnings

import pandas as pd

from ..errors import DataShapeError
from .constants import COLUMN_ALIASES, PARTICIPANT_COL


def normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """
    Rename known aliases to canonical column names.

    An alias is only renamed when the canonical column is absent; leftover
    aliases are dropped so each canonical column appears exactly once.
    """
    df = df.copy()
    df.columns = [str(col).strip() for col in df.columns]
    rename_map: dict[str, str] = {}
    for col in df.columns:
        canonical = COLUMN_ALIASES.get(col)
        if canonical is None or canonical in df.columns or canonical in rename_map.values():
            continue
        rename_map[col] = canonical
    df = df.rename(columns=rename_map)
    leftovers = [col for col in df.columns if col in COLUMN_ALIASES]
    if leftovers:
        df = df.drop(columns=leftovers)
    return df


def require_columns(df: pd.DataFrame, columns: Iterable[str], where: str = "input table") -> None:
    missing = set(columns) - set(df.columns)
    if missing:
        raise DataShapeError(missing, where=where)


def ensure_participant(df: pd.DataFrame, warn_threshold: float = 1.0) -> pd.DataFrame:
    """
    Ensure there is exactly one 'participant' column, stored as string.
    """
    df = normalize_columns(df)
    require_columns(df, [PARTICIPANT_COL])

    missing_count = int(df[PARTICIPANT_COL].isna().sum())
    missing_pct = missing_count / len(df) * 100 if len(df) > 0 else 0
    if missing_pct > warn_threshold:
        warnings.warn(
            f"participant column has {missing_pct:.1f}% missing values ({missing_count}/{len(df)} rows). "
            "These rows are dropped from every effect size.",
            UserWarning,
        )
    df[PARTICIPANT_COL] = df[PARTICIPANT_COL].where(df[PARTICIPANT_COL].isna(), df[PARTICIPANT_COL].astype(str))
    return df


def normalize_label_series(series: pd.Series) -> pd.Series:
    """Lower-case and strip a categorical label column, keeping missing values."""
    cleaned = series.astype("string").str.strip().str.lower()
    return cleaned.replace({"": pd.NA, "nan": pd.NA, "none": pd.NA})


def coerce_response(series: pd.Series) -> pd.Series:
    """Map 0/1 and boolean-like strings to a nullable 0/1 integer column."""
    if series.dtype == bool:
        return series.astype("Int64")
    mapped = series.astype(str).str.strip().str.lower().map(
        {"1": 1, "1.0": 1, "true": 1, "yes": 1, "0": 0, "0.0": 0, "false": 0, "no": 0}
    )
    return mapped.astype("Int64")
