"""Trial preprocessing: loading, validation, session aggregation."""

from .core import ensure_participant, normalize_columns, require_columns
from .loaders import load_trials, prepare_trials
from .qc import TrialValidationResult, validate_trials
from .sessions import SESSION_COUNT_COLUMNS, aggregate_session_counts

__all__ = [
    "ensure_participant",
    "normalize_columns",
    "require_columns",
    "load_trials",
    "prepare_trials",
    "TrialValidationResult",
    "validate_trials",
    "SESSION_COUNT_COLUMNS",
    "aggregate_session_counts",
]
