"""Shared constants for preprocessing and analysis."""

from __future__ import annotations

from pathlib import Path

# Directory paths
BASE_DIR = Path(__file__).resolve().parents[1]
REPO_DIR = Path(__file__).resolve().parents[2]
DATA_DIR = REPO_DIR / "data"
OUTPUTS_DIR = REPO_DIR / "outputs"
OUTPUT_STATS_DIR = OUTPUTS_DIR / "stats"
OUTPUT_TABLES_DIR = OUTPUTS_DIR / "tables"

# De-identified trial file (official runtime input)
TRIALS_FILE = "trials_deidentified.csv"

# Canonical trial columns
PARTICIPANT_COL = "participant"
CONDITION_COL = "condition"
SUBUNIT_COL = "phoneme"
ITEM_TYPE_COL = "item_type"
PHASE_COL = "phase"
SESSION_COL = "session"
ITEM_COL = "item"
LIST_SIZE_COL = "list_size"
PREPOST_COL = "prepost"
RESPONSE_COL = "response"
N_BASELINES_COL = "n_baselines"

TRIAL_COLUMNS = [
    PARTICIPANT_COL,
    CONDITION_COL,
    SUBUNIT_COL,
    ITEM_TYPE_COL,
    PHASE_COL,
    SESSION_COL,
    ITEM_COL,
    LIST_SIZE_COL,
    PREPOST_COL,
    RESPONSE_COL,
    N_BASELINES_COL,
]

# Columns that must be present for the effect-size core
REQUIRED_TRIAL_COLUMNS = [
    PARTICIPANT_COL,
    CONDITION_COL,
    SUBUNIT_COL,
    ITEM_TYPE_COL,
    PHASE_COL,
    SESSION_COL,
    RESPONSE_COL,
]

# Aliases seen in exported trial sheets
COLUMN_ALIASES = {
    "participant_id": PARTICIPANT_COL,
    "participantId": PARTICIPANT_COL,
    "spt": PARTICIPANT_COL,
    "probe_schedule": CONDITION_COL,
    "schedule": CONDITION_COL,
    "target_phoneme": SUBUNIT_COL,
    "subunit": SUBUNIT_COL,
    "itemType": ITEM_TYPE_COL,
    "itemtype": ITEM_TYPE_COL,
    "correct": RESPONSE_COL,
    "baselines": N_BASELINES_COL,
}

# Reporting keys
GROUP_COLUMNS = [PARTICIPANT_COL, CONDITION_COL, ITEM_TYPE_COL]
SESSION_KEY_COLUMNS = [
    PARTICIPANT_COL,
    SESSION_COL,
    PHASE_COL,
    CONDITION_COL,
    ITEM_TYPE_COL,
    SUBUNIT_COL,
]

# Enumerations
BASELINE_PHASE = "baseline"
TREATMENT_PHASE = "treatment"
PRE_TAG = "pre"
POST_TAG = "post"
VALID_CONDITIONS = {"blocked", "random"}
VALID_ITEM_TYPES = {"tx", "gx"}
VALID_PREPOST = {PRE_TAG, POST_TAG}

# SMD variants: variant -> (phase column, baseline label, treatment label)
SMD_VARIANTS = {
    "phase": (PHASE_COL, BASELINE_PHASE, TREATMENT_PHASE),
    "prepost": (PREPOST_COL, PRE_TAG, POST_TAG),
}

# Output file names
OUTPUT_FILE_MAP = {
    "session_counts": "session_counts.csv",
    "smd_subunits": "smd_subunits.csv",
    "smd_groups": "smd_groups.csv",
    "smd_prepost_subunits": "smd_prepost_subunits.csv",
    "smd_prepost_groups": "smd_prepost_groups.csv",
    "pmg": "pmg.csv",
    "tau_u": "tau_u.csv",
    "glmm_fixed": "glmm_fixed_effects.csv",
    "glmm_effects": "glmm_exit_minus_entry.csv",
}
NA_REP = "NA"


def get_trials_path(data_dir: Path | None = None) -> Path:
    """Return the de-identified trial CSV path."""
    if data_dir is None:
        data_dir = DATA_DIR
    return data_dir / TRIALS_FILE


def get_output_file(key: str, output_dir: Path | None = None) -> Path:
    """Return output path by logical key."""
    if key not in OUTPUT_FILE_MAP:
        raise ValueError(f"Unknown output key: {key}. Valid keys: {sorted(OUTPUT_FILE_MAP)}")
    if output_dir is None:
        output_dir = OUTPUT_STATS_DIR
    return output_dir / OUTPUT_FILE_MAP[key]
