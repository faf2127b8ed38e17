import pandas as pd
import pytest

from aphasia_es.preprocessing import prepare_trials


def session_block(
    phoneme,
    baseline,
    treatment,
    participant="P01",
    condition="blocked",
    item_type="tx",
    n_baselines=None,
):
    """Session-level rows for one sub-unit; first session tagged pre, last post."""
    rows = []
    session = 1
    for phase, counts in (("baseline", baseline), ("treatment", treatment)):
        for correct in counts:
            rows.append(
                {
                    "participant": participant,
                    "condition": condition,
                    "item_type": item_type,
                    "phoneme": phoneme,
                    "phase": phase,
                    "session": session,
                    "correct": correct,
                    "prepost": None,
                    "n_baselines": len(baseline) if n_baselines is None else n_baselines,
                }
            )
            session += 1
    if rows:
        rows[0]["prepost"] = "pre"
        rows[-1]["prepost"] = "post"
    return rows


def expand_to_trials(sessions, n_items=10):
    """One row per item; the first `correct` items in a session are scored 1."""
    rows = []
    for s in sessions:
        for i in range(n_items):
            rows.append(
                {
                    "participant": s["participant"],
                    "condition": s["condition"],
                    "phoneme": s["phoneme"],
                    "item_type": s["item_type"],
                    "phase": s["phase"],
                    "session": s["session"],
                    "item": f"{s['phoneme']}{i:02d}",
                    "list_size": n_items,
                    "prepost": s["prepost"],
                    "response": int(i < s["correct"]),
                    "n_baselines": s["n_baselines"],
                }
            )
    return pd.DataFrame(rows)


@pytest.fixture
def example_sessions():
    # P01/blocked/tx: A has a constant baseline, B a variable one.
    return session_block("A", [4, 4, 4], [8, 8]) + session_block("B", [2, 3, 4], [9, 9])


@pytest.fixture
def example_raw_trials(example_sessions):
    return expand_to_trials(example_sessions)


@pytest.fixture
def example_trials(example_raw_trials):
    return prepare_trials(example_raw_trials)


@pytest.fixture
def two_participant_trials():
    # Two participants on the blocked schedule, each with treated and generalization items.
    sessions = (
        session_block("A", [4, 4, 4], [8, 8], participant="P01")
        + session_block("B", [2, 3, 4], [9, 9], participant="P01")
        + session_block("A", [3, 4, 3], [4, 5], participant="P01", item_type="gx")
        + session_block("A", [1, 2, 2], [6, 7], participant="P02")
        + session_block("B", [3, 3, 2], [7, 8], participant="P02")
        + session_block("A", [2, 2, 3], [3, 3], participant="P02", item_type="gx")
    )
    return prepare_trials(expand_to_trials(sessions))
