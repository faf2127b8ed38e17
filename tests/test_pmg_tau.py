import math

import numpy as np
import pytest
from scipy import stats

from aphasia_es.effect_sizes import (
    ComputationUndefined,
    kendall_s,
    phase_comparison_s,
    pmg_by_group,
    proportion_of_maximal_gain,
    tau_u,
    tau_u_by_group,
)
from aphasia_es.preprocessing import aggregate_session_counts


@pytest.fixture
def sessions(example_trials):
    return aggregate_session_counts(example_trials)


# ---------------------------------------------------------------------------
# PMG
# ---------------------------------------------------------------------------

def test_pmg_formula():
    assert proportion_of_maximal_gain(4.0, 7.0, 10.0) == pytest.approx(0.5)
    assert proportion_of_maximal_gain(4.0, 2.0, 10.0) == pytest.approx(-1 / 3)


def test_pmg_undefined_at_ceiling():
    assert math.isnan(proportion_of_maximal_gain(10.0, 10.0, 10.0))
    assert math.isnan(proportion_of_maximal_gain(np.nan, 5.0, 10.0))


def test_pmg_by_group_uses_group_session_totals(sessions):
    table = pmg_by_group(sessions)
    assert len(table) == 1
    row = table.iloc[0]
    assert row["baseline_mean"] == pytest.approx(7.0)
    assert row["treatment_mean"] == pytest.approx(17.0)
    assert row["max_score"] == pytest.approx(20.0)
    assert row["pmg"] == pytest.approx(10 / 13)
    assert row["n_baseline"] == 3
    assert row["n_treatment"] == 2


def test_pmg_prepost_variant(sessions):
    row = pmg_by_group(sessions, variant="prepost").iloc[0]
    assert row["baseline_mean"] == pytest.approx(6.0)
    assert row["treatment_mean"] == pytest.approx(17.0)
    assert row["pmg"] == pytest.approx(11 / 14)


def test_pmg_warns_when_phase_is_empty(sessions):
    baseline_only = sessions[sessions["phase"] == "baseline"]
    with pytest.warns(ComputationUndefined):
        table = pmg_by_group(baseline_only)
    assert math.isnan(table.iloc[0]["pmg"])
    assert table.iloc[0]["n_treatment"] == 0


# ---------------------------------------------------------------------------
# Tau-U
# ---------------------------------------------------------------------------

def test_kendall_s():
    assert kendall_s([1, 2, 3]) == 3
    assert kendall_s([3, 2, 1]) == -3
    assert kendall_s([2, 2, 2]) == 0
    assert kendall_s([5]) == 0


def test_phase_comparison_s_counts_ties_as_zero():
    assert phase_comparison_s([1, 2], [2, 3]) == 3
    assert phase_comparison_s([], [1]) == 0


def test_tau_u_complete_non_overlap():
    result = tau_u([1, 2, 3], [5, 6])
    assert result.s == 6
    assert result.tau == pytest.approx(1.0)
    expected_se = math.sqrt(3 * 2 * 6 / 3.0) / 6
    assert result.se == pytest.approx(expected_se)
    assert result.z == pytest.approx(1.0 / expected_se)
    assert result.p == pytest.approx(2 * stats.norm.sf(1.0 / expected_se))
    assert not result.trend_corrected


def test_tau_u_baseline_trend_correction():
    result = tau_u([1, 2, 3], [5, 6], correct_baseline_trend=True)
    assert result.s == 3
    assert result.tau == pytest.approx(0.5)
    var_s = 3 * 2 * 6 / 3.0 + 3 * 2 * 11 / 18.0
    assert result.se == pytest.approx(math.sqrt(var_s) / 6)
    assert result.trend_corrected


def test_tau_u_empty_phase_warns():
    with pytest.warns(ComputationUndefined):
        result = tau_u([1, 2], [])
    assert math.isnan(result.tau)
    assert result.n_treatment == 0


def test_tau_u_by_group(sessions):
    table = tau_u_by_group(sessions)
    row = table.iloc[0]
    assert row["participant"] == "P01"
    assert row["tau"] == pytest.approx(1.0)
    assert row["n_baseline"] == 3
    assert row["n_treatment"] == 2

    corrected = tau_u_by_group(sessions, correct_baseline_trend=True).iloc[0]
    assert corrected["tau"] == pytest.approx(0.5)
