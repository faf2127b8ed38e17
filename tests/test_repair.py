import math

import pytest

from aphasia_es.effect_sizes import (
    DegenerateVariance,
    SubunitEstimate,
    aggregate_group,
    aggregate_groups,
    compute_subunit_estimate,
    groups_to_frame,
    repair_estimates,
    repair_group,
    select_donor_sd,
    smd_by_subunit,
)
from aphasia_es.preprocessing import aggregate_session_counts

GROUP = ("P01", "blocked", "tx")
OTHER = ("P02", "random", "gx")


def make_estimate(subunit, baseline_mean, treatment_mean, sd, group=GROUP):
    diff = treatment_mean - baseline_mean
    if sd > 0:
        estimate = diff / sd
    elif diff > 0:
        estimate = math.inf
    elif diff < 0:
        estimate = -math.inf
    else:
        estimate = math.nan
    return SubunitEstimate(
        group=group,
        subunit=subunit,
        baseline_mean=baseline_mean,
        treatment_mean=treatment_mean,
        baseline_sd=sd,
        estimate=estimate,
        n_baseline=3,
        n_treatment=2,
    )


def test_repair_is_noop_for_healthy_group():
    estimates = [make_estimate("A", 2.0, 6.0, 2.0), make_estimate("B", 1.0, 4.0, 1.5)]
    repaired = repair_group(estimates)
    assert repaired == estimates
    assert not any(e.imputed for e in repaired)


def test_donor_is_the_maximum_finite_sd():
    estimates = [
        make_estimate("A", 2.0, 6.0, 2.0),
        make_estimate("B", 1.0, 4.0, 5.0),
        make_estimate("C", 4.0, 8.0, 0.0),
    ]
    assert select_donor_sd(estimates) == 5.0
    repaired = {e.subunit: e for e in repair_group(estimates)}
    assert repaired["C"].baseline_sd == 5.0
    assert repaired["C"].estimate == pytest.approx(4.0 / 5.0)
    assert repaired["C"].imputed
    assert not repaired["A"].imputed


def test_donor_ignores_sd_of_undefined_sibling():
    undefined = SubunitEstimate(
        group=GROUP,
        subunit="B",
        baseline_mean=3.0,
        treatment_mean=math.nan,
        baseline_sd=9.0,
        estimate=math.nan,
        n_baseline=3,
        n_treatment=0,
    )
    estimates = [make_estimate("A", 2.0, 6.0, 2.0), undefined, make_estimate("C", 4.0, 8.0, 0.0)]
    assert select_donor_sd(estimates) == 2.0


def test_undefined_subunit_is_not_repaired():
    undefined = SubunitEstimate(
        group=GROUP,
        subunit="B",
        baseline_mean=3.0,
        treatment_mean=math.nan,
        baseline_sd=1.0,
        estimate=math.nan,
        n_baseline=3,
        n_treatment=0,
    )
    repaired = {e.subunit: e for e in repair_group([make_estimate("A", 2.0, 6.0, 2.0), undefined])}
    assert math.isnan(repaired["B"].estimate)
    assert not repaired["B"].imputed


def test_zero_difference_zero_sd_is_repaired_to_zero():
    estimates = [make_estimate("A", 4.0, 4.0, 0.0), make_estimate("B", 2.0, 5.0, 1.5)]
    repaired = {e.subunit: e for e in repair_group(estimates)}
    assert repaired["A"].estimate == 0.0
    assert repaired["A"].imputed


def test_all_non_finite_group_is_missing():
    estimates = [make_estimate("A", 4.0, 8.0, 0.0), make_estimate("B", 5.0, 2.0, 0.0)]
    with pytest.warns(DegenerateVariance):
        repaired = repair_group(estimates)
    assert all(not e.is_finite for e in repaired)
    assert not any(e.imputed for e in repaired)

    group = aggregate_group(repaired)
    assert group.missing
    assert group.estimate is None
    assert group.baseline_sd is None
    assert not group.imputed


def test_repair_never_borrows_across_groups():
    estimates = [
        make_estimate("A", 4.0, 8.0, 0.0, group=GROUP),
        make_estimate("A", 1.0, 5.0, 2.0, group=OTHER),
        make_estimate("B", 1.0, 3.0, 4.0, group=OTHER),
    ]
    with pytest.warns(DegenerateVariance):
        repaired = repair_estimates(estimates)
    first = [e for e in repaired if e.group == GROUP]
    assert len(first) == 1
    assert first[0].estimate == math.inf
    assert not first[0].imputed


def test_repair_group_rejects_mixed_groups():
    with pytest.raises(ValueError):
        repair_group([make_estimate("A", 1.0, 2.0, 1.0), make_estimate("A", 1.0, 2.0, 1.0, group=OTHER)])


def test_repair_is_idempotent():
    estimates = [
        make_estimate("A", 4.0, 8.0, 0.0),
        make_estimate("B", 3.0, 9.0, 1.0),
        make_estimate("A", 1.0, 5.0, 2.0, group=OTHER),
    ]
    once = repair_estimates(estimates)
    twice = repair_estimates(once)
    assert twice == once


def test_aggregation_skips_missing_subunits():
    undefined = SubunitEstimate(
        group=GROUP,
        subunit="C",
        baseline_mean=math.nan,
        treatment_mean=5.0,
        baseline_sd=math.nan,
        estimate=math.nan,
        n_baseline=0,
        n_treatment=2,
    )
    estimates = [make_estimate("A", 2.0, 6.0, 2.0), make_estimate("B", 1.0, 7.0, 1.5), undefined]
    group = aggregate_group(estimates)
    assert group.estimate == pytest.approx((2.0 + 4.0) / 2)
    assert group.baseline_sd == pytest.approx((2.0 + 1.5) / 2)
    assert group.n_subunits == 2
    assert not group.imputed


def test_end_to_end_example(example_trials):
    sessions = aggregate_session_counts(example_trials)
    raw = {e.subunit: e for e in smd_by_subunit(sessions)}
    assert not raw["A"].is_finite
    assert raw["B"].baseline_sd == pytest.approx(1.0)

    repaired = {e.subunit: e for e in repair_estimates(raw.values())}
    assert repaired["A"].baseline_sd == pytest.approx(raw["B"].baseline_sd)
    assert repaired["A"].estimate == pytest.approx((8.0 - 4.0) / 1.0)
    assert repaired["A"].imputed
    assert repaired["B"] == raw["B"]

    (group,) = aggregate_groups(repaired.values())
    assert group.group == GROUP
    assert group.estimate == pytest.approx((4.0 + 6.0) / 2)
    assert group.baseline_sd == pytest.approx(1.0)
    assert group.imputed
    assert group.n_imputed == 1


def test_groups_to_frame_keeps_missing_distinct_from_zero():
    missing = aggregate_group([make_estimate("A", 4.0, 8.0, 0.0)])
    zero = aggregate_group([make_estimate("A", 4.0, 4.0, 2.0, group=OTHER)])
    frame = groups_to_frame([missing, zero])
    assert list(frame["participant"]) == ["P01", "P02"]
    assert math.isnan(frame.loc[0, "estimate"])
    assert frame.loc[1, "estimate"] == 0.0
    assert frame["imputed"].dtype == bool


def test_compute_then_repair_with_direct_estimates():
    a = compute_subunit_estimate(GROUP, "A", [("baseline", 4), ("baseline", 4), ("treatment", 6)])
    b = compute_subunit_estimate(GROUP, "B", [("baseline", 1), ("baseline", 3), ("treatment", 7)])
    repaired = {e.subunit: e for e in repair_group([a, b])}
    donor = b.baseline_sd
    assert repaired["A"].estimate == pytest.approx(2.0 / donor)
