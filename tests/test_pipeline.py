import math
import warnings

import pandas as pd
import pytest

from aphasia_es.analysis import EffectSizeConfig, run_effect_sizes
from aphasia_es.analysis.pipeline import main as pipeline_main
from aphasia_es.effect_sizes import DegenerateVariance, GLMMConfig


def test_run_effect_sizes_example(tmp_path, example_trials):
    config = EffectSizeConfig(output_dir=tmp_path, verbose=False)
    tables = run_effect_sizes(example_trials, config)

    assert set(tables) == {
        "session_counts",
        "smd_subunits",
        "smd_groups",
        "smd_prepost_subunits",
        "smd_prepost_groups",
        "pmg",
        "tau_u",
    }
    groups = tables["smd_groups"]
    assert len(groups) == 1
    row = groups.iloc[0]
    assert (row["participant"], row["condition"], row["item_type"]) == ("P01", "blocked", "tx")
    assert row["estimate"] == pytest.approx(5.0)
    assert bool(row["imputed"])

    subunits = tables["smd_subunits"].set_index("phoneme")
    assert bool(subunits.loc["A", "imputed"])
    assert subunits.loc["A", "estimate"] == pytest.approx(4.0)

    # both pre/post series have a single pre session, so nothing can be repaired
    assert math.isnan(tables["smd_prepost_groups"].iloc[0]["estimate"])

    for name in ("smd_groups.csv", "smd_prepost_groups.csv", "pmg.csv", "tau_u.csv", "session_counts.csv"):
        assert (tmp_path / name).exists()
    text = (tmp_path / "smd_prepost_groups.csv").read_text(encoding="utf-8-sig")
    assert ",NA," in text


def test_run_effect_sizes_collects_data_warnings(example_trials, capsys):
    config = EffectSizeConfig(smd_variants=["prepost"], save=False, verbose=True)
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        run_effect_sizes(example_trials, config)
    assert not any(issubclass(w.category, DegenerateVariance) for w in caught)
    out = capsys.readouterr().out
    assert "[WARN] d_BR (prepost)" in out
    assert "no finite sibling" in out


def test_run_effect_sizes_skips_variant_without_labels(example_trials):
    trials = example_trials.copy()
    trials["prepost"] = "pre"
    tables = run_effect_sizes(trials, EffectSizeConfig(save=False, verbose=False))
    assert "smd_groups" in tables
    assert "smd_prepost_groups" not in tables


def test_run_effect_sizes_rejects_unknown_options(example_trials):
    with pytest.raises(ValueError):
        run_effect_sizes(example_trials, EffectSizeConfig(smd_variants=["pooled"], save=False, verbose=False))
    with pytest.raises(ValueError):
        run_effect_sizes(example_trials, EffectSizeConfig(glmm="mcmc", save=False, verbose=False))


def test_pipeline_cli(tmp_path, example_raw_trials):
    path = tmp_path / "trials.csv"
    example_raw_trials.to_csv(path, index=False)
    out_dir = tmp_path / "stats"
    code = pipeline_main(["--trials", str(path), "--output", str(out_dir), "--variants", "phase", "--quiet"])
    assert code == 0
    groups = pd.read_csv(out_dir / "smd_groups.csv", encoding="utf-8-sig")
    assert groups.loc[0, "estimate"] == pytest.approx(5.0)
    assert not (out_dir / "smd_prepost_groups.csv").exists()


def test_quiet_run_reissues_data_warnings(example_trials):
    config = EffectSizeConfig(smd_variants=["prepost"], save=False, verbose=False)
    with pytest.warns(DegenerateVariance, match="no finite sibling"):
        run_effect_sizes(example_trials, config)


def test_run_effect_sizes_map_glmm_per_condition_item_type(tmp_path, two_participant_trials):
    config = EffectSizeConfig(
        smd_variants=["phase"],
        glmm="map",
        glmm_config=GLMMConfig(draws=200, random_seed=11),
        output_dir=tmp_path,
        verbose=False,
    )
    tables = run_effect_sizes(two_participant_trials, config)

    fixed = tables["glmm_fixed"]
    assert list(fixed.columns[:3]) == ["condition", "item_type", "term"]
    assert set(zip(fixed["condition"], fixed["item_type"])) == {("blocked", "gx"), ("blocked", "tx")}
    assert (fixed.groupby("item_type")["term"].count() == 4).all()

    effects = tables["glmm_effects"]
    assert list(effects.columns[:3]) == ["participant", "condition", "item_type"]
    keys = set(zip(effects["participant"], effects["condition"], effects["item_type"]))
    groups = tables["smd_groups"]
    assert keys == set(zip(groups["participant"], groups["condition"], groups["item_type"]))

    assert (tmp_path / "glmm_fixed_effects.csv").exists()
    assert (tmp_path / "glmm_exit_minus_entry.csv").exists()
