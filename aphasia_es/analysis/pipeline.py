"""
Effect-Size Pipeline
====================

Trials -> session counts -> d_BR per sub-unit -> degenerate-variance repair
-> one estimate per (participant, condition, item_type), plus PMG and Tau-U
on the same session counts. Optionally fits the ITS hierarchical GLM.

Output (under --output):
    smd_subunits.csv / smd_groups.csv
    smd_prepost_subunits.csv / smd_prepost_groups.csv
    pmg.csv, tau_u.csv
    glmm_fixed_effects.csv + glmm_exit_minus_entry.csv (with --glmm), one block per condition/item_type

Usage:
    python -m aphasia_es.analysis --trials data/trials_deidentified.csv
    python -m aphasia_es.analysis --glmm map --quiet
"""

from __future__ import annotations

import sys
if sys.platform.startswith("win") and hasattr(sys.stdout, "reconfigure"):
    sys.stdout.reconfigure(encoding='utf-8')

import argparse
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from aphasia_es.errors import ComputationUndefined, DegenerateVariance
from aphasia_es.effect_sizes import (
    GLMMConfig,
    aggregate_groups,
    build_its_design,
    convergence_summary,
    estimates_to_frame,
    exit_minus_entry,
    fit_bayesian_glm,
    fit_mixed_glm_result,
    fixed_effects_table,
    groups_to_frame,
    linear_predictor_draws,
    mixed_glm_draws,
    pmg_by_group,
    repair_estimates,
    smd_by_subunit,
    tau_u_by_group,
)
from aphasia_es.preprocessing import aggregate_session_counts, load_trials, validate_trials
from aphasia_es.preprocessing.core import require_columns
from aphasia_es.preprocessing.constants import (
    CONDITION_COL,
    ITEM_TYPE_COL,
    NA_REP,
    OUTPUT_STATS_DIR,
    SMD_VARIANTS,
    get_output_file,
)


@dataclass
class EffectSizeConfig:
    smd_variants: Sequence[str] = field(default_factory=lambda: ["phase", "prepost"])
    tau_u_trend_correction: bool = False
    glmm: str = "none"
    glmm_config: GLMMConfig = field(default_factory=GLMMConfig)
    output_dir: Path = OUTPUT_STATS_DIR
    save: bool = True
    verbose: bool = True


def _smd_keys(variant: str) -> Tuple[str, str]:
    prefix = "smd" if variant == "phase" else f"smd_{variant}"
    return f"{prefix}_subunits", f"{prefix}_groups"


def print_section_header(title: str, width: int = 70) -> None:
    """Print formatted section header."""
    print("\n" + "=" * width)
    print(title)
    print("=" * width)


def run_with_warnings(step: str, func: Callable, *args, verbose: bool = True, **kwargs):
    """
    Run a computation step, collecting data-condition warnings into a summary
    line instead of one message per group.

    With ``verbose=False`` nothing is printed and the data-condition warnings
    are re-issued to the caller along with everything else.
    """
    data_conditions = (ComputationUndefined, DegenerateVariance)
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", ComputationUndefined)
        warnings.simplefilter("always", DegenerateVariance)
        result = func(*args, **kwargs)

    n_undefined = sum(1 for w in caught if issubclass(w.category, ComputationUndefined))
    n_degenerate = sum(1 for w in caught if issubclass(w.category, DegenerateVariance))
    for w in caught:
        if not verbose or not issubclass(w.category, data_conditions):
            warnings.warn_explicit(w.message, w.category, w.filename, w.lineno)
    if verbose and (n_undefined or n_degenerate):
        print(f"  [WARN] {step}: {n_undefined} undefined, {n_degenerate} unrepairable zero-SD series")
        for w in caught:
            if issubclass(w.category, data_conditions):
                print(f"         {w.message}")
    return result


def compute_smd_tables(sessions: pd.DataFrame, variant: str, verbose: bool = True) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Sub-unit table (after repair) and group table for one d_BR variant."""

    def _compute():
        estimates = smd_by_subunit(sessions, variant=variant)
        repaired = repair_estimates(estimates)
        return repaired, aggregate_groups(repaired)

    repaired, groups = run_with_warnings(f"d_BR ({variant})", _compute, verbose=verbose)
    subunit_frame = estimates_to_frame(repaired)
    group_frame = groups_to_frame(groups)

    if verbose:
        n_missing = int(group_frame["estimate"].isna().sum())
        n_imputed = int(group_frame["imputed"].sum())
        print(
            f"  [INFO] d_BR ({variant}): {len(group_frame)} groups, "
            f"{n_imputed} imputed, {n_missing} missing"
        )
    return subunit_frame, group_frame


def _glmm_subsets(trials: pd.DataFrame) -> List[Tuple[str, str]]:
    """(condition, item_type) pairs present in the trials, sorted."""
    require_columns(trials, [CONDITION_COL, ITEM_TYPE_COL], where="trial table")
    pairs = trials[[CONDITION_COL, ITEM_TYPE_COL]].dropna().drop_duplicates()
    return sorted((str(c), str(t)) for c, t in pairs.itertuples(index=False))


def _tag(frame: pd.DataFrame, condition: str, item_type: str, at: int = 0) -> pd.DataFrame:
    frame = frame.copy()
    frame.insert(at, CONDITION_COL, condition)
    frame.insert(at + 1, ITEM_TYPE_COL, item_type)
    return frame


def fit_glmm_subset(design: pd.DataFrame, config: EffectSizeConfig, label: str) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Fixed-effect table and linear-predictor draws for one ITS design."""
    glmm_config = config.glmm_config
    if config.glmm == "map":
        result = fit_mixed_glm_result(design, method="map")
        if config.verbose:
            print(f"  [INFO] GLMM {label} (posterior mode): {len(design)} trials")
        draws = mixed_glm_draws(
            result,
            design,
            n_draws=glmm_config.draws,
            random_seed=glmm_config.random_seed,
        )
        return fixed_effects_table(result, method="map"), draws

    idata = fit_bayesian_glm(design, glmm_config)
    diagnostics = convergence_summary(idata, rhat_threshold=glmm_config.rhat_threshold)
    if config.verbose:
        status = "OK" if diagnostics["converged"] else "WARN"
        print(
            f"  [{status}] GLMM {label} (PyMC): max R-hat={diagnostics['max_rhat']:.3f}, "
            f"min bulk ESS={diagnostics['min_ess_bulk']:.0f}"
        )
    fixed = diagnostics["summary"].reset_index().rename(columns={"index": "term"})
    return fixed, linear_predictor_draws(idata, design)


def compute_glmm_tables(trials: pd.DataFrame, config: EffectSizeConfig) -> Dict[str, pd.DataFrame]:
    """
    One ITS model per (condition, item_type), so the per-participant
    exit-minus-entry rows line up with the d_BR/PMG/Tau-U groups.
    """
    fixed_frames = []
    effect_frames = []
    for condition, item_type in _glmm_subsets(trials):
        label = f"{condition}/{item_type}"
        design = build_its_design(trials, item_type=item_type, condition=condition)
        if design.empty:
            if config.verbose:
                print(f"  [WARN] GLMM {label}: no baseline/treatment trials to fit")
            continue
        fixed, draws = fit_glmm_subset(design, config, label)
        effects = exit_minus_entry(draws, scale="probability")
        fixed_frames.append(_tag(fixed, condition, item_type))
        effect_frames.append(_tag(effects, condition, item_type, at=1))

    if not fixed_frames:
        if config.verbose:
            print("  [WARN] GLMM: no baseline/treatment trials to fit")
        return {}
    return {
        "glmm_fixed": pd.concat(fixed_frames, ignore_index=True),
        "glmm_effects": pd.concat(effect_frames, ignore_index=True),
    }


def run_effect_sizes(
    trials: pd.DataFrame,
    config: Optional[EffectSizeConfig] = None,
) -> Dict[str, pd.DataFrame]:
    """
    Compute every effect-size table from a prepared trial table.

    Returns a mapping of output key -> table; with ``config.save`` each table is
    also written under ``config.output_dir`` with missing values as "NA".
    """
    if config is None:
        config = EffectSizeConfig()
    for variant in config.smd_variants:
        if variant not in SMD_VARIANTS:
            raise ValueError(f"Unknown SMD variant: {variant}. Valid variants: {sorted(SMD_VARIANTS)}")
    if config.glmm not in {"none", "map", "bayes"}:
        raise ValueError(f"Unknown GLMM mode: {config.glmm}. Valid modes: ['bayes', 'map', 'none']")

    verbose = config.verbose
    if verbose:
        print_section_header("Single-case effect sizes")

    sessions = aggregate_session_counts(trials)
    if verbose:
        print(f"  [INFO] session counts: {len(sessions)} rows")
    tables: Dict[str, pd.DataFrame] = {"session_counts": sessions}

    for variant in config.smd_variants:
        phase_column, baseline_label, treatment_label = SMD_VARIANTS[variant]
        labels = sessions[phase_column]
        if not (labels == baseline_label).any() or not (labels == treatment_label).any():
            if verbose:
                print(f"  [WARN] d_BR ({variant}): no '{baseline_label}'/'{treatment_label}' sessions, skipped")
            continue
        subunit_key, group_key = _smd_keys(variant)
        tables[subunit_key], tables[group_key] = compute_smd_tables(sessions, variant, verbose=verbose)

    tables["pmg"] = run_with_warnings("PMG", pmg_by_group, sessions, verbose=verbose)
    tables["tau_u"] = run_with_warnings(
        "Tau-U",
        tau_u_by_group,
        sessions,
        correct_baseline_trend=config.tau_u_trend_correction,
        verbose=verbose,
    )
    if verbose:
        print(f"  [INFO] PMG: {len(tables['pmg'])} groups; Tau-U: {len(tables['tau_u'])} groups")

    if config.glmm != "none":
        tables.update(compute_glmm_tables(trials, config))

    if config.save:
        save_tables(tables, config.output_dir, verbose=verbose)
    return tables


def save_tables(tables: Dict[str, pd.DataFrame], output_dir: Path, verbose: bool = True) -> None:
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    for key, table in tables.items():
        path = get_output_file(key, output_dir)
        table.to_csv(path, index=False, encoding="utf-8-sig", na_rep=NA_REP)
        if verbose:
            print(f"  [OK] {key}: {path}")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Single-case effect sizes (d_BR, PMG, Tau-U, GLMM)")
    parser.add_argument("--trials", type=Path, default=None, help="De-identified trial CSV")
    parser.add_argument("--output", type=Path, default=OUTPUT_STATS_DIR, help="Output directory")
    parser.add_argument(
        "--variants",
        nargs="+",
        choices=sorted(SMD_VARIANTS),
        default=["phase", "prepost"],
        help="d_BR variants to compute",
    )
    parser.add_argument(
        "--tau-trend",
        action="store_true",
        help="Correct Tau-U for baseline trend",
    )
    parser.add_argument(
        "--glmm",
        choices=["none", "map", "bayes"],
        default="none",
        help="Also fit the ITS hierarchical GLM (statsmodels posterior mode or PyMC)",
    )
    parser.add_argument("--chains", type=int, default=4)
    parser.add_argument("--draws", type=int, default=1000)
    parser.add_argument("--tune", type=int, default=1000)
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--cores", type=int, default=None, help="PyMC sampling processes")
    parser.add_argument("--strict", action="store_true", help="Abort on trial validation issues")
    parser.add_argument("--no-save", action="store_true", help="Compute without writing CSVs")
    parser.add_argument("--quiet", action="store_true", help="Suppress verbose output")
    args = parser.parse_args(argv)

    verbose = not args.quiet
    trials = load_trials(args.trials, verbose=verbose)
    validation = validate_trials(trials, raise_on_error=args.strict)
    if verbose:
        for issue in validation.issues:
            print(f"  [WARN] {issue}")

    config = EffectSizeConfig(
        smd_variants=args.variants,
        tau_u_trend_correction=args.tau_trend,
        glmm=args.glmm,
        glmm_config=GLMMConfig(
            chains=args.chains,
            draws=args.draws,
            tune=args.tune,
            random_seed=args.seed,
            cores=args.cores,
        ),
        output_dir=args.output,
        save=not args.no_save,
        verbose=verbose,
    )
    run_effect_sizes(trials, config)
    return 0


if __name__ == "__main__":
    sys.exit(main())
