"""
Hierarchical GLM effect sizes (interrupted time-series coding).

Model: response ~ baseline_slope + level_change + slope_change, logistic link,
grouped by participant and item. Fitting is delegated to statsmodels
(posterior-mode mixed GLM) or PyMC (full posterior); this module builds the
design, runs the fitters, and turns PyMC posterior draws or statsmodels
normal-approximation draws into per-participant exit-minus-entry effect sizes.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Optional, Sequence

import numpy as np
import pandas as pd
from scipy.special import expit

from ..preprocessing.constants import (
    BASELINE_PHASE,
    CONDITION_COL,
    ITEM_COL,
    ITEM_TYPE_COL,
    N_BASELINES_COL,
    PARTICIPANT_COL,
    PHASE_COL,
    RESPONSE_COL,
    SESSION_COL,
    TREATMENT_PHASE,
)
from ..preprocessing.core import require_columns

ITS_TERMS = ["baseline_slope", "level_change", "slope_change"]
RANDOM_EFFECTS = ["intercept"] + ITS_TERMS
ITS_FORMULA = "response ~ " + " + ".join(ITS_TERMS)
DESIGN_COLUMNS = [
    PARTICIPANT_COL,
    ITEM_COL,
    SESSION_COL,
    PHASE_COL,
    "time",
    N_BASELINES_COL,
    "response",
] + ITS_TERMS


@dataclass
class GLMMConfig:
    """Priors and sampler settings for the Bayesian GLM."""

    intercept_prior_sd: float = 2.5
    fixed_prior_sd: float = 1.0
    group_sd_prior: float = 1.0
    chains: int = 4
    draws: int = 1000
    tune: int = 1000
    target_accept: float = 0.9
    random_seed: Optional[int] = 42
    cores: Optional[int] = None
    rhat_threshold: float = 1.01


def build_its_design(
    trials: pd.DataFrame,
    item_type: Optional[str] = None,
    condition: Optional[str] = None,
) -> pd.DataFrame:
    """
    Code baseline/treatment trials for an interrupted time-series GLM.

    time            0-based session rank within participant
    baseline_slope  time
    level_change    1 during treatment
    slope_change    sessions since the first treatment session (0 before and at entry)

    The baseline length comes from ``n_baselines``; when it is missing the
    number of distinct baseline sessions is used. ``item_type`` and
    ``condition`` restrict the design to one item set / probe schedule.
    """
    require_columns(trials, [PARTICIPANT_COL, PHASE_COL, SESSION_COL, RESPONSE_COL], where="trial table")
    df = trials[trials[PHASE_COL].isin([BASELINE_PHASE, TREATMENT_PHASE])].copy()
    for column, value in ((ITEM_TYPE_COL, item_type), (CONDITION_COL, condition)):
        if value is None:
            continue
        require_columns(df, [column], where="trial table")
        df = df[df[column] == value]
    if df.empty:
        return pd.DataFrame(columns=DESIGN_COLUMNS)

    df["time"] = df.groupby(PARTICIPANT_COL)[SESSION_COL].rank(method="dense").astype(int) - 1

    derived = (
        df[df[PHASE_COL] == BASELINE_PHASE]
        .groupby(PARTICIPANT_COL)[SESSION_COL]
        .nunique()
    )
    if N_BASELINES_COL in df.columns:
        n_baselines = pd.to_numeric(df[N_BASELINES_COL], errors="coerce").astype(float)
    else:
        n_baselines = pd.Series(np.nan, index=df.index)
    n_baselines = n_baselines.fillna(df[PARTICIPANT_COL].map(derived).astype(float)).fillna(0.0)
    df[N_BASELINES_COL] = n_baselines

    df["baseline_slope"] = df["time"].astype(float)
    df["level_change"] = (df[PHASE_COL] == TREATMENT_PHASE).astype(int)
    df["slope_change"] = (df["level_change"] * (df["time"] - n_baselines)).clip(lower=0).astype(float)
    df["response"] = pd.to_numeric(df[RESPONSE_COL], errors="coerce").astype(float)
    if ITEM_COL not in df.columns:
        df[ITEM_COL] = pd.NA

    return df[DESIGN_COLUMNS].reset_index(drop=True)


def fit_mixed_glm_result(design: pd.DataFrame, method: str = "map"):
    """
    Fit the ITS logistic mixed GLM with statsmodels.

    Participant and item enter as variance components. ``method`` is "map"
    (posterior mode) or "vb" (variational Bayes). Returns the statsmodels
    ``BayesMixedGLMResults``.
    """
    from statsmodels.genmod.bayes_mixed_glm import BinomialBayesMixedGLM

    if method not in {"map", "vb"}:
        raise ValueError(f"Unknown fit method: {method}. Valid methods: ['map', 'vb']")
    data = design.dropna(subset=["response"] + ITS_TERMS).copy()
    if data.empty:
        raise ValueError("ITS design has no complete rows to fit")
    data[PARTICIPANT_COL] = data[PARTICIPANT_COL].astype(str)
    vc_formulas = {PARTICIPANT_COL: f"0 + C({PARTICIPANT_COL})"}
    if data[ITEM_COL].notna().all() and data[ITEM_COL].nunique() > 1:
        data[ITEM_COL] = data[ITEM_COL].astype(str)
        vc_formulas[ITEM_COL] = f"0 + C({ITEM_COL})"

    model = BinomialBayesMixedGLM.from_formula(ITS_FORMULA, vc_formulas, data)
    return model.fit_map() if method == "map" else model.fit_vb()


def fixed_effects_table(result, method: str = "map") -> pd.DataFrame:
    fe_mean = np.asarray(result.fe_mean, dtype=float)
    fe_sd = np.asarray(result.fe_sd, dtype=float)
    names = list(result.model.exog_names)[: len(fe_mean)]
    return pd.DataFrame(
        {
            "term": names,
            "estimate": fe_mean,
            "sd": fe_sd,
            "z": np.divide(fe_mean, fe_sd, out=np.full_like(fe_mean, np.nan), where=fe_sd > 0),
            "method": method,
        }
    )


def fit_mixed_glm(design: pd.DataFrame, method: str = "map") -> pd.DataFrame:
    """Fixed-effect table from ``fit_mixed_glm_result``."""
    return fixed_effects_table(fit_mixed_glm_result(design, method=method), method=method)


def fit_bayesian_glm(design: pd.DataFrame, config: Optional[GLMMConfig] = None):
    """
    Sample the ITS logistic GLM with PyMC.

    Participants get uncorrelated random intercepts and ITS slopes
    (non-centred); items get random intercepts. Returns ``arviz.InferenceData``.
    """
    import pymc as pm

    if config is None:
        config = GLMMConfig()
    data = design.dropna(subset=["response"] + ITS_TERMS)
    if data.empty:
        raise ValueError("ITS design has no complete rows to fit")

    p_idx, participants = pd.factorize(data[PARTICIPANT_COL].astype(str), sort=True)
    i_idx, items = pd.factorize(data[ITEM_COL].astype(object).fillna("__missing__").astype(str), sort=True)
    X = data[ITS_TERMS].to_numpy(dtype=float)
    Z = np.column_stack([np.ones(len(data)), X])
    y = data["response"].to_numpy(dtype=int)

    coords = {
        "term": ITS_TERMS,
        "effect": RANDOM_EFFECTS,
        "participant": list(participants),
        "item": list(items),
    }
    with pm.Model(coords=coords):
        intercept = pm.Normal("intercept", 0.0, config.intercept_prior_sd)
        beta = pm.Normal("beta", 0.0, config.fixed_prior_sd, dims="term")

        sd_participant = pm.HalfNormal("sd_participant", config.group_sd_prior, dims="effect")
        z_participant = pm.Normal("z_participant", 0.0, 1.0, dims=("participant", "effect"))
        u_participant = pm.Deterministic(
            "u_participant", z_participant * sd_participant, dims=("participant", "effect")
        )

        sd_item = pm.HalfNormal("sd_item", config.group_sd_prior)
        z_item = pm.Normal("z_item", 0.0, 1.0, dims="item")

        eta = (
            intercept
            + pm.math.dot(X, beta)
            + (u_participant[p_idx] * Z).sum(axis=1)
            + z_item[i_idx] * sd_item
        )
        pm.Bernoulli("y_obs", logit_p=eta, observed=y)

        idata = pm.sample(
            draws=config.draws,
            tune=config.tune,
            chains=config.chains,
            target_accept=config.target_accept,
            cores=config.cores,
            random_seed=config.random_seed,
            return_inferencedata=True,
        )
    return idata


def convergence_summary(
    idata,
    var_names: Sequence[str] = ("intercept", "beta", "sd_participant", "sd_item"),
    rhat_threshold: float = 1.01,
) -> dict:
    """R-hat / ESS diagnostics for the population-level parameters."""
    import arviz as az

    summary = az.summary(idata, var_names=list(var_names))
    max_rhat = float(summary["r_hat"].max())
    return {
        "summary": summary,
        "max_rhat": max_rhat,
        "min_ess_bulk": float(summary["ess_bulk"].min()),
        "converged": bool(max_rhat < rhat_threshold),
    }


def timepoint_covariates(design: pd.DataFrame) -> pd.DataFrame:
    """
    ITS covariates at treatment entry (first baseline session) and exit
    (last treatment session) for each participant with both phases.
    """
    require_columns(design, [PARTICIPANT_COL, "time", "level_change"] + ITS_TERMS, where="ITS design")
    rows = []
    for pid, grp in design.groupby(PARTICIPANT_COL, sort=True):
        baseline = grp[grp["level_change"] == 0]
        treatment = grp[grp["level_change"] == 1]
        if baseline.empty or treatment.empty:
            continue
        entry = baseline.loc[baseline["time"].idxmin()]
        exit_ = treatment.loc[treatment["time"].idxmax()]
        for label, row in (("entry", entry), ("exit", exit_)):
            rows.append({PARTICIPANT_COL: str(pid), "timepoint": label, **{t: float(row[t]) for t in ITS_TERMS}})
    return pd.DataFrame(rows, columns=[PARTICIPANT_COL, "timepoint"] + ITS_TERMS)


DRAW_COLUMNS = [PARTICIPANT_COL, "timepoint", "draw", "linpred"]


def _draw_frame(design: pd.DataFrame, coef: np.ndarray, offsets: Dict[str, np.ndarray]) -> pd.DataFrame:
    """
    Long table of entry/exit linear predictors.

    ``coef`` is (n_draws, 1 + n_terms) population coefficients, intercept first;
    ``offsets`` maps participant -> deviations of the same shape. Participants
    without offsets are skipped.
    """
    draw_ids = np.arange(coef.shape[0])
    frames = []
    for _, row in timepoint_covariates(design).iterrows():
        offset = offsets.get(row[PARTICIPANT_COL])
        if offset is None:
            continue
        x = np.concatenate([[1.0], row[ITS_TERMS].to_numpy(dtype=float)])
        frames.append(
            pd.DataFrame(
                {
                    PARTICIPANT_COL: row[PARTICIPANT_COL],
                    "timepoint": row["timepoint"],
                    "draw": draw_ids,
                    "linpred": (coef + offset) @ x,
                }
            )
        )
    if not frames:
        return pd.DataFrame(columns=DRAW_COLUMNS)
    return pd.concat(frames, ignore_index=True)


def linear_predictor_draws(idata, design: pd.DataFrame) -> pd.DataFrame:
    """
    Posterior linear-predictor draws at entry and exit for each participant.

    Item effects are left out, so the predictor is for an average item.
    """
    posterior = idata.posterior
    intercept = posterior["intercept"].values.reshape(-1)
    beta = posterior["beta"].values.reshape(-1, len(ITS_TERMS))
    u = posterior["u_participant"].values
    u = u.reshape(-1, u.shape[-2], u.shape[-1])
    coef = np.column_stack([intercept, beta])
    offsets = {str(p): u[:, i, :] for i, p in enumerate(posterior["participant"].values)}
    return _draw_frame(design, coef, offsets)


def mixed_glm_draws(
    result,
    design: pd.DataFrame,
    n_draws: int = 1000,
    random_seed: Optional[int] = None,
) -> pd.DataFrame:
    """
    Entry/exit linear-predictor draws from a statsmodels fit.

    Draws come from the independent normal approximation that
    ``BinomialBayesMixedGLM`` reports (``fe_mean``/``fe_sd`` and the participant
    rows of ``random_effects()``). Participants only have random intercepts
    here, so the logit-scale difference is shared and the probability-scale
    difference is not. Item effects are left out.
    """
    rng = np.random.default_rng(random_seed)
    names = list(result.model.exog_names)
    order = [names.index(term) for term in ["Intercept"] + ITS_TERMS]
    fe_mean = np.asarray(result.fe_mean, dtype=float)[order]
    fe_sd = np.asarray(result.fe_sd, dtype=float)[order]
    coef = rng.normal(fe_mean, fe_sd, size=(n_draws, len(order)))

    prefix = f"C({PARTICIPANT_COL})["
    offsets: Dict[str, np.ndarray] = {}
    effects = result.random_effects()
    for name, mean, sd in effects[["Mean", "SD"]].itertuples():
        if not str(name).startswith(prefix):
            continue
        pid = re.search(r"\[(.*)\]$", str(name)).group(1)
        offset = np.zeros((n_draws, len(order)))
        offset[:, 0] = rng.normal(mean, sd, size=n_draws)
        offsets[pid] = offset
    return _draw_frame(design, coef, offsets)


def exit_minus_entry(
    draws: pd.DataFrame,
    scale: str = "logit",
    ci_prob: float = 0.9,
) -> pd.DataFrame:
    """
    Per-participant effect size: exit minus entry linear-predictor draws.

    ``scale="probability"`` transforms each draw with the inverse logit before
    subtracting. Summaries are the posterior mean and an equal-tailed interval.
    """
    if scale not in {"logit", "probability"}:
        raise ValueError(f"Unknown scale: {scale}. Valid scales: ['logit', 'probability']")
    if not 0 < ci_prob < 1:
        raise ValueError("ci_prob must be between 0 and 1")
    require_columns(draws, DRAW_COLUMNS, where="draws table")

    values = draws.copy()
    if scale == "probability":
        values["linpred"] = expit(values["linpred"].astype(float))
    wide = values.pivot_table(
        index=[PARTICIPANT_COL, "draw"],
        columns="timepoint",
        values="linpred",
        aggfunc="first",
    )
    if "entry" not in wide.columns or "exit" not in wide.columns:
        return pd.DataFrame(columns=[PARTICIPANT_COL, "mean", "ci_low", "ci_high", "n_draws"])
    diff = (wide["exit"] - wide["entry"]).dropna().rename("diff").reset_index()

    lo = (1.0 - ci_prob) / 2.0
    summary = diff.groupby(PARTICIPANT_COL)["diff"].agg(
        mean="mean",
        ci_low=lambda s: float(np.quantile(s, lo)),
        ci_high=lambda s: float(np.quantile(s, 1.0 - lo)),
        n_draws="size",
    )
    return summary.reset_index()
