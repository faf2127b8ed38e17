"""
Effect Sizes
============

Single-case effect sizes: d_BR with degenerate-variance repair, PMG, Tau-U,
and hierarchical GLM (interrupted time-series) effect sizes.

Usage:
    from aphasia_es.effect_sizes import (
        smd_by_subunit,
        repair_estimates,
        aggregate_groups,
    )
"""

from ..errors import ComputationUndefined, DataShapeError, DegenerateVariance
from .records import GroupEstimate, SubunitEstimate

# d_BR batch calculator
from .smd import (
    baseline_sd,
    build_subunit_series,
    compute_subunit_estimate,
    compute_subunit_estimates,
    smd_by_subunit,
    standardized_difference,
)

# Degenerate-variance repair + aggregation
from .repair import (
    aggregate_group,
    aggregate_groups,
    estimates_to_frame,
    groups_to_frame,
    repair_estimates,
    repair_group,
    select_donor_sd,
)

# Other families
from .pmg import pmg_by_group, proportion_of_maximal_gain
from .tau_u import TauUResult, kendall_s, phase_comparison_s, tau_u, tau_u_by_group
from .glmm import (
    GLMMConfig,
    build_its_design,
    convergence_summary,
    exit_minus_entry,
    fit_bayesian_glm,
    fit_mixed_glm,
    fit_mixed_glm_result,
    fixed_effects_table,
    linear_predictor_draws,
    mixed_glm_draws,
    timepoint_covariates,
)

__all__ = [
    # Errors
    'ComputationUndefined',
    'DataShapeError',
    'DegenerateVariance',
    # Records
    'GroupEstimate',
    'SubunitEstimate',
    # d_BR
    'baseline_sd',
    'build_subunit_series',
    'compute_subunit_estimate',
    'compute_subunit_estimates',
    'smd_by_subunit',
    'standardized_difference',
    # Repair
    'aggregate_group',
    'aggregate_groups',
    'estimates_to_frame',
    'groups_to_frame',
    'repair_estimates',
    'repair_group',
    'select_donor_sd',
    # PMG / Tau-U
    'pmg_by_group',
    'proportion_of_maximal_gain',
    'TauUResult',
    'kendall_s',
    'phase_comparison_s',
    'tau_u',
    'tau_u_by_group',
    # GLMM
    'GLMMConfig',
    'build_its_design',
    'convergence_summary',
    'exit_minus_entry',
    'fit_bayesian_glm',
    'fit_mixed_glm',
    'fit_mixed_glm_result',
    'fixed_effects_table',
    'linear_predictor_draws',
    'mixed_glm_draws',
    'timepoint_covariates',
]
