"""End-to-end effect-size analysis."""

from .pipeline import EffectSizeConfig, compute_smd_tables, run_effect_sizes, save_tables

__all__ = [
    "EffectSizeConfig",
    "compute_smd_tables",
    "run_effect_sizes",
    "save_tables",
]
