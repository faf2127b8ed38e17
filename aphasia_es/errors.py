"""
Error and warning taxonomy.

Recoverable data conditions are issued as warnings and surface as missing
values; shape problems in the input table are fatal.
"""

from __future__ import annotations

from typing import Iterable


class ComputationUndefined(UserWarning):
    """Too few observations in a phase to compute an estimate."""


class DegenerateVariance(UserWarning):
    """Baseline SD is zero and no sibling sub-unit can donate one."""


class DataShapeError(KeyError):
    """Required columns or grouping keys are missing from the input table."""

    def __init__(self, missing: Iterable[str], where: str = "input table"):
        self.missing = sorted(missing)
        self.where = where
        super().__init__(f"{where} is missing required columns: {self.missing}")

    def __str__(self) -> str:
        return self.args[0]
