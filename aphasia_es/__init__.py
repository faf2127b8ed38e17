"""Single-case treatment effect sizes for aphasia probe data."""

__version__ = "0.1.0"
