"""
Input validation utilities shared by the workflow steps.

Provides centralized checks for SummarizedExperiment variants, assays,
sample columns and long tables.
"""

from __future__ import annotations
from typing import Any, Iterable, Optional, Sequence

import numpy as np
import pandas as pd

from .errors import ConfigurationError, SchemaError


def check_se(se: Any, name: str = "se") -> None:
    """Check that input is a SummarizedExperiment-like object.

    Accepts any object with assays and assay_names attributes
    (duck typing for SE, RSE, SCE and TidyExperiment).
    """
    required_attrs = ["assays", "assay_names"]
    for attr in required_attrs:
        if not hasattr(se, attr):
            raise TypeError(
                f"Expected `{name}` to be a SummarizedExperiment-like object, "
                f"got {type(se).__name__} which lacks '{attr}'"
            )


def check_assay_exists(se: Any, assay: str) -> None:
    """Check that the specified assay exists in the SummarizedExperiment."""
    if assay not in se.assay_names:
        available = list(se.assay_names)
        raise SchemaError(
            f"Assay '{assay}' not found. Available assays: {available}"
        )


def check_columns(df: pd.DataFrame, columns: Iterable[str], what: str = "table") -> None:
    """Check that every column in `columns` is present in `df`."""
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise SchemaError(
            f"Required column(s) {missing} absent from {what}. "
            f"Available: {list(df.columns)}"
        )


def check_unique(values: Sequence[Any], what: str) -> None:
    """Check that identifiers are unique."""
    values = pd.Index(values)
    if values.has_duplicates:
        dups = values[values.duplicated()].unique().tolist()
        raise SchemaError(f"Duplicate {what}: {dups[:10]}")


def check_counts(counts: np.ndarray) -> None:
    """Check that a count matrix is numeric, finite and non-negative."""
    if not np.issubdtype(counts.dtype, np.number):
        raise SchemaError(f"Counts must be numeric, got dtype {counts.dtype}")
    if counts.ndim != 2:
        raise SchemaError(f"Counts must be a 2-d matrix, got {counts.ndim} dimension(s)")
    if not np.all(np.isfinite(counts)):
        raise SchemaError("Counts contain missing or infinite values")
    if np.any(counts < 0):
        raise SchemaError("Counts must be non-negative")


def check_factor(column_data: pd.DataFrame, factor: Optional[str]) -> pd.Series:
    """Return the sample column `factor`, validated as a grouping covariate.

    Raises:
        ConfigurationError: If no factor is given, it is not a sample
            column, or it has missing values.
    """
    if factor is None:
        raise ConfigurationError(
            "No grouping factor defined; pass `factor_of_interest`"
        )
    if factor not in column_data.columns:
        raise ConfigurationError(
            f"Grouping factor '{factor}' is not a sample column. "
            f"Available: {list(column_data.columns)}"
        )
    groups = column_data[factor]
    if len(groups) == 0:
        raise ConfigurationError(f"Grouping factor '{factor}' has no samples")
    if groups.isna().any():
        raise ConfigurationError(f"Grouping factor '{factor}' has missing values")
    return groups


def check_design(design: Any, n_samples: Optional[int] = None) -> None:
    """Check that design is a valid pandas DataFrame."""
    if not isinstance(design, pd.DataFrame):
        raise TypeError(
            f"Expected `design` to be a pandas DataFrame, "
            f"got {type(design).__name__}"
        )
    if n_samples is not None and len(design) != n_samples:
        raise ConfigurationError(
            f"Design matrix has {len(design)} rows but expected {n_samples} samples"
        )
