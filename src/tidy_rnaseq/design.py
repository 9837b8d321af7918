"""
Design matrices and contrasts.

Designs are built from sample columns with an intercept and treatment
(reference-level) coding; dummy columns are named ``<factor><level>``, as R's
``model.matrix`` names them, e.g. ``dextrt``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from .errors import ConfigurationError

INTERCEPT = "(Intercept)"


@dataclass(frozen=True)
class Contrast:
    """Comparison of two levels of one factor: numerator vs denominator.

    The resulting log fold-change is log2(numerator / denominator).
    """
    factor: str
    numerator: str
    denominator: str

    def __str__(self) -> str:
        return f"{self.factor}{self.numerator} - {self.factor}{self.denominator}"


def factor_levels(values: pd.Series, reference: Optional[str] = None) -> List[str]:
    """Levels of a factor, reference first.

    Categorical columns keep their category order; others are sorted.
    """
    if isinstance(values.dtype, pd.CategoricalDtype):
        levels = [str(c) for c in values.cat.categories if (values == c).any()]
    else:
        levels = sorted({str(v) for v in values})
    if reference is not None:
        if reference not in levels:
            raise ConfigurationError(
                f"Reference level '{reference}' not among levels {levels} of '{values.name}'"
            )
        levels.remove(reference)
        levels.insert(0, reference)
    return levels


def model_matrix(
    column_data: pd.DataFrame,
    factors: Sequence[str],
    reference_levels: Optional[Mapping[str, str]] = None,
) -> pd.DataFrame:
    """
    Build an intercept + treatment-coded design matrix.

    Args:
        column_data: Sample annotations indexed by sample id.
        factors: Sample columns to include, in order.
        reference_levels: Optional reference level per factor.

    Returns:
        pd.DataFrame (samples x coefficients) of floats.

    Raises:
        ConfigurationError: On an unknown factor, missing values, a factor
            with a single level, or a rank-deficient design.
    """
    if not factors:
        raise ConfigurationError("At least one design factor is required")
    reference_levels = dict(reference_levels or {})
    columns: Dict[str, np.ndarray] = {INTERCEPT: np.ones(len(column_data))}

    for factor in factors:
        if factor not in column_data.columns:
            raise ConfigurationError(
                f"Design factor '{factor}' is not a sample column. "
                f"Available: {list(column_data.columns)}"
            )
        values = column_data[factor]
        if values.isna().any():
            raise ConfigurationError(f"Design factor '{factor}' has missing values")
        levels = factor_levels(values, reference_levels.get(factor))
        if len(levels) < 2:
            raise ConfigurationError(f"Design factor '{factor}' has a single level {levels}")
        as_str = values.astype(str).to_numpy()
        for level in levels[1:]:
            columns[f"{factor}{level}"] = (as_str == level).astype(float)

    design = pd.DataFrame(columns, index=column_data.index)
    design.attrs["factors"] = list(factors)
    rank = np.linalg.matrix_rank(design.to_numpy())
    if rank < design.shape[1]:
        raise ConfigurationError(
            f"Design is not of full rank ({rank} < {design.shape[1]} coefficients); "
            f"factors {list(factors)} are confounded"
        )
    return design


def contrast_vector(
    design: pd.DataFrame,
    contrast: Contrast,
    column_data: pd.DataFrame,
) -> np.ndarray:
    """
    Contrast weights over the design columns for `contrast`.

    The reference level has no column, so comparing against it yields a
    single non-zero weight.

    Raises:
        ConfigurationError: If the factor is not in the design, a level is
            unknown, or numerator equals denominator.
    """
    if contrast.factor not in column_data.columns:
        raise ConfigurationError(f"Contrast factor '{contrast.factor}' is not a sample column")
    levels = {str(v) for v in column_data[contrast.factor]}
    for level in (contrast.numerator, contrast.denominator):
        if level not in levels:
            raise ConfigurationError(
                f"Level '{level}' not found in factor '{contrast.factor}' (levels: {sorted(levels)})"
            )
    if contrast.numerator == contrast.denominator:
        raise ConfigurationError("Contrast numerator and denominator must differ")

    weights = np.zeros(design.shape[1])
    columns = list(design.columns)
    if contrast.factor not in design.attrs.get("factors", ()):
        raise ConfigurationError(f"Factor '{contrast.factor}' is not part of the design")
    for level, sign in ((contrast.numerator, 1.0), (contrast.denominator, -1.0)):
        name = f"{contrast.factor}{level}"
        if name in columns:
            weights[columns.index(name)] += sign
    return weights
