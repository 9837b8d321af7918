"""
Input validation utilities for edgeR functions.
"""

from __future__ import annotations
from typing import Any, Optional, Sequence


def check_edger_model(model: Any) -> None:
    """Check that input is a valid EdgeRModel with a fit object."""
    from .glm_ql_fit import EdgeRModel
    if not isinstance(model, EdgeRModel):
        raise TypeError(
            f"Expected an EdgeRModel, got {type(model).__name__}"
        )
    if model.fit is None:
        raise ValueError("EdgeRModel.fit is None - model has not been fitted")


def check_coef_or_contrast(
    coef: Optional[Any],
    contrast: Optional[Sequence],
) -> None:
    """Check that at least one of coef or contrast is provided, but not both."""
    if coef is None and contrast is None:
        raise ValueError("Either `coef` or `contrast` must be specified")
    if coef is not None and contrast is not None:
        raise ValueError("Specify either `coef` or `contrast`, not both")
