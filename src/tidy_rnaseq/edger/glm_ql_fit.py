"""
Fit quasi-likelihood GLM using edgeR::glmQLFit.

This module provides the EdgeRModel dataclass for storing fit results
and the glm_ql_fit function for fitting the model: counts are wrapped in a
DGEList carrying the supplied library sizes and normalization factors,
dispersions are estimated with estimateDisp, then glmQLFit is run.
"""

from __future__ import annotations
from typing import Any, Dict, Optional, Sequence, Union
from dataclasses import dataclass
import logging
import numpy as np
import pandas as pd

from ..checks import check_design
from .utils import _prep_edger, numpy_to_r_matrix, pandas_to_r_matrix

logger = logging.getLogger(__name__)


@dataclass
class GlmQlFitConfig:
    """Configuration used for GLM QL fitting."""
    robust: bool = True
    lib_size: Optional[Sequence[float]] = None
    norm_factors: Optional[Sequence[float]] = None
    user_kwargs: Optional[Dict[str, Any]] = None


@dataclass
class EdgeRModel:
    """Container for edgeR GLM fit results.

    Attributes:
        sample_names: Sample names (columns of the fitted counts).
        feature_names: Feature names (rows of the fitted counts).
        fit: R object from glmQLFit.
        fit_config: Configuration used for fitting.
        design: Design matrix used for fitting.
    """
    sample_names: Optional[Sequence[str]] = None
    feature_names: Optional[Sequence[str]] = None
    fit: Optional[Any] = None
    fit_config: Optional[GlmQlFitConfig] = None
    design: Optional[pd.DataFrame] = None

    def glm_ql_ftest(
        self,
        coef: Optional[Union[str, int]] = None,
        contrast: Optional[Sequence[float]] = None,
    ) -> pd.DataFrame:
        """
        Run quasi-likelihood F-test on this fitted model.

        Convenience method that delegates to the glm_ql_ftest function.
        """
        from .glm_ql_ftest import glm_ql_ftest as _glm_ql_ftest
        return _glm_ql_ftest(self, coef=coef, contrast=contrast)


def glm_ql_fit(
    counts: np.ndarray,
    design: pd.DataFrame,
    feature_names: Optional[Sequence[str]] = None,
    sample_names: Optional[Sequence[str]] = None,
    lib_size: Optional[Sequence[float]] = None,
    norm_factors: Optional[Sequence[float]] = None,
    robust: bool = True,
    **kwargs
) -> EdgeRModel:
    """
    Estimate dispersions and fit a quasi-likelihood negative-binomial GLM.

    Args:
        counts: Raw counts, features x samples.
        design: Design matrix (samples x coefficients) as pandas DataFrame.
        feature_names: Feature identifiers. Default: "1".."n".
        sample_names: Sample identifiers. Default: the design index.
        lib_size: Library sizes. Default: column sums (edgeR).
        norm_factors: Normalization factors, e.g. TMM. Default: ones.
        robust: Robust empirical Bayes for dispersions and QL fit.
        **kwargs: Additional args forwarded to glmQLFit.

    Returns:
        EdgeRModel: Container with the fitted model.

    Raises:
        TypeError: If design is not a DataFrame.
        ConfigurationError: If design rows don't match the sample count.
    """
    counts = np.asarray(counts, dtype=float)
    check_design(design, counts.shape[1])
    if feature_names is None:
        feature_names = [str(i + 1) for i in range(counts.shape[0])]
    if sample_names is None:
        sample_names = [str(s) for s in design.index]

    ro, pkg = _prep_edger()
    rmat = numpy_to_r_matrix(counts, rownames=feature_names, colnames=sample_names)
    design_r = pandas_to_r_matrix(design)

    dge_args: Dict[str, Any] = {}
    if lib_size is not None:
        dge_args["lib.size"] = ro.FloatVector(np.asarray(lib_size, dtype=float))
    if norm_factors is not None:
        dge_args["norm.factors"] = ro.FloatVector(np.asarray(norm_factors, dtype=float))

    logger.debug("Fitting edgeR QL GLM on %d features x %d samples", *counts.shape)
    y = pkg.DGEList(counts=rmat, **dge_args)
    y = pkg.estimateDisp(y, design=design_r, robust=robust)
    fit_obj = pkg.glmQLFit(y, design=design_r, robust=robust, **kwargs)

    config = GlmQlFitConfig(
        robust=robust,
        lib_size=lib_size,
        norm_factors=norm_factors,
        user_kwargs=kwargs if kwargs else None,
    )

    return EdgeRModel(
        sample_names=list(sample_names),
        feature_names=list(feature_names),
        fit=fit_obj,
        fit_config=config,
        design=design,
    )
