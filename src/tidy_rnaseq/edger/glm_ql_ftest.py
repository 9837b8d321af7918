"""
Run quasi-likelihood F-test using edgeR::glmQLFTest.

This module provides a functional interface to perform F-tests on an
EdgeRModel and return raw per-feature statistics as a pandas DataFrame.
Multiple-testing adjustment is left to the caller.
"""

from __future__ import annotations
from typing import Optional, Sequence, Union
import numpy as np
import pandas as pd

from .utils import _prep_edger, r_to_pandas
from .checks import check_edger_model, check_coef_or_contrast
from .glm_ql_fit import EdgeRModel, glm_ql_fit

RESULT_COLUMNS = {
    "logFC": "log_fc",
    "logCPM": "log_cpm",
    "F": "f_statistic",
    "PValue": "p_value",
}


def glm_ql_ftest(
    model: EdgeRModel,
    coef: Optional[Union[str, int]] = None,
    contrast: Optional[Sequence[float]] = None,
) -> pd.DataFrame:
    """
    Run quasi-likelihood F-test on a fitted EdgeRModel.

    Args:
        model: EdgeRModel from glm_ql_fit().
        coef: Coefficient name (str) or index (int, 1-based) to test.
        contrast: Contrast weights over the design columns.

    Returns:
        pd.DataFrame indexed by feature with columns ``log_fc``,
        ``log_cpm``, ``f_statistic`` and ``p_value``, in model feature order.

    Raises:
        TypeError: If model is not an EdgeRModel.
        ValueError: If model.fit is None, or not exactly one of coef and
            contrast is specified.
    """
    check_edger_model(model)
    check_coef_or_contrast(coef, contrast)

    ro, pkg = _prep_edger()

    if contrast is not None:
        res = pkg.glmQLFTest(model.fit, contrast=ro.FloatVector(np.asarray(contrast, dtype=float)))
    elif isinstance(coef, int):
        res = pkg.glmQLFTest(model.fit, coef=ro.IntVector([coef]))
    else:
        res = pkg.glmQLFTest(model.fit, coef=ro.StrVector([str(coef)]))

    df = r_to_pandas(res.rx2("table"))
    df = df.rename(columns=RESULT_COLUMNS)[list(RESULT_COLUMNS.values())]
    df.index = df.index.astype(str)
    return df.reindex([str(f) for f in model.feature_names])


def ql_test(
    counts: np.ndarray,
    design: pd.DataFrame,
    contrast: Sequence[float],
    lib_size: Optional[Sequence[float]] = None,
    norm_factors: Optional[Sequence[float]] = None,
) -> pd.DataFrame:
    """Fit and test in one call; the default tester of the workflow.

    Returns a positional DataFrame (one row per row of `counts`).
    """
    names = [f"f{i}" for i in range(np.asarray(counts).shape[0])]
    model = glm_ql_fit(
        counts, design, feature_names=names, lib_size=lib_size, norm_factors=norm_factors,
    )
    return glm_ql_ftest(model, contrast=contrast).reset_index(drop=True)
