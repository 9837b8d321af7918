"""
Differential abundance testing and result reporting.

Only features flagged abundant are tested. The statistical test itself is a
pluggable ``tester`` with the signature::

    tester(counts, design, contrast, lib_size, norm_factors) -> pd.DataFrame

returning one row per row of `counts` with ``log_fc``, ``log_cpm``,
``f_statistic`` and ``p_value``. The default tester is edgeR's
quasi-likelihood F-test (``tidy_rnaseq.edger.ql_test``). Benjamini-Hochberg
FDR is applied here over the valid tested features.
"""

from __future__ import annotations

import logging
import warnings
from typing import Any, Callable, Mapping, Optional, Sequence

import numpy as np
import pandas as pd
from scipy.stats import false_discovery_control

from .design import Contrast, contrast_vector, model_matrix
from .errors import ConfigurationError, NumericDegeneracyWarning, SchemaError
from .experiment import assay_array, column_data_frame
from .filtering import abundant_flags
from .normalization import tmm_factors

logger = logging.getLogger(__name__)

Tester = Callable[..., pd.DataFrame]

STAT_COLUMNS = ["log_fc", "log_cpm", "f_statistic", "p_value"]
RESULT_COLUMNS = ["feature", "abundant", *STAT_COLUMNS, "fdr", "significant", "valid"]


def adjust_pvalues(p_values: Sequence[float]) -> np.ndarray:
    """
    Benjamini-Hochberg adjusted p-values.

    Non-finite entries are left out of the adjustment and returned as NaN.
    The adjustment preserves the ranking of the raw p-values.
    """
    p = np.asarray(p_values, dtype=float)
    out = np.full(p.shape, np.nan)
    finite = np.isfinite(p)
    if finite.any():
        out[finite] = false_discovery_control(p[finite], method="bh")
    return out


def _default_tester() -> Tester:
    from .edger import ql_test
    return ql_test


def test_differential_abundance(
    se: Any,
    factors: Sequence[str],
    contrast: Contrast,
    assay: str = "counts",
    fdr_threshold: float = 0.05,
    reference_levels: Optional[Mapping[str, str]] = None,
    tester: Optional[Tester] = None,
) -> pd.DataFrame:
    """
    Test `contrast` for every abundant feature.

    Args:
        se: Experiment with ``row_data["abundant"]`` (see identify_abundant).
            TMM factors in ``column_data["tmm_factor"]`` are used when present
            and computed on the abundant features otherwise.
        factors: Sample columns forming the design, e.g. ``["dex", "cell"]``.
        contrast: Levels of one factor to compare.
        assay: Raw count assay.
        fdr_threshold: Features with ``fdr`` below this are significant.
        reference_levels: Optional reference level per factor.
        tester: Statistical test; default edgeR QL F-test.

    Returns:
        pd.DataFrame with one row per feature, in experiment order, and
        columns ``feature, abundant, log_fc, log_cpm, f_statistic, p_value,
        fdr, significant, valid``. Features that were not tested carry NaN
        statistics and ``pd.NA`` significance.

    Raises:
        ConfigurationError: If abundance flags are missing or the design or
            contrast is invalid.
    """
    flags = abundant_flags(se)
    if flags is None:
        raise ConfigurationError(
            "No 'abundant' flag found; run identify_abundant before testing"
        )
    if not flags.any():
        raise ConfigurationError("No abundant features to test")

    coldata = column_data_frame(se)
    design = model_matrix(coldata, factors, reference_levels=reference_levels)
    weights = contrast_vector(design, contrast, coldata)

    counts = assay_array(se, assay)[flags]
    lib_size = counts.sum(axis=0)
    if "tmm_factor" in coldata.columns:
        norm_factors = coldata["tmm_factor"].to_numpy(dtype=float)
    else:
        norm_factors, _ = tmm_factors(counts, sample_names=list(coldata.index))

    tester = tester or _default_tester()
    logger.info(
        "Testing %s on %d abundant features (design: %s)",
        contrast, counts.shape[0], " + ".join(design.columns),
    )
    stats = tester(counts, design, weights, lib_size, norm_factors)
    if len(stats) != counts.shape[0]:
        raise SchemaError(
            f"Tester returned {len(stats)} rows for {counts.shape[0]} tested features"
        )
    missing = [c for c in STAT_COLUMNS if c not in stats.columns]
    if missing:
        raise SchemaError(f"Tester result lacks columns {missing}")

    n = se.shape[0]
    table = pd.DataFrame({
        "feature": [str(f) for f in se.row_names],
        "abundant": flags,
    })
    for col in STAT_COLUMNS:
        values = np.full(n, np.nan)
        values[flags] = stats[col].to_numpy(dtype=float)
        table[col] = values

    valid = pd.array([pd.NA] * n, dtype="boolean")
    tested_valid = np.isfinite(table.loc[flags, "p_value"].to_numpy())
    valid[np.flatnonzero(flags)] = tested_valid
    n_invalid = int((~tested_valid).sum())
    if n_invalid:
        warnings.warn(
            f"{n_invalid} tested feature(s) had no valid statistic and were marked invalid",
            NumericDegeneracyWarning,
            stacklevel=2,
        )
        invalid_idx = np.flatnonzero(flags)[~tested_valid]
        table.loc[invalid_idx, STAT_COLUMNS] = np.nan

    table["fdr"] = adjust_pvalues(table["p_value"].to_numpy())
    significant = pd.array([pd.NA] * n, dtype="boolean")
    has_fdr = np.isfinite(table["fdr"].to_numpy())
    significant[has_fdr] = table["fdr"].to_numpy()[has_fdr] < fdr_threshold
    table["significant"] = significant
    table["valid"] = valid

    logger.info(
        "%d feature(s) significant at FDR < %g",
        int(np.nansum(table["fdr"].to_numpy() < fdr_threshold)), fdr_threshold,
    )
    return table[RESULT_COLUMNS]


# Keep pytest from collecting the public API as a test
test_differential_abundance.__test__ = False


def top_table(
    results: pd.DataFrame,
    n: Optional[int] = None,
    sort_by: str = "p_value",
) -> pd.DataFrame:
    """Tested features sorted by `sort_by` (absolute value for ``log_fc``)."""
    if sort_by not in results.columns:
        raise SchemaError(f"Cannot sort by '{sort_by}'; not a result column")
    tested = results[results["p_value"].notna()]
    if sort_by == "log_fc":
        order = tested["log_fc"].abs().sort_values(ascending=False, kind="stable").index
    else:
        order = tested[sort_by].sort_values(kind="stable").index
    ranked = tested.loc[order]
    return ranked.head(n).reset_index(drop=True) if n is not None else ranked.reset_index(drop=True)


def significant_features(
    results: pd.DataFrame,
    fdr_threshold: float = 0.05,
    min_abs_log_fc: float = 0.0,
) -> pd.DataFrame:
    """Features with ``fdr < fdr_threshold`` and ``|log_fc| >= min_abs_log_fc``."""
    fdr = results["fdr"].to_numpy(dtype=float)
    lfc = results["log_fc"].to_numpy(dtype=float)
    with np.errstate(invalid="ignore"):
        keep = (fdr < fdr_threshold) & (np.abs(lfc) >= min_abs_log_fc)
    return results[keep].reset_index(drop=True)
