"""
Library-size scaling: counts per million and TMM normalization factors.

TMM (trimmed mean of M-values) follows edgeR's ``calcNormFactors``
conventions: the reference is the sample whose upper quartile is closest to
the mean upper quartile, 30% of each M tail and 5% of each A tail are
trimmed, and the kept log-ratios are averaged with inverse asymptotic
variance weights. Factors are centred to geometric mean 1 unless
``center=False``, in which case the reference sample's factor is exactly 1.

Functional API:
    >>> factors = tmm_factors(counts)
    >>> se = calc_norm_factors(se)
    >>> se = scale_abundance(se)   # adds the "counts_scaled" assay
    >>> scaling_table(se)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy.stats import rankdata

from .errors import ConfigurationError, NumericDegeneracyError, SchemaError
from .experiment import assay_array, column_data_frame, with_assay, with_column_data

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TMMConfig:
    """Parameters of the TMM computation (edgeR defaults)."""
    ref_column: Optional[int] = None
    logratio_trim: float = 0.3
    sum_trim: float = 0.05
    do_weighting: bool = True
    a_cutoff: float = -1e10
    center: bool = True


# =============================================================================
# Counts per million
# =============================================================================

def cpm(
    counts: np.ndarray,
    lib_size: Optional[Sequence[float]] = None,
    norm_factors: Optional[Sequence[float]] = None,
    log: bool = False,
    prior_count: float = 2.0,
) -> np.ndarray:
    """
    Counts per million, optionally log2 with a prior count.

    The effective library size is ``lib_size * norm_factors``. For log-CPM the
    prior count is scaled by each library's size relative to the mean library
    size and twice the scaled prior is added to the library size, as edgeR
    does.

    Args:
        counts: Features x samples counts.
        lib_size: Library sizes. Default: column sums.
        norm_factors: Normalization factors. Default: all ones.
        log: Return log2-CPM.
        prior_count: Average count added before taking logs.

    Returns:
        np.ndarray of the same shape as `counts`.
    """
    counts = np.asarray(counts, dtype=float)
    lib = counts.sum(axis=0) if lib_size is None else np.asarray(lib_size, dtype=float)
    if norm_factors is not None:
        lib = lib * np.asarray(norm_factors, dtype=float)
    if not log:
        return counts / lib * 1e6
    prior = prior_count * lib / lib.mean()
    return np.log2((counts + prior) / (lib + 2.0 * prior) * 1e6)


# =============================================================================
# TMM
# =============================================================================

def _upper_quartiles(counts: np.ndarray, lib_size: np.ndarray, p: float = 0.75) -> np.ndarray:
    return np.quantile(counts / lib_size, p, axis=0)


def select_reference(counts: np.ndarray, lib_size: Optional[np.ndarray] = None) -> int:
    """Index of the TMM reference sample.

    The sample whose upper-quartile proportion is closest to the mean upper
    quartile (first on ties); when the median upper quartile is essentially
    zero, the sample with the largest sum of square-root counts.
    """
    counts = np.asarray(counts, dtype=float)
    lib = counts.sum(axis=0) if lib_size is None else np.asarray(lib_size, dtype=float)
    f75 = _upper_quartiles(counts, lib)
    if np.median(f75) < 1e-20:
        return int(np.argmax(np.sqrt(counts).sum(axis=0)))
    return int(np.argmin(np.abs(f75 - f75.mean())))


def _tmm_factor(
    obs: np.ndarray,
    ref: np.ndarray,
    lib_obs: float,
    lib_ref: float,
    logratio_trim: float,
    sum_trim: float,
    do_weighting: bool,
    a_cutoff: float,
) -> Optional[float]:
    """TMM factor of one sample against the reference; None when undefined."""
    with np.errstate(divide="ignore", invalid="ignore"):
        log_obs = np.log2(obs / lib_obs)
        log_ref = np.log2(ref / lib_ref)
        log_r = log_obs - log_ref
        abs_e = (log_obs + log_ref) / 2.0
        v = (lib_obs - obs) / lib_obs / obs + (lib_ref - ref) / lib_ref / ref

    fin = np.isfinite(log_r) & np.isfinite(abs_e) & (abs_e > a_cutoff)
    log_r, abs_e, v = log_r[fin], abs_e[fin], v[fin]
    if len(log_r) == 0:
        return None
    if np.max(np.abs(log_r)) < 1e-6:
        return 1.0

    n = len(log_r)
    lo_l = np.floor(n * logratio_trim) + 1
    hi_l = n + 1 - lo_l
    lo_s = np.floor(n * sum_trim) + 1
    hi_s = n + 1 - lo_s

    rank_r = rankdata(log_r, method="average")
    rank_e = rankdata(abs_e, method="average")
    keep = (rank_r >= lo_l) & (rank_r <= hi_l) & (rank_e >= lo_s) & (rank_e <= hi_s)
    if not keep.any():
        return 1.0

    if do_weighting:
        w = 1.0 / v[keep]
        f = np.sum(log_r[keep] * w) / np.sum(w)
    else:
        f = np.mean(log_r[keep])
    if not np.isfinite(f):
        f = 0.0
    return float(2.0 ** f)


def tmm_factors(
    counts: np.ndarray,
    lib_size: Optional[Sequence[float]] = None,
    ref_column: Optional[int] = None,
    logratio_trim: float = 0.3,
    sum_trim: float = 0.05,
    do_weighting: bool = True,
    a_cutoff: float = -1e10,
    center: bool = True,
    sample_names: Optional[Sequence[str]] = None,
) -> Tuple[np.ndarray, int]:
    """
    TMM normalization factors for a features x samples count matrix.

    Args:
        counts: Raw counts, features x samples.
        lib_size: Library sizes. Default: column sums.
        ref_column: Reference sample index (0-based). Default: chosen by
            `select_reference`.
        logratio_trim: Fraction trimmed from each tail of the M-values.
        sum_trim: Fraction trimmed from each tail of the A-values.
        do_weighting: Use inverse asymptotic variance weights.
        a_cutoff: Drop features whose A-value is not above this cutoff.
        center: Rescale factors to geometric mean 1.
        sample_names: Used in error messages.

    Returns:
        Tuple ``(factors, reference_index)``.

    Raises:
        SchemaError: If counts are not a 2-d matrix.
        ConfigurationError: If `ref_column` is not a valid sample index.
        NumericDegeneracyError: If a library is empty or a sample shares no
            non-zero feature with the reference.
    """
    counts = np.asarray(counts, dtype=float)
    if counts.ndim != 2:
        raise SchemaError(f"Counts must be a 2-d matrix, got {counts.ndim} dimension(s)")
    n_samples = counts.shape[1]
    names = list(sample_names) if sample_names is not None else [str(i) for i in range(n_samples)]

    lib = counts.sum(axis=0) if lib_size is None else np.asarray(lib_size, dtype=float)
    if np.any(lib <= 0):
        empty = [names[i] for i in np.flatnonzero(lib <= 0)]
        raise NumericDegeneracyError(f"Empty library for sample(s) {empty}", sample=empty[0])

    counts = counts[counts.sum(axis=1) > 0]

    if ref_column is None:
        ref_column = select_reference(counts, lib)
    elif not 0 <= ref_column < n_samples:
        raise ConfigurationError(f"ref_column {ref_column} out of range for {n_samples} samples")

    factors = np.empty(n_samples)
    for i in range(n_samples):
        f = _tmm_factor(
            counts[:, i], counts[:, ref_column], lib[i], lib[ref_column],
            logratio_trim, sum_trim, do_weighting, a_cutoff,
        )
        if f is None:
            raise NumericDegeneracyError(
                f"TMM factor undefined for sample '{names[i]}': no non-zero feature "
                f"shared with reference '{names[ref_column]}'",
                sample=names[i],
            )
        factors[i] = f

    if center:
        factors = factors / np.exp(np.mean(np.log(factors)))
    return factors, int(ref_column)


def calc_norm_factors(
    se: Any,
    assay: str = "counts",
    features: Optional[np.ndarray] = None,
    config: Optional[TMMConfig] = None,
) -> Any:
    """
    Compute TMM factors and store them in column_data.

    Library sizes and factors are computed over `features` (a boolean mask)
    when given. Adds ``lib_size`` and ``tmm_factor`` columns and records the
    reference sample in ``metadata["tmm_reference"]``.
    """
    config = config or TMMConfig()
    counts = assay_array(se, assay)
    if features is not None:
        counts = counts[np.asarray(features, dtype=bool)]
    names = [str(s) for s in se.column_names]

    factors, ref = tmm_factors(
        counts,
        ref_column=config.ref_column,
        logratio_trim=config.logratio_trim,
        sum_trim=config.sum_trim,
        do_weighting=config.do_weighting,
        a_cutoff=config.a_cutoff,
        center=config.center,
        sample_names=names,
    )
    logger.debug("TMM reference sample: %s", names[ref])
    output = with_column_data(se, lib_size=counts.sum(axis=0), tmm_factor=factors)
    meta = dict(output.metadata) if output.metadata else {}
    meta["tmm_reference"] = names[ref]
    return output.set_metadata(meta, in_place=False)


def scale_abundance(
    se: Any,
    assay: str = "counts",
    config: Optional[TMMConfig] = None,
) -> Any:
    """
    TMM-scale counts into a ``counts_scaled`` assay.

    Factors are computed on abundant features (``row_data["abundant"]``);
    without that flag every feature is used and a warning is logged.
    ``multiplier = ref_lib_size / (lib_size * tmm_factor)`` rescales every
    sample to the depth of the reference sample.
    """
    from .filtering import abundant_flags

    flags = abundant_flags(se)
    if flags is None:
        logger.warning("No 'abundant' flag found; scaling on all features. Run identify_abundant first.")
    elif not flags.any():
        raise NumericDegeneracyError("No abundant features to compute scaling factors on")

    scaled = calc_norm_factors(se, assay=assay, features=flags, config=config)
    coldata = column_data_frame(scaled)
    lib = coldata["lib_size"].to_numpy(dtype=float)
    factors = coldata["tmm_factor"].to_numpy(dtype=float)
    ref = [str(s) for s in se.column_names].index(scaled.metadata["tmm_reference"])

    multiplier = lib[ref] / (lib * factors)
    values = assay_array(se, assay) * multiplier
    scaled = with_column_data(scaled, multiplier=multiplier)
    return with_assay(scaled, f"{assay}_scaled", values)


def scaling_table(se: Any) -> pd.DataFrame:
    """Per-sample (sample, lib_size, tmm_factor, multiplier) table."""
    coldata = column_data_frame(se)
    missing = [c for c in ("lib_size", "tmm_factor", "multiplier") if c not in coldata.columns]
    if missing:
        raise SchemaError(f"Scaling columns {missing} not found; run scale_abundance first")
    table = coldata[["lib_size", "tmm_factor", "multiplier"]].copy()
    table.insert(0, "sample", table.index.to_numpy())
    return table.reset_index(drop=True)


def log_cpm_matrix(
    se: Any,
    assay: str = "counts",
    features: Optional[np.ndarray] = None,
    prior_count: float = 2.0,
) -> np.ndarray:
    """log2-CPM of an assay restricted to `features`.

    Library sizes are the column sums over the kept features; stored TMM
    factors (``column_data["tmm_factor"]``) are applied when present.
    """
    counts = assay_array(se, assay)
    if features is not None:
        counts = counts[np.asarray(features, dtype=bool)]
    coldata = column_data_frame(se)
    factors = coldata["tmm_factor"].to_numpy(dtype=float) if "tmm_factor" in coldata.columns else None
    return cpm(counts, norm_factors=factors, log=True, prior_count=prior_count)
