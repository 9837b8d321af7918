"""
Flag and keep abundant features.

Implements the edgeR ``filterByExpr`` rule: a feature is abundant when its
counts-per-million reach ``min_count / median(library size) * 1e6`` in at
least k samples, k being the size of the smallest group of the factor of
interest, and its total count reaches ``min_total_count``.

Functional API:
    >>> mask = abundance_mask(counts, groups=["trt", "trt", "untrt", "untrt"])
    >>> se = identify_abundant(se, factor_of_interest="dex")
    >>> se = keep_abundant(se, factor_of_interest="dex")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import numpy as np
import pandas as pd

from .checks import check_factor
from .errors import ConfigurationError
from .experiment import assay_array, column_data_frame, row_data_frame, subset_features, with_row_data
from .normalization import cpm

logger = logging.getLogger(__name__)

_TOL = 1e-14


@dataclass(frozen=True)
class AbundanceFilterConfig:
    """Parameters of the abundance filter (edgeR filterByExpr defaults)."""
    factor_of_interest: Optional[str] = None
    min_count: float = 10.0
    min_total_count: float = 15.0
    large_n: int = 10
    min_prop: float = 0.7
    assay: str = "counts"


def minimum_group_size(
    groups: Sequence[Any],
    large_n: int = 10,
    min_prop: float = 0.7,
) -> float:
    """
    Minimum effective number of samples k for the abundance rule.

    k is the size of the smallest group; a single group gives the total
    number of samples. When k exceeds `large_n` only a proportion
    `min_prop` of the samples beyond `large_n` is required.

    Raises:
        ConfigurationError: If no groups are defined.
    """
    groups = pd.Series(list(groups), dtype=object)
    if len(groups) == 0:
        raise ConfigurationError("No groups defined: the grouping factor has no samples")
    if groups.isna().any():
        raise ConfigurationError("Grouping factor has missing values")
    k = float(groups.value_counts().min())
    if k > large_n:
        k = large_n + (k - large_n) * min_prop
    return k


def abundance_mask(
    counts: np.ndarray,
    groups: Optional[Sequence[Any]] = None,
    min_sample_size: Optional[float] = None,
    lib_size: Optional[Sequence[float]] = None,
    min_count: float = 10.0,
    min_total_count: float = 15.0,
    large_n: int = 10,
    min_prop: float = 0.7,
) -> np.ndarray:
    """
    Boolean mask of abundant features for a features x samples count matrix.

    Either `groups` (one label per sample) or an explicit `min_sample_size`
    must be given.

    Args:
        counts: Raw counts, features x samples.
        groups: Group label per sample; defines k via `minimum_group_size`.
        min_sample_size: Explicit k, overriding `groups`.
        lib_size: Library sizes. Default: column sums.
        min_count: Minimum count, converted to a CPM cutoff at the median
            library size.
        min_total_count: Minimum total count across all samples.
        large_n: Group size beyond which only a proportion is required.
        min_prop: Proportion required beyond `large_n`.

    Returns:
        np.ndarray of bool, True for abundant features.
    """
    counts = np.asarray(counts, dtype=float)
    if min_sample_size is None:
        if groups is None:
            raise ConfigurationError("No groups defined; pass `groups` or `min_sample_size`")
        if len(groups) != counts.shape[1]:
            raise ConfigurationError(
                f"Got {len(groups)} group labels for {counts.shape[1]} samples"
            )
        min_sample_size = minimum_group_size(groups, large_n=large_n, min_prop=min_prop)

    lib_size = counts.sum(axis=0) if lib_size is None else np.asarray(lib_size, dtype=float)
    cutoff = min_count / np.median(lib_size) * 1e6
    cpm_values = cpm(counts, lib_size=lib_size)

    keep_cpm = (cpm_values >= cutoff).sum(axis=1) >= (min_sample_size - _TOL)
    keep_total = counts.sum(axis=1) >= (min_total_count - _TOL)
    return keep_cpm & keep_total


def identify_abundant(
    se: Any,
    factor_of_interest: Optional[str] = None,
    assay: str = "counts",
    min_count: float = 10.0,
    min_total_count: float = 15.0,
    large_n: int = 10,
    min_prop: float = 0.7,
) -> Any:
    """
    Flag abundant features in ``row_data["abundant"]``.

    Args:
        se: Input experiment.
        factor_of_interest: Sample column defining the groups.
        assay: Raw count assay. Default: "counts".
        min_count, min_total_count, large_n, min_prop: See `abundance_mask`.

    Returns:
        New experiment with a boolean ``abundant`` feature column.

    Raises:
        ConfigurationError: If the factor is missing, unknown or incomplete.
    """
    groups = check_factor(column_data_frame(se), factor_of_interest)
    mask = abundance_mask(
        assay_array(se, assay),
        groups=groups.to_numpy(),
        min_count=min_count,
        min_total_count=min_total_count,
        large_n=large_n,
        min_prop=min_prop,
    )
    logger.info(
        "%d/%d features abundant (factor '%s', min_count=%g)",
        int(mask.sum()), len(mask), factor_of_interest, min_count,
    )
    return with_row_data(se, abundant=mask)


def keep_abundant(se: Any, factor_of_interest: Optional[str] = None, **kwargs) -> Any:
    """Flag abundant features and drop the others.

    Keyword arguments are passed to `identify_abundant`.
    """
    flagged = identify_abundant(se, factor_of_interest=factor_of_interest, **kwargs)
    return subset_features(flagged, row_data_frame(flagged)["abundant"].to_numpy(dtype=bool))


def abundant_flags(se: Any) -> Optional[np.ndarray]:
    """Return ``row_data["abundant"]`` as a bool array, or None when absent."""
    rowdata = row_data_frame(se)
    if "abundant" not in rowdata.columns:
        return None
    return rowdata["abundant"].to_numpy(dtype=bool)
