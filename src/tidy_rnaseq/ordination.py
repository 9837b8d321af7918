"""
Dimensionality reduction of samples.

MDS follows limma's ``plotMDS`` with pairwise gene selection: the distance
between two samples is the root-mean-square of their `top` largest log-CPM
differences, and the distance matrix is embedded by classical scaling.

Conventions that make the output deterministic for a fixed input order:
eigenvalues are sorted in decreasing order with a stable sort, so tied
eigenvalues keep numpy's ``eigh`` order; negative eigenvalues are clipped to
zero; each dimension's sign is chosen so that its largest-magnitude
coordinate (the first one on ties) is positive.
"""

from __future__ import annotations

import logging
import warnings
from typing import Any, Optional, Tuple

import numpy as np

from .errors import ConfigurationError, NumericDegeneracyWarning
from .experiment import with_column_data
from .filtering import abundant_flags
from .normalization import log_cpm_matrix

logger = logging.getLogger(__name__)


def _orient(coords: np.ndarray) -> np.ndarray:
    """Flip each column so its largest-magnitude entry is positive."""
    idx = np.argmax(np.abs(coords), axis=0)
    signs = np.sign(coords[idx, np.arange(coords.shape[1])])
    signs[signs == 0] = 1.0
    return coords * signs


def pairwise_distances(log_expr: np.ndarray, top: int = 500) -> np.ndarray:
    """Leading log-fold-change distances between samples (columns)."""
    n_features, n_samples = log_expr.shape
    top = min(top, n_features)
    dist = np.zeros((n_samples, n_samples))
    for i in range(1, n_samples):
        for j in range(i):
            sq = (log_expr[:, i] - log_expr[:, j]) ** 2
            leading = np.sort(sq)[::-1][:top]
            dist[i, j] = dist[j, i] = np.sqrt(np.mean(leading))
    return dist


def classical_mds(dist: np.ndarray, n_dims: int = 2) -> Tuple[np.ndarray, np.ndarray]:
    """
    Classical (Torgerson) scaling of a symmetric distance matrix.

    Returns:
        Tuple ``(coordinates, eigenvalues)``; coordinates are
        samples x n_dims, eigenvalues are all eigenvalues in decreasing order.
    """
    n = dist.shape[0]
    centering = np.eye(n) - np.ones((n, n)) / n
    b = -0.5 * centering @ (dist ** 2) @ centering
    values, vectors = np.linalg.eigh(b)
    order = np.argsort(-values, kind="stable")
    values, vectors = values[order], vectors[:, order]

    kept = values[:n_dims]
    if np.any(kept < -1e-10 * max(1.0, np.abs(values).max())):
        warnings.warn(
            "Negative eigenvalues among the leading MDS dimensions were clipped to zero",
            NumericDegeneracyWarning,
            stacklevel=2,
        )
    coords = vectors[:, :n_dims] * np.sqrt(np.clip(kept, 0.0, None))
    return _orient(coords), values


def principal_components(log_expr: np.ndarray, n_dims: int = 2, top: int = 500) -> Tuple[np.ndarray, np.ndarray]:
    """
    PCA of samples on the `top` most variable features.

    Returns:
        Tuple ``(scores, explained_variance_ratio)``; scores are samples x n_dims.
    """
    variances = log_expr.var(axis=1)
    order = np.argsort(-variances, kind="stable")[: min(top, len(variances))]
    x = log_expr[order].T
    x = x - x.mean(axis=0)
    u, s, _ = np.linalg.svd(x, full_matrices=False)
    scores = _orient(u[:, :n_dims] * s[:n_dims])
    total = np.sum(s ** 2)
    ratio = (s ** 2) / total if total > 0 else np.zeros_like(s)
    return scores, ratio


def reduce_dimensions(
    se: Any,
    method: str = "MDS",
    n_dims: int = 2,
    top: int = 500,
    assay: str = "counts",
    prior_count: float = 2.0,
) -> Any:
    """
    Project samples into `n_dims` dimensions.

    Works on log-CPM of abundant features (all features when no
    ``abundant`` flag is present), using stored TMM factors when available.

    Args:
        se: Input experiment.
        method: "MDS" or "PCA".
        n_dims: Number of dimensions; at least 1 and fewer than the number
            of samples.
        top: Number of leading features per pair (MDS) or most variable
            features (PCA).
        assay: Raw count assay.
        prior_count: Prior count of the log-CPM transform.

    Returns:
        New experiment with ``Dim1..DimN`` (MDS) or ``PC1..PCN`` (PCA) sample
        columns; ``metadata["reduced_dimensions"]`` records the method and the
        proportion of variance per dimension.

    Raises:
        ConfigurationError: On an unknown method, invalid `n_dims`/`top`, or
            when no feature is flagged abundant.
    """
    method = method.upper()
    if method not in ("MDS", "PCA"):
        raise ConfigurationError(f"Unknown reduction method '{method}'; use 'MDS' or 'PCA'")
    n_samples = se.shape[1]
    if not 1 <= n_dims < n_samples:
        raise ConfigurationError(
            f"n_dims must be between 1 and {n_samples - 1} for {n_samples} samples, got {n_dims}"
        )
    if top < 1:
        raise ConfigurationError(f"top must be positive, got {top}")

    flags: Optional[np.ndarray] = abundant_flags(se)
    if flags is not None and not flags.any():
        raise ConfigurationError("No abundant features to reduce; relax the abundance filter")
    log_expr = log_cpm_matrix(se, assay=assay, features=flags, prior_count=prior_count)

    if method == "PCA" and n_dims > min(top, log_expr.shape[0]):
        raise ConfigurationError(
            f"PCA on {min(top, log_expr.shape[0])} features cannot give {n_dims} components"
        )

    if method == "MDS":
        coords, values = classical_mds(pairwise_distances(log_expr, top=top), n_dims=n_dims)
        positive = np.clip(values, 0.0, None)
        explained = positive / positive.sum() if positive.sum() > 0 else positive
        prefix = "Dim"
    else:
        coords, explained = principal_components(log_expr, n_dims=n_dims, top=top)
        prefix = "PC"

    names = [f"{prefix}{k + 1}" for k in range(n_dims)]
    logger.info(
        "%s on %d features: %s",
        method, log_expr.shape[0],
        ", ".join(f"{n} {v:.1%}" for n, v in zip(names, explained[:n_dims])),
    )

    output = with_column_data(se, **{name: coords[:, k] for k, name in enumerate(names)})
    meta = dict(output.metadata) if output.metadata else {}
    meta["reduced_dimensions"] = {
        "method": method,
        "dimensions": names,
        "variance_explained": [float(v) for v in explained[:n_dims]],
        "top": top,
    }
    return output.set_metadata(meta, in_place=False)
