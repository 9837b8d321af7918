"""
Experiment container and ingestion.

A ``TidyExperiment`` is a BiocPy ``SummarizedExperiment`` (features x samples)
that carries the ``bulk`` accessor. Every workflow step returns a new
experiment; nothing here modifies its input.

Usage:
    >>> from tidy_rnaseq import make_experiment
    >>> se = make_experiment(counts_df, samples_df, sample_column="sample")
    >>> se = se.bulk.identify_abundant(factor_of_interest="dex")
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Sequence

import numpy as np
import pandas as pd
from biocframe import BiocFrame
from summarizedexperiment import SummarizedExperiment

from .checks import check_assay_exists, check_counts, check_se, check_unique
from .errors import SchemaError

logger = logging.getLogger(__name__)


class TidyExperiment(SummarizedExperiment):
    """SummarizedExperiment with tidy bulk RNA-seq accessors.

    Accessors (``se.bulk``) are attached by ``register_experiment_accessor``.
    """


# =============================================================================
# Frame helpers
# =============================================================================

def frame_from_pandas(df: pd.DataFrame) -> BiocFrame:
    """Convert a pandas DataFrame to a BiocFrame keeping the index as row names."""
    row_names = [str(i) for i in df.index]
    data = {str(col): df[col].to_numpy() for col in df.columns}
    return BiocFrame(data, row_names=row_names, number_of_rows=len(df))


def column_data_frame(se: Any) -> pd.DataFrame:
    """Sample annotations as a pandas DataFrame indexed by sample id."""
    return _frame_to_pandas(se.get_column_data(), list(se.column_names))


def row_data_frame(se: Any) -> pd.DataFrame:
    """Feature annotations as a pandas DataFrame indexed by feature id."""
    return _frame_to_pandas(se.get_row_data(), list(se.row_names))


def _frame_to_pandas(frame: Optional[BiocFrame], names: Sequence[str]) -> pd.DataFrame:
    if frame is None or len(frame.column_names) == 0:
        return pd.DataFrame(index=pd.Index(names))
    data = {col: np.asarray(frame.get_column(col)) for col in frame.column_names}
    return pd.DataFrame(data, index=pd.Index(names))


def assay_array(se: Any, assay: str = "counts") -> np.ndarray:
    """Return an assay as a float numpy matrix (features x samples)."""
    check_se(se)
    check_assay_exists(se, assay)
    return np.asarray(se.assays[assay], dtype=float)


def assay_frame(se: Any, assay: str = "counts") -> pd.DataFrame:
    """Return an assay as a DataFrame with feature rows and sample columns."""
    return pd.DataFrame(
        assay_array(se, assay),
        index=pd.Index(list(se.row_names)),
        columns=pd.Index(list(se.column_names)),
    )


def with_assay(se: Any, name: str, value: np.ndarray) -> Any:
    """Return a copy of `se` with assay `name` set to `value`."""
    output = se._define_output(in_place=False)
    new_assays = dict(output.assays)
    new_assays[name] = value
    output._assays = new_assays
    return output


def with_column_data(se: Any, **columns: Any) -> Any:
    """Return a copy of `se` with the given sample columns added or replaced."""
    coldata = column_data_frame(se)
    for key, value in columns.items():
        coldata[key] = np.asarray(value)
    return se.set_column_data(frame_from_pandas(coldata), in_place=False)


def with_row_data(se: Any, **columns: Any) -> Any:
    """Return a copy of `se` with the given feature columns added or replaced."""
    rowdata = row_data_frame(se)
    for key, value in columns.items():
        rowdata[key] = np.asarray(value)
    return se.set_row_data(frame_from_pandas(rowdata), in_place=False)


def subset_features(se: Any, mask: np.ndarray) -> Any:
    """Keep the features where boolean `mask` is True."""
    mask = np.asarray(mask, dtype=bool)
    if mask.shape != (se.shape[0],):
        raise SchemaError(
            f"Feature mask has shape {mask.shape}, expected ({se.shape[0]},)"
        )
    return se[np.flatnonzero(mask).tolist(), :]


# =============================================================================
# Ingestion
# =============================================================================

def make_experiment(
    counts: pd.DataFrame,
    sample_metadata: pd.DataFrame,
    sample_column: Optional[str] = None,
    feature_metadata: Optional[pd.DataFrame] = None,
    metadata: Optional[Mapping[str, Any]] = None,
) -> TidyExperiment:
    """
    Build a TidyExperiment from a count table and a sample table.

    The join between count columns and sample identifiers must be total and
    one-to-one: every count column needs exactly one metadata row. Metadata
    rows for samples absent from the counts are dropped.

    Args:
        counts: Feature x sample count table; index holds feature ids,
            columns hold sample ids.
        sample_metadata: One row per sample. Identifiers are taken from
            `sample_column`, or from the index when `sample_column` is None.
        sample_column: Column of `sample_metadata` holding sample ids.
        feature_metadata: Optional per-feature annotations indexed by
            feature id.
        metadata: Optional experiment-level metadata.

    Returns:
        TidyExperiment with a ``counts`` assay.

    Raises:
        SchemaError: On non-numeric or negative counts, duplicate ids, or an
            incomplete join between counts and metadata.
    """
    if not isinstance(counts, pd.DataFrame):
        raise TypeError(f"Expected `counts` to be a pandas DataFrame, got {type(counts).__name__}")

    feature_ids = [str(f) for f in counts.index]
    sample_ids = [str(s) for s in counts.columns]
    check_unique(feature_ids, "feature identifiers")
    check_unique(sample_ids, "sample identifiers in counts")

    try:
        matrix = counts.to_numpy(dtype=float)
    except (TypeError, ValueError) as err:
        raise SchemaError("Counts must be numeric") from err
    check_counts(matrix)

    samples = sample_metadata.copy()
    if sample_column is not None:
        if sample_column not in samples.columns:
            raise SchemaError(
                f"Sample column '{sample_column}' absent from sample metadata. "
                f"Available: {list(samples.columns)}"
            )
        samples = samples.set_index(sample_column)
    samples.index = samples.index.astype(str)
    check_unique(samples.index, "sample identifiers in metadata")

    missing = [s for s in sample_ids if s not in samples.index]
    if missing:
        raise SchemaError(f"Samples without a metadata row: {missing}")
    extra = [s for s in samples.index if s not in set(sample_ids)]
    if extra:
        logger.info("Dropping %d metadata row(s) without counts: %s", len(extra), extra)
    samples = samples.loc[sample_ids]

    row_data = None
    if feature_metadata is not None:
        feature_metadata = feature_metadata.copy()
        feature_metadata.index = feature_metadata.index.astype(str)
        check_unique(feature_metadata.index, "feature identifiers in feature metadata")
        missing_features = [f for f in feature_ids if f not in feature_metadata.index]
        if missing_features:
            raise SchemaError(
                f"{len(missing_features)} feature(s) without annotation, e.g. {missing_features[:5]}"
            )
        row_data = frame_from_pandas(feature_metadata.loc[feature_ids])
    else:
        row_data = BiocFrame({}, row_names=feature_ids, number_of_rows=len(feature_ids))

    logger.debug("Ingested %d features x %d samples", len(feature_ids), len(sample_ids))
    return TidyExperiment(
        assays={"counts": matrix},
        row_data=row_data,
        column_data=frame_from_pandas(samples),
        row_names=feature_ids,
        column_names=sample_ids,
        metadata=dict(metadata) if metadata else {},
    )


def simulate_airway(n_features: int = 2000, seed: int = 0) -> TidyExperiment:
    """
    Seeded airway-shaped example experiment.

    Eight samples from four cell lines, each untreated and treated with
    dexamethasone (``dex`` in {"untrt", "trt"}). Features carry Ensembl-like
    identifiers; roughly a third are lowly expressed and 5% respond to
    treatment with a 4-fold change.
    """
    rng = np.random.default_rng(seed)
    samples = [f"SRR10395{i:02d}" for i in (8, 9, 12, 13, 16, 17, 20, 21)]
    cells = np.repeat(["N61311", "N052611", "N080611", "N061011"], 2)
    dex = np.array(["untrt", "trt"] * 4)

    base = rng.lognormal(mean=4.0, sigma=1.5, size=n_features)
    low = rng.random(n_features) < 0.35
    base[low] = rng.uniform(0.0, 1.5, size=low.sum())

    effect = np.ones(n_features)
    responders = rng.choice(np.flatnonzero(~low), size=max(1, n_features // 20), replace=False)
    effect[responders] = np.where(rng.random(len(responders)) < 0.5, 4.0, 0.25)

    depth = rng.uniform(0.7, 1.3, size=len(samples))
    cell_effect = {c: rng.uniform(0.8, 1.25, size=n_features) for c in np.unique(cells)}

    mu = np.empty((n_features, len(samples)))
    for j in range(len(samples)):
        mu[:, j] = base * depth[j] * cell_effect[cells[j]]
        if dex[j] == "trt":
            mu[:, j] *= effect

    dispersion = 0.05
    shape = 1.0 / dispersion
    counts = rng.poisson(rng.gamma(shape, mu / shape)).astype(float)

    features = [f"ENSG{i:011d}" for i in range(3, 3 + n_features)]
    coldata = pd.DataFrame({"sample": samples, "cell": cells, "dex": dex})
    return make_experiment(
        pd.DataFrame(counts, index=features, columns=samples),
        coldata,
        sample_column="sample",
        metadata={"source": "simulate_airway", "seed": seed},
    )
