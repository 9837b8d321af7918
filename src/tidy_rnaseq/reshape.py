"""
Wide <-> long reshaping of experiments.

``pivot_longer`` un-pivots an assay into one row per (feature, sample) and
joins sample and feature annotations by identifier equality.
``pivot_wider`` is its inverse and rebuilds a TidyExperiment.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

import numpy as np
import pandas as pd

from .checks import check_columns
from .errors import SchemaError
from .experiment import (
    TidyExperiment,
    assay_array,
    column_data_frame,
    make_experiment,
    row_data_frame,
)

logger = logging.getLogger(__name__)


def pivot_longer(
    se: Any,
    assays: Optional[Sequence[str]] = None,
    feature_col: str = "feature",
    sample_col: str = "sample",
    include_column_data: bool = True,
    include_row_data: bool = True,
) -> pd.DataFrame:
    """
    Un-pivot assays into a long table.

    Rows are ordered feature-major: all samples of the first feature, then
    the second feature, and so on.

    Args:
        se: Input experiment.
        assays: Assays to include as value columns. Default: all assays.
        feature_col: Name of the feature identifier column.
        sample_col: Name of the sample identifier column.
        include_column_data: Join sample annotations on `sample_col`.
        include_row_data: Join feature annotations on `feature_col`.

    Returns:
        pd.DataFrame with one row per (feature, sample).

    Raises:
        SchemaError: If an annotation column clashes with an id or value column.
    """
    assays = list(se.assay_names) if assays is None else list(assays)
    features = np.asarray(list(se.row_names), dtype=object)
    samples = np.asarray(list(se.column_names), dtype=object)
    n_feat, n_samp = len(features), len(samples)

    long = pd.DataFrame({
        feature_col: np.repeat(features, n_samp),
        sample_col: np.tile(samples, n_feat),
    })
    for name in assays:
        long[name] = assay_array(se, name).ravel(order="C")

    taken = set(long.columns)
    if include_column_data:
        coldata = column_data_frame(se)
        _check_no_clash(coldata.columns, taken, "sample annotation")
        if len(coldata.columns):
            coldata = coldata.rename_axis(sample_col).reset_index()
            long = long.merge(coldata, on=sample_col, how="left", validate="many_to_one", sort=False)
        taken |= set(long.columns)
    if include_row_data:
        rowdata = row_data_frame(se)
        _check_no_clash(rowdata.columns, taken, "feature annotation")
        if len(rowdata.columns):
            rowdata = rowdata.rename_axis(feature_col).reset_index()
            long = long.merge(rowdata, on=feature_col, how="left", validate="many_to_one", sort=False)
    return long


def _check_no_clash(columns: Sequence[str], taken: set, what: str) -> None:
    clash = [c for c in columns if c in taken]
    if clash:
        raise SchemaError(f"{what} column(s) {clash} clash with existing long-table columns")


def pivot_wider(
    long: pd.DataFrame,
    value_col: str = "counts",
    feature_col: str = "feature",
    sample_col: str = "sample",
    sample_columns: Sequence[str] = (),
    feature_columns: Sequence[str] = (),
) -> TidyExperiment:
    """
    Rebuild a TidyExperiment from a long table.

    Feature and sample order follow first appearance in `long`.

    Args:
        long: Long table with one row per (feature, sample).
        value_col: Column holding the assay values; becomes the ``counts`` assay.
        feature_col: Feature identifier column.
        sample_col: Sample identifier column.
        sample_columns: Sample-level annotation columns to carry over.
        feature_columns: Feature-level annotation columns to carry over.

    Raises:
        SchemaError: On missing columns, duplicate (feature, sample) pairs,
            incomplete grids or annotations that vary within a sample/feature.
    """
    check_columns(long, [feature_col, sample_col, value_col, *sample_columns, *feature_columns], "long table")

    if long.duplicated([feature_col, sample_col]).any():
        raise SchemaError(f"Duplicate ({feature_col}, {sample_col}) pairs in long table")

    features = pd.unique(long[feature_col])
    samples = pd.unique(long[sample_col])
    wide = long.pivot(index=feature_col, columns=sample_col, values=value_col)
    wide = wide.reindex(index=features, columns=samples)
    if wide.isna().to_numpy().any():
        raise SchemaError("Long table does not cover every (feature, sample) pair")

    sample_meta = _per_key(long, sample_col, sample_columns).reindex(pd.Index(samples).astype(str))
    feature_meta = None
    if feature_columns:
        feature_meta = _per_key(long, feature_col, feature_columns).reindex(pd.Index(features).astype(str))

    wide.index.name = None
    wide.columns.name = None
    return make_experiment(wide, sample_meta, feature_metadata=feature_meta)


def _per_key(long: pd.DataFrame, key: str, columns: Sequence[str]) -> pd.DataFrame:
    if not columns:
        return pd.DataFrame(index=pd.Index(pd.unique(long[key])).astype(str))
    sub = long[[key, *columns]].drop_duplicates()
    if sub[key].duplicated().any():
        raise SchemaError(f"Columns {list(columns)} are not constant within each {key}")
    sub = sub.set_index(key)
    sub.index = sub.index.astype(str)
    return sub
