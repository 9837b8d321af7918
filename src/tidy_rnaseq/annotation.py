"""
Feature identifier mapping and duplicate aggregation.

Identifiers (e.g. Ensembl gene ids) are mapped to human-readable symbols
through any mapping source; features that end up sharing a symbol are then
collapsed by summing their counts.

Examples:
    >>> se = map_identifiers(se, {"ENSG00000141510": "TP53"})
    >>> se = map_identifiers(se, mygene_mapper(species="human"))
    >>> se = aggregate_duplicates(se, by="symbol")
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd

from .errors import SchemaError
from .experiment import (
    TidyExperiment,
    assay_array,
    column_data_frame,
    frame_from_pandas,
    row_data_frame,
    with_row_data,
)

logger = logging.getLogger(__name__)

MappingSource = Union[Mapping[str, Any], pd.Series, Callable[[Sequence[str]], Mapping[str, Any]]]


def _first(value: Any) -> Optional[str]:
    """Collapse one-to-many answers to their first element."""
    if isinstance(value, (list, tuple, np.ndarray)):
        value = value[0] if len(value) else None
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None
    return str(value)


def map_identifiers(
    se: Any,
    mapping: MappingSource,
    target: str = "symbol",
    source: Optional[str] = None,
) -> Any:
    """
    Add a `target` feature column by mapping identifiers through `mapping`.

    Args:
        se: Input experiment.
        mapping: A dict-like, a pandas Series, or a callable that receives the
            list of identifiers and returns a dict-like answer.
        target: Name of the new feature column.
        source: Feature column holding the identifiers to map. Default: the
            feature (row) names.

    Returns:
        Experiment with `target` in row data; unmapped features hold a missing value.
    """
    if source is None:
        ids = [str(f) for f in se.row_names]
    else:
        rowdata = row_data_frame(se)
        if source not in rowdata.columns:
            raise SchemaError(f"Feature column '{source}' not found. Available: {list(rowdata.columns)}")
        ids = [str(v) for v in rowdata[source]]

    if callable(mapping) and not isinstance(mapping, (pd.Series, Mapping)):
        answer = mapping(ids)
    else:
        answer = mapping
    if isinstance(answer, pd.Series):
        answer = answer[~answer.index.duplicated(keep="first")].to_dict()

    mapped = [_first(answer.get(i)) for i in ids]
    n_mapped = sum(m is not None for m in mapped)
    logger.info("Mapped %d/%d feature identifiers to '%s'", n_mapped, len(ids), target)
    return with_row_data(se, **{target: np.asarray(mapped, dtype=object)})


def mygene_mapper(
    scopes: str = "ensembl.gene",
    field: str = "symbol",
    species: str = "human",
    batch_size: int = 1000,
) -> Callable[[Sequence[str]], Dict[str, str]]:
    """
    Build a mapping callable backed by the mygene.info service.

    Version suffixes (``ENSG00000141510.17``) are stripped before querying.
    Requires network access and the ``mygene`` package.
    """

    def query(ids: Sequence[str]) -> Dict[str, str]:
        try:
            import mygene
        except ImportError:
            raise ImportError(
                "mygene is not installed. Please install it via 'pip install mygene'."
            )

        mg = mygene.MyGeneInfo()
        stripped = {i: i.split(".")[0] for i in ids}
        unique_ids = list(dict.fromkeys(stripped.values()))
        found: Dict[str, str] = {}
        for start in range(0, len(unique_ids), batch_size):
            batch = unique_ids[start:start + batch_size]
            logger.debug("Querying mygene.info for %d identifiers", len(batch))
            hits = mg.querymany(batch, scopes=scopes, fields=field, species=species, verbose=False)
            for hit in hits:
                if hit.get("notfound"):
                    continue
                value = _first(hit.get(field))
                query_id = hit.get("query")
                if value and query_id and query_id not in found:
                    found[query_id] = value
        return {i: found[s] for i, s in stripped.items() if s in found}

    return query


def aggregate_duplicates(
    se: Any,
    by: str = "symbol",
    drop_unmapped: bool = True,
) -> TidyExperiment:
    """
    Collapse features sharing the same `by` value by summing every assay.

    The resulting features are named by `by`, in order of first appearance.
    Row data keeps the first value of each other annotation column and adds
    ``merged_features`` (comma-joined original ids) and ``n_merged``.

    Args:
        se: Input experiment with `by` in row data.
        by: Feature column to aggregate on.
        drop_unmapped: Drop features whose `by` value is missing. When False
            they keep their original identifier.

    Raises:
        SchemaError: If `by` is not a feature column.
    """
    rowdata = row_data_frame(se)
    if by not in rowdata.columns:
        raise SchemaError(f"Feature column '{by}' not found. Available: {list(rowdata.columns)}")

    original = pd.Index([str(f) for f in se.row_names])
    keys = pd.Series(rowdata[by].to_numpy(), index=original, dtype=object)
    missing = keys.isna()
    if drop_unmapped:
        if missing.any():
            logger.info("Dropping %d feature(s) with no '%s'", int(missing.sum()), by)
        keep = ~missing.to_numpy()
    else:
        keys[missing] = original[missing.to_numpy()]
        keep = np.ones(len(keys), dtype=bool)

    keys = keys[keep].astype(str)
    group_order = pd.unique(keys.to_numpy())
    codes = pd.Index(group_order).get_indexer(keys.to_numpy())

    new_assays = {}
    for name in se.assay_names:
        values = assay_array(se, name)[keep]
        summed = np.zeros((len(group_order), values.shape[1]))
        np.add.at(summed, codes, values)
        new_assays[name] = summed

    kept_rows = rowdata[keep].copy()
    kept_rows["__group"] = keys.to_numpy()
    others = [c for c in kept_rows.columns if c not in (by, "__group")]
    firsts = kept_rows.groupby("__group", sort=False)[others].first() if others else None
    merged = (
        pd.Series(kept_rows.index, index=kept_rows.index)
        .groupby(kept_rows["__group"].to_numpy(), sort=False)
        .agg(list)
    )

    new_rows = pd.DataFrame(index=pd.Index(group_order))
    if firsts is not None:
        new_rows = new_rows.join(firsts)
    new_rows[by] = group_order
    new_rows["merged_features"] = [",".join(merged[g]) for g in group_order]
    new_rows["n_merged"] = np.asarray([len(merged[g]) for g in group_order], dtype=int)

    n_collapsed = int(keep.sum()) - len(group_order)
    logger.info("Aggregated %d duplicate feature(s) on '%s'", n_collapsed, by)

    return TidyExperiment(
        assays=new_assays,
        row_data=frame_from_pandas(new_rows),
        column_data=frame_from_pandas(column_data_frame(se)),
        row_names=[str(g) for g in group_order],
        column_names=[str(s) for s in se.column_names],
        metadata=dict(se.metadata) if se.metadata else {},
    )
