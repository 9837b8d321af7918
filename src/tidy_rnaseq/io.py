"""Delimited-text export and import of result tables."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Union

import pandas as pd

from .errors import ExportError

logger = logging.getLogger(__name__)

NA_REP = "NA"
_BOOLEAN_COLUMNS = ("abundant", "significant", "valid")


def write_results(
    results: pd.DataFrame,
    path: Union[str, Path],
    sep: str = "\t",
) -> Path:
    """
    Write a result table as delimited text.

    Missing values are written as ``NA``. The in-memory table is not modified.

    Returns:
        The path written.

    Raises:
        ExportError: If the file cannot be written.
    """
    path = Path(path)
    try:
        results.to_csv(path, sep=sep, index=False, na_rep=NA_REP)
    except OSError as err:
        raise ExportError(f"Could not write results to {path}: {err}") from err
    logger.info("Wrote %d rows to %s", len(results), path)
    return path


def read_results(path: Union[str, Path], sep: str = "\t") -> pd.DataFrame:
    """Read a table written by `write_results`.

    Floats are parsed with round-trip precision; the boolean columns
    ``abundant``, ``significant`` and ``valid`` come back as nullable booleans.
    ``NA`` marks a missing value in every column but ``feature``.
    """
    header = pd.read_csv(path, sep=sep, nrows=0).columns
    df = pd.read_csv(
        path,
        sep=sep,
        na_values={col: [NA_REP] for col in header if col != "feature"},
        keep_default_na=False,
        float_precision="round_trip",
        dtype={"feature": str},
    )
    for col in _BOOLEAN_COLUMNS:
        if col in df.columns:
            df[col] = df[col].map({True: True, False: False, "True": True, "False": False}).astype("boolean")
    return df
