from functools import lru_cache
from typing import Any, Optional, Sequence

import numpy as np
import pandas as pd

from ..r_utils import _RPY2_HINT


@lru_cache(maxsize=1)
def _prep_edger():
    """Lazily prepare the edgeR runtime.

    Returns:
        Tuple[Any, Any]: A tuple ``(robjects, edgeR_pkg)`` where
        ``robjects`` is the ``rpy2.robjects`` module and ``edgeR_pkg`` is the
        imported R ``edgeR`` package.

    Notes:
        The result is cached (LRU) to avoid repeated imports.
    """
    try:
        import rpy2.robjects as ro
        from rpy2.robjects.packages import importr
    except ImportError:
        raise ImportError(_RPY2_HINT)

    edger_pkg = importr("edgeR")
    return ro, edger_pkg


def numpy_to_r_matrix(
    mat: Any,
    rownames: Optional[Sequence[str]] = None,
    colnames: Optional[Sequence[str]] = None,
) -> Any:
    ro, _ = _prep_edger()
    mat = np.asarray(mat, dtype=float)
    if mat.ndim != 2:
        raise ValueError(f"Expected a 2-d matrix, got {mat.ndim} dimension(s)")
    rn = ro.StrVector([str(x) for x in rownames]) if rownames is not None else ro.NULL
    cn = ro.StrVector([str(x) for x in colnames]) if colnames is not None else ro.NULL
    return ro.r["matrix"](
        ro.FloatVector(mat.ravel(order="F")),
        nrow=mat.shape[0],
        ncol=mat.shape[1],
        dimnames=ro.r["list"](rn, cn),
    )


def pandas_to_r_matrix(df: pd.DataFrame) -> Any:
    return numpy_to_r_matrix(df.to_numpy(dtype=float), rownames=df.index.to_list(), colnames=df.columns.to_list())


def r_to_pandas(table: Any) -> pd.DataFrame:
    """Convert an R data.frame to pandas, keeping R row names as the index."""
    ro, _ = _prep_edger()
    from rpy2.robjects import pandas2ri
    from rpy2.robjects.conversion import localconverter

    with localconverter(ro.default_converter + pandas2ri.converter):
        return ro.conversion.get_conversion().rpy2py(table)
