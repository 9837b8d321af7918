"""EdgeR: negative-binomial GLM testing for the tidy workflow.

Thin wrappers over the R edgeR package via rpy2. Only the model fit and
test are delegated to R; filtering and TMM scaling are computed in Python
and handed to edgeR as library sizes and normalization factors.

Functional API:
    >>> import tidy_rnaseq.edger as edger
    >>> model = edger.glm_ql_fit(counts, design, norm_factors=factors)
    >>> table = edger.glm_ql_ftest(model, contrast=[0, 1, 0])
"""

# Check/install edgeR R package on module import
from ..r_utils import ensure_r_dependencies
ensure_r_dependencies(["edgeR"])

from .glm_ql_fit import glm_ql_fit, EdgeRModel, GlmQlFitConfig
from .glm_ql_ftest import glm_ql_ftest, ql_test
from .utils import _prep_edger

__all__ = [
    "glm_ql_fit",
    "glm_ql_ftest",
    "ql_test",
    "EdgeRModel",
    "GlmQlFitConfig",
    "_prep_edger",
]
