"""tidy_rnaseq: a tidy bulk RNA-seq workflow on BiocPy SummarizedExperiment.

Filtering, TMM scaling, ordination and reporting are computed in Python;
the GLM test is delegated to R/edgeR through rpy2. The ``edger`` submodule is
loaded lazily so R dependencies are only checked when testing.

Usage:
    >>> import tidy_rnaseq as tr
    >>> se = tr.simulate_airway()
    >>> se = se.bulk.keep_abundant(factor_of_interest="dex").bulk.scale_abundance()
    >>>
    >>> import tidy_rnaseq.edger  # NOW edgeR is checked/installed
    >>> res = se.bulk.test_differential_abundance(
    ...     ["dex", "cell"], tr.Contrast("dex", "trt", "untrt"))
"""

from __future__ import annotations

import importlib

from .errors import (
    TidyRnaseqError,
    SchemaError,
    ConfigurationError,
    NumericDegeneracyError,
    NumericDegeneracyWarning,
    ExportError,
)
from .experiment import (
    TidyExperiment,
    make_experiment,
    simulate_airway,
    assay_frame,
    column_data_frame,
    row_data_frame,
)
from .reshape import pivot_longer, pivot_wider
from .annotation import map_identifiers, mygene_mapper, aggregate_duplicates
from .filtering import AbundanceFilterConfig, identify_abundant, keep_abundant, minimum_group_size
from .normalization import TMMConfig, cpm, tmm_factors, calc_norm_factors, scale_abundance, scaling_table
from .ordination import reduce_dimensions
from .design import Contrast, model_matrix, contrast_vector
from .differential import test_differential_abundance, adjust_pvalues, top_table, significant_features
from .io import write_results, read_results
from .pipeline import PipelineConfig, PipelineResult, run_pipeline
from .r_utils import ensure_r_dependencies, has_r_package

# Registers se.bulk
from . import accessor  # noqa: F401

__all__ = [
    "TidyRnaseqError",
    "SchemaError",
    "ConfigurationError",
    "NumericDegeneracyError",
    "NumericDegeneracyWarning",
    "ExportError",
    "TidyExperiment",
    "make_experiment",
    "simulate_airway",
    "assay_frame",
    "column_data_frame",
    "row_data_frame",
    "pivot_longer",
    "pivot_wider",
    "map_identifiers",
    "mygene_mapper",
    "aggregate_duplicates",
    "AbundanceFilterConfig",
    "identify_abundant",
    "keep_abundant",
    "minimum_group_size",
    "TMMConfig",
    "cpm",
    "tmm_factors",
    "calc_norm_factors",
    "scale_abundance",
    "scaling_table",
    "reduce_dimensions",
    "Contrast",
    "model_matrix",
    "contrast_vector",
    "test_differential_abundance",
    "adjust_pvalues",
    "top_table",
    "significant_features",
    "write_results",
    "read_results",
    "PipelineConfig",
    "PipelineResult",
    "run_pipeline",
    "ensure_r_dependencies",
    "has_r_package",
    # Lazy-loaded submodules
    "edger",
    "plotting",
]

# Submodules to be lazily loaded (PEP 562)
_LAZY_SUBMODULES = {"edger", "plotting"}


def __getattr__(name: str):
    """Lazy loading of submodules per PEP 562."""
    if name in _LAZY_SUBMODULES:
        module = importlib.import_module(f".{name}", __name__)
        globals()[name] = module
        return module
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__():
    """Include lazy submodules in dir() output."""
    return list(__all__)
