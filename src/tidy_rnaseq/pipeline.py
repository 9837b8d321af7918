"""
End-to-end bulk workflow.

Runs identifier mapping, deduplication, abundance filtering, TMM scaling,
dimensionality reduction and differential testing in order, logging each
stage at INFO level.

Example:
    >>> from tidy_rnaseq import simulate_airway, Contrast
    >>> from tidy_rnaseq.pipeline import PipelineConfig, run_pipeline
    >>> config = PipelineConfig(
    ...     factor_of_interest="dex",
    ...     design_factors=("dex", "cell"),
    ...     contrast=Contrast("dex", "trt", "untrt"),
    ... )
    >>> result = run_pipeline(simulate_airway(), config)
    >>> result.results.head()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, Union

import pandas as pd

from .annotation import MappingSource, aggregate_duplicates, map_identifiers
from .design import Contrast
from .differential import Tester, test_differential_abundance
from .errors import ConfigurationError
from .filtering import AbundanceFilterConfig, abundant_flags, identify_abundant
from .io import write_results
from .normalization import TMMConfig, scale_abundance, scaling_table
from .ordination import reduce_dimensions

logger = logging.getLogger(__name__)


@dataclass
class PipelineConfig:
    """
    Configuration of `run_pipeline`.

    Attributes:
        factor_of_interest: Sample column defining the groups for filtering;
            defaults to ``contrast.factor``.
        design_factors: Sample columns of the design; defaults to the
            contrast factor alone.
        contrast: Levels to compare.
        reference_levels: Optional reference level per design factor.
        symbol_column: Feature column receiving mapped identifiers.
        aggregate: Collapse features sharing a symbol after mapping.
        filter: Abundance filter parameters.
        tmm: TMM parameters.
        reduction_method: "MDS", "PCA" or None to skip.
        n_dims: Number of reduced dimensions.
        top: Features per pair (MDS) or most variable features (PCA).
        fdr_threshold: Significance threshold on the adjusted p-value.
        output_path: Write the result table here when set.
    """
    contrast: Optional[Contrast] = None
    factor_of_interest: Optional[str] = None
    design_factors: Sequence[str] = ()
    reference_levels: Optional[Mapping[str, str]] = None
    symbol_column: str = "symbol"
    aggregate: bool = True
    filter: AbundanceFilterConfig = field(default_factory=AbundanceFilterConfig)
    tmm: TMMConfig = field(default_factory=TMMConfig)
    reduction_method: Optional[str] = "MDS"
    n_dims: int = 2
    top: int = 500
    fdr_threshold: float = 0.05
    output_path: Optional[Union[str, Path]] = None

    def resolved_factor(self) -> str:
        factor = self.factor_of_interest or self.filter.factor_of_interest
        if factor is None and self.contrast is not None:
            factor = self.contrast.factor
        if factor is None:
            raise ConfigurationError("No factor of interest; set factor_of_interest or contrast")
        return factor

    def resolved_design(self) -> Sequence[str]:
        if self.design_factors:
            return list(self.design_factors)
        if self.contrast is None:
            raise ConfigurationError("No design factors; set design_factors or contrast")
        return [self.contrast.factor]


@dataclass
class PipelineResult:
    """Outputs of `run_pipeline`.

    Attributes:
        experiment: Annotated experiment (abundance flags, scaling columns,
            reduced dimensions, scaled assay).
        scaling: Per-sample scaling table.
        results: Differential result table, or None when no contrast is set.
        output_path: Path the results were written to, if any.
        stages: Feature counts after each feature-changing stage.
    """
    experiment: Any
    scaling: pd.DataFrame
    results: Optional[pd.DataFrame] = None
    output_path: Optional[Path] = None
    stages: Dict[str, int] = field(default_factory=dict)


def run_pipeline(
    se: Any,
    config: PipelineConfig,
    mapper: Optional[MappingSource] = None,
    tester: Optional[Tester] = None,
) -> PipelineResult:
    """
    Run the workflow on `se`.

    Args:
        se: Experiment with a raw ``counts`` assay.
        config: Workflow parameters.
        mapper: Identifier mapping (dict, Series or callable such as
            `mygene_mapper()`); mapping and deduplication are skipped when None.
        tester: Statistical test; default edgeR QL F-test.

    Returns:
        PipelineResult. ``stages`` records the number of features after each
        feature-changing stage.

    Raises:
        ConfigurationError: On an invalid factor, design or contrast.
    """
    stages: Dict[str, int] = {"input": se.shape[0]}
    assay = config.filter.assay
    logger.info("Starting pipeline on %d features x %d samples", se.shape[0], se.shape[1])

    if mapper is not None:
        se = map_identifiers(se, mapper, target=config.symbol_column)
        if config.aggregate:
            se = aggregate_duplicates(se, by=config.symbol_column)
            stages["aggregated"] = se.shape[0]
            logger.info("Aggregated duplicates: %d features", se.shape[0])

    factor = config.resolved_factor()
    se = identify_abundant(
        se,
        factor_of_interest=factor,
        assay=assay,
        min_count=config.filter.min_count,
        min_total_count=config.filter.min_total_count,
        large_n=config.filter.large_n,
        min_prop=config.filter.min_prop,
    )
    stages["abundant"] = int(abundant_flags(se).sum())

    se = scale_abundance(se, assay=assay, config=config.tmm)
    scaling = scaling_table(se)
    logger.info("Scaled %d samples (reference %s)", len(scaling), se.metadata.get("tmm_reference"))

    if config.reduction_method is not None:
        se = reduce_dimensions(se, method=config.reduction_method, n_dims=config.n_dims, top=config.top, assay=assay)
        logger.info("Reduced samples to %d %s dimension(s)", config.n_dims, config.reduction_method.upper())

    results = None
    output_path = None
    if config.contrast is not None:
        results = test_differential_abundance(
            se,
            config.resolved_design(),
            config.contrast,
            assay=assay,
            fdr_threshold=config.fdr_threshold,
            reference_levels=config.reference_levels,
            tester=tester,
        )
        if config.output_path is not None:
            output_path = write_results(results, config.output_path)
    else:
        logger.info("No contrast configured; skipping differential testing")

    logger.info("Pipeline finished")
    return PipelineResult(
        experiment=se,
        scaling=scaling,
        results=results,
        output_path=output_path,
        stages=stages,
    )
