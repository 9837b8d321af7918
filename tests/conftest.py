"""Shared fixtures for the tidy_rnaseq tests."""

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from tidy_rnaseq import make_experiment, simulate_airway
from tidy_rnaseq.normalization import cpm


@pytest.fixture
def airway():
    """Small seeded airway-shaped experiment (8 samples, dex x cell)."""
    return simulate_airway(n_features=400, seed=1)


@pytest.fixture
def mock_counts():
    """Counts of 6 genes across 2 untreated and 2 treated samples."""
    counts = pd.DataFrame(
        {
            "s1": [10, 0, 100, 5, 40, 0],
            "s2": [12, 0, 120, 7, 38, 0],
            "s3": [11, 1, 95, 30, 42, 0],
            "s4": [9, 0, 105, 28, 41, 0],
        },
        index=["ENSG01", "ENSG02", "ENSG03", "ENSG04", "ENSG05", "ENSG06"],
    )
    samples = pd.DataFrame({
        "sample": ["s1", "s2", "s3", "s4"],
        "dex": ["untrt", "untrt", "trt", "trt"],
        "cell": ["A", "B", "A", "B"],
    })
    return counts, samples


@pytest.fixture
def mock_se(mock_counts):
    counts, samples = mock_counts
    return make_experiment(counts, samples, sample_column="sample")


def fake_tester(counts, design, contrast, lib_size, norm_factors):
    """Least-squares fit on log-CPM with a p-value decaying in |logFC|.

    Stands in for the edgeR test so the result-table logic can be checked
    without R.
    """
    log_expr = cpm(counts, lib_size=lib_size, norm_factors=norm_factors, log=True)
    coef = np.linalg.lstsq(design.to_numpy(), log_expr.T, rcond=None)[0]
    log_fc = np.asarray(contrast) @ coef
    return pd.DataFrame({
        "log_fc": log_fc,
        "log_cpm": log_expr.mean(axis=1),
        "f_statistic": log_fc ** 2,
        "p_value": np.exp(-2.0 * np.abs(log_fc)),
    })


@pytest.fixture
def tester():
    return fake_tester
