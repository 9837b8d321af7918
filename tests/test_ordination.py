"""Tests for MDS / PCA of samples."""

import numpy as np
import pytest

from tidy_rnaseq import ConfigurationError, identify_abundant, reduce_dimensions, scale_abundance
from tidy_rnaseq.experiment import column_data_frame
from tidy_rnaseq.ordination import classical_mds, pairwise_distances


@pytest.fixture
def scaled(airway):
    return scale_abundance(identify_abundant(airway, factor_of_interest="dex"))


class TestClassicalMds:

    def test_recovers_line(self):
        points = np.array([0.0, 1.0, 3.0, 6.0])
        dist = np.abs(points[:, None] - points[None, :])
        coords, values = classical_mds(dist, n_dims=1)
        recovered = np.abs(coords[:, 0][:, None] - coords[:, 0][None, :])
        np.testing.assert_allclose(recovered, dist, atol=1e-8)
        assert values[0] > 0

    def test_largest_coordinate_positive(self):
        rng = np.random.default_rng(2)
        x = rng.normal(size=(6, 3))
        dist = np.sqrt(((x[:, None, :] - x[None, :, :]) ** 2).sum(axis=2))
        coords, _ = classical_mds(dist, n_dims=2)
        for k in range(2):
            assert coords[np.argmax(np.abs(coords[:, k])), k] > 0

    def test_eigenvalues_decreasing(self):
        rng = np.random.default_rng(3)
        x = rng.normal(size=(5, 4))
        dist = np.sqrt(((x[:, None, :] - x[None, :, :]) ** 2).sum(axis=2))
        _, values = classical_mds(dist, n_dims=2)
        assert np.all(np.diff(values) <= 0)


class TestPairwiseDistances:

    def test_symmetric_zero_diagonal(self):
        rng = np.random.default_rng(4)
        dist = pairwise_distances(rng.normal(size=(50, 4)), top=10)
        np.testing.assert_allclose(dist, dist.T)
        np.testing.assert_allclose(np.diag(dist), 0.0)

    def test_uses_leading_differences(self):
        log_expr = np.zeros((4, 2))
        log_expr[0, 1] = 4.0
        # top=1 keeps only the largest squared difference
        assert pairwise_distances(log_expr, top=1)[0, 1] == pytest.approx(4.0)
        assert pairwise_distances(log_expr, top=4)[0, 1] == pytest.approx(2.0)


class TestReduceDimensions:

    def test_mds_columns(self, scaled):
        se = reduce_dimensions(scaled, method="MDS", n_dims=3)
        coldata = column_data_frame(se)
        for col in ("Dim1", "Dim2", "Dim3"):
            assert col in coldata.columns
        meta = se.metadata["reduced_dimensions"]
        assert meta["method"] == "MDS"
        assert len(meta["variance_explained"]) == 3

    def test_deterministic(self, scaled):
        a = column_data_frame(reduce_dimensions(scaled))[["Dim1", "Dim2"]].to_numpy()
        b = column_data_frame(reduce_dimensions(scaled))[["Dim1", "Dim2"]].to_numpy()
        np.testing.assert_array_equal(a, b)

    def test_treatment_separates_on_leading_dimensions(self, scaled):
        coldata = column_data_frame(reduce_dimensions(scaled, n_dims=2))
        assert coldata["Dim1"].abs().sum() > 0
        assert coldata["Dim1"].var() >= coldata["Dim2"].var() - 1e-12

    def test_pca_columns(self, scaled):
        se = reduce_dimensions(scaled, method="pca", n_dims=2)
        coldata = column_data_frame(se)
        assert {"PC1", "PC2"} <= set(coldata.columns)
        ratio = se.metadata["reduced_dimensions"]["variance_explained"]
        assert ratio[0] >= ratio[1]

    def test_unknown_method(self, scaled):
        with pytest.raises(ConfigurationError):
            reduce_dimensions(scaled, method="tSNE")

    def test_too_many_dimensions(self, scaled):
        with pytest.raises(ConfigurationError):
            reduce_dimensions(scaled, n_dims=8)

    def test_invalid_top(self, scaled):
        with pytest.raises(ConfigurationError):
            reduce_dimensions(scaled, top=0)

    def test_pca_fewer_features_than_dimensions(self, scaled):
        with pytest.raises(ConfigurationError):
            reduce_dimensions(scaled, method="PCA", n_dims=2, top=1)

    def test_mds_with_single_leading_feature(self, scaled):
        se = reduce_dimensions(scaled, method="MDS", n_dims=2, top=1)
        assert {"Dim1", "Dim2"} <= set(column_data_frame(se).columns)

    def test_no_abundant_features(self, mock_se):
        se = identify_abundant(mock_se, factor_of_interest="dex", min_count=1e9, min_total_count=1e9)
        with pytest.raises(ConfigurationError, match="No abundant features"):
            reduce_dimensions(se)
