"""Tests for CPM and TMM scaling."""

import numpy as np
import pytest

from tidy_rnaseq import (
    ConfigurationError,
    NumericDegeneracyError,
    TMMConfig,
    calc_norm_factors,
    cpm,
    identify_abundant,
    scale_abundance,
    scaling_table,
    tmm_factors,
)
from tidy_rnaseq.experiment import assay_array, column_data_frame
from tidy_rnaseq.filtering import abundant_flags
from tidy_rnaseq.normalization import select_reference


@pytest.fixture
def abundant_counts(airway):
    se = identify_abundant(airway, factor_of_interest="dex")
    return assay_array(se)[abundant_flags(se)]


class TestCpm:

    def test_columns_sum_to_one_million(self):
        counts = np.array([[1, 10], [3, 30], [6, 60]], dtype=float)
        np.testing.assert_allclose(cpm(counts).sum(axis=0), [1e6, 1e6])

    def test_norm_factors_scale_library(self):
        counts = np.array([[5, 5], [5, 5]], dtype=float)
        out = cpm(counts, norm_factors=[1.0, 2.0])
        np.testing.assert_allclose(out[:, 1], out[:, 0] / 2)

    def test_log_is_finite_with_zeros(self):
        counts = np.array([[0, 10], [5, 0]], dtype=float)
        assert np.all(np.isfinite(cpm(counts, log=True)))


class TestTmmFactors:

    def test_strictly_positive(self, abundant_counts):
        factors, _ = tmm_factors(abundant_counts)
        assert np.all(factors > 0)

    def test_centred_to_geometric_mean_one(self, abundant_counts):
        factors, _ = tmm_factors(abundant_counts)
        assert np.exp(np.mean(np.log(factors))) == pytest.approx(1.0)

    def test_reference_is_one_without_centring(self, abundant_counts):
        factors, ref = tmm_factors(abundant_counts, center=False)
        assert factors[ref] == 1.0

    def test_explicit_reference(self, abundant_counts):
        factors, ref = tmm_factors(abundant_counts, ref_column=3, center=False)
        assert ref == 3
        assert factors[3] == 1.0

    def test_invariant_to_rescaling_reference(self, abundant_counts):
        ref = select_reference(abundant_counts)
        before, _ = tmm_factors(abundant_counts, ref_column=ref, do_weighting=False, center=False)
        rescaled = abundant_counts.copy()
        rescaled[:, ref] *= 3.0
        after, _ = tmm_factors(rescaled, ref_column=ref, do_weighting=False, center=False)
        np.testing.assert_allclose(after, before)

    def test_identical_samples(self):
        counts = np.tile(np.arange(1, 51, dtype=float)[:, None], (1, 4))
        factors, _ = tmm_factors(counts)
        np.testing.assert_allclose(factors, 1.0)

    def test_composition_bias_detected(self):
        rng = np.random.default_rng(0)
        base = rng.integers(50, 500, size=200).astype(float)
        counts = np.column_stack([base, base, base, base])
        # one sample dominated by a few very high genes
        counts[:10, 3] *= 50
        factors, _ = tmm_factors(counts, center=False, ref_column=0)
        assert factors[3] < 0.7
        np.testing.assert_allclose(factors[:3], 1.0)

    def test_zero_overlap_is_fatal(self):
        counts = np.array([
            [10, 12, 0],
            [20, 18, 0],
            [0, 0, 30],
        ], dtype=float)
        with pytest.raises(NumericDegeneracyError) as info:
            tmm_factors(counts, ref_column=0, sample_names=["a", "b", "c"])
        assert info.value.sample == "c"

    def test_reference_out_of_range(self, abundant_counts):
        with pytest.raises(ConfigurationError):
            tmm_factors(abundant_counts, ref_column=abundant_counts.shape[1])

    def test_empty_library_is_fatal(self):
        counts = np.array([[10, 0], [5, 0]], dtype=float)
        with pytest.raises(NumericDegeneracyError):
            tmm_factors(counts)


class TestScaleAbundance:

    def test_adds_columns_and_assay(self, airway):
        se = scale_abundance(identify_abundant(airway, factor_of_interest="dex"))
        coldata = column_data_frame(se)
        for col in ("lib_size", "tmm_factor", "multiplier"):
            assert col in coldata.columns
        scaled = assay_array(se, "counts_scaled")
        np.testing.assert_allclose(scaled, assay_array(airway) * coldata["multiplier"].to_numpy())

    def test_reference_multiplier_is_inverse_factor(self, airway):
        se = scale_abundance(identify_abundant(airway, factor_of_interest="dex"))
        table = scaling_table(se)
        ref = table["sample"].tolist().index(se.metadata["tmm_reference"])
        assert table["multiplier"][ref] == pytest.approx(1.0 / table["tmm_factor"][ref])

    def test_scaling_table(self, airway):
        se = scale_abundance(identify_abundant(airway, factor_of_interest="dex"))
        table = scaling_table(se)
        assert list(table.columns) == ["sample", "lib_size", "tmm_factor", "multiplier"]
        assert table["sample"].tolist() == list(airway.column_names)

    def test_config_passed_through(self, airway):
        se = identify_abundant(airway, factor_of_interest="dex")
        se = calc_norm_factors(se, config=TMMConfig(center=False, ref_column=2))
        assert column_data_frame(se)["tmm_factor"].iloc[2] == 1.0
        assert se.metadata["tmm_reference"] == list(airway.column_names)[2]

    def test_without_flags_uses_all_features(self, airway):
        se = scale_abundance(airway)
        assert "counts_scaled" in se.assay_names
