"""Tests for differential testing and result reporting (R-free)."""

import warnings

import numpy as np
import pandas as pd
import pytest

from tidy_rnaseq import (
    ConfigurationError,
    Contrast,
    NumericDegeneracyWarning,
    SchemaError,
    adjust_pvalues,
    identify_abundant,
    scale_abundance,
    significant_features,
    test_differential_abundance as run_test,
    top_table,
)
from tidy_rnaseq.differential import RESULT_COLUMNS


DEX = Contrast("dex", "trt", "untrt")


@pytest.fixture
def flagged(mock_se):
    return identify_abundant(mock_se, factor_of_interest="dex")


@pytest.fixture
def airway_results(airway, tester):
    se = scale_abundance(identify_abundant(airway, factor_of_interest="dex"))
    return run_test(se, ["dex", "cell"], DEX, reference_levels={"dex": "untrt"}, tester=tester)


class TestAdjustPvalues:

    def test_benjamini_hochberg(self):
        p = [0.01, 0.04, 0.03, 0.2]
        np.testing.assert_allclose(adjust_pvalues(p), [0.04, 0.16 / 3, 0.16 / 3, 0.2])

    def test_non_finite_left_out(self):
        out = adjust_pvalues([0.01, np.nan, 0.02])
        assert np.isnan(out[1])
        np.testing.assert_allclose(out[[0, 2]], [0.02, 0.02])

    def test_preserves_ranking(self):
        rng = np.random.default_rng(0)
        p = rng.uniform(size=200)
        adjusted = adjust_pvalues(p)
        order = np.argsort(p)
        assert np.all(np.diff(adjusted[order]) >= 0)


class TestDifferentialAbundance:

    def test_result_schema(self, flagged, tester):
        res = run_test(flagged, ["dex"], DEX, tester=tester)
        assert list(res.columns) == RESULT_COLUMNS
        assert res["feature"].tolist() == list(flagged.row_names)

    def test_excluded_features_are_absent_not_zero(self, flagged, tester):
        res = run_test(flagged, ["dex"], DEX, tester=tester)
        excluded = res[~res["abundant"]]
        assert excluded["feature"].tolist() == ["ENSG02", "ENSG06"]
        for col in ("log_fc", "log_cpm", "f_statistic", "p_value", "fdr"):
            assert excluded[col].isna().all()
        assert excluded["significant"].isna().all()
        assert excluded["valid"].isna().all()

    def test_tested_features_are_valid(self, flagged, tester):
        res = run_test(flagged, ["dex"], DEX, tester=tester)
        tested = res[res["abundant"]]
        assert tested["valid"].all()
        assert tested["p_value"].notna().all()

    def test_direction_of_effect(self, flagged, tester):
        res = run_test(flagged, ["dex"], DEX, reference_levels={"dex": "untrt"}, tester=tester)
        lfc = res.set_index("feature")["log_fc"]
        # ENSG04 goes from ~6 to ~29 counts on treatment
        assert lfc["ENSG04"] > 1

    def test_fdr_monotone_in_pvalue(self, airway_results):
        tested = airway_results[airway_results["p_value"].notna()].sort_values("p_value")
        assert np.all(np.diff(tested["fdr"].to_numpy()) >= 0)

    def test_significance_threshold(self, airway_results):
        tested = airway_results[airway_results["fdr"].notna()]
        np.testing.assert_array_equal(
            tested["significant"].to_numpy(dtype=bool),
            tested["fdr"].to_numpy() < 0.05,
        )

    def test_invalid_rows_marked(self, flagged):
        def tester(counts, design, contrast, lib_size, norm_factors):
            n = counts.shape[0]
            p = np.linspace(0.001, 0.5, n)
            p[1] = np.nan
            return pd.DataFrame({
                "log_fc": np.ones(n),
                "log_cpm": np.ones(n),
                "f_statistic": np.ones(n),
                "p_value": p,
            })

        with pytest.warns(NumericDegeneracyWarning):
            res = run_test(flagged, ["dex"], DEX, tester=tester)
        invalid = res.set_index("feature").loc["ENSG03"]
        assert bool(invalid["valid"]) is False
        assert np.isnan(invalid["log_fc"])
        assert np.isnan(invalid["fdr"])
        assert pd.isna(invalid["significant"])
        assert res.set_index("feature").loc["ENSG01", "valid"]

    def test_no_warning_when_all_valid(self, flagged, tester):
        with warnings.catch_warnings():
            warnings.simplefilter("error", NumericDegeneracyWarning)
            run_test(flagged, ["dex"], DEX, tester=tester)

    def test_requires_abundance_flags(self, mock_se, tester):
        with pytest.raises(ConfigurationError, match="identify_abundant"):
            run_test(mock_se, ["dex"], DEX, tester=tester)

    def test_tester_row_mismatch(self, flagged):
        def tester(counts, *args):
            return pd.DataFrame({c: [0.5] for c in ("log_fc", "log_cpm", "f_statistic", "p_value")})

        with pytest.raises(SchemaError, match="rows"):
            run_test(flagged, ["dex"], DEX, tester=tester)

    def test_tester_missing_columns(self, flagged):
        def tester(counts, *args):
            return pd.DataFrame({"log_fc": np.zeros(counts.shape[0])})

        with pytest.raises(SchemaError, match="lacks"):
            run_test(flagged, ["dex"], DEX, tester=tester)

    def test_tester_receives_tmm_inputs(self, mock_se):
        seen = {}

        def tester(counts, design, contrast, lib_size, norm_factors):
            seen.update(counts=counts, design=design, contrast=contrast, lib_size=lib_size, norm_factors=norm_factors)
            n = counts.shape[0]
            return pd.DataFrame({c: np.full(n, 0.5) for c in ("log_fc", "log_cpm", "f_statistic", "p_value")})

        se = scale_abundance(identify_abundant(mock_se, factor_of_interest="dex"))
        run_test(se, ["dex", "cell"], DEX, reference_levels={"dex": "untrt"}, tester=tester)
        assert seen["counts"].shape == (4, 4)
        np.testing.assert_allclose(seen["lib_size"], seen["counts"].sum(axis=0))
        assert list(seen["design"].columns) == ["(Intercept)", "dextrt", "cellB"]
        np.testing.assert_array_equal(seen["contrast"], [0, 1, 0])
        assert np.all(seen["norm_factors"] > 0)


class TestReporting:

    def test_top_table_sorted_by_pvalue(self, airway_results):
        top = top_table(airway_results, n=10)
        assert len(top) == 10
        assert top["p_value"].is_monotonic_increasing

    def test_top_table_by_fold_change(self, airway_results):
        top = top_table(airway_results, n=5, sort_by="log_fc")
        assert top["log_fc"].abs().is_monotonic_decreasing

    def test_top_table_unknown_column(self, airway_results):
        with pytest.raises(SchemaError):
            top_table(airway_results, sort_by="score")

    def test_significant_features(self, airway_results):
        sig = significant_features(airway_results, fdr_threshold=0.05, min_abs_log_fc=1.0)
        assert (sig["fdr"] < 0.05).all()
        assert (sig["log_fc"].abs() >= 1.0).all()
