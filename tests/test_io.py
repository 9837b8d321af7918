"""Tests for delimited export and re-import of result tables."""

import numpy as np
import pandas as pd
import pytest

from tidy_rnaseq import ExportError, read_results, write_results


@pytest.fixture
def results():
    return pd.DataFrame({
        "feature": ["GAPDH", "TP53", "FKBP5"],
        "abundant": [True, False, True],
        "log_fc": [0.1234567890123456, np.nan, -2.5],
        "log_cpm": [10.5, np.nan, 4.25],
        "f_statistic": [0.3, np.nan, 88.1],
        "p_value": [0.81, np.nan, 1.2e-12],
        "fdr": [0.81, np.nan, 2.4e-12],
        "significant": pd.array([False, pd.NA, True], dtype="boolean"),
        "valid": pd.array([True, pd.NA, True], dtype="boolean"),
    })


class TestRoundTrip:

    def test_three_rows_identical(self, results, tmp_path):
        path = write_results(results, tmp_path / "results.tsv")
        back = read_results(path)
        assert back.shape == results.shape
        assert list(back.columns) == list(results.columns)
        assert back["feature"].tolist() == results["feature"].tolist()
        for col in ("log_fc", "log_cpm", "f_statistic", "p_value", "fdr"):
            np.testing.assert_array_equal(back[col].to_numpy(), results[col].to_numpy())
        for col in ("abundant", "significant", "valid"):
            assert back[col].astype(object).where(back[col].notna(), None).tolist() == \
                results[col].astype(object).where(results[col].notna(), None).tolist()

    def test_missing_written_as_na(self, results, tmp_path):
        path = write_results(results, tmp_path / "results.tsv")
        lines = path.read_text().splitlines()
        assert lines[0].split("\t") == list(results.columns)
        assert lines[2].split("\t")[2] == "NA"

    def test_comma_separated(self, results, tmp_path):
        path = write_results(results, tmp_path / "results.csv", sep=",")
        back = read_results(path, sep=",")
        assert back["feature"].tolist() == ["GAPDH", "TP53", "FKBP5"]

    def test_numeric_feature_names_kept_as_text(self, results, tmp_path):
        results = results.assign(feature=["0001", "0002", "0003"])
        back = read_results(write_results(results, tmp_path / "r.tsv"))
        assert back["feature"].tolist() == ["0001", "0002", "0003"]

    def test_feature_named_na_kept(self, results, tmp_path):
        results = results.assign(feature=["NA", "TP53", "GAPDH"])
        back = read_results(write_results(results, tmp_path / "r.tsv"))
        assert back["feature"].tolist() == ["NA", "TP53", "GAPDH"]
        assert np.isnan(back["log_fc"].iloc[1])


class TestExportErrors:

    def test_unwritable_path(self, results, tmp_path):
        with pytest.raises(ExportError):
            write_results(results, tmp_path / "missing" / "results.tsv")

    def test_export_error_is_oserror(self, results, tmp_path):
        with pytest.raises(OSError):
            write_results(results, tmp_path / "missing" / "results.tsv")

    def test_input_unchanged_on_failure(self, results, tmp_path):
        before = results.copy()
        with pytest.raises(ExportError):
            write_results(results, tmp_path / "missing" / "results.tsv")
        pd.testing.assert_frame_equal(results, before)
