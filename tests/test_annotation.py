"""Tests for identifier mapping and duplicate aggregation."""

import numpy as np
import pandas as pd
import pytest

from tidy_rnaseq import SchemaError, aggregate_duplicates, map_identifiers, mygene_mapper
from tidy_rnaseq.experiment import assay_array, row_data_frame


SYMBOLS = {
    "ENSG01": "GAPDH",
    "ENSG02": "TP53",
    "ENSG03": "GAPDH",
    "ENSG04": ["FKBP5", "FKBP5-AS1"],
    "ENSG05": None,
}


class TestMapIdentifiers:

    def test_dict_mapping(self, mock_se):
        se = map_identifiers(mock_se, SYMBOLS)
        symbols = row_data_frame(se)["symbol"]
        assert symbols.iloc[:4].tolist() == ["GAPDH", "TP53", "GAPDH", "FKBP5"]
        assert symbols.iloc[4:].isna().all()

    def test_series_mapping(self, mock_se):
        mapping = pd.Series(["GAPDH", "OTHER"], index=["ENSG01", "ENSG01"])
        se = map_identifiers(mock_se, mapping, target="gene_name")
        assert row_data_frame(se)["gene_name"].iloc[0] == "GAPDH"

    def test_callable_mapping(self, mock_se):
        seen = []

        def mapper(ids):
            seen.extend(ids)
            return {i: i.lower() for i in ids}

        se = map_identifiers(mock_se, mapper)
        assert seen == list(mock_se.row_names)
        assert row_data_frame(se)["symbol"].iloc[2] == "ensg03"

    def test_source_column(self, mock_se):
        se = map_identifiers(mock_se, {"ENSG01": "X"}, target="alias")
        se = map_identifiers(se, {"X": "Y"}, target="symbol", source="alias")
        assert row_data_frame(se)["symbol"].iloc[0] == "Y"

    def test_unknown_source_column(self, mock_se):
        with pytest.raises(SchemaError):
            map_identifiers(mock_se, {}, source="entrez")

    def test_input_unchanged(self, mock_se):
        map_identifiers(mock_se, SYMBOLS)
        assert "symbol" not in row_data_frame(mock_se).columns


class TestMygeneMapper:

    def test_strips_versions_and_collapses_lists(self, monkeypatch):
        mygene = pytest.importorskip("mygene")
        calls = []

        class FakeInfo:
            def querymany(self, ids, scopes, fields, species, verbose):
                calls.append(list(ids))
                return [
                    {"query": "ENSG00000141510", "symbol": "TP53"},
                    {"query": "ENSG00000111640", "symbol": ["GAPDH", "GAPDH2"]},
                    {"query": "ENSG00000000000", "notfound": True},
                ]

        monkeypatch.setattr(mygene, "MyGeneInfo", FakeInfo)
        query = mygene_mapper()
        answer = query(["ENSG00000141510.17", "ENSG00000111640", "ENSG00000000000"])
        assert calls == [["ENSG00000141510", "ENSG00000111640", "ENSG00000000000"]]
        assert answer == {"ENSG00000141510.17": "TP53", "ENSG00000111640": "GAPDH"}


class TestAggregateDuplicates:

    def test_sums_counts_of_shared_symbols(self, mock_se):
        se = aggregate_duplicates(map_identifiers(mock_se, SYMBOLS))
        assert list(se.row_names) == ["GAPDH", "TP53", "FKBP5"]
        counts = assay_array(se)
        original = assay_array(mock_se)
        np.testing.assert_array_equal(counts[0], original[0] + original[2])
        np.testing.assert_array_equal(counts[1], original[1])

    def test_records_merged_features(self, mock_se):
        se = aggregate_duplicates(map_identifiers(mock_se, SYMBOLS))
        rows = row_data_frame(se)
        assert rows.loc["GAPDH", "merged_features"] == "ENSG01,ENSG03"
        assert rows.loc["GAPDH", "n_merged"] == 2
        assert rows.loc["TP53", "n_merged"] == 1

    def test_keep_unmapped(self, mock_se):
        se = aggregate_duplicates(map_identifiers(mock_se, SYMBOLS), drop_unmapped=False)
        assert list(se.row_names) == ["GAPDH", "TP53", "FKBP5", "ENSG05", "ENSG06"]
        assert assay_array(se).sum() == assay_array(mock_se).sum()

    def test_unknown_column(self, mock_se):
        with pytest.raises(SchemaError):
            aggregate_duplicates(mock_se, by="symbol")
