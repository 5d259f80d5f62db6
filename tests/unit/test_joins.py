"""Unit tests for the left-join engine.

Tests cover:
- Row-count invariant of left-outer joins
- JoinKeyAmbiguity on duplicate right keys
- Join hit rate and unmatched keys
- Key validation
"""

import numpy as np
import pandas as pd
import pytest

from devpanel.data.joins import join_hdi, join_regions, left_join
from devpanel.exceptions import JoinKeyAmbiguity, SchemaError


@pytest.fixture
def tidy() -> pd.DataFrame:
    return pd.DataFrame({
        "country_name": ["Kenya", "Kenya", "Cote d'Ivoire", "Norway"],
        "country_code": ["KEN", "KEN", "CIV", "NOR"],
        "year": [2000, 2001, 2000, 2000],
        "birth_rate": [40.0, 39.0, 37.0, 12.0],
    })


@pytest.fixture
def hdi_long() -> pd.DataFrame:
    return pd.DataFrame({
        "country_name": ["Kenya", "Kenya", "Côte d'Ivoire", "Norway", "Chad"],
        "year": [2000, 2001, 2000, 2000, 2000],
        "hdi": [0.447, np.nan, 0.39, 0.917, 0.3],
    })


@pytest.mark.unit
class TestLeftJoin:
    """Test left_join semantics."""

    def test_row_count_equals_left(self, tidy, hdi_long):
        result = join_hdi(tidy, hdi_long)
        assert len(result.table) == len(tidy)
        assert result.table["country_code"].tolist() == tidy["country_code"].tolist()

    def test_unmatched_rows_get_missing_values(self, tidy, hdi_long):
        table = join_hdi(tidy, hdi_long).table
        civ = table[table["country_code"] == "CIV"].iloc[0]
        assert np.isnan(civ["hdi"])

    def test_hit_rate_and_unmatched_keys(self, tidy, hdi_long):
        result = join_hdi(tidy, hdi_long)
        assert result.n_matched == 3
        assert result.hit_rate == pytest.approx(0.75)
        assert result.unmatched.to_dict("records") == [{"country_name": "Cote d'Ivoire", "year": 2000}]
        assert result.summary()["unmatched_keys"] == 1

    def test_duplicate_right_keys_raise(self, tidy):
        regions = pd.DataFrame({
            "country_code": ["KEN", "KEN", "NOR"],
            "region": ["Sub-Saharan Africa", "Africa", "Europe & Central Asia"],
        })
        with pytest.raises(JoinKeyAmbiguity, match=r"JoinEngine\[region\]"):
            join_regions(tidy, regions)

    def test_region_join(self, tidy):
        regions = pd.DataFrame({"country_code": ["KEN", "NOR"], "region": ["Sub-Saharan Africa", None]})
        table = join_regions(tidy, regions).table
        assert table["region"].tolist()[:2] == ["Sub-Saharan Africa", "Sub-Saharan Africa"]
        assert table["region"].isna().tolist() == [False, False, True, True]

    def test_different_key_names(self, tidy):
        right = pd.DataFrame({"Country": ["Kenya"], "Year": [2000], "score": [1.5]})
        result = left_join(tidy, right, left_on=["country_name", "year"], right_on=["Country", "Year"])
        assert "Country" not in result.table.columns
        assert result.table["score"].tolist()[0] == 1.5
        assert result.n_matched == 1

    def test_overlapping_columns_keep_left(self, tidy):
        right = pd.DataFrame({"country_code": ["KEN"], "country_name": ["KENYA"], "region": ["SSA"]})
        table = left_join(tidy, right, left_on=["country_code"]).table
        assert table["country_name"].tolist()[0] == "Kenya"
        assert list(table.columns).count("country_name") == 1

    def test_missing_right_keys_never_match(self):
        left = pd.DataFrame({"country_code": ["KEN", None], "x": [1, 2]})
        right = pd.DataFrame({"country_code": [None, None, "KEN"], "region": ["a", "b", "SSA"]})
        result = left_join(left, right, left_on=["country_code"])
        assert len(result.table) == 2
        assert result.n_matched == 1

    def test_missing_key_column(self, tidy):
        with pytest.raises(SchemaError, match="right key column 'country_code' not found"):
            left_join(tidy, pd.DataFrame({"code": ["KEN"]}), left_on=["country_code"])

    def test_key_dtype_mismatch(self, tidy):
        right = pd.DataFrame({"country_name": ["Kenya"], "year": ["2000"], "hdi": [0.4]})
        with pytest.raises(SchemaError, match="dtype mismatch"):
            join_hdi(tidy, right)

    def test_inputs_not_modified(self, tidy, hdi_long):
        before = tidy.copy()
        join_hdi(tidy, hdi_long)
        pd.testing.assert_frame_equal(tidy, before)
