"""Unit tests for the raw input loaders.

Tests cover:
- Column alias normalization for indicator and region sources
- Reading CSV files (including non-utf-8 encodings)
- The HDI file keeps its label row as data
"""

from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from devpanel.data.loaders import (
    INDICATOR_COLUMNS,
    detect_encoding,
    load_hdi,
    load_indicators,
    load_regions,
    normalize_indicator_columns,
    normalize_region_columns,
)
from devpanel.exceptions import SchemaError


@pytest.mark.unit
class TestNormalizeColumns:
    """Test canonical column naming."""

    def test_camel_case_indicator_source(self, indicators_raw):
        out = normalize_indicator_columns(indicators_raw)
        assert list(out.columns) == INDICATOR_COLUMNS
        assert out["year"].dtype == np.int64

    def test_spaced_headers(self):
        df = pd.DataFrame({
            "Country Name": ["Kenya"], "Country Code": ["KEN"], "Indicator Name": ["Birth rate"],
            "Indicator Code": ["SP.DYN.CBRT.IN"], "Year": ["2000"], "Value": ["40.1"],
        })
        out = normalize_indicator_columns(df)
        assert out.loc[0, "year"] == 2000
        assert out.loc[0, "value"] == pytest.approx(40.1)

    def test_non_numeric_value_becomes_missing(self, indicators_raw):
        df = indicators_raw.copy()
        df["Value"] = df["Value"].astype(object)
        df.loc[0, "Value"] = ".."
        out = normalize_indicator_columns(df)
        assert np.isnan(out.loc[0, "value"])

    def test_non_numeric_year_is_schema_error(self, indicators_raw):
        df = indicators_raw.copy()
        df["Year"] = df["Year"].astype(object)
        df.loc[0, "Year"] = "YR2000"
        with pytest.raises(SchemaError, match="IndicatorSource: year values are not numeric"):
            normalize_indicator_columns(df)

    def test_missing_indicator_column(self, indicators_raw):
        with pytest.raises(SchemaError, match="column 'indicator_code' not found"):
            normalize_indicator_columns(indicators_raw.drop(columns=["IndicatorCode"]))

    def test_region_blanks_are_missing(self, regions):
        out = normalize_region_columns(regions)
        assert list(out.columns) == ["country_code", "region"]
        assert out["region"].isna().tolist() == [False, False, True]

    def test_region_extra_columns_dropped(self):
        df = pd.DataFrame({"CountryCode": ["KEN"], "ShortName": ["Kenya"], "Region": [" Sub-Saharan Africa "]})
        out = normalize_region_columns(df)
        assert out.to_dict("records") == [{"country_code": "KEN", "region": "Sub-Saharan Africa"}]


@pytest.mark.unit
class TestLoadFiles:
    """Test reading the raw CSV files."""

    def test_load_all_three(self, raw_files):
        indicators = load_indicators(raw_files["indicators"])
        hdi = load_hdi(raw_files["hdi"])
        regions = load_regions(raw_files["regions"])

        assert set(indicators["country_code"]) == {"KEN", "NOR"}
        assert hdi.iloc[0, 1] == "Country"
        assert hdi.iloc[0, 2] == "1990"
        assert regions["region"].isna().sum() == 1

    def test_latin1_file(self, tmp_path: Path):
        path = tmp_path / "regions.csv"
        path.write_bytes("CountryCode,Region\nCIV,Afrique de l'Ouest \xe9\n".encode("latin1"))
        assert detect_encoding(path) in ("cp1252", "latin1")
        regions = load_regions(path)
        assert regions.loc[0, "region"].endswith("é")

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            load_indicators(tmp_path / "missing.csv")


@pytest.mark.unit
class TestMissingLabels:
    """Test that missing label cells stay missing instead of becoming text."""

    def test_missing_country_code_stays_missing(self):
        df = pd.DataFrame({
            "CountryName": [" X ", None], "CountryCode": ["XX", np.nan], "IndicatorName": ["GDP", "GDP"],
            "IndicatorCode": ["NY.GDP.MKTP.KD", "NY.GDP.MKTP.KD"], "Year": [2000, 2000], "Value": [100.0, 5.0],
        })
        out = normalize_indicator_columns(df)
        assert out.loc[0, "country_name"] == "X"
        assert out.loc[0, "country_code"] == "XX"
        assert pd.isna(out.loc[1, "country_code"])
        assert pd.isna(out.loc[1, "country_name"])
        assert "nan" not in out["country_code"].tolist()
        assert "None" not in out["country_name"].tolist()

    def test_region_rows_without_code_are_dropped(self):
        df = pd.DataFrame({"CountryCode": [" KEN ", np.nan, "  "], "Region": ["Sub-Saharan Africa", "Europe", "Asia"]})
        out = normalize_region_columns(df)
        assert out["country_code"].tolist() == ["KEN"]
        assert out["region"].tolist() == ["Sub-Saharan Africa"]


@pytest.mark.unit
class TestUnreadableFiles:
    """Test that parse failures surface as pipeline errors."""

    def test_empty_file_is_schema_error(self, tmp_path: Path):
        path = tmp_path / "Indicators.csv"
        path.write_text("")
        with pytest.raises(SchemaError, match="IndicatorSource: Indicators.csv is not a readable CSV"):
            load_indicators(path)
