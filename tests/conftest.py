"""Pytest configuration and shared fixtures for the panel pipeline tests.

This module provides fixtures for:
- Raw indicator rows in the source (CamelCase) spelling
- A raw HDI table with its labels in the first row
- A region lookup table
- Writing those tables to CSV files for loader / CLI tests
"""

import shutil
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd
import pytest

from devpanel.utils.config import PipelineConfig
from devpanel.utils import data_registry

HDI_YEARS = [str(y) for y in range(1990, 2016)]


def make_indicator_rows(records: List[tuple]) -> pd.DataFrame:
    """(country_name, country_code, indicator_code, year, value) tuples -> raw indicator frame."""
    return pd.DataFrame(
        [
            {
                "CountryName": name,
                "CountryCode": code,
                "IndicatorName": f"name of {ind}",
                "IndicatorCode": ind,
                "Year": year,
                "Value": value,
            }
            for name, code, ind, year, value in records
        ]
    )


def make_hdi_raw(values: Dict[str, Dict[str, str]], years: Optional[List[str]] = None) -> pd.DataFrame:
    """Country -> {year label: cell text} -> header-less HDI table with labels in row 0."""
    years = years or HDI_YEARS
    header = ["HDI Rank", "Country"] + years
    rows = [header]
    for rank, (country, cells) in enumerate(values.items(), start=1):
        rows.append([str(rank), country] + [cells.get(y, "..") for y in years])
    return pd.DataFrame(rows)


def make_canonical_long(records: List[tuple]) -> pd.DataFrame:
    """(country_name, country_code, indicator_code, year, value) tuples -> canonical long frame."""
    return pd.DataFrame(records, columns=["country_name", "country_code", "indicator_code", "year", "value"])


# ============================================================================
# Provenance Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def isolated_sources_registry(tmp_path_factory, monkeypatch) -> Path:
    """Point record_artifact at a scratch copy of data/raw/sources.yaml so runs never edit the repo."""
    path = tmp_path_factory.mktemp("registry") / "sources.yaml"
    shutil.copy(data_registry.SOURCES_FILE, path)
    monkeypatch.setattr(data_registry, "SOURCES_FILE", path)
    return path


# ============================================================================
# Table Fixtures
# ============================================================================

@pytest.fixture
def config() -> PipelineConfig:
    """Built-in default configuration."""
    return PipelineConfig().validate()


@pytest.fixture
def indicators_raw() -> pd.DataFrame:
    """Two countries, three years, a handful of allow-listed and foreign indicators."""
    records = []
    for name, code, base in (("Kenya", "KEN", 40.0), ("Norway", "NOR", 12.0)):
        for i, year in enumerate((2000, 2001, 2002)):
            records.append((name, code, "SP.DYN.CBRT.IN", year, base - i))
            records.append((name, code, "SP.DYN.CDRT.IN", year, base / 4))
            records.append((name, code, "NY.GDP.PCAP.KD", year, 1000.0 * (i + 1) * (2 if code == "NOR" else 1)))
            records.append((name, code, "SP.DYN.LE00.IN", year, 50.0 + 2 * i + (30 if code == "NOR" else 0)))
            records.append((name, code, "EN.ATM.CO2E.KT", year, 99.0))
    return make_indicator_rows(records)


@pytest.fixture
def hdi_raw() -> pd.DataFrame:
    return make_hdi_raw({
        "Kenya": {"2000": "0.447", "2001": "0.451", "2002": ".."},
        "Norway": {"2000": "0.917", "2001": "0.919", "2002": "0.922"},
    })


@pytest.fixture
def regions() -> pd.DataFrame:
    return pd.DataFrame({
        "CountryCode": ["KEN", "NOR", "WLD"],
        "Region": ["Sub-Saharan Africa", "Europe & Central Asia", ""],
    })


@pytest.fixture
def raw_files(tmp_path: Path, indicators_raw, hdi_raw, regions) -> Dict[str, Path]:
    """The three fixture tables written as CSV files the way the sources ship them."""
    paths = {
        "indicators": tmp_path / "Indicators.csv",
        "hdi": tmp_path / "human_development.csv",
        "regions": tmp_path / "Country.csv",
    }
    indicators_raw.to_csv(paths["indicators"], index=False)
    hdi_raw.to_csv(paths["hdi"], index=False, header=False)
    regions.to_csv(paths["regions"], index=False)
    return paths
