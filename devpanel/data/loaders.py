# devpanel/data/loaders.py
"""
Read the three raw inputs of the panel pipeline and normalize their column names.

Inputs:
- indicators: long-format WDI export (CountryName, CountryCode, IndicatorName, IndicatorCode, Year, Value)
- hdi: wide HDI table whose first row holds the real column labels (read header-less, as text)
- regions: country lookup (CountryCode, Region)

Behavior:
- Detect file encoding heuristically (World Bank / UNDP CSVs are not always utf-8).
- Map the known column spellings to the canonical snake_case names used by every later stage.
- Leave reshaping to the pipeline stages; the loaders only read and rename.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from devpanel.exceptions import SchemaError

LOG = logging.getLogger(__name__)

COMMON_ENCODINGS = ["utf-8", "utf-8-sig", "cp1252", "latin1"]

INDICATOR_COLUMNS = ["country_name", "country_code", "indicator_name", "indicator_code", "year", "value"]
REGION_COLUMNS = ["country_code", "region"]

# squashed lower-case spelling -> canonical name
_INDICATOR_ALIASES: Dict[str, str] = {
    "countryname": "country_name",
    "country": "country_name",
    "countrycode": "country_code",
    "iso3": "country_code",
    "indicatorname": "indicator_name",
    "seriesname": "indicator_name",
    "indicatorcode": "indicator_code",
    "seriescode": "indicator_code",
    "year": "year",
    "value": "value",
}

_REGION_ALIASES: Dict[str, str] = {
    "countrycode": "country_code",
    "iso3": "country_code",
    "region": "region",
}


def _squash(label: object) -> str:
    return re.sub(r"[^a-z0-9]", "", str(label).lower())


def _clean_label(value: object) -> Optional[str]:
    """Stripped string, or None for blanks and non-strings (NaN)."""
    if isinstance(value, str):
        return value.strip() or None
    return None


def _strip(value: object) -> object:
    """Strip strings; missing cells stay missing."""
    return value.strip() if isinstance(value, str) else value


def _read_sample_lines(path: Path, encoding: str, n_lines: int) -> List[str]:
    """Read up to n_lines from file using the given encoding; an undecodable sample returns []."""
    lines: List[str] = []
    try:
        with path.open("r", encoding=encoding) as fh:
            for _ in range(n_lines):
                line = fh.readline()
                if not line:
                    break
                lines.append(line)
    except UnicodeDecodeError as exc:
        LOG.debug("Encoding %s rejected for %s: %s", encoding, path, exc)
        return []
    return lines


def detect_encoding(path: Path, encodings: List[str] = COMMON_ENCODINGS, n_lines: int = 200) -> str:
    """Return the first encoding that decodes the first n_lines of path; latin1 as the last resort."""
    for enc in encodings:
        if _read_sample_lines(path, enc, n_lines):
            return enc
    return "latin1"


def _read_csv(path: Path, stage: str, **kwargs) -> pd.DataFrame:
    path = Path(path)
    if not path.exists():
        LOG.error("Input file not found: %s", path)
        raise FileNotFoundError(f"{path} not found")
    enc = detect_encoding(path)
    LOG.info("Reading %s (encoding=%s)", path, enc)
    try:
        return pd.read_csv(path, encoding=enc, low_memory=False, **kwargs)
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        raise SchemaError(f"{path.name} is not a readable CSV: {exc}", stage=stage) from exc


def _rename_by_alias(df: pd.DataFrame, aliases: Dict[str, str]) -> pd.DataFrame:
    rename: Dict[str, str] = {}
    for c in df.columns:
        target = aliases.get(_squash(c))
        if target and target not in rename.values():
            rename[c] = target
    return df.rename(columns=rename)


def _require(df: pd.DataFrame, columns: List[str], stage: str) -> None:
    for c in columns:
        if c not in df.columns:
            raise SchemaError(f"column '{c}' not found in input (columns: {list(df.columns)})", stage=stage)


def normalize_indicator_columns(df: pd.DataFrame) -> pd.DataFrame:
    """
    Rename indicator-source columns to the canonical set and fix dtypes:
    year -> int64, value -> float64 (non-numeric -> NaN).
    """
    out = _rename_by_alias(df, _INDICATOR_ALIASES)
    _require(out, INDICATOR_COLUMNS, stage="IndicatorSource")
    out = out[INDICATOR_COLUMNS].copy()

    years = pd.to_numeric(out["year"], errors="coerce")
    bad = out.loc[years.isna(), "year"]
    if len(bad):
        raise SchemaError(
            f"year values are not numeric (e.g. {bad.astype(str).unique()[:5].tolist()})", stage="IndicatorSource"
        )
    out["year"] = years.astype("int64")
    out["value"] = pd.to_numeric(out["value"], errors="coerce")
    for c in ("country_name", "country_code", "indicator_name", "indicator_code"):
        out[c] = out[c].map(_strip)
    return out


def normalize_region_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Keep (country_code, region); blank region labels become missing."""
    out = _rename_by_alias(df, _REGION_ALIASES)
    _require(out, REGION_COLUMNS, stage="RegionSource")
    out = out[REGION_COLUMNS].copy()
    out["country_code"] = out["country_code"].map(_clean_label)
    out = out[out["country_code"].notna()].copy()
    out["region"] = out["region"].map(_clean_label)
    return out


def load_indicators(path: Path) -> pd.DataFrame:
    df = normalize_indicator_columns(_read_csv(path, stage="IndicatorSource"))
    LOG.info("Loaded indicators: %s rows, %d distinct codes", f"{len(df):,}", df["indicator_code"].nunique())
    return df


def load_hdi(path: Path) -> pd.DataFrame:
    """Read the HDI table header-less and as text; the first row still holds the labels."""
    df = _read_csv(path, stage="HDISource", header=None, dtype=str, keep_default_na=False)
    LOG.info("Loaded raw HDI: %s", df.shape)
    return df


def load_regions(path: Path, columns: Optional[List[str]] = None) -> pd.DataFrame:
    df = normalize_region_columns(_read_csv(path, stage="RegionSource", usecols=columns))
    LOG.info("Loaded regions: %d codes (%d without region)", len(df), int(df["region"].isna().sum()))
    return df
