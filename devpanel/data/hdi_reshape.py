# devpanel/data/hdi_reshape.py
"""
Reshape the wide HDI table (one column per year) into long (country_name, year, hdi) rows.

The raw HDI export carries its real column labels in the first data row, so the header
is promoted explicitly before unpivoting. Every declared year column must exist and parse
as an integer; HDI markers such as ".." or blanks become NaN, never a number.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Sequence

import pandas as pd

from devpanel.exceptions import SchemaError

LOG = logging.getLogger(__name__)

STAGE = "HDIReshaper"
DEFAULT_YEAR_COLUMNS = [str(y) for y in range(1990, 2016)]


def _label(value: object) -> str:
    """Header cell -> column label (1990.0 -> "1990", NaN -> "")."""
    if isinstance(value, float):
        if pd.isna(value):
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


def promote_header_row(raw: pd.DataFrame) -> pd.DataFrame:
    """Use row 0 as the column labels and drop it."""
    if raw.empty:
        raise SchemaError("input has no header row to promote", stage=STAGE)
    out = raw.iloc[1:].copy()
    out.columns = [_label(v) for v in raw.iloc[0].tolist()]
    return out.reset_index(drop=True)


def _parse_years(labels: Sequence[str]) -> Dict[str, int]:
    years: Dict[str, int] = {}
    for label in labels:
        try:
            years[label] = int(str(label).strip())
        except ValueError:
            raise SchemaError(f"year column '{label}' does not parse as an integer", stage=STAGE) from None
    return years


def reshape_hdi(
    raw: pd.DataFrame,
    year_columns: Sequence[str] = DEFAULT_YEAR_COLUMNS,
    country_column: str = "Country",
    header_promoted: bool = False,
) -> pd.DataFrame:
    """
    Unpivot the HDI table to long format.

    Returns columns: country_name (str), year (int64), hdi (float64, NaN = missing).
    """
    df = raw.copy() if header_promoted else promote_header_row(raw)
    df.columns = [_label(c) for c in df.columns]
    year_columns: List[str] = [str(y).strip() for y in year_columns]

    # 1) schema checks
    if not year_columns:
        raise SchemaError("no year columns declared", stage=STAGE)
    if country_column not in df.columns:
        raise SchemaError(f"column '{country_column}' not found in input", stage=STAGE)
    missing = [y for y in year_columns if y not in df.columns]
    if missing:
        raise SchemaError(f"year column(s) {missing} not found in input", stage=STAGE)
    repeated = [c for c in [country_column] + year_columns if list(df.columns).count(c) > 1]
    if repeated:
        raise SchemaError(f"column label(s) {sorted(set(repeated))} appear more than once", stage=STAGE)
    years = _parse_years(year_columns)

    # 2) drop footnote / blank-country rows
    df = df[[country_column] + year_columns].copy()
    country = df[country_column].map(lambda v: v.strip() if isinstance(v, str) else v)
    keep = country.notna() & (country != "")
    if (~keep).any():
        LOG.info("%s: dropping %d rows without a country label", STAGE, int((~keep).sum()))
    df[country_column] = country
    df = df.loc[keep]

    # 3) unpivot and coerce types
    long = df.melt(id_vars=[country_column], value_vars=year_columns, var_name="year", value_name="hdi")
    long = long.rename(columns={country_column: "country_name"})
    long["year"] = long["year"].map(years).astype("int64")
    long["hdi"] = pd.to_numeric(long["hdi"], errors="coerce").astype("float64")
    long = long.sort_values(["country_name", "year"], kind="mergesort").reset_index(drop=True)

    LOG.info("%s: %s rows (%d countries, years %d-%d, %d missing hdi)", STAGE, f"{len(long):,}",
             long["country_name"].nunique(), min(years.values()), max(years.values()), int(long["hdi"].isna().sum()))
    return long
