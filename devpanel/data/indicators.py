# devpanel/data/indicators.py
"""
Indicator stages: allow-list filter and long -> wide pivot.

- filter_indicators: keep only allow-listed indicator codes (pure, order preserving)
- pivot_indicators: one row per (country_name, country_code, year), one column per
  mapped indicator, renamed to its semantic name
- unpivot_indicators: the inverse, back to (country, year, indicator_code, value) rows

Repeated (country_code, year, indicator_code) observations are handled by an explicit
policy: "raise" (default) refuses to pivot, "last" keeps the last observation in input order.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List

import pandas as pd

from devpanel.exceptions import ConfigurationError, SchemaError

LOG = logging.getLogger(__name__)

ID_COLUMNS = ["country_name", "country_code", "year"]
LONG_COLUMNS = ID_COLUMNS + ["indicator_code", "value"]
OBSERVATION_KEY = ["country_code", "year", "indicator_code"]


def _require(df: pd.DataFrame, columns: Iterable[str], stage: str) -> None:
    for c in columns:
        if c not in df.columns:
            raise SchemaError(f"column '{c}' not found in input", stage=stage)


def filter_indicators(df: pd.DataFrame, codes: Iterable[str]) -> pd.DataFrame:
    """Return the rows whose indicator_code is in the allow-list (input order, duplicates kept)."""
    allow = set(codes)
    if not allow:
        raise ConfigurationError("indicator allow-list is empty", stage="IndicatorFilter")
    _require(df, ["indicator_code"], stage="IndicatorFilter")

    out = df.loc[df["indicator_code"].isin(allow)].copy()
    LOG.info("IndicatorFilter: kept %s of %s rows (%d allow-listed codes)", f"{len(out):,}", f"{len(df):,}", len(allow))
    return out


def _resolve_duplicates(df: pd.DataFrame, on_duplicate: str) -> pd.DataFrame:
    dup_mask = df.duplicated(subset=OBSERVATION_KEY, keep=False)
    if not dup_mask.any():
        return df

    n_keys = int(df.loc[dup_mask, OBSERVATION_KEY].drop_duplicates().shape[0])
    if on_duplicate == "raise":
        sample = df.loc[dup_mask, OBSERVATION_KEY].drop_duplicates().head(5).to_dict("records")
        raise SchemaError(
            f"{n_keys} duplicate (country_code, year, indicator_code) observations, e.g. {sample}",
            stage="Pivoter",
        )
    LOG.warning("Pivoter: %d duplicate observation keys; keeping the last value for each", n_keys)
    return df.drop_duplicates(subset=OBSERVATION_KEY, keep="last")


def pivot_indicators(
    df: pd.DataFrame,
    field_map: Dict[str, str],
    on_duplicate: str = "raise",
    require_all: bool = False,
) -> pd.DataFrame:
    """
    Pivot filtered long rows to wide and rename indicator codes to semantic names.

    - field_map: ordered {indicator_code: semantic_name}; unmapped codes are dropped
    - missing (country, year, indicator) combinations become NaN cells
    - mapped codes absent from the input become all-NaN columns, or a SchemaError when require_all
    """
    if on_duplicate not in ("raise", "last"):
        raise ConfigurationError(f"unknown duplicate policy {on_duplicate!r}", stage="Pivoter")
    if not field_map:
        raise ConfigurationError("indicator field map is empty", stage="Pivoter")
    _require(df, LONG_COLUMNS, stage="Pivoter")

    codes: List[str] = list(field_map.keys())
    src = df.loc[df["indicator_code"].isin(codes), LONG_COLUMNS]
    src = _resolve_duplicates(src, on_duplicate)

    present = set(src["indicator_code"].unique())
    absent = [c for c in codes if c not in present]
    if absent:
        if require_all:
            raise SchemaError(f"column '{absent[0]}' not found in input", stage="Pivoter")
        LOG.warning("Pivoter: allow-listed codes absent from input (all-missing columns): %s", absent)

    if src.empty:
        wide = pd.DataFrame({
            "country_name": pd.Series(dtype=object),
            "country_code": pd.Series(dtype=object),
            "year": pd.Series(dtype="int64"),
        })
        for code in codes:
            wide[code] = pd.Series(dtype="float64")
    else:
        wide = src.pivot(index=ID_COLUMNS, columns="indicator_code", values="value")
        wide = wide.reindex(columns=codes).reset_index()
        wide.columns.name = None

    wide = wide.rename(columns=field_map)
    wide = wide.sort_values(["country_code", "year"], kind="mergesort").reset_index(drop=True)

    dup_keys = wide.duplicated(subset=["country_code", "year"], keep=False)
    if dup_keys.any():
        sample = wide.loc[dup_keys, ID_COLUMNS].head(5).to_dict("records")
        raise SchemaError(f"(country_code, year) is not unique after pivoting, e.g. {sample}", stage="Pivoter")

    LOG.info("Pivoter: wide table %s (indicators=%d, present=%d)", wide.shape, len(codes), len(present))
    return wide


def unpivot_indicators(wide: pd.DataFrame, field_map: Dict[str, str]) -> pd.DataFrame:
    """Melt semantic indicator columns back to (country, year, indicator_code, value); NaN cells are dropped."""
    _require(wide, ID_COLUMNS, stage="Unpivot")
    name_to_code = {name: code for code, name in field_map.items()}
    value_cols = [name for name in field_map.values() if name in wide.columns]

    long = wide.melt(id_vars=ID_COLUMNS, value_vars=value_cols, var_name="indicator_code", value_name="value")
    long["indicator_code"] = long["indicator_code"].map(name_to_code)
    return long.dropna(subset=["value"]).reset_index(drop=True)
