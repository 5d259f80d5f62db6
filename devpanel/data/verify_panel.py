# devpanel/data/verify_panel.py
"""
Verification reports for the analysis table.

Produces (in the reports directory):
 - verify_missingness.csv        missing fraction per column
 - verify_year_coverage.csv      countries per year
 - verify_country_coverage.csv   first/last year and row count per country
 - verify_value_stats.csv        describe() of numeric columns

Each artifact is checksum-recorded via devpanel.utils.data_registry.record_artifact.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List

import pandas as pd

from devpanel.utils.data_registry import record_artifact

LOG = logging.getLogger(__name__)


def missingness(df: pd.DataFrame) -> pd.DataFrame:
    missing = df.isna().mean().sort_values(ascending=False, kind="mergesort")
    out = missing.reset_index()
    out.columns = ["column", "missing_fraction"]
    return out


def year_coverage(df: pd.DataFrame) -> pd.DataFrame:
    if not {"year", "country_code"}.issubset(df.columns):
        return pd.DataFrame(columns=["year", "n_countries"])
    return df.groupby("year")["country_code"].nunique().reset_index().rename(columns={"country_code": "n_countries"})


def country_coverage(df: pd.DataFrame) -> pd.DataFrame:
    if not {"year", "country_code"}.issubset(df.columns):
        return pd.DataFrame(columns=["country_code", "min", "max", "n_obs"])
    return (
        df.groupby("country_code")["year"].agg(["min", "max", "count"]).reset_index()
        .rename(columns={"count": "n_obs"})
    )


def value_stats(df: pd.DataFrame) -> pd.DataFrame:
    num = df.select_dtypes(include=["number"])
    if num.empty:
        return pd.DataFrame(columns=["column"])
    return num.describe().T.reset_index().rename(columns={"index": "column"})


def build_reports(df: pd.DataFrame) -> Dict[str, pd.DataFrame]:
    """All verification tables keyed by report name."""
    return {
        "verify_missingness": missingness(df),
        "verify_year_coverage": year_coverage(df),
        "verify_country_coverage": country_coverage(df),
        "verify_value_stats": value_stats(df),
    }


def _write_and_record(df: pd.DataFrame, out_path: Path, canonical_id: str | None = None) -> None:
    """Write dataframe to CSV and record provenance (md5 + sources.yaml) if canonical_id provided."""
    df.to_csv(out_path, index=False)
    md5 = record_artifact(out_path, canonical_id=canonical_id)
    if md5:
        LOG.info("Wrote %s (rows=%s) md5=%s", out_path.name, f"{len(df):,}", md5)
    else:
        LOG.warning("Wrote %s but provenance recording failed.", out_path.name)


def write_verification_reports(df: pd.DataFrame, out_dir: Path) -> List[Path]:
    """Write every verification report as CSV into out_dir and return the written paths."""
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    written: List[Path] = []
    for name, report in build_reports(df).items():
        path = out_dir / f"{name}.csv"
        _write_and_record(report, path, canonical_id=name)
        written.append(path)

    missing = df.isna().mean().sort_values(ascending=False)
    LOG.info("rows: %s cols: %s", f"{len(df):,}", len(df.columns))
    if "year" in df.columns and len(df):
        LOG.info("years: %s-%s", int(df["year"].min()), int(df["year"].max()))
    LOG.info("Top 10 most-missing columns:\n%s", missing.head(10).to_string())
    return written
