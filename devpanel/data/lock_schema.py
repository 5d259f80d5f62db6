"""
Lock the column contract of the final analysis table.

The table handed to downstream consumers always exposes:
  country_name, country_code, year, region,
  <indicator fields in allow-list order>, hdi,
  <derived fields in registration order>, <residual columns in config order>

Design Notes:
  - Missing contract columns are a hard failure (no partial table is returned).
  - Columns outside the contract are dropped with a warning.
  - Deterministic column order and dtypes (year int64, measures float64, labels object).
  - A schema-level md5 digest is emitted for drift detection.
"""

from __future__ import annotations
import hashlib
import json
import logging
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd

from devpanel.exceptions import SchemaError

log = logging.getLogger(__name__)

STAGE = "SchemaLock"

IDENTIFIERS = ["country_name", "country_code", "year"]
LABELS = IDENTIFIERS[:2] + ["region"]


def analysis_columns(cfg) -> List[str]:
    """Ordered analysis-table columns implied by a PipelineConfig."""
    return (
        IDENTIFIERS
        + ["region"]
        + list(cfg.indicator_fields.values())
        + ["hdi"]
        + [d.name for d in cfg.derived_fields]
        + [r.residual_col for r in cfg.regressions]
    )


def lock_analysis_schema(df: pd.DataFrame, columns: List[str]) -> pd.DataFrame:
    """Return df restricted to `columns` in that order with contract dtypes; SchemaError if any is absent."""
    missing = [c for c in columns if c not in df.columns]
    if missing:
        log.error("Critical missing columns: %s", missing)
        raise SchemaError(f"analysis table is missing column(s) {missing}", stage=STAGE)

    extra = [c for c in df.columns if c not in columns]
    if extra:
        log.warning("Dropping columns outside the analysis schema: %s", extra)

    lean = df[columns].copy()
    for c in columns:
        if c == "year":
            lean[c] = lean[c].astype("int64")
        elif c in LABELS:
            lean[c] = lean[c].astype(object)
        else:
            lean[c] = pd.to_numeric(lean[c], errors="coerce").astype("float64")
    return lean


def schema_manifest(df: pd.DataFrame) -> Dict[str, Any]:
    """Column list, dtypes, missing counts and an md5 of the (column, dtype) schema."""
    schema = [{"column": c, "dtype": str(df[c].dtype)} for c in df.columns]
    schema_md5 = hashlib.md5(json.dumps(schema, sort_keys=True).encode("utf-8")).hexdigest()
    return {
        "columns": schema,
        "n_columns": len(df.columns),
        "n_rows": len(df),
        "missing": {c: int(df[c].isna().sum()) for c in df.columns},
        "schema_md5": schema_md5,
    }


def write_schema_manifest(df: pd.DataFrame, out_path: Path) -> Path:
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    manifest = schema_manifest(df)
    out_path.write_text(json.dumps(manifest, indent=2))
    log.info("Saved schema manifest → %s (schema md5 %s)", out_path, manifest["schema_md5"])
    return out_path
