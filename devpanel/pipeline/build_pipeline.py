"""
Pipeline orchestrator: raw indicators + HDI + regions -> country-year analysis table.

Usage:
  python -m devpanel.pipeline.build_pipeline \
      --indicators data/raw/Indicators.csv \
      --hdi data/raw/human_development.csv \
      --regions data/raw/Country.csv
  python -m devpanel.pipeline.build_pipeline ... --config config/pipeline.yml --out data/processed/analysis_table.csv

Stages (fixed order):
  IndicatorFilter -> Pivoter -> HDIReshaper -> JoinEngine[hdi] -> JoinEngine[region] ->
  DerivedFieldCalculator -> RegressionResidualizer -> SchemaLock

Design:
  - Every stage returns a new frame; inputs are never modified in place
  - Stops on the first schema / join-key / configuration error; nothing is written for a failed run
  - Writes the analysis table, join statistics, model fits, verification reports,
    a schema manifest and data_manifest.json (sha1 + size per artifact)
"""

from __future__ import annotations
import argparse
import hashlib
import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import pandas as pd

from devpanel.data.feature_engineer import add_derived_fields, fields_from_specs
from devpanel.data.hdi_reshape import reshape_hdi
from devpanel.data.indicators import filter_indicators, pivot_indicators
from devpanel.data.joins import JoinResult, join_hdi, join_regions
from devpanel.data.loaders import (
    load_hdi,
    load_indicators,
    load_regions,
    normalize_indicator_columns,
    normalize_region_columns,
)
from devpanel.data.lock_schema import analysis_columns, lock_analysis_schema, write_schema_manifest
from devpanel.data.verify_panel import write_verification_reports
from devpanel.exceptions import PipelineError
from devpanel.model.residuals import FIT_COLUMNS, apply_regressions
from devpanel.utils.config import DEFAULT_CONFIG_PATH, PipelineConfig, load_config
from devpanel.utils.data_registry import record_artifact

ROOT = Path(__file__).resolve().parents[2]
PROCESSED = ROOT / "data" / "processed"
REPORTS = ROOT / "reports"

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
LOG = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    table: pd.DataFrame
    joins: List[JoinResult] = field(default_factory=list)
    fits: pd.DataFrame = field(default_factory=lambda: pd.DataFrame(columns=FIT_COLUMNS))

    def join_stats(self) -> pd.DataFrame:
        return pd.DataFrame([j.summary() for j in self.joins])

    def hit_rate(self, stage: str) -> float:
        for j in self.joins:
            if j.stage == stage:
                return j.hit_rate
        raise KeyError(stage)


def build_analysis_table(
    indicators: pd.DataFrame,
    hdi_raw: pd.DataFrame,
    regions: pd.DataFrame,
    cfg: Optional[PipelineConfig] = None,
    hdi_header_promoted: bool = False,
) -> PipelineResult:
    """
    Run every stage in memory and return the locked analysis table with join and fit diagnostics.

    `indicators` and `regions` may use the raw source spellings (CountryCode, IndicatorCode, ...);
    `hdi_raw` is the wide HDI table with its labels still in row 0 unless hdi_header_promoted.
    """
    cfg = cfg or PipelineConfig().validate()

    # 1) upstream shapes -> canonical columns
    indicators = normalize_indicator_columns(indicators)
    regions = normalize_region_columns(regions)

    # 2) indicators: filter + pivot
    filtered = filter_indicators(indicators, cfg.indicator_codes)
    tidy = pivot_indicators(filtered, cfg.indicator_fields, on_duplicate=cfg.on_duplicate,
                            require_all=cfg.require_all_indicators)

    # 3) HDI wide -> long
    hdi_long = reshape_hdi(hdi_raw, cfg.hdi_year_columns(), country_column=cfg.hdi_country_column,
                           header_promoted=hdi_header_promoted)

    # 4) joins
    j_hdi = join_hdi(tidy, hdi_long)
    j_region = join_regions(j_hdi.table, regions)

    # 5) derived fields
    table = add_derived_fields(j_region.table, fields_from_specs(cfg.derived_fields))

    # 6) residuals
    table, fits = apply_regressions(table, cfg.regressions)

    # 7) lock the output contract
    table = lock_analysis_schema(table, analysis_columns(cfg))
    LOG.info("Analysis table ready: %s rows, %d cols", f"{len(table):,}", len(table.columns))
    return PipelineResult(table=table, joins=[j_hdi, j_region], fits=fits)


# -----------------------------
# Artifacts / manifest
# -----------------------------
def sha1(path: Path) -> str:
    h = hashlib.sha1()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            h.update(chunk)
    return h.hexdigest()


def _display_path(p: Path) -> str:
    try:
        return str(p.resolve().relative_to(ROOT))
    except ValueError:
        return str(p)


def build_manifest(paths: List[Path]) -> dict:
    manifest = {"generated_at": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()), "files": {}}
    for p in paths:
        if p.exists():
            manifest["files"][_display_path(p)] = {"sha1": sha1(p), "size": p.stat().st_size}
    return manifest


def write_outputs(result: PipelineResult, out_path: Path, reports_dir: Path, with_reports: bool = True) -> List[Path]:
    """Write the analysis table and its companion reports; returns every written path."""
    out_path.parent.mkdir(parents=True, exist_ok=True)
    reports_dir.mkdir(parents=True, exist_ok=True)
    produced: List[Path] = []

    result.table.to_csv(out_path, index=False)
    md5 = record_artifact(out_path, canonical_id="analysis_table")
    LOG.info("Saved analysis table -> %s (%s rows) md5=%s", out_path, f"{len(result.table):,}", md5)
    produced.append(out_path)

    join_path = reports_dir / "join_stats.csv"
    result.join_stats().to_csv(join_path, index=False)
    produced.append(join_path)

    for j in result.joins:
        if len(j.unmatched):
            slug = j.stage.split("[")[-1].rstrip("]")
            p = reports_dir / f"unmatched_{slug}_keys.csv"
            j.unmatched.to_csv(p, index=False)
            produced.append(p)

    fits_path = reports_dir / "model_fits.csv"
    result.fits.to_csv(fits_path, index=False)
    produced.append(fits_path)

    produced.append(write_schema_manifest(result.table, reports_dir / "analysis_schema.json"))
    if with_reports:
        produced.extend(write_verification_reports(result.table, reports_dir))
    return produced


def run(indicators_path: Path, hdi_path: Path, regions_path: Path, cfg: PipelineConfig) -> PipelineResult:
    """Load the three raw files and build the analysis table."""
    indicators = load_indicators(indicators_path)
    hdi_raw = load_hdi(hdi_path)
    regions = load_regions(regions_path)
    return build_analysis_table(indicators, hdi_raw, regions, cfg)


def parse_args(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(prog="build_pipeline", description="Build the country-year analysis table")
    parser.add_argument("--indicators", type=Path, required=True, help="Long-format WDI indicators CSV")
    parser.add_argument("--hdi", type=Path, required=True, help="Wide HDI CSV (labels in the first row)")
    parser.add_argument("--regions", type=Path, required=True, help="Country code -> region CSV")
    parser.add_argument("--config", type=Path, default=None,
                        help="YAML config (default: config/pipeline.yml when present, else built-in defaults)")
    parser.add_argument("--out", type=Path, default=PROCESSED / "analysis_table.csv", help="Output CSV path")
    parser.add_argument("--reports-dir", type=Path, default=REPORTS, help="Directory for reports and manifests")
    parser.add_argument("--no-verify", action="store_true", help="Skip the verification reports")
    parser.add_argument("--keep-manifest", action="store_true", help="Do not overwrite an existing data_manifest.json")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    config_path = args.config
    if config_path is None and DEFAULT_CONFIG_PATH.exists():
        config_path = DEFAULT_CONFIG_PATH

    LOG.info("Pipeline start (config=%s)", config_path or "built-in defaults")
    try:
        cfg = load_config(config_path)
        result = run(args.indicators, args.hdi, args.regions, cfg)
        produced = write_outputs(result, args.out, args.reports_dir, with_reports=not args.no_verify)

        manifest_out = args.reports_dir / "data_manifest.json"
        if args.keep_manifest and manifest_out.exists():
            LOG.info("Keeping existing manifest (no overwrite): %s", manifest_out)
        else:
            manifest_out.write_text(json.dumps(build_manifest(produced), indent=2))
            LOG.info("Wrote manifest -> %s", manifest_out)

        LOG.info("Pipeline finished successfully.")
    except (PipelineError, FileNotFoundError) as e:
        LOG.exception("Pipeline failed: %s", e)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
