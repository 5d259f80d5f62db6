"""
Pipeline configuration: indicator allow-list, HDI layout, derived fields and
residual regressions.

Every setting has a default here so the pipeline runs without a config file;
config/pipeline.yml overrides any subset of them.

Usage:
    from devpanel.utils.config import load_config
    cfg = load_config(Path("config/pipeline.yml"))
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from devpanel.exceptions import ConfigurationError

LOG = logging.getLogger(__name__)

ROOT = Path(__file__).resolve().parents[2]
DEFAULT_CONFIG_PATH = ROOT / "config" / "pipeline.yml"

# Allow-listed WDI indicator codes -> semantic column names (order is the output column order)
DEFAULT_INDICATOR_FIELDS: Dict[str, str] = {
    "NY.GDP.MKTP.KD": "gdp_constant",
    "NY.GDP.PCAP.KD": "gdp_per_capita",
    "SP.POP.TOTL": "population",
    "SP.DYN.CBRT.IN": "birth_rate",
    "SP.DYN.CDRT.IN": "death_rate",
    "SP.DYN.LE00.IN": "life_expectancy",
    "SP.DYN.TFRT.IN": "fertility_rate",
    "SP.DYN.IMRT.IN": "infant_mortality",
    "SP.URB.TOTL.IN.ZS": "urban_population_pct",
}

DUPLICATE_POLICIES = ("raise", "last")


@dataclass
class DerivedFieldSpec:
    name: str
    op: str
    inputs: List[str]


@dataclass
class RegressionSpec:
    response: str
    predictor: str
    group_by: Optional[str] = None
    min_obs: int = 3
    residual_col: str = "residual"


def _default_derived() -> List[DerivedFieldSpec]:
    return [
        DerivedFieldSpec("growth_rate", "difference", ["birth_rate", "death_rate"]),
        DerivedFieldSpec("gdp_per_capita_log", "log", ["gdp_per_capita"]),
    ]


def _default_regressions() -> List[RegressionSpec]:
    return [
        RegressionSpec("life_expectancy", "year", group_by="country_code",
                       min_obs=3, residual_col="life_expectancy_resid"),
        RegressionSpec("hdi", "gdp_per_capita_log", group_by=None,
                       min_obs=3, residual_col="hdi_resid"),
    ]


@dataclass
class PipelineConfig:
    indicator_fields: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_INDICATOR_FIELDS))
    on_duplicate: str = "raise"
    require_all_indicators: bool = False
    hdi_country_column: str = "Country"
    hdi_year_start: int = 1990
    hdi_year_end: int = 2015
    hdi_year_labels: Optional[List[str]] = None
    derived_fields: List[DerivedFieldSpec] = field(default_factory=_default_derived)
    regressions: List[RegressionSpec] = field(default_factory=_default_regressions)

    @property
    def indicator_codes(self) -> List[str]:
        return list(self.indicator_fields.keys())

    def hdi_year_columns(self) -> List[str]:
        """Year column labels expected in the HDI table (explicit list wins over the range)."""
        if self.hdi_year_labels:
            return [str(y).strip() for y in self.hdi_year_labels]
        return [str(y) for y in range(self.hdi_year_start, self.hdi_year_end + 1)]

    def validate(self) -> "PipelineConfig":
        if not self.indicator_fields:
            raise ConfigurationError("indicator allow-list is empty", stage="Config")
        if self.on_duplicate not in DUPLICATE_POLICIES:
            raise ConfigurationError(
                f"on_duplicate must be one of {DUPLICATE_POLICIES}, got {self.on_duplicate!r}", stage="Config"
            )
        if self.hdi_year_labels is None and self.hdi_year_end < self.hdi_year_start:
            raise ConfigurationError(
                f"hdi year range is empty ({self.hdi_year_start}..{self.hdi_year_end})", stage="Config"
            )
        names = list(self.indicator_fields.values())
        if len(set(names)) != len(names):
            raise ConfigurationError("indicator semantic names must be unique", stage="Config")
        for reg in self.regressions:
            if reg.min_obs < 2:
                raise ConfigurationError(
                    f"regression {reg.residual_col}: min_obs must be >= 2, got {reg.min_obs}", stage="Config"
                )
        residual_cols = [r.residual_col for r in self.regressions]
        if len(set(residual_cols)) != len(residual_cols):
            raise ConfigurationError("regression residual_col names must be unique", stage="Config")
        return self


# -----------------------------
# Loading
# -----------------------------
def _read_raw(path: Path) -> Dict[str, Any]:
    """Load config from yaml or json path."""
    try:
        if path.suffix == ".json":
            return json.loads(path.read_text(encoding="utf8"))
        with path.open("r", encoding="utf8") as fh:
            return yaml.safe_load(fh) or {}
    except (yaml.YAMLError, json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ConfigurationError(f"{path} is not valid YAML/JSON: {exc}", stage="Config") from exc


def _parse_indicators(section: Dict[str, Any], cfg: PipelineConfig) -> None:
    fields = section.get("fields")
    if fields is not None:
        if not isinstance(fields, dict):
            raise ConfigurationError("indicators.fields must be a mapping of code -> name", stage="Config")
        cfg.indicator_fields = {str(k).strip(): str(v).strip() for k, v in fields.items()}
    if "on_duplicate" in section:
        cfg.on_duplicate = str(section["on_duplicate"]).strip().lower()
    if "require_all" in section:
        cfg.require_all_indicators = bool(section["require_all"])


def _parse_hdi(section: Dict[str, Any], cfg: PipelineConfig) -> None:
    if "country_column" in section:
        cfg.hdi_country_column = str(section["country_column"])
    if "year_start" in section:
        cfg.hdi_year_start = int(section["year_start"])
    if "year_end" in section:
        cfg.hdi_year_end = int(section["year_end"])
    if section.get("year_columns"):
        cfg.hdi_year_labels = [str(c) for c in section["year_columns"]]


def _parse_derived(items: List[Any]) -> List[DerivedFieldSpec]:
    out: List[DerivedFieldSpec] = []
    for d in items or []:
        try:
            out.append(DerivedFieldSpec(name=str(d["name"]), op=str(d["op"]), inputs=[str(i) for i in d["inputs"]]))
        except (KeyError, TypeError) as exc:
            raise ConfigurationError(f"malformed derived field entry {d!r}: {exc}", stage="Config") from exc
    return out


def _parse_regressions(items: List[Any]) -> List[RegressionSpec]:
    out: List[RegressionSpec] = []
    for r in items or []:
        try:
            out.append(RegressionSpec(
                response=str(r["response"]),
                predictor=str(r["predictor"]),
                group_by=r.get("group_by") or None,
                min_obs=int(r.get("min_obs", 3)),
                residual_col=str(r.get("residual_col", "residual")),
            ))
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise ConfigurationError(f"malformed regression entry {r!r}: {exc}", stage="Config") from exc
    return out


KNOWN_SECTIONS = {"indicators", "hdi", "derived_fields", "regressions"}


def config_from_dict(raw: Dict[str, Any]) -> PipelineConfig:
    """Build a validated PipelineConfig from a plain dict (as parsed from YAML)."""
    cfg = PipelineConfig()
    unknown = sorted(set(raw) - KNOWN_SECTIONS)
    if unknown:
        LOG.warning("Ignoring unknown config sections: %s", unknown)

    _parse_indicators(raw.get("indicators") or {}, cfg)
    _parse_hdi(raw.get("hdi") or {}, cfg)
    if "derived_fields" in raw:
        cfg.derived_fields = _parse_derived(raw["derived_fields"])
    if "regressions" in raw:
        cfg.regressions = _parse_regressions(raw["regressions"])
    return cfg.validate()


def load_config(path: Optional[Path] = None) -> PipelineConfig:
    """Load pipeline config; with no path, return the built-in defaults."""
    if path is None:
        LOG.info("No config path given; using built-in defaults.")
        return PipelineConfig().validate()
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    raw = _read_raw(path)
    if not isinstance(raw, dict):
        raise ConfigurationError(f"{path} must contain a mapping at the top level", stage="Config")
    cfg = config_from_dict(raw)
    LOG.info("Loaded config %s (indicators=%d, derived=%d, regressions=%d)",
             path, len(cfg.indicator_fields), len(cfg.derived_fields), len(cfg.regressions))
    return cfg
