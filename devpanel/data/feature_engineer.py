# devpanel/data/feature_engineer.py
"""
Derived columns for the joined country-year panel.

Design choices:
 - Row-wise arithmetic only; a missing input always yields a missing output (no zero fills).
 - Fields are registered as DerivedField objects and applied in registration order, so a
   later field may use an earlier one and new fields can be added to an already-built table.
 - Built-in operations usable from config/pipeline.yml: difference, ratio, log, log1p.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Sequence, Tuple

import numpy as np
import pandas as pd

from devpanel.exceptions import ConfigurationError, SchemaError

LOG = logging.getLogger(__name__)

STAGE = "DerivedFieldCalculator"


def _num(s: pd.Series) -> pd.Series:
    return pd.to_numeric(s, errors="coerce").astype("float64")


def _difference(a: pd.Series, b: pd.Series) -> pd.Series:
    return _num(a) - _num(b)


def _ratio(a: pd.Series, b: pd.Series) -> pd.Series:
    """a / b; a zero denominator gives NaN rather than inf."""
    den = _num(b)
    return _num(a) / den.where(den != 0)


def _safe_log(s: pd.Series) -> pd.Series:
    """Natural log for strictly positive values; NaN otherwise."""
    snum = _num(s)
    out = pd.Series(np.nan, index=s.index)
    mask = snum > 0
    out.loc[mask] = np.log(snum.loc[mask])
    return out


def _safe_log1p(s: pd.Series) -> pd.Series:
    """Apply log1p for strictly positive values; NaN otherwise."""
    snum = _num(s)
    out = pd.Series(np.nan, index=s.index)
    mask = snum > 0
    out.loc[mask] = np.log1p(snum.loc[mask])
    return out


# op name -> (function, number of input columns)
OPERATIONS: Dict[str, Tuple[Callable[..., pd.Series], int]] = {
    "difference": (_difference, 2),
    "ratio": (_ratio, 2),
    "log": (_safe_log, 1),
    "log1p": (_safe_log1p, 1),
}


@dataclass(frozen=True)
class DerivedField:
    name: str
    inputs: Tuple[str, ...]
    func: Callable[..., pd.Series]

    def compute(self, df: pd.DataFrame) -> pd.Series:
        return self.func(*[df[c] for c in self.inputs])


def derived_field(name: str, op: str, inputs: Sequence[str]) -> DerivedField:
    """Build a DerivedField from a named built-in operation."""
    if op not in OPERATIONS:
        raise ConfigurationError(f"derived field '{name}': unknown op {op!r} (known: {sorted(OPERATIONS)})", stage=STAGE)
    func, arity = OPERATIONS[op]
    if len(inputs) != arity:
        raise ConfigurationError(
            f"derived field '{name}': op {op!r} takes {arity} input(s), got {list(inputs)}", stage=STAGE
        )
    return DerivedField(name=name, inputs=tuple(inputs), func=func)


def fields_from_specs(specs: Iterable) -> List[DerivedField]:
    """Convert config DerivedFieldSpec entries (name, op, inputs) into DerivedField objects."""
    return [derived_field(s.name, s.op, s.inputs) for s in specs]


GROWTH_RATE = derived_field("growth_rate", "difference", ["birth_rate", "death_rate"])
DEFAULT_FIELDS: List[DerivedField] = [GROWTH_RATE]


def add_derived_fields(df: pd.DataFrame, fields: Iterable[DerivedField] = DEFAULT_FIELDS) -> pd.DataFrame:
    """Return a copy of df with each derived field appended (or replaced) in order."""
    out = df.copy()
    for f in fields:
        missing = [c for c in f.inputs if c not in out.columns]
        if missing:
            raise SchemaError(f"field '{f.name}' needs column(s) {missing} not found in input", stage=STAGE)
        if f.name in out.columns:
            LOG.warning("%s: replacing existing column %s", STAGE, f.name)
        out[f.name] = f.compute(out).astype("float64")
        LOG.info("%s: %s from %s (%d non-missing)", STAGE, f.name, list(f.inputs), int(out[f.name].notna().sum()))
    return out
