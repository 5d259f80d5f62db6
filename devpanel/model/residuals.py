# devpanel/model/residuals.py
"""
Per-group OLS line fits with residuals attached to every modeled row.

For each group (e.g. country_code) or for the whole table, fit response ~ const + predictor
with statsmodels OLS on the rows where both fields are present, and write
residual = observed - predicted back onto those rows.

Groups that cannot support a line are not errors; they are recorded in the fits table:
 - insufficient_obs: fewer than min_obs complete observations
 - zero_variance:    the predictor takes a single value in the group
Their rows keep a missing residual.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd
import statsmodels.api as sm

from devpanel.exceptions import ConfigurationError, SchemaError

LOG = logging.getLogger(__name__)

STAGE = "RegressionResidualizer"

STATUS_FIT = "fit"
STATUS_INSUFFICIENT = "insufficient_obs"
STATUS_ZERO_VARIANCE = "zero_variance"

GLOBAL_GROUP = "__all__"

FIT_COLUMNS = ["model", "response", "predictor", "group", "n_obs", "intercept", "slope", "r_squared", "status"]


@dataclass
class ResidualRun:
    table: pd.DataFrame
    fits: pd.DataFrame
    residual_col: str

    def status_counts(self) -> Dict[str, int]:
        return {k: int(v) for k, v in self.fits["status"].value_counts().items()}


def _ols_line(x: np.ndarray, y: np.ndarray) -> Tuple[float, float, float, np.ndarray]:
    """Fit y ~ const + x. Returns (intercept, slope, r_squared, residuals)."""
    X = sm.add_constant(x, has_constant="add")
    res = sm.OLS(y, X).fit()
    intercept, slope = (float(p) for p in res.params)
    resid = y - X @ res.params
    r2 = float(res.rsquared) if res.centered_tss > 0 else np.nan
    return intercept, slope, r2, resid


def _fit_one(
    x: np.ndarray,
    y: np.ndarray,
    min_obs: int,
) -> Tuple[Dict[str, Any], Optional[np.ndarray]]:
    """Fit one group on its complete rows; returns (fit record, residuals aligned with x or None)."""
    n = len(x)
    record: Dict[str, Any] = {"n_obs": n, "intercept": np.nan, "slope": np.nan, "r_squared": np.nan}
    if n < min_obs:
        record["status"] = STATUS_INSUFFICIENT
        return record, None
    if np.unique(x).size <= 1:
        record["status"] = STATUS_ZERO_VARIANCE
        return record, None

    intercept, slope, r2, resid = _ols_line(x, y)
    record.update({"intercept": intercept, "slope": slope, "r_squared": r2, "status": STATUS_FIT})
    return record, np.asarray(resid, dtype="float64")


def attach_residuals(
    df: pd.DataFrame,
    response: str,
    predictor: str,
    group_by: Optional[str] = None,
    min_obs: int = 3,
    residual_col: str = "residual",
) -> ResidualRun:
    """
    Fit response ~ predictor per group (or globally when group_by is None) and attach residuals.

    Returns ResidualRun(table, fits, residual_col); the input frame is not modified.
    """
    if min_obs < 2:
        raise ConfigurationError(f"min_obs must be >= 2, got {min_obs}", stage=STAGE)
    needed = [response, predictor] + ([group_by] if group_by else [])
    for c in needed:
        if c not in df.columns:
            raise SchemaError(f"column '{c}' not found in input", stage=STAGE)

    out = df.copy()
    y_all = pd.to_numeric(out[response], errors="coerce").astype("float64")
    x_all = pd.to_numeric(out[predictor], errors="coerce").astype("float64")
    x_vals = x_all.to_numpy()
    y_vals = y_all.to_numpy()
    complete = np.isfinite(y_vals) & np.isfinite(x_vals)
    residuals = np.full(len(out), np.nan)

    # positions, not index labels: the input index need not be unique
    if group_by:
        indices = out.groupby(group_by, sort=True).indices
        groups = [(key, indices[key]) for key in sorted(indices)]
    else:
        groups = [(GLOBAL_GROUP, np.arange(len(out)))]

    records: List[Dict[str, Any]] = []
    for key, pos in groups:
        pos = pos[complete[pos]]
        record, resid = _fit_one(x_vals[pos], y_vals[pos], min_obs)
        if resid is not None:
            residuals[pos] = resid
        records.append({"model": residual_col, "response": response, "predictor": predictor, "group": key, **record})

    out[residual_col] = residuals
    fits = pd.DataFrame.from_records(records, columns=FIT_COLUMNS)

    run = ResidualRun(table=out, fits=fits, residual_col=residual_col)
    LOG.info("%s: %s ~ %s by %s -> %s (%s)", STAGE, response, predictor, group_by or "global",
             residual_col, run.status_counts())
    return run


def apply_regressions(df: pd.DataFrame, specs: Iterable) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Run each RegressionSpec in order, each attaching its own residual column.
    Returns (table, fits) with fits from all models stacked.
    """
    table = df
    fits: List[pd.DataFrame] = []
    for spec in specs:
        run = attach_residuals(table, spec.response, spec.predictor, group_by=spec.group_by,
                               min_obs=spec.min_obs, residual_col=spec.residual_col)
        table = run.table
        fits.append(run.fits)
    all_fits = pd.concat(fits, ignore_index=True) if fits else pd.DataFrame(columns=FIT_COLUMNS)
    return table, all_fits
