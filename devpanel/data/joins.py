# devpanel/data/joins.py
"""
Left-outer joins that never drop or duplicate rows of the driving (left) table.

- left_join: validated many-to-one left join returning the table plus match statistics
- join_hdi: tidy indicators <- HDI long, on (country_name, year)
- join_regions: joined table <- region lookup, on country_code

The right side must hold at most one row per key; otherwise JoinKeyAmbiguity is raised
instead of letting the merge fan out left rows. The HDI join matches on country *names*,
so spelling differences between sources show up as unmatched keys and a lower hit rate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd
from pandas.api.types import is_numeric_dtype

from devpanel.exceptions import ConfigurationError, JoinKeyAmbiguity, SchemaError

LOG = logging.getLogger(__name__)

HIT_FLAG = "_join_hit"


@dataclass
class JoinResult:
    table: pd.DataFrame
    stage: str
    n_rows: int
    n_matched: int
    unmatched: pd.DataFrame = field(default_factory=pd.DataFrame)

    @property
    def hit_rate(self) -> float:
        """Share of left rows that found a right-hand match (NaN for an empty left table)."""
        return self.n_matched / self.n_rows if self.n_rows else float("nan")

    def summary(self) -> Dict[str, Any]:
        return {
            "stage": self.stage,
            "rows": self.n_rows,
            "matched": self.n_matched,
            "hit_rate": self.hit_rate,
            "unmatched_keys": len(self.unmatched),
        }


def _check_keys(left: pd.DataFrame, right: pd.DataFrame, left_on: List[str], right_on: List[str], stage: str) -> None:
    for c in left_on:
        if c not in left.columns:
            raise SchemaError(f"left key column '{c}' not found", stage=stage)
    for c in right_on:
        if c not in right.columns:
            raise SchemaError(f"right key column '{c}' not found", stage=stage)
    for lk, rk in zip(left_on, right_on):
        if is_numeric_dtype(left[lk]) != is_numeric_dtype(right[rk]):
            raise SchemaError(
                f"key dtype mismatch: left '{lk}' is {left[lk].dtype}, right '{rk}' is {right[rk].dtype}", stage=stage
            )


def left_join(
    left: pd.DataFrame,
    right: pd.DataFrame,
    left_on: Sequence[str],
    right_on: Optional[Sequence[str]] = None,
    stage: str = "JoinEngine",
) -> JoinResult:
    """
    Left-outer join `right` onto `left`.

    Right key columns are renamed to the left key names and not repeated in the output;
    right non-key columns already present on the left are dropped (left wins).
    """
    left_on = list(left_on)
    right_on = list(right_on) if right_on is not None else list(left_on)
    if not left_on or len(left_on) != len(right_on):
        raise ConfigurationError(f"join keys do not line up: {left_on} vs {right_on}", stage=stage)
    _check_keys(left, right, left_on, right_on, stage)

    # rows with a missing key can never match; pandas would otherwise pair NaN with NaN
    rhs = right.dropna(subset=right_on)
    dup = rhs.duplicated(subset=right_on, keep=False)
    if dup.any():
        dup_keys = rhs.loc[dup, right_on].drop_duplicates()
        raise JoinKeyAmbiguity(
            f"right table has {len(dup_keys)} key(s) on {right_on} with more than one row, "
            f"e.g. {dup_keys.head(5).to_dict('records')}",
            stage=stage,
        )

    overlap = [c for c in rhs.columns if c not in right_on and c in left.columns]
    if overlap:
        LOG.info("%s: right columns already on left are dropped: %s", stage, overlap)
    carried = [c for c in rhs.columns if c not in right_on and c not in left.columns]
    rhs = rhs[right_on + carried].rename(columns=dict(zip(right_on, left_on)))

    merged = left.merge(rhs, on=left_on, how="left", indicator=HIT_FLAG, validate="many_to_one", sort=False)
    if len(merged) != len(left):
        raise JoinKeyAmbiguity(f"join changed row count {len(left)} -> {len(merged)}", stage=stage)

    hits = merged[HIT_FLAG] == "both"
    unmatched = merged.loc[~hits, left_on].drop_duplicates().reset_index(drop=True)
    table = merged.drop(columns=[HIT_FLAG])

    result = JoinResult(table=table, stage=stage, n_rows=len(table), n_matched=int(hits.sum()), unmatched=unmatched)
    LOG.info("%s: %s rows, matched=%s (hit rate %.3f)", stage, f"{result.n_rows:,}", f"{result.n_matched:,}", result.hit_rate)
    if len(unmatched):
        LOG.warning("%s: %d distinct unmatched keys, e.g. %s", stage, len(unmatched),
                    unmatched.head(10).to_dict("records"))
    return result


def join_hdi(tidy: pd.DataFrame, hdi_long: pd.DataFrame) -> JoinResult:
    """Join 1: attach hdi on (country_name, year)."""
    return left_join(tidy, hdi_long, left_on=["country_name", "year"], stage="JoinEngine[hdi]")


def join_regions(table: pd.DataFrame, regions: pd.DataFrame) -> JoinResult:
    """Join 2: attach region on country_code."""
    return left_join(table, regions, left_on=["country_code"], stage="JoinEngine[region]")
