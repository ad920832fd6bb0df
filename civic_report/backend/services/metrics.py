from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

import pandas as pd

from errors import DivisionByZero
from services.aggregator import COUNT_COLUMNS, DENOMINATOR_FIELDS


@dataclass(frozen=True)
class MetricSpec:
    numerator: str
    denominator: str
    scale: float = 1.0


DEFAULT_METRICS: dict[str, MetricSpec] = {
    "requests_per_100k": MetricSpec("total_requests", "estimated_population", 100000),
    "parent_issues_per_100k": MetricSpec("parent_issues", "estimated_population", 100000),
    "requests_per_sqmi": MetricSpec("total_requests", "area_sq_mi", 1),
    "parent_issues_per_sqmi": MetricSpec("parent_issues", "area_sq_mi", 1),
}


def _missing(v: Any) -> bool:
    if v is None:
        return True
    try:
        return bool(pd.isna(v))
    except (TypeError, ValueError):
        return False


def derive(numerator: Any, denominator: Any, scale: float = 1.0) -> float:
    """(numerator / denominator) * scale; NaN when the denominator is zero or missing."""
    if _missing(denominator) or float(denominator) == 0:
        return math.nan
    if _missing(numerator):
        return math.nan
    return (float(numerator) / float(denominator)) * scale


@dataclass(frozen=True)
class DerivedResult:
    frame: pd.DataFrame
    issues: list[DivisionByZero] = field(default_factory=list)


def derive_metrics(
    rows: pd.DataFrame,
    metrics: Mapping[str, MetricSpec] | None = None,
    key_fields: Sequence[str] | None = None,
) -> DerivedResult:
    """
    Adds one column per metric to a copy of rows.
    Zero denominators give NaN cells, each reported as a DivisionByZero issue.
    """
    metrics = DEFAULT_METRICS if metrics is None else metrics
    if key_fields is None:
        key_fields = [c for c in rows.columns if c not in COUNT_COLUMNS and c not in DENOMINATOR_FIELDS]
    out = rows.copy()
    issues: list[DivisionByZero] = []

    for name, spec in metrics.items():
        for col in (spec.numerator, spec.denominator):
            if col not in out.columns:
                raise ValueError(f"Metric {name!r} needs column {col!r}, which the aggregate does not carry")
        values = []
        for _, r in out.iterrows():
            v = derive(r[spec.numerator], r[spec.denominator], spec.scale)
            if math.isnan(v) and (_missing(r[spec.denominator]) or float(r[spec.denominator]) == 0):
                issues.append(DivisionByZero(name, spec.denominator, {k: r[k] for k in key_fields}))
            values.append(v)
        out[name] = pd.Series(values, index=out.index, dtype="float64")

    if issues:
        print(f"[PIPELINE] {len(issues)} metric cell(s) have a zero denominator; rendered as null")
    return DerivedResult(frame=out, issues=issues)
