from __future__ import annotations

from typing import Sequence

import pandas as pd

from errors import InconsistentDenominator


COUNT_COLUMNS = ("total_requests", "parent_issues")
DENOMINATOR_FIELDS = ("estimated_population", "area_sq_mi")
AREA_FIELDS = ("area_key", "area_name")


def default_representative(group_by: Sequence[str]) -> tuple[str, ...]:
    # Population and land area are per-area facts; they are only constant when an area field is a key.
    if any(k in AREA_FIELDS for k in group_by):
        return DENOMINATOR_FIELDS
    return ()


def aggregate(
    enriched: pd.DataFrame,
    group_by: Sequence[str],
    representative: Sequence[str] | None = None,
) -> pd.DataFrame:
    """
    One row per distinct combination of group_by values:
    - total_requests: distinct request_id
    - parent_issues: distinct grouping_id
    - representative fields: the single value shared by the partition (never summed)

    Raises InconsistentDenominator when a representative field varies inside a partition.
    """
    keys = list(group_by)
    if not keys:
        raise ValueError("group_by must name at least one field")
    missing = [k for k in keys if k not in enriched.columns]
    if missing:
        raise ValueError(f"Unknown grouping field(s): {missing}")
    rep = list(default_representative(keys) if representative is None else representative)
    unknown_rep = [f for f in rep if f not in enriched.columns]
    if unknown_rep:
        raise ValueError(f"Unknown representative field(s): {unknown_rep}")

    if enriched.empty:
        return pd.DataFrame(columns=keys + list(COUNT_COLUMNS) + rep)

    grouped = enriched.groupby(keys, sort=False, dropna=False)
    out = grouped.agg(
        total_requests=("request_id", "nunique"),
        parent_issues=("grouping_id", "nunique"),
    )

    for f in rep:
        spread = grouped[f].transform("nunique")
        if (spread > 1).any():
            bad = enriched.loc[spread > 1]
            first = bad.iloc[0]
            same_group = (bad[keys] == first[keys]).all(axis=1)
            values = bad.loc[same_group, f].unique().tolist()
            group = tuple(first[k] for k in keys) if len(keys) > 1 else first[keys[0]]
            print(f"[PIPELINE] Aborting aggregation by {keys}: {f} is not constant for group {group!r}")
            raise InconsistentDenominator(keys, f, values, group=group)
        out[f] = grouped[f].first()

    out = out.reset_index()
    out["total_requests"] = out["total_requests"].astype("int64")
    out["parent_issues"] = out["parent_issues"].astype("int64")
    return out
