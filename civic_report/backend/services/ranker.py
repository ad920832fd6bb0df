from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import pandas as pd


@dataclass(frozen=True)
class RankSpec:
    """
    Filter-then-rank parameters.
    Ties on sort_by are broken by tie_break columns (ascending), then by input order.
    final_sort is a sequence of (column, ascending) pairs; None picks a default (see rank_rows).
    """

    sort_by: str
    descending: bool = True
    min_total: float | None = None
    threshold_field: str = "total_requests"
    partition_by: tuple[str, ...] = ()
    top_n: int | None = None
    tie_break: tuple[str, ...] = ()
    final_sort: tuple[tuple[str, bool], ...] | None = None


def apply_threshold(rows: pd.DataFrame, field: str, min_total: float | None) -> pd.DataFrame:
    if min_total is None:
        return rows
    return rows.loc[rows[field] >= min_total]


def rank_rows(rows: pd.DataFrame, spec: RankSpec) -> pd.DataFrame:
    """
    1) drop rows below the threshold (excluded, not zeroed)
    2) when top_n is set: stable sort inside each partition, number rows 1..k, keep rank <= top_n
    3) stable global sort for presentation

    Running it again on its own output with the same spec returns the same frame.
    """
    out = apply_threshold(rows.reset_index(drop=True), spec.threshold_field, spec.min_total).copy()

    order_cols = [spec.sort_by, *spec.tie_break]
    order_asc = [not spec.descending] + [True] * len(spec.tie_break)
    partition = list(spec.partition_by)
    ranked = spec.top_n is not None

    if ranked:
        rank_cols, rank_asc = order_cols, order_asc
        if "rank" in out.columns:
            # Re-ranking ranked output: remaining ties keep their earlier rank, whatever the presentation order.
            rank_cols, rank_asc = [*order_cols, "rank"], [*order_asc, True]
        out = out.sort_values(rank_cols, ascending=rank_asc, kind="mergesort", na_position="last")
        if partition:
            out["rank"] = out.groupby(partition, sort=False, dropna=False).cumcount() + 1
        else:
            out["rank"] = np.arange(1, len(out) + 1, dtype="int64")
        out = out.loc[out["rank"] <= int(spec.top_n)]

    final = spec.final_sort
    if final is None:
        if ranked and partition:
            final = tuple((c, True) for c in partition) + (("rank", True),)
        elif ranked:
            final = (("rank", True),)
        else:
            final = tuple(zip(order_cols, order_asc))
    if final:
        out = out.sort_values(
            [c for c, _ in final],
            ascending=[a for _, a in final],
            kind="mergesort",
            na_position="last",
        )
    return out.reset_index(drop=True)
