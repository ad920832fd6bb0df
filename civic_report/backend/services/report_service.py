from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import pandas as pd

from config import settings
from services.aggregator import aggregate
from services.joiner import JoinResult, join_dimensions
from services.metrics import DEFAULT_METRICS, DerivedResult, MetricSpec, derive_metrics
from services.normalizer import NormalizeResult, normalize_requests
from services.ranker import RankSpec, rank_rows
from services.reaggregator import FIRST, MAX, NONE, RATIO, SUM, ColumnSpec, build_tree
from services.table import SummaryTable, frame_to_records


AREA = "area_name"
TYPE = "request_type"


def _count_columns() -> list[ColumnSpec]:
    return [
        ColumnSpec("total_requests", "Requests", SUM),
        ColumnSpec("parent_issues", "Parent issues", SUM),
    ]


def _denominator_columns() -> list[ColumnSpec]:
    return [
        ColumnSpec("estimated_population", "Population", MAX),
        ColumnSpec("area_sq_mi", "Area (sq mi)", MAX),
    ]


def _metric_columns(metrics: Mapping[str, MetricSpec]) -> list[ColumnSpec]:
    labels = {
        "requests_per_100k": "Requests per 100k",
        "parent_issues_per_100k": "Parent issues per 100k",
        "requests_per_sqmi": "Requests per sq mi",
        "parent_issues_per_sqmi": "Parent issues per sq mi",
    }
    return [ColumnSpec(name, labels.get(name, name), RATIO, spec) for name, spec in metrics.items()]


@dataclass(frozen=True)
class EnrichedDataset:
    """Normalized + joined requests. Immutable input to every aggregation call."""

    frame: pd.DataFrame
    normalize: NormalizeResult
    join: JoinResult


def prepare_dataset(
    requests: Iterable[Mapping[str, Any]],
    areas: Iterable[Mapping[str, Any]],
    population: Iterable[Mapping[str, Any]],
    *,
    excluded_types: Iterable[str] | None = None,
) -> EnrichedDataset:
    excluded = settings.excluded_request_types if excluded_types is None else tuple(excluded_types)
    norm = normalize_requests(requests, excluded)
    joined = join_dimensions(norm.frame, areas, population)
    return EnrichedDataset(frame=joined.frame, normalize=norm, join=joined)


class ReportService:
    """
    Report sections computed from one EnrichedDataset.
    Every section re-aggregates from the enriched frame; nothing is cached between sections.
    """

    def __init__(self, dataset: EnrichedDataset, *, metrics: Mapping[str, MetricSpec] | None = None) -> None:
        self.dataset = dataset
        self.metrics = dict(DEFAULT_METRICS if metrics is None else metrics)

    def _derived(self, group_by: list[str]) -> DerivedResult:
        rows = aggregate(self.dataset.frame, group_by)
        return derive_metrics(rows, self.metrics, key_fields=group_by)

    def area_summary(self) -> SummaryTable:
        columns = [ColumnSpec(AREA, "Area", FIRST), *_count_columns(), *_denominator_columns(), *_metric_columns(self.metrics)]
        derived = self._derived([AREA])
        sort_by = "requests_per_100k" if "requests_per_100k" in self.metrics else "total_requests"
        ranked = rank_rows(derived.frame, RankSpec(sort_by=sort_by, tie_break=(AREA,)))
        return SummaryTable(
            key="areas",
            title="Requests by area",
            columns=columns,
            rows=frame_to_records(ranked, columns),
            meta={"division_by_zero": [i.to_dict() for i in derived.issues]},
        )

    def type_summary(self, min_total: int | None = None) -> SummaryTable:
        min_total = settings.min_total_requests if min_total is None else int(min_total)
        columns = [ColumnSpec(TYPE, "Request type", FIRST), *_count_columns()]
        rows = aggregate(self.dataset.frame, [TYPE])
        ranked = rank_rows(rows, RankSpec(sort_by="total_requests", min_total=min_total, tie_break=(TYPE,)))
        return SummaryTable(
            key="types",
            title="Request types",
            columns=columns,
            rows=frame_to_records(ranked, columns),
            meta={"min_total": min_total},
        )

    def top_types_by_area(self, top_n: int | None = None, min_total: int | None = None) -> SummaryTable:
        top_n = settings.top_n_per_area if top_n is None else int(top_n)
        if top_n < 1:
            raise ValueError("top_n must be >= 1")
        columns = [
            ColumnSpec(AREA, "Area", FIRST),
            ColumnSpec("rank", "Rank", NONE),
            ColumnSpec(TYPE, "Request type", NONE),
            *_count_columns(),
            *_denominator_columns(),
            *_metric_columns(self.metrics),
        ]
        derived = self._derived([AREA, TYPE])
        spec = RankSpec(
            sort_by="total_requests",
            min_total=min_total,
            partition_by=(AREA,),
            top_n=top_n,
            tie_break=(TYPE,),
        )
        ranked = rank_rows(derived.frame, spec)
        return SummaryTable(
            key="top_types",
            title=f"Top {top_n} request types per area",
            columns=columns,
            rows=frame_to_records(ranked, columns),
            meta={"top_n": top_n, "min_total": min_total},
        )

    def area_type_table(self, expanded: Iterable[str] | bool = ()) -> SummaryTable:
        """Interactive area -> request type table. Group rows are re-derived from the visible children."""
        columns = [
            ColumnSpec(AREA, "Area", FIRST),
            ColumnSpec(TYPE, "Request type", NONE),
            *_count_columns(),
            *_denominator_columns(),
            *_metric_columns(self.metrics),
        ]
        derived = self._derived([AREA, TYPE])
        ordered = rank_rows(
            derived.frame,
            RankSpec(sort_by="total_requests", tie_break=(TYPE,), final_sort=((AREA, True), ("total_requests", False), (TYPE, True))),
        )
        rows = frame_to_records(ordered, columns)
        return SummaryTable(
            key="area_types",
            title="Requests by area and type",
            columns=columns,
            rows=rows,
            group_by=AREA,
            tree=build_tree(rows, AREA, columns, expanded),
            meta={"division_by_zero": [i.to_dict() for i in derived.issues]},
        )

    def quality(self) -> dict:
        derived = self._derived([AREA])
        return {
            "normalize": self.dataset.normalize.counts(),
            "join": self.dataset.join.counts(),
            "malformed_samples": [e.reason for e in self.dataset.normalize.malformed[:20]],
            "division_by_zero": [i.to_dict() for i in derived.issues],
        }
