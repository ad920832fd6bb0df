"""
Parent-row re-aggregation for hierarchical tables.

A collapsed group row is a pure function of its visible child rows:
- sum:   counts add up across children
- max:   per-area denominators (population, land area) are the same on every child; they are
         checked for agreement and taken once, never summed
- ratio: rates are recomputed from the re-aggregated numerator and the representative denominator,
         never averaged from the children's own rates
- first: label columns shared by the group
- none:  left empty on the group row

The same collapse() runs for the initial render and for every expand/collapse request.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

from errors import InconsistentDenominator
from services.metrics import MetricSpec, derive


SUM = "sum"
MAX = "max"
RATIO = "ratio"
FIRST = "first"
NONE = "none"

DIRECTIVES = (SUM, MAX, RATIO, FIRST, NONE)


@dataclass(frozen=True)
class ColumnSpec:
    name: str
    label: str | None = None
    aggregate: str = SUM
    metric: MetricSpec | None = None

    def __post_init__(self) -> None:
        if self.aggregate not in DIRECTIVES:
            raise ValueError(f"Unknown aggregation directive {self.aggregate!r} for column {self.name!r}")
        if self.aggregate == RATIO and self.metric is None:
            raise ValueError(f"Column {self.name!r} uses 'ratio' but has no metric definition")

    def to_dict(self) -> dict:
        d = {"name": self.name, "label": self.label or self.name, "aggregate": self.aggregate}
        if self.metric is not None:
            d["numerator"] = self.metric.numerator
            d["denominator"] = self.metric.denominator
            d["scale"] = self.metric.scale
        return d

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "ColumnSpec":
        metric = None
        if d.get("aggregate") == RATIO:
            if not d.get("numerator") or not d.get("denominator"):
                raise ValueError(f"Ratio column {d.get('name')!r} needs numerator and denominator")
            metric = MetricSpec(str(d["numerator"]), str(d["denominator"]), float(d.get("scale") or 1))
        return cls(name=str(d["name"]), label=d.get("label"), aggregate=str(d.get("aggregate", SUM)), metric=metric)


def to_python(v: Any) -> Any:
    # numpy scalars -> builtins; NaN -> None (JSON-safe null sentinel)
    if hasattr(v, "item"):
        v = v.item()
    if isinstance(v, float) and math.isnan(v):
        return None
    return v


def _present(values: Iterable[Any]) -> list[Any]:
    return [v for v in (to_python(x) for x in values) if v is not None]


def _numeric(values: list[Any], column: str) -> list[Any]:
    # Rows posted by a client may carry numbers as text ("3", "1,200").
    out: list[Any] = []
    for v in values:
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            try:
                n = float(str(v).replace(",", ""))
            except ValueError as e:
                raise ValueError(f"Column {column!r} needs numeric values, got {v!r}") from e
            v = int(n) if n.is_integer() else n
        out.append(v)
    return out


def _representative(values: list[Any], column: str, grouping: Sequence[str], group: Any) -> Any:
    distinct: list[Any] = []
    for v in values:
        if v not in distinct:
            distinct.append(v)
    if len(distinct) > 1:
        raise InconsistentDenominator(grouping, column, distinct, group=group)
    return distinct[0] if distinct else None


def collapse(
    children: Sequence[Mapping[str, Any]],
    columns: Sequence[ColumnSpec],
    *,
    grouping: Sequence[str] = (),
    group: Any = None,
) -> dict:
    """Re-derive a group row from the visible children only. No access to the ungrouped data."""
    row: dict[str, Any] = {}
    by_name = {c.name: c for c in columns}

    for col in columns:
        if col.aggregate == RATIO:
            continue
        values = _present(ch.get(col.name) for ch in children)
        if col.aggregate == SUM:
            row[col.name] = sum(_numeric(values, col.name)) if values else 0
        elif col.aggregate == MAX:
            row[col.name] = _representative(_numeric(values, col.name), col.name, grouping, group)
        elif col.aggregate == FIRST:
            row[col.name] = values[0] if values else None
        else:
            row[col.name] = None

    for col in columns:
        if col.aggregate != RATIO:
            continue
        m = col.metric
        for dep in (m.numerator, m.denominator):
            if dep not in by_name or by_name[dep].aggregate == RATIO:
                raise ValueError(f"Ratio column {col.name!r} depends on {dep!r}, which is not a re-aggregated column")
        row[col.name] = to_python(derive(row[m.numerator], row[m.denominator], m.scale))

    return row


@dataclass(frozen=True)
class TreeRow:
    level: int
    group: Any
    values: dict
    expanded: bool = False
    child_count: int = 0

    def to_dict(self) -> dict:
        return {
            "level": self.level,
            "group": to_python(self.group),
            "expanded": self.expanded,
            "child_count": self.child_count,
            "values": self.values,
        }


def build_tree(
    rows: Sequence[Mapping[str, Any]],
    group_by: str,
    columns: Sequence[ColumnSpec],
    expanded: Iterable[Any] | bool = (),
) -> list[TreeRow]:
    """
    Visible rows of an interactive table grouped on one column.
    Groups keep first-appearance order; every group header comes from collapse().
    """
    groups: dict[Any, list[dict]] = {}
    for r in rows:
        clean = {c.name: to_python(r.get(c.name)) for c in columns}
        groups.setdefault(clean.get(group_by), []).append(clean)

    open_all = expanded is True
    open_set = set() if isinstance(expanded, bool) else {str(g) for g in expanded}

    out: list[TreeRow] = []
    for g, children in groups.items():
        is_open = open_all or str(g) in open_set
        header = collapse(children, columns, grouping=[group_by], group=g)
        out.append(TreeRow(level=0, group=g, values=header, expanded=is_open, child_count=len(children)))
        if is_open:
            out.extend(TreeRow(level=1, group=g, values=ch) for ch in children)
    return out
