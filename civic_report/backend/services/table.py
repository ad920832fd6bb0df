from __future__ import annotations

from dataclasses import dataclass, field

import pandas as pd

from services.reaggregator import ColumnSpec, TreeRow, to_python


def frame_to_records(frame: pd.DataFrame, columns: list[ColumnSpec]) -> list[dict]:
    names = [c.name for c in columns]
    return [{n: to_python(r[n]) for n in names} for _, r in frame.iterrows()]


@dataclass(frozen=True)
class SummaryTable:
    """
    Display-ready table: ordered rows plus per-column aggregation directives.
    The directives are the contract an interactive renderer honours when it groups rows.
    """

    key: str
    title: str
    columns: list[ColumnSpec]
    rows: list[dict]
    group_by: str | None = None
    tree: list[TreeRow] | None = None
    meta: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        d = {
            "key": self.key,
            "title": self.title,
            "columns": [c.to_dict() for c in self.columns],
            "rows": self.rows,
            "row_count": len(self.rows),
            "meta": self.meta,
        }
        if self.group_by is not None:
            d["group_by"] = self.group_by
        if self.tree is not None:
            d["tree"] = [t.to_dict() for t in self.tree]
        return d

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.rows, columns=[c.name for c in self.columns])
