"""Error taxonomy for the report pipeline.

Row-level errors (MalformedRecord, JoinMismatch, DivisionByZero) are recovered where they occur and
counted in the data-quality report. InconsistentDenominator is structural and aborts the table.
"""
from __future__ import annotations

from typing import Any


class ReportError(Exception):
    pass


class MalformedRecord(ReportError):
    def __init__(self, reason: str, record: dict | None = None) -> None:
        super().__init__(f"Malformed record: {reason}")
        self.reason = reason
        self.record = record or {}


class JoinMismatch(ReportError):
    """A request whose area key or area name has no reference entry."""

    def __init__(self, kind: str, key: Any) -> None:
        super().__init__(f"No {kind} reference entry for {key!r}")
        self.kind = kind  # "area" | "population"
        self.key = key


class InconsistentDenominator(ReportError):
    def __init__(self, grouping: list[str] | tuple[str, ...], field: str, values: list[Any], group: Any = None) -> None:
        self.grouping = list(grouping)
        self.field = field
        self.values = list(values)
        self.group = group
        where = f" (group {group!r})" if group is not None else ""
        super().__init__(
            f"Field {field!r} is not constant within grouping {self.grouping}{where}: "
            f"found values {self.values[:5]}"
        )

    def to_dict(self) -> dict:
        return {
            "error": "InconsistentDenominator",
            "grouping": self.grouping,
            "field": self.field,
            "group": self.group if self.group is None else str(self.group),
            "values": [str(v) for v in self.values[:5]],
        }


class DivisionByZero(ReportError):
    """Per-cell, non-fatal. The cell value is rendered as null."""

    def __init__(self, metric: str, denominator_field: str, keys: dict | None = None) -> None:
        super().__init__(f"{metric}: zero {denominator_field} for {keys or {}}")
        self.metric = metric
        self.denominator_field = denominator_field
        self.keys = keys or {}

    def to_dict(self) -> dict:
        keys = {k: (v if v is None or isinstance(v, (str, int, float)) else str(v)) for k, v in self.keys.items()}
        return {"metric": self.metric, "denominator": self.denominator_field, "keys": keys}
