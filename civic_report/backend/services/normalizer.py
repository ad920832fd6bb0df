from __future__ import annotations

import datetime as dt
import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

import pandas as pd

from errors import MalformedRecord


CANONICAL_COLUMNS = ["request_id", "grouping_id", "parent_id", "request_type", "created_at", "area_key"]

# Requests with no type still count; they are grouped under a stable label instead of a null key.
UNSPECIFIED_TYPE = "Unspecified"

_NULL_TOKENS = ("", "nan", "nat", "none", "null", "<na>")


def clean_value(v: Any) -> str | None:
    """
    Key-ish cell -> trimmed string, with every flavour of "missing" mapped to None.
    Whole floats are printed without the trailing .0 (CSV readers turn 101 into 101.0 when a column has gaps).
    """
    if v is None:
        return None
    if isinstance(v, float):
        if math.isnan(v):
            return None
        if v.is_integer():
            v = int(v)
    t = str(v).strip()
    if t.lower() in _NULL_TOKENS:
        return None
    return t


def _parse_created(v: Any) -> dt.datetime | None:
    if v is None:
        return None
    if isinstance(v, dt.datetime):
        return v
    t = clean_value(v)
    if t is None:
        return None
    ts = pd.to_datetime(t, errors="coerce")
    if pd.isna(ts):
        return None
    return ts.to_pydatetime()


def normalize_record(raw: Mapping[str, Any], excluded_types: Iterable[str] = ()) -> dict | None:
    """
    One raw record -> canonical request dict, or None when its request_type is excluded.
    Raises MalformedRecord when request_id is missing.
    """
    request_id = clean_value(raw.get("request_id"))
    if request_id is None:
        raise MalformedRecord("missing request_id", dict(raw))

    request_type = clean_value(raw.get("request_type"))
    excluded = {str(t).strip().lower() for t in excluded_types}
    if request_type is not None and request_type.lower() in excluded:
        return None

    parent_id = clean_value(raw.get("parent_id"))
    return {
        "request_id": request_id,
        "grouping_id": parent_id or request_id,
        "parent_id": parent_id,
        "request_type": request_type or UNSPECIFIED_TYPE,
        "created_at": _parse_created(raw.get("created_at")),
        "area_key": clean_value(raw.get("area_key")),
    }


@dataclass(frozen=True)
class NormalizeResult:
    frame: pd.DataFrame
    input_rows: int
    excluded: int
    duplicates: int
    malformed: list[MalformedRecord] = field(default_factory=list)

    @property
    def kept(self) -> int:
        return int(len(self.frame))

    def counts(self) -> dict:
        return {
            "input_rows": self.input_rows,
            "kept": self.kept,
            "excluded": self.excluded,
            "duplicates": self.duplicates,
            "malformed": len(self.malformed),
        }


def normalize_requests(records: Iterable[Mapping[str, Any]], excluded_types: Iterable[str] = ()) -> NormalizeResult:
    excluded_types = tuple(excluded_types)
    rows: list[dict] = []
    seen: set[str] = set()
    malformed: list[MalformedRecord] = []
    total = excluded = duplicates = 0

    for raw in records:
        total += 1
        try:
            rec = normalize_record(raw, excluded_types)
        except MalformedRecord as e:
            malformed.append(e)
            continue
        if rec is None:
            excluded += 1
            continue
        # Keep the first occurrence of a request_id (input order).
        if rec["request_id"] in seen:
            duplicates += 1
            continue
        seen.add(rec["request_id"])
        rows.append(rec)

    frame = pd.DataFrame(rows, columns=CANONICAL_COLUMNS)
    frame["created_at"] = pd.to_datetime(frame["created_at"], errors="coerce")
    # A missing parent stays None (string dtypes would store NaN).
    frame["parent_id"] = frame["parent_id"].astype(object).where(frame["parent_id"].notna(), None)

    if malformed:
        print(f"[PIPELINE] Dropped {len(malformed)} malformed records (missing request_id)")
    print(
        f"[PIPELINE] Normalized requests: input={total} kept={len(frame)} "
        f"excluded={excluded} duplicates={duplicates}"
    )
    return NormalizeResult(
        frame=frame,
        input_rows=total,
        excluded=excluded,
        duplicates=duplicates,
        malformed=malformed,
    )
