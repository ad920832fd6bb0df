from __future__ import annotations

import datetime as dt
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pandas as pd
from sqlalchemy import func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from config import settings
from models import Area, AreaPopulation, ServiceRequest
from services.normalizer import clean_value


# Canonical field -> accepted header spellings (normalized: lowercase, non-alphanumerics as "_").
REQUEST_COLUMNS = {
    "request_id": ("request_id", "unique_key", "service_request_id", "sr_number", "id"),
    "parent_id": ("parent_id", "parent_request_id", "parent_sr_number", "parent"),
    "request_type": ("request_type", "complaint_type", "service_name", "type"),
    "created_at": ("created_at", "created_date", "requested_datetime", "date"),
    "area_key": ("area_key", "community_district", "district", "boro_cd", "ward"),
}
AREA_COLUMNS = {
    "area_key": ("area_key", "community_district", "district", "boro_cd", "ward"),
    "area_name": ("area_name", "name", "district_name", "ward_name"),
    "area_sq_mi": ("area_sq_mi", "sq_mi", "square_miles", "land_area_sq_mi"),
}
POPULATION_COLUMNS = {
    "area_name": ("area_name", "name", "district_name", "ward_name"),
    "estimated_population": ("estimated_population", "population", "pop_estimate", "total_population"),
}


def _norm_col(c: Any) -> str:
    s = str(c or "").strip().lower()
    s = re.sub(r"[^a-z0-9]+", "_", s)
    return s.strip("_")


def _pick(norm_map: dict[str, str], *candidates: str) -> str | None:
    for c in candidates:
        if c in norm_map:
            return norm_map[c]
    return None


def _to_number(v: Any) -> float | None:
    t = clean_value(v)
    if t is None:
        return None
    n = pd.to_numeric(t.replace(",", ""), errors="coerce")
    return None if pd.isna(n) else float(n)


def load_table_file(path: str | Path) -> pd.DataFrame:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(str(p))
    if p.suffix.lower() in (".xlsx", ".xls"):
        return pd.read_excel(p, dtype=str)
    return pd.read_csv(p, dtype=str)


def records_from_frame(df: pd.DataFrame, spec: dict[str, tuple[str, ...]], *, required: tuple[str, ...] = ()) -> list[dict]:
    """
    Rename source headers to canonical field names and return plain records.
    Fields the source lacks come back as None; a missing required header is a ValueError.
    """
    norm_map = {_norm_col(c): c for c in df.columns}
    picked = {field: _pick(norm_map, *names) for field, names in spec.items()}
    missing = [f for f in required if picked.get(f) is None]
    if missing:
        raise ValueError(f"Missing required column(s) {missing}. Found columns: {list(df.columns)[:30]}")
    out = []
    for row in df.to_dict(orient="records"):
        out.append({field: (row.get(col) if col is not None else None) for field, col in picked.items()})
    return out


@dataclass(frozen=True)
class IngestResult:
    table: str
    source: str
    upserted: int
    skipped: int

    def to_dict(self) -> dict:
        return {"table": self.table, "source": self.source, "upserted": self.upserted, "skipped": self.skipped}


class DataService:
    """
    Files (CSV/Excel) -> reference + request tables.
    One synchronous load before the pipeline runs; the pipeline itself never touches the database.
    """

    def _upsert(self, db: Session, model, rows: list[dict], key: str) -> None:
        if not rows:
            return
        if db.get_bind().dialect.name == "sqlite":
            # Idempotent upsert on the natural key (re-running an ingest never duplicates rows).
            for start in range(0, len(rows), 500):
                chunk = rows[start : start + 500]
                stmt = sqlite_insert(model).values(chunk)
                update_cols = {c: getattr(stmt.excluded, c) for c in chunk[0].keys() if c != key}
                stmt = stmt.on_conflict_do_update(index_elements=[key], set_=update_cols)
                db.execute(stmt)
        else:
            for r in rows:
                db.merge(model(**r))
        db.commit()

    def ingest_requests(self, db: Session, path: str | Path) -> IngestResult:
        df = load_table_file(path)
        records = records_from_frame(df, REQUEST_COLUMNS, required=("request_id", "request_type", "area_key"))
        source = Path(path).name
        rows: dict[str, dict] = {}
        skipped = 0
        for rec in records:
            rid = clean_value(rec["request_id"])
            if rid is None:
                skipped += 1
                continue
            created = pd.to_datetime(clean_value(rec["created_at"]), errors="coerce")
            rows.setdefault(
                rid,
                {
                    "request_id": rid,
                    "parent_id": clean_value(rec["parent_id"]),
                    "request_type": clean_value(rec["request_type"]),
                    "created_at": None if pd.isna(created) else created.to_pydatetime(),
                    "area_key": clean_value(rec["area_key"]),
                    "source_filename": source,
                    "ingested_at": dt.datetime.utcnow(),
                },
            )
        self._upsert(db, ServiceRequest, list(rows.values()), "request_id")
        print(f"[INGEST] {source}: upserted={len(rows)} skipped_missing_id={skipped}")
        return IngestResult("service_requests", source, len(rows), skipped)

    def ingest_areas(self, db: Session, path: str | Path) -> IngestResult:
        df = load_table_file(path)
        records = records_from_frame(df, AREA_COLUMNS, required=tuple(AREA_COLUMNS))
        rows = []
        skipped = 0
        for rec in records:
            key = clean_value(rec["area_key"])
            name = clean_value(rec["area_name"])
            sq_mi = _to_number(rec["area_sq_mi"])
            if key is None or name is None or sq_mi is None:
                skipped += 1
                continue
            rows.append({"area_key": key, "area_name": name, "area_sq_mi": sq_mi})
        self._upsert(db, Area, rows, "area_key")
        print(f"[INGEST] {Path(path).name}: areas upserted={len(rows)} skipped={skipped}")
        return IngestResult("areas", Path(path).name, len(rows), skipped)

    def ingest_population(self, db: Session, path: str | Path) -> IngestResult:
        df = load_table_file(path)
        records = records_from_frame(df, POPULATION_COLUMNS, required=tuple(POPULATION_COLUMNS))
        rows = []
        skipped = 0
        for rec in records:
            name = clean_value(rec["area_name"])
            pop = _to_number(rec["estimated_population"])
            if name is None or pop is None:
                skipped += 1
                continue
            rows.append({"area_name": name, "estimated_population": int(pop)})
        self._upsert(db, AreaPopulation, rows, "area_name")
        print(f"[INGEST] {Path(path).name}: population upserted={len(rows)} skipped={skipped}")
        return IngestResult("area_population", Path(path).name, len(rows), skipped)

    def ingest_configured(self, db: Session) -> list[IngestResult]:
        ref = Path(settings.data_reference_dir)
        raw = Path(settings.data_raw_dir)
        print(f"[INGEST] Reading reference data from: {ref}")
        print(f"[INGEST] Reading requests from: {raw / settings.requests_file}")
        return [
            self.ingest_areas(db, ref / settings.areas_file),
            self.ingest_population(db, ref / settings.population_file),
            self.ingest_requests(db, raw / settings.requests_file),
        ]

    def has_any_data(self, db: Session) -> bool:
        return db.scalar(select(ServiceRequest.request_id).limit(1)) is not None

    def table_counts(self, db: Session) -> dict:
        return {
            "service_requests": int(db.scalar(select(func.count()).select_from(ServiceRequest)) or 0),
            "areas": int(db.scalar(select(func.count()).select_from(Area)) or 0),
            "area_population": int(db.scalar(select(func.count()).select_from(AreaPopulation)) or 0),
        }

    def load_requests(self, db: Session) -> list[dict]:
        rows = db.execute(select(ServiceRequest).order_by(ServiceRequest.request_id)).scalars().all()
        return [
            {
                "request_id": r.request_id,
                "parent_id": r.parent_id,
                "request_type": r.request_type,
                "created_at": r.created_at,
                "area_key": r.area_key,
            }
            for r in rows
        ]

    def load_areas(self, db: Session) -> list[dict]:
        rows = db.execute(select(Area).order_by(Area.area_key)).scalars().all()
        return [{"area_key": a.area_key, "area_name": a.area_name, "area_sq_mi": a.area_sq_mi} for a in rows]

    def load_population(self, db: Session) -> list[dict]:
        rows = db.execute(select(AreaPopulation).order_by(AreaPopulation.area_name)).scalars().all()
        return [{"area_name": p.area_name, "estimated_population": p.estimated_population} for p in rows]
