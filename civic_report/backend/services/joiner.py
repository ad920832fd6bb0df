from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

import pandas as pd

from errors import JoinMismatch
from services.normalizer import clean_value


AREA_COLUMNS = ["area_key", "area_name", "area_sq_mi"]
POPULATION_COLUMNS = ["area_name", "estimated_population"]


def area_frame(areas: Iterable[Mapping[str, Any]]) -> pd.DataFrame:
    """
    Area reference rows -> frame keyed by area_key.
    Duplicate keys are NOT collapsed here: a fan-out must surface in aggregation, not be hidden.
    """
    rows = []
    for a in areas:
        key = clean_value(a.get("area_key"))
        name = clean_value(a.get("area_name"))
        if key is None or name is None:
            raise ValueError(f"Area reference row needs area_key and area_name: {dict(a)}")
        sq_mi = float(a.get("area_sq_mi"))
        if not sq_mi > 0:
            raise ValueError(f"area_sq_mi must be positive for area {key!r}, got {sq_mi}")
        rows.append({"area_key": key, "area_name": name, "area_sq_mi": sq_mi})
    return pd.DataFrame(rows, columns=AREA_COLUMNS)


def population_frame(population: Iterable[Mapping[str, Any]]) -> pd.DataFrame:
    rows = []
    for p in population:
        name = clean_value(p.get("area_name"))
        if name is None:
            raise ValueError(f"Population reference row needs area_name: {dict(p)}")
        est = int(float(p.get("estimated_population")))
        if est < 0:
            raise ValueError(f"estimated_population must be non-negative for {name!r}, got {est}")
        rows.append({"area_name": name, "estimated_population": est})
    return pd.DataFrame(rows, columns=POPULATION_COLUMNS)


@dataclass(frozen=True)
class JoinResult:
    frame: pd.DataFrame
    area_misses: int
    population_misses: int
    unmatched_area_keys: list[str] = field(default_factory=list)
    unmatched_area_names: list[str] = field(default_factory=list)

    @property
    def mismatches(self) -> list[JoinMismatch]:
        out = [JoinMismatch("area", k) for k in self.unmatched_area_keys]
        out += [JoinMismatch("population", n) for n in self.unmatched_area_names]
        return out

    def counts(self) -> dict:
        return {
            "joined": int(len(self.frame)),
            "area_misses": self.area_misses,
            "population_misses": self.population_misses,
            "unmatched_area_keys": list(self.unmatched_area_keys),
            "unmatched_area_names": list(self.unmatched_area_names),
        }


def join_dimensions(
    requests: pd.DataFrame,
    areas: pd.DataFrame | Iterable[Mapping[str, Any]],
    population: pd.DataFrame | Iterable[Mapping[str, Any]],
) -> JoinResult:
    """
    Inner join: requests -> areas (by area_key) -> population (by area_name).
    Unmatched rows are dropped and counted; upstream reference data may legitimately lag.
    """
    areas_df = areas if isinstance(areas, pd.DataFrame) else area_frame(areas)
    pop_df = population if isinstance(population, pd.DataFrame) else population_frame(population)

    step1 = requests.merge(areas_df, on="area_key", how="left", indicator="_area_match")
    area_miss = step1["_area_match"] == "left_only"
    unmatched_keys = sorted({str(k) for k in step1.loc[area_miss, "area_key"].tolist()})
    step1 = step1.loc[~area_miss].drop(columns=["_area_match"])

    step2 = step1.merge(pop_df, on="area_name", how="left", indicator="_pop_match")
    pop_miss = step2["_pop_match"] == "left_only"
    unmatched_names = sorted({str(n) for n in step2.loc[pop_miss, "area_name"].tolist()})
    enriched = step2.loc[~pop_miss].drop(columns=["_pop_match"]).reset_index(drop=True)

    area_misses = int(area_miss.sum())
    population_misses = int(pop_miss.sum())
    if area_misses or population_misses:
        print(
            f"[PIPELINE] Join mismatches: area_misses={area_misses} keys={unmatched_keys[:10]} "
            f"population_misses={population_misses} names={unmatched_names[:10]}"
        )
    print(f"[PIPELINE] Enriched requests: {len(enriched)} of {len(requests)}")
    return JoinResult(
        frame=enriched,
        area_misses=area_misses,
        population_misses=population_misses,
        unmatched_area_keys=unmatched_keys,
        unmatched_area_names=unmatched_names,
    )
