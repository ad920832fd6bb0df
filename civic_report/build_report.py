#!/usr/bin/env python3
from __future__ import annotations

import sys
from pathlib import Path


def main() -> int:
    if len(sys.argv) < 2:
        print("Usage: python civic_report/build_report.py <requests_file> [output_pdf]")
        return 2

    requests_path = sys.argv[1]
    output_pdf = sys.argv[2] if len(sys.argv) >= 3 else None

    # Import from backend package (works regardless of current working directory)
    repo_root = Path(__file__).resolve().parent
    sys.path.insert(0, str((repo_root / "backend").resolve()))
    from config import settings  # type: ignore
    from errors import InconsistentDenominator  # type: ignore
    from services.data_service import (  # type: ignore
        AREA_COLUMNS,
        POPULATION_COLUMNS,
        REQUEST_COLUMNS,
        load_table_file,
        records_from_frame,
    )
    from services.render import render_pdf, render_text  # type: ignore
    from services.report_service import ReportService, prepare_dataset  # type: ignore

    ref = Path(settings.data_reference_dir)
    requests = records_from_frame(load_table_file(requests_path), REQUEST_COLUMNS, required=("request_type", "area_key"))
    areas = records_from_frame(load_table_file(ref / settings.areas_file), AREA_COLUMNS, required=tuple(AREA_COLUMNS))
    population = records_from_frame(
        load_table_file(ref / settings.population_file), POPULATION_COLUMNS, required=tuple(POPULATION_COLUMNS)
    )

    svc = ReportService(prepare_dataset(requests, areas, population))
    try:
        tables = [svc.area_summary(), svc.type_summary(), svc.top_types_by_area()]
    except InconsistentDenominator as e:
        print(f"[PIPELINE] Report aborted: grouping={e.grouping} field={e.field} group={e.group!r}")
        return 1

    for t in tables:
        print(render_text(t))
        print()
    q = svc.quality()
    print(f"normalize={q['normalize']}")
    join_counts = {k: v for k, v in q["join"].items() if not k.startswith("unmatched")}
    print(f"join={join_counts}")

    if output_pdf:
        Path(output_pdf).write_bytes(render_pdf(*tables, title=settings.app_name))
        print(f"[PIPELINE] Wrote PDF report to: {output_pdf}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
