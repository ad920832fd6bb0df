from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from config import settings
from database import get_db
from errors import InconsistentDenominator
from services.data_service import DataService
from services.reaggregator import ColumnSpec, collapse
from services.render import render_pdf
from services.report_service import EnrichedDataset, ReportService, prepare_dataset


router = APIRouter(prefix="/api/reports", tags=["reports"])


class ColumnDirective(BaseModel):
    name: str
    label: str | None = None
    aggregate: str = "sum"
    numerator: str | None = None
    denominator: str | None = None
    scale: float = 1.0


class ReaggregateRequest(BaseModel):
    columns: list[ColumnDirective]
    rows: list[dict[str, Any]] = Field(default_factory=list)
    group_by: str | None = None
    group: Any = None


def _dataset(db: Session) -> EnrichedDataset:
    # One synchronous load per request; the pipeline works on the in-memory copy.
    svc = DataService()
    return prepare_dataset(svc.load_requests(db), svc.load_areas(db), svc.load_population(db))


def _svc(db: Session) -> ReportService:
    return ReportService(_dataset(db))


def _abort_table(e: InconsistentDenominator) -> HTTPException:
    return HTTPException(status_code=422, detail=e.to_dict())


def _split(value: str | None) -> list[str]:
    return [v.strip() for v in (value or "").split(",") if v.strip()]


@router.get("/areas")
def areas(db: Session = Depends(get_db)):
    try:
        return _svc(db).area_summary().to_dict()
    except InconsistentDenominator as e:
        raise _abort_table(e) from e


@router.get("/types")
def types(db: Session = Depends(get_db), min_total: int | None = None):
    if min_total is not None and min_total < 0:
        raise HTTPException(status_code=400, detail="min_total must be >= 0")
    return _svc(db).type_summary(min_total=min_total).to_dict()


@router.get("/top-types")
def top_types(db: Session = Depends(get_db), top_n: int | None = None, min_total: int | None = None):
    try:
        return _svc(db).top_types_by_area(top_n=top_n, min_total=min_total).to_dict()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except InconsistentDenominator as e:
        raise _abort_table(e) from e


@router.get("/area-types")
def area_types(db: Session = Depends(get_db), expanded: str | None = None, expand_all: bool = False):
    """
    Interactive area -> request type table.
    expanded: comma-separated area names whose request-type rows should be visible.
    """
    try:
        return _svc(db).area_type_table(expanded=True if expand_all else _split(expanded)).to_dict()
    except InconsistentDenominator as e:
        raise _abort_table(e) from e


@router.post("/reaggregate")
def reaggregate(req: ReaggregateRequest):
    """
    Collapse the visible child rows into one group row.
    Same function the server uses for its own group rows, so both paths agree.
    """
    try:
        columns = [ColumnSpec.from_dict(c.model_dump()) for c in req.columns]
    except (KeyError, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid column directives: {e}") from e
    grouping = [req.group_by] if req.group_by else []
    try:
        row = collapse(req.rows, columns, grouping=grouping, group=req.group)
    except InconsistentDenominator as e:
        raise _abort_table(e) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return {"row": row, "child_count": len(req.rows)}


@router.get("/quality")
def quality(db: Session = Depends(get_db)):
    try:
        return _svc(db).quality()
    except InconsistentDenominator as e:
        raise _abort_table(e) from e


@router.get("/areas.pdf")
def areas_pdf(db: Session = Depends(get_db)):
    svc = _svc(db)
    try:
        pdf = render_pdf(svc.area_summary(), svc.top_types_by_area(), title=settings.app_name)
    except InconsistentDenominator as e:
        raise _abort_table(e) from e
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": "attachment; filename=service_request_report.pdf"},
    )
