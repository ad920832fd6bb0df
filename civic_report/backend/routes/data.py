from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from config import settings
from database import get_db
from services.data_service import DataService


router = APIRouter(prefix="/api/data", tags=["data"])


@router.post("/ingest")
def ingest(db: Session = Depends(get_db)):
    """
    Load the configured reference files (areas, population) and the request dump into the database.
    Safe to re-run: rows are upserted on their natural keys.
    """
    try:
        results = DataService().ingest_configured(db)
    except FileNotFoundError as e:
        raise HTTPException(status_code=404, detail=f"Input file not found: {e}") from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return {"results": [r.to_dict() for r in results]}


@router.get("/status")
def status(db: Session = Depends(get_db)):
    return {
        "counts": DataService().table_counts(db),
        "excluded_request_types": list(settings.excluded_request_types),
        "min_total_requests": settings.min_total_requests,
        "top_n_per_area": settings.top_n_per_area,
    }
