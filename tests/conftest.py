"""
Shared fixtures. The database is pointed at a throwaway SQLite file before any app module is imported.
"""
import os
import tempfile
from pathlib import Path

import pytest

_TMP = Path(tempfile.mkdtemp(prefix="civic_report_tests_"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP / 'test.db'}"
os.environ["INGEST_ON_STARTUP"] = "false"

DATA_DIR = Path(__file__).resolve().parent.parent / "civic_report" / "data"


def make_request(request_id, request_type="Street Condition", area_key="A", parent_id=None, created_at="2024-01-01"):
    return {
        "request_id": request_id,
        "parent_id": parent_id,
        "request_type": request_type,
        "created_at": created_at,
        "area_key": area_key,
    }


@pytest.fixture
def single_area():
    """Area "A": population 1000, 2 square miles."""
    areas = [{"area_key": "A", "area_name": "Area A", "area_sq_mi": 2.0}]
    population = [{"area_name": "Area A", "estimated_population": 1000}]
    return areas, population


@pytest.fixture
def two_areas():
    areas = [
        {"area_key": "A", "area_name": "Area A", "area_sq_mi": 2.0},
        {"area_key": "B", "area_name": "Area B", "area_sq_mi": 4.0},
    ]
    population = [
        {"area_name": "Area A", "estimated_population": 1000},
        {"area_name": "Area B", "estimated_population": 2700000},
    ]
    return areas, population


@pytest.fixture
def client():
    from fastapi.testclient import TestClient
    from main import app

    with TestClient(app) as c:
        yield c
