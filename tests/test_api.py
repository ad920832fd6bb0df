"""
HTTP surface: ingest the bundled sample files, then read every report.
"""
import pytest


@pytest.fixture
def loaded(client):
    r = client.post("/api/data/ingest")
    assert r.status_code == 200
    return client


class TestDataEndpoints:
    def test_health(self, client):
        assert client.get("/healthz").json() == {"status": "ok"}

    def test_ingest_then_status(self, loaded):
        body = loaded.get("/api/data/status").json()
        assert body["counts"] == {"service_requests": 12, "areas": 3, "area_population": 3}
        assert "Informational" in body["excluded_request_types"]


class TestReportEndpoints:
    def test_areas_sorted_by_rate(self, loaded):
        body = loaded.get("/api/reports/areas").json()
        assert [r["area_name"] for r in body["rows"]] == ["Manhattan CD 1", "Manhattan CD 2", "Brooklyn CD 1"]
        assert body["rows"][0]["requests_per_100k"] == pytest.approx(3 / 63383 * 100000)
        assert {c["name"]: c["aggregate"] for c in body["columns"]}["estimated_population"] == "max"

    def test_default_type_threshold_hides_small_sample(self, loaded):
        body = loaded.get("/api/reports/types").json()
        assert body["rows"] == []
        assert body["meta"]["min_total"] == 10000

    def test_types_with_explicit_threshold(self, loaded):
        body = loaded.get("/api/reports/types", params={"min_total": 2}).json()
        assert [(r["request_type"], r["total_requests"]) for r in body["rows"]] == [
            ("Heat/Hot Water", 4),
            ("Illegal Parking", 2),
            ("Street Condition", 2),
        ]

    def test_negative_threshold_is_rejected(self, loaded):
        assert loaded.get("/api/reports/types", params={"min_total": -1}).status_code == 400

    def test_top_types(self, loaded):
        body = loaded.get("/api/reports/top-types", params={"top_n": 1}).json()
        got = [(r["area_name"], r["rank"], r["request_type"]) for r in body["rows"]]
        assert got == [
            ("Brooklyn CD 1", 1, "Illegal Parking"),
            ("Manhattan CD 1", 1, "Street Condition"),
            ("Manhattan CD 2", 1, "Heat/Hot Water"),
        ]

    def test_top_types_rejects_zero(self, loaded):
        assert loaded.get("/api/reports/top-types", params={"top_n": 0}).status_code == 400

    def test_area_types_tree(self, loaded):
        body = loaded.get("/api/reports/area-types", params={"expanded": "Manhattan CD 2"}).json()
        tree = body["tree"]
        headers = [t for t in tree if t["level"] == 0]
        assert [h["group"] for h in headers] == ["Brooklyn CD 1", "Manhattan CD 1", "Manhattan CD 2"]
        children = [t for t in tree if t["level"] == 1]
        assert {c["group"] for c in children} == {"Manhattan CD 2"}
        assert headers[2]["values"]["total_requests"] == 4
        assert headers[2]["values"]["parent_issues"] == 2

    def test_quality(self, loaded):
        body = loaded.get("/api/reports/quality").json()
        assert body["join"]["unmatched_area_keys"] == ["999"]
        assert body["normalize"]["excluded"] == 2

    def test_pdf(self, loaded):
        r = loaded.get("/api/reports/areas.pdf")
        assert r.status_code == 200
        assert r.headers["content-type"] == "application/pdf"
        assert r.content.startswith(b"%PDF")


class TestReaggregateEndpoint:
    COLUMNS = [
        {"name": "total_requests", "aggregate": "sum"},
        {"name": "estimated_population", "aggregate": "max"},
        {
            "name": "requests_per_100k",
            "aggregate": "ratio",
            "numerator": "total_requests",
            "denominator": "estimated_population",
            "scale": 100000,
        },
    ]

    def test_collapse_visible_children(self, client):
        rows = [
            {"total_requests": 120, "estimated_population": 2700000},
            {"total_requests": 80, "estimated_population": 2700000},
        ]
        body = client.post("/api/reports/reaggregate", json={"columns": self.COLUMNS, "rows": rows}).json()
        assert body["child_count"] == 2
        assert body["row"]["total_requests"] == 200
        assert body["row"]["requests_per_100k"] == pytest.approx(7.4074, rel=1e-4)

    def test_inconsistent_denominator_is_422(self, client):
        rows = [
            {"total_requests": 1, "estimated_population": 100},
            {"total_requests": 1, "estimated_population": 200},
        ]
        r = client.post(
            "/api/reports/reaggregate",
            json={"columns": self.COLUMNS, "rows": rows, "group_by": "area_name", "group": "Area B"},
        )
        assert r.status_code == 422
        detail = r.json()["detail"]
        assert detail["field"] == "estimated_population"
        assert detail["grouping"] == ["area_name"]

    def test_non_numeric_child_value_is_400(self, client):
        rows = [{"total_requests": "three", "estimated_population": 100}]
        r = client.post("/api/reports/reaggregate", json={"columns": self.COLUMNS, "rows": rows})
        assert r.status_code == 400

    def test_unknown_directive_is_400(self, client):
        r = client.post("/api/reports/reaggregate", json={"columns": [{"name": "x", "aggregate": "avg"}], "rows": []})
        assert r.status_code == 400
