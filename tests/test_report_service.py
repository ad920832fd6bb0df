"""
Report sections end to end: normalize -> join -> aggregate -> derive -> rank -> re-aggregate.
"""
import pytest

from conftest import make_request
from services.report_service import ReportService, prepare_dataset


def _service(raws, areas, population, excluded=()):
    return ReportService(prepare_dataset(raws, areas, population, excluded_types=excluded))


class TestAreaSummary:
    def test_three_requests_two_parent_issues(self, single_area):
        areas, population = single_area
        raws = [
            make_request("R1", parent_id="P1"),
            make_request("R2", parent_id="P1"),
            make_request("R3"),
        ]
        row = _service(raws, areas, population).area_summary().rows[0]
        assert row["total_requests"] == 3
        assert row["parent_issues"] == 2
        assert row["requests_per_100k"] == pytest.approx(300.0)
        assert row["requests_per_sqmi"] == pytest.approx(1.5)
        assert row["parent_issues_per_sqmi"] == pytest.approx(1.0)

    def test_sorted_by_rate_descending(self, two_areas):
        areas, population = two_areas
        raws = [make_request(f"B{i}", area_key="B") for i in range(50)] + [make_request("A1")]
        table = _service(raws, areas, population).area_summary()
        assert [r["area_name"] for r in table.rows] == ["Area A", "Area B"]

    def test_zero_population_is_null_and_reported(self):
        areas = [{"area_key": "Z", "area_name": "Area Z", "area_sq_mi": 1.0}]
        population = [{"area_name": "Area Z", "estimated_population": 0}]
        table = _service([make_request("R1", area_key="Z")], areas, population).area_summary()
        assert table.rows[0]["requests_per_100k"] is None
        assert table.rows[0]["requests_per_sqmi"] == pytest.approx(1.0)
        assert {d["metric"] for d in table.meta["division_by_zero"]} == {"requests_per_100k", "parent_issues_per_100k"}

    def test_excluded_types_never_reach_the_counts(self, single_area):
        areas, population = single_area
        raws = [make_request("R1"), make_request("R2", request_type="Informational")]
        row = _service(raws, areas, population, excluded=["Informational"]).area_summary().rows[0]
        assert row["total_requests"] == 1


class TestTypeSummary:
    def test_threshold_excludes_small_types(self, two_areas):
        areas, population = two_areas
        raws = [make_request(f"H{i}", request_type="Heat") for i in range(5)]
        raws += [make_request(f"W{i}", request_type="Water", area_key="B") for i in range(2)]
        table = _service(raws, areas, population).type_summary(min_total=3)
        assert [r["request_type"] for r in table.rows] == ["Heat"]
        assert table.meta["min_total"] == 3

    def test_type_counts_span_areas(self, two_areas):
        areas, population = two_areas
        raws = [make_request("R1", request_type="Heat"), make_request("R2", request_type="Heat", area_key="B")]
        table = _service(raws, areas, population).type_summary(min_total=0)
        assert table.rows == [{"request_type": "Heat", "total_requests": 2, "parent_issues": 2}]


class TestTopTypesByArea:
    def _raws(self):
        raws = []
        for area, counts in {"A": {"Heat": 5, "Noise": 3, "Water": 3, "Trees": 1}, "B": {"Heat": 2, "Water": 4}}.items():
            for rtype, n in counts.items():
                raws += [make_request(f"{area}-{rtype}-{i}", request_type=rtype, area_key=area) for i in range(n)]
        return raws

    def test_top_n_per_area_with_alphabetical_tie_break(self, two_areas):
        areas, population = two_areas
        table = _service(self._raws(), areas, population).top_types_by_area(top_n=2)
        got = [(r["area_name"], r["rank"], r["request_type"]) for r in table.rows]
        assert got == [
            ("Area A", 1, "Heat"),
            ("Area A", 2, "Noise"),
            ("Area B", 1, "Water"),
            ("Area B", 2, "Heat"),
        ]

    def test_threshold_applies_before_top_n(self, two_areas):
        areas, population = two_areas
        table = _service(self._raws(), areas, population).top_types_by_area(top_n=3, min_total=4)
        got = [(r["area_name"], r["request_type"]) for r in table.rows]
        assert got == [("Area A", "Heat"), ("Area B", "Water")]

    def test_top_n_must_be_positive(self, two_areas):
        areas, population = two_areas
        with pytest.raises(ValueError):
            _service(self._raws(), areas, population).top_types_by_area(top_n=0)


class TestAreaTypeTable:
    def _service(self, two_areas):
        areas, population = two_areas
        raws = [make_request(f"A{i}", request_type=("Heat" if i < 3 else "Water")) for i in range(5)]
        raws += [make_request(f"B{i}", request_type="Heat", area_key="B", parent_id=("P" if i else None)) for i in range(4)]
        return _service(raws, areas, population)

    def test_group_rows_equal_area_summary(self, two_areas):
        service = self._service(two_areas)
        by_area = {r["area_name"]: r for r in service.area_summary().rows}
        tree = service.area_type_table().tree
        for header in (t for t in tree if t.level == 0):
            direct = by_area[header.group]
            for col in ("total_requests", "estimated_population", "area_sq_mi", "requests_per_100k", "requests_per_sqmi"):
                assert header.values[col] == pytest.approx(direct[col])

    def test_rows_ordered_by_area_then_count(self, two_areas):
        table = self._service(two_areas).area_type_table()
        got = [(r["area_name"], r["request_type"], r["total_requests"]) for r in table.rows]
        assert got == [("Area A", "Heat", 3), ("Area A", "Water", 2), ("Area B", "Heat", 4)]

    def test_expanding_shows_children(self, two_areas):
        table = self._service(two_areas).area_type_table(expanded=["Area A"])
        levels = [(t.level, t.group) for t in table.tree]
        assert levels == [(0, "Area A"), (1, "Area A"), (1, "Area A"), (0, "Area B")]
        assert table.to_dict()["group_by"] == "area_name"


    def test_zero_population_cells_are_reported(self):
        areas = [{"area_key": "Z", "area_name": "Area Z", "area_sq_mi": 1.0}]
        population = [{"area_name": "Area Z", "estimated_population": 0}]
        table = _service([make_request("R1", area_key="Z")], areas, population).area_type_table()
        assert table.tree[0].values["requests_per_100k"] is None
        issues = table.meta["division_by_zero"]
        assert {d["metric"] for d in issues} == {"requests_per_100k", "parent_issues_per_100k"}
        assert issues[0]["keys"] == {"area_name": "Area Z", "request_type": "Street Condition"}


class TestQuality:
    def test_quality_reports_every_drop(self, single_area):
        areas, population = single_area
        raws = [
            make_request("R1"),
            make_request(None),
            make_request("R2", area_key="Q"),
            make_request("R3", request_type="Informational"),
        ]
        q = _service(raws, areas, population, excluded=["Informational"]).quality()
        assert q["normalize"]["malformed"] == 1
        assert q["normalize"]["excluded"] == 1
        assert q["join"]["area_misses"] == 1
        assert len(q["malformed_samples"]) == 1
        assert q["division_by_zero"] == []
