"""
Org chart tree tests

Covers:
- count recomputation and invariant validation
- FTE rollup tolerance
- flattening, node classification and FTE tiers
- flow-diagram layout
- organisation stats
"""
from __future__ import annotations

import pytest

from core.hierarchy import build_employee_directory, department_headcounts
from core.orgchart import (
    FTE_TOLERANCE,
    OrgChartError,
    assert_valid,
    branch_department,
    calculate_org_stats,
    flatten_org_chart,
    fte_tier,
    get_root,
    iter_employees,
    load_org_chart,
    node_type,
    org_chart_to_flow,
    validate_org_chart,
)


def _find(chart, node_id):
    for node, _, _ in iter_employees(get_root(chart)):
        if str(node["id"]) == node_id:
            return node
    raise KeyError(node_id)


def _set_fte(node, own, team):
    node["agenticFTE"] = {"current": own}
    node["teamAgenticFTE"] = {"current": team}


# --------------------------------------------------------------------------
# Structure
# --------------------------------------------------------------------------

class TestCounts:
    def test_recomputed_counts(self, sample_chart):
        root = get_root(sample_chart)
        assert sample_chart["organization"]["totalEmployees"] == 7
        assert root["directReports"] == 2
        assert root["totalTeamSize"] == 7
        assert _find(sample_chart, "2")["totalTeamSize"] == 4
        assert _find(sample_chart, "6")["totalTeamSize"] == 1

    def test_preorder_walk(self, sample_chart):
        order = [(n["id"], d) for n, _, d in iter_employees(get_root(sample_chart))]
        assert order == [("1", 0), ("2", 1), ("4", 2), ("6", 3), ("5", 2), ("3", 1), ("7", 2)]

    def test_missing_root_raises(self):
        with pytest.raises(OrgChartError):
            get_root({"organization": {}})

    def test_load_missing_file_raises(self, tmp_path):
        with pytest.raises(OrgChartError):
            load_org_chart(tmp_path / "nope.json")


class TestValidation:
    def test_sample_chart_is_valid(self, sample_chart):
        assert validate_org_chart(sample_chart) == []
        assert_valid(sample_chart)

    def test_wrong_direct_reports(self, sample_chart):
        _find(sample_chart, "2")["directReports"] = 5
        violations = validate_org_chart(sample_chart)
        assert any("2: directReports" in v for v in violations)
        with pytest.raises(OrgChartError):
            assert_valid(sample_chart)

    def test_wrong_total_employees(self, sample_chart):
        sample_chart["organization"]["totalEmployees"] = 9
        assert any("totalEmployees=9" in v for v in validate_org_chart(sample_chart))

    def test_duplicate_id(self, sample_chart):
        _find(sample_chart, "7")["id"] = "5"
        assert any("duplicate id" in v for v in validate_org_chart(sample_chart))

    def test_fte_rollup_within_tolerance(self, sample_chart):
        _set_fte(_find(sample_chart, "7"), 0.4, 0.4)
        _set_fte(_find(sample_chart, "3"), 0.0, 0.4 + FTE_TOLERANCE / 2)
        assert validate_org_chart(sample_chart) == []

    def test_fte_rollup_outside_tolerance(self, sample_chart):
        _set_fte(_find(sample_chart, "7"), 0.4, 0.4)
        _set_fte(_find(sample_chart, "3"), 0.0, 0.5)
        violations = validate_org_chart(sample_chart)
        assert any(v.startswith("3: teamAgenticFTE") for v in violations)
        assert validate_org_chart(sample_chart, check_fte=False) == []


# --------------------------------------------------------------------------
# Derived views
# --------------------------------------------------------------------------

class TestClassification:
    def test_node_type(self, sample_chart):
        assert node_type(get_root(sample_chart)) == "executive"
        assert node_type(_find(sample_chart, "2")) == "manager"
        assert node_type(_find(sample_chart, "5")) == "ic"

    def test_director_is_not_executive(self):
        assert node_type({"title": "Director of Engineering", "directReports": 0}) == "ic"
        assert node_type({"title": "Vice President, Sales"}) == "executive"

    @pytest.mark.parametrize(
        "value,tier",
        [(1.2, "very_high"), (0.5, "high"), (0.3, "medium"), (0.1, "low"), (0.05, "minimal"), (0, "none")],
    )
    def test_fte_tier(self, value, tier):
        assert fte_tier({"current": value}) == tier


class TestFlatten:
    def test_rows_and_departments(self, sample_chart):
        flat = flatten_org_chart(sample_chart).set_index("id")
        assert len(flat) == 7
        assert flat.loc["1", "department"] == "Executive"
        assert flat.loc["6", "department"] == "Engineering"
        assert flat.loc["7", "department"] == "Sales"
        assert flat.loc["6", "managerName"] == "Ben Ng"
        assert flat.loc["6", "employmentType"] == "contingent"
        assert flat.loc["5", "employmentType"] == "regular"
        assert flat.loc["1", "parentId"] is None

    def test_departments_match_directory(self, sample_chart):
        flat = flatten_org_chart(sample_chart)
        staff = flat[flat["depth"] > 0]
        directory = build_employee_directory(sample_chart)
        assert staff["department"].value_counts().to_dict() == department_headcounts(directory)

    def test_department_fallbacks(self, sample_chart):
        get_root(sample_chart)["reports"][1]["title"] = "Chief of Staff"
        flat = flatten_org_chart(sample_chart).set_index("id")
        assert flat.loc["6", "department"] == "Engineering"
        assert flat.loc["7", "department"] == "Eve Stone"
        assert branch_department({"name": "Ana Lopez", "title": "VP Engineering"}, {"Ana Lopez": "Platform"}) == "Platform"
        assert branch_department({"title": "Finance Director"}) == "Finance"
        assert branch_department({}) == "Unknown"


class TestFlow:
    def test_nodes_edges_and_layout(self, sample_chart):
        flow = org_chart_to_flow(sample_chart)
        nodes = {n["id"]: n for n in flow["nodes"]}
        assert len(nodes) == 7
        assert len(flow["edges"]) == 6
        assert {e["type"] for e in flow["edges"]} == {"smoothstep"}

        assert nodes["1"]["position"] == {"x": 360.0, "y": 0}
        assert nodes["2"]["position"] == {"x": 0, "y": 180}
        assert nodes["3"]["position"] == {"x": 360, "y": 180}
        # deeper levels stack in their level-1 column
        assert nodes["4"]["position"] == {"x": 0, "y": 360}
        assert nodes["6"]["position"] == {"x": 0, "y": 540}
        assert nodes["5"]["position"] == {"x": 0, "y": 720}
        assert nodes["7"]["position"] == {"x": 360, "y": 360}

        assert not nodes["2"]["hidden"]
        assert nodes["4"]["hidden"]
        assert nodes["1"]["data"]["nodeType"] == "executive"

    def test_empty_chart(self):
        assert org_chart_to_flow({}) == {"nodes": [], "edges": []}


class TestStats:
    def test_capacity_gain(self, sample_chart):
        sample_chart["organization"]["totalAgenticFTE"] = 3.5
        stats = calculate_org_stats(sample_chart)
        assert stats["totalEmployees"] == 7
        assert stats["totalAgenticFTE"] == 3.5
        assert stats["effectiveCapacity"] == 10.5
        assert stats["capacityGain"] == 50.0

    def test_missing_organization(self):
        assert calculate_org_stats({})["totalEmployees"] == 0
