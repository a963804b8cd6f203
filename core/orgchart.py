"""Org chart tree utilities.

The chart is a JSON document with the root employee at ``organization.ceo``.
Each node has ``reports`` (child nodes), ``directReports``, ``totalTeamSize``
and, once enriched, ``agenticFTE`` / ``teamAgenticFTE`` dicts.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

import pandas as pd

from core.data import read_json, round_half_up, write_json


logger = logging.getLogger(__name__)

FTE_TOLERANCE = 0.01
EXECUTIVE_RE = re.compile(r"\b(ceo|cto|cfo|chief|president)\b")

LAYOUT = {
    "node_width": 280,
    "node_height": 140,
    "horizontal_spacing": 80,
    "vertical_spacing": 40,
    "level_spacing": 180,
}

FTE_TIERS = [
    (1.0, "very_high"),
    (0.5, "high"),
    (0.3, "medium"),
    (0.1, "low"),
]

TITLE_DEPARTMENTS = [
    (("marketing",), "Marketing"),
    (("engineering", "software"), "Engineering"),
    (("product",), "Product"),
    (("sales",), "Sales"),
    (("customer",), "Customer"),
    (("finance",), "Finance"),
    (("operations",), "Operations"),
    (("hr", "human resources"), "Human Resources"),
]


class OrgChartError(Exception):
    """Raised when an org chart is missing its root or breaks a tree invariant."""


def load_org_chart(path: Path) -> Dict[str, Any]:
    chart = read_json(path)
    if chart is None:
        raise OrgChartError(f"Org chart not found: {path}")
    get_root(chart)
    return chart


def save_org_chart(chart: Dict[str, Any], path: Path) -> Path:
    return write_json(path, chart)


def get_root(chart: Dict[str, Any]) -> Dict[str, Any]:
    root = (chart or {}).get("organization", {}).get("ceo")
    if not isinstance(root, dict):
        raise OrgChartError("Org chart has no organization.ceo root")
    return root


def iter_employees(
    node: Dict[str, Any], parent: Optional[Dict[str, Any]] = None, depth: int = 0
) -> Iterator[Tuple[Dict[str, Any], Optional[Dict[str, Any]], int]]:
    """Pre-order walk yielding (node, parent, depth)."""
    stack: List[Tuple[Dict[str, Any], Optional[Dict[str, Any]], int]] = [(node, parent, depth)]
    while stack:
        current, par, d = stack.pop()
        yield current, par, d
        for child in reversed(current.get("reports") or []):
            stack.append((child, current, d + 1))


def fte_current(value: Any) -> float:
    if isinstance(value, dict):
        value = value.get("current", 0)
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def recompute_counts(chart: Dict[str, Any]) -> Dict[str, Any]:
    """Restore directReports/totalTeamSize on every node and the org total."""

    def _walk(node: Dict[str, Any]) -> int:
        reports = node.get("reports") or []
        node["directReports"] = len(reports)
        node["totalTeamSize"] = 1 + sum(_walk(child) for child in reports)
        return node["totalTeamSize"]

    root = get_root(chart)
    chart["organization"]["totalEmployees"] = _walk(root)
    return chart


def validate_org_chart(chart: Dict[str, Any], *, check_fte: bool = True) -> List[str]:
    """Return a list of invariant violations (empty when the tree is consistent)."""
    try:
        root = get_root(chart)
    except OrgChartError as exc:
        return [str(exc)]

    violations: List[str] = []
    seen: Dict[str, int] = {}
    visiting: set = set()

    def _walk(node: Dict[str, Any]) -> None:
        node_id = str(node.get("id"))
        if id(node) in visiting:
            violations.append(f"{node_id}: cycle detected")
            return
        seen[node_id] = seen.get(node_id, 0) + 1
        if seen[node_id] == 2:
            violations.append(f"{node_id}: duplicate id")
        visiting.add(id(node))
        reports = node.get("reports") or []
        for child in reports:
            _walk(child)
        visiting.discard(id(node))

        if node.get("directReports", 0) != len(reports):
            violations.append(
                f"{node_id}: directReports={node.get('directReports')} but has {len(reports)} reports"
            )
        expected_size = 1 + sum(int(c.get("totalTeamSize") or 0) for c in reports)
        if node.get("totalTeamSize") != expected_size:
            violations.append(f"{node_id}: totalTeamSize={node.get('totalTeamSize')} expected {expected_size}")

        if check_fte and "teamAgenticFTE" in node:
            expected_fte = fte_current(node.get("agenticFTE")) + sum(
                fte_current(c.get("teamAgenticFTE")) for c in reports
            )
            actual = fte_current(node.get("teamAgenticFTE"))
            if abs(actual - expected_fte) > FTE_TOLERANCE:
                violations.append(f"{node_id}: teamAgenticFTE={actual} expected {expected_fte:.2f}")

    _walk(root)
    total = chart["organization"].get("totalEmployees")
    if total is not None and total != root.get("totalTeamSize"):
        violations.append(f"organization.totalEmployees={total} but root totalTeamSize={root.get('totalTeamSize')}")
    return violations


def assert_valid(chart: Dict[str, Any], *, check_fte: bool = True) -> None:
    violations = validate_org_chart(chart, check_fte=check_fte)
    if violations:
        preview = "; ".join(violations[:5])
        raise OrgChartError(f"{len(violations)} org chart violation(s): {preview}")


def node_type(node: Dict[str, Any]) -> str:
    title = (node.get("title") or "").lower()
    if EXECUTIVE_RE.search(title):
        return "executive"
    if (node.get("directReports") or 0) > 0:
        return "manager"
    return "ic"


def fte_tier(value: Any) -> str:
    fte = fte_current(value)
    for threshold, label in FTE_TIERS:
        if fte >= threshold:
            return label
    return "minimal" if fte > 0 else "none"


def department_from_title(title: Optional[str]) -> Optional[str]:
    lowered = (title or "").lower()
    for keywords, department in TITLE_DEPARTMENTS:
        if any(k in lowered for k in keywords):
            return department
    return None


def branch_department(head: Dict[str, Any], overrides: Optional[Dict[str, str]] = None) -> str:
    """Department label for a CEO direct report and everyone beneath them."""
    name = head.get("name") or ""
    return (
        (overrides or {}).get(name)
        or head.get("department")
        or department_from_title(head.get("title"))
        or name
        or "Unknown"
    )


def flatten_org_chart(chart: Dict[str, Any]) -> pd.DataFrame:
    root = get_root(chart)
    rows: List[Dict[str, Any]] = []
    dept_by_id: Dict[str, str] = {}
    for node, parent, depth in iter_employees(root):
        node_id = str(node.get("id"))
        if depth == 1:
            dept_by_id[node_id] = branch_department(node)
        elif depth > 1 and parent is not None:
            dept_by_id[node_id] = dept_by_id.get(str(parent.get("id")), "Unknown")
        rows.append(
            {
                "id": node_id,
                "name": node.get("name"),
                "title": node.get("title"),
                "email": (node.get("email") or None),
                "parentId": str(parent.get("id")) if parent is not None else None,
                "managerName": parent.get("name") if parent is not None else None,
                "depth": depth,
                "directReports": int(node.get("directReports") or 0),
                "totalTeamSize": int(node.get("totalTeamSize") or 0),
                "employmentType": node.get("employmentType") or "regular",
                "initials": node.get("initials"),
                "agenticFTE": fte_current(node.get("agenticFTE")),
                "teamAgenticFTE": fte_current(node.get("teamAgenticFTE")),
                "department": dept_by_id.get(node_id, "Executive"),
            }
        )
    return pd.DataFrame(rows)


def org_chart_to_flow(chart: Dict[str, Any]) -> Dict[str, List[Dict[str, Any]]]:
    """Convert the tree to flow-diagram nodes and edges.

    Level 0 is centered, level 1 is spread horizontally, deeper levels stack
    vertically in their level-1 ancestor's column.
    """
    try:
        root = get_root(chart)
    except OrgChartError:
        return {"nodes": [], "edges": []}

    col_width = LAYOUT["node_width"] + LAYOUT["horizontal_spacing"]
    row_height = LAYOUT["node_height"] + LAYOUT["vertical_spacing"]
    level1_count = len(root.get("reports") or [])
    column_y: Dict[int, int] = {}
    nodes: List[Dict[str, Any]] = []
    edges: List[Dict[str, Any]] = []
    column_of: Dict[str, int] = {}
    level1_index = 0

    for node, parent, depth in iter_employees(root):
        node_id = str(node.get("id"))
        if depth == 0:
            x, y = (level1_count * col_width) / 2, 0
        elif depth == 1:
            column_of[node_id] = level1_index
            x, y = level1_index * col_width, LAYOUT["level_spacing"]
            level1_index += 1
        else:
            column = column_of[str(parent.get("id"))]
            column_of[node_id] = column
            y = column_y.get(column, LAYOUT["level_spacing"] * 2)
            column_y[column] = y + row_height
            x = column * col_width

        nodes.append(
            {
                "id": node_id,
                "type": "employeeNode",
                "position": {"x": x, "y": y},
                "data": {
                    "name": node.get("name"),
                    "title": node.get("title"),
                    "email": node.get("email") or None,
                    "directReports": node.get("directReports") or 0,
                    "totalTeamSize": node.get("totalTeamSize") or 0,
                    "agenticFTE": node.get("agenticFTE") or {"current": 0, "breakdown": {}},
                    "teamAgenticFTE": node.get("teamAgenticFTE") or {"current": 0, "breakdown": {}},
                    "level": depth,
                    "nodeType": node_type(node),
                    "fteTier": fte_tier(node.get("agenticFTE")),
                    "employmentType": node.get("employmentType") or "regular",
                    "hasChildren": bool(node.get("reports")),
                },
                "hidden": depth > 1,
            }
        )
        if parent is not None:
            parent_id = str(parent.get("id"))
            edges.append(
                {
                    "id": f"{parent_id}-{node_id}",
                    "source": parent_id,
                    "target": node_id,
                    "type": "smoothstep",
                }
            )
    return {"nodes": nodes, "edges": edges}


def calculate_org_stats(chart: Dict[str, Any]) -> Dict[str, Any]:
    org = (chart or {}).get("organization")
    if not org:
        return {"totalEmployees": 0, "totalAgenticFTE": 0, "effectiveCapacity": 0, "capacityGain": 0, "breakdown": {}}

    total_employees = int(org.get("totalEmployees") or 0)
    total_fte = float(org.get("totalAgenticFTE") or 0)
    capacity_gain = (total_fte / total_employees * 100) if total_employees > 0 else 0
    return {
        "totalEmployees": total_employees,
        "totalAgenticFTE": round_half_up(total_fte, 1),
        "effectiveCapacity": round_half_up(total_employees + total_fte, 1),
        "capacityGain": round_half_up(capacity_gain, 1),
        "breakdown": org.get("agenticFTEBreakdown") or {},
    }
