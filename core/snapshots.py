from __future__ import annotations

import logging
import re
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from core.config import DashboardPaths
from core.data import read_json, round_half_up, write_json
from core.orgchart import flatten_org_chart, load_org_chart


logger = logging.getLogger(__name__)

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
SNAPSHOT_RE = re.compile(r"^techco_org_chart_(\d{4}-\d{2}-\d{2})\.json$")
NO_MANAGER = "CEO (no manager)"

RECORD_COLUMNS = ["id", "name", "title", "parentId", "managerName", "directReports", "totalTeamSize", "employmentType", "initials"]


class SnapshotError(Exception):
    """Raised for malformed snapshot dates or missing snapshot files."""


def validate_date(date: str) -> str:
    if not date or not DATE_RE.match(date):
        raise SnapshotError(f"Date must be in YYYY-MM-DD format, got {date!r}")
    return date


def snapshot_path(paths: DashboardPaths, date: str) -> Path:
    return paths.snapshot_dir / f"techco_org_chart_{validate_date(date)}.json"


def save_snapshot(paths: DashboardPaths, date: str) -> Path:
    target = snapshot_path(paths, date)
    if not paths.org_chart.exists():
        raise SnapshotError(f"Current org chart not found: {paths.org_chart}")
    if target.exists():
        logger.warning("Snapshot for %s already exists and will be overwritten", date)
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(paths.org_chart, target)
    logger.info("Saved snapshot %s", target.name)
    return target


def list_snapshots(paths: DashboardPaths) -> List[Dict[str, Any]]:
    if not paths.snapshot_dir.exists():
        return []
    out: List[Dict[str, Any]] = []
    for f in paths.snapshot_dir.iterdir():
        match = SNAPSHOT_RE.match(f.name)
        if not match:
            continue
        chart = read_json(f, {}) or {}
        out.append(
            {
                "date": match.group(1),
                "file": f.name,
                "path": str(f),
                "sizeKB": round_half_up(f.stat().st_size / 1024, 1),
                "totalEmployees": (chart.get("organization") or {}).get("totalEmployees"),
            }
        )
    return sorted(out, key=lambda s: s["date"])


def latest_snapshot(paths: DashboardPaths) -> Optional[Dict[str, Any]]:
    snapshots = list_snapshots(paths)
    return snapshots[-1] if snapshots else None


def load_snapshot(paths: DashboardPaths, date: str) -> Dict[str, Any]:
    target = snapshot_path(paths, date)
    if not target.exists():
        raise SnapshotError(f"Snapshot not found for {date}: {target}")
    return load_org_chart(target)


def _total_employees(chart: Dict[str, Any], flat: pd.DataFrame) -> int:
    total = (chart.get("organization") or {}).get("totalEmployees")
    return int(total) if total is not None else int(len(flat))


def _value(v: Any) -> Any:
    if v is None or (not isinstance(v, (list, dict)) and pd.isna(v)):
        return None
    return v


def _record(row: Dict[str, Any], suffix: str) -> Dict[str, Any]:
    out = {"id": row["id"]}
    for col in RECORD_COLUMNS[1:]:
        out[col] = _value(row.get(f"{col}{suffix}"))
    for col in ("directReports", "totalTeamSize"):
        out[col] = int(out[col] or 0)
    return out


def _by_name(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(items, key=lambda r: str(r.get("name") or "").casefold())


def compare_org_charts(
    old_chart: Dict[str, Any],
    new_chart: Dict[str, Any],
    *,
    old_date: Optional[str] = None,
    new_date: Optional[str] = None,
) -> Dict[str, Any]:
    """Diff two org charts by employee id."""
    old = flatten_org_chart(old_chart)
    new = flatten_org_chart(new_chart)
    merged = old[RECORD_COLUMNS].merge(
        new[RECORD_COLUMNS], on="id", how="outer", suffixes=("_old", "_new"), indicator=True
    )
    rows = merged.to_dict(orient="records")

    added = [_record(r, "_new") for r in rows if r["_merge"] == "right_only"]
    removed = [_record(r, "_old") for r in rows if r["_merge"] == "left_only"]
    title_changes: List[Dict[str, Any]] = []
    reporting_changes: List[Dict[str, Any]] = []
    unchanged: List[Dict[str, Any]] = []

    for r in rows:
        if r["_merge"] != "both":
            continue
        changed = False
        if _value(r["title_old"]) != _value(r["title_new"]):
            title_changes.append({"id": r["id"], "name": r["name_new"], "oldTitle": _value(r["title_old"]), "newTitle": _value(r["title_new"])})
            changed = True
        if _value(r["parentId_old"]) != _value(r["parentId_new"]):
            reporting_changes.append(
                {
                    "id": r["id"],
                    "name": r["name_new"],
                    "oldManager": _value(r["managerName_old"]) or NO_MANAGER,
                    "newManager": _value(r["managerName_new"]) or NO_MANAGER,
                }
            )
            changed = True
        if not changed:
            unchanged.append(_record(r, "_new"))

    old_total = _total_employees(old_chart, old)
    new_total = _total_employees(new_chart, new)
    net_change = new_total - old_total
    growth_rate = round_half_up(net_change / old_total * 100, 2) if old_total else None
    old_contingent = int((old["employmentType"] == "contingent").sum()) if not old.empty else 0
    new_contingent = int((new["employmentType"] == "contingent").sum()) if not new.empty else 0

    return {
        "comparison": {
            "oldDate": old_date,
            "newDate": new_date,
            "oldTotal": old_total,
            "newTotal": new_total,
            "netChange": net_change,
            "growthRate": growth_rate,
        },
        "summary": {
            "added": len(added),
            "removed": len(removed),
            "titleChanges": len(title_changes),
            "reportingChanges": len(reporting_changes),
            "unchanged": len(unchanged),
        },
        "details": {
            "added": _by_name(added),
            "removed": _by_name(removed),
            "titleChanges": _by_name(title_changes),
            "reportingChanges": _by_name(reporting_changes),
        },
        "metrics": {
            "oldContingent": old_contingent,
            "newContingent": new_contingent,
            "contingentChange": new_contingent - old_contingent,
        },
    }


def compare_snapshots(paths: DashboardPaths, old_date: str, new_date: str) -> Dict[str, Any]:
    return compare_org_charts(
        load_snapshot(paths, old_date), load_snapshot(paths, new_date), old_date=old_date, new_date=new_date
    )


def write_comparison(paths: DashboardPaths, report: Dict[str, Any]) -> Path:
    cmp = report["comparison"]
    target = paths.snapshot_dir / f"comparison_{cmp['oldDate']}_to_{cmp['newDate']}.json"
    write_json(target, report)
    logger.info("Comparison report saved to %s", target)
    return target


def format_comparison_report(report: Dict[str, Any]) -> str:
    cmp = report["comparison"]
    summary = report["summary"]
    details = report["details"]
    metrics = report["metrics"]
    rule = "=" * 80
    net = cmp["netChange"]
    growth = "n/a" if cmp["growthRate"] is None else f"{cmp['growthRate']:.2f}%"
    contingent_delta = metrics["contingentChange"]

    lines = [
        rule,
        "ORG CHART COMPARISON REPORT",
        rule,
        f"Period: {cmp['oldDate']} -> {cmp['newDate']}",
        f"Total Employees: {cmp['oldTotal']} -> {cmp['newTotal']} ({net:+d}, {growth})",
        f"Contingent Workers: {metrics['oldContingent']} -> {metrics['newContingent']} ({contingent_delta:+d})",
        "",
        "Summary:",
        f"  Added: {summary['added']}",
        f"  Removed: {summary['removed']}",
        f"  Title Changes: {summary['titleChanges']}",
        f"  Reporting Changes: {summary['reportingChanges']}",
        f"  Unchanged: {summary['unchanged']}",
    ]

    def _section(title: str, items: List[Dict[str, Any]], render) -> None:
        if not items:
            return
        lines.extend(["", f"{title} ({len(items)}):"])
        for item in items:
            lines.extend(render(item))

    def _type_label(emp: Dict[str, Any]) -> str:
        return f" [{emp['employmentType']}]" if emp.get("employmentType") else ""

    _section(
        "ADDED EMPLOYEES",
        details["added"],
        lambda e: [f"  + {e['name']} - {e['title']}{_type_label(e)}", f"    Reports to: {e.get('managerName') or NO_MANAGER}"],
    )
    _section(
        "REMOVED EMPLOYEES",
        details["removed"],
        lambda e: [f"  - {e['name']} - {e['title']}{_type_label(e)}", f"    Reported to: {e.get('managerName') or NO_MANAGER}"],
    )
    _section(
        "TITLE CHANGES",
        details["titleChanges"],
        lambda c: [f"  {c['name']}", f"    Old: {c['oldTitle']}", f"    New: {c['newTitle']}"],
    )
    _section(
        "REPORTING CHANGES",
        details["reportingChanges"],
        lambda c: [f"  {c['name']}", f"    Old Manager: {c['oldManager']}", f"    New Manager: {c['newManager']}"],
    )
    lines.extend(["", rule, "END OF REPORT", rule])
    return "\n".join(lines)
