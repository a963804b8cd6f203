from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List

import altair as alt
import pandas as pd

from core.charts import TIER_COLORS, TIER_ORDER, horizontal_bar, to_vega_spec
from core.data import round_half_up
from core.filters import OrgViewFilters
from core.orgchart import calculate_org_stats, flatten_org_chart, fte_tier, org_chart_to_flow


def _filtered_frame(chart: Dict[str, Any], filters: OrgViewFilters) -> pd.DataFrame:
    flat = flatten_org_chart(chart)
    if filters.department:
        flat = flat[(flat["department"] == filters.department) | (flat["depth"] == 0)]
    if filters.max_depth is not None:
        flat = flat[flat["depth"] <= filters.max_depth]
    return flat


def department_summary(flat: pd.DataFrame) -> pd.DataFrame:
    staff = flat[flat["depth"] > 0]
    if staff.empty:
        return pd.DataFrame(columns=["department", "headcount", "agenticFTE", "capacityGain"])
    out = (
        staff.groupby("department")
        .agg(headcount=("id", "count"), agenticFTE=("agenticFTE", "sum"))
        .reset_index()
    )
    out["agenticFTE"] = out["agenticFTE"].map(lambda v: round_half_up(v, 2))
    out["capacityGain"] = [
        round_half_up(fte / hc * 100, 1) if hc else 0.0 for fte, hc in zip(out["agenticFTE"], out["headcount"])
    ]
    return out.sort_values("agenticFTE", ascending=False, kind="stable").reset_index(drop=True)


def tier_distribution(flat: pd.DataFrame) -> List[Dict[str, Any]]:
    tiers = flat["agenticFTE"].map(fte_tier) if not flat.empty else pd.Series(dtype=str)
    counts = tiers.value_counts()
    return [{"tier": tier, "count": int(counts.get(tier, 0))} for tier in TIER_ORDER]


def compute_org_overview(filters: OrgViewFilters, chart: Dict[str, Any]) -> Dict[str, Any]:
    flat = _filtered_frame(chart, filters)
    stats = calculate_org_stats(chart)
    departments = department_summary(flat)
    tiers = tier_distribution(flat)

    contributors = flat[(flat["agenticFTE"] > 0) & (flat["agenticFTE"] >= filters.min_fte)]
    contributors = contributors.sort_values("agenticFTE", ascending=False, kind="stable").head(filters.top_n)
    top = [
        {
            "id": r.id,
            "name": r.name,
            "title": r.title,
            "department": r.department,
            "agenticFTE": round_half_up(r.agenticFTE, 2),
            "fteTier": fte_tier(r.agenticFTE),
        }
        for r in contributors.itertuples(index=False)
    ]

    charts: Dict[str, Any] = {}
    if not departments.empty:
        charts["department_fte"] = to_vega_spec(
            horizontal_bar(
                departments,
                value="agenticFTE",
                label="department",
                title="Agentic FTE",
                tooltip=[
                    alt.Tooltip("department:N", title="Department"),
                    alt.Tooltip("headcount:Q", title="Headcount", format=","),
                    alt.Tooltip("agenticFTE:Q", title="Agentic FTE", format=",.2f"),
                    alt.Tooltip("capacityGain:Q", title="Capacity Gain %", format=".1f"),
                ],
            )
        )
    if top:
        charts["top_contributors"] = to_vega_spec(
            horizontal_bar(pd.DataFrame(top), value="agenticFTE", label="name", title="Agentic FTE", color="#7c3aed")
        )
    tier_df = pd.DataFrame(tiers)
    charts["tier_distribution"] = to_vega_spec(
        alt.Chart(tier_df)
        .mark_bar()
        .encode(
            x=alt.X("tier:N", title="FTE Tier", sort=TIER_ORDER),
            y=alt.Y("count:Q", title="Employees"),
            color=alt.Color("tier:N", scale=alt.Scale(domain=TIER_ORDER, range=TIER_COLORS), legend=None),
            tooltip=[alt.Tooltip("tier:N", title="Tier"), alt.Tooltip("count:Q", title="Employees")],
        )
    )

    return {
        "filters": asdict(filters),
        "stats": stats,
        "departments": departments.to_dict(orient="records"),
        "top_contributors": top,
        "tier_distribution": tiers,
        "charts": charts,
    }


def compute_org_flow(filters: OrgViewFilters, chart: Dict[str, Any]) -> Dict[str, Any]:
    flow = org_chart_to_flow(chart)
    if not flow["nodes"]:
        return {"filters": asdict(filters), **flow}

    keep = set(_filtered_frame(chart, filters)["id"])
    nodes = [n for n in flow["nodes"] if n["id"] in keep]
    if filters.department or filters.max_depth is not None:
        # A narrowed view is shown fully expanded.
        nodes = [{**n, "hidden": False} for n in nodes]
    edges = [e for e in flow["edges"] if e["source"] in keep and e["target"] in keep]
    return {"filters": asdict(filters), "nodes": nodes, "edges": edges}
