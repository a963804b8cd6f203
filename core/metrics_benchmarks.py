from __future__ import annotations

from typing import Any, Dict, List, Optional

import altair as alt
import pandas as pd

from core.benchmarks import TOOLS
from core.charts import to_vega_spec


META_KEYS = {"cacheExpiry", "lastUpdated"}


def benchmark_rows(benchmarks: Dict[str, Any]) -> List[Dict[str, Any]]:
    rows = []
    for key, roles in benchmarks.items():
        if key in META_KEYS or not isinstance(roles, dict):
            continue
        display = TOOLS.get(key, (key,))[0]
        for role, result in roles.items():
            ci = result.get("confidenceInterval") or [None, None]
            rows.append(
                {
                    "tool": key,
                    "toolName": display,
                    "role": role,
                    "hoursSavedPerMonth": result.get("hoursSavedPerMonth"),
                    "ciLow": ci[0],
                    "ciHigh": ci[1],
                    "confidenceLevel": result.get("confidenceLevel"),
                    "studyCount": result.get("studyCount", 0),
                    "totalSampleSize": result.get("totalSampleSize", 0),
                    "aggregationMethod": result.get("aggregationMethod"),
                }
            )
    return rows


def compute_benchmarks_view(roi_config: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    benchmarks = (roi_config or {}).get("industryBenchmarks") or {}
    rows = benchmark_rows(benchmarks)

    charts: Dict[str, Any] = {}
    measured = pd.DataFrame([r for r in rows if r["hoursSavedPerMonth"] is not None])
    if not measured.empty:
        measured["label"] = measured["toolName"] + " / " + measured["role"].str.replace("_", " ")
        base = alt.Chart(measured).encode(y=alt.Y("label:N", title=None, sort="-x"))
        ci = base.mark_rule(strokeWidth=2, color="#94a3b8").encode(
            x=alt.X("ciLow:Q", title="Hours saved per month"),
            x2="ciHigh:Q",
        )
        point = base.mark_point(filled=True, size=80).encode(
            x="hoursSavedPerMonth:Q",
            color=alt.Color(
                "confidenceLevel:N",
                title="Confidence",
                scale=alt.Scale(domain=["high", "medium", "low"], range=["#10b981", "#f59e0b", "#ef4444"]),
            ),
            tooltip=[
                alt.Tooltip("toolName:N", title="Tool"),
                alt.Tooltip("role:N", title="Role"),
                alt.Tooltip("hoursSavedPerMonth:Q", title="Hours/mo", format=".1f"),
                alt.Tooltip("ciLow:Q", title="CI low", format=".1f"),
                alt.Tooltip("ciHigh:Q", title="CI high", format=".1f"),
                alt.Tooltip("studyCount:Q", title="Studies"),
            ],
        )
        charts["hours_saved_ci"] = to_vega_spec(ci + point)

    return {
        "lastUpdated": benchmarks.get("lastUpdated"),
        "cacheExpiry": benchmarks.get("cacheExpiry"),
        "benchmarks": rows,
        "charts": charts,
    }
