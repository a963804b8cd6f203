from __future__ import annotations

import logging
import math
from typing import Any, Dict

import numpy as np
import pandas as pd
from fastapi import FastAPI, Query
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.schemas import OrgStatsResponse, OrgViewFiltersModel, SnapshotListResponse, ValidationResponse
from core.config import get_paths, load_environment
from core.data import load_dashboard_data
from core.filters import OrgViewFilters, normalize_org_filters
from core.metrics_benchmarks import compute_benchmarks_view
from core.metrics_org import compute_org_flow, compute_org_overview
from core.metrics_sentiment import compute_perceived_value
from core.orgchart import OrgChartError, calculate_org_stats, flatten_org_chart, validate_org_chart
from core.snapshots import SnapshotError, compare_snapshots, list_snapshots


load_environment()
app = FastAPI(title="Org Intelligence Dashboard API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _filters_from_model(model: OrgViewFiltersModel, chart: Dict[str, Any]) -> OrgViewFilters:
    departments = sorted(flatten_org_chart(chart)["department"].dropna().unique().tolist())
    return normalize_org_filters(model.model_dump(), available_departments=departments)


def _json(data: object) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
            },
        )
    )


def _error(exc: Exception, status_code: int = 500) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": str(exc), "type": type(exc).__name__})


def _org_chart() -> Dict[str, Any]:
    chart = load_dashboard_data(get_paths())["org_chart"]
    if not chart:
        raise OrgChartError("Org chart not found; run the enrich step first")
    return chart


@app.get("/org-chart")
def org_chart():
    try:
        return _json(_org_chart())
    except OrgChartError as exc:
        return _error(exc, 404)
    except Exception as exc:
        logger.exception("org_chart failed")
        return _error(exc)


@app.get("/org-chart/stats")
def org_chart_stats():
    try:
        stats = calculate_org_stats(_org_chart())
        return _json(OrgStatsResponse(**stats).model_dump())
    except OrgChartError as exc:
        return _error(exc, 404)
    except Exception as exc:
        logger.exception("org_chart_stats failed")
        return _error(exc)


@app.post("/org-chart/overview")
def org_chart_overview(filters: OrgViewFiltersModel):
    try:
        chart = _org_chart()
        f = _filters_from_model(filters, chart)
        return _json(compute_org_overview(f, chart))
    except OrgChartError as exc:
        return _error(exc, 404)
    except Exception as exc:
        logger.exception("org_chart_overview failed")
        return _error(exc)


@app.post("/org-chart/flow")
def org_chart_flow(filters: OrgViewFiltersModel):
    try:
        chart = _org_chart()
        f = _filters_from_model(filters, chart)
        return _json(compute_org_flow(f, chart))
    except OrgChartError as exc:
        return _error(exc, 404)
    except Exception as exc:
        logger.exception("org_chart_flow failed")
        return _error(exc)


@app.get("/org-chart/validate")
def org_chart_validate(check_fte: bool = Query(default=True)):
    try:
        violations = validate_org_chart(_org_chart(), check_fte=check_fte)
        return _json(ValidationResponse(valid=not violations, violations=violations).model_dump())
    except OrgChartError as exc:
        return _error(exc, 404)
    except Exception as exc:
        logger.exception("org_chart_validate failed")
        return _error(exc)


@app.get("/snapshots")
def snapshots():
    try:
        return _json(SnapshotListResponse(snapshots=list_snapshots(get_paths())).model_dump())
    except Exception as exc:
        logger.exception("snapshots failed")
        return _error(exc)


@app.get("/snapshots/compare")
def snapshots_compare(old: str = Query(...), new: str = Query(...)):
    try:
        return _json(compare_snapshots(get_paths(), old, new))
    except SnapshotError as exc:
        return _error(exc, 404)
    except Exception as exc:
        logger.exception("snapshots_compare failed")
        return _error(exc)


@app.get("/benchmarks")
def benchmarks():
    try:
        return _json(compute_benchmarks_view(load_dashboard_data(get_paths())["roi_config"]))
    except Exception as exc:
        logger.exception("benchmarks failed")
        return _error(exc)


@app.get("/perceived-value")
def perceived_value():
    try:
        data = load_dashboard_data(get_paths())
        return _json(compute_perceived_value(data["perceived_value"], data["tool_sentiment"]))
    except Exception as exc:
        logger.exception("perceived_value failed")
        return _error(exc)


@app.get("/ai-tools")
def ai_tools():
    try:
        return _json(load_dashboard_data(get_paths())["ai_tools"])
    except Exception as exc:
        logger.exception("ai_tools failed")
        return _error(exc)
