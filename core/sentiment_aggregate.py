from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from core.data import read_json, round_half_ceiling, write_json
from core.sentiment_analysis import (
    ANALYZED_FILENAME,
    calculate_metrics,
    extract_pain_points,
    extract_representative_quotes,
    extract_top_themes,
    item_date,
)


logger = logging.getLogger(__name__)

TOOL_GROUPS = ["Claude Enterprise", "Claude Code", "M365 Copilot", "GitHub Copilot", "ChatGPT", "Other", "None"]
EXCLUDED_GROUPS = {"Other", "None"}


def group_by_tool(analyzed: List[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    groups: Dict[str, List[Dict[str, Any]]] = {tool: [] for tool in TOOL_GROUPS}
    for msg in analyzed:
        tool = msg["sentiment"].get("tool_mentioned")
        groups[tool if tool in groups else "Other"].append(msg)
    return groups


def _frame(analyzed: List[Dict[str, Any]]) -> pd.DataFrame:
    return pd.DataFrame(
        {
            "date": pd.to_datetime([item_date(m) for m in analyzed], errors="coerce", utc=True),
            "department": [m.get("department") or m.get("dept") or "Unknown" for m in analyzed],
            "score": [float(m["sentiment"]["sentiment_score"]) for m in analyzed],
        }
    )


def calculate_sentiment_trend(analyzed: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    df = _frame(analyzed).dropna(subset=["date"])
    if df.empty:
        return []
    df["monthKey"] = df["date"].dt.strftime("%Y-%m")
    grouped = df.groupby("monthKey")["score"].agg(["mean", "count"]).reset_index().sort_values("monthKey")
    return [
        {
            "month": datetime.strptime(r.monthKey, "%Y-%m").strftime("%b %Y"),
            "monthKey": r.monthKey,
            "score": round_half_ceiling(r.mean, 2),
            "count": int(r.count),
        }
        for r in grouped.itertuples(index=False)
    ]


def calculate_department_sentiment(analyzed: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    df = _frame(analyzed)
    if df.empty:
        return []
    grouped = (
        df.groupby("department")["score"]
        .agg(["mean", "count"])
        .reset_index()
        .sort_values("count", ascending=False, kind="stable")
    )
    return [
        {"department": r.department, "score": round_half_ceiling(r.mean, 2), "count": int(r.count)}
        for r in grouped.itertuples(index=False)
    ]


def aggregate_tool_sentiment(analyzed: List[Dict[str, Any]]) -> Dict[str, Any]:
    if not analyzed:
        return {
            **calculate_metrics([]),
            "sentimentTrend": [],
            "topThemes": [],
            "departmentSentiment": [],
            "representativeQuotes": [],
            "painPoints": [],
            "sourceBreakdown": {},
        }
    breakdown: Dict[str, int] = {}
    for msg in analyzed:
        source = msg.get("source") or "unknown"
        breakdown[source] = breakdown.get(source, 0) + 1
    return {
        **calculate_metrics(analyzed),
        "sentimentTrend": calculate_sentiment_trend(analyzed),
        "topThemes": extract_top_themes(analyzed, 5),
        "departmentSentiment": calculate_department_sentiment(analyzed),
        "representativeQuotes": extract_representative_quotes(analyzed, 5),
        "painPoints": extract_pain_points(analyzed, 5),
        "sourceBreakdown": breakdown,
    }


def build_perceived_value(analyzed: List[Dict[str, Any]], source_stats: Dict[str, int]) -> Dict[str, Any]:
    groups = group_by_tool(analyzed)
    perceived = {tool: aggregate_tool_sentiment(msgs) for tool, msgs in groups.items() if tool not in EXCLUDED_GROUPS}
    return {
        "lastUpdated": datetime.now(timezone.utc).isoformat(),
        "summary": {
            "totalFeedbackAnalyzed": len(analyzed),
            "sourceBreakdown": source_stats,
            "toolMentions": {tool: len(msgs) for tool, msgs in groups.items()},
        },
        "perceivedValue": perceived,
    }


def aggregate_sentiment(sentiment_dir: Path, output_path: Path) -> Optional[Path]:
    data = read_json(sentiment_dir / ANALYZED_FILENAME)
    if not data or not data.get("items"):
        logger.warning("No analyzed feedback in %s; run the analyze step first", sentiment_dir)
        return None
    output = build_perceived_value(data["items"], data.get("sourceStats") or {})
    target = write_json(output_path, output)
    for tool, metrics in output["perceivedValue"].items():
        logger.info("%s: PVS %s from %d items", tool, metrics["perceivedValueScore"], metrics["feedbackCount"])
    return target
