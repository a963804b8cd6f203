from __future__ import annotations

from typing import Any, Dict, List, Optional

import altair as alt
import pandas as pd

from core.charts import horizontal_bar, to_vega_spec


def _tool_table(perceived: Dict[str, Any]) -> List[Dict[str, Any]]:
    rows = []
    for tool, metrics in (perceived.get("perceivedValue") or {}).items():
        dist = metrics.get("sentimentDistribution") or {}
        rows.append(
            {
                "tool": tool,
                "perceivedValueScore": metrics.get("perceivedValueScore", 0),
                "avgSentiment": metrics.get("avgSentiment", 0),
                "nps": metrics.get("nps", 0),
                "feedbackCount": metrics.get("feedbackCount", 0),
                "positive": dist.get("positive", 0),
                "neutral": dist.get("neutral", 0),
                "negative": dist.get("negative", 0),
            }
        )
    return sorted(rows, key=lambda r: r["perceivedValueScore"], reverse=True)


def _trend_frame(perceived: Dict[str, Any]) -> pd.DataFrame:
    rows = [
        {"tool": tool, **point}
        for tool, metrics in (perceived.get("perceivedValue") or {}).items()
        for point in metrics.get("sentimentTrend") or []
    ]
    return pd.DataFrame(rows, columns=["tool", "month", "monthKey", "score", "count"])


def compute_perceived_value(
    perceived: Optional[Dict[str, Any]], tool_sentiment: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    perceived = perceived or {}
    summary = perceived.get("summary") or {}
    table = _tool_table(perceived)

    charts: Dict[str, Any] = {}
    scored = [r for r in table if r["feedbackCount"] > 0]
    if scored:
        charts["pvs_by_tool"] = to_vega_spec(
            horizontal_bar(
                pd.DataFrame(scored), value="perceivedValueScore", label="tool", title="Perceived Value Score", value_format="d"
            )
        )

    trend = _trend_frame(perceived)
    if not trend.empty:
        hover = alt.selection_point(fields=["tool"], on="mouseover", empty="all")
        charts["sentiment_trend"] = to_vega_spec(
            alt.Chart(trend.sort_values("monthKey"))
            .mark_line(point=True)
            .encode(
                x=alt.X("monthKey:O", title="Month"),
                y=alt.Y("score:Q", title="Avg Sentiment", scale=alt.Scale(domain=[-1, 1])),
                color=alt.Color("tool:N", title="Tool"),
                opacity=alt.condition(hover, alt.value(1), alt.value(0.2)),
                tooltip=[
                    alt.Tooltip("tool:N", title="Tool"),
                    alt.Tooltip("month:N", title="Month"),
                    alt.Tooltip("score:Q", title="Avg Sentiment", format=".2f"),
                    alt.Tooltip("count:Q", title="Items"),
                ],
            )
            .add_params(hover)
        )

    sources = summary.get("sourceBreakdown") or {}
    if any(sources.values()):
        src_df = pd.DataFrame([{"source": k, "count": v} for k, v in sources.items()])
        charts["source_breakdown"] = to_vega_spec(
            alt.Chart(src_df)
            .mark_arc(innerRadius=50)
            .encode(
                theta=alt.Theta("count:Q"),
                color=alt.Color("source:N", title="Source"),
                tooltip=[alt.Tooltip("source:N", title="Source"), alt.Tooltip("count:Q", title="Items")],
            )
        )

    multi_tool = {
        tool: {k: v for k, v in score.items() if k != "messages"}
        for tool, score in ((tool_sentiment or {}).get("scores") or {}).items()
    }

    return {
        "lastUpdated": perceived.get("lastUpdated"),
        "totalFeedbackAnalyzed": summary.get("totalFeedbackAnalyzed", 0),
        "sourceBreakdown": sources,
        "toolMentions": summary.get("toolMentions") or {},
        "tools": table,
        "multiToolScores": multi_tool,
        "charts": charts,
    }
