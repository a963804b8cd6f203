from __future__ import annotations

from typing import Any, Dict, List, Optional

import altair as alt
import pandas as pd

alt.data_transformers.disable_max_rows()

TIER_ORDER = ["very_high", "high", "medium", "low", "minimal", "none"]
TIER_COLORS = ["#7c3aed", "#2563eb", "#0891b2", "#10b981", "#a3a3a3", "#e5e5e5"]


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def horizontal_bar(
    df: pd.DataFrame,
    *,
    value: str,
    label: str,
    title: str,
    value_format: str = ",.2f",
    tooltip: Optional[List[Any]] = None,
    color: str = "#2563eb",
) -> alt.Chart:
    """Sorted horizontal bars, largest first."""
    return (
        alt.Chart(df)
        .mark_bar(color=color)
        .encode(
            x=alt.X(f"{value}:Q", title=title, axis=alt.Axis(format=value_format)),
            y=alt.Y(f"{label}:N", title=None, sort="-x"),
            tooltip=tooltip or [alt.Tooltip(f"{label}:N"), alt.Tooltip(f"{value}:Q", format=value_format)],
        )
    )
