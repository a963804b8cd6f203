from __future__ import annotations

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from core.data import round2
from core.orgchart import get_root


logger = logging.getLogger(__name__)

TOOLS = ("claudeEnterprise", "m365Copilot", "claudeCode")
TREND_THRESHOLD_PCT = 5

_EMPTY_ENTRY = {key: {"current": 0.0, "previous": 0.0, "trend": "stable"} for key in TOOLS + ("total",)}


def calculate_trend(current: float, previous: Optional[float]) -> str:
    if not previous:
        return "new"
    change = (current - previous) / previous * 100
    if change < -TREND_THRESHOLD_PCT:
        return "down"
    if change > TREND_THRESHOLD_PCT:
        return "up"
    return "stable"


def _add_user(
    user_map: Dict[str, Dict[str, Any]],
    email: Optional[str],
    name: Optional[str],
    tool: str,
    current: float,
    previous: float,
) -> None:
    trend = calculate_trend(current, previous)
    # Entries are keyed twice so charts without email fields still match by name.
    for key in (email, name):
        if not key:
            continue
        entry = user_map.setdefault(key.lower(), copy.deepcopy(_EMPTY_ENTRY))
        entry[tool] = {"current": current, "previous": previous, "trend": trend}
        total_current = sum(entry[t]["current"] for t in TOOLS)
        total_previous = sum(entry[t]["previous"] for t in TOOLS)
        entry["total"] = {
            "current": total_current,
            "previous": total_previous,
            "trend": calculate_trend(total_current, total_previous),
        }


def _details_by_email(month: Optional[Dict[str, Any]]) -> Dict[str, float]:
    if not month:
        return {}
    return {
        (d.get("email") or "").lower(): float(d.get("agenticFTE") or 0)
        for d in month.get("userDetails") or []
        if d.get("email")
    }


def _users(section: Dict[str, Any], *keys: str) -> Iterable[Dict[str, Any]]:
    for key in keys:
        yield from section.get(key) or []


def build_user_fte_map(ai_tools: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Map lowercased email and lowercased name to per-tool current/previous FTE."""
    user_map: Dict[str, Dict[str, Any]] = {}

    claude_code = ai_tools.get("claudeCode") or {}
    monthly = claude_code.get("monthlyTrend") or []
    if monthly:
        latest = _details_by_email(monthly[-1])
        previous = _details_by_email(monthly[-2] if len(monthly) > 1 else None)
        for user in _users(claude_code, "powerUsers", "lowEngagementUsers"):
            email = (user.get("email") or "").lower()
            if not email:
                continue
            _add_user(user_map, email, user.get("name"), "claudeCode", latest.get(email, 0.0), previous.get(email, 0.0))

    # Enterprise and M365 exports carry no month-over-month history yet.
    for user in _users(ai_tools.get("claudeEnterprise") or {}, "powerUsers", "lowEngagementUsers"):
        fte = float(user.get("agenticFTE") or 0)
        _add_user(user_map, user.get("email"), user.get("name"), "claudeEnterprise", fte, fte)

    for user in _users(ai_tools.get("m365CopilotDeepDive") or {}, "powerUsers"):
        fte = float(user.get("agenticFTE") or 0)
        _add_user(user_map, user.get("email"), user.get("name"), "m365Copilot", fte, fte)

    return user_map


def lookup_employee(node: Dict[str, Any], user_map: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
    for key in (node.get("email"), node.get("name")):
        if key and key.lower() in user_map:
            return user_map[key.lower()]
    return _EMPTY_ENTRY


def enrich_node(node: Dict[str, Any], user_map: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
    """Attach agenticFTE to the node and roll teamAgenticFTE up from its reports."""
    data = lookup_employee(node, user_map)
    node["agenticFTE"] = {
        "current": round2(data["total"]["current"]),
        "previous": round2(data["total"]["previous"]),
        "trend": data["total"]["trend"],
        "breakdown": {
            tool: {"current": round2(data[tool]["current"]), "trend": data[tool]["trend"]} for tool in TOOLS
        },
    }

    team_current = node["agenticFTE"]["current"]
    team_previous = node["agenticFTE"]["previous"]
    team_breakdown = {tool: node["agenticFTE"]["breakdown"][tool]["current"] for tool in TOOLS}

    for report in node.get("reports") or []:
        enrich_node(report, user_map)
        team = report["teamAgenticFTE"]
        team_current += team["current"]
        team_previous += team["previous"]
        for tool in TOOLS:
            team_breakdown[tool] += team["breakdown"][tool]["current"]

    node["teamAgenticFTE"] = {
        "current": round2(team_current),
        "previous": round2(team_previous),
        "trend": calculate_trend(team_current, team_previous),
        "breakdown": {tool: {"current": round2(team_breakdown[tool])} for tool in TOOLS},
    }
    return node


def enrich_org_chart(chart: Dict[str, Any], ai_tools: Dict[str, Any]) -> Dict[str, Any]:
    user_map = build_user_fte_map(ai_tools)
    logger.info("Built agentic FTE map with %d keys", len(user_map))

    root = enrich_node(get_root(chart), user_map)
    org = chart["organization"]
    org["totalAgenticFTE"] = root["teamAgenticFTE"]["current"]
    org["agenticFTEBreakdown"] = root["teamAgenticFTE"]["breakdown"]
    org["lastEnriched"] = datetime.now(timezone.utc).isoformat()
    logger.info(
        "Organization agentic FTE %.1f/mo (trend %s) across %s employees",
        org["totalAgenticFTE"],
        root["teamAgenticFTE"]["trend"],
        org.get("totalEmployees", "?"),
    )
    return chart
