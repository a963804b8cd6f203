"""Agentic FTE calculators.

One agentic FTE is the productive output of one full-time employee. Claude
Code is measured from lines of code; Claude Enterprise and M365 Copilot
distribute a fixed per-active-user pool in proportion to engagement.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List

from core.data import round2


LINES_PRODUCTIVITY_FACTOR = 0.08
HOURS_PER_MONTH = 173
CLAUDE_ENTERPRISE_FTE_PER_USER = 0.28
M365_FTE_PER_USER = 0.14


def claude_code_fte(lines: float) -> float:
    if not lines or lines <= 0:
        return 0.0
    return round2(lines * LINES_PRODUCTIVITY_FACTOR / HOURS_PER_MONTH)


def department_fte(lines: float) -> float:
    return claude_code_fte(lines)


def _distribute(
    engagement: Dict[str, float], pool: float
) -> Dict[str, float]:
    total = sum(engagement.values())
    if total <= 0:
        return {email: 0.0 for email in engagement}
    return {email: round2(pool * score / total) for email, score in engagement.items()}


def claude_enterprise_fte(users: Iterable[Dict[str, Any]], active_users: int) -> Dict[str, float]:
    """Map lowercased email -> FTE for Claude Enterprise users with messages."""
    engagement: Dict[str, float] = {}
    for user in users:
        messages = float(user.get("messages") or 0)
        email = (user.get("email") or "").lower()
        if messages <= 0 or not email:
            continue
        artifacts = float(user.get("artifacts") or 0)
        engagement[email] = artifacts * 2 + messages / 100
    return _distribute(engagement, active_users * CLAUDE_ENTERPRISE_FTE_PER_USER)


def m365_copilot_fte(users: Iterable[Dict[str, Any]], active_users: int) -> Dict[str, float]:
    """Map lowercased email -> FTE for M365 Copilot users with prompts."""
    engagement: Dict[str, float] = {}
    for user in users:
        prompts = float(user.get("totalPrompts") or user.get("prompts") or 0)
        email = (user.get("email") or "").lower()
        if prompts <= 0 or not email:
            continue
        engagement[email] = float(user.get("promptsPerDay") or 0)
    return _distribute(engagement, active_users * M365_FTE_PER_USER)


def apply_agentic_fte(users: List[Dict[str, Any]], fte_map: Dict[str, float]) -> List[Dict[str, Any]]:
    for user in users:
        user["agenticFTE"] = fte_map.get((user.get("email") or "").lower(), 0)
    return users
