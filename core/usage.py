"""Tool usage exports -> ``ai-tools-data.json``.

Reads the Claude Code team CSVs, the M365 Copilot activity report and the
Claude Enterprise conversation exports found under the usage directory and
produces the per-user and per-month figures that feed org chart enrichment.
"""

from __future__ import annotations

import json
import logging
import re
import zipfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from core.agentic_fte import (
    apply_agentic_fte,
    claude_code_fte,
    claude_enterprise_fte,
    department_fte,
    m365_copilot_fte,
)
from core.data import round2, round_half_up, write_json
from core.hierarchy import UNKNOWN_DEPARTMENT, department_for_email


logger = logging.getLogger(__name__)

CLAUDE_CODE_RE = re.compile(r"^claude_code_team_(\d{4})_(\d{2})_(\d{2})_to_.*\.csv$")
ENTERPRISE_PREFIX = "claude-ent-data"
LOW_ENGAGEMENT_LINES = 5000
LOW_ENGAGEMENT_PROMPTS = 10
CLAUDE_CODE_TOP_N = 10
M365_TOP_N = 20
ENTERPRISE_TOP_N = 20

M365_EMAIL = "User Principal Name"
M365_NAME = "Display Name"
M365_PROMPTS = "Prompts submitted for All Apps"
M365_DAYS = "Active Usage Days for All Apps"


class UsageDataError(Exception):
    """Raised when a usage export is missing required columns or files."""


def _read_csv(path: Path) -> pd.DataFrame:
    df = pd.read_csv(path, dtype=str, keep_default_na=False, encoding="utf-8-sig", skipinitialspace=True)
    df.columns = [str(c).strip() for c in df.columns]
    return df


def _to_int(value: Any) -> int:
    num = pd.to_numeric(str(value or "").replace(",", "").strip(), errors="coerce")
    return 0 if pd.isna(num) else int(num)


def _candidates(usage_dir: Path, subfolder: str) -> List[Path]:
    """Entries from the usage dir and its tool subfolder; the subfolder wins on name clashes."""
    found: Dict[str, Path] = {}
    for folder in (usage_dir, usage_dir / subfolder):
        if folder.is_dir():
            for entry in folder.iterdir():
                found[entry.name] = entry
    return [found[name] for name in sorted(found)]


def _department(email: str, hierarchy: Optional[List[Dict[str, Any]]]) -> str:
    return department_for_email(email, hierarchy) if hierarchy else UNKNOWN_DEPARTMENT


# Claude Code


def find_claude_code_files(usage_dir: Path) -> List[Tuple[str, Path]]:
    out = []
    for path in _candidates(usage_dir, "claude-code"):
        m = CLAUDE_CODE_RE.match(path.name)
        if m:
            out.append((f"{m.group(1)}-{m.group(2)}", path))
    return out


def _month_label(month: str) -> str:
    return datetime.strptime(month, "%Y-%m").strftime("%b %Y")


def ingest_claude_code(usage_dir: Path, hierarchy: Optional[List[Dict[str, Any]]] = None) -> Optional[Dict[str, Any]]:
    files = find_claude_code_files(usage_dir)
    if not files:
        logger.warning("No Claude Code reports in %s", usage_dir)
        return None

    frames = []
    for month, path in files:
        df = _read_csv(path)
        if "User" not in df.columns or "Lines this Month" not in df.columns:
            raise UsageDataError(f"{path.name}: expected 'User' and 'Lines this Month' columns")
        logger.info("Loading %s (%d users)", path.name, len(df))
        frames.append(
            pd.DataFrame(
                {
                    "month": month,
                    "email": df["User"].str.strip().str.lower(),
                    "lines": df["Lines this Month"].map(_to_int),
                }
            )
        )
    rows = pd.concat(frames, ignore_index=True)
    rows = rows[(rows["email"] != "") & (rows["lines"] > 0)]
    if rows.empty:
        logger.warning("Claude Code reports in %s contain no active users", usage_dir)
        return None
    # Several reports for the same month are summed per user.
    rows = rows.groupby(["month", "email"], as_index=False)["lines"].sum()
    rows["department"] = rows["email"].map(lambda e: _department(e, hierarchy))

    monthly: List[Dict[str, Any]] = []
    for month, group in rows.groupby("month", sort=True):
        group = group.sort_values("lines", ascending=False, kind="stable")
        by_dept = (
            group.groupby("department")
            .agg(users=("email", "nunique"), totalLines=("lines", "sum"))
            .reset_index()
            .sort_values("totalLines", ascending=False, kind="stable")
        )
        total = int(group["lines"].sum())
        users = int(group["email"].nunique())
        monthly.append(
            {
                "month": month,
                "monthLabel": _month_label(month),
                "totalLines": total,
                "users": users,
                "linesPerUser": int(round_half_up(total / users)) if users else 0,
                "agenticFTE": department_fte(total),
                "byDept": [
                    {
                        "department": r.department,
                        "users": int(r.users),
                        "totalLines": int(r.totalLines),
                        "linesPerUser": int(round_half_up(r.totalLines / r.users)) if r.users else 0,
                        "agenticFTE": department_fte(int(r.totalLines)),
                    }
                    for r in by_dept.itertuples(index=False)
                ],
                "userDetails": [
                    {
                        "email": r.email,
                        "name": r.email.split("@")[0],
                        "department": r.department,
                        "lines": int(r.lines),
                        "agenticFTE": claude_code_fte(int(r.lines)),
                    }
                    for r in group.itertuples(index=False)
                ],
            }
        )

    latest = monthly[-1]["userDetails"]
    power = latest[:CLAUDE_CODE_TOP_N]
    low = sorted((u for u in latest if 0 < u["lines"] < LOW_ENGAGEMENT_LINES), key=lambda u: u["lines"])
    return {
        "monthlyTrend": monthly,
        "totalUsers": int(rows["email"].nunique()),
        "totalLines": int(rows["lines"].sum()),
        "agenticFTE": monthly[-1]["agenticFTE"],
        "powerUsers": power,
        "lowEngagementUsers": low[:CLAUDE_CODE_TOP_N],
        "filesProcessed": [p.name for _, p in files],
    }


# M365 Copilot


def find_m365_report(usage_dir: Path) -> Optional[Path]:
    reports = [
        p
        for p in _candidates(usage_dir, "m365-copilot")
        if p.suffix == ".csv" and "365" in p.name and "CopilotActivityUserDetail" in p.name
    ]
    overview = [p for p in reports if "Last 6 months" in p.name or "180" in p.name] or reports
    if not overview:
        return None
    return max(overview, key=lambda p: p.stat().st_mtime)


def ingest_m365_copilot(usage_dir: Path, hierarchy: Optional[List[Dict[str, Any]]] = None) -> Optional[Dict[str, Any]]:
    path = find_m365_report(usage_dir)
    if path is None:
        logger.warning("No M365 Copilot activity report in %s", usage_dir)
        return None
    df = _read_csv(path)
    missing = [c for c in (M365_EMAIL, M365_PROMPTS, M365_DAYS) if c not in df.columns]
    if missing:
        raise UsageDataError(f"{path.name}: missing columns {missing}")
    logger.info("Using M365 report %s (%d users)", path.name, len(df))

    users: List[Dict[str, Any]] = []
    for row in df.to_dict(orient="records"):
        email = (row.get(M365_EMAIL) or "").strip().lower()
        if not email:
            continue
        prompts = _to_int(row.get(M365_PROMPTS))
        days = _to_int(row.get(M365_DAYS))
        users.append(
            {
                "email": email,
                "name": (row.get(M365_NAME) or "").strip() or email.split("@")[0],
                "department": _department(email, hierarchy),
                "totalPrompts": prompts,
                "activeDays": days,
                "promptsPerDay": round2(prompts / days) if days else 0.0,
            }
        )

    active = [u for u in users if u["totalPrompts"] > 0]
    apply_agentic_fte(users, m365_copilot_fte(users, len(active)))
    ranked = sorted(active, key=lambda u: u["totalPrompts"], reverse=True)
    low = sorted(
        (u for u in active if u["totalPrompts"] < LOW_ENGAGEMENT_PROMPTS), key=lambda u: u["totalPrompts"]
    )
    total_prompts = sum(u["totalPrompts"] for u in users)
    return {
        "sourceFile": path.name,
        "totalUsers": len(users),
        "activeUsers": len(active),
        "totalPrompts": total_prompts,
        "avgPromptsPerUser": round2(total_prompts / len(active)) if active else 0.0,
        "agenticFTE": round2(sum(u["agenticFTE"] for u in users)),
        "powerUsers": ranked[:M365_TOP_N],
        "lowEngagementUsers": low[:M365_TOP_N],
    }


# Claude Enterprise


def _load_zip_export(path: Path) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    conversations: List[Dict[str, Any]] = []
    users: List[Dict[str, Any]] = []
    with zipfile.ZipFile(path) as zf:
        for member in zf.namelist():
            name = member.rsplit("/", 1)[-1]
            if name == "conversations.json":
                conversations = json.loads(zf.read(member).decode("utf-8"))
            elif name == "users.json":
                users = json.loads(zf.read(member).decode("utf-8"))
    return conversations, users


def _load_dir_export(path: Path) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    data_dir = path
    if not (path / "conversations.json").exists():
        nested = sorted(p for p in path.iterdir() if p.is_dir() and p.name.startswith("data-"))
        if nested:
            data_dir = nested[0]
    out = []
    for name in ("conversations.json", "users.json"):
        target = data_dir / name
        out.append(json.loads(target.read_text(encoding="utf-8")) if target.exists() else [])
    return out[0], out[1]


def load_enterprise_exports(usage_dir: Path) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]], List[str]]:
    conversations: List[Dict[str, Any]] = []
    users: Dict[str, Dict[str, Any]] = {}
    names: List[str] = []
    for path in _candidates(usage_dir, "claude-enterprise"):
        if not path.name.startswith(ENTERPRISE_PREFIX):
            continue
        if path.suffix == ".zip":
            convs, export_users = _load_zip_export(path)
        elif path.is_dir():
            convs, export_users = _load_dir_export(path)
        else:
            continue
        logger.info("Loaded %s: %d conversations, %d users", path.name, len(convs), len(export_users))
        names.append(path.name)
        conversations.extend(convs)
        # Later exports add users who joined after earlier ones.
        for user in export_users:
            users.setdefault(user.get("uuid"), user)
    return conversations, list(users.values()), names


def _count(items: Optional[List[Any]]) -> int:
    return len(items or [])


def enterprise_user_metrics(
    conversations: List[Dict[str, Any]], users: List[Dict[str, Any]], hierarchy: Optional[List[Dict[str, Any]]] = None
) -> List[Dict[str, Any]]:
    lookup = {
        u["uuid"]: (u["email_address"].strip().lower(), u.get("full_name"))
        for u in users
        if u.get("uuid") and u.get("email_address")
    }
    metrics: Dict[str, Dict[str, Any]] = {}
    for conv in conversations:
        account = (conv.get("account") or {}).get("uuid")
        if account not in lookup:
            continue
        email, full_name = lookup[account]
        entry = metrics.setdefault(
            email,
            {
                "email": email,
                "name": full_name or email.split("@")[0],
                "department": _department(email, hierarchy),
                "conversations": 0,
                "messages": 0,
                "artifacts": 0,
                "filesUploaded": 0,
                "lastActivity": None,
            },
        )
        messages = conv.get("chat_messages") or []
        entry["conversations"] += 1
        entry["messages"] += len(messages)
        for msg in messages:
            if msg.get("sender") == "assistant":
                entry["artifacts"] += _count(msg.get("attachments")) + _count(msg.get("files"))
            elif msg.get("sender") == "human":
                entry["filesUploaded"] += _count(msg.get("files"))
        stamp = conv.get("created_at") or conv.get("updated_at")
        if stamp and (entry["lastActivity"] is None or stamp > entry["lastActivity"]):
            entry["lastActivity"] = stamp

    for entry in metrics.values():
        entry["avgMessagesPerConv"] = (
            round_half_up(entry["messages"] / entry["conversations"], 1) if entry["conversations"] else 0
        )
    return sorted(metrics.values(), key=lambda u: (u["artifacts"], u["messages"]), reverse=True)


def ingest_claude_enterprise(
    usage_dir: Path, hierarchy: Optional[List[Dict[str, Any]]] = None
) -> Optional[Dict[str, Any]]:
    conversations, users, names = load_enterprise_exports(usage_dir)
    if not names:
        logger.warning("No Claude Enterprise exports in %s", usage_dir)
        return None
    ranked = enterprise_user_metrics(conversations, users, hierarchy)
    active = [u for u in ranked if u["messages"] > 0]
    apply_agentic_fte(ranked, claude_enterprise_fte(ranked, len(active)))
    low = list(reversed(active))
    return {
        "exports": names,
        "totalConversations": len(conversations),
        "totalUsers": len(users),
        "activeUsers": len(active),
        "totalMessages": sum(u["messages"] for u in ranked),
        "totalArtifacts": sum(u["artifacts"] for u in ranked),
        "agenticFTE": round2(sum(u["agenticFTE"] for u in ranked)),
        "powerUsers": active[:ENTERPRISE_TOP_N],
        "lowEngagementUsers": low[:ENTERPRISE_TOP_N],
    }


def build_ai_tools_data(usage_dir: Path, hierarchy: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    data: Dict[str, Any] = {"lastUpdated": datetime.now(timezone.utc).isoformat()}
    for key, ingest in (
        ("claudeCode", ingest_claude_code),
        ("m365CopilotDeepDive", ingest_m365_copilot),
        ("claudeEnterprise", ingest_claude_enterprise),
    ):
        section = ingest(usage_dir, hierarchy)
        if section is not None:
            data[key] = section
    return data


def ingest_usage(usage_dir: Path, output_path: Path, *, hierarchy: Optional[List[Dict[str, Any]]] = None) -> Path:
    data = build_ai_tools_data(usage_dir, hierarchy)
    sections = [k for k in ("claudeCode", "m365CopilotDeepDive", "claudeEnterprise") if k in data]
    if not sections:
        raise UsageDataError(f"No usage exports found in {usage_dir}")
    target = write_json(output_path, data)
    logger.info("Wrote %s with sections: %s", target, ", ".join(sections))
    return target
