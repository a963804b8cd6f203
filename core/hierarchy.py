from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from core.config import EMAIL_DOMAIN
from core.data import read_json
from core.orgchart import branch_department, get_root


logger = logging.getLogger(__name__)

UNKNOWN_DEPARTMENT = "Unknown"
EXECUTIVE_DEPARTMENT = "Executive"


@dataclass(frozen=True)
class DirectoryConfig:
    """Department names keyed by department-head name, plus alternate email addresses."""

    departments: Dict[str, str] = field(default_factory=dict)
    email_aliases: Dict[str, str] = field(default_factory=dict)


def load_directory_config(path: Path) -> DirectoryConfig:
    raw = read_json(path, {}) or {}
    return DirectoryConfig(
        departments={str(k): str(v) for k, v in (raw.get("departments") or {}).items()},
        email_aliases={str(k).lower().strip(): str(v).lower().strip() for k, v in (raw.get("emailAliases") or {}).items()},
    )


def _letters(value: str) -> str:
    return re.sub(r"[^a-z]", "", value.lower())


class EmailGenerator:
    """Generate unique {first initial}{last name} addresses, disambiguating repeats."""

    def __init__(self, domain: str = EMAIL_DOMAIN):
        self.domain = domain
        self.counts: Dict[str, int] = {}

    def generate(self, name: str) -> Optional[str]:
        parts = (name or "").split()
        if len(parts) < 2:
            return None
        first, last = parts[0], parts[-1]
        middle = parts[1] if len(parts) == 3 else None
        local = f"{first[0].lower()}{_letters(last)}"
        base = f"{local}@{self.domain}"

        seen = self.counts.get(base, 0)
        if seen == 0:
            email = base
        elif seen == 1:
            email = f"{first.lower()}.{_letters(last)}@{self.domain}"
        elif seen == 2 and middle:
            email = f"{first[0].lower()}{middle[0].lower()}{_letters(last)}@{self.domain}"
        else:
            email = f"{local}{seen + 1}@{self.domain}"
        self.counts[base] = seen + 1
        return email


def _department_name(head: Dict[str, Any], config: DirectoryConfig) -> str:
    return branch_department(head, config.departments)


def build_employee_directory(chart: Dict[str, Any], config: Optional[DirectoryConfig] = None) -> List[Dict[str, Any]]:
    """Flatten the chart into directory records with department and team context.

    The department is set by the CEO's direct report at the top of each branch;
    the team is set by the nearest manager below that head.
    """
    config = config or DirectoryConfig()
    generator = EmailGenerator()
    ceo = get_root(chart)
    records: List[Dict[str, Any]] = []

    def _email(node: Dict[str, Any]) -> Optional[str]:
        generated = generator.generate(node.get("name") or "")
        return (node.get("email") or generated or "").lower().strip() or None

    records.append(
        {
            "name": ceo.get("name"),
            "title": ceo.get("title"),
            "email": _email(ceo),
            "department": EXECUTIVE_DEPARTMENT,
            "departmentHead": ceo.get("name"),
            "team": None,
            "isCEO": True,
            "isDepartmentHead": False,
            "isTeamLeader": False,
            "level": 0,
        }
    )

    def _walk(node: Dict[str, Any], head: Optional[Dict[str, Any]], leader: Optional[Dict[str, Any]], level: int) -> None:
        email = _email(node)
        if not email:
            logger.warning("Could not generate email for %r", node.get("name"))
            return
        is_head = head is None
        reports = node.get("reports") or []
        is_leader = bool(reports) and not is_head
        dept_head = node if is_head else head
        team_leader = leader or (node if is_leader else None)
        records.append(
            {
                "name": node.get("name"),
                "title": node.get("title"),
                "email": email,
                "department": _department_name(dept_head, config),
                "departmentHead": dept_head.get("name"),
                "team": team_leader.get("name") if team_leader else None,
                "isCEO": False,
                "isDepartmentHead": is_head,
                "isTeamLeader": is_leader,
                "level": level,
            }
        )
        for report in reports:
            _walk(report, dept_head, leader or (node if is_leader else None), level + 1)

    for head in ceo.get("reports") or []:
        _walk(head, None, None, 1)

    logger.info("Extracted %d employees from hierarchy", len(records))
    return records


def email_index(directory: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    return {r["email"]: r for r in directory if r.get("email")}


def resolve_email_alias(email: str, aliases: Optional[Dict[str, str]] = None) -> str:
    normalized = (email or "").lower().strip()
    return (aliases or {}).get(normalized, normalized)


def is_current_employee(email: str, index: Dict[str, Dict[str, Any]], aliases: Optional[Dict[str, str]] = None) -> bool:
    return resolve_email_alias(email, aliases) in index


def get_department_info(
    email: str, index: Dict[str, Dict[str, Any]], aliases: Optional[Dict[str, str]] = None
) -> Dict[str, Any]:
    record = index.get(resolve_email_alias(email, aliases))
    if record is None:
        return {"department": UNKNOWN_DEPARTMENT, "team": None, "title": None, "name": None, "isCurrentEmployee": False}
    return {
        "department": record["department"],
        "team": record.get("team"),
        "title": record.get("title"),
        "name": record.get("name"),
        "isCurrentEmployee": True,
    }


def department_headcounts(directory: List[Dict[str, Any]]) -> Dict[str, int]:
    df = pd.DataFrame(directory)
    if df.empty:
        return {}
    counts = df[~df["isCEO"]]["department"].value_counts()
    return {str(k): int(v) for k, v in counts.items()}


def attach_aliases(directory: List[Dict[str, Any]], aliases: Dict[str, str]) -> List[Dict[str, Any]]:
    by_primary: Dict[str, List[str]] = {}
    for alias, primary in aliases.items():
        by_primary.setdefault(primary, []).append(alias)
    for record in directory:
        record["aliases"] = sorted(by_primary.get(record.get("email") or "", []))
    return directory


def email_aliases(directory: List[Dict[str, Any]]) -> Dict[str, str]:
    """alias -> primary email, read back from hierarchy.json records."""
    return {
        alias.lower(): record["email"]
        for record in directory
        if record.get("email")
        for alias in record.get("aliases") or []
    }


def department_for_email(email: Optional[str], hierarchy: Optional[List[Dict[str, Any]]]) -> str:
    """Look up a department in hierarchy.json records by primary email or alias."""
    if not hierarchy or not email:
        return UNKNOWN_DEPARTMENT
    needle = email.lower().strip()
    for record in hierarchy:
        if (record.get("email") or "").lower() == needle or needle in [a.lower() for a in record.get("aliases") or []]:
            return record.get("department") or UNKNOWN_DEPARTMENT
    return UNKNOWN_DEPARTMENT
