from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class OrgViewFilters:
    department: Optional[str] = None
    max_depth: Optional[int] = None
    min_fte: float = 0.0
    top_n: int = 15


def _as_int(value: object, default: Optional[int]) -> Optional[int]:
    if value is None or value == "":
        return default
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default


def normalize_org_filters(raw: dict, *, available_departments: Optional[List[str]] = None) -> OrgViewFilters:
    department = (raw.get("department") or "").strip() or None
    if department and available_departments is not None and department not in available_departments:
        department = None

    max_depth = _as_int(raw.get("max_depth"), None)
    if max_depth is not None:
        max_depth = max(0, min(20, max_depth))

    try:
        min_fte = float(raw.get("min_fte") or 0.0)
    except (TypeError, ValueError):
        min_fte = 0.0
    min_fte = max(0.0, min_fte)

    top_n = _as_int(raw.get("top_n", 15), 15)
    top_n = max(1, min(200, top_n))

    return OrgViewFilters(department=department, max_depth=max_depth, min_fte=min_fte, top_n=top_n)
