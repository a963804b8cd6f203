from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class OrgViewFiltersModel(BaseModel):
    department: Optional[str] = None
    max_depth: Optional[int] = None
    min_fte: float = 0.0
    top_n: int = 15


class OrgStatsResponse(BaseModel):
    totalEmployees: int
    totalAgenticFTE: float
    effectiveCapacity: float
    capacityGain: float
    breakdown: Dict[str, Dict[str, float]] = Field(default_factory=dict)


class ValidationResponse(BaseModel):
    valid: bool
    violations: List[str] = Field(default_factory=list)


class SnapshotEntry(BaseModel):
    date: str
    file: str
    path: str
    sizeKB: float
    totalEmployees: Optional[int] = None


class SnapshotListResponse(BaseModel):
    snapshots: List[SnapshotEntry] = Field(default_factory=list)
