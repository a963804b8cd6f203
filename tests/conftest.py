from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict
from unittest.mock import MagicMock

import pytest

from core.config import DashboardPaths
from core.data import clear_caches, write_json
from core.orgchart import recompute_counts


def _node(node_id: str, name: str, title: str, *reports: Dict[str, Any], **extra: Any) -> Dict[str, Any]:
    email = name.lower().replace(" ", ".") + "@techco.com"
    return {"id": node_id, "name": name, "title": title, "email": email, "reports": list(reports), **extra}


SAMPLE_CHART = recompute_counts(
    {
        "organization": {
            "name": "TechCo",
            "ceo": _node(
                "1",
                "Grace Hopper",
                "Chief Executive Officer",
                _node(
                    "2",
                    "Ana Lopez",
                    "VP Engineering",
                    _node(
                        "4",
                        "Ben Ng",
                        "Engineering Manager",
                        _node("6", "Cara Diaz", "Software Engineer", employmentType="contingent"),
                    ),
                    _node("5", "Dan Wu", "Software Engineer"),
                ),
                _node("3", "Eve Stone", "VP Sales", _node("7", "Finn Park", "Account Executive")),
            ),
        }
    }
)

SAMPLE_AI_TOOLS = {
    "claudeCode": {
        "monthlyTrend": [
            {
                "month": "2025-01",
                "userDetails": [{"email": "dan.wu@techco.com", "lines": 4000, "agenticFTE": 1.0}],
            },
            {
                "month": "2025-02",
                "userDetails": [
                    {"email": "dan.wu@techco.com", "lines": 6000, "agenticFTE": 1.5},
                    {"email": "cara.diaz@techco.com", "lines": 1000, "agenticFTE": 0.25},
                ],
            },
        ],
        "powerUsers": [{"email": "dan.wu@techco.com", "name": "dan.wu"}],
        "lowEngagementUsers": [{"email": "cara.diaz@techco.com", "name": "cara.diaz"}],
    },
    "claudeEnterprise": {
        "powerUsers": [{"email": "finn.park@techco.com", "name": "Finn Park", "agenticFTE": 0.4}],
        "lowEngagementUsers": [],
    },
    "m365CopilotDeepDive": {
        "powerUsers": [{"email": "ana.lopez@techco.com", "name": "Ana Lopez", "agenticFTE": 0.2}],
    },
}


@pytest.fixture
def sample_chart() -> Dict[str, Any]:
    """A fresh, count-consistent seven person org chart."""
    return copy.deepcopy(SAMPLE_CHART)


@pytest.fixture
def sample_ai_tools() -> Dict[str, Any]:
    return copy.deepcopy(SAMPLE_AI_TOOLS)


@pytest.fixture
def dashboard_paths(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> DashboardPaths:
    """DashboardPaths rooted in tmp_path; DASHBOARD_ROOT points there too."""
    monkeypatch.setenv("DASHBOARD_ROOT", str(tmp_path))
    clear_caches()
    yield DashboardPaths(root=tmp_path)
    clear_caches()


@pytest.fixture
def written_chart(dashboard_paths: DashboardPaths, sample_chart: Dict[str, Any]) -> Dict[str, Any]:
    write_json(dashboard_paths.org_chart, sample_chart)
    return sample_chart


@pytest.fixture
def fake_claude() -> MagicMock:
    """Stand-in for ClaudeClient: set ``complete.return_value`` or ``side_effect`` per test."""
    client = MagicMock()
    client.pause.return_value = None
    return client
