"""
Usage export ingestion tests (Claude Code CSVs, M365 Copilot report, Claude Enterprise exports)
"""
from __future__ import annotations

import json
import os
import zipfile

import pytest

from core.data import read_json
from core.hierarchy import build_employee_directory
from core.usage import (
    UsageDataError,
    build_ai_tools_data,
    find_claude_code_files,
    find_m365_report,
    ingest_claude_code,
    ingest_claude_enterprise,
    ingest_m365_copilot,
    ingest_usage,
)


@pytest.fixture
def hierarchy(sample_chart):
    return build_employee_directory(sample_chart)


def _claude_code(usage_dir):
    (usage_dir / "claude-code").mkdir(parents=True)
    (usage_dir / "claude_code_team_2025_01_01_to_2025_01_31.csv").write_text(
        'User,Lines this Month\nDan.Wu@techco.com ,"4,000"\ncara.diaz@techco.com,0\n'
    )
    (usage_dir / "claude-code" / "claude_code_team_2025_02_01_to_2025_02_28.csv").write_text(
        "User,Lines this Month\ndan.wu@techco.com,8650\ncara.diaz@techco.com,1000\n"
    )
    (usage_dir / "claude-code" / "notes.csv").write_text("ignored\n")


def _m365(usage_dir):
    header = "User Principal Name,Display Name,Prompts submitted for All Apps,Active Usage Days for All Apps\n"
    (usage_dir / "m365-copilot").mkdir(parents=True)
    (usage_dir / "m365-copilot" / "M365CopilotActivityUserDetail Last 6 months.csv").write_text(
        header
        + "ana.lopez@techco.com,Ana Lopez,90,30\n"
        + "finn.park@techco.com,Finn Park,5,5\n"
        + ",Nobody,7,7\n"
        + "eve.stone@techco.com,Eve Stone,0,0\n"
    )
    (usage_dir / "m365-copilot" / "M365CopilotActivityUserDetail 30 days.csv").write_text(header)


USERS = [
    {"uuid": "u1", "full_name": "Finn Park", "email_address": "Finn.Park@techco.com"},
    {"uuid": "u2", "full_name": "Dan Wu", "email_address": "dan.wu@techco.com"},
]


def _enterprise(usage_dir):
    ent = usage_dir / "claude-enterprise"
    nested = ent / "claude-ent-data-2025-01" / "data-abc123"
    nested.mkdir(parents=True)
    (nested / "conversations.json").write_text(
        json.dumps(
            [
                {
                    "uuid": "c1",
                    "account": {"uuid": "u1"},
                    "created_at": "2025-01-05T09:00:00Z",
                    "chat_messages": [
                        {"sender": "human", "files": [{"file_name": "brief.pdf"}]},
                        {"sender": "assistant", "attachments": [{"file_name": "plan.md"}], "files": []},
                    ],
                }
            ]
        )
    )
    (nested / "users.json").write_text(json.dumps(USERS[:1]))

    with zipfile.ZipFile(ent / "claude-ent-data-2025-02.zip", "w") as zf:
        zf.writestr(
            "export/conversations.json",
            json.dumps(
                [
                    {
                        "uuid": "c2",
                        "account": {"uuid": "u1"},
                        "created_at": "2025-02-01T09:00:00Z",
                        "chat_messages": [{"sender": "human"}, {"sender": "assistant"}],
                    },
                    {"uuid": "c3", "account": {"uuid": "u2"}, "chat_messages": [{"sender": "human"}]},
                    {"uuid": "c4", "account": {"uuid": "ghost"}, "chat_messages": [{"sender": "human"}]},
                ]
            ),
        )
        zf.writestr("export/users.json", json.dumps(USERS))
    (ent / "README.txt").write_text("not an export")


# --------------------------------------------------------------------------
# Claude Code
# --------------------------------------------------------------------------

class TestClaudeCode:
    def test_finds_reports_in_both_locations(self, tmp_path):
        _claude_code(tmp_path)
        assert [m for m, _ in find_claude_code_files(tmp_path)] == ["2025-01", "2025-02"]

    def test_ingest(self, tmp_path, hierarchy):
        _claude_code(tmp_path)
        data = ingest_claude_code(tmp_path, hierarchy)

        assert data["totalUsers"] == 2
        assert data["totalLines"] == 13650
        jan, feb = data["monthlyTrend"]
        assert jan["monthLabel"] == "Jan 2025"
        assert jan["users"] == 1
        assert jan["userDetails"][0] == {
            "email": "dan.wu@techco.com",
            "name": "dan.wu",
            "department": "Engineering",
            "lines": 4000,
            "agenticFTE": 1.85,
        }
        assert feb["linesPerUser"] == 4825
        assert feb["byDept"] == [
            {"department": "Engineering", "users": 2, "totalLines": 9650, "linesPerUser": 4825, "agenticFTE": 4.46}
        ]
        assert [u["email"] for u in data["powerUsers"]] == ["dan.wu@techco.com", "cara.diaz@techco.com"]
        assert data["powerUsers"][0]["agenticFTE"] == 4.0
        assert [u["email"] for u in data["lowEngagementUsers"]] == ["cara.diaz@techco.com"]

    def test_same_month_reports_are_summed(self, tmp_path):
        (tmp_path / "claude_code_team_2025_03_01_to_2025_03_15.csv").write_text("User,Lines this Month\na@techco.com,100\n")
        (tmp_path / "claude_code_team_2025_03_16_to_2025_03_31.csv").write_text("User,Lines this Month\na@techco.com,50\n")
        data = ingest_claude_code(tmp_path)
        assert data["monthlyTrend"][0]["totalLines"] == 150
        assert data["monthlyTrend"][0]["byDept"][0]["department"] == "Unknown"

    def test_bad_columns(self, tmp_path):
        (tmp_path / "claude_code_team_2025_01_01_to_2025_01_31.csv").write_text("Email,Lines\na@techco.com,1\n")
        with pytest.raises(UsageDataError):
            ingest_claude_code(tmp_path)

    def test_no_reports(self, tmp_path):
        assert ingest_claude_code(tmp_path) is None


# --------------------------------------------------------------------------
# M365 Copilot
# --------------------------------------------------------------------------

class TestM365:
    def test_prefers_six_month_report(self, tmp_path):
        _m365(tmp_path)
        newer = tmp_path / "m365-copilot" / "M365CopilotActivityUserDetail 30 days.csv"
        os.utime(newer, (newer.stat().st_mtime + 60, newer.stat().st_mtime + 60))
        assert "Last 6 months" in find_m365_report(tmp_path).name

    def test_ingest(self, tmp_path, hierarchy):
        _m365(tmp_path)
        data = ingest_m365_copilot(tmp_path, hierarchy)
        assert data["totalUsers"] == 3
        assert data["activeUsers"] == 2
        assert data["totalPrompts"] == 95
        assert data["avgPromptsPerUser"] == 47.5
        ana, finn = data["powerUsers"]
        assert (ana["name"], ana["promptsPerDay"], ana["agenticFTE"]) == ("Ana Lopez", 3.0, 0.21)
        assert finn["agenticFTE"] == 0.07
        assert ana["department"] == "Engineering"
        assert [u["name"] for u in data["lowEngagementUsers"]] == ["Finn Park"]
        assert data["agenticFTE"] == 0.28

    def test_missing_columns(self, tmp_path):
        (tmp_path / "M365CopilotActivityUserDetail.csv").write_text("Email,Prompts\na@techco.com,1\n")
        with pytest.raises(UsageDataError):
            ingest_m365_copilot(tmp_path)


# --------------------------------------------------------------------------
# Claude Enterprise
# --------------------------------------------------------------------------

class TestClaudeEnterprise:
    def test_ingest_dir_and_zip(self, tmp_path, hierarchy):
        _enterprise(tmp_path)
        data = ingest_claude_enterprise(tmp_path, hierarchy)

        assert data["exports"] == ["claude-ent-data-2025-01", "claude-ent-data-2025-02.zip"]
        assert data["totalConversations"] == 4
        assert data["totalUsers"] == 2
        assert data["activeUsers"] == 2
        assert data["totalMessages"] == 5
        finn, dan = data["powerUsers"]
        assert finn["email"] == "finn.park@techco.com"
        assert (finn["conversations"], finn["messages"], finn["artifacts"], finn["filesUploaded"]) == (2, 4, 1, 1)
        assert finn["lastActivity"] == "2025-02-01T09:00:00Z"
        assert finn["avgMessagesPerConv"] == 2.0
        assert finn["department"] == "Sales"
        assert finn["agenticFTE"] == 0.56
        assert dan["messages"] == 1
        assert [u["name"] for u in data["lowEngagementUsers"]] == ["Dan Wu", "Finn Park"]

    def test_no_exports(self, tmp_path):
        assert ingest_claude_enterprise(tmp_path) is None


# --------------------------------------------------------------------------
# ai-tools-data.json
# --------------------------------------------------------------------------

def test_build_all_sections(tmp_path):
    _claude_code(tmp_path)
    _m365(tmp_path)
    _enterprise(tmp_path)
    data = build_ai_tools_data(tmp_path)
    assert {"claudeCode", "m365CopilotDeepDive", "claudeEnterprise", "lastUpdated"} == set(data)


def test_ingest_usage_feeds_enrichment(tmp_path, hierarchy, sample_chart):
    from core.enrichment import enrich_org_chart

    _claude_code(tmp_path)
    target = ingest_usage(tmp_path, tmp_path / "out" / "ai-tools-data.json", hierarchy=hierarchy)
    chart = enrich_org_chart(sample_chart, read_json(target))
    assert chart["organization"]["totalAgenticFTE"] == pytest.approx(4.46)


def test_ingest_usage_without_exports(tmp_path):
    with pytest.raises(UsageDataError):
        ingest_usage(tmp_path, tmp_path / "ai-tools-data.json")
