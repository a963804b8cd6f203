"""
Sentiment classification, perceived-value aggregation and multi-tool scoring tests
"""
from __future__ import annotations

import json

import pytest

from core.data import read_json, round_half_ceiling, write_json
from core.llm import LLMError
from core.metrics_sentiment import compute_perceived_value
from core.sentiment_aggregate import (
    aggregate_sentiment,
    build_perceived_value,
    calculate_department_sentiment,
    calculate_sentiment_trend,
    group_by_tool,
)
from core.sentiment_analysis import (
    SentimentAnalyzer,
    analyze_sources,
    calculate_metrics,
    extract_pain_points,
    extract_top_themes,
    normalize_result,
)
from core.sentiment_multitool import (
    NOT_MENTIONED,
    calculate_tool_scores,
    process_in_batches,
    redistribute_by_tool,
    run_multi_tool_sentiment,
)


def _analyzed(score, *, tool="Claude Code", topics=("productivity",), date="2025-01-15", dept="Engineering", source="slack"):
    return {
        "text": f"feedback scored {score}",
        "author": "Dan Wu",
        "department": dept,
        "date": date,
        "source": source,
        "sentiment": {
            "sentiment_score": score,
            "confidence": 0.9,
            "topics": list(topics),
            "tool_mentioned": tool,
            "intent": "praise" if score > 0 else "complaint",
            "summary": f"summary {score}",
        },
    }


@pytest.fixture
def analyzed():
    return [
        _analyzed(0.8, date="2025-01-10"),
        _analyzed(0.6, date="2025-01-20", topics=("productivity", "features")),
        _analyzed(-0.6, date="2025-02-05", topics=("cost",), dept="Sales", source="survey"),
        _analyzed(0.0, date="2025-02-07", tool="M365 Copilot"),
    ]


# --------------------------------------------------------------------------
# Classification
# --------------------------------------------------------------------------

class TestNormalizeResult:
    def test_zero_score_is_valid(self):
        out = normalize_result({"sentiment_score": 0, "confidence": 0.5, "topics": [], "intent": "neutral"})
        assert out["sentiment_score"] == 0.0
        assert out["tool_mentioned"] == "None"

    def test_clamps_out_of_range(self):
        out = normalize_result({"sentiment_score": 3, "confidence": -1, "topics": "cost", "intent": "complaint"})
        assert out["sentiment_score"] == 1.0
        assert out["confidence"] == 0.0
        assert out["topics"] == ["cost"]

    @pytest.mark.parametrize(
        "raw",
        [
            {"confidence": 0.5, "topics": [], "intent": "neutral"},
            {"sentiment_score": "high", "confidence": 0.5, "topics": [], "intent": "neutral"},
        ],
    )
    def test_rejects_incomplete(self, raw):
        assert normalize_result(raw) is None


class TestSentimentAnalyzer:
    def test_analyze_items(self, fake_claude):
        fake_claude.complete.side_effect = [
            json.dumps({"sentiment_score": 0.7, "confidence": 0.9, "topics": ["productivity"], "intent": "praise",
                        "tool_mentioned": "Claude Code"}),
            LLMError("overloaded"),
        ]
        items = [
            {"id": "1", "text": "Claude Code is fantastic for refactors", "source": "slack", "userName": "Dan Wu"},
            {"id": "2", "text": "too short"},
            {"id": "3", "text": "Copilot keeps timing out on me", "source": "slack"},
        ]
        results = SentimentAnalyzer(fake_claude).analyze_items(items)

        assert [r["id"] for r in results] == ["1"]
        assert results[0]["sentiment"]["tool_mentioned"] == "Claude Code"
        assert fake_claude.complete.call_count == 2
        assert fake_claude.pause.call_count == 2
        prompt = fake_claude.complete.call_args_list[0].args[0]
        assert "Author: Dan Wu (Unknown Department)" in prompt

    def test_analyze_sources(self, tmp_path, fake_claude):
        write_json(tmp_path / "slack-messages.json", [{"id": "1", "text": "Claude Code is fantastic", "source": "slack"}])
        fake_claude.complete.return_value = '{"sentiment_score": 0.5, "confidence": 1, "topics": [], "intent": "praise"}'
        target = analyze_sources(tmp_path, SentimentAnalyzer(fake_claude))
        saved = read_json(target)
        assert saved["sourceStats"] == {"slack": 1, "confluence": 0, "surveys": 0, "interviews": 0}
        assert len(saved["items"]) == 1

    def test_analyze_sources_empty(self, tmp_path, fake_claude):
        assert analyze_sources(tmp_path, SentimentAnalyzer(fake_claude)) is None


# --------------------------------------------------------------------------
# Metrics
# --------------------------------------------------------------------------

class TestMetrics:
    def test_calculate_metrics(self, analyzed):
        metrics = calculate_metrics(analyzed)
        assert metrics["avgSentiment"] == pytest.approx(0.2)
        assert metrics["nps"] == 25
        assert metrics["perceivedValueScore"] == 45
        assert metrics["feedbackCount"] == 4
        assert metrics["sentimentDistribution"] == {"positive": 2, "neutral": 1, "negative": 1}

    def test_empty_metrics(self):
        assert calculate_metrics([])["perceivedValueScore"] == 0

    def test_negative_ties_round_toward_positive(self):
        metrics = calculate_metrics([_analyzed(-0.9)] + [_analyzed(0.0) for _ in range(7)])
        assert metrics["nps"] == -12
        assert metrics["avgSentiment"] == pytest.approx(-0.11)

        depts = calculate_department_sentiment([_analyzed(-0.25, dept="Sales"), _analyzed(0.0, dept="Sales")])
        assert depts[0]["score"] == pytest.approx(-0.12)

    @pytest.mark.parametrize(
        "value,ndigits,expected",
        [(12.5, 0, 13.0), (-12.5, 0, -12.0), (-12.6, 0, -13.0), (-0.125, 2, -0.12), (0.125, 2, 0.13)],
    )
    def test_round_half_ceiling(self, value, ndigits, expected):
        assert round_half_ceiling(value, ndigits) == expected

    def test_themes_and_pain_points(self, analyzed):
        themes = extract_top_themes(analyzed)
        assert themes[0]["theme"] == "productivity"
        assert themes[0]["count"] == 3
        pains = extract_pain_points(analyzed)
        assert [p["theme"] for p in pains] == ["cost"]
        assert pains[0]["description"] == "summary -0.6"

    def test_trend_by_month(self, analyzed):
        trend = calculate_sentiment_trend(analyzed)
        assert [(t["monthKey"], t["month"], t["count"]) for t in trend] == [
            ("2025-01", "Jan 2025", 2),
            ("2025-02", "Feb 2025", 2),
        ]
        assert trend[0]["score"] == pytest.approx(0.7)
        assert trend[1]["score"] == pytest.approx(-0.3)

    def test_department_sentiment(self, analyzed):
        depts = calculate_department_sentiment(analyzed)
        assert depts[0] == {"department": "Engineering", "score": pytest.approx(0.47), "count": 3}
        assert depts[1]["department"] == "Sales"


class TestPerceivedValue:
    def test_group_by_tool(self, analyzed):
        analyzed.append(_analyzed(0.1, tool="Bard"))
        groups = group_by_tool(analyzed)
        assert len(groups["Claude Code"]) == 3
        assert len(groups["Other"]) == 1

    def test_build_perceived_value(self, analyzed):
        output = build_perceived_value(analyzed, {"slack": 3, "surveys": 1})
        assert output["summary"]["totalFeedbackAnalyzed"] == 4
        assert output["summary"]["toolMentions"]["Claude Code"] == 3
        perceived = output["perceivedValue"]
        assert "Other" not in perceived and "None" not in perceived
        assert perceived["Claude Code"]["sourceBreakdown"] == {"slack": 2, "survey": 1}
        assert perceived["ChatGPT"]["feedbackCount"] == 0

    def test_aggregate_sentiment_file(self, tmp_path, analyzed):
        write_json(tmp_path / "analyzed-feedback.json", {"sourceStats": {"slack": 4}, "items": analyzed})
        target = aggregate_sentiment(tmp_path, tmp_path / "perceived-value.json")
        assert read_json(target)["summary"]["sourceBreakdown"] == {"slack": 4}

    def test_aggregate_without_analysis(self, tmp_path):
        assert aggregate_sentiment(tmp_path, tmp_path / "perceived-value.json") is None

    def test_dashboard_view(self, analyzed):
        perceived = build_perceived_value(analyzed, {"slack": 3, "surveys": 1})
        tool_sentiment = {"scores": {"Claude Code": {"score": 75, "totalFeedback": 2, "messages": [{"x": 1}]}}}
        view = compute_perceived_value(perceived, tool_sentiment)
        assert view["tools"][0]["perceivedValueScore"] >= view["tools"][-1]["perceivedValueScore"]
        assert view["multiToolScores"] == {"Claude Code": {"score": 75, "totalFeedback": 2}}
        assert set(view["charts"]) == {"pvs_by_tool", "sentiment_trend", "source_breakdown"}

    def test_dashboard_view_empty(self):
        view = compute_perceived_value(None)
        assert view["tools"] == []
        assert view["charts"] == {}


# --------------------------------------------------------------------------
# Multi-tool
# --------------------------------------------------------------------------

def _tool_reply(**sentiments):
    return json.dumps({tool.replace("_", " "): s for tool, s in sentiments.items()})


class TestMultiTool:
    def test_batches_and_redistribution(self, fake_claude, monkeypatch):
        sleeps = []
        monkeypatch.setattr("core.sentiment_multitool.time.sleep", sleeps.append)
        fake_claude.complete.side_effect = [
            _tool_reply(Claude_Code="positive", GitHub_Copilot="negative"),
            _tool_reply(Claude_Code="POSITIVE", ChatGPT="bogus"),
            LLMError("timeout"),
        ]
        messages = [{"id": str(i), "text": f"msg {i}", "channel": "ai-collab"} for i in range(3)]

        analyzed = process_in_batches(fake_claude, messages, batch_size=2, batch_delay=0.5)
        assert [a["messageId"] for a in analyzed] == ["0", "1"]
        assert analyzed[1]["toolSentiments"]["ChatGPT"] == NOT_MENTIONED
        assert sleeps == [0.5]

        by_tool = redistribute_by_tool(analyzed)
        assert [m["messageId"] for m in by_tool["Claude Code"]] == ["0", "1"]
        assert by_tool["GitHub Copilot"][0]["sentiment"] == "negative"
        assert by_tool["ChatGPT"] == []

    def test_scores(self):
        by_tool = {
            "Claude Code": [{"sentiment": "positive"}, {"sentiment": "positive"}, {"sentiment": "neutral"}],
            "GitHub Copilot": [{"sentiment": "negative"}],
            "ChatGPT": [],
        }
        scores = calculate_tool_scores(by_tool)
        assert scores["Claude Code"]["score"] == 83
        assert scores["GitHub Copilot"]["score"] == 0
        assert scores["ChatGPT"]["score"] == 50
        assert scores["ChatGPT"]["totalFeedback"] == 0

    def test_run_writes_output(self, tmp_path, fake_claude, monkeypatch):
        monkeypatch.setattr("core.sentiment_multitool.time.sleep", lambda _: None)
        fake_claude.complete.return_value = _tool_reply(M365_Copilot="neutral")
        target = run_multi_tool_sentiment(fake_claude, [{"id": "a", "text": "Copilot drafted my email"}], tmp_path / "t.json")
        saved = read_json(target)
        assert saved["scores"]["M365 Copilot"]["score"] == 50
        assert saved["scores"]["M365 Copilot"]["totalFeedback"] == 1
        assert len(saved["rawAnalysis"]) == 1
