"""Per-item sentiment classification and the metrics derived from it.

Each feedback item (Slack message, Confluence page or comment, survey
response) is classified through the Messages API; the result is attached to
the item under ``sentiment``.
"""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Any, Dict, List, Optional

from core.data import read_json, round_half_ceiling, write_json
from core.llm import ClaudeClient, LLMError, extract_json_object


logger = logging.getLogger(__name__)

MIN_TEXT_CHARS = 10
ANALYSIS_MAX_TOKENS = 500
ANALYSIS_TEMPERATURE = 0.2
PROMOTER_THRESHOLD = 0.5
POSITIVE_THRESHOLD = 0.2
PAIN_POINT_THRESHOLD = -0.2

ANALYZED_FILENAME = "analyzed-feedback.json"
SOURCE_FILES = {
    "slack": "slack-messages.json",
    "confluence": "confluence-items.json",
    "surveys": "survey-responses.json",
    "interviews": "interview-quotes.json",
}
REQUIRED_KEYS = ("sentiment_score", "confidence", "topics", "intent")

PROMPT = """Analyze this {source} message for AI tool sentiment.

Message: "{text}"
Author: {author} ({department})
Date: {date}

Extract the following information and return ONLY valid JSON (no other text):

{{
  "sentiment_score": [number from -1 (very negative) to +1 (very positive)],
  "confidence": [number from 0 (uncertain) to 1 (very confident)],
  "topics": [array of themes like "productivity", "ease_of_use", "cost", "learning_curve", "collaboration", "features"],
  "tool_mentioned": "[Claude Enterprise|Claude Code|M365 Copilot|GitHub Copilot|ChatGPT|Other|None]",
  "features_mentioned": [array of specific features mentioned],
  "intent": "[praise|complaint|question|feature_request|neutral|documentation|lesson_learned]",
  "summary": "[1-2 sentence summary of the sentiment]"
}}

Important:
- sentiment_score must be a number between -1 and 1
- confidence must be a number between 0 and 1
- Focus on sentiment about AI tools, not general sentiment
- If no AI tool is clearly mentioned, tool_mentioned should be "None"
- Be objective and accurate in sentiment scoring"""


def item_text(item: Dict[str, Any]) -> str:
    return item.get("text") or item.get("quote") or item.get("content") or ""


def item_author(item: Dict[str, Any]) -> Optional[str]:
    return item.get("author") or item.get("userName") or item.get("user")


def item_date(item: Dict[str, Any]) -> Optional[str]:
    return item.get("date") or item.get("timestamp")


def _clamp(value: Any, low: float, high: float) -> float:
    return max(low, min(high, float(value)))


def normalize_result(result: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Validate and clamp a raw classification. Zero is a valid score."""
    if any(result.get(k) is None for k in REQUIRED_KEYS):
        return None
    try:
        result["sentiment_score"] = _clamp(result["sentiment_score"], -1.0, 1.0)
        result["confidence"] = _clamp(result["confidence"], 0.0, 1.0)
    except (TypeError, ValueError):
        return None
    if not isinstance(result["topics"], list):
        result["topics"] = [str(result["topics"])]
    result.setdefault("tool_mentioned", "None")
    result.setdefault("features_mentioned", [])
    result.setdefault("summary", "")
    return result


class SentimentAnalyzer:
    def __init__(self, client: ClaudeClient):
        self.client = client

    def analyze_text(
        self,
        text: str,
        *,
        source: Optional[str] = None,
        author: Optional[str] = None,
        department: Optional[str] = None,
        date: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        if not text or len(text.strip()) < MIN_TEXT_CHARS:
            return None
        prompt = PROMPT.format(
            source=source or "feedback",
            text=text,
            author=author or "Unknown",
            department=department or "Unknown Department",
            date=(str(date)[:10] if date else "Unknown"),
        )
        try:
            raw = self.client.complete(prompt, max_tokens=ANALYSIS_MAX_TOKENS, temperature=ANALYSIS_TEMPERATURE)
            return normalize_result(extract_json_object(raw))
        except LLMError as exc:
            logger.warning("Sentiment analysis failed: %s", exc)
            return None

    def analyze_items(self, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Classify items one at a time with a fixed delay; unclassifiable items are dropped."""
        results: List[Dict[str, Any]] = []
        for idx, item in enumerate(items, start=1):
            if idx > 1:
                self.client.pause()
            sentiment = self.analyze_text(
                item_text(item),
                source=item.get("source"),
                author=item_author(item),
                department=item.get("department") or item.get("dept"),
                date=item_date(item),
            )
            if sentiment is not None:
                results.append({**item, "sentiment": sentiment})
            if idx % 25 == 0 or idx == len(items):
                logger.info("Analyzed %d/%d items (%d classified)", idx, len(items), len(results))
        return results


def load_sources(sentiment_dir: Path) -> tuple:
    items: List[Dict[str, Any]] = []
    stats: Dict[str, int] = {}
    for name, filename in SOURCE_FILES.items():
        data = read_json(sentiment_dir / filename, []) or []
        items.extend(data)
        stats[name] = len(data)
    return items, stats


def analyze_sources(sentiment_dir: Path, analyzer: SentimentAnalyzer) -> Optional[Path]:
    items, stats = load_sources(sentiment_dir)
    logger.info("Loaded %d feedback items: %s", len(items), stats)
    if not items:
        return None
    analyzed = analyzer.analyze_items(items)
    return write_json(sentiment_dir / ANALYZED_FILENAME, {"sourceStats": stats, "items": analyzed})


def _score(item: Dict[str, Any]) -> float:
    return float(item["sentiment"]["sentiment_score"])


def calculate_metrics(analyzed: List[Dict[str, Any]]) -> Dict[str, Any]:
    if not analyzed:
        return {
            "avgSentiment": 0,
            "nps": 0,
            "perceivedValueScore": 0,
            "feedbackCount": 0,
            "sentimentDistribution": {"positive": 0, "neutral": 0, "negative": 0},
        }
    n = len(analyzed)
    scores = [_score(m) for m in analyzed]
    avg = sum(scores) / n
    promoters = sum(1 for s in scores if s > PROMOTER_THRESHOLD)
    detractors = sum(1 for s in scores if s < -PROMOTER_THRESHOLD)
    nps = (promoters - detractors) / n * 100

    sentiment_score = (avg + 1) * 50
    nps_score = (nps + 100) / 2
    volume_boost = min(math.log10(n + 1) / 5, 1)
    pvs = round_half_ceiling((sentiment_score * 0.6 + nps_score * 0.4) * (0.7 + volume_boost * 0.3))

    positive = sum(1 for s in scores if s > POSITIVE_THRESHOLD)
    negative = sum(1 for s in scores if s < -POSITIVE_THRESHOLD)
    return {
        "avgSentiment": round_half_ceiling(avg, 2),
        "nps": int(round_half_ceiling(nps)),
        "perceivedValueScore": int(pvs),
        "feedbackCount": n,
        "sentimentDistribution": {"positive": positive, "neutral": n - positive - negative, "negative": negative},
    }


def extract_top_themes(analyzed: List[Dict[str, Any]], top_n: int = 5) -> List[Dict[str, Any]]:
    themes: Dict[str, List[float]] = {}
    for msg in analyzed:
        for topic in msg["sentiment"].get("topics") or []:
            themes.setdefault(topic, []).append(_score(msg))
    out = [
        {"theme": theme, "count": len(scores), "avgSentiment": round_half_ceiling(sum(scores) / len(scores), 2)}
        for theme, scores in themes.items()
    ]
    return sorted(out, key=lambda t: t["count"], reverse=True)[:top_n]


def extract_representative_quotes(analyzed: List[Dict[str, Any]], count: int = 5) -> List[Dict[str, Any]]:
    ranked = sorted(
        analyzed, key=lambda m: abs(_score(m)) * float(m["sentiment"].get("confidence") or 0), reverse=True
    )
    return [
        {
            "quote": item_text(m),
            "author": item_author(m),
            "department": m.get("department") or m.get("dept"),
            "date": item_date(m),
            "sentiment": _score(m),
            "confidence": m["sentiment"].get("confidence"),
            "source": m.get("source"),
            "tool": m["sentiment"].get("tool_mentioned"),
            "summary": m["sentiment"].get("summary"),
        }
        for m in ranked[:count]
    ]


def extract_pain_points(analyzed: List[Dict[str, Any]], top_n: int = 5) -> List[Dict[str, Any]]:
    grouped: Dict[str, List[Dict[str, Any]]] = {}
    for msg in analyzed:
        if _score(msg) >= PAIN_POINT_THRESHOLD:
            continue
        for topic in msg["sentiment"].get("topics") or []:
            grouped.setdefault(topic, []).append(msg)

    out = [
        {
            "theme": theme,
            "description": msgs[0]["sentiment"].get("summary") or "No description",
            "frequency": len(msgs),
            "avgSentiment": round_half_ceiling(sum(_score(m) for m in msgs) / len(msgs), 2),
            "examples": [{"quote": item_text(m), "author": item_author(m)} for m in msgs[:2]],
        }
        for theme, msgs in grouped.items()
    ]
    return sorted(out, key=lambda p: p["frequency"], reverse=True)[:top_n]
