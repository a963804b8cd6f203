from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from core.data import write_json
from core.llm import ClaudeClient, LLMError, extract_json_object
from core.sentiment_analysis import item_author, item_date, item_text


logger = logging.getLogger(__name__)

TOOLS = ["Claude Enterprise", "Claude Code", "GitHub Copilot", "M365 Copilot", "ChatGPT"]
SENTIMENTS = ("positive", "neutral", "negative")
NOT_MENTIONED = "not_mentioned"
BATCH_SIZE = 5
BATCH_DELAY_SECONDS = 1.0

PROMPT = """Analyze this feedback message and extract sentiment for EACH AI tool mentioned.

Message: "{text}"
Author: {author}
Channel: {channel}

For each of these tools mentioned in the message, determine:
1. Is the tool explicitly or implicitly mentioned?
2. What is the sentiment toward that specific tool? (positive, neutral, negative, or not_mentioned)

Tools to analyze:
- Claude Enterprise (includes "Claude", "Claude connected", "Claude Enterprise")
- Claude Code (includes "Claude Code", "Premium")
- GitHub Copilot (coding assistant for engineers)
- M365 Copilot (Microsoft Office assistant for business users)
- ChatGPT

When "Copilot" is mentioned WITHOUT specifying which one, use context clues:
- GitHub Copilot: VS Code, IDE, code review, pull requests, coding, debugging, engineers
- M365 Copilot: Outlook, SharePoint, Teams, Word, Excel, PowerPoint, email drafting, sales research, BDR

Comparative statements have different sentiments for each tool
("Claude is faster than Copilot" -> Claude: positive, Copilot: negative).
"Used to use X" or "prefer Y over X" indicates negative sentiment toward X.

Return ONLY valid JSON (no markdown, no explanation):
{{
  "Claude Enterprise": "positive|neutral|negative|not_mentioned",
  "Claude Code": "positive|neutral|negative|not_mentioned",
  "GitHub Copilot": "positive|neutral|negative|not_mentioned",
  "M365 Copilot": "positive|neutral|negative|not_mentioned",
  "ChatGPT": "positive|neutral|negative|not_mentioned"
}}"""


def _normalize(raw: Dict[str, Any]) -> Dict[str, str]:
    out = {}
    for tool in TOOLS:
        value = str(raw.get(tool) or NOT_MENTIONED).lower()
        out[tool] = value if value in SENTIMENTS else NOT_MENTIONED
    return out


def extract_tool_sentiment(client: ClaudeClient, message: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    prompt = PROMPT.format(
        text=item_text(message),
        author=item_author(message) or "Unknown",
        channel=message.get("channel") or message.get("source") or "Unknown",
    )
    try:
        raw = client.complete(prompt, max_tokens=500, temperature=0.1)
        sentiments = _normalize(extract_json_object(raw))
    except LLMError as exc:
        logger.warning("Tool sentiment extraction failed for %s: %s", message.get("id"), exc)
        return None
    return {
        "messageId": message.get("id"),
        "text": item_text(message),
        "author": item_author(message),
        "channel": message.get("channel"),
        "timestamp": item_date(message),
        "toolSentiments": sentiments,
    }


def process_in_batches(
    client: ClaudeClient, messages: List[Dict[str, Any]], *, batch_size: int = BATCH_SIZE, batch_delay: float = BATCH_DELAY_SECONDS
) -> List[Dict[str, Any]]:
    results: List[Dict[str, Any]] = []
    total_batches = (len(messages) + batch_size - 1) // batch_size
    for start in range(0, len(messages), batch_size):
        batch = messages[start : start + batch_size]
        for msg in batch:
            result = extract_tool_sentiment(client, msg)
            if result is not None:
                results.append(result)
        logger.info("Batch %d/%d done (%d analyzed)", start // batch_size + 1, total_batches, len(results))
        if start + batch_size < len(messages) and batch_delay > 0:
            time.sleep(batch_delay)
    return results


def redistribute_by_tool(analyzed: List[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    by_tool: Dict[str, List[Dict[str, Any]]] = {tool: [] for tool in TOOLS}
    for msg in analyzed:
        for tool, sentiment in msg["toolSentiments"].items():
            if sentiment == NOT_MENTIONED or tool not in by_tool:
                continue
            by_tool[tool].append(
                {
                    "messageId": msg["messageId"],
                    "text": msg["text"],
                    "author": msg["author"],
                    "channel": msg["channel"],
                    "timestamp": msg["timestamp"],
                    "sentiment": sentiment,
                }
            )
    return by_tool


def calculate_tool_scores(by_tool: Dict[str, List[Dict[str, Any]]]) -> Dict[str, Dict[str, Any]]:
    scores: Dict[str, Dict[str, Any]] = {}
    for tool, messages in by_tool.items():
        counts = {s: sum(1 for m in messages if m["sentiment"] == s) for s in SENTIMENTS}
        total = sum(counts.values())
        score = int((counts["positive"] * 100 + counts["neutral"] * 50) / total + 0.5) if total else 50
        scores[tool] = {"score": score, "totalFeedback": total, "sentimentBreakdown": counts, "messages": messages}
    return scores


def run_multi_tool_sentiment(client: ClaudeClient, messages: List[Dict[str, Any]], output_path: Path) -> Path:
    analyzed = process_in_batches(client, messages)
    by_tool = redistribute_by_tool(analyzed)
    scores = calculate_tool_scores(by_tool)
    for tool, data in scores.items():
        logger.info("%s: score %d from %d mentions", tool, data["score"], data["totalFeedback"])
    return write_json(
        output_path,
        {
            "lastUpdated": datetime.now(timezone.utc).isoformat(),
            "methodology": "Multi-tool sentiment extraction using Claude API",
            "toolMessages": by_tool,
            "scores": scores,
            "rawAnalysis": analyzed,
        },
    )
