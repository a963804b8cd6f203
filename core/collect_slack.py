from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError

from core.config import SlackSettings
from core.data import read_json, write_json
from core.hierarchy import department_for_email


logger = logging.getLogger(__name__)

CACHE_FILENAME = ".slack-cache.json"
OUTPUT_FILENAME = "slack-messages.json"
MAX_CACHED_IDS = 10000
HISTORY_LIMIT = 1000

AI_TOOL_KEYWORDS = [
    "claude",
    "copilot",
    "github copilot",
    "m365 copilot",
    "chatgpt",
    "ai tool",
    "ai assistant",
    "llm",
    "anthropic",
    "openai",
    "coding assistant",
    "code completion",
    "ai productivity",
]


class SlackCollectorError(Exception):
    """Raised when Slack collection cannot start (for example no channels configured)."""


def contains_ai_keyword(text: Optional[str]) -> bool:
    lowered = (text or "").lower()
    return any(k in lowered for k in AI_TOOL_KEYWORDS)


def load_cache(path: Path) -> Dict[str, Any]:
    cache = read_json(path, {}) or {}
    return {
        "lastFetchTimestamp": cache.get("lastFetchTimestamp"),
        "processedMessageIds": list(cache.get("processedMessageIds") or []),
    }


def save_cache(path: Path, cache: Dict[str, Any]) -> None:
    cache["processedMessageIds"] = cache["processedMessageIds"][-MAX_CACHED_IDS:]
    write_json(path, cache)


class SlackCollector:
    def __init__(self, settings: SlackSettings, output_dir: Path, client: Optional[WebClient] = None):
        self.settings = settings
        self.output_dir = output_dir
        self.client = client or WebClient(token=settings.token)
        self._users: Dict[str, Dict[str, str]] = {}

    @property
    def cache_path(self) -> Path:
        return self.output_dir / CACHE_FILENAME

    def _user_info(self, user_id: str) -> Dict[str, str]:
        if user_id not in self._users:
            user = self.client.users_info(user=user_id)["user"]
            self._users[user_id] = {
                "userName": user.get("real_name") or user.get("name") or "",
                "userEmail": (user.get("profile") or {}).get("email") or "",
            }
        return self._users[user_id]

    def fetch_messages(self, *, now: Optional[float] = None) -> List[Dict[str, Any]]:
        cache = load_cache(self.cache_path)
        now = int(now if now is not None else time.time())
        oldest = cache["lastFetchTimestamp"] or now - self.settings.days_back * 24 * 60 * 60
        if cache["lastFetchTimestamp"]:
            logger.info("Last fetch %d hours ago (delta mode)", (now - cache["lastFetchTimestamp"]) // 3600)
        else:
            logger.info("Fetching last %d days (first run)", self.settings.days_back)

        processed = set(cache["processedMessageIds"])
        messages: List[Dict[str, Any]] = []
        total_fetched = 0

        for channel_name, channel_id in self.settings.channels.items():
            try:
                result = self.client.conversations_history(channel=channel_id, oldest=str(oldest), limit=HISTORY_LIMIT)
            except SlackApiError as exc:
                logger.error("Error fetching #%s: %s", channel_name, exc.response.get("error", exc))
                continue

            raw = result.get("messages") or []
            total_fetched += len(raw)
            relevant = [
                m for m in raw if not m.get("bot_id") and m.get("ts") not in processed and contains_ai_keyword(m.get("text"))
            ]
            for msg in relevant:
                try:
                    info = self._user_info(msg.get("user"))
                except SlackApiError as exc:
                    logger.warning("Could not fetch user info for %s: %s", msg.get("user"), exc.response.get("error", exc))
                    continue
                messages.append(
                    {
                        "id": msg["ts"],
                        "text": msg.get("text", ""),
                        "user": msg.get("user"),
                        **info,
                        "timestamp": datetime.fromtimestamp(float(msg["ts"]), tz=timezone.utc).isoformat(),
                        "channel": channel_name,
                        "channelId": channel_id,
                        "source": "slack",
                        "reactions": msg.get("reactions") or [],
                        "threadTs": msg.get("thread_ts"),
                        "replyCount": msg.get("reply_count") or 0,
                    }
                )
            logger.info("#%s: %d relevant messages (%d total)", channel_name, len(relevant), len(raw))

        logger.info("Slack fetch complete: %d/%d messages matched AI keywords", len(messages), total_fetched)
        cache["lastFetchTimestamp"] = now
        cache["processedMessageIds"].extend(m["id"] for m in messages)
        save_cache(self.cache_path, cache)
        return messages


def collect_slack(
    settings: SlackSettings,
    output_dir: Path,
    *,
    hierarchy_path: Optional[Path] = None,
    client: Optional[WebClient] = None,
) -> Optional[Path]:
    """Fetch AI-related Slack messages and write slack-messages.json. Returns None when skipped."""
    if not settings.enabled:
        logger.warning("SLACK_BOT_TOKEN not set; Slack sentiment collection skipped")
        return None
    if not settings.channels:
        raise SlackCollectorError("No Slack channels configured; set SLACK_CHANNEL_* variables")

    logger.info("Configured channels: %d", len(settings.channels))
    messages = SlackCollector(settings, output_dir, client=client).fetch_messages()
    if not messages:
        logger.info("No new messages to process")
        return None

    hierarchy = read_json(hierarchy_path) if hierarchy_path else None
    if hierarchy is None:
        logger.warning("hierarchy.json not found; department data will be missing")
    else:
        for msg in messages:
            msg["department"] = department_for_email(msg.get("userEmail"), hierarchy)

    target = write_json(output_dir / OUTPUT_FILENAME, messages)
    logger.info("Saved %d messages to %s", len(messages), target)
    return target
