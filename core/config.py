from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional

from dotenv import load_dotenv


ROOT_DIR = Path(__file__).resolve().parents[1]

DEFAULT_ANTHROPIC_MODEL = "claude-sonnet-4-20250514"
EMAIL_DOMAIN = "techco.com"

SLACK_CHANNEL_ENV = {
    "claude-code-dev": "SLACK_CHANNEL_CLAUDE_CODE_DEV",
    "claude-enterprise": "SLACK_CHANNEL_CLAUDE_ENTERPRISE",
    "ai-collab": "SLACK_CHANNEL_AI_COLLAB",
    "techco-thrv": "SLACK_CHANNEL_TECHCO_THRV",
    "as-ai-dev": "SLACK_CHANNEL_AS_AI_DEV",
    "technology": "SLACK_CHANNEL_TECHNOLOGY",
}


def load_environment(dotenv_path: Optional[Path] = None) -> None:
    """Load a .env file into os.environ without clobbering values already set."""
    load_dotenv(dotenv_path=dotenv_path or (ROOT_DIR / ".env"), override=False)


@dataclass(frozen=True)
class DashboardPaths:
    root: Path

    @property
    def docs_data_dir(self) -> Path:
        return self.root / "docs" / "data"

    @property
    def org_chart(self) -> Path:
        return self.docs_data_dir / "techco_org_chart.json"

    @property
    def snapshot_dir(self) -> Path:
        return self.docs_data_dir / "org-chart-snapshots"

    @property
    def data_dir(self) -> Path:
        return self.root / "data"

    @property
    def ai_tools_data(self) -> Path:
        return self.root / "app" / "ai-tools-data.json"

    @property
    def roi_config(self) -> Path:
        return self.data_dir / "roi_config.json"

    @property
    def hierarchy(self) -> Path:
        return self.data_dir / "hierarchy.json"

    @property
    def department_map(self) -> Path:
        return self.data_dir / "department_mapping.json"

    @property
    def sentiment_dir(self) -> Path:
        return self.data_dir / "sentiment"

    @property
    def survey_dir(self) -> Path:
        return self.data_dir / "surveys"

    @property
    def usage_dir(self) -> Path:
        return self.data_dir / "usage"

    @property
    def perceived_value(self) -> Path:
        return self.data_dir / "perceived-value.json"

    @property
    def tool_sentiment(self) -> Path:
        return self.data_dir / "tool-specific-sentiment.json"


def get_paths(env: Optional[Mapping[str, str]] = None) -> DashboardPaths:
    env = os.environ if env is None else env
    root = env.get("DASHBOARD_ROOT")
    return DashboardPaths(root=Path(root).resolve() if root else ROOT_DIR)


def _as_int(value: Optional[str], default: int) -> int:
    try:
        return int(value) if value not in (None, "") else default
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class SlackSettings:
    token: Optional[str] = None
    channels: Dict[str, str] = field(default_factory=dict)
    days_back: int = 30

    @property
    def enabled(self) -> bool:
        return bool(self.token)


@dataclass(frozen=True)
class ConfluenceSettings:
    base_url: Optional[str] = None
    username: Optional[str] = None
    api_token: Optional[str] = None
    days_back: int = 90

    @property
    def enabled(self) -> bool:
        return bool(self.base_url and self.username and self.api_token)

    @property
    def api_url(self) -> str:
        return f"{(self.base_url or '').rstrip('/')}/wiki/rest/api"


@dataclass(frozen=True)
class AnthropicSettings:
    api_key: Optional[str] = None
    model: str = DEFAULT_ANTHROPIC_MODEL
    max_tokens: int = 4096
    request_delay: float = 0.1

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)


def load_slack_settings(env: Optional[Mapping[str, str]] = None) -> SlackSettings:
    env = os.environ if env is None else env
    channels = {name: env[var] for name, var in SLACK_CHANNEL_ENV.items() if env.get(var)}
    return SlackSettings(
        token=env.get("SLACK_BOT_TOKEN") or None,
        channels=channels,
        days_back=_as_int(env.get("SLACK_DAYS_BACK"), 30),
    )


def load_confluence_settings(env: Optional[Mapping[str, str]] = None) -> ConfluenceSettings:
    env = os.environ if env is None else env
    return ConfluenceSettings(
        base_url=env.get("CONFLUENCE_BASE_URL") or None,
        username=env.get("CONFLUENCE_USERNAME") or None,
        api_token=env.get("CONFLUENCE_API_TOKEN") or None,
        days_back=_as_int(env.get("CONFLUENCE_DAYS_BACK"), 90),
    )


def load_anthropic_settings(env: Optional[Mapping[str, str]] = None) -> AnthropicSettings:
    env = os.environ if env is None else env
    delay_ms = _as_int(env.get("ANTHROPIC_REQUEST_DELAY_MS"), 100)
    return AnthropicSettings(
        api_key=env.get("ANTHROPIC_API_KEY") or None,
        model=env.get("ANTHROPIC_MODEL") or DEFAULT_ANTHROPIC_MODEL,
        max_tokens=_as_int(env.get("ANTHROPIC_MAX_TOKENS"), 4096),
        request_delay=max(0, delay_ms) / 1000.0,
    )
