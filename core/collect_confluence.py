from __future__ import annotations

import logging
import re
import time
from datetime import date, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

from core.config import ConfluenceSettings
from core.data import read_json, write_json
from core.hierarchy import department_for_email


logger = logging.getLogger(__name__)

CACHE_FILENAME = ".confluence-cache.json"
PAGES_FILENAME = "confluence-pages.json"
ITEMS_FILENAME = "confluence-items.json"
MAX_CACHED_IDS = 1000
PAGE_LIMIT = 100
QUOTE_CHARS = 500
MIN_COMMENT_CHARS = 10

SEARCH_QUERIES = [
    'label = "ai-tools"',
    'label = "claude"',
    'label = "copilot"',
    'label = "retrospective" AND (text ~ "claude" OR text ~ "copilot")',
    'space = "ENG" AND (title ~ "AI" OR text ~ "claude" OR text ~ "copilot")',
    'space = "TECH" AND (title ~ "AI" OR text ~ "claude" OR text ~ "copilot")',
]

_ACTION_PATTERNS = [
    re.compile(r"^\s*[-*]\s*\[?\s*(TODO|ACTION|NEXT STEPS?)\s*:?\]?\s*", re.IGNORECASE),
    re.compile(r"^\s*[-*]\s*@\w+\s+to\s+", re.IGNORECASE),
    re.compile(r"^\s*\d+\.\s*(TODO|ACTION|NEXT STEPS?)\s*:?\s*", re.IGNORECASE),
]
_ENTITIES = {"&nbsp;": " ", "&lt;": "<", "&gt;": ">", "&amp;": "&"}


class ConfluenceAPIError(Exception):
    """Raised when the Confluence REST API returns a non-success response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def _unescape(text: str) -> str:
    for entity, char in _ENTITIES.items():
        text = text.replace(entity, char)
    return text


def strip_html(html: Optional[str]) -> str:
    if not html:
        return ""
    text = re.sub(r"<[^>]*>", " ", html)
    return re.sub(r"\s+", " ", _unescape(text)).strip()


def html_to_lines(html: Optional[str]) -> str:
    """Plain text that keeps list items and paragraphs on their own lines."""
    if not html:
        return ""
    text = re.sub(r"<li[^>]*>", "\n- ", html, flags=re.IGNORECASE)
    text = re.sub(r"<br\s*/?>|</p>|</li>|</h\d>|</div>", "\n", text, flags=re.IGNORECASE)
    text = _unescape(re.sub(r"<[^>]*>", "", text))
    return "\n".join(line.strip() for line in text.splitlines() if line.strip())


def extract_action_items(content: Optional[str]) -> List[str]:
    if not content:
        return []
    return [line.strip() for line in content.split("\n") if any(p.match(line) for p in _ACTION_PATTERNS)]


class ConfluenceClient:
    def __init__(self, settings: ConfluenceSettings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.session = session or requests.Session()
        self.session.auth = (settings.username, settings.api_token)
        self.session.headers.update({"Content-Type": "application/json"})

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.settings.api_url}{path}"
        try:
            resp = self.session.get(url, params=params, timeout=30)
        except requests.RequestException as exc:
            raise ConfluenceAPIError(f"Request to {path} failed: {exc}") from exc
        if resp.status_code != 200:
            raise ConfluenceAPIError(f"GET {path} failed. HTTP Status: {resp.status_code}", resp.status_code)
        return resp.json()

    def search(self, cql: str) -> List[Dict[str, Any]]:
        data = self.get(
            "/content/search",
            {"cql": cql, "limit": PAGE_LIMIT, "expand": "body.storage,version,space,history.lastUpdated"},
        )
        return data.get("results") or []

    def comments(self, page_id: str) -> List[Dict[str, Any]]:
        data = self.get(
            f"/content/{page_id}/child/comment",
            {"expand": "body.storage,version,history.lastUpdated", "limit": PAGE_LIMIT},
        )
        return data.get("results") or []


def _author(item: Dict[str, Any]) -> Dict[str, str]:
    history = item.get("history") or {}
    by = (history.get("lastUpdated") or {}).get("by") or {}
    created = history.get("createdBy") or {}
    return {
        "author": by.get("displayName") or created.get("displayName") or "Unknown",
        "authorEmail": by.get("email") or created.get("email") or "",
    }


def _when(item: Dict[str, Any]) -> Optional[str]:
    return ((item.get("history") or {}).get("lastUpdated") or {}).get("when") or (item.get("version") or {}).get("when")


def parse_page(page: Dict[str, Any], base_url: str) -> Dict[str, Any]:
    html = ((page.get("body") or {}).get("storage") or {}).get("value") or ""
    space = page.get("space") or {}
    labels = ((page.get("metadata") or {}).get("labels") or {}).get("results") or []
    return {
        "id": page["id"],
        "title": page.get("title"),
        "content": strip_html(html),
        "spaceKey": space.get("key") or "Unknown",
        "spaceName": space.get("name") or "Unknown",
        "url": f"{base_url.rstrip('/')}{(page.get('_links') or {}).get('webui', '')}",
        **_author(page),
        "lastModified": _when(page),
        "labels": [label.get("name") for label in labels],
        "actionItems": extract_action_items(html_to_lines(html)),
        "source": "confluence",
        "type": "page",
    }


def parse_comment(comment: Dict[str, Any], page: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": comment["id"],
        "pageId": page["id"],
        "pageTitle": page.get("title"),
        "text": strip_html(((comment.get("body") or {}).get("storage") or {}).get("value")),
        **_author(comment),
        "timestamp": _when(comment),
        "source": "confluence",
        "type": "comment",
    }


def fetch_pages(client: ConfluenceClient, cache_path: Path, *, today: Optional[date] = None) -> List[Dict[str, Any]]:
    cache = read_json(cache_path, {}) or {}
    processed = list(cache.get("processedPageIds") or [])
    seen = set(processed)
    threshold = ((today or date.today()) - timedelta(days=client.settings.days_back)).isoformat()
    logger.info("Fetching Confluence pages modified since %s from %s", threshold, client.settings.base_url)

    pages: List[Dict[str, Any]] = []
    for query in SEARCH_QUERIES:
        try:
            results = client.search(f'{query} AND lastModified >= "{threshold}"')
        except ConfluenceAPIError as exc:
            logger.error("Error searching with query %r: %s", query, exc)
            continue
        fresh = [r for r in results if r.get("id") not in seen]
        for raw in fresh:
            seen.add(raw["id"])
            pages.append(parse_page(raw, client.settings.base_url or ""))
        logger.info("%d new pages (%d total) for %s", len(fresh), len(results), query)

    for page in pages:
        try:
            page["comments"] = [parse_comment(c, page) for c in client.comments(page["id"])]
        except ConfluenceAPIError as exc:
            logger.warning("Could not fetch comments for page %s: %s", page["id"], exc)
            page["comments"] = []
        page["commentCount"] = len(page["comments"])

    logger.info(
        "Confluence fetch complete: %d pages, %d comments", len(pages), sum(p["commentCount"] for p in pages)
    )
    processed.extend(p["id"] for p in pages)
    write_json(
        cache_path,
        {"lastFetchTimestamp": int(time.time() * 1000), "processedPageIds": processed[-MAX_CACHED_IDS:]},
    )
    return pages


def attach_departments(pages: List[Dict[str, Any]], hierarchy: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    if not hierarchy:
        return pages
    for page in pages:
        page["department"] = department_for_email(page.get("authorEmail"), hierarchy)
        for comment in page.get("comments") or []:
            comment["department"] = department_for_email(comment.get("authorEmail"), hierarchy)
    return pages


def flatten_for_analysis(pages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    items: List[Dict[str, Any]] = []
    for page in pages:
        content = page.get("content") or ""
        items.append(
            {
                "id": f"page-{page['id']}",
                "text": content,
                "quote": content[:QUOTE_CHARS],
                "author": page.get("author"),
                "department": page.get("department"),
                "date": page.get("lastModified"),
                "source": "confluence",
                "sourceType": "page",
                "sourceUrl": page.get("url"),
                "sourceTitle": page.get("title"),
                "spaceKey": page.get("spaceKey"),
                "spaceName": page.get("spaceName"),
                "labels": page.get("labels") or [],
                "actionItems": page.get("actionItems") or [],
            }
        )
        for comment in page.get("comments") or []:
            text = comment.get("text") or ""
            if len(text) <= MIN_COMMENT_CHARS:
                continue
            items.append(
                {
                    "id": f"comment-{comment['id']}",
                    "text": text,
                    "quote": text,
                    "author": comment.get("author"),
                    "department": comment.get("department"),
                    "date": comment.get("timestamp"),
                    "source": "confluence",
                    "sourceType": "comment",
                    "sourceUrl": page.get("url"),
                    "sourceTitle": page.get("title"),
                    "pageTitle": page.get("title"),
                    "spaceKey": page.get("spaceKey"),
                    "spaceName": page.get("spaceName"),
                }
            )
    return items


def collect_confluence(
    settings: ConfluenceSettings,
    output_dir: Path,
    *,
    hierarchy_path: Optional[Path] = None,
    session: Optional[requests.Session] = None,
) -> Optional[Path]:
    """Fetch AI-related Confluence pages and comments. Returns None when skipped."""
    if not settings.enabled:
        logger.warning("Confluence credentials not set; Confluence collection skipped")
        return None

    client = ConfluenceClient(settings, session=session)
    pages = fetch_pages(client, output_dir / CACHE_FILENAME)
    if not pages:
        logger.info("No new Confluence pages to process")
        return None

    hierarchy = read_json(hierarchy_path) if hierarchy_path else None
    pages = attach_departments(pages, hierarchy)
    write_json(output_dir / PAGES_FILENAME, pages)
    items = flatten_for_analysis(pages)
    target = write_json(output_dir / ITEMS_FILENAME, items)
    logger.info("Saved %d pages and %d analysis items", len(pages), len(items))
    return target
