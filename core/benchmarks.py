"""Industry productivity benchmarks.

Published studies are researched through the Messages API, weighted by
recency, source credibility and sample size, and aggregated into an
hours-saved-per-month estimate with a 95% confidence interval. Results are
cached in ``roi_config.json`` under ``industryBenchmarks`` for 30 days.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np

from core.data import read_json, round_half_up, write_json
from core.llm import ClaudeClient, LLMError, extract_json_array


logger = logging.getLogger(__name__)

CACHE_TTL_DAYS = 30
Z_95 = 1.96
MEDIAN_CV_THRESHOLD = 0.5

ROLES = ["software_engineer", "sales", "marketing", "customer_success"]

# config key -> (display name used in the research prompt, roles researched)
TOOLS: Dict[str, tuple] = {
    "githubCopilot": ("GitHub Copilot", ["software_engineer"]),
    "m365Copilot": ("Microsoft 365 Copilot", ROLES),
    "claudeCode": ("Claude Code Premium", ["software_engineer"]),
    "claudeEnterprise": ("Claude Enterprise", ROLES),
}
TOOLS_WITH_DEFAULT = {"m365Copilot", "claudeEnterprise"}

CREDIBILITY = [
    (("forrester", "gartner"), 1.2),
    (("academic", "university"), 1.1),
    (("microsoft", "github", "anthropic", "openai"), 0.8),
]
UNKNOWN_CREDIBILITY = 0.5

RESEARCH_PROMPT = """Research productivity benchmarks for {tool} used by {role} professionals.

Please search for and analyze published research studies, reports, and whitepapers from credible sources including:
- Forrester Research
- Gartner
- Anthropic (for Claude-related tools)
- Microsoft (for M365 Copilot)
- GitHub/OpenAI (for GitHub Copilot)
- Google (for Workspace AI)
- Academic peer-reviewed studies

For each study you find, extract:
1. Hours saved per month (or convert from other time units)
2. Sample size (number of participants)
3. Publication year
4. Author/organization
5. Study methodology (survey, controlled experiment, observational, etc.)
6. Statistical significance indicators (p-value, confidence level)

Return your findings as a JSON array with this structure:
[
  {{
    "title": "Study Title",
    "author": "Organization Name",
    "year": 2024,
    "sampleSize": 1200,
    "hoursSavedPerMonth": 15.2,
    "methodology": "Controlled experiment",
    "pValue": 0.01,
    "confidenceLevel": 0.95,
    "url": "https://...",
    "notes": "Any relevant context"
  }}
]

Focus on recent studies (2023-2025) but include older landmark studies if they have large sample sizes.
If you find no studies, return an empty array []."""


def empty_result(confidence_level: str = "none") -> Dict[str, Any]:
    return {
        "hoursSavedPerMonth": None,
        "confidenceInterval": None,
        "confidenceLevel": confidence_level,
        "lowConfidence": True,
        "coefficientOfVariation": None,
        "studyCount": 0,
        "totalSampleSize": 0,
        "aggregationMethod": None,
        "sources": [],
    }


def credibility_factor(author: Optional[str]) -> float:
    lowered = (author or "").lower()
    for keywords, factor in CREDIBILITY:
        if any(k in lowered for k in keywords):
            return factor
    return UNKNOWN_CREDIBILITY


def study_weight(study: Dict[str, Any], current_year: int) -> float:
    recency = math.exp(-(current_year - int(study.get("year") or current_year)) / 2)
    sample = float(study.get("sampleSize") or 0) / 1000
    return sample * recency * credibility_factor(study.get("author"))


def _valid_studies(studies: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    out = []
    for s in studies or []:
        try:
            float(s["hoursSavedPerMonth"])
        except (KeyError, TypeError, ValueError):
            logger.debug("Dropping study without hoursSavedPerMonth: %s", s.get("title"))
            continue
        out.append(s)
    return out


def aggregate_studies(studies: List[Dict[str, Any]], *, current_year: Optional[int] = None) -> Dict[str, Any]:
    studies = _valid_studies(studies)
    if not studies:
        return empty_result()

    current_year = current_year or datetime.now().year
    hours = np.array([float(s["hoursSavedPerMonth"]) for s in studies])
    weights = np.array([study_weight(s, current_year) for s in studies])
    n = len(studies)

    weighted_mean = float(np.average(hours, weights=weights)) if weights.sum() > 0 else float(hours.mean())
    median = float(np.median(hours))
    mean = float(hours.mean())
    std = float(hours.std())
    cv = std / mean if mean else 0.0

    method = "median" if cv > MEDIAN_CV_THRESHOLD else "weighted_mean"
    value = median if method == "median" else weighted_mean
    margin = Z_95 * std / math.sqrt(n)

    if n < 3 or cv > 0.6:
        level = "low"
    elif n < 5 or cv > 0.4:
        level = "medium"
    else:
        level = "high"

    sources = [
        {
            "title": s.get("title"),
            "author": s.get("author"),
            "year": s.get("year"),
            "sampleSize": s.get("sampleSize"),
            "findingHours": s.get("hoursSavedPerMonth"),
            "weight": round_half_up(w, 2),
            "url": s.get("url") or None,
        }
        for s, w in zip(studies, weights)
    ]
    return {
        "hoursSavedPerMonth": round_half_up(value, 1),
        "confidenceInterval": [round_half_up(max(0.0, value - margin), 1), round_half_up(value + margin, 1)],
        "confidenceLevel": level,
        "lowConfidence": level == "low",
        "coefficientOfVariation": round_half_up(cv, 2),
        "studyCount": n,
        "totalSampleSize": int(sum(int(s.get("sampleSize") or 0) for s in studies)),
        "aggregationMethod": method,
        "sources": sources,
    }


def cache_expired(config: Dict[str, Any], *, now: Optional[datetime] = None) -> bool:
    expiry = (config.get("industryBenchmarks") or {}).get("cacheExpiry")
    if not expiry:
        return True
    now = now or datetime.now(timezone.utc)
    expiry_dt = datetime.fromisoformat(str(expiry).replace("Z", "+00:00"))
    if expiry_dt.tzinfo is None:
        expiry_dt = expiry_dt.replace(tzinfo=timezone.utc)
    return now >= expiry_dt


def research_benchmarks(client: ClaudeClient, tool: str, role: str) -> List[Dict[str, Any]]:
    logger.info("Researching %s benchmarks for %s", tool, role)
    try:
        text = client.complete(RESEARCH_PROMPT.format(tool=tool, role=role))
        studies = extract_json_array(text)
    except LLMError as exc:
        logger.warning("Research for %s/%s returned no studies: %s", tool, role, exc)
        return []
    logger.info("Found %d studies", len(studies))
    return [s for s in studies if isinstance(s, dict)]


def research_all(client: ClaudeClient, *, current_year: Optional[int] = None) -> Dict[str, Any]:
    benchmarks: Dict[str, Any] = {}
    first = True
    for key, (display, roles) in TOOLS.items():
        benchmarks[key] = {}
        for role in roles:
            if not first:
                client.pause()
            first = False
            studies = research_benchmarks(client, display, role.replace("_", " "))
            benchmarks[key][role] = aggregate_studies(studies, current_year=current_year)
        if key in TOOLS_WITH_DEFAULT:
            benchmarks[key]["default"] = empty_result("low")
    return benchmarks


def refresh_benchmarks(
    config_path: Path, client: Optional[ClaudeClient] = None, *, force: bool = False, now: Optional[datetime] = None
) -> Optional[Dict[str, Any]]:
    """Refresh cached benchmarks in roi_config.json. Returns None when the cache is still fresh."""
    config = read_json(config_path)
    if config is None:
        raise FileNotFoundError(f"roi_config.json not found: {config_path}")

    now = now or datetime.now(timezone.utc)
    if not force and not cache_expired(config, now=now):
        logger.info("Benchmark cache is valid until %s; use --force to refresh", config["industryBenchmarks"]["cacheExpiry"])
        return None

    client = client or ClaudeClient()
    benchmarks = research_all(client, current_year=now.year)
    config["industryBenchmarks"] = {
        **benchmarks,
        "cacheExpiry": (now + timedelta(days=CACHE_TTL_DAYS)).isoformat(),
        "lastUpdated": now.isoformat(),
    }
    write_json(config_path, config)
    for key, roles in benchmarks.items():
        for role, result in roles.items():
            if role != "default":
                logger.info("%s (%s): %d studies, %s hrs/mo", key, role, result["studyCount"], result["hoursSavedPerMonth"] or "N/A")
    return config["industryBenchmarks"]
