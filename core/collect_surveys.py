from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from core.data import read_json, write_json
from core.hierarchy import department_for_email


logger = logging.getLogger(__name__)

OUTPUT_FILENAME = "survey-responses.json"
MIN_FEEDBACK_CHARS = 10

SURVEY_COLUMNS = {
    "email": ["Email", "email", "Email Address"],
    "name": ["Name", "name", "Full Name"],
    "nps": ["NPS", "NPS Score", "How likely are you to recommend"],
    "rating": ["Rating", "Overall Rating", "Satisfaction"],
    "feedback": ["Feedback", "Additional Comments", "Comments", "Open Feedback"],
    "tool": ["Tool", "AI Tool", "Which tool"],
    "timestamp": ["Timestamp", "Date", "Submitted At"],
}


def _first(row: Dict[str, Any], field: str) -> Optional[str]:
    for col in SURVEY_COLUMNS[field]:
        value = row.get(col)
        if value is not None and not pd.isna(value) and str(value).strip():
            return str(value).strip()
    return None


def _as_int(value: Optional[str]) -> int:
    num = pd.to_numeric(value, errors="coerce")
    return 0 if pd.isna(num) else int(num)


def parse_survey_files(survey_dir: Path) -> List[Dict[str, Any]]:
    if not survey_dir.exists():
        logger.warning("Survey directory not found: %s", survey_dir)
        return []
    files = sorted(survey_dir.glob("*.csv"))
    if not files:
        logger.info("No survey CSV files in %s", survey_dir)
        return []

    responses: List[Dict[str, Any]] = []
    for path in files:
        df = pd.read_csv(path, dtype=str, keep_default_na=False, skipinitialspace=True)
        df.columns = [str(c).strip() for c in df.columns]
        kept = 0
        for row in df.to_dict(orient="records"):
            feedback = _first(row, "feedback") or ""
            if len(feedback) <= MIN_FEEDBACK_CHARS:
                continue
            timestamp = _first(row, "timestamp")
            parsed = pd.to_datetime(timestamp, errors="coerce", utc=True) if timestamp else pd.NaT
            responses.append(
                {
                    "id": f"survey-{path.stem}-{kept}",
                    "text": feedback,
                    "quote": feedback,
                    "author": _first(row, "name") or "Anonymous",
                    "email": _first(row, "email") or "",
                    "date": parsed.isoformat() if not pd.isna(parsed) else datetime.now(timezone.utc).isoformat(),
                    "source": "survey",
                    "sourceFile": path.name,
                    "npsScore": _as_int(_first(row, "nps")),
                    "rating": _as_int(_first(row, "rating")),
                    "tool": _first(row, "tool") or "Unknown",
                }
            )
            kept += 1
        logger.info("%s: %d of %d rows with feedback", path.name, kept, len(df))
    return responses


def collect_surveys(survey_dir: Path, output_dir: Path, *, hierarchy_path: Optional[Path] = None) -> Optional[Path]:
    responses = parse_survey_files(survey_dir)
    if not responses:
        return None
    hierarchy = read_json(hierarchy_path) if hierarchy_path else None
    if hierarchy:
        for resp in responses:
            resp["department"] = department_for_email(resp.get("email"), hierarchy)
    target = write_json(output_dir / OUTPUT_FILENAME, responses)
    logger.info("Saved %d survey responses to %s", len(responses), target)
    return target
