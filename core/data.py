from __future__ import annotations

import json
import logging
from decimal import ROUND_HALF_DOWN, ROUND_HALF_UP, Decimal
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from core.config import DashboardPaths, get_paths


logger = logging.getLogger(__name__)

FileSignature = Tuple[Tuple[str, float], ...]


def file_signature(files: List[Path]) -> FileSignature:
    return tuple((str(f), f.stat().st_mtime) for f in files if f.exists())


def round_half_up(value: object, ndigits: int = 0) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    q = Decimal(10) ** -ndigits
    return float(Decimal(str(value)).quantize(q, rounding=ROUND_HALF_UP))


def round_half_ceiling(value: object, ndigits: int = 0) -> Optional[float]:
    """Like round_half_up, but negative ties go toward zero (-12.5 -> -12)."""
    if value is None or pd.isna(value):
        return None
    d = Decimal(str(value))
    q = Decimal(10) ** -ndigits
    return float(d.quantize(q, rounding=ROUND_HALF_UP if d >= 0 else ROUND_HALF_DOWN))


def round2(value: object) -> float:
    out = round_half_up(value, 2)
    return out if out is not None else 0.0


def read_json(path: Path, default: Any = None) -> Any:
    if not path.exists():
        return default
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def write_json(path: Path, data: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False, default=_json_default)
        f.write("\n")
    return path


def _json_default(value: Any) -> Any:
    if isinstance(value, pd.Timestamp):
        return value.isoformat()
    if hasattr(value, "item"):
        return value.item()
    if isinstance(value, set):
        return sorted(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


# ---------------- Cached loaders (FastAPI use) ----------------
@lru_cache(maxsize=4)
def _read_json_cached(files_sig: FileSignature) -> Any:
    if not files_sig:
        return None
    return read_json(Path(files_sig[0][0]))


def load_cached_json(path: Path, default: Any = None) -> Any:
    sig = file_signature([path])
    if not sig:
        return default
    data = _read_json_cached(sig)
    return default if data is None else data


def load_dashboard_data(paths: Optional[DashboardPaths] = None) -> Dict[str, Any]:
    paths = paths or get_paths()
    return {
        "org_chart": load_cached_json(paths.org_chart, {}),
        "ai_tools": load_cached_json(paths.ai_tools_data, {}),
        "roi_config": load_cached_json(paths.roi_config, {}),
        "perceived_value": load_cached_json(paths.perceived_value, {}),
        "tool_sentiment": load_cached_json(paths.tool_sentiment, {}),
    }


def clear_caches() -> None:
    _read_json_cached.cache_clear()
