"""Harvest defaults (cache layout, retry budget, heuristics thresholds, headers).

Centralizes static defaults so the workflow modules carry no embedded magic
values. Callers override them through FetchConfig / HarvestConfig.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

# Cache layout
CACHE_ROOT = Path(".cache")
CACHE_HTML_FOLDER = "html"
CACHE_MAX_BYTES = 256 * 1024 * 1024

# Fetch policy
FETCH_MAX_ATTEMPTS = 5
FETCH_RETRY_PAUSE = 5.0
FETCH_CONCURRENCY = 5
FETCH_TIMEOUT = 20.0
FETCH_MAX_REDIRECTS = 10
DEFAULT_SCHEME = "http://"
# In-page client-side redirect directive; group 2 is the target.
REDIRECT_PATTERN = r"""window\.location(?:\.href)?\s*=\s*(["'])(.*?)\1"""
ENCODING_SNIFF_BYTES = 1024

# Headers
HDR_USER_AGENT = "User-Agent"
HDR_ACCEPT = "Accept"
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)
ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"

# Content normalization
CONTENT_INDENT = "    "

# Reconciliation heuristics
SIMILARITY_RATIO = 0.5
QUALITY_LENGTH_RATIO = 0.8
SHORT_LINE_CHARS = 10
NOISE_SYMBOLS = (
    "&", ";", "(", ")", "~", "@", "#", "%", "^", "*",
    "-", "+", "http", ":", "/", "<", ">",
)

# Harvest turns
HARVEST_MAX_TURNS = 3
HARVEST_TURN_PAUSE = 5.0

# Writer
CONTENT_PLACEHOLDER = "Content unavailable."

ENV_PREFIX = "NOVELHARVEST_"


def _env(name: str) -> Optional[str]:
    return os.getenv(f"{ENV_PREFIX}{name}")


def _env_int(name: str, default: int) -> int:
    try:
        raw = _env(name) or ""
        return int(raw) if raw.strip() else default
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    try:
        raw = _env(name) or ""
        return float(raw) if raw.strip() else default
    except (TypeError, ValueError):
        return default


def _env_bool(name: str, default: str = "0") -> bool:
    raw = _env(name)
    if raw is None:
        raw = default
    return str(raw).strip().lower() not in {"0", "false", "no", "off", ""}
