from __future__ import annotations

import importlib.util
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .harvest_config import CACHE_ROOT, ENV_PREFIX, _env, _env_bool
from .page_cache import PageCache
from .web_fetch import FetchConfig

_REQUIRED_MODULES = (
    ("aiohttp", "aiohttp"),
    ("bs4", "beautifulsoup4"),
    ("lxml", "lxml"),
    ("charset_normalizer", "charset-normalizer"),
)

# Environment knobs that must parse as numbers when set.
_NUMERIC_ENV = (
    "CONCURRENCY",
    "TIMEOUT",
    "MAX_ATTEMPTS",
    "RETRY_PAUSE",
    "CACHE_MAX_BYTES",
    "MAX_TURNS",
    "TURN_PAUSE",
    "SIMILARITY_RATIO",
)


def _check_writable(path: Path) -> bool:
    try:
        candidate = path
        while not candidate.exists():
            if candidate.parent == candidate:
                return False
            candidate = candidate.parent
        return candidate.is_dir() and os.access(candidate, os.W_OK)
    except OSError:
        return False


def _cache_dir() -> Path:
    return Path(_env("CACHE_DIR") or CACHE_ROOT)


def collect_environment_warnings() -> List[Dict[str, str]]:
    """Non-fatal environment problems as ``{code, message, remedy}`` dicts."""

    warnings: List[Dict[str, str]] = []
    for name in _NUMERIC_ENV:
        raw = _env(name)
        if raw is None or not raw.strip():
            continue
        try:
            float(raw)
        except ValueError:
            warnings.append(
                {
                    "code": f"{name.lower()}_invalid",
                    "message": f"{ENV_PREFIX}{name}={raw!r} is not a number; the default is used",
                    "remedy": f"Fix or unset {ENV_PREFIX}{name}.",
                }
            )
    if not _env_bool("CACHE_DISABLE", "0") and not _check_writable(_cache_dir()):
        warnings.append(
            {
                "code": "cache_dir_not_writable",
                "message": f"cache directory {_cache_dir()} is not writable; pages will always be fetched",
                "remedy": f"Create the directory or point {ENV_PREFIX}CACHE_DIR at a writable location.",
            }
        )
    return warnings


def build_doctor_report(*, config: Optional[FetchConfig] = None) -> Dict[str, Any]:
    config = config or FetchConfig.from_env()
    report: Dict[str, Any] = {
        "generated_at": datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z"),
        "ok": True,
        "checks": [],
        "environment_warnings": collect_environment_warnings(),
    }

    def add_check(
        name: str,
        status: bool,
        *,
        detail: Optional[str] = None,
        remedy: Optional[str] = None,
        level: str = "warn",
    ) -> None:
        entry = {
            "name": name,
            "status": "ok" if status else "missing",
            "level": level,
            "detail": detail,
        }
        if remedy:
            entry["remedy"] = remedy
        report["checks"].append(entry)
        if not status and level == "warn":
            report["ok"] = False

    for module, dist in _REQUIRED_MODULES:
        present = importlib.util.find_spec(module) is not None
        add_check(
            dist,
            present,
            detail="importable" if present else "not importable",
            remedy=f"pip install {dist}",
        )

    if config.disable_cache:
        add_check("cache", True, detail="cache disabled; every page is fetched", level="info")
    else:
        cache = PageCache(config.cache_dir, max_bytes=config.cache_max_bytes)
        stats = cache.stats()
        detail = f"{stats['root']} ({stats['entries']} entries, {stats['total_bytes']} of {stats['max_bytes']} bytes)"
        if cache.purged:
            detail += "; purged on load"
        add_check(
            "cache",
            bool(stats["enabled"]),
            detail=detail,
            remedy=f"Create the cache directory or set {ENV_PREFIX}CACHE_DIR to a writable location.",
        )

    add_check(
        "fetch",
        True,
        detail=(
            f"concurrency={config.concurrency} attempts={config.max_attempts} "
            f"pause={config.retry_pause}s timeout={config.timeout}s cookie={config.use_cookie}"
        ),
        level="info",
    )
    return report


def format_doctor_report(report: Dict[str, Any]) -> str:
    lines: List[str] = []
    lines.append("novelharvest doctor")
    lines.append(f"Generated: {report.get('generated_at')}")
    lines.append("")
    for check in report.get("checks", []):
        name = check.get("name", "check")
        status = check.get("status", "unknown")
        level = check.get("level", "info")
        lines.append(f"- [{level}] {name}: {status}")
        detail = check.get("detail")
        if detail:
            lines.append(f"  detail: {detail}")
        remedy = check.get("remedy")
        if remedy and status != "ok":
            lines.append(f"  remedy: {remedy}")
    warnings = report.get("environment_warnings") or []
    if warnings:
        lines.append("")
        lines.append("Environment warnings:")
        for warning in warnings:
            lines.append(f"- {warning.get('code', 'warning')}: {warning.get('message', '')}")
            remedy = warning.get("remedy")
            if remedy:
                lines.append(f"  remedy: {remedy}")
    return "\n".join(lines).rstrip() + "\n"
