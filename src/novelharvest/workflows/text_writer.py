"""Plain-text rendering of harvested catalogues and JSON-able run summaries."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..core.keys import K_CHAPTERS, K_COUNTS, K_ERROR, K_FETCHED, K_SOURCE
from ..core.models import Catalogue
from .harvest import HarvestResult
from .harvest_config import CONTENT_INDENT, CONTENT_PLACEHOLDER

logger = logging.getLogger(__name__)


def render_text(catalogue: Catalogue, title: Optional[str] = None, author: Optional[str] = None) -> str:
    """Header, then every chapter name followed by its body or the placeholder."""

    parts: List[str] = []
    if title:
        parts.append(f"Name:\t{title}\n")
    if author:
        parts.append(f"Author:\t{author}\n")
    for chapter in catalogue:
        parts.append(f"\n{chapter.name}\n")
        if chapter.fetched:
            parts.append(chapter.content)
        else:
            parts.append(f"{CONTENT_INDENT}{CONTENT_PLACEHOLDER}\n")
    return "".join(parts)


def write_text(
    catalogue: Catalogue,
    path: Path,
    title: Optional[str] = None,
    author: Optional[str] = None,
) -> Path:
    """Write ``catalogue`` as UTF-8 text; ``.txt`` is appended when missing."""

    path = Path(path)
    if path.suffix.lower() != ".txt":
        path = path.with_name(path.name + ".txt")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_text(catalogue, title, author), encoding="utf-8")
    logger.info("Wrote %d chapter(s) to %s", len(catalogue), path)
    return path


def summarize(result: HarvestResult) -> Dict[str, Any]:
    catalogues: List[Dict[str, Any]] = []
    for catalogue in result.catalogues:
        fetched = catalogue.fetched_count()
        catalogues.append(
            {
                K_SOURCE: catalogue.source,
                K_COUNTS: {
                    K_CHAPTERS: len(catalogue),
                    K_FETCHED: fetched,
                    "missing": len(catalogue) - fetched,
                },
            }
        )
    return {
        "catalogues": catalogues,
        "merged": result.merged,
        "turns": result.turns,
        "elapsed": round(result.elapsed, 3),
        "source_errors": [
            {K_SOURCE: source, K_ERROR: message} for source, message in result.source_errors.items()
        ],
    }
