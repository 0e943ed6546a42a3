"""Cross-mirror reconciliation: agree on a table of contents, then merge content.

``validate`` clusters catalogues whose chapter-name sequences are within a
relative edit distance of each other and keeps the dominant cluster.
``merge`` aligns two catalogues and keeps the better copy of every chapter
they share.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, Set

from ..core.models import Catalogue, Chapter
from .errors import NoUsableCatalogueError
from .harvest_config import (
    NOISE_SYMBOLS,
    QUALITY_LENGTH_RATIO,
    SHORT_LINE_CHARS,
    SIMILARITY_RATIO,
)
from .sequence_diff import EditOp, edit_distance, shortest_edit_script

logger = logging.getLogger(__name__)

__all__ = [
    "partition",
    "validate",
    "short_line_count",
    "noise_symbol_count",
    "content_quality_over",
    "merge",
    "merge_all",
    "reconcile",
]


def _within(a: Sequence[str], b: Sequence[str], ratio: float) -> bool:
    return edit_distance(a, b) <= min(len(a) * ratio, len(b) * ratio)


def partition(catalogues: Sequence[Catalogue], ratio: float = SIMILARITY_RATIO) -> List[List[Catalogue]]:
    """Greedily group catalogues whose name sequences are mutually similar.

    A catalogue joins the first cluster where its distance to every member is
    at most ``ratio`` times the shorter of the two lengths; otherwise it opens
    a new cluster. A ratio of 0 puts everything in one cluster.
    """

    if ratio < 0:
        raise ValueError("ratio must be non-negative")
    items = list(catalogues)
    if not items:
        return []
    if ratio == 0 or len(items) == 1:
        return [items]
    clusters: List[List[Catalogue]] = []
    for catalogue in items:
        names = catalogue.names
        for cluster in clusters:
            if all(_within(names, member.names, ratio) for member in cluster):
                cluster.append(catalogue)
                break
        else:
            clusters.append([catalogue])
    return clusters


def _chapter_total(cluster: Sequence[Catalogue]) -> int:
    return sum(len(catalogue) for catalogue in cluster)


def validate(catalogues: Sequence[Catalogue], ratio: float = SIMILARITY_RATIO) -> List[Catalogue]:
    """Members of the largest similarity cluster.

    Ties on member count go to the cluster enumerating more chapters in
    total, then to the cluster formed first.
    """

    items = list(catalogues)
    if len(items) <= 1:
        return items
    clusters = partition(items, ratio)
    best = clusters[0]
    for cluster in clusters[1:]:
        if len(cluster) > len(best):
            best = cluster
        elif len(cluster) == len(best) and _chapter_total(cluster) > _chapter_total(best):
            best = cluster
    dropped = [c.source for c in items if not any(c is member for member in best)]
    if dropped:
        logger.info("Discarded %d outlier catalogue(s): %s", len(dropped), ", ".join(str(s) for s in dropped))
    return list(best)


def short_line_count(text: str, threshold: int = SHORT_LINE_CHARS) -> int:
    return sum(1 for line in text.splitlines() if len(line) < threshold)


def noise_symbol_count(text: str, symbols: Iterable[str] = NOISE_SYMBOLS) -> int:
    return sum(text.count(symbol) for symbol in symbols)


def _ratio(a: int, b: int) -> float:
    if b == 0:
        return float("inf") if a else float("nan")
    return a / b


def content_quality_over(u: Chapter, v: Chapter) -> Chapter:
    """Pick the better copy of one chapter; ``u`` wins every full tie.

    Preference order: not egregiously shorter (below 80% of the other),
    fewer short lines, fewer noise symbols.
    """

    lu, lv = len(u.content), len(v.content)
    if _ratio(lu, lv) < QUALITY_LENGTH_RATIO:
        return v
    if _ratio(lv, lu) < QUALITY_LENGTH_RATIO:
        return u

    su, sv = short_line_count(u.content), short_line_count(v.content)
    if su != sv:
        return v if su > sv else u

    nu, nv = noise_symbol_count(u.content), noise_symbol_count(v.content)
    if nu != nv:
        return v if nu > nv else u
    return u


def merge(u: Optional[Catalogue], v: Optional[Catalogue]) -> Catalogue:
    """Align two catalogues by chapter name and keep the better copy of shared chapters.

    The result owns copies of the chosen chapters and follows the alignment's
    merge order.
    """

    if u is None and v is None:
        return Catalogue()
    if u is None:
        return Catalogue(chapters=[c.copy() for c in v.chapters], source=v.source)
    if v is None:
        return Catalogue(chapters=[c.copy() for c in u.chapters], source=u.source)

    u_map, v_map = u.by_name(), v.by_name()
    chapters: List[Chapter] = []
    emitted: Set[str] = set()
    i = j = 0
    for op in shortest_edit_script(u.names, v.names):
        if op is EditOp.KEEP:
            name = u.chapters[i].name
            i, j = i + 1, j + 1
        elif op is EditOp.DELETE:
            name = u.chapters[i].name
            i += 1
        else:
            name = v.chapters[j].name
            j += 1
        # A shared name the alignment left unmatched (e.g. a transposed pair)
        # is emitted once, at its first position.
        if name in emitted:
            continue
        emitted.add(name)
        left, right = u_map.get(name), v_map.get(name)
        if left is not None and right is not None:
            chosen = content_quality_over(left, right)
        else:
            chosen = left if left is not None else right
        chapters.append(chosen.copy())
    return Catalogue(chapters=chapters, source=u.source)


def merge_all(catalogues: Sequence[Catalogue]) -> Catalogue:
    """Fold :func:`merge` left over ``catalogues``."""

    merged: Optional[Catalogue] = None
    for catalogue in catalogues:
        merged = merge(merged, catalogue)
    if merged is None or not merged.chapters:
        raise NoUsableCatalogueError("merge produced no chapters")
    return merged


def reconcile(catalogues: Sequence[Catalogue], ratio: float = SIMILARITY_RATIO) -> Catalogue:
    """Validate then merge; raises :class:`NoUsableCatalogueError` on total failure."""

    valid = validate(catalogues, ratio)
    if not valid:
        raise NoUsableCatalogueError("no catalogue passed validation")
    return merge_all(valid)
