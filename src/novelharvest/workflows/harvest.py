"""End-to-end harvest: catalogue pages in, populated catalogues out.

Pipeline:
1. fetch every catalogue page (always refreshed, catalogues change as a novel updates)
2. extract one chapter list per page; unparsable pages become per-source errors
3. optionally drop outlier mirrors before any chapter is downloaded
4. fetch pending chapters in turns until nothing fails or the turn budget is spent
5. optionally merge the surviving catalogues into one
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..core.models import Catalogue, Chapter
from .catalogue import extract_catalogue
from .content import extract_content
from .errors import InvalidSourceError, NoUsableCatalogueError
from .harvest_config import (
    HARVEST_MAX_TURNS,
    HARVEST_TURN_PAUSE,
    SIMILARITY_RATIO,
    _env_bool,
    _env_float,
    _env_int,
)
from .reconcile import merge_all, validate
from .web_fetch import FetchConfig, PageFetcher, ProgressHook

logger = logging.getLogger(__name__)


@dataclass
class HarvestConfig:
    """Pipeline knobs layered on top of the fetcher's own FetchConfig."""

    max_turns: int = HARVEST_MAX_TURNS
    turn_pause: float = HARVEST_TURN_PAUSE
    similarity_ratio: float = SIMILARITY_RATIO
    reconcile: bool = True

    @classmethod
    def from_env(cls, **overrides: Any) -> "HarvestConfig":
        config = cls(
            max_turns=max(0, _env_int("MAX_TURNS", HARVEST_MAX_TURNS)),
            turn_pause=max(0.0, _env_float("TURN_PAUSE", HARVEST_TURN_PAUSE)),
            similarity_ratio=max(0.0, _env_float("SIMILARITY_RATIO", SIMILARITY_RATIO)),
            reconcile=_env_bool("RECONCILE", "1"),
        )
        for key, value in overrides.items():
            if value is not None:
                setattr(config, key, value)
        return config


@dataclass
class HarvestResult:
    catalogues: List[Catalogue] = field(default_factory=list)
    source_errors: Dict[str, str] = field(default_factory=dict)
    turns: int = 0
    elapsed: float = 0.0
    merged: bool = False

    def missing(self) -> int:
        return sum(len(catalogue.pending()) for catalogue in self.catalogues)


async def fetch_catalogues(
    urls: Sequence[str],
    fetcher: PageFetcher,
    progress_hook: Optional[ProgressHook] = None,
) -> Tuple[List[Catalogue], Dict[str, str]]:
    """Fetch and parse every catalogue page; returns (catalogues, errors by source URL)."""

    results, _ = await fetcher.fetch_many(urls, refresh=True, progress_hook=progress_hook)
    catalogues: List[Catalogue] = []
    errors: Dict[str, str] = {}
    for result in results:
        if not result.ok:
            logger.warning("Catalogue %s could not be fetched: %s", result.url, result.error)
            errors[result.url] = result.error or "fetch failed"
            continue
        try:
            catalogue = extract_catalogue(result.text, result.final_url or result.url)
        except InvalidSourceError as exc:
            logger.warning("Skipping source %s: %s", result.url, exc.reason)
            errors[result.url] = exc.reason
            continue
        catalogue.source = result.url
        logger.info("Source %s lists %d chapter(s)", result.url, len(catalogue))
        catalogues.append(catalogue)
    return catalogues, errors


async def fetch_chapters(
    catalogues: Sequence[Catalogue],
    fetcher: PageFetcher,
    config: HarvestConfig,
    progress_hook: Optional[ProgressHook] = None,
) -> int:
    """Download pending chapters in turns; returns the number of turns run.

    A chapter already marked fetched is never requested again. Cache writes
    started during a turn are awaited before the turn ends.
    """

    turns = 0
    while turns < config.max_turns:
        pending: List[Chapter] = [chapter for catalogue in catalogues for chapter in catalogue.pending()]
        if not pending:
            break
        if turns and config.turn_pause > 0:
            await asyncio.sleep(config.turn_pause)
        turns += 1
        logger.info("Turn %d: requesting %d chapter(s)", turns, len(pending))
        results, writes = await fetcher.fetch_many([chapter.url for chapter in pending], progress_hook=progress_hook)
        failures = 0
        for chapter, result in zip(pending, results):
            if result.ok:
                chapter.mark_fetched(extract_content(result.text))
            else:
                failures += 1
        if writes:
            await asyncio.gather(*writes, return_exceptions=True)
        logger.info("Turn %d finished: %d failure(s) left", turns, failures)
    return turns


async def harvest(
    urls: Sequence[str],
    fetcher: PageFetcher,
    config: Optional[HarvestConfig] = None,
    progress_hook: Optional[ProgressHook] = None,
) -> HarvestResult:
    """Run the whole pipeline against one fetcher.

    Raises :class:`NoUsableCatalogueError` when no source yields a catalogue.
    """

    config = config or HarvestConfig()
    started = time.monotonic()

    catalogues, errors = await fetch_catalogues(urls, fetcher, progress_hook)
    if not catalogues:
        raise NoUsableCatalogueError(f"no catalogue could be extracted from {len(urls)} source(s)")

    if config.reconcile and len(catalogues) > 1:
        catalogues = validate(catalogues, config.similarity_ratio)
        if not catalogues:
            raise NoUsableCatalogueError("no catalogue passed validation")

    turns = await fetch_chapters(catalogues, fetcher, config, progress_hook)

    merged = False
    if config.reconcile and len(catalogues) > 1:
        catalogues = [merge_all(catalogues)]
        merged = True

    await fetcher.flush()
    result = HarvestResult(
        catalogues=catalogues,
        source_errors=errors,
        turns=turns,
        elapsed=time.monotonic() - started,
        merged=merged,
    )
    logger.info(
        "Harvest finished in %.1fs: %d catalogue(s), %d chapter(s) still missing",
        result.elapsed,
        len(result.catalogues),
        result.missing(),
    )
    return result


def run_harvest(
    urls: Sequence[str],
    fetch_config: Optional[FetchConfig] = None,
    config: Optional[HarvestConfig] = None,
    progress_hook: Optional[ProgressHook] = None,
) -> HarvestResult:
    """Synchronous entry point: builds a PageFetcher, harvests and flushes the cache."""

    async def _main() -> HarvestResult:
        async with PageFetcher(fetch_config) as fetcher:
            return await harvest(urls, fetcher, config, progress_hook)

    return asyncio.run(_main())
