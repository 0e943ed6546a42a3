"""High-level exports for the novelharvest workflows."""

from .catalogue import extract_catalogue
from .content import extract_content
from .errors import (
    FetchError,
    HarvestError,
    InvalidSourceError,
    NoUsableCatalogueError,
)
from .harvest import HarvestConfig, HarvestResult, harvest, run_harvest
from .page_cache import PageCache
from .reconcile import content_quality_over, merge, merge_all, reconcile, validate
from .text_writer import summarize, write_text
from .web_fetch import FetchConfig, FetchResult, PageFetcher

__all__ = [
    "extract_catalogue",
    "extract_content",
    "FetchError",
    "HarvestError",
    "InvalidSourceError",
    "NoUsableCatalogueError",
    "HarvestConfig",
    "HarvestResult",
    "harvest",
    "run_harvest",
    "PageCache",
    "content_quality_over",
    "merge",
    "merge_all",
    "reconcile",
    "validate",
    "summarize",
    "write_text",
    "FetchConfig",
    "FetchResult",
    "PageFetcher",
]
