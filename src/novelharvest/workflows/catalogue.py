"""Locate a novel's chapter list inside arbitrary catalogue HTML.

Strategies run in a fixed priority order and the first one that yields any
hyperlink wins:

1. ``<a>`` nested under ``<dl>`` (the classic mirror-site layout)
2. ``<a>`` nested under ``<ul>``
3. ``<a>`` from whichever ``<div>`` directly holds the most links
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from bs4 import BeautifulSoup
from bs4.element import PageElement, Tag

from ..core.models import Catalogue, Chapter
from .errors import InvalidSourceError
from .html_normalize import resolve_url
from .markup import is_tag, node_text, parse_html, widest_subtree

logger = logging.getLogger(__name__)

__all__ = [
    "Link",
    "STRATEGIES",
    "extract_links",
    "parse_links",
    "dedupe_links",
    "extract_catalogue",
]


@dataclass(frozen=True)
class Link:
    text: str
    href: str


def _links_under_dl(doc: BeautifulSoup) -> List[PageElement]:
    return list(doc.select("dl a"))


def _links_under_ul(doc: BeautifulSoup) -> List[PageElement]:
    return list(doc.select("ul a"))


def _most_links_under_div(doc: BeautifulSoup) -> List[PageElement]:
    return widest_subtree(doc, is_tag("div"), is_tag("a"))


Strategy = Callable[[BeautifulSoup], List[PageElement]]

STRATEGIES: Tuple[Tuple[str, Strategy], ...] = (
    ("dl", _links_under_dl),
    ("ul", _links_under_ul),
    ("div", _most_links_under_div),
)


def parse_links(nodes: List[PageElement]) -> List[Link]:
    """Convert ``<a>`` nodes to (text, href) pairs, skipping anchors without href."""

    links: List[Link] = []
    for node in nodes:
        if not isinstance(node, Tag) or node.name != "a":
            continue
        href = node.get("href")
        if isinstance(href, list):
            href = " ".join(href)
        if not href:
            continue
        links.append(Link(text=node_text(node).strip(), href=href.strip()))
    return links


def extract_links(doc: BeautifulSoup) -> Tuple[Optional[str], List[Link]]:
    """Run the strategy chain; return the winning strategy name and its links."""

    for name, strategy in STRATEGIES:
        links = parse_links(strategy(doc))
        if links:
            return name, links
    return None, []


def dedupe_links(links: List[Link], base_url: str) -> List[Chapter]:
    """Build chapters from links, dropping every name that occurs more than once.

    Mirrors repeat the newest chapters above the real list (and sometimes the
    tail below it), so any name seen twice is discarded entirely. The order
    of the surviving chapters follows the page.
    """

    raw: List[Chapter] = []
    for link in links:
        if not link.text or not link.href:
            continue
        url = resolve_url(base_url, link.href)
        if url is None:
            continue
        raw.append(Chapter(name=link.text.strip(), url=url))
    counts = Counter(chapter.name for chapter in raw)
    return [chapter for chapter in raw if counts[chapter.name] == 1]


def extract_catalogue(html: str, base_url: str) -> Catalogue:
    """Return the ordered chapter list of a catalogue page.

    Raises :class:`InvalidSourceError` when no strategy finds a usable link.
    """

    doc = parse_html(html)
    strategy, links = extract_links(doc)
    if strategy is None:
        raise InvalidSourceError(base_url)
    chapters = dedupe_links(links, base_url)
    if not chapters:
        raise InvalidSourceError(base_url, f"strategy '{strategy}' left no unique chapter")
    logger.debug(
        "Catalogue %s: strategy=%s links=%d chapters=%d",
        base_url,
        strategy,
        len(links),
        len(chapters),
    )
    return Catalogue(chapters=chapters, source=base_url)
