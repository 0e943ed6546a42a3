"""Generic tree searches over a parsed BeautifulSoup document.

Every search is iterative (explicit stack) so deeply nested mirror pages do
not hit the recursion limit, and every search is a pure function of the tree.
Results are returned in document order.
"""

from __future__ import annotations

from typing import Callable, Iterable, List, Optional, Tuple

from bs4 import BeautifulSoup
from bs4.element import NavigableString, PageElement, PreformattedString, Tag

NodePredicate = Callable[[PageElement], bool]

__all__ = [
    "NodePredicate",
    "parse_html",
    "is_tag",
    "is_text",
    "any_of",
    "never",
    "collect_under",
    "widest_subtree",
    "widest_text",
    "node_text",
]

# Text inside these elements is never page prose.
NON_TEXT_TAGS = ("script", "style")


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "lxml")


def is_tag(*names: str) -> NodePredicate:
    """Predicate matching elements whose tag name is one of ``names``."""

    wanted = frozenset(name.lower() for name in names)

    def _match(node: PageElement) -> bool:
        return isinstance(node, Tag) and (node.name or "").lower() in wanted

    return _match


def is_text(node: PageElement) -> bool:
    """True for plain text nodes (comments, doctypes and CDATA are excluded)."""

    return isinstance(node, NavigableString) and not isinstance(node, PreformattedString)


def any_of(*predicates: Optional[NodePredicate]) -> NodePredicate:
    active = [p for p in predicates if p is not None]

    def _match(node: PageElement) -> bool:
        return any(p(node) for p in active)

    return _match


def never(node: PageElement) -> bool:
    return False


def _children(node: PageElement) -> Iterable[PageElement]:
    if isinstance(node, Tag):
        return node.contents
    return ()


def collect_under(
    root: PageElement,
    select: NodePredicate,
    avoid: Optional[NodePredicate] = None,
) -> List[PageElement]:
    """Depth-first collection of nodes matching ``select``.

    Subtrees rooted at a descendant matching ``avoid`` are skipped whole. The
    root itself is always examined.
    """

    avoid = avoid or never
    found: List[PageElement] = []
    stack: List[PageElement] = [root]
    while stack:
        node = stack.pop()
        if select(node):
            found.append(node)
        children = [child for child in _children(node) if not avoid(child)]
        stack.extend(reversed(children))
    return found


def _containers(root: PageElement, container: NodePredicate) -> List[PageElement]:
    return collect_under(root, container)


def widest_subtree(
    root: PageElement,
    container: NodePredicate,
    select: NodePredicate,
    avoid: Optional[NodePredicate] = None,
) -> List[PageElement]:
    """Matches of ``select`` from whichever container node yields the most of them.

    Each candidate is searched independently without descending into nested
    containers of the same kind. Ties keep the earliest container.
    """

    skip = any_of(container, avoid)
    best: List[PageElement] = []
    for candidate in _containers(root, container):
        matches = collect_under(candidate, select, skip)
        if len(matches) > len(best):
            best = matches
    return best


def node_text(root: PageElement, sep: str = "", avoid: Optional[NodePredicate] = None) -> str:
    """Join the text nodes under ``root`` (skipping script/style and ``avoid``)."""

    skip = any_of(is_tag(*NON_TEXT_TAGS), avoid)
    return sep.join(str(node) for node in collect_under(root, is_text, skip))


def widest_text(
    root: PageElement,
    container: NodePredicate,
    sep: str = "\n",
) -> Tuple[Optional[PageElement], str]:
    """Container whose own text (nested containers excluded) is longest, with that text."""

    best_node: Optional[PageElement] = None
    best_text = ""
    for candidate in _containers(root, container):
        text = node_text(candidate, sep, avoid=container)
        if len(text) > len(best_text):
            best_node, best_text = candidate, text
    return best_node, best_text
