"""Chapter body extraction: pick the densest ``<div>`` and normalize its lines."""

from __future__ import annotations

import re
from typing import List

from .harvest_config import CONTENT_INDENT
from .markup import is_tag, parse_html, widest_text

__all__ = ["RELAXED_URL", "strip_urls", "format_paragraphs", "extract_content"]

_TLDS = (
    "com|net|org|edu|gov|info|biz|name|io|co|cc|cn|tw|hk|jp|kr|uk|us|ru|de|fr|"
    "me|tv|la|xyz|top|vip|club|site|online|app|dev|wang|xin|shop|icu"
)

# Scheme URLs, www-prefixed hosts and bare "host.tld[/path]" tokens.
RELAXED_URL = re.compile(
    r"(?:[a-zA-Z][a-zA-Z0-9+.\-]*://[^\s<>\"']+)"
    r"|(?:(?<![A-Za-z0-9\-])www\.[A-Za-z0-9\-]+(?:\.[A-Za-z0-9\-]+)*(?:/[^\s<>\"']*)?)"
    r"|(?:(?<![A-Za-z0-9\-.@])(?:[A-Za-z0-9](?:[A-Za-z0-9\-]*[A-Za-z0-9])?\.)+(?:" + _TLDS + r")"
    r"(?![A-Za-z0-9\-])(?::\d+)?(?:/[^\s<>\"']*)?)",
    re.IGNORECASE,
)


def strip_urls(line: str) -> str:
    return RELAXED_URL.sub("", line)


def format_paragraphs(text: str, indent: str = CONTENT_INDENT) -> str:
    """Trim, de-URL and indent every non-empty line of ``text``."""

    lines: List[str] = []
    for raw in text.splitlines():
        # str.strip() covers U+00A0 and U+3000 as well as ASCII whitespace.
        line = strip_urls(raw.strip()).strip()
        if line:
            lines.append(f"{indent}{line}\n")
    return "".join(lines)


def extract_content(html: str) -> str:
    """Return the normalized text of the ``<div>`` carrying the most prose."""

    doc = parse_html(html)
    _, text = widest_text(doc, is_tag("div"), sep="\n")
    return format_paragraphs(text)
