"""Byte decoding and URL helpers for pages whose encoding is not reliably UTF-8.

This module is deterministic and provider-agnostic. Mirror sites frequently
serve GBK/Big5/Shift_JIS pages with missing or lying headers, so decoding
tries declared charsets first and falls back to charset-normalizer sniffing.
"""

from __future__ import annotations

import codecs
import re
from typing import Mapping, Optional
from urllib.parse import urljoin, urlparse

from charset_normalizer import from_bytes

from .errors import DecodeError
from .harvest_config import DEFAULT_SCHEME, ENCODING_SNIFF_BYTES, REDIRECT_PATTERN

__all__ = [
    "normalize_url",
    "resolve_url",
    "declared_charset",
    "decode_bytes_auto",
    "find_redirect_target",
]

_HEADER_CHARSET = re.compile(r"charset=([^\s;]+)", re.I)
_META_CHARSET = re.compile(rb"""<meta[^>]+charset\s*=\s*["']?([a-zA-Z0-9_\-]+)""", re.I)
_REDIRECT = re.compile(REDIRECT_PATTERN, re.S)

# Legacy Chinese charsets are routinely mislabelled; gb18030 decodes all of them.
_WIDEN = {
    "gb2312": "gb18030",
    "gbk": "gb18030",
    "x-gbk": "gb18030",
}


def normalize_url(url: str) -> str:
    """Strip whitespace and prepend a default scheme when none is present."""

    raw = (url or "").strip()
    lowered = raw.lower()
    if lowered.startswith("http://") or lowered.startswith("https://"):
        return raw
    return DEFAULT_SCHEME + raw


def resolve_url(base: str, href: str) -> Optional[str]:
    """Resolve ``href`` against ``base``; return None when it is not a web URL."""

    try:
        resolved = urljoin(base, (href or "").strip())
        parsed = urlparse(resolved)
    except ValueError:
        return None
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        return None
    return resolved


def _canonical(encoding: Optional[str]) -> Optional[str]:
    if not encoding:
        return None
    name = encoding.strip(" \"'").lower()
    name = _WIDEN.get(name, name)
    try:
        info = codecs.lookup(name)
    except LookupError:
        return None
    # rot13, hex, base64 and friends are bytes-to-bytes codecs.
    if not getattr(info, "_is_text_encoding", True):
        return None
    return info.name


def declared_charset(body: bytes, headers: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """Return the charset announced by the Content-Type header or a <meta> tag."""

    if headers:
        ct = headers.get("Content-Type") or headers.get("content-type") or ""
        match = _HEADER_CHARSET.search(ct)
        if match:
            enc = _canonical(match.group(1))
            if enc:
                return enc
    match = _META_CHARSET.search(body[:ENCODING_SNIFF_BYTES])
    if match:
        return _canonical(match.group(1).decode("ascii", "ignore"))
    return None


def decode_bytes_auto(body: bytes, headers: Optional[Mapping[str, str]] = None) -> str:
    """Decode HTTP bytes using declared charsets with charset-normalizer fallback.

    Raises :class:`DecodeError` when no encoding can be determined.
    """

    if not body:
        return ""
    enc = declared_charset(body, headers)
    if enc:
        try:
            return body.decode(enc)
        except (UnicodeDecodeError, LookupError):
            pass
    result = from_bytes(body).best()
    if result is None:
        raise DecodeError("unable to determine character encoding")
    enc = _canonical(result.encoding) or result.encoding
    try:
        return body.decode(enc)
    except (UnicodeDecodeError, LookupError) as exc:
        raise DecodeError(f"decoding as {enc} failed: {exc}") from exc


def find_redirect_target(text: str, current_url: str) -> Optional[str]:
    """Return the absolute target of an in-page ``window.location=`` redirect."""

    if not text:
        return None
    match = _REDIRECT.search(text)
    if not match:
        return None
    target = match.group(2).strip()
    if not target:
        return None
    return resolve_url(current_url, target)
