"""Content-addressed on-disk cache of decoded page bodies.

Each cached page is one file named after the SHA-1 of its normalized URL.
The cache is a speed optimization only: every I/O failure degrades to a
direct fetch and is logged, never raised.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import os
import shutil
from pathlib import Path
from typing import Any, Dict, Optional

from .harvest_config import CACHE_HTML_FOLDER, CACHE_MAX_BYTES
from .html_normalize import normalize_url

logger = logging.getLogger(__name__)

NOTIFY_WHEN_NOT_WORKING = "Cache disabled; switching to always-fetch mode."


def cache_key(url: str) -> str:
    """Stable identifier for the normalized form of ``url``."""

    return hashlib.sha1(normalize_url(url).encode("utf-8")).hexdigest()


class PageCache:
    """URL-hash to file mapping, initialized once and shared by one PageFetcher."""

    def __init__(self, root: Optional[Path], max_bytes: int = CACHE_MAX_BYTES) -> None:
        self.root = Path(root).resolve() / CACHE_HTML_FOLDER if root is not None else None
        self.max_bytes = max_bytes
        self._index: Dict[str, Path] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        self.enabled = self.root is not None
        self.purged = False
        if self.enabled:
            self._load()

    def _disable(self, action: str, exc: BaseException) -> None:
        logger.warning("Encountered %s while %s. %s", exc, action, NOTIFY_WHEN_NOT_WORKING)
        self.enabled = False
        self._index = {}

    def _load(self) -> None:
        if self.root is None:
            return
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            self._disable("creating the cache folder", exc)
            return
        total = 0
        try:
            for entry in os.scandir(self.root):
                path = Path(entry.path)
                if entry.is_file(follow_symlinks=False) and entry.name.endswith(".tmp"):
                    path.unlink(missing_ok=True)
                elif entry.is_file(follow_symlinks=False):
                    total += entry.stat(follow_symlinks=False).st_size
                    self._index[entry.name] = path
                elif entry.is_dir(follow_symlinks=False):
                    shutil.rmtree(path, ignore_errors=True)
                else:
                    path.unlink(missing_ok=True)
        except OSError as exc:
            self._disable("reading the cache folder", exc)
            return
        if total > self.max_bytes:
            logger.info("Cache size %d bytes exceeds %d bytes; purging.", total, self.max_bytes)
            try:
                shutil.rmtree(self.root)
                self.root.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                self._disable("purging the cache folder", exc)
                return
            self._index = {}
            self.purged = True

    def __contains__(self, url: str) -> bool:
        return self.enabled and cache_key(url) in self._index

    def path_for(self, url: str) -> Optional[Path]:
        if not self.enabled or self.root is None:
            return None
        return self.root / cache_key(url)

    async def read(self, url: str) -> Optional[str]:
        """Return the cached body for ``url`` or None on a miss."""

        if not self.enabled:
            return None
        key = cache_key(url)
        path = self._index.get(key)
        if path is None:
            return None
        try:
            body = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Encountered %s while reading cache file %s; deleting it.", exc, path)
            if self._index.get(key) == path:
                self._index.pop(key, None)
            try:
                path.unlink(missing_ok=True)
            except OSError:
                logger.debug("Unable to delete broken cache file %s", path)
            return None
        if not body:
            return None
        return body

    def _write_sync(self, path: Path, body: str) -> None:
        tmp = path.with_name(path.name + ".tmp")
        path.unlink(missing_ok=True)
        try:
            tmp.write_text(body, encoding="utf-8")
            os.replace(tmp, path)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise

    async def write(self, url: str, body: str) -> bool:
        """Persist ``body`` for ``url``; concurrent writers of one path are serialized."""

        if not self.enabled or self.root is None:
            return False
        key = cache_key(url)
        path = self.root / key
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                # Readers miss while the file is being replaced.
                self._index.pop(key, None)
                try:
                    await asyncio.to_thread(self._write_sync, path, body)
                except OSError as exc:
                    logger.warning("Encountered %s while writing cache file %s.", exc, path)
                    return False
                self._index[key] = path
            return True
        finally:
            # Drop the lock once no writer holds or awaits it.
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                self._locks.pop(key, None)

    def stats(self) -> Dict[str, Any]:
        total = 0
        for path in list(self._index.values()):
            try:
                total += path.stat().st_size
            except OSError:
                continue
        return {
            "enabled": self.enabled,
            "entries": len(self._index),
            "total_bytes": total,
            "max_bytes": self.max_bytes,
            "root": str(self.root) if self.root is not None else None,
        }
