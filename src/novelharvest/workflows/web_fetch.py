from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import aiohttp

from .errors import FetchError, HTTPStatusError, RedirectLoopError
from .harvest_config import (
    ACCEPT,
    CACHE_MAX_BYTES,
    CACHE_ROOT,
    FETCH_CONCURRENCY,
    FETCH_MAX_ATTEMPTS,
    FETCH_MAX_REDIRECTS,
    FETCH_RETRY_PAUSE,
    FETCH_TIMEOUT,
    HDR_ACCEPT,
    HDR_USER_AGENT,
    USER_AGENT,
    _env,
    _env_bool,
    _env_float,
    _env_int,
)
from .html_normalize import decode_bytes_auto, find_redirect_target, normalize_url
from .page_cache import PageCache

logger = logging.getLogger(__name__)

ProgressHook = Callable[[int, int, str, "FetchResult"], None]


@dataclass
class FetchConfig:
    """Configuration parameters for the bounded, cache-backed page fetcher."""

    concurrency: int = FETCH_CONCURRENCY
    timeout: float = FETCH_TIMEOUT
    max_attempts: int = FETCH_MAX_ATTEMPTS
    retry_pause: float = FETCH_RETRY_PAUSE
    follow_redirects: bool = True
    max_redirects: int = FETCH_MAX_REDIRECTS
    use_cookie: bool = False
    refresh: bool = False
    user_agent: str = USER_AGENT
    accept: str = ACCEPT
    cache_dir: Optional[Path] = CACHE_ROOT
    cache_max_bytes: int = CACHE_MAX_BYTES
    disable_cache: bool = False

    @classmethod
    def from_env(cls, **overrides: Any) -> "FetchConfig":
        """Build a config from NOVELHARVEST_* environment variables, then apply overrides."""

        config = cls(
            concurrency=max(1, _env_int("CONCURRENCY", FETCH_CONCURRENCY)),
            timeout=max(0.0, _env_float("TIMEOUT", FETCH_TIMEOUT)),
            max_attempts=max(1, _env_int("MAX_ATTEMPTS", FETCH_MAX_ATTEMPTS)),
            retry_pause=max(0.0, _env_float("RETRY_PAUSE", FETCH_RETRY_PAUSE)),
            use_cookie=_env_bool("USE_COOKIE", "0"),
            cache_dir=Path(_env("CACHE_DIR") or CACHE_ROOT),
            cache_max_bytes=max(0, _env_int("CACHE_MAX_BYTES", CACHE_MAX_BYTES)),
            disable_cache=_env_bool("CACHE_DISABLE", "0"),
        )
        for key, value in overrides.items():
            if value is not None:
                setattr(config, key, value)
        return config


@dataclass
class FetchResult:
    """Outcome of fetching one requested URL; ``error`` is None on success."""

    url: str
    final_url: str = ""
    text: str = ""
    error: Optional[str] = None
    status: int = 0
    from_cache: bool = False
    redirects: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "url": self.url,
            "final_url": self.final_url or self.url,
            "status": self.status,
            "from_cache": self.from_cache,
            "text_length": len(self.text),
        }
        if self.redirects:
            payload["redirects"] = list(self.redirects)
        if self.error:
            payload["error"] = self.error
        return payload


class PageFetcher:
    """Async page fetcher with a shared admission gate, retries and an on-disk cache.

    One instance is the process-wide fetch service: every batch issued through
    it shares the same concurrency gate and cache index. Call :meth:`flush`
    (or use ``async with``) before exiting so pending cache writes land.
    """

    def __init__(self, config: Optional[FetchConfig] = None, cache: Optional[PageCache] = None) -> None:
        self.config = config or FetchConfig()
        if cache is None:
            root = None if self.config.disable_cache else self.config.cache_dir
            cache = PageCache(root, max_bytes=self.config.cache_max_bytes)
        self.cache = cache
        self._gate: Optional[asyncio.Semaphore] = None
        self._pending_writes: List["asyncio.Task[bool]"] = []

    @property
    def gate(self) -> asyncio.Semaphore:
        if self._gate is None:
            self._gate = asyncio.Semaphore(max(1, self.config.concurrency))
        return self._gate

    async def __aenter__(self) -> "PageFetcher":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.flush()

    def _headers(self) -> Dict[str, str]:
        return {
            HDR_USER_AGENT: self.config.user_agent,
            HDR_ACCEPT: self.config.accept,
        }

    def _session(self) -> aiohttp.ClientSession:
        timeout = aiohttp.ClientTimeout(total=self.config.timeout or None)
        connector = aiohttp.TCPConnector(limit=max(1, self.config.concurrency))
        # Cookies are attached explicitly per request; nothing leaks between URLs.
        return aiohttp.ClientSession(
            connector=connector,
            headers=self._headers(),
            timeout=timeout,
            cookie_jar=aiohttp.DummyCookieJar(),
        )

    async def fetch_many(
        self,
        urls: Sequence[str],
        *,
        refresh: Optional[bool] = None,
        progress_hook: Optional[ProgressHook] = None,
    ) -> Tuple[List[FetchResult], List["asyncio.Task[bool]"]]:
        """Fetch every URL; results are ordered like ``urls`` regardless of completion order.

        Returns the per-URL results and the cache-write tasks started by this
        batch. Failures are reported in ``FetchResult.error``; nothing raised by
        a single URL aborts its siblings.
        """

        refresh = self.config.refresh if refresh is None else refresh
        total = len(urls)
        results: List[Optional[FetchResult]] = [None] * total
        writes: List["asyncio.Task[bool]"] = []
        if not total:
            return [], writes

        completed = 0

        async def _run(index: int, url: str, session: aiohttp.ClientSession) -> None:
            nonlocal completed
            result, write = await self._fetch_entry(url, session, refresh)
            results[index] = result
            if write is not None:
                writes.append(write)
            completed += 1
            if progress_hook is not None:
                try:
                    progress_hook(completed, total, url, result)
                except Exception:
                    logger.debug("progress hook raised for %s", url, exc_info=True)

        async with self._session() as session:
            await asyncio.gather(*(_run(i, url, session) for i, url in enumerate(urls)))

        return [r if r is not None else FetchResult(url=urls[i], error="missing result") for i, r in enumerate(results)], writes

    async def flush(self) -> None:
        """Wait until every cache write started by this fetcher has finished."""

        while self._pending_writes:
            pending = list(self._pending_writes)
            self._pending_writes.clear()
            await asyncio.gather(*pending, return_exceptions=True)

    async def _fetch_entry(
        self,
        url: str,
        session: aiohttp.ClientSession,
        refresh: bool,
    ) -> Tuple[FetchResult, Optional["asyncio.Task[bool]"]]:
        url_norm = normalize_url(url)
        async with self.gate:
            if not refresh:
                cached = await self.cache.read(url_norm)
                if cached is not None:
                    return FetchResult(url=url, final_url=url_norm, text=cached, status=200, from_cache=True), None
            try:
                result = await self._fetch_with_retries(session, url_norm)
            except (FetchError, aiohttp.ClientError, asyncio.TimeoutError) as exc:
                return FetchResult(url=url, final_url=url_norm, error=_describe(exc)), None
            result.url = url

        write: Optional["asyncio.Task[bool]"] = None
        if self.cache.enabled:
            write = asyncio.create_task(self.cache.write(url_norm, result.text))
            self._pending_writes.append(write)
        return result, write

    async def _fetch_with_retries(self, session: aiohttp.ClientSession, url: str) -> FetchResult:
        last_exc: Optional[BaseException] = None
        for attempt in range(1, self.config.max_attempts + 1):
            if attempt > 1:
                logger.warning(
                    "Encountered %s while fetching %s. Retry #%d after %.1fs pause.",
                    _describe(last_exc),
                    url,
                    attempt - 1,
                    self.config.retry_pause,
                )
                await asyncio.sleep(self.config.retry_pause)
            try:
                return await self._fetch_following(session, url)
            except (FetchError, aiohttp.ClientError, asyncio.TimeoutError) as exc:
                last_exc = exc
        logger.warning("Retry budget exhausted for %s: %s", url, _describe(last_exc))
        if last_exc is not None:
            raise last_exc
        raise FetchError(f"no attempt made for {url}")

    async def _fetch_following(self, session: aiohttp.ClientSession, url: str) -> FetchResult:
        """Fetch ``url`` and chase in-page ``window.location=`` redirects."""

        current = url
        hops: List[str] = []
        while True:
            status, text = await self._fetch_once(session, current)
            if not self.config.follow_redirects:
                break
            target = find_redirect_target(text, current)
            if target is None:
                break
            if len(hops) >= self.config.max_redirects:
                raise RedirectLoopError(f"more than {self.config.max_redirects} client-side redirects from {url}")
            logger.debug("Client-side redirect %s -> %s", current, target)
            hops.append(target)
            current = target
        return FetchResult(url=url, final_url=current, text=text, status=status, redirects=hops)

    async def _fetch_once(self, session: aiohttp.ClientSession, url: str) -> Tuple[int, str]:
        async with session.get(url) as resp:
            if self.config.use_cookie:
                cookies = {key: morsel.value for key, morsel in resp.cookies.items()}
                await resp.read()
                async with session.get(url, cookies=cookies) as second:
                    return await self._decode(second, url)
            return await self._decode(resp, url)

    async def _decode(self, resp: aiohttp.ClientResponse, url: str) -> Tuple[int, str]:
        status = resp.status
        if not 200 <= status < 300:
            raise HTTPStatusError(status, url)
        raw_bytes = await resp.read()
        return status, decode_bytes_auto(raw_bytes, resp.headers)


def _describe(exc: Optional[BaseException]) -> str:
    if exc is None:
        return "unknown error"
    message = str(exc)
    if not message:
        return exc.__class__.__name__
    return message
