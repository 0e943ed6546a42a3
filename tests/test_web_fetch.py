import asyncio
from http.cookies import SimpleCookie
from pathlib import Path
from typing import Dict, List, Optional

from novelharvest.workflows.web_fetch import FetchConfig, FetchResult, PageFetcher


def _config(**overrides) -> FetchConfig:
    config = FetchConfig(retry_pause=0, max_attempts=2, disable_cache=True)
    for key, value in overrides.items():
        setattr(config, key, value)
    return config


class FakeResponse:
    def __init__(self, session: "FakeSession", body: bytes, status: int = 200, headers=None, cookies=None) -> None:
        self.session = session
        self.body = body
        self.status = status
        self.headers = headers or {"Content-Type": "text/html; charset=utf-8"}
        self.cookies = SimpleCookie(cookies or {})

    async def __aenter__(self) -> "FakeResponse":
        self.session.in_flight += 1
        self.session.peak = max(self.session.peak, self.session.in_flight)
        await asyncio.sleep(self.session.delay)
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.session.in_flight -= 1

    async def read(self) -> bytes:
        return self.body


class FakeSession:
    """Stands in for aiohttp.ClientSession; ``respond`` builds each response."""

    def __init__(self, respond, delay: float = 0) -> None:
        self.respond = respond
        self.delay = delay
        self.in_flight = 0
        self.peak = 0
        self.requests: List[tuple] = []

    async def __aenter__(self) -> "FakeSession":
        return self

    async def __aexit__(self, *exc_info) -> None:
        return None

    def get(self, url: str, cookies: Optional[Dict[str, str]] = None) -> FakeResponse:
        self.requests.append((url, cookies))
        return self.respond(self, url, cookies)


def _install_session(monkeypatch, session: FakeSession) -> None:
    monkeypatch.setattr(PageFetcher, "_session", lambda self: session)


def test_failed_url_does_not_abort_batch(fake_site) -> None:
    site = fake_site(
        {
            "http://a.test/1": "one",
            "http://a.test/3": "three",
        }
    )
    fetcher = PageFetcher(_config())

    results, writes = asyncio.run(
        fetcher.fetch_many(["http://a.test/1", "http://a.test/2", "http://a.test/3"])
    )

    assert [r.url for r in results] == ["http://a.test/1", "http://a.test/2", "http://a.test/3"]
    assert results[0].error is None and results[0].text == "one"
    assert results[1].error is not None and "404" in results[1].error
    assert results[2].error is None and results[2].text == "three"
    assert writes == []
    assert site.calls["http://a.test/2"] == 2


def test_results_follow_request_order_not_completion_order(fake_site, monkeypatch) -> None:
    fake_site({})

    async def slow_first(self, session, url):
        await asyncio.sleep(0.05 if url.endswith("/slow") else 0)
        return 200, url

    monkeypatch.setattr(PageFetcher, "_fetch_once", slow_first)
    fetcher = PageFetcher(_config())

    results, _ = asyncio.run(fetcher.fetch_many(["http://a.test/slow", "http://a.test/fast"]))

    assert [r.text for r in results] == ["http://a.test/slow", "http://a.test/fast"]


def test_transient_failure_is_retried(fake_site) -> None:
    def flaky(attempt: int) -> str:
        if attempt == 1:
            raise asyncio.TimeoutError()
        return "recovered"

    site = fake_site({"http://a.test/flaky": flaky})
    fetcher = PageFetcher(_config(max_attempts=3))

    results, _ = asyncio.run(fetcher.fetch_many(["http://a.test/flaky"]))

    assert results[0].ok
    assert results[0].text == "recovered"
    assert site.calls["http://a.test/flaky"] == 2


def test_url_is_normalized_before_fetching(fake_site) -> None:
    site = fake_site({"http://a.test/page": "body"})
    fetcher = PageFetcher(_config())

    results, _ = asyncio.run(fetcher.fetch_many(["  a.test/page "]))

    assert results[0].ok
    assert results[0].url == "  a.test/page "
    assert results[0].final_url == "http://a.test/page"
    assert site.order == ["http://a.test/page"]


def test_client_side_redirect_is_followed(fake_site) -> None:
    fake_site(
        {
            "http://a.test/start": '<script>window.location="/real";</script>',
            "http://a.test/real": "<p>real</p>",
        }
    )
    fetcher = PageFetcher(_config())

    results, _ = asyncio.run(fetcher.fetch_many(["http://a.test/start"]))

    assert results[0].text == "<p>real</p>"
    assert results[0].final_url == "http://a.test/real"
    assert results[0].redirects == ["http://a.test/real"]


def test_redirect_loop_is_a_fetch_failure(fake_site) -> None:
    fake_site({"http://a.test/loop": '<script>window.location="/loop";</script>'})
    fetcher = PageFetcher(_config(max_attempts=1, max_redirects=3))

    results, _ = asyncio.run(fetcher.fetch_many(["http://a.test/loop"]))

    assert not results[0].ok
    assert "redirects" in results[0].error


def test_redirects_ignored_when_disabled(fake_site) -> None:
    fake_site({"http://a.test/start": '<script>window.location="/real";</script>'})
    fetcher = PageFetcher(_config(follow_redirects=False))

    results, _ = asyncio.run(fetcher.fetch_many(["http://a.test/start"]))

    assert results[0].final_url == "http://a.test/start"
    assert "window.location" in results[0].text


def test_cache_hit_skips_network(fake_site, tmp_path: Path) -> None:
    site = fake_site({"http://a.test/page": "cached body"})
    fetcher = PageFetcher(_config(disable_cache=False, cache_dir=tmp_path))

    async def scenario():
        first, writes = await fetcher.fetch_many(["http://a.test/page"])
        assert len(writes) == 1
        await fetcher.flush()
        second, _ = await fetcher.fetch_many(["http://a.test/page"])
        refreshed, _ = await fetcher.fetch_many(["http://a.test/page"], refresh=True)
        await fetcher.flush()
        return first, second, refreshed

    first, second, refreshed = asyncio.run(scenario())

    assert first[0].from_cache is False
    assert second[0].from_cache is True
    assert second[0].text == "cached body"
    assert refreshed[0].from_cache is False
    assert site.calls["http://a.test/page"] == 2


def test_async_context_manager_flushes_writes(fake_site, tmp_path: Path) -> None:
    fake_site({"http://a.test/page": "body"})

    async def scenario() -> PageFetcher:
        async with PageFetcher(_config(disable_cache=False, cache_dir=tmp_path)) as fetcher:
            await fetcher.fetch_many(["http://a.test/page"])
        return fetcher

    fetcher = asyncio.run(scenario())

    assert asyncio.run(fetcher.cache.read("http://a.test/page")) == "body"


def test_progress_hook_errors_are_swallowed(fake_site) -> None:
    fake_site({"http://a.test/1": "one", "http://a.test/2": "two"})
    seen = []

    def hook(completed: int, total: int, url: str, result: FetchResult) -> None:
        seen.append((completed, total, url))
        raise RuntimeError("display broke")

    fetcher = PageFetcher(_config())
    results, _ = asyncio.run(fetcher.fetch_many(["http://a.test/1", "http://a.test/2"], progress_hook=hook))

    assert all(r.ok for r in results)
    assert sorted(c for c, _, _ in seen) == [1, 2]
    assert {t for _, t, _ in seen} == {2}


def test_empty_batch() -> None:
    fetcher = PageFetcher(_config())
    assert asyncio.run(fetcher.fetch_many([])) == ([], [])


def test_config_from_env(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("NOVELHARVEST_CONCURRENCY", "7")
    monkeypatch.setenv("NOVELHARVEST_MAX_ATTEMPTS", "bogus")
    monkeypatch.setenv("NOVELHARVEST_USE_COOKIE", "yes")
    monkeypatch.setenv("NOVELHARVEST_CACHE_DIR", str(tmp_path))

    config = FetchConfig.from_env(refresh=True, timeout=None)

    assert config.concurrency == 7
    assert config.max_attempts == 5
    assert config.use_cookie is True
    assert config.cache_dir == tmp_path
    assert config.refresh is True
    assert config.timeout == 20.0


def test_fetch_result_to_dict() -> None:
    result = FetchResult(url="http://a.test/", text="abc", status=200)
    payload = result.to_dict()

    assert payload["final_url"] == "http://a.test/"
    assert payload["text_length"] == 3
    assert "error" not in payload


def test_bogus_charset_on_one_page_does_not_abort_batch(monkeypatch) -> None:
    def respond(session, url, cookies):
        if url.endswith("/2"):
            return FakeResponse(session, b"<p>two</p>", headers={"Content-Type": "text/html; charset=rot13"})
        return FakeResponse(session, f"<p>{url[-1]}</p>".encode())

    _install_session(monkeypatch, FakeSession(respond))
    fetcher = PageFetcher(_config())

    results, _ = asyncio.run(
        fetcher.fetch_many(["http://a.test/1", "http://a.test/2", "http://a.test/3"])
    )

    assert [r.ok for r in results] == [True, True, True]
    assert results[0].text == "<p>1</p>"
    assert results[1].text == "<p>two</p>"
    assert results[2].text == "<p>3</p>"


def test_gate_bounds_in_flight_requests_across_batches(monkeypatch) -> None:
    session = FakeSession(lambda s, url, cookies: FakeResponse(s, b"ok"), delay=0.02)
    _install_session(monkeypatch, session)
    fetcher = PageFetcher(_config(concurrency=2))

    async def _two_batches():
        first = fetcher.fetch_many([f"http://a.test/x{i}" for i in range(4)])
        second = fetcher.fetch_many([f"http://a.test/y{i}" for i in range(4)])
        return await asyncio.gather(first, second)

    (first, _), (second, _) = asyncio.run(_two_batches())

    assert all(r.ok for r in first + second)
    assert len(session.requests) == 8
    assert session.peak == 2


def test_cookie_mode_replays_cookies_on_second_request(monkeypatch) -> None:
    def respond(session, url, cookies):
        if cookies is None:
            return FakeResponse(session, b"landing", cookies={"sid": "abc"})
        return FakeResponse(session, f"page for {cookies.get('sid')}".encode())

    session = FakeSession(respond)
    _install_session(monkeypatch, session)
    fetcher = PageFetcher(_config(use_cookie=True))

    results, _ = asyncio.run(fetcher.fetch_many(["http://a.test/page"]))

    assert results[0].text == "page for abc"
    assert session.requests == [("http://a.test/page", None), ("http://a.test/page", {"sid": "abc"})]


def test_non_2xx_status_is_a_fetch_failure(monkeypatch) -> None:
    session = FakeSession(lambda s, url, cookies: FakeResponse(s, b"busy", status=503))
    _install_session(monkeypatch, session)
    fetcher = PageFetcher(_config(max_attempts=2))

    results, _ = asyncio.run(fetcher.fetch_many(["http://a.test/busy"]))

    assert not results[0].ok
    assert "Status Code Error 503" in results[0].error
    assert len(session.requests) == 2


def test_response_bytes_decoded_with_declared_charset(monkeypatch) -> None:
    text = "<html><body><p>第一章 风起云涌</p></body></html>"
    body = text.encode("gbk")

    def respond(session, url, cookies):
        return FakeResponse(session, body, headers={"Content-Type": "text/html; charset=gbk"})

    _install_session(monkeypatch, FakeSession(respond))
    fetcher = PageFetcher(_config())

    results, _ = asyncio.run(fetcher.fetch_many(["http://a.test/gbk"]))

    assert results[0].ok
    assert results[0].status == 200
    assert results[0].text == text
