from typing import Callable, Dict, List, Union

import pytest

from novelharvest.workflows.errors import HTTPStatusError
from novelharvest.workflows.web_fetch import PageFetcher

Page = Union[str, Callable[[int], str], None]


class FakeSite:
    """Serves canned pages to PageFetcher in place of the network.

    A page may be a string, None (answered with 404) or a callable taking the
    1-based request count for that URL, returning a body or raising.
    """

    def __init__(self, pages: Dict[str, Page]) -> None:
        self.pages = pages
        self.calls: Dict[str, int] = {}
        self.order: List[str] = []

    async def fetch_once(self, fetcher, session, url):
        self.calls[url] = self.calls.get(url, 0) + 1
        self.order.append(url)
        page = self.pages.get(url)
        if page is None:
            raise HTTPStatusError(404, url)
        if callable(page):
            return 200, page(self.calls[url])
        return 200, page


@pytest.fixture
def fake_site(monkeypatch):
    def install(pages: Dict[str, Page]) -> FakeSite:
        site = FakeSite(pages)

        async def _fetch_once(self, session, url):
            return await site.fetch_once(self, session, url)

        monkeypatch.setattr(PageFetcher, "_fetch_once", _fetch_once)
        return site

    return install


def catalogue_page(links: List[tuple]) -> str:
    items = "".join(f'<dd><a href="{href}">{name}</a></dd>' for name, href in links)
    return f'<html><body><div class="nav"><a href="/">Home</a></div><dl>{items}</dl></body></html>'


def chapter_page(*lines: str) -> str:
    body = "<br/>".join(lines)
    return f'<html><body><div class="nav">Home</div><div id="content">{body}</div></body></html>'
