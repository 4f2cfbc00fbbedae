"""Shared fixtures: zero-delay scraper config, fake fetchers and a local HTTP site."""

import asyncio
from typing import Dict, List, Optional, Union

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from crawlwatch.crawler.document import Document, ExtractionMethod
from crawlwatch.crawler.cache import MemoryPageCache
from crawlwatch.errors import FetchError, StrategyExhaustedError
from crawlwatch.utils.config import ScraperConfig, ScoringConfig
from crawlwatch.utils.urls import normalize_url


def make_scraper_config(**overrides) -> ScraperConfig:
    values = dict(
        timeout_ms=5000,
        max_retries=2,
        retry_initial_delay_ms=0,
        retry_max_delay_ms=0,
        delay_between_requests_ms=0,
        max_depth=3,
        max_pages_per_domain=50,
    )
    values.update(overrides)
    return ScraperConfig(**values)


def make_document(url: str, links: tuple = (), title: str = 'Page', content: str = 'Some page text') -> Document:
    return Document(
        url=normalize_url(url),
        title=title,
        content=content,
        links=tuple(links),
        method=ExtractionMethod.FETCH,
        content_type='text/html',
        content_length=len(content),
    )


class FakeFetcher:
    """Stands in for FetchStrategyChain; serves prepared documents by URL."""

    def __init__(self, pages: Optional[Dict[str, Union[Document, Exception]]] = None, delay: float = 0):
        self.pages = {normalize_url(url): page for url, page in (pages or {}).items()}
        self.delay = delay
        self.calls: List[str] = []

    async def fetch(self, url: str) -> Document:
        self.calls.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        page = self.pages.get(normalize_url(url))
        if page is None:
            raise StrategyExhaustedError(url, FetchError("HTTP 404: Not Found", status_code=404))
        if isinstance(page, Exception):
            raise page
        return page

    async def close(self):
        pass


@pytest.fixture
def scraper_config() -> ScraperConfig:
    return make_scraper_config()


@pytest.fixture
def scoring_config() -> ScoringConfig:
    return ScoringConfig(
        keywords=('biblical', 'prophecy', 'end times', 'temple'),
        high_priority_keywords=('prophecy', 'end times'),
        threshold=5.0,
    )


@pytest.fixture
def memory_cache() -> MemoryPageCache:
    return MemoryPageCache(ttl_seconds=3600)


def html_page(title: str, body: str, links: List[str] = ()) -> str:
    anchors = ''.join(f'<a href="{link}">link</a>' for link in links)
    return f"<html><head><title>{title}</title></head><body><p>{body}</p>{anchors}</body></html>"



UNICODE_PAGE = html_page('Caf\u00e9', 'Caf\u00e9 cr\u00e8me \u2713 \u65e5\u672c')

@pytest_asyncio.fixture
async def site():
    """
    Local site: '/' links to three same-site pages and two external ones;
    each child links back to '/'. Also serves failing and non-HTML routes.
    """
    hits: Dict[str, int] = {}

    def count(request):
        hits[request.path] = hits.get(request.path, 0) + 1
        return f"http://{request.host}"

    async def index(request):
        base = count(request)
        links = [f"{base}/a", f"{base}/b", f"{base}/c",
                 "http://external.example/x", "https://other.example/y"]
        return web.Response(text=html_page('Home', 'Welcome home', links), content_type='text/html')

    async def child(request):
        base = count(request)
        name = request.match_info['name']
        return web.Response(text=html_page(f'Page {name}', f'Child page {name}', [f"{base}/"]),
                            content_type='text/html')

    async def broken(request):
        count(request)
        return web.Response(status=500, text='boom')

    async def plain_text(request):
        count(request)
        return web.Response(text='just text', content_type='text/plain')

    async def unicode_page(request):
        count(request)
        return web.Response(text=UNICODE_PAGE, content_type='text/html', charset='utf-8')

    async def render(request):
        count(request)
        data = await request.json()
        return web.Response(text=html_page('Rendered', f"Rendered {data['url']}"), content_type='text/html')

    async def proxy(request):
        count(request)
        if request.query.get('api_key') != 'secret':
            return web.Response(status=403)
        return web.Response(text=html_page('Proxied', f"Proxied {request.query['url']}"),
                            content_type='text/html')

    app = web.Application()
    app.router.add_get('/', index)
    app.router.add_get('/broken', broken)
    app.router.add_get('/text', plain_text)
    app.router.add_get('/unicode', unicode_page)
    app.router.add_post('/render', render)
    app.router.add_get('/proxy', proxy)
    app.router.add_get('/{name}', child)

    server = TestServer(app)
    await server.start_server()
    server.hits = hits
    yield server
    await server.close()
