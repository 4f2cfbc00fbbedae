"""
Fetch strategy chain: plain HTTP, rendered browser and external proxy retrieval
tried in a fixed order until one yields usable content.
"""

import asyncio
import aiohttp
import logging
import time
from typing import Optional, Dict, List
from dataclasses import dataclass
from aiohttp import ClientSession, ClientTimeout, ClientError

from .document import Document, ExtractionMethod
from .parser import ContentParser
from ..errors import FetchError, StrategyUnavailable, StrategyExhaustedError
from ..utils.config import ScraperConfig
from ..utils.logger import get_job_logger
from ..utils.monitoring import CrawlerMonitor
from ..utils.retry import BackoffPolicy, retry_async
from ..utils.urls import normalize_url

MAX_RESPONSE_BYTES = 10 * 1024 * 1024

HTML_ACCEPT = 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8'


@dataclass
class FetchResult:
    """Raw markup returned by one strategy."""
    url: str
    status_code: int
    content: str
    headers: Optional[Dict[str, str]] = None
    fetch_time: float = 0.0
    content_type: Optional[str] = None
    encoding: Optional[str] = None
    content_bytes: Optional[int] = None

    @property
    def body_size(self) -> int:
        """Raw body size in bytes, or the UTF-8 size of content when it was not recorded."""
        if self.content_bytes is not None:
            return self.content_bytes
        return len(self.content.encode('utf-8'))


async def read_body(response: aiohttp.ClientResponse, max_size: int = MAX_RESPONSE_BYTES) -> bytes:
    """
    Read a raw response body with a size limit.

    Raises:
        FetchError: the body is larger than max_size
    """
    content_length = response.headers.get('content-length')
    if content_length and content_length.isdigit() and int(content_length) > max_size:
        raise FetchError(f"Content too large ({content_length} bytes)", status_code=response.status)

    content_bytes = b''
    async for chunk in response.content.iter_chunked(8192):
        content_bytes += chunk
        if len(content_bytes) > max_size:
            raise FetchError("Content exceeded size limit during reading", status_code=response.status)
    return content_bytes


def decode_body(content_bytes: bytes, charset: Optional[str] = None) -> str:
    """Decode with the declared charset, falling back to utf-8, cp1252, then latin-1."""
    try:
        return content_bytes.decode(charset or 'utf-8')
    except (UnicodeDecodeError, LookupError):
        for fallback_encoding in ['utf-8', 'cp1252']:
            try:
                return content_bytes.decode(fallback_encoding)
            except UnicodeDecodeError:
                continue
        return content_bytes.decode('latin-1')


async def read_text(response: aiohttp.ClientResponse, max_size: int = MAX_RESPONSE_BYTES) -> str:
    """Read and decode a response body. Raises FetchError when it exceeds max_size."""
    return decode_body(await read_body(response, max_size), response.charset)


class FetchStrategy:
    """A single page-retrieval method."""

    name = 'base'
    method = ExtractionMethod.FETCH

    async def fetch(self, session: ClientSession, url: str) -> FetchResult:
        """Return raw markup or raise FetchError / StrategyUnavailable."""
        raise NotImplementedError


class PlainFetchStrategy(FetchStrategy):
    """Direct HTTP GET with timeout and bounded exponential-backoff retries."""

    name = 'fetch'
    method = ExtractionMethod.FETCH

    def __init__(self, config: ScraperConfig):
        self.user_agent = config.user_agent
        self.timeout = ClientTimeout(total=config.timeout_ms / 1000)
        self.max_retries = config.max_retries
        self.backoff = BackoffPolicy(
            initial_delay=config.retry_initial_delay_ms / 1000,
            max_delay=config.retry_max_delay_ms / 1000,
            factor=config.retry_backoff_factor
        )

    async def fetch(self, session: ClientSession, url: str) -> FetchResult:
        result = await retry_async(
            lambda: self._attempt(session, url),
            max_attempts=self.max_retries,
            backoff=self.backoff,
            retry_on=(FetchError,),
            description=f"GET {url}"
        )

        if 'text/html' not in (result.content_type or ''):
            raise FetchError(f"Unexpected content type: {result.content_type}", status_code=result.status_code)

        return result

    async def _attempt(self, session: ClientSession, url: str) -> FetchResult:
        start_time = time.time()
        headers = {'User-Agent': self.user_agent, 'Accept': HTML_ACCEPT}

        try:
            async with session.get(url, headers=headers, timeout=self.timeout) as response:
                if not 200 <= response.status < 300:
                    raise FetchError(f"HTTP {response.status}: {response.reason}", status_code=response.status)

                body = await read_body(response)
                return FetchResult(
                    url=url,
                    status_code=response.status,
                    content=decode_body(body, response.charset),
                    content_bytes=len(body),
                    headers=dict(response.headers),
                    fetch_time=time.time() - start_time,
                    content_type=response.headers.get('content-type', '').lower(),
                    encoding=response.charset
                )
        except asyncio.TimeoutError:
            raise FetchError("Request timeout")
        except ClientError as e:
            raise FetchError(f"Client error: {e}")


class RenderFetchStrategy(FetchStrategy):
    """
    Headless-browser retrieval through an external rendering service.

    The service receives ``{"url": ...}`` as JSON and answers with the rendered
    HTML. Without an endpoint the strategy reports itself unavailable.
    """

    name = 'render'
    method = ExtractionMethod.RENDER

    def __init__(self, config: ScraperConfig):
        self.endpoint = config.render_endpoint
        self.timeout = ClientTimeout(total=config.timeout_ms / 1000)

    async def fetch(self, session: ClientSession, url: str) -> FetchResult:
        if not self.endpoint:
            raise StrategyUnavailable("Browser rendering not configured")

        start_time = time.time()
        try:
            async with session.post(self.endpoint, json={'url': url}, timeout=self.timeout) as response:
                if not 200 <= response.status < 300:
                    raise FetchError(f"Render service HTTP {response.status}", status_code=response.status)
                body = await read_body(response)
                return FetchResult(
                    url=url,
                    status_code=response.status,
                    content=decode_body(body, response.charset),
                    content_bytes=len(body),
                    fetch_time=time.time() - start_time,
                    content_type=response.headers.get('content-type', 'text/html').lower()
                )
        except asyncio.TimeoutError:
            raise FetchError("Render service timeout")
        except ClientError as e:
            raise FetchError(f"Render service error: {e}")


class ProxyFetchStrategy(FetchStrategy):
    """Retrieval through a ScraperAPI-style proxy: GET endpoint?api_key=..&url=.."""

    name = 'proxy'
    method = ExtractionMethod.PROXY

    def __init__(self, config: ScraperConfig):
        self.endpoint = config.proxy_endpoint
        self.api_key = config.proxy_api_key
        self.timeout = ClientTimeout(total=config.timeout_ms / 1000)

    async def fetch(self, session: ClientSession, url: str) -> FetchResult:
        if not self.endpoint or not self.api_key:
            raise StrategyUnavailable("API scraping not configured")

        start_time = time.time()
        params = {'api_key': self.api_key, 'url': url}
        try:
            async with session.get(self.endpoint, params=params, timeout=self.timeout) as response:
                if not 200 <= response.status < 300:
                    raise FetchError(f"Proxy HTTP {response.status}", status_code=response.status)
                body = await read_body(response)
                return FetchResult(
                    url=url,
                    status_code=response.status,
                    content=decode_body(body, response.charset),
                    content_bytes=len(body),
                    fetch_time=time.time() - start_time,
                    content_type=response.headers.get('content-type', 'text/html').lower()
                )
        except asyncio.TimeoutError:
            raise FetchError("Proxy timeout")
        except ClientError as e:
            raise FetchError(f"Proxy error: {e}")


def default_strategies(config: ScraperConfig) -> List[FetchStrategy]:
    """Plain, then rendered, then proxy retrieval."""
    return [
        PlainFetchStrategy(config),
        RenderFetchStrategy(config),
        ProxyFetchStrategy(config),
    ]


class FetchStrategyChain:
    """
    Fetches a URL with the first strategy that yields a non-empty body.

    Individual strategy failures are logged and swallowed; only exhaustion of
    every strategy raises StrategyExhaustedError.
    """

    def __init__(self, config: ScraperConfig, parser: Optional[ContentParser] = None,
                 strategies: Optional[List[FetchStrategy]] = None,
                 monitor: Optional[CrawlerMonitor] = None,
                 session: Optional[ClientSession] = None):
        self.config = config
        self.parser = parser or ContentParser(
            config.max_content_chars, config.max_links, config.resolve_relative_links
        )
        self.strategies = strategies if strategies is not None else default_strategies(config)
        self.monitor = monitor
        self.logger = get_job_logger(__name__)

        self.session = session
        self._owns_session = session is None

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self):
        """Initialize the HTTP session."""
        if self.session is None:
            self.session = aiohttp.ClientSession(
                connector=aiohttp.TCPConnector(limit_per_host=4, ttl_dns_cache=300)
            )
            self._owns_session = True
            self.logger.debug("Fetch session started")

    async def close(self):
        """Close the HTTP session if this chain created it."""
        if self.session and self._owns_session:
            await self.session.close()
            self.session = None
            self.logger.debug("Fetch session closed")

    async def fetch(self, url: str) -> Document:
        """
        Fetch and extract one page.

        Raises:
            StrategyExhaustedError: every strategy failed or was unavailable
        """
        await self.start()
        last_error: Optional[BaseException] = None

        for strategy in self.strategies:
            try:
                self.logger.debug(f"Attempting strategy {strategy.name} for {url}")
                result = await strategy.fetch(self.session, url)
            except StrategyUnavailable as e:
                self.logger.debug(f"Strategy {strategy.name} unavailable: {e}")
                if last_error is None:
                    last_error = e
                continue
            except FetchError as e:
                self.logger.url_event(logging.WARNING, url, f"Strategy {strategy.name} failed: {e}")
                self._record_failure(strategy)
                last_error = e
                continue
            except Exception as e:
                self.logger.url_event(logging.ERROR, url, f"Strategy {strategy.name} raised unexpectedly: {e}")
                self._record_failure(strategy)
                last_error = e
                continue

            parsed = self.parser.parse(result.content, url)
            if not parsed.content:
                self.logger.url_event(logging.WARNING, url, f"Strategy {strategy.name} returned no content")
                self._record_failure(strategy)
                last_error = FetchError(f"Strategy {strategy.name} returned empty content")
                continue

            document = Document(
                url=normalize_url(url),
                title=parsed.title,
                content=parsed.content,
                links=parsed.links,
                method=strategy.method,
                content_type=result.content_type,
                content_length=result.body_size
            )
            if self.monitor:
                self.monitor.record_page_fetched(strategy.method.value, result.fetch_time)
            return document

        raise StrategyExhaustedError(url, last_error)

    def _record_failure(self, strategy: FetchStrategy):
        if self.monitor:
            self.monitor.record_strategy_failure(strategy.name)
