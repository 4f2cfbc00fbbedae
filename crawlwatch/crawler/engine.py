"""
Crawl engine: single-page scrapes and depth-bounded breadth-first traversal.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Dict, List, Optional, TypeVar
from dataclasses import dataclass, field

from .cache import PageCache
from .document import Document
from .fetcher import FetchStrategyChain
from .url_frontier import URLFrontier, URLTask
from ..errors import CrawlCancelled, CrawlWatchError, InvalidInputError
from ..jobs.models import generate_job_id
from ..storage import ResultSink, StorageOutcome
from ..utils.config import ScraperConfig
from ..utils.logger import get_job_logger
from ..utils.monitoring import CrawlerMonitor
from ..utils.urls import is_same_site, is_valid_url, registrable_domain

T = TypeVar('T')

CRAWL_MODES = ('manual', 'auto')


@dataclass
class CrawledPage:
    """A document together with the depth it was reached at."""
    document: Document
    depth: int = 0
    cached: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = self.document.to_dict()
        data['depth'] = self.depth
        data['cached'] = self.cached
        return data


@dataclass
class PageOutcome:
    """Failure record for one page of a traversal."""
    url: str
    depth: int
    error: str

    def to_dict(self) -> Dict[str, Any]:
        return {'url': self.url, 'depth': self.depth, 'error': self.error}


@dataclass
class CrawlResult:
    """Pages gathered by one crawl call."""
    start_url: str
    max_depth: int
    pages: List[CrawledPage] = field(default_factory=list)
    errors: List[PageOutcome] = field(default_factory=list)
    external_links: int = 0
    cancelled: bool = False

    @property
    def pages_crawled(self) -> int:
        return len(self.pages)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': 'crawl',
            'start_url': self.start_url,
            'max_depth': self.max_depth,
            'pages_crawled': self.pages_crawled,
            'pages': [page.to_dict() for page in self.pages],
            'errors': [error.to_dict() for error in self.errors],
            'external_links': self.external_links,
            'cancelled': self.cancelled,
        }


@dataclass
class CrawlResponse:
    """Envelope returned by handle_crawl."""
    success: bool
    job_id: Optional[str] = None
    mode: Optional[str] = None
    source: Optional[str] = None
    result: Optional[CrawlResult] = None
    storage: Optional[StorageOutcome] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'success': self.success}
        for key in ('job_id', 'mode', 'source', 'error'):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        if self.result is not None:
            data['result'] = self.result.to_dict()
        if self.storage is not None:
            data['storage'] = self.storage.to_dict()
        return data


def _clean_url(url):
    return url.strip() if isinstance(url, str) else url


class CrawlEngine:
    """
    Coordinates the fetch chain, page cache and persistence sink.

    Each crawl call owns its own frontier, so concurrent calls share nothing
    but the page cache. Fetches within one crawl are sequential and separated
    by the configured inter-request delay.
    """

    def __init__(self, config: ScraperConfig, fetcher: FetchStrategyChain, cache: PageCache,
                 sink: Optional[ResultSink] = None, monitor: Optional[CrawlerMonitor] = None):
        self.config = config
        self.fetcher = fetcher
        self.cache = cache
        self.sink = sink
        self.monitor = monitor
        self.logger = logging.getLogger(__name__)

    async def handle_crawl(self, url: str, mode: str = 'manual', depth: Optional[int] = None,
                           source: str = 'manual',
                           stop_event: Optional[asyncio.Event] = None) -> CrawlResponse:
        """
        Run a crawl request and store its result.

        Args:
            url: Start URL
            mode: 'manual' for one page, 'auto' for a recursive crawl
            depth: Maximum depth for 'auto' mode
            source: Provenance label (manual, rss, queue)
            stop_event: Set by the caller to cancel the crawl

        Returns:
            CrawlResponse envelope; never raises for crawl failures
        """
        url = _clean_url(url)
        if not is_valid_url(url):
            return CrawlResponse(success=False, error='Invalid URL provided')

        if mode not in CRAWL_MODES:
            return CrawlResponse(success=False, error=f'Unknown mode: {mode}')

        job_id = generate_job_id()
        log = get_job_logger(__name__, job_id=job_id, mode=mode, source=source)
        log.info(f"Starting crawl job {job_id} for {url}")

        try:
            if mode == 'manual':
                page = await self.scrape_single_url(url, stop_event)
                result = CrawlResult(start_url=url, max_depth=0, pages=[page])
            else:
                result = await self.crawl(url, depth, stop_event)
        except CrawlWatchError as e:
            log.error(f"Crawl job {job_id} failed: {e}")
            return CrawlResponse(success=False, job_id=job_id, mode=mode, source=source, error=str(e))

        storage = None
        if self.sink is not None:
            record = result.to_dict()
            record['source'] = source
            record['job_id'] = job_id
            storage = await self.sink.store(record)

        log.stat('pages_crawled', result.pages_crawled)
        return CrawlResponse(
            success=True, job_id=job_id, mode=mode, source=source, result=result, storage=storage
        )

    async def scrape_single_url(self, url: str, stop_event: Optional[asyncio.Event] = None) -> CrawledPage:
        """
        Resolve one URL through the cache, then the fetch chain.

        Raises:
            InvalidInputError: url is not a valid absolute URL
            StrategyExhaustedError: every fetch strategy failed
            CrawlCancelled: stop_event fired during the fetch
        """
        url = _clean_url(url)
        if not is_valid_url(url):
            raise InvalidInputError(f"Invalid URL provided: {url!r}")

        document = await self._from_cache(url)
        if document is not None:
            return CrawledPage(document=document, cached=True)

        document = await self._fetch_and_cache(url, stop_event)
        return CrawledPage(document=document)

    async def crawl(self, start_url: str, max_depth: Optional[int] = None,
                    stop_event: Optional[asyncio.Event] = None) -> CrawlResult:
        """
        Breadth-first crawl from start_url.

        Only links on the start URL's site are followed. Stops when the
        frontier empties, the page cap is reached or stop_event is set;
        single-page failures are recorded and skipped.
        """
        start_url = _clean_url(start_url)
        if not is_valid_url(start_url):
            raise InvalidInputError(f"Invalid URL provided: {start_url!r}")

        max_depth = self._effective_depth(max_depth)
        page_cap = self.config.max_pages_per_domain
        site = registrable_domain(start_url)

        frontier = URLFrontier()
        frontier.add_url(URLTask(url=start_url, depth=0))
        result = CrawlResult(start_url=start_url, max_depth=max_depth)
        fetched_before = False
        start_time = time.time()

        self.logger.info(f"Starting recursive crawl from {start_url} with max depth {max_depth}")

        while not frontier.is_empty() and result.pages_crawled < page_cap:
            if stop_event is not None and stop_event.is_set():
                result.cancelled = True
                break

            task = frontier.get_next_url()
            if frontier.is_visited(task.url) or task.depth > max_depth:
                continue
            frontier.mark_visited(task.url)

            try:
                document = await self._from_cache(task.url)
                cached = document is not None
                if not cached:
                    if fetched_before:
                        await self._politeness_delay(stop_event)
                        if stop_event is not None and stop_event.is_set():
                            result.cancelled = True
                            break
                    fetched_before = True
                    document = await self._fetch_and_cache(task.url, stop_event)
            except CrawlCancelled:
                result.cancelled = True
                break
            except CrawlWatchError as e:
                self.logger.warning(f"Error crawling {task.url}: {e}")
                result.errors.append(PageOutcome(url=task.url, depth=task.depth, error=str(e)))
                continue

            result.pages.append(CrawledPage(document=document, depth=task.depth, cached=cached))

            if task.depth < max_depth:
                self._enqueue_links(frontier, document, task, site, result)

        if result.cancelled:
            self.logger.info(f"Crawl from {start_url} cancelled after {result.pages_crawled} pages")

        self.logger.info(
            f"Crawl from {start_url} finished: pages={result.pages_crawled}, "
            f"errors={len(result.errors)}, visited={frontier.get_stats()['total_visited']}, "
            f"time={time.time() - start_time:.2f}s"
        )
        return result

    def _effective_depth(self, requested: Optional[int]) -> int:
        if requested is None:
            return self.config.max_depth
        if requested < 0:
            raise InvalidInputError(f"Depth must be non-negative: {requested}")
        if requested > self.config.max_depth:
            self.logger.warning(f"Requested depth {requested} capped at {self.config.max_depth}")
            return self.config.max_depth
        return requested

    def _enqueue_links(self, frontier: URLFrontier, document: Document, task: URLTask,
                       site: Optional[str], result: CrawlResult):
        """Queue same-site links at depth + 1; cross-site links are only counted."""
        added = 0
        for link in document.links:
            if not is_same_site(link, site):
                result.external_links += 1
                continue
            if frontier.add_url(URLTask(url=link, depth=task.depth + 1, parent_url=task.url)):
                added += 1
        self.logger.debug(f"Queued {added} new URLs from {task.url}")

    async def _from_cache(self, url: str) -> Optional[Document]:
        document = await self.cache.get(url)
        if self.monitor:
            self.monitor.record_cache_lookup(document is not None)
        if document is not None:
            self.logger.debug(f"Cache hit for {url}")
        return document

    async def _fetch_and_cache(self, url: str, stop_event: Optional[asyncio.Event]) -> Document:
        document = await self._until_stopped(self.fetcher.fetch(url), stop_event)
        await self.cache.put(url, document)
        return document

    async def _politeness_delay(self, stop_event: Optional[asyncio.Event]):
        """Wait the inter-request delay, returning early if stop_event fires."""
        delay = self.config.delay_between_requests_ms / 1000
        if delay <= 0:
            return
        if stop_event is None:
            await asyncio.sleep(delay)
            return
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    @staticmethod
    async def _until_stopped(operation: Awaitable[T], stop_event: Optional[asyncio.Event]) -> T:
        """Await operation, cancelling it if stop_event is set first."""
        if stop_event is None:
            return await operation

        task = asyncio.ensure_future(operation)
        stopper = asyncio.ensure_future(stop_event.wait())
        try:
            done, pending = await asyncio.wait([task, stopper], return_when=asyncio.FIRST_COMPLETED)
        finally:
            for pending_task in (task, stopper):
                if not pending_task.done():
                    pending_task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        if task in done:
            return task.result()
        raise CrawlCancelled("Crawl cancelled during fetch")
