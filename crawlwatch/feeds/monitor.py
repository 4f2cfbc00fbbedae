"""
Feed monitor: fetches feeds, scores their entries and dispatches crawl jobs
for entries at or above the score threshold.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import aiohttp
from aiohttp import ClientSession, ClientTimeout, ClientError

from .parser import FeedParser
from .scorer import RelevanceScorer, ScoredEntry
from ..crawler.fetcher import read_text
from ..errors import CrawlWatchError, DispatchError, FeedFetchError, FetchError, InvalidInputError
from ..jobs.models import CrawlJob
from ..jobs.queue import JobDispatcher
from ..storage import ResultSink, StorageOutcome
from ..utils.config import FeedConfig, ScraperConfig, ScoringConfig
from ..utils.logger import get_job_logger
from ..utils.monitoring import CrawlerMonitor
from ..utils.urls import is_valid_url

FEED_ACCEPT = 'application/rss+xml, application/atom+xml, application/xml, text/xml, */*'


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class FeedCheckResult:
    """Outcome of checking one feed."""
    feed_url: str
    feed_title: str
    total_items: int
    high_score_items: List[ScoredEntry]
    threshold: float
    checked_at: str = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'feed_url': self.feed_url,
            'feed_title': self.feed_title,
            'total_items': self.total_items,
            'high_score_items': [item.to_dict() for item in self.high_score_items],
            'threshold': self.threshold,
            'checked_at': self.checked_at,
        }


@dataclass
class FeedCheckResponse:
    """Envelope returned by handle_feed_check."""
    success: bool
    result: Optional[FeedCheckResult] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'success': self.success}
        if self.result is not None:
            data['result'] = self.result.to_dict()
        if self.error is not None:
            data['error'] = self.error
        return data


@dataclass
class DispatchOutcome:
    """Tagged result of handing one qualifying entry to the job queue."""
    feed: str
    url: str
    success: bool
    job_id: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'feed': self.feed, 'url': self.url, 'success': self.success,
            'job_id': self.job_id, 'error': self.error,
        }


@dataclass
class FeedCheckSummary:
    """Result of a scheduled run over every enabled feed."""
    feeds_checked: int = 0
    high_score_items: List[Dict[str, Any]] = field(default_factory=list)
    scrapes_triggered: int = 0
    dispatches: List[DispatchOutcome] = field(default_factory=list)
    errors: List[Dict[str, str]] = field(default_factory=list)
    timestamp: str = field(default_factory=_now)
    storage: Optional[StorageOutcome] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'type': 'rss_check',
            'timestamp': self.timestamp,
            'feeds_checked': self.feeds_checked,
            'high_score_items': list(self.high_score_items),
            'scrapes_triggered': self.scrapes_triggered,
            'dispatches': [d.to_dict() for d in self.dispatches],
            'errors': list(self.errors),
        }
        if self.storage is not None:
            data['storage'] = self.storage.to_dict()
        return data


class FeedMonitor:
    """Runs feed checks on demand or over every configured feed."""

    def __init__(self, scraper_config: ScraperConfig, scoring_config: ScoringConfig,
                 scorer: RelevanceScorer, feeds: Sequence[FeedConfig] = (),
                 dispatcher: Optional[JobDispatcher] = None, sink: Optional[ResultSink] = None,
                 monitor: Optional[CrawlerMonitor] = None, parser: Optional[FeedParser] = None,
                 session: Optional[ClientSession] = None):
        self.scraper_config = scraper_config
        self.default_threshold = scoring_config.threshold
        self.scorer = scorer
        self.feeds = list(feeds)
        self.dispatcher = dispatcher
        self.sink = sink
        self.monitor = monitor
        self.parser = parser or FeedParser()
        self.logger = logging.getLogger(__name__)

        self.session = session
        self._owns_session = session is None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        if self.session and self._owns_session:
            await self.session.close()
            self.session = None

    async def handle_feed_check(self, feed_url: str, threshold: Optional[float] = None) -> FeedCheckResponse:
        """Check one feed and wrap the outcome in an envelope."""
        if not is_valid_url(feed_url):
            return FeedCheckResponse(success=False, error='Invalid feed URL provided')

        try:
            result = await self.check_feed(feed_url, threshold)
        except CrawlWatchError as e:
            self.logger.error(f"Feed check failed for {feed_url}: {e}")
            return FeedCheckResponse(success=False, error=str(e))

        return FeedCheckResponse(success=True, result=result)

    async def check_feed(self, feed_url: str, threshold: Optional[float] = None) -> FeedCheckResult:
        """
        Fetch, parse and score one feed.

        high_score_items keeps feed order and includes entries whose score
        equals the threshold.

        Raises:
            InvalidInputError: feed_url is not a valid URL
            FeedFetchError: the feed could not be retrieved
        """
        if not is_valid_url(feed_url):
            raise InvalidInputError(f"Invalid feed URL provided: {feed_url!r}")

        threshold = self.default_threshold if threshold is None else threshold
        markup = await self.fetch_feed(feed_url)
        return self.score_feed(feed_url, markup, threshold)

    def score_feed(self, feed_url: str, markup: str, threshold: float) -> FeedCheckResult:
        """Parse already-fetched feed markup and select high-scoring entries."""
        feed = self.parser.parse(markup)
        self.logger.info(f"Parsed {len(feed.entries)} items from feed {feed_url}")

        scored = [self.scorer.score_entry(entry) for entry in feed.entries]
        high_score_items = [item for item in scored if item.score >= threshold]

        self.logger.info(f"Found {len(high_score_items)} items with score >= {threshold} in {feed_url}")
        if self.monitor:
            self.monitor.record_feed_scored(len(scored), len(high_score_items))

        return FeedCheckResult(
            feed_url=feed_url,
            feed_title=feed.title,
            total_items=len(feed.entries),
            high_score_items=high_score_items,
            threshold=threshold,
        )

    async def fetch_feed(self, feed_url: str) -> str:
        """GET the feed document. Raises FeedFetchError."""
        if self.session is None:
            self.session = aiohttp.ClientSession()
            self._owns_session = True

        headers = {'User-Agent': self.scraper_config.user_agent, 'Accept': FEED_ACCEPT}
        timeout = ClientTimeout(total=self.scraper_config.timeout_ms / 1000)

        try:
            async with self.session.get(feed_url, headers=headers, timeout=timeout) as response:
                if not 200 <= response.status < 300:
                    raise FeedFetchError(f"Failed to fetch feed: HTTP {response.status}")
                return await read_text(response)
        except asyncio.TimeoutError:
            raise FeedFetchError(f"Failed to fetch feed: timeout after {timeout.total}s")
        except (ClientError, FetchError) as e:
            raise FeedFetchError(f"Failed to fetch feed: {e}")

    async def check_all_feeds(self, threshold: Optional[float] = None) -> FeedCheckSummary:
        """
        Scheduled run: check every enabled feed and dispatch a manual crawl
        job per qualifying entry. Feed and dispatch failures are recorded in
        the summary and never stop the run.
        """
        summary = FeedCheckSummary()
        feeds = [feed for feed in self.feeds if feed.enabled]
        self.logger.info(f"Starting scheduled feed check over {len(feeds)} feeds")

        for feed in feeds:
            log = get_job_logger(__name__, feed=feed.name)
            try:
                log.info(f"Checking feed: {feed.name} ({feed.url})")
                result = await self.check_feed(feed.url, threshold)
            except CrawlWatchError as e:
                log.error(f"Error checking feed {feed.name}: {e}")
                summary.errors.append({'feed': feed.name, 'error': str(e)})
                continue

            summary.feeds_checked += 1

            for item in result.high_score_items:
                log.info(f"High-score item found ({item.score}): {item.entry.title}")
                item_data = item.to_dict()
                item_data['feed'] = feed.name
                summary.high_score_items.append(item_data)

                outcome = await self._dispatch(feed, item)
                summary.dispatches.append(outcome)
                if outcome.success:
                    summary.scrapes_triggered += 1
                else:
                    summary.errors.append({'feed': feed.name, 'url': outcome.url, 'error': outcome.error})

        if self.sink is not None:
            summary.storage = await self.sink.store(summary.to_dict())

        self.logger.info(
            f"Feed check completed: feeds_checked={summary.feeds_checked}, "
            f"high_score_items={len(summary.high_score_items)}, "
            f"scrapes_triggered={summary.scrapes_triggered}, errors={len(summary.errors)}"
        )
        return summary

    async def _dispatch(self, feed: FeedConfig, item: ScoredEntry) -> DispatchOutcome:
        if self.dispatcher is None:
            return DispatchOutcome(feed=feed.name, url=item.entry.link, success=False,
                                   error='No job dispatcher configured')

        job = CrawlJob(
            url=item.entry.link,
            mode='manual',
            depth=0,
            source='rss',
            feed_name=feed.name,
            score=item.score,
            title=item.entry.title,
        )
        try:
            job_id = await self.dispatcher.enqueue(job)
        except DispatchError as e:
            self.logger.error(f"Dispatch failed for {job.url}: {e}")
            if self.monitor:
                self.monitor.record_dispatch(False)
            return DispatchOutcome(feed=feed.name, url=job.url, success=False, error=str(e))

        if self.monitor:
            self.monitor.record_dispatch(True)
        return DispatchOutcome(feed=feed.name, url=job.url, success=True, job_id=job_id)
