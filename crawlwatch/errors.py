"""
Exception hierarchy for the crawl and feed monitoring system.
"""

from typing import Optional


class CrawlWatchError(Exception):
    """Base class for all crawlwatch errors."""
    pass


class ConfigError(CrawlWatchError, ValueError):
    """Invalid or missing configuration."""
    pass


class InvalidInputError(CrawlWatchError, ValueError):
    """Malformed URL, feed URL or crawl mode. Never retried."""
    pass


class FetchError(CrawlWatchError):
    """A single failed retrieval attempt (timeout, network error, bad status)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class StrategyUnavailable(CrawlWatchError):
    """A fetch strategy that is not configured and must be skipped."""
    pass


class StrategyExhaustedError(CrawlWatchError):
    """Every fetch strategy failed for one URL."""

    def __init__(self, url: str, last_error: Optional[BaseException] = None):
        detail = str(last_error) if last_error else "no strategy produced content"
        super().__init__(f"All fetch strategies failed. Last error: {detail}")
        self.url = url
        self.last_error = last_error


class FeedFetchError(CrawlWatchError):
    """The feed document could not be retrieved."""
    pass


class StorageError(CrawlWatchError):
    """Custom exception for persistence sink operations."""
    pass


class DispatchError(CrawlWatchError):
    """A crawl job could not be handed to the job queue."""
    pass


class CrawlCancelled(CrawlWatchError):
    """The caller's stop signal fired while a crawl step was in flight."""
    pass
