"""
Crawl engine components.
"""

from .document import Document, ExtractionMethod
from .parser import ContentParser, ParsedContent
from .fetcher import (
    FetchStrategyChain, FetchStrategy, FetchResult,
    PlainFetchStrategy, RenderFetchStrategy, ProxyFetchStrategy
)
from .cache import PageCache, MemoryPageCache, RedisPageCache, NullPageCache, create_page_cache
from .url_frontier import URLFrontier, URLTask
from .engine import CrawlEngine, CrawlResult, CrawlResponse, CrawledPage, PageOutcome

__all__ = [
    'Document', 'ExtractionMethod',
    'ContentParser', 'ParsedContent',
    'FetchStrategyChain', 'FetchStrategy', 'FetchResult',
    'PlainFetchStrategy', 'RenderFetchStrategy', 'ProxyFetchStrategy',
    'PageCache', 'MemoryPageCache', 'RedisPageCache', 'NullPageCache', 'create_page_cache',
    'URLFrontier', 'URLTask',
    'CrawlEngine', 'CrawlResult', 'CrawlResponse', 'CrawledPage', 'PageOutcome',
]
