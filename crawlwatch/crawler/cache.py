"""
Page cache: time-bounded memo of extracted documents keyed by normalized URL.

Cache faults never escape: a failed read is a miss and a failed write is
logged and ignored.
"""

import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

import redis.asyncio as redis

from .document import Document
from ..utils.config import CacheConfig, RedisConfig
from ..utils.urls import normalize_url


def cache_key(url: str, prefix: str = "scrape:") -> str:
    """Content-addressed key for a URL."""
    url_hash = hashlib.sha256(normalize_url(url).encode('utf-8')).hexdigest()
    return f"{prefix}{url_hash}"


class PageCache:
    """
    Base cache with the TTL and fault-tolerance rules.

    Subclasses implement ``_read`` and ``_write`` and may raise freely.
    """

    def __init__(self, ttl_seconds: int = 24 * 60 * 60, key_prefix: str = "scrape:",
                 clock: Optional[Callable[[], datetime]] = None):
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = logging.getLogger(__name__)

    async def get(self, url: str) -> Optional[Document]:
        """Return the cached document if it is younger than the TTL."""
        try:
            document = await self._read(cache_key(url, self.key_prefix))
        except Exception as e:
            self.logger.error(f"Cache check error for {url}: {e}")
            return None

        if document is None:
            return None

        if document.age_seconds(self.clock()) >= self.ttl_seconds:
            self.logger.debug(f"Cache entry expired for {url}")
            return None

        return document

    async def put(self, url: str, document: Document) -> bool:
        """Store document; last writer wins. Returns False on a cache fault."""
        try:
            await self._write(cache_key(url, self.key_prefix), document)
            return True
        except Exception as e:
            self.logger.error(f"Cache write error for {url}: {e}")
            return False

    async def close(self):
        pass

    async def _read(self, key: str) -> Optional[Document]:
        raise NotImplementedError

    async def _write(self, key: str, document: Document):
        raise NotImplementedError


class NullPageCache(PageCache):
    """Cache that never holds anything."""

    async def _read(self, key: str) -> Optional[Document]:
        return None

    async def _write(self, key: str, document: Document):
        pass


class MemoryPageCache(PageCache):
    """In-process cache; entries are dropped lazily once expired."""

    def __init__(self, ttl_seconds: int = 24 * 60 * 60, key_prefix: str = "scrape:",
                 clock: Optional[Callable[[], datetime]] = None):
        super().__init__(ttl_seconds, key_prefix, clock)
        self.entries: Dict[str, Document] = {}

    async def _read(self, key: str) -> Optional[Document]:
        document = self.entries.get(key)
        if document is not None and document.age_seconds(self.clock()) >= self.ttl_seconds:
            del self.entries[key]
            return None
        return document

    async def _write(self, key: str, document: Document):
        self.entries[key] = document


class RedisPageCache(PageCache):
    """Redis-backed cache storing documents as JSON with a matching key expiry."""

    def __init__(self, redis_client: redis.Redis, ttl_seconds: int = 24 * 60 * 60,
                 key_prefix: str = "scrape:", clock: Optional[Callable[[], datetime]] = None):
        super().__init__(ttl_seconds, key_prefix, clock)
        self.redis_client = redis_client

    async def _read(self, key: str) -> Optional[Document]:
        raw = await self.redis_client.get(key)
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode('utf-8')
        return Document.from_dict(json.loads(raw))

    async def _write(self, key: str, document: Document):
        await self.redis_client.set(key, json.dumps(document.to_dict()), ex=self.ttl_seconds)

    async def close(self):
        await self.redis_client.aclose()


def create_page_cache(cache_config: CacheConfig, redis_config: Optional[RedisConfig] = None) -> PageCache:
    """Build the cache backend named in the configuration."""
    if cache_config.backend == 'none':
        return NullPageCache(cache_config.ttl_seconds, cache_config.key_prefix)

    if cache_config.backend == 'redis':
        redis_config = redis_config or RedisConfig()
        client = redis.Redis(
            host=redis_config.host,
            port=redis_config.port,
            db=redis_config.db,
            password=redis_config.password
        )
        return RedisPageCache(client, cache_config.ttl_seconds, cache_config.key_prefix)

    return MemoryPageCache(cache_config.ttl_seconds, cache_config.key_prefix)
