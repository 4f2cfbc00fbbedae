"""Tests for the page cache TTL, key and fault rules."""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

from crawlwatch.crawler.cache import (
    MemoryPageCache, NullPageCache, PageCache, RedisPageCache, cache_key, create_page_cache
)
from crawlwatch.utils.config import CacheConfig

from tests.conftest import make_document

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


class Clock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class BrokenCache(PageCache):
    async def _read(self, key):
        raise ConnectionError("store unavailable")

    async def _write(self, key, document):
        raise ConnectionError("store unavailable")


def fetched_at(document, when):
    return replace(document, fetched_at=when)


def test_cache_key_is_prefixed_and_normalized():
    key = cache_key('HTTP://Example.COM/path#frag', 'scrape:')

    assert key.startswith('scrape:')
    assert len(key) == len('scrape:') + 64
    assert key == cache_key('http://example.com/path')


async def test_put_then_get_within_ttl():
    clock = Clock(T0)
    cache = MemoryPageCache(ttl_seconds=60, clock=clock)
    document = fetched_at(make_document('https://example.com/'), T0)

    assert await cache.put('https://example.com/', document)
    clock.now = T0 + timedelta(seconds=59)

    assert await cache.get('https://example.com/') == document
    assert await cache.get('https://EXAMPLE.com/#top') == document


async def test_entry_expires_at_ttl():
    clock = Clock(T0)
    cache = MemoryPageCache(ttl_seconds=60, clock=clock)
    await cache.put('https://example.com/', fetched_at(make_document('https://example.com/'), T0))

    clock.now = T0 + timedelta(seconds=60)

    assert await cache.get('https://example.com/') is None
    assert cache.entries == {}


async def test_rewrite_replaces_entry():
    cache = MemoryPageCache()
    await cache.put('https://example.com/', make_document('https://example.com/', title='Old'))
    await cache.put('https://example.com/', make_document('https://example.com/', title='New'))

    assert (await cache.get('https://example.com/')).title == 'New'


async def test_faults_read_as_miss_and_failed_write():
    cache = BrokenCache()
    document = make_document('https://example.com/')

    assert await cache.get('https://example.com/') is None
    assert await cache.put('https://example.com/', document) is False


async def test_null_cache_never_hits():
    cache = NullPageCache()
    await cache.put('https://example.com/', make_document('https://example.com/'))

    assert await cache.get('https://example.com/') is None


async def test_redis_cache_stores_json_with_expiry():
    client = AsyncMock()
    cache = RedisPageCache(client, ttl_seconds=120)
    document = make_document('https://example.com/')

    await cache.put('https://example.com/', document)

    key, payload = client.set.call_args.args
    assert key == cache_key('https://example.com/')
    assert client.set.call_args.kwargs == {'ex': 120}

    client.get.return_value = payload.encode('utf-8')
    restored = await cache.get('https://example.com/')
    assert restored == document


def test_factory_selects_backend():
    assert isinstance(create_page_cache(CacheConfig(backend='memory')), MemoryPageCache)
    assert isinstance(create_page_cache(CacheConfig(backend='none')), NullPageCache)
