"""Tests for crawl jobs, the job queues and the queue worker."""

import json
import re
from unittest.mock import AsyncMock

import pytest

from crawlwatch.crawler.cache import MemoryPageCache
from crawlwatch.crawler.engine import CrawlEngine
from crawlwatch.errors import DispatchError
from crawlwatch.jobs.models import CrawlJob, generate_job_id
from crawlwatch.jobs.queue import InMemoryJobQueue, RedisJobQueue
from crawlwatch.jobs.worker import QueueWorker
from redis.exceptions import ConnectionError as RedisConnectionError

from tests.conftest import FakeFetcher, make_document, make_scraper_config


def test_job_id_format():
    assert re.fullmatch(r'job_\d+_[0-9a-z]{9}', generate_job_id())
    assert generate_job_id() != generate_job_id()


def test_job_serialization_omits_unset_provenance():
    job = CrawlJob(url='https://example.com/', mode='manual', depth=0, source='rss', score=7.0)

    data = job.to_dict()

    assert 'feed_name' not in data
    assert data['score'] == 7.0
    assert CrawlJob.from_dict(data) == job


def test_job_from_partial_dict_uses_defaults():
    job = CrawlJob.from_dict({'url': 'https://example.com/', 'mode': None})

    assert (job.mode, job.depth, job.source) == ('auto', 2, 'queue')


async def test_memory_queue_is_fifo():
    queue = InMemoryJobQueue()
    first = CrawlJob(url='https://example.com/1')
    second = CrawlJob(url='https://example.com/2')

    await queue.enqueue(first)
    await queue.enqueue(second)

    assert await queue.size() == 2
    assert (await queue.dequeue(timeout=0.1)) is first
    assert (await queue.dequeue(timeout=0.1)) is second
    assert await queue.dequeue(timeout=0.01) is None


async def test_redis_queue_round_trip():
    client = AsyncMock()
    queue = RedisJobQueue(client, key='jobs')
    job = CrawlJob(url='https://example.com/', feed_name='Watch')

    assert await queue.enqueue(job) == job.id

    key, payload = client.rpush.call_args.args
    assert key == 'jobs'
    client.blpop.return_value = (b'jobs', payload.encode('utf-8'))
    assert await queue.dequeue() == job


async def test_redis_queue_wraps_errors_and_drops_malformed_payloads():
    client = AsyncMock()
    client.rpush.side_effect = RedisConnectionError('down')
    queue = RedisJobQueue(client)

    with pytest.raises(DispatchError):
        await queue.enqueue(CrawlJob(url='https://example.com/'))

    client.blpop.return_value = (b'jobs', b'not json')
    assert await queue.dequeue() is None

    client.blpop.return_value = (b'jobs', json.dumps({'mode': 'auto'}).encode('utf-8'))
    assert await queue.dequeue() is None


async def test_redis_queue_wraps_read_errors():
    client = AsyncMock()
    client.blpop.side_effect = RedisConnectionError('down')
    queue = RedisJobQueue(client)

    with pytest.raises(DispatchError):
        await queue.dequeue(timeout=0.01)


def make_worker(pages, max_attempts=3):
    engine = CrawlEngine(make_scraper_config(), FakeFetcher(pages), MemoryPageCache())
    queue = InMemoryJobQueue()
    return QueueWorker(engine, queue, max_attempts=max_attempts), queue


async def test_worker_runs_jobs_through_engine():
    worker, queue = make_worker({'https://example.com/': make_document('https://example.com/')})
    await queue.enqueue(CrawlJob(url='https://example.com/', mode='manual', depth=0, source='rss'))

    stats = await worker.run(stop_when_empty=True, poll_timeout=0.01)

    assert stats == {
        'jobs_processed': 1, 'jobs_succeeded': 1, 'jobs_retried': 0, 'jobs_dropped': 0, 'queue_errors': 0,
    }


async def test_failed_job_is_retried_then_dropped():
    worker, queue = make_worker({}, max_attempts=2)
    await queue.enqueue(CrawlJob(url='https://example.com/missing', mode='manual'))

    stats = await worker.run(stop_when_empty=True, poll_timeout=0.01)

    assert stats['jobs_processed'] == 2
    assert stats['jobs_retried'] == 1
    assert stats['jobs_dropped'] == 1
    assert await queue.size() == 0


async def test_worker_stops_after_max_jobs():
    worker, queue = make_worker({'https://example.com/': make_document('https://example.com/')})
    for _ in range(3):
        await queue.enqueue(CrawlJob(url='https://example.com/', mode='manual'))

    stats = await worker.run(max_jobs=2, poll_timeout=0.01)

    assert stats['jobs_processed'] == 2
    assert await queue.size() == 1


async def test_worker_survives_queue_read_failure():
    engine = CrawlEngine(make_scraper_config(),
                         FakeFetcher({'https://example.com/': make_document('https://example.com/')}),
                         MemoryPageCache())
    client = AsyncMock()
    payload = json.dumps(CrawlJob(url='https://example.com/', mode='manual').to_dict())
    client.blpop.side_effect = [RedisConnectionError('down'), (b'jobs', payload.encode('utf-8'))]
    worker = QueueWorker(engine, RedisJobQueue(client))

    stats = await worker.run(max_jobs=1, poll_timeout=0.01)

    assert stats['queue_errors'] == 1
    assert stats['jobs_succeeded'] == 1


async def test_worker_stops_draining_when_queue_unreachable():
    client = AsyncMock()
    client.blpop.side_effect = RedisConnectionError('down')
    worker = QueueWorker(CrawlEngine(make_scraper_config(), FakeFetcher({}), MemoryPageCache()),
                         RedisJobQueue(client))

    stats = await worker.run(stop_when_empty=True, poll_timeout=0.01)

    assert stats['queue_errors'] == 1
    assert stats['jobs_processed'] == 0
