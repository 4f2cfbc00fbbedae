"""
Job dispatch: hands crawl jobs from the feed monitor to queue workers.
"""

import asyncio
import json
import logging
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from .models import CrawlJob
from ..errors import DispatchError
from ..utils.config import QueueConfig, RedisConfig


class JobDispatcher:
    """Abstract job queue: enqueue() on the producer side, dequeue() for workers."""

    async def enqueue(self, job: CrawlJob) -> str:
        """Queue a job and return its id. Raises DispatchError."""
        raise NotImplementedError

    async def dequeue(self, timeout: float = 1.0) -> Optional[CrawlJob]:
        """Next job, or None when nothing arrived within timeout seconds. Raises DispatchError."""
        raise NotImplementedError

    async def size(self) -> int:
        raise NotImplementedError

    async def close(self):
        pass


class InMemoryJobQueue(JobDispatcher):
    """Process-local queue, for single-process runs and tests."""

    def __init__(self):
        self.queue: asyncio.Queue = asyncio.Queue()

    async def enqueue(self, job: CrawlJob) -> str:
        await self.queue.put(job)
        return job.id

    async def dequeue(self, timeout: float = 1.0) -> Optional[CrawlJob]:
        try:
            return await asyncio.wait_for(self.queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    async def size(self) -> int:
        return self.queue.qsize()


class RedisJobQueue(JobDispatcher):
    """Redis list queue: RPUSH to enqueue, BLPOP to dequeue, JSON payloads."""

    def __init__(self, redis_client: redis.Redis, key: str = "crawlwatch:jobs"):
        self.redis_client = redis_client
        self.key = key
        self.logger = logging.getLogger(__name__)

    async def enqueue(self, job: CrawlJob) -> str:
        try:
            await self.redis_client.rpush(self.key, json.dumps(job.to_dict()))
        except RedisError as e:
            raise DispatchError(f"Error adding job {job.id} to Redis: {e}")
        self.logger.debug(f"Queued job {job.id} for {job.url}")
        return job.id

    async def dequeue(self, timeout: float = 1.0) -> Optional[CrawlJob]:
        # BLPOP treats 0 as "block forever"
        try:
            item = await self.redis_client.blpop([self.key], timeout=max(timeout, 0.01))
        except RedisError as e:
            raise DispatchError(f"Error reading jobs from Redis: {e}")
        if item is None:
            return None
        _, payload = item
        if isinstance(payload, bytes):
            payload = payload.decode('utf-8')
        try:
            return CrawlJob.from_dict(json.loads(payload))
        except (ValueError, TypeError, KeyError) as e:
            self.logger.error(f"Dropping malformed job payload: {e}")
            return None

    async def size(self) -> int:
        return await self.redis_client.llen(self.key)

    async def close(self):
        await self.redis_client.aclose()


def create_job_queue(queue_config: QueueConfig, redis_config: Optional[RedisConfig] = None) -> JobDispatcher:
    """Build the queue backend named in the configuration."""
    if queue_config.backend == 'redis':
        redis_config = redis_config or RedisConfig()
        client = redis.Redis(
            host=redis_config.host,
            port=redis_config.port,
            db=redis_config.db,
            password=redis_config.password
        )
        return RedisJobQueue(client, queue_config.key)
    return InMemoryJobQueue()
