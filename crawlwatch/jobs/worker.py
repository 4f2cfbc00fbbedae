"""
Queue worker: runs crawl jobs pulled from the job queue.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Dict, Optional

from .models import CrawlJob
from .queue import JobDispatcher
from ..errors import DispatchError

if TYPE_CHECKING:
    from ..crawler.engine import CrawlEngine, CrawlResponse


class QueueWorker:
    """
    Pulls jobs and runs them through the crawl engine.

    A failed job is re-queued until it has been attempted max_attempts times
    (at-least-once delivery); then it is dropped with an error log.
    """

    def __init__(self, engine: 'CrawlEngine', queue: JobDispatcher, max_attempts: int = 3):
        self.engine = engine
        self.queue = queue
        self.max_attempts = max_attempts
        self.logger = logging.getLogger(__name__)
        self.stats = {
            'jobs_processed': 0,
            'jobs_succeeded': 0,
            'jobs_retried': 0,
            'jobs_dropped': 0,
            'queue_errors': 0,
        }

    async def run(self, max_jobs: Optional[int] = None, stop_event: Optional[asyncio.Event] = None,
                  stop_when_empty: bool = False, poll_timeout: float = 1.0) -> Dict[str, int]:
        """
        Process jobs until max_jobs are done, stop_event is set, or (with
        stop_when_empty) the queue is drained.
        """
        self.logger.info("Queue worker started")

        while max_jobs is None or self.stats['jobs_processed'] < max_jobs:
            if stop_event is not None and stop_event.is_set():
                break

            try:
                job = await self.queue.dequeue(timeout=poll_timeout)
            except DispatchError as e:
                self.stats['queue_errors'] += 1
                self.logger.error(f"Queue read failed: {e}")
                if stop_when_empty:
                    break
                await self._backoff(poll_timeout, stop_event)
                continue

            if job is None:
                if stop_when_empty:
                    break
                continue

            await self.process_job(job, stop_event)

        self.logger.info(f"Queue worker finished: {self.stats}")
        return self.stats.copy()

    async def _backoff(self, seconds: float, stop_event: Optional[asyncio.Event]):
        if stop_event is None:
            await asyncio.sleep(seconds)
            return
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def process_job(self, job: CrawlJob, stop_event: Optional[asyncio.Event] = None) -> 'CrawlResponse':
        self.logger.info(f"Processing job: {job.id} ({job.url})")
        self.stats['jobs_processed'] += 1

        response = await self.engine.handle_crawl(
            job.url,
            mode=job.mode or 'auto',
            depth=job.depth,
            source=job.source or 'queue',
            stop_event=stop_event
        )

        if response.success:
            self.stats['jobs_succeeded'] += 1
            self.logger.info(f"Job completed successfully: {job.id}")
            return response

        job.attempts += 1
        if job.attempts < self.max_attempts:
            try:
                await self.queue.enqueue(job)
                self.stats['jobs_retried'] += 1
                self.logger.warning(f"Job failed, retrying ({job.attempts}/{self.max_attempts}): {job.id}: {response.error}")
                return response
            except DispatchError as e:
                self.logger.error(f"Could not re-queue job {job.id}: {e}")

        self.stats['jobs_dropped'] += 1
        self.logger.error(f"Job failed permanently after {job.attempts} attempts: {job.id}: {response.error}")
        return response
