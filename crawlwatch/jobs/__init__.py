"""
Crawl job dispatch. The queue worker lives in ``crawlwatch.jobs.worker``.
"""

from .models import CrawlJob, generate_job_id
from .queue import JobDispatcher, InMemoryJobQueue, RedisJobQueue, create_job_queue

__all__ = ['CrawlJob', 'generate_job_id', 'JobDispatcher', 'InMemoryJobQueue', 'RedisJobQueue', 'create_job_queue']
