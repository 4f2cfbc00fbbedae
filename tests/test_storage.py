"""Tests for the persistence sink."""

import json

from crawlwatch.storage import FileStorageBackend, NullStorageBackend, ResultSink, StorageBackend
from crawlwatch.utils.config import StorageConfig


class BrokenBackend(StorageBackend):
    async def initialize(self):
        pass

    async def store(self, record):
        raise OSError("disk full")


async def test_file_backend_writes_crawl_records_by_domain(tmp_path):
    sink = ResultSink(StorageConfig(type='file', directory=str(tmp_path)))

    outcome = await sink.store({'type': 'crawl', 'start_url': 'https://www.Example.com/page', 'pages': []})

    assert outcome.success is True
    assert outcome.location.startswith(str(tmp_path / 'www_example_com'))
    with open(outcome.location) as f:
        data = json.load(f)
    assert data['start_url'] == 'https://www.Example.com/page'
    assert 'stored_at' in data

    stats = await sink.get_stats()
    assert stats['total_stored'] == 1
    assert (tmp_path / 'stats.json').exists()


async def test_feed_summaries_go_to_rss_checks(tmp_path):
    sink = ResultSink(StorageConfig(type='file', directory=str(tmp_path)))

    outcome = await sink.store({'type': 'rss_check', 'feeds_checked': 0})

    assert outcome.location.startswith(str(tmp_path / 'rss_checks'))


async def test_sink_reports_failures_instead_of_raising():
    sink = ResultSink(StorageConfig(), backend=BrokenBackend())

    outcome = await sink.store({'type': 'crawl'})

    assert outcome.success is False
    assert 'disk full' in outcome.error
    assert outcome.to_dict() == {'success': False, 'location': None, 'error': 'disk full'}


async def test_none_storage_acknowledges_without_writing():
    sink = ResultSink(StorageConfig(type='none'))

    outcome = await sink.store({'type': 'crawl'})

    assert isinstance(sink.backend, NullStorageBackend)
    assert outcome.success is True
    assert outcome.location is None


async def test_file_backend_restores_saved_stats(tmp_path):
    first = FileStorageBackend(str(tmp_path))
    await first.initialize()
    await first.store({'type': 'crawl', 'start_url': 'https://example.com/'})

    second = FileStorageBackend(str(tmp_path))
    await second.initialize()

    assert (await second.get_stats())['total_stored'] == 1
