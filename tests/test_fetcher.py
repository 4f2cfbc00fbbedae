"""Tests for the fetch strategy chain against a local HTTP server."""

import pytest

from crawlwatch.crawler.document import ExtractionMethod
from crawlwatch.crawler.fetcher import FetchStrategyChain, PlainFetchStrategy
from crawlwatch.errors import FetchError, StrategyExhaustedError
from crawlwatch.utils.monitoring import CrawlerMonitor

from tests.conftest import UNICODE_PAGE, make_scraper_config


async def test_plain_fetch_returns_document(site):
    url = str(site.make_url('/a'))

    async with FetchStrategyChain(make_scraper_config()) as chain:
        document = await chain.fetch(url)

    assert document.method == ExtractionMethod.FETCH
    assert document.title == 'Page a'
    assert 'Child page a' in document.content
    assert document.links == (str(site.make_url('/')),)
    assert document.content_type.startswith('text/html')


async def test_plain_fetch_retries_then_chain_is_exhausted(site):
    url = str(site.make_url('/broken'))
    monitor = CrawlerMonitor()

    async with FetchStrategyChain(make_scraper_config(max_retries=3), monitor=monitor) as chain:
        with pytest.raises(StrategyExhaustedError) as exc_info:
            await chain.fetch(url)

    assert site.hits['/broken'] == 3
    assert 'All fetch strategies failed' in str(exc_info.value)
    assert 'HTTP 500' in str(exc_info.value)
    assert monitor.metrics.get_value('strategy_failures_total', {'strategy': 'fetch'}) == 1


async def test_non_html_response_is_a_failure(site):
    strategy = PlainFetchStrategy(make_scraper_config(max_retries=1))

    async with FetchStrategyChain(make_scraper_config(), strategies=[strategy]) as chain:
        with pytest.raises(StrategyExhaustedError) as exc_info:
            await chain.fetch(str(site.make_url('/text')))

    assert isinstance(exc_info.value.last_error, FetchError)
    assert 'Unexpected content type' in str(exc_info.value)


async def test_falls_back_to_render_service(site):
    config = make_scraper_config(render_endpoint=str(site.make_url('/render')))
    url = str(site.make_url('/broken'))

    async with FetchStrategyChain(config) as chain:
        document = await chain.fetch(url)

    assert document.method == ExtractionMethod.RENDER
    assert document.title == 'Rendered'
    assert site.hits['/render'] == 1


async def test_falls_back_to_proxy_when_render_unconfigured(site):
    config = make_scraper_config(proxy_endpoint=str(site.make_url('/proxy')), proxy_api_key='secret')
    url = str(site.make_url('/broken'))

    async with FetchStrategyChain(config) as chain:
        document = await chain.fetch(url)

    assert document.method == ExtractionMethod.PROXY
    assert f"Proxied {url}" in document.content


async def test_document_url_is_normalized(site):
    url = str(site.make_url('/b')) + '#section'

    async with FetchStrategyChain(make_scraper_config()) as chain:
        document = await chain.fetch(url)

    assert document.url == str(site.make_url('/b'))


async def test_unconfigured_fallbacks_only_do_not_mask_plain_error(site):
    async with FetchStrategyChain(make_scraper_config(max_retries=1)) as chain:
        with pytest.raises(StrategyExhaustedError) as exc_info:
            await chain.fetch(str(site.make_url('/broken')))

    assert isinstance(exc_info.value.last_error, FetchError)
    assert exc_info.value.last_error.status_code == 500


async def test_content_length_counts_body_bytes(site):
    async with FetchStrategyChain(make_scraper_config()) as chain:
        document = await chain.fetch(str(site.make_url('/unicode')))

    assert document.title == 'Café'
    assert '✓' in document.content
    assert document.content_length == len(UNICODE_PAGE.encode('utf-8'))
    assert document.content_length > len(UNICODE_PAGE)
