"""
Monitoring and metrics collection for crawls and feed checks.
"""

import time
import logging
from typing import Dict, Optional, Any

from prometheus_client import Counter, Histogram, CollectorRegistry, start_http_server


class MetricsCollector:
    """Prometheus metrics on a private registry plus in-process current values."""

    def __init__(self, enable_server: bool = False, prometheus_port: int = 8000):
        self.logger = logging.getLogger(__name__)
        self.enable_server = enable_server
        self.prometheus_port = prometheus_port
        self.values: Dict[str, float] = {}

        self.registry = CollectorRegistry()
        self.prometheus_metrics = {
            'pages_fetched_total': Counter(
                'crawlwatch_pages_fetched_total',
                'Pages fetched, by extraction method',
                ['method'],
                registry=self.registry
            ),
            'strategy_failures_total': Counter(
                'crawlwatch_strategy_failures_total',
                'Fetch strategy failures, by strategy',
                ['strategy'],
                registry=self.registry
            ),
            'cache_lookups_total': Counter(
                'crawlwatch_cache_lookups_total',
                'Page cache lookups, by outcome',
                ['outcome'],
                registry=self.registry
            ),
            'feed_items_scored_total': Counter(
                'crawlwatch_feed_items_scored_total',
                'Feed entries scored',
                registry=self.registry
            ),
            'high_score_items_total': Counter(
                'crawlwatch_high_score_items_total',
                'Feed entries at or above the score threshold',
                registry=self.registry
            ),
            'jobs_dispatched_total': Counter(
                'crawlwatch_jobs_dispatched_total',
                'Crawl jobs handed to the job queue, by outcome',
                ['outcome'],
                registry=self.registry
            ),
            'fetch_time_seconds': Histogram(
                'crawlwatch_fetch_time_seconds',
                'Time to fetch and extract one page',
                registry=self.registry
            ),
        }

    def start_server(self):
        """Start the Prometheus metrics HTTP server."""
        if not self.enable_server:
            return

        try:
            start_http_server(self.prometheus_port, registry=self.registry)
            self.logger.info(f"Prometheus metrics server started on port {self.prometheus_port}")
        except OSError as e:
            self.logger.error(f"Failed to start Prometheus server: {e}")

    def increment_counter(self, name: str, labels: Optional[Dict[str, str]] = None, amount: float = 1):
        """Increment a counter metric."""
        key = self._key(name, labels)
        self.values[key] = self.values.get(key, 0) + amount

        metric = self.prometheus_metrics[name]
        if labels:
            metric.labels(**labels).inc(amount)
        else:
            metric.inc(amount)

    def observe_histogram(self, name: str, value: float):
        """Record a histogram observation."""
        self.values[name] = value
        self.prometheus_metrics[name].observe(value)

    def get_value(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        return self.values.get(self._key(name, labels), 0)

    def get_current_values(self) -> Dict[str, float]:
        """Get current values of all metrics."""
        return dict(self.values)

    @staticmethod
    def _key(name: str, labels: Optional[Dict[str, str]]) -> str:
        if not labels:
            return name
        label_str = ','.join(f"{k}={v}" for k, v in sorted(labels.items()))
        return f"{name}{{{label_str}}}"


class CrawlerMonitor:
    """High-level monitoring interface used by the crawl engine and feed monitor."""

    def __init__(self, metrics_collector: Optional[MetricsCollector] = None):
        self.metrics = metrics_collector or MetricsCollector()
        self.start_time = time.time()

    def record_page_fetched(self, method: str, fetch_time: float):
        self.metrics.increment_counter('pages_fetched_total', {'method': method})
        self.metrics.observe_histogram('fetch_time_seconds', fetch_time)

    def record_strategy_failure(self, strategy: str):
        self.metrics.increment_counter('strategy_failures_total', {'strategy': strategy})

    def record_cache_lookup(self, hit: bool):
        self.metrics.increment_counter('cache_lookups_total', {'outcome': 'hit' if hit else 'miss'})

    def record_feed_scored(self, total_items: int, high_score_items: int):
        self.metrics.increment_counter('feed_items_scored_total', amount=total_items)
        self.metrics.increment_counter('high_score_items_total', amount=high_score_items)

    def record_dispatch(self, success: bool):
        self.metrics.increment_counter('jobs_dispatched_total', {'outcome': 'ok' if success else 'error'})

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of all metrics."""
        return {
            'runtime_seconds': time.time() - self.start_time,
            'metrics': self.metrics.get_current_values(),
        }


def initialize_monitoring(enable_server: bool = False, prometheus_port: int = 8000) -> CrawlerMonitor:
    """Create a monitor and start its exporter when enabled."""
    metrics_collector = MetricsCollector(enable_server, prometheus_port)
    metrics_collector.start_server()
    return CrawlerMonitor(metrics_collector)
