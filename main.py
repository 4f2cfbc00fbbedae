#!/usr/bin/env python3
"""
Main entry point for the crawl and feed monitoring system.
"""

import asyncio
import argparse
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Dict

from crawlwatch import __version__
from crawlwatch.crawler import CrawlEngine, FetchStrategyChain, create_page_cache
from crawlwatch.errors import ConfigError
from crawlwatch.feeds import FeedMonitor, KeywordWeightTable, RelevanceScorer
from crawlwatch.jobs.queue import create_job_queue
from crawlwatch.jobs.worker import QueueWorker
from crawlwatch.storage import ResultSink
from crawlwatch.utils.config import Config, build_config, enabled_feeds, load_config
from crawlwatch.utils.logger import setup_logging
from crawlwatch.utils.monitoring import initialize_monitoring


class CrawlWatchApp:
    """Wires the configured components together and runs one command."""

    def __init__(self, config: Config):
        self.config = config
        self.logger = logging.getLogger(__name__)
        self._shutdown_event = asyncio.Event()

        self.monitor = initialize_monitoring(
            enable_server=config.monitoring.metrics_enabled,
            prometheus_port=config.monitoring.prometheus_port
        )
        self.cache = create_page_cache(config.cache, config.redis)
        self.fetcher = FetchStrategyChain(config.scraper, monitor=self.monitor)
        self.sink = ResultSink(config.storage)
        self.queue = create_job_queue(config.queue, config.redis)
        self.engine = CrawlEngine(config.scraper, self.fetcher, self.cache, self.sink, self.monitor)
        self.feed_monitor = FeedMonitor(
            config.scraper,
            config.scoring,
            RelevanceScorer(KeywordWeightTable.from_config(config.scoring)),
            feeds=enabled_feeds(config),
            dispatcher=self.queue,
            sink=self.sink,
            monitor=self.monitor
        )

    def setup_signal_handlers(self):
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        def signal_handler(signum):
            self.logger.info(f"Received signal {signum}, initiating shutdown...")
            self._shutdown_event.set()

        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, signal_handler, signum)
            except NotImplementedError:
                # Windows event loops
                signal.signal(signum, lambda s, f: self._shutdown_event.set())

    async def run(self, args: argparse.Namespace) -> Dict[str, Any]:
        """Run the selected command and return its JSON-ready result."""
        self.setup_signal_handlers()
        self.logger.info(f"=== CRAWLWATCH {args.command.upper()} STARTING ===")

        try:
            if args.command == 'crawl':
                response = await self.engine.handle_crawl(
                    args.url,
                    mode=args.mode,
                    depth=args.depth,
                    source='manual',
                    stop_event=self._shutdown_event
                )
                return response.to_dict()

            if args.command == 'check-feed':
                response = await self.feed_monitor.handle_feed_check(args.url, args.threshold)
                return response.to_dict()

            if args.command == 'check-feeds':
                summary = await self.feed_monitor.check_all_feeds(args.threshold)
                data = summary.to_dict()
                data['success'] = True
                return data

            worker = QueueWorker(self.engine, self.queue, self.config.queue.max_attempts)
            stats = await worker.run(
                max_jobs=args.max_jobs,
                stop_event=self._shutdown_event,
                stop_when_empty=args.until_empty
            )
            return {'success': True, 'worker': stats}

        finally:
            await self.close()
            self.logger.info(f"Metrics: {self.monitor.get_summary()}")
            self.logger.info(f"=== CRAWLWATCH {args.command.upper()} FINISHED ===")

    async def close(self):
        await self.fetcher.close()
        await self.feed_monitor.close()
        await self.cache.close()
        await self.queue.close()
        await self.sink.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="CrawlWatch: adaptive crawler and feed relevance monitor",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py crawl https://example.com                   # Scrape one page
  python main.py crawl https://example.com --mode auto -d 1  # Recursive crawl
  python main.py check-feed https://example.com/feed.xml     # Score one feed
  python main.py check-feeds                                 # Scheduled run over configured feeds
  python main.py worker --until-empty                        # Drain the job queue
        """
    )

    parser.add_argument(
        '--config',
        default='config.yaml',
        help='Path to configuration file (default: config.yaml)'
    )

    parser.add_argument(
        '--json-logs',
        action='store_true',
        help='Emit structured JSON logs'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'CrawlWatch {__version__}'
    )

    subparsers = parser.add_subparsers(dest='command', required=True)

    crawl = subparsers.add_parser('crawl', help='Scrape one page or crawl a site')
    crawl.add_argument('url', help='Start URL')
    crawl.add_argument('--mode', choices=['manual', 'auto'], default='manual',
                       help='manual: single page, auto: recursive crawl')
    crawl.add_argument('-d', '--depth', type=int, help='Maximum depth for auto mode')

    check_feed = subparsers.add_parser('check-feed', help='Fetch and score one feed')
    check_feed.add_argument('url', help='Feed URL')
    check_feed.add_argument('--threshold', type=float, help='Score threshold override')

    check_feeds = subparsers.add_parser('check-feeds', help='Check all enabled feeds and dispatch crawl jobs')
    check_feeds.add_argument('--threshold', type=float, help='Score threshold override')

    worker = subparsers.add_parser('worker', help='Process crawl jobs from the job queue')
    worker.add_argument('--max-jobs', type=int, help='Stop after this many jobs')
    worker.add_argument('--until-empty', action='store_true', help='Stop when the queue is empty')

    return parser


def load_app_config(path: str) -> Config:
    """Load the configuration file, falling back to defaults when it is absent."""
    if not Path(path).exists():
        print(f"Warning: Configuration file '{path}' not found, using defaults.", file=sys.stderr)
        return build_config({})
    return load_config(path)


def main(argv=None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = load_app_config(args.config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    setup_logging(config.logging, enable_json=args.json_logs)

    app = CrawlWatchApp(config)
    try:
        result = asyncio.run(app.run(args))
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2, ensure_ascii=False, default=str))
    return 0 if result.get('success') else 1


if __name__ == '__main__':
    sys.exit(main())
