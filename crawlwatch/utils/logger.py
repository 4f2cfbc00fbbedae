"""
Logging setup for crawl jobs and feed checks.

Records from this package keep their level; library records are held to
WARNING and above. Per-job context rides on a JobLogAdapter.
"""

import logging
import logging.handlers
import json
import sys
from pathlib import Path
from typing import Any, Dict, Sequence
from datetime import datetime, timezone

from .config import LoggingConfig

OWN_LOGGERS = ('crawlwatch', '__main__', 'root')
QUIET_LIBRARIES = ('aiohttp', 'redis', 'asyncio')

MB = 1024 * 1024


class JSONFormatter(logging.Formatter):
    """One JSON object per record, including job context passed through ``extra``."""

    # Attributes every LogRecord carries; anything else came in through ``extra``
    _reserved = set(vars(logging.LogRecord('', 0, '', 0, '', None, None))) | {'message', 'asctime'}

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)

        for key, value in vars(record).items():
            if key not in self._reserved and key not in entry:
                entry[key] = value

        return json.dumps(entry, ensure_ascii=False, default=str)


class JobLogAdapter(logging.LoggerAdapter):
    """Attaches job context (job id, mode, source, feed) to every record."""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        kwargs['extra'] = {**self.extra, **kwargs.get('extra', {})}
        return msg, kwargs

    def url_event(self, level: int, url: str, message: str):
        """Log an event about one URL, e.g. a failed fetch strategy."""
        self.log(level, message, extra={'url': url, 'event_type': 'url_event'})

    def stat(self, name: str, value: Any):
        """Log one job statistic as structured fields."""
        self.info(f"Stat: {name} = {value}",
                  extra={'stat_name': name, 'stat_value': value, 'event_type': 'job_stat'})


class LibraryNoiseFilter(logging.Filter):
    """Drops library records below min_level; this package's records always pass."""

    def __init__(self, own_loggers: Sequence[str] = OWN_LOGGERS, min_level: int = logging.WARNING):
        super().__init__()
        self.own_loggers = tuple(own_loggers)
        self.min_level = min_level

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno >= self.min_level:
            return True
        return any(record.name == name or record.name.startswith(name + '.') for name in self.own_loggers)


def _rotating_handler(path: Path, max_bytes: int, backups: int, level: int,
                      formatter: logging.Formatter) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backups,
                                                   encoding='utf-8')
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(config: LoggingConfig, enable_json: bool = False,
                  filter_library_noise: bool = True) -> logging.Logger:
    """
    Install console, rotating file and errors.log handlers on the root logger.

    The console writes to stderr so stdout stays clean for JSON results.
    errors.log sits next to the main log file.
    """
    log_file = Path(config.file)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, config.level.upper()))
    root_logger.handlers.clear()

    formatter = JSONFormatter() if enable_json else logging.Formatter(config.format)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)

    handlers = [
        console_handler,
        _rotating_handler(log_file, 50 * MB, 5, logging.DEBUG, formatter),
        _rotating_handler(log_file.parent / 'errors.log', 10 * MB, 3, logging.ERROR, formatter),
    ]
    for handler in handlers:
        if filter_library_noise:
            handler.addFilter(LibraryNoiseFilter())
        root_logger.addHandler(handler)

    for name in QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.info(f"Logging to {log_file} at level {config.level}")
    return root_logger


def get_job_logger(name: str, **context) -> JobLogAdapter:
    """Logger for ``name`` that stamps ``context`` onto every record."""
    return JobLogAdapter(logging.getLogger(name), context)
