"""
Crawl job model handed between the feed monitor, the queue and the worker.
"""

import random
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_ALPHABET = string.digits + string.ascii_lowercase


def generate_job_id() -> str:
    """Unique job id: ``job_<epoch ms>_<9 base36 chars>``."""
    suffix = ''.join(random.choice(_ALPHABET) for _ in range(9))
    return f"job_{int(time.time() * 1000)}_{suffix}"


@dataclass
class CrawlJob:
    """A crawl request waiting in the job queue."""
    url: str
    mode: str = 'auto'
    depth: int = 2
    source: str = 'queue'
    id: str = field(default_factory=generate_job_id)
    feed_name: Optional[str] = None
    score: Optional[float] = None
    title: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    attempts: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization; unset provenance is omitted."""
        data = {
            'id': self.id,
            'url': self.url,
            'mode': self.mode,
            'depth': self.depth,
            'source': self.source,
            'timestamp': self.timestamp,
            'attempts': self.attempts,
        }
        for key in ('feed_name', 'score', 'title'):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CrawlJob':
        """Create CrawlJob from dictionary; missing fields take their defaults."""
        kwargs = {key: data[key] for key in (
            'url', 'mode', 'depth', 'source', 'id', 'feed_name', 'score', 'title', 'timestamp', 'attempts'
        ) if data.get(key) is not None}
        return cls(**kwargs)
