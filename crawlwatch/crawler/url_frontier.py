"""
Crawl frontier: the FIFO queue and visited set owned by one traversal.
"""

import logging
import time
from typing import Dict, Set, Optional
from dataclasses import dataclass, field
from collections import deque

from ..utils.urls import normalize_url


@dataclass(frozen=True)
class URLTask:
    """A URL waiting to be crawled at a given depth."""
    url: str
    depth: int
    parent_url: Optional[str] = None
    discovered_time: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'url': self.url,
            'depth': self.depth,
            'parent_url': self.parent_url,
            'discovered_time': self.discovered_time,
        }


class URLFrontier:
    """
    Breadth-first frontier for a single traversal.

    Not shared between crawls. URLs are compared in normalized form, so
    fragments and host case never cause a second fetch.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self.queue: deque = deque()
        self.visited: Set[str] = set()

    def add_url(self, task: URLTask) -> bool:
        """
        Add a URL to the frontier.
        Returns True if URL was added, False if already visited.
        """
        if self.is_visited(task.url):
            return False

        self.queue.append(task)
        self.logger.debug(f"Added URL to frontier: {task.url} (depth {task.depth})")
        return True

    def get_next_url(self) -> Optional[URLTask]:
        """Pop the oldest pending URL, or None when the frontier is empty."""
        if not self.queue:
            return None
        return self.queue.popleft()

    def mark_visited(self, url: str):
        self.visited.add(normalize_url(url))

    def is_visited(self, url: str) -> bool:
        return normalize_url(url) in self.visited

    def is_empty(self) -> bool:
        return not self.queue

    def get_stats(self) -> Dict[str, int]:
        """Get frontier statistics."""
        return {
            'total_queued': len(self.queue),
            'total_visited': len(self.visited),
        }
