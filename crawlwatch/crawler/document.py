"""
Document model produced by a successful fetch and extraction.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class ExtractionMethod(Enum):
    """Fetch strategy that produced a document."""
    FETCH = 'fetch'
    RENDER = 'render'
    PROXY = 'proxy'


@dataclass(frozen=True)
class Document:
    """Extracted page. Immutable; a re-fetch produces a new Document."""
    url: str
    title: str
    content: str
    links: Tuple[str, ...]
    method: ExtractionMethod
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    content_type: Optional[str] = None
    content_length: int = 0

    def age_seconds(self, now: Optional[datetime] = None) -> float:
        now = now or datetime.now(timezone.utc)
        return (now - self.fetched_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'url': self.url,
            'title': self.title,
            'content': self.content,
            'links': list(self.links),
            'method': self.method.value,
            'scraped_at': self.fetched_at.isoformat(),
            'metadata': {
                'content_type': self.content_type,
                'content_length': self.content_length,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Document':
        """Create Document from dictionary."""
        metadata = data.get('metadata') or {}
        fetched_at = datetime.fromisoformat(data['scraped_at'])
        if fetched_at.tzinfo is None:
            fetched_at = fetched_at.replace(tzinfo=timezone.utc)
        return cls(
            url=data['url'],
            title=data.get('title', ''),
            content=data.get('content', ''),
            links=tuple(data.get('links') or ()),
            method=ExtractionMethod(data['method']),
            fetched_at=fetched_at,
            content_type=metadata.get('content_type'),
            content_length=metadata.get('content_length', 0),
        )
