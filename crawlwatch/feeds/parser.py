"""
Tolerant RSS 2.0 / Atom feed parser.

A single pattern scan over the markup, not a validating XML parser: a
malformed or truncated item yields no entry instead of failing the feed.
"""

import html
import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

UNTITLED_FEED = 'Untitled Feed'

ITEM_PATTERN = re.compile(
    r'<(item|entry)(?:\s[^>]*)?>((?:(?!<(?:item|entry)[\s>])[\s\S])*?)</\1\s*>', re.IGNORECASE
)
LINK_TAG_PATTERN = re.compile(r'<link\b([^>]*)>', re.IGNORECASE)
ATTR_PATTERN = re.compile(r'([\w:-]+)\s*=\s*["\']([^"\']*)["\']')
CDATA_PATTERN = re.compile(r'<!\[CDATA\[([\s\S]*?)\]\]>')
TAG_PATTERN = re.compile(r'</?[a-zA-Z!?][^>]*>')
WHITESPACE_PATTERN = re.compile(r'\s+')

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeedEntry:
    """One feed item; immutable once parsed."""
    title: str
    link: str
    description: str = ''
    pub_date: str = ''

    @property
    def content(self) -> str:
        """Title and description combined, used for scoring."""
        return f"{self.title} {self.description}"

    def to_dict(self) -> dict:
        return {
            'title': self.title,
            'link': self.link,
            'description': self.description,
            'pubDate': self.pub_date,
        }


@dataclass(frozen=True)
class ParsedFeed:
    title: str = UNTITLED_FEED
    entries: Tuple[FeedEntry, ...] = field(default_factory=tuple)


def clean_text(text: str) -> str:
    """Unwrap CDATA, strip tags, decode entities and collapse whitespace."""
    if not text:
        return ''
    text = CDATA_PATTERN.sub(r'\1', text)
    text = TAG_PATTERN.sub('', text)
    text = html.unescape(text)
    # Entity-encoded markup becomes real tags only after decoding
    text = TAG_PATTERN.sub('', text)
    return WHITESPACE_PATTERN.sub(' ', text).strip()


def _element_pattern(name: str) -> re.Pattern:
    return re.compile(
        rf'<{re.escape(name)}(?:\s[^>]*)?>([\s\S]*?)</{re.escape(name)}\s*>',
        re.IGNORECASE
    )


_ELEMENT_PATTERNS = {
    name: _element_pattern(name)
    for name in ('title', 'link', 'description', 'summary', 'content', 'pubDate', 'published', 'updated')
}


def _first_element_text(block: str, names: Iterable[str]) -> str:
    """Cleaned text of the first named element present, in priority order."""
    for name in names:
        match = _ELEMENT_PATTERNS[name].search(block)
        if match:
            text = clean_text(match.group(1))
            if text:
                return text
    return ''


def _extract_link(block: str) -> str:
    """Element text (RSS) or href attribute (Atom), preferring rel=alternate."""
    text = _first_element_text(block, ('link',))
    if text:
        return text

    fallback = ''
    for match in LINK_TAG_PATTERN.finditer(block):
        attrs = {k.lower(): v for k, v in ATTR_PATTERN.findall(match.group(1))}
        href = html.unescape(attrs.get('href', '')).strip()
        if not href:
            continue
        if attrs.get('rel', 'alternate').lower() == 'alternate':
            return href
        fallback = fallback or href
    return fallback


class FeedParser:
    """Converts feed markup into a feed title and entries."""

    def parse(self, feed_markup: str) -> ParsedFeed:
        """
        Parse RSS/Atom markup.

        Entries missing a title or a link are dropped. Never raises for
        malformed input.
        """
        if not feed_markup:
            return ParsedFeed()

        first_item = ITEM_PATTERN.search(feed_markup)
        header = feed_markup[:first_item.start()] if first_item else feed_markup
        feed_title = _first_element_text(header, ('title',)) or UNTITLED_FEED

        entries: List[FeedEntry] = []
        for match in ITEM_PATTERN.finditer(feed_markup):
            entry = self._parse_entry(match.group(2))
            if entry is not None:
                entries.append(entry)

        logger.debug(f"Parsed {len(entries)} entries from feed {feed_title!r}")
        return ParsedFeed(title=feed_title, entries=tuple(entries))

    def _parse_entry(self, block: str) -> Optional[FeedEntry]:
        title = _first_element_text(block, ('title',))
        link = _extract_link(block)

        if not title or not link:
            logger.debug("Skipping feed item without title or link")
            return None

        return FeedEntry(
            title=title,
            link=link,
            description=_first_element_text(block, ('description', 'summary', 'content')),
            pub_date=_first_element_text(block, ('pubDate', 'published', 'updated')),
        )
