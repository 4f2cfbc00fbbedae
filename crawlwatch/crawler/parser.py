"""
Content extractor: title, plain-text body and outbound links from raw markup.
"""

import re
import logging
from typing import Optional, Tuple
from urllib.parse import urljoin
from dataclasses import dataclass
from bs4 import BeautifulSoup, Comment

from ..utils.urls import is_valid_url

UNTITLED = 'Untitled'


@dataclass(frozen=True)
class ParsedContent:
    """Container for extracted page content."""
    title: str = ''
    content: str = ''
    links: Tuple[str, ...] = ()


class ContentParser:
    """
    Tolerant, best-effort HTML extractor.

    Malformed markup degrades to empty fields; extraction never raises.
    """

    def __init__(self, max_content_chars: int = 50000, max_links: int = 50,
                 resolve_relative_links: bool = False):
        self.max_content_chars = max_content_chars
        self.max_links = max_links
        self.resolve_relative_links = resolve_relative_links
        self.logger = logging.getLogger(__name__)

        self.whitespace_pattern = re.compile(r'\s+')

    def parse(self, html_content: str, base_url: Optional[str] = None) -> ParsedContent:
        """
        Extract title, body text and links.

        Args:
            html_content: Raw markup
            base_url: Page URL, used only when relative links are resolved

        Returns:
            ParsedContent with the extracted fields
        """
        if not html_content:
            return ParsedContent(title=UNTITLED)

        try:
            soup = BeautifulSoup(html_content, 'lxml')

            # Links come from the full markup, before anything is removed
            links = self._extract_links(soup, base_url)
            title = self._extract_title(soup)

            for element in soup(["script", "style"]):
                element.decompose()

            for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
                comment.extract()

            content = self._clean_text(soup.get_text(separator=' '))
            # Silent truncation
            content = content[:self.max_content_chars]

            self.logger.debug(f"Extracted {len(content)} chars, {len(links)} links")
            return ParsedContent(title=title, content=content, links=links)

        except Exception as e:
            self.logger.warning(f"Could not extract content from markup: {e}")
            return ParsedContent()

    def _extract_title(self, soup: BeautifulSoup) -> str:
        """Text of the first <title> element, or the placeholder."""
        title_tag = soup.find('title')
        if title_tag:
            title = self._clean_text(title_tag.get_text())
            if title:
                return title
        return UNTITLED

    def _extract_links(self, soup: BeautifulSoup, base_url: Optional[str]) -> Tuple[str, ...]:
        """Absolute anchor hrefs in document order, deduplicated and capped."""
        links = []
        seen = set()

        for anchor in soup.find_all('a', href=True):
            href = anchor['href'].strip()
            if not href or href.startswith('#'):
                continue

            if self.resolve_relative_links and base_url:
                href = urljoin(base_url, href)

            if not is_valid_url(href) or href in seen:
                continue

            seen.add(href)
            links.append(href)
            if len(links) >= self.max_links:
                break

        return tuple(links)

    def _clean_text(self, text: str) -> str:
        """Collapse whitespace runs to single spaces."""
        if not text:
            return ""
        return self.whitespace_pattern.sub(' ', text).strip()
