"""
URL helpers shared by the extractor, cache and traversal engine.
"""

import re
from typing import Optional
from urllib.parse import urlparse, urlunparse


def is_valid_url(url: Optional[str]) -> bool:
    """Check that a string is a syntactically valid absolute http(s) URL."""
    if not url or not isinstance(url, str):
        return False

    try:
        parsed = urlparse(url.strip())
        # Accessing port validates it
        parsed.port
    except ValueError:
        return False

    if parsed.scheme not in ('http', 'https'):
        return False

    return bool(parsed.hostname) and not any(c.isspace() for c in url.strip())


def normalize_url(url: str) -> str:
    """Normalize URL by lowercasing scheme and host and removing the fragment."""
    try:
        parsed = urlparse(url.strip())
        path = parsed.path or '/'
        return urlunparse((
            parsed.scheme.lower(),
            parsed.netloc.lower(),
            path,
            parsed.params,
            parsed.query,
            ''  # Remove fragment
        ))
    except ValueError:
        return url


def extract_domain(url: str) -> Optional[str]:
    """Extract the lowercase hostname from URL."""
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return None
    return hostname.lower() if hostname else None


def registrable_domain(url: str) -> Optional[str]:
    """Hostname with a leading ``www.`` removed."""
    domain = extract_domain(url)
    if domain and domain.startswith('www.'):
        domain = domain[4:]
    return domain


def is_same_site(url: str, site_domain: Optional[str]) -> bool:
    """True when url's host equals site_domain or is one of its subdomains."""
    domain = registrable_domain(url)
    if not domain or not site_domain:
        return False
    return domain == site_domain or domain.endswith('.' + site_domain)


def sanitize_filename(name: str) -> str:
    """Sanitize a name for use as a storage path segment."""
    name = re.sub(r'[^a-z0-9_-]', '_', name, flags=re.IGNORECASE)
    return re.sub(r'_+', '_', name).lower()
