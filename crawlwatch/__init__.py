"""
CrawlWatch

Adaptive web crawler with keyword-scored RSS/Atom feed monitoring.
"""

__version__ = "1.0.0"
__description__ = "Adaptive crawl engine with feed relevance scoring and crawl job dispatch"
