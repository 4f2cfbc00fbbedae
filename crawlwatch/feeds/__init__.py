"""
Feed parsing, relevance scoring and feed monitoring.
"""

from .parser import FeedEntry, FeedParser, ParsedFeed, clean_text
from .scorer import KeywordWeightTable, RelevanceScorer, ScoredEntry
from .monitor import (
    DispatchOutcome, FeedCheckResponse, FeedCheckResult, FeedCheckSummary, FeedMonitor
)

__all__ = [
    'FeedEntry', 'FeedParser', 'ParsedFeed', 'clean_text',
    'KeywordWeightTable', 'RelevanceScorer', 'ScoredEntry',
    'DispatchOutcome', 'FeedCheckResponse', 'FeedCheckResult', 'FeedCheckSummary', 'FeedMonitor',
]
