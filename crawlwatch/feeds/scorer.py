"""
Keyword-weighted relevance scoring for feed entries.
"""

import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Tuple

from .parser import FeedEntry
from ..utils.config import ScoringConfig


@dataclass(frozen=True)
class KeywordWeightTable:
    """Read-only keyword weights shared by every score() call."""
    keywords: Tuple[str, ...]
    high_priority: FrozenSet[str]
    weight_high: float = 2.0
    weight_medium: float = 1.0
    title_bonus: float = 1.0

    @classmethod
    def from_config(cls, config: ScoringConfig) -> 'KeywordWeightTable':
        seen = set()
        keywords = []
        # High-priority keywords are scored even when not listed as keywords
        for keyword in list(config.keywords) + list(config.high_priority_keywords):
            lowered = keyword.strip().lower()
            if lowered and lowered not in seen:
                seen.add(lowered)
                keywords.append(lowered)
        return cls(
            keywords=tuple(keywords),
            high_priority=frozenset(k.strip().lower() for k in config.high_priority_keywords if k.strip()),
            weight_high=config.weight_high,
            weight_medium=config.weight_medium,
            title_bonus=config.title_bonus,
        )

    def weight(self, keyword: str) -> float:
        return self.weight_high if keyword in self.high_priority else self.weight_medium


@dataclass(frozen=True)
class ScoredEntry:
    """A feed entry with its relevance score."""
    entry: FeedEntry
    score: float

    def to_dict(self) -> dict:
        data = self.entry.to_dict()
        data['score'] = self.score
        return data


class RelevanceScorer:
    """
    Scores entries against a KeywordWeightTable.

    score = sum(whole-word count in title+description * keyword weight)
          + title_bonus per distinct high-priority keyword found as a
            substring of the title,
    rounded to two decimals. A keyword can contribute through both terms.
    """

    def __init__(self, table: KeywordWeightTable):
        self.table = table
        self._patterns: List[Tuple[str, re.Pattern]] = [
            (keyword, re.compile(rf'\b{re.escape(keyword)}\b', re.IGNORECASE))
            for keyword in table.keywords
        ]

    def score(self, entry: FeedEntry) -> float:
        text = entry.content
        total = 0.0

        for keyword, pattern in self._patterns:
            count = len(pattern.findall(text))
            if count:
                total += count * self.table.weight(keyword)

        title = entry.title.lower()
        for keyword in sorted(self.table.high_priority):
            if keyword in title:
                total += self.table.title_bonus

        return round(total, 2)

    def score_entry(self, entry: FeedEntry) -> ScoredEntry:
        return ScoredEntry(entry=entry, score=self.score(entry))

    def explain(self, entry: FeedEntry) -> Dict[str, int]:
        """Whole-word match counts per keyword, omitting keywords with none."""
        counts = {}
        for keyword, pattern in self._patterns:
            count = len(pattern.findall(entry.content))
            if count:
                counts[keyword] = count
        return counts
