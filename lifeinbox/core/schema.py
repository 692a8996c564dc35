"""
Shared data model for the retrieval core.
Records are canonical (persisted); candidates and ranked results live for one query only.
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import List, Optional


class MatchType(str, Enum):
    SEMANTIC = "semantic"
    LEXICAL = "lexical"
    PHONETIC = "phonetic"


# Tie-break order when two strategies score a record identically (lower wins)
MATCH_PRIORITY = {
    MatchType.SEMANTIC: 0,
    MatchType.LEXICAL: 1,
    MatchType.PHONETIC: 2,
}

CONTENT_TYPES = ("text", "voice", "image", "email")


@dataclass(frozen=True)
class Record:
    id: str
    user_id: str
    raw_text: str
    created_at: datetime
    summary: Optional[str] = None
    category: Optional[str] = None
    content_type: str = "text"
    embedding: Optional[List[float]] = None
    embedding_model: Optional[str] = None

    @property
    def display_text(self) -> str:
        """Summary when the analysis pipeline produced one, raw text otherwise."""
        return self.summary or self.raw_text or ""

    def has_embedding(self, model_version: str = None) -> bool:
        if not self.embedding:
            return False
        return model_version is None or self.embedding_model == model_version


@dataclass(frozen=True)
class MatchCandidate:
    record: Record
    score: float
    strategy: MatchType


@dataclass(frozen=True)
class RankedResult:
    record: Record
    score: float
    match_type: MatchType


@dataclass
class SearchFilters:
    content_types: List[str] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    date_from: Optional[date] = None
    date_to: Optional[date] = None

    def is_empty(self) -> bool:
        return not (self.content_types or self.categories or self.date_from or self.date_to)

    def merged_with(self, override: Optional["SearchFilters"]) -> "SearchFilters":
        """Return a copy where every field set on ``override`` replaces this one."""
        if override is None:
            return replace(self)
        return SearchFilters(
            content_types=list(override.content_types or self.content_types),
            categories=list(override.categories or self.categories),
            date_from=override.date_from or self.date_from,
            date_to=override.date_to or self.date_to,
        )


@dataclass
class QueryPlan:
    original: str
    enhanced_query: str
    intents: List[str] = field(default_factory=list)
    filters: SearchFilters = field(default_factory=SearchFilters)
    confidence: float = 0.5
    complex: bool = False
