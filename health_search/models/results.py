"""
Per-request result types passed between pipeline stages
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from health_search.models.video import Video


class Intent(str, Enum):
    """Query intent"""
    INFORMATION_SEEKING = "information_seeking"
    IMPROVEMENT_ADVICE = "improvement_advice"
    OTHER = "other"


@dataclass(frozen=True)
class ProcessedQuery:
    """Topics and intent inferred for a query"""

    health_topics: Tuple[str, ...]
    intent: Intent
    confidence: float
    cost: float = 0.0
    degraded: bool = False

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence out of range: {self.confidence}")
        if self.cost < 0:
            raise ValueError(f"cost must be non-negative: {self.cost}")
        if self.degraded and self.cost != 0:
            raise ValueError("degraded queries carry no cost")


@dataclass(frozen=True)
class Timestamp:
    time: float
    label: str
    description: str


@dataclass
class ScoredResult:
    """A video ranked for one request. Never persisted."""

    video: Video
    relevance_score: float
    matched_topics: List[str] = field(default_factory=list)
    snippet: str = ""
    timestamps: List[Timestamp] = field(default_factory=list)


@dataclass(frozen=True)
class SearchOptions:
    limit: int = 10
    min_relevance_score: float = 0.1


@dataclass
class VideoPage:
    videos: List[Video]
    total: int
    offset: int
    limit: int

    @property
    def has_next(self) -> bool:
        return self.offset + len(self.videos) < self.total


@dataclass
class QueryOutcome:
    """Everything the HTTP layer needs to render a successful query"""

    query: str
    processed_query: ProcessedQuery
    results: List[ScoredResult]
    total_results: int
    processing_time_ms: int
    cost: float
    search_source: str
    degraded: bool
    admission: Optional[object] = None
