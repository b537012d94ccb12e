"""
Relevance Scorer
Multi-signal scoring of a video against a query, plus timestamp extraction

Signals are additive:
1. Video topics overlapping query words
2. Extracted health topics overlapping video topics
3. Query words in title / description
4. Segments mentioning a query word (or satisfying a synonym rule)
5. Exact phrase in title / description

Everything here is pure. Weights live in ScoringWeights so they can be
recalibrated from settings without touching the code.
"""
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple
import re

from health_search.models.results import Timestamp
from health_search.models.video import Segment, Video
from health_search.utils.formatting import format_time, truncate_preview

TIMESTAMP_PREVIEW_CHARS = 120
DEFAULT_TIMESTAMP_COUNT = 3
MIN_QUERY_WORD_LENGTH = 3

_PUNCTUATION = re.compile(r"[^a-z0-9\s]")


@dataclass(frozen=True)
class ScoringWeights:
    """Per-signal weights (empirical, pending recalibration)"""
    base: float = 0.10
    topic: float = 0.25
    ai_topic: float = 0.30
    title: float = 0.15
    description: float = 0.10
    segment: float = 0.20
    title_phrase: float = 0.20
    description_phrase: float = 0.15
    signal_cap: float = 1.0


@dataclass(frozen=True)
class SynonymRule:
    """
    Lets a segment count as evidence for a query word it doesn't contain

    Applies when the query contains `word`, some video topic contains one of
    `topic_terms`, and the segment text or label mentions one of
    `evidence_terms`.
    """
    word: str
    topic_terms: Tuple[str, ...]
    evidence_terms: Tuple[str, ...] = ("gut", "digestive")


DEFAULT_SYNONYM_RULES: Tuple[SynonymRule, ...] = (
    SynonymRule(word="stomach", topic_terms=("gut", "digestive")),
    SynonymRule(word="ache", topic_terms=("health", "gut")),
)


@dataclass
class MatchSignals:
    """Which parts of a video matched a query"""
    topic_matches: List[str] = field(default_factory=list)
    ai_topic_matches: List[str] = field(default_factory=list)
    title_matches: List[str] = field(default_factory=list)
    description_matches: List[str] = field(default_factory=list)
    segment_matches: List[Segment] = field(default_factory=list)
    title_phrase: bool = False
    description_phrase: bool = False

    @property
    def has_match(self) -> bool:
        return bool(
            self.topic_matches
            or self.ai_topic_matches
            or self.title_matches
            or self.description_matches
            or self.segment_matches
            or self.title_phrase
            or self.description_phrase
        )


def query_words(query: str) -> List[str]:
    """Lowercase tokens longer than two characters, deduplicated in order"""
    cleaned = _PUNCTUATION.sub(" ", query.lower())
    words = []
    for word in cleaned.split():
        if len(word) >= MIN_QUERY_WORD_LENGTH and word not in words:
            words.append(word)
    return words


def _overlaps(a: str, b: str) -> bool:
    return a in b or b in a


def _topic_matches_words(topic: str, words: Sequence[str]) -> bool:
    topic_lower = topic.lower()
    return any(_overlaps(word, topic_lower) for word in words)


def _segment_matches(
    segment: Segment,
    words: Sequence[str],
    video_topics: Sequence[str],
    rules: Sequence[SynonymRule],
) -> bool:
    text = segment.text.lower()
    label = (segment.label or "").lower()

    if any(word in text or word in label for word in words):
        return True

    for rule in rules:
        if rule.word not in words:
            continue
        if not any(term in topic for topic in video_topics for term in rule.topic_terms):
            continue
        if any(term in text or term in label for term in rule.evidence_terms):
            return True
    return False


def collect_signals(
    query: str,
    video: Video,
    ai_topics: Sequence[str] = (),
    rules: Sequence[SynonymRule] = DEFAULT_SYNONYM_RULES,
) -> MatchSignals:
    words = query_words(query)
    phrase = query.lower().strip()
    title = video.title.lower()
    description = video.description.lower()
    video_topics = [t.lower() for t in video.topics]

    signals = MatchSignals()
    signals.topic_matches = [t for t in video.topics if _topic_matches_words(t, words)]
    signals.ai_topic_matches = [
        ai_topic for ai_topic in ai_topics
        if any(_overlaps(ai_topic.lower(), vt) for vt in video_topics)
    ]
    signals.title_matches = [w for w in words if w in title]
    signals.description_matches = [w for w in words if w in description]
    signals.segment_matches = [
        s for s in video.segments
        if _segment_matches(s, words, video_topics, rules)
    ]
    signals.title_phrase = bool(phrase) and phrase in title
    signals.description_phrase = bool(phrase) and phrase in description
    return signals


def score_signals(signals: MatchSignals, weights: ScoringWeights) -> float:
    cap = weights.signal_cap

    contributions = [
        weights.base,
        min(len(signals.topic_matches) * weights.topic, cap),
        min(len(signals.ai_topic_matches) * weights.ai_topic, cap),
        min(len(signals.title_matches) * weights.title, cap),
        min(len(signals.description_matches) * weights.description, cap),
        min(len(signals.segment_matches) * weights.segment, cap),
        weights.title_phrase if signals.title_phrase else 0.0,
        weights.description_phrase if signals.description_phrase else 0.0,
    ]
    return max(0.0, min(sum(contributions), 1.0))


def score_video(
    query: str,
    video: Video,
    ai_topics: Sequence[str] = (),
    weights: ScoringWeights = ScoringWeights(),
    rules: Sequence[SynonymRule] = DEFAULT_SYNONYM_RULES,
) -> Tuple[float, MatchSignals]:
    """
    Score a video against a query

    Returns:
        (score in [0, 1], the signals that produced it)
    """
    signals = collect_signals(query, video, ai_topics, rules)
    return score_signals(signals, weights), signals


def segment_timestamp(segment: Segment) -> Timestamp:
    return Timestamp(
        time=segment.start_time,
        label=segment.label or f"{format_time(segment.start_time)} - Relevant Content",
        description=truncate_preview(segment.text, TIMESTAMP_PREVIEW_CHARS),
    )


def extract_timestamps(signals: MatchSignals, video: Video) -> List[Timestamp]:
    """Matched segments, else the video's opening segments"""
    segments = signals.segment_matches or list(video.segments[:DEFAULT_TIMESTAMP_COUNT])
    return [segment_timestamp(s) for s in segments]


def default_timestamps(video: Video) -> List[Timestamp]:
    return [segment_timestamp(s) for s in video.segments[:DEFAULT_TIMESTAMP_COUNT]]


def build_snippet(video: Video, query: str) -> str:
    covered = ", ".join(video.topics[:3]) if video.topics else "health topics"
    return f'This video covers {covered} relevant to your query: "{query}"'
