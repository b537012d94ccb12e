"""
Fallback Heuristic Searcher
In-memory repository over a bundled JSON video library

Used whenever the primary store is unavailable (or returns nothing). Ranking
is done entirely by the Relevance Scorer.
"""
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
import json
import logging

from health_search.models.results import ScoredResult, SearchOptions, VideoPage
from health_search.models.video import Video
from health_search.services.relevance import (
    DEFAULT_SYNONYM_RULES,
    ScoringWeights,
    SynonymRule,
    build_snippet,
    extract_timestamps,
    score_video,
)
from health_search.services.repository import SegmentRepository

logger = logging.getLogger(__name__)

DEFAULT_LIBRARY_PATH = Path(__file__).resolve().parent.parent / "data" / "videos.json"


def load_library(path: Optional[str] = None) -> List[Video]:
    """
    Read the video library JSON (a list of video records)

    Unreadable records are skipped with a warning; an unreadable file raises.
    """
    library_path = Path(path) if path else DEFAULT_LIBRARY_PATH
    with open(library_path, "r", encoding="utf-8") as f:
        records = json.load(f)

    if not isinstance(records, list):
        raise ValueError(f"Video library {library_path} must be a JSON list")

    videos = []
    for record in records:
        try:
            videos.append(Video.from_record(record))
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(f"[Fallback] Skipping library record: {e}")

    logger.info(f"[Fallback] Loaded {len(videos)} videos from {library_path}")
    return videos


class InMemoryVideoRepository(SegmentRepository):
    """SegmentRepository backed by a list of videos held in memory"""

    source_name = "fallback"

    def __init__(
        self,
        videos: Sequence[Video],
        weights: ScoringWeights = ScoringWeights(),
        rules: Sequence[SynonymRule] = DEFAULT_SYNONYM_RULES,
    ):
        self._videos = list(videos)
        self._by_id = {v.id: v for v in self._videos}
        self.weights = weights
        self.rules = tuple(rules)

    def __len__(self) -> int:
        return len(self._videos)

    async def search(
        self,
        query_text: str,
        topics: Sequence[str],
        opts: SearchOptions,
    ) -> List[ScoredResult]:
        """Every video with at least one matching signal, in library order"""
        results = []
        for video in self._videos:
            score, signals = score_video(query_text, video, topics, self.weights, self.rules)
            if not signals.has_match:
                continue
            results.append(ScoredResult(
                video=video,
                relevance_score=score,
                matched_topics=list(signals.topic_matches),
                snippet=build_snippet(video, query_text),
                timestamps=extract_timestamps(signals, video),
            ))

        logger.info(f"[Fallback] {len(results)} of {len(self._videos)} videos matched")
        return results

    async def list_videos(
        self,
        search: Optional[str] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> VideoPage:
        videos = self._videos
        if search:
            term = search.lower()
            videos = [
                v for v in videos
                if term in v.title.lower() or term in v.description.lower()
            ]
        return VideoPage(
            videos=videos[offset:offset + limit],
            total=len(videos),
            offset=offset,
            limit=limit,
        )

    async def get_video(self, video_id: str) -> Optional[Video]:
        return self._by_id.get(video_id)

    async def describe(self) -> Dict[str, Any]:
        return {"source": self.source_name, "videos": len(self._videos)}
