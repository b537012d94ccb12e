"""
Segment Repository
The content-store interface and its Supabase implementation

The store keeps transcript segments as rows joined to their video. Search
goes through two RPC functions:
- search_transcript_segments: full-text ranking (ts_rank)
- match_transcript_segments: embedding similarity, used when an OpenAI key
  is configured

Rows come back per segment and are grouped per video here.
"""
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence
import asyncio
import logging

from health_search.exceptions import RepositoryUnavailable
from health_search.models.results import ScoredResult, SearchOptions, VideoPage
from health_search.models.video import Segment, Video
from health_search.services.relevance import build_snippet, query_words, segment_timestamp

logger = logging.getLogger(__name__)

# Segment rows fetched per requested result
ROWS_PER_RESULT = 4

VIDEO_COLUMNS = (
    "id, external_id, title, description, duration_seconds, view_count, "
    "published_at, topics"
)

Embedder = Callable[[str], Awaitable[List[float]]]


class SegmentRepository(ABC):
    """Where candidate videos come from"""

    source_name = "primary"

    @abstractmethod
    async def search(
        self,
        query_text: str,
        topics: Sequence[str],
        opts: SearchOptions,
    ) -> List[ScoredResult]:
        """
        Ranked candidates for a query

        Raises:
            RepositoryUnavailable: the store cannot be reached
        """

    @abstractmethod
    async def list_videos(
        self,
        search: Optional[str] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> VideoPage:
        ...

    @abstractmethod
    async def get_video(self, video_id: str) -> Optional[Video]:
        ...

    async def describe(self) -> Dict[str, Any]:
        return {"source": self.source_name}


def normalize_rank(row: Mapping[str, Any]) -> float:
    """Row rank mapped into [0, 1]"""
    if row.get("similarity") is not None:
        return max(0.0, min(float(row["similarity"]), 1.0))
    rank = float(row.get("rank") or 0.0)
    if rank <= 0:
        return 0.0
    return rank / (1.0 + rank)


def matched_video_topics(video: Video, query_text: str, topics: Sequence[str]) -> List[str]:
    words = query_words(query_text) + [t.lower() for t in topics]
    return [
        topic for topic in video.topics
        if any(w in topic.lower() or topic.lower() in w for w in words)
    ]


def _video_from_row(row: Mapping[str, Any]) -> Video:
    return Video.from_record({
        "id": row.get("video_id") or row.get("id"),
        "external_id": row.get("external_id") or row.get("youtube_id"),
        "title": row.get("title"),
        "description": row.get("description"),
        "duration_seconds": row.get("duration_seconds"),
        "view_count": row.get("view_count"),
        "published_at": row.get("published_at"),
        "topics": row.get("topics") or [],
    })


def group_segment_rows(
    rows: Sequence[Mapping[str, Any]],
    query_text: str,
    topics: Sequence[str],
) -> List[ScoredResult]:
    """Collapse segment rows into one result per video, in first-seen order"""
    grouped: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()

    for row in rows:
        video_id = row.get("video_id") or row.get("id")
        if video_id is None:
            logger.warning("[Repository] Dropping segment row without video id")
            continue
        video_id = str(video_id)

        entry = grouped.get(video_id)
        if entry is None:
            try:
                video = _video_from_row(row)
            except (ValueError, TypeError) as e:
                logger.warning(f"[Repository] Dropping unreadable row for {video_id}: {e}")
                continue
            entry = {"video": video, "score": 0.0, "segments": []}
            grouped[video_id] = entry

        entry["score"] = max(entry["score"], normalize_rank(row))
        try:
            entry["segments"].append(Segment.from_record(row))
        except (ValueError, TypeError) as e:
            logger.debug(f"[Repository] Skipping segment for {video_id}: {e}")

    results = []
    for entry in grouped.values():
        video = entry["video"]
        segments = sorted(entry["segments"], key=lambda s: s.start_time)
        video = Video(
            id=video.id,
            external_id=video.external_id,
            title=video.title,
            description=video.description,
            duration_seconds=video.duration_seconds,
            view_count=video.view_count,
            published_at=video.published_at,
            topics=video.topics,
            segments=tuple(segments),
        )
        results.append(ScoredResult(
            video=video,
            relevance_score=entry["score"],
            matched_topics=matched_video_topics(video, query_text, topics),
            snippet=build_snippet(video, query_text),
            timestamps=[segment_timestamp(s) for s in segments],
        ))
    return results


class SupabaseSegmentRepository(SegmentRepository):
    """
    Supabase/Postgres content store.

    The supabase-py client is synchronous; every call runs in a worker
    thread under `timeout_seconds`.
    """

    source_name = "primary"

    def __init__(
        self,
        client: Any = None,
        client_factory: Optional[Callable[[], Any]] = None,
        search_rpc: str = "search_transcript_segments",
        match_rpc: Optional[str] = "match_transcript_segments",
        embedder: Optional[Embedder] = None,
        timeout_seconds: float = 5.0,
        videos_table: str = "videos",
        segments_table: str = "transcript_segments",
    ):
        self._client = client
        self._client_factory = client_factory
        self.search_rpc = search_rpc
        self.match_rpc = match_rpc
        self.embedder = embedder
        self.timeout_seconds = timeout_seconds
        self.videos_table = videos_table
        self.segments_table = segments_table

    @property
    def configured(self) -> bool:
        return self._client is not None or self._client_factory is not None

    @property
    def similarity_enabled(self) -> bool:
        return bool(self.embedder and self.match_rpc)

    def _get_client(self) -> Any:
        if self._client is None:
            if self._client_factory is None:
                raise RepositoryUnavailable("content store not configured")
            try:
                self._client = self._client_factory()
            except Exception as e:
                logger.error(f"[Repository] Could not create Supabase client: {e}")
                raise RepositoryUnavailable(f"content store client failed: {e}") from e
        return self._client

    async def _execute(self, build: Callable[[Any], Any], what: str) -> Any:
        """Run build(client).execute() off the event loop, under the timeout"""
        client = self._get_client()
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(lambda: build(client).execute()),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"[Repository] {what} timed out after {self.timeout_seconds}s")
            raise RepositoryUnavailable(f"{what} timed out") from e
        except Exception as e:
            logger.error(f"[Repository] {what} failed: {e}")
            raise RepositoryUnavailable(f"{what} failed: {e}") from e

    async def _rows_by_similarity(
        self, query_text: str, topics: Sequence[str], opts: SearchOptions
    ) -> Optional[List[Dict[str, Any]]]:
        try:
            embedding = await self.embedder(query_text)
        except Exception as e:
            logger.warning(f"[Repository] Embedding failed, using full-text ranking: {e}")
            return None

        response = await self._execute(
            lambda c: c.rpc(self.match_rpc, {
                "query_embedding": embedding,
                "topics": list(topics),
                "match_count": opts.limit * ROWS_PER_RESULT,
                "match_threshold": opts.min_relevance_score,
            }),
            "similarity search",
        )
        return response.data or []

    async def search(
        self,
        query_text: str,
        topics: Sequence[str],
        opts: SearchOptions,
    ) -> List[ScoredResult]:
        rows = None
        if self.similarity_enabled:
            rows = await self._rows_by_similarity(query_text, topics, opts)

        if rows is None:
            response = await self._execute(
                lambda c: c.rpc(self.search_rpc, {
                    "query_text": query_text,
                    "topics": list(topics),
                    "match_count": opts.limit * ROWS_PER_RESULT,
                    "min_rank": 0.0,
                }),
                "full-text search",
            )
            rows = response.data or []

        results = group_segment_rows(rows, query_text, topics)
        logger.info(f"[Repository] {len(rows)} segment rows -> {len(results)} videos")
        return results

    async def list_videos(
        self,
        search: Optional[str] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> VideoPage:
        def build(c):
            q = c.table(self.videos_table).select(VIDEO_COLUMNS, count="exact")
            if search:
                term = search.replace(",", " ").strip()
                q = q.or_(f"title.ilike.%{term}%,description.ilike.%{term}%")
            return q.order("published_at", desc=True).range(offset, offset + limit - 1)

        response = await self._execute(build, "video listing")

        videos = []
        for row in response.data or []:
            try:
                videos.append(Video.from_record(row))
            except (ValueError, TypeError) as e:
                logger.warning(f"[Repository] Skipping unreadable video row: {e}")

        total = response.count if response.count is not None else offset + len(videos)
        return VideoPage(videos=videos, total=total, offset=offset, limit=limit)

    async def get_video(self, video_id: str) -> Optional[Video]:
        response = await self._execute(
            lambda c: c.table(self.videos_table).select(VIDEO_COLUMNS).eq("id", video_id).limit(1),
            "video lookup",
        )
        if not response.data:
            return None

        segments = await self._execute(
            lambda c: c.table(self.segments_table)
                .select("start_time, end_time, text, label")
                .eq("video_id", video_id)
                .order("start_time"),
            "segment lookup",
        )
        return Video.from_record({**response.data[0], "segments": segments.data or []})

    async def describe(self) -> Dict[str, Any]:
        return {
            "source": self.source_name,
            "configured": self.configured,
            "ranking": "similarity" if self.similarity_enabled else "full_text",
        }
