"""
Query Pipeline
Orchestrates a health query end to end:

1. Validate the query
2. Admit the client against its quota
3. Extract topics/intent (never fails, may be degraded)
4. Search the primary store, falling back to the in-memory library
5. Fill timestamps, filter, rank, truncate

Only ValidationError and RateLimitExceeded leave run() as failures. Budget,
upstream and repository problems end as a degraded success; anything else is
logged and re-raised as InternalError.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple
import logging
import time

from health_search.exceptions import (
    HealthSearchError,
    InternalError,
    NotFoundError,
    RateLimitExceeded,
    RepositoryUnavailable,
    ValidationError,
)
from health_search.models.results import (
    QueryOutcome,
    ScoredResult,
    SearchOptions,
    VideoPage,
)
from health_search.models.video import Video
from health_search.observability import MetricsRecorder, QueryMetricsRecord, get_tracer
from health_search.services.relevance import default_timestamps
from health_search.services.repository import SegmentRepository
from health_search.services.throttle import Admission, Rejected, RequestThrottle
from health_search.services.topic_extraction import TopicExtractor

logger = logging.getLogger(__name__)

SOURCE_PRIMARY = "primary"
SOURCE_FALLBACK = "fallback"

QUERY_CATEGORY = "query"
VIDEOS_CATEGORY = "videos"

MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class PipelineConfig:
    min_query_length: int = 2
    max_query_length: int = 1000
    default_limit: int = 5
    max_limit: int = 20
    default_min_relevance_score: float = 0.1
    fallback_on_empty_primary: bool = True


@dataclass
class BrowseOutcome:
    page: VideoPage
    page_number: int
    source: str
    admission: Optional[Admission] = None


@dataclass
class VideoLookup:
    video: Video
    source: str
    admission: Optional[Admission] = None


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def rank_results(results: Sequence[ScoredResult], min_relevance_score: float) -> List[ScoredResult]:
    """
    Fill missing timestamps, drop low scores, order by score

    sorted() is stable, so ties keep candidate order.
    """
    kept = []
    for result in results:
        if result.relevance_score < min_relevance_score:
            continue
        if not result.timestamps:
            result.timestamps = default_timestamps(result.video)
        kept.append(result)
    return sorted(kept, key=lambda r: r.relevance_score, reverse=True)


class QueryPipeline:
    """
    Per-application orchestrator.

    `primary` may be None when no content store is configured; every search
    then goes straight to `fallback`.
    """

    def __init__(
        self,
        throttle: RequestThrottle,
        extractor: TopicExtractor,
        fallback: SegmentRepository,
        primary: Optional[SegmentRepository] = None,
        config: PipelineConfig = PipelineConfig(),
        metrics: Optional[MetricsRecorder] = None,
    ):
        self.throttle = throttle
        self.extractor = extractor
        self.fallback = fallback
        self.primary = primary
        self.config = config
        self.metrics = metrics or MetricsRecorder()
        self._tracer = get_tracer()

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_query(self, query: Any) -> str:
        """Trimmed query, or ValidationError"""
        if query is None:
            raise ValidationError("Query is required")
        if not isinstance(query, str):
            raise ValidationError("Query must be a string")

        trimmed = query.strip()
        if len(trimmed) < self.config.min_query_length:
            raise ValidationError(
                f"Query must be at least {self.config.min_query_length} characters"
            )
        if len(trimmed) > self.config.max_query_length:
            raise ValidationError(
                f"Query must be at most {self.config.max_query_length} characters"
            )
        return trimmed

    def resolve_options(
        self,
        limit: Optional[int] = None,
        min_relevance_score: Optional[float] = None,
    ) -> SearchOptions:
        if limit is None:
            limit = self.config.default_limit
        if limit < 1:
            raise ValidationError("limit must be at least 1")

        if min_relevance_score is None:
            min_relevance_score = self.config.default_min_relevance_score
        if not 0.0 <= min_relevance_score <= 1.0:
            raise ValidationError("minRelevanceScore must be between 0 and 1")

        return SearchOptions(
            limit=min(limit, self.config.max_limit),
            min_relevance_score=min_relevance_score,
        )

    async def _admit(self, client_key: str, category: str) -> Admission:
        admission = await self.throttle.admit(client_key, category)
        if isinstance(admission, Rejected):
            raise RateLimitExceeded(
                retry_after_seconds=admission.retry_after_seconds,
                limit=admission.limit,
                reset_at=admission.reset_at,
            )
        return admission

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    async def run(
        self,
        query: Any,
        client_key: str,
        limit: Optional[int] = None,
        min_relevance_score: Optional[float] = None,
    ) -> QueryOutcome:
        started = time.perf_counter()

        with self._tracer.start_as_current_span("health_search.query") as span:
            try:
                outcome = await self._run(query, client_key, limit, min_relevance_score, started)
            except ValidationError:
                self._emit(QueryMetricsRecord("validation_error", _elapsed_ms(started)))
                raise
            except RateLimitExceeded:
                self._emit(QueryMetricsRecord("rate_limited", _elapsed_ms(started)))
                raise
            except HealthSearchError as e:
                logger.error(f"[Pipeline] Unabsorbed {e.code}: {e.message}", exc_info=True)
                self._emit(QueryMetricsRecord("error", _elapsed_ms(started)))
                raise InternalError("An error occurred while processing your query") from e
            except Exception as e:
                logger.error(f"[Pipeline] Query processing failed: {e}", exc_info=True)
                self._emit(QueryMetricsRecord("error", _elapsed_ms(started)))
                raise InternalError("An error occurred while processing your query") from e

            span.set_attribute("health_search.source", outcome.search_source)
            span.set_attribute("health_search.degraded", outcome.degraded)
            span.set_attribute("health_search.results", outcome.total_results)

        self._emit(QueryMetricsRecord(
            outcome="success",
            processing_time_ms=outcome.processing_time_ms,
            result_count=len(outcome.results),
            degraded=outcome.degraded,
            cost=outcome.cost,
            source=outcome.search_source,
            ai_status=(
                ("degraded" if outcome.processed_query.degraded else "success")
                if self.extractor.enabled else None
            ),
        ))
        return outcome

    async def _run(
        self,
        query: Any,
        client_key: str,
        limit: Optional[int],
        min_relevance_score: Optional[float],
        started: float,
    ) -> QueryOutcome:
        trimmed = self.validate_query(query)
        opts = self.resolve_options(limit, min_relevance_score)

        admission = await self._admit(client_key, QUERY_CATEGORY)

        processed = await self.extractor.extract_topics(trimmed)

        ranked, source = await self._search(trimmed, processed.health_topics, opts)

        elapsed = _elapsed_ms(started)
        logger.info(
            f"[Pipeline] '{trimmed[:60]}' -> {len(ranked)} results "
            f"(source={source}, degraded={processed.degraded}, {elapsed}ms)"
        )

        return QueryOutcome(
            query=trimmed,
            processed_query=processed,
            results=ranked[:opts.limit],
            total_results=len(ranked),
            processing_time_ms=elapsed,
            cost=processed.cost,
            search_source=source,
            degraded=processed.degraded or source == SOURCE_FALLBACK,
            admission=admission,
        )

    async def _search(
        self,
        query: str,
        topics: Sequence[str],
        opts: SearchOptions,
    ) -> Tuple[List[ScoredResult], str]:
        if self.primary is not None:
            try:
                results = await self.primary.search(query, topics, opts)
                ranked = rank_results(results, opts.min_relevance_score)
                if ranked or not self.config.fallback_on_empty_primary:
                    return ranked, SOURCE_PRIMARY
                logger.info("[Pipeline] No primary result above the relevance threshold, consulting fallback")
            except RepositoryUnavailable as e:
                logger.warning(f"[Pipeline] Primary unavailable, using fallback: {e.message}")
        else:
            logger.debug("[Pipeline] No primary store configured, using fallback")

        results = await self.fallback.search(query, topics, opts)
        return rank_results(results, opts.min_relevance_score), SOURCE_FALLBACK

    def _emit(self, record: QueryMetricsRecord) -> None:
        self.metrics.schedule(record)

    # ------------------------------------------------------------------
    # Video browsing
    # ------------------------------------------------------------------

    async def browse_videos(
        self,
        client_key: str,
        page: int = 1,
        limit: int = 20,
        search: Optional[str] = None,
    ) -> BrowseOutcome:
        if page < 1:
            raise ValidationError("page must be at least 1")
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        search = (search or "").strip() or None

        admission = await self._admit(client_key, VIDEOS_CATEGORY)
        offset = (page - 1) * limit

        if self.primary is not None:
            try:
                video_page = await self.primary.list_videos(search, offset, limit)
                return BrowseOutcome(video_page, page, SOURCE_PRIMARY, admission)
            except RepositoryUnavailable as e:
                logger.warning(f"[Pipeline] Primary unavailable for listing: {e.message}")

        video_page = await self.fallback.list_videos(search, offset, limit)
        return BrowseOutcome(video_page, page, SOURCE_FALLBACK, admission)

    async def get_video(self, client_key: str, video_id: str) -> VideoLookup:
        admission = await self._admit(client_key, VIDEOS_CATEGORY)

        if self.primary is not None:
            try:
                video = await self.primary.get_video(video_id)
                if video is not None:
                    return VideoLookup(video, SOURCE_PRIMARY, admission)
            except RepositoryUnavailable as e:
                logger.warning(f"[Pipeline] Primary unavailable for lookup: {e.message}")

        video = await self.fallback.get_video(video_id)
        if video is None:
            raise NotFoundError(f"Video {video_id} not found")
        return VideoLookup(video, SOURCE_FALLBACK, admission)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def status(self) -> Dict[str, Any]:
        primary = (
            await self.primary.describe() if self.primary is not None
            else {"source": SOURCE_PRIMARY, "configured": False}
        )
        usage = await self.extractor.budget.snapshot()
        return {
            "primary": primary,
            "fallback": await self.fallback.describe(),
            "topicExtractor": {
                "enabled": self.extractor.enabled,
                "model": self.extractor.model,
                "usage": usage.to_dict(),
            },
        }
