"""
Response models for the health search API

Bodies are serialized by alias (camelCase) to keep the wire format of the
original service.
"""
from datetime import datetime
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

from health_search.models.results import (
    ProcessedQuery,
    QueryOutcome,
    ScoredResult,
    Timestamp,
    VideoPage,
)
from health_search.models.video import Segment, Video


class _CamelModel(BaseModel):
    class Config:
        populate_by_name = True


class TimestampOut(_CamelModel):
    time: float
    label: str
    description: str

    @classmethod
    def from_timestamp(cls, ts: Timestamp) -> "TimestampOut":
        return cls(time=ts.time, label=ts.label, description=ts.description)


class SegmentOut(_CamelModel):
    start_time: float = Field(..., alias="startTime")
    end_time: float = Field(..., alias="endTime")
    text: str
    label: Optional[str] = None

    @classmethod
    def from_segment(cls, segment: Segment) -> "SegmentOut":
        return cls(
            start_time=segment.start_time,
            end_time=segment.end_time,
            text=segment.text,
            label=segment.label,
        )


class VideoOut(_CamelModel):
    id: str
    external_id: str = Field(..., alias="externalId")
    title: str
    description: str
    duration_seconds: int = Field(..., alias="durationSeconds")
    view_count: int = Field(..., alias="viewCount")
    published_at: Optional[datetime] = Field(None, alias="publishedAt")
    topics: List[str] = Field(default_factory=list)
    segments: Optional[List[SegmentOut]] = None

    @classmethod
    def from_video(cls, video: Video, include_segments: bool = False) -> "VideoOut":
        return cls(
            id=video.id,
            external_id=video.external_id,
            title=video.title,
            description=video.description,
            duration_seconds=video.duration_seconds,
            view_count=video.view_count,
            published_at=video.published_at,
            topics=list(video.topics),
            segments=(
                [SegmentOut.from_segment(s) for s in video.segments]
                if include_segments else None
            ),
        )


class ResultOut(_CamelModel):
    """One ranked video in a query response"""

    id: str
    external_id: str = Field(..., alias="externalId")
    title: str
    description: str
    duration_seconds: int = Field(..., alias="durationSeconds")
    view_count: int = Field(..., alias="viewCount")
    published_at: Optional[datetime] = Field(None, alias="publishedAt")
    relevance_score: float = Field(..., ge=0.0, le=1.0, alias="relevanceScore")
    matched_topics: List[str] = Field(default_factory=list, alias="matchedTopics")
    snippet: str = ""
    timestamps: List[TimestampOut] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: ScoredResult) -> "ResultOut":
        video = result.video
        return cls(
            id=video.id,
            external_id=video.external_id,
            title=video.title,
            description=video.description,
            duration_seconds=video.duration_seconds,
            view_count=video.view_count,
            published_at=video.published_at,
            relevance_score=result.relevance_score,
            matched_topics=list(result.matched_topics),
            snippet=result.snippet,
            timestamps=[TimestampOut.from_timestamp(t) for t in result.timestamps],
        )


class ProcessedQueryOut(_CamelModel):
    health_topics: List[str] = Field(default_factory=list, alias="healthTopics")
    intent: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    cost: float = Field(..., ge=0.0)
    degraded: bool

    @classmethod
    def from_processed(cls, processed: ProcessedQuery) -> "ProcessedQueryOut":
        return cls(
            health_topics=list(processed.health_topics),
            intent=processed.intent.value,
            confidence=processed.confidence,
            cost=processed.cost,
            degraded=processed.degraded,
        )


class QueryData(_CamelModel):
    query: str
    processed_query: ProcessedQueryOut = Field(..., alias="processedQuery")
    results: List[ResultOut]
    total_results: int = Field(..., alias="totalResults")
    processing_time: int = Field(..., alias="processingTime", description="Milliseconds")
    cost: float
    degraded: bool
    search_source: str = Field(..., alias="searchSource")


class QueryResponse(_CamelModel):
    """Success envelope for the query endpoint"""

    success: bool = True
    data: QueryData

    @classmethod
    def from_outcome(cls, outcome: QueryOutcome) -> "QueryResponse":
        return cls(
            data=QueryData(
                query=outcome.query,
                processed_query=ProcessedQueryOut.from_processed(outcome.processed_query),
                results=[ResultOut.from_result(r) for r in outcome.results],
                total_results=outcome.total_results,
                processing_time=outcome.processing_time_ms,
                cost=outcome.cost,
                degraded=outcome.degraded,
                search_source=outcome.search_source,
            )
        )


class Pagination(_CamelModel):
    current_page: int = Field(..., alias="currentPage")
    total_pages: int = Field(..., alias="totalPages")
    total_results: int = Field(..., alias="totalResults")
    has_next: bool = Field(..., alias="hasNext")
    has_previous: bool = Field(..., alias="hasPrevious")


class VideoListData(_CamelModel):
    videos: List[VideoOut]
    pagination: Pagination
    source: str


class VideoListResponse(_CamelModel):
    success: bool = True
    data: VideoListData

    @classmethod
    def from_page(cls, page: VideoPage, page_number: int, source: str) -> "VideoListResponse":
        total_pages = (page.total + page.limit - 1) // page.limit if page.limit else 0
        return cls(
            data=VideoListData(
                videos=[VideoOut.from_video(v) for v in page.videos],
                pagination=Pagination(
                    current_page=page_number,
                    total_pages=total_pages,
                    total_results=page.total,
                    has_next=page.has_next,
                    has_previous=page_number > 1,
                ),
                source=source,
            )
        )


class VideoDetailResponse(_CamelModel):
    success: bool = True
    data: VideoOut


class ErrorBody(BaseModel):
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None


class ErrorResponse(BaseModel):
    """Failure envelope shared by every endpoint"""

    success: bool = False
    error: ErrorBody
