"""
Data models for the Health Search Engine
"""
from .video import Video, Segment
from .results import (
    Intent,
    ProcessedQuery,
    Timestamp,
    ScoredResult,
    SearchOptions,
    VideoPage,
    QueryOutcome,
)
from .requests import QueryRequest, QueryOptions
from .responses import (
    QueryResponse,
    VideoListResponse,
    VideoDetailResponse,
    ErrorResponse,
)

__all__ = [
    # Domain
    "Video",
    "Segment",
    "Intent",
    "ProcessedQuery",
    "Timestamp",
    "ScoredResult",
    "SearchOptions",
    "VideoPage",
    "QueryOutcome",
    # Request/Response
    "QueryRequest",
    "QueryOptions",
    "QueryResponse",
    "VideoListResponse",
    "VideoDetailResponse",
    "ErrorResponse",
]
