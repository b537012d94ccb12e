"""
Videos API Router
Browse the content library
"""
from fastapi import APIRouter, Depends, Query, Response
from typing import Optional
import logging

from health_search.models.responses import (
    ErrorResponse,
    VideoDetailResponse,
    VideoListResponse,
    VideoOut,
)
from health_search.router.deps import apply_rate_limit_headers, get_client_key, get_pipeline
from health_search.services.pipeline import QueryPipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/videos", tags=["videos"])


@router.get(
    "",
    response_model=VideoListResponse,
    responses={400: {"model": ErrorResponse}, 429: {"model": ErrorResponse}},
)
async def list_videos(
    response: Response,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None, max_length=200),
    pipeline: QueryPipeline = Depends(get_pipeline),
    client_key: str = Depends(get_client_key),
):
    """Paginated video listing, optionally filtered by title/description"""
    outcome = await pipeline.browse_videos(client_key, page=page, limit=limit, search=search)
    apply_rate_limit_headers(response, outcome.admission)
    return VideoListResponse.from_page(outcome.page, outcome.page_number, outcome.source)


@router.get(
    "/{video_id}",
    response_model=VideoDetailResponse,
    responses={404: {"model": ErrorResponse}, 429: {"model": ErrorResponse}},
)
async def get_video(
    video_id: str,
    response: Response,
    pipeline: QueryPipeline = Depends(get_pipeline),
    client_key: str = Depends(get_client_key),
):
    """One video with its transcript segments"""
    lookup = await pipeline.get_video(client_key, video_id)
    apply_rate_limit_headers(response, lookup.admission)
    return VideoDetailResponse(data=VideoOut.from_video(lookup.video, include_segments=True))
