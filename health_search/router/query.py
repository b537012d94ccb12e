"""
Query API Router
Natural-language health questions in, ranked video segments out
"""
from fastapi import APIRouter, Depends, Response
import logging

from health_search.models.requests import QueryRequest
from health_search.models.responses import ErrorResponse, QueryResponse
from health_search.router.deps import apply_rate_limit_headers, get_client_key, get_pipeline
from health_search.services.pipeline import QueryPipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["query"])


@router.post(
    "/query",
    response_model=QueryResponse,
    responses={
        400: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def query(
    body: QueryRequest,
    response: Response,
    pipeline: QueryPipeline = Depends(get_pipeline),
    client_key: str = Depends(get_client_key),
):
    """
    Answer a health query

    Processes the query through:
    1. Validation
    2. Per-client rate limiting
    3. AI topic extraction (heuristic when unavailable)
    4. Primary search, fallback library when needed
    5. Ranking and timestamp extraction

    Degraded answers are still 200s; `degraded` and `searchSource` say how
    the answer was produced.
    """
    options = body.options
    outcome = await pipeline.run(
        body.query,
        client_key,
        limit=options.limit if options else None,
        min_relevance_score=options.min_relevance_score if options else None,
    )

    apply_rate_limit_headers(response, outcome.admission)
    return QueryResponse.from_outcome(outcome)
