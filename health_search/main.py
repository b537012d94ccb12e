"""
Health Search Engine
Main FastAPI application
"""
from datetime import datetime, timezone
from functools import partial
from typing import Optional
import logging
import sys

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from health_search import __version__
from health_search.config import Settings, settings as default_settings
from health_search.exceptions import HealthSearchError, InternalError, RateLimitExceeded
from health_search.observability import MetricsRecorder, init_otel
from health_search.router import query_router, videos_router
from health_search.services.budget_guard import BudgetGuard
from health_search.services.fallback_search import InMemoryVideoRepository, load_library
from health_search.services.pipeline import PipelineConfig, QueryPipeline
from health_search.services.repository import SupabaseSegmentRepository
from health_search.services.throttle import RequestThrottle
from health_search.services.topic_extraction import TopicExtractor
from health_search.utils.embeddings import get_embedding
from health_search.utils.supabase_client import get_supabase_client

# Configure logging
logging.basicConfig(
    level=getattr(logging, default_settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

logger = logging.getLogger(__name__)

SERVICE_NAME = "Health Search Engine"


def build_pipeline(settings: Settings) -> QueryPipeline:
    """Wire the pipeline and its collaborators from settings"""
    weights = settings.scoring_weights()
    fallback = InMemoryVideoRepository(
        load_library(settings.fallback_library_path or None),
        weights=weights,
    )

    primary = None
    if settings.supabase_configured:
        embedder = None
        if settings.embeddings_enabled:
            embedder = partial(
                get_embedding,
                api_key=settings.openai_api_key,
                model=settings.embedding_model,
                dimensions=settings.embedding_dimensions,
            )
        primary = SupabaseSegmentRepository(
            client_factory=lambda: get_supabase_client(
                settings.supabase_url, settings.supabase_service_role_key
            ),
            search_rpc=settings.segment_search_rpc,
            match_rpc=settings.segment_match_rpc or None,
            embedder=embedder,
            timeout_seconds=settings.repository_timeout_seconds,
        )
    else:
        logger.warning("Supabase not configured, serving from the fallback library only")

    extractor = TopicExtractor(
        budget=BudgetGuard(settings.ai_budget_ceiling_usd, settings.ai_budget_window_seconds),
        api_key=settings.openrouter_api_key,
        model=settings.topic_model,
        base_url=settings.openrouter_base_url,
        timeout_seconds=settings.topic_extractor_timeout_seconds,
        prompt_cost_per_1k=settings.prompt_cost_per_1k_tokens,
        completion_cost_per_1k=settings.completion_cost_per_1k_tokens,
    )

    return QueryPipeline(
        throttle=RequestThrottle(settings.rate_limit_quotas()),
        extractor=extractor,
        fallback=fallback,
        primary=primary,
        config=PipelineConfig(
            min_query_length=settings.min_query_length,
            max_query_length=settings.max_query_length,
            default_limit=settings.default_result_limit,
            max_limit=settings.max_result_limit,
            default_min_relevance_score=settings.default_min_relevance_score,
            fallback_on_empty_primary=settings.fallback_on_empty_primary,
        ),
        metrics=MetricsRecorder(),
    )


def error_response(code: str, message: str, status_code: int, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": {"code": code, "message": message}},
        headers=headers,
    )


def create_app(settings: Optional[Settings] = None, pipeline: Optional[QueryPipeline] = None) -> FastAPI:
    """
    Application factory

    Components (throttle, budget guard, repositories) belong to the app
    instance and live on app.state.
    """
    settings = settings or default_settings

    init_otel(settings.otel_service_name, settings.otel_exporter_otlp_endpoint)

    app = FastAPI(
        title=SERVICE_NAME,
        description="Answers health questions with ranked, timestamped video segments",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.settings = settings
    app.state.pipeline = pipeline or build_pipeline(settings)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.cors_origin.split(",") if o.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(query_router)
    app.include_router(videos_router)

    @app.get("/")
    async def root():
        """Service banner"""
        return {
            "success": True,
            "service": SERVICE_NAME,
            "version": __version__,
            "status": "running",
            "endpoints": {
                "health": "GET /api/health",
                "query": "POST /api/query",
                "videos": "GET /api/videos",
                "video": "GET /api/videos/{video_id}",
            },
        }

    @app.get("/api/health")
    async def health_check(request: Request):
        """Health check endpoint"""
        status = await request.app.state.pipeline.status()
        return {
            "success": True,
            "data": {
                "status": "healthy",
                "service": "health-search",
                "version": __version__,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                **status,
            },
        }

    @app.on_event("startup")
    async def startup_event():
        """Startup event handler"""
        logger.info(f"{SERVICE_NAME} starting up...")
        logger.info(f"Environment: {'DEBUG' if settings.debug else 'PRODUCTION'}")
        logger.info(f"Primary store: {'supabase' if settings.supabase_configured else 'none'}")
        logger.info(f"AI topic extraction: {'enabled' if settings.openrouter_api_key else 'disabled'}")
        logger.info("Startup complete!")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Shutdown event handler"""
        logger.info(f"{SERVICE_NAME} shutting down...")
        await app.state.pipeline.extractor.aclose()

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        headers = {
            "X-RateLimit-Limit": str(exc.limit),
            "X-RateLimit-Remaining": "0",
            "Retry-After": str(exc.retry_after_seconds),
        }
        if exc.reset_at is not None:
            headers["X-RateLimit-Reset"] = exc.reset_at.isoformat()
        logger.warning(f"Rate limited {request.url.path}: retry in {exc.retry_after_seconds}s")
        return error_response(exc.code, exc.message, exc.status_code, headers)

    @app.exception_handler(HealthSearchError)
    async def service_error_handler(request: Request, exc: HealthSearchError):
        if isinstance(exc, InternalError):
            cause = exc.__cause__
            message = str(cause) if settings.debug and cause else exc.message
            return error_response(exc.code, message, exc.status_code)
        return error_response(exc.code, exc.message, exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            first = errors[0]
            field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
            message = f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid request")
        else:
            message = "Invalid request"
        return error_response("VALIDATION_ERROR", message, 400)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        code = "NOT_FOUND" if exc.status_code == 404 else f"HTTP_{exc.status_code}"
        return error_response(code, str(exc.detail), exc.status_code)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler"""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return error_response(
            "INTERNAL_ERROR",
            str(exc) if settings.debug else "Internal server error",
            500,
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "health_search.main:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.debug,
        log_level=default_settings.log_level
    )
