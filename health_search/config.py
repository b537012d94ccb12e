"""
Health Search Engine Configuration
"""
from pydantic_settings import BaseSettings
from typing import Dict, Optional

from health_search.services.relevance import ScoringWeights
from health_search.services.throttle import RateLimitQuota


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Supabase (primary content store)
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    segment_search_rpc: str = "search_transcript_segments"
    segment_match_rpc: str = "match_transcript_segments"
    repository_timeout_seconds: float = 5.0

    # OpenAI embeddings (enables similarity ranking in the store)
    openai_api_key: str = ""
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536

    # Topic extraction (OpenAI-compatible chat completions)
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    topic_model: str = "openai/gpt-3.5-turbo"
    topic_extractor_timeout_seconds: float = 8.0
    prompt_cost_per_1k_tokens: float = 0.0015
    completion_cost_per_1k_tokens: float = 0.002

    # AI budget
    ai_budget_ceiling_usd: float = 2.0
    ai_budget_window_seconds: Optional[int] = None

    # Rate limits (points per duration, block once exhausted)
    rate_limit_query_points: int = 20
    rate_limit_query_duration: int = 900
    rate_limit_query_block: int = 300
    rate_limit_videos_points: int = 100
    rate_limit_videos_duration: int = 900
    rate_limit_videos_block: int = 60
    rate_limit_default_points: int = 100
    rate_limit_default_duration: int = 900
    rate_limit_default_block: int = 60

    # Search
    min_query_length: int = 2
    max_query_length: int = 1000
    default_result_limit: int = 5
    max_result_limit: int = 20
    default_min_relevance_score: float = 0.1
    fallback_on_empty_primary: bool = True
    fallback_library_path: str = ""

    # Scoring weights (empirical, pending recalibration)
    score_base: float = 0.10
    score_topic: float = 0.25
    score_ai_topic: float = 0.30
    score_title: float = 0.15
    score_description: float = 0.10
    score_segment: float = 0.20
    score_title_phrase: float = 0.20
    score_description_phrase: float = 0.15
    score_signal_cap: float = 1.0

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    log_level: str = "info"
    cors_origin: str = "*"

    # Security (client identity only, no authorization)
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"

    # Observability
    otel_exporter_otlp_endpoint: Optional[str] = None
    otel_service_name: str = "health-search"

    class Config:
        env_file = ".env"
        case_sensitive = False

    def rate_limit_quotas(self) -> Dict[str, RateLimitQuota]:
        """Quota per endpoint category"""
        return {
            "query": RateLimitQuota(
                points=self.rate_limit_query_points,
                duration=self.rate_limit_query_duration,
                block_duration=self.rate_limit_query_block,
            ),
            "videos": RateLimitQuota(
                points=self.rate_limit_videos_points,
                duration=self.rate_limit_videos_duration,
                block_duration=self.rate_limit_videos_block,
            ),
            "default": RateLimitQuota(
                points=self.rate_limit_default_points,
                duration=self.rate_limit_default_duration,
                block_duration=self.rate_limit_default_block,
            ),
        }

    def scoring_weights(self) -> ScoringWeights:
        return ScoringWeights(
            base=self.score_base,
            topic=self.score_topic,
            ai_topic=self.score_ai_topic,
            title=self.score_title,
            description=self.score_description,
            segment=self.score_segment,
            title_phrase=self.score_title_phrase,
            description_phrase=self.score_description_phrase,
            signal_cap=self.score_signal_cap,
        )

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_role_key)

    @property
    def embeddings_enabled(self) -> bool:
        return bool(self.openai_api_key and self.segment_match_rpc)


# Global settings instance
settings = Settings()
