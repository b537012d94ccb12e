"""
Core service modules for the Health Search Engine
"""
from .relevance import ScoringWeights, SynonymRule, score_video, extract_timestamps
from .throttle import RateLimitQuota, RequestThrottle, Allowed, Rejected
from .budget_guard import BudgetGuard, BudgetSnapshot
from .topic_extraction import TopicExtractor, heuristic_processed_query
from .repository import SegmentRepository, SupabaseSegmentRepository
from .fallback_search import InMemoryVideoRepository, load_library
from .pipeline import QueryPipeline, PipelineConfig

__all__ = [
    "ScoringWeights",
    "SynonymRule",
    "score_video",
    "extract_timestamps",
    "RateLimitQuota",
    "RequestThrottle",
    "Allowed",
    "Rejected",
    "BudgetGuard",
    "BudgetSnapshot",
    "TopicExtractor",
    "heuristic_processed_query",
    "SegmentRepository",
    "SupabaseSegmentRepository",
    "InMemoryVideoRepository",
    "load_library",
    "QueryPipeline",
    "PipelineConfig",
]
