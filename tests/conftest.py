"""
PyTest Configuration and Fixtures for the Health Search Engine

Provides:
- The bundled fallback library
- A controllable clock for throttle and budget-window tests
- A stub primary repository
- A pipeline factory wired like the app, minus external services
"""
from typing import List, Optional, Sequence
from unittest.mock import MagicMock

import httpx
import pytest

from health_search.exceptions import RepositoryUnavailable
from health_search.models.results import ScoredResult, SearchOptions, VideoPage
from health_search.models.video import Video
from health_search.services.budget_guard import BudgetGuard
from health_search.services.fallback_search import InMemoryVideoRepository, load_library
from health_search.services.pipeline import PipelineConfig, QueryPipeline
from health_search.services.repository import SegmentRepository
from health_search.services.throttle import RateLimitQuota, RequestThrottle
from health_search.services.topic_extraction import TopicExtractor


GENEROUS_QUOTAS = {
    "query": RateLimitQuota(points=1000, duration=900, block_duration=300),
    "videos": RateLimitQuota(points=1000, duration=900, block_duration=60),
    "default": RateLimitQuota(points=1000, duration=900, block_duration=60),
}


class FakeClock:
    """Callable clock that only moves when told to"""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubRepository(SegmentRepository):
    """Primary repository returning canned results, or failing on demand"""

    source_name = "primary"

    def __init__(
        self,
        results: Optional[Sequence[ScoredResult]] = None,
        error: Optional[Exception] = None,
        videos: Optional[List[Video]] = None,
    ):
        self.results = list(results or [])
        self.error = error
        self.videos = list(videos or [])
        self.calls = 0

    async def search(self, query_text, topics, opts: SearchOptions):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.results)

    async def list_videos(self, search=None, offset=0, limit=20):
        if self.error is not None:
            raise self.error
        return VideoPage(
            videos=self.videos[offset:offset + limit],
            total=len(self.videos),
            offset=offset,
            limit=limit,
        )

    async def get_video(self, video_id):
        if self.error is not None:
            raise self.error
        return next((v for v in self.videos if v.id == video_id), None)


def completion_body(content: str, usage: Optional[dict] = None) -> dict:
    return {
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": usage if usage is not None else {"prompt_tokens": 100, "completion_tokens": 50},
    }


@pytest.fixture
def library() -> List[Video]:
    return load_library()


@pytest.fixture
def fallback(library) -> InMemoryVideoRepository:
    return InMemoryVideoRepository(library)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def unavailable_primary() -> StubRepository:
    return StubRepository(error=RepositoryUnavailable("connection refused"))


@pytest.fixture
def make_pipeline(fallback):
    """
    Build a QueryPipeline with test doubles

    The extractor has no API key (heuristic only) unless `extractor` is given.
    """

    def _make(
        primary: Optional[SegmentRepository] = None,
        extractor: Optional[TopicExtractor] = None,
        quotas: Optional[dict] = None,
        config: PipelineConfig = PipelineConfig(),
        metrics=None,
    ) -> QueryPipeline:
        return QueryPipeline(
            throttle=RequestThrottle(quotas or GENEROUS_QUOTAS),
            extractor=extractor or TopicExtractor(budget=BudgetGuard(ceiling=2.0)),
            fallback=fallback,
            primary=primary,
            config=config,
            metrics=metrics or MagicMock(),
        )

    return _make


@pytest.fixture
def upstream_calls():
    """Requests seen by the mock chat-completions endpoint"""
    return []


@pytest.fixture
def mock_upstream(upstream_calls):
    """
    httpx client whose transport answers with a configurable response

    Set `mock_upstream.responder` to a callable(request) -> httpx.Response.
    """

    class _Upstream:
        responder = staticmethod(
            lambda request: httpx.Response(200, json=completion_body(
                '{"healthTopics": ["sleep"], "intent": "information_seeking", "confidence": 0.9}'
            ))
        )

    def handler(request: httpx.Request) -> httpx.Response:
        upstream_calls.append(request)
        return _Upstream.responder(request)

    _Upstream.client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return _Upstream
