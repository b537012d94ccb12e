"""
Tests for the query pipeline
"""
from unittest.mock import MagicMock

import pytest

from health_search.exceptions import (
    InternalError,
    NotFoundError,
    RateLimitExceeded,
    ValidationError,
)
from health_search.models.results import ScoredResult
from health_search.services.budget_guard import BudgetGuard
from health_search.services.pipeline import PipelineConfig
from health_search.services.throttle import RateLimitQuota
from health_search.services.topic_extraction import TopicExtractor

from conftest import GENEROUS_QUOTAS, StubRepository


def _result(video, score, timestamps=None):
    return ScoredResult(video=video, relevance_score=score, timestamps=timestamps or [])


# =============================================================================
# Validation
# =============================================================================

@pytest.mark.asyncio
@pytest.mark.parametrize("query", ["a", "  b  ", "", "x" * 1001, None, 123, ["sleep"]])
async def test_invalid_queries_are_rejected(make_pipeline, query):
    pipeline = make_pipeline()

    with pytest.raises(ValidationError):
        await pipeline.run(query, "ip:a")

    assert await pipeline.throttle.get_stats("ip:a", "query") is None


@pytest.mark.asyncio
async def test_query_at_length_bounds_is_accepted(make_pipeline):
    pipeline = make_pipeline()

    short = await pipeline.run(" ok ", "ip:a")
    long = await pipeline.run("s" * 1000, "ip:a")

    assert short.query == "ok"
    assert len(long.query) == 1000


@pytest.mark.asyncio
async def test_invalid_options_are_rejected(make_pipeline):
    pipeline = make_pipeline()

    with pytest.raises(ValidationError):
        await pipeline.run("sleep", "ip:a", limit=0)
    with pytest.raises(ValidationError):
        await pipeline.run("sleep", "ip:a", min_relevance_score=1.5)


def test_limit_is_clamped_to_hard_cap(make_pipeline):
    opts = make_pipeline().resolve_options(limit=100)

    assert opts.limit == 20
    assert opts.min_relevance_score == 0.1


def test_default_limit(make_pipeline):
    assert make_pipeline().resolve_options().limit == 5


# =============================================================================
# Search strategy
# =============================================================================

@pytest.mark.asyncio
async def test_sleep_query_without_any_external_service(make_pipeline):
    pipeline = make_pipeline()

    outcome = await pipeline.run("How can I improve my sleep?", "ip:a")

    assert outcome.search_source == "fallback"
    assert outcome.degraded is True
    assert outcome.cost == 0.0
    assert outcome.results[0].video.id == "video_123"
    assert outcome.results[0].relevance_score >= 0.35
    assert outcome.results[0].timestamps
    assert len(outcome.results) <= 5


@pytest.mark.asyncio
async def test_unavailable_primary_uses_fallback(make_pipeline, unavailable_primary):
    pipeline = make_pipeline(primary=unavailable_primary)

    outcome = await pipeline.run("gut health", "ip:a")

    assert unavailable_primary.calls == 1
    assert outcome.search_source == "fallback"
    assert outcome.degraded is True
    assert outcome.results


@pytest.mark.asyncio
async def test_primary_results_are_used(make_pipeline, library):
    primary = StubRepository(results=[_result(library[0], 0.9)])
    pipeline = make_pipeline(primary=primary)

    outcome = await pipeline.run("sleep", "ip:a")

    assert outcome.search_source == "primary"
    assert [r.video.id for r in outcome.results] == [library[0].id]
    # missing timestamps are filled from the video's opening segments
    assert len(outcome.results[0].timestamps) == len(library[0].segments[:3])


@pytest.mark.asyncio
async def test_empty_primary_consults_fallback(make_pipeline):
    pipeline = make_pipeline(primary=StubRepository(results=[]))

    outcome = await pipeline.run("sleep", "ip:a")

    assert outcome.search_source == "fallback"
    assert outcome.results


@pytest.mark.asyncio
async def test_primary_below_threshold_consults_fallback(make_pipeline, library):
    primary = StubRepository(results=[_result(library[0], 0.05)])
    pipeline = make_pipeline(primary=primary)

    outcome = await pipeline.run("How can I improve my sleep?", "ip:a")

    assert primary.calls == 1
    assert outcome.search_source == "fallback"
    assert outcome.results
    assert all(r.relevance_score >= 0.1 for r in outcome.results)


@pytest.mark.asyncio
async def test_empty_primary_kept_when_fallback_on_empty_disabled(make_pipeline):
    pipeline = make_pipeline(
        primary=StubRepository(results=[]),
        config=PipelineConfig(fallback_on_empty_primary=False),
    )

    outcome = await pipeline.run("sleep", "ip:a")

    assert outcome.search_source == "primary"
    assert outcome.results == []
    assert outcome.total_results == 0


@pytest.mark.asyncio
async def test_results_sorted_stably_and_filtered(make_pipeline, library):
    a, b, c, d = library[:4]
    primary = StubRepository(results=[
        _result(a, 0.5),
        _result(b, 0.9),
        _result(c, 0.5),
        _result(d, 0.05),
    ])
    pipeline = make_pipeline(primary=primary)

    outcome = await pipeline.run("sleep", "ip:a")

    assert [r.video.id for r in outcome.results] == [b.id, a.id, c.id]
    assert outcome.total_results == 3


@pytest.mark.asyncio
async def test_results_truncated_to_limit(make_pipeline, library):
    primary = StubRepository(results=[_result(v, 0.5) for v in library])
    pipeline = make_pipeline(primary=primary)

    outcome = await pipeline.run("sleep", "ip:a", limit=2)

    assert len(outcome.results) == 2
    assert outcome.total_results == len(library)


@pytest.mark.asyncio
async def test_unexpected_error_becomes_internal_error(make_pipeline):
    pipeline = make_pipeline(primary=StubRepository(error=RuntimeError("bug")))

    with pytest.raises(InternalError):
        await pipeline.run("sleep", "ip:a")


# =============================================================================
# Governance
# =============================================================================

@pytest.mark.asyncio
async def test_rate_limit_rejects_with_wait_time(make_pipeline):
    quotas = dict(GENEROUS_QUOTAS, query=RateLimitQuota(points=1, duration=900, block_duration=300))
    pipeline = make_pipeline(quotas=quotas)

    await pipeline.run("sleep", "ip:a")
    with pytest.raises(RateLimitExceeded) as exc_info:
        await pipeline.run("sleep", "ip:a")

    assert exc_info.value.retry_after_seconds > 0
    assert exc_info.value.limit == 1


@pytest.mark.asyncio
async def test_budget_at_ceiling_completes_degraded(make_pipeline, mock_upstream, upstream_calls):
    extractor = TopicExtractor(
        budget=BudgetGuard(ceiling=0.0),
        api_key="test-key",
        client=mock_upstream.client,
    )
    pipeline = make_pipeline(extractor=extractor)

    outcome = await pipeline.run("How can I improve my sleep?", "ip:a")

    assert upstream_calls == []
    assert outcome.processed_query.degraded is True
    assert outcome.cost == 0.0
    assert outcome.results


@pytest.mark.asyncio
async def test_ai_topics_flow_into_outcome(make_pipeline, mock_upstream):
    extractor = TopicExtractor(
        budget=BudgetGuard(ceiling=2.0),
        api_key="test-key",
        client=mock_upstream.client,
    )
    pipeline = make_pipeline(extractor=extractor)

    outcome = await pipeline.run("sleep better", "ip:a")

    assert outcome.processed_query.degraded is False
    assert outcome.processed_query.health_topics == ("sleep",)
    assert outcome.cost > 0


@pytest.mark.asyncio
async def test_metrics_record_scheduled_per_request(make_pipeline):
    metrics = MagicMock()
    pipeline = make_pipeline(metrics=metrics)

    await pipeline.run("sleep", "ip:a")
    with pytest.raises(ValidationError):
        await pipeline.run("s", "ip:a")

    outcomes = [call.args[0].outcome for call in metrics.schedule.call_args_list]
    assert outcomes == ["success", "validation_error"]


# =============================================================================
# Browsing
# =============================================================================

@pytest.mark.asyncio
async def test_browse_uses_fallback_when_primary_down(make_pipeline, unavailable_primary):
    pipeline = make_pipeline(primary=unavailable_primary)

    outcome = await pipeline.browse_videos("ip:a", page=2, limit=3)

    assert outcome.source == "fallback"
    assert outcome.page.offset == 3
    assert len(outcome.page.videos) == 3
    assert outcome.page.total == 7


@pytest.mark.asyncio
async def test_get_video_from_primary(make_pipeline, library):
    pipeline = make_pipeline(primary=StubRepository(videos=[library[2]]))

    lookup = await pipeline.get_video("ip:a", library[2].id)

    assert lookup.source == "primary"
    assert lookup.video.id == library[2].id


@pytest.mark.asyncio
async def test_get_missing_video_is_not_found(make_pipeline):
    pipeline = make_pipeline()

    with pytest.raises(NotFoundError):
        await pipeline.get_video("ip:a", "nope")


@pytest.mark.asyncio
async def test_status_reports_components(make_pipeline):
    status = await make_pipeline().status()

    assert status["primary"]["configured"] is False
    assert status["fallback"]["videos"] == 7
    assert status["topicExtractor"]["enabled"] is False
    assert status["topicExtractor"]["usage"]["remainingBudget"] == 2.0
