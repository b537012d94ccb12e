"""
Tests for metrics emission
"""
import asyncio
from unittest.mock import MagicMock

import pytest

from health_search.observability import MetricsRecorder, QueryMetricsRecord, init_otel


def _recorder():
    meter = MagicMock()
    meter.create_counter.side_effect = lambda *args, **kwargs: MagicMock()
    meter.create_histogram.side_effect = lambda *args, **kwargs: MagicMock()
    recorder = MetricsRecorder(meter=meter)
    return recorder


def test_success_record_updates_instruments():
    recorder = _recorder()

    recorder.record(QueryMetricsRecord(
        outcome="success",
        processing_time_ms=12,
        result_count=3,
        cost=0.002,
        source="primary",
        ai_status="success",
    ))

    recorder.queries.add.assert_called_once()
    recorder.results.record.assert_called_once_with(3, {"source": "primary"})
    recorder.ai_calls.add.assert_called_once_with(1, {"status": "success"})
    recorder.ai_cost.add.assert_called_once_with(0.002)


def test_rejected_request_skips_result_histogram():
    recorder = _recorder()

    recorder.record(QueryMetricsRecord(outcome="rate_limited", processing_time_ms=1))

    recorder.results.record.assert_not_called()
    recorder.ai_calls.add.assert_not_called()


@pytest.mark.asyncio
async def test_schedule_defers_and_swallows_errors():
    recorder = _recorder()
    recorder.queries.add.side_effect = RuntimeError("exporter down")

    recorder.schedule(QueryMetricsRecord(outcome="success", processing_time_ms=5))
    recorder.queries.add.assert_not_called()

    await asyncio.sleep(0)

    recorder.queries.add.assert_called_once()


def test_init_otel_without_endpoint_is_noop():
    assert init_otel("health-search-test", None) is False
