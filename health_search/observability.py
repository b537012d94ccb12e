"""
Health Search - Observability Module

OTEL tracing and metrics.
Without an OTLP endpoint the OpenTelemetry API's default no-op providers
stay in place, so instruments and spans cost nothing.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

logger = logging.getLogger(__name__)

INSTRUMENTATION_NAME = "health_search"

_initialized = False


def init_otel(service_name: str = "health-search", endpoint: Optional[str] = None) -> bool:
    """
    Initialize OpenTelemetry tracing and metrics export.

    Returns:
        True if the SDK providers were installed
    """
    global _initialized

    if _initialized:
        return True

    if not endpoint:
        logger.info("[OTEL] OTEL_EXPORTER_OTLP_ENDPOINT not set, telemetry export disabled")
        return False

    base = endpoint.rstrip("/")
    resource = Resource.create({"service.name": service_name})

    tracer_provider = TracerProvider(resource=resource)
    tracer_provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=f"{base}/v1/traces"))
    )
    trace.set_tracer_provider(tracer_provider)

    reader = PeriodicExportingMetricReader(OTLPMetricExporter(endpoint=f"{base}/v1/metrics"))
    metrics.set_meter_provider(MeterProvider(resource=resource, metric_readers=[reader]))

    _initialized = True
    logger.info(f"[OTEL] Tracing and metrics initialized, exporting to {base}")
    return True


def get_tracer(name: str = INSTRUMENTATION_NAME):
    return trace.get_tracer(name)


@dataclass(frozen=True)
class QueryMetricsRecord:
    """One record per terminal query request"""
    outcome: str  # success | validation_error | rate_limited | error
    processing_time_ms: int
    result_count: int = 0
    degraded: bool = False
    cost: float = 0.0
    source: Optional[str] = None
    ai_status: Optional[str] = None  # success | degraded, None when not reached


class MetricsRecorder:
    """
    Owns the query instruments.

    schedule() defers emission to the next loop iteration so nothing on the
    response path waits on (or fails because of) metrics.
    """

    def __init__(self, meter=None):
        meter = meter or metrics.get_meter(INSTRUMENTATION_NAME)
        self.queries = meter.create_counter(
            "health_search.queries",
            description="Query requests by outcome",
        )
        self.duration = meter.create_histogram(
            "health_search.query.duration",
            unit="ms",
            description="Query processing time",
        )
        self.results = meter.create_histogram(
            "health_search.query.results",
            description="Results returned per query",
        )
        self.ai_calls = meter.create_counter(
            "health_search.ai.calls",
            description="Topic extraction calls by status",
        )
        self.ai_cost = meter.create_counter(
            "health_search.ai.cost",
            unit="USD",
            description="Topic extraction spend",
        )

    def record(self, record: QueryMetricsRecord) -> None:
        attributes = {
            "outcome": record.outcome,
            "degraded": record.degraded,
            "source": record.source or "none",
        }
        self.queries.add(1, attributes)
        self.duration.record(record.processing_time_ms, attributes)
        if record.outcome == "success":
            self.results.record(record.result_count, {"source": record.source or "none"})

        if record.ai_status:
            self.ai_calls.add(1, {"status": record.ai_status})
            if record.cost > 0:
                self.ai_cost.add(record.cost)

    def _record_safely(self, record: QueryMetricsRecord) -> None:
        try:
            self.record(record)
        except Exception as e:
            logger.warning(f"[Metrics] Failed to record query metrics: {e}", exc_info=True)

    def schedule(self, record: QueryMetricsRecord) -> None:
        """Fire-and-forget emission"""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._record_safely(record)
            return
        loop.call_soon(self._record_safely, record)


__all__ = ["init_otel", "get_tracer", "MetricsRecorder", "QueryMetricsRecord"]
