"""Spans and latency metrics wrapped around core operations."""
import logging
import time
from contextlib import contextmanager
from typing import Iterator, Optional

from opentelemetry import trace
from opentelemetry.trace import Span, Status, StatusCode
from prometheus_client import Counter, Histogram

from .errors import VotingError

logger = logging.getLogger(__name__)

# Prometheus metrics
operation_duration = Histogram(
    "voting_core_operation_duration_seconds",
    "Time spent in vote core operations",
    ["operation", "status"],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0]
)
request_duration = Histogram(
    "voting_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "status"]
)
topics_created = Counter(
    "topics_created_total",
    "Total number of topics registered"
)
votes_recorded = Counter(
    "votes_recorded_total",
    "Total number of ballots appended",
    ["choice"]
)
voting_errors = Counter(
    "voting_errors_total",
    "Total number of failed core operations",
    ["error_type"]
)


class Instrumentation:
    """
    Start/end hooks around each core operation.

    The default implementation opens an OpenTelemetry span (a no-op until an
    SDK is configured by the host process) and observes the operation
    histogram. Subclasses override ``on_start``/``on_end`` to sink elsewhere.
    """

    def __init__(self, tracer: Optional[trace.Tracer] = None):
        self.tracer = tracer or trace.get_tracer("voting_api")

    def on_start(self, operation: str) -> None:
        """Called before the operation touches the store."""

    def on_end(self, operation: str, status: str, duration: float) -> None:
        """Called once the operation finished, successfully or not."""
        operation_duration.labels(operation=operation, status=status).observe(duration)

    @contextmanager
    def operation(self, name: str, **attributes) -> Iterator[Span]:
        """Wrap one core operation with a span and a duration measurement."""
        self.on_start(name)
        start = time.perf_counter()
        with self.tracer.start_as_current_span(
            name,
            attributes=attributes,
            record_exception=False,
            set_status_on_exception=False,
        ) as span:
            try:
                yield span
            except VotingError as e:
                span.set_status(Status(StatusCode.ERROR, e.message))
                span.set_attribute("error.type", e.error_type)
                voting_errors.labels(error_type=e.error_type).inc()
                self.on_end(name, e.error_type, time.perf_counter() - start)
                raise
            except Exception as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                voting_errors.labels(error_type="internal_error").inc()
                self.on_end(name, "internal_error", time.perf_counter() - start)
                raise
            span.set_status(Status(StatusCode.OK))
            self.on_end(name, "ok", time.perf_counter() - start)
