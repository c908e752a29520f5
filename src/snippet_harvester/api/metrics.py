"""Prometheus metrics for Snippet Harvester.

All metrics are module-level singletons registered on the default
``REGISTRY``, so the engine and the API can import them freely.

Metrics defined here:

  extraction_results_total{outcome, error_kind}
      Counter: target runs by final outcome.  ``error_kind`` is ``none``
      unless the outcome is ``failed``.

  fetch_attempts_total{mode}
      Counter: fetch attempts issued, by rendering mode.

  scheduler_batches_total{status}
      Counter: finished batches (completed, aborted, stopped).

  scheduler_batch_duration_seconds
      Histogram: wall-clock duration of a batch.

  scheduler_skipped_triggers_total
      Counter: scheduled triggers dropped because a batch was still running.

  http_requests_total{method, path, status}
  http_request_duration_seconds{method, path}
      Populated by the request middleware in ``api/main.py``.

Usage::

    from snippet_harvester.api.metrics import extraction_results_total
    extraction_results_total.labels(outcome="ok", error_kind="none").inc()
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# ---------------------------------------------------------------------------
# Engine metrics
# ---------------------------------------------------------------------------

extraction_results_total: Counter = Counter(
    "extraction_results_total",
    "Target runs by outcome and error classification.",
    labelnames=["outcome", "error_kind"],
)

fetch_attempts_total: Counter = Counter(
    "fetch_attempts_total",
    "Fetch attempts issued by rendering mode.",
    labelnames=["mode"],
)

# ---------------------------------------------------------------------------
# Scheduler metrics
# ---------------------------------------------------------------------------

scheduler_batches_total: Counter = Counter(
    "scheduler_batches_total",
    "Finished scheduler batches by status.",
    labelnames=["status"],
)
"""Labels:
  status: one of completed, aborted, stopped
"""

scheduler_batch_duration_seconds: Histogram = Histogram(
    "scheduler_batch_duration_seconds",
    "Wall-clock duration of a scheduler batch in seconds.",
    buckets=[1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 600.0, 1800.0, 3600.0],
)

scheduler_skipped_triggers_total: Counter = Counter(
    "scheduler_skipped_triggers_total",
    "Scheduled triggers dropped because a batch was already running.",
)

# ---------------------------------------------------------------------------
# HTTP metrics (populated by middleware in main.py)
# ---------------------------------------------------------------------------

http_requests_total: Counter = Counter(
    "http_requests_total",
    "HTTP requests handled by the FastAPI application.",
    labelnames=["method", "path", "status"],
)

http_request_duration_seconds: Histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds.",
    labelnames=["method", "path"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
)


def get_metrics_response() -> tuple[bytes, str]:
    """Return ``(body, content_type)`` for a Prometheus scrape."""
    from prometheus_client import CONTENT_TYPE_LATEST, generate_latest  # noqa: PLC0415

    return generate_latest(), CONTENT_TYPE_LATEST
