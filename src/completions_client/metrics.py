from __future__ import annotations

from prometheus_client import Counter, Histogram

completion_requests_total = Counter(
    "completion_client_requests_total",
    "Logical completion calls, by kind and final outcome",
    labelnames=["kind", "status"],
)

completion_request_attempts_total = Counter(
    "completion_client_request_attempts_total",
    "HTTP attempts made by the retrying executor",
    labelnames=["outcome"],
)

completion_retries_total = Counter(
    "completion_client_retries_total",
    "Retries scheduled after a transient failure",
    labelnames=["reason"],
)

completion_stream_events_total = Counter(
    "completion_client_stream_events_total",
    "Streaming lifecycle events",
    labelnames=["event"],
)

completion_request_latency_seconds = Histogram(
    "completion_client_request_latency_seconds",
    "Time until response headers (streaming) or full body (buffered)",
    buckets=[0.1, 0.3, 0.5, 1, 2, 5, 10, 30, 60, 120, 300, 600],
    labelnames=["kind"],
)
