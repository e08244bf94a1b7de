"""Prometheus collectors describing the adapter's own outbound traffic."""

from prometheus_client import Counter, Histogram


REQUEST_LATENCY = Histogram(
    "prom_datasource_request_latency_seconds",
    "Latency of requests sent to the Prometheus HTTP API.",
    labelnames=("endpoint",),
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30),
)
REQUEST_COUNTER = Counter(
    "prom_datasource_requests_total",
    "Number of requests sent to the Prometheus HTTP API.",
    labelnames=("endpoint", "method", "status"),
)
QUERY_ERRORS = Counter(
    "prom_datasource_query_errors_total",
    "Query failures normalized into data query errors.",
    labelnames=("status",),
)


__all__ = ["REQUEST_LATENCY", "REQUEST_COUNTER", "QUERY_ERRORS"]
