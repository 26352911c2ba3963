"""
Prometheus metrics for SQL log writers, registered in the global REGISTRY.
"""

from prometheus_client import Counter, Gauge, Histogram

FLUSH_TOTAL = Counter(
    "sqllog_flush_total",
    "Flush attempts by outcome",
    ["writer", "outcome"],  # success | empty | failure
)

ENTRIES_WRITTEN_TOTAL = Counter(
    "sqllog_entries_written_total",
    "Log entries confirmed written to the sink",
    ["writer"],
)

FLUSH_LATENCY = Histogram(
    "sqllog_flush_latency_seconds",
    "Duration of non-empty flush attempts",
    ["writer"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, 60, 180],
)

QUEUE_DEPTH = Gauge(
    "sqllog_queue_depth",
    "Entries waiting to be written",
    ["writer"],
)

RETRY_WAIT_SECONDS = Gauge(
    "sqllog_retry_wait_seconds",
    "Backoff applied after the most recent failed flush",
    ["writer"],
)
