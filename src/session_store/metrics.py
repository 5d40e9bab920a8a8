"""Prometheus metrics for the session store."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# Counters
writes_total = Counter(
    "session_store_writes_total",
    "Session set attempts",
    ["result"],  # stored | expired | refused
)
touches_total = Counter(
    "session_store_touches_total",
    "Session touch attempts",
    ["result"],  # renewed | expired | refused
)
destroys_total = Counter(
    "session_store_destroys_total",
    "Session destroys",
    ["mode"],  # tombstone | delete
)
decode_errors_total = Counter(
    "session_store_decode_errors_total",
    "Stored values that failed to decode",
)
scan_batches_total = Counter(
    "session_store_scan_batches_total",
    "Non-empty SCAN batches yielded",
)

# Histograms
bulk_duration_seconds = Histogram(
    "session_store_bulk_duration_seconds",
    "Duration of bulk operations over the whole key space",
    ["operation"],  # clear | length | all
    buckets=(0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0),
)
