"""Prometheus metrics for the price extraction service."""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Iterator

from prometheus_client import Counter, Gauge, Histogram


REQUEST_COUNT = Counter(
    "pricescout_request_count",
    "Number of HTTP requests received",
    labelnames=["endpoint", "method", "status"],
)
REQUEST_LATENCY = Histogram(
    "pricescout_request_latency_seconds",
    "HTTP request latency in seconds",
    labelnames=["endpoint"],
)

SCRAPE_COUNT = Counter(
    "pricescout_scrape_count",
    "Price scrapes by outcome",
    labelnames=["outcome"],  # success, miss, skipped, error
)
SCRAPE_DURATION = Histogram(
    "pricescout_scrape_duration_seconds",
    "Wall time of a single site scrape",
    buckets=(1, 5, 10, 20, 40, 60, 120, 240, 480),
)
SCRAPE_CONFIDENCE = Histogram(
    "pricescout_scrape_confidence",
    "Confidence of returned scrape results",
    buckets=(0.0, 0.34, 0.67, 1.0),
)
CANDIDATES_PROPOSED = Counter(
    "pricescout_candidates_proposed",
    "Service candidates proposed per extraction strategy",
    labelnames=["source"],
)

NAVIGATION_FAILURES = Counter(
    "pricescout_navigation_failures",
    "Failed navigation attempts by error category",
    labelnames=["category"],
)

BROWSER_LAUNCHES = Counter(
    "pricescout_browser_launches",
    "Number of Chromium processes launched",
)
ACTIVE_PAGES = Gauge(
    "pricescout_active_pages",
    "Pages currently open in the shared browser",
)

BATCH_DURATION = Histogram(
    "pricescout_batch_duration_seconds",
    "Wall time of a batch scrape",
    buckets=(10, 30, 60, 120, 300, 600, 1200),
)
BATCH_TARGETS = Counter(
    "pricescout_batch_targets",
    "Batch targets processed by outcome",
    labelnames=["outcome"],  # success, failure
)

CACHE_LOOKUPS = Counter(
    "pricescout_cache_lookups",
    "Cache lookups by namespace and result",
    labelnames=["namespace", "result"],  # hit, miss, error
)

RATE_LIMIT_DECISIONS = Counter(
    "pricescout_rate_limit_decisions",
    "Rate limiter decisions by tier",
    labelnames=["tier", "decision"],  # allowed, rejected, fail_open
)


@contextmanager
def observe_duration(histogram: Histogram) -> Iterator[None]:
    """Record elapsed wall time into a histogram."""
    start = time.perf_counter()
    try:
        yield
    finally:
        histogram.observe(time.perf_counter() - start)
