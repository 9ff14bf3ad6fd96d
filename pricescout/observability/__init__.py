"""Observability: Prometheus metrics."""

from .metrics import (
    REQUEST_COUNT, REQUEST_LATENCY,
    SCRAPE_COUNT, SCRAPE_DURATION, SCRAPE_CONFIDENCE, CANDIDATES_PROPOSED,
    NAVIGATION_FAILURES, BROWSER_LAUNCHES, ACTIVE_PAGES,
    BATCH_DURATION, BATCH_TARGETS,
    CACHE_LOOKUPS, RATE_LIMIT_DECISIONS,
    observe_duration
)

__all__ = [
    'REQUEST_COUNT', 'REQUEST_LATENCY',
    'SCRAPE_COUNT', 'SCRAPE_DURATION', 'SCRAPE_CONFIDENCE', 'CANDIDATES_PROPOSED',
    'NAVIGATION_FAILURES', 'BROWSER_LAUNCHES', 'ACTIVE_PAGES',
    'BATCH_DURATION', 'BATCH_TARGETS',
    'CACHE_LOOKUPS', 'RATE_LIMIT_DECISIONS',
    'observe_duration'
]
