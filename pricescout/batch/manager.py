"""Batch price scraping under a fixed concurrency ceiling.

- Chunked concurrency: each chunk of ``concurrency`` targets is awaited in
  full before the next one is dequeued
- One browser session is held for the whole batch and released exactly once
- Per-target failures become zero-confidence results; the batch continues
"""

from __future__ import annotations

import asyncio
import time
import logging
from typing import Dict, List, Optional, Sequence, Tuple
from dataclasses import dataclass, field
from datetime import datetime

from ..models import ScrapeResult, ScrapeTarget
from ..observability import BATCH_DURATION, BATCH_TARGETS
from ..reliability.errors import EnhancedError, ErrorContext, classify_error
from ..runtime import BrowserRuntime
from ..tasks.price_scraper import PriceScraper


@dataclass
class BatchJob:
    """A batch request: targets plus the concurrency ceiling."""
    targets: List[ScrapeTarget]
    concurrency_limit: int = 3


@dataclass
class BatchReport:
    """Summary of a finished batch."""
    total_targets: int
    succeeded: int = 0
    failed: int = 0
    chunks: int = 0
    duration_seconds: float = 0.0
    started_at: datetime = field(default_factory=datetime.now)

    @property
    def success_rate(self) -> float:
        return self.succeeded / self.total_targets * 100 if self.total_targets else 0.0


def assign_identities(targets: Sequence[ScrapeTarget]) -> List[Tuple[str, ScrapeTarget]]:
    """Key targets by name, suffixing repeats so every target keeps its own result."""
    used = set()
    keyed = []
    for target in targets:
        key, n = target.name, 1
        while key in used:
            n += 1
            key = f"{target.name} ({n})"
        used.add(key)
        keyed.append((key, target))
    return keyed


class BatchScrapeManager:
    """Runs PriceScraper over many businesses."""

    def __init__(self,
                 scraper: PriceScraper,
                 runtime: Optional[BrowserRuntime] = None,
                 *,
                 default_concurrency: int = 3,
                 logger: Optional[logging.Logger] = None):
        self.scraper = scraper
        self.runtime = runtime or scraper.runtime
        self.default_concurrency = default_concurrency
        self.logger = logger or logging.getLogger(__name__)
        self.last_report: Optional[BatchReport] = None

    async def run_job(self, job: BatchJob) -> Dict[str, ScrapeResult]:
        return await self.batch_scrape(job.targets, job.concurrency_limit)

    async def batch_scrape(self,
                           targets: Sequence[ScrapeTarget],
                           concurrency: Optional[int] = None) -> Dict[str, ScrapeResult]:
        """Scrape every target; the result has exactly one entry per target."""
        limit = max(1, concurrency if concurrency is not None else self.default_concurrency)
        queue = assign_identities(targets)
        results: Dict[str, ScrapeResult] = {}
        report = BatchReport(total_targets=len(queue))
        start = time.perf_counter()

        self.logger.info(f"Starting batch scrape for {len(queue)} targets (concurrency={limit})")

        try:
            await self.runtime.acquire()
        except Exception as e:
            self.logger.error(f"Browser unavailable, failing batch of {len(queue)}: {e}")
            for key, target in queue:
                results[key] = ScrapeResult.failure(target.url)
            report.failed = len(queue)
            self._finish(report, start)
            return results

        try:
            while queue:
                chunk, queue = queue[:limit], queue[limit:]
                report.chunks += 1

                outcomes = await asyncio.gather(
                    *(self.scraper.scrape_prices(target.url, target.name) for _, target in chunk),
                    return_exceptions=True,
                )

                for (key, target), outcome in zip(chunk, outcomes):
                    if isinstance(outcome, BaseException):
                        error = EnhancedError(
                            f"Scrape of {target.name} raised",
                            category=classify_error(outcome),
                            context=ErrorContext(url=target.url, business=target.name),
                            cause=outcome,
                        )
                        self.logger.error(f"Batch target failed: {error.to_dict()}")
                        outcome = ScrapeResult.failure(target.url)
                    results[key] = outcome
                    if outcome.success:
                        report.succeeded += 1
                    else:
                        report.failed += 1
        finally:
            await self.runtime.release()

        self._finish(report, start)
        return results

    def _finish(self, report: BatchReport, start: float) -> None:
        report.duration_seconds = time.perf_counter() - start
        BATCH_DURATION.observe(report.duration_seconds)
        BATCH_TARGETS.labels("success").inc(report.succeeded)
        BATCH_TARGETS.labels("failure").inc(report.failed)
        self.last_report = report

        self.logger.info(f"Batch scrape complete: {report.total_targets} results")
        self.logger.info(f"  Succeeded: {report.succeeded}")
        self.logger.info(f"  Failed: {report.failed}")
        self.logger.info(f"  Success rate: {report.success_rate:.1f}%")
        self.logger.info(f"  Total time: {report.duration_seconds:.1f} seconds")
