import asyncio

import pytest

from pricescout.batch import BatchJob, BatchScrapeManager, assign_identities
from pricescout.models import ScrapeResult, ScrapeTarget

from conftest import FakeRuntime


class StubScraper:
    """Scraper stand-in that tracks how many scrapes overlap."""

    def __init__(self, runtime, *, fail_for=(), raise_for=()):
        self.runtime = runtime
        self.fail_for = set(fail_for)
        self.raise_for = set(raise_for)
        self.in_flight = 0
        self.max_in_flight = 0
        self.calls = []

    async def scrape_prices(self, url, name):
        self.calls.append(name)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if name in self.raise_for:
                raise RuntimeError("page crashed")
            if name in self.fail_for:
                return ScrapeResult.failure(url)
            return ScrapeResult(gel=40.0, success=True, confidence=1 / 3, source_url=url)
        finally:
            self.in_flight -= 1


def targets(n):
    return [ScrapeTarget(name=f"Salon {i}", url=f"https://salon{i}.example/") for i in range(n)]


class TestBatchScrapeManager:

    @pytest.mark.parametrize("concurrency", [1, 2, 3, 7])
    @pytest.mark.asyncio
    async def test_one_result_per_target_within_concurrency(self, concurrency):
        runtime = FakeRuntime()
        scraper = StubScraper(runtime)
        manager = BatchScrapeManager(scraper)

        results = await manager.batch_scrape(targets(7), concurrency)

        assert set(results) == {f"Salon {i}" for i in range(7)}
        assert scraper.max_in_flight <= concurrency
        assert manager.last_report.chunks == -(-7 // concurrency)
        assert runtime.acquired == runtime.released == 1

    @pytest.mark.asyncio
    async def test_failures_do_not_stop_the_batch(self):
        runtime = FakeRuntime()
        scraper = StubScraper(runtime, fail_for={"Salon 1"}, raise_for={"Salon 2"})
        manager = BatchScrapeManager(scraper)

        results = await manager.batch_scrape(targets(5), 2)

        assert len(results) == 5
        assert not results["Salon 1"].success
        assert not results["Salon 2"].success
        assert results["Salon 2"].source_url == "https://salon2.example/"
        assert results["Salon 4"].success
        assert manager.last_report.succeeded == 3
        assert manager.last_report.failed == 2

    @pytest.mark.asyncio
    async def test_concurrency_below_one_is_treated_as_one(self):
        scraper = StubScraper(FakeRuntime())
        results = await BatchScrapeManager(scraper).batch_scrape(targets(3), 0)
        assert len(results) == 3
        assert scraper.max_in_flight == 1

    @pytest.mark.asyncio
    async def test_browser_unavailable_fails_every_target(self):
        runtime = FakeRuntime(fail_acquire=True)
        scraper = StubScraper(runtime)

        results = await BatchScrapeManager(scraper).batch_scrape(targets(4))

        assert len(results) == 4
        assert not any(result.success for result in results.values())
        assert scraper.calls == []
        assert runtime.released == 0

    @pytest.mark.asyncio
    async def test_run_job_and_duplicate_names(self):
        scraper = StubScraper(FakeRuntime())
        job = BatchJob(targets=[
            ScrapeTarget(name="Lucky Nails", url="https://a.example/"),
            ScrapeTarget(name="Lucky Nails", url="https://b.example/"),
        ], concurrency_limit=2)

        results = await BatchScrapeManager(scraper).run_job(job)

        assert set(results) == {"Lucky Nails", "Lucky Nails (2)"}
        assert results["Lucky Nails (2)"].source_url == "https://b.example/"

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        runtime = FakeRuntime()
        results = await BatchScrapeManager(StubScraper(runtime)).batch_scrape([])
        assert results == {}
        assert runtime.acquired == runtime.released == 1


def test_assign_identities_keeps_order_and_avoids_collisions():
    keyed = assign_identities([
        ScrapeTarget(name="A"), ScrapeTarget(name="A (2)"), ScrapeTarget(name="A"), ScrapeTarget(name="A"),
    ])
    assert [key for key, _ in keyed] == ["A", "A (2)", "A (3)", "A (4)"]
