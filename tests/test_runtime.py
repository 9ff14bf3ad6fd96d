import random

import pytest

from pricescout import runtime as runtime_module
from pricescout.config import BrowserConfig
from pricescout.reliability import BrowserError, StealthLevel, StealthManager
from pricescout.runtime import BrowserRuntime


class FakeContext:
    def __init__(self, options):
        self.options = options
        self.init_scripts = []
        self.closed = False

    async def add_init_script(self, script):
        self.init_scripts.append(script)

    async def new_page(self):
        return FakeBrowserPage(self)

    async def close(self):
        self.closed = True


class FakeBrowserPage:
    def __init__(self, context):
        self.context = context
        self.routes = []

    async def route(self, pattern, handler):
        self.routes.append((pattern, handler))


class FakeBrowser:
    def __init__(self):
        self.connected = True
        self.contexts = []

    def is_connected(self):
        return self.connected

    async def new_context(self, **options):
        context = FakeContext(options)
        self.contexts.append(context)
        return context

    async def close(self):
        self.connected = False


class FakePlaywright:
    def __init__(self, fail_launch=False):
        self.fail_launch = fail_launch
        self.launches = []
        self.stopped = False
        self.chromium = self

    async def launch(self, **kwargs):
        if self.fail_launch:
            raise RuntimeError("Executable doesn't exist at /ms-playwright/chromium")
        browser = FakeBrowser()
        self.launches.append(browser)
        return browser

    async def stop(self):
        self.stopped = True


@pytest.fixture
def driver(monkeypatch):
    driver = FakePlaywright()

    class Starter:
        async def start(self):
            return driver

    monkeypatch.setattr(runtime_module, "async_playwright", lambda: Starter())
    return driver


class TestBrowserRuntime:

    @pytest.mark.asyncio
    async def test_reference_counted_lifecycle(self, driver):
        runtime = BrowserRuntime(BrowserConfig())

        async with runtime.session():
            async with runtime.session():
                assert runtime.holders == 2
            assert runtime.is_running

        assert len(driver.launches) == 1
        assert runtime.holders == 0
        assert not runtime.is_running
        assert driver.stopped

    @pytest.mark.asyncio
    async def test_relaunches_after_disconnect(self, driver):
        runtime = BrowserRuntime()
        await runtime.acquire()
        driver.launches[0].connected = False
        await runtime.acquire()
        assert len(driver.launches) == 2
        await runtime.stop()
        assert runtime.holders == 0

    @pytest.mark.asyncio
    async def test_launch_failure_raises_browser_error(self, monkeypatch):
        class Starter:
            async def start(self):
                return FakePlaywright(fail_launch=True)

        monkeypatch.setattr(runtime_module, "async_playwright", lambda: Starter())
        runtime = BrowserRuntime()
        with pytest.raises(BrowserError):
            await runtime.acquire()
        assert runtime.holders == 0

    @pytest.mark.asyncio
    async def test_page_requires_a_session(self, driver):
        with pytest.raises(BrowserError):
            await BrowserRuntime().new_page()

    @pytest.mark.asyncio
    async def test_page_gets_own_stealth_context_closed_on_exit(self, driver):
        runtime = BrowserRuntime(BrowserConfig(stealth_level="moderate"))
        async with runtime.session():
            async with runtime.page() as page:
                context = page.context
                assert context.options["viewport"] == {"width": 1920, "height": 1080}
                assert context.options["extra_http_headers"]["Accept-Language"] == "en-US,en;q=0.9"
                assert context.init_scripts
                assert page.routes[0][0] == "**/*"
            assert context.closed


class FakeRoute:
    def __init__(self, resource_type, url):
        self.request = type("Request", (), {"resource_type": resource_type, "url": url})()
        self.outcome = None

    async def abort(self):
        self.outcome = "abort"

    async def continue_(self):
        self.outcome = "continue"


class TestStealthManager:

    def test_blocks_heavy_resources_and_trackers(self):
        stealth = StealthManager(StealthLevel.BASIC)
        assert stealth.should_block_request("image", "https://salon.example/a.png")
        assert stealth.should_block_request("font", "https://fonts.gstatic.com/x.woff2")
        assert stealth.should_block_request("script", "https://www.google-analytics.com/analytics.js")
        assert stealth.should_block_request("xhr", "https://pixel.tracker.example/collect")
        assert not stealth.should_block_request("document", "https://salon.example/services")
        assert not stealth.should_block_request("script", "https://cdn.salon.example/app.js")

    @pytest.mark.parametrize("url", [
        "https://www.pixelnailbar.com/",
        "https://trackernails.com/services",
        "https://www.analyticsnails.com/",
    ])
    def test_salon_hosts_with_tracker_words_load(self, url):
        stealth = StealthManager(StealthLevel.BASIC)
        assert not stealth.should_block_request("document", url)
        assert not stealth.should_block_request("script", url + "app.js")

    def test_documents_are_never_blocked(self):
        stealth = StealthManager(StealthLevel.BASIC)
        assert not stealth.should_block_request("document", "https://www.google-analytics.com/")

    def test_context_options(self):
        stealth = StealthManager(StealthLevel.MODERATE, accept_language="en-GB,en;q=0.8",
                                 rng=random.Random(7))
        options = stealth.get_context_options()
        assert options["user_agent"] in stealth.user_agent_pool.all_desktop()
        assert options["locale"] == "en-GB"
        assert options["extra_http_headers"]["Accept-Language"] == "en-GB,en;q=0.8"

    @pytest.mark.asyncio
    async def test_basic_level_adds_no_init_scripts(self):
        context = FakeContext({})
        await StealthManager(StealthLevel.BASIC).apply_stealth_to_context(context)
        assert context.init_scripts == []

    @pytest.mark.asyncio
    async def test_request_filter_counts_blocked_requests(self):
        stealth = StealthManager()
        page = FakeBrowserPage(FakeContext({}))
        await stealth.install_request_filter(page)
        handler = page.routes[0][1]

        blocked, allowed = FakeRoute("image", "https://salon.example/x.jpg"), FakeRoute("document", "https://salon.example/")
        await handler(blocked)
        await handler(allowed)

        assert blocked.outcome == "abort"
        assert allowed.outcome == "continue"
        assert stealth.get_stealth_metrics()["blocked_requests"] == 1
