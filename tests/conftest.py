"""
Shared test fixtures: in-memory Redis, scripted Playwright pages and a
browser runtime stand-in.
"""
import fnmatch
import math
from contextlib import asynccontextmanager

import pytest
from playwright.async_api import Error as PlaywrightError
from redis.exceptions import ConnectionError as RedisConnectionError

from pricescout.config import reset_config
from pricescout.extraction import load_pricing_rules
from pricescout.extraction.strategies import BODY_TEXT_SCRIPT, RENDERED_TEXTS_SCRIPT
from pricescout.navigation import EXPAND_SCRIPT
from pricescout.reliability.errors import BrowserError
from pricescout.tasks.price_scraper import LINKS_SCRIPT


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeRedis:
    """The subset of redis.asyncio.Redis used by the cache and the rate limiter."""

    def __init__(self, clock=None):
        self.clock = clock or FakeClock()
        self.store = {}
        self.expires_at = {}
        self.commands = []

    def _purge(self, key):
        deadline = self.expires_at.get(key)
        if deadline is not None and deadline <= self.clock():
            self.store.pop(key, None)
            self.expires_at.pop(key, None)

    async def ping(self):
        return True

    async def get(self, key):
        self.commands.append(("get", key))
        self._purge(key)
        return self.store.get(key)

    async def set(self, key, value):
        self.store[key] = value
        self.expires_at.pop(key, None)
        return True

    async def setex(self, key, ttl, value):
        self.commands.append(("setex", key, ttl))
        self.store[key] = value
        self.expires_at[key] = self.clock() + ttl
        return True

    async def incr(self, key):
        self._purge(key)
        value = int(self.store.get(key, 0)) + 1
        self.store[key] = str(value)
        return value

    async def expire(self, key, seconds):
        self.commands.append(("expire", key, seconds))
        if key not in self.store:
            return False
        self.expires_at[key] = self.clock() + seconds
        return True

    async def ttl(self, key):
        self._purge(key)
        if key not in self.store:
            return -2
        if key not in self.expires_at:
            return -1
        return math.ceil(self.expires_at[key] - self.clock())

    async def scan_iter(self, match="*"):
        for key in list(self.store):
            self._purge(key)
            if key in self.store and fnmatch.fnmatchcase(key, match):
                yield key

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.expires_at.pop(key, None)
        return removed


class FailingRedis:
    """Every command fails as if the server were unreachable."""

    def _fail(self, *args, **kwargs):
        raise RedisConnectionError("Error 111 connecting to localhost:6379. Connection refused.")

    ping = get = set = setex = incr = expire = ttl = delete = _fail

    async def scan_iter(self, match="*"):
        self._fail()
        yield  # pragma: no cover


class FakePage:
    """Playwright Page stand-in serving canned HTML per URL.

    Unknown URLs fail like an unresolvable host; ``failures`` queues errors
    raised by ``goto`` before a URL starts loading, and ``content_errors``
    makes ``content()`` fail while a given URL is loaded.
    """

    def __init__(self, pages=None, *, links=None, rendered=None, failures=None,
                 expand_clicks=0, expand_error=None, content_errors=None):
        self.pages = dict(pages or {})
        self.links = dict(links or {})
        self.rendered = dict(rendered or {})
        self.failures = {url: list(errors) for url, errors in (failures or {}).items()}
        self.expand_clicks = expand_clicks
        self.expand_error = expand_error
        self.content_errors = dict(content_errors or {})
        self.url = "about:blank"
        self.html = ""
        self.visits = []
        self.waits = []

    @property
    def visited_urls(self):
        return [url for url, _ in self.visits]

    async def goto(self, url, wait_until="load", timeout=30000):
        self.visits.append((url, wait_until))
        queued = self.failures.get(url)
        if queued:
            raise queued.pop(0)
        if url not in self.pages:
            raise PlaywrightError(f"net::ERR_NAME_NOT_RESOLVED at {url}")
        self.url = url
        self.html = self.pages[url]

    async def evaluate(self, script, arg=None):
        if script == EXPAND_SCRIPT:
            if self.expand_error:
                raise self.expand_error
            return self.expand_clicks
        if script == LINKS_SCRIPT:
            return self.links.get(self.url, [])
        if script == RENDERED_TEXTS_SCRIPT:
            return self.rendered.get(self.url, [])
        if script == BODY_TEXT_SCRIPT:
            return ""
        raise AssertionError(f"unexpected script: {script[:40]}")

    async def content(self):
        if self.url in self.content_errors:
            raise self.content_errors[self.url]
        return self.html

    async def wait_for_timeout(self, ms):
        self.waits.append(ms)


class FakeRuntime:
    """BrowserRuntime stand-in handing out a single FakePage."""

    def __init__(self, page=None, *, fail_acquire=False, page_error=None):
        self.page_obj = page or FakePage()
        self.fail_acquire = fail_acquire
        self.page_error = page_error
        self.acquired = 0
        self.released = 0
        self.pages_opened = 0
        self.pages_closed = 0

    async def acquire(self):
        if self.fail_acquire:
            raise BrowserError("Chromium launch failed: executable missing")
        self.acquired += 1

    async def release(self):
        self.released += 1

    @asynccontextmanager
    async def session(self):
        await self.acquire()
        try:
            yield self
        finally:
            await self.release()

    @asynccontextmanager
    async def page(self):
        if self.page_error:
            raise self.page_error
        self.pages_opened += 1
        try:
            yield self.page_obj
        finally:
            self.pages_closed += 1


@pytest.fixture
def rules():
    return load_pricing_rules()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_redis(clock):
    return FakeRedis(clock)


@pytest.fixture
def no_sleep():
    """Recording replacement for asyncio.sleep."""
    delays = []

    async def _sleep(seconds):
        delays.append(seconds)

    _sleep.delays = delays
    return _sleep


@pytest.fixture(autouse=True)
def _fresh_config():
    reset_config()
    yield
    reset_config()
