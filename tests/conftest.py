"""
Shared fakes for the doc_crawler test-suite.

No real browser is launched anywhere: the Playwright surface used by the
extractor and the pool is replaced by the small fakes below.
"""

import asyncio
from collections import defaultdict
from types import SimpleNamespace
from typing import Dict, List, Optional, Sequence

import pytest

from doc_crawler import extractor as extractor_module
from doc_crawler.extractor import FetchFailure, FetchSuccess
from doc_crawler.memory import MemoryMonitor
from doc_crawler.run_config import CrawlerRunConfig


# ====================================================================
# Playwright page / browser fakes
# ====================================================================

class FakeRequest:
    def __init__(self, url: str, resource_type: str):
        self.url = url
        self.resource_type = resource_type


class FakeRoute:
    def __init__(self, request: FakeRequest):
        self.request = request
        self.outcome: Optional[str] = None

    async def abort(self):
        self.outcome = "aborted"

    async def continue_(self):
        self.outcome = "continued"


class FakePage:
    """Scriptable stand-in for ``playwright.async_api.Page``."""

    def __init__(
        self,
        title: str = "",
        anchors: Optional[Dict[str, List[str]]] = None,
        meta: Optional[List[Sequence[Optional[str]]]] = None,
        present: Sequence[str] = (),
        requests: Sequence[tuple] = (),
        goto_error: Optional[Exception] = None,
        evaluate_error: Optional[Exception] = None,
        close_error: Optional[Exception] = None,
    ):
        self._title = title
        self.anchors = anchors or {}
        self.meta = meta or []
        self.present = set(present)
        self.requests = list(requests)
        self.goto_error = goto_error
        self.evaluate_error = evaluate_error
        self.close_error = close_error
        self.url = "about:blank"
        self.routes: List[FakeRoute] = []
        self.route_handler = None
        self.goto_calls: List[dict] = []
        self.closed = False

    async def route(self, pattern, handler):
        self.route_handler = handler

    async def goto(self, url, wait_until=None, timeout=None):
        self.goto_calls.append({'url': url, 'wait_until': wait_until, 'timeout': timeout})
        self.url = url
        if self.route_handler:
            for req_url, resource_type in self.requests:
                route = FakeRoute(FakeRequest(req_url, resource_type))
                await self.route_handler(route)
                self.routes.append(route)
        if self.goto_error:
            raise self.goto_error

    async def wait_for_selector(self, selector, state=None, timeout=None):
        if selector in self.present:
            return SimpleNamespace(selector=selector)
        await asyncio.sleep((timeout or 0) / 1000)
        raise TimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")

    async def evaluate(self, script, arg=None):
        if self.evaluate_error:
            raise self.evaluate_error
        if script == extractor_module._HARVEST_LINKS_JS:
            hrefs = []
            for selector in arg:
                hrefs.extend(self.anchors.get(selector, []))
            return hrefs
        if script == extractor_module._HARVEST_META_JS:
            return [list(pair) for pair in self.meta]
        raise AssertionError(f"unexpected script: {script[:40]}")

    async def title(self):
        return self._title

    async def close(self):
        self.closed = True
        if self.close_error:
            raise self.close_error


class FakeBrowser:
    """Hands out pre-built pages in order (the last one is reused)."""

    def __init__(self, *pages: FakePage, new_page_error: Optional[Exception] = None, name: str = "browser"):
        self.pages = list(pages)
        self.new_page_error = new_page_error
        self.name = name
        self.opened: List[FakePage] = []
        self.closed = False

    async def new_page(self):
        if self.new_page_error:
            raise self.new_page_error
        index = min(len(self.opened), len(self.pages) - 1)
        page = self.pages[index]
        self.opened.append(page)
        return page

    async def close(self):
        self.closed = True

    def __repr__(self):
        return f"FakeBrowser({self.name})"


# ====================================================================
# Orchestrator fakes
# ====================================================================

class FakePool:
    """Round-robin pool over named handles, without Playwright."""

    def __init__(self, size: int = 3, init_error: Optional[Exception] = None):
        self.size = size
        self.init_error = init_error
        self.handles = [f"browser-{i}" for i in range(size)]
        self._index = 0
        self.initialized = False
        self.shutdown_calls = 0

    async def initialize(self):
        if self.init_error:
            raise self.init_error
        self.initialized = True

    def acquire(self):
        handle = self.handles[self._index]
        self._index = (self._index + 1) % self.size
        return handle

    async def shutdown(self):
        self.shutdown_calls += 1


class GraphFetcher:
    """
    Fetch function backed by an in-memory link graph.

    ``graph`` maps URL -> outbound links. URLs in ``fail`` produce a
    ``FetchFailure``; URLs in ``raise_for`` raise instead.
    """

    def __init__(self, graph: Dict[str, List[str]], fail=(), raise_for=(), delay: float = 0.0):
        self.graph = graph
        self.fail = set(fail)
        self.raise_for = set(raise_for)
        self.delay = delay
        self.calls: List[str] = []
        self.handles: Dict[str, object] = {}
        self.per_handle_active = defaultdict(int)
        self.max_shared = 0
        self.active = 0
        self.max_active = 0
        self.on_fetch = None

    async def __call__(self, url, handle):
        self.calls.append(url)
        self.handles[url] = handle
        self.active += 1
        self.per_handle_active[handle] += 1
        self.max_active = max(self.max_active, self.active)
        self.max_shared = max(self.max_shared, self.per_handle_active[handle])
        try:
            if self.on_fetch:
                self.on_fetch(url)
            await asyncio.sleep(self.delay)
            if url in self.raise_for:
                raise RuntimeError(f"boom: {url}")
            if url in self.fail:
                return FetchFailure(url=url, error="Timeout 30000ms exceeded", error_type="TimeoutError")
            return FetchSuccess(
                url=url,
                title=f"Title of {url}",
                links=list(self.graph.get(url, [])),
                metadata={'description': url},
            )
        finally:
            self.active -= 1
            self.per_handle_active[handle] -= 1


class FakeProcess:
    """psutil.Process stand-in with a settable RSS."""

    def __init__(self, rss_mb: int = 100, vms_mb: int = 400, shared_mb: int = 10):
        self.rss = rss_mb * 1024 * 1024
        self.vms = vms_mb * 1024 * 1024
        self.shared = shared_mb * 1024 * 1024

    def memory_info(self):
        return SimpleNamespace(rss=self.rss, vms=self.vms, shared=self.shared)


async def drain(subscription) -> list:
    return [event async for event in subscription]


# ====================================================================
# Fixtures
# ====================================================================

@pytest.fixture()
def fast_config() -> CrawlerRunConfig:
    """Default config without the inter-batch pause."""
    return CrawlerRunConfig(rate_limit_ms=0)


@pytest.fixture()
def fake_process() -> FakeProcess:
    return FakeProcess()


@pytest.fixture()
def memory_monitor(fake_process) -> MemoryMonitor:
    return MemoryMonitor(threshold_mb=1024, process=fake_process)
