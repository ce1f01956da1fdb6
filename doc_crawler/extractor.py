"""
Page Extractor
==============
Loads one documentation page in a pooled browser and harvests its title,
``<meta>`` tags and outbound documentation links.

Per page:
1. open a fresh page on the borrowed browser
2. abort image / stylesheet / font / media requests
3. navigate, waiting for DOMContentLoaded and network idle (bounded)
4. race the content-ready selectors against a short ceiling
5. collect hrefs from the link selectors, keep ``/documentation/`` ones
6. read title and meta tags
7. close the page on every exit path

``PageExtractor.fetch`` never raises: every navigation or evaluation error
is returned as a ``FetchFailure``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Union

from playwright.async_api import Browser, Page, Route

from .utils import RetryPolicy, ordered_unique

logger = logging.getLogger(__name__)

DEFAULT_BLOCKED_RESOURCE_TYPES = ("image", "stylesheet", "font", "media")
DEFAULT_READY_SELECTORS = ("nav.documentation-nav", ".documentation-hero")
DEFAULT_LINK_SELECTORS = (
    "nav.documentation-nav a",
    ".documentation-hero a",
    'a[href^="/documentation/"]',
)
DEFAULT_LINK_MARKER = "/documentation/"

# Resolved (absolute) hrefs, in selector order then document order.
_HARVEST_LINKS_JS = """
(selectors) => {
    const hrefs = [];
    for (const sel of selectors) {
        document.querySelectorAll(sel).forEach(a => {
            if (a.href) hrefs.push(a.href);
        });
    }
    return hrefs;
}
"""

_HARVEST_META_JS = """
() => Array.from(document.querySelectorAll('meta')).map(meta => [
    meta.getAttribute('name') || meta.getAttribute('property'),
    meta.getAttribute('content'),
])
"""


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------

@dataclass
class FetchSuccess:
    url: str
    title: str = ""
    links: List[str] = field(default_factory=list)
    metadata: Dict[str, str] = field(default_factory=dict)
    elapsed_ms: float = 0.0
    attempts: int = 1

    success = True

    def to_dict(self) -> dict:
        return {
            'url': self.url,
            'title': self.title,
            'links': list(self.links),
            'metadata': dict(self.metadata),
        }


@dataclass
class FetchFailure:
    url: str
    error: str = ""
    error_type: str = ""
    elapsed_ms: float = 0.0
    attempts: int = 1

    success = False

    def to_dict(self) -> dict:
        return {'url': self.url, 'error': self.error, 'error_type': self.error_type}


FetchOutcome = Union[FetchSuccess, FetchFailure]


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------

@dataclass
class ExtractionPolicy:
    """How a page is loaded and what is harvested from it."""
    navigation_timeout_ms: int = 30000
    ready_selectors: List[str] = field(default_factory=lambda: list(DEFAULT_READY_SELECTORS))
    ready_timeout_ms: int = 3000
    link_selectors: List[str] = field(default_factory=lambda: list(DEFAULT_LINK_SELECTORS))
    link_marker: str = DEFAULT_LINK_MARKER
    blocked_resource_types: List[str] = field(
        default_factory=lambda: list(DEFAULT_BLOCKED_RESOURCE_TYPES)
    )


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def collect_doc_links(hrefs: Iterable[Optional[str]], marker: str = DEFAULT_LINK_MARKER) -> List[str]:
    """Keep hrefs containing ``marker``, de-duplicated in discovery order."""
    return ordered_unique(h for h in hrefs if h and marker in h)


def metadata_from_pairs(pairs: Iterable[Sequence[Optional[str]]]) -> Dict[str, str]:
    """Build the meta mapping from ``[name, content]`` pairs. Last key wins."""
    metadata: Dict[str, str] = {}
    for pair in pairs or []:
        if len(pair) < 2:
            continue
        name, content = pair[0], pair[1]
        if name:
            metadata[name] = content or ""
    return metadata


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------

class PageExtractor:
    """Fetches documentation pages with a shared extraction policy."""

    def __init__(self, policy: ExtractionPolicy = None, retry_policy: RetryPolicy = None):
        self.policy = policy or ExtractionPolicy()
        self.retry_policy = retry_policy or RetryPolicy(max_retries=0)
        self._blocked = frozenset(self.policy.blocked_resource_types)

    async def fetch(self, url: str, browser: Browser) -> FetchOutcome:
        """Fetch ``url``, retrying failures per the retry policy."""
        attempt = 0
        while True:
            outcome = await self._fetch_once(url, browser)
            outcome.attempts = attempt + 1
            if outcome.success or not self.retry_policy.should_retry(attempt):
                return outcome
            delay = self.retry_policy.calculate_delay(attempt)
            attempt += 1
            logger.info(
                f"[RETRY] {url[:70]} - attempt {attempt + 1}/{self.retry_policy.attempts} "
                f"in {delay:.1f}s ({outcome.error})"
            )
            await asyncio.sleep(delay)

    async def _fetch_once(self, url: str, browser: Browser) -> FetchOutcome:
        t_start = time.monotonic()
        page: Optional[Page] = None
        try:
            page = await browser.new_page()
            await page.route("**/*", self._route_handler)

            # networkidle fires after load, which itself follows DOMContentLoaded
            await page.goto(
                url,
                wait_until="networkidle",
                timeout=self.policy.navigation_timeout_ms,
            )

            await self._wait_until_ready(page)

            hrefs = await page.evaluate(_HARVEST_LINKS_JS, list(self.policy.link_selectors))
            links = collect_doc_links(hrefs or [], self.policy.link_marker)
            title = await page.title()
            metadata = metadata_from_pairs(await page.evaluate(_HARVEST_META_JS))

            elapsed = (time.monotonic() - t_start) * 1000
            logger.debug(f"[FETCH] {url[:80]} - {len(links)} links in {elapsed:.0f}ms")
            return FetchSuccess(
                url=url, title=title or "", links=links, metadata=metadata,
                elapsed_ms=elapsed,
            )
        except Exception as e:
            elapsed = (time.monotonic() - t_start) * 1000
            logger.warning(f"[FETCH] Error fetching {url[:80]}: {e}")
            return FetchFailure(
                url=url, error=str(e) or type(e).__name__,
                error_type=type(e).__name__, elapsed_ms=elapsed,
            )
        finally:
            if page is not None:
                try:
                    await page.close()
                except Exception as e:
                    logger.debug(f"[FETCH] Error closing page for {url[:80]}: {e}")

    async def _route_handler(self, route: Route) -> None:
        """Abort heavy resources, let everything else through."""
        if route.request.resource_type in self._blocked:
            await route.abort()
            return
        await route.continue_()

    async def _wait_until_ready(self, page: Page) -> Optional[str]:
        """
        Race the ready selectors against the ceiling.

        Returns the selector that appeared first, or None when the ceiling
        elapsed. Running out of time is not an error.
        """
        selectors = list(self.policy.ready_selectors)
        ceiling_ms = self.policy.ready_timeout_ms
        if not selectors or ceiling_ms <= 0:
            return None

        waiters = {
            asyncio.ensure_future(
                page.wait_for_selector(sel, state="attached", timeout=ceiling_ms)
            ): sel
            for sel in selectors
        }
        pending = set(waiters)
        matched = None
        deadline = time.monotonic() + ceiling_ms / 1000
        try:
            while pending and matched is None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                done, pending = await asyncio.wait(
                    pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
                )
                if not done:
                    break
                for task in done:
                    if task.cancelled() or task.exception() is not None:
                        continue
                    if matched is None:
                        matched = waiters[task]
        finally:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        if matched:
            logger.debug(f"[READY] {page.url[:80]} - matched {matched}")
        else:
            logger.debug(f"[READY] {page.url[:80]} - no ready marker within {ceiling_ms}ms")
        return matched
