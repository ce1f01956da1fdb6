"""
Crawl Orchestrator
==================
Batch-synchronized crawl loop over a documentation site.

Lifecycle::

    Idle -> Initializing -> Running -> Draining -> Done
                  |            |
                  +-> Failed <-+        (pool launch failure, loop error, task cancellation)

Each iteration of the Running loop:
1. take up to ``batch_size`` URLs from the frontier
2. fetch them concurrently, one pooled browser each (round-robin)
3. wait for the whole batch to settle
4. fold outcomes back: count successes, queue new links, mark every URL visited
5. publish ``result`` events and one ``progress`` event
6. reclaim memory if under pressure, then pause before the next batch

The loop ends when nothing is queued or in flight, or when a stop is
requested. Stops are honoured at batch boundaries and during the pause.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional

from .browser_pool import BrowserPool
from .events import CompleteEvent, ErrorEvent, EventChannel, ProgressEvent, ResultEvent
from .exceptions import CrawlError, PoolInitError
from .extractor import FetchFailure, FetchOutcome, FetchSuccess, PageExtractor
from .frontier import UrlFrontier
from .memory import MemoryMonitor
from .run_config import CrawlerRunConfig
from .session import CrawlSession, CrawlState

logger = logging.getLogger(__name__)

FetchFn = Callable[[str, Any], Awaitable[FetchOutcome]]


@dataclass
class CrawlReport:
    """Return value of a finished crawl (memory in MB)."""
    memory_before: Optional[int]
    memory_after: Optional[int]
    processed_pages: int
    found_links: int
    failed_pages: int = 0
    total_time: float = 0.0
    pages_per_second: float = 0.0
    stop_reason: str = "completed"

    def to_dict(self) -> dict:
        return {
            'memoryBefore': self.memory_before,
            'memoryAfter': self.memory_after,
            'processedPages': self.processed_pages,
            'foundLinks': self.found_links,
        }


class DocCrawler:
    """
    Documentation crawler driven by a bounded browser pool.

    Usage::

        crawler = DocCrawler(CrawlerRunConfig())
        subscription = crawler.events.subscribe()
        report = await crawler.crawl("https://example.com/documentation/")

        # Or from sync code:
        report = crawler.run("https://example.com/documentation/")

    ``pool`` and ``fetch`` can be injected; by default a ``BrowserPool`` and
    a ``PageExtractor`` are built from the config.
    """

    def __init__(
        self,
        config: CrawlerRunConfig = None,
        events: Optional[EventChannel] = None,
        pool: Optional[BrowserPool] = None,
        fetch: Optional[FetchFn] = None,
        memory: Optional[MemoryMonitor] = None,
    ):
        self.config = (config or CrawlerRunConfig()).validate()
        self.events = events or EventChannel()
        self._pool = pool
        self._fetch = fetch
        self.memory = memory or MemoryMonitor(threshold_mb=self.config.memory_threshold_mb)

        self.session: Optional[CrawlSession] = None
        self.frontier: Optional[UrlFrontier] = None
        self._stop_requested = False
        self._stop_event: Optional[asyncio.Event] = None
        self._cancel: Optional[asyncio.Event] = None

    def stop(self) -> None:
        """
        Request a graceful stop at the next batch boundary.

        A stop issued before ``crawl()`` applies to that next crawl, which
        then ends before its first batch. The request is cleared when the
        crawl returns. A ``cancel`` event passed to ``crawl()`` is never set
        by this method.
        """
        self._stop_requested = True
        if self._stop_event is not None:
            self._stop_event.set()
        logger.info("Stop requested")

    # ------------------------------------------------------------------
    # Sync entry point
    # ------------------------------------------------------------------

    def run(self, start_url: str) -> CrawlReport:
        """Sync wrapper - run the async crawl from synchronous code."""
        return asyncio.run(self.crawl(start_url))

    # ------------------------------------------------------------------
    # Main async crawl
    # ------------------------------------------------------------------

    async def crawl(self, start_url: str, cancel: Optional[asyncio.Event] = None) -> CrawlReport:
        """
        Crawl from ``start_url`` until the frontier drains.

        Raises ``PoolInitError`` if the browser pool cannot be launched, and
        ``CrawlError`` if the loop itself fails. In both cases an ``error``
        event is published first and no ``complete`` follows. Cancelling the
        task that runs the crawl also shuts the pool down and ends the event
        stream before ``CancelledError`` propagates.
        """
        if self.session is not None and self.session.state in (
            CrawlState.INITIALIZING, CrawlState.RUNNING, CrawlState.DRAINING
        ):
            raise RuntimeError("A crawl is already running on this DocCrawler")

        self._stop_event = asyncio.Event()
        if self._stop_requested:
            self._stop_event.set()
        self._cancel = cancel
        try:
            return await self._execute(start_url)
        finally:
            self._stop_requested = False
            self._stop_event = None
            self._cancel = None

    async def _execute(self, start_url: str) -> CrawlReport:
        session = CrawlSession(start_url=start_url)
        self.session = session
        if self.events.closed:
            self.events = EventChannel(maxsize=self.events.maxsize)

        session.transition(CrawlState.INITIALIZING)
        session.start()
        session.memory_before = self.memory.sample()

        batch_size = self.config.effective_batch_size
        logger.info("=" * 65)
        logger.info("DOC CRAWL STARTED")
        logger.info(f"Start URL: {start_url}")
        logger.info(f"Batch size: {batch_size}, browsers: {self.config.pool_size}")
        logger.info("=" * 65)

        frontier = UrlFrontier()
        self.frontier = frontier
        frontier.add(start_url)

        pool = self._pool or BrowserPool(size=self.config.pool_size, headless=self.config.headless)
        fetch = self._fetch or PageExtractor(
            self.config.to_extraction_policy(), self.config.to_retry_policy()
        ).fetch

        try:
            await pool.initialize()
        except asyncio.CancelledError:
            await self._fail(session, CrawlError("Crawl cancelled"), pool=pool)
            raise
        except Exception as e:
            await self._fail(session, e)
            if isinstance(e, PoolInitError):
                raise
            raise PoolInitError(f"Failed to initialize browser pool: {e}", cause=e) from e

        session.transition(CrawlState.RUNNING)
        try:
            while frontier.has_more():
                if self._should_stop():
                    session.stop_reason = "stopped"
                    break
                if self.config.max_pages and session.dispatched >= self.config.max_pages:
                    session.stop_reason = f"max_pages limit reached ({self.config.max_pages})"
                    break

                size = batch_size
                if self.config.max_pages:
                    size = min(size, self.config.max_pages - session.dispatched)
                batch = frontier.next_batch(size)
                outcomes = await self._run_batch(batch, pool, fetch)
                session.dispatched += len(batch)
                await self._fold(session, frontier, outcomes)

                if self.memory.maybe_reclaim():
                    logger.info(f"[MEMORY] Reclaimed after batch {session.stats.batches}")

                if frontier.has_more():
                    await self._pause()
        except asyncio.CancelledError:
            await self._fail(session, CrawlError("Crawl cancelled"), pool=pool)
            raise
        except Exception as e:
            await self._fail(session, e, pool=pool)
            raise CrawlError(f"Crawl failed: {e}", cause=e) from e

        # Draining
        session.transition(CrawlState.DRAINING)
        if not session.stop_reason:
            session.stop_reason = "completed"
        try:
            await pool.shutdown()
        except Exception as e:
            logger.warning(f"[POOL] Shutdown failed while draining: {e}")
        session.memory_after = self.memory.sample()
        session.finish()
        session.transition(CrawlState.DONE)

        logger.info("\n" + session.format_summary())

        report = CrawlReport(
            memory_before=session.memory_before,
            memory_after=session.memory_after,
            processed_pages=session.stats.processed_pages,
            found_links=session.stats.found_links,
            failed_pages=session.stats.failed_pages,
            total_time=session.elapsed_time,
            pages_per_second=session.pages_per_second,
            stop_reason=session.stop_reason,
        )
        await self.events.publish(CompleteEvent(
            total_time=report.total_time,
            pages_per_second=report.pages_per_second,
            processed_pages=report.processed_pages,
            found_links=report.found_links,
            memory_before=report.memory_before,
            memory_after=report.memory_after,
        ))
        await self.events.close()
        return report

    # ------------------------------------------------------------------
    # Batch execution
    # ------------------------------------------------------------------

    async def _run_batch(self, batch: List[str], pool, fetch: FetchFn) -> List[FetchOutcome]:
        """Fetch every URL of the batch concurrently; wait for all of them."""
        if not batch:
            return []
        tasks = [fetch(url, pool.acquire()) for url in batch]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        outcomes: List[FetchOutcome] = []
        for url, result in zip(batch, results):
            if isinstance(result, (FetchSuccess, FetchFailure)):
                outcomes.append(result)
                continue
            if isinstance(result, asyncio.CancelledError):
                raise result
            # fetch is not supposed to raise; degrade to a failure anyway
            logger.error(f"[WORKER] Unexpected error for {url[:80]}: {result!r}")
            outcomes.append(FetchFailure(
                url=url, error=str(result), error_type=type(result).__name__
            ))
        return outcomes

    async def _fold(
        self,
        session: CrawlSession,
        frontier: UrlFrontier,
        outcomes: List[FetchOutcome],
    ) -> None:
        """Apply a settled batch to the frontier and counters, then report."""
        for outcome in outcomes:
            if outcome.success:
                session.stats.record_success(len(outcome.links))
                frontier.add_many(outcome.links)
                await self.events.publish(ResultEvent(
                    url=outcome.url,
                    title=outcome.title,
                    links=list(outcome.links),
                    metadata=dict(outcome.metadata),
                ))
            else:
                session.stats.record_failure()
            frontier.mark_visited(outcome.url)

        session.stats.batches += 1
        queued = frontier.queued_count
        progress = session.progress(queued)
        logger.info(
            f"[BATCH {session.stats.batches}] {len(outcomes)} fetched - "
            f"processed={session.stats.processed_pages} "
            f"failed={session.stats.failed_pages} "
            f"links={session.stats.found_links} "
            f"queued={queued} progress={progress:.1%}"
        )
        await self.events.publish(ProgressEvent(
            progress=progress,
            processed_pages=session.stats.processed_pages,
            found_links=session.stats.found_links,
            memory_usage=self.memory.usage(),
        ))

    async def _pause(self) -> None:
        """Inter-batch rate limit; returns early if a stop is requested."""
        delay = self.config.rate_limit_ms / 1000
        if delay <= 0:
            return
        events = [e for e in (self._stop_event, self._cancel) if e is not None]
        if not events:
            await asyncio.sleep(delay)
            return
        waiters = [asyncio.ensure_future(e.wait()) for e in events]
        try:
            await asyncio.wait(waiters, timeout=delay, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                waiter.cancel()
            await asyncio.gather(*waiters, return_exceptions=True)

    def _should_stop(self) -> bool:
        if self._stop_requested:
            return True
        return any(e is not None and e.is_set() for e in (self._stop_event, self._cancel))

    async def _fail(self, session: CrawlSession, error: Exception, pool=None) -> None:
        """Move to Failed, publish the error event and end the stream."""
        logger.error(f"Crawl failed: {error}", exc_info=True)
        session.stop_reason = f"error: {error}"
        session.finish()
        if session.state in (CrawlState.INITIALIZING, CrawlState.RUNNING):
            session.transition(CrawlState.FAILED)
        if pool is not None:
            try:
                await pool.shutdown()
            except Exception as e:
                logger.debug(f"Error shutting down pool after failure: {e}")
        await self.events.publish(ErrorEvent(
            message=str(error) or type(error).__name__,
            memory_usage=self.memory.usage(),
        ))
        await self.events.close()
