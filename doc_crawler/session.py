"""
Crawl Session
=============
Per-crawl state: lifecycle state, counters, timing and memory samples.

One ``CrawlSession`` is created by each ``DocCrawler.crawl()`` call and is
never shared between crawls. Only the orchestrator's fold step mutates it.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class CrawlState(str, Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    RUNNING = "running"
    DRAINING = "draining"
    DONE = "done"
    FAILED = "failed"


# Allowed lifecycle transitions
_TRANSITIONS = {
    CrawlState.IDLE: {CrawlState.INITIALIZING},
    CrawlState.INITIALIZING: {CrawlState.RUNNING, CrawlState.FAILED},
    CrawlState.RUNNING: {CrawlState.DRAINING, CrawlState.FAILED},
    CrawlState.DRAINING: {CrawlState.DONE},
    CrawlState.DONE: set(),
    CrawlState.FAILED: set(),
}


@dataclass
class CrawlStats:
    """Counters that only ever go up during a crawl."""
    processed_pages: int = 0
    found_links: int = 0
    failed_pages: int = 0
    batches: int = 0

    def record_success(self, link_count: int) -> None:
        self.processed_pages += 1
        self.found_links += link_count

    def record_failure(self) -> None:
        self.failed_pages += 1


@dataclass
class CrawlSession:
    start_url: str
    state: CrawlState = CrawlState.IDLE
    stats: CrawlStats = field(default_factory=CrawlStats)
    memory_before: Optional[int] = None
    memory_after: Optional[int] = None
    dispatched: int = 0
    stop_reason: str = ""
    start_time: Optional[float] = None
    end_time: Optional[float] = None

    def transition(self, new_state: CrawlState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid crawl transition {self.state.value} -> {new_state.value}")
        logger.debug(f"[SESSION] {self.state.value} -> {new_state.value}")
        self.state = new_state

    def start(self) -> None:
        self.start_time = time.monotonic()

    def finish(self) -> None:
        self.end_time = time.monotonic()

    @property
    def elapsed_time(self) -> float:
        """Elapsed time in seconds."""
        if self.start_time is None:
            return 0.0
        end = self.end_time or time.monotonic()
        return end - self.start_time

    @property
    def pages_per_second(self) -> float:
        elapsed = self.elapsed_time
        if elapsed <= 0:
            return 0.0
        return self.stats.processed_pages / elapsed

    def progress(self, queued_count: int) -> float:
        """
        Approximate completion ratio ``processed / (processed + queued)``.

        In-flight URLs are not in the denominator and new discoveries grow
        it, so the value can go down between batches. An empty denominator
        means nothing is left to do and yields 1.0.
        """
        denominator = self.stats.processed_pages + queued_count
        if denominator <= 0:
            return 1.0
        return self.stats.processed_pages / denominator

    def format_summary(self) -> str:
        """Human-readable summary block."""
        lines = [
            "=" * 65,
            "  CRAWL SUMMARY",
            "=" * 65,
            f"  Start URL:           {self.start_url}",
            f"  State:               {self.state.value}",
            f"  Pages processed:     {self.stats.processed_pages}",
            f"  Pages failed:        {self.stats.failed_pages}",
            f"  Links found:         {self.stats.found_links}",
            f"  Batches:             {self.stats.batches}",
            "-" * 65,
            f"  Elapsed time:        {self.elapsed_time:.1f} s",
            f"  Overall speed:       {self.pages_per_second:.2f} pages/sec",
            f"  Memory before/after: {self.memory_before} MB / {self.memory_after} MB",
            f"  Stop reason:         {self.stop_reason or 'completed'}",
            "=" * 65,
        ]
        return "\n".join(lines)
