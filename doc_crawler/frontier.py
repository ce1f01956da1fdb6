"""
URL Frontier
============
The crawl work set. Every known URL is in exactly one of three states:

    queued  ->  in-flight  ->  visited

URLs are compared as opaque strings (no normalization). A URL that is
in-flight or visited is never queued again, so each URL is handed out by
``next_batch`` at most once per crawl.

All mutations take an internal lock so completions folded from several
fetch tasks cannot lose or duplicate membership.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set

logger = logging.getLogger(__name__)


class UrlState(str, Enum):
    QUEUED = "queued"
    IN_FLIGHT = "in_flight"
    VISITED = "visited"


class UrlFrontier:
    """Queued / in-flight / visited bookkeeping for one crawl."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        # dict keeps insertion order, so batches come out FIFO
        self._queued: Dict[str, None] = {}
        self._in_flight: Set[str] = set()
        self._visited: Set[str] = set()

    def add(self, url: str) -> bool:
        """Queue ``url`` unless it is already known. Returns True if queued."""
        with self._lock:
            return self._add_locked(url)

    def add_many(self, urls: Iterable[str]) -> int:
        """Queue every unknown URL in ``urls``. Returns the number queued."""
        added = 0
        with self._lock:
            for url in urls:
                if self._add_locked(url):
                    added += 1
        return added

    def _add_locked(self, url: str) -> bool:
        if url in self._visited or url in self._in_flight or url in self._queued:
            return False
        self._queued[url] = None
        return True

    def next_batch(self, size: int) -> List[str]:
        """Move up to ``size`` queued URLs to in-flight and return them."""
        if size <= 0:
            return []
        with self._lock:
            batch = []
            for url in self._queued:
                if len(batch) >= size:
                    break
                batch.append(url)
            for url in batch:
                del self._queued[url]
                self._in_flight.add(url)
            return batch

    def mark_visited(self, url: str) -> None:
        """Move ``url`` from in-flight to visited."""
        with self._lock:
            if url not in self._in_flight:
                logger.debug(f"[FRONTIER] mark_visited on non in-flight URL: {url}")
            self._in_flight.discard(url)
            self._queued.pop(url, None)
            self._visited.add(url)

    def has_more(self) -> bool:
        """True while anything is queued or still in flight."""
        with self._lock:
            return bool(self._queued) or bool(self._in_flight)

    def state_of(self, url: str) -> Optional[UrlState]:
        with self._lock:
            if url in self._queued:
                return UrlState.QUEUED
            if url in self._in_flight:
                return UrlState.IN_FLIGHT
            if url in self._visited:
                return UrlState.VISITED
            return None

    @property
    def queued_count(self) -> int:
        with self._lock:
            return len(self._queued)

    @property
    def in_flight_count(self) -> int:
        with self._lock:
            return len(self._in_flight)

    @property
    def visited_count(self) -> int:
        with self._lock:
            return len(self._visited)

    def visited(self) -> Set[str]:
        """Snapshot copy of the visited set."""
        with self._lock:
            return set(self._visited)

    def __len__(self) -> int:
        with self._lock:
            return len(self._queued) + len(self._in_flight) + len(self._visited)
