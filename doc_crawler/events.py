"""
Crawl Events
============
Messages the crawler publishes while it runs, and the channel that carries
them to whoever is listening (CLI, web transport, tests).

Each subscriber gets its own ``asyncio.Queue``, so all subscribers see the
same events in publish order. ``close()`` ends every subscription.

Usage::

    channel = EventChannel()
    subscription = channel.subscribe()

    async for event in subscription:
        print(event.to_dict())
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .memory import MemoryUsage

logger = logging.getLogger(__name__)


@dataclass
class ProgressEvent:
    progress: float
    processed_pages: int
    found_links: int
    memory_usage: Optional[MemoryUsage] = None

    type = "progress"

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'type': self.type,
            'progress': self.progress,
            'processedPages': self.processed_pages,
            'foundLinks': self.found_links,
        }
        if self.memory_usage is not None:
            data['memoryUsage'] = self.memory_usage.to_dict()
        return data


@dataclass
class ResultEvent:
    url: str
    title: str
    links: List[str] = field(default_factory=list)
    metadata: Dict[str, str] = field(default_factory=dict)

    type = "result"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type,
            'url': self.url,
            'title': self.title,
            'links': list(self.links),
            'metadata': dict(self.metadata),
        }


@dataclass
class ErrorEvent:
    message: str
    memory_usage: Optional[MemoryUsage] = None

    type = "error"

    def to_dict(self) -> Dict[str, Any]:
        data = {'type': self.type, 'message': self.message}
        if self.memory_usage is not None:
            data['memoryUsage'] = self.memory_usage.to_dict()
        return data


@dataclass
class CompleteEvent:
    total_time: float
    pages_per_second: float
    processed_pages: int
    found_links: int
    memory_before: Optional[int]
    memory_after: Optional[int]

    type = "complete"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type,
            'stats': {
                'totalTime': self.total_time,
                'pagesPerSecond': self.pages_per_second,
                'processedPages': self.processed_pages,
                'foundLinks': self.found_links,
                'memoryBefore': self.memory_before,
                'memoryAfter': self.memory_after,
            },
        }


CrawlEvent = Union[ProgressEvent, ResultEvent, ErrorEvent, CompleteEvent]

_END = object()


class Subscription:
    """Async iterator over the events of one subscriber."""

    def __init__(self, channel: "EventChannel", maxsize: int = 0):
        self._channel = channel
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    async def get(self) -> Optional[CrawlEvent]:
        """Next event, or None once the channel is closed."""
        if self._closed:
            return None
        item = await self._queue.get()
        if item is _END:
            self._closed = True
            return None
        return item

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> CrawlEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event

    def unsubscribe(self) -> None:
        """
        Stop receiving events. Pending events are discarded, which also
        releases a publisher waiting on this subscriber's full queue.
        """
        self._channel._remove(self)
        self._closed = True
        while not self._queue.empty():
            self._queue.get_nowait()

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.unsubscribe()


class EventChannel:
    """
    Publish/subscribe fan-out for crawl events.

    ``maxsize`` bounds each subscriber queue. With a bound, ``publish`` and
    ``close`` wait for slow subscribers instead of buffering without limit,
    so a subscriber that stops reading must ``unsubscribe()``. Otherwise the
    crawl blocks on its full queue. ``async with channel.subscribe() as sub``
    unsubscribes on exit, including when the loop is left early.
    """

    def __init__(self, maxsize: int = 0):
        self.maxsize = maxsize
        self._subscribers: List[Subscription] = []
        self._closed = False
        self.published = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self) -> Subscription:
        if self._closed:
            raise RuntimeError("EventChannel is closed")
        subscription = Subscription(self, maxsize=self.maxsize)
        self._subscribers.append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)

    async def publish(self, event: CrawlEvent) -> None:
        if self._closed:
            logger.debug(f"[EVENTS] Dropping {event.type} event on closed channel")
            return
        self.published += 1
        for subscription in list(self._subscribers):
            await subscription._queue.put(event)

    async def close(self) -> None:
        """Signal end-of-stream to every subscriber."""
        if self._closed:
            return
        self._closed = True
        for subscription in list(self._subscribers):
            await subscription._queue.put(_END)
