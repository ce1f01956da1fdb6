"""
Memory Monitor
==============
Samples the crawler process's resident memory and triggers a garbage
collection pass when usage crosses a threshold.
"""

from __future__ import annotations

import gc
import logging
from dataclasses import dataclass
from typing import Callable, Optional

import psutil

logger = logging.getLogger(__name__)

_MB = 1024 * 1024


@dataclass
class MemoryUsage:
    """Point-in-time process memory reading, in bytes."""
    heap_used: int = 0
    heap_total: int = 0
    external: int = 0
    percentage_used: float = 0.0

    def to_dict(self) -> dict:
        return {
            'heapUsed': self.heap_used,
            'heapTotal': self.heap_total,
            'external': self.external,
            'percentageUsed': self.percentage_used,
        }


class MemoryMonitor:
    """
    Process memory sampling with a pressure threshold.

    ``reclaim`` is the reclamation hook run under pressure. It defaults to
    ``gc.collect``; pass ``None`` on runtimes where nothing can be reclaimed.
    """

    _DEFAULT_RECLAIM = object()

    def __init__(
        self,
        threshold_mb: int = 1024,
        reclaim: Optional[Callable[[], object]] = _DEFAULT_RECLAIM,
        process: Optional[psutil.Process] = None,
    ):
        self.threshold_mb = threshold_mb
        self._reclaim = gc.collect if reclaim is self._DEFAULT_RECLAIM else reclaim
        self._process = process or psutil.Process()
        self.last_sample_mb: Optional[int] = None
        self.reclaim_count = 0

    def sample(self) -> int:
        """Current resident memory in whole MB."""
        rss = self._process.memory_info().rss
        self.last_sample_mb = int(round(rss / _MB))
        return self.last_sample_mb

    def under_pressure(self) -> bool:
        """Take a fresh sample and compare it with the threshold."""
        return self.sample() > self.threshold_mb

    def maybe_reclaim(self) -> bool:
        """Run the reclamation hook if under pressure. Returns True if it ran."""
        if not self.under_pressure():
            return False
        if self._reclaim is None:
            logger.debug("[MEMORY] Under pressure but no reclamation hook configured")
            return False
        try:
            self._reclaim()
        except Exception as e:
            logger.warning(f"[MEMORY] Reclamation hook failed: {e}")
            return False
        self.reclaim_count += 1
        logger.info(
            f"[MEMORY] {self.last_sample_mb} MB > {self.threshold_mb} MB - reclamation triggered"
        )
        return True

    def usage(self) -> MemoryUsage:
        """Detailed reading for progress and error events."""
        info = self._process.memory_info()
        total = getattr(info, 'vms', 0) or 0
        used = info.rss
        return MemoryUsage(
            heap_used=used,
            heap_total=total,
            external=getattr(info, 'shared', 0) or 0,
            percentage_used=round(used / total * 100, 2) if total else 0.0,
        )
