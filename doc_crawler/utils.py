"""
Utility Functions
URL validation, ordered de-duplication and retry backoff.
"""

import logging
import random
from typing import Iterable, List, Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


def is_valid_url(url: Optional[str]) -> bool:
    """Check if URL is an absolute http(s) URL."""
    if not url:
        return False
    try:
        parsed = urlparse(url)
        return all([parsed.scheme in ('http', 'https'), parsed.netloc])
    except Exception:
        return False


def ordered_unique(items: Iterable[str]) -> List[str]:
    """Drop duplicates while keeping first-seen order."""
    seen = set()
    result = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        result.append(item)
    return result


class RetryPolicy:
    """
    Bounded retry with exponential backoff for per-page fetches.

    ``max_retries`` counts *extra* attempts: 0 means a page is tried exactly
    once and never retried.
    """

    def __init__(
        self,
        max_retries: int = 0,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        exponential_base: float = 2.0,
        jitter: bool = True
    ):
        """
        Initialize the retry policy.

        Args:
            max_retries: Maximum number of extra attempts
            base_delay: Initial delay between attempts in seconds
            max_delay: Upper bound for a single delay
            exponential_base: Base for exponential backoff
            jitter: Add random jitter (+/-25%) to each delay
        """
        self.max_retries = max(0, max_retries)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter

    @property
    def attempts(self) -> int:
        """Total number of attempts, including the first one."""
        return self.max_retries + 1

    def calculate_delay(self, attempt: int) -> float:
        """
        Calculate the delay before retry number ``attempt`` (0-indexed).

        Returns:
            Delay in seconds
        """
        delay = self.base_delay * (self.exponential_base ** attempt)
        delay = min(delay, self.max_delay)

        if self.jitter:
            jitter_range = delay * 0.25
            delay += random.uniform(-jitter_range, jitter_range)

        return max(0.0, delay)

    def should_retry(self, attempt: int) -> bool:
        """True if another attempt is allowed after ``attempt`` failed."""
        return attempt < self.max_retries
