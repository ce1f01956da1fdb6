"""
Exception hierarchy for the documentation crawler.

Only crawl-level failures are raised. Per-page problems never surface as
exceptions; they are captured in ``FetchFailure`` outcomes instead.
"""

from typing import Optional


class DocCrawlerError(Exception):
    """Base exception for all doc_crawler errors."""

    def __init__(self, message: str, cause: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause


class CrawlError(DocCrawlerError):
    """A crawl was aborted before it could complete."""


class PoolInitError(CrawlError):
    """One of the pooled browsers failed to launch."""


class ConfigurationError(DocCrawlerError):
    """Invalid crawler configuration."""
