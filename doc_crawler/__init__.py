"""
Documentation Crawler Package
Batch-synchronized Playwright crawler for a documentation site's navigation.

CLI Usage:
    python -m doc_crawler <url> [options]

    Options:
        --batch-size    URLs fetched concurrently per batch (default: 5)
        --pool-size     Browsers in the pool (default: 3)
        --rate-ms       Pause between batches in ms (default: 1000)
        --timeout-ms    Navigation timeout per page in ms (default: 30000)
        --max-retries   Extra attempts per failed page (default: 0)
        --max-pages     Stop after dispatching this many URLs
        --headful       Show browser windows
        --output-json   Export results to JSON file
        --output-jsonl  Export results to JSONL file
"""

from .browser_pool import BrowserPool
from .events import (
    CompleteEvent,
    ErrorEvent,
    EventChannel,
    ProgressEvent,
    ResultEvent,
    Subscription,
)
from .exceptions import ConfigurationError, CrawlError, DocCrawlerError, PoolInitError
from .extractor import ExtractionPolicy, FetchFailure, FetchSuccess, PageExtractor
from .frontier import UrlFrontier, UrlState
from .memory import MemoryMonitor, MemoryUsage
from .orchestrator import CrawlReport, DocCrawler
from .run_config import CrawlerRunConfig
from .session import CrawlSession, CrawlState, CrawlStats

__all__ = [
    'DocCrawler',
    'CrawlReport',
    'CrawlerRunConfig',
    # Components
    'UrlFrontier',
    'UrlState',
    'BrowserPool',
    'PageExtractor',
    'ExtractionPolicy',
    'FetchSuccess',
    'FetchFailure',
    'MemoryMonitor',
    'MemoryUsage',
    'CrawlSession',
    'CrawlState',
    'CrawlStats',
    # Events
    'EventChannel',
    'Subscription',
    'ProgressEvent',
    'ResultEvent',
    'ErrorEvent',
    'CompleteEvent',
    # Errors
    'DocCrawlerError',
    'CrawlError',
    'PoolInitError',
    'ConfigurationError',
]

__version__ = '1.0.0'
