"""
Unified Run Configuration
=========================
Single source of truth for every crawler default.

Values are process-level: the CLI or the hosting service builds one
``CrawlerRunConfig`` at startup, and a crawl request only carries the start
URL. Environment variables (``DOC_CRAWLER_*``) override the defaults via
``CrawlerRunConfig.from_env()``.
"""

from __future__ import annotations

import logging
import os
from dataclasses import MISSING, dataclass, field, fields
from typing import List, Mapping, Optional

from .exceptions import ConfigurationError
from .extractor import (
    DEFAULT_BLOCKED_RESOURCE_TYPES,
    DEFAULT_LINK_MARKER,
    DEFAULT_LINK_SELECTORS,
    DEFAULT_READY_SELECTORS,
    ExtractionPolicy,
)
from .utils import RetryPolicy

logger = logging.getLogger(__name__)

ENV_PREFIX = "DOC_CRAWLER_"


# ---------------------------------------------------------------------------
# Canonical defaults
# ---------------------------------------------------------------------------
_DEFAULTS = {
    "rate_limit_ms": 1000,          # pause between batches
    "max_retries": 0,               # extra attempts per failed page
    "retry_base_delay": 1.0,        # seconds, doubled per retry
    "max_concurrent": 5,            # hard cap on batch size
    "timeout_ms": 30000,            # navigation timeout per page
    "pool_size": 3,                 # browsers in the pool
    "batch_size": 5,                # URLs fetched together
    "memory_threshold_mb": 1024,    # reclamation threshold
    "ready_timeout_ms": 3000,       # content-ready ceiling
    "headless": True,
    "max_pages": 0,                 # 0 = no cap
}


@dataclass
class CrawlerRunConfig:
    """
    Configuration consumed by the orchestrator, pool and extractor.

    Populate via:
      - ``CrawlerRunConfig()``                 -> all defaults
      - ``CrawlerRunConfig(batch_size=10)``    -> override one value
      - ``CrawlerRunConfig.from_env()``        -> DOC_CRAWLER_* overrides
      - ``CrawlerRunConfig.from_cli_args(ns)`` -> argparse Namespace
    """

    # ---- Pacing ----
    rate_limit_ms: int = _DEFAULTS["rate_limit_ms"]
    max_retries: int = _DEFAULTS["max_retries"]
    retry_base_delay: float = _DEFAULTS["retry_base_delay"]

    # ---- Concurrency ----
    max_concurrent: int = _DEFAULTS["max_concurrent"]
    pool_size: int = _DEFAULTS["pool_size"]
    batch_size: int = _DEFAULTS["batch_size"]

    # ---- Page loading ----
    timeout_ms: int = _DEFAULTS["timeout_ms"]
    ready_timeout_ms: int = _DEFAULTS["ready_timeout_ms"]
    ready_selectors: List[str] = field(default_factory=lambda: list(DEFAULT_READY_SELECTORS))
    link_selectors: List[str] = field(default_factory=lambda: list(DEFAULT_LINK_SELECTORS))
    link_marker: str = DEFAULT_LINK_MARKER
    blocked_resource_types: List[str] = field(
        default_factory=lambda: list(DEFAULT_BLOCKED_RESOURCE_TYPES)
    )
    headless: bool = _DEFAULTS["headless"]

    # ---- Limits ----
    memory_threshold_mb: int = _DEFAULTS["memory_threshold_mb"]
    max_pages: int = _DEFAULTS["max_pages"]

    @property
    def effective_batch_size(self) -> int:
        return max(1, min(self.batch_size, self.max_concurrent))

    def validate(self) -> "CrawlerRunConfig":
        positive = ("max_concurrent", "pool_size", "batch_size", "timeout_ms")
        for name in positive:
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be > 0 (got {getattr(self, name)})")
        non_negative = (
            "rate_limit_ms", "max_retries", "retry_base_delay",
            "ready_timeout_ms", "memory_threshold_mb", "max_pages",
        )
        for name in non_negative:
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must be >= 0 (got {getattr(self, name)})")
        if not self.link_marker:
            raise ConfigurationError("link_marker must not be empty")
        return self

    # -----------------------------------------------------------------------
    # Factory helpers
    # -----------------------------------------------------------------------
    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "CrawlerRunConfig":
        """Build config from ``DOC_CRAWLER_<FIELD>`` environment variables."""
        env = os.environ if environ is None else environ
        overrides = {}
        for f in fields(cls):
            raw = env.get(ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            overrides[f.name] = _coerce(f.name, raw, cls._field_default(f))
        return cls(**overrides).validate()

    @staticmethod
    def _field_default(f):
        if f.default_factory is not MISSING:
            return f.default_factory()
        return f.default

    @classmethod
    def from_cli_args(cls, args, base: Optional["CrawlerRunConfig"] = None) -> "CrawlerRunConfig":
        """Overlay argparse values (``None`` = keep base) onto ``base``."""
        cfg = base or cls()
        mapping = {
            "batch_size": "batch_size",
            "pool_size": "pool_size",
            "rate_ms": "rate_limit_ms",
            "timeout_ms": "timeout_ms",
            "max_retries": "max_retries",
            "max_pages": "max_pages",
        }
        for arg_name, field_name in mapping.items():
            value = getattr(args, arg_name, None)
            if value is not None:
                setattr(cfg, field_name, value)
        if getattr(args, "headful", False):
            cfg.headless = False
        if getattr(args, "batch_size", None) is not None:
            # an explicit batch size also lifts the concurrency cap
            cfg.max_concurrent = max(cfg.max_concurrent, cfg.batch_size)
        return cfg.validate()

    # -----------------------------------------------------------------------
    # Converters
    # -----------------------------------------------------------------------
    def to_extraction_policy(self) -> ExtractionPolicy:
        return ExtractionPolicy(
            navigation_timeout_ms=self.timeout_ms,
            ready_selectors=list(self.ready_selectors),
            ready_timeout_ms=self.ready_timeout_ms,
            link_selectors=list(self.link_selectors),
            link_marker=self.link_marker,
            blocked_resource_types=list(self.blocked_resource_types),
        )

    def to_retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_retries=self.max_retries, base_delay=self.retry_base_delay)

    # -----------------------------------------------------------------------
    # Logging helper
    # -----------------------------------------------------------------------
    def log_summary(self, url: str) -> None:
        """Emit a structured summary to the logger."""
        logger.info("=" * 60)
        logger.info("CRAWL RUN CONFIG")
        logger.info("=" * 60)
        logger.info(f"  URL:              {url}")
        logger.info(f"  Batch Size:       {self.effective_batch_size}")
        logger.info(f"  Browser Pool:     {self.pool_size} (headless={self.headless})")
        logger.info(f"  Rate Limit:       {self.rate_limit_ms}ms between batches")
        logger.info(f"  Timeout:          {self.timeout_ms}ms per page")
        logger.info(f"  Ready Gate:       {', '.join(self.ready_selectors)} ({self.ready_timeout_ms}ms)")
        logger.info(f"  Max Retries:      {self.max_retries}")
        logger.info(f"  Memory Threshold: {self.memory_threshold_mb} MB")
        if self.max_pages:
            logger.info(f"  Max Pages:        {self.max_pages}")
        logger.info("=" * 60)


def _coerce(name: str, raw: str, default):
    """Parse an environment string into the type of ``default``."""
    try:
        if isinstance(default, bool):
            lowered = raw.strip().lower()
            if lowered in ("1", "true", "yes", "on"):
                return True
            if lowered in ("0", "false", "no", "off"):
                return False
            raise ValueError(raw)
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, float):
            return float(raw)
        if isinstance(default, list):
            return [part.strip() for part in raw.split(",") if part.strip()]
        return raw
    except ValueError as e:
        raise ConfigurationError(f"Invalid value for {ENV_PREFIX}{name.upper()}: {raw!r}", cause=e) from e
