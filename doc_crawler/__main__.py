#!/usr/bin/env python3
"""
Command-line entry point for the documentation crawler.

Run with: python -m doc_crawler https://example.com/documentation/

Configuration comes from defaults, then ``DOC_CRAWLER_*`` environment
variables (a ``.env`` file is loaded first), then command-line flags.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .events import CompleteEvent, ErrorEvent, ProgressEvent, ResultEvent, Subscription
from .exceptions import DocCrawlerError
from .orchestrator import CrawlReport, DocCrawler
from .run_config import CrawlerRunConfig
from .utils import is_valid_url

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Event consumer
# ---------------------------------------------------------------------------

async def _consume(subscription: Subscription, results: List[dict], quiet: bool = False) -> None:
    """Print streamed events and collect result payloads."""
    async for event in subscription:
        if isinstance(event, ResultEvent):
            results.append(event.to_dict())
            if not quiet:
                print(f"[Page] {event.url[:70]} - {event.title[:40]!r} ({len(event.links)} links)")
        elif isinstance(event, ProgressEvent):
            if not quiet:
                print(
                    f"[Progress] {event.progress:.1%} - "
                    f"{event.processed_pages} pages, {event.found_links} links"
                )
        elif isinstance(event, ErrorEvent):
            print(f"[Error] {event.message}", file=sys.stderr)
        elif isinstance(event, CompleteEvent):
            logger.debug(f"Complete event: {event.to_dict()}")


async def _run_crawl(url: str, cfg: CrawlerRunConfig, quiet: bool = False):
    crawler = DocCrawler(cfg)
    subscription = crawler.events.subscribe()
    results: List[dict] = []
    consumer = asyncio.create_task(_consume(subscription, results, quiet=quiet))
    try:
        report = await crawler.crawl(url)
    finally:
        await consumer
    return report, results


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------

def export_json(report: CrawlReport, results: List[dict], filepath: str) -> str:
    """Export stats and page results to a single JSON document."""
    path = Path(filepath)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = {
        'stats': report.to_dict(),
        'pages': [{k: v for k, v in r.items() if k != 'type'} for r in results],
    }
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    return str(path.absolute())


def export_jsonl(results: List[dict], filepath: str) -> str:
    """Export one page result per line."""
    path = Path(filepath)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        for r in results:
            f.write(json.dumps({k: v for k, v in r.items() if k != 'type'}, ensure_ascii=False))
            f.write('\n')
    return str(path.absolute())


def print_summary(report: CrawlReport) -> None:
    """Print crawl summary."""
    print("\n" + "=" * 65)
    print("CRAWL COMPLETE")
    print("=" * 65)
    print(f"  Pages processed:     {report.processed_pages}")
    print(f"  Failed pages:        {report.failed_pages}")
    print(f"  Links found:         {report.found_links}")
    print(f"  Total time:          {report.total_time:.1f}s")
    print(f"  Overall speed:       {report.pages_per_second:.2f} pages/sec")
    print(f"  Memory before/after: {report.memory_before} MB / {report.memory_after} MB")
    print(f"  Stop reason:         {report.stop_reason}")
    print("=" * 65)


# ---------------------------------------------------------------------------
# Flag-driven entry point
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='python -m doc_crawler',
        description='Documentation crawler - batch-synchronized Playwright crawl',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m doc_crawler https://example.com/documentation/
  python -m doc_crawler https://example.com/documentation/ --batch-size 8 --pool-size 4
  python -m doc_crawler https://example.com/documentation/ --output-json out.json
        """
    )
    parser.add_argument('url', help='Start URL of the documentation site')
    parser.add_argument('--batch-size', type=int, help='URLs fetched per batch (default: 5)')
    parser.add_argument('--pool-size', type=int, help='Number of browsers (default: 3)')
    parser.add_argument('--rate-ms', type=int, help='Pause between batches in ms (default: 1000)')
    parser.add_argument('--timeout-ms', type=int, help='Navigation timeout per page in ms (default: 30000)')
    parser.add_argument('--max-retries', type=int, help='Extra attempts per failed page (default: 0)')
    parser.add_argument('--max-pages', type=int, help='Stop after dispatching this many URLs (default: no cap)')
    parser.add_argument('--headful', action='store_true', help='Show browser windows')
    parser.add_argument('--output-json', type=str, help='JSON output file path')
    parser.add_argument('--output-jsonl', type=str, help='JSONL output file path (one page per line)')
    parser.add_argument('-q', '--quiet', action='store_true', help='Only print the final summary')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()

    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%H:%M:%S'
    )

    url = args.url
    if not url.startswith(('http://', 'https://')):
        url = 'https://' + url
    if not is_valid_url(url):
        print(f"Error: invalid URL {args.url!r}", file=sys.stderr)
        return 1

    try:
        cfg = CrawlerRunConfig.from_cli_args(args, base=CrawlerRunConfig.from_env())
    except DocCrawlerError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    cfg.log_summary(url)

    try:
        report, results = asyncio.run(_run_crawl(url, cfg, quiet=args.quiet))
    except DocCrawlerError as e:
        logger.error(f"Crawl aborted: {e.message}")
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130

    exported = []
    if args.output_json:
        exported.append(export_json(report, results, args.output_json))
    if args.output_jsonl:
        exported.append(export_jsonl(results, args.output_jsonl))
    if exported:
        print("\n" + "-" * 40)
        for path in exported:
            print(f"  Exported: {path}")
        print("-" * 40)

    print_summary(report)
    return 0


if __name__ == '__main__':
    sys.exit(main())
