#!/usr/bin/env python3
"""
explainxkcd Comic Scraper
=========================

Builds a JSON catalogue of every xkcd comic from the explainxkcd wiki: title,
canonical xkcd.com link, wiki page, image link, alt text and transcript.

Pipeline:
- `[INDEX]`  fetch "List of all comics" and collect the per-range listing pages
- `[LIST]`   fetch every listing page and read one row per comic
- `[DETAIL]` fetch every comic's wiki page (chunked, concurrent) for alt text
             and transcript
- sort by comic number and write one JSON array

The crawl is all-or-nothing by default: a single failed request or a page whose
markup no longer matches aborts the run and nothing is written. `--retries`
and `--skip-failed` relax this explicitly.

Usage Examples:
```bash
# Full crawl into comics.json
python scrape_explainxkcd.py

# Gentler crawl with retries, writing elsewhere
python scrape_explainxkcd.py --output data/comics.json --concurrency 4 --retries 2
```
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Protocol, Sequence, TypeVar
from urllib.parse import urljoin

import aiohttp
from tqdm import tqdm

from xkcd_config import CrawlConfig, default_data_path, index_url_for, load_config
from xkcd_extract import (
    assemble_record,
    extract_listing_rows,
    extract_listing_urls,
    parse_html,
)
from xkcd_models import (
    ComicInfo,
    ComicListing,
    CrawlError,
    ExtractionError,
    TransportError,
)
from xkcd_store import save_comics

logger = logging.getLogger("explainxkcd.scrape")

Fetch = Callable[[str], Awaitable[str]]
T = TypeVar("T")


# ---------------- Policy / progress ----------------

@dataclass
class CrawlPolicy:
    """How the crawl reacts to failures.

    The defaults are strictly fail-fast: no retries, and any failing comic
    aborts the whole crawl. `skip_failed_items` only applies to detail pages;
    the index and listing pages are always required.
    """

    retries: int = 0
    backoff_seconds: float = 1.0
    skip_failed_items: bool = False


class ProgressSink(Protocol):
    def report(self, completed: int, total: int) -> None:
        ...


class TqdmProgress:
    """Progress sink drawing a tqdm bar on stderr."""

    def __init__(self, desc: str = "comics", quiet: bool = False):
        self.bar = tqdm(total=0, desc=desc, unit="page", disable=quiet)

    def report(self, completed: int, total: int) -> None:
        if self.bar.total != total:
            self.bar.total = total
        self.bar.update(completed - self.bar.n)

    def close(self) -> None:
        self.bar.close()


def _report(progress: Optional[ProgressSink], completed: int, total: int) -> None:
    if progress is None:
        return
    try:
        progress.report(completed, total)
    except Exception:  # pylint: disable=broad-except
        logger.debug("progress sink failed at %d/%d", completed, total, exc_info=True)


# ---------------- Fetch ----------------

class PageFetcher:
    """Fetch pages through one shared aiohttp session."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        timeout_s: float,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.session = session
        self.timeout = aiohttp.ClientTimeout(total=timeout_s)
        self.headers = headers

    async def __call__(self, url: str) -> str:
        try:
            async with self.session.get(url, headers=self.headers, timeout=self.timeout) as r:
                if r.status != 200:
                    raise TransportError(f"HTTP {r.status}", url)
                try:
                    return await r.text()
                except UnicodeDecodeError as exc:
                    raise TransportError(f"undecodable body (charset {r.charset})", url) from exc
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransportError(f"request failed: {exc!r}", url) from exc


async def fetch_page(fetch: Fetch, url: str, policy: CrawlPolicy) -> str:
    """Fetch one page, re-issuing it on TransportError as the policy allows."""
    attempt = 0
    while True:
        try:
            return await fetch(url)
        except TransportError as exc:
            if attempt >= policy.retries:
                raise
            delay = policy.backoff_seconds * (2 ** attempt)
            attempt += 1
            logger.warning(
                "[RETRY] %s (attempt %d/%d, sleeping %.1fs)", exc, attempt, policy.retries, delay
            )
            await asyncio.sleep(delay)


# ---------------- Stages ----------------

async def get_listing_urls(fetch: Fetch, config: CrawlConfig, policy: CrawlPolicy) -> List[str]:
    html = await fetch_page(fetch, config.index_url, policy)
    try:
        urls = extract_listing_urls(parse_html(html), config.base_url)
    except ExtractionError as exc:
        exc.url = exc.url or config.index_url
        raise
    logger.info("[INDEX] %s -> %d listing pages", config.index_url, len(urls))
    return urls


async def get_listings(fetch: Fetch, urls: Sequence[str], policy: CrawlPolicy) -> List[ComicListing]:
    """Read every listing page in turn and pool their rows."""
    listings: List[ComicListing] = []
    seen: Dict[int, str] = {}
    for url in urls:
        html = await fetch_page(fetch, url, policy)
        rows = extract_listing_rows(parse_html(html), url)
        for row in rows:
            if row.index in seen:
                raise ExtractionError(
                    f"comic #{row.index} listed twice (first on {seen[row.index]})", url
                )
            seen[row.index] = url
        listings.extend(rows)
        logger.info("[LIST] %s -> +%d (total %d)", url, len(rows), len(listings))
    return listings


async def fetch_comic(
    fetch: Fetch, listing: ComicListing, config: CrawlConfig, policy: CrawlPolicy
) -> ComicInfo:
    detail_url = urljoin(config.base_url, listing.detail_url)
    html = await fetch_page(fetch, detail_url, policy)
    try:
        return assemble_record(listing, html, config.base_url)
    except ExtractionError as exc:
        exc.url = exc.url or detail_url
        raise


def chunked(items: Sequence[T], size: int) -> List[List[T]]:
    if size < 1:
        raise ValueError("chunk size must be positive")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


async def crawl_details(
    fetch: Fetch,
    listings: Sequence[ComicListing],
    config: CrawlConfig,
    policy: CrawlPolicy,
    progress: Optional[ProgressSink] = None,
) -> List[ComicInfo]:
    """Fetch every detail page, one task per chunk, at most `concurrency` chunks at once."""
    total = len(listings)
    semaphore = asyncio.Semaphore(max(1, config.concurrency))
    failed = asyncio.Event()
    completed = 0

    async def run_chunk(chunk: List[ComicListing]) -> List[ComicInfo]:
        nonlocal completed
        out: List[ComicInfo] = []
        async with semaphore:
            for listing in chunk:
                if failed.is_set():
                    return out
                try:
                    out.append(await fetch_comic(fetch, listing, config, policy))
                except CrawlError as exc:
                    if not policy.skip_failed_items:
                        failed.set()
                        raise
                    logger.warning("[DETAIL] skipping #%d: %s", listing.index, exc)
                completed += 1
                _report(progress, completed, total)
        return out

    chunks = chunked(listings, config.chunk_size)
    logger.info("[DETAIL] %d comics in %d chunks", total, len(chunks))
    tasks = [asyncio.create_task(run_chunk(c)) for c in chunks]

    comics: List[ComicInfo] = []
    first_error: Optional[CrawlError] = None
    try:
        for fut in asyncio.as_completed(tasks):
            try:
                comics.extend(await fut)
            except CrawlError as exc:
                if first_error is None:
                    first_error = exc
                    logger.error("[DETAIL] aborting crawl: %s", exc)
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()

    if first_error is not None:
        raise first_error
    return comics


async def crawl_comics(
    fetch: Fetch,
    config: CrawlConfig,
    policy: Optional[CrawlPolicy] = None,
    progress: Optional[ProgressSink] = None,
) -> List[ComicInfo]:
    """Run the three crawl stages and return the comics ordered by number."""
    policy = policy or CrawlPolicy()
    urls = await get_listing_urls(fetch, config, policy)
    listings = await get_listings(fetch, urls, policy)
    comics = await crawl_details(fetch, listings, config, policy, progress)
    comics.sort(key=lambda c: c.index)
    return comics


async def crawl_and_save(
    path: Path,
    config: CrawlConfig,
    policy: Optional[CrawlPolicy] = None,
    quiet: bool = False,
) -> List[ComicInfo]:
    """Crawl everything, then persist. A failed crawl writes nothing."""
    connector = aiohttp.TCPConnector(limit=max(1, config.concurrency))
    async with aiohttp.ClientSession(connector=connector) as session:
        fetch = PageFetcher(session, config.request_timeout, config.headers)
        progress = TqdmProgress(quiet=quiet)
        try:
            comics = await crawl_comics(fetch, config, policy, progress)
        finally:
            progress.close()
    save_comics(path, comics)
    logger.info("Saved %d comics to %s", len(comics), path)
    return comics


# ---------------- CLI ----------------

def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description="Crawl the explainxkcd wiki into a JSON catalogue of comics.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    io = p.add_argument_group("Inputs/Outputs")
    io.add_argument("--output", type=Path, default=None, help="Where to write the JSON array (default: $EXPLAINXKCD_DATA or comics.json)")
    io.add_argument("--base-url", type=str, default=None, help="Wiki base URL used to resolve relative links")
    io.add_argument("--index-url", type=str, default=None, help="URL of the 'List of all comics' page")

    perf = p.add_argument_group("Performance")
    perf.add_argument("--concurrency", type=int, default=None, help="Detail chunks fetched concurrently")
    perf.add_argument("--request-timeout", type=int, default=None, help="Per-request timeout (seconds)")

    pol = p.add_argument_group("Failure policy")
    pol.add_argument("--retries", type=int, default=0, help="Re-issue a failed request this many times")
    pol.add_argument("--backoff", type=float, default=1.0, help="Initial retry delay in seconds (doubles each attempt)")
    pol.add_argument("--skip-failed", action="store_true", help="Drop comics whose detail page fails instead of aborting")

    outg = p.add_argument_group("Output")
    outg.add_argument("--quiet", action="store_true", help="Only errors and the final summary; no progress bar")
    outg.add_argument("--verbose", action="store_true", help="Enable debug logging")

    return p


def config_from_args(args: argparse.Namespace) -> CrawlConfig:
    config = load_config()
    if args.base_url:
        # an index derived from the old base follows the new one
        if config.index_url == index_url_for(config.base_url):
            config.index_url = index_url_for(args.base_url)
        config.base_url = args.base_url.rstrip("/")
    if args.index_url:
        config.index_url = args.index_url
    if args.concurrency is not None:
        config.concurrency = args.concurrency
    if args.request_timeout is not None:
        config.request_timeout = args.request_timeout
    return config


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)
    level = logging.DEBUG if args.verbose else logging.INFO
    if args.quiet and not args.verbose:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )

    try:
        config = config_from_args(args)
    except ValueError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    policy = CrawlPolicy(
        retries=max(0, args.retries),
        backoff_seconds=args.backoff,
        skip_failed_items=args.skip_failed,
    )
    output = args.output or default_data_path()
    if policy.skip_failed_items:
        logger.warning("--skip-failed set: comics with failing detail pages will be missing")

    try:
        comics = asyncio.run(crawl_and_save(output, config, policy, quiet=args.quiet))
    except CrawlError as exc:
        print(f"ERROR: crawl aborted, nothing written: {exc}", file=sys.stderr)
        return 1
    except OSError as exc:
        print(f"ERROR: could not write {output}: {exc}", file=sys.stderr)
        return 1

    print(f"Done. {len(comics)} comics written to {output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
