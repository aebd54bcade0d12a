#!/usr/bin/env python3
"""
Search the explainxkcd Comic Catalogue
======================================

Finds comics whose title, transcript or alt text contains any of the given
strings (case-insensitive, literal substrings). Each comic is reported at most
once, on the first field that matches in the order title, transcript, alt text.

Usage Examples:
```bash
# One-shot search over every field
python search_comics.py robot "soup can"

# Titles only, reading queries interactively
python search_comics.py --field title
```
"""

from __future__ import annotations

import argparse
import logging
import re
import shlex
import sys
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import FrozenSet, Iterable, List, Optional, Sequence

from xkcd_config import default_data_path
from xkcd_models import LOCATION_ORDER, ComicInfo, Location, StoreError
from xkcd_store import load_comics

logger = logging.getLogger("explainxkcd.search")

SEARCH_CHUNK_SIZE = 256


class SearchQuery:
    """A compiled set of search strings plus the fields they apply to.

    Built once and shared read-only by every evaluation.
    """

    def __init__(self, patterns: Iterable[str], locations: Iterable[Location] = LOCATION_ORDER):
        cleaned = {p for p in patterns if p}
        if not cleaned:
            raise ValueError("a search needs at least one non-empty pattern")
        self.patterns: FrozenSet[str] = frozenset(cleaned)
        self.locations: FrozenSet[Location] = frozenset(locations)
        if not self.locations:
            raise ValueError("a search needs at least one field to look in")
        # Longest first so overlapping literals still match the widest one.
        alternation = "|".join(
            re.escape(p) for p in sorted(self.patterns, key=lambda p: (-len(p), p))
        )
        self._matcher = re.compile(alternation, re.IGNORECASE)

    def is_match(self, text: str) -> bool:
        return self._matcher.search(text) is not None

    def enabled(self, location: Location) -> bool:
        return location in self.locations

    def __repr__(self) -> str:
        fields = ",".join(l.value for l in LOCATION_ORDER if l in self.locations)
        return f"SearchQuery(patterns={sorted(self.patterns)!r}, fields={fields})"


@dataclass(frozen=True)
class SearchResult:
    comic: ComicInfo
    location: Location


def match_comic(query: SearchQuery, comic: ComicInfo) -> Optional[SearchResult]:
    """First enabled, present field that matches, in priority order."""
    for location in LOCATION_ORDER:
        if not query.enabled(location):
            continue
        text = location.get(comic)
        if text is None:
            continue
        if query.is_match(text):
            return SearchResult(comic, location)
    return None


def _search_chunk(query: SearchQuery, comics: Sequence[ComicInfo]) -> List[SearchResult]:
    results = []
    for comic in comics:
        result = match_comic(query, comic)
        if result is not None:
            results.append(result)
    return results


def search(
    query: SearchQuery,
    comics: Sequence[ComicInfo],
    workers: Optional[int] = None,
) -> List[SearchResult]:
    """Evaluate the query over every comic, chunked across a thread pool.

    Each worker returns its own result list and the lists are merged here, so
    the outcome does not depend on scheduling. Result order is unspecified.
    Matching holds the GIL, so this partitions the work but does not speed it up.
    """
    if not comics:
        return []
    chunks = [comics[i : i + SEARCH_CHUNK_SIZE] for i in range(0, len(comics), SEARCH_CHUNK_SIZE)]
    results: List[SearchResult] = []
    with ThreadPoolExecutor(max_workers=workers) as pool:
        for part in pool.map(lambda chunk: _search_chunk(query, chunk), chunks):
            results.extend(part)
    logger.debug("%r matched %d/%d comics", query, len(results), len(comics))
    return results


# ---------------- CLI ----------------

FIELD_LABELS = {
    Location.TITLE: "title",
    Location.TRANSCRIPT: "transcript",
    Location.ALT_TEXT: "alt text",
}


def format_result(result: SearchResult) -> str:
    c = result.comic
    return f"#{c.index} {c.title} [{FIELD_LABELS[result.location]}] {c.canonical_url}"


def print_results(results: List[SearchResult], out=None) -> None:
    out = out or sys.stdout
    for result in sorted(results, key=lambda r: r.comic.index):
        print(format_result(result), file=out)
    print(f"{len(results)} comic(s) found", file=out)


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description="Search the scraped explainxkcd catalogue by title, transcript or alt text.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    p.add_argument("patterns", nargs="*", help="Strings to look for; without any, read queries from stdin")
    p.add_argument("--data", type=Path, default=None, help="Comic JSON written by scrape_explainxkcd.py (default: $EXPLAINXKCD_DATA or comics.json)")
    p.add_argument(
        "--field",
        dest="fields",
        action="append",
        type=Location.parse,
        default=None,
        help="Restrict the search to a field (title, transcript, alt); repeatable",
    )
    p.add_argument("--workers", type=int, default=None, help="Worker threads used per search")
    p.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return p


def interactive(comics: List[ComicInfo], locations: Sequence[Location], workers: Optional[int]) -> None:
    while True:
        try:
            line = input("search> ")
        except EOFError:
            break
        line = line.strip()
        if not line:
            break
        try:
            query = SearchQuery(shlex.split(line), locations)
        except ValueError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            continue
        print_results(search(query, comics, workers))


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )
    locations = tuple(args.fields) if args.fields else LOCATION_ORDER
    data_path = args.data or default_data_path()

    try:
        comics = load_comics(data_path)
    except (StoreError, OSError) as exc:
        print(f"ERROR: could not load {data_path}: {exc}", file=sys.stderr)
        return 1
    logger.debug("Loaded %d comics from %s", len(comics), data_path)

    if not args.patterns:
        interactive(comics, locations, args.workers)
        return 0

    try:
        query = SearchQuery(args.patterns, locations)
    except ValueError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    print_results(search(query, comics, args.workers))
    return 0


if __name__ == "__main__":
    sys.exit(main())
