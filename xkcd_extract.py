"""Extraction rules for explainxkcd wiki pages.

Three page shapes are understood:

- the master "List of all comics" page, whose definition list links to the
  per-range listing pages;
- a listing page, whose table holds one row per comic (canonical link,
  title/detail link, talk link, image link);
- a comic's detail page, which carries the alt text on the image link and a
  "Transcript" section in the running text.

All functions are pure; anything structurally missing that the crawl cannot
do without raises ExtractionError.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Optional, Tuple
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from xkcd_models import ComicInfo, ComicListing, ExtractionError

CONTENT_SELECTOR = "#mw-content-text > .mw-parser-output"
TRANSCRIPT_MARKER = "Transcript[edit]"
SECTION_SUFFIX = "[edit]"

_INDEX_RE = re.compile(r"[0-9]+")


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def content_region(soup: BeautifulSoup) -> Optional[Tag]:
    return soup.select_one(CONTENT_SELECTOR)


def extract_link(node: Tag) -> str:
    """Return the node's own href, or the first href found below it."""
    href = node.get("href")
    if href:
        return href
    inner = node.find(href=True)
    if inner is not None and inner.get("href"):
        return inner["href"]
    raise ExtractionError(f"no link found in node <{node.name}>: {str(node)[:200]}")


# ---------------- Master index ----------------

def extract_listing_urls(soup: BeautifulSoup, base_url: str) -> List[str]:
    """Links to every listing page, in document order."""
    entries = soup.select(f"{CONTENT_SELECTOR} > dl > dd")
    if not entries:
        raise ExtractionError("master index has no listing entries (dl > dd)")
    return [urljoin(base_url, extract_link(dd)) for dd in entries]


# ---------------- Listing pages ----------------

def parse_canonical_cell(text: str) -> Tuple[str, int]:
    """Split the first column ("xkcd.com/123") into (canonical_url, index)."""
    text = text.strip()
    if "/" not in text:
        raise ExtractionError(f"canonical link has no path segment: {text!r}")
    segment = text.rstrip("/").rsplit("/", 1)[-1]
    if not _INDEX_RE.fullmatch(segment):
        raise ExtractionError(f"canonical link has no numeric index: {text!r}")
    url = text if re.match(r"(?i)^https?://", text) else f"https://{text}"
    return url, int(segment)


def listing_from_row(row: Tag) -> ComicListing:
    cells = row.find_all("td")
    if len(cells) < 4:
        raise ExtractionError(f"listing row has {len(cells)} cells, expected 4")
    # Column 3 is the talk page link; nothing is taken from it.
    c1, c2, _, c4 = cells[:4]

    canonical_url, index = parse_canonical_cell(c1.get_text())

    anchor = c2.find("a")
    if anchor is None:
        raise ExtractionError(f"listing row for #{index} has no title link")

    return ComicListing(
        index=index,
        title=anchor.get_text(),
        detail_url=extract_link(anchor),
        canonical_url=canonical_url,
        image_url=extract_link(c4),
    )


def extract_listing_rows(soup: BeautifulSoup, page_url: str = "") -> List[ComicListing]:
    """Every comic row of a listing page. Any malformed row fails the page."""
    content = content_region(soup)
    tables = content.find_all("table", recursive=False) if content else []
    if not tables:
        raise ExtractionError("listing page has no comic table", page_url or None)

    rows = [tr for table in tables for tr in table.find_all("tr")]
    listings: List[ComicListing] = []
    for row in rows[1:]:  # header row
        try:
            listings.append(listing_from_row(row))
        except ExtractionError as exc:
            if exc.url is None and page_url:
                exc.url = page_url
            raise
    return listings


# ---------------- Detail pages ----------------

def extract_alt_text(soup: BeautifulSoup, image_url: str) -> Optional[str]:
    """Title attribute of the comic table's link to the image, if any."""
    content = content_region(soup)
    if content is None:
        return None
    for table in content.find_all("table", recursive=False):
        link = table.find(href=image_url)
        if link is not None:
            return link.get("title")
    return None


def _ends_section(text: str) -> bool:
    return not text or text.isspace() or text.endswith(SECTION_SUFFIX)


def transcript_from_texts(texts: Iterable[str]) -> Optional[str]:
    """Join the texts between the transcript heading and the next section."""
    lines: List[str] = []
    in_transcript = False
    for text in texts:
        if not in_transcript:
            in_transcript = text == TRANSCRIPT_MARKER
            continue
        if _ends_section(text):
            break
        lines.append(text)
    return "\n".join(lines) if lines else None


def extract_transcript(soup: BeautifulSoup) -> Optional[str]:
    content = content_region(soup)
    if content is None:
        return None
    nodes = content.find_all(["h2", "dl", "p"], recursive=False)
    return transcript_from_texts(node.get_text() for node in nodes)


# ---------------- Assembly ----------------

def assemble_record(listing: ComicListing, html: str, base_url: str) -> ComicInfo:
    """Combine a listing row with its detail page into the final record."""
    soup = parse_html(html)
    return ComicInfo(
        index=listing.index,
        title=listing.title,
        transcript=extract_transcript(soup),
        alt_text=extract_alt_text(soup, listing.image_url),
        canonical_url=listing.canonical_url,
        wiki_url=urljoin(base_url, listing.detail_url),
        image_url=listing.image_url,
    )
