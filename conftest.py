"""Canned explainxkcd pages and a fake fetcher shared by the tests."""

from typing import Dict, Iterable, List, Optional, Tuple, Union

import pytest

from xkcd_config import CrawlConfig
from xkcd_models import TransportError

BASE = "https://wiki.test"
INDEX_URL = f"{BASE}/wiki/index.php/List_of_all_comics"


def wrap_content(inner: str) -> str:
    return (
        "<html><body><div id=\"mw-content-text\"><div class=\"mw-parser-output\">"
        f"{inner}"
        "</div></div></body></html>"
    )


def heading(name: str) -> str:
    # MediaWiki renders the edit link right after the headline text.
    return (
        f"<h2><span class=\"mw-headline\" id=\"{name}\">{name}</span>"
        "<span class=\"mw-editsection\"><span class=\"mw-editsection-bracket\">[</span>"
        f"<a href=\"/wiki/index.php?title=X&amp;action=edit\">edit</a>"
        "<span class=\"mw-editsection-bracket\">]</span></span></h2>"
    )


def index_page(paths: Iterable[str]) -> str:
    entries = "".join(f"<dd><a href=\"{p}\">{p}</a></dd>" for p in paths)
    return wrap_content(f"<p>Comics by number:</p><dl>{entries}</dl>")


def detail_path(index: int) -> str:
    return f"/wiki/index.php/{index}:_Comic_{index}"


def image_path(index: int) -> str:
    return f"/wiki/index.php/File:comic_{index}.png"


def listing_row(index: int, title: str) -> str:
    return (
        f"<tr><td><a href=\"https://xkcd.com/{index}\" class=\"external text\">xkcd.com/{index}</a></td>"
        f"<td><a href=\"{detail_path(index)}\" title=\"{index}: {title}\">{title}</a></td>"
        f"<td><a href=\"/wiki/index.php/Talk:{index}\">Talk</a></td>"
        f"<td><a href=\"{image_path(index)}\">comic_{index}.png</a></td>"
        "<td>2006-01-01</td></tr>"
    )


def listing_page(rows: Iterable[Tuple[int, str]], extra_rows: str = "") -> str:
    header = "<tr><th>XKCD</th><th>Title</th><th>Talk</th><th>Image</th><th>Date</th></tr>"
    body = "".join(listing_row(i, t) for i, t in rows)
    return wrap_content(f"<table class=\"wikitable\">{header}{body}{extra_rows}</table>")


def detail_page(
    index: int,
    alt: Optional[str] = None,
    transcript: Optional[List[str]] = None,
) -> str:
    title_attr = f" title=\"{alt}\"" if alt is not None else ""
    table = (
        "<table><tr><td>"
        f"<a href=\"{image_path(index)}\" class=\"image\"{title_attr}>"
        f"<img src=\"/wiki/images/comic_{index}.png\"/></a>"
        "</td></tr></table>"
    )
    parts = [table, heading("Explanation"), "<p>Some explanation.</p>"]
    if transcript is not None:
        parts.append(heading("Transcript"))
        parts.extend(f"<dl><dd>{line}</dd></dl>" for line in transcript)
    parts.append(heading("Discussion"))
    parts.append("<p>Comments.</p>")
    return wrap_content("".join(parts))


Response = Union[str, Exception]


class FakeFetch:
    """Async fetch callable serving canned pages; unknown URLs are a 404."""

    def __init__(self, pages: Dict[str, Response], fail_first: Optional[Dict[str, int]] = None):
        self.pages = dict(pages)
        self.fail_first = dict(fail_first or {})
        self.calls: List[str] = []

    async def __call__(self, url: str) -> str:
        self.calls.append(url)
        if self.fail_first.get(url, 0) > 0:
            self.fail_first[url] -= 1
            raise TransportError("connection reset", url)
        page = self.pages.get(url)
        if page is None:
            raise TransportError("HTTP 404", url)
        if isinstance(page, Exception):
            raise page
        return page


def build_site(listings: Dict[str, List[Tuple[int, str]]]) -> Dict[str, Response]:
    """Index + listing pages + a detail page for every comic listed."""
    pages: Dict[str, Response] = {INDEX_URL: index_page(listings.keys())}
    for path, rows in listings.items():
        pages[BASE + path] = listing_page(rows)
        for index, title in rows:
            pages[BASE + detail_path(index)] = detail_page(
                index, alt=f"alt text {index}", transcript=[f"[{title} panel]", f"Line {index}."]
            )
    return pages


@pytest.fixture
def config() -> CrawlConfig:
    return CrawlConfig(base_url=BASE, index_url=INDEX_URL, concurrency=2, chunk_size=2)


@pytest.fixture
def site() -> Dict[str, Response]:
    return build_site({
        "/wiki/index.php/List_of_all_comics_(4-5)": [(5, "Blown apart"), (4, "Landscape")],
        "/wiki/index.php/List_of_all_comics_(1-3)": [(1, "Barrel - Part 1"), (2, "Petit Trees"), (3, "Island")],
    })
