"""Data models and error types shared by the crawler and the search tool."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


# ---------------- Errors ----------------

class CrawlError(Exception):
    """Any failure that aborts (part of) a crawl."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url

    def __str__(self) -> str:
        msg = super().__str__()
        return f"{msg} ({self.url})" if self.url else msg


class TransportError(CrawlError):
    """Network or HTTP failure while fetching a page."""


class ExtractionError(CrawlError):
    """A page no longer has the structure the extraction rules expect."""


class StoreError(OSError):
    """The persisted comic collection could not be read back."""


# ---------------- Records ----------------

@dataclass
class ComicListing:
    """One row of a "List of all comics" table, before the detail page is read."""

    index: int
    title: str
    detail_url: str
    canonical_url: str
    image_url: str


@dataclass(frozen=True)
class ComicInfo:
    """A fully assembled comic record, as persisted and searched."""

    index: int
    title: str
    transcript: Optional[str]
    alt_text: Optional[str]
    canonical_url: str
    wiki_url: str
    image_url: str


class Location(Enum):
    """Searchable fields of a ComicInfo."""

    TITLE = "title"
    TRANSCRIPT = "transcript"
    ALT_TEXT = "alt_text"

    @classmethod
    def parse(cls, name: str) -> "Location":
        key = name.strip().lower().replace("-", "_")
        if key in ("alt", "alttext"):
            key = "alt_text"
        try:
            return cls(key)
        except ValueError:
            raise ValueError(
                f"unknown field {name!r} (expected title, transcript or alt)"
            ) from None

    def get(self, comic: ComicInfo) -> Optional[str]:
        if self is Location.TITLE:
            return comic.title
        if self is Location.TRANSCRIPT:
            return comic.transcript
        return comic.alt_text


# Fixed priority used when deciding which field a match is reported on.
LOCATION_ORDER: Tuple[Location, ...] = (
    Location.TITLE,
    Location.TRANSCRIPT,
    Location.ALT_TEXT,
)
