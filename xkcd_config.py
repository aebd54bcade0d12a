"""Crawl configuration: defaults, .env overrides and the CrawlConfig object."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv

# ---------------- Defaults ----------------
URL_BASE = "https://www.explainxkcd.com"
FULL_COMICS_LIST_URL = f"{URL_BASE}/wiki/index.php/List_of_all_comics"

CHUNK_SIZE = 10
DEFAULT_CONCURRENCY = 16
DEFAULT_TIMEOUT = 30
DEFAULT_OUTPUT = Path("comics.json")

HEADERS = {
    "User-Agent": (
        "explainxkcd-dataset/0.1 "
        "(+https://www.explainxkcd.com/wiki/index.php/List_of_all_comics)"
    )
}


@dataclass
class CrawlConfig:
    """Settings that control where and how hard the crawler hits the wiki."""

    base_url: str = URL_BASE
    index_url: str = FULL_COMICS_LIST_URL
    concurrency: int = DEFAULT_CONCURRENCY
    request_timeout: int = DEFAULT_TIMEOUT
    chunk_size: int = CHUNK_SIZE
    headers: Dict[str, str] = field(default_factory=lambda: dict(HEADERS))


def index_url_for(base_url: str) -> str:
    """The "List of all comics" page on a wiki served from `base_url`."""
    return FULL_COMICS_LIST_URL.replace(URL_BASE, base_url.rstrip("/"), 1)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def load_config(env_file: Optional[Path] = None) -> CrawlConfig:
    """Build a CrawlConfig from defaults, a .env file and the environment."""
    load_dotenv(env_file)
    base_url = os.getenv("EXPLAINXKCD_BASE_URL", URL_BASE).rstrip("/")
    index_url = os.getenv("EXPLAINXKCD_INDEX_URL")
    if not index_url:
        index_url = index_url_for(base_url)
    return CrawlConfig(
        base_url=base_url,
        index_url=index_url,
        concurrency=_env_int("EXPLAINXKCD_CONCURRENCY", DEFAULT_CONCURRENCY),
        request_timeout=_env_int("EXPLAINXKCD_TIMEOUT", DEFAULT_TIMEOUT),
    )


def default_data_path() -> Path:
    load_dotenv()
    return Path(os.getenv("EXPLAINXKCD_DATA", str(DEFAULT_OUTPUT)))
