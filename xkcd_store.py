"""Reading and writing the comic collection as a JSON array."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterable, List

from xkcd_models import ComicInfo, StoreError

# JSON key -> ComicInfo attribute
FIELD_NAMES = {
    "index": "index",
    "title": "title",
    "transcript": "transcript",
    "altText": "alt_text",
    "canonicalUrl": "canonical_url",
    "wikiDetailUrl": "wiki_url",
    "imageUrl": "image_url",
}
OPTIONAL_FIELDS = {"transcript", "altText"}


def record_to_dict(comic: ComicInfo) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key, attr in FIELD_NAMES.items():
        value = getattr(comic, attr)
        if value is None and key in OPTIONAL_FIELDS:
            continue
        out[key] = value
    return out


def record_from_dict(data: Dict[str, Any]) -> ComicInfo:
    if not isinstance(data, dict):
        raise StoreError(f"expected a JSON object, got {type(data).__name__}")
    missing = [k for k in FIELD_NAMES if k not in OPTIONAL_FIELDS and k not in data]
    if missing:
        raise StoreError(f"record {data.get('index', '?')} is missing {', '.join(missing)}")
    index = data["index"]
    if not isinstance(index, int) or isinstance(index, bool) or index < 0:
        raise StoreError(f"record index must be an unsigned integer, got {index!r}")
    return ComicInfo(**{attr: data.get(key) for key, attr in FIELD_NAMES.items()})


def _file_mode(path: Path) -> int:
    """Mode for the new file: the old file's if there is one, else what open() would give."""
    try:
        return os.stat(path).st_mode & 0o777
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


def save_comics(path: Path, comics: Iterable[ComicInfo]) -> None:
    """Write the collection atomically: either the whole file lands or nothing does."""
    path = Path(path)
    payload = [record_to_dict(c) for c in comics]
    directory = path.parent
    directory.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
        os.chmod(tmp_name, _file_mode(path))
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def load_comics(path: Path) -> List[ComicInfo]:
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise StoreError(f"{path} is not a valid comic collection: {e}") from e
    if not isinstance(data, list):
        raise StoreError(f"{path} must hold a JSON array of comics")
    return [record_from_dict(item) for item in data]
