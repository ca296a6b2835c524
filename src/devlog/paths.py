"""Page-path helpers: derive the route an entry belongs to from its URL.

Entries are grouped and counted by exact page_path, so callers should run
both the stored value and the lookup value through normalize_page_path().
"""

from __future__ import annotations

import re
import urllib.parse

_UUID_TAIL_RE = re.compile(
    r"/[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)
_NUMERIC_TAIL_RE = re.compile(r"/\d+$")
_MULTI_SLASH_RE = re.compile(r"/{2,}")


def normalize_page_path(path: str) -> str:
    """Leading slash, no query/fragment, no duplicate or trailing slashes.

    "projects//42/?tab=x" -> "/projects/42", "" -> "/"
    """
    path = path.split("#", 1)[0].split("?", 1)[0].strip()
    path = _MULTI_SLASH_RE.sub("/", "/" + path)
    if len(path) > 1:
        path = path.rstrip("/")
    return path or "/"


def page_path_from_url(url: str) -> str:
    """Path component of a full URL, normalized. Bare paths pass through."""
    parsed = urllib.parse.urlsplit(url.strip())
    return normalize_page_path(parsed.path)


def shorten_page_path(path: str) -> str:
    """Drop a trailing UUID or numeric ID segment for display.

    /projects/42 -> /projects, /runs/<uuid> -> /runs, /settings -> /settings
    """
    if _UUID_TAIL_RE.search(path) or _NUMERIC_TAIL_RE.search(path):
        return path.rsplit("/", 1)[0] or "/"
    return path
