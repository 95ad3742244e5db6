"""Shared URL and path utilities — build page URLs and stable artifact names."""

from __future__ import annotations

import re
from urllib.parse import urljoin, urlparse

_SLUG_RE = re.compile(r"[^a-z0-9._-]+")


def page_url(base_url: str, path: str) -> str:
    """Resolve a target path against the configured base URL.

    Absolute URLs are returned unchanged.
    """
    if urlparse(path).scheme in ("http", "https"):
        return path
    return urljoin(base_url.rstrip("/") + "/", path.lstrip("/"))


def slugify(value: str) -> str:
    """Turn a test or variant name into a filesystem-safe path component."""
    slug = _SLUG_RE.sub("-", value.strip().lower()).strip("-.")
    return slug or "unnamed"
