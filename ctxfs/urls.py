"""Conversion between ``file`` URLs and local paths."""

from __future__ import annotations

import os
from pathlib import Path
from urllib.parse import urlsplit
from urllib.request import url2pathname

SCHEME = "file"


def scheme_of(url: str) -> str:
    return urlsplit(url).scheme.lower()


def url_to_path(url: str) -> str:
    """Return the local path addressed by a ``file`` URL.

    Accepts ``file:///abs/path`` (percent-encoded), ``file://localhost/...``
    and ``file:relative/path``.

    Raises:
        ValueError: If the scheme is not ``file`` or the host is remote.
    """
    parts = urlsplit(url)
    if parts.scheme.lower() != SCHEME:
        raise ValueError(f"Unsupported URL scheme for local files: {url!r}")
    if parts.netloc not in ("", "localhost"):
        raise ValueError(f"Remote hosts are not supported: {url!r}")
    if not parts.path:
        raise ValueError(f"URL has no path: {url!r}")
    return url2pathname(parts.path)


def path_to_url(path: str | os.PathLike[str]) -> str:
    """Format a local path as an absolute ``file`` URL."""
    return Path(os.path.abspath(path)).as_uri()
