"""Language-prefix detection and insertion for request paths."""

from __future__ import annotations

from collections.abc import Iterable
from urllib.parse import urlsplit, urlunsplit


def first_segment(path: str) -> str | None:
    """Return the segment directly after the leading slash, or None when it is empty."""
    segments = path.split("/")
    if len(segments) < 2 or not segments[1]:
        return None
    return segments[1]


def already_prefixed(path: str, supported_languages: Iterable[str]) -> bool:
    """True when the first path segment is a supported language tag (case-insensitive).

    ``/de`` and ``/DE/shop`` are prefixed for ``["de"]``; ``/`` and ``/deals``
    are not.
    """
    segment = first_segment(path)
    if segment is None:
        return False
    segment = segment.lower()
    return any(segment == language.lower() for language in supported_languages)


def add_language_prefix(url: str, language: str) -> str:
    """Insert ``/{language}`` as the first path segment of ``url``.

    "https://shop.example/foo?x=1" → "https://shop.example/de/foo?x=1"
    """
    parts = urlsplit(url)
    return urlunsplit(parts._replace(path=f"/{language}{parts.path or '/'}"))
