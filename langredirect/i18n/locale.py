"""
Locale helpers

Pure functions for Accept-Language handling:
- header parsing with quality-value (q=) support
- strict best-match picking against the supported languages
- the two-pass negotiation used to choose a redirect target
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# ── Constants ─────────────────────────────────────────────────────────────────

# code[-script][-region], e.g. "de", "zh-Hant", "pt-BR", "es-419"
_TAG_RE = re.compile(r"(?P<code>[A-Za-z]{1,8})(?:-(?P<script>[A-Za-z]{4}))?(?:-(?P<region>[A-Za-z]{2}|[0-9]{3}))?")

_QUALITY_RE = re.compile(r"q\s*=\s*(?P<q>[01](?:\.[0-9]{0,3})?)", re.IGNORECASE)

# Standalone two-letter/two-letter entries only: "en-GB" but not "zh-Hant-TW" or "gsw-CH"
_REGION_QUALIFIED_RE = re.compile(r"(?<![A-Za-z0-9-])([A-Za-z]{2})-[A-Za-z]{2}(?![A-Za-z0-9-])")


# ── Types ─────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class LanguageRange:
    """One parsed Accept-Language entry, lowercased."""

    code: str
    script: str | None = None
    region: str | None = None
    quality: float = 1.0

    @classmethod
    def from_tag(cls, tag: str, quality: float = 1.0) -> LanguageRange | None:
        m = _TAG_RE.fullmatch(tag.strip())
        if m is None:
            return None
        script = m.group("script")
        region = m.group("region")
        return cls(
            code=m.group("code").lower(),
            script=script.lower() if script else None,
            region=region.lower() if region else None,
            quality=quality,
        )

    def accepts(self, supported: LanguageRange) -> bool:
        """Strict match: a script or region on this entry must also be on ``supported``."""
        if self.code != supported.code:
            return False
        if self.script and self.script != supported.script:
            return False
        if self.region and self.region != supported.region:
            return False
        return True


@dataclass(frozen=True)
class NegotiationResult:
    """The language chosen for one request.

    ``header_present`` is False when the client sent no Accept-Language
    header at all; the caller passes such requests through untouched.
    """

    language: str
    default_language: str
    header_present: bool = True

    @property
    def is_default(self) -> bool:
        return self.language == self.default_language

    @property
    def should_redirect(self) -> bool:
        return self.header_present and not self.is_default


# ── Public helpers ────────────────────────────────────────────────────────────


def parse_accept_language(header: str | None) -> list[LanguageRange]:
    """Parse an Accept-Language header into ranges ordered by preference.

    Entries with q=0, the ``*`` wildcard and anything malformed are dropped.
    Ordering is by quality descending; equal qualities keep header order.

    Args:
        header: Value of the Accept-Language HTTP header, e.g.
                "fr-CA,fr;q=0.9,en-US;q=0.8,en;q=0.7".

    Returns:
        Parsed ranges, best first. Empty when nothing usable was found.
    """
    if not header:
        return []

    ranges: list[LanguageRange] = []
    for part in header.split(","):
        part = part.strip()
        if not part:
            continue

        tag, *params = part.split(";")
        quality = 1.0
        malformed = False
        for param in params:
            param = param.strip()
            if not param:
                continue
            m = _QUALITY_RE.fullmatch(param)
            if m is None:
                malformed = True
                break
            quality = float(m.group("q"))
        if malformed or quality <= 0 or quality > 1:
            continue

        parsed = LanguageRange.from_tag(tag, quality)
        if parsed is not None:
            ranges.append(parsed)

    # Stable sort keeps the original order for entries with the same q-value
    ranges.sort(key=lambda r: r.quality, reverse=True)
    return ranges


def pick_language(supported: Sequence[str], header: str | None) -> str | None:
    """Return the supported language the header prefers most, or None.

    Args:
        supported: Supported language tags, already lowercased.
        header:    Raw Accept-Language value.
    """
    candidates = [(language, LanguageRange.from_tag(language)) for language in supported]
    for accepted in parse_accept_language(header):
        for language, parsed in candidates:
            if parsed is not None and accepted.accepts(parsed):
                return language
    return None


def strip_regions(header: str) -> str:
    """Reduce every standalone ``xx-YY`` entry to ``xx``: "en-GB,de-AT;q=0.8" → "en,de;q=0.8"."""
    return _REGION_QUALIFIED_RE.sub(r"\1", header)


def negotiate(header: str | None, supported: Sequence[str], default_language: str) -> NegotiationResult:
    """Pick the redirect language for a raw Accept-Language header.

    The first pass is a strict best match. If it finds nothing, or only the
    default language, region qualifiers are stripped and the pick repeated,
    so "de-DE,en;q=0.5" still yields "de" when only plain "de" is supported.
    Anything still unmatched falls back to the default language.
    """
    if header is None:
        return NegotiationResult(language=default_language, default_language=default_language, header_present=False)

    language = pick_language(supported, header)
    if language is None or language == default_language:
        retried = pick_language(supported, strip_regions(header))
        if retried is not None:
            language = retried

    if language is None:
        language = default_language

    logger.debug("Negotiated language %s from Accept-Language %r", language, header)
    return NegotiationResult(language=language, default_language=default_language)
