"""
Route pattern matching

Compiles ``listen_on_paths`` entries into anchored regular expressions once,
at configuration time, and answers the only question the redirector asks at
request time: does this path fully match a configured route?

Pattern syntax:
- literal text matches itself
- ``*`` matches any run of characters inside a single segment
- ``**`` matches any run of characters across segments; a trailing ``/**``
  also matches when no segment follows
- ``:name`` captures one non-empty segment, optionally constrained by a
  per-placeholder rule (regex, convert, validate)
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from langredirect.exceptions import InvalidRoutePatternError

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r":(?P<name>[A-Za-z_][A-Za-z0-9_]*)|(?P<globstar>\*\*)|(?P<star>\*)|(?P<literal>[^:*]+|:)")


@dataclass(frozen=True)
class PlaceholderRule:
    """Constraint for one ``:name`` placeholder.

    ``regex`` must match the whole captured segment. ``convert`` turns the
    raw segment into a value, ``validate`` accepts or rejects that value.
    """

    regex: str | None = None
    convert: Callable[[str], Any] | None = None
    validate: Callable[[Any], bool] | None = None


@dataclass(frozen=True)
class RouteRule:
    """A compiled listen_on_paths entry."""

    pattern: str
    regex: re.Pattern[str]
    placeholders: tuple[str, ...] = ()
    rules: Mapping[str, PlaceholderRule] = field(default_factory=lambda: MappingProxyType({}))
    _constraints: Mapping[str, re.Pattern[str]] = field(default_factory=lambda: MappingProxyType({}), repr=False)

    def match(self, path: str) -> dict[str, Any] | None:
        """Return the converted placeholder values when ``path`` fully matches, else None."""
        m = self.regex.fullmatch(path)
        if m is None:
            return None

        params: dict[str, Any] = {}
        for name in self.placeholders:
            raw = m.group(name)
            constraint = self._constraints.get(name)
            if constraint is not None and constraint.fullmatch(raw) is None:
                return None

            rule = self.rules.get(name)
            value: Any = raw
            if rule is not None and rule.convert is not None:
                value = rule.convert(raw)
            if rule is not None and rule.validate is not None and not rule.validate(value):
                return None
            params[name] = value
        return params


def _normalize_pattern(pattern: str) -> str:
    pattern = pattern.strip()
    if not pattern:
        raise InvalidRoutePatternError(pattern, "pattern is empty")
    if not pattern.startswith("/"):
        pattern = "/" + pattern
    return pattern


def compile_route(pattern: str, rules: Mapping[str, PlaceholderRule] | None = None) -> RouteRule:
    """Compile a route pattern into a RouteRule.

    Raises:
        InvalidRoutePatternError: the pattern or one of its rules is malformed.
    """
    original = pattern
    pattern = _normalize_pattern(pattern)
    rules = dict(rules or {})

    trailing_globstar = pattern.endswith("/**")
    body = pattern[:-3] if trailing_globstar else pattern

    parts: list[str] = []
    placeholders: list[str] = []
    for token in _TOKEN_RE.finditer(body):
        if token.group("name"):
            name = token.group("name")
            if name in placeholders:
                raise InvalidRoutePatternError(original, f"placeholder ':{name}' is used twice")
            placeholders.append(name)
            parts.append(f"(?P<{name}>[^/]+)")
        elif token.group("globstar"):
            parts.append(".*")
        elif token.group("star"):
            parts.append("[^/]*")
        else:
            parts.append(re.escape(token.group("literal")))

    if trailing_globstar:
        parts.append("(?:/.*)?")

    unknown = sorted(set(rules) - set(placeholders))
    if unknown:
        raise InvalidRoutePatternError(original, f"rules given for unknown placeholders: {', '.join(unknown)}")

    constraints: dict[str, re.Pattern[str]] = {}
    for name, rule in rules.items():
        if rule.regex is None:
            continue
        try:
            constraints[name] = re.compile(rule.regex)
        except re.error as e:
            raise InvalidRoutePatternError(original, f"invalid regex for ':{name}': {e}") from e

    try:
        regex = re.compile("".join(parts))
    except re.error as e:
        raise InvalidRoutePatternError(original, str(e)) from e

    return RouteRule(
        pattern=pattern,
        regex=regex,
        placeholders=tuple(placeholders),
        rules=MappingProxyType(rules),
        _constraints=MappingProxyType(constraints),
    )


def matches(rule: RouteRule, path: str) -> bool:
    """True when ``path`` is fully consumed by ``rule``."""
    return rule.match(path) is not None


def find_matching_route(rules: Iterable[RouteRule], path: str) -> RouteRule | None:
    """Return the first rule that fully matches ``path``."""
    for rule in rules:
        matched = matches(rule, path)
        logger.debug("Matching %s against %s: %s", rule.pattern, path, "match" if matched else "no match")
        if matched:
            return rule
    return None
