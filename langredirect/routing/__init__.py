"""
Path routing helpers: route-pattern matching and language-prefix detection.
"""

from .matcher import PlaceholderRule, RouteRule, compile_route, find_matching_route, matches
from .prefix import add_language_prefix, already_prefixed, first_segment

__all__ = [
    "PlaceholderRule",
    "RouteRule",
    "add_language_prefix",
    "already_prefixed",
    "compile_route",
    "find_matching_route",
    "first_segment",
    "matches",
]
