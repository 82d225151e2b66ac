"""
i18n package

Accept-Language negotiation and currency selection for the redirector.
"""

from .currency import CURRENCY_BY_COUNTRY, CurrencyDecision, build_currency_cookie, resolve_currency
from .locale import (
    LanguageRange,
    NegotiationResult,
    negotiate,
    parse_accept_language,
    pick_language,
    strip_regions,
)

__all__ = [
    "CURRENCY_BY_COUNTRY",
    "CurrencyDecision",
    "LanguageRange",
    "NegotiationResult",
    "build_currency_cookie",
    "negotiate",
    "parse_accept_language",
    "pick_language",
    "resolve_currency",
    "strip_regions",
]
