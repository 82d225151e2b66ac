"""
Currency helpers

Maps the edge platform's country signal to an ISO 4217 currency code and
decides whether the currency session cookie has to be set. An existing
cookie always wins: a client's stored preference is never replaced.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

_EURO_AREA = (
    "AT", "BE", "CY", "DE", "EE", "ES", "FI", "FR", "GR", "HR", "IE",
    "IT", "LT", "LU", "LV", "MT", "NL", "PT", "SI", "SK",
)  # fmt: skip

CURRENCY_BY_COUNTRY: Mapping[str, str] = MappingProxyType(
    {
        **{country: "EUR" for country in _EURO_AREA},
        "AU": "AUD",
        "BG": "BGN",
        "CA": "CAD",
        "CH": "CHF",
        "CZ": "CZK",
        "DK": "DKK",
        "GB": "GBP",
        "HU": "HUF",
        "LI": "CHF",
        "NO": "NOK",
        "PL": "PLN",
        "RO": "RON",
        "SE": "SEK",
        "US": "USD",
    }
)

# Placeholder values edge platforms send when the country is unknown (Cloudflare: XX unknown, T1 Tor)
UNKNOWN_COUNTRIES = frozenset({"", "XX", "T1"})


@dataclass(frozen=True)
class CurrencyDecision:
    """Result of currency resolution for one request."""

    code: str
    should_set: bool


def resolve_currency(
    cookies: Mapping[str, str],
    country: str | None,
    mapping: Mapping[str, str],
    default_currency: str,
    cookie_name: str = "woocs_curr",
) -> CurrencyDecision:
    """Decide which currency applies and whether the cookie must be written.

    Args:
        cookies:          Request cookies.
        country:          Country code from the edge platform, if any.
        mapping:          Country → currency table (upper-case country keys).
        default_currency: Used when the country is absent or unmapped.
        cookie_name:      Name of the currency cookie.

    Returns:
        CurrencyDecision; ``should_set`` is False whenever the cookie exists.
    """
    existing = cookies.get(cookie_name)
    if existing:
        return CurrencyDecision(code=existing, should_set=False)

    country = (country or "").strip().upper()
    if country in UNKNOWN_COUNTRIES:
        return CurrencyDecision(code=default_currency, should_set=True)

    return CurrencyDecision(code=mapping.get(country, default_currency), should_set=True)


def build_currency_cookie(code: str, cookie_name: str, max_age: int) -> str:
    """Render the Set-Cookie value for the currency cookie."""
    return f"{cookie_name}={code}; Path=/; Max-Age={max_age}; Secure; SameSite=Lax"
