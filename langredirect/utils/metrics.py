"""
Prometheus Metrics Module

Counters describing what the redirector decided and how the cache behaved.
Exposed at ``{internal_prefix}/metrics``.
"""

from prometheus_client import Counter, Info

APP_INFO = Info("langredirect_app", "Language redirector information")


def set_app_info(version: str, environment: str) -> None:
    """Set application info labels."""
    APP_INFO.info({"version": version, "environment": environment})


# =============================================================================
# Decision Metrics
# =============================================================================

DECISIONS_TOTAL = Counter(
    "langredirect_decisions_total",
    "Per-request outcomes of the redirect pipeline",
    ["action", "reason"],
)

ORIGIN_PROBES_TOTAL = Counter(
    "langredirect_origin_probes_total",
    "Trial origin fetches for out-of-scope paths",
    ["outcome"],  # "not_found", "found", "error"
)

CURRENCY_COOKIES_SET_TOTAL = Counter(
    "langredirect_currency_cookies_set_total",
    "Currency cookies attached to responses",
    ["currency"],
)

REQUEST_SCOPES_TOTAL = Counter(
    "langredirect_request_scopes_total",
    "Requests by scope class",
    ["scope"],  # "in-scope", "skip-media/admin-path", "skip-already-prefixed", "out-of-scope"
)

# =============================================================================
# Cache Metrics
# =============================================================================

CACHE_LOOKUPS_TOTAL = Counter(
    "langredirect_cache_lookups_total",
    "Redirect cache lookups",
    ["result"],  # "hit", "miss", "error"
)

CACHE_WRITES_TOTAL = Counter(
    "langredirect_cache_writes_total",
    "Redirect cache writes",
    ["result"],  # "ok", "error", "skipped"
)


def record_decision(action: str, reason: str) -> None:
    DECISIONS_TOTAL.labels(action=action, reason=reason).inc()


def record_origin_probe(outcome: str) -> None:
    ORIGIN_PROBES_TOTAL.labels(outcome=outcome).inc()


def record_currency_cookie(currency: str) -> None:
    CURRENCY_COOKIES_SET_TOTAL.labels(currency=currency).inc()


def record_cache_lookup(result: str) -> None:
    CACHE_LOOKUPS_TOTAL.labels(result=result).inc()


def record_cache_write(result: str) -> None:
    CACHE_WRITES_TOTAL.labels(result=result).inc()


def record_scope(scope: str) -> None:
    REQUEST_SCOPES_TOTAL.labels(scope=scope).inc()
