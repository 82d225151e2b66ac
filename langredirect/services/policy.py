"""
Redirect Policy

The decision table the redirector runs for each request. Every guard is a
pure predicate over the request facts and the configuration; it returns a
tagged Decision when it settles the request, or None to let the next guard
look at it.

Guards run in two groups:
- BYPASS_GUARDS: unconditional exclusions (method, internal, media, admin).
  Unknown paths under the internal prefix are rejected with a local 404.
  Nothing excluded here is ever cached or given a currency cookie.
- SCOPE_GUARDS: prefix guard and route scope, which may forward the request
  or ask for an origin probe. A request that passes both groups is in scope
  and goes on to language negotiation.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum

from starlette.requests import Request

from langredirect.config import RedirectorConfig
from langredirect.i18n.locale import NegotiationResult
from langredirect.routing.matcher import find_matching_route
from langredirect.routing.prefix import already_prefixed

READ_ONLY_METHODS = frozenset({"GET", "HEAD"})


class Action(str, Enum):
    FORWARD = "forward"
    PROBE = "probe-then-decide"
    REDIRECT = "redirect"
    AUGMENT_COOKIE = "augment-cookie"
    REJECT = "reject"


class Scope(str, Enum):
    IN_SCOPE = "in-scope"
    SKIP_MEDIA_ADMIN = "skip-media/admin-path"
    SKIP_PREFIXED = "skip-already-prefixed"
    OUT_OF_SCOPE = "out-of-scope"


@dataclass(frozen=True)
class Decision:
    action: Action
    reason: str
    language: str | None = None


@dataclass(frozen=True)
class RequestFacts:
    """The parts of a request the policy is allowed to look at."""

    method: str
    path: str
    accept_language: str | None = None

    @classmethod
    def from_request(cls, request: Request) -> RequestFacts:
        return cls(
            method=request.method.upper(),
            path=request.url.path,
            accept_language=request.headers.get("accept-language"),
        )


Guard = Callable[[RequestFacts, RedirectorConfig], Decision | None]


# ── Bypass guards ─────────────────────────────────────────────────────────────


def guard_method(facts: RequestFacts, config: RedirectorConfig) -> Decision | None:
    if facts.method not in READ_ONLY_METHODS:
        return Decision(Action.FORWARD, "method")
    return None


def guard_internal(facts: RequestFacts, config: RedirectorConfig) -> Decision | None:
    prefix = config.internal_prefix
    if facts.path == prefix or facts.path.startswith(prefix + "/"):
        return Decision(Action.REJECT, "internal")
    return None


def guard_media(facts: RequestFacts, config: RedirectorConfig) -> Decision | None:
    if config.media_path_pattern.search(facts.path):
        return Decision(Action.FORWARD, "media")
    return None


def guard_admin(facts: RequestFacts, config: RedirectorConfig) -> Decision | None:
    if config.admin_path_pattern.search(facts.path):
        return Decision(Action.FORWARD, "admin")
    return None


# ── Scope guards ──────────────────────────────────────────────────────────────


def guard_prefixed(facts: RequestFacts, config: RedirectorConfig) -> Decision | None:
    if config.listen_on_prefixed_paths:
        return None
    if already_prefixed(facts.path, config.supported_languages):
        return Decision(Action.FORWARD, "already-prefixed")
    return None


def guard_scope(facts: RequestFacts, config: RedirectorConfig) -> Decision | None:
    if config.listen_on_all_paths:
        return None
    if find_matching_route(config.routes, facts.path) is not None:
        return None
    if config.always_on_not_found:
        return Decision(Action.PROBE, "out-of-scope")
    return Decision(Action.FORWARD, "out-of-scope")


BYPASS_GUARDS: tuple[Guard, ...] = (guard_method, guard_internal, guard_media, guard_admin)
SCOPE_GUARDS: tuple[Guard, ...] = (guard_prefixed, guard_scope)


def evaluate(guards: Sequence[Guard], facts: RequestFacts, config: RedirectorConfig) -> Decision | None:
    """Return the first decision any guard makes, or None when all let the request through."""
    for guard in guards:
        decision = guard(facts, config)
        if decision is not None:
            return decision
    return None


SCOPE_BY_REASON = {
    "internal": Scope.SKIP_MEDIA_ADMIN,
    "media": Scope.SKIP_MEDIA_ADMIN,
    "admin": Scope.SKIP_MEDIA_ADMIN,
    "already-prefixed": Scope.SKIP_PREFIXED,
    "out-of-scope": Scope.OUT_OF_SCOPE,
}


def scope_of(decision: Decision | None) -> Scope | None:
    """Scope class of a guard outcome; None for the method bypass, which says nothing about the path."""
    if decision is None:
        return Scope.IN_SCOPE
    return SCOPE_BY_REASON.get(decision.reason)


def classify(facts: RequestFacts, config: RedirectorConfig) -> Scope:
    """Summarize which scope class a path falls into (ignores method and probing)."""
    path_facts = RequestFacts(method="GET", path=facts.path)
    decision = evaluate(BYPASS_GUARDS, path_facts, config) or evaluate(SCOPE_GUARDS, path_facts, config)
    return scope_of(decision)


def decide_language(negotiation: NegotiationResult) -> Decision:
    """Final step for in-scope requests: redirect unless the default language wins."""
    if not negotiation.header_present:
        return Decision(Action.FORWARD, "no-accept-language")
    if negotiation.is_default:
        return Decision(Action.FORWARD, "default-language", negotiation.language)
    return Decision(Action.REDIRECT, "negotiated", negotiation.language)
