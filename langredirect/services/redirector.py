"""
Language Redirector

Per-request orchestration: bypass guards, cache lookup, scope guards (with
the optional 404 probe), language negotiation, then exactly one outcome:
a passthrough to the origin or a 302 to the language-prefixed URL. When
currency handling is on, the currency cookie is appended to whichever
response goes out.

Everything the redirector needs (configuration, origin client, cache) is
handed to it at construction time; it keeps no state between requests.
"""

import logging

from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import Response

from langredirect.config import RedirectorConfig
from langredirect.exceptions import OriginUnavailableError
from langredirect.i18n.currency import CurrencyDecision, build_currency_cookie, resolve_currency
from langredirect.i18n.locale import NegotiationResult, negotiate
from langredirect.routing.prefix import add_language_prefix
from langredirect.services.origin import OriginClient, stream_response
from langredirect.services.policy import (
    BYPASS_GUARDS,
    SCOPE_GUARDS,
    Action,
    Decision,
    RequestFacts,
    Scope,
    decide_language,
    evaluate,
    scope_of,
)
from langredirect.services.redirect_cache import (
    CachedResponse,
    RedirectCache,
    is_credentialed,
    unshareable_response,
)
from langredirect.utils.metrics import (
    record_cache_write,
    record_currency_cookie,
    record_decision,
    record_origin_probe,
    record_scope,
)

logger = logging.getLogger(__name__)


def request_url(request: Request) -> str:
    """The full request URL with the path exactly as the client sent it."""
    raw_path = request.scope.get("raw_path") or request.url.path.encode()
    url = f"{request.url.scheme}://{request.url.netloc}{raw_path.decode('latin-1')}"
    if request.url.query:
        url += "?" + request.url.query
    return url


def redirect_response(url: str, language: str, max_age: int = 3600) -> Response:
    """302 to ``url`` with ``/{language}`` prepended to the path; no body."""
    return Response(
        status_code=302,
        headers={
            "Location": add_language_prefix(url, language),
            "Cache-Control": f"public, max-age={max_age}",
        },
    )


class LanguageRedirector:
    def __init__(self, config: RedirectorConfig, origin: OriginClient, cache: RedirectCache):
        self.config = config
        self.origin = origin
        self.cache = cache

    async def handle(self, request: Request) -> Response:
        facts = RequestFacts.from_request(request)

        decision = evaluate(BYPASS_GUARDS, facts, self.config)
        if decision is not None:
            self._record(request, decision, scope_of(decision))
            if decision.action is Action.REJECT:
                return Response(status_code=404)
            return await self.origin.forward(request)

        url = request_url(request)
        negotiation = negotiate(facts.accept_language, self.config.supported_languages, self.config.default_language)
        key = self.cache.key_for(url, negotiation.language if negotiation.header_present else None)
        currency = self._resolve_currency(request)
        credentialed = is_credentialed(request, self._own_cookies())

        cached = await self.cache.get(key)
        if cached is not None and cached.status_code != 302 and credentialed:
            logger.debug("Not serving stored passthrough for %s to a credentialed request", url)
            cached = None
        if cached is not None:
            logger.debug("Serving %s from cache (%s)", url, cached.status_code)
            record_decision("cached", str(cached.status_code))
            return self._augment(cached.to_response(), currency)

        decision = evaluate(SCOPE_GUARDS, facts, self.config)
        scope = scope_of(decision)
        if decision is not None and decision.action is Action.PROBE:
            decision, probed = await self._probe(request)
            if probed is not None:
                self._record(request, decision, scope)
                if decision.reason == "probe-failed":
                    return self._augment(probed, currency)
                return probed
            scope = Scope.IN_SCOPE

        if decision is None:
            decision = decide_language(negotiation)
        self._record(request, decision, scope, negotiation)

        if decision.action is Action.REDIRECT:
            response = redirect_response(url, decision.language, self.config.redirect_max_age)
            self._schedule_store(response, key, CachedResponse.from_response(response))
            return self._augment(response, currency)

        if self._caches_passthrough(facts, currency) and not credentialed:
            response = await self.origin.fetch_buffered(request)
            reason = unshareable_response(response)
            if reason is None:
                self._schedule_store(response, key, CachedResponse.from_response(response))
            else:
                logger.debug("Not storing passthrough for %s: %s", url, reason)
                record_cache_write("skipped")
            return self._augment(response, currency)

        return self._augment(await self.origin.forward(request), currency)

    async def _probe(self, request: Request) -> tuple[Decision | None, Response | None]:
        """Trial fetch for an out-of-scope path.

        Returns ``(None, None)`` when the origin answers 404 and the request
        is promoted into scope, or a forward decision plus the response to
        send otherwise. After a transport error that response is a fresh
        forward of the original request, not the failed trial.
        """
        try:
            upstream = await self.origin.probe(request)
        except OriginUnavailableError as e:
            logger.warning(f"Origin probe failed, passing the request through: {e.message}")
            record_origin_probe("error")
            return Decision(Action.FORWARD, "probe-failed"), await self.origin.forward(request)

        if upstream.status_code == 404:
            await upstream.aclose()
            logger.debug("Origin probe for %s is 404, promoting into scope", request.url.path)
            record_origin_probe("not_found")
            return None, None

        logger.debug("Origin probe for %s is %s, not redirecting", request.url.path, upstream.status_code)
        record_origin_probe("found")
        return Decision(Action.FORWARD, "probe-found"), stream_response(upstream)

    def _resolve_currency(self, request: Request) -> CurrencyDecision | None:
        currency = self.config.currency
        if currency is None:
            return None
        return resolve_currency(
            request.cookies,
            request.headers.get(currency.country_header),
            currency.mapping,
            currency.default_currency,
            currency.cookie_name,
        )

    def _own_cookies(self) -> frozenset[str]:
        if self.config.currency is None:
            return frozenset()
        return frozenset({self.config.currency.cookie_name})

    def _caches_passthrough(self, facts: RequestFacts, currency: CurrencyDecision | None) -> bool:
        return (
            self.cache.enabled
            and facts.method == "GET"
            and currency is not None
            and currency.should_set
            and self.config.currency.cache_passthrough
        )

    def _augment(self, response: Response, currency: CurrencyDecision | None) -> Response:
        if currency is None or not currency.should_set:
            return response
        settings = self.config.currency
        response.headers.append(
            "set-cookie", build_currency_cookie(currency.code, settings.cookie_name, settings.cookie_max_age)
        )
        record_currency_cookie(currency.code)
        record_decision(Action.AUGMENT_COOKIE.value, currency.code)
        return response

    def _schedule_store(self, response: Response, key: str, entry: CachedResponse) -> None:
        # Runs after the response has been sent
        if self.cache.enabled:
            response.background = BackgroundTask(self.cache.put, key, entry)

    def _record(
        self,
        request: Request,
        decision: Decision,
        scope: Scope | None = None,
        negotiation: NegotiationResult | None = None,
    ) -> None:
        record_decision(decision.action.value, decision.reason)
        request.state.redirect_decision = f"{decision.action.value}:{decision.reason}"
        if scope is not None:
            record_scope(scope.value)
            request.state.redirect_scope = scope.value
        logger.debug(
            "%s %s -> %s (%s) scope=%s%s",
            request.method,
            request.url.path,
            decision.action.value,
            decision.reason,
            scope.value if scope is not None else "-",
            f" language={negotiation.language}" if negotiation and negotiation.header_present else "",
        )
