import logging
from contextlib import asynccontextmanager

import httpx
import uvicorn
from fastapi import FastAPI

from langredirect.config import Settings, settings as default_settings
from langredirect.middleware.logging import AccessLogMiddleware, setup_structured_logging
from langredirect.routes.edge import edge_router, internal_router
from langredirect.services.origin import OriginClient
from langredirect.services.redirect_cache import RedirectCache
from langredirect.services.redirector import LanguageRedirector
from langredirect.utils.cache import CacheStore, create_cache_store
from langredirect.utils.metrics import set_app_info

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    origin_transport: httpx.AsyncBaseTransport | None = None,
    cache_store: CacheStore | None = None,
) -> FastAPI:
    """Create the redirector application.

    The configuration is validated here, so a malformed route pattern fails
    at startup rather than on the first request.
    """
    settings = settings or default_settings
    config = settings.to_redirector_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {settings.app_name} {settings.app_version} in front of {settings.origin_url}")
        store = None
        if settings.cache_enabled:
            store = cache_store if cache_store is not None else create_cache_store(
                settings.redis_url, settings.cache_max_entries
            )
            await store.connect()
        origin = OriginClient(
            settings.origin_url,
            timeout=settings.origin_timeout,
            preserve_host=settings.preserve_host,
            transport=origin_transport,
        )
        app.state.redirector = LanguageRedirector(
            config=config,
            origin=origin,
            cache=RedirectCache(store, ttl=config.cache_ttl, prefix=config.cache_prefix),
        )
        try:
            yield
        finally:
            logger.info("Shutting down the redirector...")
            await origin.aclose()
            if store is not None:
                await store.disconnect()

    app = FastAPI(
        title=settings.app_name,
        debug=settings.debug,
        version=settings.app_version,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.add_middleware(AccessLogMiddleware, skip_prefix=config.internal_prefix)

    # Internal routes first: the catch-all would swallow them otherwise
    app.include_router(internal_router, prefix=config.internal_prefix)
    app.include_router(edge_router)

    set_app_info(settings.app_version, settings.environment)
    return app


setup_structured_logging(default_settings.log_level, json_format=default_settings.log_json)
app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000, proxy_headers=True, forwarded_allow_ips="*")
