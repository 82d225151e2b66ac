"""
Edge routes

The catch-all route hands every request to the LanguageRedirector. The
internal router serves the redirector's own health and metrics endpoints
and is mounted under ``internal_prefix``, ahead of the catch-all.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from langredirect.services.redirector import LanguageRedirector

ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

internal_router = APIRouter(tags=["Internal"])
edge_router = APIRouter()


def get_redirector(request: Request) -> LanguageRedirector:
    """Dependency returning the process-wide redirector built in the lifespan."""
    return request.app.state.redirector


@internal_router.get("/health")
async def health(redirector: LanguageRedirector = Depends(get_redirector)):
    store = redirector.cache.store
    return JSONResponse(
        {
            "status": "ok",
            "origin": redirector.origin.base_url,
            "cache": {
                "enabled": redirector.cache.enabled,
                "backend": type(store).__name__ if store is not None else None,
                "connected": bool(store is not None and store.connected),
            },
        }
    )


@internal_router.get("/metrics")
async def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@edge_router.api_route("/{full_path:path}", methods=ALL_METHODS, include_in_schema=False)
async def intercept(request: Request, redirector: LanguageRedirector = Depends(get_redirector)) -> Response:
    return await redirector.handle(request)
