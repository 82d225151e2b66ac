"""
Structured Logging Middleware

Provides JSON-formatted access logging for the redirector.
Includes request IDs, timing and the redirect decision taken.
"""

import json
import logging
import time
import uuid
from collections.abc import Callable
from contextvars import ContextVar
from datetime import datetime, timezone

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

# Context variable for request ID (thread-safe)
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class RequestIdFilter(logging.Filter):
    """Logging filter to add request ID to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("")
        return True


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs in a format suitable for log aggregation systems
    like ELK Stack, Loki, or CloudWatch.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", ""),
        }

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Add extra fields from record
        for key in ["method", "path", "status_code", "duration_ms", "client_ip", "decision", "scope", "location"]:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        return json.dumps(log_data)


class AccessLogMiddleware(BaseHTTPMiddleware):
    """
    One log line per request: method, path, status, timing, decision.

    The ``X-Request-ID`` header is reused when the client sends one,
    otherwise generated, and echoed on the response.
    """

    def __init__(self, app: ASGIApp, logger_name: str = "langredirect.access", skip_prefix: str | None = None):
        super().__init__(app)
        self.logger = logging.getLogger(logger_name)
        self.skip_prefix = skip_prefix

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request_id_var.set(request_id)
        start_time = time.perf_counter()

        # Get client IP (handle proxies)
        client_ip = request.headers.get(
            "X-Forwarded-For", request.headers.get("X-Real-IP", request.client.host if request.client else "unknown")
        )
        if client_ip and "," in client_ip:
            client_ip = client_ip.split(",")[0].strip()

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            self.logger.error(
                f"{request.method} {request.url.path} failed after {duration_ms:.2f}ms: {e}",
                extra={"method": request.method, "path": request.url.path, "client_ip": client_ip},
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000
        response.headers["X-Request-ID"] = request_id

        if not (self.skip_prefix and request.url.path.startswith(self.skip_prefix)):
            self._log_request(request, response, duration_ms, client_ip)

        return response

    def _log_request(self, request: Request, response: Response, duration_ms: float, client_ip: str) -> None:
        decision = getattr(request.state, "redirect_decision", None)
        extra = {
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": round(duration_ms, 2),
            "client_ip": client_ip,
        }
        if decision:
            extra["decision"] = decision
        scope = getattr(request.state, "redirect_scope", None)
        if scope:
            extra["scope"] = scope
        if "location" in response.headers:
            extra["location"] = response.headers["location"]

        log_level = logging.WARNING if response.status_code >= 500 else logging.INFO
        message = f"{request.method} {request.url.path} - {response.status_code} ({duration_ms:.2f}ms)"
        if decision:
            message += f" [{decision}]"
        self.logger.log(log_level, message, extra=extra)


def setup_structured_logging(log_level: str = "INFO", json_format: bool = True) -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_format: Use JSON formatter (True for production)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))
    root_logger.handlers.clear()

    handler = logging.StreamHandler()
    if json_format:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"))
    handler.addFilter(RequestIdFilter())
    root_logger.addHandler(handler)

    loggers_config = {
        "langredirect": log_level,
        "langredirect.access": log_level,
        "uvicorn": "WARNING",
        "uvicorn.access": "WARNING",
        "httpx": "WARNING",
    }
    for logger_name, level in loggers_config.items():
        logging.getLogger(logger_name).setLevel(getattr(logging, level.upper()))


def get_request_id() -> str:
    """Get the current request ID from context."""
    return request_id_var.get("")
