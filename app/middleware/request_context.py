"""Request context middleware: request ids, timing, and log correlation.

Every request gets an id (the client's X-Request-ID if sent, else a new
UUID) stored in a ContextVar.  A filter installed on the root handlers
copies it, and the resolved actor id, onto every LogRecord so lines
from concurrent requests can be told apart.  ContextVars rather than
thread-locals because many requests share one event-loop thread.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")
# Set by the access dependency once the session token has been read.
actor_id_var: ContextVar[str | None] = ContextVar("actor_id", default=None)


class _RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("-")  # type: ignore[attr-defined]
        if getattr(record, "actor_id", None) is None:
            record.actor_id = actor_id_var.get(None)  # type: ignore[attr-defined]
        return True


def install_log_filter() -> None:
    """Attach the context filter to every root handler.  Call after setup_logging().

    Handlers, not the root logger: logger-level filters do not run for
    records propagated up from child loggers.
    """
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, _RequestContextFilter) for f in handler.filters):
            handler.addFilter(_RequestContextFilter())


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assign a request id, time the request, and log one summary line."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        req_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request_id_var.set(req_id)
        actor_id_var.set(None)

        start = time.monotonic()
        response = await call_next(request)
        duration_ms = round((time.monotonic() - start) * 1000, 1)

        logger.info(
            "%s %s -> %d (%.1fms)",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            extra={
                "request_id": req_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )

        response.headers["X-Request-ID"] = req_id
        return response
