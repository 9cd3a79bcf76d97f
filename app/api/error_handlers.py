"""Exception handlers: domain errors to JSON, nothing else leaks.

    CohortError            -> its http_status, {"error": {"code", "message", ...}}
    RequestValidationError -> 422, validation_error with field details
    Exception              -> 500, generic message, stack trace logged only

Unauthenticated and forbidden responses keep the ``redirect_to`` hint
the gate supplied, so a browser client can send the user to the
organization's landing page instead of showing an error.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.errors import CohortError, UnauthenticatedError

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CohortError, _cohort_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_error_handler)


async def _cohort_error_handler(request: Request, exc: CohortError) -> JSONResponse:
    log = logger.error if exc.http_status >= 500 else logger.info
    log(
        "%s on %s %s: %s",
        exc.code,
        request.method,
        request.url.path,
        exc.message,
        extra={"path": request.url.path},
    )
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, UnauthenticatedError) else None
    return JSONResponse(
        status_code=exc.http_status, content=exc.to_response(), headers=headers
    )


async def _validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    logger.info("Validation error on %s: %s", request.url.path, exc.errors())
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": {
                "code": "validation_error",
                "message": "request validation failed",
                "fields": [
                    {
                        "loc": [str(p) for p in err.get("loc", ())],
                        "message": err.get("msg", ""),
                    }
                    for err in exc.errors()
                ],
            }
        },
    )


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled exception on %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": {"code": "internal_error", "message": "an unexpected error occurred"}},
    )
