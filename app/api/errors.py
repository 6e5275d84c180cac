"""Structured error responses for the HTTP API."""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
import structlog

from ..automation.errors import (
    AutomationError,
    ResourceFetchError,
    StorageError,
    ValidationError,
)
from ..middleware import CORRELATION_HEADER

log = structlog.get_logger()

_STATUS_BY_ERROR: list[tuple[type[AutomationError], int]] = [
    (ValidationError, 422),
    (ResourceFetchError, 502),
    (StorageError, 503),
]


def get_correlation_id(request: Request) -> str | None:
    """Correlation id bound by the middleware, or the inbound header."""
    bound = structlog.contextvars.get_contextvars().get("correlation_id")
    return bound or request.headers.get(CORRELATION_HEADER)


def error_response(request: Request, status_code: int, error: str, message) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "message": message,
            "status_code": status_code,
            "correlation_id": get_correlation_id(request),
            "path": str(request.url.path),
        },
    )


def status_for(exc: AutomationError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


async def automation_error_handler(request: Request, exc: AutomationError) -> JSONResponse:
    status_code = status_for(exc)
    level = log.error if status_code >= 500 else log.warning
    level(
        "automation.error",
        error=str(exc),
        error_type=type(exc).__name__,
        status_code=status_code,
        path=request.url.path,
    )
    return error_response(request, status_code, type(exc).__name__, str(exc))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    log.warning("http.exception", status_code=exc.status_code, detail=exc.detail, path=request.url.path)
    response = error_response(request, exc.status_code, type(exc).__name__, exc.detail)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        messages.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    log.warning("request.invalid", path=request.url.path, errors=len(messages))
    return error_response(request, 422, "ValidationError", "; ".join(messages))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    log.error(
        "unhandled.exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        exc_info=True,
    )
    return error_response(request, 500, "InternalServerError", "An unexpected error occurred")


def register_exception_handlers(app: FastAPI):
    """Install the structured error handlers on an application."""
    app.add_exception_handler(AutomationError, automation_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
