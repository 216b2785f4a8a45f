"""Domain error taxonomy and its mapping onto HTTP responses."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class PartyStreamError(Exception):
    status_code = 500
    category = "internal_error"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context


class ValidationError(PartyStreamError):
    """Malformed, missing or out-of-range input; a precondition on another entity."""

    status_code = 400
    category = "validation_error"


class AuthorizationError(PartyStreamError):
    status_code = 403
    category = "authorization_error"


class NotFoundError(PartyStreamError):
    status_code = 404
    category = "not_found"


class ConflictError(PartyStreamError):
    """State machine or uniqueness violation."""

    status_code = 409
    category = "conflict"


class ExternalServiceError(PartyStreamError):
    """A payment or streaming collaborator call failed.

    ``fatal`` errors abort the operation and reach the caller. Non-fatal ones
    are raised only inside best-effort call sites, which log and continue.
    """

    status_code = 502
    category = "external_service_error"

    def __init__(self, message: str, *, service: str, fatal: bool = True, **context: Any) -> None:
        super().__init__(message, service=service, **context)
        self.service = service
        self.fatal = fatal


_HTTP_CATEGORIES = {
    400: "validation_error",
    401: "authentication_error",
    403: "authorization_error",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    429: "rate_limited",
}


def error_body(category: str, message: str, **extra: Any) -> dict[str, Any]:
    body: dict[str, Any] = {"status": "error", "error": category, "message": message}
    body.update(extra)
    return body


async def _handle_domain_error(request: Request, exc: PartyStreamError) -> JSONResponse:
    level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        level,
        exc.message,
        extra={
            "error": exc.category,
            "path": request.url.path,
            "method": request.method,
            **{key: value for key, value in exc.context.items() if value is not None},
        },
    )
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.category, exc.message))


async def _handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")}
        for error in exc.errors()
    ]
    message = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'][1:]) or 'body'}: {error['msg']}"
        for error in errors
    )
    return JSONResponse(
        status_code=400,
        content=error_body("validation_error", message or "Invalid request", details=errors),
    )


async def _handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    category = _HTTP_CATEGORIES.get(exc.status_code, "http_error")
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(category, message),
        headers=getattr(exc, "headers", None),
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PartyStreamError, _handle_domain_error)
    app.add_exception_handler(RequestValidationError, _handle_request_validation)
    app.add_exception_handler(StarletteHTTPException, _handle_http_error)


__all__ = [
    "AuthorizationError",
    "ConflictError",
    "ExternalServiceError",
    "NotFoundError",
    "PartyStreamError",
    "ValidationError",
    "error_body",
    "install_error_handlers",
]
