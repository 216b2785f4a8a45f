"""Structured JSON logging with request correlation for FastAPI services."""

from __future__ import annotations

import contextvars
import json
import logging
import os
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.types import ASGIApp

_CORRELATION_ID_CTX: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "correlation_id", default=None
)
_REQUEST_ID_CTX: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "request_id", default=None
)
_CALLER_ID_CTX: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "caller_id", default=None
)
_CONFIGURED_SERVICES: set[str] = set()

_RESERVED_KEYS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)).keys()
) | {"message", "asctime"}


class ContextFilter(logging.Filter):
    """Copy request scoped identifiers onto every log record."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self._service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - logging side effect
        record.service = self._service_name
        record.correlation_id = _CORRELATION_ID_CTX.get()
        record.request_id = _REQUEST_ID_CTX.get()
        if getattr(record, "caller_id", None) is None:
            record.caller_id = _CALLER_ID_CTX.get()
        return True


class JsonLogFormatter(logging.Formatter):
    """Render log records as single line JSON documents."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self._service_name = service_name

    def format(self, record: logging.LogRecord) -> str:  # pragma: no cover - formatting side effect
        payload: dict[str, Any] = {
            "timestamp": datetime.now(tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "service": getattr(record, "service", self._service_name),
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = record.stack_info

        for key, value in record.__dict__.items():
            if key in _RESERVED_KEYS or key in payload or value is None:
                continue
            try:
                json.dumps(value)
                payload[key] = value
            except TypeError:
                payload[key] = str(value)
        return json.dumps(payload, default=str)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assign correlation and request identifiers to each HTTP request."""

    def __init__(
        self,
        app: ASGIApp,
        *,
        service_name: str,
        correlation_header: str = "X-Correlation-ID",
    ) -> None:
        super().__init__(app)
        self._service_name = service_name
        self._correlation_header = correlation_header

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        incoming = request.headers.get(self._correlation_header) or request.headers.get(
            "X-Request-ID"
        )
        correlation_id = incoming or uuid.uuid4().hex
        request_id = uuid.uuid4().hex

        token_corr = _CORRELATION_ID_CTX.set(correlation_id)
        token_req = _REQUEST_ID_CTX.set(request_id)
        token_caller = _CALLER_ID_CTX.set(None)
        request.state.correlation_id = correlation_id
        request.state.request_id = request_id

        try:
            response = await call_next(request)
            response.headers.setdefault(self._correlation_header, correlation_id)
            response.headers.setdefault("X-Request-ID", request_id)
            return response
        finally:
            _CORRELATION_ID_CTX.reset(token_corr)
            _REQUEST_ID_CTX.reset(token_req)
            _CALLER_ID_CTX.reset(token_caller)


def configure_logging(service_name: str, *, level: str | None = None) -> None:
    """Install the JSON handler on the root and uvicorn loggers once per service."""

    if service_name in _CONFIGURED_SERVICES:
        return

    log_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    handler = logging.StreamHandler()
    handler.setFormatter(JsonLogFormatter(service_name))
    handler.addFilter(ContextFilter(service_name))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi"):
        logger = logging.getLogger(logger_name)
        logger.handlers = [handler]
        logger.setLevel(log_level)
        logger.propagate = False

    _CONFIGURED_SERVICES.add(service_name)


def bind_caller_id(caller_id: Optional[str]) -> None:
    """Attach the authenticated caller to log records for the rest of the request."""

    _CALLER_ID_CTX.set(caller_id)


def get_correlation_id() -> Optional[str]:
    return _CORRELATION_ID_CTX.get()


def get_request_id() -> Optional[str]:
    return _REQUEST_ID_CTX.get()
