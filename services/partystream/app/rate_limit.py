"""Fixed window request limiter keyed by route template and caller identity."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.routing import Match

from .dependencies import caller_from_token
from .errors import error_body
from .security import InvalidTokenError

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Too many requests, please try again later"


@dataclass(slots=True)
class _Window:
    started_at: float
    count: int


class RateLimiter:
    """Allow ``max_calls`` per key in each ``window_seconds`` window.

    Expired windows are dropped at most once per window length, so the table
    only holds keys seen during the last two windows.
    """

    def __init__(
        self,
        max_calls: int,
        window_seconds: int = 60,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_calls = max_calls
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, _Window] = {}
        self._lock = threading.Lock()
        self._last_pruned = clock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)

    def hit(self, key: str) -> Optional[int]:
        """Count a request for ``key``; returns seconds to wait when it is over the limit."""

        now = self._clock()
        with self._lock:
            if now - self._last_pruned >= self.window_seconds:
                self._prune(now)
            window = self._windows.get(key)
            if window is None or now - window.started_at >= self.window_seconds:
                self._windows[key] = _Window(started_at=now, count=1)
                return None
            if window.count >= self.max_calls:
                return max(1, int(window.started_at + self.window_seconds - now))
            window.count += 1
            return None

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()
            self._last_pruned = self._clock()

    def _prune(self, now: float) -> None:
        expired = [
            key
            for key, window in self._windows.items()
            if now - window.started_at >= self.window_seconds
        ]
        for key in expired:
            del self._windows[key]
        self._last_pruned = now


def _route_template(request: Request) -> str:
    """Return the matching route's path template, e.g. ``/bookings/{booking_id}``."""

    partial: Optional[str] = None
    for route in request.app.router.routes:
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            return getattr(route, "path", request.url.path)
        if match == Match.PARTIAL and partial is None:
            partial = getattr(route, "path", None)
    return partial or request.url.path


def _identity(request: Request) -> str:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() == "bearer" and token:
        try:
            return f"user:{caller_from_token(request.app.state.settings, token).id}"
        except InvalidTokenError:
            pass
    return f"ip:{request.client.host if request.client else 'anonymous'}"


def _exempt(path: str, exempt_paths: Iterable[str]) -> bool:
    return any(path == prefix or path.startswith(prefix.rstrip("/") + "/") for prefix in exempt_paths)


async def rate_limit_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    settings = request.app.state.settings
    if request.scope.get("type") != "http" or _exempt(request.url.path, settings.rate_limit_exempt_paths):
        return await call_next(request)
    limiter: RateLimiter = request.app.state.rate_limiter
    identity = _identity(request)
    template = _route_template(request)
    retry_after = limiter.hit(f"{request.method}:{template}:{identity}")
    if retry_after is not None:
        logger.warning(
            "rate limit exceeded",
            extra={"path": template, "identity": identity},
        )
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content=error_body("rate_limited", RATE_LIMIT_MESSAGE),
            headers={"Retry-After": str(retry_after)},
        )
    return await call_next(request)


__all__ = ["RATE_LIMIT_MESSAGE", "RateLimiter", "rate_limit_middleware"]
