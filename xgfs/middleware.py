"""WSGI middleware: chaining, shared API-key auth and a global rate limiter."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

WSGIApp = Callable[[dict, Callable[..., Any]], Iterable[bytes]]
Middleware = Callable[[WSGIApp], WSGIApp]


def wrap(app: WSGIApp, *args: Middleware | None) -> WSGIApp:
    """Apply middlewares so the first one given is the outermost; ``None`` entries are skipped."""
    for middleware in reversed([mw for mw in args if mw is not None]):
        app = middleware(app)
    return app


def _error(start_response: Callable[..., Any], status: str, message: str) -> list[bytes]:
    body = (message + "\n").encode("utf-8")
    start_response(
        status,
        [
            ("Content-Type", "text/plain; charset=utf-8"),
            ("X-Content-Type-Options", "nosniff"),
            ("Content-Length", str(len(body))),
        ],
    )
    return [body]


def extract_api_key(environ: dict) -> str:
    """Return the key from ``X-API-Key`` or a ``Bearer`` Authorization header."""
    value = environ.get("HTTP_X_API_KEY", "").strip()
    if value:
        return value
    auth = environ.get("HTTP_AUTHORIZATION", "").strip()
    if auth.lower().startswith("bearer "):
        return auth[7:].strip()
    return ""


def api_key_auth(key: str) -> Middleware | None:
    """Reject requests without the shared key; ``None`` when no key is configured."""
    expected = (key or "").strip()
    if not expected:
        return None

    def middleware(app: WSGIApp) -> WSGIApp:
        def handler(environ: dict, start_response: Callable[..., Any]) -> Iterable[bytes]:
            if extract_api_key(environ) != expected:
                return _error(start_response, "401 Unauthorized", "unauthorized")
            return app(environ, start_response)

        return handler

    return middleware


@dataclass
class RateLimitOptions:
    """``requests`` allowed per ``window`` seconds; ``now`` returns seconds."""

    requests: int = 0
    window: float = 0.0
    now: Callable[[], float] | None = None


class TokenBucket:
    """A thread-safe token bucket refilled continuously over the window."""

    def __init__(self, opts: RateLimitOptions) -> None:
        self._now = opts.now or time.monotonic
        self._lock = threading.Lock()
        self._capacity = float(opts.requests)
        self._tokens = float(opts.requests)
        self._refill_per_sec = float(opts.requests) / opts.window
        self._last = self._now()

    def allow(self) -> bool:
        """Take one token if available."""
        with self._lock:
            now = self._now()
            elapsed = now - self._last
            if elapsed > 0:
                self._tokens = min(self._capacity, self._tokens + elapsed * self._refill_per_sec)
                self._last = now
            if self._tokens < 1:
                return False
            self._tokens -= 1
            return True


def rate_limit(opts: RateLimitOptions) -> Middleware | None:
    """Limit all requests through one shared bucket; ``None`` when disabled."""
    if opts.requests <= 0 or opts.window <= 0:
        return None
    bucket = TokenBucket(opts)

    def middleware(app: WSGIApp) -> WSGIApp:
        def handler(environ: dict, start_response: Callable[..., Any]) -> Iterable[bytes]:
            if not bucket.allow():
                return _error(start_response, "429 Too Many Requests", "rate limit exceeded")
            return app(environ, start_response)

        return handler

    return middleware