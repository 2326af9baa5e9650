from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Tuple

from flask import current_app, request

from quotation_engine.errors import ValidationError


RATE_LIMIT_EXTENSION = "quotation_engine.rate_limits"

_SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Cache-Control": "no-store",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
}


class WindowCounterStore:
    """Fixed-window hit counters keyed by caller, each entry expiring with its window."""

    def __init__(self, clock: Callable[[], float] = time.monotonic, max_entries: int = 10_000) -> None:
        self._clock = clock
        self._max_entries = max_entries
        self._lock = threading.Lock()
        self._windows: Dict[str, Tuple[float, int]] = {}

    def hit(self, key: str, window_seconds: int) -> Tuple[int, int]:
        """Count one hit and return ``(hits in window, seconds until the window resets)``."""
        now = self._clock()
        with self._lock:
            expires_at, hits = self._windows.get(key, (0.0, 0))
            if now >= expires_at:
                expires_at, hits = now + window_seconds, 0
            hits += 1
            self._windows[key] = (expires_at, hits)
            if len(self._windows) > self._max_entries:
                self._windows = {k: v for k, v in self._windows.items() if v[0] > now}
        return hits, max(0, int(expires_at - now))

    def clear(self) -> None:
        with self._lock:
            self._windows.clear()


def rate_limit_store(app=None) -> WindowCounterStore:
    app = app or current_app
    return app.extensions.setdefault(RATE_LIMIT_EXTENSION, WindowCounterStore())


def _caller_key() -> str:
    route = request.url_rule.rule if request.url_rule else request.path
    user = (request.headers.get("X-User-Id") or "").strip() or "anon"
    return "|".join((request.remote_addr or "unknown", user, request.method, route))


def enforce_rate_limit() -> None:
    config = current_app.config
    if not config.get("RATE_LIMIT_ENABLED", True) or request.method == "OPTIONS":
        return None
    window = max(1, int(config.get("RATE_LIMIT_WINDOW_SECONDS") or 60))
    limit = max(1, int(config.get("RATE_LIMIT_MAX_REQUESTS") or 300))

    hits, retry_after = rate_limit_store().hit(_caller_key(), window)
    if hits > limit:
        raise ValidationError(
            code="rate_limit_exceeded",
            message_key="rate_limit_exceeded",
            http_status=429,
            payload={"retry_after": retry_after},
        )
    return None


def apply_security_headers(response):
    if not current_app.config.get("SECURITY_HEADERS_ENABLED", True):
        return response
    for header, value in _SECURITY_HEADERS.items():
        response.headers.setdefault(header, value)
    if request.is_secure:
        response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    return response
