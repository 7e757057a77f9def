# newsdigest/security.py
import logging
import math
import threading
import time
from typing import Callable, Dict, Iterable, Tuple
from urllib.parse import urlsplit

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from . import config as app_config
from .errors import ForbiddenDomainError, RateLimitError, ValidationError

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


class RateLimiter:
    """
    Fixed-window request counter per key (the caller identity, or client
    address for anonymous callers). State lives in this process only.
    Expired windows are dropped at most once per window length.
    """

    def __init__(
        self,
        window_seconds: int = app_config.RATE_LIMIT_WINDOW_SECONDS,
        max_requests: int = app_config.RATE_LIMIT_MAX,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self._clock = clock
        self._windows: Dict[str, Tuple[float, int]] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._windows)

    def hit(self, key: str) -> int:
        """Counts one request for `key` and returns the remaining allowance."""
        now = self._clock()
        with self._lock:
            if now - self._last_sweep >= self.window_seconds:
                self._drop_expired(now)
            window_start, count = self._current_window(key, now)
            if count >= self.max_requests:
                self._reject(key, window_start, now)
            count += 1
            self._windows[key] = (window_start, count)
        return self.max_requests - count

    def check(self, key: str) -> None:
        """Raises RateLimitError when `key` has no allowance left, without counting a request."""
        now = self._clock()
        with self._lock:
            window_start, count = self._current_window(key, now)
            if count >= self.max_requests:
                self._reject(key, window_start, now)

    def _current_window(self, key: str, now: float) -> Tuple[float, int]:
        window_start, count = self._windows.get(key, (now, 0))
        if now - window_start >= self.window_seconds:
            return now, 0
        return window_start, count

    def _reject(self, key: str, window_start: float, now: float) -> None:
        retry_after = max(1, math.ceil(window_start + self.window_seconds - now))
        logger.warning(f"RATE_LIMIT: Limit exceeded for {key}. Retry after {retry_after}s")
        raise RateLimitError(retry_after=retry_after)

    def sweep(self) -> int:
        """Drops every expired window and returns how many were removed."""
        with self._lock:
            return self._drop_expired(self._clock())

    def _drop_expired(self, now: float) -> int:
        # caller holds the lock
        expired = [key for key, (window_start, _) in self._windows.items() if now - window_start >= self.window_seconds]
        for key in expired:
            del self._windows[key]
        self._last_sweep = now
        if expired:
            logger.debug(f"RATE_LIMIT: Dropped {len(expired)} expired windows")
        return len(expired)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


def validate_feed_url(url: str, allowed_domains: Iterable[str]) -> str:
    """
    Accepts only http(s) URLs whose host is an allowed domain or a subdomain
    of one. Returns the stripped URL.
    """
    url = (url or "").strip()
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise ValidationError("Invalid RSS URL", code="INVALID_URL")

    hostname = parts.hostname.lower()
    for domain in allowed_domains:
        domain = domain.lower()
        if hostname == domain or hostname.endswith("." + domain):
            return url

    logger.warning(f"SECURITY: Feed domain not allowed: {hostname}")
    raise ForbiddenDomainError(f"Domain {hostname} is not allowed", details={"domain": hostname})


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        return response
