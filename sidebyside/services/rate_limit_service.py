# sidebyside/services/rate_limit_service.py
import math
import threading
import time
from dataclasses import dataclass

from fastapi import HTTPException, Request, status

from sidebyside.config import settings
from sidebyside.core.logger import logger

MINUTE = 60
HOUR = 60 * 60


class RateLimitExceeded(HTTPException):
    """429 carrying the seconds left in the window"""

    def __init__(self, message: str, retry_after: int):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=message,
            headers={"Retry-After": str(retry_after)},
        )
        self.retry_after = retry_after


@dataclass
class _Window:
    count: int
    reset_at: float


def get_client_ip(request: Request) -> str:
    """Real client IP behind a proxy"""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("x-real-ip") or request.headers.get("x-client-ip")
    if real_ip:
        return real_ip

    return request.client.host if request.client else "127.0.0.1"


class RateLimiter:
    """
    Fixed-window counter per (scope, window, IP).

    Entries live in process memory, so limits are per worker.
    """

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._storage: dict[str, _Window] = {}
        self._lock = threading.Lock()

    def hit(self, scope: str, ip: str, window_seconds: int, max_requests: int, message: str) -> None:
        """Count one request, raise RateLimitExceeded over the limit"""
        key = f"{scope}:{window_seconds}-{ip}"
        now = self._clock()

        with self._lock:
            entry = self._storage.get(key)

            if entry is None or now > entry.reset_at:
                self._storage[key] = _Window(count=1, reset_at=now + window_seconds)
                self._cleanup(now)
                return

            if entry.count >= max_requests:
                retry_after = max(1, math.ceil(entry.reset_at - now))
                logger.warning(
                    f"Rate limit exceeded for {ip}: {entry.count}/{max_requests} in {window_seconds}s window"
                )
                raise RateLimitExceeded(message, retry_after)

            entry.count += 1

    def reset(self) -> None:
        with self._lock:
            self._storage.clear()

    def _cleanup(self, now: float) -> None:
        expired = [key for key, entry in self._storage.items() if now > entry.reset_at]
        for key in expired:
            del self._storage[key]


# Process-wide instance
rate_limiter = RateLimiter()


def limit(scope: str, window_seconds: int, max_requests, message: str):
    """
    FastAPI dependency factory.

    ``max_requests`` may be a callable so limits are read from settings at
    request time.
    """

    def dependency(request: Request) -> None:
        maximum = max_requests() if callable(max_requests) else max_requests
        rate_limiter.hit(scope, get_client_ip(request), window_seconds, maximum, message)

    return dependency


def voting_rate_limit(request: Request) -> None:
    """Minute window first, then hour window"""
    ip = get_client_ip(request)
    rate_limiter.hit("voting", ip, MINUTE, settings.rate_limit_voting_per_minute, "RATE_LIMIT_MINUTE_EXCEEDED")
    rate_limiter.hit("voting", ip, HOUR, settings.rate_limit_voting_per_hour, "RATE_LIMIT_HOUR_EXCEEDED")


magic_link_rate_limit = limit(
    "magic-link",
    MINUTE,
    lambda: settings.rate_limit_auth_magic_link_per_minute,
    "Too many magic link requests, please try again in a minute.",
)

verify_token_rate_limit = limit(
    "verify-token",
    MINUTE,
    lambda: settings.rate_limit_auth_verify_token_per_minute,
    "Too many token verification attempts, please try again in a minute.",
)

figma_auth_rate_limit = limit(
    "figma-auth",
    MINUTE,
    lambda: settings.rate_limit_figma_auth_per_minute,
    "Too many Figma authentication attempts, please try again in a minute.",
)
