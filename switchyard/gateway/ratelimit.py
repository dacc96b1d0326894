"""
Fixed-window request rate limiting.

Counts chat-completion requests per caller (inbound API key, else client
IP) in fixed windows using the ``limits`` library's in-memory storage.
This is the only state shared across requests.
"""

from dataclasses import dataclass
import logging
import math
import time

from fastapi import Depends, HTTPException, Request
from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter

from switchyard.config import Settings, get_settings
from switchyard.gateway.auth import extract_inbound_api_key
from switchyard.schemas.chat import ErrorCodes, ErrorTypes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitStatus:
    """
    Limiter state after counting a request.

    Attributes:
        limit: Requests allowed per window
        remaining: Requests left in the current window
        reset_at: Epoch seconds at which the window resets
    """

    limit: int
    remaining: int
    reset_at: int

    def to_headers(self) -> dict[str, str]:
        return {
            "x-ratelimit-limit": str(self.limit),
            "x-ratelimit-remaining": str(self.remaining),
            "x-ratelimit-reset": str(self.reset_at),
        }


class FixedWindowLimiter:
    """
    Per-key fixed-window counter.

    Example:
        limiter = FixedWindowLimiter(window_seconds=60, max_requests=120)
        allowed, status = limiter.hit("ip:127.0.0.1")
    """

    def __init__(self, window_seconds: int, max_requests: int) -> None:
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self._item = RateLimitItemPerSecond(max_requests, window_seconds)
        self._storage = MemoryStorage()
        self._strategy = FixedWindowRateLimiter(self._storage)

    def hit(self, key: str) -> tuple[bool, RateLimitStatus]:
        """
        Count one request for a key.

        Returns:
            Tuple of (allowed, status)
        """
        allowed = self._strategy.hit(self._item, key)
        stats = self._strategy.get_window_stats(self._item, key)
        status = RateLimitStatus(
            limit=self.max_requests,
            remaining=max(0, stats.remaining),
            reset_at=math.ceil(stats.reset_time),
        )
        return allowed, status

    def reset(self) -> None:
        self._storage.reset()


_rate_limiter: FixedWindowLimiter | None = None


def get_rate_limiter(settings: Settings | None = None) -> FixedWindowLimiter:
    """
    Get the global rate limiter, rebuilding it if the window settings changed.

    Args:
        settings: Settings to size the limiter from; defaults to get_settings()

    Returns:
        The singleton FixedWindowLimiter instance
    """
    global _rate_limiter
    settings = settings or get_settings()
    if (
        _rate_limiter is None
        or _rate_limiter.window_seconds != settings.rate_limit_window_seconds
        or _rate_limiter.max_requests != settings.rate_limit_max_requests
    ):
        _rate_limiter = FixedWindowLimiter(
            settings.rate_limit_window_seconds, settings.rate_limit_max_requests
        )
    return _rate_limiter


def reset_rate_limiter() -> None:
    """Drop the global limiter (used by tests)."""
    global _rate_limiter
    _rate_limiter = None


def rate_limit_key(request: Request) -> str:
    """Limiter key: the inbound API key when present, else the client IP."""
    inbound_key = extract_inbound_api_key(request)
    if inbound_key:
        return f"api_key:{inbound_key}"
    host = request.client.host if request.client else ""
    return f"ip:{host or 'unknown'}"


async def enforce_rate_limit(
    request: Request, settings: Settings = Depends(get_settings)
) -> RateLimitStatus | None:
    """
    FastAPI dependency counting the request against the caller's window.

    Returns:
        RateLimitStatus for response headers, or None when disabled

    Raises:
        HTTPException: 429 with retry-after when the window is exhausted
    """
    if not settings.rate_limit_enabled:
        return None

    key = rate_limit_key(request)
    allowed, status = get_rate_limiter(settings).hit(key)
    if allowed:
        return status

    retry_after = max(1, math.ceil(status.reset_at - time.time()))
    logger.warning(f"Rate limit exceeded for {key.split(':', 1)[0]}; retry in {retry_after}s")
    raise HTTPException(
        status_code=429,
        detail={
            "message": "Rate limit exceeded. Try again later.",
            "type": ErrorTypes.RATE_LIMIT,
            "code": ErrorCodes.RATE_LIMIT_EXCEEDED,
        },
        headers={**status.to_headers(), "retry-after": str(retry_after)},
    )
