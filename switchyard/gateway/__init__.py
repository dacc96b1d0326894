"""
Gateway module: Inbound API key and rate limiting dependencies.

Public API:
- require_api_key: App-wide dependency enforcing SERVICE_API_KEY
- enforce_rate_limit: Per-route dependency for the fixed-window limiter
- FixedWindowLimiter / get_rate_limiter(): Limiter singleton
"""

from switchyard.gateway.auth import extract_inbound_api_key, require_api_key
from switchyard.gateway.ratelimit import (
    FixedWindowLimiter,
    RateLimitStatus,
    enforce_rate_limit,
    get_rate_limiter,
    rate_limit_key,
    reset_rate_limiter,
)

__all__ = [
    # Authentication
    "extract_inbound_api_key",
    "require_api_key",
    # Rate limiting
    "FixedWindowLimiter",
    "RateLimitStatus",
    "enforce_rate_limit",
    "get_rate_limiter",
    "rate_limit_key",
    "reset_rate_limiter",
]
