from __future__ import annotations

from tradeconnect.security.rate_limit import (
    RateLimitMiddleware,
    SlidingWindowRateLimiter,
)

__all__ = ["RateLimitMiddleware", "SlidingWindowRateLimiter"]
