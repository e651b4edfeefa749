"""Rate limiting for the enquiry endpoint (per-client window + global daily cap)."""

from __future__ import annotations

from fsenquiry.ratelimit.limiter import (
    SCOPE_CLIENT,
    SCOPE_GLOBAL_DAILY,
    RateDecision,
    RateLimiter,
)

__all__ = ["SCOPE_CLIENT", "SCOPE_GLOBAL_DAILY", "RateDecision", "RateLimiter"]
