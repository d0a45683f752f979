"""API middleware for rate limiting."""

from api.middleware.rate_limiter import RateLimiter, reset_rate_limits, send_rate_limiter

__all__ = ["RateLimiter", "reset_rate_limits", "send_rate_limiter"]
