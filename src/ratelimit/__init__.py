from .limiter import FixedWindowRateLimiter, InMemoryRateLimitStore, RateLimitResult, RateLimitStore

__all__ = ["FixedWindowRateLimiter", "InMemoryRateLimitStore", "RateLimitResult", "RateLimitStore"]
