"""Shared utilities: cancellation, rate limiting, atomic file writes, logging helpers."""

from .cancellation import AbortManager, CancellationToken, sleep_for
from .rate_limiter import RateLimiter

__all__ = ["AbortManager", "CancellationToken", "RateLimiter", "sleep_for"]
