"""Async rate limiting utilities for network operations.

Provides throttled request pacing for the OSV API, the GitHub REST API and
the npm registry so a large manifest does not earn a 429.

Key insight: ConcurrencyLimiter limits WIDTH (concurrent requests),
RateLimiter limits SPEED (request frequency). Registry lookups use both.
"""

import asyncio
import time


# =============================================================================
# RATE LIMIT CONSTANTS
# =============================================================================

# Seconds between requests
RATE_LIMIT_NPM = 0.05       # npm: 20 req/sec
RATE_LIMIT_OSV = 0.02       # OSV: 50 req/sec (generous public API)
RATE_LIMIT_GITHUB = 0.1     # GitHub REST: 10 req/sec
RATE_LIMIT_DEFAULT = 0.2    # Anything else: 5 req/sec


class AsyncRateLimiter:
    """
    Lightweight async rate limiter that ensures minimum delay between requests.

    Unlike a concurrency bound this limits frequency. Uses non-blocking
    asyncio.sleep so other tasks can run while waiting.

    Usage:
        limiter = AsyncRateLimiter(0.1)  # 10 req/sec
        await limiter.acquire()
        # ... make request
    """

    def __init__(self, delay: float):
        """
        Args:
            delay: Minimum seconds between requests (e.g., 0.1 = 10 req/sec)
        """
        self.delay = delay
        self.last_request = 0.0
        self._lock: asyncio.Lock | None = None  # Created lazily inside the running loop

    async def acquire(self):
        """Wait until enough time has passed since last request."""
        if self._lock is None:
            self._lock = asyncio.Lock()

        async with self._lock:
            now = time.monotonic()
            elapsed = now - self.last_request
            wait = self.delay - elapsed

            if wait > 0:
                await asyncio.sleep(wait)

            self.last_request = time.monotonic()


# =============================================================================
# LIMITER REGISTRY - Per-service rate limiters
# =============================================================================

_rate_limiters: dict[str, AsyncRateLimiter] = {}


def get_rate_limiter(service: str) -> AsyncRateLimiter:
    """
    Get or create rate limiter for a service.

    Args:
        service: Service name ('npm', 'osv', 'github')

    Returns:
        AsyncRateLimiter configured for that service
    """
    service = service.lower()

    if service not in _rate_limiters:
        delays = {
            "npm": RATE_LIMIT_NPM,
            "osv": RATE_LIMIT_OSV,
            "github": RATE_LIMIT_GITHUB,
        }
        delay = delays.get(service, RATE_LIMIT_DEFAULT)
        _rate_limiters[service] = AsyncRateLimiter(delay)

    return _rate_limiters[service]


def reset_rate_limiters():
    """Reset all rate limiters. Each asyncio.run() needs fresh locks."""
    global _rate_limiters
    _rate_limiters = {}
