"""Charge rate limiting over the cache store."""

import hashlib

import structlog

from payment_gateway.config import RateLimitSettings
from payment_gateway.infrastructure.cache import CacheStore
from payment_gateway.models import RateLimitExceeded

logger = structlog.get_logger(__name__)

KEY_PREFIX = "payment_charge"


def rate_limit_key(
    user_id: str | int | None = None,
    email: str | None = None,
    ip_address: str | None = None,
) -> str:
    """
    Build the bucket key for a charge attempt.

    Buckets by authenticated identity, else by a hash of the email, else by
    IP address, else a single global bucket.
    """
    if user_id not in (None, ""):
        bucket = f"user_{user_id}"
    elif email:
        bucket = f"email_{hashlib.sha256(email.strip().lower().encode()).hexdigest()}"
    elif ip_address:
        bucket = f"ip_{ip_address}"
    else:
        bucket = "global"
    return f"{KEY_PREFIX}:{bucket}"


class RateLimiter:
    """Fixed-window counter limiting charge attempts per bucket."""

    def __init__(self, cache: CacheStore, config: RateLimitSettings | None = None) -> None:
        self.cache = cache
        self.config = config or RateLimitSettings()

    def hit(self, key: str) -> int:
        """
        Count an attempt against a bucket.

        Returns:
            The number of attempts made in the current window

        Raises:
            RateLimitExceeded: If the bucket is over max_attempts
        """
        if not self.config.enabled:
            return 0

        attempts = self.cache.increment(key, self.config.decay_seconds)
        if attempts > self.config.max_attempts:
            retry_after = self.cache.ttl(key) or self.config.decay_seconds
            logger.warning("charge_rate_limited", key=key, attempts=attempts, retry_after=retry_after)
            raise RateLimitExceeded(
                f"Too many payment attempts. Please try again in {retry_after} seconds.",
                context={"key": key, "retry_after": retry_after},
            )
        return attempts

    def remaining(self, key: str) -> int:
        attempts = int(self.cache.get(key) or 0)
        return max(0, self.config.max_attempts - attempts)

    def reset(self, key: str) -> None:
        self.cache.delete(key)
