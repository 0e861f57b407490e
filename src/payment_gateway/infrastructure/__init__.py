"""Storage, caching and event infrastructure."""

from payment_gateway.infrastructure.cache import CacheStore, InMemoryCache, RedisCache
from payment_gateway.infrastructure.events import (
    WEBHOOK_EVENT,
    EventDispatcher,
    provider_webhook_event,
)

__all__ = [
    "CacheStore",
    "InMemoryCache",
    "RedisCache",
    "EventDispatcher",
    "WEBHOOK_EVENT",
    "provider_webhook_event",
]
