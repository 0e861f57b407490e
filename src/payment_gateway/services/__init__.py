"""Normalization, detection and rate-limiting services."""

from payment_gateway.services.channel_mapper import (
    DEFAULT_CHANNEL_VOCABULARIES,
    ChannelMapper,
    ChannelVocabulary,
)
from payment_gateway.services.provider_detector import DEFAULT_PREFIXES, ProviderDetector
from payment_gateway.services.rate_limiter import RateLimiter, rate_limit_key
from payment_gateway.services.status_normalizer import (
    BUILTIN_PROVIDER_STATUS_MAPPINGS,
    StatusNormalizer,
)

__all__ = [
    "StatusNormalizer",
    "BUILTIN_PROVIDER_STATUS_MAPPINGS",
    "ChannelMapper",
    "ChannelVocabulary",
    "DEFAULT_CHANNEL_VOCABULARIES",
    "ProviderDetector",
    "DEFAULT_PREFIXES",
    "RateLimiter",
    "rate_limit_key",
]
