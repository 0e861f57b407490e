"""Provider detection from reference prefixes."""

from types import MappingProxyType
from typing import Mapping

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_PREFIXES: Mapping[str, str] = MappingProxyType(
    {
        "PAYSTACK": "paystack",
        "FLW": "flutterwave",
        "MON": "monnify",
        "STRIPE": "stripe",
        "PAYPAL": "paypal",
        "MOLLIE": "mollie",
        "SQUARE": "square",
        "NOW": "nowpayments",
    }
)


class ProviderDetector:
    """
    Detects the provider that issued a reference from its prefix.

    References generated by drivers look like "PAYSTACK_1700000000_ab12...".
    A prefix only matches when it is immediately followed by "_".
    """

    def __init__(self, prefixes: Mapping[str, str] | None = None) -> None:
        self._prefixes: dict[str, str] = {
            prefix.upper(): provider.lower()
            for prefix, provider in (prefixes or DEFAULT_PREFIXES).items()
        }

    def detect_from_reference(self, reference: str | None) -> str | None:
        """
        Return the provider name for a reference, or None if no prefix matches.

        Examples:
            detect_from_reference("PAYSTACK_123")  # "paystack"
            detect_from_reference("paystack_123")  # "paystack"
            detect_from_reference("PAYSTACK123")   # None
        """
        if not reference:
            return None

        upper = reference.upper()
        # Longest prefix wins
        for prefix in sorted(self._prefixes, key=len, reverse=True):
            if upper.startswith(prefix + "_"):
                return self._prefixes[prefix]

        return None

    def register_prefix(self, prefix: str, provider: str) -> "ProviderDetector":
        """Register (or replace) a reference prefix for a provider."""
        self._prefixes[prefix.upper()] = provider.lower()
        logger.debug("provider_prefix_registered", prefix=prefix.upper(), provider=provider.lower())
        return self

    def get_prefixes(self) -> dict[str, str]:
        return dict(self._prefixes)
