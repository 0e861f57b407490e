"""Provider-aware status normalization."""

from types import MappingProxyType
from typing import Iterable, Mapping

import structlog

from payment_gateway.models.status import DEFAULT_STATUS_MAPPINGS, PaymentStatus, normalize_status

logger = structlog.get_logger(__name__)


_CANONICAL = tuple(status.value for status in PaymentStatus)

# Provider vocabularies that fall outside the default table
BUILTIN_PROVIDER_STATUS_MAPPINGS: Mapping[str, Mapping[str, tuple[str, ...]]] = MappingProxyType(
    {
        "paystack": {"pending": ("ONGOING", "QUEUED"), "failed": ("ABANDONED", "REVERSED")},
        "monnify": {"failed": ("REVERSED",)},
        "stripe": {"pending": ("OPEN", "UNPAID"), "success": ("COMPLETE", "NO_PAYMENT_REQUIRED")},
        "mollie": {"pending": ("OPEN", "AUTHORIZED")},
        "square": {"failed": ("CANCELED",)},
        "nowpayments": {
            "pending": ("WAITING", "CONFIRMING", "CONFIRMED", "SENDING"),
            "success": ("FINISHED",),
            "failed": ("REFUNDED",),
        },
    }
)


def _freeze(mappings: Mapping[str, Iterable[str]]) -> Mapping[str, frozenset[str]]:
    frozen: dict[str, frozenset[str]] = {}
    for canonical, raw_statuses in mappings.items():
        canonical = canonical.strip().lower()
        if canonical not in _CANONICAL:
            raise ValueError(
                f"Unknown canonical status: {canonical}. Expected one of: {', '.join(_CANONICAL)}"
            )
        frozen[canonical] = frozenset(s.strip().upper() for s in raw_statuses)
    return MappingProxyType(frozen)


class StatusNormalizer:
    """
    Normalizes raw provider statuses into pending / success / failed.

    Provider-specific tables are consulted before the default table. Each
    table is frozen when registered; registering again for the same provider
    replaces the previous table. Pass provider_mappings={} to start with no
    overrides at all.
    """

    def __init__(self, provider_mappings: Mapping[str, Mapping[str, Iterable[str]]] | None = None) -> None:
        if provider_mappings is None:
            provider_mappings = BUILTIN_PROVIDER_STATUS_MAPPINGS
        self._provider_mappings: dict[str, Mapping[str, frozenset[str]]] = {}
        for provider, mappings in provider_mappings.items():
            self.register_provider_mappings(provider, mappings)

    def register_provider_mappings(self, provider: str, mappings: Mapping[str, Iterable[str]]) -> "StatusNormalizer":
        """
        Register a provider-specific override table.

        Args:
            provider: Provider name (case-insensitive)
            mappings: {canonical_status: [raw statuses]}

        Returns:
            self, for chaining

        Example:
            normalizer.register_provider_mappings(
                "paystack", {"success": ["ABANDONED_BUT_SETTLED"]}
            )
        """
        self._provider_mappings[provider.lower()] = _freeze(mappings)
        logger.debug("status_mappings_registered", provider=provider.lower())
        return self

    def normalize(self, raw_status: str | None, provider: str | None = None) -> str:
        """Normalize a raw status using provider overrides, then the default table."""
        overrides = self._provider_mappings.get(provider.lower()) if provider else None
        return normalize_status(raw_status, overrides)

    def get_provider_mappings(self, provider: str | None = None) -> dict[str, dict[str, list[str]]]:
        """Return registered overrides, for one provider or all of them."""
        if provider is not None:
            tables = {provider.lower(): self._provider_mappings.get(provider.lower(), {})}
        else:
            tables = self._provider_mappings
        return {
            name: {canonical: sorted(raw) for canonical, raw in table.items()}
            for name, table in tables.items()
        }

    @staticmethod
    def get_default_mappings() -> dict[str, list[str]]:
        """Return the default table as plain lists."""
        return {canonical: sorted(raw) for canonical, raw in DEFAULT_STATUS_MAPPINGS.items()}
