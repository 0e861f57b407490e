"""Canonical payment statuses and the pure status normalization function."""

from enum import Enum
from types import MappingProxyType
from typing import Mapping


class PaymentStatus(str, Enum):
    """Canonical payment status."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


# Returned by webhook extractors when the payload has no status field at all.
UNKNOWN_STATUS = "unknown"


DEFAULT_STATUS_MAPPINGS: Mapping[str, frozenset[str]] = MappingProxyType(
    {
        PaymentStatus.SUCCESS.value: frozenset(
            {"SUCCESS", "SUCCEEDED", "COMPLETED", "SUCCESSFUL", "PAID", "OVERPAID", "CAPTURED"}
        ),
        PaymentStatus.FAILED.value: frozenset(
            {"FAILED", "REJECTED", "CANCELLED", "CANCELED", "DECLINED", "DENIED", "VOIDED", "EXPIRED"}
        ),
        PaymentStatus.PENDING.value: frozenset(
            {
                "PENDING",
                "PROCESSING",
                "PARTIALLY_PAID",
                "CREATED",
                "SAVED",
                "APPROVED",
                "PAYER_ACTION_REQUIRED",
                "REQUIRES_ACTION",
                "REQUIRES_PAYMENT_METHOD",
                "REQUIRES_CONFIRMATION",
            }
        ),
    }
)


def _lookup(key: str, mappings: Mapping[str, frozenset[str]]) -> str | None:
    for canonical, raw_statuses in mappings.items():
        if key in raw_statuses:
            return canonical
    return None


def normalize_status(
    raw_status: str | None,
    overrides: Mapping[str, frozenset[str]] | None = None,
) -> str:
    """
    Map a raw provider status onto the canonical vocabulary.

    Lookup is case-insensitive and whitespace-trimmed. Provider overrides are
    consulted first, then the default table. Anything unrecognized is returned
    lowercased as-is; callers that need a boolean should compare against
    PaymentStatus values.

    Args:
        raw_status: Status string as reported by the provider
        overrides: Optional provider-specific table {canonical: {RAW, ...}}

    Returns:
        "pending", "success", "failed", or the lowercased raw status
    """
    key = (raw_status or "").strip().upper()

    if overrides:
        canonical = _lookup(key, overrides)
        if canonical is not None:
            return canonical

    canonical = _lookup(key, DEFAULT_STATUS_MAPPINGS)
    if canonical is not None:
        return canonical

    return key.lower()
