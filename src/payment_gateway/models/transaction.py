"""Transaction domain model."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any


@dataclass
class Transaction:
    """
    Local record of a charge, reconciled by verification and webhooks.

    This is a bookkeeping record only: it mirrors whatever status the
    provider last reported and is never deleted.
    """

    reference: str
    provider: str
    status: str
    amount: Decimal
    currency: str
    email: str
    channel: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    customer: dict[str, Any] | None = None
    paid_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        """Validate required fields."""
        if not self.reference:
            raise ValueError("reference is required")
        if not self.provider:
            raise ValueError("provider is required")
        if not isinstance(self.amount, Decimal):
            self.amount = Decimal(str(self.amount))
        self.currency = self.currency.upper()

    @property
    def provider_id(self) -> str | None:
        """Provider-side identifier stored at charge time, if any."""
        for key in ("_provider_id", "session_id", "order_id"):
            value = self.metadata.get(key)
            if value:
                return str(value)
        return None


def coerce_datetime(value: Any) -> datetime | None:
    """
    Best-effort conversion of a provider timestamp into an aware datetime.

    Accepts datetimes, unix timestamps and ISO-8601 strings (including a
    trailing "Z"). Returns None for anything else.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None
