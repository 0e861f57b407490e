"""Charge and verification data transfer objects."""

import re
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from payment_gateway.models.exceptions import InvalidChargeRequestError
from payment_gateway.models.status import PaymentStatus, normalize_status

MAX_AMOUNT = Decimal("999999999.99")

_CURRENCY_PATTERN = re.compile(r"^[A-Z]{3}$")
_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _first(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return default


@dataclass
class ChargeRequest:
    """
    A request to initialize a payment with any provider.

    The amount is expressed in major units (e.g. 100.50 NGN). Drivers that
    talk to minor-unit APIs call amount_in_minor_units() at their boundary.
    """

    amount: Decimal
    currency: str
    email: str
    reference: str | None = None
    callback_url: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    description: str | None = None
    customer: dict[str, Any] | None = None
    custom_fields: dict[str, Any] | None = None
    split: dict[str, Any] | None = None
    channels: list[str] | None = None
    idempotency_key: str | None = None

    def __post_init__(self) -> None:
        """Coerce and validate amount, currency and email."""
        if not isinstance(self.amount, Decimal):
            try:
                self.amount = Decimal(str(self.amount))
            except (InvalidOperation, ValueError) as e:
                raise InvalidChargeRequestError(f"Invalid amount: {self.amount!r}") from e

        if not self.amount.is_finite() or self.amount <= 0:
            raise InvalidChargeRequestError("Amount must be greater than zero")
        if self.amount > MAX_AMOUNT:
            raise InvalidChargeRequestError(f"Amount must not exceed {MAX_AMOUNT}")

        if not self.currency:
            raise InvalidChargeRequestError("Currency is required")
        self.currency = self.currency.strip().upper()
        if not _CURRENCY_PATTERN.match(self.currency):
            raise InvalidChargeRequestError(
                f"Invalid currency code: {self.currency}. Must be a 3-letter ISO code"
            )

        if not self.email or not _EMAIL_PATTERN.match(self.email.strip()):
            raise InvalidChargeRequestError(f"Invalid email address: {self.email!r}")
        self.email = self.email.strip()

    def amount_in_minor_units(self) -> int:
        """Return the amount in the currency's smallest unit, rounding half-up."""
        return int((self.amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    def amount_as_string(self, places: int = 2) -> str:
        """Return the major-unit amount as a fixed-point decimal string."""
        quantum = Decimal(1).scaleb(-places)
        return str(self.amount.quantize(quantum, rounding=ROUND_HALF_UP))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChargeRequest":
        """Build a request from a dict using snake_case or camelCase keys."""
        return cls(
            amount=data.get("amount", 0),
            currency=data.get("currency", ""),
            email=data.get("email", ""),
            reference=data.get("reference"),
            callback_url=_first(data, "callback_url", "callbackUrl", "callback"),
            metadata=dict(data.get("metadata") or {}),
            description=data.get("description"),
            customer=data.get("customer"),
            custom_fields=_first(data, "custom_fields", "customFields"),
            split=data.get("split"),
            channels=data.get("channels"),
            idempotency_key=_first(data, "idempotency_key", "idempotencyKey"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize the request (the idempotency key is not included)."""
        return {
            "amount": float(self.amount),
            "currency": self.currency,
            "email": self.email,
            "reference": self.reference,
            "callback_url": self.callback_url,
            "metadata": self.metadata,
            "description": self.description,
            "customer": self.customer,
            "custom_fields": self.custom_fields,
            "split": self.split,
            "channels": self.channels,
        }


@dataclass
class ChargeResponse:
    """Result of a successful charge initialization."""

    reference: str
    authorization_url: str
    access_code: str
    status: str = PaymentStatus.PENDING.value
    metadata: dict[str, Any] = field(default_factory=dict)
    provider: str | None = None

    def is_successful(self) -> bool:
        return self.status == PaymentStatus.SUCCESS.value

    def is_pending(self) -> bool:
        return self.status == PaymentStatus.PENDING.value

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChargeResponse":
        return cls(
            reference=data.get("reference", ""),
            authorization_url=_first(data, "authorization_url", "authorizationUrl", default=""),
            access_code=_first(data, "access_code", "accessCode", default=""),
            status=data.get("status") or PaymentStatus.PENDING.value,
            metadata=dict(data.get("metadata") or {}),
            provider=data.get("provider"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "reference": self.reference,
            "authorization_url": self.authorization_url,
            "access_code": self.access_code,
            "status": self.status,
            "metadata": self.metadata,
            "provider": self.provider,
        }


@dataclass
class VerificationResponse:
    """
    Result of verifying a payment with its provider.

    The status is canonical when produced by a driver. Responses rebuilt
    from stored dicts classify themselves through normalize_status, since
    they have no access to provider-specific mappings.
    """

    reference: str
    status: str
    amount: Any = None
    currency: str | None = None
    paid_at: Any = None
    channel: str | None = None
    card_type: str | None = None
    bank: str | None = None
    customer: dict[str, Any] | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    provider: str | None = None

    def __post_init__(self) -> None:
        if self.currency:
            self.currency = self.currency.upper()

    def is_successful(self) -> bool:
        return normalize_status(self.status) == PaymentStatus.SUCCESS.value

    def is_failed(self) -> bool:
        return normalize_status(self.status) == PaymentStatus.FAILED.value

    def is_pending(self) -> bool:
        return normalize_status(self.status) == PaymentStatus.PENDING.value

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VerificationResponse":
        return cls(
            reference=data.get("reference", ""),
            status=data.get("status") or "unknown",
            amount=data.get("amount"),
            currency=data.get("currency"),
            paid_at=_first(data, "paid_at", "paidAt"),
            channel=data.get("channel"),
            card_type=_first(data, "card_type", "cardType"),
            bank=data.get("bank"),
            customer=data.get("customer"),
            metadata=dict(data.get("metadata") or {}),
            provider=data.get("provider"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "reference": self.reference,
            "status": self.status,
            "amount": self.amount,
            "currency": self.currency,
            "paid_at": self.paid_at,
            "channel": self.channel,
            "card_type": self.card_type,
            "bank": self.bank,
            "customer": self.customer,
            "metadata": self.metadata,
            "provider": self.provider,
        }
