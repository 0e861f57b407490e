"""Domain models for the payment gateway."""

from payment_gateway.models.channels import PaymentChannel
from payment_gateway.models.exceptions import (
    ChargeException,
    CurrencyException,
    DriverNotFoundException,
    InvalidChargeRequestError,
    InvalidConfigurationException,
    PaymentException,
    ProviderException,
    RateLimitExceeded,
    VerificationException,
    WebhookException,
)
from payment_gateway.models.payment import (
    ChargeRequest,
    ChargeResponse,
    VerificationResponse,
)
from payment_gateway.models.status import (
    DEFAULT_STATUS_MAPPINGS,
    UNKNOWN_STATUS,
    PaymentStatus,
    normalize_status,
)
from payment_gateway.models.transaction import Transaction, coerce_datetime

__all__ = [
    # Payment DTOs
    "ChargeRequest",
    "ChargeResponse",
    "VerificationResponse",
    "Transaction",
    "coerce_datetime",
    # Vocabularies
    "PaymentChannel",
    "PaymentStatus",
    "DEFAULT_STATUS_MAPPINGS",
    "UNKNOWN_STATUS",
    "normalize_status",
    # Exceptions
    "PaymentException",
    "InvalidConfigurationException",
    "ChargeException",
    "VerificationException",
    "DriverNotFoundException",
    "ProviderException",
    "CurrencyException",
    "WebhookException",
    "RateLimitExceeded",
    "InvalidChargeRequestError",
]
