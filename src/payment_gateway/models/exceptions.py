"""Custom exceptions for the payment gateway."""

from typing import Any


class PaymentException(Exception):
    """
    Base exception for payment-related errors.

    Carries an optional context dict with structured details about the
    failure (provider responses, per-provider error messages, etc.).
    """

    def __init__(self, message: str = "", context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.context: dict[str, Any] = dict(context or {})

    def get_context(self) -> dict[str, Any]:
        """Return the structured context attached to this error."""
        return self.context

    @classmethod
    def with_context(cls, message: str, context: dict[str, Any]) -> "PaymentException":
        """Build an exception of this type with a context dict."""
        return cls(message, context=context)


class InvalidConfigurationException(PaymentException):
    """
    Raised when a driver is constructed with missing or invalid configuration.

    This is a FATAL error raised at construction time, before any network
    call is made. It is never recovered by the fallback chain.
    """

    pass


class ChargeException(PaymentException):
    """
    Raised when a charge attempt fails.

    Examples:
    - Transport failure (timeout, connection error, 4xx/5xx)
    - Provider responded with a non-success envelope
    - Success envelope is missing a required field (e.g. checkout URL)
    """

    pass


class VerificationException(PaymentException):
    """Raised when verifying a payment with a provider fails."""

    pass


class DriverNotFoundException(PaymentException):
    """
    Raised when a provider is unconfigured, disabled, or its driver
    implementation cannot be resolved.
    """

    pass


class ProviderException(PaymentException):
    """
    Raised when every provider in a fallback chain has failed.

    The context maps each attempted provider name to its failure message.
    """

    pass


class CurrencyException(PaymentException):
    """Raised when a provider does not support the requested currency."""

    pass


class WebhookException(PaymentException):
    """Raised when a webhook payload cannot be processed."""

    pass


class RateLimitExceeded(ChargeException):
    """
    Raised when too many charge attempts were made for one rate-limit bucket.

    The context carries the bucket key and the seconds until the counter
    resets.
    """

    pass


class InvalidChargeRequestError(ValueError):
    """Raised when a ChargeRequest fails validation."""

    pass
