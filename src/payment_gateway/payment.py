"""
Fluent entry point for charging and verifying payments.

Usage:
    response = await (
        Payment(manager)
        .amount(5000)
        .currency("NGN")
        .email("customer@example.com")
        .callback("https://shop.example.com/payments/done")
        .using(["paystack", "flutterwave"])
        .charge()
    )
"""

from decimal import Decimal
from typing import Any

import structlog

from payment_gateway.manager import PaymentManager
from payment_gateway.models import ChargeRequest, ChargeResponse, VerificationResponse
from payment_gateway.services.rate_limiter import RateLimiter, rate_limit_key

logger = structlog.get_logger(__name__)


class Payment:
    """
    Builds a ChargeRequest step by step and hands it to the manager.

    Each charge() counts against the rate-limit bucket of the caller
    (user id, else email, else IP address) before any provider is contacted.
    """

    def __init__(self, manager: PaymentManager, rate_limiter: RateLimiter | None = None) -> None:
        self.manager = manager
        self.rate_limiter = rate_limiter or RateLimiter(manager.cache, manager.config.rate_limit)
        self._data: dict[str, Any] = {"metadata": {}}
        self._providers: list[str] | None = None
        self._rate_limit_key: str | None = None

    def amount(self, amount: Decimal | int | float | str) -> "Payment":
        self._data["amount"] = amount
        return self

    def currency(self, currency: str) -> "Payment":
        self._data["currency"] = currency
        return self

    def email(self, email: str) -> "Payment":
        self._data["email"] = email
        return self

    def reference(self, reference: str) -> "Payment":
        self._data["reference"] = reference
        return self

    def callback(self, url: str) -> "Payment":
        self._data["callback_url"] = url
        return self

    def metadata(self, metadata: dict[str, Any]) -> "Payment":
        """Merge metadata into anything set earlier."""
        self._data["metadata"] = {**self._data["metadata"], **metadata}
        return self

    def description(self, description: str) -> "Payment":
        self._data["description"] = description
        return self

    def customer(self, customer: dict[str, Any]) -> "Payment":
        self._data["customer"] = customer
        return self

    def channels(self, channels: list[str]) -> "Payment":
        self._data["channels"] = list(channels)
        return self

    def idempotency(self, key: str) -> "Payment":
        self._data["idempotency_key"] = key
        return self

    def using(self, providers: str | list[str]) -> "Payment":
        """Restrict the charge to these providers, tried in order."""
        self._providers = [providers] if isinstance(providers, str) else list(providers)
        return self

    with_providers = using

    def rate_limit_key(
        self,
        user_id: str | int | None = None,
        ip_address: str | None = None,
    ) -> "Payment":
        """Bucket charge attempts by user id or IP address instead of email."""
        self._rate_limit_key = rate_limit_key(user_id=user_id, ip_address=ip_address)
        return self

    def build(self) -> ChargeRequest:
        """
        Build the validated request.

        Raises:
            InvalidChargeRequestError: If amount, currency or email is invalid
        """
        data = dict(self._data)
        data.setdefault("currency", self.manager.config.default_currency)
        return ChargeRequest.from_dict(data)

    async def charge(self) -> ChargeResponse:
        """
        Charge through the configured (or explicitly chosen) providers.

        Raises:
            InvalidChargeRequestError: If the request is invalid
            RateLimitExceeded: If the caller's bucket is exhausted
            ProviderException: If every provider failed
        """
        request = self.build()
        key = self._rate_limit_key or rate_limit_key(email=request.email)
        self.rate_limiter.hit(key)

        logger.info(
            "payment_charge_requested",
            currency=request.currency,
            providers=self._providers,
        )
        return await self.manager.charge_with_fallback(request, self._providers)

    async def verify(self, reference: str, provider: str | None = None) -> VerificationResponse:
        return await self.manager.verify(reference, provider)
