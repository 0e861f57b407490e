"""
Paystack payment driver.

Reference:
- https://paystack.com/docs/api/transaction/
- https://paystack.com/docs/payments/webhooks/
"""

import hmac
from typing import Any, Mapping

import httpx
import structlog

from payment_gateway.drivers.base import (
    BaseDriver,
    as_bytes,
    error_message,
    first_of,
    get_header,
    hmac_hexdigest,
)
from payment_gateway.models import (
    UNKNOWN_STATUS,
    ChargeException,
    ChargeRequest,
    ChargeResponse,
    VerificationException,
    VerificationResponse,
)

logger = structlog.get_logger(__name__)


class PaystackDriver(BaseDriver):
    """
    Paystack driver using the Transaction Initialize / Verify API.

    Amounts are sent in minor units (kobo, pesewas, cents). Webhooks are
    signed with HMAC-SHA512 of the raw body using the secret key.
    """

    name = "paystack"
    REQUIRED_CONFIG = ("secret_key",)
    DEFAULT_BASE_URL = "https://api.paystack.co"

    def default_headers(self) -> dict[str, str]:
        return {
            **super().default_headers(),
            "Authorization": f"Bearer {self.config['secret_key']}",
        }

    async def charge(self, request: ChargeRequest) -> ChargeResponse:
        reference = request.reference or self.generate_reference()

        payload: dict[str, Any] = {
            "email": request.email,
            "amount": request.amount_in_minor_units(),
            "currency": request.currency,
            "reference": reference,
            "callback_url": self.callback_url(request),
            "metadata": request.metadata,
        }
        channels = self.map_channels(request)
        if channels:
            payload["channels"] = channels
        if request.split:
            payload.update(request.split)
        if request.custom_fields:
            payload["metadata"] = {**request.metadata, "custom_fields": request.custom_fields}

        logger.info(
            "paystack_charge_starting",
            reference=reference,
            amount_minor=payload["amount"],
            currency=request.currency,
        )

        try:
            response = await self._request(
                "POST",
                "/transaction/initialize",
                json={k: v for k, v in payload.items() if v is not None},
                idempotency_key=request.idempotency_key,
            )
        except httpx.HTTPError as e:
            logger.error("paystack_charge_failed", reference=reference, error=str(e))
            raise ChargeException(f"Paystack charge failed: {error_message(e)}") from e

        body = self._json(response)
        if not body.get("status"):
            raise ChargeException(
                f"Paystack charge failed: {body.get('message', 'unknown error')}",
                context={"response": body},
            )

        data = body.get("data") or {}
        if not data.get("authorization_url"):
            raise ChargeException("Paystack response is missing authorization_url", context={"response": body})

        logger.info("paystack_charge_initialized", reference=data.get("reference", reference))

        return ChargeResponse(
            reference=data.get("reference", reference),
            authorization_url=data["authorization_url"],
            access_code=data.get("access_code", ""),
            status=self.normalize_status("pending"),
            metadata=request.metadata,
            provider=self.name,
        )

    async def verify(self, verification_id: str) -> VerificationResponse:
        try:
            response = await self._request("GET", f"/transaction/verify/{verification_id}")
        except httpx.HTTPError as e:
            logger.error("paystack_verification_failed", reference=verification_id, error=str(e))
            raise VerificationException(f"Paystack verification failed: {error_message(e)}") from e

        body = self._json(response)
        if not body.get("status"):
            raise VerificationException(
                f"Paystack verification failed: {body.get('message', 'unknown error')}",
                context={"response": body},
            )

        data = body.get("data") or {}
        authorization = data.get("authorization") or {}
        amount_minor = data.get("amount") or 0

        return VerificationResponse(
            reference=data.get("reference", verification_id),
            status=self.normalize_status(data.get("status")),
            amount=amount_minor / 100,
            currency=data.get("currency"),
            paid_at=data.get("paid_at"),
            channel=data.get("channel"),
            card_type=authorization.get("card_type"),
            bank=authorization.get("bank"),
            customer={"email": first_of(data, "customer.email"), "code": first_of(data, "customer.customer_code")},
            metadata=data.get("metadata") or {},
            provider=self.name,
        )

    async def validate_webhook(self, headers: Mapping[str, Any], raw_body: bytes | str) -> bool:
        signature = get_header(headers, "x-paystack-signature")
        if not signature:
            logger.warning("paystack_webhook_signature_missing")
            return False

        expected = hmac_hexdigest(self.config["secret_key"], as_bytes(raw_body))
        valid = hmac.compare_digest(expected, signature)
        if not valid:
            logger.warning("paystack_webhook_signature_invalid")
        return valid

    async def health_check(self) -> bool:
        return await self._probe("GET", "/transaction/verify/invalid_ref_test")

    def extract_webhook_reference(self, payload: dict[str, Any]) -> str | None:
        return first_of(payload, "data.reference")

    def extract_webhook_status(self, payload: dict[str, Any]) -> str:
        return first_of(payload, "data.status", default=UNKNOWN_STATUS)

    def extract_webhook_channel(self, payload: dict[str, Any]) -> str | None:
        return first_of(payload, "data.channel")

    def extract_webhook_paid_at(self, payload: dict[str, Any]) -> Any:
        return first_of(payload, "data.paid_at", "data.paidAt")

    def resolve_verification_id(self, reference: str, provider_id: str | None) -> str:
        # Paystack verifies by merchant reference only
        return reference
