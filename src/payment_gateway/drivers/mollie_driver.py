"""
Mollie payment driver.

Reference:
- https://docs.mollie.com/reference/create-payment
- https://docs.mollie.com/reference/webhooks
"""

import hashlib
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
    parse_payload,
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


class MollieDriver(BaseDriver):
    """
    Mollie driver.

    Mollie webhooks only carry the payment id. When a webhook secret is
    configured the body is checked against an HMAC-SHA256 signature;
    otherwise the id is validated by fetching the payment from the API.
    """

    name = "mollie"
    REQUIRED_CONFIG = ("api_key",)
    DEFAULT_BASE_URL = "https://api.mollie.com"

    def default_headers(self) -> dict[str, str]:
        return {
            **super().default_headers(),
            "Authorization": f"Bearer {self.config['api_key']}",
        }

    async def charge(self, request: ChargeRequest) -> ChargeResponse:
        reference = request.reference or self.generate_reference()
        callback = self.callback_url(request)

        payload: dict[str, Any] = {
            "amount": {"currency": request.currency, "value": request.amount_as_string(2)},
            "description": request.description or f"Payment {reference}",
            "redirectUrl": self.append_query_params(callback, reference=reference) if callback else None,
            "webhookUrl": self.config.get("webhook_url"),
            "metadata": {**request.metadata, "reference": reference, "email": request.email},
        }
        channels = self.map_channels(request)
        if channels:
            payload["method"] = channels

        logger.info("mollie_charge_starting", reference=reference, currency=request.currency)

        try:
            response = await self._request(
                "POST",
                "/v2/payments",
                json={k: v for k, v in payload.items() if v is not None},
                idempotency_key=request.idempotency_key,
            )
        except httpx.HTTPError as e:
            logger.error("mollie_charge_failed", reference=reference, error=str(e))
            raise ChargeException(f"Mollie charge failed: {error_message(e)}") from e

        body = self._json(response)
        payment_id = body.get("id")
        checkout_url = first_of(body, "_links.checkout.href")
        if not payment_id or not checkout_url:
            raise ChargeException("Mollie response is missing id or checkout link", context={"response": body})

        return ChargeResponse(
            reference=reference,
            authorization_url=checkout_url,
            access_code=payment_id,
            status=self.normalize_status(body.get("status", "open")),
            metadata={**request.metadata, "payment_id": payment_id},
            provider=self.name,
        )

    async def verify(self, verification_id: str) -> VerificationResponse:
        try:
            response = await self._request("GET", f"/v2/payments/{verification_id}")
        except httpx.HTTPError as e:
            logger.error("mollie_verification_failed", payment_id=verification_id, error=str(e))
            raise VerificationException(f"Mollie verification failed: {error_message(e)}") from e

        body = self._json(response)
        metadata = body.get("metadata") or {}

        return VerificationResponse(
            reference=metadata.get("reference") or body.get("id", verification_id),
            status=self.normalize_status(body.get("status")),
            amount=float(first_of(body, "amount.value", default=0)),
            currency=first_of(body, "amount.currency"),
            paid_at=body.get("paidAt"),
            channel=body.get("method"),
            card_type=first_of(body, "details.cardLabel"),
            bank=first_of(body, "details.consumerBic"),
            customer={"email": metadata.get("email"), "name": first_of(body, "details.consumerName")},
            metadata={**metadata, "payment_id": body.get("id")},
            provider=self.name,
        )

    async def validate_webhook(self, headers: Mapping[str, Any], raw_body: bytes | str) -> bool:
        secret = self.config.get("webhook_secret")
        if secret:
            signature = get_header(headers, "x-mollie-signature")
            if not signature:
                logger.warning("mollie_webhook_signature_missing")
                return False
            expected = hmac_hexdigest(secret, as_bytes(raw_body), hashlib.sha256)
            valid = hmac.compare_digest(expected, signature.removeprefix("sha256="))
            if not valid:
                logger.warning("mollie_webhook_signature_invalid")
            return valid

        return await self._validate_by_lookup(raw_body)

    async def _validate_by_lookup(self, raw_body: bytes | str) -> bool:
        payment_id = parse_payload(raw_body).get("id")
        if not payment_id:
            return False

        try:
            await self._request("GET", f"/v2/payments/{payment_id}")
        except httpx.HTTPError as e:
            logger.warning("mollie_webhook_lookup_failed", payment_id=payment_id, error=str(e))
            return False
        return True

    async def health_check(self) -> bool:
        return await self._probe("GET", "/v2/methods")

    def extract_webhook_reference(self, payload: dict[str, Any]) -> str | None:
        return first_of(payload, "metadata.reference", "id")

    def extract_webhook_status(self, payload: dict[str, Any]) -> str:
        return first_of(payload, "status", default=UNKNOWN_STATUS)

    def extract_webhook_channel(self, payload: dict[str, Any]) -> str | None:
        return first_of(payload, "method")
