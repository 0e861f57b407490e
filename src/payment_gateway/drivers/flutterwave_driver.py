"""
Flutterwave payment driver (Standard checkout, v3 API).

Reference:
- https://developer.flutterwave.com/docs/collecting-payments/standard
- https://developer.flutterwave.com/docs/integration-guides/webhooks
"""

import hmac
from typing import Any, Mapping

import httpx
import structlog

from payment_gateway.drivers.base import BaseDriver, error_message, first_of, get_header
from payment_gateway.models import (
    UNKNOWN_STATUS,
    ChargeException,
    ChargeRequest,
    ChargeResponse,
    VerificationException,
    VerificationResponse,
)

logger = structlog.get_logger(__name__)


class FlutterwaveDriver(BaseDriver):
    """
    Flutterwave driver.

    Amounts are sent in major units. Webhooks carry a static "verif-hash"
    header that must equal the configured webhook secret.
    """

    name = "flutterwave"
    REQUIRED_CONFIG = ("secret_key",)
    DEFAULT_BASE_URL = "https://api.flutterwave.com/v3"
    REFERENCE_PREFIX = "FLW"

    def default_headers(self) -> dict[str, str]:
        return {
            **super().default_headers(),
            "Authorization": f"Bearer {self.config['secret_key']}",
        }

    async def charge(self, request: ChargeRequest) -> ChargeResponse:
        reference = request.reference or self.generate_reference()
        callback = self.callback_url(request)

        payload: dict[str, Any] = {
            "tx_ref": reference,
            "amount": float(request.amount),
            "currency": request.currency,
            "redirect_url": self.append_query_params(callback, reference=reference) if callback else None,
            "customer": {
                "email": request.email,
                "name": (request.customer or {}).get("name"),
                "phonenumber": (request.customer or {}).get("phone"),
            },
            "customizations": {
                "title": (request.custom_fields or {}).get("title", "Payment"),
                "description": request.description or "Payment for order",
                "logo": (request.custom_fields or {}).get("logo"),
            },
            "meta": request.metadata,
        }
        channels = self.map_channels(request)
        if channels:
            payload["payment_options"] = ",".join(channels)
        if request.split:
            payload["subaccounts"] = request.split.get("subaccounts", request.split)

        logger.info("flutterwave_charge_starting", reference=reference, currency=request.currency)

        try:
            response = await self._request(
                "POST",
                "/payments",
                json={k: v for k, v in payload.items() if v is not None},
                idempotency_key=request.idempotency_key,
            )
        except httpx.HTTPError as e:
            logger.error("flutterwave_charge_failed", reference=reference, error=str(e))
            raise ChargeException(f"Flutterwave charge failed: {error_message(e)}") from e

        body = self._json(response)
        if body.get("status") != "success":
            raise ChargeException(
                f"Flutterwave charge failed: {body.get('message', 'unknown error')}",
                context={"response": body},
            )

        link = first_of(body, "data.link")
        if not link:
            raise ChargeException("Flutterwave response is missing data.link", context={"response": body})

        return ChargeResponse(
            reference=reference,
            authorization_url=link,
            access_code=reference,
            status=self.normalize_status("pending"),
            metadata=request.metadata,
            provider=self.name,
        )

    async def verify(self, verification_id: str) -> VerificationResponse:
        try:
            response = await self._request(
                "GET", "/transactions/verify_by_reference", params={"tx_ref": verification_id}
            )
        except httpx.HTTPError as e:
            logger.error("flutterwave_verification_failed", reference=verification_id, error=str(e))
            raise VerificationException(f"Flutterwave verification failed: {error_message(e)}") from e

        body = self._json(response)
        if body.get("status") != "success":
            raise VerificationException(
                f"Flutterwave verification failed: {body.get('message', 'unknown error')}",
                context={"response": body},
            )

        data = body.get("data") or {}
        return VerificationResponse(
            reference=data.get("tx_ref", verification_id),
            status=self.normalize_status(data.get("status")),
            amount=data.get("amount"),
            currency=data.get("currency"),
            paid_at=data.get("created_at"),
            channel=data.get("payment_type"),
            card_type=first_of(data, "card.type"),
            bank=first_of(data, "card.issuer"),
            customer={"email": first_of(data, "customer.email"), "name": first_of(data, "customer.name")},
            metadata=data.get("meta") or {},
            provider=self.name,
        )

    async def validate_webhook(self, headers: Mapping[str, Any], raw_body: bytes | str) -> bool:
        signature = get_header(headers, "verif-hash")
        if not signature:
            logger.warning("flutterwave_webhook_signature_missing")
            return False

        secret = self.config.get("webhook_secret") or self.config["secret_key"]
        valid = hmac.compare_digest(signature, secret)
        if not valid:
            logger.warning("flutterwave_webhook_signature_invalid")
        return valid

    async def health_check(self) -> bool:
        return await self._probe("GET", "/banks/NG")

    def extract_webhook_reference(self, payload: dict[str, Any]) -> str | None:
        return first_of(payload, "data.tx_ref", "txRef")

    def extract_webhook_status(self, payload: dict[str, Any]) -> str:
        return first_of(payload, "data.status", "status", default=UNKNOWN_STATUS)

    def extract_webhook_channel(self, payload: dict[str, Any]) -> str | None:
        return first_of(payload, "data.payment_type")

    def extract_webhook_paid_at(self, payload: dict[str, Any]) -> Any:
        return None

    def resolve_verification_id(self, reference: str, provider_id: str | None) -> str:
        return reference
