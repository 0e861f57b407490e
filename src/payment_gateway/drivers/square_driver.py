"""
Square payment driver using hosted payment links.

Reference:
- https://developer.squareup.com/reference/square/checkout-api/create-payment-link
- https://developer.squareup.com/docs/webhooks/step3validate
"""

import base64
import hashlib
import hmac
from typing import Any, Mapping

import httpx
import structlog

from payment_gateway.drivers.base import BaseDriver, as_bytes, error_message, first_of, get_header
from payment_gateway.models import (
    UNKNOWN_STATUS,
    ChargeException,
    ChargeRequest,
    ChargeResponse,
    VerificationException,
    VerificationResponse,
)

logger = structlog.get_logger(__name__)

SQUARE_API_VERSION = "2024-10-18"


class SquareDriver(BaseDriver):
    """
    Square driver.

    Creates an online-checkout payment link whose order carries our
    reference. Verification tries, in order: a payment id, a payment link
    id, then an order search by reference. Webhooks are signed with
    base64 HMAC-SHA256 of the raw body.
    """

    name = "square"
    REQUIRED_CONFIG = ("access_token", "location_id")
    DEFAULT_BASE_URL = "https://connect.squareupsandbox.com"

    def default_headers(self) -> dict[str, str]:
        return {
            **super().default_headers(),
            "Authorization": f"Bearer {self.config['access_token']}",
            "Square-Version": SQUARE_API_VERSION,
        }

    async def charge(self, request: ChargeRequest) -> ChargeResponse:
        reference = request.reference or self.generate_reference()
        callback = self.callback_url(request)

        payload: dict[str, Any] = {
            # Square requires an idempotency key in the body
            "idempotency_key": request.idempotency_key or reference,
            "order": {
                "location_id": self.config["location_id"],
                "reference_id": reference,
                "line_items": [
                    {
                        "name": request.description or "Payment",
                        "quantity": "1",
                        "base_price_money": {
                            "amount": request.amount_in_minor_units(),
                            "currency": request.currency,
                        },
                    }
                ],
            },
            "checkout_options": {},
            "pre_populated_data": {"buyer_email": request.email},
        }
        if request.metadata:
            payload["order"]["metadata"] = {str(k): str(v) for k, v in request.metadata.items()}
        if callback:
            payload["checkout_options"]["redirect_url"] = self.append_query_params(callback, reference=reference)
        channels = self.map_channels(request)
        if channels:
            payload["checkout_options"]["accepted_payment_methods"] = channels

        logger.info("square_charge_starting", reference=reference, currency=request.currency)

        try:
            response = await self._request("POST", "/v2/online-checkout/payment-links", json=payload)
        except httpx.HTTPError as e:
            logger.error("square_charge_failed", reference=reference, error=str(e))
            raise ChargeException(f"Square charge failed: {error_message(e)}") from e

        body = self._json(response)
        link = body.get("payment_link") or {}
        if not link.get("url") or not link.get("id"):
            raise ChargeException(
                "Square response is missing payment_link",
                context={"response": body, "errors": body.get("errors")},
            )

        return ChargeResponse(
            reference=reference,
            authorization_url=link["url"],
            access_code=link["id"],
            status=self.normalize_status("pending"),
            metadata={**request.metadata, "payment_link_id": link["id"], "order_id": link.get("order_id")},
            provider=self.name,
        )

    async def verify(self, verification_id: str) -> VerificationResponse:
        try:
            found = await self._find_payment(verification_id)
        except httpx.HTTPError as e:
            logger.error("square_verification_failed", verification_id=verification_id, error=str(e))
            raise VerificationException(f"Square verification failed: {error_message(e)}") from e

        if found is None:
            raise VerificationException(f"Square payment not found for {verification_id}")

        order, payment = found
        return VerificationResponse(
            reference=order.get("reference_id") or verification_id,
            status=self.normalize_status(payment.get("status") or order.get("state")),
            amount=(first_of(payment, "amount_money.amount", "total_money.amount", default=0) or 0) / 100,
            currency=first_of(payment, "amount_money.currency", "total_money.currency"),
            paid_at=payment.get("updated_at") if payment.get("status") == "COMPLETED" else None,
            channel=payment.get("source_type"),
            card_type=first_of(payment, "card_details.card.card_brand"),
            customer={"email": payment.get("buyer_email_address")},
            metadata={"payment_id": payment.get("id"), "order_id": order.get("id")},
            provider=self.name,
        )

    async def _find_payment(self, verification_id: str) -> tuple[dict[str, Any], dict[str, Any]] | None:
        """Return (order, payment) for a payment id, payment link id, or reference."""
        response = await self._send("GET", f"/v2/payments/{verification_id}")
        if response.status_code == 200:
            payment = self._json(response).get("payment") or {}
            order = await self._get_order(payment.get("order_id")) if payment.get("order_id") else {}
            return order, payment
        if response.status_code >= 500:
            response.raise_for_status()

        order_id = None
        response = await self._send("GET", f"/v2/online-checkout/payment-links/{verification_id}")
        if response.status_code == 200:
            order_id = first_of(self._json(response), "payment_link.order_id")
        elif response.status_code >= 500:
            response.raise_for_status()

        if order_id:
            order = await self._get_order(order_id)
        else:
            order = await self._search_order(verification_id)
        if not order:
            return None

        payment_id = first_of(order, "tenders.0.payment_id")
        if not payment_id:
            return order, {"status": order.get("state")}

        response = await self._request("GET", f"/v2/payments/{payment_id}")
        return order, self._json(response).get("payment") or {}

    async def _get_order(self, order_id: str) -> dict[str, Any]:
        response = await self._request("GET", f"/v2/orders/{order_id}")
        return self._json(response).get("order") or {}

    async def _search_order(self, reference: str) -> dict[str, Any] | None:
        response = await self._request(
            "POST",
            "/v2/orders/search",
            json={"location_ids": [self.config["location_id"]], "limit": 100},
        )
        for order in self._json(response).get("orders") or []:
            if order.get("reference_id") == reference:
                return order
        return None

    async def validate_webhook(self, headers: Mapping[str, Any], raw_body: bytes | str) -> bool:
        signature = get_header(headers, "x-square-signature") or get_header(headers, "x-square-hmacsha256-signature")
        key = self.config.get("webhook_signature_key")
        if not signature or not key:
            logger.warning("square_webhook_signature_missing", has_key=bool(key))
            return False

        digest = hmac.new(key.encode(), as_bytes(raw_body), hashlib.sha256).digest()
        expected = base64.b64encode(digest).decode()
        valid = hmac.compare_digest(expected, signature)
        if not valid:
            logger.warning("square_webhook_signature_invalid")
        return valid

    async def health_check(self) -> bool:
        return await self._probe("GET", "/v2/locations")

    def extract_webhook_reference(self, payload: dict[str, Any]) -> str | None:
        return first_of(
            payload,
            "data.object.payment.reference_id",
            "data.object.order.reference_id",
            "data.object.payment.order_id",
            "data.id",
        )

    def extract_webhook_status(self, payload: dict[str, Any]) -> str:
        return first_of(payload, "data.object.payment.status", "data.object.order.state", default=UNKNOWN_STATUS)

    def extract_webhook_channel(self, payload: dict[str, Any]) -> str | None:
        return first_of(payload, "data.object.payment.source_type")

    def extract_webhook_paid_at(self, payload: dict[str, Any]) -> Any:
        return None
