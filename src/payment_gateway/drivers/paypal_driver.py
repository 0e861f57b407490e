"""
PayPal payment driver (Orders v2).

Reference:
- https://developer.paypal.com/docs/api/orders/v2/
- https://developer.paypal.com/api/rest/webhooks/rest/#link-verifywebhooksignature
"""

import json
import time
from decimal import ROUND_HALF_UP, Decimal
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

ZERO_DECIMAL_CURRENCIES = frozenset({"JPY", "KRW", "VND", "HUF", "TWD"})

WEBHOOK_HEADERS = (
    "paypal-transmission-id",
    "paypal-transmission-time",
    "paypal-cert-url",
    "paypal-auth-algo",
    "paypal-transmission-sig",
)


class PayPalDriver(BaseDriver):
    """
    PayPal driver.

    Uses OAuth client credentials for a bearer token, creates a CAPTURE
    order and returns its approval link. Webhooks cannot be verified
    locally: the transmission headers are posted back to PayPal's
    verify-webhook-signature API.
    """

    name = "paypal"
    REQUIRED_CONFIG = ("client_id", "client_secret")
    DEFAULT_BASE_URL = "https://api-m.sandbox.paypal.com"
    IDEMPOTENCY_HEADER = "PayPal-Request-Id"

    def __init__(self, config: Mapping[str, Any], **kwargs: Any) -> None:
        super().__init__(config, **kwargs)
        if not self.config.get("base_url") and self.config.get("mode") == "live":
            self.base_url = "https://api-m.paypal.com"
        self._access_token: str | None = None
        self._token_expires_at: float = 0.0

    async def _get_access_token(self) -> str:
        if self._access_token and time.time() < self._token_expires_at:
            return self._access_token

        response = await self._request(
            "POST",
            "/v1/oauth2/token",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            data={"grant_type": "client_credentials"},
            auth=(self.config["client_id"], self.config["client_secret"]),
        )
        body = self._json(response)
        token = body.get("access_token")
        if not token:
            raise ChargeException("PayPal authentication returned no access token")

        self._access_token = token
        self._token_expires_at = time.time() + int(body.get("expires_in", 3600)) - 60
        return token

    async def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {await self._get_access_token()}"}

    @staticmethod
    def format_amount(amount: Decimal, currency: str) -> str:
        """PayPal wants decimal strings; some currencies have no minor unit."""
        places = Decimal("1") if currency.upper() in ZERO_DECIMAL_CURRENCIES else Decimal("0.01")
        return str(amount.quantize(places, rounding=ROUND_HALF_UP))

    async def charge(self, request: ChargeRequest) -> ChargeResponse:
        reference = request.reference or self.generate_reference()
        callback = self.callback_url(request)

        payload: dict[str, Any] = {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "reference_id": reference,
                    "custom_id": reference,
                    "description": request.description or "Payment",
                    "amount": {
                        "currency_code": request.currency,
                        "value": self.format_amount(request.amount, request.currency),
                    },
                }
            ],
        }
        if callback:
            payload["application_context"] = {
                "return_url": self.append_query_params(callback, reference=reference),
                "cancel_url": self.append_query_params(callback, reference=reference, status="cancelled"),
                "user_action": "PAY_NOW",
            }

        logger.info("paypal_charge_starting", reference=reference, currency=request.currency)

        try:
            response = await self._request(
                "POST",
                "/v2/checkout/orders",
                headers=await self._auth_headers(),
                json=payload,
                idempotency_key=request.idempotency_key,
            )
        except httpx.HTTPError as e:
            logger.error("paypal_charge_failed", reference=reference, error=str(e))
            raise ChargeException(f"PayPal charge failed: {error_message(e)}") from e

        body = self._json(response)
        order_id = body.get("id")
        approve_url = next(
            (link.get("href") for link in body.get("links") or [] if link.get("rel") in ("approve", "payer-action")),
            None,
        )
        if not order_id or not approve_url:
            raise ChargeException("PayPal order response is missing id or approval link", context={"response": body})

        return ChargeResponse(
            reference=reference,
            authorization_url=approve_url,
            access_code=order_id,
            status=self.normalize_status(body.get("status", "CREATED")),
            metadata={**request.metadata, "order_id": order_id},
            provider=self.name,
        )

    async def verify(self, verification_id: str) -> VerificationResponse:
        try:
            response = await self._request(
                "GET", f"/v2/checkout/orders/{verification_id}", headers=await self._auth_headers()
            )
        except (httpx.HTTPError, ChargeException) as e:
            logger.error("paypal_verification_failed", order_id=verification_id, error=str(e))
            message = error_message(e) if isinstance(e, httpx.HTTPError) else str(e)
            raise VerificationException(f"PayPal verification failed: {message}") from e

        body = self._json(response)
        unit = first_of(body, "purchase_units.0", default={})
        capture = first_of(unit, "payments.captures.0", default={})

        return VerificationResponse(
            reference=unit.get("custom_id") or unit.get("reference_id") or verification_id,
            status=self.normalize_status(capture.get("status") or body.get("status")),
            amount=float(first_of(unit, "amount.value", default=0)),
            currency=first_of(unit, "amount.currency_code"),
            paid_at=capture.get("create_time") or body.get("update_time"),
            channel="paypal",
            customer={
                "email": first_of(body, "payer.email_address"),
                "payer_id": first_of(body, "payer.payer_id"),
            },
            metadata={"order_id": body.get("id", verification_id)},
            provider=self.name,
        )

    async def validate_webhook(self, headers: Mapping[str, Any], raw_body: bytes | str) -> bool:
        values = {name: get_header(headers, name) for name in WEBHOOK_HEADERS}
        webhook_id = self.config.get("webhook_id")
        if not all(values.values()) or not webhook_id:
            logger.warning(
                "paypal_webhook_headers_missing",
                missing=[name for name, value in values.items() if not value],
                has_webhook_id=bool(webhook_id),
            )
            return False

        try:
            event = json.loads(raw_body)
            response = await self._request(
                "POST",
                "/v1/notifications/verify-webhook-signature",
                headers=await self._auth_headers(),
                json={
                    "transmission_id": values["paypal-transmission-id"],
                    "transmission_time": values["paypal-transmission-time"],
                    "cert_url": values["paypal-cert-url"],
                    "auth_algo": values["paypal-auth-algo"],
                    "transmission_sig": values["paypal-transmission-sig"],
                    "webhook_id": webhook_id,
                    "webhook_event": event,
                },
            )
        except Exception as e:
            logger.warning("paypal_webhook_verification_error", error=str(e))
            return False

        valid = self._json(response).get("verification_status") == "SUCCESS"
        if not valid:
            logger.warning("paypal_webhook_signature_invalid")
        return valid

    async def health_check(self) -> bool:
        return await self._probe(
            "POST",
            "/v1/oauth2/token",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            data={"grant_type": "client_credentials"},
            auth=(self.config["client_id"], self.config["client_secret"]),
        )

    def extract_webhook_reference(self, payload: dict[str, Any]) -> str | None:
        return first_of(
            payload,
            "resource.custom_id",
            "resource.purchase_units.0.custom_id",
            "resource.purchase_units.0.reference_id",
            "resource.supplementary_data.related_ids.order_id",
            "resource.id",
        )

    def extract_webhook_status(self, payload: dict[str, Any]) -> str:
        return first_of(payload, "resource.status", "event_type", default=UNKNOWN_STATUS)

    def extract_webhook_channel(self, payload: dict[str, Any]) -> str | None:
        return "paypal"

    def extract_webhook_paid_at(self, payload: dict[str, Any]) -> Any:
        return first_of(payload, "resource.create_time")
