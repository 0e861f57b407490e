"""
NowPayments crypto payment driver (hosted invoices).

Reference:
- https://documenter.getpostman.com/view/7907941/2s93JusNJt
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


class NowPaymentsDriver(BaseDriver):
    """
    NowPayments driver.

    Prices are quoted in fiat major units and paid in crypto on a hosted
    invoice page. IPN callbacks are signed with HMAC-SHA512 of the raw
    body using the IPN secret.
    """

    name = "nowpayments"
    REQUIRED_CONFIG = ("api_key",)
    DEFAULT_BASE_URL = "https://api.nowpayments.io"
    REFERENCE_PREFIX = "NOW"

    def default_headers(self) -> dict[str, str]:
        return {**super().default_headers(), "x-api-key": self.config["api_key"]}

    async def charge(self, request: ChargeRequest) -> ChargeResponse:
        reference = request.reference or self.generate_reference()
        callback = self.callback_url(request)

        payload: dict[str, Any] = {
            "price_amount": float(request.amount),
            "price_currency": request.currency.lower(),
            "order_id": reference,
            "order_description": request.description or f"Payment {reference}",
            "customer_email": request.email,
            "ipn_callback_url": self.config.get("webhook_url"),
            "success_url": self.append_query_params(callback, reference=reference) if callback else None,
            "cancel_url": self.append_query_params(callback, reference=reference, status="cancelled") if callback else None,
        }

        logger.info("nowpayments_charge_starting", reference=reference, currency=request.currency)

        try:
            response = await self._request(
                "POST",
                "/v1/invoice",
                json={k: v for k, v in payload.items() if v is not None},
                idempotency_key=request.idempotency_key,
            )
        except httpx.HTTPError as e:
            logger.error("nowpayments_charge_failed", reference=reference, error=str(e))
            raise ChargeException(f"NowPayments charge failed: {error_message(e)}") from e

        body = self._json(response)
        invoice_id = body.get("id")
        invoice_url = body.get("invoice_url")
        if not invoice_id or not invoice_url:
            raise ChargeException("NowPayments response is missing id or invoice_url", context={"response": body})

        return ChargeResponse(
            reference=reference,
            authorization_url=invoice_url,
            access_code=str(invoice_id),
            status=self.normalize_status("pending"),
            metadata={**request.metadata, "invoice_id": str(invoice_id)},
            provider=self.name,
        )

    async def verify(self, verification_id: str) -> VerificationResponse:
        try:
            response = await self._request("GET", f"/v1/payment/{verification_id}")
        except httpx.HTTPError as e:
            logger.error("nowpayments_verification_failed", payment_id=verification_id, error=str(e))
            raise VerificationException(f"NowPayments verification failed: {error_message(e)}") from e

        body = self._json(response)
        if not body.get("payment_id") and not body.get("payment_status"):
            raise VerificationException("NowPayments verification returned no payment", context={"response": body})

        status = self.normalize_status(body.get("payment_status"))
        return VerificationResponse(
            reference=body.get("order_id") or str(body.get("payment_id", verification_id)),
            status=status,
            amount=body.get("price_amount"),
            currency=body.get("price_currency"),
            paid_at=body.get("updated_at") if status == "success" else None,
            channel=body.get("pay_currency"),
            metadata={
                "payment_id": body.get("payment_id"),
                "pay_amount": body.get("pay_amount"),
                "actually_paid": body.get("actually_paid"),
            },
            provider=self.name,
        )

    async def validate_webhook(self, headers: Mapping[str, Any], raw_body: bytes | str) -> bool:
        signature = get_header(headers, "x-nowpayments-sig")
        secret = self.config.get("ipn_secret")
        if not signature or not secret:
            logger.warning("nowpayments_webhook_signature_missing", has_secret=bool(secret))
            return False

        expected = hmac_hexdigest(secret, as_bytes(raw_body))
        valid = hmac.compare_digest(expected, signature.lower())
        if not valid:
            logger.warning("nowpayments_webhook_signature_invalid")
        return valid

    async def health_check(self) -> bool:
        return await self._probe("GET", "/v1/status")

    def extract_webhook_reference(self, payload: dict[str, Any]) -> str | None:
        return first_of(payload, "order_id", "payment_id")

    def extract_webhook_status(self, payload: dict[str, Any]) -> str:
        return first_of(payload, "payment_status", default=UNKNOWN_STATUS)

    def extract_webhook_channel(self, payload: dict[str, Any]) -> str | None:
        return first_of(payload, "pay_currency")

    def extract_webhook_paid_at(self, payload: dict[str, Any]) -> Any:
        return None
