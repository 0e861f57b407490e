"""
Monnify payment driver.

Reference:
- https://developers.monnify.com/api/#initialize-transaction
- https://developers.monnify.com/docs/webhooks
"""

import base64
import hmac
import time
from typing import Any, Mapping
from urllib.parse import quote

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

# Refresh the access token this many seconds before it expires
TOKEN_EXPIRY_MARGIN_SECONDS = 60


class MonnifyDriver(BaseDriver):
    """
    Monnify driver.

    Every API call needs a bearer token obtained with Basic auth from
    /api/v1/auth/login; the token is cached on the driver until shortly
    before it expires. Amounts are sent in major units.
    """

    name = "monnify"
    REQUIRED_CONFIG = ("api_key", "secret_key", "contract_code")
    DEFAULT_BASE_URL = "https://api.monnify.com"
    REFERENCE_PREFIX = "MON"

    def __init__(self, config: Mapping[str, Any], **kwargs: Any) -> None:
        super().__init__(config, **kwargs)
        self._access_token: str | None = None
        self._token_expires_at: float = 0.0

    def _basic_auth(self) -> str:
        credentials = f"{self.config['api_key']}:{self.config['secret_key']}".encode()
        return f"Basic {base64.b64encode(credentials).decode()}"

    async def _get_access_token(self) -> str:
        if self._access_token and time.time() < self._token_expires_at:
            return self._access_token

        response = await self._request(
            "POST", "/api/v1/auth/login", headers={"Authorization": self._basic_auth()}
        )
        body = self._json(response)
        token = first_of(body, "responseBody.accessToken")
        if not body.get("requestSuccessful") or not token:
            raise ChargeException(
                f"Monnify authentication failed: {body.get('responseMessage', 'no access token')}",
                context={"response": body},
            )

        expires_in = int(first_of(body, "responseBody.expiresIn", default=3600))
        self._access_token = token
        self._token_expires_at = time.time() + expires_in - TOKEN_EXPIRY_MARGIN_SECONDS
        logger.debug("monnify_access_token_refreshed", expires_in=expires_in)
        return token

    async def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {await self._get_access_token()}"}

    async def charge(self, request: ChargeRequest) -> ChargeResponse:
        reference = request.reference or self.generate_reference()

        payload: dict[str, Any] = {
            "amount": float(request.amount),
            "customerName": (request.customer or {}).get("name") or request.email.split("@")[0],
            "customerEmail": request.email,
            "paymentReference": reference,
            "paymentDescription": request.description or "Payment",
            "currencyCode": request.currency,
            "contractCode": self.config["contract_code"],
            "redirectUrl": self.callback_url(request),
            "metaData": request.metadata,
        }
        channels = self.map_channels(request)
        if channels:
            payload["paymentMethods"] = channels
        if request.split:
            payload["incomeSplitConfig"] = request.split.get("incomeSplitConfig", request.split)

        logger.info("monnify_charge_starting", reference=reference, currency=request.currency)

        try:
            response = await self._request(
                "POST",
                "/api/v1/merchant/transactions/init-transaction",
                headers=await self._auth_headers(),
                json={k: v for k, v in payload.items() if v is not None},
                idempotency_key=request.idempotency_key,
            )
        except httpx.HTTPError as e:
            logger.error("monnify_charge_failed", reference=reference, error=str(e))
            raise ChargeException(f"Monnify charge failed: {error_message(e)}") from e

        body = self._json(response)
        if not body.get("requestSuccessful"):
            raise ChargeException(
                f"Monnify charge failed: {body.get('responseMessage', 'unknown error')}",
                context={"response": body},
            )

        result = body.get("responseBody") or {}
        if not result.get("checkoutUrl"):
            raise ChargeException("Monnify response is missing checkoutUrl", context={"response": body})

        return ChargeResponse(
            reference=result.get("paymentReference", reference),
            authorization_url=result["checkoutUrl"],
            access_code=result.get("transactionReference", ""),
            status=self.normalize_status("pending"),
            metadata={**request.metadata, "transaction_reference": result.get("transactionReference")},
            provider=self.name,
        )

    async def verify(self, verification_id: str) -> VerificationResponse:
        try:
            response = await self._request(
                "GET",
                f"/api/v2/transactions/{quote(verification_id, safe='')}",
                headers=await self._auth_headers(),
            )
        except (httpx.HTTPError, ChargeException) as e:
            logger.error("monnify_verification_failed", reference=verification_id, error=str(e))
            message = error_message(e) if isinstance(e, httpx.HTTPError) else str(e)
            raise VerificationException(f"Monnify verification failed: {message}") from e

        body = self._json(response)
        if not body.get("requestSuccessful"):
            raise VerificationException(
                f"Monnify verification failed: {body.get('responseMessage', 'unknown error')}",
                context={"response": body},
            )

        data = body.get("responseBody") or {}
        return VerificationResponse(
            reference=data.get("paymentReference", verification_id),
            status=self.normalize_status(data.get("paymentStatus")),
            amount=data.get("amountPaid", data.get("amount")),
            currency=data.get("currencyCode"),
            paid_at=data.get("paidOn"),
            channel=data.get("paymentMethod"),
            card_type=first_of(data, "cardDetails.cardType"),
            bank=first_of(data, "accountDetails.bankName"),
            customer={"email": first_of(data, "customer.email"), "name": first_of(data, "customer.name")},
            metadata=data.get("metaData") or {},
            provider=self.name,
        )

    async def validate_webhook(self, headers: Mapping[str, Any], raw_body: bytes | str) -> bool:
        signature = get_header(headers, "monnify-signature")
        if not signature:
            logger.warning("monnify_webhook_signature_missing")
            return False

        expected = hmac_hexdigest(self.config["secret_key"], as_bytes(raw_body))
        valid = hmac.compare_digest(expected, signature)
        if not valid:
            logger.warning("monnify_webhook_signature_invalid")
        return valid

    async def health_check(self) -> bool:
        return await self._probe("POST", "/api/v1/auth/login", headers={"Authorization": self._basic_auth()})

    def extract_webhook_reference(self, payload: dict[str, Any]) -> str | None:
        return first_of(payload, "eventData.paymentReference", "paymentReference")

    def extract_webhook_status(self, payload: dict[str, Any]) -> str:
        return first_of(payload, "eventData.paymentStatus", "paymentStatus", default=UNKNOWN_STATUS)

    def extract_webhook_channel(self, payload: dict[str, Any]) -> str | None:
        return first_of(payload, "eventData.paymentMethod", "paymentMethod")

    def extract_webhook_paid_at(self, payload: dict[str, Any]) -> Any:
        return first_of(payload, "eventData.paidOn", "paidOn")

    def resolve_verification_id(self, reference: str, provider_id: str | None) -> str:
        # v2 transaction lookup is keyed by Monnify's transactionReference
        return provider_id if provider_id else reference
