"""
Stripe payment driver using hosted Checkout Sessions.

Reference:
- https://docs.stripe.com/api/checkout/sessions
- https://docs.stripe.com/webhooks#verify-events
"""

from typing import Any, Mapping

import stripe
import structlog

from payment_gateway.drivers.base import BaseDriver, first_of, get_header
from payment_gateway.models import (
    UNKNOWN_STATUS,
    ChargeException,
    ChargeRequest,
    ChargeResponse,
    VerificationException,
    VerificationResponse,
)

logger = structlog.get_logger(__name__)


def _attr(obj: Any, name: str, default: Any = None) -> Any:
    if obj is None:
        return default
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    try:
        value = getattr(obj, name)
    except AttributeError:
        return default
    return default if value is None else value


def _as_dict(obj: Any) -> dict[str, Any]:
    if not obj:
        return {}
    if isinstance(obj, Mapping):
        return dict(obj)
    to_dict = getattr(obj, "to_dict", None)
    return dict(to_dict()) if callable(to_dict) else {}


class StripeDriver(BaseDriver):
    """
    Stripe driver.

    Creates a Checkout Session with the stripe SDK and redirects the
    customer to its hosted URL. Amounts are sent in minor units. Webhooks
    are verified with stripe.Webhook.construct_event and the endpoint's
    signing secret.
    """

    name = "stripe"
    REQUIRED_CONFIG = ("secret_key",)
    DEFAULT_BASE_URL = "https://api.stripe.com"

    @property
    def api_key(self) -> str:
        return self.config["secret_key"]

    async def charge(self, request: ChargeRequest) -> ChargeResponse:
        reference = request.reference or self.generate_reference()
        callback = self.callback_url(request)
        if not callback:
            raise ChargeException("Stripe requires a callback_url for Checkout success/cancel redirects")

        metadata = {str(k): str(v) for k, v in request.metadata.items()}
        metadata["reference"] = reference

        params: dict[str, Any] = {
            "mode": "payment",
            "customer_email": request.email,
            "client_reference_id": reference,
            "line_items": [
                {
                    "price_data": {
                        "currency": request.currency.lower(),
                        "unit_amount": request.amount_in_minor_units(),
                        "product_data": {"name": request.description or "Payment"},
                    },
                    "quantity": 1,
                }
            ],
            "payment_method_types": self.map_channels(request) or ["card"],
            "success_url": self.append_query_params(callback, status="success", reference=reference),
            "cancel_url": self.append_query_params(callback, status="cancelled", reference=reference),
            "metadata": metadata,
            "payment_intent_data": {"metadata": {"reference": reference}},
        }

        logger.info(
            "stripe_charge_starting",
            reference=reference,
            amount_minor=request.amount_in_minor_units(),
            currency=request.currency,
        )

        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                idempotency_key=request.idempotency_key,
                **params,
            )
        except stripe.StripeError as e:
            logger.error("stripe_charge_failed", reference=reference, error=str(e))
            raise ChargeException(
                f"Stripe charge failed: {e.user_message or str(e)}",
                context={"code": e.code, "http_status": e.http_status},
            ) from e

        session_id = _attr(session, "id")
        url = _attr(session, "url")
        if not session_id or not url:
            raise ChargeException("Stripe session is missing id or url")

        logger.info("stripe_charge_initialized", reference=reference, session_id=session_id)

        return ChargeResponse(
            reference=reference,
            authorization_url=url,
            access_code=session_id,
            status=self.normalize_status("pending"),
            metadata={**request.metadata, "session_id": session_id},
            provider=self.name,
        )

    async def verify(self, verification_id: str) -> VerificationResponse:
        try:
            if verification_id.startswith("pi_"):
                intent = stripe.PaymentIntent.retrieve(verification_id, api_key=self.api_key)
                return self._from_intent(intent)

            if verification_id.startswith("cs_"):
                session = stripe.checkout.Session.retrieve(verification_id, api_key=self.api_key)
            else:
                session = self._find_session_by_reference(verification_id)
        except stripe.StripeError as e:
            logger.error("stripe_verification_failed", verification_id=verification_id, error=str(e))
            raise VerificationException(f"Stripe verification failed: {e.user_message or str(e)}") from e

        if session is None:
            raise VerificationException(f"Stripe payment not found for reference {verification_id}")

        return self._from_session(session)

    def _find_session_by_reference(self, reference: str) -> Any:
        sessions = stripe.checkout.Session.list(api_key=self.api_key, limit=100)
        for session in _attr(sessions, "data", []):
            if _attr(session, "client_reference_id") == reference:
                return session
            if _as_dict(_attr(session, "metadata")).get("reference") == reference:
                return session
        return None

    def _from_session(self, session: Any) -> VerificationResponse:
        metadata = _as_dict(_attr(session, "metadata"))
        if _attr(session, "payment_status") == "paid":
            raw_status = "paid"
        elif _attr(session, "status") == "expired":
            raw_status = "expired"
        else:
            raw_status = _attr(session, "payment_status", "pending")

        customer_details = _attr(session, "customer_details")
        methods = _attr(session, "payment_method_types", []) or []

        return VerificationResponse(
            reference=metadata.get("reference") or _attr(session, "client_reference_id") or _attr(session, "id"),
            status=self.normalize_status(raw_status),
            amount=(_attr(session, "amount_total", 0) or 0) / 100,
            currency=_attr(session, "currency"),
            paid_at=None,
            channel=methods[0] if methods else None,
            customer={"email": _attr(customer_details, "email") or _attr(session, "customer_email")},
            metadata={**metadata, "session_id": _attr(session, "id")},
            provider=self.name,
        )

    def _from_intent(self, intent: Any) -> VerificationResponse:
        metadata = _as_dict(_attr(intent, "metadata"))
        methods = _attr(intent, "payment_method_types", []) or []
        return VerificationResponse(
            reference=metadata.get("reference") or _attr(intent, "id"),
            status=self.normalize_status(_attr(intent, "status")),
            amount=(_attr(intent, "amount", 0) or 0) / 100,
            currency=_attr(intent, "currency"),
            paid_at=_attr(intent, "created") if _attr(intent, "status") == "succeeded" else None,
            channel=methods[0] if methods else None,
            metadata={**metadata, "payment_intent_id": _attr(intent, "id")},
            provider=self.name,
        )

    async def validate_webhook(self, headers: Mapping[str, Any], raw_body: bytes | str) -> bool:
        signature = get_header(headers, "stripe-signature")
        secret = self.config.get("webhook_secret")
        if not signature or not secret:
            logger.warning("stripe_webhook_signature_missing", has_secret=bool(secret))
            return False

        try:
            stripe.Webhook.construct_event(raw_body, signature, secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning("stripe_webhook_signature_invalid", error=str(e))
            return False
        return True

    async def health_check(self) -> bool:
        try:
            stripe.Balance.retrieve(api_key=self.api_key)
        except stripe.AuthenticationError:
            # A rejected key still proves the API is reachable
            return True
        except stripe.StripeError as e:
            healthy = e.http_status is not None and e.http_status < 500
            if not healthy:
                logger.warning("health_check_failed", provider=self.name, error=str(e))
            return healthy
        return True

    def extract_webhook_reference(self, payload: dict[str, Any]) -> str | None:
        return first_of(
            payload,
            "data.object.client_reference_id",
            "data.object.metadata.reference",
            "data.object.id",
        )

    def extract_webhook_status(self, payload: dict[str, Any]) -> str:
        return first_of(payload, "data.object.payment_status", "data.object.status", default=UNKNOWN_STATUS)

    def extract_webhook_channel(self, payload: dict[str, Any]) -> str | None:
        return first_of(payload, "data.object.payment_method_types.0")

    def extract_webhook_paid_at(self, payload: dict[str, Any]) -> Any:
        return None
