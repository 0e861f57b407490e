"""Inbound provider webhook handling."""

from datetime import datetime, timezone
from typing import Any, Mapping

import structlog
from fastapi.responses import JSONResponse

from payment_gateway.drivers.base import PaymentDriver, parse_payload
from payment_gateway.infrastructure.events import WEBHOOK_EVENT, EventDispatcher, provider_webhook_event
from payment_gateway.manager import PaymentManager
from payment_gateway.models import (
    UNKNOWN_STATUS,
    PaymentException,
    PaymentStatus,
    WebhookException,
    coerce_datetime,
)
from payment_gateway.services.status_normalizer import StatusNormalizer

logger = structlog.get_logger(__name__)


class WebhookController:
    """
    Authenticates and reconciles provider webhooks.

    Pipeline:
    1. Resolve the provider's driver (500 if it cannot be resolved)
    2. Verify the signature over the raw body, if enabled (403 on failure)
    3. Extract reference, status and channel with the driver
    4. Normalize the status; stamp paid_at on success
    5. Update the matching transaction (best-effort)
    6. Emit provider-scoped and generic events
    7. Acknowledge with 200, even if steps 3-6 fail internally
    """

    def __init__(
        self,
        manager: PaymentManager,
        dispatcher: EventDispatcher | None = None,
        status_normalizer: StatusNormalizer | None = None,
    ) -> None:
        self.manager = manager
        self.dispatcher = dispatcher or EventDispatcher()
        self.status_normalizer = status_normalizer or manager.status_normalizer

    async def handle(self, provider: str, headers: Mapping[str, Any], raw_body: bytes) -> JSONResponse:
        """
        Process one inbound webhook.

        Args:
            provider: Provider name from the URL path
            headers: Request headers
            raw_body: Exact, unparsed request body

        Returns:
            JSONResponse with status 200, 403 or 500
        """
        provider = provider.lower()
        log = logger.bind(provider=provider)

        try:
            driver = self.manager.driver(provider)
        except PaymentException as e:
            log.error("webhook_driver_unavailable", error=str(e))
            return JSONResponse(status_code=500, content={"message": "Webhook processing failed"})

        if self.manager.config.webhook.verify_signature:
            try:
                await self.authenticate(provider, driver, headers, raw_body)
            except WebhookException as e:
                log.warning("webhook_signature_invalid", error=str(e))
                return JSONResponse(status_code=403, content={"message": "Invalid signature"})

        try:
            payload = parse_payload(raw_body)
            await self.process(provider, driver, payload)
        except Exception as e:
            log.error("webhook_processing_failed", error=str(e), exc_info=True)

        return JSONResponse(status_code=200, content={"status": "success"})

    async def authenticate(
        self,
        provider: str,
        driver: PaymentDriver,
        headers: Mapping[str, Any],
        raw_body: bytes,
    ) -> None:
        """
        Check the webhook signature over the raw body.

        Raises:
            WebhookException: If the signature is missing or invalid, or the
                check itself failed
        """
        try:
            valid = await driver.validate_webhook(headers, raw_body)
        except Exception as e:
            raise WebhookException(
                f"Signature check for {provider} failed: {e}",
                context={"provider": provider},
            ) from e
        if not valid:
            raise WebhookException(f"Invalid {provider} webhook signature", context={"provider": provider})

    async def process(self, provider: str, driver: PaymentDriver, payload: dict[str, Any]) -> None:
        reference = driver.extract_webhook_reference(payload)
        raw_status = driver.extract_webhook_status(payload)
        status = self.status_normalizer.normalize(raw_status, provider)

        logger.info(
            "webhook_received",
            provider=provider,
            reference=reference,
            raw_status=raw_status,
            status=status,
        )

        if reference:
            self._update_transaction(str(reference), driver, payload, status)
        else:
            logger.warning("webhook_reference_missing", provider=provider)

        await self.dispatcher.dispatch(provider_webhook_event(provider), provider, payload)
        await self.dispatcher.dispatch(WEBHOOK_EVENT, provider, payload)

    def _update_transaction(self, reference: str, driver: PaymentDriver, payload: dict[str, Any], status: str) -> None:
        changes: dict[str, Any] = {}

        # A payload without any status field leaves the stored status alone
        if status != UNKNOWN_STATUS:
            changes["status"] = status

        if status == PaymentStatus.SUCCESS.value:
            changes["paid_at"] = coerce_datetime(driver.extract_webhook_paid_at(payload)) or datetime.now(timezone.utc)

        channel = driver.extract_webhook_channel(payload)
        if channel:
            changes["channel"] = channel

        if not changes:
            return

        if not self.manager.update_transaction(reference, changes):
            logger.info("webhook_transaction_not_updated", reference=reference)

