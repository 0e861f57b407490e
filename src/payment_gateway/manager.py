"""
Payment orchestration across providers.

PaymentManager is the single entry point for charging and verifying
payments. It builds drivers lazily from configuration, walks the fallback
chain for charges, and resolves which provider to ask when verifying a
reference.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

import httpx
import structlog

from payment_gateway.config import Settings, settings
from payment_gateway.drivers.base import PaymentDriver
from payment_gateway.drivers.factory import DriverFactory
from payment_gateway.infrastructure.cache import CacheStore, InMemoryCache
from payment_gateway.infrastructure.repository import TransactionStore
from payment_gateway.models import (
    ChargeRequest,
    ChargeResponse,
    CurrencyException,
    DriverNotFoundException,
    InvalidConfigurationException,
    PaymentStatus,
    ProviderException,
    Transaction,
    VerificationResponse,
    coerce_datetime,
)
from payment_gateway.services.channel_mapper import ChannelMapper
from payment_gateway.services.provider_detector import ProviderDetector
from payment_gateway.services.status_normalizer import StatusNormalizer

logger = structlog.get_logger(__name__)

HEALTH_CACHE_KEY = "payments.health.{provider}"
SESSION_CACHE_KEY = "payments.session.{reference}"


@dataclass(frozen=True)
class VerificationContext:
    """Which provider to ask about a reference, and with which id."""

    provider: str
    provider_id: str | None = None
    source: str = "default"


class PaymentManager:
    """
    Orchestrates charges and verifications across configured providers.

    Drivers are created on first use and cached for the lifetime of the
    manager. The transaction store and cache are collaborators: writes to
    them are best-effort and never change the outcome of a charge or
    verification.
    """

    def __init__(
        self,
        config: Settings | None = None,
        factory: DriverFactory | None = None,
        status_normalizer: StatusNormalizer | None = None,
        channel_mapper: ChannelMapper | None = None,
        provider_detector: ProviderDetector | None = None,
        transaction_store: TransactionStore | None = None,
        cache: CacheStore | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the manager.

        Args:
            config: Settings; defaults to the global settings instance
            factory: Driver factory (holds runtime driver registrations)
            status_normalizer: Shared normalizer injected into every driver
            channel_mapper: Shared channel mapper injected into every driver
            provider_detector: Reference prefix detector
            transaction_store: Store for transaction bookkeeping; None disables it
            cache: TTL cache for health results and session entries
            http_client: Optional HTTP client shared by all drivers
        """
        self.config = config or settings
        self.factory = factory or DriverFactory()
        self.status_normalizer = status_normalizer or StatusNormalizer()
        self.channel_mapper = channel_mapper or ChannelMapper()
        self.provider_detector = provider_detector or ProviderDetector()
        self.transaction_store = transaction_store
        self.cache = cache if cache is not None else InMemoryCache()
        self.http_client = http_client
        self._drivers: dict[str, PaymentDriver] = {}

    # Drivers

    def driver(self, name: str | None = None) -> PaymentDriver:
        """
        Return the cached driver for a provider, creating it on first use.

        Args:
            name: Provider name; defaults to the configured default provider

        Raises:
            DriverNotFoundException: If the provider is unconfigured, disabled
                or has no resolvable implementation
            InvalidConfigurationException: If the provider config is incomplete
        """
        name = (name or self.config.default_provider).lower()
        if name in self._drivers:
            return self._drivers[name]

        section = self.config.provider_settings(name)
        if section is None:
            raise DriverNotFoundException(f"Payment provider [{name}] is not configured")
        if not section.enabled:
            raise DriverNotFoundException(f"Payment provider [{name}] is disabled")

        config = section.model_dump()
        config.setdefault("health_timeout_seconds", self.config.health_check.timeout_seconds)

        driver = self.factory.create_driver(
            name,
            config,
            http_client=self.http_client,
            status_normalizer=self.status_normalizer,
            channel_mapper=self.channel_mapper,
        )
        self._drivers[name] = driver
        return driver

    def get_enabled_providers(self) -> dict[str, dict[str, Any]]:
        """Configured providers whose enabled flag is set, with their config."""
        enabled = {}
        for name in self.config.provider_names():
            section = self.config.provider_settings(name)
            if section is not None and section.enabled:
                enabled[name] = section.model_dump()
        return enabled

    def is_enabled(self, name: str) -> bool:
        section = self.config.provider_settings(name)
        return section is not None and section.enabled

    def get_fallback_chain(self, providers: list[str] | None = None) -> list[str]:
        """
        Return the ordered providers to try.

        Args:
            providers: Explicit chain; defaults to [default, fallback]

        Returns:
            Provider names, empty entries removed, duplicates removed in order
        """
        candidates = providers if providers else [self.config.default_provider, self.config.fallback_provider]

        chain: list[str] = []
        for name in candidates:
            if name and name.lower() not in chain:
                chain.append(name.lower())
        return chain

    # Charging

    async def charge(self, request: ChargeRequest) -> ChargeResponse:
        """Charge through the default fallback chain."""
        return await self.charge_with_fallback(request)

    async def charge_with_fallback(
        self,
        request: ChargeRequest,
        providers: list[str] | None = None,
    ) -> ChargeResponse:
        """
        Charge with the first provider in the chain that can take the payment.

        Providers are tried strictly in order. A provider is skipped when it
        is disabled, does not support the request currency, or fails its
        cached health check. The first successful charge is persisted and
        returned; later providers are not contacted.

        Args:
            request: Validated charge request
            providers: Explicit provider chain (optional)

        Returns:
            ChargeResponse from the first provider that succeeded

        Raises:
            ProviderException: If every provider was skipped or failed; its
                context maps each provider name to the failure message
            InvalidConfigurationException: If a provider config is incomplete
        """
        errors: dict[str, str] = {}

        for name in self.get_fallback_chain(providers):
            try:
                driver = self.driver(name)
            except DriverNotFoundException as e:
                errors[name] = str(e)
                logger.warning("provider_skipped", provider=name, reason="unavailable", error=str(e))
                continue

            try:
                self._ensure_currency_supported(name, driver, request.currency)
            except CurrencyException as e:
                errors[name] = str(e)
                logger.warning("provider_skipped", provider=name, reason="currency", currency=request.currency)
                continue

            if self.config.health_check.enabled and not await self._is_healthy(name, driver):
                errors[name] = f"Provider {name} failed its health check"
                logger.warning("provider_skipped", provider=name, reason="health_check")
                continue

            try:
                response = await driver.charge(request)
            except InvalidConfigurationException:
                raise
            except Exception as e:
                errors[name] = str(e)
                logger.warning("provider_charge_failed", provider=name, error=str(e))
                continue

            response.provider = response.provider or name
            logger.info("charge_succeeded", provider=name, reference=response.reference)

            self._log_transaction(name, request, response)
            self._remember_session(name, response)
            return response

        logger.error("all_providers_failed", providers=list(errors))
        raise ProviderException("All payment providers failed", context=errors)

    @staticmethod
    def _ensure_currency_supported(name: str, driver: PaymentDriver, currency: str) -> None:
        if not driver.is_currency_supported(currency):
            raise CurrencyException(
                f"Currency {currency} is not supported by {name}",
                context={"provider": name, "currency": currency},
            )

    async def _is_healthy(self, name: str, driver: PaymentDriver) -> bool:
        key = HEALTH_CACHE_KEY.format(provider=name)
        try:
            cached = self.cache.get(key)
        except Exception as e:
            logger.warning("health_cache_failed", provider=name, error=str(e))
            cached = None
        if cached is not None:
            return bool(cached)

        try:
            healthy = await driver.health_check()
        except Exception as e:
            logger.warning("health_check_error", provider=name, error=str(e))
            healthy = False

        try:
            self.cache.set(key, healthy, self.config.health_check.cache_ttl_seconds)
        except Exception as e:
            logger.warning("health_cache_failed", provider=name, error=str(e))
        return healthy

    def _log_transaction(self, provider: str, request: ChargeRequest, response: ChargeResponse) -> None:
        if self.transaction_store is None or not self.config.transaction_log.enabled:
            return

        try:
            self.transaction_store.create(
                Transaction(
                    reference=response.reference,
                    provider=provider,
                    status=response.status,
                    amount=request.amount,
                    currency=request.currency,
                    email=request.email,
                    metadata={
                        **request.metadata,
                        **response.metadata,
                        "_provider_id": response.access_code,
                    },
                    customer=request.customer,
                )
            )
        except Exception as e:
            logger.error("transaction_log_failed", provider=provider, reference=response.reference, error=str(e))

    def _remember_session(self, provider: str, response: ChargeResponse) -> None:
        try:
            self.cache.set(
                SESSION_CACHE_KEY.format(reference=response.reference),
                {"provider": provider, "provider_id": response.access_code},
                self.config.session_ttl_seconds,
            )
        except Exception as e:
            logger.warning("session_cache_failed", reference=response.reference, error=str(e))

    # Verification

    async def verify(self, reference: str, provider: str | None = None) -> VerificationResponse:
        """
        Verify a payment by its reference.

        The provider is resolved by strict precedence: explicit argument,
        cached session entry, stored transaction, reference prefix, then the
        default provider. If not even the default provider is available,
        every enabled provider is asked in turn.

        Raises:
            ProviderException: If verification failed; the context maps the
                provider(s) asked to their failure messages
            DriverNotFoundException: If an explicit provider is unavailable
        """
        context = self.resolve_verification_context(reference, provider)
        if context is None:
            return await self._verify_with_any_provider(reference)

        driver = self.driver(context.provider)
        verification_id = driver.resolve_verification_id(reference, context.provider_id)

        logger.info(
            "verification_starting",
            reference=reference,
            provider=context.provider,
            source=context.source,
        )

        try:
            response = await driver.verify(verification_id)
        except InvalidConfigurationException:
            raise
        except Exception as e:
            logger.warning("verification_failed", provider=context.provider, reference=reference, error=str(e))
            raise ProviderException(
                f"Unable to verify payment reference {reference}",
                context={context.provider: str(e)},
            ) from e

        response.provider = response.provider or context.provider
        self._record_verification(reference, response)
        return response

    def resolve_verification_context(self, reference: str, provider: str | None = None) -> VerificationContext | None:
        """Return the first context produced by the precedence chain, or None."""
        if provider:
            return VerificationContext(provider.lower(), None, "argument")

        lookups: tuple[Callable[[str], VerificationContext | None], ...] = (
            self._context_from_cache,
            self._context_from_store,
            self._context_from_prefix,
            self._context_from_default,
        )
        for lookup in lookups:
            context = lookup(reference)
            if context is not None and self.is_enabled(context.provider):
                return context
        return None

    def _context_from_cache(self, reference: str) -> VerificationContext | None:
        try:
            entry = self.cache.get(SESSION_CACHE_KEY.format(reference=reference))
        except Exception as e:
            logger.warning("session_cache_failed", reference=reference, error=str(e))
            return None
        if not isinstance(entry, dict) or not entry.get("provider"):
            return None
        return VerificationContext(entry["provider"], entry.get("provider_id"), "cache")

    def _context_from_store(self, reference: str) -> VerificationContext | None:
        if self.transaction_store is None:
            return None
        try:
            transaction = self.transaction_store.find(reference)
        except Exception as e:
            logger.warning("transaction_lookup_failed", reference=reference, error=str(e))
            return None
        if transaction is None:
            return None
        return VerificationContext(transaction.provider, transaction.provider_id, "store")

    def _context_from_prefix(self, reference: str) -> VerificationContext | None:
        detected = self.provider_detector.detect_from_reference(reference)
        return VerificationContext(detected, None, "prefix") if detected else None

    def _context_from_default(self, reference: str) -> VerificationContext | None:
        return VerificationContext(self.config.default_provider.lower(), None, "default")

    async def _verify_with_any_provider(self, reference: str) -> VerificationResponse:
        errors: dict[str, str] = {}

        for name in self.get_enabled_providers():
            try:
                driver = self.driver(name)
                response = await driver.verify(driver.resolve_verification_id(reference, None))
            except InvalidConfigurationException:
                raise
            except Exception as e:
                errors[name] = str(e)
                continue

            response.provider = response.provider or name
            self._record_verification(reference, response)
            return response

        raise ProviderException(f"Unable to verify payment reference {reference}", context=errors)

    def _record_verification(self, reference: str, response: VerificationResponse) -> None:
        changes: dict[str, Any] = {"status": response.status}
        paid_at = coerce_datetime(response.paid_at)
        if paid_at is None and response.status == PaymentStatus.SUCCESS.value:
            paid_at = datetime.now(timezone.utc)
        if paid_at is not None:
            changes["paid_at"] = paid_at
        if response.channel:
            changes["channel"] = response.channel

        self.update_transaction(reference, changes)

    # Bookkeeping

    def update_transaction(self, reference: str, changes: dict[str, Any]) -> bool:
        """Best-effort store update; returns False when nothing was updated."""
        if self.transaction_store is None:
            return False
        try:
            return self.transaction_store.update(reference, changes)
        except Exception as e:
            logger.error("transaction_update_failed", reference=reference, error=str(e))
            return False

    async def aclose(self) -> None:
        for driver in self._drivers.values():
            close = getattr(driver, "aclose", None)
            if close is not None:
                await close()
        self._drivers.clear()
