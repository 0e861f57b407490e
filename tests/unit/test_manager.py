"""Unit tests for PaymentManager orchestration."""

from decimal import Decimal

import pytest
from conftest import RecordingTransport, StubDriver, make_factory, make_settings, stub_provider

from payment_gateway.config import HealthCheckSettings, PaystackSettings, TransactionLogSettings
from payment_gateway.infrastructure.cache import InMemoryCache
from payment_gateway.infrastructure.repository import TransactionRepository
from payment_gateway.manager import SESSION_CACHE_KEY, PaymentManager
from payment_gateway.models import (
    ChargeRequest,
    CurrencyException,
    DriverNotFoundException,
    InvalidConfigurationException,
    ProviderException,
    Transaction,
)


class UnavailableCache(InMemoryCache):
    """Cache whose every read and write fails, like an unreachable Redis."""

    def get(self, key):
        raise ConnectionError("redis down")

    def set(self, key, value, ttl_seconds=None):
        raise ConnectionError("redis down")


class RequiresTokenDriver(StubDriver):
    """Stub driver that refuses to build without an api_token."""

    REQUIRED_CONFIG = ("api_token",)


def build_manager(repository=None, cache=None, factory=None, **overrides) -> PaymentManager:
    return PaymentManager(
        config=make_settings(**overrides),
        factory=factory or make_factory(*overrides.get("custom_providers", {"alpha": 0, "beta": 0})),
        transaction_store=repository,
        cache=cache if cache is not None else InMemoryCache(),
    )


class TestDriverResolution:
    """Tests for building and caching drivers."""

    def test_driver_is_cached(self, manager: PaymentManager) -> None:
        """Test that one driver instance is kept per provider."""
        assert manager.driver("alpha") is manager.driver("ALPHA")

    def test_default_driver(self, manager: PaymentManager) -> None:
        """Test that no name means the default provider."""
        assert manager.driver() is manager.driver("alpha")

    def test_unconfigured_provider(self, manager: PaymentManager) -> None:
        with pytest.raises(DriverNotFoundException) as exc_info:
            manager.driver("opay")

        assert "not configured" in str(exc_info.value)

    def test_disabled_provider(self, manager: PaymentManager) -> None:
        with pytest.raises(DriverNotFoundException) as exc_info:
            manager.driver("paystack")

        assert "disabled" in str(exc_info.value)

    def test_driver_receives_provider_config(self, manager: PaymentManager) -> None:
        """Test that extra provider settings reach the driver."""
        driver = manager.driver("beta")

        assert isinstance(driver, StubDriver)
        assert driver.config["label"] == "beta"
        assert driver.status_normalizer is manager.status_normalizer

    def test_enabled_providers(self, manager: PaymentManager) -> None:
        """Test that only enabled providers are listed."""
        enabled = manager.get_enabled_providers()

        assert list(enabled) == ["alpha", "beta"]
        assert enabled["alpha"]["label"] == "alpha"
        assert manager.is_enabled("alpha")
        assert not manager.is_enabled("stripe")
        assert not manager.is_enabled("opay")


class TestFallbackChain:
    """Tests for building the provider chain."""

    def test_default_chain(self, manager: PaymentManager) -> None:
        assert manager.get_fallback_chain() == ["alpha", "beta"]

    def test_explicit_chain_is_deduplicated(self, manager: PaymentManager) -> None:
        assert manager.get_fallback_chain(["Beta", "alpha", "beta", ""]) == ["beta", "alpha"]

    def test_no_fallback_provider(self) -> None:
        manager = build_manager(fallback_provider="false")

        assert manager.get_fallback_chain() == ["alpha"]

    def test_fallback_same_as_default(self) -> None:
        manager = build_manager(fallback_provider="alpha")

        assert manager.get_fallback_chain() == ["alpha"]


class TestChargeWithFallback:
    """Tests for charging across providers."""

    @pytest.mark.asyncio
    async def test_first_provider_succeeds(self, manager: PaymentManager, charge_request: ChargeRequest) -> None:
        """Test that later providers are not contacted after a success."""
        response = await manager.charge(charge_request)

        assert response.provider == "alpha"
        assert len(manager.driver("alpha").charges) == 1
        assert manager.driver("beta").charges == []

    @pytest.mark.asyncio
    async def test_falls_back_on_failure(self, charge_request: ChargeRequest) -> None:
        """Test that a failing provider hands over to the next one."""
        manager = build_manager(
            custom_providers={
                "alpha": stub_provider(label="alpha", fail_charge=True),
                "beta": stub_provider(label="beta"),
            }
        )

        response = await manager.charge(charge_request)

        assert response.provider == "beta"
        assert response.metadata == {"label": "beta"}
        assert len(manager.driver("alpha").charges) == 1

    @pytest.mark.asyncio
    async def test_all_providers_fail(self, charge_request: ChargeRequest) -> None:
        """Test that the aggregated error names every provider."""
        manager = build_manager(
            custom_providers={
                "alpha": stub_provider(label="alpha", fail_charge=True),
                "beta": stub_provider(label="beta", fail_charge=True),
            }
        )

        with pytest.raises(ProviderException) as exc_info:
            await manager.charge(charge_request)

        assert str(exc_info.value) == "All payment providers failed"
        assert exc_info.value.context == {
            "alpha": "alpha charge declined",
            "beta": "beta charge declined",
        }

    @pytest.mark.asyncio
    async def test_skip_reasons_are_recorded(self, charge_request: ChargeRequest) -> None:
        """Test disabled and unsupported-currency providers in the failure context."""
        manager = build_manager(
            custom_providers={
                "alpha": stub_provider(label="alpha", enabled=False),
                "beta": stub_provider(label="beta", currencies=["USD"]),
            }
        )

        with pytest.raises(ProviderException) as exc_info:
            await manager.charge(charge_request)

        context = exc_info.value.context
        assert set(context) == {"alpha", "beta"}
        assert "disabled" in context["alpha"]
        assert "Currency NGN is not supported by beta" == context["beta"]

    @pytest.mark.asyncio
    async def test_explicit_providers(self, manager: PaymentManager, charge_request: ChargeRequest) -> None:
        """Test charging with an explicit chain."""
        response = await manager.charge_with_fallback(charge_request, ["beta"])

        assert response.provider == "beta"
        assert manager.driver("alpha").charges == []

    @pytest.mark.asyncio
    async def test_unhealthy_provider_is_skipped(self, charge_request: ChargeRequest) -> None:
        """Test that a failed health check skips the provider, and the result is cached."""
        manager = build_manager(
            custom_providers={
                "alpha": stub_provider(label="alpha", healthy=False),
                "beta": stub_provider(label="beta"),
            },
            health_check=HealthCheckSettings(enabled=True, cache_ttl_seconds=300),
        )

        first = await manager.charge(charge_request)
        second = await manager.charge(charge_request)

        assert first.provider == second.provider == "beta"
        assert manager.driver("alpha").charges == []
        assert manager.driver("alpha").health_checks == 1
        assert manager.cache.get("payments.health.alpha") is False

    @pytest.mark.asyncio
    async def test_invalid_configuration_propagates(self, charge_request: ChargeRequest) -> None:
        """Test that configuration errors are not swallowed by the chain."""
        factory = make_factory("beta").register_driver("alpha", RequiresTokenDriver)
        manager = build_manager(factory=factory)

        with pytest.raises(InvalidConfigurationException):
            await manager.charge(charge_request)

        assert manager.driver("beta").charges == []

    @pytest.mark.asyncio
    async def test_successful_charge_is_recorded(
        self,
        manager: PaymentManager,
        repository: TransactionRepository,
        charge_request: ChargeRequest,
    ) -> None:
        """Test that the transaction and session entry are written."""
        charge_request.reference = "STUB_REF_1"

        await manager.charge(charge_request)

        transaction = repository.find("STUB_REF_1")
        assert transaction.provider == "alpha"
        assert transaction.status == "pending"
        assert transaction.amount == Decimal("5000.00")
        assert transaction.metadata["_provider_id"] == "ac_STUB_REF_1"
        assert transaction.metadata["order_id"] == "ORD-1001"
        assert manager.cache.get(SESSION_CACHE_KEY.format(reference="STUB_REF_1")) == {
            "provider": "alpha",
            "provider_id": "ac_STUB_REF_1",
        }

    @pytest.mark.asyncio
    async def test_duplicate_reference_does_not_fail_charge(
        self,
        manager: PaymentManager,
        repository: TransactionRepository,
        charge_request: ChargeRequest,
    ) -> None:
        """Test that store errors never change the charge outcome."""
        charge_request.reference = "STUB_REF_1"
        await manager.charge(charge_request)

        response = await manager.charge(charge_request)

        assert response.reference == "STUB_REF_1"

    @pytest.mark.asyncio
    async def test_transaction_log_disabled(self, repository: TransactionRepository, charge_request: ChargeRequest) -> None:
        manager = build_manager(repository=repository, transaction_log=TransactionLogSettings(enabled=False))
        charge_request.reference = "STUB_REF_2"

        await manager.charge(charge_request)

        assert repository.find("STUB_REF_2") is None


class TestVerify:
    """Tests for verification provider resolution."""

    @pytest.mark.asyncio
    async def test_explicit_provider(self, manager: PaymentManager) -> None:
        """Test that an explicit provider wins and the reference is used."""
        response = await manager.verify("ANY_REF", provider="beta")

        assert response.provider == "beta"
        assert manager.driver("beta").verifications == ["ANY_REF"]

    @pytest.mark.asyncio
    async def test_session_cache(self, manager: PaymentManager) -> None:
        """Test that the session cache entry is used, with its provider id."""
        manager.cache.set(SESSION_CACHE_KEY.format(reference="REF_1"), {"provider": "beta", "provider_id": "sess_1"})

        response = await manager.verify("REF_1")

        assert response.provider == "beta"
        assert manager.driver("beta").verifications == ["sess_1"]

    @pytest.mark.asyncio
    async def test_stored_transaction(self, manager: PaymentManager, repository: TransactionRepository) -> None:
        """Test falling back to the stored transaction's provider and id."""
        repository.create(
            Transaction(
                reference="REF_2",
                provider="beta",
                status="pending",
                amount=Decimal("10"),
                currency="NGN",
                email="customer@example.com",
                metadata={"order_id": "ORDER_9"},
            )
        )

        response = await manager.verify("REF_2")

        assert response.provider == "beta"
        assert manager.driver("beta").verifications == ["ORDER_9"]

    @pytest.mark.asyncio
    async def test_cache_beats_store(self, manager: PaymentManager, repository: TransactionRepository) -> None:
        """Test the precedence between session cache and store."""
        repository.create(
            Transaction("REF_3", "alpha", "pending", Decimal("10"), "NGN", "customer@example.com")
        )
        manager.cache.set(SESSION_CACHE_KEY.format(reference="REF_3"), {"provider": "beta", "provider_id": None})

        response = await manager.verify("REF_3")

        assert response.provider == "beta"

    @pytest.mark.asyncio
    async def test_prefix_detection(self, manager: PaymentManager) -> None:
        """Test that a known prefix selects the provider."""
        manager.provider_detector.register_prefix("BETA", "beta")

        response = await manager.verify("BETA_1700000000_abc")

        assert response.provider == "beta"

    @pytest.mark.asyncio
    async def test_prefix_for_disabled_provider_falls_through(self, manager: PaymentManager) -> None:
        """Test that a detected but disabled provider is not used."""
        response = await manager.verify("PAYSTACK_1700000000_abc")

        assert response.provider == "alpha"

    @pytest.mark.asyncio
    async def test_default_provider(self, manager: PaymentManager) -> None:
        response = await manager.verify("ORDER_123")

        assert response.provider == "alpha"
        assert manager.driver("alpha").verifications == ["ORDER_123"]

    @pytest.mark.asyncio
    async def test_default_unavailable_tries_every_enabled_provider(self) -> None:
        """Test the last-resort sweep when the default provider is unavailable."""
        manager = build_manager(
            default_provider="paystack",
            custom_providers={
                "alpha": stub_provider(label="alpha", fail_verify=True),
                "beta": stub_provider(label="beta"),
            },
        )

        response = await manager.verify("ORDER_123")

        assert response.provider == "beta"
        assert manager.driver("alpha").verifications == ["ORDER_123"]

    @pytest.mark.asyncio
    async def test_sweep_aggregates_failures(self) -> None:
        manager = build_manager(
            default_provider="paystack",
            custom_providers={
                "alpha": stub_provider(label="alpha", fail_verify=True),
                "beta": stub_provider(label="beta", fail_verify=True),
            },
        )

        with pytest.raises(ProviderException) as exc_info:
            await manager.verify("ORDER_123")

        assert set(exc_info.value.context) == {"alpha", "beta"}

    @pytest.mark.asyncio
    async def test_resolved_provider_failure(self) -> None:
        """Test that a resolved provider's failure names that provider."""
        manager = build_manager(
            custom_providers={
                "alpha": stub_provider(label="alpha", fail_verify=True),
                "beta": stub_provider(label="beta"),
            }
        )

        with pytest.raises(ProviderException) as exc_info:
            await manager.verify("ORDER_123")

        assert exc_info.value.context == {"alpha": "alpha verification failed"}
        assert manager.driver("beta").verifications == []

    @pytest.mark.asyncio
    async def test_explicit_unavailable_provider(self, manager: PaymentManager) -> None:
        with pytest.raises(DriverNotFoundException):
            await manager.verify("REF", provider="paystack")

    @pytest.mark.asyncio
    async def test_verification_updates_transaction(
        self,
        manager: PaymentManager,
        repository: TransactionRepository,
        charge_request: ChargeRequest,
    ) -> None:
        """Test that status, channel and paid_at are written back."""
        charge_request.reference = "STUB_REF_9"
        await manager.charge(charge_request)

        response = await manager.verify("STUB_REF_9")

        transaction = repository.find("STUB_REF_9")
        assert response.status == "success"
        assert transaction.status == "success"
        assert transaction.channel == "card"
        assert transaction.paid_at is not None

    @pytest.mark.asyncio
    async def test_pending_verification_leaves_paid_at_empty(self, repository: TransactionRepository, charge_request: ChargeRequest) -> None:
        manager = build_manager(
            repository=repository,
            custom_providers={
                "alpha": stub_provider(label="alpha", verify_status="processing"),
                "beta": stub_provider(label="beta"),
            },
        )
        charge_request.reference = "STUB_REF_10"
        await manager.charge(charge_request)

        await manager.verify("STUB_REF_10")

        transaction = repository.find("STUB_REF_10")
        assert transaction.status == "pending"
        assert transaction.paid_at is None


class TestUpdateTransaction:
    """Tests for best-effort bookkeeping."""

    def test_without_store(self) -> None:
        assert build_manager().update_transaction("REF", {"status": "success"}) is False

    def test_store_errors_are_swallowed(self, manager: PaymentManager, monkeypatch) -> None:
        def explode(reference, changes):
            raise RuntimeError("database is locked")

        monkeypatch.setattr(manager.transaction_store, "update", explode)

        assert manager.update_transaction("REF", {"status": "success"}) is False

    @pytest.mark.asyncio
    async def test_aclose_clears_drivers(self, manager: PaymentManager) -> None:
        driver = manager.driver("alpha")

        await manager.aclose()

        assert manager.driver("alpha") is not driver


class TestHealthChecks:
    """Tests for the cached provider health checks."""

    @pytest.mark.asyncio
    async def test_cache_failure_falls_back_to_live_check(self, charge_request: ChargeRequest) -> None:
        """Test that an unreachable cache neither blocks the chain nor skips providers."""
        manager = build_manager(
            cache=UnavailableCache(),
            health_check=HealthCheckSettings(enabled=True),
        )

        response = await manager.charge(charge_request)

        assert response.provider == "alpha"
        assert manager.driver("alpha").health_checks == 1

    @pytest.mark.asyncio
    async def test_cache_failure_with_unhealthy_provider(self, charge_request: ChargeRequest) -> None:
        manager = build_manager(
            cache=UnavailableCache(),
            custom_providers={
                "alpha": stub_provider(label="alpha", healthy=False),
                "beta": stub_provider(label="beta"),
            },
            health_check=HealthCheckSettings(enabled=True),
        )

        response = await manager.charge(charge_request)

        assert response.provider == "beta"
        assert manager.driver("alpha").charges == []

    @pytest.mark.asyncio
    async def test_configured_timeout_reaches_probe(self) -> None:
        """Test that health_check.timeout_seconds is used for the probe request."""
        transport = RecordingTransport({})
        manager = PaymentManager(
            config=make_settings(
                paystack=PaystackSettings(enabled=True, secret_key="sk_test_paystack"),
                health_check=HealthCheckSettings(enabled=True, timeout_seconds=1.5),
            ),
            http_client=transport.client(),
            cache=InMemoryCache(),
        )

        healthy = await manager._is_healthy("paystack", manager.driver("paystack"))

        assert healthy is True
        request = transport.last("GET", "/transaction/verify/invalid_ref_test")
        assert request.extensions["timeout"]["connect"] == 1.5
        assert request.extensions["timeout"]["read"] == 1.5

    def test_provider_timeout_override_wins(self) -> None:
        manager = build_manager(
            custom_providers={
                "alpha": stub_provider(label="alpha", health_timeout_seconds=9),
                "beta": stub_provider(label="beta"),
            },
            health_check=HealthCheckSettings(timeout_seconds=2.0),
        )

        assert manager.driver("alpha").config["health_timeout_seconds"] == 9
        assert manager.driver("beta").config["health_timeout_seconds"] == 2.0


class TestCurrencySupport:
    """Tests for currency checks before charging."""

    def test_unsupported_currency_raises(self, manager: PaymentManager) -> None:
        with pytest.raises(CurrencyException) as exc_info:
            manager._ensure_currency_supported("alpha", manager.driver("alpha"), "EUR")

        assert exc_info.value.context == {"provider": "alpha", "currency": "EUR"}

    def test_supported_currency_is_case_insensitive(self, manager: PaymentManager) -> None:
        manager._ensure_currency_supported("alpha", manager.driver("alpha"), "usd")
