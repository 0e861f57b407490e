"""Shared fixtures for the payment gateway test suite."""

import json
from decimal import Decimal
from typing import Any, Callable, Mapping

import httpx
import pytest

from payment_gateway.config import HealthCheckSettings, PaystackSettings, ProviderSettings, Settings, StripeSettings
from payment_gateway.drivers.base import BaseDriver, first_of
from payment_gateway.drivers.factory import DriverFactory
from payment_gateway.infrastructure.cache import InMemoryCache
from payment_gateway.infrastructure.database import create_db_engine, create_session_factory, init_db
from payment_gateway.infrastructure.repository import TransactionRepository
from payment_gateway.manager import PaymentManager
from payment_gateway.models import (
    UNKNOWN_STATUS,
    ChargeException,
    ChargeRequest,
    ChargeResponse,
    VerificationException,
    VerificationResponse,
)


class StubDriver(BaseDriver):
    """
    In-memory driver for manager and webhook tests.

    Behaviour is driven by its config: "fail_charge", "fail_verify",
    "healthy" and "verify_status". Webhooks are accepted when the
    "x-stub-signature" header equals "secret".
    """

    name = "stub"

    def __init__(self, config: Mapping[str, Any], **kwargs: Any) -> None:
        super().__init__(config, **kwargs)
        self.charges: list[ChargeRequest] = []
        self.verifications: list[str] = []
        self.health_checks = 0

    async def charge(self, request: ChargeRequest) -> ChargeResponse:
        self.charges.append(request)
        if self.config.get("fail_charge"):
            raise ChargeException(f"{self.config.get('label', 'stub')} charge declined")
        reference = request.reference or self.generate_reference("STUB")
        return ChargeResponse(
            reference=reference,
            authorization_url=f"https://checkout.example.com/{reference}",
            access_code=f"ac_{reference}",
            metadata={"label": self.config.get("label")},
        )

    async def verify(self, verification_id: str) -> VerificationResponse:
        self.verifications.append(verification_id)
        if self.config.get("fail_verify"):
            raise VerificationException(f"{self.config.get('label', 'stub')} verification failed")
        return VerificationResponse(
            reference=verification_id,
            status=self.normalize_status(self.config.get("verify_status", "success")),
            amount=100.0,
            currency="NGN",
            channel="card",
        )

    async def validate_webhook(self, headers: Mapping[str, Any], raw_body: bytes | str) -> bool:
        return headers.get("x-stub-signature") == "secret"

    async def health_check(self) -> bool:
        self.health_checks += 1
        return self.config.get("healthy", True)

    def extract_webhook_reference(self, payload: dict[str, Any]) -> str | None:
        return first_of(payload, "data.reference")

    def extract_webhook_status(self, payload: dict[str, Any]) -> str:
        return first_of(payload, "data.status", default=UNKNOWN_STATUS)

    def extract_webhook_channel(self, payload: dict[str, Any]) -> str | None:
        return first_of(payload, "data.channel")


def stub_provider(**options: Any) -> ProviderSettings:
    """Enabled custom provider section for StubDriver."""
    options.setdefault("enabled", True)
    options.setdefault("currencies", ["NGN", "USD"])
    return ProviderSettings(**options)


def make_settings(**overrides: Any) -> Settings:
    """Settings isolated from the real providers: only stub providers enabled."""
    values: dict[str, Any] = {
        "default_provider": "alpha",
        "fallback_provider": "beta",
        "paystack": PaystackSettings(enabled=False),
        "stripe": StripeSettings(enabled=False),
        "custom_providers": {
            "alpha": stub_provider(label="alpha"),
            "beta": stub_provider(label="beta"),
        },
        "health_check": HealthCheckSettings(enabled=False),
        "log_json": False,
    }
    values.update(overrides)
    return Settings(**values)


def make_factory(*names: str) -> DriverFactory:
    factory = DriverFactory()
    for name in names or ("alpha", "beta"):
        factory.register_driver(name, StubDriver)
    return factory


@pytest.fixture
def settings_factory() -> Callable[..., Settings]:
    return make_settings


@pytest.fixture
def cache() -> InMemoryCache:
    return InMemoryCache()


@pytest.fixture
def session_factory():
    """Session factory bound to a fresh in-memory SQLite database."""
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def repository(session_factory) -> TransactionRepository:
    return TransactionRepository(session_factory)


@pytest.fixture
def manager(repository: TransactionRepository, cache: InMemoryCache) -> PaymentManager:
    """Manager with two enabled stub providers, alpha then beta."""
    return PaymentManager(
        config=make_settings(),
        factory=make_factory(),
        transaction_store=repository,
        cache=cache,
    )


@pytest.fixture
def charge_request() -> ChargeRequest:
    return ChargeRequest(
        amount=Decimal("5000.00"),
        currency="NGN",
        email="customer@example.com",
        callback_url="https://shop.example.com/payments/done",
        metadata={"order_id": "ORD-1001"},
    )


def json_response(status_code: int, body: Any) -> httpx.Response:
    return httpx.Response(status_code, content=json.dumps(body), headers={"Content-Type": "application/json"})


class RecordingTransport:
    """
    Routes requests to canned responses and records what was sent.

    Routes are keyed by (method, path); unknown routes answer 404.
    """

    def __init__(self, routes: dict[tuple[str, str], httpx.Response | Callable[[httpx.Request], httpx.Response]]):
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return json_response(404, {"message": "not found"})
        return handler(request) if callable(handler) else handler

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))

    def last(self, method: str, path: str) -> httpx.Request:
        for request in reversed(self.requests):
            if request.method == method and request.url.path == path:
                return request
        raise AssertionError(f"No {method} {path} request was sent")
