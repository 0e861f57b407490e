"""Unit tests for the Stripe driver."""

from unittest.mock import MagicMock, patch

import pytest
import stripe

from payment_gateway.drivers import StripeDriver
from payment_gateway.models import ChargeException, ChargeRequest, VerificationException


@pytest.fixture
def stripe_driver() -> StripeDriver:
    """Create a StripeDriver instance for testing."""
    return StripeDriver({"secret_key": "sk_test_fake_key", "webhook_secret": "whsec_test", "currencies": ["USD"]})


@pytest.fixture
def usd_request() -> ChargeRequest:
    return ChargeRequest(
        amount="49.99",
        currency="usd",
        email="customer@example.com",
        reference="STRIPE_REF_1",
        callback_url="https://shop.example.com/payments/done",
        metadata={"order_id": 1001},
        idempotency_key="idem-stripe",
    )


class TestStripeCharge:
    """Tests for Checkout Session creation."""

    @pytest.mark.asyncio
    async def test_successful_charge(self, stripe_driver: StripeDriver, usd_request: ChargeRequest) -> None:
        """Test a Checkout Session is created with minor units."""
        session = {"id": "cs_test_123", "url": "https://checkout.stripe.com/c/pay/cs_test_123"}

        with patch.object(stripe.checkout.Session, "create", return_value=session) as create:
            response = await stripe_driver.charge(usd_request)

        kwargs = create.call_args.kwargs
        assert kwargs["api_key"] == "sk_test_fake_key"
        assert kwargs["idempotency_key"] == "idem-stripe"
        assert kwargs["client_reference_id"] == "STRIPE_REF_1"
        assert kwargs["line_items"][0]["price_data"]["unit_amount"] == 4999
        assert kwargs["line_items"][0]["price_data"]["currency"] == "usd"
        assert kwargs["metadata"] == {"order_id": "1001", "reference": "STRIPE_REF_1"}
        assert kwargs["payment_method_types"] == ["card"]
        assert kwargs["success_url"] == (
            "https://shop.example.com/payments/done?status=success&reference=STRIPE_REF_1"
        )

        assert response.reference == "STRIPE_REF_1"
        assert response.access_code == "cs_test_123"
        assert response.authorization_url == "https://checkout.stripe.com/c/pay/cs_test_123"
        assert response.status == "pending"
        assert response.metadata["session_id"] == "cs_test_123"

    @pytest.mark.asyncio
    async def test_charge_requires_callback(self, stripe_driver: StripeDriver, usd_request: ChargeRequest) -> None:
        """Test that Stripe refuses to charge without redirect URLs."""
        usd_request.callback_url = None

        with patch.object(stripe.checkout.Session, "create") as create:
            with pytest.raises(ChargeException) as exc_info:
                await stripe_driver.charge(usd_request)

        create.assert_not_called()
        assert "callback_url" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_charge_stripe_error(self, stripe_driver: StripeDriver, usd_request: ChargeRequest) -> None:
        """Test that SDK errors become ChargeException."""
        error = stripe.InvalidRequestError("No such price", param="currency", code="resource_missing")

        with patch.object(stripe.checkout.Session, "create", side_effect=error):
            with pytest.raises(ChargeException) as exc_info:
                await stripe_driver.charge(usd_request)

        assert "Stripe charge failed" in str(exc_info.value)
        assert exc_info.value.context["code"] == "resource_missing"


class TestStripeVerify:
    """Tests for verification by session, intent or reference."""

    @pytest.mark.asyncio
    async def test_verify_session(self, stripe_driver: StripeDriver) -> None:
        """Test verifying by Checkout Session id."""
        session = {
            "id": "cs_test_123",
            "payment_status": "paid",
            "status": "complete",
            "amount_total": 4999,
            "currency": "usd",
            "metadata": {"reference": "STRIPE_REF_1"},
            "payment_method_types": ["card"],
            "customer_details": {"email": "customer@example.com"},
        }

        with patch.object(stripe.checkout.Session, "retrieve", return_value=session):
            response = await stripe_driver.verify("cs_test_123")

        assert response.reference == "STRIPE_REF_1"
        assert response.status == "success"
        assert response.amount == 49.99
        assert response.currency == "USD"
        assert response.channel == "card"
        assert response.customer == {"email": "customer@example.com"}

    @pytest.mark.asyncio
    async def test_verify_expired_session(self, stripe_driver: StripeDriver) -> None:
        """Test that an expired unpaid session is failed."""
        session = {"id": "cs_test_456", "payment_status": "unpaid", "status": "expired", "metadata": {}}

        with patch.object(stripe.checkout.Session, "retrieve", return_value=session):
            response = await stripe_driver.verify("cs_test_456")

        assert response.status == "failed"

    @pytest.mark.asyncio
    async def test_verify_payment_intent(self, stripe_driver: StripeDriver) -> None:
        """Test verifying by PaymentIntent id."""
        intent = {
            "id": "pi_test_123",
            "status": "succeeded",
            "amount": 4999,
            "currency": "usd",
            "created": 1714557600,
            "metadata": {"reference": "STRIPE_REF_1"},
            "payment_method_types": ["card"],
        }

        with patch.object(stripe.PaymentIntent, "retrieve", return_value=intent) as retrieve:
            response = await stripe_driver.verify("pi_test_123")

        retrieve.assert_called_once_with("pi_test_123", api_key="sk_test_fake_key")
        assert response.reference == "STRIPE_REF_1"
        assert response.status == "success"
        assert response.paid_at == 1714557600

    @pytest.mark.asyncio
    async def test_verify_by_reference_searches_sessions(self, stripe_driver: StripeDriver) -> None:
        """Test that a merchant reference is matched against recent sessions."""
        sessions = {
            "data": [
                {"id": "cs_other", "client_reference_id": "OTHER", "metadata": {}},
                {"id": "cs_match", "client_reference_id": "STRIPE_REF_1", "payment_status": "unpaid", "metadata": {}},
            ]
        }

        with patch.object(stripe.checkout.Session, "list", return_value=sessions):
            response = await stripe_driver.verify("STRIPE_REF_1")

        assert response.reference == "STRIPE_REF_1"
        assert response.status == "pending"
        assert response.metadata["session_id"] == "cs_match"

    @pytest.mark.asyncio
    async def test_verify_reference_not_found(self, stripe_driver: StripeDriver) -> None:
        """Test that an unmatched reference raises VerificationException."""
        with patch.object(stripe.checkout.Session, "list", return_value={"data": []}):
            with pytest.raises(VerificationException):
                await stripe_driver.verify("STRIPE_MISSING")

    def test_resolve_verification_id(self, stripe_driver: StripeDriver) -> None:
        """Test that the stored session id is preferred over the reference."""
        assert stripe_driver.resolve_verification_id("STRIPE_REF_1", "cs_test_123") == "cs_test_123"
        assert stripe_driver.resolve_verification_id("STRIPE_REF_1", None) == "STRIPE_REF_1"


class TestStripeWebhookAndHealth:
    """Tests for webhook verification and health checks."""

    @pytest.mark.asyncio
    async def test_valid_signature(self, stripe_driver: StripeDriver) -> None:
        """Test that construct_event succeeding means valid."""
        with patch.object(stripe.Webhook, "construct_event", return_value=MagicMock()) as construct:
            valid = await stripe_driver.validate_webhook({"Stripe-Signature": "t=1,v1=abc"}, b"{}")

        assert valid is True
        construct.assert_called_once_with(b"{}", "t=1,v1=abc", "whsec_test")

    @pytest.mark.asyncio
    async def test_invalid_signature(self, stripe_driver: StripeDriver) -> None:
        """Test that a signature error means invalid."""
        error = stripe.SignatureVerificationError("No signatures found", "t=1,v1=abc")

        with patch.object(stripe.Webhook, "construct_event", side_effect=error):
            assert await stripe_driver.validate_webhook({"stripe-signature": "t=1,v1=abc"}, b"{}") is False

    @pytest.mark.asyncio
    async def test_missing_signature(self, stripe_driver: StripeDriver) -> None:
        """Test that a missing header is rejected without calling the SDK."""
        with patch.object(stripe.Webhook, "construct_event") as construct:
            assert await stripe_driver.validate_webhook({}, b"{}") is False

        construct.assert_not_called()

    @pytest.mark.asyncio
    async def test_health_check(self, stripe_driver: StripeDriver) -> None:
        """Test reachable, rejected-key and server-error outcomes."""
        with patch.object(stripe.Balance, "retrieve", return_value={}):
            assert await stripe_driver.health_check() is True

        with patch.object(stripe.Balance, "retrieve", side_effect=stripe.AuthenticationError("Invalid API Key")):
            assert await stripe_driver.health_check() is True

        with patch.object(stripe.Balance, "retrieve", side_effect=stripe.APIError("Server error", http_status=503)):
            assert await stripe_driver.health_check() is False

    def test_webhook_extraction(self, stripe_driver: StripeDriver) -> None:
        """Test reading a checkout.session.completed event."""
        payload = {
            "type": "checkout.session.completed",
            "data": {
                "object": {
                    "id": "cs_test_123",
                    "client_reference_id": "STRIPE_REF_1",
                    "payment_status": "paid",
                    "payment_method_types": ["card"],
                }
            },
        }

        assert stripe_driver.extract_webhook_reference(payload) == "STRIPE_REF_1"
        assert stripe_driver.extract_webhook_status(payload) == "paid"
        assert stripe_driver.extract_webhook_channel(payload) == "card"
