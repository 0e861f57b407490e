"""Unit tests for provider detection from references."""

import pytest

from payment_gateway.services.provider_detector import DEFAULT_PREFIXES, ProviderDetector


class TestDetectFromReference:
    """Tests for prefix matching."""

    @pytest.mark.parametrize(
        "reference,expected",
        [
            ("PAYSTACK_1700000000_ab12cd34", "paystack"),
            ("FLW_1700000000_ab12cd34", "flutterwave"),
            ("MON_123", "monnify"),
            ("STRIPE_123", "stripe"),
            ("PAYPAL_123", "paypal"),
            ("MOLLIE_123", "mollie"),
            ("SQUARE_123", "square"),
            ("NOW_123", "nowpayments"),
        ],
    )
    def test_default_prefixes(self, reference: str, expected: str) -> None:
        """Test every built-in prefix."""
        assert ProviderDetector().detect_from_reference(reference) == expected

    def test_case_insensitive(self) -> None:
        """Test that lowercase references still match."""
        assert ProviderDetector().detect_from_reference("paystack_123") == "paystack"

    def test_prefix_requires_separator(self) -> None:
        """Test that a prefix must be followed by an underscore."""
        detector = ProviderDetector()

        assert detector.detect_from_reference("PAYSTACK123") is None
        assert detector.detect_from_reference("MONDAY_123") is None

    def test_no_match(self) -> None:
        """Test references without a known prefix."""
        detector = ProviderDetector()

        assert detector.detect_from_reference("ORDER_123") is None
        assert detector.detect_from_reference("") is None
        assert detector.detect_from_reference(None) is None

    def test_longest_prefix_wins(self) -> None:
        """Test that overlapping prefixes resolve to the more specific one."""
        detector = ProviderDetector().register_prefix("NOW_CRYPTO", "coinbase")

        assert detector.detect_from_reference("NOW_CRYPTO_123") == "coinbase"
        assert detector.detect_from_reference("NOW_123") == "nowpayments"


class TestPrefixRegistry:
    """Tests for registering prefixes."""

    def test_register_prefix(self) -> None:
        """Test registering a prefix for a custom provider."""
        detector = ProviderDetector()
        detector.register_prefix("opay", "OPay")

        assert detector.detect_from_reference("OPAY_123") == "opay"
        assert detector.get_prefixes()["OPAY"] == "opay"

    def test_register_replaces_prefix(self) -> None:
        """Test that a registered prefix can be pointed at another provider."""
        detector = ProviderDetector().register_prefix("FLW", "flutterwave_eu")

        assert detector.detect_from_reference("FLW_123") == "flutterwave_eu"

    def test_get_prefixes_returns_copy(self) -> None:
        """Test that callers cannot mutate the registry through get_prefixes."""
        detector = ProviderDetector()
        detector.get_prefixes()["EVIL"] = "evil"

        assert "EVIL" not in detector.get_prefixes()
        assert detector.get_prefixes() == dict(DEFAULT_PREFIXES)
