"""Canonical payment channels."""

from enum import Enum


class PaymentChannel(str, Enum):
    """Payment method categories in this system's own vocabulary."""

    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    USSD = "ussd"
    MOBILE_MONEY = "mobile_money"
    QR_CODE = "qr_code"

    @classmethod
    def values(cls) -> list[str]:
        """Return every canonical channel name."""
        return [channel.value for channel in cls]
