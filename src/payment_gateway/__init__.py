"""Multi-provider payment gateway."""

__version__ = "0.1.0"

from payment_gateway.drivers import BaseDriver, DriverFactory, PaymentDriver  # noqa: E402
from payment_gateway.manager import PaymentManager  # noqa: E402
from payment_gateway.models import (  # noqa: E402
    ChargeRequest,
    ChargeResponse,
    PaymentException,
    PaymentStatus,
    ProviderException,
    VerificationResponse,
)
from payment_gateway.payment import Payment  # noqa: E402

__all__ = [
    "__version__",
    "Payment",
    "PaymentManager",
    "PaymentDriver",
    "BaseDriver",
    "DriverFactory",
    "ChargeRequest",
    "ChargeResponse",
    "VerificationResponse",
    "PaymentStatus",
    "PaymentException",
    "ProviderException",
]
