"""
Payment provider drivers.

This module provides a pluggable driver architecture for talking to
different payment gateways through one contract.

Usage:
    from payment_gateway.drivers import DriverFactory

    driver = DriverFactory().create_driver("paystack", {"secret_key": "sk_test_..."})
    response = await driver.charge(request)
"""

from payment_gateway.drivers.base import BaseDriver, PaymentDriver
from payment_gateway.drivers.factory import BUILTIN_DRIVERS, DriverFactory
from payment_gateway.drivers.flutterwave_driver import FlutterwaveDriver
from payment_gateway.drivers.mollie_driver import MollieDriver
from payment_gateway.drivers.monnify_driver import MonnifyDriver
from payment_gateway.drivers.nowpayments_driver import NowPaymentsDriver
from payment_gateway.drivers.paypal_driver import PayPalDriver
from payment_gateway.drivers.paystack_driver import PaystackDriver
from payment_gateway.drivers.square_driver import SquareDriver
from payment_gateway.drivers.stripe_driver import StripeDriver

__all__ = [
    # Base
    "PaymentDriver",
    "BaseDriver",
    # Factory
    "DriverFactory",
    "BUILTIN_DRIVERS",
    # Implementations
    "PaystackDriver",
    "FlutterwaveDriver",
    "MonnifyDriver",
    "StripeDriver",
    "PayPalDriver",
    "MollieDriver",
    "SquareDriver",
    "NowPaymentsDriver",
]
