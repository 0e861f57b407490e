"""
Driver factory for creating payment driver instances.

This module provides name-based driver selection so the manager can build
the right driver (Paystack, Stripe, PayPal, etc.) from a provider's
configuration section, and lets integrators plug in their own drivers.
"""

import importlib
from typing import Any, Mapping

import structlog

from payment_gateway.drivers.base import BaseDriver, PaymentDriver
from payment_gateway.drivers.flutterwave_driver import FlutterwaveDriver
from payment_gateway.drivers.mollie_driver import MollieDriver
from payment_gateway.drivers.monnify_driver import MonnifyDriver
from payment_gateway.drivers.nowpayments_driver import NowPaymentsDriver
from payment_gateway.drivers.paypal_driver import PayPalDriver
from payment_gateway.drivers.paystack_driver import PaystackDriver
from payment_gateway.drivers.square_driver import SquareDriver
from payment_gateway.drivers.stripe_driver import StripeDriver
from payment_gateway.models import DriverNotFoundException

logger = structlog.get_logger(__name__)

BUILTIN_DRIVERS: Mapping[str, type[PaymentDriver]] = {
    "paystack": PaystackDriver,
    "flutterwave": FlutterwaveDriver,
    "monnify": MonnifyDriver,
    "stripe": StripeDriver,
    "paypal": PayPalDriver,
    "mollie": MollieDriver,
    "square": SquareDriver,
    "nowpayments": NowPaymentsDriver,
}


def _import_driver_class(dotted_path: str) -> type[PaymentDriver]:
    module_path, _, class_name = dotted_path.rpartition(".")
    if not module_path:
        raise DriverNotFoundException(f"Invalid driver_class path: {dotted_path}")
    try:
        driver_class = getattr(importlib.import_module(module_path), class_name)
    except (ImportError, AttributeError) as e:
        raise DriverNotFoundException(f"Driver class not found: {dotted_path}") from e
    if not isinstance(driver_class, type) or not issubclass(driver_class, PaymentDriver):
        raise DriverNotFoundException(f"{dotted_path} must inherit from PaymentDriver")
    return driver_class


class DriverFactory:
    """
    Factory for creating payment driver instances.

    Resolution order for a provider name:
    1. Drivers registered at runtime with register_driver()
    2. A "driver_class" dotted path in the provider config
    3. A "driver" alias in the provider config (e.g. a second Paystack
       account configured under another name)
    4. The built-in drivers
    """

    def __init__(self) -> None:
        self._registered: dict[str, type[PaymentDriver]] = {}

    def resolve_driver_class(self, name: str, config: Mapping[str, Any] | None = None) -> type[PaymentDriver]:
        name = name.lower()
        config = config or {}

        if name in self._registered:
            return self._registered[name]

        if config.get("driver_class"):
            return _import_driver_class(config["driver_class"])

        alias = (config.get("driver") or name).lower()
        if alias in self._registered:
            return self._registered[alias]
        if alias in BUILTIN_DRIVERS:
            return BUILTIN_DRIVERS[alias]

        available = ", ".join(self.list_drivers())
        raise DriverNotFoundException(f"Unknown driver: {name}. Available drivers: {available}")

    def create_driver(self, name: str, config: Mapping[str, Any], **dependencies: Any) -> PaymentDriver:
        """
        Create a driver instance by provider name.

        Args:
            name: Provider name (case-insensitive)
            config: Provider configuration (credentials, currencies, ...)
            **dependencies: Passed through to the driver constructor
                (http_client, status_normalizer, channel_mapper)

        Returns:
            PaymentDriver instance

        Raises:
            DriverNotFoundException: If no implementation can be resolved
            InvalidConfigurationException: If the config lacks a credential

        Example:
            driver = factory.create_driver("paystack", {"secret_key": "sk_test_..."})
        """
        driver_class = self.resolve_driver_class(name, config)

        # Drivers implementing PaymentDriver directly only receive their config
        if issubclass(driver_class, BaseDriver):
            driver = driver_class(config, **dependencies)
        else:
            driver = driver_class(config)

        logger.info("driver_created", provider=name.lower(), driver_class=driver_class.__name__)
        return driver

    def register_driver(self, name: str, driver_class: type[PaymentDriver]) -> "DriverFactory":
        """
        Register a custom driver under a provider name.

        Example:
            factory.register_driver("opay", OpayDriver)
        """
        if not isinstance(driver_class, type) or not issubclass(driver_class, PaymentDriver):
            raise TypeError(f"{driver_class!r} must inherit from PaymentDriver")

        self._registered[name.lower()] = driver_class
        logger.info("driver_registered", provider=name.lower(), driver_class=driver_class.__name__)
        return self

    def list_drivers(self) -> list[str]:
        return sorted({*BUILTIN_DRIVERS, *self._registered})

    def is_registered(self, name: str) -> bool:
        return name.lower() in self._registered or name.lower() in BUILTIN_DRIVERS
