"""HTTP surface: webhook controller and FastAPI application."""

from payment_gateway.api.controller import WebhookController
from payment_gateway.api.main import build_payment_manager, create_app

__all__ = ["WebhookController", "build_payment_manager", "create_app"]
