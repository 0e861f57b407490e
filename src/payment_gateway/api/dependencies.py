"""FastAPI dependencies for the payment gateway.

The manager, event dispatcher and webhook controller are built once by
create_app() and stored on app.state; these dependencies hand them to
the routes.
"""

from typing import Annotated

from fastapi import Depends, Request

from payment_gateway.api.controller import WebhookController
from payment_gateway.manager import PaymentManager


def get_payment_manager(request: Request) -> PaymentManager:
    """Provide the application's PaymentManager."""
    return request.app.state.payment_manager


# Type alias for payment manager dependency
PaymentManagerDep = Annotated[PaymentManager, Depends(get_payment_manager)]


def get_webhook_controller(request: Request) -> WebhookController:
    """Provide the webhook controller bound to the application's manager."""
    return request.app.state.webhook_controller


# Type alias for webhook controller dependency
WebhookControllerDep = Annotated[WebhookController, Depends(get_webhook_controller)]
