"""HTTP routes for provider webhooks."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from payment_gateway.api.dependencies import WebhookControllerDep

router = APIRouter(tags=["webhooks"])


@router.post("/{provider}")
async def handle_webhook(provider: str, request: Request, controller: WebhookControllerDep) -> JSONResponse:
    """Receive a provider callback; the body is read verbatim for signature checks."""
    raw_body = await request.body()
    return await controller.handle(provider, request.headers, raw_body)
