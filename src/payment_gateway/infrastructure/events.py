"""In-process event dispatch for processed webhooks."""

import inspect
from collections import defaultdict
from typing import Any, Awaitable, Callable

import structlog

logger = structlog.get_logger(__name__)

WEBHOOK_EVENT = "payments.webhook"

EventHandler = Callable[[str, dict[str, Any]], Awaitable[None] | None]


def provider_webhook_event(provider: str) -> str:
    return f"{WEBHOOK_EVENT}.{provider.lower()}"


class EventDispatcher:
    """
    Fire-and-forget publisher for webhook notifications.

    Handlers receive (provider, payload) and may be plain functions or
    coroutines. A failing handler is logged and never affects the caller or
    the remaining handlers.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event: str, handler: EventHandler) -> None:
        self._handlers[event].append(handler)
        logger.info("event_handler_registered", event_name=event, handler=getattr(handler, "__name__", repr(handler)))

    def unsubscribe(self, event: str, handler: EventHandler) -> None:
        if handler in self._handlers.get(event, []):
            self._handlers[event].remove(handler)

    def has_listeners(self, event: str) -> bool:
        return bool(self._handlers.get(event))

    async def dispatch(self, event: str, provider: str, payload: dict[str, Any]) -> None:
        for handler in list(self._handlers.get(event, [])):
            try:
                result = handler(provider, payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    "event_handler_failed",
                    event_name=event,
                    handler=getattr(handler, "__name__", repr(handler)),
                    error=str(e),
                )

        logger.debug("event_dispatched", event_name=event, provider=provider)
