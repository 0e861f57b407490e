"""Unit tests for the event dispatcher."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from payment_gateway.infrastructure.events import WEBHOOK_EVENT, EventDispatcher, provider_webhook_event


class TestEventDispatcher:
    """Tests for subscribe and dispatch."""

    def test_provider_event_name(self) -> None:
        assert provider_webhook_event("Paystack") == "payments.webhook.paystack"
        assert WEBHOOK_EVENT == "payments.webhook"

    @pytest.mark.asyncio
    async def test_sync_and_async_handlers(self) -> None:
        """Test that both plain functions and coroutines are called."""
        dispatcher = EventDispatcher()
        sync_handler = MagicMock()
        async_handler = AsyncMock()
        dispatcher.subscribe(WEBHOOK_EVENT, sync_handler)
        dispatcher.subscribe(WEBHOOK_EVENT, async_handler)

        await dispatcher.dispatch(WEBHOOK_EVENT, "paystack", {"event": "charge.success"})

        sync_handler.assert_called_once_with("paystack", {"event": "charge.success"})
        async_handler.assert_awaited_once_with("paystack", {"event": "charge.success"})

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_others(self) -> None:
        """Test that handler errors are contained."""
        dispatcher = EventDispatcher()
        failing = MagicMock(side_effect=RuntimeError("listener crashed"))
        after = MagicMock()
        dispatcher.subscribe(WEBHOOK_EVENT, failing)
        dispatcher.subscribe(WEBHOOK_EVENT, after)

        await dispatcher.dispatch(WEBHOOK_EVENT, "stripe", {})

        after.assert_called_once_with("stripe", {})

    @pytest.mark.asyncio
    async def test_events_are_isolated(self) -> None:
        """Test that handlers only receive their own event."""
        dispatcher = EventDispatcher()
        handler = MagicMock()
        dispatcher.subscribe(provider_webhook_event("stripe"), handler)

        await dispatcher.dispatch(provider_webhook_event("paystack"), "paystack", {})
        await dispatcher.dispatch("payments.unknown", "paystack", {})

        handler.assert_not_called()

    def test_unsubscribe(self) -> None:
        dispatcher = EventDispatcher()
        handler = MagicMock()
        dispatcher.subscribe(WEBHOOK_EVENT, handler)
        assert dispatcher.has_listeners(WEBHOOK_EVENT)

        dispatcher.unsubscribe(WEBHOOK_EVENT, handler)
        dispatcher.unsubscribe(WEBHOOK_EVENT, handler)

        assert not dispatcher.has_listeners(WEBHOOK_EVENT)
