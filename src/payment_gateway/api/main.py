"""FastAPI application entry point for the payment gateway.

Run with:
    uvicorn payment_gateway.api.main:create_app --factory
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI

from payment_gateway import __version__
from payment_gateway.api.controller import WebhookController
from payment_gateway.api.dependencies import PaymentManagerDep
from payment_gateway.api.routes import router as webhook_router
from payment_gateway.config import Settings, settings
from payment_gateway.infrastructure.cache import CacheStore, InMemoryCache, RedisCache
from payment_gateway.infrastructure.database import create_db_engine, create_session_factory, init_db
from payment_gateway.infrastructure.events import EventDispatcher
from payment_gateway.infrastructure.repository import TransactionRepository
from payment_gateway.logging_config import configure_logging
from payment_gateway.manager import PaymentManager

logger = structlog.get_logger(__name__)


def build_payment_manager(config: Settings) -> PaymentManager:
    """
    Wire a PaymentManager with the configured storage backends.

    Uses Redis for the cache when redis_url is set, otherwise an in-process
    cache. The transaction table is created if it does not exist.
    """
    transaction_store = None
    if config.transaction_log.enabled:
        engine = create_db_engine(config.database_url)
        init_db(engine)
        transaction_store = TransactionRepository(create_session_factory(engine))

    cache: CacheStore = RedisCache.from_url(config.redis_url) if config.redis_url else InMemoryCache()

    return PaymentManager(config=config, transaction_store=transaction_store, cache=cache)


def create_app(
    manager: PaymentManager | None = None,
    dispatcher: EventDispatcher | None = None,
    config: Settings | None = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        manager: Pre-built manager; one is wired from config otherwise
        dispatcher: Event dispatcher that webhook listeners subscribe to
        config: Settings; defaults to the manager's or the global settings

    Returns:
        FastAPI application with the webhook routes mounted
    """
    config = config or (manager.config if manager is not None else settings)
    configure_logging(log_level=config.log_level, format_as_json=config.log_json)

    manager = manager or build_payment_manager(config)
    dispatcher = dispatcher or EventDispatcher()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "starting_payment_gateway",
            environment=config.environment,
            providers=list(manager.get_enabled_providers()),
        )
        yield
        logger.info("shutting_down_payment_gateway")
        await manager.aclose()
        logger.info("payment_gateway_shutdown_complete")

    app = FastAPI(
        title="Payment Gateway",
        description="Multi-provider payment gateway",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.payment_manager = manager
    app.state.event_dispatcher = dispatcher
    app.state.webhook_controller = WebhookController(manager, dispatcher)

    app.include_router(webhook_router, prefix=config.webhook.path.rstrip("/"))

    @app.get("/health")
    async def health_check(payment_manager: PaymentManagerDep) -> dict:
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service": "payment-gateway",
            "environment": config.environment,
            "providers": list(payment_manager.get_enabled_providers()),
        }

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "payment_gateway.api.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        log_level=settings.log_level.lower(),
    )
