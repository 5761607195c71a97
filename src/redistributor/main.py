"""Webhook Redistributor - FastAPI application.

Accepts inbound webhooks on named routes and fans each event out to the
route's configured destinations.
"""

from typing import Optional
import logging

from fastapi import FastAPI

from . import __version__
from .core.logging_config import setup_logging
from .core.observability import UsageTracker
from .core.settings import RedistributorSettings, SettingsManager
from .store.base import ConfigurationStore
from .store.memory import InMemoryConfigurationStore
from .store.sqlite import SQLiteConfigurationStore
from .webhooks import router as webhook_routes
from .webhooks.delivery import DeliveryExecutor
from .webhooks.orchestrator import Redistributor
from .webhooks.outcome_log import InMemoryOutcomeLog, OutcomeLogger, SQLiteOutcomeLog

logger = logging.getLogger(__name__)


def build_store(settings: RedistributorSettings) -> ConfigurationStore:
    """Create the configuration store selected in settings."""
    if settings.store_backend == "sqlite":
        return SQLiteConfigurationStore(settings.database_path)
    return InMemoryConfigurationStore()


def build_outcome_log(settings: RedistributorSettings) -> OutcomeLogger:
    """Create the outcome log selected in settings."""
    if settings.outcome_log_backend == "sqlite":
        return SQLiteOutcomeLog(settings.database_path)
    return InMemoryOutcomeLog(capacity=settings.outcome_log_capacity)


def create_app(
    settings: Optional[RedistributorSettings] = None,
    store: Optional[ConfigurationStore] = None,
    outcome_log: Optional[OutcomeLogger] = None,
    executor: Optional[DeliveryExecutor] = None,
    configure_logging: bool = True,
) -> FastAPI:
    """Build the application and wire the redistribution components.

    Args:
        settings: Settings; loaded through SettingsManager when omitted.
        store: Configuration store; built from settings when omitted.
        outcome_log: Outcome log; built from settings when omitted.
        executor: Delivery executor; built from settings when omitted.
        configure_logging: Install logging handlers on startup.
    """
    settings = settings or SettingsManager().get()

    app = FastAPI(
        title="Webhook Redistributor",
        description="Receives webhooks on named routes and redistributes them "
                    "to every active destination of the route.",
        version=__version__,
    )

    app.state.settings = settings
    app.state.redistributor = Redistributor(
        store=store or build_store(settings),
        executor=executor or DeliveryExecutor.from_settings(settings),
        outcome_log=outcome_log or build_outcome_log(settings),
        usage=UsageTracker(),
    )

    app.include_router(webhook_routes.router)
    app.include_router(webhook_routes.stats_router)

    @app.on_event("startup")
    async def startup_event():
        """Initialize logging on startup."""
        if configure_logging:
            setup_logging(settings.log_level, settings.log_file)
        logger.info(
            f"Webhook Redistributor {__version__} started "
            f"(store={settings.store_backend}, timeout={settings.delivery_timeout_ms}ms)"
        )

    @app.on_event("shutdown")
    async def shutdown_event():
        """Release the shared HTTP connection pool."""
        await app.state.redistributor.executor.aclose()

    @app.get("/")
    def root() -> dict[str, str]:
        """Root endpoint returning service information.

        Returns:
            dict: Status and welcome message.
        """
        return {
            "status": "ok",
            "message": "Welcome to Webhook Redistributor",
            "version": __version__,
            "docs": "/docs",
        }

    @app.get("/health")
    def health() -> dict[str, str]:
        """Health check endpoint for monitoring and load balancers.

        Returns:
            dict: Health status indicator.
        """
        return {"status": "healthy"}

    return app
