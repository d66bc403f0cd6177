"""
Module: main.py
Description: FastAPI application entry point and composition root.

Builds the registry, delivery log, sender and retry scheduler once per
process in the application lifespan, loads registered webhooks from
the key-value store, and cancels running delivery chains on shutdown.
"""

from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from formhooks.config.settings import Settings, settings as default_settings
from formhooks.delivery.retry import RetryScheduler
from formhooks.delivery.sender import DeliverySender
from formhooks.delivery.service import WebhookDeliveryService
from formhooks.handlers.events import router as events_router
from formhooks.handlers.webhooks import router as webhooks_router
from formhooks.models.webhook import RetryPolicy
from formhooks.storage.deliveries import DeliveryStore
from formhooks.storage.dynamodb import DynamoDBKeyValueStore
from formhooks.storage.kv import InMemoryKeyValueStore, KeyValueStore
from formhooks.storage.registry import WebhookRegistry
from formhooks.utils.logger import get_logger
from formhooks.utils.metrics import MetricsClient

logger = get_logger(__name__)

ServiceFactory = Callable[[Settings], WebhookDeliveryService]


def build_kv_store(config: Settings) -> KeyValueStore:
    """Key-value store selected by settings.storage_backend."""
    if config.storage_backend == "dynamodb":
        return DynamoDBKeyValueStore(config.webhooks_table_name, region_name=config.aws_region)
    return InMemoryKeyValueStore()


def build_delivery_service(config: Settings) -> WebhookDeliveryService:
    """Wire the delivery engine from settings."""
    registry = WebhookRegistry(
        build_kv_store(config),
        storage_key=config.webhooks_storage_key,
        default_retry_policy=RetryPolicy(
            max_retries=config.default_max_retries,
            backoff_multiplier=config.default_backoff_multiplier,
            initial_delay_ms=config.default_initial_delay_ms,
            max_delay_ms=config.default_max_delay_ms
        )
    )
    store = DeliveryStore()
    sender = DeliverySender(
        timeout_seconds=config.delivery_timeout,
        require_signature=config.require_signature,
        max_response_chars=config.max_response_chars
    )
    metrics = None
    if config.metrics_enabled:
        metrics = MetricsClient(
            namespace=config.metrics_namespace,
            stage=config.stage,
            region_name=config.aws_region
        )
    scheduler = RetryScheduler(sender, store, metrics=metrics)
    return WebhookDeliveryService(registry, store, sender, scheduler=scheduler)


def create_app(
    config: Optional[Settings] = None,
    service_factory: ServiceFactory = build_delivery_service
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        config: Settings, the global instance when omitted
        service_factory: Builds the delivery service at startup
    """
    config = config or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        service = service_factory(config)
        loaded = await service.registry.load()
        app.state.delivery_service = service
        logger.info(
            "Starting webhook delivery service",
            version=config.app_version,
            stage=config.stage,
            storage_backend=config.storage_backend,
            webhooks_loaded=loaded
        )
        try:
            yield
        finally:
            logger.info("Shutting down webhook delivery service")
            await service.shutdown()

    app = FastAPI(
        title=config.app_name,
        description="Signed webhook delivery for form events",
        version=config.app_version,
        lifespan=lifespan
    )

    app.include_router(webhooks_router)
    app.include_router(events_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        service = getattr(app.state, "delivery_service", None)
        return {
            "status": "ok",
            "message": f"{config.app_name} is healthy",
            "version": config.app_version,
            "environment": config.stage,
            "running_deliveries": len(service.scheduler.running()) if service else 0
        }

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Log HTTP exceptions and return structured error responses."""
        logger.warning(
            "HTTP exception occurred",
            status_code=exc.status_code,
            detail=exc.detail,
            path=request.url.path,
            method=request.method
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": {
                    "code": exc.status_code,
                    "message": exc.detail,
                    "type": "http_exception"
                }
            }
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Log unexpected exceptions and return a generic error response."""
        logger.error(
            "Unhandled exception occurred",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
            method=request.method
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "code": 500,
                    "message": "Internal server error",
                    "type": "internal_error"
                }
            }
        )

    return app


app = create_app()
