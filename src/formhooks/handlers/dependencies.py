"""
Module: dependencies.py
Description: FastAPI dependencies for the webhook handlers.

Components are built once by the application lifespan and stored on
app.state; handlers receive them through these dependencies so tests
can swap them with app.dependency_overrides.
"""

from fastapi import Request

from formhooks.delivery.service import WebhookDeliveryService
from formhooks.storage.registry import WebhookRegistry


def get_delivery_service(request: Request) -> WebhookDeliveryService:
    """Dependency to get the delivery service built at startup."""
    return request.app.state.delivery_service


def get_registry(request: Request) -> WebhookRegistry:
    """Dependency to get the webhook registry built at startup."""
    return request.app.state.delivery_service.registry
