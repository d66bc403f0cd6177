"""
Module: models
Description: Package initialization for Pydantic data models.

This package contains all data models used by the webhook service:
- WebhookConfig, RetryPolicy, WebhookEvent: subscriber configuration
- WebhookDelivery, DeliveryStatus: delivery log records
- WebhookPayload: wire envelope sent to subscribers
- WebhookTestResult: outcome of an ad-hoc test send

All models are exported here for convenient importing.
"""

from .webhook import RetryPolicy, WebhookConfig, WebhookEvent
from .delivery import DeliveryStatus, WebhookDelivery, WebhookPayload, WebhookTestResult

__all__ = [
    "RetryPolicy",
    "WebhookConfig",
    "WebhookEvent",
    "DeliveryStatus",
    "WebhookDelivery",
    "WebhookPayload",
    "WebhookTestResult",
]
