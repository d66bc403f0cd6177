"""
Package: delivery
Description: Webhook delivery engine.

Builds and signs event envelopes, performs single HTTP attempts,
retries failures with exponential backoff and fans events out to
every subscribed webhook.
"""

from .payload import PayloadBuilder
from .retry import RetryScheduler
from .sender import DeliveryFailure, DeliverySender, DeliverySuccess
from .service import WebhookDeliveryService
from .tester import WebhookTester

__all__ = [
    "PayloadBuilder",
    "RetryScheduler",
    "DeliveryFailure",
    "DeliverySender",
    "DeliverySuccess",
    "WebhookDeliveryService",
    "WebhookTester",
]
