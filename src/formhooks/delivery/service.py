"""
Module: service.py
Description: Webhook delivery orchestration.

Entry point of the delivery engine. Fans a domain event out to every
matching webhook, starts one independent delivery chain per webhook,
and exposes the operator actions on the delivery log.

Key Components:
- WebhookDeliveryService.trigger_webhook(): Event fan-out
- WebhookDeliveryService.retry_manual_delivery(): Operator-initiated retry
- WebhookDeliveryService.get_delivery_logs(): Delivery log query
- WebhookDeliveryService.test_webhook(): Ad-hoc test send
- WebhookDeliveryService.shutdown(): Cancel chains and release the HTTP client

Deleting a webhook from the registry cancels its running chains.
"""

import copy
from typing import Any, Dict, List, Optional

from formhooks.delivery.payload import PayloadBuilder
from formhooks.delivery.retry import RetryScheduler
from formhooks.delivery.sender import DeliverySender
from formhooks.delivery.tester import WebhookTester
from formhooks.models.delivery import WebhookDelivery, WebhookTestResult
from formhooks.models.webhook import WebhookConfig, WebhookEvent
from formhooks.storage.deliveries import DeliveryNotFoundError, DeliveryStore
from formhooks.storage.registry import REMOVED, WebhookNotFoundError, WebhookRegistry
from formhooks.utils.logger import get_logger

logger = get_logger(__name__)


class WebhookDeliveryService:
    """
    Delivery engine facade owned by the composition root.

    Example:
        >>> service = WebhookDeliveryService(registry, store, sender)
        >>> deliveries = await service.trigger_webhook(
        ...     "form_1", WebhookEvent.SUBMISSION_CREATED, {"answers": {...}}
        ... )
    """

    def __init__(
        self,
        registry: WebhookRegistry,
        store: DeliveryStore,
        sender: DeliverySender,
        scheduler: Optional[RetryScheduler] = None,
        payload_builder: Optional[PayloadBuilder] = None,
        tester: Optional[WebhookTester] = None
    ):
        self.registry = registry
        self.store = store
        self.sender = sender
        self.scheduler = scheduler or RetryScheduler(sender, store)
        self.payload_builder = payload_builder or PayloadBuilder()
        self.tester = tester or WebhookTester(sender, self.payload_builder)

        self._unsubscribe = registry.subscribe(self._on_registry_change)

    def _on_registry_change(self, action: str, config: WebhookConfig) -> None:
        if action == REMOVED:
            self.scheduler.cancel_webhook(config.id)

    async def trigger_webhook(
        self,
        form_id: str,
        event: WebhookEvent,
        data: Any,
        metadata: Optional[Dict[str, Any]] = None
    ) -> List[WebhookDelivery]:
        """
        Start a delivery chain for every active subscriber of ``event``.

        Returns as soon as the chains are started; attempts run in the
        background. Repeated calls for the same occurrence create
        independent chains (no deduplication).

        Args:
            form_id: Form the event occurred on
            event: Event kind
            data: Event data forwarded to subscribers, copied per delivery
            metadata: Optional envelope metadata

        Returns:
            The newly created delivery records, all ``pending``
        """
        event = WebhookEvent(event)
        subscribers = self.registry.find_active_subscribers(form_id, event)

        deliveries = []
        for config in subscribers:
            delivery = await self.store.create(
                WebhookDelivery(webhook_id=config.id, event=event, payload=copy.deepcopy(data))
            )
            payload = self.payload_builder.build(form_id, event, copy.deepcopy(data), metadata)
            self.scheduler.start(config, delivery.id, payload)
            deliveries.append(delivery)

        logger.info(
            "Webhook event triggered",
            form_id=form_id,
            event_kind=event.value,
            subscriber_count=len(deliveries)
        )
        return deliveries

    async def retry_manual_delivery(self, delivery_id: str) -> WebhookDelivery:
        """
        Restart a delivery from ``pending`` with zero attempts.

        Works from any state, including terminal ones. A chain still running
        for the delivery is cancelled first. The current webhook config is
        used, so fixes to the URL or secret apply to the retry.

        Raises:
            DeliveryNotFoundError: If the delivery does not exist
            WebhookNotFoundError: If its webhook was deleted
        """
        delivery = self.store.find(delivery_id)
        if delivery is None:
            raise DeliveryNotFoundError(f"Delivery {delivery_id} not found")

        config = self.registry.get(delivery.webhook_id)
        if config is None:
            raise WebhookNotFoundError(f"Webhook {delivery.webhook_id} not found")

        if self.scheduler.cancel(delivery_id):
            await self.scheduler.wait(delivery_id)

        delivery = await self.store.reset(delivery_id)
        payload = self.payload_builder.build(config.form_id, delivery.event, copy.deepcopy(delivery.payload))
        self.scheduler.start(config, delivery_id, payload)

        logger.info(
            "Manual delivery retry started",
            delivery_id=delivery_id,
            webhook_id=config.id
        )
        return delivery

    def get_delivery_logs(self, webhook_id: str) -> List[WebhookDelivery]:
        return self.store.find_by_webhook(webhook_id)

    async def test_webhook(self, config: WebhookConfig) -> WebhookTestResult:
        return await self.tester.test(config)

    async def drain(self) -> None:
        """Wait for every running delivery chain to settle."""
        await self.scheduler.drain()

    async def shutdown(self) -> None:
        """Cancel running chains, wait for them, then close the HTTP client."""
        self._unsubscribe()
        cancelled = self.scheduler.cancel_all()
        await self.scheduler.drain()
        await self.sender.aclose()
        logger.info("Webhook delivery service stopped", cancelled_chains=cancelled)
