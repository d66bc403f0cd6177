"""
Module: deliveries.py
Description: In-memory delivery log.

Owns the WebhookDelivery records created by the delivery engine.
Records are immutable; update() swaps in a modified copy and
enforces the delivery state machine. The log does not survive a
process restart.

Key Components:
- DeliveryStore: create(), update(), reset(), find(), find_by_webhook()
- ALLOWED_TRANSITIONS: Delivery state machine edges
- DeliveryNotFoundError, InvalidTransitionError

Updates for the same delivery id are serialized with a per-id lock;
updates for different ids proceed independently.
"""

import asyncio
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

from formhooks.models.delivery import DeliveryStatus, WebhookDelivery
from formhooks.utils.logger import get_logger

logger = get_logger(__name__)

DeliveryListener = Callable[[WebhookDelivery], Any]

ALLOWED_TRANSITIONS = {
    DeliveryStatus.PENDING: {
        DeliveryStatus.DELIVERED,
        DeliveryStatus.RETRYING,
        DeliveryStatus.FAILED,
    },
    DeliveryStatus.RETRYING: {
        DeliveryStatus.RETRYING,
        DeliveryStatus.DELIVERED,
        DeliveryStatus.FAILED,
    },
    DeliveryStatus.DELIVERED: set(),
    DeliveryStatus.FAILED: set(),
}

# Applied by reset() for manual retries
_RESET_FIELDS = {
    'status': DeliveryStatus.PENDING,
    'attempt_count': 0,
    'http_status': None,
    'response': None,
    'error': None,
    'next_retry_at': None,
    'delivered_at': None,
}


class DeliveryNotFoundError(LookupError):
    """No delivery with the requested id."""


class InvalidTransitionError(ValueError):
    """An update would violate the delivery state machine."""


def check_transition(current: WebhookDelivery, fields: Dict[str, Any]) -> None:
    """
    Validate a partial update against the state machine.

    Raises:
        InvalidTransitionError: If the record is terminal, the status edge is
            not allowed or attempt_count would decrease
    """
    if current.status.is_terminal:
        raise InvalidTransitionError(
            f"delivery {current.id} is {current.status.value} and cannot be updated"
        )

    if 'status' in fields:
        new_status = DeliveryStatus(fields['status'])
        if new_status != current.status and new_status not in ALLOWED_TRANSITIONS[current.status]:
            raise InvalidTransitionError(
                f"delivery {current.id}: {current.status.value} -> {new_status.value} is not allowed"
            )

    if fields.get('attempt_count', current.attempt_count) < current.attempt_count:
        raise InvalidTransitionError(f"delivery {current.id}: attempt_count cannot decrease")


class DeliveryStore:
    """Process-wide delivery log owned by the composition root."""

    def __init__(self):
        self._deliveries: Dict[str, WebhookDelivery] = {}
        self._by_webhook: Dict[str, List[str]] = defaultdict(list)
        self._locks: Dict[str, asyncio.Lock] = {}
        self._listeners: List[DeliveryListener] = []

    def subscribe(self, listener: DeliveryListener) -> Callable[[], None]:
        """Register ``listener(delivery)`` for every create/update."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _lock(self, delivery_id: str) -> asyncio.Lock:
        lock = self._locks.get(delivery_id)
        if lock is None:
            raise DeliveryNotFoundError(f"Delivery {delivery_id} not found")
        return lock

    def _notify(self, delivery: WebhookDelivery) -> None:
        for listener in list(self._listeners):
            try:
                listener(delivery)
            except Exception:
                logger.exception("Delivery listener failed", delivery_id=delivery.id)

    async def create(self, delivery: WebhookDelivery) -> WebhookDelivery:
        """
        Append a new delivery record.

        Raises:
            ValueError: If a delivery with the same id exists
        """
        if delivery.id in self._deliveries:
            raise ValueError(f"delivery {delivery.id} already exists")

        self._deliveries[delivery.id] = delivery
        self._locks[delivery.id] = asyncio.Lock()
        self._by_webhook[delivery.webhook_id].append(delivery.id)

        logger.debug(
            "Delivery created",
            delivery_id=delivery.id,
            webhook_id=delivery.webhook_id,
            event_kind=delivery.event.value
        )
        self._notify(delivery)
        return delivery

    async def update(self, delivery_id: str, **fields: Any) -> WebhookDelivery:
        """
        Merge ``fields`` into a delivery, enforcing the state machine.

        Raises:
            DeliveryNotFoundError: If the delivery does not exist
            InvalidTransitionError: If the change is not a legal transition
        """
        async with self._lock(delivery_id):
            current = self._deliveries[delivery_id]
            check_transition(current, fields)

            updated = current.model_copy(update=fields)
            self._deliveries[delivery_id] = updated

        if 'status' in fields and updated.status != current.status:
            logger.info(
                "Delivery status changed",
                delivery_id=delivery_id,
                from_status=current.status.value,
                to_status=updated.status.value,
                attempt_count=updated.attempt_count
            )
        self._notify(updated)
        return updated

    async def increment_attempts(self, delivery_id: str) -> WebhookDelivery:
        """Count one more HTTP attempt, atomically for this delivery."""
        async with self._lock(delivery_id):
            current = self._deliveries[delivery_id]
            check_transition(current, {})
            updated = current.model_copy(update={'attempt_count': current.attempt_count + 1})
            self._deliveries[delivery_id] = updated

        self._notify(updated)
        return updated

    async def reset(self, delivery_id: str) -> WebhookDelivery:
        """
        Return a delivery to ``pending`` with zero attempts.

        Operator escape hatch for manual retries; allowed from any state.

        Raises:
            DeliveryNotFoundError: If the delivery does not exist
        """
        async with self._lock(delivery_id):
            current = self._deliveries[delivery_id]
            updated = current.model_copy(update=_RESET_FIELDS)
            self._deliveries[delivery_id] = updated

        logger.info(
            "Delivery reset for manual retry",
            delivery_id=delivery_id,
            previous_status=current.status.value,
            previous_attempts=current.attempt_count
        )
        self._notify(updated)
        return updated

    def find(self, delivery_id: str) -> Optional[WebhookDelivery]:
        return self._deliveries.get(delivery_id)

    def find_by_webhook(self, webhook_id: str) -> List[WebhookDelivery]:
        """Delivery log for one webhook, oldest first."""
        return [self._deliveries[i] for i in self._by_webhook.get(webhook_id, [])]
