"""
Module: delivery/retry.py
Description: Retry scheduling for webhook deliveries.

Drives each delivery chain through the delivery state machine with
tenacity: one attempt, then exponential backoff between retries until
the webhook's retry policy is exhausted. Each chain is one asyncio task
keyed by delivery id, so chains can be cancelled individually, per
webhook, or all at once on shutdown.

State machine:
    pending  -> delivered | retrying | failed
    retrying -> retrying | delivered | failed

The delay before the k-th retry is
``min(initial_delay_ms * backoff_multiplier ** (k - 1), max_delay_ms)``.
"""

import asyncio
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

from tenacity import (
    AsyncRetrying,
    retry_if_result,
    stop_after_attempt,
    wait_exponential
)

from formhooks.auth.signing import SigningError
from formhooks.delivery.sender import DeliveryOutcome, DeliverySender
from formhooks.models.delivery import DeliveryStatus, WebhookDelivery, WebhookPayload
from formhooks.models.webhook import RetryPolicy, WebhookConfig, utcnow
from formhooks.storage.deliveries import DeliveryStore
from formhooks.utils.logger import get_logger
from formhooks.utils.metrics import MetricsClient

logger = get_logger(__name__)

CANCELLED_ERROR = "cancelled"

Sleep = Callable[[float], Awaitable[Any]]


def policy_wait(policy: RetryPolicy) -> wait_exponential:
    """tenacity wait strategy equivalent to RetryPolicy.delay_ms()."""
    return wait_exponential(
        multiplier=policy.initial_delay_ms / 1000,
        exp_base=policy.backoff_multiplier,
        max=policy.max_delay_ms / 1000
    )


class RetryScheduler:
    """
    Runs delivery chains as independent asyncio tasks.

    At most one chain runs per delivery id, so attempts for a delivery
    are strictly sequential while different deliveries run concurrently.
    """

    def __init__(
        self,
        sender: DeliverySender,
        store: DeliveryStore,
        sleep: Sleep = asyncio.sleep,
        metrics: Optional[MetricsClient] = None
    ):
        """
        Initialize retry scheduler.

        Args:
            sender: Performs single delivery attempts
            store: Delivery log updated on every transition
            sleep: Awaitable used for backoff waits, injectable for tests
            metrics: Optional CloudWatch counters
        """
        self._sender = sender
        self._store = store
        self._sleep = sleep
        self._metrics = metrics
        self._chains: Dict[str, asyncio.Task] = {}
        self._chain_webhooks: Dict[str, str] = {}
        self._cleanups: Dict[str, asyncio.Task] = {}

    def start(
        self,
        config: WebhookConfig,
        delivery_id: str,
        payload: WebhookPayload
    ) -> asyncio.Task:
        """
        Start the attempt chain for a pending delivery.

        Must be called from a running event loop.

        Raises:
            RuntimeError: If a chain is already running for the delivery
        """
        if self.is_running(delivery_id):
            raise RuntimeError(f"delivery {delivery_id} already has a running chain")

        task = asyncio.create_task(
            self._run_chain(config, delivery_id, payload),
            name=f"webhook-delivery-{delivery_id}"
        )
        self._chains[delivery_id] = task
        self._chain_webhooks[delivery_id] = config.id
        task.add_done_callback(lambda t: self._forget(delivery_id, t))
        return task

    def _forget(self, delivery_id: str, task: asyncio.Task) -> None:
        if self._chains.get(delivery_id) is task:
            del self._chains[delivery_id]
            self._chain_webhooks.pop(delivery_id, None)

        if task.cancelled():
            # Cancelled before its first step: the chain never ran its own handler
            delivery = self._store.find(delivery_id)
            if delivery is not None and not delivery.status.is_terminal:
                cleanup = asyncio.ensure_future(self._mark_cancelled(delivery_id))
                self._cleanups[delivery_id] = cleanup
                cleanup.add_done_callback(lambda _: self._cleanups.pop(delivery_id, None))
            return

        if task.exception() is not None:
            logger.error(
                "Delivery chain crashed",
                delivery_id=delivery_id,
                error=str(task.exception()),
                error_type=type(task.exception()).__name__
            )

    def is_running(self, delivery_id: str) -> bool:
        task = self._chains.get(delivery_id)
        return task is not None and not task.done()

    def running(self) -> List[str]:
        return [d for d, t in self._chains.items() if not t.done()]

    def cancel(self, delivery_id: str) -> bool:
        """Request cancellation of one chain. The chain ends ``failed``."""
        task = self._chains.get(delivery_id)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def cancel_webhook(self, webhook_id: str) -> int:
        """Cancel every running chain belonging to a webhook."""
        delivery_ids = [d for d, w in self._chain_webhooks.items() if w == webhook_id]
        cancelled = sum(1 for d in delivery_ids if self.cancel(d))
        if cancelled:
            logger.info("Delivery chains cancelled", webhook_id=webhook_id, count=cancelled)
        return cancelled

    def cancel_all(self) -> int:
        cancelled = sum(1 for d in list(self._chains) if self.cancel(d))
        if cancelled:
            logger.info("All delivery chains cancelled", count=cancelled)
        return cancelled

    async def wait(self, delivery_id: str) -> None:
        """Wait for a chain to settle, whatever its outcome."""
        task = self._chains.get(delivery_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        cleanup = self._cleanups.get(delivery_id)
        if cleanup is not None:
            await asyncio.gather(cleanup, return_exceptions=True)

    async def drain(self) -> None:
        """Wait until no chain is running, including chains started meanwhile."""
        while self._chains or self._cleanups:
            pending = list(self._chains.values()) + list(self._cleanups.values())
            await asyncio.gather(*pending, return_exceptions=True)

    def _retrying(self, policy: RetryPolicy, sleep: Sleep) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(policy.max_retries + 1),
            wait=policy_wait(policy),
            retry=retry_if_result(lambda outcome: not outcome.ok),
            # Budget exhausted: hand back the last failure instead of RetryError
            retry_error_callback=lambda state: state.outcome.result(),
            sleep=sleep
        )

    async def _run_chain(
        self,
        config: WebhookConfig,
        delivery_id: str,
        payload: WebhookPayload
    ) -> WebhookDelivery:
        last: Dict[str, DeliveryOutcome] = {}

        async def attempt() -> DeliveryOutcome:
            delivery = await self._store.increment_attempts(delivery_id)
            logger.debug(
                "Delivery attempt started",
                delivery_id=delivery_id,
                webhook_id=config.id,
                attempt=delivery.attempt_count
            )
            outcome = await self._sender.send(config, payload)
            last['outcome'] = outcome
            return outcome

        async def backoff(seconds: float) -> None:
            await self._schedule_retry(config, delivery_id, last['outcome'], seconds)
            await self._sleep(seconds)

        try:
            self._sender.check_signing(config)
            outcome = await self._retrying(config.retry_policy, backoff)(attempt)

        except SigningError as e:
            logger.error(
                "Delivery not attempted: signing error",
                delivery_id=delivery_id,
                webhook_id=config.id,
                error=str(e)
            )
            return await self._finish(delivery_id, DeliveryStatus.FAILED, error=str(e))

        except asyncio.CancelledError:
            await self._mark_cancelled(delivery_id)
            raise

        except Exception as e:
            logger.exception(
                "Delivery chain aborted by unexpected error",
                delivery_id=delivery_id,
                webhook_id=config.id,
                error_type=type(e).__name__
            )
            delivery = self._store.find(delivery_id)
            if delivery is None or delivery.status.is_terminal:
                raise
            return await self._finish(
                delivery_id,
                DeliveryStatus.FAILED,
                error=str(e) or type(e).__name__
            )

        if outcome.ok:
            return await self._finish(
                delivery_id,
                DeliveryStatus.DELIVERED,
                http_status=outcome.http_status,
                response=outcome.response_body,
                error=None,
                delivered_at=utcnow()
            )

        logger.warning(
            "Delivery failed, retry budget exhausted",
            delivery_id=delivery_id,
            webhook_id=config.id,
            max_retries=config.retry_policy.max_retries,
            error=outcome.error
        )
        return await self._finish(
            delivery_id,
            DeliveryStatus.FAILED,
            http_status=outcome.http_status,
            response=outcome.response_body,
            error=outcome.error
        )

    async def _schedule_retry(
        self,
        config: WebhookConfig,
        delivery_id: str,
        outcome: DeliveryOutcome,
        seconds: float
    ) -> None:
        delivery = await self._store.update(
            delivery_id,
            status=DeliveryStatus.RETRYING,
            next_retry_at=utcnow() + timedelta(seconds=seconds),
            http_status=outcome.http_status,
            response=outcome.response_body,
            error=outcome.error
        )

        logger.info(
            "Delivery retry scheduled",
            delivery_id=delivery_id,
            webhook_id=config.id,
            attempt=delivery.attempt_count,
            delay_ms=int(seconds * 1000),
            error=outcome.error
        )
        if self._metrics:
            self._metrics.increment("WebhookRetryScheduled")

    async def _finish(self, delivery_id: str, status: DeliveryStatus, **fields: Any) -> WebhookDelivery:
        delivery = await self._store.update(
            delivery_id,
            status=status,
            next_retry_at=None,
            **fields
        )
        if self._metrics:
            self._metrics.increment(
                "WebhookDelivered" if status == DeliveryStatus.DELIVERED else "WebhookFailed"
            )
        return delivery

    async def _mark_cancelled(self, delivery_id: str) -> None:
        delivery = self._store.find(delivery_id)
        if delivery is None or delivery.status.is_terminal:
            return

        await self._store.update(
            delivery_id,
            status=DeliveryStatus.FAILED,
            next_retry_at=None,
            error=CANCELLED_ERROR
        )
        logger.info(
            "Delivery chain cancelled",
            delivery_id=delivery_id,
            attempt_count=delivery.attempt_count
        )
