"""
Module: tester.py
Description: Ad-hoc webhook test sends.

Sends one synthetic payload to a webhook on user request and reports
the outcome directly. Never retries and never touches the delivery log.
"""

import time
from typing import Callable, Optional

from formhooks.auth.signing import SigningError
from formhooks.delivery.payload import PayloadBuilder
from formhooks.delivery.sender import DeliverySender
from formhooks.models.delivery import WebhookTestResult
from formhooks.models.webhook import WebhookConfig
from formhooks.utils.logger import get_logger

logger = get_logger(__name__)

# Synthetic event kind; never matches a real subscription
TEST_EVENT = "webhook.test"
TEST_SOURCE = "webhook-test"


class WebhookTester:
    """Single-shot sender for "test this webhook" actions."""

    def __init__(
        self,
        sender: DeliverySender,
        payload_builder: Optional[PayloadBuilder] = None,
        clock: Callable[[], float] = time.perf_counter
    ):
        self._sender = sender
        self._builder = payload_builder or PayloadBuilder()
        self._clock = clock

    async def test(self, config: WebhookConfig) -> WebhookTestResult:
        """
        Send a synthetic test payload to ``config.url`` once.

        Args:
            config: Webhook to test; it need not be active

        Returns:
            WebhookTestResult with the status code or error and the
            wall-clock duration in milliseconds
        """
        payload = self._builder.build(
            config.form_id,
            TEST_EVENT,
            {"test": True},
            {"source": TEST_SOURCE}
        )

        started = self._clock()
        try:
            outcome = await self._sender.send(config, payload)
        except SigningError as e:
            return WebhookTestResult(
                success=False,
                error=str(e),
                duration_ms=self._elapsed_ms(started)
            )

        duration_ms = self._elapsed_ms(started)
        logger.info(
            "Webhook test completed",
            webhook_id=config.id,
            success=outcome.ok,
            status_code=outcome.http_status,
            duration_ms=duration_ms
        )

        if outcome.ok:
            return WebhookTestResult(
                success=True,
                status_code=outcome.http_status,
                response=outcome.response_body,
                duration_ms=duration_ms
            )

        return WebhookTestResult(
            success=False,
            status_code=outcome.http_status,
            response=outcome.response_body,
            error=outcome.error or "Webhook delivery failed",
            duration_ms=duration_ms
        )

    def _elapsed_ms(self, started: float) -> int:
        return max(0, int((self._clock() - started) * 1000))
