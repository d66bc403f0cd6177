"""
Module: payload.py
Description: Canonical event envelope construction.

Wraps raw trigger arguments into the WebhookPayload sent to
subscribers, stamping a fresh envelope id and the current time.
"""

from typing import Any, Dict, Optional

from formhooks.models.delivery import WebhookPayload
from formhooks.models.webhook import WebhookEvent

DEFAULT_SOURCE = "submission"


class PayloadBuilder:
    """Builds webhook envelopes. Stateless apart from the default source."""

    def __init__(self, default_source: str = DEFAULT_SOURCE):
        self.default_source = default_source

    def build(
        self,
        form_id: str,
        event: Any,
        data: Any,
        metadata: Optional[Dict[str, Any]] = None
    ) -> WebhookPayload:
        """
        Build the envelope for one delivery.

        Args:
            form_id: Form the event belongs to
            event: Event kind, a WebhookEvent or a synthetic tag
            data: Domain data forwarded untouched
            metadata: Extra metadata; ``source`` defaults to "submission"

        Returns:
            New WebhookPayload with a fresh id and timestamp
        """
        if isinstance(event, WebhookEvent):
            event = event.value

        envelope_metadata: Dict[str, Any] = {"source": self.default_source}
        if metadata:
            envelope_metadata.update(metadata)

        return WebhookPayload(
            event=event,
            form_id=form_id,
            data=data,
            metadata=envelope_metadata
        )
