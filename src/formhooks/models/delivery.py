"""
Module: delivery.py
Description: Delivery log and wire payload models.

Defines the delivery record that tracks one attempt chain for one
(webhook, event occurrence) pair, the JSON envelope actually sent to
subscribers, and the result of an ad-hoc webhook test.

Key Components:
- DeliveryStatus: Enum for delivery states, with terminal helpers
- WebhookDelivery: Attempt chain record mutated by the retry engine
- WebhookPayload: Canonical envelope, serialised once per delivery
- WebhookTestResult: Outcome of a user-initiated test send

Dependencies: pydantic, datetime, typing
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from formhooks.models.webhook import WebhookEvent, new_id, utcnow


class DeliveryStatus(str, Enum):
    """Delivery states. ``delivered`` and ``failed`` are terminal."""

    PENDING = "pending"
    DELIVERED = "delivered"
    RETRYING = "retrying"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DeliveryStatus.DELIVERED, DeliveryStatus.FAILED)


class WebhookDelivery(BaseModel):
    """
    One attempt chain for one webhook and one event occurrence.

    Attributes:
        id: Unique delivery identifier
        webhook_id: Owning webhook configuration
        event: Event kind that triggered the delivery
        payload: Raw domain data, not yet wrapped in the envelope
        status: Current state in the delivery state machine
        http_status: Last observed response code
        response: Last response body (truncated)
        error: Last error message
        attempt_count: HTTP attempts made so far
        next_retry_at: When the next retry fires, only while retrying
        delivered_at: Set once the delivery succeeds
        created_at: When the delivery was created
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True
    )

    id: str = Field(default_factory=lambda: new_id("dlv"))
    webhook_id: str
    event: WebhookEvent
    payload: Any = None
    status: DeliveryStatus = DeliveryStatus.PENDING
    http_status: Optional[int] = None
    response: Optional[str] = None
    error: Optional[str] = None
    attempt_count: int = Field(default=0, ge=0)
    next_retry_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)


class WebhookPayload(BaseModel):
    """
    Envelope transmitted to subscribers.

    The id is fixed for the lifetime of a delivery, so every retry of the
    same delivery carries the same envelope and the receiver can dedupe.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True
    )

    id: str = Field(default_factory=lambda: new_id("evt"))
    event: str
    timestamp: datetime = Field(default_factory=utcnow)
    form_id: str
    data: Any = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def serialize(self) -> bytes:
        """JSON bytes exactly as sent on the wire and signed."""
        return self.model_dump_json(by_alias=True).encode("utf-8")


class WebhookTestResult(BaseModel):
    """Result of a single out-of-band test delivery."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True
    )

    success: bool
    status_code: Optional[int] = None
    response: Optional[str] = None
    error: Optional[str] = None
    duration_ms: int = Field(default=0, ge=0)
