"""
Module: webhook.py
Description: Webhook configuration models.

Defines the registered subscriber model, its embedded retry policy and
the event kinds a subscriber can listen to. Configurations are owned by
the registry and are read-only to the delivery engine.

Key Components:
- WebhookEvent: Enum of recognised domain event kinds
- RetryPolicy: Embedded backoff policy with the delay formula
- WebhookConfig: One registered HTTP endpoint for one form
- new_id(): Prefixed identifier generation shared by all models

Dependencies: pydantic, datetime, uuid, typing
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def new_id(prefix: str) -> str:
    """Generate an identifier such as ``whk_3f9a0c1d2e4b``."""
    return f"{prefix}_{uuid4().hex[:12]}"


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class WebhookEvent(str, Enum):
    """Domain events a webhook can subscribe to."""

    SUBMISSION_CREATED = "submission.created"
    SUBMISSION_UPDATED = "submission.updated"
    SUBMISSION_DELETED = "submission.deleted"
    FORM_PUBLISHED = "form.published"
    ANALYTICS_MILESTONE = "analytics.milestone"
    REPORT_GENERATED = "report.generated"


class RetryPolicy(BaseModel):
    """
    Backoff policy embedded in every webhook configuration.

    Attributes:
        max_retries: Cap on additional attempts after the first one
        backoff_multiplier: Geometric growth factor between retries
        initial_delay_ms: Delay before the first retry
        max_delay_ms: Upper bound on any computed delay
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True
    )

    max_retries: int = Field(default=5, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)
    initial_delay_ms: int = Field(default=1000, ge=0)
    max_delay_ms: int = Field(default=60000, ge=0)

    def delay_ms(self, retry_number: int) -> int:
        """
        Delay before the k-th retry (1-based).

        Returns ``min(initial_delay_ms * backoff_multiplier ** (k - 1), max_delay_ms)``,
        so the policy ``{1000, 2, 60000}`` yields 1000, 2000, 4000 for k = 1..3.
        """
        if retry_number < 1:
            raise ValueError("retry_number is 1-based")
        try:
            delay = self.initial_delay_ms * self.backoff_multiplier ** (retry_number - 1)
        except OverflowError:
            return self.max_delay_ms
        return int(min(delay, self.max_delay_ms))


class WebhookConfig(BaseModel):
    """
    A registered subscriber for one form.

    Attributes:
        id: Unique webhook identifier
        form_id: Owning form
        url: Delivery target (http or https)
        events: Event kinds the webhook subscribes to
        secret: Shared signing key; unsigned deliveries when empty
        headers: Static extra headers, merged last into each request
        is_active: Inactive webhooks are never matched
        retry_policy: Backoff policy for failed deliveries
        created_at: Creation timestamp
        updated_at: Last modification timestamp
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True
    )

    id: str = Field(default_factory=lambda: new_id("whk"))
    form_id: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1, max_length=2048)
    events: List[WebhookEvent] = Field(default_factory=list)
    secret: Optional[str] = Field(default=None, repr=False)
    headers: Optional[Dict[str, str]] = None
    is_active: bool = True
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator('url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Only plain HTTP(S) endpoints can receive deliveries."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError("url must be a valid HTTP/HTTPS URL")
        return v

    @field_validator('events')
    @classmethod
    def dedupe_events(cls, v: List[WebhookEvent]) -> List[WebhookEvent]:
        """Keep the first occurrence of each event kind."""
        return list(dict.fromkeys(v))

    def subscribes_to(self, event: WebhookEvent) -> bool:
        """True when this webhook is active and listens to ``event``."""
        return self.is_active and event in self.events
