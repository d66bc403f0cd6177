"""
Module: response.py
Description: API response models for the webhook service.

Key Components:
- WebhookResponse: Webhook config as returned by the API (secret hidden)
- CreatedWebhookResponse: Creation response, the only one carrying the secret
- TriggerResponse: Deliveries created for a triggered event

Dependencies: pydantic, datetime, typing
"""

from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from formhooks.models.delivery import WebhookDelivery
from formhooks.models.webhook import RetryPolicy, WebhookConfig, WebhookEvent


class WebhookResponse(BaseModel):
    """Webhook configuration without its signing secret."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True
    )

    id: str
    form_id: str
    url: str
    events: List[WebhookEvent]
    headers: Optional[Dict[str, str]] = None
    is_active: bool
    has_secret: bool
    retry_policy: RetryPolicy
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_config(cls, config: WebhookConfig) -> 'WebhookResponse':
        return cls(
            **config.model_dump(exclude={'secret'}),
            has_secret=bool(config.secret)
        )


class CreatedWebhookResponse(WebhookResponse):
    """Creation response; the secret is shown once."""

    secret: Optional[str] = None

    @classmethod
    def from_config(cls, config: WebhookConfig) -> 'CreatedWebhookResponse':
        return cls(
            **config.model_dump(),
            has_secret=bool(config.secret)
        )


class TriggerResponse(BaseModel):
    """Deliveries initiated by a triggered event."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True
    )

    event: WebhookEvent
    form_id: str
    deliveries: List[WebhookDelivery] = Field(default_factory=list)
    message: str
