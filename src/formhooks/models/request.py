"""
Module: request.py
Description: API request models for the webhook service.

Defines request models for incoming API calls. These models handle
input validation and transformation for API endpoints.

Key Components:
- CreateWebhookRequest: Model for POST /forms/{form_id}/webhooks
- UpdateWebhookRequest: Model for PATCH /webhooks/{webhook_id}
- TriggerEventRequest: Model for POST /forms/{form_id}/events

Dependencies: pydantic, typing
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator
from pydantic.alias_generators import to_camel

from formhooks.models.webhook import RetryPolicy, WebhookEvent


def _validate_url(v: Optional[str]) -> Optional[str]:
    if v is not None and not v.startswith(('http://', 'https://')):
        raise ValueError("url must be a valid HTTP/HTTPS URL")
    return v


class CreateWebhookRequest(BaseModel):
    """
    Request model for registering a webhook on a form.

    Attributes:
        url: Delivery target (required)
        events: Event kinds to subscribe to (at least one)
        secret: Optional signing secret, generated when omitted
        headers: Optional static headers sent with every delivery
        is_active: Whether the webhook receives deliveries
        retry_policy: Optional backoff policy, service default when omitted
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True
    )

    url: str = Field(..., min_length=1, max_length=2048)
    events: List[WebhookEvent] = Field(..., min_length=1)
    secret: Optional[str] = Field(default=None, min_length=16, max_length=256)
    headers: Optional[Dict[str, str]] = None
    is_active: bool = True
    retry_policy: Optional[RetryPolicy] = None

    @field_validator('url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        return _validate_url(v)


class UpdateWebhookRequest(BaseModel):
    """
    Request model for updating a webhook.

    Only fields present in the request body are applied; the handler
    reads them with model_dump(exclude_unset=True).
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True
    )

    url: Optional[str] = Field(default=None, min_length=1, max_length=2048)
    events: Optional[List[WebhookEvent]] = Field(default=None, min_length=1)
    secret: Optional[str] = Field(default=None, min_length=16, max_length=256)
    headers: Optional[Dict[str, str]] = None
    is_active: Optional[bool] = None
    retry_policy: Optional[RetryPolicy] = None

    @field_validator('url')
    @classmethod
    def validate_url(cls, v: Optional[str]) -> Optional[str]:
        return _validate_url(v)

    @model_validator(mode='after')
    def validate_at_least_one_field(self) -> 'UpdateWebhookRequest':
        """Ensure at least one field is provided."""
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided for update")

        # secret and headers accept null to clear them; the rest cannot be unset
        nulled = sorted(
            name for name in self.model_fields_set - {'secret', 'headers'}
            if getattr(self, name) is None
        )
        if nulled:
            raise ValueError(f"Fields cannot be null: {', '.join(nulled)}")
        return self


class TriggerEventRequest(BaseModel):
    """
    Request model for triggering a domain event on a form.

    Attributes:
        event: Event kind that occurred
        data: Event data forwarded to subscribers as-is
        metadata: Optional metadata merged into the envelope
    """

    event: WebhookEvent
    data: Any = None
    metadata: Optional[Dict[str, Any]] = None
