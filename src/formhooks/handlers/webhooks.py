"""
Module: webhooks.py
Description: Webhook configuration and delivery log handlers.

Key Components:
- POST /forms/{form_id}/webhooks: Register a webhook
- GET /forms/{form_id}/webhooks: List a form's webhooks
- GET/PATCH/DELETE /webhooks/{webhook_id}: Manage one webhook
- POST /webhooks/{webhook_id}/test: Ad-hoc test send
- GET /webhooks/{webhook_id}/deliveries: Delivery log
- GET /deliveries/{delivery_id}: One delivery record
- POST /deliveries/{delivery_id}/retry: Manual retry

Dependencies: FastAPI, models, storage, delivery
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response
from fastapi import status as status_codes
from pydantic import ValidationError

from formhooks.delivery.service import WebhookDeliveryService
from formhooks.handlers.dependencies import get_delivery_service, get_registry
from formhooks.models.delivery import WebhookDelivery, WebhookTestResult
from formhooks.models.request import CreateWebhookRequest, UpdateWebhookRequest
from formhooks.models.response import CreatedWebhookResponse, WebhookResponse
from formhooks.models.webhook import WebhookConfig
from formhooks.storage.deliveries import DeliveryNotFoundError
from formhooks.storage.registry import WebhookNotFoundError, WebhookRegistry
from formhooks.utils.logger import get_logger

router = APIRouter(tags=["webhooks"])
logger = get_logger(__name__)


def _require_webhook(registry: WebhookRegistry, webhook_id: str) -> WebhookConfig:
    config = registry.get(webhook_id)
    if config is None:
        logger.info("Webhook not found", webhook_id=webhook_id)
        raise HTTPException(
            status_code=status_codes.HTTP_404_NOT_FOUND,
            detail=f"Webhook {webhook_id} not found"
        )
    return config


@router.post(
    "/forms/{form_id}/webhooks",
    status_code=status_codes.HTTP_201_CREATED,
    response_model=CreatedWebhookResponse
)
async def create_webhook(
    form_id: str,
    request: CreateWebhookRequest,
    registry: WebhookRegistry = Depends(get_registry)
) -> CreatedWebhookResponse:
    """
    Register a webhook on a form.

    The signing secret is generated when omitted and is only returned
    in this response.

    Example:
        POST /forms/form_123/webhooks
        {"url": "https://example.test/hook", "events": ["submission.created"]}
    """
    config = await registry.create(
        form_id=form_id,
        url=request.url,
        events=request.events,
        secret=request.secret,
        headers=request.headers,
        is_active=request.is_active,
        retry_policy=request.retry_policy
    )
    return CreatedWebhookResponse.from_config(config)


@router.get("/forms/{form_id}/webhooks", response_model=List[WebhookResponse])
async def list_webhooks(
    form_id: str,
    active_only: bool = False,
    registry: WebhookRegistry = Depends(get_registry)
) -> List[WebhookResponse]:
    """List the webhooks registered on a form."""
    return [
        WebhookResponse.from_config(c)
        for c in registry.list_by_form(form_id, active_only=active_only)
    ]


@router.get("/webhooks/{webhook_id}", response_model=WebhookResponse)
async def get_webhook(
    webhook_id: str,
    registry: WebhookRegistry = Depends(get_registry)
) -> WebhookResponse:
    return WebhookResponse.from_config(_require_webhook(registry, webhook_id))


@router.patch("/webhooks/{webhook_id}", response_model=WebhookResponse)
async def update_webhook(
    webhook_id: str,
    request: UpdateWebhookRequest,
    registry: WebhookRegistry = Depends(get_registry)
) -> WebhookResponse:
    """Apply the fields present in the request body."""
    changes = request.model_dump(exclude_unset=True)
    try:
        config = await registry.update(webhook_id, **changes)
    except WebhookNotFoundError as e:
        raise HTTPException(status_code=status_codes.HTTP_404_NOT_FOUND, detail=str(e))
    except ValidationError as e:
        logger.info("Webhook update rejected", webhook_id=webhook_id, error=str(e))
        raise HTTPException(
            status_code=422,
            detail=f"Invalid webhook configuration: {e.error_count()} validation error(s)"
        )
    return WebhookResponse.from_config(config)


@router.delete("/webhooks/{webhook_id}", status_code=status_codes.HTTP_204_NO_CONTENT)
async def delete_webhook(
    webhook_id: str,
    registry: WebhookRegistry = Depends(get_registry)
) -> Response:
    """
    Delete a webhook. Idempotent.

    Running delivery chains for the webhook are cancelled and end as
    ``failed`` with error "cancelled".
    """
    await registry.remove(webhook_id)
    return Response(status_code=status_codes.HTTP_204_NO_CONTENT)


@router.post("/webhooks/{webhook_id}/test", response_model=WebhookTestResult)
async def test_webhook(
    webhook_id: str,
    registry: WebhookRegistry = Depends(get_registry),
    service: WebhookDeliveryService = Depends(get_delivery_service)
) -> WebhookTestResult:
    """Send a synthetic test payload once and report the result."""
    config = _require_webhook(registry, webhook_id)
    return await service.test_webhook(config)


@router.get("/webhooks/{webhook_id}/deliveries", response_model=List[WebhookDelivery])
async def get_delivery_logs(
    webhook_id: str,
    registry: WebhookRegistry = Depends(get_registry),
    service: WebhookDeliveryService = Depends(get_delivery_service)
) -> List[WebhookDelivery]:
    """Delivery log for a webhook, oldest first."""
    _require_webhook(registry, webhook_id)
    return service.get_delivery_logs(webhook_id)


@router.get("/deliveries/{delivery_id}", response_model=WebhookDelivery)
async def get_delivery(
    delivery_id: str,
    service: WebhookDeliveryService = Depends(get_delivery_service)
) -> WebhookDelivery:
    delivery = service.store.find(delivery_id)
    if delivery is None:
        raise HTTPException(
            status_code=status_codes.HTTP_404_NOT_FOUND,
            detail=f"Delivery {delivery_id} not found"
        )
    return delivery


@router.post(
    "/deliveries/{delivery_id}/retry",
    status_code=status_codes.HTTP_202_ACCEPTED,
    response_model=WebhookDelivery
)
async def retry_delivery(
    delivery_id: str,
    service: WebhookDeliveryService = Depends(get_delivery_service)
) -> WebhookDelivery:
    """Reset a delivery to pending and start a new attempt chain."""
    try:
        return await service.retry_manual_delivery(delivery_id)
    except (DeliveryNotFoundError, WebhookNotFoundError) as e:
        logger.info("Manual retry rejected", delivery_id=delivery_id, error=str(e))
        raise HTTPException(status_code=status_codes.HTTP_404_NOT_FOUND, detail=str(e))
