"""
Module: events.py
Description: Domain event trigger handler.

Implements POST /forms/{form_id}/events, the HTTP entry point used by
the form application to announce that an event occurred. Delivery runs
in the background; the response lists the deliveries that were started.

Dependencies: FastAPI, models, delivery
"""

from fastapi import APIRouter, Depends
from fastapi import status as status_codes

from formhooks.delivery.service import WebhookDeliveryService
from formhooks.handlers.dependencies import get_delivery_service
from formhooks.models.request import TriggerEventRequest
from formhooks.models.response import TriggerResponse

router = APIRouter(tags=["events"])


@router.post(
    "/forms/{form_id}/events",
    status_code=status_codes.HTTP_202_ACCEPTED,
    response_model=TriggerResponse
)
async def trigger_event(
    form_id: str,
    request: TriggerEventRequest,
    service: WebhookDeliveryService = Depends(get_delivery_service)
) -> TriggerResponse:
    """
    Fan an event out to every active webhook subscribed to it.

    Example:
        POST /forms/form_123/events
        {"event": "submission.created", "data": {"submission_id": "sub_1"}}

        Response (202 Accepted):
        {"event": "submission.created", "formId": "form_123",
         "deliveries": [{"id": "dlv_...", "status": "pending", ...}],
         "message": "1 delivery started"}
    """
    deliveries = await service.trigger_webhook(
        form_id,
        request.event,
        request.data,
        request.metadata
    )
    count = len(deliveries)
    return TriggerResponse(
        event=request.event,
        form_id=form_id,
        deliveries=deliveries,
        message=f"{count} {'delivery' if count == 1 else 'deliveries'} started"
    )
