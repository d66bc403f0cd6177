"""
Module: test_delivery_flow.py
Description: End-to-end delivery scenarios through the service facade.

Registers webhooks, triggers events and follows each delivery to its
terminal state against a scripted HTTP endpoint.
"""

import hashlib
import hmac
import json

import pytest

from formhooks.models.delivery import DeliveryStatus
from formhooks.models.webhook import RetryPolicy, WebhookEvent

from conftest import HOOK_URL, OTHER_URL, RecordingSleep

SCENARIO_POLICY = RetryPolicy(
    max_retries=2,
    backoff_multiplier=2,
    initial_delay_ms=500,
    max_delay_ms=5000
)


class TestDeliveryFlow:
    """Full chains from trigger to terminal state."""

    @pytest.mark.asyncio
    async def test_recovers_after_two_server_errors(self, make_service, registry, endpoint):
        endpoint.script(HOOK_URL, 500, 500, 200)
        sleep = RecordingSleep()
        service = make_service(sleep=sleep)
        webhook = await registry.create(
            "form_1", HOOK_URL, [WebhookEvent.SUBMISSION_CREATED], retry_policy=SCENARIO_POLICY
        )

        [delivery] = await service.trigger_webhook(
            "form_1", WebhookEvent.SUBMISSION_CREATED, {"submission_id": "sub_1"}
        )
        await service.drain()

        final = service.store.find(delivery.id)
        assert final.status == DeliveryStatus.DELIVERED
        assert final.attempt_count == 3
        assert final.http_status == 200
        assert final.delivered_at is not None
        assert sleep.delays == [0.5, 1.0]
        assert service.get_delivery_logs(webhook.id) == [final]

    @pytest.mark.asyncio
    async def test_gives_up_after_budget(self, make_service, registry, endpoint):
        endpoint.script(HOOK_URL, 500)
        sleep = RecordingSleep()
        service = make_service(sleep=sleep)
        await registry.create(
            "form_1", HOOK_URL, [WebhookEvent.SUBMISSION_CREATED], retry_policy=SCENARIO_POLICY
        )

        [delivery] = await service.trigger_webhook("form_1", WebhookEvent.SUBMISSION_CREATED, {})
        await service.drain()

        final = service.store.find(delivery.id)
        assert final.status == DeliveryStatus.FAILED
        assert final.attempt_count == 3
        assert final.http_status == 500
        assert sleep.delays == [0.5, 1.0]
        assert len(endpoint.requests) == 3

    @pytest.mark.asyncio
    async def test_signed_envelope_received(self, make_service, registry, endpoint):
        service = make_service(require_signature=True)
        webhook = await registry.create(
            "form_1", HOOK_URL, [WebhookEvent.SUBMISSION_CREATED],
            headers={"X-Team": "forms"}
        )

        await service.trigger_webhook(
            "form_1", WebhookEvent.SUBMISSION_CREATED, {"answers": {"q1": "yes"}},
            metadata={"source": "api"}
        )
        await service.drain()

        [request] = endpoint.requests
        expected = hmac.new(webhook.secret.encode(), request.content, hashlib.sha256).hexdigest()
        assert request.headers["X-Webhook-Signature"] == f"sha256={expected}"
        assert request.headers["Content-Type"] == "application/json"
        assert request.headers["X-Team"] == "forms"

        body = json.loads(request.content)
        assert body["event"] == "submission.created"
        assert body["formId"] == "form_1"
        assert body["data"] == {"answers": {"q1": "yes"}}
        assert body["metadata"]["source"] == "api"
        assert body["id"].startswith("evt_")

    @pytest.mark.asyncio
    async def test_fan_out_to_mixed_endpoints(self, make_service, registry, endpoint):
        endpoint.script(OTHER_URL, 404)
        service = make_service()
        healthy = await registry.create("form_1", HOOK_URL, [WebhookEvent.FORM_PUBLISHED])
        broken = await registry.create(
            "form_1", OTHER_URL, [WebhookEvent.FORM_PUBLISHED],
            retry_policy=RetryPolicy(max_retries=0)
        )

        await service.trigger_webhook("form_1", WebhookEvent.FORM_PUBLISHED, {"version": 3})
        await service.drain()

        assert service.get_delivery_logs(healthy.id)[0].status == DeliveryStatus.DELIVERED
        [failed] = service.get_delivery_logs(broken.id)
        assert failed.status == DeliveryStatus.FAILED
        assert failed.http_status == 404
        assert failed.attempt_count == 1

    @pytest.mark.asyncio
    async def test_manual_retry_uses_updated_url(self, make_service, registry, endpoint):
        endpoint.script(HOOK_URL, 500)
        service = make_service()
        webhook = await registry.create(
            "form_1", HOOK_URL, [WebhookEvent.SUBMISSION_CREATED],
            retry_policy=RetryPolicy(max_retries=0)
        )
        [delivery] = await service.trigger_webhook("form_1", WebhookEvent.SUBMISSION_CREATED, {})
        await service.drain()
        assert service.store.find(delivery.id).status == DeliveryStatus.FAILED

        await registry.update(webhook.id, url=OTHER_URL)
        await service.retry_manual_delivery(delivery.id)
        await service.drain()

        assert service.store.find(delivery.id).status == DeliveryStatus.DELIVERED
        assert len(endpoint.requests_to(OTHER_URL)) == 1
