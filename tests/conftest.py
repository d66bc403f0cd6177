"""
Module: conftest.py
Description: Shared pytest fixtures for webhook service tests.

Provides test settings, scripted HTTP endpoints built on
httpx.MockTransport, a recording sleep for backoff assertions and
factories for the registry, delivery log and delivery service.
"""

import asyncio
from typing import Dict, List, Optional

import httpx
import pytest
from pydantic import Field
from pydantic_settings import SettingsConfigDict

from formhooks.config.settings import Settings
from formhooks.delivery.retry import RetryScheduler
from formhooks.delivery.sender import DeliverySender
from formhooks.delivery.service import WebhookDeliveryService
from formhooks.models.webhook import RetryPolicy, WebhookConfig, WebhookEvent
from formhooks.storage.deliveries import DeliveryStore
from formhooks.storage.kv import InMemoryKeyValueStore
from formhooks.storage.registry import WebhookRegistry

HOOK_URL = "https://example.test/hook"
OTHER_URL = "https://other.test/hook"
CONNECT_ERROR = "connect-error"
TIMEOUT = "timeout"


class TestSettings(Settings):
    """Test settings that don't read environment files."""

    model_config = SettingsConfigDict(
        env_file=None,  # Disable .env file loading for tests
        case_sensitive=False,
        extra="ignore"
    )

    app_name: str = Field(default="Form Webhooks API Test")
    app_version: str = Field(default="0.1.0-test")
    log_level: str = Field(default="DEBUG")
    stage: str = Field(default="test")


class ScriptedEndpoint:
    """
    httpx handler answering from per-URL scripts.

    Each script item is a status code or one of CONNECT_ERROR / TIMEOUT.
    The last item repeats once the script is exhausted; unscripted URLs
    answer 200.
    """

    def __init__(self):
        self.scripts: Dict[str, List] = {}
        self.requests: List[httpx.Request] = []

    def script(self, url: str, *items) -> None:
        self.scripts[url] = list(items)

    def requests_to(self, url: str) -> List[httpx.Request]:
        return [r for r in self.requests if str(r.url) == url]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.scripts.get(str(request.url))
        if not queue:
            return httpx.Response(200, json={"received": True})

        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if item == CONNECT_ERROR:
            raise httpx.ConnectError("Connection refused", request=request)
        if item == TIMEOUT:
            raise httpx.ReadTimeout("Read timed out", request=request)
        body = {"received": True} if 200 <= item < 300 else {"error": "boom"}
        return httpx.Response(item, json=body)


class RecordingSleep:
    """Backoff sleep that records delays (seconds) without waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)


class BlockingSleep:
    """Backoff sleep that parks the chain until cancelled."""

    def __init__(self):
        self.entered = asyncio.Event()
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        self.entered.set()
        await asyncio.Event().wait()


@pytest.fixture
def test_settings():
    """Provide test configuration settings."""
    return TestSettings()


@pytest.fixture
def endpoint():
    return ScriptedEndpoint()


@pytest.fixture
def http_client(endpoint):
    """AsyncClient routed to the scripted endpoint."""
    return httpx.AsyncClient(transport=httpx.MockTransport(endpoint))


@pytest.fixture
def sender(http_client):
    return DeliverySender(client=http_client)


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def kv_store():
    return InMemoryKeyValueStore()


@pytest.fixture
def registry(kv_store):
    return WebhookRegistry(kv_store)


@pytest.fixture
def delivery_store():
    return DeliveryStore()


@pytest.fixture
def make_service(registry, delivery_store, http_client):
    """Factory for a delivery service with injectable sleep and signing mode."""

    def factory(sleep=None, require_signature: bool = False) -> WebhookDeliveryService:
        sender = DeliverySender(client=http_client, require_signature=require_signature)
        scheduler = RetryScheduler(sender, delivery_store, sleep=sleep or RecordingSleep())
        return WebhookDeliveryService(registry, delivery_store, sender, scheduler=scheduler)

    return factory


@pytest.fixture
def sample_config():
    """Active webhook subscribed to submission.created."""
    return WebhookConfig(
        form_id="form_123",
        url=HOOK_URL,
        events=[WebhookEvent.SUBMISSION_CREATED],
        secret="whsec_test_secret_value",
        retry_policy=RetryPolicy(
            max_retries=3,
            backoff_multiplier=2,
            initial_delay_ms=1000,
            max_delay_ms=60000
        )
    )


def make_config(
    url: str = HOOK_URL,
    form_id: str = "form_123",
    events: Optional[List[WebhookEvent]] = None,
    **kwargs
) -> WebhookConfig:
    return WebhookConfig(
        form_id=form_id,
        url=url,
        events=events if events is not None else [WebhookEvent.SUBMISSION_CREATED],
        **kwargs
    )
