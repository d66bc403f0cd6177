"""
Module: test_sender.py
Description: Unit tests for single-attempt webhook delivery.

Uses pytest-httpx to mock the subscriber endpoint.
"""

import json

import httpx
import pytest

from formhooks.auth.signing import SIGNATURE_HEADER, SignatureSigner, SigningError
from formhooks.delivery.payload import PayloadBuilder
from formhooks.delivery.sender import DeliveryFailure, DeliverySender, DeliverySuccess
from formhooks.models.webhook import WebhookEvent

from conftest import HOOK_URL, make_config


@pytest.fixture
def payload():
    return PayloadBuilder().build("form_123", WebhookEvent.SUBMISSION_CREATED, {"answer": 42})


class TestDeliverySender:
    """Test cases for DeliverySender.send()."""

    @pytest.mark.asyncio
    async def test_success(self, httpx_mock, payload):
        httpx_mock.add_response(url=HOOK_URL, method="POST", status_code=200, json={"ok": True})
        sender = DeliverySender()

        outcome = await sender.send(make_config(secret="whsec_secret"), payload)
        await sender.aclose()

        assert isinstance(outcome, DeliverySuccess)
        assert outcome.ok
        assert outcome.http_status == 200
        assert json.loads(outcome.response_body) == {"ok": True}

    @pytest.mark.asyncio
    async def test_request_is_signed_over_body(self, httpx_mock, payload):
        httpx_mock.add_response(url=HOOK_URL, status_code=204)
        sender = DeliverySender()

        await sender.send(make_config(secret="whsec_secret"), payload)
        await sender.aclose()

        request = httpx_mock.get_requests()[0]
        assert request.method == "POST"
        assert request.headers["Content-Type"] == "application/json"
        assert request.content == payload.serialize()
        assert request.headers[SIGNATURE_HEADER].startswith("sha256=")
        assert SignatureSigner().verify(request.content, "whsec_secret", request.headers[SIGNATURE_HEADER])

    @pytest.mark.asyncio
    async def test_unsigned_without_secret(self, httpx_mock, payload):
        httpx_mock.add_response(url=HOOK_URL, status_code=200)
        sender = DeliverySender()

        await sender.send(make_config(secret=None), payload)
        await sender.aclose()

        assert SIGNATURE_HEADER not in httpx_mock.get_requests()[0].headers

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [301, 400, 404, 500, 503])
    async def test_non_2xx_is_failure(self, httpx_mock, payload, status_code):
        httpx_mock.add_response(url=HOOK_URL, status_code=status_code, text="nope")
        sender = DeliverySender()

        outcome = await sender.send(make_config(), payload)
        await sender.aclose()

        assert isinstance(outcome, DeliveryFailure)
        assert not outcome.ok
        assert outcome.http_status == status_code
        assert outcome.response_body == "nope"
        assert str(status_code) in outcome.error

    @pytest.mark.asyncio
    async def test_timeout_is_failure(self, httpx_mock, payload):
        httpx_mock.add_exception(httpx.ReadTimeout("Read timed out"))
        sender = DeliverySender()

        outcome = await sender.send(make_config(), payload)
        await sender.aclose()

        assert not outcome.ok
        assert outcome.http_status is None
        assert "timed out" in outcome.error

    @pytest.mark.asyncio
    async def test_connect_error_is_failure(self, httpx_mock, payload):
        httpx_mock.add_exception(httpx.ConnectError("Connection refused"))
        sender = DeliverySender()

        outcome = await sender.send(make_config(), payload)
        await sender.aclose()

        assert not outcome.ok
        assert outcome.error == "Connection refused"

    @pytest.mark.asyncio
    async def test_response_body_truncated(self, httpx_mock, payload):
        httpx_mock.add_response(url=HOOK_URL, status_code=200, text="x" * 50)
        sender = DeliverySender(max_response_chars=10)

        outcome = await sender.send(make_config(), payload)
        await sender.aclose()

        assert outcome.response_body == "x" * 10

    @pytest.mark.asyncio
    async def test_missing_secret_when_required(self, payload):
        sender = DeliverySender(require_signature=True)

        with pytest.raises(SigningError):
            await sender.send(make_config(secret=None), payload)
        await sender.aclose()

    @pytest.mark.asyncio
    async def test_unencodable_header_is_failure(self, sender, endpoint, payload):
        config = make_config(headers={"X-Team": "caf\u00e9"})

        outcome = await sender.send(config, payload)

        assert isinstance(outcome, DeliveryFailure)
        assert outcome.error.startswith("Invalid request")
        assert outcome.http_status is None
        assert endpoint.requests == []


class TestBuildHeaders:
    """Test cases for header construction."""

    def test_config_headers_merged(self):
        sender = DeliverySender(client=httpx.AsyncClient())
        headers = sender.build_headers(
            make_config(secret="whsec_secret", headers={"X-Form-Source": "builder"}),
            b"{}"
        )

        assert headers["Content-Type"] == "application/json"
        assert headers["X-Form-Source"] == "builder"
        assert headers[SIGNATURE_HEADER] == SignatureSigner().header_value(b"{}", "whsec_secret")

    def test_config_headers_override_computed_case_insensitively(self):
        sender = DeliverySender(client=httpx.AsyncClient())
        headers = sender.build_headers(
            make_config(
                secret="whsec_secret",
                headers={"content-type": "application/vnd.form+json", "x-webhook-signature": "static"}
            ),
            b"{}"
        )

        assert "Content-Type" not in headers
        assert headers["content-type"] == "application/vnd.form+json"
        assert SIGNATURE_HEADER not in headers
        assert headers["x-webhook-signature"] == "static"

    def test_check_signing(self):
        sender = DeliverySender(client=httpx.AsyncClient(), require_signature=True)

        sender.check_signing(make_config(secret="whsec_secret"))
        with pytest.raises(SigningError):
            sender.check_signing(make_config(secret=None))
