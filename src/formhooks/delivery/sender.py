"""
Module: sender.py
Description: Single-attempt webhook delivery over HTTP.

Performs exactly one signed HTTP POST of a webhook envelope and
classifies the outcome. Never raises for transport problems or
non-2xx responses; status bookkeeping is left to the caller.

Key Components:
- DeliverySender: Builds headers, signs the body and posts it
- DeliverySuccess / DeliveryFailure: Classified attempt outcomes
"""

from typing import Dict, Optional, Union

import httpx
from pydantic import BaseModel

from formhooks.auth.signing import SIGNATURE_HEADER, SignatureSigner, SigningError
from formhooks.models.delivery import WebhookPayload
from formhooks.models.webhook import WebhookConfig
from formhooks.utils.logger import get_logger

logger = get_logger(__name__)

USER_AGENT = "formhooks/0.1"


class DeliverySuccess(BaseModel):
    """2xx response from the subscriber."""

    http_status: int
    response_body: Optional[str] = None

    @property
    def ok(self) -> bool:
        return True


class DeliveryFailure(BaseModel):
    """Transport error, timeout or non-2xx response."""

    error: str
    http_status: Optional[int] = None
    response_body: Optional[str] = None

    @property
    def ok(self) -> bool:
        return False


DeliveryOutcome = Union[DeliverySuccess, DeliveryFailure]


class DeliverySender:
    """
    HTTP client for delivering webhook envelopes.

    A single httpx.AsyncClient is shared by all delivery chains so
    connections are pooled across concurrent deliveries.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: int = 10,
        signer: Optional[SignatureSigner] = None,
        require_signature: bool = False,
        max_response_chars: int = 2000
    ):
        """
        Initialize delivery sender.

        Args:
            client: Shared HTTP client; one is created when omitted
            timeout_seconds: HTTP timeout for owned clients
            signer: Signature implementation, HMAC-SHA256 by default
            require_signature: Refuse to send for webhooks without a secret
            max_response_chars: Truncation limit for recorded bodies
        """
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds, connect=timeout_seconds)
        )
        self.signer = signer or SignatureSigner()
        self.require_signature = require_signature
        self.max_response_chars = max_response_chars

        logger.info(
            "Delivery sender initialized",
            timeout_seconds=timeout_seconds,
            require_signature=require_signature
        )

    def check_signing(self, config: WebhookConfig) -> None:
        """
        Raise SigningError when the webhook cannot be signed.

        Raises:
            SigningError: If signatures are required and no secret is set
        """
        if self.require_signature and not config.secret:
            raise SigningError(f"webhook {config.id} has no signing secret")

    def build_headers(self, config: WebhookConfig, body: bytes) -> Dict[str, str]:
        """
        Build request headers for one delivery.

        Static headers from the webhook config are merged last and replace
        computed headers with the same name, compared case-insensitively.
        """
        self.check_signing(config)

        headers = {
            'Content-Type': 'application/json',
            'User-Agent': USER_AGENT,
        }
        if config.secret:
            headers[SIGNATURE_HEADER] = self.signer.header_value(body, config.secret)

        for name, value in (config.headers or {}).items():
            for existing in [k for k in headers if k.lower() == name.lower()]:
                logger.debug(
                    "Webhook header overrides computed header",
                    webhook_id=config.id,
                    header=existing
                )
                del headers[existing]
            headers[name] = value

        return headers

    def _truncate(self, text: Optional[str]) -> Optional[str]:
        if text is None:
            return None
        return text[:self.max_response_chars]

    async def send(self, config: WebhookConfig, payload: WebhookPayload) -> DeliveryOutcome:
        """
        POST the envelope to the webhook URL once.

        Args:
            config: Target webhook
            payload: Envelope to serialize and send

        Returns:
            DeliverySuccess for any 2xx status, DeliveryFailure otherwise

        Raises:
            SigningError: If the webhook cannot be signed (not retryable)
        """
        body = payload.serialize()
        headers = self.build_headers(config, body)

        logger.debug(
            "Attempting webhook delivery",
            webhook_id=config.id,
            envelope_id=payload.id,
            url=config.url
        )

        try:
            request = self.client.build_request("POST", config.url, content=body, headers=headers)
        except (httpx.InvalidURL, ValueError, TypeError) as e:
            # UnicodeEncodeError from non-ASCII header values is a ValueError
            logger.warning(
                "Webhook request could not be built",
                webhook_id=config.id,
                error=str(e),
                error_type=type(e).__name__
            )
            return DeliveryFailure(error=f"Invalid request: {e}")

        try:
            response = await self.client.send(request)

        except httpx.TimeoutException as e:
            logger.warning(
                "Webhook delivery timeout",
                webhook_id=config.id,
                url=config.url
            )
            return DeliveryFailure(error=f"Request timed out: {e}" if str(e) else "Request timed out")

        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning(
                "Webhook delivery network error",
                webhook_id=config.id,
                error=str(e),
                error_type=type(e).__name__
            )
            return DeliveryFailure(error=str(e) or type(e).__name__)

        if response.is_success:
            logger.info(
                "Webhook delivered successfully",
                webhook_id=config.id,
                envelope_id=payload.id,
                status_code=response.status_code
            )
            return DeliverySuccess(
                http_status=response.status_code,
                response_body=self._truncate(response.text)
            )

        logger.warning(
            "Webhook delivery HTTP error",
            webhook_id=config.id,
            status_code=response.status_code,
            response=response.text[:500]  # Truncate large responses
        )
        return DeliveryFailure(
            error=f"HTTP {response.status_code} {response.reason_phrase}".strip(),
            http_status=response.status_code,
            response_body=self._truncate(response.text)
        )

    async def aclose(self) -> None:
        """Close the HTTP client if this sender created it."""
        if self._owns_client:
            await self.client.aclose()
