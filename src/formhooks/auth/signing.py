"""
Module: signing.py
Description: Webhook payload signing with HMAC-SHA256.

Computes the authentication tag sent in the X-Webhook-Signature header
over the exact bytes transmitted, so receivers can verify both the
origin and the integrity of each delivery.

Key Components:
- SignatureSigner: sign(), header_value() and verify() helpers
- generate_webhook_secret(): High-entropy secret for new webhooks
- SigningError: Raised for missing or unusable secret material

Dependencies: hmac, hashlib, secrets, typing
"""

import hashlib
import hmac
import secrets
from typing import Union

from formhooks.utils.logger import get_logger

logger = get_logger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"
SIGNATURE_PREFIX = "sha256="
SECRET_PREFIX = "whsec_"
SECRET_BYTES = 32  # 256-bit secrets


class SigningError(Exception):
    """Secret material is missing or unusable. Not retryable."""


def generate_webhook_secret() -> str:
    """
    Generate a fresh signing secret.

    Returns:
        URL-safe secret string prefixed with ``whsec_``

    Example:
        >>> secret = generate_webhook_secret()
        >>> secret.startswith("whsec_")
        True
    """
    return SECRET_PREFIX + secrets.token_urlsafe(SECRET_BYTES)


class SignatureSigner:
    """
    Keyed MAC over serialized webhook payloads.

    sign() is a pure function of its inputs: the same payload and secret
    always produce the same token.
    """

    def __init__(self, digestmod=hashlib.sha256):
        self.digestmod = digestmod

    def sign(self, payload: Union[bytes, str], secret: str) -> str:
        """
        Compute the hex HMAC of ``payload`` keyed with ``secret``.

        Args:
            payload: Serialized payload, exactly as transmitted
            secret: Per-webhook shared secret

        Returns:
            Lowercase hex digest

        Raises:
            SigningError: If the secret is empty or not a string
        """
        if not secret or not isinstance(secret, str):
            raise SigningError("webhook secret must be a non-empty string")

        if isinstance(payload, str):
            payload = payload.encode("utf-8")

        return hmac.new(secret.encode("utf-8"), payload, self.digestmod).hexdigest()

    def header_value(self, payload: Union[bytes, str], secret: str) -> str:
        """Signature formatted for the X-Webhook-Signature header."""
        return SIGNATURE_PREFIX + self.sign(payload, secret)

    def verify(self, payload: Union[bytes, str], secret: str, signature: str) -> bool:
        """
        Check a received header value against the payload.

        Accepts the value with or without the ``sha256=`` prefix and
        compares in constant time.
        """
        if not signature:
            return False
        if signature.startswith(SIGNATURE_PREFIX):
            signature = signature[len(SIGNATURE_PREFIX):]

        try:
            expected = self.sign(payload, secret)
        except SigningError:
            logger.warning("Signature verification attempted without a secret")
            return False

        return hmac.compare_digest(expected, signature)

    generate_secret = staticmethod(generate_webhook_secret)
