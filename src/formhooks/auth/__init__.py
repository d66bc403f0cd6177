"""
Module: auth
Description: Package initialization for delivery authentication.

This package contains the signing components used to authenticate
outbound webhook deliveries:
- signing: HMAC-SHA256 signer, secret generation, verification helper
"""

from .signing import SignatureSigner, SigningError, generate_webhook_secret

__all__ = ["SignatureSigner", "SigningError", "generate_webhook_secret"]
