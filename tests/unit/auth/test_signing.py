"""
Module: test_signing.py
Description: Unit tests for HMAC payload signing.
"""

import hashlib
import hmac

import pytest

from formhooks.auth.signing import (
    SIGNATURE_PREFIX,
    SignatureSigner,
    SigningError,
    generate_webhook_secret
)


class TestSignatureSigner:
    """Test cases for SignatureSigner."""

    def test_sign_is_hmac_sha256(self):
        signer = SignatureSigner()
        payload = b'{"event":"submission.created"}'
        expected = hmac.new(b"secret-key", payload, hashlib.sha256).hexdigest()

        assert signer.sign(payload, "secret-key") == expected

    def test_sign_is_deterministic(self):
        signer = SignatureSigner()
        assert signer.sign("payload", "secret") == signer.sign("payload", "secret")
        assert signer.sign("payload", "secret") == signer.sign(b"payload", "secret")

    def test_changing_input_changes_signature(self):
        signer = SignatureSigner()
        base = signer.sign("payload", "secret")

        assert signer.sign("payload!", "secret") != base
        assert signer.sign("payload", "secret2") != base

    def test_sign_is_not_reversible_encoding(self):
        """The token must not embed the payload or the secret."""
        token = SignatureSigner().sign("payload", "secret")
        assert "secret" not in token
        assert len(token) == 64

    @pytest.mark.parametrize("secret", ["", None])
    def test_missing_secret_is_signing_error(self, secret):
        with pytest.raises(SigningError):
            SignatureSigner().sign("payload", secret)

    def test_header_value(self):
        signer = SignatureSigner()
        value = signer.header_value("payload", "secret")
        assert value == SIGNATURE_PREFIX + signer.sign("payload", "secret")

    def test_verify(self):
        signer = SignatureSigner()
        header = signer.header_value(b"body", "secret")

        assert signer.verify(b"body", "secret", header)
        assert signer.verify(b"body", "secret", header[len(SIGNATURE_PREFIX):])
        assert not signer.verify(b"tampered", "secret", header)
        assert not signer.verify(b"body", "other", header)
        assert not signer.verify(b"body", "secret", "")
        assert not signer.verify(b"body", "", header)


class TestGenerateSecret:
    """Test cases for secret generation."""

    def test_secret_format(self):
        secret = generate_webhook_secret()
        assert secret.startswith("whsec_")
        assert len(secret) >= 40

    def test_secrets_are_unique(self):
        assert len({generate_webhook_secret() for _ in range(50)}) == 50

    def test_signer_exposes_generator(self):
        assert SignatureSigner.generate_secret().startswith("whsec_")
