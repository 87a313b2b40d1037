"""
Tests for `services/webhook_security.py`.
"""

from __future__ import annotations

import base64
import hashlib
import hmac

import pytest

from domain.errors import InvalidSignature
from services.webhook_security import verify_housecall_signature, verify_intuit_signature

BODY = b'{"eventNotifications": []}'


def _intuit_signature(body: bytes, token: str) -> str:
    return base64.b64encode(hmac.new(token.encode(), body, hashlib.sha256).digest()).decode()


def test_intuit_signature_accepted() -> None:
    verify_intuit_signature(BODY, _intuit_signature(BODY, "verifier"), "verifier")


@pytest.mark.parametrize("signature", [None, "", "bm90LXRoZS1zaWduYXR1cmU="])
def test_intuit_signature_rejected(signature) -> None:
    with pytest.raises(InvalidSignature):
        verify_intuit_signature(BODY, signature, "verifier")


def test_intuit_signature_over_tampered_body_rejected() -> None:
    signature = _intuit_signature(BODY, "verifier")

    with pytest.raises(InvalidSignature):
        verify_intuit_signature(BODY + b" ", signature, "verifier")


def test_intuit_check_skipped_without_verifier_token() -> None:
    verify_intuit_signature(BODY, None, None)


def test_housecall_signature() -> None:
    digest = hmac.new(b"secret", BODY, hashlib.sha256).hexdigest()

    verify_housecall_signature(BODY, digest.upper(), "secret")
    verify_housecall_signature(BODY, None, "secret")
    with pytest.raises(InvalidSignature):
        verify_housecall_signature(BODY, "00" * 32, "secret")
