"""
Webhook authenticity checks.

QuickBooks signs the raw body with HMAC-SHA256 keyed by the app's verifier
token and sends the base64 digest in `intuit-signature`. HouseCall Pro sends
a hex HMAC-SHA256 digest in `x-housecall-signature`.

When no secret is configured the check is skipped (the relay in front of the
CRM does not sign its requests).
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
from typing import Optional

from domain.errors import InvalidSignature

logger = logging.getLogger(__name__)

INTUIT_SIGNATURE_HEADER = "intuit-signature"
HOUSECALL_SIGNATURE_HEADER = "x-housecall-signature"


def _digest(body: bytes, secret: str) -> bytes:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()


def verify_intuit_signature(body: bytes, signature: Optional[str], verifier_token: Optional[str]) -> None:
    """
    Raises:
        InvalidSignature: a verifier token is configured and the signature is
            missing or does not match.
    """

    if not verifier_token:
        return
    if not signature:
        raise InvalidSignature("Missing intuit-signature header")

    expected = base64.b64encode(_digest(body, verifier_token)).decode("ascii")
    if not hmac.compare_digest(expected, signature.strip()):
        logger.warning("Invalid QuickBooks webhook signature")
        raise InvalidSignature("Invalid QuickBooks webhook signature")


def verify_housecall_signature(body: bytes, signature: Optional[str], secret: Optional[str]) -> None:
    """
    Raises:
        InvalidSignature: a secret is configured and a signature was sent that
            does not match. Unsigned requests pass, since the CRM relay
            does not sign.
    """

    if not secret or not signature:
        return

    expected = _digest(body, secret).hex()
    if not hmac.compare_digest(expected, signature.strip().lower()):
        logger.warning("Invalid HouseCall Pro webhook signature")
        raise InvalidSignature("Invalid HouseCall Pro webhook signature")


__all__ = [
    "INTUIT_SIGNATURE_HEADER",
    "HOUSECALL_SIGNATURE_HEADER",
    "verify_intuit_signature",
    "verify_housecall_signature",
]
