"""Webhook signature verification.

The recording provider signs the raw request body with HMAC-SHA256 using a
shared secret. The signature header carries the hex digest, optionally
prefixed with ``sha256=``.
"""

from __future__ import annotations

import hashlib
import hmac

from src.clientops.core.errors import ValidationFailure

_PREFIX = "sha256="


def compute_signature(raw_body: bytes, secret: str) -> str:
    """Return the hex HMAC-SHA256 digest of ``raw_body``."""
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify_webhook_signature(raw_body: bytes, header_value: str | None, secret: str) -> None:
    """Check the signature header against the raw body.

    Verification is skipped when no secret is configured.

    Raises:
        ValidationFailure: If a secret is configured and the header is
            missing or does not match.
    """
    if not secret:
        return
    if not header_value:
        raise ValidationFailure("missing webhook signature")

    provided = header_value.strip()
    if provided.lower().startswith(_PREFIX):
        provided = provided[len(_PREFIX):]

    expected = compute_signature(raw_body, secret)
    if not hmac.compare_digest(expected, provided.lower()):
        raise ValidationFailure("webhook signature mismatch")
