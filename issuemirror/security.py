"""Webhook signature verification.

GitHub signs each delivery with HMAC-SHA256 over the raw request body and
sends ``sha256=<hex digest>`` in the ``X-Hub-Signature-256`` header.
"""

from __future__ import annotations

import hashlib
import hmac
import logging

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-hub-signature-256"
EVENT_HEADER = "x-github-event"
SIGNATURE_PREFIX = "sha256="


def compute_signature(secret: str, payload: bytes) -> str:
    """Signature GitHub would send for ``payload`` signed with ``secret``."""
    digest = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return SIGNATURE_PREFIX + digest


def verify_signature(secret: str | None, payload: bytes, signature_header: str | None) -> bool:
    """Constant-time check of a webhook signature.

    Fails closed: without a configured secret every delivery is rejected.
    """
    if not secret:
        logger.error("Missing GITHUB_WEBHOOK_SECRET; rejecting webhook delivery")
        return False

    if not signature_header:
        logger.warning("Missing X-Hub-Signature-256 header")
        return False

    expected = compute_signature(secret, payload)
    # Compare bytes so non-ASCII header values are rejected instead of raising.
    if not hmac.compare_digest(signature_header.encode("utf-8"), expected.encode("utf-8")):
        logger.warning("Invalid webhook signature")
        return False

    return True
