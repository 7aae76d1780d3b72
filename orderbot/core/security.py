"""
core/security.py
----------------
Webhook signature verification.

Design decisions:
  - The platform signs the raw request body with HMAC-SHA256 using the
    channel secret and sends the base64 digest in `X-Line-Signature`.
  - Comparison is constant-time (hmac.compare_digest).
  - With no channel secret configured (local development) verification is
    skipped and a warning is logged on every call.
"""

import base64
import hashlib
import hmac
from typing import Optional

from orderbot.core.config import settings
from orderbot.core.logging import get_logger

logger = get_logger(__name__)


def compute_signature(body: bytes, channel_secret: str) -> str:
    """Return the base64 HMAC-SHA256 digest of `body` under `channel_secret`."""
    digest = hmac.new(channel_secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(
    body: bytes,
    signature: Optional[str],
    channel_secret: Optional[str] = None,
) -> bool:
    """
    Check a webhook body against its signature header.

    Args:
        body: Raw request body, exactly as received.
        signature: Value of the X-Line-Signature header (may be missing).
        channel_secret: Overrides settings.LINE_CHANNEL_SECRET when given.

    Returns:
        True when the signature matches or verification is disabled.
    """
    secret = settings.LINE_CHANNEL_SECRET if channel_secret is None else channel_secret
    if not secret:
        logger.warning("LINE_CHANNEL_SECRET not set, skipping signature check")
        return True
    if not signature:
        return False
    expected = compute_signature(body, secret)
    return hmac.compare_digest(expected, signature)
