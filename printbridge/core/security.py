"""
Shared-secret and webhook signature checks.

Printify signs webhook bodies with HMAC-SHA256 (hex digest). Job trigger
endpoints are protected by a plain shared secret.
"""
import hashlib
import hmac
import logging
from typing import Optional

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


def compute_signature(secret: str, body: bytes) -> str:
    """HMAC-SHA256 hex digest of the raw request body."""
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def secret_matches(provided: Optional[str], expected: Optional[str]) -> bool:
    """Constant-time comparison; an empty provided value never matches."""
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


def verify_webhook_signature(
    body: bytes,
    secret: Optional[str],
    signature: Optional[str],
    allow_unsigned: bool = True,
) -> bool:
    """
    Verify a Printify webhook signature.

    Args:
        body: Raw request body bytes
        secret: Configured webhook secret (None when not configured)
        signature: Signature header value, optionally prefixed with "sha256="
        allow_unsigned: Accept requests when no secret is configured

    Returns:
        True if the request should be accepted
    """
    if not secret:
        if allow_unsigned:
            logger.warning("Printify webhook secret not configured, accepting unsigned request")
            return True
        logger.warning("Printify webhook secret not configured and unsigned webhooks are disabled")
        return False

    if not signature:
        logger.warning("Printify webhook missing signature")
        return False

    provided = signature.strip()
    if provided.lower().startswith(SIGNATURE_PREFIX):
        provided = provided[len(SIGNATURE_PREFIX):]

    expected = compute_signature(secret, body)
    is_valid = hmac.compare_digest(expected.encode(), provided.lower().encode())

    if not is_valid:
        logger.warning("Printify webhook signature mismatch")

    return is_valid
