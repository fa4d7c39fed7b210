"""
Webhook Security Module

Signature verification for payment gateway webhooks:
- Constant-time signature comparison
- Timestamp validation (rejects replayed deliveries)
- Verification runs on the raw request body, before any JSON parsing
"""

import hashlib
import hmac
import logging
import time
from typing import Optional

from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)

# Maximum age of webhook in seconds (5 minutes)
MAX_WEBHOOK_AGE_SECONDS = 300


class WebhookSignatureError(Exception):
    """Raised when webhook signature verification fails"""

    pass


def constant_time_compare(a: str, b: str) -> bool:
    """
    Compare two strings in constant time to prevent timing attacks.
    Uses hmac.compare_digest which is designed for this purpose.
    """
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def compute_hmac_sha256(secret: str, payload: bytes) -> str:
    """Compute HMAC-SHA256 signature of payload"""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_timestamp(
    timestamp: Optional[str], max_age: int = MAX_WEBHOOK_AGE_SECONDS, now: Optional[int] = None
) -> bool:
    """
    Verify webhook timestamp is within acceptable range.

    Args:
        timestamp: Unix timestamp as string
        max_age: Maximum age in seconds
        now: Current unix time (defaults to the system clock)

    Returns:
        True if timestamp is valid, False otherwise
    """
    if not timestamp:
        return False

    try:
        webhook_time = int(timestamp)
        current_time = int(time.time()) if now is None else now
        age = abs(current_time - webhook_time)

        if age > max_age:
            logger.warning(f"🚫 Webhook timestamp too old: {age}s (max: {max_age}s)")
            return False

        return True
    except (ValueError, TypeError):
        logger.warning(f"🚫 Invalid webhook timestamp format: {timestamp}")
        return False


def parse_signature_header(header: str) -> tuple[Optional[str], list[str]]:
    """
    Split a Stripe-Signature header ("t=1700000000,v1=abc,v1=def") into the
    timestamp and the list of v1 signatures.
    """
    timestamp = None
    signatures = []
    for part in header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            timestamp = value
        elif key == "v1" and value:
            signatures.append(value)
    return timestamp, signatures


def build_signature_header(payload: bytes, secret: str, timestamp: int) -> str:
    """Produce a Stripe-Signature header for a payload (used by tests and local tooling)"""
    signed_payload = f"{timestamp}.".encode("utf-8") + payload
    return f"t={timestamp},v1={compute_hmac_sha256(secret, signed_payload)}"


def verify_stripe_signature(
    payload: bytes,
    header: Optional[str],
    secret: str,
    tolerance: int = MAX_WEBHOOK_AGE_SECONDS,
    now: Optional[int] = None,
) -> None:
    """
    Verify a Stripe-style signature: HMAC-SHA256 over "{t}.{raw body}".

    Raises:
        WebhookSignatureError: on a missing, stale or mismatching signature
    """
    if not secret:
        raise WebhookSignatureError("Webhook secret not configured")
    if not header:
        raise WebhookSignatureError("Missing signature header")

    timestamp, signatures = parse_signature_header(header)
    if not timestamp or not signatures:
        raise WebhookSignatureError("Malformed signature header")

    if not verify_timestamp(timestamp, tolerance, now):
        raise WebhookSignatureError("Webhook timestamp outside tolerance")

    expected = compute_hmac_sha256(secret, f"{timestamp}.".encode("utf-8") + payload)
    if not any(constant_time_compare(expected, candidate) for candidate in signatures):
        raise WebhookSignatureError("Signature mismatch")


async def verify_stripe_webhook(request: Request, secret: str) -> bytes:
    """
    Verify a gateway webhook request and return its raw body.

    Raises:
        HTTPException: 401 when verification fails
    """
    # Get raw body BEFORE any parsing - this is critical
    raw_body = await request.body()
    header = request.headers.get("stripe-signature")

    try:
        verify_stripe_signature(raw_body, header, secret)
    except WebhookSignatureError as e:
        logger.error(f"❌ Payment webhook rejected: {e}")
        raise HTTPException(status_code=401, detail="Invalid webhook signature") from e

    logger.info(f"✅ Payment webhook signature verified ({len(raw_body)} bytes)")
    return raw_body
