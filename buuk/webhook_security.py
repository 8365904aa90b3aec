"""
Webhook Security Module

Signature verification helpers shared by the payment provider adapters:
- Constant-time signature comparison
- Timestamp validation against replayed deliveries
- Stripe-Signature header parsing and verification
"""

import hashlib
import hmac
import logging
import time
from typing import Optional

from .config import STRIPE_WEBHOOK_TOLERANCE_SECONDS

logger = logging.getLogger(__name__)

# Maximum age of webhook in seconds (5 minutes)
MAX_WEBHOOK_AGE_SECONDS = STRIPE_WEBHOOK_TOLERANCE_SECONDS


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
    timestamp: Optional[str],
    max_age: int = MAX_WEBHOOK_AGE_SECONDS,
    now: Optional[float] = None,
) -> bool:
    """
    Verify webhook timestamp is within acceptable range.
    Prevents replay attacks by rejecting old webhooks.

    Args:
        timestamp: Unix timestamp as string
        max_age: Maximum age in seconds
        now: Current unix time (defaults to time.time())

    Returns:
        True if timestamp is valid, False otherwise
    """
    if not timestamp:
        return False

    try:
        webhook_time = int(timestamp)
        current_time = int(now if now is not None else time.time())
        age = abs(current_time - webhook_time)

        if age > max_age:
            logger.warning(f"🚫 Webhook timestamp too old: {age}s (max: {max_age}s)")
            return False

        return True
    except (ValueError, TypeError):
        logger.warning(f"🚫 Invalid webhook timestamp format: {timestamp}")
        return False


def parse_stripe_signature_header(signature_header: str) -> tuple[Optional[str], list[str]]:
    """
    Split a Stripe-Signature header ("t=<timestamp>,v1=<sig>[,v1=<sig>...]").

    Stripe sends one v1 entry per active endpoint secret while a secret is being
    rolled, so every v1 value is returned.
    """
    timestamp = None
    signatures = []
    for item in signature_header.split(","):
        key, sep, value = item.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            timestamp = value
        elif key == "v1":
            signatures.append(value)
    return timestamp, signatures


def verify_stripe_signature(
    raw_body: bytes,
    signature_header: Optional[str],
    secret: Optional[str],
    tolerance: int = MAX_WEBHOOK_AGE_SECONDS,
    now: Optional[float] = None,
) -> None:
    """
    Verify a Stripe webhook signature.

    Stripe signs "<timestamp>.<raw body>" with HMAC-SHA256 using the endpoint
    secret. Raises WebhookSignatureError on any mismatch.
    """
    if not secret:
        logger.error("❌ STRIPE_WEBHOOK_SECRET not configured")
        raise WebhookSignatureError("Webhook secret not configured")

    if not signature_header:
        logger.warning("🚫 Stripe webhook missing signature header")
        raise WebhookSignatureError("Missing webhook signature")

    timestamp, signatures = parse_stripe_signature_header(signature_header)
    if not timestamp or not signatures:
        logger.warning("🚫 Stripe webhook invalid signature format")
        raise WebhookSignatureError("Invalid signature format")

    if not verify_timestamp(timestamp, max_age=tolerance, now=now):
        raise WebhookSignatureError("Webhook timestamp expired")

    signed_payload = timestamp.encode("utf-8") + b"." + raw_body
    expected_signature = compute_hmac_sha256(secret, signed_payload)

    if not any(constant_time_compare(expected_signature, sig) for sig in signatures):
        logger.warning("🚫 Stripe webhook signature mismatch")
        raise WebhookSignatureError("Invalid webhook signature")

    logger.debug("✅ Stripe webhook signature verified")


def create_stripe_signature(secret: str, payload: bytes, timestamp: Optional[int] = None) -> str:
    """
    Create a Stripe-Signature header value for a payload (tests and local replay).
    """
    if timestamp is None:
        timestamp = int(time.time())
    signed_payload = str(timestamp).encode("utf-8") + b"." + payload
    sig = compute_hmac_sha256(secret, signed_payload)
    return f"t={timestamp},v1={sig}"
