"""
GitHub webhook signature validation utilities
"""

import hashlib
import hmac
from typing import Optional, Union

import structlog

logger = structlog.get_logger()

SIGNATURE_PREFIX = "sha256="

# Sent by GitHub when a hook is created, before any secret is in play
UNVERIFIED_EVENT_TYPES = frozenset({"ping"})


def requires_signature(event_type: Optional[str]) -> bool:
    """Whether deliveries of this event type must carry a valid signature"""
    return event_type not in UNVERIFIED_EVENT_TYPES


def validate_github_webhook(payload: bytes, signature: Optional[str],
                            secret: Union[str, bytes]) -> bool:
    """
    Validate GitHub webhook signature

    Args:
        payload: Raw request body as bytes, exactly as received
        signature: X-Hub-Signature-256 header value
        secret: Webhook secret configured in GitHub

    Returns:
        bool: True if signature is valid, False otherwise. Never raises.
    """
    if not signature:
        logger.warning("Missing webhook signature")
        return False

    if not signature.startswith(SIGNATURE_PREFIX):
        logger.warning("Invalid signature format")
        return False

    if isinstance(secret, str):
        secret = secret.encode("utf-8")

    # Extract the signature hash
    try:
        signature_hash = signature[len(SIGNATURE_PREFIX):].encode("ascii")
    except UnicodeEncodeError:
        logger.warning("Invalid signature encoding")
        return False

    # Compute expected signature
    expected_signature = hmac.new(secret, payload, hashlib.sha256).hexdigest().encode("ascii")

    # Use constant-time comparison to prevent timing attacks; unequal
    # lengths simply compare as False
    is_valid = hmac.compare_digest(signature_hash, expected_signature)

    if not is_valid:
        logger.warning(
            "Invalid webhook signature",
            expected_prefix=expected_signature[:8].decode("ascii"),
            received_prefix=signature_hash[:8].decode("ascii", errors="replace"),
        )

    return is_valid


def verify_delivery(event_type: Optional[str], payload: bytes, signature: Optional[str],
                    secret: Union[str, bytes]) -> bool:
    """Signature check with the ping exemption applied"""
    if not requires_signature(event_type):
        return True
    return validate_github_webhook(payload, signature, secret)
