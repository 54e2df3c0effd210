"""
Webhook signature validation.

Header format: ``t=<unix_seconds>,v0=<hex(hmac_sha256(secret, "{t}.{raw_body}"))>``.
The digest covers the raw request bytes, so callers must pass the body
exactly as received, before any JSON parsing.
"""

import hashlib
import hmac
import time

from callkeeper.shared.logging import get_logger

logger = get_logger(__name__)

SIGNATURE_HEADER = "X-Signature"
PROVIDER_SIGNATURE_HEADER = "ElevenLabs-Signature"
DEFAULT_TOLERANCE_SECONDS = 30 * 60


def parse_signature_header(header: str) -> tuple[int, str] | None:
    """Split a signature header into (timestamp, hex digest)."""
    timestamp: int | None = None
    digest: str | None = None
    for part in header.split(","):
        key, sep, value = part.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                return None
        elif key == "v0":
            digest = value.strip().lower()
    if timestamp is None or not digest:
        return None
    return timestamp, digest


def compute_signature(secret: str, timestamp: int, raw_body: bytes) -> str:
    """Hex HMAC-SHA256 of ``{timestamp}.{raw_body}``."""
    message = f"{timestamp}.".encode("utf-8") + raw_body
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def build_signature_header(secret: str, raw_body: bytes, timestamp: int | None = None) -> str:
    """Build a header value the receiver accepts."""
    ts = int(time.time()) if timestamp is None else timestamp
    return f"t={ts},v0={compute_signature(secret, ts, raw_body)}"


def verify_signature(
    raw_body: bytes,
    header: str | None,
    secret: str,
    *,
    tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
    now: float | None = None,
) -> bool:
    """Validate a webhook signature header against the raw body.

    Returns:
        True only if the header is well formed, its timestamp is inside the
        replay window and the digest matches.
    """
    if not secret:
        logger.error("Webhook secret is not configured; rejecting webhook")
        return False
    if not header:
        logger.warning("Missing webhook signature header")
        return False

    parsed = parse_signature_header(header)
    if parsed is None:
        logger.warning("Invalid webhook signature format")
        return False
    timestamp, provided = parsed

    current = time.time() if now is None else now
    if abs(current - timestamp) > tolerance_seconds:
        logger.warning(
            "Webhook signature timestamp outside replay window",
            extra={"signature_timestamp": timestamp, "tolerance_seconds": tolerance_seconds},
        )
        return False

    expected = compute_signature(secret, timestamp, raw_body)
    if not hmac.compare_digest(expected.encode("ascii"), provided.encode("utf-8")):
        logger.warning("Webhook signature digest mismatch")
        return False
    return True
