"""HMAC verification for inbound gateway webhooks.

Every check here returns ``False`` instead of raising: a malformed header, a
non-hex digest, a missing secret or a stale timestamp all fail closed. Digests
are compared with :func:`hmac.compare_digest`.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import string
import time

logger = logging.getLogger(__name__)

DEFAULT_TIMESTAMP_TOLERANCE_SECONDS = 300
GENERIC_SIGNATURE_PREFIX = "sha256="

_HEX_DIGITS = frozenset(string.hexdigits)


def _to_bytes(value: bytes | str) -> bytes:
    if isinstance(value, bytes):
        return value
    return value.encode("utf-8")


def _hmac_hex(secret: str, message: bytes, digestmod) -> str:
    return hmac.new(secret.encode("utf-8"), message, digestmod).hexdigest()


def is_hex_digest(value: str | None) -> bool:
    return bool(value) and all(char in _HEX_DIGITS for char in value)  # type: ignore[union-attr]


def constant_time_equals(expected: str, provided: str) -> bool:
    return hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))


def _within_tolerance(timestamp: int, tolerance: int, now: float | None) -> bool:
    current = time.time() if now is None else now
    return abs(current - timestamp) <= tolerance


def parse_stripe_signature_header(header: str | None) -> tuple[int, list[str]] | None:
    """Split ``t=<unix>,v1=<hex>[,v1=<hex>...]`` into its timestamp and v1 digests."""
    if not header:
        return None

    timestamp: int | None = None
    signatures: list[str] = []
    for element in header.split(","):
        key, separator, value = element.strip().partition("=")
        if not separator or not value:
            return None
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                return None
        elif key == "v1":
            signatures.append(value)

    if timestamp is None or not signatures:
        return None
    return timestamp, signatures


def verify_stripe_signature(
    raw_body: bytes | str,
    signature_header: str | None,
    secret: str | None,
    *,
    tolerance: int = DEFAULT_TIMESTAMP_TOLERANCE_SECONDS,
    now: float | None = None,
) -> bool:
    if not secret:
        return False

    parsed = parse_stripe_signature_header(signature_header)
    if parsed is None:
        logger.warning("Malformed Stripe signature header")
        return False

    timestamp, signatures = parsed
    if not _within_tolerance(timestamp, tolerance, now):
        logger.warning("Stripe webhook timestamp %s outside %ss tolerance", timestamp, tolerance)
        return False

    signed_payload = str(timestamp).encode("utf-8") + b"." + _to_bytes(raw_body)
    expected = _hmac_hex(secret, signed_payload, hashlib.sha256)
    matched = False
    for candidate in signatures:
        if is_hex_digest(candidate) and constant_time_equals(expected, candidate):
            matched = True
    return matched


def verify_paystack_signature(raw_body: bytes | str, signature: str | None, secret: str | None) -> bool:
    if not secret or not is_hex_digest(signature):
        return False
    expected = _hmac_hex(secret, _to_bytes(raw_body), hashlib.sha512)
    return constant_time_equals(expected, signature)  # type: ignore[arg-type]


def verify_flutterwave_signature(raw_body: bytes | str, signature: str | None, secret: str | None) -> bool:
    if not secret or not is_hex_digest(signature):
        return False
    expected = _hmac_hex(secret, _to_bytes(raw_body), hashlib.sha256)
    return constant_time_equals(expected, signature)  # type: ignore[arg-type]


def verify_generic_signature(
    raw_body: bytes | str,
    signature: str | None,
    secret: str | None,
    *,
    timestamp: str | None = None,
    tolerance: int = DEFAULT_TIMESTAMP_TOLERANCE_SECONDS,
    now: float | None = None,
) -> bool:
    """HMAC-SHA256 over the raw body, ``sha256=`` prefix optional.

    The timestamp window only applies when the caller supplied a timestamp.
    """
    if not secret or not signature:
        return False

    received = signature[len(GENERIC_SIGNATURE_PREFIX):] if signature.startswith(GENERIC_SIGNATURE_PREFIX) else signature
    if not is_hex_digest(received):
        return False

    if timestamp:
        try:
            webhook_timestamp = int(timestamp)
        except ValueError:
            logger.warning("Webhook timestamp %r is not an integer", timestamp)
            return False
        if not _within_tolerance(webhook_timestamp, tolerance, now):
            logger.warning("Webhook timestamp outside tolerance")
            return False

    expected = _hmac_hex(secret, _to_bytes(raw_body), hashlib.sha256)
    return constant_time_equals(expected, received)
