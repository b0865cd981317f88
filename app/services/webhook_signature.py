"""Signing and verification of payment gateway callbacks.

The gateway signs ``"{timestamp}.{canonical_json}"`` with HMAC-SHA256, where
``canonical_json`` is the callback body without its ``signature`` field,
serialized with sorted keys and no whitespace. Every other field is covered,
so altering any of them invalidates the signature.
"""

import hashlib
import hmac
import json
import time
from typing import Any, Dict, Optional

from core.config import config

SIGNATURE_FIELD = "signature"


def canonical_payload(body: Dict[str, Any]) -> str:
    """Deterministic JSON of every body field except the signature."""
    unsigned = {k: v for k, v in body.items() if k != SIGNATURE_FIELD}
    return json.dumps(unsigned, sort_keys=True, separators=(",", ":"))


def compute_signature(body: Dict[str, Any], secret: str) -> str:
    """Hex HMAC-SHA256 of a callback body."""
    message = f"{body.get('timestamp')}.{canonical_payload(body)}"
    return hmac.new(
        secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256
    ).hexdigest()


def sign_payload(body: Dict[str, Any], secret: Optional[str] = None) -> Dict[str, Any]:
    """Return a copy of ``body`` carrying a valid signature (used by tooling and tests)."""
    signed = dict(body)
    signed[SIGNATURE_FIELD] = compute_signature(body, secret or config.PAYMENT_WEBHOOK_SECRET)
    return signed


def verify_signature(body: Dict[str, Any], secret: Optional[str] = None) -> bool:
    """
    Check the body's signature in constant time.

    Fails closed: a missing secret or signature never verifies.
    """
    secret = secret if secret is not None else config.PAYMENT_WEBHOOK_SECRET
    signature = body.get(SIGNATURE_FIELD)
    if not secret or not isinstance(signature, str) or not signature:
        return False

    expected = compute_signature(body, secret)
    return hmac.compare_digest(expected, signature.lower())


def is_timestamp_fresh(
    timestamp_ms: int,
    now_ms: Optional[int] = None,
    tolerance_seconds: Optional[int] = None,
) -> bool:
    """True when the callback timestamp is within the tolerance of now, either side."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    if tolerance_seconds is None:
        tolerance_seconds = config.WEBHOOK_TOLERANCE_SECONDS
    return abs(now_ms - timestamp_ms) <= tolerance_seconds * 1000
