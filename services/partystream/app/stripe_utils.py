"""Stripe webhook signature verification and payload parsing."""
from __future__ import annotations

import hmac
import json
import time
from hashlib import sha256
from typing import Any, Dict, Optional

from .errors import ValidationError


def verify_webhook_signature(
    payload: bytes,
    signature: Optional[str],
    secret: Optional[str],
    *,
    tolerance_seconds: int = 300,
    now: Optional[float] = None,
) -> None:
    """Validate a ``Stripe-Signature`` header (``t=<ts>,v1=<hex>[,v1=...]``).

    Fails closed: a missing secret, a malformed header, a stale timestamp or
    no matching ``v1`` digest all raise :class:`ValidationError`.
    """

    if not secret:
        raise ValidationError("Webhook secret is not configured")
    if not signature:
        raise ValidationError("Missing Stripe-Signature header")

    timestamp: Optional[str] = None
    candidates: list[str] = []
    for item in signature.split(","):
        key, _, value = item.strip().partition("=")
        if key == "t":
            timestamp = value
        elif key == "v1" and value:
            candidates.append(value)
    if timestamp is None or not timestamp.isdigit() or not candidates:
        raise ValidationError("Invalid signature header")

    current = time.time() if now is None else now
    if tolerance_seconds and abs(current - int(timestamp)) > tolerance_seconds:
        raise ValidationError("Signature timestamp outside the tolerance window")

    signed_payload = timestamp.encode() + b"." + payload
    expected = hmac.new(secret.encode(), msg=signed_payload, digestmod=sha256).hexdigest()
    if not any(hmac.compare_digest(expected, candidate) for candidate in candidates):
        raise ValidationError("Signature mismatch")


def parse_stripe_payload(raw_body: bytes) -> Dict[str, Any]:
    try:
        event = json.loads(raw_body)
    except json.JSONDecodeError as exc:
        raise ValidationError("Invalid JSON payload") from exc
    if not isinstance(event, dict):
        raise ValidationError("Webhook payload must be a JSON object")
    return event


__all__ = ["parse_stripe_payload", "verify_webhook_signature"]
