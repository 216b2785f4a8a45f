from __future__ import annotations

import pytest

from services.partystream.app.errors import ValidationError
from services.partystream.app.stripe_utils import parse_stripe_payload, verify_webhook_signature

from support import sign

PAYLOAD = b'{"type": "payment_intent.succeeded"}'
SECRET = "whsec_unit"


def test_valid_signature_passes():
    verify_webhook_signature(PAYLOAD, sign(PAYLOAD, SECRET), SECRET)


def test_any_matching_v1_entry_is_accepted():
    header = sign(PAYLOAD, SECRET)
    timestamp, good = header.split(",")
    rotated = f"{timestamp},v1={'0' * 64},{good}"
    verify_webhook_signature(PAYLOAD, rotated, SECRET)


@pytest.mark.parametrize(
    "header, message",
    [
        (None, "Missing Stripe-Signature header"),
        ("v1=abc", "Invalid signature header"),
        ("t=notanumber,v1=abc", "Invalid signature header"),
        ("t=123", "Invalid signature header"),
    ],
)
def test_malformed_headers(header, message):
    with pytest.raises(ValidationError) as excinfo:
        verify_webhook_signature(PAYLOAD, header, SECRET)
    assert excinfo.value.message == message


def test_missing_secret_fails_closed():
    with pytest.raises(ValidationError):
        verify_webhook_signature(PAYLOAD, sign(PAYLOAD, SECRET), None)


def test_tolerance_window():
    header = sign(PAYLOAD, SECRET, timestamp=1_000)
    verify_webhook_signature(PAYLOAD, header, SECRET, now=1_200)
    with pytest.raises(ValidationError):
        verify_webhook_signature(PAYLOAD, header, SECRET, now=1_400)


def test_tampered_payload():
    header = sign(PAYLOAD, SECRET)
    with pytest.raises(ValidationError) as excinfo:
        verify_webhook_signature(b'{"type": "other"}', header, SECRET)
    assert excinfo.value.message == "Signature mismatch"


def test_parse_rejects_non_objects():
    assert parse_stripe_payload(PAYLOAD)["type"] == "payment_intent.succeeded"
    with pytest.raises(ValidationError):
        parse_stripe_payload(b"[1, 2]")
    with pytest.raises(ValidationError):
        parse_stripe_payload(b"{not json")
