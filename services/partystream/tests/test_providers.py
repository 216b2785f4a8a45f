from __future__ import annotations

import pytest
import stripe
from botocore.exceptions import ClientError

from services.partystream.app.payments import (
    PaymentGatewayError,
    PaymentIntentRequest,
    StripePaymentGateway,
)
from services.partystream.app.streaming_provider import IvsStreamingProvider, StreamingProviderError


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class StubIvsClient:
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict]] = []
        self.get_stream_error: ClientError | None = None

    def create_channel(self, **kwargs):
        self.calls.append(("create_channel", kwargs))
        return {
            "channel": {
                "arn": "arn:aws:ivs:us-east-1:1:channel/abc",
                "ingestEndpoint": "abc.global-contribute.live-video.net",
                "playbackUrl": "https://abc.playback.live-video.net/abc.m3u8",
            },
            "streamKey": {"arn": "arn:aws:ivs:us-east-1:1:stream-key/xyz", "value": "sk_xyz"},
        }

    def get_stream(self, **kwargs):
        if self.get_stream_error is not None:
            raise self.get_stream_error
        return {"stream": {"viewerCount": 7, "health": "HEALTHY", "state": "LIVE"}}

    def delete_channel(self, **kwargs):
        raise _client_error("ThrottlingException", "DeleteChannel")


def test_ivs_create_channel_maps_response(settings):
    stub = StubIvsClient()
    provider = IvsStreamingProvider(settings, client=stub)

    provision = provider.create_channel(name="PartyStream-b1", tags={"booking_id": "b1"})

    assert provision.stream_key == "sk_xyz"
    assert provision.ingest_endpoint == "abc.global-contribute.live-video.net"
    _, kwargs = stub.calls[0]
    assert kwargs["type"] == settings.ivs_channel_type
    assert kwargs["latencyMode"] == "LOW"
    assert kwargs["tags"] == {"booking_id": "b1"}


def test_ivs_metrics_offline_and_errors(settings):
    stub = StubIvsClient()
    provider = IvsStreamingProvider(settings, client=stub)

    assert provider.get_live_metrics(channel_arn="arn").viewer_count == 7

    stub.get_stream_error = _client_error("ChannelNotBroadcasting", "GetStream")
    assert provider.get_live_metrics(channel_arn="arn") is None

    stub.get_stream_error = _client_error("AccessDeniedException", "GetStream")
    with pytest.raises(StreamingProviderError) as excinfo:
        provider.get_live_metrics(channel_arn="arn")
    assert excinfo.value.service == "ivs"

    with pytest.raises(StreamingProviderError):
        provider.delete_channel(channel_arn="arn")


def test_stripe_gateway_passes_amount_and_metadata(settings, monkeypatch):
    captured: dict = {}

    def fake_create(**kwargs):
        captured.update(kwargs)
        return {"id": "pi_live", "client_secret": "pi_live_secret", "status": "requires_payment_method"}

    monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create)
    gateway = StripePaymentGateway(settings)

    result = gateway.create_payment_intent(
        PaymentIntentRequest(
            amount_cents=11000,
            currency="usd",
            customer_id="cus_1",
            description="PartyStream booking b1",
            metadata={"booking_id": "b1"},
        )
    )

    assert result.intent_id == "pi_live"
    assert captured["amount"] == 11000
    assert captured["api_key"] == "sk_test_123"
    assert captured["metadata"] == {"booking_id": "b1"}


def test_stripe_gateway_reuses_customer_and_wraps_errors(settings, monkeypatch):
    gateway = StripePaymentGateway(settings)
    assert gateway.ensure_customer(email="a@example.com", name="A", user_id="u1", customer_id="cus_9") == "cus_9"

    def failing_refund(**kwargs):
        raise stripe.StripeError("charge already refunded")

    monkeypatch.setattr(stripe.Refund, "create", failing_refund)
    with pytest.raises(PaymentGatewayError) as excinfo:
        gateway.refund(payment_intent_id="pi_1", amount_cents=None, reason="duplicate")
    assert excinfo.value.status_code == 502
    assert "charge already refunded" in excinfo.value.message


def test_stripe_gateway_requires_secret_key(settings):
    unconfigured = StripePaymentGateway(settings.model_copy(update={"stripe_secret_key": None}))
    with pytest.raises(PaymentGatewayError):
        unconfigured.ensure_customer(email="a@example.com", name="A", user_id="u1")
