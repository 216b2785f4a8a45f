"""AWS IVS integration used to provision private stream channels."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from libs.observability.metrics import EXTERNAL_CALL_FAILURES

from .config import Settings
from .errors import ExternalServiceError

logger = logging.getLogger(__name__)


class StreamingProviderError(ExternalServiceError):
    def __init__(self, message: str, *, operation: str, **context) -> None:
        super().__init__(message, service="ivs", operation=operation, **context)
        self.operation = operation


@dataclass(slots=True)
class ChannelProvision:
    channel_arn: str
    ingest_endpoint: str
    playback_url: str
    stream_key_arn: str
    stream_key: str


@dataclass(slots=True)
class StreamKey:
    arn: str
    value: str


@dataclass(slots=True)
class LiveMetrics:
    viewer_count: int
    health: str
    state: str


class StreamingProvider(Protocol):
    def create_channel(self, *, name: str, tags: dict[str, str] | None = None) -> ChannelProvision:
        """Create a channel together with its stream key."""

    def get_stream_key(self, *, stream_key_arn: str) -> StreamKey:
        """Return the secret ingest key referenced by ``stream_key_arn``."""

    def get_live_metrics(self, *, channel_arn: str) -> Optional[LiveMetrics]:
        """Return live session metrics, or ``None`` when the channel is offline."""

    def delete_channel(self, *, channel_arn: str) -> None:
        """Tear down the channel and its keys."""


class IvsStreamingProvider:
    """:class:`StreamingProvider` backed by the boto3 ``ivs`` client."""

    def __init__(self, settings: Settings, client=None) -> None:
        self.settings = settings
        self._client = client or boto3.client("ivs", region_name=settings.aws_region)

    def _fail(self, operation: str, exc: Exception, **context) -> StreamingProviderError:
        EXTERNAL_CALL_FAILURES.labels("ivs", operation).inc()
        return StreamingProviderError(f"IVS {operation} failed: {exc}", operation=operation, **context)

    def create_channel(self, *, name: str, tags: dict[str, str] | None = None) -> ChannelProvision:
        try:
            response = self._client.create_channel(
                name=name[:128],
                type=self.settings.ivs_channel_type,
                latencyMode=self.settings.ivs_latency_mode,
                authorized=False,
                tags=tags or {},
            )
        except (BotoCoreError, ClientError) as exc:
            raise self._fail("create_channel", exc) from exc
        channel = response["channel"]
        stream_key = response["streamKey"]
        return ChannelProvision(
            channel_arn=channel["arn"],
            ingest_endpoint=channel["ingestEndpoint"],
            playback_url=channel["playbackUrl"],
            stream_key_arn=stream_key["arn"],
            stream_key=stream_key["value"],
        )

    def get_stream_key(self, *, stream_key_arn: str) -> StreamKey:
        try:
            response = self._client.get_stream_key(arn=stream_key_arn)
        except (BotoCoreError, ClientError) as exc:
            raise self._fail("get_stream_key", exc) from exc
        key = response["streamKey"]
        return StreamKey(arn=key["arn"], value=key["value"])

    def get_live_metrics(self, *, channel_arn: str) -> Optional[LiveMetrics]:
        try:
            response = self._client.get_stream(channelArn=channel_arn)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") == "ChannelNotBroadcasting":
                return None
            raise self._fail("get_stream", exc, channel_arn=channel_arn) from exc
        except BotoCoreError as exc:
            raise self._fail("get_stream", exc, channel_arn=channel_arn) from exc
        stream = response["stream"]
        return LiveMetrics(
            viewer_count=int(stream.get("viewerCount", 0)),
            health=stream.get("health", "UNKNOWN"),
            state=stream.get("state", "UNKNOWN"),
        )

    def delete_channel(self, *, channel_arn: str) -> None:
        try:
            self._client.delete_channel(arn=channel_arn)
        except (BotoCoreError, ClientError) as exc:
            raise self._fail("delete_channel", exc, channel_arn=channel_arn) from exc
        logger.info("ivs channel deleted", extra={"channel_arn": channel_arn})


__all__ = [
    "ChannelProvision",
    "IvsStreamingProvider",
    "LiveMetrics",
    "StreamKey",
    "StreamingProvider",
    "StreamingProviderError",
]
