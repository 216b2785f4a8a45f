"""Stream lifecycle: provisioning, start/end transitions and credential exposure."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from infra import Booking, Stream
from libs.audit import record_audit
from libs.observability.metrics import STREAM_TRANSITIONS

from . import repository
from .bookings import transition_booking
from .config import Settings
from .errors import (
    AuthorizationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)
from .identity import (
    Caller,
    can_end_stream,
    can_manage_stream,
    is_booking_dj,
    is_participant,
    receives_ingest_credentials,
)
from .statuses import BookingStatus, StreamStatus
from .streaming_provider import ChannelProvision, StreamingProvider
from .timeutils import utcnow

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class StreamView:
    """A stream as seen by one caller."""

    stream: Stream
    viewer_count: Optional[int] = None
    health: Optional[str] = None
    ingest_endpoint: Optional[str] = None
    rtmp_url: Optional[str] = None
    stream_key: Optional[str] = None


def rtmp_url(ingest_endpoint: str) -> str:
    return f"rtmps://{ingest_endpoint}:443/app/"


def _set_status(
    db: Session, stream: Stream, target: StreamStatus, *, actor_id: Optional[str], **details
) -> None:
    previous = stream.status
    stream.status = target.value
    record_audit(
        db,
        entity="stream",
        entity_id=stream.id,
        action=f"stream.{target.value}",
        actor_id=actor_id,
        from_status=previous,
        to_status=target.value,
        details=details,
    )
    STREAM_TRANSITIONS.labels(target.value).inc()
    logger.info(
        "stream status changed",
        extra={
            "stream_id": stream.id,
            "booking_id": stream.booking_id,
            "from_status": previous,
            "to_status": target.value,
            "caller_id": actor_id,
        },
    )


def _teardown_channel(provider: StreamingProvider, channel_arn: Optional[str], **context) -> bool:
    if not channel_arn:
        return True
    try:
        provider.delete_channel(channel_arn=channel_arn)
    except ExternalServiceError as exc:
        logger.warning(
            "channel teardown failed",
            extra={"channel_arn": channel_arn, "error": exc.message, **context},
        )
        return False
    return True


def create_stream(
    db: Session,
    provider: StreamingProvider,
    settings: Settings,
    caller: Caller,
    *,
    booking_id: str,
    title: Optional[str] = None,
) -> StreamView:
    booking = repository.require_booking(db, booking_id)
    if booking.status != BookingStatus.CONFIRMED.value:
        raise ValidationError(
            "Stream can only be created for confirmed bookings",
            booking_id=booking_id,
            caller_id=caller.id,
        )
    if not can_manage_stream(caller, booking):
        raise AuthorizationError(
            "Only the booking's DJ can create its stream", booking_id=booking_id, caller_id=caller.id
        )
    if repository.get_open_stream_for_booking(db, booking_id) is not None:
        raise ConflictError(
            "An active stream already exists for this booking",
            booking_id=booking_id,
            caller_id=caller.id,
        )

    channel_name = f"{settings.ivs_channel_prefix}-{booking_id}-{int(utcnow().timestamp())}"
    provision: ChannelProvision = provider.create_channel(
        name=channel_name, tags={"booking_id": booking_id}
    )

    stream = Stream(
        booking_id=booking.id,
        dj_profile_id=booking.dj_profile_id,
        host_id=booking.host_id,
        title=title or f"{booking.dj_profile.stage_name} live",
        status=StreamStatus.CREATED.value,
        channel_arn=provision.channel_arn,
        stream_key_arn=provision.stream_key_arn,
        ingest_endpoint=provision.ingest_endpoint,
        playback_url=provision.playback_url,
        viewers_peak=0,
    )
    db.add(stream)
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        _teardown_channel(provider, provision.channel_arn, booking_id=booking_id)
        raise ConflictError(
            "An active stream already exists for this booking",
            booking_id=booking_id,
            caller_id=caller.id,
        ) from exc
    record_audit(
        db,
        entity="stream",
        entity_id=stream.id,
        action="stream.created",
        actor_id=caller.id,
        to_status=stream.status,
        details={"booking_id": booking.id, "channel_arn": provision.channel_arn},
    )
    db.commit()
    STREAM_TRANSITIONS.labels(StreamStatus.CREATED.value).inc()
    logger.info(
        "stream created",
        extra={"stream_id": stream.id, "booking_id": booking.id, "caller_id": caller.id},
    )

    view = StreamView(stream=stream)
    if receives_ingest_credentials(caller, booking):
        view.ingest_endpoint = provision.ingest_endpoint
        view.rtmp_url = rtmp_url(provision.ingest_endpoint)
        view.stream_key = provision.stream_key
    return view


def _load(db: Session, stream_id: str) -> tuple[Stream, Booking]:
    stream = repository.require_stream(db, stream_id)
    booking = repository.require_booking(db, stream.booking_id)
    return stream, booking


def start_stream(db: Session, caller: Caller, stream_id: str) -> Stream:
    stream, booking = _load(db, stream_id)
    if not can_manage_stream(caller, booking):
        raise AuthorizationError(
            "Only the stream's DJ can start it", stream_id=stream_id, caller_id=caller.id
        )
    if stream.status != StreamStatus.CREATED.value:
        raise ConflictError(
            f"Cannot start a stream in status {stream.status}",
            stream_id=stream_id,
            caller_id=caller.id,
        )
    _set_status(db, stream, StreamStatus.ACTIVE, actor_id=caller.id)
    stream.started_at = utcnow()
    db.commit()
    return stream


def end_stream(
    db: Session,
    provider: StreamingProvider,
    settings: Settings,
    caller: Caller,
    stream_id: str,
) -> Stream:
    stream, booking = _load(db, stream_id)
    if not can_end_stream(caller, booking):
        raise AuthorizationError(
            "Not authorized to end this stream", stream_id=stream_id, caller_id=caller.id
        )
    if stream.status != StreamStatus.ACTIVE.value:
        raise ConflictError(
            f"Cannot end a stream in status {stream.status}",
            stream_id=stream_id,
            caller_id=caller.id,
        )

    if stream.channel_arn:
        try:
            metrics = provider.get_live_metrics(channel_arn=stream.channel_arn)
        except ExternalServiceError as exc:
            logger.warning(
                "viewer count unavailable at stream end",
                extra={"stream_id": stream_id, "caller_id": caller.id, "error": exc.message},
            )
        else:
            if metrics is not None and metrics.viewer_count > stream.viewers_peak:
                stream.viewers_peak = metrics.viewer_count

    _set_status(db, stream, StreamStatus.ENDED, actor_id=caller.id, viewers_peak=stream.viewers_peak)
    stream.ended_at = utcnow()

    cascades = (
        caller.is_admin
        or is_booking_dj(caller, booking)
        or settings.complete_booking_on_host_end
    )
    if cascades and booking.status == BookingStatus.CONFIRMED.value:
        transition_booking(
            db, booking, BookingStatus.COMPLETED, actor_id=caller.id, reason="stream_ended"
        )
    db.commit()
    return stream


def delete_stream(db: Session, provider: StreamingProvider, caller: Caller, stream_id: str) -> None:
    if not caller.is_admin:
        raise AuthorizationError(
            "Only admins can delete streams", stream_id=stream_id, caller_id=caller.id
        )
    stream = repository.require_stream(db, stream_id)
    if stream.status == StreamStatus.ACTIVE.value:
        raise ConflictError("Cannot delete an active stream", stream_id=stream_id, caller_id=caller.id)

    _teardown_channel(provider, stream.channel_arn, stream_id=stream_id, caller_id=caller.id)
    record_audit(
        db,
        entity="stream",
        entity_id=stream.id,
        action="stream.deleted",
        actor_id=caller.id,
        from_status=stream.status,
        details={"booking_id": stream.booking_id},
    )
    db.delete(stream)
    db.commit()
    logger.info("stream deleted", extra={"stream_id": stream_id, "caller_id": caller.id})


def describe_stream(
    db: Session, provider: StreamingProvider, caller: Caller, stream: Stream
) -> StreamView:
    booking = repository.require_booking(db, stream.booking_id)
    if not is_participant(caller, booking):
        raise AuthorizationError(
            "Not authorized to view this stream", stream_id=stream.id, caller_id=caller.id
        )
    view = StreamView(stream=stream)

    if stream.status == StreamStatus.ACTIVE.value and stream.channel_arn:
        try:
            metrics = provider.get_live_metrics(channel_arn=stream.channel_arn)
        except ExternalServiceError as exc:
            logger.warning(
                "live metrics unavailable",
                extra={"stream_id": stream.id, "caller_id": caller.id, "error": exc.message},
            )
        else:
            if metrics is not None:
                view.viewer_count = metrics.viewer_count
                view.health = metrics.health

    if receives_ingest_credentials(caller, booking) and stream.ingest_endpoint:
        view.ingest_endpoint = stream.ingest_endpoint
        view.rtmp_url = rtmp_url(stream.ingest_endpoint)
        if stream.stream_key_arn:
            try:
                view.stream_key = provider.get_stream_key(stream_key_arn=stream.stream_key_arn).value
            except ExternalServiceError as exc:
                logger.warning(
                    "stream key unavailable",
                    extra={"stream_id": stream.id, "caller_id": caller.id, "error": exc.message},
                )
    return view


def get_stream(db: Session, provider: StreamingProvider, caller: Caller, stream_id: str) -> StreamView:
    return describe_stream(db, provider, caller, repository.require_stream(db, stream_id))


def get_stream_for_booking(
    db: Session, provider: StreamingProvider, caller: Caller, booking_id: str
) -> StreamView:
    booking = repository.require_booking(db, booking_id)
    if not is_participant(caller, booking):
        raise AuthorizationError(
            "Not authorized to view this booking's stream", booking_id=booking_id, caller_id=caller.id
        )
    stream = repository.get_open_stream_for_booking(db, booking_id)
    if stream is None:
        stream = repository.get_latest_stream_for_booking(db, booking_id)
    if stream is None:
        raise NotFoundError("No stream found for this booking", booking_id=booking_id)
    return describe_stream(db, provider, caller, stream)


__all__ = [
    "StreamView",
    "create_stream",
    "delete_stream",
    "describe_stream",
    "end_stream",
    "get_stream",
    "get_stream_for_booking",
    "rtmp_url",
    "start_stream",
]
