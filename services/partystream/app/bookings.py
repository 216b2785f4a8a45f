"""Booking lifecycle: validation, pricing, conflict detection and status changes.

Conflicts are only checked against *confirmed* bookings of the same DJ, so any
number of pending holds may target the same slot; the DJ's confirmation is
what locks it. Windows are compared inclusively, meaning a booking ending at
10:00 conflicts with one starting at 10:00.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from infra import Booking, DJProfile
from libs.audit import record_audit
from libs.observability.metrics import BOOKING_TRANSITIONS as BOOKING_TRANSITION_COUNTER

from . import repository
from .errors import AuthorizationError, ConflictError, ValidationError
from .identity import (
    Caller,
    Role,
    can_transition_booking,
    can_update_booking,
    is_participant,
)
from .schemas import BookingCreate, BookingUpdate
from .statuses import (
    BOOKING_TRANSITIONS,
    TERMINAL_BOOKING_STATUSES,
    BookingPaymentStatus,
    BookingStatus,
)
from .timeutils import as_utc, hours_between, utcnow

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Quote:
    start: datetime
    end: datetime
    duration_hours: float
    total_amount: float


def quote_booking(
    profile: DJProfile, start: datetime, end: datetime, *, now: Optional[datetime] = None
) -> Quote:
    """Validate the window and price it at the DJ's hourly rate."""

    start, end = as_utc(start), as_utc(end)
    if end <= start:
        raise ValidationError("End time must be after start time", dj_profile_id=profile.id)
    if start <= (now or utcnow()):
        raise ValidationError("Booking must start in the future", dj_profile_id=profile.id)
    duration = hours_between(start, end)
    return Quote(
        start=start,
        end=end,
        duration_hours=duration,
        total_amount=duration * profile.hourly_rate,
    )


def ensure_no_conflict(
    db: Session, *, dj_profile_id: str, quote: Quote, exclude_id: Optional[str] = None
) -> None:
    conflicts = repository.find_conflicting_bookings(
        db,
        dj_profile_id=dj_profile_id,
        start=quote.start,
        end=quote.end,
        exclude_id=exclude_id,
    )
    if conflicts:
        raise ConflictError(
            "DJ is not available during the selected time",
            dj_profile_id=dj_profile_id,
            booking_id=exclude_id,
            conflicting_booking_id=conflicts[0].id,
        )


def transition_booking(
    db: Session,
    booking: Booking,
    target: BookingStatus,
    *,
    actor_id: Optional[str],
    reason: str,
) -> None:
    """Apply a status change without authorization checks and record it.

    Callers own the commit. Used directly by payment and stream lifecycles for
    automatic transitions.
    """

    previous = booking.status
    if previous == target.value:
        return
    booking.status = target.value
    record_audit(
        db,
        entity="booking",
        entity_id=booking.id,
        action=f"booking.{target.value}",
        actor_id=actor_id,
        from_status=previous,
        to_status=target.value,
        details={"reason": reason},
    )
    BOOKING_TRANSITION_COUNTER.labels(target.value).inc()
    logger.info(
        "booking status changed",
        extra={
            "booking_id": booking.id,
            "from_status": previous,
            "to_status": target.value,
            "caller_id": actor_id,
            "reason": reason,
        },
    )


def create_booking(db: Session, caller: Caller, payload: BookingCreate) -> Booking:
    profile = repository.require_dj_profile(db, payload.dj_profile_id)
    quote = quote_booking(profile, payload.start_time, payload.end_time)
    ensure_no_conflict(db, dj_profile_id=profile.id, quote=quote)

    booking = Booking(
        host_id=caller.id,
        dj_profile_id=profile.id,
        start_time=quote.start,
        end_time=quote.end,
        duration_hours=quote.duration_hours,
        total_amount=quote.total_amount,
        status=BookingStatus.PENDING.value,
        payment_status=BookingPaymentStatus.PENDING.value,
        notes=payload.notes or "",
    )
    db.add(booking)
    db.flush()
    record_audit(
        db,
        entity="booking",
        entity_id=booking.id,
        action="booking.created",
        actor_id=caller.id,
        to_status=booking.status,
        details={
            "dj_profile_id": profile.id,
            "duration_hours": quote.duration_hours,
            "total_amount": quote.total_amount,
        },
    )
    db.commit()
    BOOKING_TRANSITION_COUNTER.labels(BookingStatus.PENDING.value).inc()
    logger.info(
        "booking created",
        extra={"booking_id": booking.id, "dj_profile_id": profile.id, "caller_id": caller.id},
    )
    return booking


def get_booking(db: Session, caller: Caller, booking_id: str) -> Booking:
    booking = repository.require_booking(db, booking_id)
    if not is_participant(caller, booking):
        raise AuthorizationError(
            "Not authorized to view this booking", booking_id=booking_id, caller_id=caller.id
        )
    return booking


def list_bookings(db: Session, caller: Caller) -> list[Booking]:
    if caller.role is Role.ADMIN:
        return list(repository.list_bookings(db))
    if caller.role is Role.HOST:
        return list(repository.list_bookings(db, host_id=caller.id))
    profile = repository.get_dj_profile_for_user(db, caller.id)
    if profile is None:
        return []
    return list(repository.list_bookings(db, dj_profile_id=profile.id))


def update_booking(db: Session, caller: Caller, booking_id: str, patch: BookingUpdate) -> Booking:
    booking = repository.require_booking(db, booking_id)
    if not can_update_booking(caller, booking):
        raise AuthorizationError(
            "Not authorized to update this booking", booking_id=booking_id, caller_id=caller.id
        )
    if BookingStatus(booking.status) in TERMINAL_BOOKING_STATUSES:
        raise ConflictError(
            f"Cannot update a {booking.status} booking", booking_id=booking_id, caller_id=caller.id
        )

    changed: dict[str, object] = {}
    if patch.start_time is not None or patch.end_time is not None:
        quote = quote_booking(
            booking.dj_profile,
            patch.start_time or booking.start_time,
            patch.end_time or booking.end_time,
        )
        ensure_no_conflict(
            db, dj_profile_id=booking.dj_profile_id, quote=quote, exclude_id=booking.id
        )
        booking.start_time = quote.start
        booking.end_time = quote.end
        booking.duration_hours = quote.duration_hours
        booking.total_amount = quote.total_amount
        changed.update(
            start_time=quote.start.isoformat(),
            end_time=quote.end.isoformat(),
            total_amount=quote.total_amount,
        )
    if patch.notes is not None:
        booking.notes = patch.notes
        changed["notes"] = True

    if changed:
        record_audit(
            db,
            entity="booking",
            entity_id=booking.id,
            action="booking.updated",
            actor_id=caller.id,
            details=changed,
        )
    db.commit()
    return booking


def update_booking_status(db: Session, caller: Caller, booking_id: str, status: str) -> Booking:
    try:
        target = BookingStatus(status)
    except ValueError as exc:
        allowed = ", ".join(item.value for item in BookingStatus)
        raise ValidationError(
            f"Invalid status '{status}'; expected one of: {allowed}",
            booking_id=booking_id,
            caller_id=caller.id,
        ) from exc

    booking = repository.require_booking(db, booking_id)
    if not can_transition_booking(caller, booking, target):
        raise AuthorizationError(
            f"Not authorized to set booking status to {target.value}",
            booking_id=booking_id,
            caller_id=caller.id,
        )
    current = BookingStatus(booking.status)
    if target not in BOOKING_TRANSITIONS[current]:
        raise ConflictError(
            f"Cannot change booking status from {current.value} to {target.value}",
            booking_id=booking_id,
            caller_id=caller.id,
        )
    transition_booking(db, booking, target, actor_id=caller.id, reason="manual")
    db.commit()
    return booking


def delete_booking(db: Session, caller: Caller, booking_id: str) -> None:
    booking = repository.require_booking(db, booking_id)
    if not can_update_booking(caller, booking):
        raise AuthorizationError(
            "Not authorized to delete this booking", booking_id=booking_id, caller_id=caller.id
        )
    if booking.status in (BookingStatus.CONFIRMED.value, BookingStatus.COMPLETED.value):
        raise ConflictError(
            f"Cannot delete a {booking.status} booking", booking_id=booking_id, caller_id=caller.id
        )
    record_audit(
        db,
        entity="booking",
        entity_id=booking.id,
        action="booking.deleted",
        actor_id=caller.id,
        from_status=booking.status,
    )
    db.delete(booking)
    db.commit()
    logger.info("booking deleted", extra={"booking_id": booking_id, "caller_id": caller.id})


__all__ = [
    "Quote",
    "create_booking",
    "delete_booking",
    "ensure_no_conflict",
    "get_booking",
    "list_bookings",
    "quote_booking",
    "transition_booking",
    "update_booking",
    "update_booking_status",
]
