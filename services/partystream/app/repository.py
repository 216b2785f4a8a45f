"""Typed query helpers over the PartyStream tables."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from infra import Booking, ChatMessage, DJProfile, Payment, Stream, User

from .errors import NotFoundError
from .statuses import OPEN_STREAM_STATUSES, BookingStatus, PaymentStatus


def get_user(db: Session, user_id: str) -> Optional[User]:
    return db.get(User, user_id)


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.scalar(select(User).where(User.email == email.strip().lower()))


def require_user(db: Session, user_id: str) -> User:
    user = get_user(db, user_id)
    if user is None:
        raise NotFoundError("User not found", user_id=user_id)
    return user


def get_dj_profile(db: Session, profile_id: str) -> Optional[DJProfile]:
    return db.get(DJProfile, profile_id)


def require_dj_profile(db: Session, profile_id: str) -> DJProfile:
    profile = get_dj_profile(db, profile_id)
    if profile is None:
        raise NotFoundError("DJ profile not found", dj_profile_id=profile_id)
    return profile


def get_dj_profile_for_user(db: Session, user_id: str) -> Optional[DJProfile]:
    return db.scalar(select(DJProfile).where(DJProfile.user_id == user_id))


def list_dj_profiles(
    db: Session, *, min_rate: Optional[float] = None, max_rate: Optional[float] = None
) -> Sequence[DJProfile]:
    stmt = select(DJProfile).order_by(DJProfile.stage_name, DJProfile.id)
    if min_rate is not None:
        stmt = stmt.where(DJProfile.hourly_rate >= min_rate)
    if max_rate is not None:
        stmt = stmt.where(DJProfile.hourly_rate <= max_rate)
    return db.scalars(stmt).all()


def get_booking(db: Session, booking_id: str) -> Optional[Booking]:
    return db.get(Booking, booking_id, options=[selectinload(Booking.dj_profile)])


def require_booking(db: Session, booking_id: str) -> Booking:
    booking = get_booking(db, booking_id)
    if booking is None:
        raise NotFoundError("Booking not found", booking_id=booking_id)
    return booking


def find_conflicting_bookings(
    db: Session,
    *,
    dj_profile_id: str,
    start: datetime,
    end: datetime,
    exclude_id: Optional[str] = None,
) -> Sequence[Booking]:
    """Confirmed bookings of the DJ whose window touches or overlaps ``[start, end]``."""

    stmt = select(Booking).where(
        Booking.dj_profile_id == dj_profile_id,
        Booking.status == BookingStatus.CONFIRMED.value,
        Booking.start_time <= end,
        Booking.end_time >= start,
    )
    if exclude_id is not None:
        stmt = stmt.where(Booking.id != exclude_id)
    return db.scalars(stmt).all()


def list_bookings(
    db: Session,
    *,
    host_id: Optional[str] = None,
    dj_profile_id: Optional[str] = None,
) -> Sequence[Booking]:
    stmt = select(Booking).options(selectinload(Booking.dj_profile)).order_by(
        Booking.start_time, Booking.id
    )
    if host_id is not None:
        stmt = stmt.where(Booking.host_id == host_id)
    if dj_profile_id is not None:
        stmt = stmt.where(Booking.dj_profile_id == dj_profile_id)
    return db.scalars(stmt).all()


def bookings_in_range(
    db: Session, *, dj_profile_id: str, start: datetime, end: datetime
) -> Sequence[Booking]:
    stmt = (
        select(Booking)
        .where(
            Booking.dj_profile_id == dj_profile_id,
            Booking.status.in_([BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value]),
            Booking.start_time <= end,
            Booking.end_time >= start,
        )
        .order_by(Booking.start_time)
    )
    return db.scalars(stmt).all()


def get_stream(db: Session, stream_id: str) -> Optional[Stream]:
    return db.get(Stream, stream_id)


def require_stream(db: Session, stream_id: str) -> Stream:
    stream = get_stream(db, stream_id)
    if stream is None:
        raise NotFoundError("Stream not found", stream_id=stream_id)
    return stream


def get_open_stream_for_booking(db: Session, booking_id: str) -> Optional[Stream]:
    stmt = select(Stream).where(
        Stream.booking_id == booking_id,
        Stream.status.in_([status.value for status in OPEN_STREAM_STATUSES]),
    )
    return db.scalar(stmt)


def get_latest_stream_for_booking(db: Session, booking_id: str) -> Optional[Stream]:
    stmt = (
        select(Stream)
        .where(Stream.booking_id == booking_id)
        .order_by(Stream.created_at.desc(), Stream.id.desc())
        .limit(1)
    )
    return db.scalar(stmt)


def get_payment(db: Session, payment_id: str) -> Optional[Payment]:
    return db.get(Payment, payment_id)


def require_payment(db: Session, payment_id: str) -> Payment:
    payment = get_payment(db, payment_id)
    if payment is None:
        raise NotFoundError("Payment not found", payment_id=payment_id)
    return payment


def get_payment_by_intent(db: Session, payment_intent_id: str) -> Optional[Payment]:
    return db.scalar(select(Payment).where(Payment.payment_intent_id == payment_intent_id))


def get_succeeded_payment(db: Session, booking_id: str) -> Optional[Payment]:
    stmt = select(Payment).where(
        Payment.booking_id == booking_id,
        Payment.status == PaymentStatus.SUCCEEDED.value,
    )
    return db.scalar(stmt)


def list_payments_for_booking(db: Session, booking_id: str) -> Sequence[Payment]:
    stmt = (
        select(Payment)
        .where(Payment.booking_id == booking_id)
        .order_by(Payment.created_at.desc(), Payment.id)
    )
    return db.scalars(stmt).all()


def list_chat_messages(
    db: Session,
    booking_id: str,
    *,
    limit: int,
    before: Optional[datetime] = None,
) -> list[ChatMessage]:
    """Return up to ``limit`` messages older than ``before``, oldest first."""

    stmt = select(ChatMessage).where(ChatMessage.booking_id == booking_id)
    if before is not None:
        stmt = stmt.where(ChatMessage.created_at < before)
    stmt = stmt.order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc()).limit(limit)
    messages = list(db.scalars(stmt).all())
    messages.reverse()
    return messages


__all__ = [
    "bookings_in_range",
    "find_conflicting_bookings",
    "get_booking",
    "get_dj_profile",
    "get_dj_profile_for_user",
    "get_latest_stream_for_booking",
    "get_open_stream_for_booking",
    "get_payment",
    "get_payment_by_intent",
    "get_stream",
    "get_succeeded_payment",
    "get_user",
    "get_user_by_email",
    "list_bookings",
    "list_chat_messages",
    "list_dj_profiles",
    "list_payments_for_booking",
    "require_booking",
    "require_dj_profile",
    "require_payment",
    "require_stream",
    "require_user",
]
