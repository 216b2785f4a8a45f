"""SQLAlchemy models backing the PartyStream marketplace."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    event,
    func,
    text,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _default_languages() -> list[str]:
    return ["English"]


class User(Base):
    """An account holder: a host booking DJs, a DJ, or a platform admin."""

    __tablename__ = "users"

    id: str = Column(String(36), primary_key=True, default=_uuid)
    email: str = Column(String(255), nullable=False, unique=True, index=True)
    password_hash: str = Column(String(255), nullable=False)
    role: str = Column(String(16), nullable=False, default="host")
    first_name: str = Column(String(100), nullable=False, default="")
    last_name: str = Column(String(100), nullable=False, default="")
    stripe_customer_id: Optional[str] = Column(String(64), nullable=True)
    created_at: datetime = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
    updated_at: datetime = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    dj_profile = relationship("DJProfile", back_populates="user", uselist=False)

    __table_args__ = (
        CheckConstraint("role IN ('host', 'dj', 'admin')", name="ck_users_role"),
    )


class DJProfile(Base):
    """Public profile of a DJ; exactly one per dj user."""

    __tablename__ = "dj_profiles"

    id: str = Column(String(36), primary_key=True, default=_uuid)
    user_id: str = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    stage_name: str = Column(String(128), nullable=False)
    hourly_rate: float = Column(Float, nullable=False)
    genres: List[str] = Column(JSON, nullable=False, default=list)
    bio: str = Column(Text, nullable=False, default="")
    experience: str = Column(Text, nullable=False, default="")
    equipment: str = Column(Text, nullable=False, default="")
    video_links: List[str] = Column(JSON, nullable=False, default=list)
    languages: List[str] = Column(JSON, nullable=False, default=_default_languages)
    created_at: datetime = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
    updated_at: datetime = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    user = relationship("User", back_populates="dj_profile")
    bookings = relationship("Booking", back_populates="dj_profile")

    __table_args__ = (
        CheckConstraint("hourly_rate > 0", name="ck_dj_profiles_hourly_rate"),
    )


class Booking(Base):
    """A reserved time slot of a DJ for a host."""

    __tablename__ = "bookings"

    id: str = Column(String(36), primary_key=True, default=_uuid)
    host_id: str = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    dj_profile_id: str = Column(
        String(36), ForeignKey("dj_profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    start_time: datetime = Column(DateTime(timezone=True), nullable=False)
    end_time: datetime = Column(DateTime(timezone=True), nullable=False)
    duration_hours: float = Column(Float, nullable=False)
    total_amount: float = Column(Float, nullable=False)
    status: str = Column(String(16), nullable=False, default="pending")
    payment_status: str = Column(String(16), nullable=False, default="pending")
    notes: str = Column(Text, nullable=False, default="")
    created_at: datetime = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
    updated_at: datetime = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    host = relationship("User")
    dj_profile = relationship("DJProfile", back_populates="bookings")
    streams = relationship("Stream", back_populates="booking", cascade="all, delete-orphan")
    payments = relationship("Payment", back_populates="booking", cascade="all, delete-orphan")
    messages = relationship("ChatMessage", back_populates="booking", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_bookings_time_order"),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed')",
            name="ck_bookings_status",
        ),
        Index("ix_bookings_dj_window", "dj_profile_id", "status", "start_time", "end_time"),
    )


class Stream(Base):
    """A private live channel provisioned for a confirmed booking."""

    __tablename__ = "streams"

    id: str = Column(String(36), primary_key=True, default=_uuid)
    booking_id: str = Column(
        String(36), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    dj_profile_id: str = Column(String(36), ForeignKey("dj_profiles.id"), nullable=False)
    host_id: str = Column(String(36), ForeignKey("users.id"), nullable=False)
    title: str = Column(String(255), nullable=False, default="")
    status: str = Column(String(16), nullable=False, default="created")
    channel_arn: Optional[str] = Column(String(255), nullable=True)
    stream_key_arn: Optional[str] = Column(String(255), nullable=True)
    ingest_endpoint: Optional[str] = Column(String(255), nullable=True)
    playback_url: Optional[str] = Column(String(512), nullable=True)
    viewers_peak: int = Column(Integer, nullable=False, default=0)
    started_at: Optional[datetime] = Column(DateTime(timezone=True), nullable=True)
    ended_at: Optional[datetime] = Column(DateTime(timezone=True), nullable=True)
    created_at: datetime = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
    updated_at: datetime = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    booking = relationship("Booking", back_populates="streams")

    __table_args__ = (
        Index(
            "uq_streams_open_booking",
            "booking_id",
            unique=True,
            postgresql_where=text("status IN ('created', 'active')"),
            sqlite_where=text("status IN ('created', 'active')"),
        ),
    )


class Payment(Base):
    """A charge for a booking, tracked through a Stripe payment intent."""

    __tablename__ = "payments"

    id: str = Column(String(36), primary_key=True, default=_uuid)
    booking_id: str = Column(
        String(36), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    host_id: str = Column(String(36), ForeignKey("users.id"), nullable=False)
    amount: float = Column(Float, nullable=False)
    service_fee: float = Column(Float, nullable=False)
    total_amount: float = Column(Float, nullable=False)
    currency: str = Column(String(3), nullable=False, default="usd")
    payment_intent_id: str = Column(String(128), nullable=False, unique=True)
    status: str = Column(String(16), nullable=False, default="pending")
    refund_id: Optional[str] = Column(String(128), nullable=True)
    refunded_amount: Optional[float] = Column(Float, nullable=True)
    created_at: datetime = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
    updated_at: datetime = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    booking = relationship("Booking", back_populates="payments")

    __table_args__ = (
        Index(
            "uq_payments_succeeded_booking",
            "booking_id",
            unique=True,
            postgresql_where=text("status = 'succeeded'"),
            sqlite_where=text("status = 'succeeded'"),
        ),
    )


class ChatMessage(Base):
    """An append-only chat line in a booking room."""

    __tablename__ = "chat_messages"

    id: str = Column(String(36), primary_key=True, default=_uuid)
    booking_id: str = Column(
        String(36), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False
    )
    user_id: str = Column(String(36), ForeignKey("users.id"), nullable=False)
    content: str = Column(Text, nullable=False)
    created_at: datetime = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )

    booking = relationship("Booking", back_populates="messages")
    author = relationship("User")

    __table_args__ = (Index("ix_chat_messages_booking_created", "booking_id", "created_at"),)


def _ensure_utc(target, *_args) -> None:
    # SQLite drops tzinfo on round trip.
    for column in target.__table__.columns:
        if not isinstance(column.type, DateTime):
            continue
        value = target.__dict__.get(column.key)
        if isinstance(value, datetime) and value.tzinfo is None:
            target.__dict__[column.key] = value.replace(tzinfo=timezone.utc)


for _model in (User, DJProfile, Booking, Stream, Payment, ChatMessage):
    event.listen(_model, "load", _ensure_utc)
    event.listen(_model, "refresh", _ensure_utc)


__all__ = ["Base", "Booking", "ChatMessage", "DJProfile", "Payment", "Stream", "User"]
