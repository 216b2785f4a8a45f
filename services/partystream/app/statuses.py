from __future__ import annotations

from enum import Enum


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class BookingPaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class StreamStatus(str, Enum):
    CREATED = "created"
    ACTIVE = "active"
    ENDED = "ended"
    FAILED = "failed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"


TERMINAL_BOOKING_STATUSES = frozenset({BookingStatus.CANCELLED, BookingStatus.COMPLETED})
OPEN_STREAM_STATUSES = frozenset({StreamStatus.CREATED, StreamStatus.ACTIVE})
PAYABLE_BOOKING_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})

# Allowed manual transitions; automatic ones go through bookings.transition_booking.
BOOKING_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED, BookingStatus.COMPLETED}),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
}


__all__ = [
    "BOOKING_TRANSITIONS",
    "OPEN_STREAM_STATUSES",
    "PAYABLE_BOOKING_STATUSES",
    "TERMINAL_BOOKING_STATUSES",
    "BookingPaymentStatus",
    "BookingStatus",
    "PaymentStatus",
    "StreamStatus",
]
