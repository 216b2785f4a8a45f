"""Caller identity and the capability checks guarding each operation.

Ownership of a booking is resolved once here: the host is the booking's
``host_id`` and the DJ is the user owning the booking's DJ profile.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from infra import Booking

from .statuses import BookingStatus


class Role(str, Enum):
    HOST = "host"
    DJ = "dj"
    ADMIN = "admin"


@dataclass(slots=True, frozen=True)
class Caller:
    id: str
    role: Role
    email: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


def is_booking_host(caller: Caller, booking: Booking) -> bool:
    return booking.host_id == caller.id


def is_booking_dj(caller: Caller, booking: Booking) -> bool:
    profile = booking.dj_profile
    return profile is not None and profile.user_id == caller.id


def is_participant(caller: Caller, booking: Booking) -> bool:
    return caller.is_admin or is_booking_host(caller, booking) or is_booking_dj(caller, booking)


def can_update_booking(caller: Caller, booking: Booking) -> bool:
    return caller.is_admin or is_booking_host(caller, booking)


def can_transition_booking(caller: Caller, booking: Booking, target: BookingStatus) -> bool:
    if target is BookingStatus.CANCELLED:
        return is_participant(caller, booking)
    if target is BookingStatus.CONFIRMED:
        return caller.is_admin or is_booking_dj(caller, booking)
    if target is BookingStatus.COMPLETED:
        return caller.is_admin
    return False


def can_manage_stream(caller: Caller, booking: Booking) -> bool:
    """Create and start rights: the booking's DJ or an admin."""

    return caller.is_admin or is_booking_dj(caller, booking)


def can_end_stream(caller: Caller, booking: Booking) -> bool:
    return is_participant(caller, booking)


def can_pay_for_booking(caller: Caller, booking: Booking) -> bool:
    return caller.is_admin or is_booking_host(caller, booking)


def receives_ingest_credentials(caller: Caller, booking: Booking) -> bool:
    return is_booking_dj(caller, booking)


__all__ = [
    "Caller",
    "Role",
    "can_end_stream",
    "can_manage_stream",
    "can_pay_for_booking",
    "can_transition_booking",
    "can_update_booking",
    "is_booking_dj",
    "is_booking_host",
    "is_participant",
    "receives_ingest_credentials",
]
