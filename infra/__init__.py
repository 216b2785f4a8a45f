"""Database models for the PartyStream monorepo."""

from .audit_models import AuditLog
from .audit_models import Base as AuditBase
from .partystream_models import Base as PartyStreamBase
from .partystream_models import Booking, ChatMessage, DJProfile, Payment, Stream, User

__all__ = [
    "AuditBase",
    "AuditLog",
    "PartyStreamBase",
    "Booking",
    "ChatMessage",
    "DJProfile",
    "Payment",
    "Stream",
    "User",
]
