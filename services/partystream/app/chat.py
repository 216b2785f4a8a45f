"""Per-booking chat rooms: authorization, persistence and socket fan-out."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Optional, Protocol

from sqlalchemy.orm import Session

from infra import Booking, ChatMessage

from . import repository
from .config import Settings
from .errors import AuthorizationError, ValidationError
from .identity import Caller, is_participant
from .schemas import ChatMessageOut
from .timeutils import as_utc

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 2000


class ChatConnection(Protocol):
    async def send_json(self, data: Dict[str, Any]) -> None:
        ...


def room_name(booking_id: str) -> str:
    return f"booking:{booking_id}"


class ChatHub:
    """Track which sockets joined which booking room and fan messages out."""

    def __init__(self) -> None:
        self._rooms: dict[str, set[ChatConnection]] = {}
        self._lock = asyncio.Lock()

    async def join(self, room: str, connection: ChatConnection) -> None:
        async with self._lock:
            self._rooms.setdefault(room, set()).add(connection)

    async def leave(self, room: str, connection: ChatConnection) -> None:
        async with self._lock:
            connections = self._rooms.get(room)
            if not connections:
                return
            connections.discard(connection)
            if not connections:
                self._rooms.pop(room, None)

    async def leave_all(self, connection: ChatConnection) -> list[str]:
        async with self._lock:
            left = [room for room, members in self._rooms.items() if connection in members]
            for room in left:
                self._rooms[room].discard(connection)
                if not self._rooms[room]:
                    self._rooms.pop(room, None)
        return left

    def members(self, room: str) -> int:
        return len(self._rooms.get(room, ()))

    async def broadcast(
        self, room: str, message: Dict[str, Any], *, exclude: Optional[ChatConnection] = None
    ) -> int:
        """Send ``message`` to every member of ``room``; returns deliveries.

        Delivery is at most once per socket. Sockets that fail to receive are
        dropped from every room.
        """

        async with self._lock:
            targets = [conn for conn in self._rooms.get(room, ()) if conn is not exclude]
        delivered = 0
        stale: list[ChatConnection] = []
        for connection in targets:
            try:
                await connection.send_json(message)
            except Exception:
                stale.append(connection)
            else:
                delivered += 1
        for connection in stale:
            logger.info("dropping unreachable chat socket", extra={"room": room})
            await self.leave_all(connection)
        return delivered


def authorize_room(db: Session, caller: Caller, booking_id: str) -> Booking:
    booking = repository.require_booking(db, booking_id)
    if not is_participant(caller, booking):
        raise AuthorizationError(
            "Not authorized to access this booking's chat",
            booking_id=booking_id,
            caller_id=caller.id,
        )
    return booking


def post_message(db: Session, caller: Caller, booking_id: str, content: str) -> ChatMessage:
    text = (content or "").strip()
    if not text:
        raise ValidationError("Message content is required", booking_id=booking_id, caller_id=caller.id)
    if len(text) > MAX_MESSAGE_LENGTH:
        raise ValidationError(
            f"Message content exceeds {MAX_MESSAGE_LENGTH} characters",
            booking_id=booking_id,
            caller_id=caller.id,
        )
    authorize_room(db, caller, booking_id)
    message = ChatMessage(booking_id=booking_id, user_id=caller.id, content=text)
    db.add(message)
    db.commit()
    return message


def list_messages(
    db: Session,
    settings: Settings,
    caller: Caller,
    booking_id: str,
    *,
    limit: Optional[int] = None,
    before: Optional[datetime] = None,
) -> list[ChatMessage]:
    authorize_room(db, caller, booking_id)
    size = limit or settings.chat_history_limit
    if size < 1:
        raise ValidationError("limit must be positive", booking_id=booking_id)
    size = min(size, settings.chat_history_max_limit)
    return repository.list_chat_messages(
        db, booking_id, limit=size, before=as_utc(before) if before else None
    )


def message_event(message: ChatMessage) -> Dict[str, Any]:
    return {
        "event": "message",
        "booking_id": message.booking_id,
        "data": ChatMessageOut.model_validate(message).model_dump(mode="json"),
    }


__all__ = [
    "ChatHub",
    "MAX_MESSAGE_LENGTH",
    "authorize_room",
    "list_messages",
    "message_event",
    "post_message",
    "room_name",
]
