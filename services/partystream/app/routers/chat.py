from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from libs.db.db import SessionLocal, get_db

from ..chat import ChatHub, list_messages, message_event, post_message, room_name
from ..config import Settings
from ..dependencies import caller_from_token, get_app_settings, get_chat_hub, get_current_caller
from ..errors import PartyStreamError
from ..identity import Caller
from ..schemas import ChatMessageCreate, ChatMessageOut
from ..security import InvalidTokenError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])


@router.get("/chat/{booking_id}/messages", response_model=list[ChatMessageOut])
def history(
    booking_id: str,
    limit: Optional[int] = Query(default=None, ge=1),
    before: Optional[datetime] = Query(default=None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    caller: Caller = Depends(get_current_caller),
):
    messages = list_messages(db, settings, caller, booking_id, limit=limit, before=before)
    return [ChatMessageOut.model_validate(message) for message in messages]


@router.post("/chat/messages", response_model=ChatMessageOut, status_code=status.HTTP_201_CREATED)
async def send_message(
    payload: ChatMessageCreate,
    db: Session = Depends(get_db),
    hub: ChatHub = Depends(get_chat_hub),
    caller: Caller = Depends(get_current_caller),
):
    outgoing = await run_in_threadpool(
        _post_and_render, db, caller, payload.booking_id, payload.content
    )
    await hub.broadcast(room_name(payload.booking_id), outgoing)
    return outgoing["data"]


def _socket_token(websocket: WebSocket) -> Optional[str]:
    token = websocket.query_params.get("token")
    if token:
        return token
    scheme, _, value = websocket.headers.get("authorization", "").partition(" ")
    if scheme.lower() == "bearer" and value:
        return value
    return None


def _join_room(settings: Settings, caller: Caller, booking_id: str) -> list[dict[str, Any]]:
    with SessionLocal() as db:
        messages = list_messages(db, settings, caller, booking_id)
        return [ChatMessageOut.model_validate(m).model_dump(mode="json") for m in messages]


def _post_and_render(db: Session, caller: Caller, booking_id: str, content: str) -> dict[str, Any]:
    return message_event(post_message(db, caller, booking_id, content))


def _persist(caller: Caller, booking_id: str, content: str) -> dict[str, Any]:
    with SessionLocal() as db:
        return _post_and_render(db, caller, booking_id, content)


async def _send_error(websocket: WebSocket, message: str, *, category: str = "validation_error") -> None:
    await websocket.send_json({"event": "error", "error": category, "message": message})


@router.websocket("/ws/chat")
async def chat_socket(websocket: WebSocket) -> None:
    settings: Settings = websocket.app.state.settings
    hub: ChatHub = websocket.app.state.chat_hub

    token = _socket_token(websocket)
    try:
        caller = caller_from_token(settings, token) if token else None
    except InvalidTokenError:
        caller = None
    if caller is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    presence = {"user_id": caller.id, "role": caller.role.value}
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                await _send_error(websocket, "Frames must be JSON objects")
                continue
            if not isinstance(frame, dict):
                await _send_error(websocket, "Frames must be JSON objects")
                continue

            event = frame.get("event")
            booking_id = frame.get("booking_id")
            if not isinstance(booking_id, str) or not booking_id:
                await _send_error(websocket, "booking_id is required")
                continue
            room = room_name(booking_id)

            try:
                if event == "join":
                    history = await run_in_threadpool(_join_room, settings, caller, booking_id)
                    await hub.join(room, websocket)
                    await websocket.send_json(
                        {"event": "joined", "booking_id": booking_id, "history": history}
                    )
                    await hub.broadcast(
                        room,
                        {"event": "user_joined", "booking_id": booking_id, **presence},
                        exclude=websocket,
                    )
                elif event == "leave":
                    await hub.leave(room, websocket)
                    await websocket.send_json({"event": "left", "booking_id": booking_id})
                    await hub.broadcast(room, {"event": "user_left", "booking_id": booking_id, **presence})
                elif event == "message":
                    content = frame.get("content")
                    if not isinstance(content, str):
                        await _send_error(websocket, "content is required")
                        continue
                    outgoing = await run_in_threadpool(_persist, caller, booking_id, content)
                    await hub.broadcast(room, outgoing)
                else:
                    await _send_error(websocket, f"Unknown event: {event}")
            except PartyStreamError as exc:
                logger.info(
                    "chat event rejected",
                    extra={"booking_id": booking_id, "caller_id": caller.id, "error": exc.category},
                )
                await _send_error(websocket, exc.message, category=exc.category)
    except WebSocketDisconnect:
        pass
    finally:
        for room in await hub.leave_all(websocket):
            booking_id = room.split(":", 1)[1]
            await hub.broadcast(room, {"event": "user_left", "booking_id": booking_id, **presence})
