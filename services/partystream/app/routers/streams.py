from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from libs.db.db import get_db

from ..config import Settings
from ..dependencies import (
    get_app_settings,
    get_current_caller,
    get_streaming_provider,
    require_roles,
)
from ..identity import Caller, Role
from ..schemas import StreamCreate, StreamOut
from ..streaming_provider import StreamingProvider
from ..streams import (
    StreamView,
    create_stream,
    delete_stream,
    end_stream,
    get_stream,
    get_stream_for_booking,
    start_stream,
)

router = APIRouter(prefix="/streams", tags=["streams"])


def _render(view: StreamView) -> StreamOut:
    out = StreamOut.model_validate(view.stream)
    return out.model_copy(
        update={
            "viewer_count": view.viewer_count,
            "health": view.health,
            "ingest_endpoint": view.ingest_endpoint,
            "rtmp_url": view.rtmp_url,
            "stream_key": view.stream_key,
        }
    )


@router.post(
    "",
    response_model=StreamOut,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
def create(
    payload: StreamCreate,
    db: Session = Depends(get_db),
    provider: StreamingProvider = Depends(get_streaming_provider),
    settings: Settings = Depends(get_app_settings),
    caller: Caller = Depends(require_roles(Role.DJ, Role.ADMIN)),
):
    view = create_stream(
        db, provider, settings, caller, booking_id=payload.booking_id, title=payload.title
    )
    return _render(view)


@router.get("/booking/{booking_id}", response_model=StreamOut, response_model_exclude_none=True)
def read_for_booking(
    booking_id: str,
    db: Session = Depends(get_db),
    provider: StreamingProvider = Depends(get_streaming_provider),
    caller: Caller = Depends(get_current_caller),
):
    return _render(get_stream_for_booking(db, provider, caller, booking_id))


@router.get("/{stream_id}", response_model=StreamOut, response_model_exclude_none=True)
def read(
    stream_id: str,
    db: Session = Depends(get_db),
    provider: StreamingProvider = Depends(get_streaming_provider),
    caller: Caller = Depends(get_current_caller),
):
    return _render(get_stream(db, provider, caller, stream_id))


@router.patch("/{stream_id}/start", response_model=StreamOut, response_model_exclude_none=True)
def start(
    stream_id: str,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return StreamOut.model_validate(start_stream(db, caller, stream_id))


@router.patch("/{stream_id}/end", response_model=StreamOut, response_model_exclude_none=True)
def end(
    stream_id: str,
    db: Session = Depends(get_db),
    provider: StreamingProvider = Depends(get_streaming_provider),
    settings: Settings = Depends(get_app_settings),
    caller: Caller = Depends(get_current_caller),
):
    return StreamOut.model_validate(end_stream(db, provider, settings, caller, stream_id))


@router.delete("/{stream_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete(
    stream_id: str,
    db: Session = Depends(get_db),
    provider: StreamingProvider = Depends(get_streaming_provider),
    caller: Caller = Depends(get_current_caller),
):
    delete_stream(db, provider, caller, stream_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
