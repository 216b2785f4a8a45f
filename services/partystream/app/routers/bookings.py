from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from libs.db.db import get_db

from ..bookings import (
    create_booking,
    delete_booking,
    get_booking,
    list_bookings,
    update_booking,
    update_booking_status,
)
from ..dependencies import get_current_caller, require_roles
from ..identity import Caller, Role
from ..schemas import BookingCreate, BookingOut, BookingStatusUpdate, BookingUpdate

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("", response_model=BookingOut, status_code=status.HTTP_201_CREATED)
def create(
    payload: BookingCreate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_roles(Role.HOST)),
):
    return BookingOut.model_validate(create_booking(db, caller, payload))


@router.get("", response_model=list[BookingOut])
def my_bookings(db: Session = Depends(get_db), caller: Caller = Depends(get_current_caller)):
    return [BookingOut.model_validate(booking) for booking in list_bookings(db, caller)]


@router.get("/{booking_id}", response_model=BookingOut)
def read(booking_id: str, db: Session = Depends(get_db), caller: Caller = Depends(get_current_caller)):
    return BookingOut.model_validate(get_booking(db, caller, booking_id))


@router.put("/{booking_id}", response_model=BookingOut)
def update(
    booking_id: str,
    payload: BookingUpdate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return BookingOut.model_validate(update_booking(db, caller, booking_id, payload))


@router.patch("/{booking_id}/status", response_model=BookingOut)
def change_status(
    booking_id: str,
    payload: BookingStatusUpdate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return BookingOut.model_validate(update_booking_status(db, caller, booking_id, payload.status))


@router.delete("/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete(booking_id: str, db: Session = Depends(get_db), caller: Caller = Depends(get_current_caller)):
    delete_booking(db, caller, booking_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
